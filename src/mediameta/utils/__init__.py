"""Shared utilities: logging, fuzzy matching and rate limiting."""
