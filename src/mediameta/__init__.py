"""Media metadata resolution for books, movies and TV shows."""

__version__ = "0.1.0"
