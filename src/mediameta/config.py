"""Configuration management for media metadata lookups."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class TMDBConfig(BaseModel):
    """TMDB API configuration."""

    enabled: bool = Field(default=True, description="Enable TMDB integration")
    api_key: Optional[str] = Field(default=None, description="TMDB API read access token")

    @property
    def available(self) -> bool:
        """Movie/TV lookups need both the flag and a key."""
        return self.enabled and bool(self.api_key)


class GoogleBooksConfig(BaseModel):
    """Google Books API configuration."""

    enabled: bool = Field(default=True, description="Enable Google Books")
    api_key: Optional[str] = Field(default=None, description="Optional API key (raises quota)")


class OpenLibraryConfig(BaseModel):
    """Open Library configuration (no key required)."""

    enabled: bool = Field(default=True, description="Enable Open Library")


class GoodreadsConfig(BaseModel):
    """Goodreads scraping configuration."""

    enabled: bool = Field(default=True, description="Enable Goodreads scraping")
    delay_ms: int = Field(default=2000, ge=0, description="Base courtesy delay between requests")


class CacheConfig(BaseModel):
    """Response cache configuration."""

    enabled: bool = Field(default=True, description="Enable the response cache")
    path: str = Field(default="./cache.db", description="Cache database path")
    default_ttl_hours: float = Field(default=168, gt=0, description="Default entry TTL in hours")


class HTTPConfig(BaseModel):
    """Outbound HTTP configuration."""

    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per request")
    backoff_multiplier: float = Field(
        default=2.0, ge=0, description="Retry wait multiplier in seconds (2 gives 2^attempt s)"
    )


class RateLimitSettings(BaseModel):
    """Request budget override for one source."""

    requests_per_window: int = Field(..., gt=0)
    window_ms: int = Field(..., gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    format: str = Field(default="text", description="Log format (json or text)")
    level: str = Field(default="info", description="Log level")
    output: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        if v.lower() not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError("Invalid log level")
        return v.lower()


@dataclass
class SourceStatus:
    """Availability of one provider."""

    name: str
    available: bool
    reason: Optional[str] = None


class Config(BaseModel):
    """Main configuration model."""

    tmdb: TMDBConfig = Field(default_factory=TMDBConfig, description="TMDB configuration")
    google_books: GoogleBooksConfig = Field(
        default_factory=GoogleBooksConfig, description="Google Books configuration"
    )
    open_library: OpenLibraryConfig = Field(
        default_factory=OpenLibraryConfig, description="Open Library configuration"
    )
    goodreads: GoodreadsConfig = Field(
        default_factory=GoodreadsConfig, description="Goodreads configuration"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Cache configuration")
    http: HTTPConfig = Field(default_factory=HTTPConfig, description="HTTP configuration")
    rate_limits: Dict[str, RateLimitSettings] = Field(
        default_factory=dict, description="Per-source rate limit overrides"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        raw_config = cls._substitute_env_vars(raw_config)

        return cls(**raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """Recursively replace ``${VAR_NAME}`` with ``os.environ['VAR_NAME']``."""
        if isinstance(obj, dict):
            return {key: Config._substitute_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [Config._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            pattern = r"\$\{([^}]+)\}"

            def replace_var(match):
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable '{var_name}' not found "
                        f"(referenced in configuration)"
                    )
                return value

            return re.sub(pattern, replace_var, obj)
        else:
            return obj

    @classmethod
    def from_defaults(cls) -> "Config":
        """Create configuration with default values.

        API keys are picked up from ``TMDB_API_KEY`` and ``GOOGLE_BOOKS_API_KEY``
        when set.
        """
        return cls(
            tmdb=TMDBConfig(api_key=os.environ.get("TMDB_API_KEY") or None),
            google_books=GoogleBooksConfig(api_key=os.environ.get("GOOGLE_BOOKS_API_KEY") or None),
        )

    def source_status(self) -> List[SourceStatus]:
        """Report which providers are usable with this configuration."""
        return [
            SourceStatus(
                name="open_library",
                available=self.open_library.enabled,
                reason=None if self.open_library.enabled else "Open Library disabled",
            ),
            SourceStatus(
                name="google_books",
                available=self.google_books.enabled,
                reason=None if self.google_books.enabled else "Google Books disabled",
            ),
            SourceStatus(
                name="goodreads",
                available=self.goodreads.enabled,
                reason=None if self.goodreads.enabled else "Goodreads scraping disabled",
            ),
            SourceStatus(
                name="tmdb",
                available=self.tmdb.available,
                reason=None
                if self.tmdb.available
                else ("TMDB disabled" if not self.tmdb.enabled else "TMDB API key not set"),
            ),
        ]

    def validate_sources_for(
        self, media_type: Literal["book", "movie", "tv"]
    ) -> tuple[bool, List[str]]:
        """Check that a media type has at least one usable provider.

        Returns:
            Tuple of (valid, warnings)
        """
        status = {s.name: s for s in self.source_status()}

        if media_type == "book":
            book_sources = [
                s for name, s in status.items() if name != "tmdb" and s.available
            ]
            if not book_sources:
                return False, ["No book sources available"]
            warnings = []
            if not status["google_books"].available:
                warnings.append("Google Books unavailable - results may be less comprehensive")
            return True, warnings

        if not status["tmdb"].available:
            return False, ["TMDB API key required for movie/TV lookups"]
        return True, []


def load_config(path: Optional[str | Path] = None) -> Config:
    """Load configuration from file or use defaults.

    Args:
        path: Optional path to configuration file. If None, uses defaults.

    Returns:
        Config instance
    """
    if path is None:
        return Config.from_defaults()

    return Config.from_yaml(path)
