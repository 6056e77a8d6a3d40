"""Models shared by every media type."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Confidence(str, Enum):
    """Coarse summary of how much corroborating data backed a result."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ErrorCode(str, Enum):
    """Closed set of failure kinds."""

    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    SOURCE_ERROR = "SOURCE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    TIMEOUT = "TIMEOUT"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Rating(BaseModel):
    """Rating from a single source."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0, le=10)
    count: int = Field(..., ge=0)


class Meta(BaseModel):
    """Provenance block attached to every canonical record."""

    sources_queried: List[str] = Field(default_factory=list)
    sources_failed: List[str] = Field(default_factory=list)
    primary_source: str
    confidence: Confidence
    cached: bool = False
    timestamp: str = Field(default_factory=utc_timestamp)


class ImdbRating(BaseModel):
    """IMDb reference carried by screen records."""

    score: Optional[float] = None
    id: Optional[str] = None


class ResultModel(BaseModel):
    """Base for canonical records exposing ``_meta`` on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    meta: Meta = Field(..., alias="_meta")

    def to_dict(self) -> dict:
        """Serialize with the ``_meta`` alias, JSON-compatible."""
        return self.model_dump(mode="json", by_alias=True)
