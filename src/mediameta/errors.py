"""Error taxonomy surfaced by metadata lookups."""

from typing import Optional

from mediameta.models.common import ErrorCode


class MetadataError(Exception):
    """Base exception for metadata lookup failures.

    Every failure carries a machine-readable code and a ``retryable`` flag so
    callers can decide whether an automated retry is safe.
    """

    code: ErrorCode = ErrorCode.SOURCE_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        """Serialize to the error response shape."""
        error = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.source:
            error["source"] = self.source
        if self.retry_after_seconds is not None:
            error["retry_after_seconds"] = self.retry_after_seconds
        return {"error": error}


class NotFoundError(MetadataError):
    """No source produced an acceptable match."""

    code = ErrorCode.NOT_FOUND
    retryable = False


class SourceError(MetadataError):
    """A provider call failed after local retries were exhausted."""

    code = ErrorCode.SOURCE_ERROR
    retryable = True


class RateLimitedError(MetadataError):
    """Local or provider-signaled throttling."""

    code = ErrorCode.RATE_LIMITED
    retryable = True


class LookupValidationError(MetadataError):
    """Malformed lookup input."""

    code = ErrorCode.VALIDATION_ERROR
    retryable = False


class AuthError(MetadataError):
    """Missing or rejected provider credential."""

    code = ErrorCode.AUTH_ERROR
    retryable = False


class SourceTimeoutError(MetadataError):
    """A provider call timed out after local retries were exhausted."""

    code = ErrorCode.TIMEOUT
    retryable = True
