"""Custom exceptions for the card composition pipeline.

Every failure the pipeline reports falls into one of four kinds:
validation, fetch, encode, or internal. Each exception carries the pipeline
stage that failed and the underlying cause so a caller can tell a bad input
URL apart from an encoder crash.
"""

from cardclip.constants.error_codes import get_error_spec
from cardclip.schemas.envelope import ErrorInfo


class CardError(Exception):
    """Base exception for all cardclip errors."""

    code: str = "INTERNAL_ERROR"
    kind: str = "InternalError"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        stage: str | None = None,
        cause: str | None = None,
        code: str | None = None,
    ):
        self.message = message or self.__class__.message
        self.stage = stage
        self.cause = cause
        if code:
            self.code = code
        super().__init__(self.message)

    @property
    def error_kind(self) -> str:
        return self.kind

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        message = self.message
        if self.cause:
            message = f"{message}: {self.cause}"
        return ErrorInfo(
            code=self.code,
            kind=self.kind,
            message=message,
            stage=self.stage,
            retryable=spec.get("retryable", False),
            suggested_fix=spec.get("suggested_fix"),
        )


# =============================================================================
# Validation Errors (422)
# =============================================================================


class ValidationError(CardError):
    """Missing or malformed input. Raised before any network or subprocess work."""

    code = "VALIDATION_ERROR"
    kind = "ValidationError"
    status_code = 422
    message = "Invalid request"


class InvalidClipRangeError(ValidationError):
    code = "INVALID_CLIP_RANGE"
    message = "Invalid clip range"

    def __init__(self, start: object = None, end: object = None, reason: str | None = None):
        detail = reason or f"start={start!r}, end={end!r}"
        super().__init__(f"{self.__class__.message} ({detail})", stage="validate")


class AssetTooLargeError(ValidationError):
    code = "ASSET_TOO_LARGE"
    status_code = 413
    message = "Asset exceeds size limit"

    def __init__(self, reference: str, limit_bytes: int):
        super().__init__(
            f"{self.__class__.message} of {limit_bytes} bytes: {_shorten(reference)}",
            stage="fetch",
        )


# =============================================================================
# Upstream Errors (502)
# =============================================================================


class FetchError(CardError):
    """Remote asset unreachable or answered with a non-success status."""

    code = "FETCH_FAILED"
    kind = "FetchError"
    status_code = 502
    message = "Failed to fetch asset"


# =============================================================================
# Encoder Errors
# =============================================================================


class EncodeError(CardError):
    """External encoder exited non-zero, timed out, or produced no output."""

    code = "ENCODE_FAILED"
    kind = "EncodeError"
    status_code = 500
    message = "Video encoding failed"


class EncodeTimeoutError(EncodeError):
    code = "ENCODE_TIMEOUT"
    status_code = 504
    message = "Video encoding timed out"

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(stage="encode", cause=f"exceeded {timeout_s:.1f}s")


# =============================================================================
# Internal Errors (500)
# =============================================================================


class InternalError(CardError):
    """Invariant violation inside the pipeline."""

    code = "INTERNAL_ERROR"
    kind = "InternalError"
    status_code = 500
    message = "Internal pipeline error"


def _shorten(reference: str, limit: int = 80) -> str:
    """Keep inline payloads out of error messages."""
    if reference.startswith("data:"):
        return reference.split(",", 1)[0] + ",..."
    return reference if len(reference) <= limit else reference[:limit] + "..."
