"""Error codes dictionary for the card API.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Used by exception handlers to generate machine-readable
error responses.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Check required fields (text, audioSource) and value formats.",
    },
    "INVALID_CLIP_RANGE": {
        "retryable": False,
        "suggested_fix": "clipStart and clipEnd must be finite numbers with clipEnd > clipStart.",
    },
    "ASSET_TOO_LARGE": {
        "retryable": False,
        "suggested_fix": "Use a smaller audio or image file.",
    },
    # ==========================================================================
    # Upstream errors (retryable, the remote may recover)
    # ==========================================================================
    "FETCH_FAILED": {
        "retryable": True,
        "suggested_fix": "Verify the asset URL is publicly reachable and returns 2xx.",
    },
    # ==========================================================================
    # Encoder errors
    # ==========================================================================
    "ENCODE_FAILED": {
        "retryable": False,
        "suggested_fix": "Verify the audio file is a decodable format (mp3, wav, ogg, m4a).",
    },
    "ENCODE_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Request a shorter clip range.",
    },
    # ==========================================================================
    # Server errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Return the spec for an error code, falling back to INTERNAL_ERROR."""
    return ERROR_CODES.get(code, ERROR_CODES["INTERNAL_ERROR"])
