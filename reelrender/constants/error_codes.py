"""Error codes dictionary for the render API.

Single source of truth for every error code the service returns, its
retryability, and the recovery hint surfaced to callers.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    # ==========================================================================
    # Capacity errors
    # ==========================================================================
    "RENDERER_BUSY": {
        "retryable": True,
        "suggested_action": "wait_and_retry",
        "parameters": {"delay_ms": 5000},
    },
    # ==========================================================================
    # Upstream / media errors
    # ==========================================================================
    "ASSET_DOWNLOAD_FAILED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "PROBE_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # Encoder errors
    # ==========================================================================
    "ENCODER_SOFT_TIMEOUT": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 10000, "max_retries": 1},
    },
    "ENCODER_HARD_TIMEOUT": {
        "retryable": False,
    },
    "ENCODER_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested action
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
