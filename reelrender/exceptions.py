"""Custom exceptions for the render service.

Every failure the render endpoint can report is a ``RenderServiceError``
subclass carrying a machine-readable code and the HTTP status it maps to.
The exception handler in ``reelrender.main`` turns them into the stable
``{"ok": false, "error": ...}`` response shape.
"""

import math
from typing import Any

from reelrender.constants.error_codes import get_error_spec


class RenderServiceError(Exception):
    """Base exception for all render service errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    @property
    def suggested_action(self) -> str | None:
        return get_error_spec(self.code).get("suggested_action")

    def retry_after_seconds(self) -> int | None:
        """Seconds for a ``Retry-After`` header, or None when retrying will not help."""
        if not self.retryable:
            return None
        delay_ms = get_error_spec(self.code).get("parameters", {}).get("delay_ms")
        return math.ceil(delay_ms / 1000) if delay_ms else None

    def debug_info(self) -> dict[str, Any] | None:
        """Extra diagnostics for the response ``debug`` field."""
        return {"code": self.code}

    def to_response_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": False, "error": self.message}
        debug = self.debug_info()
        if debug is not None:
            debug["retryable"] = self.retryable
            if self.suggested_action:
                debug["suggested_action"] = self.suggested_action
            body["debug"] = debug
        return body


# =============================================================================
# Request errors (400 / 503)
# =============================================================================


class ValidationError(RenderServiceError):
    """Malformed or missing multipart fields / payload JSON."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"

    def debug_info(self) -> dict[str, Any] | None:
        return None


class BusyError(RenderServiceError):
    """The single encoder slot is taken by another render."""

    code = "RENDERER_BUSY"
    status_code = 503
    message = "Renderer busy, try again shortly"

    def debug_info(self) -> dict[str, Any] | None:
        return None


# =============================================================================
# Upstream / media errors (500)
# =============================================================================


class AssetDownloadError(RenderServiceError):
    """A remote asset could not be fetched."""

    code = "ASSET_DOWNLOAD_FAILED"
    message = "Failed to download asset"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download asset {url}: {reason}")


class ProbeError(RenderServiceError):
    """ffprobe produced no usable duration."""

    code = "PROBE_FAILED"
    message = "Could not determine audio duration"


# =============================================================================
# Encoder errors
# =============================================================================


class EncoderError(RenderServiceError):
    """Base class for errors raised while ffmpeg is running."""

    code = "ENCODER_FAILED"

    def __init__(
        self,
        message: str | None = None,
        *,
        last_progress: dict[str, Any] | None = None,
        samples: list[dict[str, Any]] | None = None,
        elapsed_ms: int = 0,
    ):
        self.last_progress = last_progress
        self.samples = samples or []
        self.elapsed_ms = elapsed_ms
        super().__init__(message)

    def debug_info(self) -> dict[str, Any] | None:
        return {
            "code": self.code,
            "ffmpeg_last": self.last_progress,
            "ffmpeg_samples": self.samples,
        }


class EncoderSoftTimeoutError(EncoderError):
    """ffmpeg exceeded the soft timeout and was killed."""

    code = "ENCODER_SOFT_TIMEOUT"
    status_code = 504
    message = "ffmpeg timed out"

    def debug_info(self) -> dict[str, Any] | None:
        return {"ffmpeg_last": self.last_progress, "ffmpeg_samples": self.samples}


class EncoderHardTimeoutError(EncoderSoftTimeoutError):
    """ffmpeg was still alive at the hard timeout and had to be force-killed."""

    code = "ENCODER_HARD_TIMEOUT"
    message = "ffmpeg did not terminate before the hard timeout"


class EncoderFailureError(EncoderError):
    """ffmpeg exited with a non-zero status."""

    code = "ENCODER_FAILED"
    status_code = 500
    message = "ffmpeg failed"

    def __init__(
        self,
        exit_code: int,
        stderr_tail: str,
        *,
        last_progress: dict[str, Any] | None = None,
        samples: list[dict[str, Any]] | None = None,
        elapsed_ms: int = 0,
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(
            f"ffmpeg exited with code {exit_code}",
            last_progress=last_progress,
            samples=samples,
            elapsed_ms=elapsed_ms,
        )

    def debug_info(self) -> dict[str, Any] | None:
        info = super().debug_info() or {}
        info["exit_code"] = self.exit_code
        info["stderr_tail"] = self.stderr_tail
        return info
