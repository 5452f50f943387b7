"""Tests for error codes and the error response shape."""

from reelrender.constants.error_codes import ERROR_CODES, get_error_spec, is_retryable
from reelrender.exceptions import (
    AssetDownloadError,
    BusyError,
    EncoderHardTimeoutError,
    EncoderSoftTimeoutError,
    ProbeError,
    RenderServiceError,
    ValidationError,
)


class TestErrorCodes:
    def test_every_exception_code_is_registered(self):
        for exc_class in (
            RenderServiceError,
            ValidationError,
            BusyError,
            AssetDownloadError,
            ProbeError,
            EncoderSoftTimeoutError,
            EncoderHardTimeoutError,
        ):
            assert exc_class.code in ERROR_CODES

    def test_retryable_flags(self):
        assert is_retryable("RENDERER_BUSY")
        assert is_retryable("ENCODER_SOFT_TIMEOUT")
        assert not is_retryable("VALIDATION_ERROR")

    def test_unknown_code_falls_back(self):
        assert get_error_spec("NOT_A_CODE") == {"retryable": False}


class TestResponseBody:
    def test_validation_error_has_no_debug(self):
        assert ValidationError("bad").to_response_body() == {"ok": False, "error": "bad"}

    def test_busy(self):
        err = BusyError()
        assert err.status_code == 503
        assert err.retryable
        assert "debug" not in err.to_response_body()

    def test_probe_error_debug_code(self):
        body = ProbeError("no duration").to_response_body()
        assert body["debug"] == {"code": "PROBE_FAILED", "retryable": False}

    def test_soft_timeout_debug(self):
        err = EncoderSoftTimeoutError(
            "timed out", last_progress={"out_time_ms": 5}, samples=[{"out_time_ms": 5}]
        )
        assert err.status_code == 504
        assert err.to_response_body()["debug"] == {
            "ffmpeg_last": {"out_time_ms": 5},
            "ffmpeg_samples": [{"out_time_ms": 5}],
            "retryable": True,
            "suggested_action": "retry_with_backoff",
        }

    def test_hard_timeout_is_a_timeout(self):
        err = EncoderHardTimeoutError("stuck")
        assert isinstance(err, EncoderSoftTimeoutError)
        assert err.status_code == 504
        assert err.code == "ENCODER_HARD_TIMEOUT"

    def test_asset_error_message(self):
        err = AssetDownloadError("https://x/bg.png", "HTTP 404")
        assert err.message == "Failed to download asset https://x/bg.png: HTTP 404"
        assert err.status_code == 500


class TestRetryMetadata:
    """Retry hints from ERROR_CODES reach the response."""

    def test_busy_retry_after(self):
        assert BusyError().retry_after_seconds() == 5

    def test_soft_timeout_retry_after(self):
        assert EncoderSoftTimeoutError("timed out").retry_after_seconds() == 10

    def test_not_retryable_has_no_retry_after(self):
        assert ProbeError("x").retry_after_seconds() is None
        assert EncoderHardTimeoutError("stuck").retry_after_seconds() is None

    def test_asset_error_debug_carries_action(self):
        debug = AssetDownloadError("https://x/a.png", "HTTP 503").to_response_body()["debug"]
        assert debug == {
            "code": "ASSET_DOWNLOAD_FAILED",
            "retryable": True,
            "suggested_action": "retry_with_backoff",
        }
