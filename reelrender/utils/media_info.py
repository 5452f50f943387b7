"""Media duration probing using FFprobe."""

import asyncio
import logging
import math

from reelrender.config import get_settings
from reelrender.exceptions import ProbeError

logger = logging.getLogger(__name__)


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


async def _run_ffprobe(binary: str, file_path: str, *args: str) -> str:
    """Run ffprobe and return its stdout."""
    cmd = [binary, "-v", "error", *args, file_path]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProbeError(f"ffprobe could not be started: {e}") from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        raise ProbeError(f"ffprobe failed: {stderr_text or f'exit code {proc.returncode}'}")

    return stdout.decode("utf-8", errors="replace")


def parse_duration_ms(raw: str) -> int | None:
    """Parse ffprobe's ``format=duration`` output (seconds) into milliseconds."""
    try:
        seconds = float(raw.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return round(seconds * 1000)


async def probe_duration_ms(file_path: str, ffprobe_path: str | None = None) -> int:
    """
    Get media file duration in milliseconds.

    Args:
        file_path: Path to media file
        ffprobe_path: ffprobe binary; defaults to the configured one

    Returns:
        Duration in milliseconds

    Raises:
        ProbeError: If ffprobe fails or reports no usable duration
    """
    output = await _run_ffprobe(
        ffprobe_path or _get_settings().ffprobe_path,
        str(file_path),
        "-show_entries", "format=duration",
        "-of", "default=nw=1:nk=1",
    )
    duration_ms = parse_duration_ms(output)
    if duration_ms is None:
        raise ProbeError(f"No usable duration reported for audio (got {output.strip()!r})")

    logger.info(f"[PROBE] {file_path}: {duration_ms}ms")
    return duration_ms
