"""FFmpeg process supervision.

Runs ffmpeg as an asyncio subprocess, parses the ``-progress`` key/value
stream from stderr, and enforces two timeouts:

- soft: kill ffmpeg and report a recoverable timeout with the last progress
- hard: failsafe force-kill if the process is still alive after the soft kill
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from reelrender.config import Settings, get_settings
from reelrender.exceptions import (
    EncoderFailureError,
    EncoderHardTimeoutError,
    EncoderSoftTimeoutError,
)

logger = logging.getLogger(__name__)

PROGRESS_KEYS = ("out_time_ms", "speed", "fps", "frame", "progress")

# Grace period for draining stderr after the process exits
_DRAIN_TIMEOUT_S = 2.0


@dataclass
class ProgressSample:
    """Snapshot of ffmpeg's progress stream."""

    t_ms: int = 0
    out_time_ms: Optional[int] = None
    speed: Optional[str] = None
    fps: Optional[float] = None
    frame: Optional[int] = None
    progress: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EncoderRunResult:
    """Successful ffmpeg run."""

    last_progress: Optional[ProgressSample]
    samples: list[ProgressSample]
    elapsed_ms: int

    def last_progress_dict(self) -> Optional[dict[str, Any]]:
        return self.last_progress.to_dict() if self.last_progress else None

    def samples_dicts(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self.samples]


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def _parse_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class _RunState:
    """Mutable state shared by the reader and heartbeat tasks."""

    started: float
    ring_size: int
    tail_chars: int
    last: ProgressSample = field(default_factory=ProgressSample)
    seen_progress: bool = False
    samples: deque = field(init=False)
    stderr_lines: deque = field(init=False)

    def __post_init__(self) -> None:
        self.samples = deque(maxlen=self.ring_size)
        self.stderr_lines = deque(maxlen=200)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def last_progress(self) -> Optional[ProgressSample]:
        if not self.seen_progress:
            return None
        return ProgressSample(**asdict(self.last))

    def stderr_tail(self) -> str:
        text = "\n".join(self.stderr_lines)
        return text[-self.tail_chars :] if len(text) > self.tail_chars else text


def parse_progress_line(line: str) -> Optional[tuple[str, str]]:
    """Split a ``key=value`` progress line; None for anything else."""
    if "=" not in line:
        return None
    key, _, value = line.partition("=")
    key = key.strip()
    if not key or " " in key:
        return None
    return key, value.strip()


class ProcessSupervisor:
    """Runs ffmpeg with progress parsing and two-tier timeouts."""

    # StreamReader line limit for stderr
    stream_limit = 1024 * 1024

    def __init__(
        self,
        binary: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.binary = binary or settings.ffmpeg_path
        self.heartbeat_interval_s = settings.heartbeat_interval_s
        self.ring_size = settings.progress_ring_size
        self.tail_chars = settings.stderr_tail_chars

    async def _spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        """Start the encoder process. Tests override this to run a stub."""
        return await asyncio.create_subprocess_exec(
            self.binary,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            limit=self.stream_limit,
        )

    def _soft_kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()

    def _hard_kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()

    def _handle_line(self, state: _RunState, line: str) -> None:
        parsed = parse_progress_line(line)
        if parsed is None:
            if line:
                logger.info(f"[FFMPEG] {line}")
                state.stderr_lines.append(line)
            return

        key, value = parsed
        if key not in PROGRESS_KEYS:
            return

        last = state.last
        if key == "out_time_ms":
            last.out_time_ms = _parse_int(value)
        elif key == "speed":
            last.speed = None if value == "N/A" else value
        elif key == "fps":
            last.fps = _parse_float(value)
        elif key == "frame":
            last.frame = _parse_int(value)
        elif key == "progress":
            last.progress = value
            last.t_ms = state.elapsed_ms()
            state.seen_progress = True
            state.samples.append(ProgressSample(**asdict(last)))

    async def _read_stderr(self, stream: asyncio.StreamReader, state: _RunState) -> None:
        # Keep draining after an overlong line so ffmpeg never blocks on a full pipe
        while True:
            try:
                raw_line = await stream.readline()
            except ValueError as e:
                logger.warning(f"[FFMPEG] Skipped overlong stderr line: {e}")
                continue
            if not raw_line:
                break
            line = raw_line.decode("utf-8", errors="replace").strip()
            self._handle_line(state, line)

    async def _heartbeat(self, state: _RunState) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval_s)
            last = state.last
            logger.info(
                f"[FFMPEG] heartbeat elapsed={state.elapsed_ms()}ms "
                f"out_time_ms={last.out_time_ms} frame={last.frame} "
                f"fps={last.fps} speed={last.speed} progress={last.progress}"
            )

    async def run(
        self,
        args: list[str],
        soft_timeout_ms: int,
        hard_timeout_ms: int,
    ) -> EncoderRunResult:
        """Run ffmpeg to completion.

        Args:
            args: ffmpeg arguments (without the binary)
            soft_timeout_ms: Kill and report a timeout after this long
            hard_timeout_ms: Failsafe absolute limit, must exceed the soft timeout

        Returns:
            EncoderRunResult with the last progress sample and recent samples

        Raises:
            EncoderSoftTimeoutError: Soft timeout reached, process killed
            EncoderHardTimeoutError: Process still alive at the hard timeout
            EncoderFailureError: Non-zero exit code
        """
        if hard_timeout_ms <= soft_timeout_ms:
            raise ValueError("hard_timeout_ms must be greater than soft_timeout_ms")

        state = _RunState(
            started=time.monotonic(),
            ring_size=self.ring_size,
            tail_chars=self.tail_chars,
        )
        proc = await self._spawn(args)
        logger.info(f"[FFMPEG] Started pid={proc.pid} soft={soft_timeout_ms}ms hard={hard_timeout_ms}ms")

        reader = asyncio.create_task(self._read_stderr(proc.stderr, state))
        heartbeat = asyncio.create_task(self._heartbeat(state))
        waiter = asyncio.create_task(proc.wait())

        try:
            done, _ = await asyncio.wait({waiter}, timeout=soft_timeout_ms / 1000)
            if not done:
                logger.warning(
                    f"[FFMPEG] Soft timeout after {state.elapsed_ms()}ms, killing pid={proc.pid}"
                )
                self._soft_kill(proc)
                remaining_s = max(0.0, hard_timeout_ms / 1000 - (time.monotonic() - state.started))
                done, _ = await asyncio.wait({waiter}, timeout=remaining_s)
                if not done:
                    logger.error(
                        f"[FFMPEG] Hard timeout after {state.elapsed_ms()}ms, force-killing pid={proc.pid}"
                    )
                    self._hard_kill(proc)
                    await asyncio.wait({waiter}, timeout=_DRAIN_TIMEOUT_S)
                    raise EncoderHardTimeoutError(
                        f"ffmpeg did not terminate within {hard_timeout_ms}ms",
                        last_progress=_as_dict(state.last_progress()),
                        samples=[s.to_dict() for s in state.samples],
                        elapsed_ms=state.elapsed_ms(),
                    )
                await self._drain(reader)
                raise EncoderSoftTimeoutError(
                    f"ffmpeg timed out after {soft_timeout_ms}ms",
                    last_progress=_as_dict(state.last_progress()),
                    samples=[s.to_dict() for s in state.samples],
                    elapsed_ms=state.elapsed_ms(),
                )

            await self._drain(reader)
            returncode = waiter.result()
            elapsed_ms = state.elapsed_ms()

            if returncode != 0:
                logger.error(f"[FFMPEG] Exited with code {returncode} after {elapsed_ms}ms")
                raise EncoderFailureError(
                    returncode,
                    state.stderr_tail(),
                    last_progress=_as_dict(state.last_progress()),
                    samples=[s.to_dict() for s in state.samples],
                    elapsed_ms=elapsed_ms,
                )

            logger.info(f"[FFMPEG] Completed in {elapsed_ms}ms")
            return EncoderRunResult(
                last_progress=state.last_progress(),
                samples=list(state.samples),
                elapsed_ms=elapsed_ms,
            )
        finally:
            # Reached on cancellation too; the encoder must not outlive run()
            if proc.returncode is None:
                await self._terminate(proc)
            heartbeat.cancel()
            for task in (reader, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(heartbeat, reader, waiter, return_exceptions=True)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        logger.warning(f"[FFMPEG] Killing pid={proc.pid} on supervisor exit")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(proc.wait(), timeout=_DRAIN_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.error(f"[FFMPEG] pid={proc.pid} did not exit after kill")

    async def _drain(self, reader: asyncio.Task) -> None:
        """Wait briefly for the stderr reader to hit EOF."""
        try:
            await asyncio.wait_for(asyncio.shield(reader), timeout=_DRAIN_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("[FFMPEG] stderr did not close after exit")


def _as_dict(sample: Optional[ProgressSample]) -> Optional[dict[str, Any]]:
    return sample.to_dict() if sample else None
