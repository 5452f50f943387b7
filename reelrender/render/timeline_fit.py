"""Subtitle timeline fitting.

Maps an arbitrary list of subtitle lines onto the measured audio duration:

1. Normalize (drop malformed lines, sort, remove overlaps)
2. Clamp each line to [min_dur, max_dur] and re-sequence from 0
3. Scale proportionally to the audio length, clamp again, pin the last end

The last line always ends exactly at the audio duration. The mapping from
input timestamps to output timestamps is proportional, not exact.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubtitleLine:
    """A single subtitle line in integer milliseconds."""

    start_ms: int
    end_ms: int
    text: str

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def to_dict(self) -> dict[str, Any]:
        return {"start_ms": self.start_ms, "end_ms": self.end_ms, "text": self.text}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class SubtitleTimelineFitter:
    """Fits subtitle lines onto an audio duration."""

    def __init__(
        self,
        min_dur_ms: int = 550,
        max_dur_ms: int = 2200,
        tolerance_ms: int = 250,
        floor_ms: int = 150,
    ):
        if min_dur_ms > max_dur_ms:
            raise ValueError("min_dur_ms must not exceed max_dur_ms")
        self.min_dur_ms = min_dur_ms
        self.max_dur_ms = max_dur_ms
        self.tolerance_ms = tolerance_ms
        self.floor_ms = floor_ms

    def normalize(self, raw_lines: Iterable[Any] | None) -> list[SubtitleLine]:
        """Drop malformed entries, sort by start and remove overlaps.

        Entries need numeric ``start_ms``/``end_ms`` and non-empty ``text``.
        Negative times become 0. A line ending at or before its start gets
        ``floor_ms`` of duration.
        """
        cleaned: list[SubtitleLine] = []
        for raw in raw_lines or []:
            if not isinstance(raw, dict):
                continue
            start = raw.get("start_ms")
            end = raw.get("end_ms")
            text = raw.get("text")
            if not (_is_number(start) and _is_number(end)) or not text:
                continue
            cleaned.append(
                SubtitleLine(
                    start_ms=max(0, math.floor(start)),
                    end_ms=max(0, math.floor(end)),
                    text=str(text),
                )
            )

        cleaned.sort(key=lambda line: line.start_ms)

        out: list[SubtitleLine] = []
        prev_end = 0
        for line in cleaned:
            start = max(line.start_ms, prev_end)
            end = max(line.end_ms, start + self.floor_ms)
            out.append(SubtitleLine(start_ms=start, end_ms=end, text=line.text))
            prev_end = end
        return out

    def clamp_sequence(self, lines: list[SubtitleLine]) -> list[SubtitleLine]:
        """Re-sequence lines contiguously from 0 with clamped durations."""
        out: list[SubtitleLine] = []
        cursor = 0
        for line in lines:
            duration = _clamp(max(1, line.end_ms - line.start_ms), self.min_dur_ms, self.max_dur_ms)
            out.append(SubtitleLine(start_ms=cursor, end_ms=cursor + duration, text=line.text))
            cursor += duration
        return out

    def fit_to_target(self, lines: list[SubtitleLine], target_ms: int) -> list[SubtitleLine]:
        """Proportionally fit a clamped sequence so it ends at ``target_ms``."""
        if not lines:
            return []
        last_end = lines[-1].end_ms
        if last_end <= 0:
            return list(lines)

        if abs(target_ms - last_end) <= self.tolerance_ms:
            out = list(lines)
            out[-1] = replace(out[-1], end_ms=target_ms)
            return out

        scale = target_ms / last_end
        scaled = [
            SubtitleLine(
                start_ms=math.floor(line.start_ms * scale),
                end_ms=math.floor(line.end_ms * scale),
                text=line.text,
            )
            for line in lines
        ]
        out = self.clamp_sequence(scaled)
        out[-1] = replace(out[-1], end_ms=target_ms)
        logger.debug(
            f"[SUBS] Scaled {len(lines)} lines by {scale:.4f} ({last_end}ms -> {target_ms}ms)"
        )
        return out

    def fit(self, raw_lines: Iterable[Any] | None, audio_duration_ms: int) -> list[SubtitleLine]:
        """Fit raw subtitle lines onto the measured audio duration.

        Args:
            raw_lines: Subtitle entries as decoded from the request payload
            audio_duration_ms: Measured audio length in milliseconds

        Returns:
            Contiguous lines starting at 0 whose last line ends at
            ``audio_duration_ms``. Empty when no usable line was given.
        """
        lines = self.normalize(raw_lines)
        lines = self.clamp_sequence(lines)
        lines = self.fit_to_target(lines, audio_duration_ms)
        if lines:
            logger.info(
                f"[SUBS] Fitted {len(lines)} lines to {audio_duration_ms}ms "
                f"(min={self.min_dur_ms}, max={self.max_dur_ms})"
            )
        return lines
