"""Typography defaults and per-request style overrides.

Overrides are optional and every numeric value is clamped into a range that
keeps text inside the safe area of a 1080x1920 frame.
"""

import math
from typing import Any

from pydantic import BaseModel, Field

from reelrender.config import get_settings


class SafeAreaStyle(BaseModel):
    top_y: int = 210  # Title y, absolute
    bottom_y_from_bottom: int = 300  # Footer y, measured from the bottom edge


class TitleStyle(BaseModel):
    size: int = 78
    box: bool = True
    box_alpha: float = 0.22
    box_border: int = 18
    shadow_alpha: float = 0.35


class FooterStyle(BaseModel):
    size: int = 44
    box: bool = False
    shadow_alpha: float = 0.35


class SubtitleStyle(BaseModel):
    font: str = "DejaVu Sans"
    size: int = 54
    outline: int = 5
    shadow: int = 1
    margin_lr: int = 140
    margin_v: int = 340
    max_chars: int = 24
    min_dur: int = 550
    max_dur: int = 2200


class RenderStyle(BaseModel):
    safe: SafeAreaStyle = Field(default_factory=SafeAreaStyle)
    title: TitleStyle = Field(default_factory=TitleStyle)
    footer: FooterStyle = Field(default_factory=FooterStyle)
    subs: SubtitleStyle = Field(default_factory=SubtitleStyle)


# (section, field) -> (low, high)
_NUMERIC_BOUNDS: dict[tuple[str, str], tuple[float, float]] = {
    ("safe", "top_y"): (120, 380),
    ("safe", "bottom_y_from_bottom"): (220, 420),
    ("title", "size"): (64, 92),
    ("title", "box_alpha"): (0, 0.6),
    ("title", "box_border"): (8, 30),
    ("title", "shadow_alpha"): (0, 0.7),
    ("footer", "size"): (34, 54),
    ("footer", "shadow_alpha"): (0, 0.7),
    ("subs", "size"): (44, 62),
    ("subs", "outline"): (2, 8),
    ("subs", "shadow"): (0, 4),
    ("subs", "margin_lr"): (90, 220),
    ("subs", "margin_v"): (260, 520),
    ("subs", "max_chars"): (18, 30),
    ("subs", "min_dur"): (350, 900),
    ("subs", "max_dur"): (900, 2600),
}

_BOOLEAN_FIELDS = {("title", "box"), ("footer", "box")}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _section(overrides: dict[str, Any], name: str) -> dict[str, Any]:
    value = overrides.get(name)
    return value if isinstance(value, dict) else {}


def default_style() -> RenderStyle:
    settings = get_settings()
    return RenderStyle(
        subs=SubtitleStyle(
            font=settings.subtitle_font,
            min_dur=settings.subtitle_min_dur_ms,
            max_dur=settings.subtitle_max_dur_ms,
        )
    )


def resolve_style(overrides: dict[str, Any] | None) -> RenderStyle:
    """Merge payload style overrides onto the defaults, clamping each value.

    Unknown keys and non-numeric values are ignored. ``safe.bottom_y`` is a
    legacy absolute footer position, translated to ``bottom_y_from_bottom``.
    """
    style = default_style()
    overrides = overrides if isinstance(overrides, dict) else {}

    for (section, name), (low, high) in _NUMERIC_BOUNDS.items():
        value = _section(overrides, section).get(name)
        if not _is_number(value):
            continue
        target = getattr(style, section)
        clamped = clamp(value, low, high)
        if isinstance(getattr(target, name), int):
            clamped = int(round(clamped))
        setattr(target, name, clamped)

    for section, name in _BOOLEAN_FIELDS:
        value = _section(overrides, section).get(name)
        if isinstance(value, bool):
            setattr(getattr(style, section), name, value)

    safe = _section(overrides, "safe")
    if _is_number(safe.get("bottom_y")):
        absolute = clamp(safe["bottom_y"], 1400, 1820)
        style.safe.bottom_y_from_bottom = int(round(clamp(1920 - absolute, 100, 520)))

    if style.subs.min_dur > style.subs.max_dur:
        style.subs.min_dur = style.subs.max_dur

    return style
