"""ASS (Advanced SubStation Alpha) subtitle file generation.

The fitted subtitle timeline is written as an ASS script and burned in by
ffmpeg's ``subtitles`` filter.
"""

import re
from pathlib import Path

from reelrender.render.style import SubtitleStyle
from reelrender.render.timeline_fit import SubtitleLine

ASS_HEADER_TEMPLATE = """[Script Info]
Title: Reel Render Subtitles
ScriptType: v4.00+
PlayResX: {width}
PlayResY: {height}
WrapStyle: 2
ScaledBorderAndShadow: yes
Collisions: Normal

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
Style: Default,{font},{size},&H00FFFFFF,&H00FFFFFF,&H00000000,&H64000000,1,0,0,0,100,100,0,0,1,{outline},{shadow},2,{margin_lr},{margin_lr},{margin_v},1

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
"""


def ms_to_ass_time(ms: int) -> str:
    """Format milliseconds as ASS ``H:MM:SS.cc``."""
    total = max(0, int(ms))
    centis = (total % 1000) // 10
    seconds = (total // 1000) % 60
    minutes = (total // 60000) % 60
    hours = total // 3600000
    return f"{hours}:{minutes:02d}:{seconds:02d}.{centis:02d}"


def escape_ass_text(text: str) -> str:
    """Collapse newlines, strip override braces and escape backslashes."""
    cleaned = re.sub(r"[\r\n]+", " ", str(text or "")).strip()
    cleaned = cleaned.replace("{", "").replace("}", "")
    return cleaned.replace("\\", "\\\\")


def wrap_two_lines(text: str, max_chars: int = 24) -> str:
    """Wrap text to at most two lines of ``max_chars`` joined by ``\\N``.

    Words that do not fit on the second line are dropped. Text without a
    usable break point is split by characters.
    """
    text = (text or "").strip()
    if not text:
        return ""
    if len(text) <= max_chars:
        return text

    line1 = ""
    line2 = ""
    for word in text.split():
        if not line1:
            line1 = word
        elif len(f"{line1} {word}") <= max_chars and not line2:
            line1 = f"{line1} {word}"
        elif not line2:
            line2 = word
        elif len(f"{line2} {word}") <= max_chars:
            line2 = f"{line2} {word}"
        else:
            break

    if not line2:
        first = text[:max_chars].strip()
        second = text[max_chars : max_chars * 2].strip()
        return f"{first}\\N{second}" if second else first

    return f"{line1}\\N{line2}"


def build_ass_document(
    lines: list[SubtitleLine],
    style: SubtitleStyle,
    width: int = 1080,
    height: int = 1920,
) -> str:
    header = ASS_HEADER_TEMPLATE.format(
        width=width,
        height=height,
        font=style.font,
        size=style.size,
        outline=style.outline,
        shadow=style.shadow,
        margin_lr=style.margin_lr,
        margin_v=style.margin_v,
    )
    events = []
    for line in lines:
        wrapped = wrap_two_lines(escape_ass_text(line.text), style.max_chars)
        events.append(
            f"Dialogue: 0,{ms_to_ass_time(line.start_ms)},{ms_to_ass_time(line.end_ms)},"
            f"Default,,0,0,0,,{wrapped}"
        )
    return header + "\n".join(events) + "\n"


def write_ass_file(
    lines: list[SubtitleLine],
    path: str | Path,
    style: SubtitleStyle,
    width: int = 1080,
    height: int = 1920,
) -> Path:
    """Write the subtitle script to ``path`` and return it."""
    path = Path(path)
    path.write_text(build_ass_document(lines, style, width, height), encoding="utf-8")
    return path
