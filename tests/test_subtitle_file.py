"""Tests for ASS subtitle generation."""

from reelrender.render.style import SubtitleStyle
from reelrender.render.subtitle_file import (
    build_ass_document,
    escape_ass_text,
    ms_to_ass_time,
    wrap_two_lines,
    write_ass_file,
)
from reelrender.render.timeline_fit import SubtitleLine


class TestAssTime:
    def test_formats_centiseconds(self):
        assert ms_to_ass_time(0) == "0:00:00.00"
        assert ms_to_ass_time(1234) == "0:00:01.23"
        assert ms_to_ass_time(61999) == "0:01:01.99"
        assert ms_to_ass_time(3600000) == "1:00:00.00"

    def test_negative_is_zero(self):
        assert ms_to_ass_time(-50) == "0:00:00.00"


class TestWrap:
    """Tests for two-line wrapping."""

    def test_short_text_unchanged(self):
        assert wrap_two_lines("hello world", 24) == "hello world"

    def test_wraps_on_word_boundary(self):
        text = "the quick brown fox jumps over the lazy dog"
        assert wrap_two_lines(text, 20) == "the quick brown fox\\Njumps over the lazy"

    def test_long_word_split_by_characters(self):
        assert wrap_two_lines("a" * 30, 10) == "a" * 10 + "\\N" + "a" * 10

    def test_empty(self):
        assert wrap_two_lines("   ") == ""


class TestEscape:
    def test_strips_override_braces_and_newlines(self):
        assert escape_ass_text("{\\b1}bold\nnext") == "\\\\b1bold next"


class TestDocument:
    def test_header_uses_style(self):
        style = SubtitleStyle(font="Noto Sans", size=50, outline=3, margin_v=300)
        doc = build_ass_document([SubtitleLine(0, 1000, "hi")], style, 1080, 1920)
        assert "PlayResX: 1080" in doc
        assert "PlayResY: 1920" in doc
        assert "Style: Default,Noto Sans,50," in doc
        assert ",300,1\n" in doc

    def test_one_dialogue_per_line(self):
        lines = [SubtitleLine(0, 1500, "first"), SubtitleLine(1500, 3000, "second")]
        doc = build_ass_document(lines, SubtitleStyle())
        assert "Dialogue: 0,0:00:00.00,0:00:01.50,Default,,0,0,0,,first" in doc
        assert "Dialogue: 0,0:00:01.50,0:00:03.00,Default,,0,0,0,,second" in doc

    def test_write_file(self, tmp_path):
        path = write_ass_file([SubtitleLine(0, 500, "x")], tmp_path / "a.ass", SubtitleStyle())
        assert path.exists()
        assert path.read_text(encoding="utf-8").startswith("[Script Info]")
