"""Tests for style resolution and clamping."""

from reelrender.render.style import RenderStyle, resolve_style


class TestResolveStyle:
    def test_defaults(self):
        style = resolve_style(None)
        assert isinstance(style, RenderStyle)
        assert style.title.size == 78
        assert style.subs.min_dur == 550
        assert style.subs.max_dur == 2200

    def test_values_clamped(self):
        style = resolve_style({"title": {"size": 500}, "subs": {"size": 1, "outline": 4.6}})
        assert style.title.size == 92
        assert style.subs.size == 44
        assert style.subs.outline == 5

    def test_float_field_keeps_fraction(self):
        style = resolve_style({"title": {"box_alpha": 0.15}})
        assert style.title.box_alpha == 0.15

    def test_non_numeric_ignored(self):
        style = resolve_style({"title": {"size": "huge"}, "footer": {"size": True}})
        assert style.title.size == 78
        assert style.footer.size == 44

    def test_boolean_fields(self):
        style = resolve_style({"title": {"box": False}, "footer": {"box": 1}})
        assert style.title.box is False
        assert style.footer.box is False

    def test_legacy_bottom_y(self):
        style = resolve_style({"safe": {"bottom_y": 1600}})
        assert style.safe.bottom_y_from_bottom == 320

    def test_min_dur_not_above_max(self):
        style = resolve_style({"subs": {"min_dur": 900, "max_dur": 900}})
        assert style.subs.min_dur <= style.subs.max_dur

    def test_non_dict_sections_ignored(self):
        style = resolve_style({"title": [1, 2], "subs": None})
        assert style == resolve_style(None)
