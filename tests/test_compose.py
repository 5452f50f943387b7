"""Tests for the ffmpeg composition program builder."""

from pathlib import Path

import pytest

from reelrender.render.compose import ComposeProgramBuilder
from reelrender.render.job import RenderJob, ResolvedAssets
from reelrender.render.style import resolve_style
from reelrender.schemas.render import RenderPayload
from tests.conftest import make_payload


def _job(**overrides) -> RenderJob:
    payload = RenderPayload.model_validate(make_payload(**overrides))
    return RenderJob(payload=payload, style=resolve_style(payload.style), audio_bytes=b"audio")


def _assets(background: str = "bg.png", cards: int = 0) -> ResolvedAssets:
    return ResolvedAssets(
        background=Path("/cache") / background,
        end_card=Path("/cache/end.png"),
        cards=[Path(f"/cache/card{i}.png") for i in range(cards)],
    )


@pytest.fixture
def builder(test_settings) -> ComposeProgramBuilder:
    return ComposeProgramBuilder(test_settings)


def _build(builder, job, assets=None, subtitle_path=Path("/work/job.ass"), audio_s=10.0):
    return builder.build(
        job,
        assets or _assets(),
        subtitle_path,
        audio_s,
        builder.video_duration_sec(audio_s),
        audio_path=Path("/upload/job.mp3"),
        output_path=Path("/public/job.mp4"),
    )


class TestComposeGraph:
    """Tests for the filter graph produced for a job."""

    def test_subtitles_burned_by_default(self, builder):
        program = _build(builder, _job())
        assert program.burns_subtitles
        assert "subtitles=filename=/work/job.ass" in program.filter_graph

    def test_disable_subtitles_omits_burn(self, builder):
        """debug.disable_subtitles removes the subtitle filter entirely."""
        job = _job(debug={"disable_subtitles": True})
        program = _build(builder, job)
        assert not program.burns_subtitles
        assert "subtitles=" not in program.filter_graph

    def test_no_subtitle_file_omits_burn(self, builder):
        program = _build(builder, _job(), subtitle_path=None)
        assert "subtitles=" not in program.filter_graph

    def test_title_and_footer_gated_to_audio(self, builder):
        program = _build(builder, _job(), audio_s=12.0)
        graph = program.filter_graph
        assert graph.count("drawtext=") == 2
        assert "text=Three tips" in graph
        assert graph.count("enable=lt(t\\,12.000)") == 2

    def test_blank_title_emits_no_drawtext(self, builder):
        program = _build(builder, _job(text={"title": "   ", "footer": ""}))
        assert "drawtext" not in program.filter_graph

    def test_title_is_escaped(self, builder):
        program = _build(builder, _job(text={"title": "Tip: 100% it's [new]", "footer": ""}))
        graph = program.filter_graph
        assert "Tip\\\\: 100\\\\\\\\% it\\\\\\'s \\[new\\]" in graph

    def test_end_card_window(self, builder):
        program = _build(builder, _job(), audio_s=10.0)
        assert "[txt][end]overlay=x=0:y=0:enable=gte(t\\,10.000)*lt(t\\,14.000)[vout]" in program.filter_graph

    def test_audio_trimmed_to_probe(self, builder):
        program = _build(builder, _job(), audio_s=10.0)
        assert "[2:a]atrim=start=0:end=10.000,asetpts=expr=N/SR/TB[aout]" in program.filter_graph

    def test_cards_take_equal_slices(self, builder):
        program = _build(builder, _job(), assets=_assets(cards=2), audio_s=10.0)
        graph = program.filter_graph
        assert "[2:v]scale=w=864:h=-2" in graph
        assert "enable=between(t\\,0.000\\,5.000)" in graph
        assert "enable=between(t\\,5.000\\,10.000)" in graph
        assert "[4:a]atrim" in graph


class TestComposeArgs:
    """Tests for the ffmpeg argument list."""

    def test_image_background_loops(self, builder):
        args = _build(builder, _job()).args
        i = args.index("/cache/bg.png")
        assert args[i - 3 : i] == ["-loop", "1", "-i"]

    def test_video_background_stream_loops(self, builder):
        args = _build(builder, _job(), assets=_assets("bg.mp4")).args
        i = args.index("/cache/bg.mp4")
        assert args[i - 3 : i] == ["-stream_loop", "-1", "-i"]

    def test_progress_and_encoding_flags(self, builder):
        args = _build(builder, _job(), audio_s=10.0).args
        assert args[args.index("-progress") + 1] == "pipe:2"
        assert args[args.index("-t") + 1] == "14.000"
        assert args[args.index("-c:v") + 1] == "libx264"
        assert args[args.index("-preset") + 1] == "ultrafast"
        assert args[args.index("-pix_fmt") + 1] == "yuv420p"
        assert args[args.index("-s") + 1] == "1080x1920"
        assert args[-1] == "/public/job.mp4"

    def test_maps_graph_outputs(self, builder):
        args = _build(builder, _job()).args
        maps = [args[i + 1] for i, a in enumerate(args) if a == "-map"]
        assert maps == ["[vout]", "[aout]"]

    def test_video_duration_adds_tail(self, builder):
        assert builder.video_duration_sec(10.0) == pytest.approx(14.0)
