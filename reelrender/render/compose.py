"""Composition program builder.

Turns a render job into the ``-filter_complex`` graph and full ffmpeg
argument list:

- background scaled/cropped to the output size
- subtitles burned in (unless disabled)
- title and footer drawn only while the audio plays
- optional card images, each visible during an equal slice of the audio
- end card shown full-frame during the tail after the audio ends
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from reelrender.config import Settings, get_settings
from reelrender.render.filter_graph import (
    Expr,
    Filter,
    FilterGraph,
    drawtext,
    escape_drawtext,
    escape_filter_value,
    visible_before,
    visible_between,
    visible_window,
)
from reelrender.render.job import RenderJob, ResolvedAssets
from reelrender.services.asset_cache import is_image_path

logger = logging.getLogger(__name__)

CARD_WIDTH_RATIO = 0.8
CARD_TOP_RATIO = 0.30


@dataclass
class ComposeProgram:
    """Output of the builder: the graph string and the ffmpeg arguments."""

    filter_graph: str
    args: list[str]
    audio_duration_sec: float
    video_duration_sec: float
    burns_subtitles: bool


class ComposeProgramBuilder:
    """Builds ffmpeg programs tuned for a small CPU-bound host."""

    VIDEO_CODEC = "libx264"
    PRESET = "ultrafast"
    TUNE = "stillimage"
    CRF = 28
    AUDIO_CODEC = "aac"
    AUDIO_BITRATE = "192k"
    PIXEL_FORMAT = "yuv420p"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def video_duration_sec(self, audio_duration_sec: float) -> float:
        return audio_duration_sec + self.settings.tail_ms / 1000

    def build_graph(
        self,
        job: RenderJob,
        subtitle_path: Path | None,
        audio_duration_sec: float,
        video_duration_sec: float,
        card_count: int = 0,
    ) -> FilterGraph:
        """Build the typed filter graph.

        Input pads: ``0`` background, ``1`` end card, ``2..`` cards, then audio.
        """
        width, height, fps = job.width, job.height, job.fps
        style = job.style
        graph = FilterGraph()

        graph.add(
            ["0:v"],
            [
                Filter("scale", [("w", width), ("h", height), ("force_original_aspect_ratio", Expr("increase"))]),
                Filter("crop", [("w", width), ("h", height)]),
                Filter("setsar", [("sar", 1)]),
                Filter("fps", [("fps", fps)]),
            ],
            ["bg"],
        )
        current = "bg"

        overlays: list[Filter] = []
        if subtitle_path is not None and not job.disable_subtitles:
            overlays.append(Filter("subtitles", [("filename", escape_filter_value(str(subtitle_path)))]))

        during_audio = visible_before(audio_duration_sec)
        fontfile = escape_filter_value(self.settings.font_file)
        title = job.payload.text.title.strip()
        footer = job.payload.text.footer.strip()

        if title:
            options = {
                "fontfile": fontfile,
                "fontsize": style.title.size,
                "fontcolor": Expr("white"),
                "x": Expr("(w-text_w)/2"),
                "y": style.safe.top_y,
                "shadowx": 0,
                "shadowy": 2,
                "shadowcolor": Expr(f"black@{style.title.shadow_alpha:.2f}"),
            }
            if style.title.box:
                options.update(
                    box=1,
                    boxcolor=Expr(f"black@{style.title.box_alpha:.2f}"),
                    boxborderw=style.title.box_border,
                )
            overlays.append(drawtext(escape_drawtext(title), **options, enable=during_audio))

        if footer:
            options = {
                "fontfile": fontfile,
                "fontsize": style.footer.size,
                "fontcolor": Expr("white"),
                "x": Expr("(w-text_w)/2"),
                "y": Expr(f"h-{style.safe.bottom_y_from_bottom}"),
                "shadowx": 0,
                "shadowy": 2,
                "shadowcolor": Expr(f"black@{style.footer.shadow_alpha:.2f}"),
            }
            if style.footer.box:
                options.update(box=1, boxcolor=Expr("black@0.18"), boxborderw=16)
            overlays.append(drawtext(escape_drawtext(footer), **options, enable=during_audio))

        if overlays:
            graph.add([current], overlays, ["txt"])
            current = "txt"

        if card_count:
            slice_s = audio_duration_sec / card_count
            card_width = int(width * CARD_WIDTH_RATIO) // 2 * 2
            for i in range(card_count):
                graph.add(
                    [f"{2 + i}:v"],
                    [Filter("scale", [("w", card_width), ("h", -2)]), Filter("setsar", [("sar", 1)])],
                    [f"card{i}"],
                )
                start_s = i * slice_s
                graph.add(
                    [current, f"card{i}"],
                    [
                        Filter(
                            "overlay",
                            [
                                ("x", Expr("(main_w-overlay_w)/2")),
                                ("y", int(height * CARD_TOP_RATIO)),
                                ("enable", visible_between(start_s, start_s + slice_s)),
                            ],
                        )
                    ],
                    [f"vcard{i}"],
                )
                current = f"vcard{i}"

        graph.add(
            ["1:v"],
            [Filter("scale", [("w", width), ("h", height)]), Filter("setsar", [("sar", 1)])],
            ["end"],
        )
        graph.add(
            [current, "end"],
            [
                Filter(
                    "overlay",
                    [
                        ("x", 0),
                        ("y", 0),
                        ("enable", visible_window(audio_duration_sec, video_duration_sec)),
                    ],
                )
            ],
            ["vout"],
        )

        audio_index = 2 + card_count
        graph.add(
            [f"{audio_index}:a"],
            [
                Filter("atrim", [("start", 0), ("end", Expr(f"{audio_duration_sec:.3f}"))]),
                Filter("asetpts", [("expr", Expr("N/SR/TB"))]),
            ],
            ["aout"],
        )
        return graph

    def build(
        self,
        job: RenderJob,
        assets: ResolvedAssets,
        subtitle_path: Path | None,
        audio_duration_sec: float,
        video_duration_sec: float,
        *,
        audio_path: Path,
        output_path: Path,
    ) -> ComposeProgram:
        """Build the full ffmpeg argument list (without the binary).

        Args:
            job: Validated render job
            assets: Local background / end card / card image paths
            subtitle_path: ASS file to burn in, or None
            audio_duration_sec: Measured audio length
            video_duration_sec: Output length (audio + tail)
            audio_path: Staged upload
            output_path: Destination MP4

        Returns:
            ComposeProgram with graph string and arguments
        """
        graph = self.build_graph(
            job,
            subtitle_path,
            audio_duration_sec,
            video_duration_sec,
            card_count=len(assets.cards),
        )
        filter_graph = graph.serialize()

        inputs: list[str] = []
        if is_image_path(assets.background):
            inputs += ["-loop", "1", "-i", str(assets.background)]
        else:
            inputs += ["-stream_loop", "-1", "-i", str(assets.background)]
        inputs += ["-loop", "1", "-i", str(assets.end_card)]
        for card in assets.cards:
            inputs += ["-loop", "1", "-i", str(card)]
        inputs += ["-i", str(audio_path)]

        args = [
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:2",
            *inputs,
            "-filter_complex", filter_graph,
            "-map", "[vout]",
            "-map", "[aout]",
            "-t", f"{video_duration_sec:.3f}",
            "-r", str(job.fps),
            "-s", f"{job.width}x{job.height}",
            "-pix_fmt", self.PIXEL_FORMAT,
            "-movflags", "+faststart",
            "-c:v", self.VIDEO_CODEC,
            "-preset", self.PRESET,
            "-tune", self.TUNE,
            "-threads", "1",
            "-crf", str(self.CRF),
            "-c:a", self.AUDIO_CODEC,
            "-b:a", self.AUDIO_BITRATE,
            str(output_path),
        ]

        burns_subtitles = graph.has_filter("subtitles")
        input_count = inputs.count("-i")
        logger.info(
            f"[COMPOSE] job={job.id} inputs={input_count} audio={audio_duration_sec:.3f}s "
            f"video={video_duration_sec:.3f}s subtitles={burns_subtitles}"
        )
        logger.debug(f"[COMPOSE] filter_complex: {filter_graph}")
        return ComposeProgram(
            filter_graph=filter_graph,
            args=args,
            audio_duration_sec=audio_duration_sec,
            video_duration_sec=video_duration_sec,
            burns_subtitles=burns_subtitles,
        )
