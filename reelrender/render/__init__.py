from reelrender.render.compose import ComposeProgram, ComposeProgramBuilder
from reelrender.render.job import RenderJob, RenderStage, ResolvedAssets
from reelrender.render.supervisor import EncoderRunResult, ProcessSupervisor, ProgressSample
from reelrender.render.timeline_fit import SubtitleLine, SubtitleTimelineFitter

__all__ = [
    "ComposeProgram",
    "ComposeProgramBuilder",
    "EncoderRunResult",
    "ProcessSupervisor",
    "ProgressSample",
    "RenderJob",
    "RenderStage",
    "ResolvedAssets",
    "SubtitleLine",
    "SubtitleTimelineFitter",
]
