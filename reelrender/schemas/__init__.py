from reelrender.schemas.render import (
    AssetUrls,
    DebugOptions,
    ErrorResponse,
    HealthResponse,
    OutputSpec,
    ProgressSnapshot,
    RenderDebug,
    RenderPayload,
    RenderResult,
    SubtitleBlock,
    TextFields,
)

__all__ = [
    "AssetUrls",
    "DebugOptions",
    "ErrorResponse",
    "HealthResponse",
    "OutputSpec",
    "ProgressSnapshot",
    "RenderDebug",
    "RenderPayload",
    "RenderResult",
    "SubtitleBlock",
    "TextFields",
]
