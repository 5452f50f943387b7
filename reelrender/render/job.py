"""Render job and its per-request artifacts."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from uuid import uuid4

from reelrender.render.style import RenderStyle
from reelrender.schemas.render import RenderPayload


class RenderStage(Enum):
    """Lifecycle of a single render request."""

    VALIDATING = "validating"
    ADMITTING = "admitting"
    RESOLVING_ASSETS = "resolving_assets"
    PROBING_AUDIO = "probing_audio"
    FITTING_SUBTITLES = "fitting_subtitles"
    BUILDING_PROGRAM = "building_program"
    ENCODING = "encoding"
    ASSEMBLING_RESULT = "assembling_result"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RenderStage.COMPLETED, RenderStage.FAILED)


@dataclass
class RenderJob:
    """A validated render request.

    Owned by exactly one in-flight request; ``artifacts`` lists every file the
    job created so the orchestrator can remove them on completion.
    """

    payload: RenderPayload
    style: RenderStyle
    audio_bytes: bytes
    audio_suffix: str = ".mp3"
    id: str = field(default_factory=lambda: uuid4().hex)
    stage: RenderStage = RenderStage.VALIDATING
    artifacts: list[Path] = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.payload.spec.width

    @property
    def height(self) -> int:
        return self.payload.spec.height

    @property
    def fps(self) -> int:
        return self.payload.spec.fps

    @property
    def disable_subtitles(self) -> bool:
        return self.payload.debug.disable_subtitles

    @property
    def output_name(self) -> str:
        return f"{self.id}.mp4"

    def advance(self, stage: RenderStage) -> None:
        """Move to ``stage``; terminal stages are final."""
        if self.stage.terminal:
            raise RuntimeError(f"Job {self.id} already {self.stage.value}")
        if stage is RenderStage.COMPLETED and self.stage is not RenderStage.ASSEMBLING_RESULT:
            raise RuntimeError(f"Job {self.id} cannot complete from {self.stage.value}")
        self.stage = stage

    def track(self, path: Path) -> Path:
        """Remember a temporary file for cleanup."""
        self.artifacts.append(path)
        return path


@dataclass
class ResolvedAssets:
    """Local paths of the downloaded template assets."""

    background: Path
    end_card: Path
    cards: list[Path] = field(default_factory=list)
