from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _check_http_url(value: str) -> str:
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


HttpUrlStr = Annotated[str, AfterValidator(_check_http_url)]


class OutputSpec(BaseModel):
    width: int = Field(default=1080, ge=16, le=4096)
    height: int = Field(default=1920, ge=16, le=4096)
    fps: int = Field(default=30, ge=1, le=60)

    @field_validator("width", "height")
    @classmethod
    def _even(cls, v: int) -> int:
        # yuv420p needs even dimensions
        if v % 2:
            raise ValueError("must be an even number")
        return v


class AssetUrls(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_background_url: HttpUrlStr = Field(
        validation_alias=AliasChoices("base_background_url", "background_template_url"),
    )
    end_card_url: HttpUrlStr
    card_image_urls: list[HttpUrlStr] = Field(default_factory=list, max_length=3)


class TextFields(BaseModel):
    title: str = Field(default="", max_length=300)
    footer: str = Field(default="", max_length=300)

    @field_validator("title", "footer", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class SubtitleBlock(BaseModel):
    # Entries stay loosely typed; malformed lines are dropped during fitting.
    lines: list[Any] = Field(min_length=1)


class DebugOptions(BaseModel):
    disable_subtitles: bool = False


class RenderPayload(BaseModel):
    """The JSON document sent in the ``payload`` multipart field."""

    model_config = ConfigDict(extra="ignore")

    spec: OutputSpec = Field(default_factory=OutputSpec)
    assets: AssetUrls
    text: TextFields = Field(default_factory=TextFields)
    subtitles: SubtitleBlock
    debug: DebugOptions = Field(default_factory=DebugOptions)
    style: dict[str, Any] | None = None

    @field_validator("spec", "text", "debug", mode="before")
    @classmethod
    def _null_section(cls, v: Any) -> Any:
        return {} if v is None else v


class ProgressSnapshot(BaseModel):
    t_ms: int = 0
    out_time_ms: int | None = None
    speed: str | None = None
    fps: float | None = None
    frame: int | None = None
    progress: str | None = None


class RenderDebug(BaseModel):
    audio_ms: int
    video_ms: int
    subtitles_ms: int
    elapsed_ms: int
    ffmpeg_last: ProgressSnapshot | None = None
    ffmpeg_samples: list[ProgressSnapshot] = Field(default_factory=list)
    disable_subtitles: bool = False
    style_used: dict[str, Any] = Field(default_factory=dict)
    job_id: str


class RenderResult(BaseModel):
    ok: bool = True
    download_url: str
    debug: RenderDebug


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    debug: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    ok: bool = True
