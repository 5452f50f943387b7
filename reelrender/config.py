import os
import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TMP_ROOT = Path(tempfile.gettempdir())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Reel Render API"
    app_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_soft_timeout_ms: int = 240000
    ffmpeg_hard_timeout_ms: int = 270000
    heartbeat_interval_s: float = 5.0
    progress_ring_size: int = 30
    stderr_tail_chars: int = 4000

    # Render rules
    tail_ms: int = 4000  # End card hold after the audio finishes
    default_width: int = 1080
    default_height: int = 1920
    default_fps: int = 30

    # Subtitle fitting
    subtitle_min_dur_ms: int = 550
    subtitle_max_dur_ms: int = 2200
    subtitle_fit_tolerance_ms: int = 250
    subtitle_floor_ms: int = 150

    # Fonts
    font_file: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
    subtitle_font: str = "DejaVu Sans"

    # Assets & uploads
    asset_download_timeout_ms: int = 20000
    max_upload_mb: int = 60

    # Storage roots (ephemeral, safe to purge between restarts)
    cache_dir: str = str(_TMP_ROOT / "mxcache")
    public_dir: str = str(_TMP_ROOT / "mxpublic")
    work_dir: str = str(_TMP_ROOT / "mxwork")
    upload_dir: str = str(_TMP_ROOT / "mxupload")

    # Public output URLs
    public_url_prefix: str = "/tmp"
    public_base_url: str = ""  # e.g. https://render.example.com; derived from the request when empty

    @model_validator(mode="after")
    def _check_timeouts(self) -> "Settings":
        if self.ffmpeg_soft_timeout_ms <= 0:
            raise ValueError("ffmpeg_soft_timeout_ms must be positive")
        if self.ffmpeg_hard_timeout_ms <= self.ffmpeg_soft_timeout_ms:
            raise ValueError("ffmpeg_hard_timeout_ms must be greater than ffmpeg_soft_timeout_ms")
        if self.subtitle_min_dur_ms > self.subtitle_max_dur_ms:
            raise ValueError("subtitle_min_dur_ms must not exceed subtitle_max_dur_ms")
        return self

    @computed_field
    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        """Create the storage roots if they do not exist yet."""
        for directory in (self.cache_dir, self.public_dir, self.work_dir, self.upload_dir):
            os.makedirs(directory, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
