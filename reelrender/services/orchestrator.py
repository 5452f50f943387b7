"""Render orchestration.

One request lifecycle:

1. Validate the multipart fields and payload JSON (no side effects)
2. Take the admission gate (reject with 503 if busy)
3. Resolve background / end card / card images through the asset cache
4. Stage the uploaded audio and probe its duration
5. Fit subtitles to the audio and write the ASS file
6. Build the ffmpeg program
7. Run ffmpeg under the supervisor
8. Assemble the response

Temporary files are removed on every exit path; cached assets are shared and
never removed.
"""

import functools
import json
import logging
import re
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from reelrender.config import Settings, get_settings
from reelrender.exceptions import EncoderFailureError, RenderServiceError, ValidationError
from reelrender.render.compose import ComposeProgramBuilder
from reelrender.render.job import RenderJob, RenderStage, ResolvedAssets
from reelrender.render.style import resolve_style
from reelrender.render.subtitle_file import write_ass_file
from reelrender.render.supervisor import ProcessSupervisor
from reelrender.render.timeline_fit import SubtitleTimelineFitter
from reelrender.schemas.render import RenderDebug, RenderPayload, RenderResult
from reelrender.services.admission import AdmissionGate
from reelrender.services.asset_cache import AssetCache
from reelrender.utils.media_info import probe_duration_ms

logger = logging.getLogger(__name__)

_SUFFIX_RE = re.compile(r"^\.[A-Za-z0-9]{1,5}$")


def format_validation_error(exc: PydanticValidationError) -> str:
    """Human-readable message from the first pydantic error."""
    errors = exc.errors()
    if not errors:
        return "payload validation failed"
    first = errors[0]
    loc = ".".join(str(x) for x in first.get("loc", []))
    msg = first.get("msg", "invalid value")
    return f"payload.{loc}: {msg}" if loc else f"payload: {msg}"


class RenderOrchestrator:
    """Drives a render job through every stage."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        asset_cache: Optional[AssetCache] = None,
        probe: Optional[Callable[[str], Awaitable[int]]] = None,
        builder: Optional[ComposeProgramBuilder] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        gate: Optional[AdmissionGate] = None,
    ):
        self.settings = settings or get_settings()
        self.asset_cache = asset_cache or AssetCache(settings=self.settings)
        self.probe = probe or functools.partial(
            probe_duration_ms, ffprobe_path=self.settings.ffprobe_path
        )
        self.builder = builder or ComposeProgramBuilder(self.settings)
        self.supervisor = supervisor or ProcessSupervisor(settings=self.settings)
        self.gate = gate or AdmissionGate()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def prepare_job(
        self,
        raw_payload: Optional[str],
        audio_bytes: Optional[bytes],
        audio_filename: Optional[str] = None,
    ) -> RenderJob:
        """Validate the request and build a job. Writes nothing.

        Raises:
            ValidationError: On any missing or malformed field
        """
        if audio_bytes is None:
            raise ValidationError("Missing multipart file field: audio")
        if raw_payload is None or not raw_payload.strip():
            raise ValidationError("Missing multipart text field: payload")
        if not audio_bytes:
            raise ValidationError("Audio file is empty")
        if len(audio_bytes) > self.settings.max_upload_bytes:
            raise ValidationError(f"Audio file exceeds {self.settings.max_upload_mb} MB")

        try:
            data = json.loads(raw_payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Payload is not valid JSON: {e.msg}") from e
        if not isinstance(data, dict):
            raise ValidationError("Payload must be a JSON object")

        try:
            payload = RenderPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(format_validation_error(e)) from e

        style = resolve_style(payload.style)
        fitter = self._fitter(style.subs.min_dur, style.subs.max_dur)
        if not fitter.normalize(payload.subtitles.lines):
            raise ValidationError(
                "payload.subtitles.lines has no usable line (need numeric start_ms/end_ms and text)"
            )

        suffix = Path(audio_filename or "").suffix.lower()
        return RenderJob(
            payload=payload,
            style=style,
            audio_bytes=audio_bytes,
            audio_suffix=suffix if _SUFFIX_RE.match(suffix) else ".mp3",
        )

    def _fitter(self, min_dur_ms: int, max_dur_ms: int) -> SubtitleTimelineFitter:
        return SubtitleTimelineFitter(
            min_dur_ms=min_dur_ms,
            max_dur_ms=max_dur_ms,
            tolerance_ms=self.settings.subtitle_fit_tolerance_ms,
            floor_ms=self.settings.subtitle_floor_ms,
        )

    # ------------------------------------------------------------------
    # Render
    # ------------------------------------------------------------------

    def _enter(self, job: RenderJob, stage: RenderStage) -> None:
        job.advance(stage)
        logger.info(f"[RENDER] job={job.id} stage={stage.value}")

    async def render(self, job: RenderJob, base_url: str) -> RenderResult:
        """Run a validated job end to end.

        Args:
            job: Job returned by ``prepare_job``
            base_url: Scheme and host used to build ``download_url``

        Returns:
            RenderResult for the 200 response

        Raises:
            BusyError: Another render holds the gate
            RenderServiceError: Any pipeline failure (after cleanup)
        """
        self._enter(job, RenderStage.ADMITTING)
        completed = False
        try:
            async with self.gate.admit():
                result = await self._run_stages(job, base_url)
                completed = True
                return result
        except RenderServiceError as e:
            logger.error(f"[RENDER] job={job.id} failed at {job.stage.value}: {e.code} {e.message}")
            raise
        except Exception:
            logger.exception(f"[RENDER] job={job.id} crashed at {job.stage.value}")
            raise
        finally:
            if not completed:
                job.stage = RenderStage.FAILED
            self._cleanup(job)

    async def _run_stages(self, job: RenderJob, base_url: str) -> RenderResult:
        started = time.monotonic()
        settings = self.settings
        settings.ensure_directories()

        self._enter(job, RenderStage.RESOLVING_ASSETS)
        assets = await self._resolve_assets(job)

        self._enter(job, RenderStage.PROBING_AUDIO)
        audio_path = job.track(Path(settings.upload_dir) / f"{job.id}{job.audio_suffix}")
        audio_path.write_bytes(job.audio_bytes)
        audio_ms = await self.probe(str(audio_path))
        video_ms = audio_ms + settings.tail_ms

        self._enter(job, RenderStage.FITTING_SUBTITLES)
        fitter = self._fitter(job.style.subs.min_dur, job.style.subs.max_dur)
        lines = fitter.fit(job.payload.subtitles.lines, audio_ms)
        subtitle_path: Optional[Path] = None
        if not job.disable_subtitles and lines:
            subtitle_path = job.track(Path(settings.work_dir) / f"{job.id}.ass")
            write_ass_file(lines, subtitle_path, job.style.subs, job.width, job.height)

        self._enter(job, RenderStage.BUILDING_PROGRAM)
        output_path = job.track(Path(settings.public_dir) / job.output_name)
        program = self.builder.build(
            job,
            assets,
            subtitle_path,
            audio_ms / 1000,
            video_ms / 1000,
            audio_path=audio_path,
            output_path=output_path,
        )

        self._enter(job, RenderStage.ENCODING)
        run = await self.supervisor.run(
            program.args,
            settings.ffmpeg_soft_timeout_ms,
            settings.ffmpeg_hard_timeout_ms,
        )

        self._enter(job, RenderStage.ASSEMBLING_RESULT)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncoderFailureError(
                0,
                "ffmpeg reported success but produced no output",
                last_progress=run.last_progress_dict(),
                samples=run.samples_dicts(),
                elapsed_ms=run.elapsed_ms,
            )
        job.artifacts.remove(output_path)

        result = RenderResult(
            download_url=self.download_url(base_url, job.output_name),
            debug=RenderDebug(
                audio_ms=audio_ms,
                video_ms=video_ms,
                subtitles_ms=lines[-1].end_ms if lines else 0,
                elapsed_ms=int((time.monotonic() - started) * 1000),
                ffmpeg_last=run.last_progress_dict(),
                ffmpeg_samples=run.samples_dicts(),
                disable_subtitles=job.disable_subtitles,
                style_used=job.style.model_dump(),
                job_id=job.id,
            ),
        )
        self._enter(job, RenderStage.COMPLETED)
        return result

    async def _resolve_assets(self, job: RenderJob) -> ResolvedAssets:
        urls = job.payload.assets
        background = await self.asset_cache.resolve(urls.base_background_url)
        end_card = await self.asset_cache.resolve(urls.end_card_url)
        cards = [await self.asset_cache.resolve(url) for url in urls.card_image_urls]
        return ResolvedAssets(background=background, end_card=end_card, cards=cards)

    def download_url(self, base_url: str, name: str) -> str:
        base = (self.settings.public_base_url or base_url).rstrip("/")
        prefix = "/" + self.settings.public_url_prefix.strip("/")
        return f"{base}{prefix}/{name}"

    def _cleanup(self, job: RenderJob) -> None:
        """Remove the job's temporary files; errors are logged, not raised."""
        for path in job.artifacts:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"[RENDER] job={job.id} could not remove {path}: {e}")
        job.artifacts.clear()
