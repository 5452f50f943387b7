"""Render API endpoint - one synchronous render per request."""

import logging

from fastapi import APIRouter, File, Form, Request, UploadFile

from reelrender.api.deps import Orchestrator
from reelrender.schemas.render import ErrorResponse, RenderResult

router = APIRouter()
logger = logging.getLogger(__name__)


def request_base_url(request: Request) -> str:
    """Scheme and host as seen by the client, honoring reverse-proxy headers."""
    headers = request.headers
    proto = headers.get("x-forwarded-proto", "").split(",")[0].strip() or request.url.scheme
    host = (
        headers.get("x-forwarded-host", "").split(",")[0].strip()
        or headers.get("host")
        or request.url.netloc
    )
    return f"{proto}://{host}"


async def read_upload(upload: UploadFile | None, limit: int) -> bytes | None:
    """Read at most ``limit + 1`` bytes so oversized files are detected without buffering them."""
    if upload is None:
        return None
    try:
        return await upload.read(limit + 1)
    finally:
        await upload.close()


@router.post(
    "/render",
    response_model=RenderResult,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def render_video(
    request: Request,
    orchestrator: Orchestrator,
    audio: UploadFile | None = File(None),
    payload: str | None = Form(None),
) -> RenderResult:
    """
    Render a vertical short video.

    Multipart fields:
    - audio: narration audio file
    - payload: JSON document with output spec, asset URLs, text and subtitles
    """
    audio_bytes = await read_upload(audio, orchestrator.settings.max_upload_bytes)
    job = orchestrator.prepare_job(
        payload,
        audio_bytes,
        audio.filename if audio is not None else None,
    )
    logger.info(
        f"[RENDER] Accepted job={job.id} {job.width}x{job.height}@{job.fps} "
        f"audio={len(job.audio_bytes)}B lines={len(job.payload.subtitles.lines)}"
    )
    return await orchestrator.render(job, request_base_url(request))
