"""Content-addressed download cache for remote template assets.

Files are stored as ``<cache_dir>/<sha1(url)><ext>`` and reused forever once
written. There is no revalidation: template URLs are few and stable, so a
stale file is an acceptable trade for skipping the network on every render.
"""

import hashlib
import logging
import os
import uuid
from pathlib import Path
from urllib.parse import urlparse

import httpx

from reelrender.config import Settings, get_settings
from reelrender.exceptions import AssetDownloadError

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS: dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
}

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".mkv", ".m4v"}
FALLBACK_EXTENSION = ".bin"
KNOWN_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS | {FALLBACK_EXTENSION}


def cache_key(url: str) -> str:
    """SHA-1 hex digest of the URL string."""
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


def is_image_path(path: str | Path) -> bool:
    """True when a cached asset is a still image (looped with ``-loop 1``)."""
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def extension_for(url: str, content_type: str | None) -> str:
    """Pick a file extension: content type, then URL path, then ``.bin``."""
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[mime]

    suffix = Path(urlparse(url).path).suffix.lower()
    if suffix in KNOWN_EXTENSIONS:
        return suffix

    return FALLBACK_EXTENSION


class AssetCache:
    """Resolves asset URLs to local files, downloading at most once."""

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        timeout_ms: int | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.cache_dir = Path(cache_dir or settings.cache_dir)
        self.timeout_s = (timeout_ms or settings.asset_download_timeout_ms) / 1000
        self._client = client

    def find_cached(self, url: str) -> Path | None:
        """Return the cached file for ``url`` if one exists and is non-empty."""
        key = cache_key(url)
        for ext in sorted(KNOWN_EXTENSIONS):
            candidate = self.cache_dir / f"{key}{ext}"
            try:
                if candidate.stat().st_size > 0:
                    return candidate
            except FileNotFoundError:
                continue
        return None

    async def resolve(self, url: str) -> Path:
        """Return a local path for ``url``, downloading it on a cache miss.

        Raises:
            AssetDownloadError: On non-2xx responses, timeouts or transport errors
        """
        cached = self.find_cached(url)
        if cached is not None:
            logger.info(f"[ASSET] Cache hit: {url} -> {cached.name}")
            return cached

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise AssetDownloadError(url, "only http(s) URLs are supported")

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        key = cache_key(url)
        part_path = self.cache_dir / f"{key}.{uuid.uuid4().hex}.part"

        logger.info(f"[ASSET] Cache miss, downloading: {url}")
        try:
            if self._client is not None:
                content_type = await self._download(self._client, url, part_path)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=True) as client:
                    content_type = await self._download(client, url, part_path)

            if part_path.stat().st_size == 0:
                raise AssetDownloadError(url, "empty response body")

            final_path = self.cache_dir / f"{key}{extension_for(url, content_type)}"
            os.replace(part_path, final_path)
        except httpx.TimeoutException as e:
            raise AssetDownloadError(url, f"timed out after {self.timeout_s:.0f}s") from e
        except httpx.HTTPError as e:
            raise AssetDownloadError(url, str(e) or type(e).__name__) from e
        finally:
            part_path.unlink(missing_ok=True)

        logger.info(f"[ASSET] Cached {url} -> {final_path.name} ({final_path.stat().st_size} bytes)")
        return final_path

    async def _download(self, client: httpx.AsyncClient, url: str, dest: Path) -> str | None:
        async with client.stream("GET", url, timeout=self.timeout_s, follow_redirects=True) as response:
            if not response.is_success:
                raise AssetDownloadError(url, f"HTTP {response.status_code}")
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
            return response.headers.get("content-type")
