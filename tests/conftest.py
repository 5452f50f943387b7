"""
Pytest fixtures for reelrender tests.

Storage roots are redirected to a throwaway directory before the package is
imported, so the cached ``get_settings()`` never points at the real /tmp
layout. ffmpeg is replaced by small Python scripts run with the current
interpreter; no test needs ffmpeg or network access.
"""

import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="reelrender-tests-"))
os.environ.setdefault("CACHE_DIR", str(_TEST_ROOT / "cache"))
os.environ.setdefault("PUBLIC_DIR", str(_TEST_ROOT / "public"))
os.environ.setdefault("WORK_DIR", str(_TEST_ROOT / "work"))
os.environ.setdefault("UPLOAD_DIR", str(_TEST_ROOT / "upload"))

import httpx  # noqa: E402
import pytest  # noqa: E402

from reelrender.config import Settings  # noqa: E402
from reelrender.render.supervisor import ProcessSupervisor  # noqa: E402
from reelrender.services.asset_cache import AssetCache  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

# Writes the output file (last argument) and reports progress like ffmpeg does.
SUCCESS_SCRIPT = """
import sys
out = sys.argv[-1]
with open(out, "wb") as f:
    f.write(b"fake-mp4")
for key, value in (("frame", "30"), ("fps", "30.0"), ("out_time_ms", "1000000"),
                   ("speed", "2.0x"), ("progress", "continue"),
                   ("frame", "60"), ("out_time_ms", "2000000"), ("progress", "end")):
    sys.stderr.write(key + "=" + value + "\\n")
sys.stderr.flush()
"""

# Reports one progress block and then hangs.
SLOW_SCRIPT = """
import sys, time
sys.stderr.write("frame=12\\nfps=6.0\\nout_time_ms=400000\\nspeed=0.2x\\nprogress=continue\\n")
sys.stderr.flush()
time.sleep(60)
"""

FAILING_SCRIPT = """
import sys
sys.stderr.write("Error opening input file bogus.png\\n")
sys.stderr.flush()
sys.exit(3)
"""


class StubSupervisor(ProcessSupervisor):
    """Runs a Python script in place of ffmpeg and counts spawns."""

    def __init__(self, script: str, settings: Settings | None = None):
        super().__init__(binary=sys.executable, settings=settings)
        self.script = script
        self.spawn_count = 0
        self.last_args: list[str] | None = None
        self.last_proc = None

    async def _spawn(self, args):
        self.spawn_count += 1
        self.last_args = list(args)
        self.last_proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-c",
            self.script,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            limit=self.stream_limit,
        )
        return self.last_proc


class CountingTransport(httpx.MockTransport):
    """MockTransport that remembers every requested URL."""

    def __init__(self, handler):
        self.requests: list[str] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(str(request.url))
            return handler(request)

        super().__init__(_record)


def png_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with storage under tmp_path and short encoder timeouts."""
    return Settings(
        cache_dir=str(tmp_path / "cache"),
        public_dir=str(tmp_path / "public"),
        work_dir=str(tmp_path / "work"),
        upload_dir=str(tmp_path / "upload"),
        ffmpeg_soft_timeout_ms=1500,
        ffmpeg_hard_timeout_ms=4000,
        heartbeat_interval_s=0.2,
    )


@pytest.fixture
def transport() -> CountingTransport:
    return CountingTransport(png_handler)


@pytest.fixture
def asset_cache(test_settings: Settings, transport: CountingTransport) -> AssetCache:
    client = httpx.AsyncClient(transport=transport)
    return AssetCache(client=client, settings=test_settings)


def make_payload(**overrides) -> dict:
    """A minimal valid payload; keyword arguments replace top-level sections."""
    payload = {
        "spec": {"width": 1080, "height": 1920, "fps": 30},
        "assets": {
            "base_background_url": "https://assets.example.com/bg.png",
            "end_card_url": "https://assets.example.com/end.png",
        },
        "text": {"title": "Three tips", "footer": "@reel"},
        "subtitles": {
            "lines": [
                {"start_ms": i * 1500, "end_ms": (i + 1) * 1500, "text": f"line {i}"}
                for i in range(6)
            ]
        },
    }
    payload.update(overrides)
    return payload


def payload_json(**overrides) -> str:
    return json.dumps(make_payload(**overrides))


async def fake_probe_10s(path: str) -> int:
    return 10000
