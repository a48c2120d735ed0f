"""
Pytest fixtures for cardclip tests.

Most tests are pure unit tests. Tests that run the real ffmpeg binary are
marked with @pytest.mark.requires_ffmpeg; the sine_mp3 fixture skips them
when the binary is not installed.
Run `pytest -m "not requires_ffmpeg"` to skip them explicitly.
"""

import base64
import io
import shutil
import subprocess
import struct
import zlib

import httpx
import pytest
from PIL import Image

from cardclip.config import Settings
from cardclip.render.layout import LayoutConfig, LayoutEngine
from cardclip.services.asset_fetcher import AssetFetcher


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg binary (skipped when missing)"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def char_measure(text: str, font_size: int = 10, bold: bool = False) -> float:
    """Deterministic measurement: every character is 10px wide."""
    return len(text) * 10.0


@pytest.fixture
def measure():
    return char_measure


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated to a per-test temp directory."""
    return Settings(
        temp_dir=str(tmp_path),
        fetch_retries=1,
        fetch_timeout_s=2.0,
        max_asset_bytes=1024 * 1024,
        encode_timeout_s=30.0,
        max_clip_duration_s=60.0,
    )


@pytest.fixture
def layout_engine() -> LayoutEngine:
    return LayoutEngine(LayoutConfig())


@pytest.fixture
def png_bytes() -> bytes:
    """A 40x40 red PNG."""
    buf = io.BytesIO()
    Image.new("RGB", (40, 40), (255, 0, 0)).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def png_data_reference(png_bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def oversized_png_bytes() -> bytes:
    """PNG header declaring 30000x30000 pixels, past Pillow's decompression-bomb limit."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    header = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


@pytest.fixture
def make_fetcher(settings):
    """Build an AssetFetcher whose HTTP traffic goes to a handler function."""
    clients = []

    def _make(handler, **overrides) -> AssetFetcher:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        fetcher_settings = settings.model_copy(update=overrides) if overrides else settings
        return AssetFetcher(fetcher_settings, client=client)

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def sine_mp3(tmp_path_factory) -> bytes:
    """Ten seconds of a 440 Hz tone, encoded with the real ffmpeg."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not installed")
    output_path = tmp_path_factory.mktemp("audio") / "sine.mp3"
    subprocess.run(
        [
            "ffmpeg", "-y",
            "-f", "lavfi",
            "-i", "sine=frequency=440:duration=10",
            "-acodec", "libmp3lame",
            str(output_path),
        ],
        capture_output=True,
        check=True,
    )
    return output_path.read_bytes()
