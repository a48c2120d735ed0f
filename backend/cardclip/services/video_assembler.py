"""Video assembly: mux a still frame with a trimmed audio segment.

Provides:
- request_workspace: request-scoped temp directory, removed on every exit path
- FfmpegEncoder: the external encoder boundary (one subprocess per call)
- VideoAssembler: persist inputs, encode, verify and read back the container
"""

import logging
import shutil
import subprocess
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol
from uuid import uuid4

from cardclip.config import Settings, get_settings
from cardclip.exceptions import EncodeError, EncodeTimeoutError
from cardclip.media import MediaAsset, RenderedArtifact
from cardclip.render.clip_range import ClipRange
from cardclip.services.asset_fetcher import AUDIO_MIME_TYPES
from cardclip.utils.media_info import probe_media

logger = logging.getLogger(__name__)

VIDEO_MIME = "video/mp4"

_STILL_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/svg+xml": ".svg",
}
_AUDIO_EXTENSIONS = {mime: f".{ext}" for ext, mime in AUDIO_MIME_TYPES.items()}
_STDERR_TAIL = 2000


@contextmanager
def request_workspace(token: Optional[str] = None, parent: Optional[str] = None) -> Iterator[Path]:
    """Create a unique work directory and remove it when the block exits."""
    token = token or uuid4().hex
    work_dir = Path(tempfile.mkdtemp(prefix=f"cardclip_{token}_", dir=parent or None))
    try:
        yield work_dir
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
        logger.debug(f"[ENCODE] Removed work dir {work_dir}")


class Encoder(Protocol):
    available: bool

    def encode(
        self, still_path: Path, audio_path: Path, output_path: Path, clip: ClipRange, timeout_s: float
    ) -> None:
        ...


class FfmpegEncoder:
    """Runs ffmpeg to loop a still frame over a trimmed audio segment.

    The binary is resolved once at construction.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.binary = shutil.which(self.settings.ffmpeg_path)
        if self.binary is None:
            logger.warning(f"[ENCODE] ffmpeg not found at {self.settings.ffmpeg_path!r}; video output disabled")

    @property
    def available(self) -> bool:
        return self.binary is not None

    def build_command(self, still_path: Path, audio_path: Path, output_path: Path, clip: ClipRange) -> list[str]:
        s = self.settings
        duration = f"{clip.duration:.3f}"
        return [
            self.binary or s.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            # Still frame, looped
            "-loop", "1",
            "-framerate", str(s.video_framerate),
            "-i", str(still_path),
            # Audio, input-seeked to the clip window
            "-ss", f"{clip.start:.3f}",
            "-t", duration,
            "-i", str(audio_path),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "libx264",
            "-tune", "stillimage",
            "-preset", s.video_preset,
            "-crf", str(s.video_crf),
            "-vf", "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", s.audio_bitrate,
            "-t", duration,
            "-shortest",
            "-movflags", "+faststart",
            str(output_path),
        ]

    def encode(
        self, still_path: Path, audio_path: Path, output_path: Path, clip: ClipRange, timeout_s: float
    ) -> None:
        """Run the encoder.

        Raises:
            EncodeTimeoutError: If ffmpeg runs past timeout_s (the process is killed)
            EncodeError: If ffmpeg is missing, cannot start, or exits non-zero
        """
        if self.binary is None:
            raise EncodeError("Video encoder is not available", stage="encode")

        cmd = self.build_command(still_path, audio_path, output_path, clip)
        logger.debug(f"[ENCODE] {' '.join(cmd)}")
        started = time.monotonic()
        try:
            # subprocess.run kills the child when the timeout expires
            result = subprocess.run(cmd, capture_output=True, timeout=timeout_s)
        except subprocess.TimeoutExpired as e:
            logger.error(f"[ENCODE] ffmpeg killed after {timeout_s:.1f}s")
            raise EncodeTimeoutError(timeout_s) from e
        except OSError as e:
            raise EncodeError("Could not start video encoder", stage="encode", cause=str(e)) from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
            logger.error(f"[ENCODE] ffmpeg exited with {result.returncode}: {stderr}")
            raise EncodeError(
                stage="encode",
                cause=f"ffmpeg exited with code {result.returncode}: {stderr or 'no output'}",
            )
        logger.info(f"[ENCODE] ffmpeg finished in {time.monotonic() - started:.2f}s")


class VideoAssembler:
    """Produces an MP4 artifact from a rendered scene and an audio asset."""

    def __init__(self, encoder: Optional[Encoder] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.encoder = encoder or FfmpegEncoder(self.settings)

    @property
    def available(self) -> bool:
        return self.encoder.available

    def assemble(
        self,
        scene_bytes: bytes,
        scene_mime: str,
        audio: MediaAsset,
        clip: ClipRange,
        width: int,
        height: int,
        deadline: Optional[float] = None,
    ) -> RenderedArtifact:
        """Mux the scene as a looped still over the clipped audio.

        Args:
            scene_bytes: Rendered still frame
            scene_mime: MIME type of the still frame
            audio: Audio asset to trim
            clip: Clip window within the audio
            width: Canvas width reported on the artifact
            height: Canvas height reported on the artifact
            deadline: Absolute time.monotonic() deadline of the caller's request

        Returns:
            RenderedArtifact with the MP4 bytes

        Raises:
            EncodeTimeoutError: If the call runs out of time
            EncodeError: On any persist, encode or verification failure
        """
        call_deadline = time.monotonic() + self.settings.encode_timeout_s
        if deadline is not None:
            call_deadline = min(call_deadline, deadline)

        token = uuid4().hex
        with request_workspace(token, self.settings.temp_dir) as work_dir:
            still_path = work_dir / f"{token}_scene{_STILL_EXTENSIONS.get(scene_mime, '.png')}"
            audio_path = work_dir / f"{token}_audio{_AUDIO_EXTENSIONS.get(audio.mime_type, '.mp3')}"
            output_path = work_dir / f"{token}_card.mp4"

            try:
                still_path.write_bytes(scene_bytes)
                audio_path.write_bytes(audio.data)
            except OSError as e:
                raise EncodeError("Could not write encoder inputs", stage="persist", cause=str(e)) from e

            self.encoder.encode(still_path, audio_path, output_path, clip, self._remaining(call_deadline))

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise EncodeError("Encoder produced no output", stage="encode")

            duration = self._measure_duration(output_path, clip, call_deadline)
            data = output_path.read_bytes()

        logger.info(f"[ENCODE] Assembled {width}x{height} video, {duration:.2f}s, {len(data)} bytes")
        return RenderedArtifact(
            data=data,
            mime_type=VIDEO_MIME,
            width=width,
            height=height,
            duration_seconds=duration,
        )

    def _remaining(self, call_deadline: float) -> float:
        remaining = call_deadline - time.monotonic()
        if remaining <= 0:
            raise EncodeTimeoutError(self.settings.encode_timeout_s)
        return remaining

    def _measure_duration(self, output_path: Path, clip: ClipRange, call_deadline: float) -> float:
        """Probe the container; fall back to the requested clip length if ffprobe is unusable."""
        remaining = call_deadline - time.monotonic()
        if remaining <= 0:
            return clip.duration
        try:
            info = probe_media(str(output_path), timeout=remaining)
        except (RuntimeError, OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[ENCODE] Could not probe output, using clip duration: {e}")
            return clip.duration

        if not info.has_video:
            raise EncodeError("Encoder output has no video stream", stage="verify")
        return info.duration_s or clip.duration
