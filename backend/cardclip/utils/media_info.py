"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass
from typing import Optional

from cardclip.config import get_settings


@dataclass
class MediaInfo:
    """Media file information."""

    duration_s: float | None = None
    width: int | None = None
    height: int | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args, timeout: Optional[float] = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def probe_media(file_path: str, timeout: Optional[float] = None) -> MediaInfo:
    """
    Get stream and duration information for a media file.

    Args:
        file_path: Path to media file
        timeout: Seconds before ffprobe is killed

    Returns:
        MediaInfo for the file

    Raises:
        RuntimeError: If ffprobe fails or its output cannot be parsed
        FileNotFoundError: If the ffprobe binary is missing
        subprocess.TimeoutExpired: If ffprobe exceeds the timeout
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams", timeout=timeout)
    info = MediaInfo()

    duration = data.get("format", {}).get("duration")
    if duration is not None:
        info.duration_s = float(duration)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")
        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")

    return info
