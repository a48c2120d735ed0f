import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

Corner = Literal["top_left", "top_right", "bottom_left", "bottom_right"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "cardclip API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Encoding limits
    encode_timeout_s: float = 60.0  # matches the platform execution ceiling
    max_clip_duration_s: float = 60.0
    video_crf: int = 23
    video_preset: str = "veryfast"
    video_framerate: int = 2  # still frame, so a low rate is enough
    audio_bitrate: str = "192k"
    video_fallback_to_image: bool = True

    # Asset fetching
    max_asset_bytes: int = 25 * 1024 * 1024
    fetch_timeout_s: float = 15.0
    fetch_retries: int = 2

    # Empty string means the system temp directory
    temp_dir: str = ""

    # Layout policy (fractions of canvas width/height)
    title_center_ratio: float = 0.5
    title_font_ratio: float = 0.045
    title_max_width_ratio: float = 0.8
    safe_margin_ratio: float = 0.05
    avatar_size_ratio: float = 0.09
    song_art_size_ratio: float = 0.12
    label_gap_ratio: float = 0.013
    username_font_ratio: float = 0.02
    song_title_font_ratio: float = 0.018
    artist_font_ratio: float = 0.014
    caption_font_ratio: float = 0.016
    avatar_corner: Corner = "top_left"
    song_art_corner: Corner = "bottom_left"
    caption_corner: Corner = "bottom_right"

    # Theme
    default_text_color: str = "#ffffff"
    default_background_color: str = "#000000"
    font_family: str = "Arial, sans-serif"
    font_paths: list[str] = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ]
    bold_font_paths: list[str] = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
