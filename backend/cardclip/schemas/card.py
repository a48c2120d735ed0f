"""Card request/response models.

Accepts camelCase field names (and the legacy names ``cardColor``,
``musicUrl``, ``userProfileImageBase64``, ``songImageBase64``);
snake_case is accepted too.
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

COLOR_PATTERN = r"^(#[0-9A-Fa-f]{3}|#[0-9A-Fa-f]{6}|#[0-9A-Fa-f]{8}|[A-Za-z]{3,24})$"


class CardRequest(BaseModel):
    """Validated input for one card render. Immutable."""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "ratio": "1:1",
                    "text": "Hello",
                    "audioSource": "https://example.com/song.mp3",
                    "clipStart": 0,
                    "clipEnd": 5,
                    "outputKind": "video",
                }
            ]
        },
    )

    ratio: str | None = Field(default=None, description="Aspect ratio token: 1:1, 9:16 or 16:9")
    text: str = Field(..., min_length=1, max_length=500)
    text_color: str | None = Field(default=None, alias="textColor", pattern=COLOR_PATTERN)
    background_color: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backgroundColor", "cardColor", "background_color"),
        pattern=COLOR_PATTERN,
    )
    font_size: int | None = Field(default=None, alias="fontSize", ge=8, le=400)
    username: str = Field(default="", max_length=100)
    user_profile_image: str | None = Field(
        default=None,
        validation_alias=AliasChoices("userProfileImage", "userProfileImageBase64", "user_profile_image"),
    )
    song_title: str = Field(default="", alias="songTitle", max_length=200)
    artist: str = Field(default="", max_length=200)
    song_art: str | None = Field(
        default=None,
        validation_alias=AliasChoices("songArt", "songImageBase64", "song_art"),
    )
    audio_source: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("audioSource", "musicUrl", "audio_source"),
    )
    clip_start: float | None = Field(default=None, alias="clipStart")
    clip_end: float | None = Field(default=None, alias="clipEnd")
    output_kind: Literal["image", "video"] = Field(default="image", alias="outputKind")
    image_format: Literal["png", "svg"] = Field(default="png", alias="imageFormat")

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be blank")
        return v

    @field_validator("user_profile_image", "song_art", mode="before")
    @classmethod
    def _blank_reference_is_absent(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_clip_bound(self) -> bool:
        return self.clip_start is not None or self.clip_end is not None


class CardResult(BaseModel):
    """Successful card render."""

    model_config = ConfigDict(populate_by_name=True)

    width: int
    height: int
    artifact: str = Field(..., description="data: reference of the rendered image or video")
    mime_type: str = Field(..., alias="mimeType")
    duration_seconds: float | None = Field(default=None, alias="durationSeconds")
    clip_start: float | None = Field(default=None, alias="clipStart")
    clip_duration: float | None = Field(default=None, alias="clipDuration")
    audio: str | None = Field(default=None, description="data: reference of the source audio (image fallback only)")
    degraded: bool = Field(default=False, description="True when a video was requested but an image was produced")
