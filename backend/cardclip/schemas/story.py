"""Story (multi-page) request/response models."""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cardclip.schemas.card import COLOR_PATTERN


class StoryTheme(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text_color: str | None = Field(default=None, alias="textColor", pattern=COLOR_PATTERN)
    card_color: str | None = Field(
        default=None,
        validation_alias=AliasChoices("cardColor", "backgroundColor", "card_color"),
        pattern=COLOR_PATTERN,
    )


class StorySong(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(default="", max_length=200)
    artist: str = Field(default="", max_length=200)
    music_url: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("musicUrl", "audioSource", "music_url"),
    )
    clip_start: float | None = Field(default=None, alias="clipStart")
    clip_end: float | None = Field(default=None, alias="clipEnd")


class StoryPage(BaseModel):
    text: str = Field(default="", max_length=500)
    images: list[str] = Field(default_factory=list, description="Only the first three are drawn")
    duration: float = Field(default=4.0, gt=0, le=60)


class StoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ratio: str | None = None
    theme: StoryTheme = Field(default_factory=StoryTheme)
    song: StorySong
    pages: list[StoryPage] = Field(..., min_length=1, max_length=20)
    image_format: Literal["png", "svg"] = Field(default="png", alias="imageFormat")


class StoryFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    duration: float
    artifact: str
    mime_type: str = Field(..., alias="mimeType")


class StoryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    width: int
    height: int
    frames: list[StoryFrame]
    audio: str
    clip_start: float = Field(..., alias="clipStart")
    clip_duration: float = Field(..., alias="clipDuration")
