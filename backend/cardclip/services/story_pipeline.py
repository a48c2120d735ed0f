"""Multi-page story frames.

Each page becomes one still frame (heading, up to three images, song
footer). Frames are returned with their display durations together with the
song audio and clip window; sequencing happens on the client.
"""

import logging
from typing import Optional

from cardclip.config import Settings, get_settings
from cardclip.media import RenderedArtifact
from cardclip.render.clip_range import validate_clip_range
from cardclip.render.layout import STORY_MAX_IMAGES, LayoutEngine
from cardclip.render.raster_backend import measure_text, validate_color
from cardclip.render.ratios import resolve_ratio
from cardclip.render.scene import SceneBuilder, StoryPageContent, TextMeasure, materialize
from cardclip.schemas.story import StoryFrame, StoryRequest, StoryResult
from cardclip.services.artifact_encoder import to_data_reference
from cardclip.services.asset_fetcher import AssetFetcher, validate_reference
from cardclip.services.card_pipeline import select_backend

logger = logging.getLogger(__name__)


def story_footer(title: str, artist: str) -> str:
    return " — ".join(part.strip() for part in (title, artist) if part and part.strip())


class StoryPipeline:
    """Renders StoryRequests into per-page frames."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[AssetFetcher] = None,
        layout_engine: Optional[LayoutEngine] = None,
        measure: Optional[TextMeasure] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or AssetFetcher(self.settings)
        self.layout_engine = layout_engine or LayoutEngine()
        self.scene_builder = SceneBuilder(measure or measure_text)

    def render_story(self, request: StoryRequest) -> StoryResult:
        song = request.song
        clip = validate_clip_range(song.clip_start, song.clip_end, self.settings.max_clip_duration_s)
        validate_color(request.theme.text_color or self.settings.default_text_color, "theme.textColor")
        validate_color(request.theme.card_color or self.settings.default_background_color, "theme.cardColor")
        validate_reference(song.music_url, "song.musicUrl")
        for i, page in enumerate(request.pages):
            for ref in page.images[:STORY_MAX_IMAGES]:
                validate_reference(ref, f"pages[{i}].images")

        canvas = resolve_ratio(request.ratio)
        footer = story_footer(song.title, song.artist)
        logger.info(f"[STORY] {len(request.pages)} pages at {canvas.width}x{canvas.height}")

        frames: list[StoryFrame] = []
        for index, page in enumerate(request.pages):
            images = [self.fetcher.fetch(ref, "image") for ref in page.images[:STORY_MAX_IMAGES]]
            geometry = self.layout_engine.layout_story_page(canvas, len(images), has_footer=bool(footer))
            scene = self.scene_builder.build_story_page(
                geometry,
                StoryPageContent(
                    heading=page.text,
                    text_color=request.theme.text_color or self.settings.default_text_color,
                    background_color=request.theme.card_color or self.settings.default_background_color,
                    images=images,
                    footer=footer,
                ),
            )
            backend = select_backend(request.image_format)
            artifact = RenderedArtifact(
                data=materialize(scene, backend),
                mime_type=backend.mime_type,
                width=canvas.width,
                height=canvas.height,
                duration_seconds=page.duration,
            )
            frames.append(
                StoryFrame(
                    index=index,
                    duration=page.duration,
                    artifact=to_data_reference(artifact),
                    mime_type=artifact.mime_type,
                )
            )

        audio = self.fetcher.fetch(song.music_url, "audio")
        return StoryResult(
            width=canvas.width,
            height=canvas.height,
            frames=frames,
            audio=audio.to_data_reference(),
            clip_start=clip.start,
            clip_duration=clip.duration,
        )
