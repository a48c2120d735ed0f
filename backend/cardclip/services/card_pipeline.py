"""Card composition pipeline.

Orchestrates one card request:
1. Validate clip range and references (no I/O)
2. Resolve canvas size and lay out the populated slots
3. Fetch avatar / song art and build the scene
4. Image output: materialize with the requested backend
5. Video output: fetch audio, rasterize the scene, mux with ffmpeg

When the encoder binary is unavailable, video requests fall back to the
image artifact plus an inline copy of the audio and the clip window.
"""

import logging
import time
from typing import Optional

from cardclip.config import Settings, get_settings
from cardclip.exceptions import EncodeError, EncodeTimeoutError, ValidationError
from cardclip.media import MediaAsset, RenderedArtifact
from cardclip.render.clip_range import ClipRange, format_clip_caption, validate_clip_range
from cardclip.render.layout import LayoutEngine
from cardclip.render.raster_backend import RasterBackend, measure_text, validate_color
from cardclip.render.ratios import resolve_ratio
from cardclip.render.scene import CardContent, Scene, SceneBackend, SceneBuilder, TextMeasure, materialize
from cardclip.render.svg_backend import SvgBackend
from cardclip.schemas.card import CardRequest, CardResult
from cardclip.services.artifact_encoder import to_data_reference
from cardclip.services.asset_fetcher import AssetFetcher, validate_reference
from cardclip.services.video_assembler import VideoAssembler

logger = logging.getLogger(__name__)


def select_backend(image_format: str) -> SceneBackend:
    """SVG for vector output, Pillow raster otherwise."""
    if image_format == "svg":
        return SvgBackend()
    return RasterBackend()


class CardPipeline:
    """Renders CardRequests into image or video artifacts."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[AssetFetcher] = None,
        assembler: Optional[VideoAssembler] = None,
        layout_engine: Optional[LayoutEngine] = None,
        measure: Optional[TextMeasure] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or AssetFetcher(self.settings)
        self.assembler = assembler or VideoAssembler(settings=self.settings)
        self.layout_engine = layout_engine or LayoutEngine()
        self.scene_builder = SceneBuilder(measure or measure_text)

    @property
    def video_available(self) -> bool:
        return self.assembler.available

    def render_card(self, request: CardRequest, deadline: Optional[float] = None) -> CardResult:
        """Run the pipeline for one request.

        Args:
            request: Validated card request
            deadline: Absolute time.monotonic() deadline for the whole request

        Returns:
            CardResult with the artifact as a data reference

        Raises:
            ValidationError: Bad clip range, reference or image payload
            FetchError: An asset could not be retrieved
            EncodeError: Video assembly failed or timed out
        """
        clip = self._validate(request)
        canvas = resolve_ratio(request.ratio)
        window = f" clip={clip.start:.2f}+{clip.duration:.2f}s" if clip else ""
        logger.info(f"[CARD] {request.output_kind} {canvas.width}x{canvas.height}{window}")

        content = CardContent(
            text=request.text,
            text_color=request.text_color or self.settings.default_text_color,
            background_color=request.background_color or self.settings.default_background_color,
            font_size=request.font_size,
            username=request.username.strip(),
            avatar=self._fetch_image(request.user_profile_image),
            song_title=request.song_title.strip(),
            artist=request.artist.strip(),
            song_art=self._fetch_image(request.song_art),
            caption=format_clip_caption(clip) if clip else "",
        )
        geometry = self.layout_engine.layout(canvas, content.populated_slots, title_font_size=request.font_size)
        scene = self.scene_builder.build_card(geometry, content)

        if request.output_kind == "image":
            return self._image_result(scene, request.image_format, clip)

        # Video path; _validate guarantees a clip range here
        self._check_deadline(deadline)
        audio = self.fetcher.fetch(request.audio_source, "audio")

        if not self.video_available:
            if not self.settings.video_fallback_to_image:
                raise EncodeError("Video encoder is not available", stage="encode")
            logger.warning("[CARD] Encoder unavailable, returning image with inline audio")
            result = self._image_result(scene, request.image_format, clip)
            return result.model_copy(update={"audio": audio.to_data_reference(), "degraded": True})

        frame = materialize(scene, RasterBackend())
        artifact = self.assembler.assemble(
            frame,
            RasterBackend.mime_type,
            audio,
            clip,
            width=geometry.width,
            height=geometry.height,
            deadline=deadline,
        )
        return CardResult(
            width=artifact.width,
            height=artifact.height,
            artifact=to_data_reference(artifact),
            mime_type=artifact.mime_type,
            duration_seconds=artifact.duration_seconds,
            clip_start=clip.start,
            clip_duration=clip.duration,
        )

    def _validate(self, request: CardRequest) -> Optional[ClipRange]:
        """Everything that can be rejected without touching the network."""
        clip = None
        if request.output_kind == "video" or request.is_clip_bound:
            clip = validate_clip_range(request.clip_start, request.clip_end, self.settings.max_clip_duration_s)

        validate_color(request.text_color or self.settings.default_text_color, "textColor")
        validate_color(request.background_color or self.settings.default_background_color, "backgroundColor")
        validate_reference(request.audio_source, "audioSource")
        if request.user_profile_image:
            validate_reference(request.user_profile_image, "userProfileImage")
        if request.song_art:
            validate_reference(request.song_art, "songArt")
        return clip

    def _fetch_image(self, reference: Optional[str]) -> Optional[MediaAsset]:
        if not reference:
            return None
        asset = self.fetcher.fetch(reference, "image")
        if not asset.mime_type.startswith("image/"):
            raise ValidationError(f"Expected an image, got {asset.mime_type}", stage="fetch")
        return asset

    def _image_result(self, scene: Scene, image_format: str, clip: Optional[ClipRange]) -> CardResult:
        backend = select_backend(image_format)
        artifact = RenderedArtifact(
            data=materialize(scene, backend),
            mime_type=backend.mime_type,
            width=scene.width,
            height=scene.height,
            duration_seconds=clip.duration if clip else None,
        )
        return CardResult(
            width=artifact.width,
            height=artifact.height,
            artifact=to_data_reference(artifact),
            mime_type=artifact.mime_type,
            duration_seconds=artifact.duration_seconds,
            clip_start=clip.start if clip else None,
            clip_duration=clip.duration if clip else None,
        )

    def _check_deadline(self, deadline: Optional[float]) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise EncodeTimeoutError(self.settings.encode_timeout_s)
