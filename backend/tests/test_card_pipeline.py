"""Tests for the card composition pipeline."""

import base64
import io
import xml.etree.ElementTree as ET

import httpx
import pytest
from PIL import Image

from cardclip.exceptions import EncodeError, FetchError, InvalidClipRangeError, ValidationError
from cardclip.media import RenderedArtifact
from cardclip.render.layout import LayoutEngine
from cardclip.schemas.card import CardRequest
from cardclip.services.card_pipeline import CardPipeline
from cardclip.services.video_assembler import VideoAssembler

AUDIO_URL = "https://cdn.example.com/song.mp3"
AUDIO_BYTES = b"ID3" + b"\x00" * 64


class FakeAssembler:
    """Assembler double returning a fixed MP4 payload."""

    def __init__(self, available: bool = True):
        self.available = available
        self.calls = []

    def assemble(self, scene_bytes, scene_mime, audio, clip, width, height, deadline=None):
        self.calls.append({"scene_bytes": scene_bytes, "scene_mime": scene_mime, "audio": audio, "clip": clip})
        return RenderedArtifact(
            data=b"\x00\x00\x00\x18ftypmp42",
            mime_type="video/mp4",
            width=width,
            height=height,
            duration_seconds=clip.duration,
        )


class FakeEncoder:
    available = True

    def __init__(self, error=None):
        self.error = error

    def encode(self, still_path, audio_path, output_path, clip, timeout_s):
        if self.error:
            raise self.error
        output_path.write_bytes(b"mp4")


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def audio_handler(requests_seen):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(str(request.url))
        if request.url.path.endswith(".mp3"):
            return httpx.Response(200, content=AUDIO_BYTES)
        return httpx.Response(404)

    return handler


@pytest.fixture
def make_pipeline(settings, make_fetcher, audio_handler):
    def _make(assembler=None, handler=None, **overrides) -> CardPipeline:
        pipeline_settings = settings.model_copy(update=overrides) if overrides else settings
        return CardPipeline(
            settings=pipeline_settings,
            fetcher=make_fetcher(handler or audio_handler),
            assembler=assembler or FakeAssembler(),
            layout_engine=LayoutEngine(),
        )

    return _make


def _decode(reference: str) -> bytes:
    header, payload = reference.split(",", 1)
    assert header.endswith(";base64")
    return base64.b64decode(payload)


def _request(**fields) -> CardRequest:
    body = {"ratio": "1:1", "text": "Hello", "audioSource": AUDIO_URL}
    body.update(fields)
    return CardRequest.model_validate(body)


class TestImageOutput:
    def test_square_png(self, make_pipeline, requests_seen):
        result = make_pipeline().render_card(_request(clipStart=0, clipEnd=5))

        assert (result.width, result.height) == (1080, 1080)
        assert result.mime_type == "image/png"
        assert result.duration_seconds == pytest.approx(5.0)
        assert result.degraded is False
        image = Image.open(io.BytesIO(_decode(result.artifact)))
        assert image.size == (1080, 1080)
        # Image output never needs the audio
        assert requests_seen == []

    def test_default_ratio_is_landscape(self, make_pipeline):
        result = make_pipeline().render_card(_request(ratio=None))
        assert (result.width, result.height) == (1920, 1080)
        assert result.duration_seconds is None
        assert result.clip_start is None

    def test_svg_format_with_avatar(self, make_pipeline, png_data_reference):
        result = make_pipeline().render_card(
            _request(
                ratio="9:16",
                text="A & B <3",
                username="dj",
                userProfileImage=png_data_reference,
                imageFormat="svg",
            )
        )

        assert result.mime_type == "image/svg+xml"
        root = ET.fromstring(_decode(result.artifact).decode("utf-8"))
        assert root.get("width") == "1080"
        assert root.get("height") == "1920"
        texts = [el.text for el in root.iter("{http://www.w3.org/2000/svg}text")]
        assert "A & B <3" in texts
        assert "dj" in texts

    def test_legacy_field_names(self, make_pipeline, png_data_reference):
        request = CardRequest.model_validate(
            {
                "text": "Legacy",
                "cardColor": "#112233",
                "musicUrl": AUDIO_URL,
                "songImageBase64": png_data_reference,
            }
        )
        assert request.background_color == "#112233"
        assert request.audio_source == AUDIO_URL

        result = make_pipeline().render_card(request)
        image = Image.open(io.BytesIO(_decode(result.artifact))).convert("RGB")
        assert image.getpixel((result.width // 2, 5)) == (0x11, 0x22, 0x33)

    def test_non_image_asset_rejected(self, make_pipeline):
        with pytest.raises(ValidationError, match="Expected an image"):
            make_pipeline().render_card(_request(songArt="data:text/plain,hello"))


class TestVideoOutput:
    def test_square_video(self, make_pipeline, requests_seen):
        assembler = FakeAssembler()
        result = make_pipeline(assembler=assembler).render_card(_request(clipStart=0, clipEnd=5, outputKind="video"))

        assert (result.width, result.height) == (1080, 1080)
        assert result.mime_type == "video/mp4"
        assert result.duration_seconds == pytest.approx(5.0)
        assert result.clip_start == 0
        assert result.clip_duration == pytest.approx(5.0)
        assert result.artifact.startswith("data:video/mp4;base64,")

        call = assembler.calls[0]
        assert call["scene_mime"] == "image/png"
        assert call["audio"].data == AUDIO_BYTES
        assert call["clip"].start == 0
        assert requests_seen == [AUDIO_URL]

    def test_video_frame_is_raster_even_for_svg_requests(self, make_pipeline):
        assembler = FakeAssembler()
        make_pipeline(assembler=assembler).render_card(
            _request(clipStart=1, clipEnd=3, outputKind="video", imageFormat="svg")
        )
        assert assembler.calls[0]["scene_bytes"].startswith(b"\x89PNG")

    def test_long_clip_is_clamped(self, make_pipeline):
        result = make_pipeline(max_clip_duration_s=30.0).render_card(
            _request(clipStart=10, clipEnd=100, outputKind="video")
        )
        assert result.clip_duration == pytest.approx(30.0)

    def test_degrades_to_image_when_encoder_missing(self, make_pipeline):
        assembler = FakeAssembler(available=False)
        result = make_pipeline(assembler=assembler).render_card(_request(clipStart=0, clipEnd=5, outputKind="video"))

        assert result.degraded is True
        assert result.mime_type == "image/png"
        assert _decode(result.audio) == AUDIO_BYTES
        assert result.clip_duration == pytest.approx(5.0)
        assert assembler.calls == []

    def test_missing_encoder_without_fallback(self, make_pipeline):
        pipeline = make_pipeline(assembler=FakeAssembler(available=False), video_fallback_to_image=False)
        with pytest.raises(EncodeError, match="not available"):
            pipeline.render_card(_request(clipStart=0, clipEnd=5, outputKind="video"))


class TestFailures:
    """Validation happens before I/O; failures leave no temp files."""

    @pytest.mark.parametrize(
        "fields",
        [
            {"clipStart": 10, "clipEnd": 5, "outputKind": "video"},
            {"clipStart": 5, "clipEnd": 5},
            {"outputKind": "video"},
            {"clipStart": -10, "clipEnd": -2, "outputKind": "video"},
        ],
    )
    def test_invalid_clip_range(self, make_pipeline, requests_seen, fields):
        assembler = FakeAssembler()
        with pytest.raises(InvalidClipRangeError) as exc_info:
            make_pipeline(assembler=assembler).render_card(_request(**fields))

        assert exc_info.value.error_kind == "ValidationError"
        assert exc_info.value.stage == "validate"
        assert requests_seen == []
        assert assembler.calls == []

    def test_bad_audio_reference(self, make_pipeline, requests_seen):
        with pytest.raises(ValidationError):
            make_pipeline().render_card(_request(audioSource="file:///etc/passwd", clipStart=0, clipEnd=5))
        assert requests_seen == []

    def test_unreachable_audio_leaves_no_temp_files(self, make_pipeline, settings, tmp_path):
        assembler = VideoAssembler(encoder=FakeEncoder(), settings=settings)
        pipeline = make_pipeline(assembler=assembler)

        with pytest.raises(FetchError) as exc_info:
            pipeline.render_card(
                _request(audioSource="https://cdn.example.com/missing.wav", clipStart=0, clipEnd=5, outputKind="video")
            )
        assert exc_info.value.error_kind == "FetchError"
        assert "404" in exc_info.value.cause
        assert list(tmp_path.iterdir()) == []

    def test_encoder_failure_leaves_no_temp_files(self, make_pipeline, settings, tmp_path):
        error = EncodeError(stage="encode", cause="ffmpeg exited with code 1: boom")
        assembler = VideoAssembler(encoder=FakeEncoder(error=error), settings=settings)

        with pytest.raises(EncodeError) as exc_info:
            make_pipeline(assembler=assembler).render_card(_request(clipStart=0, clipEnd=5, outputKind="video"))
        assert exc_info.value.error_kind == "EncodeError"
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("image_format", ["png", "svg"])
    def test_unknown_color_rejected_before_fetch(self, make_pipeline, requests_seen, image_format):
        assembler = FakeAssembler()
        request = _request(
            clipStart=0,
            clipEnd=5,
            outputKind="video" if image_format == "png" else "image",
            imageFormat=image_format,
            backgroundColor="notacolor",
            songArt="https://cdn.example.com/art.png",
        )

        with pytest.raises(ValidationError, match="backgroundColor") as exc_info:
            make_pipeline(assembler=assembler).render_card(request)
        assert exc_info.value.stage == "validate"
        assert requests_seen == []
        assert assembler.calls == []

    def test_named_color_accepted(self, make_pipeline):
        result = make_pipeline().render_card(_request(textColor="gold", backgroundColor="navy", imageFormat="svg"))
        assert result.mime_type == "image/svg+xml"
