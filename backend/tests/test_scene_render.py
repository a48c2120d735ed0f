"""Tests for scene construction and the SVG / raster backends."""

import io
import xml.etree.ElementTree as ET

import pytest
from PIL import Image

from cardclip.exceptions import InternalError, ValidationError
from cardclip.media import MediaAsset
from cardclip.render.layout import Slot
from cardclip.render.ratios import resolve_ratio
from cardclip.render.raster_backend import PillowSurface, RasterBackend, measure_text
from cardclip.render.scene import (
    CardContent,
    DrawClippedCircleImage,
    DrawImage,
    DrawText,
    FillBackground,
    Scene,
    SceneBuilder,
    StoryPageContent,
    materialize,
)
from cardclip.render.svg_backend import SvgBackend

SVG_NS = "{http://www.w3.org/2000/svg}"


@pytest.fixture
def builder(measure):
    return SceneBuilder(measure)


@pytest.fixture
def png_asset(png_bytes):
    return MediaAsset(data=png_bytes, mime_type="image/png")


def _card_scene(builder, layout_engine, content, ratio="1:1"):
    geometry = layout_engine.layout(resolve_ratio(ratio), content.populated_slots, title_font_size=content.font_size)
    return builder.build_card(geometry, content)


class TestCardContent:
    def test_populated_slots_follow_content(self, png_asset):
        content = CardContent(text="Hi", text_color="#fff", background_color="#000", avatar=png_asset, artist="X")
        assert content.populated_slots == {Slot.TITLE, Slot.AVATAR, Slot.ARTIST}


class TestSceneBuilder:
    def test_minimal_card(self, builder, layout_engine):
        content = CardContent(text="Hello", text_color="#ffffff", background_color="#000000")
        scene = _card_scene(builder, layout_engine, content)

        assert scene.operations[0] == FillBackground("#000000")
        texts = [op for op in scene.operations if isinstance(op, DrawText)]
        assert [t.text for t in texts] == ["Hello"]
        assert texts[0].anchor == "middle"
        assert texts[0].bold is True

    def test_optional_slots_produce_no_operations_when_absent(self, builder, layout_engine):
        content = CardContent(text="Hello", text_color="#fff", background_color="#000")
        scene = _card_scene(builder, layout_engine, content)
        assert not any(isinstance(op, (DrawClippedCircleImage, DrawImage)) for op in scene.operations)
        assert len(scene.operations) == 2

    def test_full_card(self, builder, layout_engine, png_asset):
        content = CardContent(
            text="Hello",
            text_color="#ffffff",
            background_color="#101010",
            username="dj",
            avatar=png_asset,
            song_title="Song",
            artist="Band",
            song_art=png_asset,
            caption="0:00 - 0:05",
        )
        scene = _card_scene(builder, layout_engine, content)

        circles = [op for op in scene.operations if isinstance(op, DrawClippedCircleImage)]
        texts = {op.text for op in scene.operations if isinstance(op, DrawText)}
        assert len(circles) == 2
        assert texts == {"Hello", "dj", "Song", "Band", "0:00 - 0:05"}

    def test_long_title_wraps_around_center(self, builder, layout_engine):
        content = CardContent(text=" ".join(["word"] * 40), text_color="#fff", background_color="#000")
        scene = _card_scene(builder, layout_engine, content)

        lines = [op for op in scene.operations if isinstance(op, DrawText)]
        assert len(lines) > 1
        assert all(len(line.text) * 10 <= 1080 * 0.8 for line in lines)
        center = (lines[0].y + lines[-1].y) / 2
        assert center == pytest.approx(540)

    def test_story_page(self, builder, layout_engine, png_asset):
        geometry = layout_engine.layout_story_page(resolve_ratio("9:16"), 2)
        scene = builder.build_story_page(
            geometry,
            StoryPageContent(
                heading="Page one",
                text_color="#fff",
                background_color="#222",
                images=[png_asset, png_asset],
                footer="Song — Band",
            ),
        )
        images = [op for op in scene.operations if isinstance(op, DrawImage)]
        assert len(images) == 2
        assert any(isinstance(op, DrawText) and op.text == "Song — Band" for op in scene.operations)

    def test_scene_renders_once(self, builder, layout_engine):
        content = CardContent(text="Hello", text_color="#fff", background_color="#000")
        scene = _card_scene(builder, layout_engine, content)
        SvgBackend(font_family="Arial").materialize(scene)
        with pytest.raises(InternalError):
            SvgBackend(font_family="Arial").materialize(scene)


class TestSvgBackend:
    def test_document_structure(self, builder, layout_engine, png_asset):
        content = CardContent(
            text="Hello",
            text_color="#ffffff",
            background_color="#000000",
            avatar=png_asset,
            song_art=png_asset,
        )
        scene = _card_scene(builder, layout_engine, content, ratio="16:9")

        root = ET.fromstring(SvgBackend(font_family="Arial, sans-serif").materialize(scene))

        assert root.tag == f"{SVG_NS}svg"
        assert root.get("width") == "1920"
        assert root.get("height") == "1080"
        rects = root.findall(f"{SVG_NS}rect")
        assert len(rects) == 1
        assert rects[0].get("width") == "100%"
        images = root.findall(f"{SVG_NS}image")
        assert len(images) == 2
        assert all(img.get("clip-path", "").startswith("url(#clip") for img in images)
        assert all(img.get("href").startswith("data:image/png;base64,") for img in images)
        assert len(root.findall(f"{SVG_NS}defs/{SVG_NS}clipPath")) == 2

    def test_user_text_is_escaped(self, builder, layout_engine):
        content = CardContent(
            text='<script>alert("x")</script> & more',
            text_color="#fff",
            background_color="#000",
            username="<b>me</b>",
        )
        scene = _card_scene(builder, layout_engine, content)
        svg = SvgBackend(font_family="Arial").render(scene)

        assert "<script>" not in svg
        assert "&lt;script&gt;" in svg
        assert "&lt;b&gt;me&lt;/b&gt;" in svg
        # Still well-formed
        root = ET.fromstring(svg)
        texts = [t.text for t in root.iter(f"{SVG_NS}text")]
        assert '<script>alert("x")</script> & more' in texts

    def test_color_that_breaks_attribute_is_rejected(self):
        scene = Scene(width=10, height=10, operations=[FillBackground('red" onload="x')])
        with pytest.raises(ValidationError):
            SvgBackend(font_family="Arial").materialize(scene)


class TestRasterBackend:
    def test_png_output_matches_canvas(self, layout_engine):
        builder = SceneBuilder(measure_text)
        content = CardContent(text="Hello", text_color="#ffffff", background_color="#ff0000")
        scene = _card_scene(builder, layout_engine, content, ratio="9:16")

        data = materialize(scene, RasterBackend())

        image = Image.open(io.BytesIO(data))
        assert image.format == "PNG"
        assert image.size == (1080, 1920)
        assert image.convert("RGB").getpixel((5, 5)) == (255, 0, 0)

    def test_circle_image_is_clipped(self, png_bytes):
        surface = PillowSurface(100, 100)
        surface.fill_rect(0, 0, 100, 100, "#000000")
        surface.draw_image(png_bytes, 0, 0, 100, 100, circular=True)
        image = Image.open(io.BytesIO(surface.to_bytes())).convert("RGB")

        assert image.getpixel((50, 50)) == (255, 0, 0)
        assert image.getpixel((2, 2)) == (0, 0, 0)

    def test_plain_image_fills_box(self, png_bytes):
        surface = PillowSurface(100, 100)
        surface.draw_image(png_bytes, 10, 10, 50, 50)
        image = Image.open(io.BytesIO(surface.to_bytes())).convert("RGBA")
        assert image.getpixel((11, 11))[:3] == (255, 0, 0)
        assert image.getpixel((80, 80))[3] == 0

    def test_undecodable_image_is_validation_error(self):
        surface = PillowSurface(10, 10)
        with pytest.raises(ValidationError):
            surface.draw_image(b"not an image", 0, 0, 5, 5)

    def test_oversized_image_is_validation_error(self, oversized_png_bytes):
        surface = PillowSurface(10, 10)
        with pytest.raises(ValidationError, match="decode limit"):
            surface.draw_image(oversized_png_bytes, 0, 0, 5, 5)

    def test_unknown_color_is_validation_error(self):
        surface = PillowSurface(10, 10)
        with pytest.raises(ValidationError):
            surface.fill_rect(0, 0, 10, 10, "notacolor")

    def test_backend_drives_surface_protocol(self, png_asset):
        calls = []

        class RecordingSurface:
            def __init__(self, width, height):
                calls.append(("init", width, height))

            def fill_rect(self, x, y, width, height, color):
                calls.append(("fill_rect", color))

            def draw_text(self, text, x, y, font_size, color, anchor="start", bold=False):
                calls.append(("draw_text", text, anchor))

            def measure_text(self, text, font_size, bold=False):
                return len(text)

            def draw_image(self, data, x, y, width, height, circular=False):
                calls.append(("draw_image", circular))

            def to_bytes(self):
                return b"raster"

        scene = Scene(
            width=20,
            height=10,
            operations=[
                FillBackground("#000"),
                DrawClippedCircleImage(asset=png_asset, x=0, y=0, size=5),
                DrawImage(asset=png_asset, x=0, y=0, width=5, height=5),
                DrawText(text="t", x=1, y=1, font_size=8, color="#fff", anchor="middle"),
            ],
        )
        assert RasterBackend(RecordingSurface).materialize(scene) == b"raster"
        assert calls == [
            ("init", 20, 10),
            ("fill_rect", "#000"),
            ("draw_image", True),
            ("draw_image", False),
            ("draw_text", "t", "middle"),
        ]

    def test_measure_text_grows_with_length(self):
        assert measure_text("", 40) == 0
        assert measure_text("WWWW", 40) > measure_text("W", 40) > 0
