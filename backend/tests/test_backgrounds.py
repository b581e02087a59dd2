"""
Tests for background parsing, style merging and URL resolution.
"""

import httpx
import pytest

from slidekit.errors import BackgroundUnavailable
from slidekit.schemas import (
    GradientBackground,
    MultiImageBackground,
    SingleImageBackground,
    SolidBackground,
    parse_background,
)
from slidekit.services.backgrounds import (
    MAX_VIDEO_BACKGROUNDS,
    BackgroundResolver,
    contrasting_text_color,
    descriptor_has_image,
    merge_background_style,
)
from slidekit.templates import DEFAULT_TEMPLATE_CONFIG, default_template_config

from conftest import STORAGE_HOST, FakeStorage


class TestParseBackground:
    def test_empty_and_garbage(self):
        assert parse_background(None) is None
        assert parse_background({}) is None
        assert parse_background("solid") is None

    def test_tagged_shapes(self):
        assert isinstance(parse_background({"mode": "solid", "color": "#111111"}), SolidBackground)
        multi = parse_background({"mode": "multi_image", "images": [{"storage_path": "a.png"}, {"image_url": "https://x.test/b.jpg"}]})
        assert isinstance(multi, MultiImageBackground)
        assert len(multi.images) == 2

    def test_legacy_flat_image(self):
        bg = parse_background({
            "mode": "image",
            "storage_path": "user/u/a.png",
            "secondary_image_url": "https://x.test/s.jpg",
            "overlay": {"darken": 0.7, "textColor": "#000000"},
        })
        assert isinstance(bg, SingleImageBackground)
        assert bg.image.storage_path == "user/u/a.png"
        assert bg.secondary.image_url == "https://x.test/s.jpg"
        assert bg.overlay.darken == 0.7
        assert bg.overlay.text_color == "#000000"

    def test_legacy_images_list(self):
        bg = parse_background({"mode": "image", "images": [{"storage_path": f"{i}.png"} for i in range(6)]})
        assert isinstance(bg, MultiImageBackground)
        assert len(bg.images) == 4

    def test_legacy_style_fields(self):
        assert isinstance(parse_background({"style": "solid", "color": "#ffffff"}), SolidBackground)
        gradient = parse_background({"style": "gradient", "gradientOn": False})
        assert isinstance(gradient, GradientBackground)
        assert gradient.gradient_on is False

    def test_invalid_overlay_is_ignored(self):
        assert parse_background({"mode": "solid", "overlay": {"darken": 5}}) is None


class TestContrastingTextColor:
    @pytest.mark.parametrize("color,expected", [
        ("#ffffff", "#0a0a0a"),
        ("#fff", "#0a0a0a"),
        ("#facc15", "#0a0a0a"),
        ("#000000", "#ffffff"),
        ("#1e3a8a", "#ffffff"),
        ("nonsense", "#ffffff"),
        (None, "#ffffff"),
    ])
    def test_threshold(self, color, expected):
        assert contrasting_text_color(color) == expected


class TestMergeBackgroundStyle:
    def test_no_descriptor(self):
        assert merge_background_style(default_template_config(), None, False) is None

    def test_unset_darken_falls_back_to_template(self):
        style = merge_background_style(
            default_template_config(), GradientBackground(overlay={"darken": 0.5}), False
        )
        assert style.gradient_strength == DEFAULT_TEMPLATE_CONFIG["overlays"]["gradient"]["strength"]
        assert style.use_gradient is True

    def test_slide_overlay_wins(self):
        descriptor = parse_background({
            "mode": "gradient",
            "overlay": {"darken": 0.8, "color": "#ffffff", "direction": "top", "extent": 70, "solidSize": 5},
        })
        style = merge_background_style(default_template_config(), descriptor, False)
        assert style.gradient_strength == 0.8
        assert style.gradient_direction == "top"
        assert style.gradient_extent == 70
        assert style.gradient_solid_size == 5
        assert style.text_color == "#0a0a0a"

    @pytest.mark.parametrize("default_style", ["none", "blur"])
    def test_gradient_forced_off_over_images(self, default_style):
        config = default_template_config().model_copy(deep=True)
        config.background_rules.default_style = default_style
        descriptor = parse_background({"mode": "image", "image_url": "https://x.test/a.jpg", "gradientOn": True})
        assert merge_background_style(config, descriptor, True).use_gradient is False

    def test_gradient_toggle(self):
        descriptor = parse_background({"mode": "solid", "color": "#333333", "gradientOn": False})
        style = merge_background_style(default_template_config(), descriptor, False)
        assert style.use_gradient is False
        assert style.background_color == "#333333"

    def test_has_image(self):
        assert descriptor_has_image(parse_background({"mode": "image", "asset_id": "a1"}))
        assert not descriptor_has_image(parse_background({"mode": "solid"}))
        assert not descriptor_has_image(None)


class TestResolve:
    @pytest.mark.asyncio
    async def test_unresolvable_slot_is_skipped(self, settings):
        storage = FakeStorage(missing={"user/u/2.png"})
        resolver = BackgroundResolver(storage, settings=settings)
        descriptor = parse_background({"mode": "multi_image", "images": [
            {"storage_path": "user/u/1.png"},
            {"storage_path": "user/u/2.png"},
            {"storage_path": "user/u/3.png"},
        ]})
        resolved = await resolver.resolve(descriptor)
        assert resolved.image_urls == [f"{STORAGE_HOST}/user/u/1.png?sig=1", f"{STORAGE_HOST}/user/u/3.png?sig=1"]

    @pytest.mark.asyncio
    async def test_http_urls_pass_through(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        descriptor = parse_background({"mode": "image", "image_url": " https://x.test/a.jpg "})
        resolved = await resolver.resolve(descriptor)
        assert resolved.image_urls == ["https://x.test/a.jpg"]

    @pytest.mark.asyncio
    async def test_unsupported_scheme_is_skipped(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        resolved = await resolver.resolve(parse_background({"mode": "image", "image_url": "data:image/png;base64,AAA"}))
        assert resolved.image_urls == []
        assert not resolved.has_image

    @pytest.mark.asyncio
    async def test_asset_ids_use_lookup(self, settings):
        async def asset_paths(asset_id):
            return {"a1": "user/u/assets/a1.png"}.get(asset_id)

        resolver = BackgroundResolver(FakeStorage(), settings=settings, asset_paths=asset_paths)
        resolved = await resolver.resolve(parse_background({"mode": "image", "asset_id": "a1"}))
        assert resolved.image_urls == [f"{STORAGE_HOST}/user/u/assets/a1.png?sig=1"]

    @pytest.mark.asyncio
    async def test_attributions_follow_resolved_images(self, settings):
        attribution = {
            "photographerName": "Ana",
            "photographerUsername": "ana",
            "profileUrl": "https://unsplash.com/@ana",
        }
        storage = FakeStorage(missing={"gone.png"})
        resolver = BackgroundResolver(storage, settings=settings)
        descriptor = parse_background({"mode": "multi_image", "images": [
            {"storage_path": "ok.png", "unsplash_attribution": attribution},
            {"storage_path": "gone.png", "unsplash_attribution": attribution},
        ]})
        resolved = await resolver.resolve(descriptor)
        assert len(resolved.attributions) == 1
        assert "Ana" in resolved.attributions[0].credit_line()

    @pytest.mark.asyncio
    async def test_required_image_raises(self, settings):
        resolver = BackgroundResolver(FakeStorage(missing={"a.png"}), settings=settings)
        with pytest.raises(BackgroundUnavailable):
            await resolver.resolve(parse_background({"mode": "image", "storage_path": "a.png"}), require_image=True)

    @pytest.mark.asyncio
    async def test_plain_backgrounds_resolve_to_nothing(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        for raw in ({"mode": "solid"}, {"mode": "gradient"}, None):
            assert (await resolver.resolve(parse_background(raw))).image_urls == []


class TestVideoVariants:
    @pytest.mark.asyncio
    async def test_primary_plus_alternates(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        descriptor = parse_background({"mode": "image", "image": {
            "storage_path": "p.png",
            "alternates": ["https://x.test/1.jpg", "ftp://x.test/2.jpg", "https://x.test/3.jpg"],
        }})
        urls = await resolver.resolve_video_variants(descriptor)
        assert urls == [f"{STORAGE_HOST}/p.png?sig=1", "https://x.test/1.jpg", "https://x.test/3.jpg"]

    @pytest.mark.asyncio
    async def test_capped(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        descriptor = parse_background({"mode": "image", "image": {
            "image_url": "https://x.test/0.jpg",
            "alternates": [f"https://x.test/{i}.jpg" for i in range(1, 9)],
        }})
        assert len(await resolver.resolve_video_variants(descriptor)) == MAX_VIDEO_BACKGROUNDS

    @pytest.mark.asyncio
    async def test_multi_slot_one_each(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        descriptor = parse_background({"mode": "multi_image", "images": [
            {"image_url": "https://x.test/a.jpg", "alternates": ["https://x.test/ignored.jpg"]},
            {"image_url": "https://x.test/b.jpg"},
        ]})
        assert await resolver.resolve_video_variants(descriptor) == ["https://x.test/a.jpg", "https://x.test/b.jpg"]

    @pytest.mark.asyncio
    async def test_no_image(self, settings):
        resolver = BackgroundResolver(FakeStorage(), settings=settings)
        assert await resolver.resolve_video_variants(parse_background({"mode": "solid"})) == []


class TestMaterialize:
    @pytest.mark.asyncio
    async def test_copies_image_into_storage(self, settings, png_bytes):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})
        )
        storage = FakeStorage()
        resolver = BackgroundResolver(storage, settings=settings, transport=transport)
        url = await resolver.materialize("https://x.test/photo", "run/slide-01/source-0.jpg")
        assert url == f"{STORAGE_HOST}/run/slide-01/source-0.png?sig=1"
        assert storage.objects["run/slide-01/source-0.png"] == (png_bytes, "image/png")

    @pytest.mark.asyncio
    async def test_rejects_non_images(self, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})
        )
        resolver = BackgroundResolver(FakeStorage(), settings=settings, transport=transport)
        assert await resolver.materialize("https://x.test/page", "p/source-0.jpg") is None

    @pytest.mark.asyncio
    async def test_rejects_undecodable_bytes(self, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"not an image", headers={"content-type": "image/jpeg"})
        )
        resolver = BackgroundResolver(FakeStorage(), settings=settings, transport=transport)
        assert await resolver.materialize("https://x.test/bad.jpg", "p/source-0.jpg") is None

    @pytest.mark.asyncio
    async def test_rejects_oversized(self, settings, png_bytes):
        small = settings.model_copy(update={"max_image_bytes": 10})
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=png_bytes))
        resolver = BackgroundResolver(FakeStorage(), settings=small, transport=transport)
        assert await resolver.materialize("https://x.test/big.png", "p/source-0.jpg") is None

    @pytest.mark.asyncio
    async def test_http_errors(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        resolver = BackgroundResolver(FakeStorage(), settings=settings, transport=transport)
        assert await resolver.materialize("https://x.test/missing.jpg", "p/source-0.jpg") is None
