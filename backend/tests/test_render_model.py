"""
Tests for the render model builder and slide meta normalization.
"""

import pytest

from slidekit.schemas import BrandKit, HighlightSpan, SlideData, SlideRenderModel, TextZoneOverride
from slidekit.services.backgrounds import BackgroundStyle
from slidekit.services.render_model import (
    DEFAULT_BG,
    ChromeOverrides,
    build_render_model,
    counter_text,
    normalize_slide_meta,
    normalize_zone_override,
    text_scale_for_size,
)
from slidekit.templates import default_template_config, get_layout_preset


def slide(headline="Post less, say more", body="Quality compounds faster than volume", **kwargs) -> SlideData:
    return SlideData(headline=headline, body=body, slide_index=kwargs.pop("slide_index", 2), **kwargs)


class TestCounterText:
    def test_default_pattern(self):
        assert counter_text("1/8", 3, 10) == "3/10"

    def test_index_containing_eight(self):
        assert counter_text("1/8", 8, 9) == "8/9"

    def test_pattern_without_placeholders(self):
        assert counter_text("•", 2, 5) == "•"


class TestTextScale:
    @pytest.mark.parametrize("size,expected", [
        ((1080, 1080), 1.0),
        ((1080, 1350), 1.25),
    ])
    def test_cover_scale(self, size, expected):
        assert text_scale_for_size(*size) == pytest.approx(expected)

    def test_story_is_widest_scale(self):
        assert text_scale_for_size(1080, 1920) == pytest.approx(1920 / 1080)


class TestNormalizeZoneOverride:
    def test_coerces_and_rounds(self):
        override = normalize_zone_override({"fontSize": "52.6", "lineHeight": "1.15", "align": "left"})
        assert override.font_size == 53
        assert override.line_height == pytest.approx(1.15)
        assert override.align == "left"

    def test_drops_invalid_fields(self):
        override = normalize_zone_override({"fontSize": 999, "maxLines": 3, "align": "justify", "color": "red"})
        assert override.font_size is None
        assert override.max_lines == 3
        assert override.align is None
        assert override.color is None

    def test_nothing_left(self):
        assert normalize_zone_override({"fontSize": "big"}) is None
        assert normalize_zone_override(None) is None


class TestNormalizeSlideMeta:
    def test_reads_all_settings(self):
        options = normalize_slide_meta({
            "headline_zone_override": {"maxLines": 2},
            "body_font_size": 28,
            "body_highlight_style": "background",
            "show_counter": False,
            "headline_highlights": [{"start": 0, "end": 4, "color": "#ffcc00"}, {"start": 5, "end": 2}],
        })
        assert options.zone_overrides["headline"].max_lines == 2
        assert options.zone_overrides["body"].font_size == 28
        assert options.highlight_styles == {"body": "background"}
        assert options.chrome.show_counter is False
        assert options.chrome.show_watermark is None
        assert options.headline_highlights == [HighlightSpan(start=0, end=4, color="#ffcc00")]

    def test_empty_meta(self):
        options = normalize_slide_meta(None)
        assert options.zone_overrides == {}
        assert options.chrome == ChromeOverrides()


class TestBuildRenderModel:
    def test_template_defaults(self):
        model = build_render_model(default_template_config(), slide(), BrandKit(), 2, 5)
        assert isinstance(model, SlideRenderModel)
        assert model.background.background_color == DEFAULT_BG
        assert model.background.use_gradient is True
        assert model.chrome.counter_text == "2/5"
        assert [b.zone.id for b in model.text_blocks] == ["headline", "body"]
        assert model.text_blocks[0].lines

    def test_brand_kit_fills_color_and_watermark(self):
        brand = BrandKit(primary_color="#123456", watermark_text="@studio", logo_url="https://cdn.test/logo.png")
        model = build_render_model(default_template_config(), slide(), brand, 1, 3)
        assert model.background.background_color == "#123456"
        assert model.chrome.watermark.text == "@studio"
        assert model.chrome.watermark.logo_url == "https://cdn.test/logo.png"

    def test_zone_override_applies(self):
        overrides = {"headline": TextZoneOverride(max_lines=1, align="left")}
        model = build_render_model(default_template_config(), slide(), BrandKit(), 1, 3, zone_overrides=overrides)
        headline = model.text_blocks[0]
        assert headline.zone.align == "left"
        assert len(headline.lines) == 1

    def test_text_scale_only_affects_wrapping(self):
        config = default_template_config()
        long_headline = "Every slide should earn the swipe to the next one or it goes"
        plain = build_render_model(config, slide(headline=long_headline), BrandKit(), 1, 3)
        scaled = build_render_model(config, slide(headline=long_headline), BrandKit(), 1, 3, text_scale=1.78)
        assert scaled.text_blocks[0].zone.font_size == plain.text_blocks[0].zone.font_size
        assert len(scaled.text_blocks[0].lines) >= len(plain.text_blocks[0].lines)

    def test_highlights_are_injected(self):
        data = slide(headline="Post less", headline_highlights=[HighlightSpan(start=0, end=4, color="#ffcc00")])
        model = build_render_model(default_template_config(), data, BrandKit(), 1, 3)
        assert model.text_blocks[0].lines[0].startswith("{{#ffcc00}}Post{{/}}")

    def test_chrome_overrides_win(self):
        model = build_render_model(
            default_template_config(), slide(), BrandKit(), 1, 3,
            chrome_overrides=ChromeOverrides(show_counter=False, show_watermark=False),
        )
        assert model.chrome.show_counter is False
        assert model.chrome.watermark.enabled is False

    def test_background_style_replaces_template_gradient(self):
        style = BackgroundStyle(
            use_gradient=False,
            gradient_direction="top",
            gradient_strength=0.8,
            gradient_extent=60,
            gradient_color="#ffffff",
            gradient_solid_size=10,
            text_color="#0a0a0a",
            background_color="#222222",
            image_urls=("https://img.test/a.jpg",),
        )
        model = build_render_model(default_template_config(), slide(), BrandKit(), 1, 3, background=style)
        bg = model.background
        assert bg.use_gradient is False
        assert bg.gradient_direction == "top"
        assert bg.text_color == "#0a0a0a"
        assert bg.background_color == "#222222"
        assert bg.background_image_url == "https://img.test/a.jpg"

    def test_secondary_image_only_on_hook(self):
        style = BackgroundStyle(
            use_gradient=True, gradient_direction="bottom", gradient_strength=0.5, gradient_extent=50,
            gradient_color="#000000", gradient_solid_size=25, text_color="#ffffff",
            image_urls=("https://img.test/a.jpg",), secondary_url="https://img.test/b.jpg",
        )
        hook = build_render_model(default_template_config(), slide(slide_type="hook"), BrandKit(), 1, 3, background=style)
        point = build_render_model(default_template_config(), slide(slide_type="point"), BrandKit(), 1, 3, background=style)
        assert hook.background.secondary_image_url == "https://img.test/b.jpg"
        assert point.background.secondary_image_url is None

    def test_headline_only_layout_has_no_body_block(self):
        model = build_render_model(get_layout_preset("headline_only"), slide(), BrandKit(), 1, 1)
        assert [b.zone.id for b in model.text_blocks] == ["headline"]

    def test_pure_and_serializable(self):
        config = default_template_config()
        first = build_render_model(config, slide(), BrandKit(), 1, 3)
        second = build_render_model(config, slide(), BrandKit(), 1, 3)
        assert first == second
        dumped = first.model_dump(mode="json", by_alias=True)
        assert "textBlocks" in dumped
        assert SlideRenderModel.model_validate(dumped) == first
