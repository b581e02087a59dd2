"""
Render model builder.

Merges a template config, one slide's content, the brand kit and the
slide's resolved background into a SlideRenderModel: a flat snapshot with
already-wrapped lines that the HTML builder (and any other process) can
consume without seeing templates or slide records.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from slidekit.schemas import (
    BrandKit,
    HighlightSpan,
    RenderBackground,
    RenderChrome,
    RenderWatermark,
    SlideData,
    SlideRenderModel,
    TemplateConfig,
    TextBlock,
    TextZoneOverride,
)
from slidekit.services.backgrounds import BackgroundStyle
from slidekit.services.fit_text import fit_text_to_zone
from slidekit.services.highlights import inject_markers

logger = logging.getLogger(__name__)

DEFAULT_BG = "#0a0a0a"
DESIGN_SIZE = 1080

_NUMERIC_KEYS = ("x", "y", "w", "h", "fontSize", "fontWeight", "lineHeight", "maxLines")
_ALIGN_VALUES = {"left", "center"}
_HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{3}){1,2}$")


@dataclass
class ChromeOverrides:
    show_counter: Optional[bool] = None
    show_watermark: Optional[bool] = None


@dataclass
class SlideRenderOptions:
    """Per-slide render settings read from slide meta."""
    zone_overrides: dict[str, TextZoneOverride] = field(default_factory=dict)
    highlight_styles: dict[str, str] = field(default_factory=dict)  # zone id -> "text" | "background"
    chrome: ChromeOverrides = field(default_factory=ChromeOverrides)
    headline_highlights: list[HighlightSpan] = field(default_factory=list)
    body_highlights: list[HighlightSpan] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _to_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) or math.isinf(number) else number


def normalize_zone_override(raw) -> Optional[TextZoneOverride]:
    """
    Read a stored zone override. Numbers may arrive as strings; everything but
    lineHeight is rounded. Fields that still fail validation are dropped.
    """
    if not isinstance(raw, dict) or not raw:
        return None

    out = {}
    for key in _NUMERIC_KEYS:
        number = _to_number(raw.get(key))
        if number is None:
            continue
        out[key] = number if key == "lineHeight" else _round_half_up(number)
    if raw.get("align") in _ALIGN_VALUES:
        out["align"] = raw["align"]
    if isinstance(raw.get("color"), str) and _HEX_COLOR.match(raw["color"]):
        out["color"] = raw["color"]

    while out:
        try:
            return TextZoneOverride.model_validate(out)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err["loc"]}
            if not bad & out.keys():
                raise
            logger.debug(f"Dropping out-of-range zone override fields: {sorted(bad)}")
            for key in bad:
                out.pop(key, None)
    return None


def _read_spans(raw) -> list[HighlightSpan]:
    if not isinstance(raw, list):
        return []
    spans = []
    for item in raw:
        try:
            spans.append(HighlightSpan.model_validate(item))
        except ValidationError:
            continue
    return spans


def normalize_slide_meta(meta: Optional[dict]) -> SlideRenderOptions:
    """Turn the loosely typed slide meta JSON into SlideRenderOptions."""
    m = meta or {}
    options = SlideRenderOptions()

    for zone_id in ("headline", "body"):
        override = normalize_zone_override(m.get(f"{zone_id}_zone_override"))

        # A bare font size setting applies when the zone override has none
        font_size = _to_number(m.get(f"{zone_id}_font_size"))
        if font_size is not None and (override is None or override.font_size is None):
            try:
                extra = TextZoneOverride(font_size=_round_half_up(font_size))
            except ValidationError:
                extra = None
            if extra is not None:
                override = override.model_copy(update={"font_size": extra.font_size}) if override else extra

        if override is not None:
            options.zone_overrides[zone_id] = override

        if m.get(f"{zone_id}_highlight_style") == "background":
            options.highlight_styles[zone_id] = "background"

    options.chrome = ChromeOverrides(
        show_counter=m["show_counter"] if isinstance(m.get("show_counter"), bool) else None,
        show_watermark=m["show_watermark"] if isinstance(m.get("show_watermark"), bool) else None,
    )
    options.headline_highlights = _read_spans(m.get("headline_highlights"))
    options.body_highlights = _read_spans(m.get("body_highlights"))
    return options


def counter_text(pattern: str, index: int, total: int) -> str:
    """
    "1/8" → "3/10": the first "1" of the pattern becomes the index and the
    first "8" the total. Positions are taken from the pattern itself, so an
    index that contains an 8 is left alone.
    """
    one = pattern.find("1")
    eight = pattern.find("8")
    out = []
    for pos, ch in enumerate(pattern):
        if pos == one:
            out.append(str(index))
        elif pos == eight:
            out.append(str(total))
        else:
            out.append(ch)
    return "".join(out)


def text_scale_for_size(width: int, height: int) -> float:
    """Cover scale of the 1080 design in the export frame; used as the wrap scale."""
    return (height if height > width else width) / DESIGN_SIZE


def _zone_text(zone_id: str, slide_data: SlideData) -> tuple[str, list[HighlightSpan]]:
    if zone_id == "headline":
        return slide_data.headline, slide_data.headline_highlights
    if zone_id == "body":
        return slide_data.body or "", slide_data.body_highlights
    return "", []


def _build_background(
    template_config: TemplateConfig,
    brand_kit: BrandKit,
    slide_type: str,
    background: Optional[BackgroundStyle],
) -> RenderBackground:
    gradient = template_config.overlays.gradient
    base_color = brand_kit.primary_color or DEFAULT_BG

    if background is None:
        return RenderBackground(
            use_gradient=gradient.enabled,
            gradient_direction=gradient.direction,
            gradient_strength=gradient.strength,
            gradient_extent=gradient.extent if gradient.extent is not None else 100,
            gradient_color=gradient.color or "#000000",
            gradient_solid_size=gradient.solid_size if gradient.solid_size is not None else 0,
            background_color=base_color,
        )

    urls = list(background.image_urls)
    secondary = None
    # The round inset image only exists on hook slides with a single background
    if slide_type == "hook" and len(urls) <= 1:
        secondary = background.secondary_url
    return RenderBackground(
        use_gradient=background.use_gradient,
        gradient_direction=background.gradient_direction,
        gradient_strength=background.gradient_strength,
        gradient_extent=background.gradient_extent,
        gradient_color=background.gradient_color,
        gradient_solid_size=background.gradient_solid_size,
        background_color=background.background_color or base_color,
        text_color=background.text_color,
        background_image_url=urls[0] if len(urls) == 1 else None,
        background_image_urls=urls,
        secondary_image_url=secondary,
    )


def build_render_model(
    template_config: TemplateConfig,
    slide_data: SlideData,
    brand_kit: BrandKit,
    slide_index: int,
    total_slides: int,
    zone_overrides: Optional[dict[str, TextZoneOverride]] = None,
    text_scale: Optional[float] = None,
    background: Optional[BackgroundStyle] = None,
    chrome_overrides: Optional[ChromeOverrides] = None,
) -> SlideRenderModel:
    """
    Build the render model for one slide. Pure: identical inputs give an
    identical model.

    text_scale multiplies the font size for wrapping only; the zone in the
    output keeps its unscaled size.
    """
    zone_overrides = zone_overrides or {}
    chrome_overrides = chrome_overrides or ChromeOverrides()

    text_blocks = []
    for zone in template_config.text_zones:
        override = zone_overrides.get(zone.id)
        merged = override.apply(zone) if override else zone

        text, spans = _zone_text(zone.id, slide_data)
        if spans:
            text = inject_markers(text, spans)

        wrap_zone = merged
        if text_scale and text_scale != 1:
            wrap_zone = merged.model_copy(update={"font_size": merged.font_size * text_scale})

        text_blocks.append(TextBlock(zone=merged.model_copy(), lines=fit_text_to_zone(text, wrap_zone)))

    chrome = template_config.chrome
    watermark = chrome.watermark
    show_counter = chrome.show_counter if chrome_overrides.show_counter is None else chrome_overrides.show_counter
    show_watermark = watermark.enabled if chrome_overrides.show_watermark is None else chrome_overrides.show_watermark

    return SlideRenderModel(
        layout=template_config.layout,
        slide_type=slide_data.slide_type,
        safe_area=template_config.safe_area.model_copy(),
        background=_build_background(template_config, brand_kit, slide_data.slide_type, background),
        text_blocks=text_blocks,
        chrome=RenderChrome(
            show_swipe=chrome.show_swipe,
            show_counter=show_counter,
            counter_text=counter_text(chrome.counter_style, slide_index, total_slides),
            swipe_type=chrome.swipe_type,
            swipe_position=chrome.swipe_position,
            watermark=RenderWatermark(
                enabled=show_watermark,
                position=watermark.position,
                logo_x=watermark.logo_x,
                logo_y=watermark.logo_y,
                text=brand_kit.watermark_text or "",
                logo_url=brand_kit.logo_url,
            ),
        ),
    )
