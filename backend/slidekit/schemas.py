"""
Typed payloads for templates, slides, backgrounds and the render model.

Template configs and render models are stored/serialized in camelCase
(the editor writes them that way); attributes are snake_case in Python.
"""

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

HEX_COLOR = r"^#([0-9A-Fa-f]{3}){1,2}$"

SlideType = Literal["hook", "point", "context", "cta", "generic"]
GradientDirection = Literal["bottom", "top", "left", "right"]
WatermarkPosition = Literal["top_left", "top_right", "bottom_left", "bottom_right", "custom"]
ExportFormat = Literal["png", "jpeg"]
ExportStatus = Literal["pending", "ready", "failed"]

EXPORT_SIZES: dict[str, tuple[int, int]] = {
    "1080x1080": (1080, 1080),
    "1080x1350": (1080, 1350),
    "1080x1920": (1080, 1920),
}

CONTENT_TYPES = {"png": "image/png", "jpeg": "image/jpeg"}
FILE_EXTENSIONS = {"png": "png", "jpeg": "jpg"}


def parse_export_size(size: str) -> tuple[int, int]:
    """Map "1080x1350" style strings to (width, height)."""
    if size not in EXPORT_SIZES:
        raise ValueError(f"Unsupported export size '{size}'. Available: {list(EXPORT_SIZES)}")
    return EXPORT_SIZES[size]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================
# TEMPLATE CONFIG
# ============================================

class SafeArea(CamelModel):
    top: int = Field(ge=0)
    right: int = Field(ge=0)
    bottom: int = Field(ge=0)
    left: int = Field(ge=0)


class TextZone(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    w: int = Field(ge=1)
    h: int = Field(ge=1)
    font_size: int = Field(ge=8, le=200)
    font_weight: int = Field(ge=100, le=900)
    line_height: float = Field(ge=0.5, le=3)
    max_lines: int = Field(ge=1, le=20)
    align: Literal["left", "center"] = "left"
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class TextZoneOverride(CamelModel):
    """Per-slide partial zone; set fields win over the template zone."""

    x: Optional[int] = Field(default=None, ge=0, le=1080)
    y: Optional[int] = Field(default=None, ge=0, le=1080)
    w: Optional[int] = Field(default=None, ge=1, le=1080)
    h: Optional[int] = Field(default=None, ge=1, le=1080)
    font_size: Optional[int] = Field(default=None, ge=8, le=200)
    font_weight: Optional[int] = Field(default=None, ge=100, le=900)
    line_height: Optional[float] = Field(default=None, ge=0.5, le=3)
    max_lines: Optional[int] = Field(default=None, ge=1, le=20)
    align: Optional[Literal["left", "center"]] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)

    def apply(self, zone: TextZone) -> TextZone:
        update = self.model_dump(exclude_none=True)
        return zone.model_copy(update=update) if update else zone


class GradientOverlay(CamelModel):
    enabled: bool
    direction: GradientDirection = "bottom"
    strength: float = Field(ge=0, le=1)
    extent: Optional[float] = Field(default=None, ge=0, le=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    solid_size: Optional[float] = Field(default=None, ge=0, le=100)


class VignetteOverlay(CamelModel):
    enabled: bool = False
    strength: float = Field(default=0.2, ge=0, le=1)


class Overlays(CamelModel):
    gradient: GradientOverlay
    vignette: VignetteOverlay = VignetteOverlay()


class WatermarkRule(CamelModel):
    enabled: bool
    position: WatermarkPosition = "bottom_left"
    logo_x: Optional[int] = Field(default=None, ge=0, le=1080)
    logo_y: Optional[int] = Field(default=None, ge=0, le=1080)


class ChromeRules(CamelModel):
    show_swipe: bool
    show_counter: bool
    counter_style: str = "1/8"
    swipe_type: str = "chevrons"
    swipe_position: str = "bottom_center"
    watermark: WatermarkRule


class BackgroundRules(CamelModel):
    allow_image: bool = True
    default_style: Literal["darken", "blur", "none"] = "darken"


class TemplateConfig(CamelModel):
    layout: Literal["headline_bottom", "headline_center", "split_top_bottom", "headline_only"]
    safe_area: SafeArea
    text_zones: list[TextZone]
    overlays: Overlays
    chrome: ChromeRules
    background_rules: BackgroundRules = BackgroundRules()


# ============================================
# SLIDE CONTENT
# ============================================

class HighlightSpan(BaseModel):
    """Half-open [start, end) range over marker-free text."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int
    color: str = "#facc15"

    @model_validator(mode="after")
    def _check_range(self):
        if self.end <= self.start:
            raise ValueError(f"span end ({self.end}) must be greater than start ({self.start})")
        return self


class SlideData(BaseModel):
    headline: str
    body: Optional[str] = None
    slide_index: int = Field(ge=1)
    slide_type: SlideType = "generic"
    headline_highlights: list[HighlightSpan] = []
    body_highlights: list[HighlightSpan] = []


class BrandKit(BaseModel):
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    watermark_text: Optional[str] = None
    logo_url: Optional[str] = None
    logo_storage_path: Optional[str] = None


# ============================================
# BACKGROUNDS
# ============================================

class Attribution(CamelModel):
    photographer_name: str
    photographer_username: str
    profile_url: str
    unsplash_url: str = "https://unsplash.com"

    def credit_line(self) -> str:
        return (
            f"Photo by {self.photographer_name} (@{self.photographer_username}) "
            f"on Unsplash: {self.profile_url}"
        )


class ImageSlot(BaseModel):
    """One background image: a stored path, a pasted URL, or a library asset."""

    model_config = ConfigDict(populate_by_name=True)

    storage_path: Optional[str] = None
    image_url: Optional[str] = None
    asset_id: Optional[str] = None
    alternates: list[str] = []
    attribution: Optional[Attribution] = Field(default=None, alias="unsplash_attribution")

    def is_empty(self) -> bool:
        return not (self.storage_path or self.image_url or self.asset_id)


class SlideOverlay(CamelModel):
    """Slide-level gradient settings. darken == 0.5 means "not set"."""

    gradient: Optional[bool] = None
    darken: Optional[float] = Field(default=None, ge=0, le=1)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    text_color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    direction: Optional[GradientDirection] = None
    extent: Optional[float] = Field(default=None, ge=0, le=100)
    solid_size: Optional[float] = Field(default=None, ge=0, le=100)


class ImageDisplay(CamelModel):
    position: str = "center"
    fit: Literal["cover", "contain"] = "cover"
    frame: Optional[Literal["none", "thin", "medium", "thick", "chunky", "heavy"]] = None
    frame_radius: Optional[int] = Field(default=None, ge=0, le=48)
    frame_color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    layout: Literal["auto", "side-by-side", "stacked", "grid"] = "auto"
    gap: Optional[int] = Field(default=None, ge=0, le=48)


class _BackgroundBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    color: Optional[str] = None
    gradient_on: Optional[bool] = Field(default=None, alias="gradientOn")
    overlay: Optional[SlideOverlay] = None
    image_display: Optional[ImageDisplay] = None


class SolidBackground(_BackgroundBase):
    mode: Literal["solid"] = "solid"


class GradientBackground(_BackgroundBase):
    mode: Literal["gradient"] = "gradient"


class SingleImageBackground(_BackgroundBase):
    mode: Literal["image"] = "image"
    image: ImageSlot
    secondary: Optional[ImageSlot] = None


class MultiImageBackground(_BackgroundBase):
    mode: Literal["multi_image"] = "multi_image"
    images: list[ImageSlot] = Field(min_length=1, max_length=4)


BackgroundDescriptor = Annotated[
    Union[SolidBackground, GradientBackground, SingleImageBackground, MultiImageBackground],
    Field(discriminator="mode"),
]

_background_adapter = TypeAdapter(BackgroundDescriptor)

_SHARED_KEYS = ("color", "gradientOn", "gradient_on", "overlay", "image_display")


def parse_background(raw) -> Optional[BackgroundDescriptor]:
    """
    Read a stored slide background into the tagged union.

    Accepts the current shape (mode = solid | gradient | image | multi_image
    with nested slots) and the flat editor shape where image fields sit on
    the top level (mode = "image", image_url / storage_path / images[]).
    Returns None for empty or unreadable input.
    """
    if not isinstance(raw, dict) or not raw:
        return None

    shared = {k: raw[k] for k in _SHARED_KEYS if raw.get(k) is not None}
    mode = raw.get("mode")

    try:
        if mode in ("solid", "gradient", "multi_image") or (mode == "image" and "image" in raw):
            return _background_adapter.validate_python(raw)

        if mode == "image":
            images = [img for img in raw.get("images") or [] if isinstance(img, dict)]
            if images:
                return MultiImageBackground(images=images[:4], **shared)
            if raw.get("image_url") or raw.get("storage_path") or raw.get("asset_id"):
                secondary = None
                if raw.get("secondary_image_url") or raw.get("secondary_storage_path"):
                    secondary = ImageSlot(
                        image_url=raw.get("secondary_image_url"),
                        storage_path=raw.get("secondary_storage_path"),
                        asset_id=raw.get("secondary_asset_id"),
                    )
                image = ImageSlot(
                    image_url=raw.get("image_url"),
                    storage_path=raw.get("storage_path"),
                    asset_id=raw.get("asset_id"),
                    unsplash_attribution=raw.get("unsplash_attribution"),
                )
                return SingleImageBackground(image=image, secondary=secondary, **shared)

        if raw.get("style") == "solid":
            return SolidBackground(**shared)
        return GradientBackground(**shared)
    except ValidationError as e:
        logger.warning(f"Ignoring unreadable slide background: {e.error_count()} validation error(s)")
        return None


# ============================================
# RENDER MODEL
# ============================================

class RenderBackground(CamelModel):
    use_gradient: bool
    gradient_direction: GradientDirection
    gradient_strength: float
    gradient_extent: float = 100
    gradient_color: str = "#000000"
    gradient_solid_size: float = 0
    background_color: str
    text_color: str = "#ffffff"
    background_image_url: Optional[str] = None
    background_image_urls: list[str] = []
    secondary_image_url: Optional[str] = None


class TextBlock(CamelModel):
    zone: TextZone
    lines: list[str]


class RenderWatermark(CamelModel):
    enabled: bool
    position: WatermarkPosition
    logo_x: Optional[int] = None
    logo_y: Optional[int] = None
    text: str = ""
    logo_url: Optional[str] = None


class RenderChrome(CamelModel):
    show_swipe: bool
    show_counter: bool
    counter_text: str
    swipe_type: str = "chevrons"
    swipe_position: str = "bottom_center"
    watermark: RenderWatermark


class SlideRenderModel(CamelModel):
    """Resolved, template-free description of one slide."""

    layout: str
    slide_type: SlideType = "generic"
    safe_area: SafeArea
    background: RenderBackground
    text_blocks: list[TextBlock]
    chrome: RenderChrome
