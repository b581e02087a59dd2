"""
Background resolution.

Turns a slide's stored BackgroundDescriptor into fetchable image URLs:
stored paths become short-lived signed URLs, pasted http(s) URLs pass
through. A slot that cannot be resolved is skipped with a warning; the
slide then renders with whatever is left, down to its plain color.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Awaitable, Callable, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from slidekit.config import Settings, get_settings
from slidekit.errors import BackgroundUnavailable, StorageError
from slidekit.schemas import (
    Attribution,
    GradientBackground,
    ImageSlot,
    MultiImageBackground,
    SingleImageBackground,
    SlideOverlay,
    SolidBackground,
    TemplateConfig,
)

logger = logging.getLogger(__name__)

MAX_VIDEO_BACKGROUNDS = 5
DEFAULT_OVERLAY_COLOR = "#0a0a0a"
# darken == 0.5 is what the editor stores when the user never touched the slider
UNSET_DARKEN = 0.5

FETCH_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/*,*/*;q=0.9",
}
_IMAGE_EXT = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)
_PIL_EXTENSIONS = {"PNG": "png", "WEBP": "webp", "GIF": "gif", "JPEG": "jpg"}


def is_http_url(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower().startswith(("http://", "https://"))


def contrasting_text_color(hex_color: Optional[str]) -> str:
    """Near-black text on light colors, white on dark ones."""
    value = (hex_color or "").lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    if len(value) != 6:
        return "#ffffff"
    try:
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return "#ffffff"
    brightness = (r * 299 + g * 587 + b * 114) / 1000.0
    return "#0a0a0a" if brightness >= 145 else "#ffffff"


@dataclass(frozen=True)
class BackgroundStyle:
    """Gradient and color settings of one slide after merging slide over template."""
    use_gradient: bool
    gradient_direction: str
    gradient_strength: float
    gradient_extent: float
    gradient_color: str
    gradient_solid_size: float
    text_color: str
    background_color: Optional[str] = None
    image_urls: tuple[str, ...] = ()
    secondary_url: Optional[str] = None


@dataclass
class ResolvedBackground:
    image_urls: list[str] = field(default_factory=list)
    secondary_url: Optional[str] = None
    attributions: list[Attribution] = field(default_factory=list)

    @property
    def has_image(self) -> bool:
        return bool(self.image_urls)


def descriptor_has_image(descriptor) -> bool:
    """True for image backgrounds with at least one filled slot, resolved or not."""
    match descriptor:
        case SingleImageBackground(image=image):
            return not image.is_empty()
        case MultiImageBackground(images=images):
            return any(not slot.is_empty() for slot in images)
        case _:
            return False


def merge_background_style(template_config: TemplateConfig, descriptor, has_image: bool) -> Optional[BackgroundStyle]:
    """
    Slide overlay settings over template gradient defaults. Returns None when
    the slide has no background of its own, so the template applies as is.
    """
    if descriptor is None:
        return None

    gradient = template_config.overlays.gradient
    overlay = descriptor.overlay or SlideOverlay()

    direction = overlay.direction or gradient.direction or "bottom"
    color = overlay.color or gradient.color or DEFAULT_OVERLAY_COLOR
    if overlay.darken is not None and overlay.darken != UNSET_DARKEN:
        strength = overlay.darken
    else:
        strength = gradient.strength
    extent = overlay.extent if overlay.extent is not None else (gradient.extent if gradient.extent is not None else 50)
    solid_size = overlay.solid_size if overlay.solid_size is not None else (
        gradient.solid_size if gradient.solid_size is not None else 25
    )

    default_style = template_config.background_rules.default_style
    if has_image and default_style in ("none", "blur"):
        use_gradient = False
    elif descriptor.gradient_on is not None:
        use_gradient = descriptor.gradient_on
    elif overlay.gradient is not None:
        use_gradient = overlay.gradient
    else:
        use_gradient = True

    return BackgroundStyle(
        use_gradient=use_gradient,
        gradient_direction=direction,
        gradient_strength=strength,
        gradient_extent=extent,
        gradient_color=color,
        gradient_solid_size=solid_size,
        text_color=overlay.text_color or contrasting_text_color(color),
        background_color=descriptor.color,
    )


class BackgroundResolver:
    """
    Resolves descriptors for one pipeline run.

    asset_paths maps a library asset id to its storage path; without it,
    asset-only slots are skipped.
    """

    def __init__(
        self,
        storage,
        concurrency: Optional[int] = None,
        settings: Optional[Settings] = None,
        asset_paths: Optional[Callable[[str], Awaitable[Optional[str]]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.asset_paths = asset_paths
        self._transport = transport
        self._semaphore = asyncio.Semaphore(concurrency or self.settings.resolve_concurrency)

    async def _resolve_slot(self, slot: Optional[ImageSlot]) -> Optional[str]:
        if slot is None:
            return None
        if slot.image_url:
            if is_http_url(slot.image_url):
                return slot.image_url.strip()
            logger.warning(f"Skipping background with unsupported URL scheme: {slot.image_url[:40]}")
            return None

        path = slot.storage_path
        if not path and slot.asset_id and self.asset_paths:
            path = await self.asset_paths(slot.asset_id)
        if not path:
            return None

        async with self._semaphore:
            try:
                return await self.storage.signed_url(path, check_exists=True)
            except StorageError as e:
                logger.warning(f"Skipping background image {path}: {e.message}")
                return None

    async def _resolve_slots(self, slots: list[ImageSlot]) -> list[tuple[ImageSlot, str]]:
        urls = await asyncio.gather(*(self._resolve_slot(slot) for slot in slots))
        return [(slot, url) for slot, url in zip(slots, urls) if url]

    async def resolve(self, descriptor, require_image: bool = False) -> ResolvedBackground:
        """Signed/pass-through URLs for every usable slot, in slot order."""
        resolved = ResolvedBackground()

        match descriptor:
            case None | SolidBackground() | GradientBackground():
                return resolved
            case SingleImageBackground(image=image, secondary=secondary):
                url, secondary_url = await asyncio.gather(self._resolve_slot(image), self._resolve_slot(secondary))
                if url:
                    resolved.image_urls.append(url)
                    if image.attribution:
                        resolved.attributions.append(image.attribution)
                resolved.secondary_url = secondary_url
                if secondary_url and secondary and secondary.attribution:
                    resolved.attributions.append(secondary.attribution)
            case MultiImageBackground(images=images):
                for slot, url in await self._resolve_slots(images):
                    resolved.image_urls.append(url)
                    if slot.attribution:
                        resolved.attributions.append(slot.attribution)
            case _:
                raise TypeError(f"Unknown background descriptor: {type(descriptor).__name__}")

        if not resolved.image_urls:
            if require_image:
                raise BackgroundUnavailable("No usable background image")
            logger.warning("Image background resolved to nothing; rendering on the plain color")
        return resolved

    async def resolve_video_variants(self, descriptor) -> list[str]:
        """
        Background frames for video: a single slot gives its primary image
        plus http(s) alternates, several slots give one image each.
        Capped at MAX_VIDEO_BACKGROUNDS.
        """
        match descriptor:
            case SingleImageBackground(image=image):
                slots = [image]
            case MultiImageBackground(images=images):
                slots = list(images)
            case _:
                return []

        if len(slots) == 1:
            primary = await self._resolve_slot(slots[0])
            if not primary:
                return []
            alternates = [u.strip() for u in slots[0].alternates if is_http_url(u)]
            return ([primary] + alternates)[:MAX_VIDEO_BACKGROUNDS]

        urls = [url for _, url in await self._resolve_slots(slots)]
        return urls[:MAX_VIDEO_BACKGROUNDS]

    async def materialize(self, url: str, storage_path: str) -> Optional[str]:
        """
        Copy an external image into storage so the headless browser loads it
        from us. Returns a signed URL for the copy, or None when the source is
        unreachable, too large, or not an image.
        """
        limit = self.settings.max_image_bytes
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.image_fetch_timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url, headers=FETCH_HEADERS) as response:
                    if response.status_code != 200:
                        logger.warning(f"Image fetch returned {response.status_code}: {url[:80]}")
                        return None
                    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
                    if content_type.startswith("text/"):
                        logger.warning(f"Image fetch returned {content_type}: {url[:80]}")
                        return None
                    buf = bytearray()
                    async for chunk in response.aiter_bytes():
                        buf.extend(chunk)
                        if len(buf) > limit:
                            logger.warning(f"Image larger than {limit} bytes, skipping: {url[:80]}")
                            return None
        except httpx.HTTPError as e:
            logger.warning(f"Image fetch failed for {url[:80]}: {e}")
            return None

        data = bytes(buf)
        if not data:
            return None
        try:
            with Image.open(BytesIO(data)) as img:
                image_format = img.format
                img.verify()
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Not a decodable image ({e}): {url[:80]}")
            return None

        ext = _PIL_EXTENSIONS.get(image_format, "jpg")
        path = _IMAGE_EXT.sub(f".{ext}", storage_path) if _IMAGE_EXT.search(storage_path) else f"{storage_path}.{ext}"
        mime = Image.MIME.get(image_format, f"image/{ext}")
        try:
            await self.storage.upload(path, data, mime, upsert=True)
            return await self.storage.signed_url(path)
        except StorageError as e:
            logger.warning(f"Could not store copied image {path}: {e.message}")
            return None
