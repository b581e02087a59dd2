"""
Export pipeline.

Three entry points share one per-slide path (template lookup, meta
normalization, background resolution, render model, HTML, screenshot):

- render_slide: one slide as image bytes
- run_archive: every slide of a carousel into a zip, tracked by an Export record
- run_video_prep: layered background/overlay frames per slide for the video editor

Slides are rendered one after another with a single browser per run.
"""

import asyncio
import dataclasses
import io
import logging
import uuid
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Optional

from pydantic import ValidationError

from slidekit.config import Settings, get_settings
from slidekit.errors import NotFoundError, StorageError, TemplateResolutionError
from slidekit.schemas import (
    CONTENT_TYPES,
    FILE_EXTENSIONS,
    Attribution,
    BrandKit,
    SlideData,
    TemplateConfig,
    parse_background,
    parse_export_size,
)
from slidekit.services.backgrounds import (
    BackgroundResolver,
    descriptor_has_image,
    merge_background_style,
)
from slidekit.services.rasterizer import Rasterizer
from slidekit.services.render_model import (
    SlideRenderOptions,
    build_render_model,
    normalize_slide_meta,
    text_scale_for_size,
)
from slidekit.services.slide_html import HtmlOptions, RenderPass, render_slide_html
from slidekit.services.storage import ExportPaths, VideoRenderPaths, slide_file_name

logger = logging.getLogger(__name__)

_SLIDE_TYPES = {"hook", "point", "context", "cta", "generic"}


@dataclass
class ArchiveResult:
    export_id: str
    zip_path: str
    slide_paths: list[str] = field(default_factory=list)
    has_caption: bool = False
    has_credits: bool = False


@dataclass
class VideoSlideFrames:
    background_urls: list[str] = field(default_factory=list)
    overlay_url: Optional[str] = None


@dataclass
class VideoPrepResult:
    run_id: str
    slides: list[VideoSlideFrames] = field(default_factory=list)


@dataclass
class _SlideJob:
    """Everything about one slide that does not depend on the render pass."""
    slide: object
    number: int  # 1-based
    config: TemplateConfig
    data: SlideData
    options: SlideRenderOptions
    descriptor: object


def caption_text(caption_variants: Optional[dict], hashtags: Optional[list]) -> str:
    """Caption for caption.txt: the medium variant (else short, else spicy) then the hashtags."""
    variants = caption_variants or {}
    caption = next((variants[k] for k in ("medium", "short", "spicy") if variants.get(k)), "")
    tags = " ".join(f"#{str(tag).lstrip('#')}" for tag in (hashtags or []) if str(tag).strip("# "))
    return "\n\n".join(part for part in (caption.strip(), tags) if part)


def credits_text(attributions: list[Attribution]) -> str:
    lines = []
    for attribution in attributions:
        line = attribution.credit_line()
        if line not in lines:
            lines.append(line)
    return "\n".join(lines)


def build_zip(files: list[tuple[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files:
            zf.writestr(name, data)
    return buf.getvalue()


class ExportPipeline:
    def __init__(
        self,
        records,
        storage,
        resolver: Optional[BackgroundResolver] = None,
        rasterizer_factory: Optional[Callable[[], Rasterizer]] = None,
        settings: Optional[Settings] = None,
    ):
        self.records = records
        self.storage = storage
        self.settings = settings or get_settings()
        self.resolver = resolver or BackgroundResolver(
            storage, settings=self.settings, asset_paths=records.get_asset_path
        )
        self.rasterizer_factory = rasterizer_factory or (lambda: Rasterizer(self.settings))

    # ============================================
    # LOOKUPS
    # ============================================

    async def _get_carousel(self, carousel_id: str):
        carousel = await self.records.get_carousel(carousel_id)
        if carousel is None:
            raise NotFoundError(f"Carousel {carousel_id} not found")
        return carousel

    async def _brand_kit(self, carousel) -> BrandKit:
        if not carousel.project_id:
            return BrandKit()
        project = await self.records.get_project(carousel.project_id)
        if project is None:
            raise NotFoundError(f"Project {carousel.project_id} not found")

        try:
            brand_kit = BrandKit.model_validate(project.brand_kit or {})
        except ValidationError:
            logger.warning(f"Ignoring invalid brand kit on project {project.id}")
            return BrandKit()

        if brand_kit.logo_storage_path and not brand_kit.logo_url:
            try:
                logo_url = await self.storage.signed_url(brand_kit.logo_storage_path, check_exists=True)
                brand_kit = brand_kit.model_copy(update={"logo_url": logo_url})
            except StorageError as e:
                logger.warning(f"Brand logo unavailable: {e.message}")
        return brand_kit

    async def _template_config(self, slide, number: int, carousel, cache: dict) -> TemplateConfig:
        template_id = (
            slide.template_id
            or carousel.default_template_id
            or await self.records.default_template_id(carousel.user_id)
        )
        if not template_id:
            raise TemplateResolutionError(number)
        if template_id in cache:
            return cache[template_id]

        template = await self.records.get_template(template_id)
        if template is None:
            raise TemplateResolutionError(number, "template not found")
        try:
            config = TemplateConfig.model_validate(template.config)
        except ValidationError as e:
            logger.error(f"Template {template_id} has an invalid config: {e.error_count()} errors")
            raise TemplateResolutionError(number, "has an invalid template config") from e
        cache[template_id] = config
        return config

    async def _jobs(self, carousel, slides: list) -> list[_SlideJob]:
        """Resolve templates and meta for every slide before anything is rendered."""
        cache = {}
        jobs = []
        for position, slide in enumerate(slides):
            number = position + 1
            config = await self._template_config(slide, number, carousel, cache)
            jobs.append(self._job(slide, number, config))
        return jobs

    def _job(self, slide, number: int, config: TemplateConfig) -> _SlideJob:
        options = normalize_slide_meta(slide.meta)
        slide_type = slide.slide_type if slide.slide_type in _SLIDE_TYPES else "generic"
        data = SlideData(
            headline=slide.headline or "",
            body=slide.body,
            slide_index=number,
            slide_type=slide_type,
            headline_highlights=options.headline_highlights,
            body_highlights=options.body_highlights,
        )
        return _SlideJob(
            slide=slide,
            number=number,
            config=config,
            data=data,
            options=options,
            descriptor=parse_background(slide.background),
        )

    # ============================================
    # RENDERING
    # ============================================

    def _html(self, job: _SlideJob, brand_kit: BrandKit, total: int, style, width: int, height: int, pass_: RenderPass) -> str:
        model = build_render_model(
            job.config,
            job.data,
            brand_kit,
            job.number,
            total,
            zone_overrides=job.options.zone_overrides,
            text_scale=text_scale_for_size(width, height),
            background=style,
            chrome_overrides=job.options.chrome,
        )
        display = job.descriptor.image_display if job.descriptor is not None else None
        return render_slide_html(
            model,
            width=width,
            height=height,
            pass_=pass_,
            options=HtmlOptions(highlight_styles=job.options.highlight_styles, image_display=display),
        )

    async def _render_full(
        self, rasterizer, job: _SlideJob, brand_kit: BrandKit, total: int,
        image_format: str, width: int, height: int,
    ) -> tuple[bytes, list[Attribution]]:
        has_image = descriptor_has_image(job.descriptor)
        resolved = await self.resolver.resolve(
            job.descriptor,
            require_image=has_image and self.settings.require_background_images,
        )
        style = merge_background_style(job.config, job.descriptor, has_image)
        if style is not None:
            style = dataclasses.replace(
                style,
                image_urls=tuple(resolved.image_urls),
                secondary_url=resolved.secondary_url,
            )
        html = self._html(job, brand_kit, total, style, width, height, RenderPass.FULL)
        data = await rasterizer.capture(html, width, height, image_format=image_format)
        return data, resolved.attributions

    async def render_slide(self, slide_id: str, image_format: str = "png", size: Optional[str] = None) -> bytes:
        """Render one slide to PNG or JPEG bytes."""
        width, height = parse_export_size(size or self.settings.default_export_size)
        slide = await self.records.get_slide(slide_id)
        if slide is None:
            raise NotFoundError(f"Slide {slide_id} not found")
        carousel = await self._get_carousel(slide.carousel_id)
        brand_kit = await self._brand_kit(carousel)
        total = len(await self.records.list_slides(carousel.id)) or 1

        number = slide.slide_index + 1
        config = await self._template_config(slide, number, carousel, {})
        job = self._job(slide, number, config)

        async with self.rasterizer_factory() as rasterizer:
            data, _ = await self._render_full(rasterizer, job, brand_kit, total, image_format, width, height)
        logger.info(f"Rendered slide {slide_id} ({width}x{height} {image_format}, {len(data)} bytes)")
        return data

    # ============================================
    # ARCHIVE EXPORT
    # ============================================

    async def create_export(self, carousel_id: str, image_format: Optional[str] = None):
        carousel = await self._get_carousel(carousel_id)
        return await self.records.create_export(
            carousel.id, image_format or carousel.export_format or self.settings.default_export_format
        )

    async def run_archive(self, carousel_id: str, export_id: str) -> ArchiveResult:
        """
        Render every slide, upload the images and a zip, and mark the export
        ready. On any failure the export is marked failed and the error is
        re-raised.
        """
        export = await self.records.claim_export(export_id, carousel_id)
        logger.info(f"Export {export_id} started for carousel {carousel_id}")
        try:
            result = await self._archive(export)
        except Exception as e:
            await self._mark_failed(export_id, e)
            raise
        logger.info(f"Export {export_id} ready ({len(result.slide_paths)} slides)")
        return result

    async def _archive(self, export) -> ArchiveResult:
        carousel = await self._get_carousel(export.carousel_id)
        image_format = export.format if export.format in CONTENT_TYPES else "png"
        ext = FILE_EXTENSIONS[image_format]
        width, height = parse_export_size(carousel.export_size or self.settings.default_export_size)

        slides = await self.records.list_slides(carousel.id)
        if not slides:
            raise NotFoundError(f"Carousel {carousel.id} has no slides")
        jobs = await self._jobs(carousel, slides)
        brand_kit = await self._brand_kit(carousel)

        paths = ExportPaths(carousel.user_id, carousel.id, export.id)
        result = ArchiveResult(export_id=export.id, zip_path=paths.zip_path)
        files = []
        attributions = []

        async with self.rasterizer_factory() as rasterizer:
            for i, job in enumerate(jobs):
                if i:
                    await asyncio.sleep(self.settings.inter_slide_delay_ms / 1000)
                data, slide_attributions = await self._render_full(
                    rasterizer, job, brand_kit, len(jobs), image_format, width, height
                )
                path = paths.slide_path(i, ext)
                await self.storage.upload(path, data, CONTENT_TYPES[image_format], upsert=True)
                files.append((slide_file_name(i, ext), data))
                attributions.extend(slide_attributions)
                result.slide_paths.append(path)
                logger.info(f"Export {export.id}: slide {job.number}/{len(jobs)} done")

        caption = caption_text(carousel.caption_variants, carousel.hashtags)
        if caption:
            files.append(("caption.txt", caption.encode("utf-8")))
            result.has_caption = True
        credits = credits_text(attributions)
        if credits:
            files.append(("credits.txt", credits.encode("utf-8")))
            result.has_credits = True

        await self.storage.upload(paths.zip_path, build_zip(files), "application/zip", upsert=True)
        await self.records.update_export(export.id, status="ready", storage_path=paths.zip_path)
        return result

    async def _mark_failed(self, export_id: str, error: Exception):
        message = getattr(error, "message", None) or "Export failed"
        logger.error(f"Export {export_id} failed: {message}")
        try:
            await self.records.rollback()
            await self.records.update_export(export_id, status="failed", error_message=message)
        except Exception as e:
            # The original error is what the caller sees
            logger.error(f"Could not mark export {export_id} failed: {e}")

    async def export_status(self, carousel_id: str, export_id: str) -> dict:
        """Status of an export, with signed URLs once it is ready."""
        export = await self.records.get_export(export_id, carousel_id)
        if export is None:
            raise NotFoundError(f"Export {export_id} not found")

        status = {"export_id": export.id, "status": export.status, "download_url": None, "slide_urls": []}
        if export.status == "failed":
            status["error"] = export.error_message
        if export.status != "ready" or not export.storage_path:
            return status

        carousel = await self._get_carousel(carousel_id)
        status["download_url"] = await self.storage.signed_url(
            export.storage_path, download_name=f"carousel-{carousel_id[:8]}.zip"
        )
        paths = ExportPaths(carousel.user_id, carousel.id, export.id)
        ext = FILE_EXTENSIONS.get(export.format, "png")
        for i in range(len(await self.records.list_slides(carousel.id))):
            status["slide_urls"].append(await self.storage.signed_url(paths.slide_path(i, ext)))
        return status

    # ============================================
    # VIDEO PREP
    # ============================================

    async def _local_url(self, url: str, storage_path: str) -> str:
        """Copy external images into storage so the browser never waits on a third party."""
        if self.storage.owns_url(url):
            return url
        copied = await self.resolver.materialize(url, storage_path)
        return copied or url

    async def run_video_prep(self, carousel_id: str) -> VideoPrepResult:
        """
        Per slide: one background frame per image variant (a single plain
        background frame when there is none) and one transparent overlay
        frame with the text and chrome.
        """
        carousel = await self._get_carousel(carousel_id)
        width, height = parse_export_size(carousel.export_size or self.settings.default_export_size)
        slides = await self.records.list_slides(carousel.id)
        if not slides:
            raise NotFoundError(f"Carousel {carousel.id} has no slides")
        jobs = await self._jobs(carousel, slides)
        brand_kit = await self._brand_kit(carousel)

        run_id = str(uuid.uuid4())
        paths = VideoRenderPaths(carousel.user_id, carousel.id, run_id)
        result = VideoPrepResult(run_id=run_id)
        logger.info(f"Video prep {run_id} started for carousel {carousel.id} ({len(jobs)} slides)")

        async with self.rasterizer_factory() as rasterizer:
            for i, job in enumerate(jobs):
                if i:
                    await asyncio.sleep(self.settings.inter_slide_delay_ms / 1000)
                frames = VideoSlideFrames()
                has_image = descriptor_has_image(job.descriptor)
                style = merge_background_style(job.config, job.descriptor, has_image)

                variants = await self.resolver.resolve_video_variants(job.descriptor)
                backgrounds = [None]
                if variants:
                    backgrounds = [
                        await self._local_url(url, paths.source_path(i, v)) for v, url in enumerate(variants)
                    ]

                for v, url in enumerate(backgrounds):
                    frame_style = style
                    if style is not None:
                        frame_style = dataclasses.replace(style, image_urls=(url,) if url else (), secondary_url=None)
                    html = self._html(job, brand_kit, len(jobs), frame_style, width, height, RenderPass.BACKGROUND)
                    data = await rasterizer.capture(html, width, height, image_format="png")
                    path = paths.background_path(i, v)
                    await self.storage.upload(path, data, "image/png", upsert=True)
                    frames.background_urls.append(await self.storage.signed_url(path))

                html = self._html(job, brand_kit, len(jobs), style, width, height, RenderPass.OVERLAY)
                data = await rasterizer.capture(html, width, height, image_format="png", transparent=True)
                overlay_path = paths.overlay_path(i)
                await self.storage.upload(overlay_path, data, "image/png", upsert=True)
                frames.overlay_url = await self.storage.signed_url(overlay_path)

                result.slides.append(frames)
                logger.info(
                    f"Video prep {run_id}: slide {job.number}/{len(jobs)} "
                    f"({len(frames.background_urls)} backgrounds)"
                )

        logger.info(f"Video prep {run_id} finished")
        return result
