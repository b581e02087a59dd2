"""
API routes for slide rendering and carousel export.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from slidekit.config import get_settings
from slidekit.database import get_db
from slidekit.errors import InvalidRequestError, SlideKitError
from slidekit.schemas import CONTENT_TYPES, EXPORT_SIZES, FILE_EXTENSIONS, ExportFormat, TextZone
from slidekit.services.exporter import ExportPipeline
from slidekit.services.fit_text import fit_text_to_zone, shorten_text_to_zone
from slidekit.services.highlights import (
    auto_highlight_words,
    inject_markers,
    normalize_spans,
    spans_from_words,
)
from slidekit.services.rasterizer import Rasterizer
from slidekit.services.records import RecordStore
from slidekit.services.storage import ObjectStorage
from slidekit.templates import list_layout_presets

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependencies

@lru_cache()
def get_storage() -> ObjectStorage:
    return ObjectStorage(get_settings())


def get_rasterizer_factory():
    settings = get_settings()
    return lambda: Rasterizer(settings)


def get_pipeline(
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    rasterizer_factory=Depends(get_rasterizer_factory),
) -> ExportPipeline:
    return ExportPipeline(
        RecordStore(db),
        storage,
        rasterizer_factory=rasterizer_factory,
        settings=get_settings(),
    )


# Request/Response Models

class HealthResponse(BaseModel):
    status: str
    version: str


class CreateExportRequest(BaseModel):
    format: Optional[ExportFormat] = None


class CreateExportResponse(BaseModel):
    export_id: str
    status: str


class ExportStatusResponse(BaseModel):
    export_id: str
    status: str
    download_url: Optional[str] = None
    slide_urls: list[str] = []
    error: Optional[str] = None


class VideoSlideResponse(BaseModel):
    background_urls: list[str]
    overlay_url: Optional[str]


class VideoPrepResponse(BaseModel):
    run_id: str
    slides: list[VideoSlideResponse]


class FitTextRequest(BaseModel):
    text: str
    zone: TextZone


class FitTextResponse(BaseModel):
    lines: list[str]
    shortened: str


class SpanIn(BaseModel):
    start: int
    end: int
    color: Optional[str] = None


class NormalizeHighlightsRequest(BaseModel):
    text: str
    spans: list[SpanIn] = []
    words: Optional[list[str]] = None  # highlight these words instead of explicit spans
    auto: bool = False  # pick punch words when neither spans nor words are given
    color: Optional[str] = None


class SpanOut(BaseModel):
    start: int
    end: int
    color: str


class NormalizeHighlightsResponse(BaseModel):
    spans: list[SpanOut]
    marked_text: str


# Routes

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version="1.0.0")


@router.get("/layouts")
async def get_layouts():
    """Layout presets a template can start from."""
    return list_layout_presets()


@router.get("/render/slide/{slide_id}")
async def render_slide(
    slide_id: str,
    format: ExportFormat = Query("png"),
    size: str = Query(None),
    pipeline: ExportPipeline = Depends(get_pipeline),
):
    """Render one slide and return it as a download."""
    size = size or get_settings().default_export_size
    if size not in EXPORT_SIZES:
        raise InvalidRequestError(f"Unsupported size {size}; use one of {', '.join(EXPORT_SIZES)}")

    data = await pipeline.render_slide(slide_id, image_format=format, size=size)
    filename = f"slide-{slide_id[:8]}.{FILE_EXTENSIONS[format]}"
    return Response(
        content=data,
        media_type=CONTENT_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"', "Cache-Control": "no-store"},
    )


@router.post("/export/{carousel_id}", response_model=CreateExportResponse)
async def create_export(
    carousel_id: str,
    request: Optional[CreateExportRequest] = None,
    pipeline: ExportPipeline = Depends(get_pipeline),
):
    """Create a pending export; run it with POST /export/{carousel_id}/{export_id}."""
    export = await pipeline.create_export(carousel_id, request.format if request else None)
    return CreateExportResponse(export_id=export.id, status=export.status)


@router.post("/export/{carousel_id}/{export_id}")
async def run_export(
    carousel_id: str,
    export_id: str,
    pipeline: ExportPipeline = Depends(get_pipeline),
):
    """Render the carousel into a zip. Blocks until the export is ready or failed."""
    try:
        await pipeline.run_archive(carousel_id, export_id)
    except InvalidRequestError:
        raise
    except SlideKitError as e:
        return JSONResponse({"status": "failed", "detail": e.message}, status_code=e.status_code)
    return {"status": "ready"}


@router.get("/export/{carousel_id}/{export_id}", response_model=ExportStatusResponse)
async def get_export(
    carousel_id: str,
    export_id: str,
    pipeline: ExportPipeline = Depends(get_pipeline),
):
    """Export status, with a download URL and per-slide URLs once ready."""
    return ExportStatusResponse(**await pipeline.export_status(carousel_id, export_id))


@router.post("/carousel/{carousel_id}/render-for-video", response_model=VideoPrepResponse)
async def render_for_video(
    carousel_id: str,
    pipeline: ExportPipeline = Depends(get_pipeline),
):
    """Background and overlay frames per slide for the video editor."""
    result = await pipeline.run_video_prep(carousel_id)
    return VideoPrepResponse(
        run_id=result.run_id,
        slides=[
            VideoSlideResponse(background_urls=s.background_urls, overlay_url=s.overlay_url)
            for s in result.slides
        ],
    )


@router.post("/text/fit", response_model=FitTextResponse)
async def fit_text(request: FitTextRequest):
    """Wrap text into a zone's lines the way the renderer will."""
    return FitTextResponse(
        lines=fit_text_to_zone(request.text, request.zone),
        shortened=shorten_text_to_zone(request.text, request.zone),
    )


@router.post("/highlights/normalize", response_model=NormalizeHighlightsResponse)
async def normalize_highlights(request: NormalizeHighlightsRequest):
    """Snap highlight spans to whole words and return the marked text."""
    if request.spans:
        spans = normalize_spans(request.text, [s.model_dump() for s in request.spans])
    elif request.words is not None:
        spans = spans_from_words(request.text, request.words, request.color)
    elif request.auto:
        spans = spans_from_words(request.text, auto_highlight_words(request.text), request.color)
    else:
        spans = []

    return NormalizeHighlightsResponse(
        spans=[SpanOut(start=s.start, end=s.end, color=s.color) for s in spans],
        marked_text=inject_markers(request.text, spans),
    )
