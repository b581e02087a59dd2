"""
Pytest configuration and fixtures.

The export pipeline is exercised against in-memory fakes of the record
store, object storage and rasterizer; nothing here needs a database, a
bucket or a browser.
"""

import copy
import io
import itertools
from types import SimpleNamespace
from typing import Optional

import pytest
from PIL import Image

from slidekit.config import Settings
from slidekit.errors import ExportAlreadyProcessed, NotFoundError, StorageError
from slidekit.templates import DEFAULT_TEMPLATE_CONFIG

STORAGE_HOST = "https://storage.test/carousel-assets"


class FakeStorage:
    def __init__(self, missing: Optional[set] = None):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.missing = missing or set()
        self.signed: list[str] = []

    async def upload(self, path: str, data: bytes, content_type: str, upsert: bool = True) -> str:
        self.objects[path] = (data, content_type)
        return path

    async def signed_url(
        self,
        path: str,
        expires: Optional[int] = None,
        download_name: Optional[str] = None,
        check_exists: bool = False,
    ) -> str:
        # Like S3, signing never fails; only the existence check sees missing keys
        if check_exists and path in self.missing:
            raise StorageError(f"Could not sign {path}")
        self.signed.append(path)
        suffix = f"&dl={download_name}" if download_name else ""
        return f"{STORAGE_HOST}/{path}?sig=1{suffix}"

    def owns_url(self, url: str) -> bool:
        return url.startswith(STORAGE_HOST)


class FakeRasterizer:
    """Records every capture; returns bytes that name the pass and size."""

    instances: list["FakeRasterizer"] = []

    def __init__(self):
        self.captures: list[dict] = []
        self.entered = False
        self.closed = False
        FakeRasterizer.instances.append(self)

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def capture(self, html, width, height, image_format="png", transparent=False) -> bytes:
        self.captures.append({
            "html": html,
            "width": width,
            "height": height,
            "format": image_format,
            "transparent": transparent,
        })
        return f"{image_format}:{width}x{height}:{len(self.captures)}".encode()


class FakeRecords:
    """In-memory stand-in for RecordStore."""

    def __init__(self):
        self.projects = {}
        self.templates = {}
        self.carousels = {}
        self.slides = {}
        self.exports = {}
        self.assets = {}
        self.rollbacks = 0
        self.fail_updates = False
        self._ids = itertools.count(1)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    async def get_slide(self, slide_id):
        return self.slides.get(slide_id)

    async def get_carousel(self, carousel_id):
        return self.carousels.get(carousel_id)

    async def get_project(self, project_id):
        return self.projects.get(project_id)

    async def get_template(self, template_id):
        return self.templates.get(template_id)

    async def list_slides(self, carousel_id):
        slides = [s for s in self.slides.values() if s.carousel_id == carousel_id]
        return sorted(slides, key=lambda s: s.slide_index)

    async def default_template_id(self, user_id):
        owned = [t.id for t in self.templates.values() if t.user_id == user_id]
        return owned[0] if owned else None

    async def get_asset_path(self, asset_id):
        return self.assets.get(asset_id)

    async def create_export(self, carousel_id, image_format):
        export = SimpleNamespace(
            id=self.next_id("export"),
            carousel_id=carousel_id,
            format=image_format,
            status="pending",
            storage_path=None,
            error_message=None,
            started_at=None,
        )
        self.exports[export.id] = export
        return export

    async def get_export(self, export_id, carousel_id=None):
        export = self.exports.get(export_id)
        if export is not None and carousel_id is not None and export.carousel_id != carousel_id:
            return None
        return export

    async def update_export(self, export_id, **fields):
        if self.fail_updates:
            raise RuntimeError("database went away")
        export = self.exports.get(export_id)
        if export is None:
            return None
        for key, value in fields.items():
            setattr(export, key, value)
        return export

    async def rollback(self):
        self.rollbacks += 1

    async def claim_export(self, export_id, carousel_id):
        export = await self.get_export(export_id, carousel_id)
        if export is None:
            raise NotFoundError(f"Export {export_id} not found")
        if export.status != "pending":
            raise ExportAlreadyProcessed(export_id, export.status)
        if export.started_at is not None:
            raise ExportAlreadyProcessed(export_id, "in progress")
        export.started_at = "now"
        return export

    # Builders

    def add_template(self, user_id="user-1", config=None):
        template = SimpleNamespace(
            id=self.next_id("template"),
            user_id=user_id,
            name="Default",
            config=copy.deepcopy(config if config is not None else DEFAULT_TEMPLATE_CONFIG),
        )
        self.templates[template.id] = template
        return template

    def add_carousel(self, user_id="user-1", template_id=None, brand_kit=None, **fields):
        project = SimpleNamespace(id=self.next_id("project"), user_id=user_id, brand_kit=brand_kit or {})
        self.projects[project.id] = project
        carousel = SimpleNamespace(
            id=self.next_id("carousel"),
            user_id=user_id,
            project_id=project.id,
            default_template_id=template_id,
            caption_variants=fields.get("caption_variants"),
            hashtags=fields.get("hashtags"),
            export_format=fields.get("export_format", "png"),
            export_size=fields.get("export_size", "1080x1350"),
        )
        self.carousels[carousel.id] = carousel
        return carousel

    def add_slide(self, carousel, headline="Slide headline", **fields):
        index = len([s for s in self.slides.values() if s.carousel_id == carousel.id])
        slide = SimpleNamespace(
            id=self.next_id("slide"),
            carousel_id=carousel.id,
            slide_index=index,
            slide_type=fields.get("slide_type", "point"),
            headline=headline,
            body=fields.get("body"),
            template_id=fields.get("template_id"),
            background=fields.get("background"),
            meta=fields.get("meta"),
        )
        self.slides[slide.id] = slide
        return slide


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="",
        inter_slide_delay_ms=0,
        screenshot_settle_ms=0,
        signed_url_expires=600,
    )


@pytest.fixture
def records() -> FakeRecords:
    return FakeRecords()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def rasterizers():
    FakeRasterizer.instances = []
    yield FakeRasterizer.instances
    FakeRasterizer.instances = []


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 40, 40)).save(buf, format="PNG")
    return buf.getvalue()
