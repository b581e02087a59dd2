"""
Record access for the export pipeline.

The pipeline only talks to this class, so tests swap it for an in-memory
fake with the same methods.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.sql import func

from slidekit.errors import ExportAlreadyProcessed, NotFoundError
from slidekit.models import Asset, Carousel, Export, Project, Slide, Template

logger = logging.getLogger(__name__)


class RecordStore:
    def __init__(self, session):
        self.session = session

    async def _get(self, model, record_id: Optional[str]):
        if not record_id:
            return None
        result = await self.session.execute(select(model).where(model.id == record_id))
        return result.scalar_one_or_none()

    async def get_slide(self, slide_id: str) -> Optional[Slide]:
        return await self._get(Slide, slide_id)

    async def get_carousel(self, carousel_id: str) -> Optional[Carousel]:
        return await self._get(Carousel, carousel_id)

    async def get_project(self, project_id: Optional[str]) -> Optional[Project]:
        return await self._get(Project, project_id)

    async def get_template(self, template_id: Optional[str]) -> Optional[Template]:
        return await self._get(Template, template_id)

    async def list_slides(self, carousel_id: str) -> list[Slide]:
        result = await self.session.execute(
            select(Slide)
            .where(Slide.carousel_id == carousel_id)
            .order_by(Slide.slide_index)
        )
        return list(result.scalars().all())

    async def default_template_id(self, user_id: str) -> Optional[str]:
        """The user's first template, used when neither slide nor carousel names one."""
        result = await self.session.execute(
            select(Template.id)
            .where(Template.user_id == user_id)
            .order_by(Template.created_at, Template.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_asset_path(self, asset_id: str) -> Optional[str]:
        asset = await self._get(Asset, asset_id)
        return asset.storage_path if asset else None

    # ============================================
    # EXPORTS
    # ============================================

    async def create_export(self, carousel_id: str, image_format: str) -> Export:
        export = Export(carousel_id=carousel_id, format=image_format, status="pending")
        self.session.add(export)
        await self.session.commit()
        await self.session.refresh(export)
        logger.info(f"Created export {export.id} for carousel {carousel_id}")
        return export

    async def get_export(self, export_id: str, carousel_id: Optional[str] = None) -> Optional[Export]:
        export = await self._get(Export, export_id)
        if export is not None and carousel_id is not None and export.carousel_id != carousel_id:
            return None
        return export

    async def update_export(self, export_id: str, **fields) -> Optional[Export]:
        export = await self._get(Export, export_id)
        if export is None:
            return None
        for key, value in fields.items():
            setattr(export, key, value)
        await self.session.commit()
        return export

    async def rollback(self):
        """Drop a half-done transaction so a status update can still be written."""
        await self.session.rollback()

    async def claim_export(self, export_id: str, carousel_id: str) -> Export:
        """
        Stamp a pending, unstarted export as started and return it.

        The conditional update commits at once, so no row lock is held while
        slides render. A second run of the same export updates nothing and
        gets ExportAlreadyProcessed; an unknown export raises NotFoundError.
        """
        result = await self.session.execute(
            update(Export)
            .where(
                Export.id == export_id,
                Export.carousel_id == carousel_id,
                Export.status == "pending",
                Export.started_at.is_(None),
            )
            .values(started_at=func.now())
        )
        await self.session.commit()

        export = await self.get_export(export_id, carousel_id)
        if export is None:
            raise NotFoundError(f"Export {export_id} not found")
        if result.rowcount == 0:
            status = export.status if export.status != "pending" else "in progress"
            raise ExportAlreadyProcessed(export_id, status)
        return export
