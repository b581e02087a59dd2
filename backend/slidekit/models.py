import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.sql import func

from slidekit.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="Untitled")
    brand_kit = Column(JSON, nullable=True)  # BrandKit fields
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Template(Base):
    """Visual template; config holds a camelCase TemplateConfig."""
    __tablename__ = "templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    config = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Carousel(Base):
    __tablename__ = "carousels"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=True)
    title = Column(String(500), nullable=True)
    default_template_id = Column(String(36), nullable=True)
    caption_variants = Column(JSON, nullable=True)  # {"short": ..., "medium": ..., "spicy": ...}
    hashtags = Column(JSON, nullable=True)  # list of tags without "#"
    export_format = Column(String(10), default="png")  # png, jpeg
    export_size = Column(String(20), default="1080x1350")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Slide(Base):
    __tablename__ = "slides"

    id = Column(String(36), primary_key=True, default=_uuid)
    carousel_id = Column(String(36), ForeignKey("carousels.id"), nullable=False, index=True)
    slide_index = Column(Integer, nullable=False)  # 0-based
    slide_type = Column(String(20), default="generic")  # hook, point, context, cta, generic
    headline = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=True)
    template_id = Column(String(36), nullable=True)
    background = Column(JSON, nullable=True)  # stored BackgroundDescriptor, possibly legacy shape
    meta = Column(JSON, nullable=True)  # zone overrides, highlights, chrome toggles
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Export(Base):
    __tablename__ = "exports"

    id = Column(String(36), primary_key=True, default=_uuid)
    carousel_id = Column(String(36), ForeignKey("carousels.id"), nullable=False, index=True)
    format = Column(String(10), nullable=False, default="png")
    status = Column(String(20), nullable=False, default="pending")  # pending, ready, failed
    storage_path = Column(String(500), nullable=True)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)  # set when a run claims the export
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Asset(Base):
    """Uploaded library image, referenced from backgrounds by id."""
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    storage_path = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
