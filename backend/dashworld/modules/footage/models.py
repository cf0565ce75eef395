"""Footage asset and rendition-location models.

Where a rendition lives (``renditions``) is stored apart from how far its
encoding got (``encoding_progress``); the two are joined at read time.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashworld.core.database import Base, utcnow


class ProcessingStatus(str, Enum):
    """Asset-level processing flag, separate from per-quality progress."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoAsset(Base):
    """An uploaded piece of footage and its thumbnails."""

    __tablename__ = "video_assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Storage keys
    original_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail_small_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_medium_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_large_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    processing_status: Mapped[str] = mapped_column(
        String(20), default=ProcessingStatus.PENDING.value, nullable=False
    )
    processing_error: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<VideoAsset {self.id} - {self.processing_status}>"


class Rendition(Base):
    """Storage location of one materialized quality of an asset."""

    __tablename__ = "renditions"
    __table_args__ = (
        UniqueConstraint("asset_id", "quality", name="uq_renditions_asset_quality"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("video_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quality: Mapped[str] = mapped_column(String(10), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Rendition {self.asset_id} {self.quality}>"
