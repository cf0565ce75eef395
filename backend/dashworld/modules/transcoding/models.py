"""Database models and constants for rendition transcoding.

The quality set is fixed and ordered best-first; that order is also the
fallback order used when a player asks for "auto".
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashworld.core.database import Base, utcnow


class Quality(str, Enum):
    """Rendition qualities offered for every footage asset."""

    Q1080P = "1080p"
    Q720P = "720p"
    Q480P = "480p"
    Q360P = "360p"
    Q240P = "240p"


# Best-first; defines "auto" fallback order
QUALITY_SET: tuple[Quality, ...] = (
    Quality.Q1080P,
    Quality.Q720P,
    Quality.Q480P,
    Quality.Q360P,
    Quality.Q240P,
)

AUTO_QUALITY = "auto"


class EncodingStatus(str, Enum):
    """Per-quality encoding status reported by the transcode worker."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset((EncodingStatus.COMPLETED, EncodingStatus.FAILED))


@dataclass(frozen=True)
class QualityPreset:
    """Encoder target for one quality, forwarded to the worker in each job."""

    height: int
    video_bitrate: str
    audio_bitrate: str


QUALITY_PRESETS: dict[Quality, QualityPreset] = {
    Quality.Q240P: QualityPreset(height=240, video_bitrate="400k", audio_bitrate="64k"),
    Quality.Q360P: QualityPreset(height=360, video_bitrate="800k", audio_bitrate="96k"),
    Quality.Q480P: QualityPreset(height=480, video_bitrate="1200k", audio_bitrate="128k"),
    Quality.Q720P: QualityPreset(height=720, video_bitrate="2500k", audio_bitrate="128k"),
    Quality.Q1080P: QualityPreset(height=1080, video_bitrate="5000k", audio_bitrate="192k"),
}


def parse_quality(value: Any) -> Optional[Quality]:
    """Return the Quality for a label such as "720p", or None if unknown."""
    if isinstance(value, Quality):
        return value
    try:
        return Quality(str(value).lower())
    except ValueError:
        return None


class EncodingProgress(Base):
    """Progress row for one (asset, quality) pair.

    Written only by the transcode worker (through the progress webhook);
    read by everything else. A missing row means the quality is pending.
    """

    __tablename__ = "encoding_progress"
    __table_args__ = (
        UniqueConstraint("asset_id", "quality", name="uq_encoding_progress_asset_quality"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("video_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quality: Mapped[str] = mapped_column(String(10), nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0-100
    status: Mapped[str] = mapped_column(
        String(20), default=EncodingStatus.PENDING.value, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<EncodingProgress {self.asset_id} {self.quality} {self.status} {self.progress}%>"
