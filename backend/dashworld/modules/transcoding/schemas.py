"""Pydantic schemas for transcode dispatch, progress reporting and status.

The encoding job and the dispatch acknowledgment are deliberately separate
types: an acknowledgment only says the job was enqueued, never that any
rendition exists.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dashworld.modules.transcoding.models import (
    QUALITY_PRESETS,
    QUALITY_SET,
    TERMINAL_STATUSES,
    EncodingStatus,
    Quality,
)


class EncodingJob(BaseModel):
    """One-way job descriptor handed to the transcode worker.

    Built once per asset at ingestion and never mutated or replayed.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: UUID
    original_key: str = Field(..., min_length=1, description="Storage key of the uploaded original")
    output_base_path: str = Field(..., min_length=1, description="Prefix for rendition keys, e.g. 2026/01/11/<id>")
    delete_original: bool = Field(default=False, description="Worker deletes the original when done")
    qualities: tuple[Quality, ...] = Field(default=QUALITY_SET)

    def to_worker_payload(self) -> dict:
        """Serialize for the worker, including encoder presets per quality."""
        return {
            "asset_id": str(self.asset_id),
            "original_key": self.original_key,
            "output_base_path": self.output_base_path,
            "delete_original": self.delete_original,
            "qualities": [
                {
                    "label": quality.value,
                    "height": QUALITY_PRESETS[quality].height,
                    "video_bitrate": QUALITY_PRESETS[quality].video_bitrate,
                    "audio_bitrate": QUALITY_PRESETS[quality].audio_bitrate,
                }
                for quality in self.qualities
            ],
        }


class DispatchAck(BaseModel):
    """Acknowledgment that a job was accepted by the worker queue."""

    model_config = ConfigDict(frozen=True)

    accepted: bool
    job_id: str
    backend: str
    dispatched_at: datetime


class ProgressReport(BaseModel):
    """Progress upsert sent by the transcode worker for one quality."""

    asset_id: UUID
    quality: Quality
    progress: int = Field(..., ge=0, le=100)
    status: EncodingStatus


class QualityProgress(BaseModel):
    """Last reported progress and status for one quality."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    progress: int = Field(default=0, ge=0, le=100)
    status: EncodingStatus = EncodingStatus.PENDING
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class StatusSnapshot(BaseModel):
    """Point-in-time processing summary for one asset. Never persisted.

    Every quality of the quality set appears in exactly one of the
    available, processing, pending, finalizing or failed lists.
    """

    model_config = ConfigDict(frozen=True)

    available_qualities: list[Quality] = Field(default_factory=list)
    processing_qualities: list[Quality] = Field(default_factory=list)
    pending_qualities: list[Quality] = Field(default_factory=list)
    # Reported completed, rendition key not yet visible
    finalizing_qualities: list[Quality] = Field(default_factory=list)
    failed_qualities: list[Quality] = Field(default_factory=list)
    can_view: bool = False
    is_complete: bool = False
    overall_progress: int = Field(default=0, ge=0, le=100)
