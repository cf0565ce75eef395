"""Pydantic schemas for footage ingestion, reads and worker webhooks."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from dashworld.modules.footage.models import ProcessingStatus


class Thumbnails(BaseModel):
    """Storage keys of the three thumbnail sizes."""
    small: Optional[str] = None
    medium: Optional[str] = None
    large: Optional[str] = None


class FootageIngestRequest(BaseModel):
    """Register an uploaded original and start transcoding it."""
    owner_id: UUID
    original_key: str = Field(..., min_length=1, max_length=1024)
    thumbnails: Thumbnails = Field(default_factory=Thumbnails)
    delete_original: Optional[bool] = Field(
        None, description="Delete the original after transcoding (defaults to server config)"
    )


class IngestResponse(BaseModel):
    """Ingestion result: the job was enqueued, nothing has been transcoded yet."""
    asset_id: UUID
    accepted: bool
    job_id: str
    backend: str
    dispatched_at: datetime


class FootageResponse(BaseModel):
    """A footage asset with its materialized renditions."""
    id: UUID
    owner_id: UUID
    original_key: str
    thumbnails: Thumbnails
    processing_status: ProcessingStatus
    processing_error: Optional[str] = None
    created_at: datetime
    renditions: dict[str, str] = Field(
        default_factory=dict, description="quality -> storage key, materialized qualities only"
    )
    rendition_urls: dict[str, str] = Field(
        default_factory=dict, description="quality -> playback URL"
    )


class VideoProcessedWebhook(BaseModel):
    """Completion callback sent by the transcode worker."""
    asset_id: UUID
    status: ProcessingStatus
    renditions: dict[str, Optional[str]] = Field(default_factory=dict)
    error: Optional[str] = None


class WebhookAck(BaseModel):
    success: bool = True
    materialized: list[str] = Field(default_factory=list)
