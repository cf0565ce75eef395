"""Footage service: ingestion, reads and worker completion callbacks.

Ingestion is the only place a failure blocks forward progress: if the job
cannot be enqueued the asset is flagged failed and keeps zero renditions.
Everything else degrades instead of failing.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dashworld.core.config import Settings, settings as default_settings
from dashworld.core.logging import bind_asset_id, log_info, log_warning
from dashworld.core.metrics import RENDITIONS_MATERIALIZED_TOTAL
from dashworld.modules.footage.models import ProcessingStatus, VideoAsset
from dashworld.modules.footage.repository import RenditionRepository, VideoAssetRepository
from dashworld.modules.footage.schemas import (
    FootageIngestRequest,
    FootageResponse,
    Thumbnails,
    VideoProcessedWebhook,
)
from dashworld.modules.transcoding.aggregator import compute_status_snapshot
from dashworld.modules.transcoding.dispatcher import DispatchError, TranscodeDispatcher
from dashworld.modules.transcoding.models import QUALITY_SET, Quality, parse_quality
from dashworld.modules.transcoding.repository import EncodingProgressRepository
from dashworld.modules.transcoding.schemas import DispatchAck, QualityProgress, StatusSnapshot
from dashworld.modules.transcoding.service import build_encoding_job

logger = logging.getLogger(__name__)


class FootageServiceError(Exception):
    """Base exception for footage service errors."""
    pass


class FootageNotFoundError(FootageServiceError):
    """Asset not found."""
    pass


def build_media_url(storage_key: str, config: Settings = default_settings) -> str:
    """Turn a storage key into a URL a player can load."""
    if config.CDN_ENABLED and config.CDN_DOMAIN:
        base = f"https://{config.CDN_DOMAIN}"
    else:
        base = config.MEDIA_BASE_URL.rstrip("/")
    return f"{base}/{storage_key.lstrip('/')}"


class FootageService:
    """Service for footage assets and their renditions."""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Optional[TranscodeDispatcher] = None,
        config: Settings = default_settings,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.config = config
        self.asset_repo = VideoAssetRepository(session)
        self.rendition_repo = RenditionRepository(session)
        self.progress_repo = EncodingProgressRepository(session)

    async def ingest(self, request: FootageIngestRequest) -> tuple[VideoAsset, DispatchAck]:
        """Create an asset and fire its transcode job.

        Raises:
            DispatchError: If the job could not be enqueued; the asset is
                kept, flagged failed, with zero renditions
        """
        if self.dispatcher is None:
            raise FootageServiceError("No transcode dispatcher configured")

        asset = await self.asset_repo.create(
            owner_id=request.owner_id,
            original_key=request.original_key,
            thumbnail_small_key=request.thumbnails.small,
            thumbnail_medium_key=request.thumbnails.medium,
            thumbnail_large_key=request.thumbnails.large,
        )
        await self.session.commit()
        bind_asset_id(asset.id)

        delete_original = request.delete_original
        if delete_original is None:
            delete_original = self.config.DELETE_ORIGINAL_AFTER_TRANSCODE

        job = build_encoding_job(
            asset_id=asset.id,
            original_key=asset.original_key,
            created_at=asset.created_at,
            delete_original=delete_original,
        )

        try:
            ack = await self.dispatcher.dispatch(job)
        except DispatchError as e:
            await self.asset_repo.set_processing_status(asset, ProcessingStatus.FAILED, str(e))
            await self.session.commit()
            raise

        await self.asset_repo.set_processing_status(asset, ProcessingStatus.PROCESSING)
        await self.session.commit()
        return asset, ack

    async def get_asset(self, asset_id: uuid.UUID) -> VideoAsset:
        asset = await self.asset_repo.get_by_id(asset_id)
        if not asset:
            raise FootageNotFoundError(f"Footage {asset_id} not found")
        return asset

    async def get_footage(self, asset_id: uuid.UUID) -> FootageResponse:
        """Get an asset joined with its rendition locations."""
        asset = await self.get_asset(asset_id)
        renditions = await self.rendition_repo.get_rendition_map(asset_id)

        ordered = [q for q in QUALITY_SET if q in renditions]
        return FootageResponse(
            id=asset.id,
            owner_id=asset.owner_id,
            original_key=asset.original_key,
            thumbnails=Thumbnails(
                small=asset.thumbnail_small_key,
                medium=asset.thumbnail_medium_key,
                large=asset.thumbnail_large_key,
            ),
            processing_status=ProcessingStatus(asset.processing_status),
            processing_error=asset.processing_error,
            created_at=asset.created_at,
            renditions={q.value: renditions[q] for q in ordered},
            rendition_urls={q.value: build_media_url(renditions[q], self.config) for q in ordered},
        )

    async def get_encoding_progress(self, asset_id: uuid.UUID) -> dict[str, QualityProgress]:
        """Get quality -> progress for an asset; qualities never reported are absent."""
        await self.get_asset(asset_id)
        progress_map = await self.progress_repo.get_progress_map(asset_id)
        return {quality.value: progress for quality, progress in progress_map.items()}

    async def get_status_snapshot(self, asset_id: uuid.UUID) -> StatusSnapshot:
        await self.get_asset(asset_id)
        renditions = await self.rendition_repo.get_rendition_map(asset_id)
        progress_map = await self.progress_repo.get_progress_map(asset_id)
        return compute_status_snapshot(renditions, progress_map)

    async def record_processed(self, payload: VideoProcessedWebhook) -> list[Quality]:
        """Apply a worker completion callback.

        Materializes every rendition key in the payload. ``completed`` and
        ``failed`` also set the asset-level flag; ``processing`` only adds
        renditions, which lets the worker publish qualities one at a time.

        Returns:
            Qualities materialized by this call, best-first
        """
        asset = await self.get_asset(payload.asset_id)
        bind_asset_id(asset.id)

        materialized: list[Quality] = []
        for label, storage_key in payload.renditions.items():
            quality = parse_quality(label)
            if quality is None:
                log_warning(logger, "Ignoring rendition with unknown quality", quality=label)
                continue
            if not storage_key:
                continue
            await self.rendition_repo.materialize(asset.id, quality, storage_key)
            RENDITIONS_MATERIALIZED_TOTAL.labels(quality=quality.value).inc()
            materialized.append(quality)

        if payload.status in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED):
            await self.asset_repo.set_processing_status(asset, payload.status, payload.error)

        await self.session.commit()

        materialized.sort(key=QUALITY_SET.index)
        log_info(
            logger,
            "Worker callback applied",
            asset_id=str(asset.id),
            status=payload.status.value,
            materialized=[q.value for q in materialized],
        )
        return materialized

    async def delete_asset(self, asset_id: uuid.UUID) -> None:
        """Delete an asset together with its renditions and progress rows."""
        asset = await self.get_asset(asset_id)
        await self.progress_repo.clear(asset_id)
        await self.rendition_repo.delete_for_asset(asset_id)
        await self.asset_repo.delete(asset)
        await self.session.commit()
        log_info(logger, "Footage deleted", asset_id=str(asset_id))
