"""Repositories for footage assets and rendition locations."""

import uuid
from typing import Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from dashworld.core.database import utcnow
from dashworld.modules.footage.models import ProcessingStatus, Rendition, VideoAsset
from dashworld.modules.transcoding.models import Quality, parse_quality


class VideoAssetRepository:
    """Repository for VideoAsset operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        owner_id: uuid.UUID,
        original_key: str,
        thumbnail_small_key: Optional[str] = None,
        thumbnail_medium_key: Optional[str] = None,
        thumbnail_large_key: Optional[str] = None,
    ) -> VideoAsset:
        """Create a new asset with no renditions.

        Args:
            owner_id: Uploading user
            original_key: Storage key of the raw upload
            thumbnail_small_key: Small thumbnail key
            thumbnail_medium_key: Medium thumbnail key
            thumbnail_large_key: Large thumbnail key

        Returns:
            Created VideoAsset
        """
        asset = VideoAsset(
            owner_id=owner_id,
            original_key=original_key,
            thumbnail_small_key=thumbnail_small_key,
            thumbnail_medium_key=thumbnail_medium_key,
            thumbnail_large_key=thumbnail_large_key,
            processing_status=ProcessingStatus.PENDING.value,
            created_at=utcnow(),
        )
        self.session.add(asset)
        await self.session.flush()
        return asset

    async def get_by_id(self, asset_id: uuid.UUID) -> Optional[VideoAsset]:
        """Get an asset by ID."""
        result = await self.session.execute(
            select(VideoAsset).where(VideoAsset.id == asset_id)
        )
        return result.scalar_one_or_none()

    async def set_processing_status(
        self,
        asset: VideoAsset,
        status: ProcessingStatus,
        error: Optional[str] = None,
    ) -> None:
        asset.processing_status = status.value
        asset.processing_error = error

    async def delete(self, asset: VideoAsset) -> None:
        await self.session.delete(asset)
        await self.session.flush()


class RenditionRepository:
    """Repository for rendition storage locations.

    Rows are only written when the transcode worker reports a finished
    rendition; a row's presence is what makes a quality playable.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def materialize(
        self,
        asset_id: uuid.UUID,
        quality: Quality,
        storage_key: str,
    ) -> Rendition:
        """Record (or replace) the storage key of a finished rendition."""
        result = await self.session.execute(
            select(Rendition).where(
                and_(
                    Rendition.asset_id == asset_id,
                    Rendition.quality == quality.value,
                )
            )
        )
        rendition = result.scalar_one_or_none()

        if rendition:
            rendition.storage_key = storage_key
        else:
            rendition = Rendition(
                asset_id=asset_id,
                quality=quality.value,
                storage_key=storage_key,
                created_at=utcnow(),
            )
            self.session.add(rendition)

        await self.session.flush()
        return rendition

    async def get_rendition_map(self, asset_id: uuid.UUID) -> dict[Quality, str]:
        """Get quality -> storage key for every materialized rendition."""
        result = await self.session.execute(
            select(Rendition).where(Rendition.asset_id == asset_id)
        )
        renditions: dict[Quality, str] = {}
        for row in result.scalars().all():
            quality = parse_quality(row.quality)
            if quality is not None and row.storage_key:
                renditions[quality] = row.storage_key
        return renditions

    async def delete_for_asset(self, asset_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(Rendition).where(Rendition.asset_id == asset_id)
        )
        return result.rowcount or 0
