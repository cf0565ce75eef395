"""Repository for the encoding progress store."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from dashworld.modules.transcoding.aggregator import progress_map_from_rows
from dashworld.modules.transcoding.models import EncodingProgress, EncodingStatus, Quality
from dashworld.modules.transcoding.schemas import QualityProgress


class EncodingProgressRepository:
    """Repository for EncodingProgress operations.

    Exactly one logical writer (the transcode worker) exists per
    (asset, quality) key; reads need no locking.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, asset_id: uuid.UUID, quality: Quality) -> Optional[EncodingProgress]:
        """Get the progress row for one (asset, quality) pair."""
        result = await self.session.execute(
            select(EncodingProgress).where(
                and_(
                    EncodingProgress.asset_id == asset_id,
                    EncodingProgress.quality == quality.value,
                )
            )
        )
        return result.scalar_one_or_none()

    async def report_progress(
        self,
        asset_id: uuid.UUID,
        quality: Quality,
        progress: int,
        status: EncodingStatus,
    ) -> EncodingProgress:
        """Upsert progress for one (asset, quality) pair.

        Last write wins: the new report overwrites whatever was stored, with
        no ordering guard. A delayed or duplicated report can therefore move
        displayed progress backwards.

        Args:
            asset_id: Footage asset ID
            quality: Rendition quality
            progress: Progress percentage (0-100)
            status: Reported encoding status

        Returns:
            The stored EncodingProgress row
        """
        now = datetime.now(timezone.utc)
        row = await self.get(asset_id, quality)

        if row:
            row.progress = progress
            row.status = status.value
            row.updated_at = now
        else:
            row = EncodingProgress(
                asset_id=asset_id,
                quality=quality.value,
                progress=progress,
                status=status.value,
                updated_at=now,
            )
            self.session.add(row)

        await self.session.flush()
        return row

    async def list_for_asset(self, asset_id: uuid.UUID) -> list[EncodingProgress]:
        result = await self.session.execute(
            select(EncodingProgress).where(EncodingProgress.asset_id == asset_id)
        )
        return list(result.scalars().all())

    async def get_progress_map(self, asset_id: uuid.UUID) -> dict[Quality, QualityProgress]:
        """Get quality -> progress for an asset. Qualities with no row are absent."""
        return progress_map_from_rows(await self.list_for_asset(asset_id))

    async def clear(self, asset_id: uuid.UUID) -> int:
        """Delete all progress rows of an asset.

        Returns:
            Number of rows deleted
        """
        result = await self.session.execute(
            delete(EncodingProgress).where(EncodingProgress.asset_id == asset_id)
        )
        return result.rowcount or 0
