"""Service layer for encoding jobs and worker progress reports."""

import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from dashworld.core.logging import log_info, log_warning
from dashworld.core.metrics import ENCODING_PROGRESS_REPORTS_TOTAL
from dashworld.modules.transcoding.models import EncodingStatus, Quality
from dashworld.modules.transcoding.repository import EncodingProgressRepository
from dashworld.modules.transcoding.schemas import EncodingJob, ProgressReport, QualityProgress

logger = logging.getLogger(__name__)


def build_output_base_path(asset_id: uuid.UUID, created_at: datetime) -> str:
    """Rendition key prefix for an asset, e.g. ``2026/01/11/<asset_id>``."""
    return f"{created_at:%Y/%m/%d}/{asset_id}"


def build_encoding_job(
    asset_id: uuid.UUID,
    original_key: str,
    created_at: datetime,
    delete_original: bool = False,
) -> EncodingJob:
    """Create the one-shot job descriptor for a freshly ingested asset."""
    return EncodingJob(
        asset_id=asset_id,
        original_key=original_key,
        output_base_path=build_output_base_path(asset_id, created_at),
        delete_original=delete_original,
    )


class TranscodingService:
    """Records worker progress and serves the progress map."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.progress_repo = EncodingProgressRepository(session)

    async def report_progress(self, report: ProgressReport) -> QualityProgress:
        """Apply a worker progress report (last write wins).

        A report that moves a quality out of a terminal status is stored as
        sent but logged, since it means a retried or reordered delivery.
        """
        previous = await self.progress_repo.get(report.asset_id, report.quality)
        if (
            previous is not None
            and previous.status in (EncodingStatus.COMPLETED.value, EncodingStatus.FAILED.value)
            and report.status.value != previous.status
        ):
            log_warning(
                logger,
                "Encoding progress left a terminal status",
                asset_id=str(report.asset_id),
                quality=report.quality.value,
                previous_status=previous.status,
                reported_status=report.status.value,
            )

        row = await self.progress_repo.report_progress(
            asset_id=report.asset_id,
            quality=report.quality,
            progress=report.progress,
            status=report.status,
        )
        await self.session.commit()

        ENCODING_PROGRESS_REPORTS_TOTAL.labels(
            quality=report.quality.value, status=report.status.value
        ).inc()
        log_info(
            logger,
            "Encoding progress reported",
            asset_id=str(report.asset_id),
            quality=report.quality.value,
            progress=report.progress,
            status=report.status.value,
        )
        return QualityProgress.model_validate(row)

    async def get_progress_map(self, asset_id: uuid.UUID) -> dict[Quality, QualityProgress]:
        return await self.progress_repo.get_progress_map(asset_id)
