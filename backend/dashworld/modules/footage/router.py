"""Footage API routers.

``router`` serves ingestion and the read endpoints polled by clients.
``webhook_router`` receives progress and completion callbacks from the
transcode worker.
"""

import hmac
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from dashworld.core.config import settings
from dashworld.core.database import get_db
from dashworld.modules.footage.schemas import (
    FootageIngestRequest,
    FootageResponse,
    IngestResponse,
    VideoProcessedWebhook,
    WebhookAck,
)
from dashworld.modules.footage.service import (
    FootageNotFoundError,
    FootageService,
    FootageServiceError,
)
from dashworld.modules.transcoding.dispatcher import DispatchError, TranscodeDispatcher
from dashworld.modules.transcoding.schemas import ProgressReport, QualityProgress, StatusSnapshot
from dashworld.modules.transcoding.service import TranscodingService

router = APIRouter(prefix="/footage", tags=["footage"])
webhook_router = APIRouter(prefix="/webhooks/transcode", tags=["webhooks"])


def get_dispatcher(request: Request) -> TranscodeDispatcher:
    """Dependency to get a dispatcher over the application's worker queue."""
    queue = getattr(request.app.state, "worker_queue", None)
    if queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transcode worker queue is not configured",
        )
    return TranscodeDispatcher(queue)


async def get_footage_service(
    session: Annotated[AsyncSession, Depends(get_db)]
) -> FootageService:
    """Dependency to get FootageService instance."""
    return FootageService(session)


def verify_webhook_secret(
    x_webhook_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Reject worker callbacks that do not carry the shared secret.

    No check is made when WEBHOOK_SECRET is unset.
    """
    expected = settings.WEBHOOK_SECRET
    if not expected:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


# ==================== Ingestion ====================

@router.post(
    "",
    response_model=IngestResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest uploaded footage",
    description="Register an uploaded original and enqueue its transcode job.",
)
async def ingest_footage(
    data: FootageIngestRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[TranscodeDispatcher, Depends(get_dispatcher)],
) -> IngestResponse:
    """Create the asset and fire its transcode job.

    202 means the job was enqueued, not that anything is playable yet.
    """
    service = FootageService(db, dispatcher)

    try:
        asset, ack = await service.ingest(data)
    except DispatchError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Transcode job could not be enqueued", "error": str(e)},
        )
    except FootageServiceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return IngestResponse(
        asset_id=asset.id,
        accepted=ack.accepted,
        job_id=ack.job_id,
        backend=ack.backend,
        dispatched_at=ack.dispatched_at,
    )


# ==================== Reads ====================

@router.get("/{asset_id}", response_model=FootageResponse)
async def get_footage(
    asset_id: uuid.UUID,
    service: Annotated[FootageService, Depends(get_footage_service)],
) -> FootageResponse:
    """Get footage with its materialized renditions."""
    try:
        return await service.get_footage(asset_id)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{asset_id}/encoding-progress", response_model=dict[str, QualityProgress])
async def get_encoding_progress(
    asset_id: uuid.UUID,
    service: Annotated[FootageService, Depends(get_footage_service)],
) -> dict[str, QualityProgress]:
    """Get per-quality encoding progress. Qualities never reported are omitted."""
    try:
        return await service.get_encoding_progress(asset_id)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{asset_id}/status", response_model=StatusSnapshot)
async def get_status(
    asset_id: uuid.UUID,
    service: Annotated[FootageService, Depends(get_footage_service)],
) -> StatusSnapshot:
    """Get the aggregated processing status of an asset."""
    try:
        return await service.get_status_snapshot(asset_id)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_footage(
    asset_id: uuid.UUID,
    service: Annotated[FootageService, Depends(get_footage_service)],
) -> None:
    try:
        await service.delete_asset(asset_id)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ==================== Worker Webhooks ====================

@webhook_router.put(
    "/progress",
    response_model=QualityProgress,
    dependencies=[Depends(verify_webhook_secret)],
    summary="Report encoding progress",
    description="Upsert progress for one (asset, quality) pair. Last write wins.",
)
async def report_progress(
    report: ProgressReport,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> QualityProgress:
    try:
        await FootageService(db).get_asset(report.asset_id)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return await TranscodingService(db).report_progress(report)


@webhook_router.post(
    "/video-processed",
    response_model=WebhookAck,
    dependencies=[Depends(verify_webhook_secret)],
    summary="Report processed renditions",
    description="Materialize rendition keys and optionally set the asset's final status.",
)
async def video_processed(
    payload: VideoProcessedWebhook,
    service: Annotated[FootageService, Depends(get_footage_service)],
) -> WebhookAck:
    try:
        materialized = await service.record_processed(payload)
    except FootageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return WebhookAck(success=True, materialized=[q.value for q in materialized])
