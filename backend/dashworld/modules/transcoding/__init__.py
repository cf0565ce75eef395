"""Transcoding module: job dispatch, per-quality progress and status aggregation.

The encoding itself runs in an external worker; this module only hands it
jobs and records what it reports back.
"""

from dashworld.modules.transcoding.aggregator import (
    calculate_overall_progress,
    compute_status_snapshot,
    quality_state,
)
from dashworld.modules.transcoding.dispatcher import (
    CeleryWorkerQueue,
    DispatchError,
    LambdaWorkerQueue,
    TranscodeDispatcher,
    TranscodingError,
    WorkerQueue,
    build_worker_queue,
)
from dashworld.modules.transcoding.models import (
    AUTO_QUALITY,
    QUALITY_PRESETS,
    QUALITY_SET,
    EncodingProgress,
    EncodingStatus,
    Quality,
    parse_quality,
)
from dashworld.modules.transcoding.repository import EncodingProgressRepository
from dashworld.modules.transcoding.schemas import (
    DispatchAck,
    EncodingJob,
    ProgressReport,
    QualityProgress,
    StatusSnapshot,
)
from dashworld.modules.transcoding.service import TranscodingService, build_encoding_job

__all__ = [
    # Models
    "AUTO_QUALITY",
    "QUALITY_PRESETS",
    "QUALITY_SET",
    "EncodingProgress",
    "EncodingStatus",
    "Quality",
    "parse_quality",
    # Schemas
    "DispatchAck",
    "EncodingJob",
    "ProgressReport",
    "QualityProgress",
    "StatusSnapshot",
    # Aggregation
    "calculate_overall_progress",
    "compute_status_snapshot",
    "quality_state",
    # Dispatch
    "CeleryWorkerQueue",
    "DispatchError",
    "LambdaWorkerQueue",
    "TranscodeDispatcher",
    "TranscodingError",
    "WorkerQueue",
    "build_worker_queue",
    # Persistence and service
    "EncodingProgressRepository",
    "TranscodingService",
    "build_encoding_job",
]
