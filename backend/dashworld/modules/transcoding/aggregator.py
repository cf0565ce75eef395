"""Status aggregation over materialized renditions and encoding progress.

``compute_status_snapshot`` is a pure function: it reads its two inputs and
nothing else, so the server endpoint and the client poller derive identical
snapshots from identical data.

A materialized rendition key is the authoritative completeness signal. The
worker writes progress and rendition keys separately, so a reader can see
``completed`` before the key exists (the quality is then "finalizing") or a
key while the row still says ``processing`` (the quality is available).
"""

import math
from typing import Any, Mapping, Optional

from dashworld.modules.transcoding.models import QUALITY_SET, EncodingStatus, Quality, parse_quality
from dashworld.modules.transcoding.schemas import QualityProgress, StatusSnapshot


def _read_progress(entry: Any) -> tuple[float, Optional[EncodingStatus]]:
    """Extract (progress, status) from a QualityProgress, ORM row or JSON dict."""
    if entry is None:
        return 0.0, None

    if isinstance(entry, Mapping):
        raw_progress = entry.get("progress", 0)
        raw_status = entry.get("status")
    else:
        raw_progress = getattr(entry, "progress", 0)
        raw_status = getattr(entry, "status", None)

    try:
        progress = float(raw_progress or 0)
    except (TypeError, ValueError):
        progress = 0.0
    progress = min(100.0, max(0.0, progress))

    try:
        status = EncodingStatus(raw_status) if raw_status is not None else None
    except ValueError:
        status = None

    return progress, status


def normalize_renditions(renditions: Optional[Mapping[Any, Optional[str]]]) -> dict[Quality, str]:
    """Keep only known qualities with a non-empty storage key."""
    normalized: dict[Quality, str] = {}
    for key, value in (renditions or {}).items():
        quality = parse_quality(key)
        if quality is not None and value:
            normalized[quality] = value
    return normalized


def normalize_progress_map(progress_map: Optional[Mapping[Any, Any]]) -> dict[Quality, Any]:
    normalized: dict[Quality, Any] = {}
    for key, value in (progress_map or {}).items():
        quality = parse_quality(key)
        if quality is not None:
            normalized[quality] = value
    return normalized


def calculate_overall_progress(
    available: set[Quality],
    progress_map: Mapping[Quality, Any],
) -> int:
    """Average progress across the quality set, with partial credit.

    Materialized renditions count as 100; everything else counts its last
    reported progress. The result stays below 100 until every rendition is
    materialized, so a full bar always means every quality is playable.
    """
    total = 0.0
    for quality in QUALITY_SET:
        if quality in available:
            total += 100.0
        else:
            progress, _ = _read_progress(progress_map.get(quality))
            total += progress

    # Half-up rounding
    overall = int(math.floor(total / len(QUALITY_SET) + 0.5))
    if len(available) < len(QUALITY_SET):
        overall = min(overall, 99)
    return overall


def compute_status_snapshot(
    renditions: Optional[Mapping[Any, Optional[str]]],
    progress_map: Optional[Mapping[Any, Any]],
) -> StatusSnapshot:
    """Combine rendition locations and progress rows into a StatusSnapshot.

    Args:
        renditions: quality -> storage key (missing or empty means not materialized)
        progress_map: quality -> QualityProgress, ORM row or {"progress", "status"} dict

    Returns:
        StatusSnapshot with qualities listed best-first
    """
    materialized = normalize_renditions(renditions)
    progress_by_quality = normalize_progress_map(progress_map)

    available: list[Quality] = []
    processing: list[Quality] = []
    pending: list[Quality] = []
    finalizing: list[Quality] = []
    failed: list[Quality] = []

    for quality in QUALITY_SET:
        if quality in materialized:
            available.append(quality)
            continue

        _, status = _read_progress(progress_by_quality.get(quality))
        if status == EncodingStatus.PROCESSING:
            processing.append(quality)
        elif status == EncodingStatus.COMPLETED:
            finalizing.append(quality)
        elif status == EncodingStatus.FAILED:
            failed.append(quality)
        else:
            pending.append(quality)

    return StatusSnapshot(
        available_qualities=available,
        processing_qualities=processing,
        pending_qualities=pending,
        finalizing_qualities=finalizing,
        failed_qualities=failed,
        can_view=len(available) >= 1,
        is_complete=len(available) == len(QUALITY_SET),
        overall_progress=calculate_overall_progress(set(available), progress_by_quality),
    )


def quality_state(snapshot: StatusSnapshot, quality: Quality) -> EncodingStatus:
    """Collapse a snapshot back into a single status for one quality."""
    if quality in snapshot.available_qualities or quality in snapshot.finalizing_qualities:
        return EncodingStatus.COMPLETED
    if quality in snapshot.processing_qualities:
        return EncodingStatus.PROCESSING
    if quality in snapshot.failed_qualities:
        return EncodingStatus.FAILED
    return EncodingStatus.PENDING


def progress_map_from_rows(rows) -> dict[Quality, QualityProgress]:
    """Build a progress map from EncodingProgress rows, skipping unknown qualities."""
    result: dict[Quality, QualityProgress] = {}
    for row in rows:
        quality = parse_quality(row.quality)
        if quality is None:
            continue
        result[quality] = QualityProgress(
            progress=min(100, max(0, row.progress or 0)),
            status=EncodingStatus(row.status),
            updated_at=row.updated_at,
        )
    return result
