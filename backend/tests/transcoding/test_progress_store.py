"""Tests for the encoding progress store and worker progress reports."""

import logging
import uuid

import pytest

from dashworld.modules.transcoding.models import EncodingStatus, Quality
from dashworld.modules.transcoding.repository import EncodingProgressRepository
from dashworld.modules.transcoding.schemas import ProgressReport
from dashworld.modules.transcoding.service import (
    TranscodingService,
    build_encoding_job,
    build_output_base_path,
)


class TestEncodingProgressRepository:

    @pytest.mark.asyncio
    async def test_missing_row_means_absent_from_map(self, db_session, asset) -> None:
        repo = EncodingProgressRepository(db_session)

        assert await repo.get(asset.id, Quality.Q720P) is None
        assert await repo.get_progress_map(asset.id) == {}

    @pytest.mark.asyncio
    async def test_upsert_creates_then_overwrites(self, db_session, asset) -> None:
        repo = EncodingProgressRepository(db_session)

        await repo.report_progress(asset.id, Quality.Q720P, 30, EncodingStatus.PROCESSING)
        await repo.report_progress(asset.id, Quality.Q720P, 80, EncodingStatus.PROCESSING)
        await db_session.commit()

        rows = await repo.list_for_asset(asset.id)
        assert len(rows) == 1
        assert rows[0].progress == 80
        assert rows[0].status == EncodingStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_last_write_wins_even_when_progress_goes_back(self, db_session, asset) -> None:
        """Reports carry no ordering guard; a late duplicate overwrites."""
        repo = EncodingProgressRepository(db_session)

        await repo.report_progress(asset.id, Quality.Q480P, 90, EncodingStatus.PROCESSING)
        await repo.report_progress(asset.id, Quality.Q480P, 40, EncodingStatus.PROCESSING)
        await db_session.commit()

        progress_map = await repo.get_progress_map(asset.id)
        assert progress_map[Quality.Q480P].progress == 40

    @pytest.mark.asyncio
    async def test_rows_are_keyed_per_quality(self, db_session, asset) -> None:
        repo = EncodingProgressRepository(db_session)

        await repo.report_progress(asset.id, Quality.Q240P, 100, EncodingStatus.COMPLETED)
        await repo.report_progress(asset.id, Quality.Q1080P, 5, EncodingStatus.PROCESSING)
        await db_session.commit()

        progress_map = await repo.get_progress_map(asset.id)
        assert set(progress_map) == {Quality.Q240P, Quality.Q1080P}
        assert progress_map[Quality.Q240P].status == EncodingStatus.COMPLETED
        assert progress_map[Quality.Q240P].is_terminal
        assert not progress_map[Quality.Q1080P].is_terminal

    @pytest.mark.asyncio
    async def test_clear_removes_all_rows(self, db_session, asset) -> None:
        repo = EncodingProgressRepository(db_session)
        for quality in (Quality.Q240P, Quality.Q360P):
            await repo.report_progress(asset.id, quality, 10, EncodingStatus.PROCESSING)
        await db_session.commit()

        deleted = await repo.clear(asset.id)
        await db_session.commit()

        assert deleted == 2
        assert await repo.list_for_asset(asset.id) == []


class TestTranscodingService:

    @pytest.mark.asyncio
    async def test_report_progress_returns_stored_value(self, db_session, asset) -> None:
        service = TranscodingService(db_session)

        result = await service.report_progress(
            ProgressReport(asset_id=asset.id, quality="360p", progress=55, status="processing")
        )

        assert result.progress == 55
        assert result.status == EncodingStatus.PROCESSING
        assert result.updated_at is not None

    @pytest.mark.asyncio
    async def test_leaving_terminal_status_is_stored_and_logged(self, db_session, asset, caplog) -> None:
        service = TranscodingService(db_session)
        await service.report_progress(
            ProgressReport(asset_id=asset.id, quality="720p", progress=100, status="completed")
        )

        with caplog.at_level(logging.WARNING, logger="dashworld.modules.transcoding.service"):
            result = await service.report_progress(
                ProgressReport(asset_id=asset.id, quality="720p", progress=60, status="processing")
            )

        assert result.status == EncodingStatus.PROCESSING
        assert any("left a terminal status" in r.getMessage() for r in caplog.records)

    def test_progress_outside_range_is_rejected(self) -> None:
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            ProgressReport(asset_id=uuid.uuid4(), quality="720p", progress=101, status="processing")
        with pytest.raises(ValidationError):
            ProgressReport(asset_id=uuid.uuid4(), quality="4k", progress=10, status="processing")


class TestEncodingJob:

    def test_output_base_path_is_date_prefixed(self) -> None:
        from datetime import datetime

        asset_id = uuid.UUID("12345678-1234-5678-1234-567812345678")

        path = build_output_base_path(asset_id, datetime(2026, 1, 11, 8, 30))

        assert path == "2026/01/11/12345678-1234-5678-1234-567812345678"

    def test_worker_payload_lists_every_quality_with_presets(self) -> None:
        from datetime import datetime

        job = build_encoding_job(uuid.uuid4(), "uploads/raw.mp4", datetime(2026, 1, 11), delete_original=True)
        payload = job.to_worker_payload()

        assert payload["original_key"] == "uploads/raw.mp4"
        assert payload["delete_original"] is True
        assert [q["label"] for q in payload["qualities"]] == ["1080p", "720p", "480p", "360p", "240p"]
        assert payload["qualities"][-1] == {
            "label": "240p",
            "height": 240,
            "video_bitrate": "400k",
            "audio_bitrate": "64k",
        }
