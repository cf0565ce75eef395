"""End-to-end tests for footage processing.

Drives the real FastAPI app over httpx's ASGI transport against an
in-memory database: ingest, worker webhooks, reads, and the client poller
and quality switcher consuming those reads.
"""

import asyncio
import uuid

import httpx
import pytest
import pytest_asyncio

from dashworld.core.config import settings
from dashworld.core.database import get_db
from dashworld.main import app
from dashworld.modules.playback.client import FootageApiClient
from dashworld.modules.playback.poller import ClientPoller, PollOutcome
from dashworld.modules.playback.quality_switcher import PlayerBackend, QualitySwitcher, SwitchOutcome
from dashworld.modules.transcoding.aggregator import compute_status_snapshot
from dashworld.modules.transcoding.dispatcher import DispatchError, WorkerQueue
from dashworld.modules.transcoding.models import QUALITY_SET

API = "/api/v1"


class InMemoryWorkerQueue(WorkerQueue):
    backend_name = "memory"

    def __init__(self):
        self.fail = False
        self.payloads: list[dict] = []

    def enqueue(self, payload: dict) -> str:
        if self.fail:
            raise DispatchError("queue offline", backend=self.backend_name)
        self.payloads.append(payload)
        return f"mem-{len(self.payloads)}"


@pytest.fixture
def worker_queue():
    return InMemoryWorkerQueue()


@pytest_asyncio.fixture
async def api(session_maker, worker_queue):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.worker_queue = worker_queue

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.worker_queue = None


async def ingest(api) -> str:
    response = await api.post(
        f"{API}/footage",
        json={"owner_id": str(uuid.uuid4()), "original_key": "uploads/raw/run.mp4"},
    )
    assert response.status_code == 202, response.text
    return response.json()["asset_id"]


async def report(api, asset_id: str, quality: str, progress: int, status: str) -> httpx.Response:
    return await api.put(
        f"{API}/webhooks/transcode/progress",
        json={"asset_id": asset_id, "quality": quality, "progress": progress, "status": status},
    )


async def materialize(api, asset_id: str, quality: str, status: str = "processing") -> httpx.Response:
    return await api.post(
        f"{API}/webhooks/transcode/video-processed",
        json={
            "asset_id": asset_id,
            "status": status,
            "renditions": {quality: f"2026/01/11/{asset_id}/{quality}.mp4"},
        },
    )


class TestIngestion:

    @pytest.mark.asyncio
    async def test_ingest_returns_accepted_not_done(self, api, worker_queue) -> None:
        response = await api.post(
            f"{API}/footage",
            json={"owner_id": str(uuid.uuid4()), "original_key": "uploads/raw/a.mp4"},
        )

        body = response.json()
        assert response.status_code == 202
        assert body["accepted"] is True
        assert body["backend"] == "memory"
        assert len(worker_queue.payloads) == 1

        status = (await api.get(f"{API}/footage/{body['asset_id']}/status")).json()
        assert status["can_view"] is False
        assert status["overall_progress"] == 0

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_503_and_asset_flagged(self, api, worker_queue) -> None:
        worker_queue.fail = True

        response = await api.post(
            f"{API}/footage",
            json={"owner_id": str(uuid.uuid4()), "original_key": "uploads/raw/b.mp4"},
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_payload(self, api) -> None:
        response = await api.post(f"{API}/footage", json={"owner_id": "nope", "original_key": ""})

        assert response.status_code == 422


class TestWorkerWebhooks:

    @pytest.mark.asyncio
    async def test_progress_then_materialize(self, api) -> None:
        asset_id = await ingest(api)

        response = await report(api, asset_id, "240p", 50, "processing")
        assert response.status_code == 200
        status = (await api.get(f"{API}/footage/{asset_id}/status")).json()
        assert status["overall_progress"] == 10
        assert status["can_view"] is False

        await report(api, asset_id, "240p", 100, "completed")
        response = await materialize(api, asset_id, "240p")
        assert response.json()["materialized"] == ["240p"]

        status = (await api.get(f"{API}/footage/{asset_id}/status")).json()
        assert status["can_view"] is True
        assert status["is_complete"] is False
        assert status["overall_progress"] == 20

        footage = (await api.get(f"{API}/footage/{asset_id}")).json()
        assert footage["renditions"] == {"240p": f"2026/01/11/{asset_id}/240p.mp4"}
        assert footage["rendition_urls"]["240p"].endswith("/240p.mp4")

    @pytest.mark.asyncio
    async def test_progress_for_unknown_asset(self, api) -> None:
        response = await report(api, str(uuid.uuid4()), "720p", 10, "processing")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_webhook_secret_enforced_when_configured(self, api, monkeypatch) -> None:
        asset_id = await ingest(api)
        monkeypatch.setattr(settings, "WEBHOOK_SECRET", "s3cret")

        rejected = await report(api, asset_id, "720p", 10, "processing")
        accepted = await api.put(
            f"{API}/webhooks/transcode/progress",
            json={"asset_id": asset_id, "quality": "720p", "progress": 10, "status": "processing"},
            headers={"X-Webhook-Secret": "s3cret"},
        )

        assert rejected.status_code == 401
        assert accepted.status_code == 200

    @pytest.mark.asyncio
    async def test_encoding_progress_endpoint(self, api) -> None:
        asset_id = await ingest(api)
        await report(api, asset_id, "480p", 35, "processing")

        progress = (await api.get(f"{API}/footage/{asset_id}/encoding-progress")).json()

        assert set(progress) == {"480p"}
        assert progress["480p"]["progress"] == 35
        assert progress["480p"]["status"] == "processing"

    @pytest.mark.asyncio
    async def test_delete(self, api) -> None:
        asset_id = await ingest(api)
        await report(api, asset_id, "480p", 35, "processing")
        await materialize(api, asset_id, "240p")

        assert (await api.delete(f"{API}/footage/{asset_id}")).status_code == 204
        assert (await api.get(f"{API}/footage/{asset_id}")).status_code == 404
        assert (await api.delete(f"{API}/footage/{asset_id}")).status_code == 404


class TestPlaybackAgainstApi:

    @pytest.mark.asyncio
    async def test_poller_follows_worker_to_completion(self, api) -> None:
        asset_id = await ingest(api)
        worst_first = list(reversed(QUALITY_SET))
        step = {"index": 0}

        async def worker_step(seconds: float) -> None:
            """Stands in for the poll interval: the worker advances one quality."""
            index = step["index"]
            if index < len(worst_first):
                label = worst_first[index].value
                await report(api, asset_id, label, 100, "completed")
                await materialize(api, asset_id, label)
                step["index"] += 1
            await asyncio.sleep(0)

        for quality in QUALITY_SET:
            await report(api, asset_id, quality.value, 5, "processing")

        client = FootageApiClient(f"http://test{API}", http_client=api)
        snapshots = []
        finished = []
        poller = ClientPoller(
            client,
            uuid.UUID(asset_id),
            on_snapshot=snapshots.append,
            on_processing_finished=finished.append,
            interval=2.0,
            max_ticks=20,
            sleep=worker_step,
        )

        outcome = await poller.run()

        assert outcome == PollOutcome.COMPLETED
        assert snapshots[0].can_view is False
        assert any(s.can_view and not s.is_complete for s in snapshots)
        assert snapshots[-1].overall_progress == 100
        progress_values = [s.overall_progress for s in snapshots]
        assert progress_values == sorted(progress_values)
        assert len(finished) == 1

    @pytest.mark.asyncio
    async def test_poller_halts_on_missing_asset(self, api) -> None:
        client = FootageApiClient(f"http://test{API}", http_client=api)
        poller = ClientPoller(client, uuid.uuid4(), interval=0, max_ticks=5)

        assert await poller.run() == PollOutcome.TRANSPORT_ERROR
        assert poller.ticks == 1

    @pytest.mark.asyncio
    async def test_switcher_fed_from_api(self, api) -> None:
        asset_id = await ingest(api)
        await report(api, asset_id, "1080p", 30, "processing")
        await report(api, asset_id, "720p", 100, "completed")
        await materialize(api, asset_id, "720p")

        footage = (await api.get(f"{API}/footage/{asset_id}")).json()
        progress = (await api.get(f"{API}/footage/{asset_id}/encoding-progress")).json()
        snapshot = compute_status_snapshot(footage["renditions"], progress)

        player = StillPlayer()
        switcher = QualitySwitcher(player, metadata_timeout=1.0)
        switcher.apply_snapshot(snapshot, footage["rendition_urls"])

        assert switcher.available_qualities() == ["auto", "720p"]
        assert (await switcher.switch_quality("1080p")).outcome == SwitchOutcome.STILL_PROCESSING
        assert (await switcher.switch_quality("480p")).outcome == SwitchOutcome.NOT_AVAILABLE
        assert (await switcher.switch_quality("auto")).switched
        assert player.loaded == [footage["rendition_urls"]["720p"]]


class StillPlayer(PlayerBackend):
    """Paused player whose metadata is always ready."""

    def __init__(self):
        self.loaded: list[str] = []

    def current_time(self) -> float:
        return 0.0

    def is_playing(self) -> bool:
        return False

    def load_source(self, url: str) -> None:
        self.loaded.append(url)

    async def wait_for_metadata(self) -> None:
        return None

    def seek(self, position: float) -> None:
        pass

    def play(self) -> None:
        pass
