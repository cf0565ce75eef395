"""Tests for transcode job dispatch.

Dispatch only reports whether the job was enqueued; it never waits on or
reports the encoding itself.
"""

import asyncio
import json
import threading
import uuid
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from hypothesis import given, settings, strategies as st
from kombu.exceptions import OperationalError

from dashworld.core.config import Settings
from dashworld.modules.transcoding.dispatcher import (
    CeleryWorkerQueue,
    DispatchError,
    LambdaWorkerQueue,
    TranscodeDispatcher,
    WorkerQueue,
    build_worker_queue,
)
from dashworld.modules.transcoding.schemas import DispatchAck
from dashworld.modules.transcoding.service import build_encoding_job


class FakeWorkerQueue(WorkerQueue):
    """In-memory queue that records payloads or refuses them."""

    backend_name = "fake"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads: list[dict] = []
        self.threads: list[int] = []
        self.attempts = 0
        self.closed = False

    def enqueue(self, payload: dict) -> str:
        self.attempts += 1
        self.threads.append(threading.get_ident())
        if self.fail:
            raise DispatchError("queue unavailable", backend=self.backend_name)
        self.payloads.append(payload)
        return f"job-{len(self.payloads)}"

    def close(self) -> None:
        self.closed = True


def make_job(original_key: str = "uploads/raw.mp4", delete_original: bool = False):
    return build_encoding_job(uuid.uuid4(), original_key, datetime(2026, 1, 11), delete_original)


class TestTranscodeDispatcher:

    @given(
        original_key=st.text(alphabet="abcdefghijklmnopqrstuvwxyz/._-", min_size=1, max_size=60),
        delete_original=st.booleans(),
    )
    @settings(max_examples=50)
    def test_one_payload_per_dispatch(self, original_key: str, delete_original: bool) -> None:
        queue = FakeWorkerQueue()
        job = make_job(original_key, delete_original)

        ack = asyncio.run(TranscodeDispatcher(queue).dispatch(job))

        assert isinstance(ack, DispatchAck)
        assert ack.accepted is True
        assert ack.backend == "fake"
        assert queue.payloads == [job.to_worker_payload()]

    @pytest.mark.asyncio
    async def test_ack_carries_queue_job_id(self) -> None:
        queue = FakeWorkerQueue()
        dispatcher = TranscodeDispatcher(queue)

        first = await dispatcher.dispatch(make_job())
        second = await dispatcher.dispatch(make_job())

        assert (first.job_id, second.job_id) == ("job-1", "job-2")

    @pytest.mark.asyncio
    async def test_enqueue_failure_propagates_without_retry(self) -> None:
        queue = FakeWorkerQueue(fail=True)

        with pytest.raises(DispatchError) as exc_info:
            await TranscodeDispatcher(queue).dispatch(make_job())

        assert exc_info.value.backend == "fake"
        assert queue.attempts == 1
        assert queue.payloads == []

    @pytest.mark.asyncio
    async def test_enqueue_runs_off_the_event_loop_thread(self) -> None:
        queue = FakeWorkerQueue()

        await TranscodeDispatcher(queue).dispatch(make_job())

        assert queue.threads
        assert queue.threads[0] != threading.get_ident()


class TestCeleryWorkerQueue:

    def test_sends_task_by_name_to_queue(self) -> None:
        celery_app = MagicMock()
        celery_app.send_task.return_value = MagicMock(id="celery-123")
        queue = CeleryWorkerQueue(celery_app, task_name="transcode.process_footage", queue="transcode")

        job_id = queue.enqueue({"asset_id": "a1"})

        assert job_id == "celery-123"
        celery_app.send_task.assert_called_once_with(
            "transcode.process_footage",
            kwargs={"job": {"asset_id": "a1"}},
            queue="transcode",
            retry=False,
        )

    def test_broker_error_becomes_dispatch_error(self) -> None:
        celery_app = MagicMock()
        celery_app.send_task.side_effect = OperationalError("broker down")
        queue = CeleryWorkerQueue(celery_app, task_name="t", queue="q")

        with pytest.raises(DispatchError) as exc_info:
            queue.enqueue({"asset_id": "a1"})

        assert exc_info.value.backend == "celery"
        assert exc_info.value.asset_id == "a1"


class TestLambdaWorkerQueue:

    def test_invokes_asynchronously(self) -> None:
        client = MagicMock()
        client.invoke.return_value = {
            "StatusCode": 202,
            "ResponseMetadata": {"RequestId": "req-1"},
        }
        queue = LambdaWorkerQueue("transcode-fn", client)

        job_id = queue.enqueue({"asset_id": "a1", "original_key": "k"})

        assert job_id == "req-1"
        kwargs = client.invoke.call_args.kwargs
        assert kwargs["FunctionName"] == "transcode-fn"
        assert kwargs["InvocationType"] == "Event"
        assert json.loads(kwargs["Payload"]) == {"asset_id": "a1", "original_key": "k"}

    def test_non_202_is_rejected(self) -> None:
        client = MagicMock()
        client.invoke.return_value = {"StatusCode": 500}
        queue = LambdaWorkerQueue("transcode-fn", client)

        with pytest.raises(DispatchError):
            queue.enqueue({"asset_id": "a1"})

    def test_client_error_becomes_dispatch_error(self) -> None:
        client = MagicMock()
        client.invoke.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "no such function"}},
            "Invoke",
        )
        queue = LambdaWorkerQueue("transcode-fn", client)

        with pytest.raises(DispatchError) as exc_info:
            queue.enqueue({"asset_id": "a1"})

        assert exc_info.value.backend == "lambda"

    def test_requires_function_name(self) -> None:
        with pytest.raises(ValueError):
            LambdaWorkerQueue("", MagicMock())

    def test_close_releases_client(self) -> None:
        client = MagicMock()
        LambdaWorkerQueue("transcode-fn", client).close()

        client.close.assert_called_once()


class TestBuildWorkerQueue:

    def test_unknown_backend_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_worker_queue(Settings(TRANSCODE_BACKEND="carrier-pigeon"))

    def test_celery_backend(self) -> None:
        queue = build_worker_queue(Settings(TRANSCODE_BACKEND="celery", TRANSCODE_QUEUE="videos"))

        assert isinstance(queue, CeleryWorkerQueue)
        assert queue.queue == "videos"

    def test_shared_celery_app_does_not_retry_publishing(self) -> None:
        from dashworld.core.celery_app import celery_app

        assert celery_app.conf.task_publish_retry is False
