"""Transcode job dispatch.

Dispatch is one-way message passing: the dispatcher hands an EncodingJob to
a WorkerQueue and gets back a DispatchAck meaning "enqueued". Whether any
rendition is ever produced is only visible later through the progress and
rendition stores.

The queue is injected by the caller (the application lifespan in production,
a fake in tests) and is closed by whoever created it.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from kombu.exceptions import KombuError

from dashworld.core.config import Settings, settings as default_settings
from dashworld.core.logging import log_error, log_info
from dashworld.core.metrics import TRANSCODE_DISPATCH_TOTAL
from dashworld.core.tracing import create_span, record_exception
from dashworld.modules.transcoding.schemas import DispatchAck, EncodingJob

logger = logging.getLogger(__name__)


class TranscodingError(Exception):
    """Base exception for transcoding errors."""
    pass


class DispatchError(TranscodingError):
    """The job could not be handed to the worker queue."""

    def __init__(self, message: str, backend: str, asset_id: Optional[str] = None):
        super().__init__(message)
        self.backend = backend
        self.asset_id = asset_id


class WorkerQueue(ABC):
    """One-way channel to the external transcode worker."""

    backend_name: str = "abstract"

    @abstractmethod
    def enqueue(self, payload: dict) -> str:
        """Enqueue a job payload.

        Returns:
            Message/request identifier assigned by the queue

        Raises:
            DispatchError: If the queue did not accept the message
        """

    def close(self) -> None:
        """Release any client resources held by the queue."""


class CeleryWorkerQueue(WorkerQueue):
    """Publishes jobs onto the Celery transcode queue by task name.

    The worker fleet registers the task; nothing here executes it.
    """

    backend_name = "celery"

    def __init__(self, celery_app: Any, task_name: str, queue: str):
        self.celery_app = celery_app
        self.task_name = task_name
        self.queue = queue

    def enqueue(self, payload: dict) -> str:
        try:
            result = self.celery_app.send_task(
                self.task_name,
                kwargs={"job": payload},
                queue=self.queue,
                retry=False,
            )
        except (KombuError, ConnectionError, OSError) as e:
            raise DispatchError(
                f"Failed to publish transcode job: {e}",
                backend=self.backend_name,
                asset_id=payload.get("asset_id"),
            ) from e
        return str(result.id)


class LambdaWorkerQueue(WorkerQueue):
    """Invokes an AWS Lambda function asynchronously (InvocationType=Event)."""

    backend_name = "lambda"

    def __init__(self, function_name: str, client: Any):
        if not function_name:
            raise ValueError("Lambda function not configured. Set LAMBDA_FUNCTION_NAME.")
        self.function_name = function_name
        self.client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "LambdaWorkerQueue":
        client = boto3.client(
            "lambda",
            region_name=config.AWS_REGION,
            aws_access_key_id=config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
        )
        return cls(config.LAMBDA_FUNCTION_NAME, client)

    def enqueue(self, payload: dict) -> str:
        try:
            response = self.client.invoke(
                FunctionName=self.function_name,
                InvocationType="Event",
                Payload=json.dumps(payload).encode("utf-8"),
            )
        except (BotoCoreError, ClientError) as e:
            raise DispatchError(
                f"Failed to invoke transcode function: {e}",
                backend=self.backend_name,
                asset_id=payload.get("asset_id"),
            ) from e

        status_code = response.get("StatusCode")
        if status_code != 202:
            raise DispatchError(
                f"Transcode function did not accept the job (status {status_code})",
                backend=self.backend_name,
                asset_id=payload.get("asset_id"),
            )
        return response.get("ResponseMetadata", {}).get("RequestId", "")

    def close(self) -> None:
        self.client.close()


def build_worker_queue(config: Settings = default_settings) -> WorkerQueue:
    """Create the WorkerQueue selected by TRANSCODE_BACKEND."""
    backend = config.TRANSCODE_BACKEND.lower()
    if backend == "lambda":
        return LambdaWorkerQueue.from_settings(config)
    if backend == "celery":
        from dashworld.core.celery_app import celery_app

        return CeleryWorkerQueue(
            celery_app,
            task_name=config.TRANSCODE_TASK_NAME,
            queue=config.TRANSCODE_QUEUE,
        )
    raise ValueError(f"Unknown TRANSCODE_BACKEND: {config.TRANSCODE_BACKEND}")


class TranscodeDispatcher:
    """Fires one EncodingJob at the worker queue per call.

    No retry happens here; retry policy belongs to the ingestion caller or
    to the worker.
    """

    def __init__(self, queue: WorkerQueue):
        self.queue = queue

    async def dispatch(self, job: EncodingJob) -> DispatchAck:
        """Enqueue a job and return the acceptance acknowledgment.

        Broker and Lambda clients block, so the enqueue runs in the default
        thread pool.

        Raises:
            DispatchError: If the job was not enqueued
        """
        backend = self.queue.backend_name
        asset_id = str(job.asset_id)

        with create_span(
            "transcode.dispatch",
            attributes={"asset_id": asset_id, "backend": backend},
        ):
            try:
                loop = asyncio.get_event_loop()
                job_id = await loop.run_in_executor(
                    None,
                    self.queue.enqueue,
                    job.to_worker_payload(),
                )
            except DispatchError as e:
                record_exception(e)
                TRANSCODE_DISPATCH_TOTAL.labels(backend=backend, result="rejected").inc()
                log_error(logger, "Transcode dispatch failed", e, asset_id=asset_id, backend=backend)
                raise

        TRANSCODE_DISPATCH_TOTAL.labels(backend=backend, result="accepted").inc()
        log_info(
            logger,
            "Transcode job enqueued",
            asset_id=asset_id,
            backend=backend,
            job_id=job_id,
            original_key=job.original_key,
            output_base_path=job.output_base_path,
        )
        return DispatchAck(
            accepted=True,
            job_id=job_id,
            backend=backend,
            dispatched_at=datetime.now(timezone.utc),
        )
