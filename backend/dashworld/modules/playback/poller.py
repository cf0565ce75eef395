"""Client-side reconciliation loop for footage processing status.

Each tick fetches the asset and its encoding progress, recomputes the
StatusSnapshot with the same aggregator the server uses, and hands it to the
consumer. The loop stops on the first of:

- the snapshot reports every quality materialized
- the tick budget is spent (the last snapshot stays displayed)
- a fetch fails or times out (fail-fast, no retry)
- the consumer stops it
"""

import asyncio
import inspect
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from dashworld.core.config import settings
from dashworld.core.logging import log_info, log_warning
from dashworld.modules.playback.client import FootageApiClient, PollTransportError
from dashworld.modules.transcoding.aggregator import compute_status_snapshot
from dashworld.modules.transcoding.schemas import StatusSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[StatusSnapshot], Union[None, Awaitable[None]]]


class PollOutcome(str, Enum):
    """Why a poll loop stopped."""

    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"


async def _invoke(callback: Optional[SnapshotCallback], snapshot: StatusSnapshot) -> None:
    if callback is None:
        return
    result = callback(snapshot)
    if inspect.isawaitable(result):
        await result


class ClientPoller:
    """Bounded, cancellable poll loop for one asset.

    Ticks run strictly one after another: the interval sleep starts only
    after the previous fetch has finished or been abandoned.

    Example:
        async with ClientPoller(client, asset_id, on_snapshot=render) as poller:
            outcome = await poller.wait()
    """

    def __init__(
        self,
        client: FootageApiClient,
        asset_id: uuid.UUID,
        on_snapshot: Optional[SnapshotCallback] = None,
        on_processing_finished: Optional[SnapshotCallback] = None,
        interval: Optional[float] = None,
        max_ticks: Optional[int] = None,
        tick_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.asset_id = asset_id
        self.on_snapshot = on_snapshot
        self.on_processing_finished = on_processing_finished
        self.interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self.max_ticks = settings.POLL_MAX_TICKS if max_ticks is None else max_ticks
        self.tick_timeout = settings.POLL_TICK_TIMEOUT_SECONDS if tick_timeout is None else tick_timeout
        self._sleep = sleep

        self._ticks = 0
        self._last_snapshot: Optional[StatusSnapshot] = None
        self._outcome: Optional[PollOutcome] = None
        self._seen_processing = False
        self._finished_notified = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def ticks(self) -> int:
        """Number of fetches started so far."""
        return self._ticks

    @property
    def last_snapshot(self) -> Optional[StatusSnapshot]:
        return self._last_snapshot

    @property
    def outcome(self) -> Optional[PollOutcome]:
        """Why the loop stopped, or None while it is still running."""
        return self._outcome

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def fetch_snapshot(self) -> StatusSnapshot:
        """Fetch both data sources and aggregate them into one snapshot."""
        asset = await self.client.get_asset(self.asset_id)
        progress = await self.client.get_encoding_progress(self.asset_id)
        return compute_status_snapshot(asset.get("renditions") or {}, progress)

    async def run(self) -> PollOutcome:
        """Run the loop in the current task until it stops.

        Returns:
            PollOutcome saying why the loop stopped
        """
        try:
            self._outcome = await self._loop()
        except asyncio.CancelledError:
            self._outcome = PollOutcome.CANCELLED
            raise
        finally:
            log_info(
                logger,
                "Status polling stopped",
                asset_id=str(self.asset_id),
                outcome=self._outcome.value if self._outcome else "error",
                ticks=self._ticks,
            )
        return self._outcome

    async def _loop(self) -> PollOutcome:
        while self._ticks < self.max_ticks:
            if self._stopped:
                return PollOutcome.CANCELLED

            self._ticks += 1
            try:
                snapshot = await asyncio.wait_for(self.fetch_snapshot(), timeout=self.tick_timeout)
            except PollTransportError as e:
                log_warning(
                    logger,
                    "Status poll failed",
                    asset_id=str(self.asset_id),
                    tick=self._ticks,
                    error=e.message,
                    status_code=e.status_code,
                )
                return PollOutcome.TRANSPORT_ERROR
            except asyncio.TimeoutError:
                log_warning(
                    logger,
                    "Status poll timed out",
                    asset_id=str(self.asset_id),
                    tick=self._ticks,
                    timeout=self.tick_timeout,
                )
                return PollOutcome.TRANSPORT_ERROR

            if self._stopped:
                return PollOutcome.CANCELLED

            await self._publish(snapshot)

            if snapshot.is_complete:
                return PollOutcome.COMPLETED

            if self._ticks < self.max_ticks:
                await self._sleep(self.interval)

        return PollOutcome.BUDGET_EXHAUSTED

    async def _publish(self, snapshot: StatusSnapshot) -> None:
        self._last_snapshot = snapshot
        await _invoke(self.on_snapshot, snapshot)

        if snapshot.processing_qualities:
            self._seen_processing = True
            return

        # One-shot: fires the first time nothing is processing any more
        if not self._finished_notified and (self._seen_processing or snapshot.is_complete):
            self._finished_notified = True
            await _invoke(self.on_processing_finished, snapshot)

    def start(self) -> asyncio.Task:
        """Run the loop in a background task."""
        if self.running:
            raise RuntimeError("Poller is already running")
        self._stopped = False
        self._task = asyncio.create_task(self.run())
        return self._task

    async def wait(self) -> Optional[PollOutcome]:
        """Wait for a started loop to stop and return its outcome."""
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._task.cancelled():
                self._task.result()
        return self._outcome

    async def stop(self) -> None:
        """Tear the loop down. Safe to call more than once."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait({self._task})
        if self._outcome is None:
            self._outcome = PollOutcome.CANCELLED

    async def __aenter__(self) -> "ClientPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
