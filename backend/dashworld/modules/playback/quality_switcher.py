"""In-playback quality selection over the renditions materialized so far.

The switcher can be built before any rendition exists (it then plays the
fallback source with the selector hidden) and picks up new renditions
through ``update_sources``/``apply_snapshot`` without being rebuilt.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from dashworld.core.config import settings
from dashworld.core.logging import log_info, log_warning
from dashworld.modules.transcoding.models import AUTO_QUALITY, QUALITY_SET, Quality, parse_quality
from dashworld.modules.transcoding.schemas import StatusSnapshot

logger = logging.getLogger(__name__)


class PlayerBackend(ABC):
    """The media element the switcher drives."""

    @abstractmethod
    def current_time(self) -> float:
        """Playback position in seconds."""

    @abstractmethod
    def is_playing(self) -> bool:
        pass

    @abstractmethod
    def load_source(self, url: str) -> None:
        """Replace the media source. Playback position resets."""

    @abstractmethod
    async def wait_for_metadata(self) -> None:
        """Return once the current source's metadata has loaded."""

    @abstractmethod
    def seek(self, position: float) -> None:
        pass

    @abstractmethod
    def play(self) -> None:
        pass


class SwitchOutcome(str, Enum):
    """Result of a quality switch request."""

    SWITCHED = "switched"
    STILL_PROCESSING = "still_processing"
    NOT_AVAILABLE = "not_available"
    UNKNOWN_QUALITY = "unknown_quality"


@dataclass(frozen=True)
class QualityWarning:
    """User-facing warning raised by a rejected switch."""

    kind: SwitchOutcome
    quality: str
    message: str
    issued_at: float


@dataclass(frozen=True)
class SwitchResult:
    outcome: SwitchOutcome
    requested: str
    current_quality: str
    source: Optional[str] = None
    position_restored: bool = False
    warning: Optional[QualityWarning] = None

    @property
    def switched(self) -> bool:
        return self.outcome == SwitchOutcome.SWITCHED


@dataclass(frozen=True)
class QualityState:
    """What a quality selector needs to render."""

    current_quality: str
    available_qualities: list[str]
    processing_qualities: list[str] = field(default_factory=list)
    selector_visible: bool = False
    warning: Optional[QualityWarning] = None


def _still_processing_message(quality: str) -> str:
    return f"{quality.upper()} is still being processed. Please wait or select another quality."


def _not_available_message(quality: str) -> str:
    return f"{quality.upper()} is not available yet. Please wait for processing to complete."


class QualitySwitcher:
    """Selects among available renditions while preserving playback state.

    Args:
        player: Media element to drive
        fallback_source: Source played for "auto" before any rendition exists
        sources: quality -> URL; missing or empty means not materialized
        processing_qualities: Qualities the worker is still encoding
        metadata_timeout: Upper bound on waiting for a new source's metadata
        warning_dismiss_after: Seconds after which a warning is dropped
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        player: PlayerBackend,
        fallback_source: Optional[str] = None,
        sources: Optional[Mapping[str, Optional[str]]] = None,
        processing_qualities: Optional[Iterable[str]] = None,
        metadata_timeout: Optional[float] = None,
        warning_dismiss_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.player = player
        self.fallback_source = fallback_source
        self.metadata_timeout = (
            settings.QUALITY_SWITCH_METADATA_TIMEOUT_SECONDS
            if metadata_timeout is None
            else metadata_timeout
        )
        self.warning_dismiss_after = (
            settings.QUALITY_WARNING_DISMISS_SECONDS
            if warning_dismiss_after is None
            else warning_dismiss_after
        )
        self._clock = clock
        self._lock = asyncio.Lock()

        self._sources: dict[Quality, str] = {}
        self._processing: set[Quality] = set()
        self._current_quality = AUTO_QUALITY
        self._active_source: Optional[str] = None
        self._warning: Optional[QualityWarning] = None

        self.update_sources(sources or {}, processing_qualities or [])

    @property
    def current_quality(self) -> str:
        return self._current_quality

    @property
    def active_source(self) -> Optional[str]:
        """Source most recently loaded by a successful switch."""
        return self._active_source

    @property
    def processing_qualities(self) -> list[str]:
        return [q.value for q in QUALITY_SET if q in self._processing]

    @property
    def warning(self) -> Optional[QualityWarning]:
        """Current warning, or None once it has auto-dismissed."""
        if self._warning is None:
            return None
        if self._clock() - self._warning.issued_at >= self.warning_dismiss_after:
            self._warning = None
        return self._warning

    def dismiss_warning(self) -> None:
        self._warning = None

    def available_qualities(self) -> list[str]:
        """``["auto", ...materialized qualities best-first]``."""
        return [AUTO_QUALITY] + [q.value for q in QUALITY_SET if q in self._sources]

    def selector_visible(self) -> bool:
        return bool(self._sources)

    def best_available(self) -> Optional[Quality]:
        """Best quality with a source that is not still processing."""
        for quality in QUALITY_SET:
            if quality in self._sources and quality not in self._processing:
                return quality
        return None

    def update_sources(
        self,
        sources: Mapping[str, Optional[str]],
        processing_qualities: Optional[Iterable[str]] = None,
    ) -> None:
        """Replace the known rendition URLs and, if given, the processing set."""
        updated: dict[Quality, str] = {}
        for label, url in sources.items():
            quality = parse_quality(label)
            if quality is not None and url:
                updated[quality] = url
        self._sources = updated

        if processing_qualities is not None:
            self._processing = {
                q for q in (parse_quality(label) for label in processing_qualities) if q is not None
            }

    def apply_snapshot(
        self,
        snapshot: StatusSnapshot,
        rendition_urls: Mapping[str, Optional[str]],
    ) -> None:
        """Refresh from a poller snapshot and the asset's rendition URLs."""
        self.update_sources(
            rendition_urls,
            [q.value for q in snapshot.processing_qualities],
        )

    def _reject(self, outcome: SwitchOutcome, requested: str, message: str) -> SwitchResult:
        warning = QualityWarning(
            kind=outcome,
            quality=requested,
            message=message,
            issued_at=self._clock(),
        )
        self._warning = warning
        log_info(logger, "Quality switch rejected", requested=requested, outcome=outcome.value)
        return SwitchResult(
            outcome=outcome,
            requested=requested,
            current_quality=self._current_quality,
            warning=warning,
        )

    async def switch_quality(self, requested: str) -> SwitchResult:
        """Switch to a quality label or ``"auto"``.

        Rejected requests only set a warning; the current quality and the
        player are left untouched.
        """
        label = str(requested).lower()

        if label == AUTO_QUALITY:
            best = self.best_available()
            source = self._sources[best] if best is not None else self.fallback_source
            if source is None:
                return self._reject(
                    SwitchOutcome.NOT_AVAILABLE,
                    label,
                    "No quality is available yet. Please wait for processing to complete.",
                )
        else:
            quality = parse_quality(label)
            if quality is None:
                return self._reject(
                    SwitchOutcome.UNKNOWN_QUALITY,
                    label,
                    f"{label.upper()} is not a supported quality.",
                )
            # Processing is checked before availability
            if quality in self._processing:
                return self._reject(
                    SwitchOutcome.STILL_PROCESSING, label, _still_processing_message(label)
                )
            source = self._sources.get(quality)
            if source is None:
                return self._reject(
                    SwitchOutcome.NOT_AVAILABLE, label, _not_available_message(label)
                )

        async with self._lock:
            return await self._load(label, source)

    async def _load(self, label: str, source: str) -> SwitchResult:
        position = self.player.current_time()
        was_playing = self.player.is_playing()

        self.player.load_source(source)
        self._active_source = source
        self._current_quality = label
        self._warning = None

        try:
            await asyncio.wait_for(self.player.wait_for_metadata(), timeout=self.metadata_timeout)
        except asyncio.TimeoutError:
            log_warning(
                logger,
                "Metadata did not load in time; playback position not restored",
                quality=label,
                timeout=self.metadata_timeout,
            )
            return SwitchResult(
                outcome=SwitchOutcome.SWITCHED,
                requested=label,
                current_quality=label,
                source=source,
                position_restored=False,
            )

        self.player.seek(position)
        if was_playing:
            self.player.play()

        log_info(logger, "Quality switched", quality=label, position=position, resumed=was_playing)
        return SwitchResult(
            outcome=SwitchOutcome.SWITCHED,
            requested=label,
            current_quality=label,
            source=source,
            position_restored=True,
        )

    def state(self) -> QualityState:
        return QualityState(
            current_quality=self._current_quality,
            available_qualities=self.available_qualities(),
            processing_qualities=self.processing_qualities,
            selector_visible=self.selector_visible(),
            warning=self.warning,
        )
