"""Playback module: status polling and quality switching on the viewer side."""

from dashworld.modules.playback.client import FootageApiClient, PlaybackError, PollTransportError
from dashworld.modules.playback.poller import ClientPoller, PollOutcome
from dashworld.modules.playback.quality_switcher import (
    PlayerBackend,
    QualityState,
    QualitySwitcher,
    QualityWarning,
    SwitchOutcome,
    SwitchResult,
)

__all__ = [
    # Client
    "FootageApiClient",
    "PlaybackError",
    "PollTransportError",
    # Poller
    "ClientPoller",
    "PollOutcome",
    # Quality switching
    "PlayerBackend",
    "QualityState",
    "QualitySwitcher",
    "QualityWarning",
    "SwitchOutcome",
    "SwitchResult",
]
