"""Playback-related data models."""

from dataclasses import dataclass
from enum import Enum


class LifecycleState(Enum):
    """Coarse player status reported by the media session."""
    IDLE = "idle"
    BUFFERING = "buffering"
    READY = "ready"
    ENDED = "ended"


@dataclass(frozen=True)
class PlaybackState:
    """Mirror of the media session's playback status."""
    is_playing: bool = False
    position_millis: int = 0
    duration_millis: int = 0
    lifecycle_state: LifecycleState = LifecycleState.IDLE


@dataclass(frozen=True)
class MediaMetadata:
    """Descriptive metadata for a playable item."""
    title: str
    is_playable: bool = True


@dataclass(frozen=True)
class MediaItem:
    """A playable item as understood by the player service."""
    media_id: str
    uri: str
    metadata: MediaMetadata
