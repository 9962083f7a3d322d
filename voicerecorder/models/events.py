"""Player events delivered by the media session to its browsers."""

from dataclasses import dataclass, field
from datetime import datetime

from .playback import LifecycleState


@dataclass
class PlaybackStateChanged:
    """The player's lifecycle state changed."""
    state: LifecycleState
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class PlayWhenReadyChanged:
    """The player's intent to play once ready changed."""
    play_when_ready: bool
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class IsPlayingChanged:
    """Audio started or stopped coming out of the player."""
    is_playing: bool
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class PlayerError:
    """The player failed to load or play the current item."""
    message: str
    code: str = "PLAYBACK_ERROR"
    timestamp: datetime = field(default_factory=datetime.now)
