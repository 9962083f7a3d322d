"""Data models for the VoiceRecorder application."""

from .session import RecordingSession, Voice
from .audio import AudioStats
from .playback import LifecycleState, PlaybackState, MediaMetadata, MediaItem
from .events import (
    PlaybackStateChanged,
    PlayWhenReadyChanged,
    IsPlayingChanged,
    PlayerError,
)

__all__ = [
    "RecordingSession",
    "Voice",
    "AudioStats",
    "LifecycleState",
    "PlaybackState",
    "MediaMetadata",
    "MediaItem",
    # Player events
    "PlaybackStateChanged",
    "PlayWhenReadyChanged",
    "IsPlayingChanged",
    "PlayerError",
]
