"""Services layer for VoiceRecorder application logic."""

from .recorder_controller import RecorderController
from .playback_controller import PlaybackController
from .player_service import PlayerService, SessionToken
from .media_browser import MediaBrowser

__all__ = [
    "RecorderController",
    "PlaybackController",
    "PlayerService",
    "SessionToken",
    "MediaBrowser",
]
