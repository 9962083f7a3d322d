"""
VoiceRecorder exception hierarchy.

Lower layers (capture handle, storage, player service) raise these;
the controllers catch them, log them and keep their state unchanged.
"""


class VoiceRecorderError(Exception):
    """Base exception for all VoiceRecorder errors."""

    def __init__(self, detail: str = "An unexpected error occurred", code: str = "VOICERECORDER_ERROR") -> None:
        self.detail = detail
        self.code = code
        super().__init__(detail)


class DeviceUnavailableError(VoiceRecorderError):
    """Raised when the capture device cannot be prepared or started."""

    def __init__(self, detail: str = "Capture device unavailable") -> None:
        super().__init__(detail=detail, code="DEVICE_UNAVAILABLE")


class DirectoryUnavailableError(VoiceRecorderError):
    """Raised when the recordings directory cannot be created."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(detail=f"Recordings directory unavailable: {path}", code="DIRECTORY_UNAVAILABLE")


class PlaybackError(VoiceRecorderError):
    """Raised when the player service cannot load or play an item."""

    def __init__(self, detail: str = "Playback failed") -> None:
        super().__init__(detail=detail, code="PLAYBACK_ERROR")
