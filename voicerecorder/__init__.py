"""VoiceRecorder: record voice notes and play them back."""

__version__ = "0.1.0"
