"""Terminal user interface for VoiceRecorder."""
