"""Recording session data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RecordingSession:
    """Snapshot of the recorder's current session."""
    is_active: bool = False
    start_timestamp: Optional[datetime] = None
    elapsed_millis: int = 0
    output_file_path: str = ""


@dataclass(frozen=True)
class Voice:
    """A completed recording that can be handed to the player."""
    title: str
    path: str
