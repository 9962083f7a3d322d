"""File management module for recordings storage."""

import os
import logging
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from ..exceptions import DirectoryUnavailableError
from ..models.session import Voice


logger = logging.getLogger(__name__)

DIRECTORY_NAME = "VoiceRecorder"
FILE_NAME_PATTERN = "%y%m%d_%H%M%S"
FILE_EXTENSION = ".m4a"


def generate_file_name(now: Optional[datetime] = None,
                       pattern: str = FILE_NAME_PATTERN,
                       extension: str = FILE_EXTENSION) -> str:
    """Build a recording file name from a timestamp.

    Args:
        now: Instant to format; the system clock is read when None
        pattern: strftime pattern (two-digit year, month, day, time)
        extension: File extension including the dot

    Returns:
        File name such as ``240101_120000.m4a``
    """
    if now is None:
        now = datetime.now()
    return f"{now.strftime(pattern)}{extension}"


def _user_dirs_music() -> Optional[Path]:
    """Read XDG_MUSIC_DIR from the user-dirs.dirs file written by xdg-user-dirs-update."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    user_dirs = Path(config_home) / "user-dirs.dirs"
    try:
        lines = user_dirs.read_text(encoding="utf-8").splitlines()
    except OSError:
        return None

    for line in lines:
        line = line.strip()
        if not line.startswith("XDG_MUSIC_DIR="):
            continue
        value = line.split("=", 1)[1].strip().strip('"')
        home = str(Path.home())
        value = value.replace("$HOME", home)
        if not value or value.rstrip("/") == home.rstrip("/"):
            # Pointing the entry at $HOME disables it
            return None
        path = Path(value)
        return path if path.is_absolute() else Path(home) / path
    return None


def public_recordings_directory() -> Optional[Path]:
    """Return the platform's public recordings directory, if it has one.

    The music directory is taken from the ``XDG_MUSIC_DIR`` environment
    variable, then from ``user-dirs.dirs`` under the XDG config home, and
    finally from an existing ``~/Music``.
    """
    music_dir = os.environ.get("XDG_MUSIC_DIR")
    if music_dir:
        return Path(music_dir).expanduser() / "Recordings"

    music_dir = _user_dirs_music()
    if music_dir is not None:
        logger.debug(f"Music directory from user-dirs.dirs: {music_dir}")
        return music_dir / "Recordings"

    music_dir = Path.home() / "Music"
    if music_dir.is_dir():
        return music_dir / "Recordings"
    return None


def legacy_storage_root() -> Path:
    """Root used when no public recordings directory exists."""
    return Path.home()


class FileManager:
    """Resolves where recordings live and reads back the catalogue of voices."""

    def __init__(self, root: Optional[str] = None, directory_name: str = DIRECTORY_NAME):
        """Initialize file manager.

        Args:
            root: Explicit storage root; platform resolution is used when None
            directory_name: Folder created under the root for recordings
        """
        self.root = Path(root) if root else None
        self.directory_name = directory_name
        logger.info(f"FileManager initialized with storage path: {self.storage_path()}")

    def storage_path(self) -> Path:
        """Resolve the storage root for the current platform capability tier."""
        if self.root is not None:
            return self.root

        public_dir = public_recordings_directory()
        if public_dir is not None:
            return public_dir
        return legacy_storage_root()

    @property
    def recordings_dir(self) -> Path:
        """Directory new recordings are written to."""
        return self.storage_path() / self.directory_name

    def ensure_recordings_directory(self) -> Path:
        """Create the recordings directory if missing.

        Returns:
            Path to the recordings directory

        Raises:
            DirectoryUnavailableError: If the directory cannot be created
        """
        directory = self.recordings_dir
        if directory.is_dir():
            logger.debug(f"{self.directory_name} exists: {directory}")
            return directory

        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create recordings directory {directory}: {e}")
            raise DirectoryUnavailableError(str(directory)) from e

        logger.info(f"Created recordings directory: {directory}")
        return directory

    def new_recording_path(self, now: Optional[datetime] = None) -> Path:
        """Ensure the directory exists and return a path for a new recording."""
        return self.ensure_recordings_directory() / generate_file_name(now)

    def list_voices(self) -> List[Voice]:
        """List recorded voices, newest first.

        Returns:
            List of Voice objects; empty if the directory does not exist yet
        """
        directory = self.recordings_dir
        if not directory.is_dir():
            return []

        try:
            files = [p for p in directory.iterdir() if p.is_file() and p.suffix == FILE_EXTENSION]
        except OSError as e:
            logger.error(f"Error listing recordings in {directory}: {e}")
            return []

        # Names are timestamps, so lexical order is chronological
        files.sort(key=lambda p: p.name, reverse=True)
        logger.debug(f"Found {len(files)} recordings")
        return [voice_for(p) for p in files]

    def latest_voice(self) -> Optional[Voice]:
        """Most recent recording, or None."""
        voices = self.list_voices()
        return voices[0] if voices else None


def voice_for(path: Path) -> Voice:
    """Describe a recording file as a Voice."""
    return Voice(title=Path(path).stem, path=str(path))
