"""Filesystem storage for recordings."""

from .file_manager import FileManager, generate_file_name

__all__ = [
    "FileManager",
    "generate_file_name",
]
