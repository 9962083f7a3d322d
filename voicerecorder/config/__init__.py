"""Simple YAML configuration loader for VoiceRecorder."""

import copy
import os
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'storage': {
        'root': None,
        'directory_name': 'VoiceRecorder',
    },
    'audio': {
        'sample_rate': 44100,
        'channels': 1,
        'chunk_size': 1024,
        'input_device_index': None,
    },
    'recorder': {
        'tick_interval_ms': 100,
    },
    'playback': {
        'session_name': 'voicerecorder',
        'poll_interval_ms': 1000,
        'sample_rate': 44100,
        'channels': 2,
    },
    'logging': {
        'level': 'INFO',
        'file_path': 'logs/voicerecorder.log',
        'console_output': True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Keys holding filesystem paths; relative values are anchored at the config file
PATH_KEYS = ('storage.root', 'logging.file_path')


class VoiceRecorderConfig:
    """Layered settings: built-in defaults overlaid with an optional YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: YAML file to overlay on the defaults. When None the
                defaults are used as-is and relative paths stay relative to
                the working directory.

        Raises:
            FileNotFoundError: If config_path does not exist
            ValueError: If the file cannot be read or is not a YAML mapping
        """
        self.config_file: Optional[Path] = Path(config_path) if config_path is not None else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)
            return

        if not self.config_file.is_file():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Reading settings from {self.config_file}")
        self.config = _merge(DEFAULT_CONFIG, self._read_overrides())
        self._anchor_paths()
        logger.info("Configuration loaded successfully")

    def _read_overrides(self) -> Dict[str, Any]:
        try:
            text = self.config_file.read_text(encoding='utf-8')
            overrides = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Cannot read configuration file {self.config_file}: {e}")

        if not overrides:
            raise ValueError("Configuration file is empty")
        if not isinstance(overrides, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        return overrides

    def _anchor_paths(self) -> None:
        base = self.config_file.parent
        for key_path in PATH_KEYS:
            value = self.get(key_path)
            if value and not os.path.isabs(os.path.expanduser(value)):
                self.set(key_path, str(base / value))

    def _section(self, keys: List[str], create: bool = False) -> Optional[Dict[str, Any]]:
        """Walk to the mapping that holds the last key, optionally creating it."""
        node = self.config
        for key in keys:
            child = node.get(key)
            if not isinstance(child, dict):
                if not create:
                    return None
                child = node[key] = {}
            node = child
        return node

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dotted key such as 'audio.sample_rate'.

        Missing keys and explicit nulls both yield ``default``.
        """
        *parents, leaf = key_path.split('.')
        section = self._section(parents)
        if section is None:
            return default
        value = section.get(leaf)
        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Assign a dotted key, creating intermediate sections as needed."""
        *parents, leaf = key_path.split('.')
        self._section(parents, create=True)[leaf] = value
        logger.debug(f"Config override {key_path} = {value!r}")

    def get_storage_root(self) -> Optional[str]:
        """Configured recordings root, or None to use platform resolution."""
        root = self.get('storage.root')
        if not root:
            return None
        return str(Path(root).expanduser().absolute())

    def get_tick_interval(self) -> float:
        """Recording timer cadence in seconds."""
        return self.get('recorder.tick_interval_ms', 100) / 1000.0

    def get_poll_interval(self) -> float:
        """Playback position polling cadence in seconds."""
        return self.get('playback.poll_interval_ms', 1000) / 1000.0
