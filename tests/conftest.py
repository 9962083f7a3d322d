"""Pytest configuration and fixtures for VoiceRecorder tests."""

import asyncio
import pytest
import tempfile
import logging
from pathlib import Path
from unittest.mock import Mock, patch
import numpy as np
from pubsub import pub

from voicerecorder.config import VoiceRecorderConfig
from voicerecorder.exceptions import DeviceUnavailableError
from voicerecorder.models.playback import LifecycleState
from voicerecorder.services.player_service import PlayerService


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop listeners and registered sessions between tests."""
    yield
    pub.unsubAll()
    PlayerService._registry.clear()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def test_config(temp_data_dir):
    """Default configuration with recordings stored under the temp dir."""
    config = VoiceRecorderConfig()
    config.set('storage.root', temp_data_dir)
    return config


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def mock_encoder():
    """Mock the ffmpeg encoder process."""
    with patch('voicerecorder.audio.capture.subprocess.Popen') as mock_popen:
        process = Mock()
        process.stdin = Mock()
        process.wait.return_value = 0
        mock_popen.return_value = process
        yield {
            'popen': mock_popen,
            'process': process,
        }


class FakeClock:
    """Manually advanced clock with a matching cooperative sleep."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self._sleepers = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    async def drain(self) -> None:
        """Let every ready task run until it blocks again."""
        for _ in range(10):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking sleepers in deadline order."""
        await self.drain()
        target = self.now + seconds
        while True:
            due = [deadline for deadline, _ in self._sleepers if deadline <= target + 1e-9]
            if not due:
                break
            wake_at = min(due)
            self.now = wake_at
            for entry in list(self._sleepers):
                deadline, future = entry
                if deadline <= wake_at + 1e-9:
                    self._sleepers.remove(entry)
                    if not future.done():
                        future.set_result(None)
            await self.drain()
        self.now = target
        await self.drain()


@pytest.fixture
def fake_clock():
    return FakeClock()


class FakeCapture:
    """Capture handle double that writes a placeholder file."""

    def __init__(self, output_file, fail_prepare=False, **settings):
        self.output_file = output_file
        self.settings = settings
        self.fail_prepare = fail_prepare
        self.is_prepared = False
        self.is_recording = False
        self.is_released = False
        self.peak_level = 0.25

    def prepare(self):
        if self.fail_prepare:
            raise DeviceUnavailableError("Microphone can't be prepared: busy")
        self.is_prepared = True

    def start(self):
        self.is_recording = True
        Path(self.output_file).write_bytes(b"")

    def stop(self):
        self.is_recording = False
        Path(self.output_file).write_bytes(b"\x00" * 64)

    def release(self):
        self.is_released = True

    @property
    def output_exists(self):
        return Path(self.output_file).exists()


class CaptureFactory:
    """Builds FakeCapture handles and remembers them."""

    def __init__(self):
        self.handles = []
        self.fail_prepare = False

    def __call__(self, **kwargs):
        handle = FakeCapture(fail_prepare=self.fail_prepare, **kwargs)
        self.handles.append(handle)
        return handle

    @property
    def live_handles(self):
        return [h for h in self.handles if h.is_prepared and not h.is_released]


@pytest.fixture
def capture_factory():
    return CaptureFactory()


class FakeBrowser:
    """Media browser double driven directly by the test."""

    def __init__(self):
        self.is_playing = False
        self.duration = 0
        self.playback_state = LifecycleState.IDLE
        self.position = 0
        self.position_fn = None
        self.position_reads = 0
        self.listeners = []
        self.calls = []
        self.released = False

    @property
    def current_position(self):
        self.position_reads += 1
        if self.position_fn is not None:
            return self.position_fn()
        return self.position

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def set_media_item(self, item):
        self.calls.append(("set_media_item", item))

    def play(self):
        self.calls.append(("play",))

    def stop(self):
        self.calls.append(("stop",))
        self.is_playing = False

    def seek_to(self, position_millis):
        self.calls.append(("seek_to", position_millis))

    def release(self):
        self.released = True

    def emit(self, event):
        for listener in list(self.listeners):
            listener(event)


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def browser_factory(fake_browser):
    """Factory resolving immediately with the fake browser."""
    def build(token):
        future = asyncio.get_running_loop().create_future()
        future.set_result(fake_browser)
        return future
    return build


@pytest.fixture
def pending_browser_factory():
    """Factory whose connection never completes."""
    def build(token):
        return asyncio.get_running_loop().create_future()
    return build
