"""Background media service that owns actual audio playback.

Clients never touch the service directly; they connect through a
MediaBrowser addressed by a SessionToken and receive player events on the
token's pub/sub topic.
"""

import asyncio
import logging
import re
import threading
from dataclasses import dataclass
from typing import Dict, Optional

import pyaudio

from ..exceptions import PlaybackError
from ..models.events import (
    PlaybackStateChanged,
    PlayWhenReadyChanged,
    IsPlayingChanged,
    PlayerError,
)
from ..models.playback import LifecycleState, MediaItem
from .publisher import StatePublisher

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2  # 16-bit PCM


@dataclass(frozen=True)
class SessionToken:
    """Opaque address of a media session."""
    name: str

    def __post_init__(self):
        if not re.fullmatch(r"[A-Za-z_]\w*", self.name):
            raise ValueError(f"Invalid session name: {self.name!r}")

    @property
    def topic(self) -> str:
        """Pub/sub topic the session's player events are published on."""
        return f"player_{self.name}"


class PlayerService:
    """Decodes an item with ffmpeg and plays it through a PyAudio output stream."""

    _registry: Dict[str, "PlayerService"] = {}

    def __init__(
        self,
        token: SessionToken,
        sample_rate: int = 44100,
        channels: int = 2,
        chunk_size: int = 1024,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.token = token
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._publisher = StatePublisher(token.topic, arg_name="event")

        # Guards the PCM buffer and read position shared with the driver thread
        self._lock = threading.Lock()
        self._pcm = b""
        self._frame_position = 0
        self._total_frames = 0

        self._item: Optional[MediaItem] = None
        self._state = LifecycleState.IDLE
        self._play_when_ready = False
        self._is_playing = False
        self._prepare_task: Optional[asyncio.Task] = None
        self._generation = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    @classmethod
    def start(cls, token: SessionToken, **kwargs) -> "PlayerService":
        """Create and register the service for a token, or return the running one."""
        existing = cls._registry.get(token.name)
        if existing is not None:
            return existing
        service = cls(token, **kwargs)
        cls._registry[token.name] = service
        logger.info(f"PlayerService started for session: {token.name}")
        return service

    @classmethod
    def lookup(cls, token: SessionToken) -> Optional["PlayerService"]:
        return cls._registry.get(token.name)

    def shutdown(self) -> None:
        """Stop playback, free the audio device and unregister."""
        self.stop()
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
        if self._registry.get(self.token.name) is self:
            del self._registry[self.token.name]
        logger.info(f"PlayerService shut down for session: {self.token.name}")

    @property
    def frame_bytes(self) -> int:
        return self.channels * SAMPLE_WIDTH

    @property
    def playback_state(self) -> LifecycleState:
        return self._state

    @property
    def play_when_ready(self) -> bool:
        return self._play_when_ready

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def current_item(self) -> Optional[MediaItem]:
        return self._item

    @property
    def current_position(self) -> int:
        """Playback position in milliseconds."""
        with self._lock:
            frames = self._frame_position
        return frames * 1000 // self.sample_rate

    @property
    def duration(self) -> int:
        """Duration of the loaded item in milliseconds, 0 when none is ready."""
        with self._lock:
            frames = self._total_frames
        return frames * 1000 // self.sample_rate

    def set_media_item(self, item: MediaItem) -> None:
        """Replace the current item and start preparing it."""
        self._cancel_prepare()
        self._release_stream()
        with self._lock:
            self._pcm = b""
            self._frame_position = 0
            self._total_frames = 0
        self._item = item
        logger.info(f"Media item set: {item.media_id} ({item.uri})")
        self._update_is_playing()
        self._prepare()

    def play(self) -> None:
        if self._item is None:
            logger.warning("play() without a media item")
            return

        if not self._play_when_ready:
            self._play_when_ready = True
            self._publisher.publish(PlayWhenReadyChanged(True))

        if self._state == LifecycleState.IDLE:
            self._prepare()
        elif self._state == LifecycleState.ENDED:
            with self._lock:
                self._frame_position = 0
            self._set_state(LifecycleState.READY)
            self._start_stream()
        elif self._state == LifecycleState.READY:
            self._start_stream()
        self._update_is_playing()

    def stop(self) -> None:
        """Stop playback and drop back to IDLE; the item is kept."""
        self._cancel_prepare()
        self._release_stream()
        with self._lock:
            self._frame_position = 0
        self._set_state(LifecycleState.IDLE)
        self._update_is_playing()

    def seek_to(self, position_millis: int) -> None:
        """Seek to an absolute position, clamped to the item's length."""
        with self._lock:
            frames = int(position_millis) * self.sample_rate // 1000
            self._frame_position = min(max(frames, 0), self._total_frames)
            at_end = self._frame_position >= self._total_frames
        logger.debug(f"Seek to {position_millis}ms")

        if self._state == LifecycleState.ENDED and not at_end:
            self._set_state(LifecycleState.READY)
            if self._play_when_ready:
                self._start_stream()
            self._update_is_playing()

    def _prepare(self) -> None:
        self._set_state(LifecycleState.BUFFERING)
        self._prepare_task = self._loop.create_task(self._load(self._item))

    def _cancel_prepare(self) -> None:
        if self._prepare_task is not None and not self._prepare_task.done():
            self._prepare_task.cancel()
        self._prepare_task = None

    async def _load(self, item: MediaItem) -> None:
        try:
            pcm = await self._decode(item.uri)
        except PlaybackError as e:
            self._fail(e)
            return

        with self._lock:
            self._pcm = pcm
            self._total_frames = len(pcm) // self.frame_bytes
            self._frame_position = 0
        self._set_state(LifecycleState.READY)
        if self._play_when_ready:
            self._start_stream()
        self._update_is_playing()

    async def _decode(self, uri: str) -> bytes:
        """Decode a file to interleaved 16-bit PCM using ffmpeg."""
        try:
            process = await asyncio.create_subprocess_exec(
                "ffmpeg",
                "-loglevel",
                "error",
                "-i",
                uri,
                "-f",
                "s16le",
                "-ac",
                str(self.channels),
                "-ar",
                str(self.sample_rate),
                "-",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise PlaybackError("ffmpeg is required for playback but was not found") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Item replaced or session stopped while decoding
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            logger.debug(f"Decoder for {uri} killed")
            raise
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise PlaybackError(f"Cannot decode {uri}: {message}")
        return stdout

    def _fail(self, error: PlaybackError) -> None:
        logger.error(f"Player error: {error.detail}")
        self._release_stream()
        self._set_state(LifecycleState.IDLE)
        self._update_is_playing()
        self._publisher.publish(PlayerError(error.detail, code=error.code))

    def _start_stream(self) -> None:
        if self.stream is not None:
            return

        self._generation += 1
        try:
            if self.pyaudio_instance is None:
                self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                output=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=self._make_callback(self._generation),
            )
        except OSError as e:
            self.stream = None
            self._fail(PlaybackError(f"Audio output unavailable: {e}"))

    def _make_callback(self, generation: int):
        def callback(in_data, frame_count, time_info, status):
            # Runs on the audio driver thread
            wanted = frame_count * self.frame_bytes
            with self._lock:
                start = self._frame_position * self.frame_bytes
                chunk = self._pcm[start:start + wanted]
                self._frame_position += len(chunk) // self.frame_bytes
                finished = self._frame_position >= self._total_frames

            if finished:
                chunk += b"\x00" * (wanted - len(chunk))
                self._loop.call_soon_threadsafe(self._on_completed, generation)
                return (chunk, pyaudio.paComplete)
            return (chunk, pyaudio.paContinue)

        return callback

    def _on_completed(self, generation: int) -> None:
        if generation != self._generation or self._state != LifecycleState.READY:
            return
        self._release_stream()
        self._set_state(LifecycleState.ENDED)
        self._update_is_playing()

    def _release_stream(self) -> None:
        if self.stream is None:
            return
        self._generation += 1
        try:
            self.stream.stop_stream()
        except OSError as e:
            logger.debug(f"Output stream already stopped: {e}")
        self.stream.close()
        self.stream = None

    def _set_state(self, state: LifecycleState) -> None:
        if state == self._state:
            return
        logger.debug(f"Playback state: {self._state.name} -> {state.name}")
        self._state = state
        self._publisher.publish(PlaybackStateChanged(state))

    def _update_is_playing(self) -> None:
        playing = (
            self._play_when_ready
            and self._state == LifecycleState.READY
            and self.stream is not None
        )
        if playing != self._is_playing:
            self._is_playing = playing
            self._publisher.publish(IsPlayingChanged(playing))
