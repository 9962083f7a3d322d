"""Recorder controller: one toggle, one capture handle, one elapsed timer."""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..audio.capture import AudioCapture
from ..config import VoiceRecorderConfig
from ..exceptions import DeviceUnavailableError, DirectoryUnavailableError
from ..models.session import RecordingSession
from ..storage.file_manager import FileManager, voice_for
from ..utils import format_timer
from .publisher import StatePublisher, RECORDER_STATE_TOPIC, RECORDER_SAVED_TOPIC

logger = logging.getLogger(__name__)


class RecorderController:
    """Translates record/stop presses into capture-handle calls and timer state.

    State is exposed as an immutable RecordingSession snapshot; every change
    is published on ``recorder_state``. Completed recordings are published as
    a Voice on ``recorder_saved``.
    """

    def __init__(
        self,
        config: VoiceRecorderConfig,
        file_manager: Optional[FileManager] = None,
        capture_factory: Callable[..., AudioCapture] = AudioCapture,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize recorder controller.

        Args:
            config: Application configuration
            file_manager: Storage resolver; built from config when None
            capture_factory: Builds the capture handle for a session
            clock: Monotonic clock in seconds, used for elapsed time
            sleep: Cooperative delay between timer ticks
            now: Wall clock used to name recordings
        """
        self.config = config
        self.file_manager = file_manager or FileManager(
            root=config.get_storage_root(),
            directory_name=config.get('storage.directory_name', 'VoiceRecorder'),
        )
        self.tick_interval = config.get_tick_interval()

        self._capture_factory = capture_factory
        self._clock = clock
        self._sleep = sleep
        self._now = now

        self._capture: Optional[AudioCapture] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._session = RecordingSession()

        self._state_publisher = StatePublisher(RECORDER_STATE_TOPIC)
        self._saved_publisher = StatePublisher(RECORDER_SAVED_TOPIC, arg_name="voice")

    @property
    def session(self) -> RecordingSession:
        """Current session snapshot."""
        return self._session

    @property
    def is_recording(self) -> bool:
        return self._session.is_active

    @property
    def elapsed_millis(self) -> int:
        return self._session.elapsed_millis

    @property
    def formatted_timer(self) -> str:
        return format_timer(self._session.elapsed_millis)

    @property
    def input_level(self) -> float:
        """Peak level of the live capture stream, 0.0 when idle."""
        if self._capture is None:
            return 0.0
        return self._capture.peak_level

    def _set_session(self, session: RecordingSession) -> None:
        self._session = session
        self._state_publisher.publish(session)

    def toggle_recording(self, context: Optional[int] = None) -> Optional[RecordingSession]:
        """Start a session when idle, stop it when active.

        Args:
            context: Capture context from the host (input device index);
                the configured device is used when None

        Returns:
            The completed session when a recording was stopped, else None
        """
        if self.is_recording:
            return self._stop_recording()
        self._start_recording(context)
        return None

    def _start_recording(self, context: Optional[int]) -> None:
        if self._capture is not None:
            logger.warning("Capture handle already live, not starting another")
            return

        started_at = self._now()

        try:
            output_file = self.file_manager.new_recording_path(started_at)
        except DirectoryUnavailableError as e:
            logger.error(f"Cannot access recordings directory, recording refused: {e.detail}")
            return

        device_index = context if context is not None else self.config.get('audio.input_device_index')
        capture = self._capture_factory(
            output_file=str(output_file),
            sample_rate=self.config.get('audio.sample_rate', 44100),
            chunk_size=self.config.get('audio.chunk_size', 1024),
            channels=self.config.get('audio.channels', 1),
            input_device_index=device_index,
            audio_source="mic",
            output_format="mpeg4",
            audio_encoder="aac",
        )

        try:
            capture.prepare()
            capture.start()
        except DeviceUnavailableError as e:
            logger.error(f"Recorder can't be prepared: {e.detail}")
            capture.release()
            return

        self._capture = capture
        self._set_session(RecordingSession(
            is_active=True,
            start_timestamp=started_at,
            elapsed_millis=0,
            output_file_path=str(output_file),
        ))
        self._start_timer()
        logger.info(f"Recording started: {output_file}")

    def _stop_recording(self) -> RecordingSession:
        completed = replace(self._session, is_active=False)
        capture, self._capture = self._capture, None

        try:
            capture.stop()
        finally:
            capture.release()

        self._cancel_timer()
        self._set_session(RecordingSession())
        logger.info(f"Recording stopped after {completed.elapsed_millis}ms: {completed.output_file_path}")

        if capture.output_exists:
            self._saved_publisher.publish(voice_for(Path(completed.output_file_path)))
        else:
            logger.warning(f"Recording finished but no file was written: {completed.output_file_path}")
        return completed

    async def elapsed_samples(self) -> AsyncIterator[int]:
        """Yield milliseconds elapsed since the previous tick while recording.

        The first sample is taken immediately; later ones follow the tick
        interval. The sequence ends once the recording flag is cleared.
        """
        last = self._clock()
        while self.is_recording:
            current = self._clock()
            yield max(int(round((current - last) * 1000)), 0)
            last = current
            await self._sleep(self.tick_interval)

    async def _run_timer(self) -> None:
        async for delta in self.elapsed_samples():
            self._set_session(replace(self._session, elapsed_millis=self._session.elapsed_millis + delta))

    def _start_timer(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, elapsed timer not started")
            return
        self._timer_task = loop.create_task(self._run_timer())

    def _cancel_timer(self) -> None:
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None

    def shutdown(self) -> None:
        """Stop any active session and tear down the timer."""
        if self.is_recording:
            self._stop_recording()
        self._cancel_timer()
        logger.info("RecorderController shut down")
