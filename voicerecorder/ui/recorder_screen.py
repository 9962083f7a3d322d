"""Interactive terminal shell: record, play back, seek."""

import asyncio
import logging
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.live import Live
from rich.panel import Panel

from ..config import VoiceRecorderConfig
from ..models.session import Voice
from ..services.playback_controller import PlaybackController
from ..services.player_service import PlayerService
from ..services.publisher import RECORDER_SAVED_TOPIC
from ..services.recorder_controller import RecorderController
from .keyboard_input import KeyboardInputHandler
from .status_view import render_status

logger = logging.getLogger(__name__)

SEEK_STEP_MS = 5000
REFRESH_INTERVAL = 0.1


class RecorderScreen:
    """Host shell driving both controllers from single keypresses."""

    def __init__(
        self,
        config: VoiceRecorderConfig,
        recorder: Optional[RecorderController] = None,
        playback: Optional[PlaybackController] = None,
    ):
        self.config = config
        self.console = Console()
        self.recorder = recorder or RecorderController(config)
        self.playback = playback or PlaybackController(config)
        self.latest_voice: Optional[Voice] = self.recorder.file_manager.latest_voice()
        self.running = False

        pub.subscribe(self._on_voice_saved, RECORDER_SAVED_TOPIC)

    def _on_voice_saved(self, voice: Voice) -> None:
        logger.info(f"New recording available: {voice.path}")
        self.latest_voice = voice

    def handle_key(self, key: str) -> bool:
        """Apply one keypress. Returns False when the shell should exit."""
        if key == "r":
            self.recorder.toggle_recording()
        elif key == "p":
            if self.latest_voice is None:
                logger.info("Nothing recorded yet")
            else:
                self.playback.play(self.latest_voice)
        elif key == "s":
            self.playback.stop()
        elif key == "]":
            self.playback.seek(self.playback.state.position_millis + SEEK_STEP_MS)
        elif key == "[":
            self.playback.seek(max(self.playback.state.position_millis - SEEK_STEP_MS, 0))
        elif key == "q":
            self.running = False
            return False
        return True

    def render(self) -> Panel:
        return render_status(
            self.recorder.session,
            self.playback.state,
            input_level=self.recorder.input_level,
            latest=self.latest_voice,
        )

    async def run(self) -> None:
        """Run until 'q' is pressed."""
        loop = asyncio.get_running_loop()
        service = PlayerService.start(
            self.playback.token,
            sample_rate=self.config.get('playback.sample_rate', 44100),
            channels=self.config.get('playback.channels', 2),
        )
        self.playback.on_start()
        self.running = True

        def on_key(key: str) -> bool:
            # Input thread: hop onto the event loop before touching controllers
            loop.call_soon_threadsafe(self.handle_key, key)
            return key != "q"

        handler = KeyboardInputHandler(on_key)
        handler.start()
        try:
            with Live(self.render(), console=self.console, refresh_per_second=10) as live:
                while self.running:
                    live.update(self.render())
                    await asyncio.sleep(REFRESH_INTERVAL)
        finally:
            handler.stop()
            self.recorder.shutdown()
            self.playback.on_stop()
            service.shutdown()
            logger.info("RecorderScreen closed")
