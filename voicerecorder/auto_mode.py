"""Non-interactive runs: timed recording and single-file playback."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live

from .config import VoiceRecorderConfig
from .models.playback import LifecycleState, PlaybackState
from .models.session import RecordingSession, Voice
from .services.playback_controller import PlaybackController
from .services.player_service import PlayerService
from .services.recorder_controller import RecorderController
from .storage.file_manager import voice_for
from .ui.status_view import render_status

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
POLL_INTERVAL = 0.1


async def run_auto_record(config: VoiceRecorderConfig, duration_seconds: float,
                          recorder: Optional[RecorderController] = None) -> Optional[RecordingSession]:
    """Record for a fixed duration and return the completed session.

    Returns:
        The completed session, or None if recording could not start
    """
    recorder = recorder or RecorderController(config)
    logger.info(f"🤖 Auto record: {duration_seconds}s")

    recorder.toggle_recording()
    if not recorder.is_recording:
        logger.error("Recording did not start")
        return None

    try:
        await asyncio.sleep(duration_seconds)
    finally:
        completed = recorder.toggle_recording()
    return completed


def _playback_finished(state: PlaybackState) -> bool:
    # Back to IDLE after play means stop or error
    return state.lifecycle_state in (LifecycleState.ENDED, LifecycleState.IDLE)


async def run_playback(config: VoiceRecorderConfig, path: str,
                       console: Optional[Console] = None) -> PlaybackState:
    """Play one file to the end, rendering progress. Returns the final state."""
    console = console or Console()
    voice: Voice = voice_for(Path(path))

    playback = PlaybackController(config)
    service = PlayerService.start(
        playback.token,
        sample_rate=config.get('playback.sample_rate', 44100),
        channels=config.get('playback.channels', 2),
    )
    playback.on_start()
    try:
        waited = 0.0
        while playback.browser is None and waited < CONNECT_TIMEOUT:
            await asyncio.sleep(POLL_INTERVAL)
            waited += POLL_INTERVAL
        if playback.browser is None:
            logger.error("Media session did not connect")
            return playback.state

        playback.play(voice)
        with Live(render_status(RecordingSession(), playback.state, latest=voice), console=console) as live:
            while True:
                await asyncio.sleep(POLL_INTERVAL)
                state = playback.state
                live.update(render_status(RecordingSession(), state, latest=voice))
                if _playback_finished(state):
                    break
        return playback.state
    finally:
        playback.on_stop()
        service.shutdown()
