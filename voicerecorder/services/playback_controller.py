"""Playback controller: mirrors the media session and polls its position."""

import asyncio
import logging
from dataclasses import replace
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..config import VoiceRecorderConfig
from ..models.events import (
    PlaybackStateChanged,
    PlayWhenReadyChanged,
    IsPlayingChanged,
    PlayerError,
)
from ..models.playback import LifecycleState, MediaItem, MediaMetadata, PlaybackState
from ..models.session import Voice
from .media_browser import MediaBrowser
from .player_service import SessionToken
from .publisher import StatePublisher, PLAYBACK_STATE_TOPIC

logger = logging.getLogger(__name__)


class PlaybackController:
    """Observer and forwarder for a remote media session.

    The session is the source of truth; this controller only keeps the
    latest mirrored PlaybackState and publishes it on ``playback_state``.
    Commands issued before the session connection is established are dropped.
    """

    def __init__(
        self,
        config: VoiceRecorderConfig,
        token: Optional[SessionToken] = None,
        browser_factory: Callable[[SessionToken], "asyncio.Future[MediaBrowser]"] = MediaBrowser.build_async,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize playback controller.

        Args:
            config: Application configuration
            token: Session to connect to; built from config when None
            browser_factory: Starts an asynchronous connection to the session
            sleep: Cooperative delay between position polls
        """
        self.config = config
        self.token = token or SessionToken(config.get('playback.session_name', 'voicerecorder'))
        self.poll_interval = config.get_poll_interval()

        self._browser_factory = browser_factory
        self._sleep = sleep
        self._browser_future: Optional[asyncio.Future] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._state = PlaybackState()
        self._publisher = StatePublisher(PLAYBACK_STATE_TOPIC)

    @property
    def state(self) -> PlaybackState:
        """Latest mirrored snapshot."""
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def browser(self) -> Optional[MediaBrowser]:
        """Connected browser, or None while connecting or after a failure."""
        future = self._browser_future
        if future is None or not future.done() or future.cancelled():
            return None
        if future.exception() is not None:
            return None
        return future.result()

    def on_start(self) -> None:
        """Host became visible: connect to the media session."""
        if self._browser_future is not None:
            return
        self._browser_future = self._browser_factory(self.token)
        self._browser_future.add_done_callback(self._on_browser_connected)

    def on_stop(self) -> None:
        """Host is no longer visible: stop polling and release the connection."""
        self._cancel_polling()
        if self._browser_future is not None:
            MediaBrowser.release_future(self._browser_future)
            self._browser_future = None

    def _on_browser_connected(self, future: asyncio.Future) -> None:
        if future is not self._browser_future or future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Media session unavailable: {error}")
            return

        browser = future.result()
        self._update(is_playing=browser.is_playing, position_millis=browser.current_position)
        browser.add_listener(self._on_player_event)

        # The session kept playing while disconnected; _update saw no edge
        if self._state.is_playing and not self._is_polling:
            self._start_polling()

    def play(self, voice: Voice) -> None:
        """Replace the session's item with ``voice`` and start playing it."""
        browser = self.browser
        if browser is None:
            logger.debug("play ignored: media session not connected")
            return

        metadata = MediaMetadata(title=voice.title, is_playable=True)
        item = MediaItem(media_id=voice.title, uri=voice.path, metadata=metadata)
        browser.set_media_item(item)
        browser.play()
        logger.info(f"Playing: {voice.title}")

    def stop(self) -> None:
        browser = self.browser
        if browser is None:
            logger.debug("stop ignored: media session not connected")
            return
        browser.stop()

    def seek(self, position_millis: int) -> None:
        browser = self.browser
        if browser is None:
            logger.debug("seek ignored: media session not connected")
            return
        browser.seek_to(max(int(position_millis), 0))

    def _on_player_event(self, event) -> None:
        browser = self.browser
        if browser is None:
            return

        if isinstance(event, PlaybackStateChanged):
            self._on_playback_state_changed(event.state, browser)
        elif isinstance(event, PlayWhenReadyChanged):
            logger.debug(f"Play when ready: {event.play_when_ready}")
            self._update(is_playing=browser.is_playing)
        elif isinstance(event, IsPlayingChanged):
            logger.debug(f"Is playing changed: {event.is_playing}")
            self._update(is_playing=browser.is_playing)
        elif isinstance(event, PlayerError):
            logger.error(f"Player error: {event.message}")
            browser.stop()
            self._update(is_playing=browser.is_playing)

    def _on_playback_state_changed(self, state: LifecycleState, browser: MediaBrowser) -> None:
        if state in (LifecycleState.IDLE, LifecycleState.ENDED):
            self._update(
                lifecycle_state=state,
                is_playing=browser.is_playing,
                position_millis=0,
                duration_millis=0,
            )
        elif state == LifecycleState.BUFFERING:
            self._update(lifecycle_state=state)
        elif state == LifecycleState.READY:
            duration = max(browser.duration, 0)
            self._update(
                lifecycle_state=state,
                duration_millis=duration,
                position_millis=self._clamp_position(browser.current_position, duration),
            )

    @staticmethod
    def _clamp_position(position: int, duration: int) -> int:
        position = max(position, 0)
        if duration > 0:
            position = min(position, duration)
        return position

    def _update(self, **changes) -> None:
        previous = self._state
        current = replace(previous, **changes)
        if current == previous:
            return

        self._state = current
        self._publisher.publish(current)

        if current.is_playing and not previous.is_playing:
            self._start_polling()
        elif previous.is_playing and not current.is_playing:
            self._cancel_polling()

    async def position_ticks(self) -> AsyncIterator[None]:
        """Yield once per poll interval for as long as playback is running."""
        while self._state.is_playing:
            await self._sleep(self.poll_interval)
            if not self._state.is_playing:
                return
            yield

    async def _poll_position(self) -> None:
        async for _ in self.position_ticks():
            self._refresh_position()

    def _refresh_position(self) -> None:
        browser = self.browser
        if browser is None:
            return
        self._update(position_millis=self._clamp_position(browser.current_position, self._state.duration_millis))

    @property
    def _is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _start_polling(self) -> None:
        self._cancel_polling()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, position polling not started")
            return
        self._poll_task = loop.create_task(self._poll_position())

    def _cancel_polling(self) -> None:
        if self._is_polling:
            self._poll_task.cancel()
        self._poll_task = None
