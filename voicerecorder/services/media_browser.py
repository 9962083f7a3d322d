"""Client side of the media session."""

import asyncio
import logging
from typing import Callable, List, Optional

from pubsub import pub

from ..models.playback import LifecycleState, MediaItem
from .player_service import PlayerService, SessionToken

logger = logging.getLogger(__name__)


class MediaBrowser:
    """Connection to a PlayerService, addressed by its SessionToken."""

    def __init__(self, token: SessionToken, service: PlayerService):
        self.token = token
        self._service = service
        self._listeners: List[Callable] = []
        self.is_connected = True

    @classmethod
    def build_async(cls, token: SessionToken) -> "asyncio.Future[MediaBrowser]":
        """Connect to the session in the background.

        Returns:
            Future resolved with a connected browser, or failed with
            ConnectionError when no service is registered for the token
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def connect():
            if future.done():
                return
            service = PlayerService.lookup(token)
            if service is None:
                future.set_exception(ConnectionError(f"No media session registered for: {token.name}"))
                return
            future.set_result(cls(token, service))
            logger.info(f"MediaBrowser connected to session: {token.name}")

        loop.call_soon(connect)
        return future

    @staticmethod
    def release_future(future: "asyncio.Future[MediaBrowser]") -> None:
        """Cancel a pending connection or release an established one."""
        if not future.done():
            future.cancel()
            return
        if future.cancelled() or future.exception() is not None:
            return
        future.result().release()

    def release(self) -> None:
        for listener in self._listeners:
            pub.unsubscribe(listener, self.token.topic)
        self._listeners.clear()
        self.is_connected = False
        logger.info(f"MediaBrowser released: {self.token.name}")

    def add_listener(self, listener: Callable) -> None:
        """Subscribe ``listener(event)`` to the session's player events."""
        pub.subscribe(listener, self.token.topic)
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable) -> None:
        if listener in self._listeners:
            pub.unsubscribe(listener, self.token.topic)
            self._listeners.remove(listener)

    def set_media_item(self, item: MediaItem) -> None:
        if self.is_connected:
            self._service.set_media_item(item)

    def play(self) -> None:
        if self.is_connected:
            self._service.play()

    def stop(self) -> None:
        if self.is_connected:
            self._service.stop()

    def seek_to(self, position_millis: int) -> None:
        if self.is_connected:
            self._service.seek_to(position_millis)

    @property
    def is_playing(self) -> bool:
        return self._service.is_playing

    @property
    def playback_state(self) -> LifecycleState:
        return self._service.playback_state

    @property
    def current_position(self) -> int:
        return self._service.current_position

    @property
    def duration(self) -> int:
        return self._service.duration

    @property
    def current_item(self) -> Optional[MediaItem]:
        return self._service.current_item
