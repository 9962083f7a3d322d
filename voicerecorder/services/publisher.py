"""State publisher module for pub/sub notification of observers."""

import logging
from typing import Any
from pubsub import pub

logger = logging.getLogger(__name__)

RECORDER_STATE_TOPIC = "recorder_state"
RECORDER_SAVED_TOPIC = "recorder_saved"
PLAYBACK_STATE_TOPIC = "playback_state"


class StatePublisher:
    """Publishes snapshots using pubsub.pub so views can subscribe for changes."""

    def __init__(self, topic: str, arg_name: str = "state"):
        """Initialize state publisher.

        Args:
            topic: Pub/sub topic name
            arg_name: Keyword under which listeners receive the payload
        """
        self.topic = topic
        self.arg_name = arg_name
        logger.info(f"StatePublisher initialized with topic: {topic}")

    def publish(self, value: Any) -> None:
        """Publish a payload to the pub/sub topic.

        Args:
            value: Snapshot or event to deliver to listeners
        """
        pub.sendMessage(self.topic, **{self.arg_name: value})
