"""Pub/sub fan-out of captured audio chunks.

The capture thread publishes every chunk on a pypubsub topic; consumers
(the session's channel forwarder) subscribe and unsubscribe through the
helpers below. Listeners are called synchronously on the capture thread.
"""

import logging
from typing import Callable

from pubsub import pub

from ..models.events import AudioEvent

logger = logging.getLogger(__name__)

AUDIO_TOPIC = "audio.frame"

AudioListener = Callable[[AudioEvent], None]


class AudioPublisher:
    """Publishes captured audio events on a pypubsub topic."""

    def __init__(self, topic: str = AUDIO_TOPIC):
        """Initialize audio publisher.

        Args:
            topic: Pub/sub topic name for audio events
        """
        self.topic = topic
        self.published_events = 0
        logger.info(f"AudioPublisher initialized with topic: {topic}")

    def publish_audio_event(self, audio_event: AudioEvent) -> None:
        """Publish one captured chunk to every subscriber of the topic."""
        self.published_events += 1
        pub.sendMessage(self.topic, event=audio_event)


def subscribe_audio(listener: AudioListener, topic: str = AUDIO_TOPIC) -> None:
    """Register `listener(event)` for audio published on `topic`."""
    pub.subscribe(listener, topic)
    logger.debug(f"Audio listener subscribed to {topic}")


def unsubscribe_audio(listener: AudioListener, topic: str = AUDIO_TOPIC) -> bool:
    """Remove an audio listener.

    Returns:
        False if the listener was not subscribed
    """
    removed = pub.unsubscribe(listener, topic) is not None
    if removed:
        logger.debug(f"Audio listener unsubscribed from {topic}")
    return removed
