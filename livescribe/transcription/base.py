"""Abstract base class for streaming recognition channels."""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

from ..models.events import ChannelEvent
from ..models.session import SessionConfig

logger = logging.getLogger(__name__)

ChannelListener = Callable[[ChannelEvent], None]


class AbstractRecognitionChannel(ABC):
    """Bidirectional streaming connection to a speech-recognition backend.

    A channel accepts raw audio chunks and delivers `ChannelEvent`s to a
    single listener: READY once the connection accepts audio, TRANSCRIPT for
    every recognition result, ERROR for backend errors, CLOSED when the
    connection ends, and OPEN_FAILED if the connection could never be
    established. Events are delivered in the order the backend produced them.
    """

    def __init__(self):
        self._listener: Optional[ChannelListener] = None
        self.service_name = "recognition service"

    @abstractmethod
    def open(self, config: SessionConfig, listener: ChannelListener) -> None:
        """Start connecting to the backend without blocking the caller.

        Args:
            config: Session settings to request from the backend
            listener: Callable receiving every event from this channel

        Raises:
            StartupError: If the channel cannot even attempt to connect
                (for example a missing credential)
        """
        pass

    @abstractmethod
    def is_writable(self) -> bool:
        """Whether audio sent right now would reach the backend."""
        pass

    @abstractmethod
    def send(self, chunk: bytes) -> None:
        """Send one audio chunk. Only effective while the channel is writable."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Request a graceful shutdown. Safe to call repeatedly or before open()."""
        pass

    def _emit(self, event: ChannelEvent) -> None:
        """Deliver an event to the registered listener."""
        listener = self._listener
        if listener is None:
            logger.debug(f"No listener registered, dropping {event.kind.value} event")
            return
        listener(event)
