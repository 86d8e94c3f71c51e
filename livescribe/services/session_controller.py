"""Session controller owning the lifecycle of one streaming recognition session.

All channel events, capture errors and stop requests are funnelled into a
single mailbox and handled one at a time, in arrival order, by `run()`.
Captured audio takes a separate path: the capture thread publishes chunks on
a pub/sub topic and the controller's forwarder sends them straight to the
channel when it is writable.
"""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from ..audio.audio_pub import AUDIO_TOPIC, subscribe_audio, unsubscribe_audio
from ..errors import CaptureError, ChannelError, StartupError
from ..models.events import AudioEvent, ChannelEvent, ChannelEventKind, TranscriptEvent
from ..models.session import SessionConfig, SessionState
from ..transcription.base import AbstractRecognitionChannel
from ..transcription.latency import LatencyTracker
from ..ui.presenter import TranscriptPresenter

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]


class _StopRequest:
    def __init__(self, reason: str):
        self.reason = reason


_WAKE = object()


def monotonic_ms() -> int:
    """Monotonic clock in whole milliseconds."""
    return time.monotonic_ns() // 1_000_000


class SessionController:
    """Drives one session: Idle -> Connecting -> Listening -> Closing -> Closed."""

    def __init__(self,
                 config: SessionConfig,
                 channel: AbstractRecognitionChannel,
                 audio_source,
                 presenter: TranscriptPresenter,
                 tracker: Optional[LatencyTracker] = None,
                 audio_topic: str = AUDIO_TOPIC,
                 clock: Callable[[], float] = monotonic_ms,
                 on_state_change: Optional[StateCallback] = None,
                 start_banner: str = "Starting microphone..."):
        """Initialize session controller.

        Args:
            config: Immutable session settings
            channel: Recognition channel, owned by this controller
            audio_source: Audio capture exposing start_recording(config, on_error)
                and stop_recording(), owned by this controller
            presenter: Transcript presenter
            tracker: Latency tracker (a fresh one is created if omitted)
            audio_topic: Pub/sub topic the audio source publishes on
            clock: Millisecond clock used for processing-time measurement
            on_state_change: Called with (old_state, new_state) on every transition
            start_banner: Status line printed when the microphone starts
        """
        self.config = config
        self.channel = channel
        self.audio_source = audio_source
        self.presenter = presenter
        self.tracker = tracker or LatencyTracker()
        self.audio_topic = audio_topic
        self._clock = clock
        self._on_state_change = on_state_change
        self.start_banner = start_banner

        self._state = SessionState.IDLE
        self._mailbox: queue.SimpleQueue = queue.SimpleQueue()
        self._utterance_started_at: Optional[float] = None
        self._forwarding = False

        self._teardown_lock = threading.Lock()
        self._teardown_started = False

        self.startup_error: Optional[StartupError] = None
        self.dropped_chunks = 0
        self.forwarded_chunks = 0
        self.capture_errors = 0
        self.channel_errors = 0

    @property
    def state(self) -> SessionState:
        return self._state

    def start(self) -> None:
        """Open the recognition channel (Idle -> Connecting)."""
        if self._state is not SessionState.IDLE:
            logger.warning(f"Session already started (state={self._state.value})")
            return

        self._transition(SessionState.CONNECTING)
        logger.info(f"Opening {self.channel.service_name} channel")
        try:
            self.channel.open(self.config, self._post)
        except StartupError as e:
            self._fail_startup(e)
        except Exception as e:
            self._fail_startup(StartupError("Failed to open recognition channel", str(e)))

    def run(self) -> None:
        """Start the session if needed and handle events until it is closed."""
        if self._state is SessionState.IDLE:
            self.start()
        while self._state is not SessionState.CLOSED:
            self._dispatch(*self._mailbox.get())
        logger.info("Session closed")

    def process_pending(self) -> int:
        """Handle every message already queued without blocking.

        Returns:
            Number of messages handled
        """
        handled = 0
        while True:
            try:
                received_at, message = self._mailbox.get_nowait()
            except queue.Empty:
                return handled
            self._dispatch(received_at, message)
            handled += 1

    def request_stop(self, reason: str = "interrupted") -> None:
        """Ask the event loop to end the session.

        Only enqueues a message, so it is safe to call from signal handlers
        and other threads, any number of times, in any state.
        """
        self._post(_StopRequest(reason))

    def stop(self) -> None:
        """End the session immediately from the calling thread. Idempotent."""
        self._teardown("stop requested")

    def _post(self, message) -> None:
        # Processing time is measured between arrival stamps.
        self._mailbox.put((self._clock(), message))

    def _dispatch(self, received_at: float, message) -> None:
        if message is _WAKE:
            return
        if isinstance(message, _StopRequest):
            if self._state is not SessionState.CLOSED:
                self.presenter.show_status("Stopping transcription...")
            self._teardown(message.reason)
            return
        if isinstance(message, CaptureError):
            if self._state is SessionState.CLOSED:
                logger.debug(f"Ignoring capture error after session closed: {message}")
                return
            self._report_capture_error(message)
            return
        self._handle_channel_event(message, received_at)

    def _handle_channel_event(self, event: ChannelEvent, received_at: float) -> None:
        if self._state is SessionState.CLOSED:
            logger.debug(f"Ignoring {event.kind.value} event after session closed")
            return

        kind = event.kind
        if kind is ChannelEventKind.READY:
            self._on_ready()
        elif kind is ChannelEventKind.TRANSCRIPT:
            if self._state is SessionState.LISTENING and event.transcript is not None:
                self._on_transcript(event.transcript, received_at)
        elif kind is ChannelEventKind.ERROR:
            self._report_channel_error(event.error)
        elif kind is ChannelEventKind.CLOSED:
            self.presenter.show_status(f"Connection to {self.channel.service_name} closed")
            self._teardown("channel closed")
        elif kind is ChannelEventKind.OPEN_FAILED:
            error = event.error
            if not isinstance(error, StartupError):
                error = StartupError("Failed to open recognition channel", str(error))
            self._fail_startup(error)

    def _on_ready(self) -> None:
        if self._state is not SessionState.CONNECTING:
            logger.debug(f"Ignoring ready event in state {self._state.value}")
            return

        self._transition(SessionState.LISTENING)
        self.presenter.show_status(f"Connection to {self.channel.service_name} established", style="green")
        self.presenter.show_status(self.start_banner)

        subscribe_audio(self._forward_audio, self.audio_topic)
        self._forwarding = True
        try:
            self.audio_source.start_recording(self.config, on_error=self._post)
        except CaptureError as e:
            self._report_capture_error(e)
            # No audio will ever be captured, so the session never started.
            self.startup_error = StartupError("Audio capture failed to start", str(e))
            self._teardown("audio capture failed to start")

    def _forward_audio(self, event: AudioEvent) -> None:
        """Pub/sub listener running on the capture thread."""
        if self._state is not SessionState.LISTENING:
            return
        if self.channel.is_writable():
            self.channel.send(event.audio_data)
            self.forwarded_chunks += 1
        else:
            # Drop, never buffer.
            self.dropped_chunks += 1

    def _on_transcript(self, event: TranscriptEvent, received_at: float) -> None:
        text = event.text
        if not text:
            return

        if self._utterance_started_at is None:
            self._utterance_started_at = received_at

        if not event.is_final:
            self.presenter.show_interim(text)
            return

        processing_ms = received_at - self._utterance_started_at
        if processing_ms > 0:
            self.tracker.record(processing_ms)
        average_ms = self.tracker.average() if self.tracker.count else None
        self.presenter.show_final(text, processing_ms, average_ms)
        logger.debug(f"Final transcript after {processing_ms}ms: {text}")
        self._utterance_started_at = None

    def _report_capture_error(self, error: CaptureError) -> None:
        self.capture_errors += 1
        logger.error(f"Microphone error: {error}")
        self.presenter.show_error("Microphone Error:", error)

    def _report_channel_error(self, error: Optional[Exception]) -> None:
        self.channel_errors += 1
        if not isinstance(error, ChannelError):
            error = ChannelError("Recognition channel error", str(error))
        logger.error(f"{self.channel.service_name} error: {error}")
        self.presenter.show_error(f"{self.channel.service_name} Error:", error)

    def _fail_startup(self, error: StartupError) -> None:
        """Report a session that never got going and close it.

        Also accepted while listening: some services only reject the call
        once it has been set up.
        """
        starting = (SessionState.CONNECTING, SessionState.LISTENING)
        if self.startup_error is not None or self._state not in starting:
            logger.debug(f"Ignoring startup failure in state {self._state.value}: {error}")
            return
        self.startup_error = error
        logger.error(f"Error starting speech-to-text: {error}")
        self.presenter.show_error("Error starting speech-to-text:", error)
        self._teardown("startup failed", via_closing=self._state is SessionState.LISTENING)

    def _teardown(self, reason: str, via_closing: bool = True) -> None:
        """Release capture and channel and emit the summary, exactly once."""
        with self._teardown_lock:
            if self._teardown_started:
                logger.debug(f"Teardown already done, ignoring: {reason}")
                return
            self._teardown_started = True

        logger.info(f"Tearing down session: {reason}")
        if via_closing:
            self._transition(SessionState.CLOSING)

        if self._forwarding:
            self._forwarding = False
            try:
                unsubscribe_audio(self._forward_audio, self.audio_topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")

        self._release(self.audio_source.stop_recording, "audio capture")
        self._release(self.channel.close, "recognition channel")

        if self.tracker.count > 0:
            self.presenter.show_summary(self.tracker.average())

        logger.info(f"Session summary: {self.tracker.count} utterances, "
                    f"average {self.tracker.average():.2f}ms, "
                    f"{self.forwarded_chunks} chunks sent, {self.dropped_chunks} dropped")
        self._transition(SessionState.CLOSED)
        self._post(_WAKE)

    @staticmethod
    def _release(action: Callable[[], None], name: str) -> None:
        try:
            action()
        except Exception as e:
            logger.warning(f"Error releasing {name}: {e}")

    def _transition(self, new_state: SessionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug(f"Session state {old_state.value} -> {new_state.value}")
        if self._on_state_change:
            self._on_state_change(old_state, new_state)
