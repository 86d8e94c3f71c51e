"""Google Speech-to-Text streaming recognition channel."""

import logging
import queue
import threading
from typing import Iterator, Optional

from .base import AbstractRecognitionChannel, ChannelListener
from ..errors import ChannelError, StartupError
from ..models.events import ChannelEvent, TranscriptEvent
from ..models.session import SessionConfig

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

# Errors meaning the call was refused rather than interrupted
REJECTED_CALL_ERRORS = (
    gax_exceptions.Unauthenticated,
    gax_exceptions.PermissionDenied,
    gax_exceptions.InvalidArgument,
    auth_exceptions.GoogleAuthError,
)

GOOGLE_ENCODINGS = {
    "linear16": speech.RecognitionConfig.AudioEncoding.LINEAR16,
    "mulaw": speech.RecognitionConfig.AudioEncoding.MULAW,
    "flac": speech.RecognitionConfig.AudioEncoding.FLAC,
}


class GoogleStreamingChannel(AbstractRecognitionChannel):
    """Google Speech-to-Text `streaming_recognize` channel.

    Audio chunks are fed to the request generator through a queue; the
    response iterator is consumed in a background thread and every result
    becomes a TRANSCRIPT event. A credential or request rejection before the
    first response becomes OPEN_FAILED. Smart formatting and endpointing thresholds
    have no Google equivalent and are ignored.
    """

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 language: str = "en-US",
                 model: str = "latest_long",
                 close_timeout: float = 5.0):
        """Initialize Google streaming channel.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            model: Google recognition model
            close_timeout: Seconds to wait for the response stream to finish on close
        """
        super().__init__()
        self.credentials_path = credentials_path
        self.language = language
        self.model = model
        self.close_timeout = close_timeout
        self.service_name = "Google Speech-to-Text"
        self.client = None

        self._audio_queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._streaming = False
        self._close_requested = False

    def build_streaming_config(self, config: SessionConfig) -> speech.StreamingRecognitionConfig:
        """Map session settings onto a Google streaming recognition config."""
        encoding = GOOGLE_ENCODINGS.get(config.encoding)
        if encoding is None:
            raise StartupError(f"Encoding '{config.encoding}' is not supported by Google Speech",
                               f"supported: {', '.join(sorted(GOOGLE_ENCODINGS))}")

        logger.debug(f"Google ignores smart_format={config.smart_format}, "
                     f"endpointing={config.endpointing_ms}ms, "
                     f"utterance_end={config.utterance_end_ms}ms")
        recognition_config = speech.RecognitionConfig(
            encoding=encoding,
            sample_rate_hertz=config.sample_rate,
            audio_channel_count=config.channels,
            language_code=self.language,
            enable_automatic_punctuation=config.punctuate,
            model=self.model,
        )
        return speech.StreamingRecognitionConfig(
            config=recognition_config,
            interim_results=config.interim_results,
        )

    def open(self, config: SessionConfig, listener: ChannelListener) -> None:
        """Load credentials and start the streaming call in a background thread."""
        if self._thread is not None:
            logger.warning("Google channel already opened")
            return
        if not self.credentials_path:
            raise StartupError("Google credentials path is not configured",
                               "set google_cloud.credentials_path in livescribe.yaml")

        streaming_config = self.build_streaming_config(config)
        try:
            logger.info(f"Loading Google credentials from: {self.credentials_path}")
            credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
            self.client = speech.SpeechClient(credentials=credentials)
        except (OSError, ValueError) as e:
            raise StartupError("Could not load Google credentials", str(e)) from e

        self._listener = listener
        self._thread = threading.Thread(target=self._stream_responses,
                                        args=(streaming_config,),
                                        daemon=True)
        self._thread.name = "GoogleStreamingThread"
        self._thread.start()

    def is_writable(self) -> bool:
        return self._streaming and not self._close_requested

    def send(self, chunk: bytes) -> None:
        if not self.is_writable():
            return
        self._audio_queue.put_nowait(chunk)

    def close(self) -> None:
        if self._close_requested:
            return
        self._close_requested = True

        thread = self._thread
        if thread is None:
            return

        logger.info("Closing Google streaming call")
        self._audio_queue.put_nowait(None)
        if thread is not threading.current_thread():
            thread.join(timeout=self.close_timeout)
            if thread.is_alive():
                logger.warning("Google streaming thread did not stop cleanly")

    def _requests(self) -> Iterator[speech.StreamingRecognizeRequest]:
        """Request generator consumed by the gRPC stream."""
        while True:
            chunk = self._audio_queue.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _stream_responses(self, streaming_config: speech.StreamingRecognitionConfig) -> None:
        """Thread target: consume streaming responses until the call ends.

        Google only answers once audio arrives, so READY is emitted as soon as
        the call exists. A rejection that comes back before the first
        response is still a failure to open the session.
        """
        got_response = False
        try:
            responses = self.client.streaming_recognize(config=streaming_config,
                                                        requests=self._requests())
            self._streaming = True
            logger.info("Google streaming call established")
            self._emit(ChannelEvent.ready())

            for response in responses:
                got_response = True
                for result in response.results:
                    self._emit(ChannelEvent.for_transcript(self._to_transcript(result)))
        except REJECTED_CALL_ERRORS as e:
            self._report_failure(e, startup=not got_response)
        except gax_exceptions.GoogleAPICallError as e:
            self._report_failure(e, startup=False)
        finally:
            self._streaming = False
            logger.info("Google streaming call closed")
            self._emit(ChannelEvent.closed())

    def _report_failure(self, error: Exception, startup: bool) -> None:
        if startup:
            logger.error(f"Google rejected the streaming call: {error}")
            self._emit(ChannelEvent.open_failed(
                StartupError("Google Speech rejected the streaming call", str(error))))
        else:
            logger.error(f"Google streaming call failed: {error}")
            self._emit(ChannelEvent.for_error(ChannelError("Google Speech API error", str(error))))

    @staticmethod
    def _to_transcript(result) -> TranscriptEvent:
        text = None
        if result.alternatives:
            text = result.alternatives[0].transcript or None
        return TranscriptEvent(text=text, is_final=bool(result.is_final))
