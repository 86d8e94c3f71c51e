"""Microphone capture with continuous recording and event publishing."""

import pyaudio
import time
import logging
from threading import Thread, Event
from typing import Optional, Callable
from ..errors import CaptureError
from ..models.audio import AudioStats
from ..models.events import AudioEvent
from ..models.session import SessionConfig
from datetime import datetime
import numpy as np


logger = logging.getLogger(__name__)

# Encodings PyAudio can capture directly, mapped to (sample format, numpy dtype).
CAPTURE_FORMATS = {
    "linear16": (pyaudio.paInt16, np.int16),
    "linear32": (pyaudio.paInt32, np.int32),
}


class AudioCapture:
    """Continuous microphone capture publishing raw chunks through a callback."""

    def __init__(
        self,
        callback: Callable[[AudioEvent], None],
        chunk_size: int = 1024,
        device_index: Optional[int] = None,
    ):
        """Initialize audio capture.

        Args:
            callback: Receives every captured AudioEvent (called on the capture thread)
            chunk_size: Size of each audio chunk in samples
            device_index: PyAudio input device index, None for the default device
        """
        self.audio_event_callback = callback
        self.chunk_size = chunk_size
        self.device_index = device_index
        self.sample_rate = 16000
        self.channels = 1

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False
        self._on_error: Optional[Callable[[CaptureError], None]] = None
        self._format = pyaudio.paInt16
        self._dtype = np.int16

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.read_errors = 0
        self.peak_level = 0.0

        # PyAudio instance
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None

    def start_recording(self, config: SessionConfig,
                        on_error: Optional[Callable[[CaptureError], None]] = None) -> None:
        """Start continuous recording in a background thread.

        Args:
            config: Session settings providing sample rate, channels and encoding
            on_error: Receives CaptureErrors raised while the stream runs

        Raises:
            CaptureError: If the encoding cannot be captured by PyAudio
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        capture_format = CAPTURE_FORMATS.get(config.encoding)
        if capture_format is None:
            raise CaptureError(f"Cannot capture '{config.encoding}' audio",
                               f"supported encodings: {', '.join(sorted(CAPTURE_FORMATS))}")

        self._format, self._dtype = capture_format
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self._on_error = on_error

        logger.info("Starting audio recording")
        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.read_errors = 0
        self.peak_level = 0.0

        # Start recording thread
        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.recording_thread.start()
        self.is_recording = True

    def stop_recording(self) -> None:
        """Stop recording and clean up resources. Safe to call at any time."""
        if not self.is_recording:
            logger.debug("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()

        # Wait for recording thread to finish
        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self.is_recording = False
        logger.info(f"Recording stopped. Total chunks: {self.total_chunks}")

    def __open_audio_stream(self) -> pyaudio.Stream:
        # Open audio stream
        self.pyaudio_instance = pyaudio.PyAudio()
        stream = self.pyaudio_instance.open(
            format=self._format,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            input_device_index=self.device_index,
            frames_per_buffer=self.chunk_size,
            stream_callback=None
        )
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        return stream

    def __read_audio_chunk(self, stream: pyaudio.Stream) -> bytes:
        audio_chunk = stream.read(
            self.chunk_size,
            exception_on_overflow=False
        )

        self.total_chunks += 1
        self.__update_peak_level(audio_chunk)
        return audio_chunk

    def __update_peak_level(self, audio_chunk: bytes) -> None:
        samples = np.frombuffer(audio_chunk, dtype=self._dtype)
        if samples.size == 0:
            return
        full_scale = float(np.iinfo(self._dtype).max) + 1
        level = float(np.max(np.abs(samples.astype(np.int64)))) / full_scale
        self.peak_level = max(self.peak_level, level)

    def __publish_audio_event(self, audio_chunk: bytes) -> None:
        audio_event = AudioEvent(
            chunk_id=f"chunk_{self.total_chunks}",
            audio_data=audio_chunk,
            timestamp=time.time(),
            sequence_number=self.total_chunks,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        self.audio_event_callback(audio_event)

    def _report_error(self, error: CaptureError) -> None:
        logger.error(f"Audio capture error: {error}")
        if self._on_error:
            self._on_error(error)

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        stream = None
        try:
            try:
                stream = self.__open_audio_stream()
            except (OSError, ValueError) as e:
                self._report_error(CaptureError("Failed to open audio input", str(e)))
                return

            chunk_seconds = self.chunk_size / float(self.sample_rate)
            while not self.stop_event.is_set():
                try:
                    audio_chunk = self.__read_audio_chunk(stream)
                except OSError as e:
                    self.read_errors += 1
                    self._report_error(CaptureError("Failed to read audio chunk", str(e)))
                    # Skip this chunk; wait one chunk period before the next read
                    self.stop_event.wait(chunk_seconds)
                    continue
                self.__publish_audio_event(audio_chunk)
        finally:
            # Clean up audio resources
            if stream:
                stream.stop_stream()
                stream.close()
            if self.pyaudio_instance:
                self.pyaudio_instance.terminate()
                self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            read_errors=self.read_errors,
            peak_level=self.peak_level,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop_recording()
