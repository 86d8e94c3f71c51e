"""Pytest configuration and fixtures for LiveScribe tests."""

import pytest
import re
import asyncio
import json
import logging
from io import StringIO
from typing import List
import threading
import time
from unittest.mock import DEFAULT, Mock, patch
import numpy as np
from aiohttp import WSMsgType, web
from pubsub import pub
from rich.console import Console

from livescribe.audio.audio_pub import AUDIO_TOPIC
from livescribe.errors import CaptureError
from livescribe.models.events import AudioEvent, ChannelEvent, TranscriptEvent
from livescribe.models.session import SessionConfig
from livescribe.transcription.base import AbstractRecognitionChannel
from livescribe.transcription.deepgram_channel import CLOSE_STREAM_MESSAGE
from livescribe.ui.presenter import TranscriptPresenter


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_CONTROL_SEQUENCE = re.compile(r"\x1b\[\d*[GK]")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "hardware: tests requiring a real microphone")


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop every pub/sub subscription between tests."""
    pub.unsubAll()
    yield
    pub.unsubAll()


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767 * 0.5).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream; reads block briefly like a real device
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.read.side_effect = lambda *args, **kwargs: time.sleep(0.005) or DEFAULT
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def session_config():
    """Standard 8kHz linear16 session."""
    return SessionConfig(sample_rate=8000)


class FakeChannel(AbstractRecognitionChannel):
    """In-memory recognition channel driven by the test."""

    def __init__(self, open_error: Exception = None):
        super().__init__()
        self.service_name = "Deepgram"
        self.open_error = open_error
        self.opened_with = None
        self.writable = False
        self.sent: List[bytes] = []
        self.close_calls = 0

    def open(self, config, listener):
        self.opened_with = config
        self._listener = listener
        if self.open_error is not None:
            raise self.open_error

    def is_writable(self) -> bool:
        return self.writable

    def send(self, chunk: bytes) -> None:
        self.sent.append(chunk)

    def close(self) -> None:
        self.close_calls += 1
        self.writable = False

    # Helpers emitting events the way a real backend would
    def ready(self):
        self.writable = True
        self._emit(ChannelEvent.ready())

    def transcript(self, text, is_final=False):
        self._emit(ChannelEvent.for_transcript(TranscriptEvent(text=text, is_final=is_final)))

    def error(self, error):
        self._emit(ChannelEvent.for_error(error))

    def closed(self):
        self.writable = False
        self._emit(ChannelEvent.closed())

    def open_failed(self, error):
        self._emit(ChannelEvent.open_failed(error))


class FakeAudioSource:
    """Audio source publishing test chunks on the audio topic."""

    def __init__(self, start_error: CaptureError = None, topic: str = AUDIO_TOPIC):
        self.start_error = start_error
        self.topic = topic
        self.started_with = None
        self.on_error = None
        self.start_calls = 0
        self.stop_calls = 0

    def start_recording(self, config, on_error=None):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        self.started_with = config
        self.on_error = on_error

    def stop_recording(self):
        self.stop_calls += 1

    def publish(self, chunk: bytes, sequence_number: int = 1):
        pub.sendMessage(self.topic, event=AudioEvent(
            chunk_id=f"chunk_{sequence_number}",
            audio_data=chunk,
            timestamp=0.0,
            sequence_number=sequence_number,
        ))

    def fail(self, error: CaptureError):
        self.on_error(error)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_000):
        self.now = start

    def advance(self, ms: int) -> None:
        self.now += ms

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def fake_audio_source():
    return FakeAudioSource()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def console_output():
    """StringIO behind a terminal-like rich console without colors."""
    return StringIO()


@pytest.fixture
def presenter(console_output):
    console = Console(file=console_output, force_terminal=True, color_system=None, width=80)
    return TranscriptPresenter(console=console)


def visible_lines(output: str) -> List[str]:
    """Split console output into lines, treating line resets as line breaks."""
    pieces = re.split(r"\n|" + _CONTROL_SEQUENCE.pattern, output)
    return [piece.rstrip() for piece in pieces if piece.strip()]


@pytest.fixture
def rendered_lines(console_output):
    """Callable returning what the presenter has rendered so far, line by line."""
    return lambda: visible_lines(console_output.getvalue())


def deepgram_results(text, is_final=False, speech_final=False):
    return {
        "type": "Results",
        "is_final": is_final,
        "speech_final": speech_final,
        "channel": {"alternatives": [{"transcript": text, "confidence": 0.9}]},
    }


class DeepgramStub:
    """Minimal stand-in for the Deepgram live endpoint, served from a background loop."""

    def __init__(self, mode="normal"):
        self.mode = mode
        self.query = None
        self.headers = None
        self.audio = []
        self.text_messages = []
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)

        app = web.Application()
        app.router.add_get("/v1/listen", self.handle)
        self._runner = web.AppRunner(app)

    @property
    def url(self):
        host, port = self._runner.addresses[0][:2]
        return f"ws://{host}:{port}/v1/listen"

    def start(self):
        self._loop.run_until_complete(self._runner.setup())
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        self._loop.run_until_complete(site.start())
        self._thread.start()

    def stop(self):
        if self._loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self._runner.cleanup(), self._loop).result(timeout=5)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()

    async def handle(self, request):
        self.query = dict(request.query)
        self.headers = dict(request.headers)
        if request.headers.get("Authorization") != "Token test-key":
            return web.Response(status=401, text="Unauthorized")

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_str(json.dumps({"type": "Metadata", "request_id": "abc"}))
        await ws.send_str("not json")

        if self.mode == "abnormal":
            await ws.send_str(json.dumps({"type": "Error", "description": "Bad audio format"}))
            await ws.close(code=1011, message=b"internal error")
            return ws

        await ws.send_str(json.dumps(deepgram_results("hel")))
        await ws.send_str(json.dumps(deepgram_results("hello", is_final=True, speech_final=True)))
        await ws.send_str(json.dumps(deepgram_results("", is_final=True)))

        async for msg in ws:
            if msg.type == WSMsgType.BINARY:
                self.audio.append(msg.data)
            elif msg.type == WSMsgType.TEXT:
                self.text_messages.append(msg.data)
                if msg.data == CLOSE_STREAM_MESSAGE:
                    await ws.close()
        return ws


@pytest.fixture
def deepgram_stub():
    stubs = []

    def factory(mode="normal"):
        stub = DeepgramStub(mode)
        stub.start()
        stubs.append(stub)
        return stub

    yield factory
    for stub in stubs:
        stub.stop()


def collect_until(events, kind, timeout=5.0):
    """Drain events until one of `kind` arrives; returns all events seen."""
    seen = []
    while True:
        event = events.get(timeout=timeout)
        seen.append(event)
        if event.kind is kind:
            return seen
