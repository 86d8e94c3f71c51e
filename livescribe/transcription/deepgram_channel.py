"""Deepgram live transcription channel over an aiohttp websocket.

The websocket runs on a private asyncio event loop in a background thread.
Audio is handed to that loop with `run_coroutine_threadsafe`, and every
message Deepgram sends is turned into a `ChannelEvent` for the listener.
"""

import asyncio
import json
import logging
import threading
from typing import Any, Dict, Optional

import aiohttp

from .base import AbstractRecognitionChannel, ChannelListener
from ..errors import ChannelError, StartupError
from ..models.events import ChannelEvent, TranscriptEvent
from ..models.session import SessionConfig

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"
CLOSE_STREAM_MESSAGE = json.dumps({"type": "CloseStream"})
NORMAL_CLOSE_CODE = 1000


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_query_params(config: SessionConfig) -> Dict[str, str]:
    """Map session settings onto Deepgram live transcription query parameters.

    Args:
        config: Session settings

    Returns:
        Query parameters with every value rendered as a string
    """
    return {
        "encoding": config.encoding,
        "sample_rate": str(config.sample_rate),
        "channels": str(config.channels),
        "model": config.model,
        "smart_format": _flag(config.smart_format),
        "punctuate": _flag(config.punctuate),
        "interim_results": _flag(config.interim_results),
        "endpointing": str(config.endpointing_ms),
        "utterance_end_ms": str(config.utterance_end_ms),
    }


def parse_results_message(message: Dict[str, Any]) -> TranscriptEvent:
    """Extract the first alternative of a Deepgram `Results` message.

    Args:
        message: Decoded JSON message

    Returns:
        TranscriptEvent whose text is None when no alternative carries a transcript
    """
    channel = message.get("channel")
    alternatives = channel.get("alternatives") if isinstance(channel, dict) else None
    text = None
    if alternatives and isinstance(alternatives[0], dict):
        text = alternatives[0].get("transcript") or None
    return TranscriptEvent(
        text=text,
        is_final=bool(message.get("is_final")),
        speech_final=bool(message.get("speech_final")),
    )


class DeepgramChannel(AbstractRecognitionChannel):
    """Deepgram streaming recognition channel."""

    def __init__(self,
                 api_key: str,
                 url: str = DEEPGRAM_LISTEN_URL,
                 connect_timeout: float = 10.0,
                 close_timeout: float = 5.0):
        """Initialize Deepgram channel.

        Args:
            api_key: Deepgram API key
            url: Live transcription websocket endpoint
            connect_timeout: Seconds allowed for establishing the connection
            close_timeout: Seconds to wait for Deepgram to flush and close
                after CloseStream before the socket is closed from our side
        """
        super().__init__()
        self.api_key = api_key
        self.url = url
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.service_name = "Deepgram"

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._close_requested = False

    def open(self, config: SessionConfig, listener: ChannelListener) -> None:
        """Start connecting to Deepgram in a background thread."""
        if not self.api_key:
            raise StartupError("Deepgram API key is not configured",
                               "set DEEPGRAM_API_KEY in the environment or .env file")
        if self._thread is not None:
            logger.warning("Deepgram channel already opened")
            return

        self._listener = listener
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop,
                                        args=(build_query_params(config),),
                                        daemon=True)
        self._thread.name = "DeepgramChannelThread"
        self._thread.start()
        logger.info(f"Connecting to Deepgram: model={config.model}, "
                    f"{config.sample_rate}Hz, encoding={config.encoding}")

    def is_writable(self) -> bool:
        ws = self._ws
        return ws is not None and not ws.closed and not self._close_requested

    def send(self, chunk: bytes) -> None:
        ws = self._ws
        if ws is None or not self.is_writable():
            return
        future = self._submit(ws.send_bytes(chunk))
        if future is not None:
            future.add_done_callback(self._on_send_done)

    def close(self) -> None:
        """Send CloseStream and wait (bounded) for Deepgram to close the socket."""
        if self._close_requested:
            return
        self._close_requested = True

        thread = self._thread
        if thread is None:
            return

        logger.info("Closing Deepgram connection")
        self._submit(self._finish())
        if thread is threading.current_thread():
            return

        thread.join(timeout=self.close_timeout)
        if thread.is_alive():
            logger.warning("Deepgram did not close the stream in time, forcing close")
            self._submit(self._force_close())
            thread.join(timeout=1.0)

    def _submit(self, coro):
        """Schedule a coroutine on the channel loop from any thread."""
        loop = self._loop
        if loop is None:
            coro.close()
            return None
        try:
            return asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError:
            coro.close()
            logger.debug("Deepgram event loop already stopped")
            return None

    def _on_send_done(self, future) -> None:
        if future.cancelled() or self._close_requested:
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Failed to send audio to Deepgram: {error}")
            self._emit(ChannelEvent.for_error(
                ChannelError("Failed to send audio to Deepgram", str(error))))

    def _run_loop(self, params: Dict[str, str]) -> None:
        """Thread target: run the websocket session on the private loop."""
        loop = self._loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._session(params))
        except Exception as e:
            logger.error(f"Unhandled exception in Deepgram channel: {e}", exc_info=True)
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
            logger.debug("Deepgram channel thread exiting")

    async def _session(self, params: Dict[str, str]) -> None:
        headers = {"Authorization": f"Token {self.api_key}"}
        timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            try:
                ws = await session.ws_connect(self.url, params=params, headers=headers)
            except aiohttp.WSServerHandshakeError as e:
                logger.error(f"Deepgram handshake failed: HTTP {e.status} {e.message}")
                self._emit(ChannelEvent.open_failed(
                    StartupError("Deepgram rejected the connection", f"HTTP {e.status}: {e.message}")))
                return
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Could not connect to Deepgram: {e!r}")
                self._emit(ChannelEvent.open_failed(
                    StartupError("Could not connect to Deepgram", str(e) or type(e).__name__)))
                return

            self._ws = ws
            try:
                if self._close_requested:
                    await ws.close()
                else:
                    logger.info("Connection to Deepgram established")
                    self._emit(ChannelEvent.ready())
                    await self._receive(ws)
            finally:
                self._ws = None
                if not ws.closed:
                    await ws.close()
                self._report_close_code(ws.close_code)
                logger.info("Connection to Deepgram closed")
                self._emit(ChannelEvent.closed())

    async def _receive(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._handle_text(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._emit(ChannelEvent.for_error(
                    ChannelError("Deepgram connection error", str(ws.exception()))))
            else:
                logger.debug(f"Ignoring Deepgram {msg.type.name} frame")

    async def _finish(self) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            return
        try:
            await ws.send_str(CLOSE_STREAM_MESSAGE)
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.warning(f"Could not send CloseStream to Deepgram: {e}")
            await ws.close()

    async def _force_close(self) -> None:
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()

    def _handle_text(self, data: str) -> None:
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON message from Deepgram: {data[:100]}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring unexpected Deepgram payload: {data[:100]}")
            return

        message_type = message.get("type")
        if message_type == "Results":
            self._emit(ChannelEvent.for_transcript(parse_results_message(message)))
        elif message_type == "Error":
            details = message.get("description") or message.get("message") or data
            self._emit(ChannelEvent.for_error(ChannelError("Deepgram reported an error", details)))
        else:
            logger.debug(f"Ignoring Deepgram {message_type} message")

    def _report_close_code(self, code: Optional[int]) -> None:
        if code is None or code == NORMAL_CLOSE_CODE:
            return
        logger.warning(f"Deepgram closed the connection with code {code}")
        self._emit(ChannelEvent.for_error(
            ChannelError("Deepgram closed the connection abnormally", f"close code {code}", code=code)))
