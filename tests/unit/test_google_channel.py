"""Unit tests for GoogleStreamingChannel with a mocked Speech client."""

import queue
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from livescribe.errors import ChannelError, StartupError
from livescribe.models.events import ChannelEventKind
from livescribe.models.session import SessionConfig
from livescribe.transcription.google_channel import GoogleStreamingChannel

from conftest import collect_until


def response(text, is_final=False):
    alternatives = [SimpleNamespace(transcript=text)] if text is not None else []
    return SimpleNamespace(results=[SimpleNamespace(alternatives=alternatives, is_final=is_final)])


@pytest.fixture
def mock_speech_client():
    """Patch credential loading and the Speech client constructor."""
    with patch('livescribe.transcription.google_channel.service_account.Credentials.from_service_account_file') as mock_creds, \
         patch('livescribe.transcription.google_channel.speech.SpeechClient') as mock_client_class:
        client = Mock()
        mock_client_class.return_value = client
        yield {'credentials': mock_creds, 'class': mock_client_class, 'client': client}


@pytest.mark.unit
class TestGoogleStreamingConfig:
    """Mapping session settings onto Google's streaming config."""

    def test_linear16_session(self):
        channel = GoogleStreamingChannel(credentials_path="sa.json", language="en-GB", model="latest_short")
        streaming_config = channel.build_streaming_config(SessionConfig(sample_rate=8000, punctuate=True))

        recognition = streaming_config.config
        assert recognition.encoding == speech.RecognitionConfig.AudioEncoding.LINEAR16
        assert recognition.sample_rate_hertz == 8000
        assert recognition.language_code == "en-GB"
        assert recognition.model == "latest_short"
        assert recognition.enable_automatic_punctuation is True
        assert streaming_config.interim_results is True

    def test_mulaw_session(self):
        channel = GoogleStreamingChannel(credentials_path="sa.json")
        streaming_config = channel.build_streaming_config(SessionConfig(sample_rate=8000, encoding="mulaw"))

        assert streaming_config.config.encoding == speech.RecognitionConfig.AudioEncoding.MULAW

    def test_unsupported_encoding(self):
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        with pytest.raises(StartupError, match="opus"):
            channel.build_streaming_config(SessionConfig(sample_rate=48000, encoding="opus"))


@pytest.mark.unit
class TestGoogleStreamingChannel:
    """Test cases for GoogleStreamingChannel class."""

    def test_missing_credentials_path(self, session_config):
        channel = GoogleStreamingChannel(credentials_path=None)

        with pytest.raises(StartupError, match="credentials"):
            channel.open(session_config, lambda event: None)

    def test_unreadable_credentials(self, mock_speech_client, session_config):
        mock_speech_client['credentials'].side_effect = FileNotFoundError("sa.json")
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        with pytest.raises(StartupError, match="Could not load Google credentials"):
            channel.open(session_config, lambda event: None)

    def test_streaming_session(self, mock_speech_client, session_config):
        received = []

        def streaming_recognize(config, requests):
            for request in requests:
                received.append(request.audio_content)
                yield response("hel")
                yield response("hello", is_final=True)
                yield response(None, is_final=True)

        mock_speech_client['client'].streaming_recognize.side_effect = streaming_recognize
        events = queue.Queue()
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        channel.open(session_config, events.put)
        assert events.get(timeout=5).kind is ChannelEventKind.READY
        assert channel.is_writable()

        channel.send(b"\x01\x02")
        transcripts = [events.get(timeout=5) for _ in range(3)]
        channel.close()
        rest = collect_until(events, ChannelEventKind.CLOSED)

        assert received == [b"\x01\x02"]
        assert [event.transcript.text for event in transcripts] == ["hel", "hello", None]
        assert [event.transcript.is_final for event in transcripts] == [False, True, True]
        assert [event.kind for event in rest] == [ChannelEventKind.CLOSED]
        assert channel.is_writable() is False

    def test_api_error_reported_then_closed(self, mock_speech_client, session_config):
        def streaming_recognize(config, requests):
            raise gax_exceptions.ServiceUnavailable("backend down")
            yield

        mock_speech_client['client'].streaming_recognize.side_effect = streaming_recognize
        events = queue.Queue()
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        channel.open(session_config, events.put)
        seen = collect_until(events, ChannelEventKind.CLOSED)
        channel.close()

        assert [event.kind for event in seen] == [ChannelEventKind.READY, ChannelEventKind.ERROR,
                                                  ChannelEventKind.CLOSED]
        assert isinstance(seen[1].error, ChannelError)
        assert "backend down" in str(seen[1].error)

    @pytest.mark.parametrize("error", [
        gax_exceptions.Unauthenticated("401 invalid credential"),
        gax_exceptions.PermissionDenied("403 speech API disabled"),
        auth_exceptions.RefreshError("invalid_grant: account not found"),
    ])
    def test_rejection_before_first_response_fails_open(self, mock_speech_client, session_config, error):
        def streaming_recognize(config, requests):
            raise error
            yield

        mock_speech_client['client'].streaming_recognize.side_effect = streaming_recognize
        events = queue.Queue()
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        channel.open(session_config, events.put)
        seen = collect_until(events, ChannelEventKind.CLOSED)
        channel.close()

        assert [event.kind for event in seen] == [ChannelEventKind.READY, ChannelEventKind.OPEN_FAILED,
                                                  ChannelEventKind.CLOSED]
        assert isinstance(seen[1].error, StartupError)
        assert str(error) in str(seen[1].error)

    def test_rejection_after_responses_is_channel_error(self, mock_speech_client, session_config):
        def streaming_recognize(config, requests):
            yield response("hi", is_final=True)
            raise gax_exceptions.Unauthenticated("token expired")

        mock_speech_client['client'].streaming_recognize.side_effect = streaming_recognize
        events = queue.Queue()
        channel = GoogleStreamingChannel(credentials_path="sa.json")

        channel.open(session_config, events.put)
        seen = collect_until(events, ChannelEventKind.CLOSED)
        channel.close()

        assert [event.kind for event in seen] == [ChannelEventKind.READY, ChannelEventKind.TRANSCRIPT,
                                                  ChannelEventKind.ERROR, ChannelEventKind.CLOSED]
        assert isinstance(seen[2].error, ChannelError)

    def test_send_before_open_is_dropped(self):
        channel = GoogleStreamingChannel(credentials_path="sa.json")
        channel.send(b"\x00")
        channel.close()

        assert channel.is_writable() is False
