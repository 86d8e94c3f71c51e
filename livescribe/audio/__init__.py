"""Audio capture and publishing module."""

from .audio_pub import AUDIO_TOPIC, AudioPublisher, subscribe_audio, unsubscribe_audio
from .capture import AudioCapture
from .mic_test import MicrophoneSmokeTest, MicTestResult

__all__ = [
    'AUDIO_TOPIC',
    'AudioPublisher',
    'subscribe_audio',
    'unsubscribe_audio',
    'AudioCapture',
    'MicrophoneSmokeTest',
    'MicTestResult',
]
