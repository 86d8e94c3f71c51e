"""Streaming recognition channels and latency tracking for LiveScribe."""

from .base import AbstractRecognitionChannel, ChannelListener
from .deepgram_channel import DeepgramChannel
from .google_channel import GoogleStreamingChannel
from .latency import LatencyTracker

__all__ = [
    "AbstractRecognitionChannel",
    "ChannelListener",
    "DeepgramChannel",
    "GoogleStreamingChannel",
    "LatencyTracker",
]
