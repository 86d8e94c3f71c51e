"""LiveScribe - real-time microphone transcription with per-utterance latency tracking."""

__version__ = "0.1.0"
