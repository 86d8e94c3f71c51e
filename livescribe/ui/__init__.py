"""Console presentation for LiveScribe."""

from .presenter import TranscriptPresenter

__all__ = ["TranscriptPresenter"]
