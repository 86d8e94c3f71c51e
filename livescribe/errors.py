"""Exceptions raised and reported by LiveScribe.

Exception hierarchy:
    LiveScribeError
    ├── ConfigurationError: Invalid configuration file, preset or session field
    ├── StartupError: Recognition channel failed to open
    ├── CaptureError: Microphone capture failed to open or read
    └── ChannelError: Recognition channel reported an error
"""

from typing import Optional


class LiveScribeError(Exception):
    """Base exception for all LiveScribe errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(LiveScribeError):
    """Configuration could not be loaded or does not describe a valid session."""


class StartupError(LiveScribeError):
    """The recognition channel could not be opened. Fatal, never retried."""


class CaptureError(LiveScribeError):
    """The audio source reported an error. Reported, not fatal on its own."""


class ChannelError(LiveScribeError):
    """The recognition channel reported an error event or closed abnormally."""

    def __init__(self, message: str, details: Optional[str] = None, code: Optional[int] = None):
        self.code = code
        super().__init__(message, details)
