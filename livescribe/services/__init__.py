"""Services layer for LiveScribe session logic."""

from .session_controller import SessionController, monotonic_ms

__all__ = [
    "SessionController",
    "monotonic_ms",
]
