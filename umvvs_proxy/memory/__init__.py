"""Memory module - in-process session storage."""

from .session_store import SessionStore

__all__ = [
    "SessionStore",
]
