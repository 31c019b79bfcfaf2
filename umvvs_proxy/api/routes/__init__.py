"""API route modules."""

from . import lookup, sessions

__all__ = ["lookup", "sessions"]
