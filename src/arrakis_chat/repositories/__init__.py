"""Session state storage."""

from .base import SessionStore
from .memory import InMemorySessionStore

__all__ = ["SessionStore", "InMemorySessionStore"]
