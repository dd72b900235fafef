"""
Utility modules for the Scope & Settlement Rules Engine.
"""

from .session_locks import SessionLockRegistry, get_session_locks

__all__ = [
    "SessionLockRegistry",
    "get_session_locks",
]
