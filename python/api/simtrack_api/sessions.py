"""Process-local login sessions.

A session maps an opaque cookie token to the identity of the user who logged
in. Sessions vanish on restart; that is acceptable for the demo-grade auth
this service ships with.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .auth_utils import new_session_token
from .settings import settings


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the caller, resolved once per request."""

    id: int
    username: str


@dataclass
class _Entry:
    user: CurrentUser
    expires_at: float


class SessionStore:
    def __init__(self, ttl_seconds: float, clock=time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def create(self, user: CurrentUser) -> str:
        token = new_session_token()
        with self._lock:
            self._purge_expired()
            self._entries[token] = _Entry(user=user, expires_at=self._clock() + self.ttl_seconds)
        return token

    def get(self, token: Optional[str]) -> Optional[CurrentUser]:
        if not token:
            return None
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[token]
                return None
            return entry.user

    def revoke(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._lock:
            return self._entries.pop(token, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [t for t, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[token]


_store = SessionStore(ttl_seconds=settings.session_ttl_hours * 3600)


def get_session_store() -> SessionStore:
    return _store
