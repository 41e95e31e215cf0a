"""
LifeLine Assistant — Per-user conversation sessions.

Holds what the bot is waiting on for each user, e.g. parsed items pending
a confirm/cancel tap. Sessions expire after a fixed idle TTL; every read
evicts stale entries first. Safe to use from handler threads.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from src.core.clock import local_now


@dataclass
class Session:
    user_id: int
    kind: str
    payload: Any = None
    created_at: datetime = field(default_factory=local_now)
    updated_at: datetime = field(default_factory=local_now)


class SessionStore:
    """One active session per user, with TTL-based expiry."""

    def __init__(
        self,
        ttl_seconds: int = 600,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._ttl = timedelta(seconds=max(1, ttl_seconds))
        self._now_provider = now_provider or local_now
        self._sessions: dict[int, Session] = {}
        self._lock = threading.Lock()

    def create(self, user_id: int, kind: str, payload: Any = None) -> Session:
        """Start a session, replacing any the user already had."""
        now = self._now_provider()
        session = Session(user_id=user_id, kind=kind, payload=payload, created_at=now, updated_at=now)
        with self._lock:
            self._sessions[user_id] = session
        return session

    def get(self, user_id: int, kind: str | None = None) -> Session | None:
        """Return the live session, optionally only if it is of ``kind``."""
        with self._lock:
            session = self._live(user_id)
        if session is None or (kind is not None and session.kind != kind):
            return None
        return session

    def refresh(self, user_id: int) -> bool:
        """Push back the expiry of a live session."""
        with self._lock:
            session = self._live(user_id)
            if session is None:
                return False
            session.updated_at = self._now_provider()
            return True

    def clear(self, user_id: int) -> Session | None:
        with self._lock:
            return self._sessions.pop(user_id, None)

    def evict_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        now = self._now_provider()
        with self._lock:
            expired = [uid for uid, s in self._sessions.items() if now - s.updated_at > self._ttl]
            for uid in expired:
                del self._sessions[uid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _live(self, user_id: int) -> Session | None:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._now_provider() - session.updated_at > self._ttl:
            del self._sessions[user_id]
            return None
        return session
