"""
Session Store - token bundles cached in memory per session id.
Idle sessions expire after a TTL; the oldest are evicted past a size cap.
"""

import asyncio
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable

from ..core.config import settings
from ..core.logging import bind_context
from ..core.models import PageState, Session


class SessionStore:
    """
    Holds the current PageState of each client session.
    Not persisted: a restart drops every session.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize session store.

        Args:
            ttl_seconds: Idle lifetime (defaults to config)
            max_sessions: Size cap (defaults to config)
            clock: Source of the current time
        """
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.session_ttl)
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_sessions
        self.clock = clock

        # Least recently used first
        self.sessions: OrderedDict[str, Session] = OrderedDict()
        self.locks: dict[str, asyncio.Lock] = {}

        self.evicted: int = 0
        self.expired: int = 0

    def create(self, state: PageState) -> Session:
        """Store ``state`` under a new session id."""
        self.purge_expired()
        now = self.clock()
        session = Session(state=state, created_at=now, last_access=now)
        self.sessions[session.id] = session
        self.locks[session.id] = asyncio.Lock()

        while len(self.sessions) > self.max_sessions:
            oldest_id, _ = self.sessions.popitem(last=False)
            self.locks.pop(oldest_id, None)
            self.evicted += 1
            bind_context(session_id=oldest_id).debug("session evicted")

        bind_context(session_id=session.id).debug("session created")
        return session

    def get(self, session_id: str) -> Session | None:
        """Session by id, refreshing its last access; None when unknown or expired."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        now = self.clock()
        if self._is_expired(session, now):
            self._drop(session_id)
            self.expired += 1
            return None
        session.last_access = now
        self.sessions.move_to_end(session_id)
        return session

    def update(self, session_id: str, state: PageState) -> Session | None:
        """Replace the state of a live session."""
        session = self.get(session_id)
        if session is None:
            return None
        session.state = state
        session.request_count += 1
        return session

    def delete(self, session_id: str) -> bool:
        if session_id not in self.sessions:
            return False
        self._drop(session_id)
        return True

    def lock(self, session_id: str) -> asyncio.Lock:
        """Lock serialising postbacks of one session."""
        return self.locks.setdefault(session_id, asyncio.Lock())

    def purge_expired(self) -> int:
        """Drop every expired session; returns how many were dropped."""
        now = self.clock()
        stale = [sid for sid, s in self.sessions.items() if self._is_expired(s, now)]
        for session_id in stale:
            self._drop(session_id)
        self.expired += len(stale)
        return len(stale)

    def summary(self, session_id: str) -> dict[str, Any] | None:
        """JSON-friendly description of one session."""
        session = self.get(session_id)
        if session is None:
            return None
        return {
            "id": session.id,
            "created_at": session.created_at.isoformat(),
            "last_access": session.last_access.isoformat(),
            "expires_at": (session.last_access + self.ttl).isoformat(),
            "request_count": session.request_count,
            "selections": session.state.selections,
        }

    def stats(self) -> dict[str, int]:
        return {
            "active_sessions": len(self.sessions),
            "max_sessions": self.max_sessions,
            "ttl_seconds": int(self.ttl.total_seconds()),
            "evicted": self.evicted,
            "expired": self.expired,
        }

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now - session.last_access > self.ttl

    def _drop(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)
        self.locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.sessions
