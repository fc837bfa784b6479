from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .history import ConversationHistory

logger = logging.getLogger("catalog_chat.sessions")


@dataclass
class Session:
    """Server-held conversation for one client-supplied session id."""
    id: str
    history: ConversationHistory = field(default_factory=ConversationHistory)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    ephemeral: bool = False


@dataclass
class _SessionLock:
    """Per-session mutex with a count of threads holding or waiting on it."""
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class SessionStore:
    """In-memory session storage; the single writer of per-session history."""

    def __init__(self, ttl_seconds: float = 0, max_sessions: int = 0) -> None:
        """Purpose: Initialize an empty in-memory session map.
        Inputs/Outputs: Inputs are an idle TTL and a max_sessions cap (0 disables each).
        Side Effects / State: Creates the session map and locks.
        Dependencies: threading.Lock for map access and per-session serialization.
        Failure Modes: None.
        If Removed: Conversations lose server-side history between requests.
        Testing Notes: Create sessions, clear them, and verify eviction with a small TTL.
        """
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._sessions: Dict[str, Session] = {}
        self._session_locks: Dict[str, _SessionLock] = {}
        self._lock = threading.Lock()

    def get(self, session_id: Optional[str]) -> Session:
        """Purpose: Return the session for an id, creating it on first reference.
        Inputs/Outputs: Input is a session id or None; output is a Session.
        Side Effects / State: May create a session, refresh updated_at, and evict stale ones.
        Dependencies: Uses evict_stale and _prune_sessions.
        Failure Modes: None; a missing id yields a fresh ephemeral session that is never stored.
        If Removed: The pipeline has nowhere to read or record turns.
        Testing Notes: get(None) twice returns two distinct ephemeral sessions.
        """
        if not session_id:
            return Session(id=uuid.uuid4().hex, ephemeral=True)
        now = time.time()
        self.evict_stale(now)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(id=session_id, created_at=now, updated_at=now)
                self._sessions[session_id] = session
                logger.info("session=%s created", session_id)
                self._prune_sessions(keep=session_id)
            else:
                session.updated_at = now
            return session

    def peek(self, session_id: Optional[str]) -> Optional[Session]:
        """Return an existing session without creating or refreshing it."""
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def clear(self, session_id: Optional[str]) -> bool:
        """Purpose: Drop a session and its history.
        Inputs/Outputs: Input is a session id or None; output is True if one was removed.
        Side Effects / State: Removes the session from the store; held locks stay with their holders.
        Dependencies: None beyond the store map.
        Failure Modes: None; unknown or missing ids are a no-op.
        If Removed: Users cannot reset a conversation without a restart.
        Testing Notes: Clearing a never-created id returns False and leaves the store unchanged.
        """
        if not session_id:
            return False
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("session=%s cleared", session_id)
        return removed is not None

    @contextmanager
    def lock(self, session_id: Optional[str]) -> Iterator[None]:
        """Serialize in-flight mutations for one session id; no-op without an id."""
        if not session_id:
            yield
            return
        with self._lock:
            session_lock = self._session_locks.setdefault(session_id, _SessionLock())
            session_lock.holders += 1
        try:
            with session_lock.lock:
                yield
        finally:
            # Entry lives as long as anyone holds or waits on it.
            with self._lock:
                session_lock.holders -= 1
                if session_lock.holders == 0:
                    self._session_locks.pop(session_id, None)

    def evict_stale(self, now: Optional[float] = None) -> int:
        """Purpose: Remove sessions idle for longer than the configured TTL.
        Inputs/Outputs: Input is an optional current timestamp; output is the eviction count.
        Side Effects / State: Mutates the session map.
        Dependencies: Uses ttl_seconds and Session.updated_at.
        Failure Modes: None; no-op when the TTL is disabled.
        If Removed: Abandoned sessions are retained until process restart.
        Testing Notes: Pass a future timestamp and verify idle sessions are evicted.
        """
        if not self._ttl_seconds or self._ttl_seconds <= 0:
            return 0
        current = time.time() if now is None else now
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if current - session.updated_at > self._ttl_seconds
            ]
            for session_id in expired:
                self._sessions.pop(session_id, None)
        if expired:
            logger.info("sessions evicted=%s reason=ttl", len(expired))
        return len(expired)

    def _prune_sessions(self, keep: str) -> bool:
        # Caller holds self._lock. Drops least recently updated sessions above the cap, never `keep`.
        if not self._max_sessions or self._max_sessions <= 0:
            return False
        if len(self._sessions) <= self._max_sessions:
            return False
        ordered = sorted(
            (session for session in self._sessions.values() if session.id != keep),
            key=lambda s: s.updated_at,
            reverse=True,
        )
        keep_ids = {session.id for session in ordered[: self._max_sessions - 1]}
        keep_ids.add(keep)
        removed = [session_id for session_id in list(self._sessions) if session_id not in keep_ids]
        for session_id in removed:
            self._sessions.pop(session_id, None)
        if removed:
            logger.info("sessions evicted=%s reason=max_sessions", len(removed))
        return bool(removed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
