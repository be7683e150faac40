"""
In-memory session registry shared across all routes.

Sessions live in a plain dict behind one lock. Every operation takes the
lock, does its dict work and returns; nothing awaits while holding it, so a
caller can never see a half-inserted or half-removed session.
"""

import threading
import uuid

from errors import DuplicateSessionError, SessionNotFoundError
from models.session import Session


def new_session_id() -> str:
    # uuid4 draws 122 bits from os.urandom
    return uuid.uuid4().hex


class SessionRegistry:

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def register(self, session: Session) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise DuplicateSessionError(session.session_id)
            self._sessions[session.session_id] = session

    def lookup(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def snapshot(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def clear(self) -> list[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def count(self) -> int:
        return len(self)
