from __future__ import annotations

import threading
import typing as t

from .session import Session


class SessionRegistry:
    """Thread-safe map of session id to Session, owned by one Client."""

    def __init__(self) -> None:
        self._sessions: t.Dict[str, Session] = {}
        self._lock = threading.Lock()

    def add(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> t.Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str, session: t.Optional[Session] = None) -> t.Optional[Session]:
        """Remove ``session_id``; when ``session`` is given, only if it is still the one registered."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None or (session is not None and current is not session):
                return None
            return self._sessions.pop(session_id)

    def pop_all(self) -> t.List[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions

    def ids(self) -> t.List[str]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
