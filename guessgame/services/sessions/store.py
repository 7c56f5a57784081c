import threading
from typing import Callable, Dict, List, Optional, Set, TypeVar

from .state import Session

R = TypeVar('R')


class SessionNotFound(LookupError):
    """The session does not exist, or was deleted before its lock was taken."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id


class SessionStore:
    """In-process registry of active sessions.

    Two levels of locking:

    - ``_guard`` protects the registry dict and the membership index only;
      it is held for a few dict operations at a time.
    - each Session carries its own lock; transitions run under it so
      unrelated sessions never wait on each other.

    Lock order is always session lock, then ``_guard``.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._memberships: Dict[str, Set[str]] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        with self._guard:
            return self._sessions.get(session_id)

    def session_ids(self) -> List[str]:
        with self._guard:
            return list(self._sessions)

    def get_or_create(self, session_id: str) -> Session:
        with self._guard:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self._sessions[session_id] = session
            return session

    def with_session(self, session_id: str, fn: Callable[[Session], R], create: bool = False) -> R:
        """Run ``fn(session)`` with exclusive access to the session.

        Raises SessionNotFound if there is no such session. With
        ``create=True`` a missing session is created, and a session deleted
        while we waited for its lock is replaced by a fresh one.
        """
        while True:
            session = self.get_or_create(session_id) if create else self.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            with session.lock:
                if not session.deleted:
                    return fn(session)
            if not create:
                raise SessionNotFound(session_id)

    def delete_if_empty(self, session_id: str) -> Optional[Session]:
        """Remove the session if it has no players. Returns the removed session."""
        session = self.get(session_id)
        if session is None:
            return None
        with session.lock:
            if session.deleted or session.players:
                return None
            session.deleted = True
            with self._guard:
                if self._sessions.get(session_id) is session:
                    del self._sessions[session_id]
            return session

    def track(self, connection_id: str, session_id: str) -> None:
        with self._guard:
            self._memberships.setdefault(connection_id, set()).add(session_id)

    def forget(self, connection_id: str) -> Set[str]:
        """Drop and return every session id the connection joined."""
        with self._guard:
            return self._memberships.pop(connection_id, set())

    def clear(self) -> List[Session]:
        with self._guard:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._memberships.clear()
        for session in sessions:
            with session.lock:
                session.deleted = True
        return sessions
