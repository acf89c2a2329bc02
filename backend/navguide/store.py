"""Session and user storage.

``SessionStore`` and ``UserStore`` are the interfaces the navigation core
consumes. The in-memory versions back the API process and the tests
(MVP; a database-backed store implements the same methods).
"""

import threading
import weakref
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from .session import NavigationSession, SessionStatus


class SessionStore:
    def transaction(self, user_id: str):
        """Context manager serializing all writes for one user."""
        raise NotImplementedError

    def create(self, session: NavigationSession) -> None:
        raise NotImplementedError

    def save(self, session: NavigationSession) -> None:
        raise NotImplementedError

    def find_active(self, user_id: str) -> Optional[NavigationSession]:
        raise NotImplementedError

    def find_by_id_for_user(self, user_id: str, session_id: UUID) -> Optional[NavigationSession]:
        raise NotImplementedError

    def list_history(self, user_id: str, page: int, size: int) -> Tuple[List[NavigationSession], int]:
        """Sessions ordered by started_at descending, plus the total count."""
        raise NotImplementedError


class UserStore:
    def find_by_id(self, user_id: str) -> Optional[dict]:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[UUID, NavigationSession] = {}
        self._guard = threading.Lock()
        # Locks live only while some request holds or waits on them
        self._user_locks = weakref.WeakValueDictionary()

    @contextmanager
    def transaction(self, user_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._user_locks[user_id] = lock
        with lock:
            yield

    def create(self, session: NavigationSession) -> None:
        with self._guard:
            if session.id in self._sessions:
                raise ValueError(f"Session already exists: {session.id}")
            self._sessions[session.id] = session

    def save(self, session: NavigationSession) -> None:
        with self._guard:
            self._sessions[session.id] = session

    def find_active(self, user_id: str) -> Optional[NavigationSession]:
        with self._guard:
            return next(
                (s for s in self._sessions.values()
                 if s.user_id == user_id and s.status is SessionStatus.ACTIVE),
                None,
            )

    def find_by_id_for_user(self, user_id: str, session_id: UUID) -> Optional[NavigationSession]:
        with self._guard:
            s = self._sessions.get(session_id)
        if s is None or s.user_id != user_id:
            return None
        return s

    def list_history(self, user_id: str, page: int, size: int) -> Tuple[List[NavigationSession], int]:
        with self._guard:
            owned = [s for s in self._sessions.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.started_at, reverse=True)
        start = max(page, 0) * size
        return owned[start:start + size], len(owned)

    def all_for_user(self, user_id: str) -> List[NavigationSession]:
        with self._guard:
            return [s for s in self._sessions.values() if s.user_id == user_id]


class InMemoryUserStore(UserStore):
    def __init__(self, users: Optional[Dict[str, dict]] = None):
        self._users: Dict[str, dict] = dict(users or {})

    def add(self, user_id: str, display_name: Optional[str] = None) -> dict:
        user = {"id": user_id, "display_name": display_name}
        self._users[user_id] = user
        return user

    def find_by_id(self, user_id: str) -> Optional[dict]:
        return self._users.get(user_id)
