"""Navigation session lifecycle.

A session is an immutable value. Every state change goes through
``transition()``, which looks the move up in ``TRANSITIONS`` and returns a
new session; the input is never touched. ``SessionManager`` is the only
thing that writes sessions to the store.

States: ACTIVE -> COMPLETED | CANCELLED | FAILED (terminal).
REROUTE keeps a session ACTIVE and bumps its reroute counter.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidSessionState, SessionNotFound
from .geo import LatLng

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class SessionEvent(str, Enum):
    COMPLETE = "complete"
    CANCEL = "cancel"
    FAIL = "fail"
    REROUTE = "reroute"


TRANSITIONS: Dict[Tuple[SessionStatus, SessionEvent], SessionStatus] = {
    (SessionStatus.ACTIVE, SessionEvent.COMPLETE): SessionStatus.COMPLETED,
    (SessionStatus.ACTIVE, SessionEvent.CANCEL): SessionStatus.CANCELLED,
    (SessionStatus.ACTIVE, SessionEvent.FAIL): SessionStatus.FAILED,
    (SessionStatus.ACTIVE, SessionEvent.REROUTE): SessionStatus.ACTIVE,
}

TERMINAL_STATUSES = frozenset(s for s in SessionStatus if s is not SessionStatus.ACTIVE)

# Events a caller may ask for by target status
EVENT_FOR_TARGET: Dict[SessionStatus, SessionEvent] = {
    SessionStatus.COMPLETED: SessionEvent.COMPLETE,
    SessionStatus.CANCELLED: SessionEvent.CANCEL,
    SessionStatus.FAILED: SessionEvent.FAIL,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NavigationSession:
    id: uuid.UUID
    user_id: str
    origin: LatLng
    destination: LatLng
    dest_name: str
    started_at: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    distance_m: Optional[int] = None
    reroute_count: int = 0
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


def new_session(
    user_id: str,
    origin: LatLng,
    destination: LatLng,
    dest_name: str,
    distance_m: int,
    *,
    now: datetime,
) -> NavigationSession:
    return NavigationSession(
        id=uuid.uuid4(),
        user_id=user_id,
        origin=origin,
        destination=destination,
        dest_name=dest_name,
        started_at=now,
        distance_m=distance_m,
    )


def transition(
    session: NavigationSession,
    event: SessionEvent,
    *,
    now: datetime,
    distance_m: Optional[int] = None,
) -> NavigationSession:
    """Apply exactly one event and return the resulting session.

    Raises InvalidSessionState when the table has no entry for
    (session.status, event); the given session is left as it was.
    """
    target = TRANSITIONS.get((session.status, event))
    if target is None:
        raise InvalidSessionState(
            f"Cannot {event.value} session {session.id} in status {session.status.value}",
            {"sessionId": str(session.id), "status": session.status.value, "event": event.value},
        )

    if event is SessionEvent.REROUTE:
        if distance_m is None:
            raise ValueError("reroute transition needs the new route distance")
        return replace(session, reroute_count=session.reroute_count + 1, distance_m=distance_m)

    return replace(session, status=target, completed_at=now)


class SessionManager:
    """
    Owns session state changes and the one-active-session-per-user rule.

    Every method that writes runs inside ``store.transaction(user_id)``, the
    per-user serialization boundary, so two requests from the same user
    cannot both see "no active session" and both create one.
    """

    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def cancel_active(self, user_id: str) -> Optional[NavigationSession]:
        """Cancel the user's active session, if any. Returns the cancelled session."""
        with self.store.transaction(user_id):
            return self._cancel_active_locked(user_id)

    def _cancel_active_locked(self, user_id: str) -> Optional[NavigationSession]:
        active = self.store.find_active(user_id)
        if active is None:
            return None
        cancelled = transition(active, SessionEvent.CANCEL, now=self.clock())
        self.store.save(cancelled)
        logger.info("Cancelled existing active session: %s", cancelled.id)
        return cancelled

    def start(
        self,
        user_id: str,
        origin: LatLng,
        destination: LatLng,
        dest_name: str,
        distance_m: int,
    ) -> NavigationSession:
        """Create a new ACTIVE session, cancelling whatever is active first, atomically."""
        with self.store.transaction(user_id):
            self._cancel_active_locked(user_id)
            session = new_session(
                user_id, origin, destination, dest_name, distance_m, now=self.clock(),
            )
            self.store.create(session)
        logger.info("Created navigation session: %s", session.id)
        return session

    def apply(self, session: NavigationSession, event: SessionEvent,
              distance_m: Optional[int] = None) -> NavigationSession:
        """
        Re-read the session under the user's lock and apply one event to the
        stored copy, so a change made by a concurrent request is never overwritten.
        """
        with self.store.transaction(session.user_id):
            current = self.store.find_by_id_for_user(session.user_id, session.id)
            if current is None:
                raise SessionNotFound(f"Session not found: {session.id}")
            updated = transition(current, event, now=self.clock(), distance_m=distance_m)
            self.store.save(updated)
        return updated

    def record_reroute(self, session: NavigationSession, distance_m: int) -> NavigationSession:
        updated = self.apply(session, SessionEvent.REROUTE, distance_m=distance_m)
        logger.info("Reroute complete for session %s, reroute count: %d",
                    updated.id, updated.reroute_count)
        return updated
