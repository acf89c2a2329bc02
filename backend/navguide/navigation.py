"""Route and reroute use cases.

Composes the session manager, the routing engine and the instruction
translator. The engine call is the only slow step and runs outside any
store transaction; session writes happen before it (cancelling the prior
trip) or after it succeeds, never half-way.
"""

import logging
from typing import List, Optional, Tuple, Union
from uuid import UUID

from .errors import InvalidArgument, InvalidSessionState, SessionNotFound, UserNotFound
from .geo import LatLng, check_coordinate
from .instructions import translate_steps
from .models import LatLng as LatLngModel, RouteResponse
from .osrm import RawRoute
from .session import (
    EVENT_FOR_TARGET,
    NavigationSession,
    SessionManager,
    SessionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


def _session_uuid(session_id: Union[UUID, str]) -> UUID:
    if isinstance(session_id, UUID):
        return session_id
    try:
        return UUID(str(session_id))
    except ValueError:
        raise InvalidArgument(f"Invalid session id: {session_id}")


def _target_status(target: Union[SessionStatus, str]) -> SessionStatus:
    try:
        status = SessionStatus(target)
    except ValueError:
        raise InvalidArgument(f"Invalid status: {target}")
    if status not in EVENT_FOR_TARGET:
        raise InvalidArgument(f"Invalid status transition: {status.value}")
    return status


def build_route_response(session_id: UUID, raw: RawRoute) -> RouteResponse:
    waypoints, instructions = translate_steps(raw.steps)
    return RouteResponse(
        session_id=session_id,
        distance=int(raw.distance_m),
        duration=int(raw.duration_s),
        waypoints=waypoints,
        instructions=instructions,
        geometry=[LatLngModel(lat=lat, lng=lng) for lat, lng in raw.geometry],
    )


class NavigationService:
    def __init__(self, users, sessions, engine, default_dest_name: str = "목적지", clock=utcnow):
        self.users = users
        self.sessions = sessions
        self.engine = engine
        self.default_dest_name = default_dest_name
        self.manager = SessionManager(sessions, clock=clock)

    def calculate_route(
        self,
        user_id: str,
        origin: LatLng,
        dest: LatLng,
        dest_name: Optional[str] = None,
    ) -> RouteResponse:
        origin = check_coordinate(origin, "origin")
        dest = check_coordinate(dest, "destination")
        logger.info("Calculating route for user %s from (%s, %s) to (%s, %s)",
                    user_id, origin[0], origin[1], dest[0], dest[1])

        if self.users.find_by_id(user_id) is None:
            raise UserNotFound(f"User not found: {user_id}")

        # Starting a new trip abandons the previous one, even if routing fails below.
        self.manager.cancel_active(user_id)

        raw = self.engine.route(origin, dest)

        session = self.manager.start(
            user_id,
            origin,
            dest,
            dest_name or self.default_dest_name,
            int(raw.distance_m),
        )
        return build_route_response(session.id, raw)

    def reroute(
        self,
        user_id: str,
        session_id: Union[UUID, str],
        current_position: LatLng,
    ) -> RouteResponse:
        current_position = check_coordinate(current_position, "currentPosition")
        session = self._owned_session(user_id, session_id)
        logger.info("Rerouting for user %s session %s from (%s, %s)",
                    user_id, session.id, current_position[0], current_position[1])

        if not session.is_active:
            raise InvalidSessionState(
                "Session is not active",
                {"sessionId": str(session.id), "status": session.status.value},
            )

        raw = self.engine.route(current_position, session.destination)

        # Re-checked under the user's lock; a session ended meanwhile is rejected untouched.
        session = self.manager.record_reroute(session, int(raw.distance_m))
        return build_route_response(session.id, raw)

    def update_session_status(
        self,
        user_id: str,
        session_id: Union[UUID, str],
        target: Union[SessionStatus, str],
    ) -> NavigationSession:
        """
        Move a session to COMPLETED, CANCELLED or FAILED.
        The HTTP layer only forwards COMPLETED / CANCELLED; FAILED is for in-process callers.
        """
        status = _target_status(target)
        session = self._owned_session(user_id, session_id)
        updated = self.manager.apply(session, EVENT_FOR_TARGET[status])
        logger.info("Updated session %s status to %s", updated.id, updated.status.value)
        return updated

    def get_active_session(self, user_id: str) -> Optional[NavigationSession]:
        return self.sessions.find_active(user_id)

    def get_history(self, user_id: str, offset: int = 0, limit: int = 20) -> Tuple[List[NavigationSession], int]:
        if offset < 0 or limit < 1:
            raise InvalidArgument("offset must be >= 0 and limit >= 1")
        page = offset // limit
        return self.sessions.list_history(user_id, page, limit)

    def _owned_session(self, user_id: str, session_id: Union[UUID, str]) -> NavigationSession:
        sid = _session_uuid(session_id)
        session = self.sessions.find_by_id_for_user(user_id, sid)
        if session is None:
            raise SessionNotFound(f"Session not found: {sid}")
        return session
