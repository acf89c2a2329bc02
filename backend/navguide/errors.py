"""Typed failures reported by the navigation core.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. None of them are retried inside the core.
"""

from typing import Any, Dict, Optional


class NavigationError(Exception):
    code = "NAVIGATION_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class UserNotFound(NavigationError):
    code = "USER_NOT_FOUND"
    status_code = 404


class SessionNotFound(NavigationError):
    """Unknown session id, or a session owned by someone else."""
    code = "SESSION_NOT_FOUND"
    status_code = 404


class InvalidSessionState(NavigationError):
    code = "INVALID_STATE"
    status_code = 409


class InvalidArgument(NavigationError):
    code = "BAD_REQUEST"
    status_code = 400


class RoutingEngineError(NavigationError):
    code = "ROUTING_ERROR"
    status_code = 502


class RouteNotFound(RoutingEngineError):
    code = "ROUTE_NOT_FOUND"
    status_code = 404


class RoutingEngineTimeout(RoutingEngineError):
    code = "ROUTING_TIMEOUT"
    status_code = 504


class RoutingEngineUnavailable(RoutingEngineError):
    code = "ROUTING_UNAVAILABLE"
    status_code = 502


class AuthenticationRequired(NavigationError):
    code = "UNAUTHENTICATED"
    status_code = 401
