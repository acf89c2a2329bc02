import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .errors import AuthenticationRequired, InvalidArgument, NavigationError, SessionNotFound
from .models import (
    ErrorResponse,
    RerouteRequest,
    RouteRequest,
    RouteResponse,
    SessionHistory,
    SessionSummary,
    UpdateSessionRequest,
)
from .navigation import NavigationService
from .osrm import OsrmClient
from .session import NavigationSession, SessionStatus
from .store import InMemorySessionStore, InMemoryUserStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Pedestrian Navigation API", version="0.1.0")

# Statuses a client may request; FAILED is set only from inside the service.
CLIENT_STATUSES = {SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value}

def build_service() -> NavigationService:
    users = InMemoryUserStore()
    if settings.demo_user_id:
        users.add(settings.demo_user_id, display_name="demo")
    engine = OsrmClient(settings.osrm_url, profile=settings.osrm_profile, timeout=settings.osrm_timeout_s)
    return NavigationService(
        users=users,
        sessions=InMemorySessionStore(),
        engine=engine,
        default_dest_name=settings.default_dest_name,
    )

# In-memory stores (MVP). Later: a database-backed SessionStore.
SERVICE = build_service()

def get_service() -> NavigationService:
    return SERVICE

def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    # Default identity is resolved here and never inside the service.
    user_id = x_user_id or settings.demo_user_id
    if not user_id:
        raise AuthenticationRequired("X-User-Id header required")
    return user_id

def _error_body(error: str, message: str, details=None) -> dict:
    return ErrorResponse(error=error, message=message, details=details).model_dump(exclude_none=True)

@app.exception_handler(NavigationError)
def handle_navigation_error(request: Request, exc: NavigationError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    else:
        logger.warning("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))

@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    details = {".".join(str(p) for p in err["loc"][1:]) or "body": err["msg"] for err in exc.errors()}
    logger.warning("Validation error: %s", details)
    return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", "입력값이 올바르지 않습니다", details))

@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unexpected error")
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "서버 오류가 발생했습니다"))

def _summary(session: NavigationSession) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        dest_name=session.dest_name,
        status=session.status.value,
        distance=session.distance_m,
        started_at=session.started_at.isoformat() if session.started_at else None,
        completed_at=session.completed_at.isoformat() if session.completed_at else None,
        reroute_count=session.reroute_count,
    )

@app.get("/health")
def health():
    return {"ok": True}

@app.post("/v1/navigation/route", response_model=RouteResponse)
def calculate_route(
    request: RouteRequest,
    user_id: str = Depends(current_user_id),
    service: NavigationService = Depends(get_service),
):
    logger.info("Route request from user %s: %s,%s -> %s,%s", user_id,
                request.origin_lat, request.origin_lng, request.dest_lat, request.dest_lng)
    return service.calculate_route(
        user_id,
        (request.origin_lat, request.origin_lng),
        (request.dest_lat, request.dest_lng),
        request.dest_name,
    )

@app.post("/v1/navigation/reroute", response_model=RouteResponse)
def reroute(
    request: RerouteRequest,
    user_id: str = Depends(current_user_id),
    service: NavigationService = Depends(get_service),
):
    logger.info("Reroute request from user %s for session %s", user_id, request.session_id)
    return service.reroute(user_id, request.session_id, (request.current_lat, request.current_lng))

@app.get("/v1/navigation/sessions", response_model=SessionHistory)
def navigation_history(
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(current_user_id),
    service: NavigationService = Depends(get_service),
):
    sessions, total = service.get_history(user_id, offset=offset, limit=limit)
    return SessionHistory(
        sessions=[_summary(s) for s in sessions],
        total=total,
        limit=limit,
        offset=offset,
    )

@app.get("/v1/navigation/sessions/active", response_model=SessionSummary)
def active_session(
    user_id: str = Depends(current_user_id),
    service: NavigationService = Depends(get_service),
):
    session = service.get_active_session(user_id)
    if session is None:
        raise SessionNotFound("No active navigation session")
    return _summary(session)

@app.patch("/v1/navigation/sessions/{session_id}", response_model=SessionSummary)
def update_session(
    session_id: UUID,
    request: UpdateSessionRequest,
    user_id: str = Depends(current_user_id),
    service: NavigationService = Depends(get_service),
):
    if request.status not in CLIENT_STATUSES:
        raise InvalidArgument(f"Invalid status: {request.status}")
    session = service.update_session_status(user_id, session_id, request.status)
    return _summary(session)
