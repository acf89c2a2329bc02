from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional, Literal
from uuid import UUID

class ApiModel(BaseModel):
    # Wire format is camelCase; Python code uses snake_case names.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class LatLng(ApiModel):
    lat: float
    lng: float

InstructionType = Literal["depart", "turn", "arrive", "continue_straight", "crosswalk"]

TurnModifier = Literal["left", "right", "straight", "slight_left", "slight_right", "uturn"]

class Waypoint(ApiModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    name: Optional[str] = None

class Instruction(ApiModel):
    model_config = ConfigDict(frozen=True)

    step: int = Field(..., description="0-based position in the route")
    type: InstructionType
    modifier: TurnModifier
    text: str = Field(..., description="Spoken Korean guidance sentence")
    distance: int = Field(..., description="Meters to travel before this instruction applies")
    location: Waypoint

class RouteResponse(ApiModel):
    session_id: UUID
    distance: int
    duration: int
    waypoints: List[Waypoint]
    instructions: List[Instruction]
    # Decoded engine geometry for map display; not needed for spoken guidance
    geometry: List[LatLng] = Field(default_factory=list)

class RouteRequest(ApiModel):
    origin_lat: float = Field(..., ge=-90, le=90)
    origin_lng: float = Field(..., ge=-180, le=180)
    dest_lat: float = Field(..., ge=-90, le=90)
    dest_lng: float = Field(..., ge=-180, le=180)
    dest_name: Optional[str] = Field(None, max_length=200)

class RerouteRequest(ApiModel):
    session_id: UUID
    current_lat: float = Field(..., ge=-90, le=90)
    current_lng: float = Field(..., ge=-180, le=180)

class UpdateSessionRequest(ApiModel):
    status: str

class SessionSummary(ApiModel):
    id: UUID
    dest_name: Optional[str] = None
    status: str
    distance: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    reroute_count: Optional[int] = None

class SessionHistory(ApiModel):
    sessions: List[SessionSummary]
    total: int
    limit: int
    offset: int

class ErrorResponse(ApiModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
