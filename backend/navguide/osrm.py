import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import polyline
import requests

from .errors import RouteNotFound, RoutingEngineTimeout, RoutingEngineUnavailable
from .geo import LatLng, format_osrm_coordinates

logger = logging.getLogger(__name__)

# OSRM answers these codes when the coordinates are fine but no path connects them
NO_ROUTE_CODES = {"NoRoute", "NoSegment"}

@dataclass(frozen=True)
class RawStep:
    """One OSRM step, reduced to what the instruction translator needs."""
    maneuver_type: Optional[str]
    modifier: Optional[str]
    name: Optional[str]
    distance_m: float
    location: Optional[LatLng]

@dataclass(frozen=True)
class RawRoute:
    distance_m: float
    duration_s: float
    steps: List[RawStep] = field(default_factory=list)
    geometry: List[LatLng] = field(default_factory=list)

def fetch_route(
    base_url: str,
    origin: LatLng,
    dest: LatLng,
    profile: str = "foot",
    timeout: float = 5.0,
) -> Dict[str, Any]:
    """
    Calls OSRM /route with steps enabled.
    origin, dest: (lat, lng)
    """
    coordinates = format_osrm_coordinates([origin, dest])
    url = f"{base_url.rstrip('/')}/route/v1/{profile}/{coordinates}"
    params = {"overview": "full", "steps": "true", "geometries": "polyline"}
    logger.debug("Requesting OSRM route: %s", url)

    try:
        r = requests.get(url, params=params, timeout=timeout)
    except requests.Timeout as e:
        logger.error("OSRM timed out after %ss: %s", timeout, e)
        raise RoutingEngineTimeout("경로 탐색 시간이 초과되었습니다") from e
    except requests.RequestException as e:
        logger.error("Error calling OSRM: %s", e)
        raise RoutingEngineUnavailable("경로 탐색 서버에 연결할 수 없습니다") from e

    if r.status_code >= 500:
        logger.error("OSRM returned HTTP %s", r.status_code)
        raise RoutingEngineUnavailable(f"경로 탐색 서버 오류 (HTTP {r.status_code})")

    try:
        data = r.json()
    except ValueError as e:
        logger.error("OSRM returned a non-JSON body (HTTP %s)", r.status_code)
        raise RoutingEngineUnavailable("경로 탐색 서버 응답을 해석할 수 없습니다") from e

    if not isinstance(data, dict):
        logger.error("OSRM returned an unexpected body: %r", data)
        raise RoutingEngineUnavailable("경로 탐색 서버 응답을 해석할 수 없습니다")

    code = data.get("code")
    if code in NO_ROUTE_CODES:
        logger.warning("OSRM found no route: %s", data.get("message", code))
        raise RouteNotFound("경로를 찾을 수 없습니다")
    if code != "Ok":
        logger.error("OSRM returned non-OK response: %s %s", code, data.get("message", ""))
        raise RoutingEngineUnavailable(f"경로 탐색 실패: {code}")
    return data

def _location(maneuver: Dict[str, Any]) -> Optional[LatLng]:
    loc = maneuver.get("location")
    # OSRM locations are [lng, lat]
    try:
        lng, lat = loc[0], loc[1]
        return float(lat), float(lng)
    except (TypeError, ValueError, IndexError, KeyError):
        return None

def parse_route(route_json: Dict[str, Any]) -> RawRoute:
    """
    Returns the first OSRM route as a RawRoute.

    Steps of every leg are flattened in order. Missing step fields become
    None (or 0 for distance); the translator owns the fallbacks.
    """
    routes = route_json.get("routes") or []
    if not routes:
        raise RouteNotFound("경로를 찾을 수 없습니다")
    route = routes[0]

    steps: List[RawStep] = []
    for leg in route.get("legs") or []:
        for s in leg.get("steps") or []:
            maneuver = s.get("maneuver") or {}
            steps.append(RawStep(
                maneuver_type=maneuver.get("type"),
                modifier=maneuver.get("modifier"),
                name=s.get("name") or None,
                distance_m=float(s.get("distance") or 0.0),
                location=_location(maneuver),
            ))

    geometry: List[Tuple[float, float]] = []
    enc = route.get("geometry")
    if isinstance(enc, str) and enc:
        geometry = polyline.decode(enc)

    return RawRoute(
        distance_m=float(route.get("distance") or 0.0),
        duration_s=float(route.get("duration") or 0.0),
        steps=steps,
        geometry=geometry,
    )

class OsrmClient:
    """Routing engine client: one bounded HTTP call per route() and no retries."""

    def __init__(self, base_url: str, profile: str = "foot", timeout: float = 5.0):
        if not base_url:
            raise ValueError("OSRM base URL not set. Please set OSRM_URL.")
        self.base_url = base_url
        self.profile = profile
        self.timeout = timeout

    def route(self, origin: LatLng, dest: LatLng) -> RawRoute:
        data = fetch_route(self.base_url, origin, dest, profile=self.profile, timeout=self.timeout)
        return parse_route(data)
