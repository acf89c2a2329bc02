import math
from typing import Any, List, Tuple

from .errors import InvalidArgument

# (lat, lng), same order the API receives them in
LatLng = Tuple[float, float]

def check_coordinate(value: Any, label: str = "coordinate") -> LatLng:
    """
    Validate a (lat, lng) pair and return it as floats.
    Raises InvalidArgument for anything that is not two finite numbers in range.
    """
    try:
        lat, lng = value
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{label} must be a (lat, lng) pair", {label: repr(value)})

    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidArgument(f"{label} must be finite", {label: [lat, lng]})
    if not -90.0 <= lat <= 90.0:
        raise InvalidArgument(f"{label} latitude out of range: {lat}", {label: [lat, lng]})
    if not -180.0 <= lng <= 180.0:
        raise InvalidArgument(f"{label} longitude out of range: {lng}", {label: [lat, lng]})
    return lat, lng

def format_osrm_coordinates(coords: List[LatLng]) -> str:
    """Convert list of (lat, lng) to OSRM format 'lng,lat;lng,lat;...'"""
    return ";".join(f"{lng:.6f},{lat:.6f}" for lat, lng in coords)
