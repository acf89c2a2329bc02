"""Korean turn-by-turn instruction generation for pedestrian routes.

Maps OSRM maneuvers to the instruction types a screen reader / TTS client
understands, and renders one spoken sentence per step:
- depart / arrive sentences
- turns with a direction word and optional street name
- "keep going straight" for everything else
- distances rounded the way they are read aloud

Pure functions only. Missing street names, modifiers or locations fall back
to the street-less sentences instead of raising.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from .models import Instruction, Waypoint
from .osrm import RawStep

_TYPES = {
    "depart": "depart",
    "arrive": "arrive",
    "turn": "turn",
}

_MODIFIERS = {
    "left": "left",
    "right": "right",
    "slight left": "slight_left",
    "slight right": "slight_right",
    "uturn": "uturn",
}

_DIRECTION_WORDS = {
    "left": "좌회전",
    "right": "우회전",
    "slight_left": "약간 왼쪽으로",
    "slight_right": "약간 오른쪽으로",
    "uturn": "유턴",
    "straight": "직진",
}


def map_type(maneuver_type):
    """OSRM maneuver.type -> instruction type; unknown types continue straight."""
    return _TYPES.get(maneuver_type, "continue_straight")


def map_modifier(modifier):
    """OSRM maneuver.modifier ('slight left', ...) -> turn modifier; unknown is straight."""
    return _MODIFIERS.get(modifier, "straight")


def format_distance(meters) -> str:
    """Format meters the way they are spoken.

    < 100 m: exact meters; < 1 km: floored to 10 m; otherwise km with one decimal.
    """
    meters = max(int(meters), 0)
    if meters < 100:
        return f"{meters}미터"
    if meters < 1000:
        return f"{meters // 10 * 10}미터"
    km = (Decimal(meters) / 1000).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{km}킬로미터"


def instruction_text(type_: str, modifier: Optional[str], street: Optional[str], distance_m: int) -> str:
    """Spoken sentence for one step.

    type_ and modifier are already-mapped values; modifier is None when the
    engine sent none, in which case a turn is read as going straight.
    """
    distance = format_distance(distance_m)

    if type_ == "depart":
        if street:
            return f"{street} 방향으로 출발하세요"
        return "경로를 따라 출발하세요"

    if type_ == "arrive":
        return "목적지에 도착했습니다"

    if type_ == "turn" and modifier is not None:
        direction = _DIRECTION_WORDS.get(modifier, "직진")
        if street:
            return f"{distance} 후 {direction}하여 {street} 방향으로 가세요"
        return f"{distance} 후 {direction}하세요"

    if street:
        return f"{street}을(를) 따라 {distance} 직진하세요"
    return f"{distance} 직진하세요"


def translate_steps(steps: Iterable[RawStep]) -> Tuple[List[Waypoint], List[Instruction]]:
    """Translate OSRM steps into (waypoints, instructions), both in step order.

    step index = position in the input. A step without a location reuses the
    previous step's point so every instruction still has one.
    """
    waypoints: List[Waypoint] = []
    instructions: List[Instruction] = []
    last_point = (0.0, 0.0)

    for index, s in enumerate(steps):
        lat, lng = s.location if s.location is not None else last_point
        last_point = (lat, lng)
        waypoint = Waypoint(lat=lat, lng=lng, name=s.name or None)
        waypoints.append(waypoint)

        type_ = map_type(s.maneuver_type)
        modifier = map_modifier(s.modifier)
        distance_m = max(int(s.distance_m or 0), 0)

        instructions.append(Instruction(
            step=index,
            type=type_,
            modifier=modifier,
            text=instruction_text(
                type_,
                modifier if s.modifier is not None else None,
                s.name,
                distance_m,
            ),
            distance=distance_m,
            location=waypoint,
        ))

    return waypoints, instructions
