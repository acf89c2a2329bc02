import itertools
import threading
from datetime import datetime, timedelta, timezone

import pytest

from navguide.navigation import NavigationService
from navguide.osrm import RawRoute, RawStep
from navguide.store import InMemorySessionStore, InMemoryUserStore

USER = "user-1"
OTHER_USER = "user-2"

ORIGIN = (37.123, 127.456)
DEST = (37.130, 127.460)


def make_route(distance=850.0, duration=600.0):
    """Three steps: depart, turn left, arrive."""
    return RawRoute(
        distance_m=distance,
        duration_s=duration,
        steps=[
            RawStep("depart", None, "세종대로", 120.0, (37.123, 127.456)),
            RawStep("turn", "left", "종로", 730.0, (37.124, 127.457)),
            RawStep("arrive", None, None, 0.0, (37.130, 127.460)),
        ],
        geometry=[(37.123, 127.456), (37.124, 127.457), (37.130, 127.460)],
    )


class FakeEngine:
    """Stands in for OsrmClient: returns queued results or raises queued errors."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self._lock = threading.Lock()

    def route(self, origin, dest):
        with self._lock:
            self.calls.append((origin, dest))
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class StepClock:
    """Deterministic clock, one second per call."""

    def __init__(self):
        start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        self._ticks = (start + timedelta(seconds=i) for i in itertools.count())
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            return next(self._ticks)


@pytest.fixture
def users():
    store = InMemoryUserStore()
    store.add(USER)
    store.add(OTHER_USER)
    return store


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def engine():
    return FakeEngine(make_route())


@pytest.fixture
def service(users, sessions, engine):
    return NavigationService(users, sessions, engine, clock=StepClock())
