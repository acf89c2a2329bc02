import threading
import uuid
from dataclasses import asdict

import pytest

from navguide.errors import (
    InvalidArgument,
    InvalidSessionState,
    RouteNotFound,
    RoutingEngineTimeout,
    RoutingEngineUnavailable,
    SessionNotFound,
    UserNotFound,
)
from navguide.navigation import NavigationService
from navguide.session import SessionStatus

from conftest import DEST, ORIGIN, OTHER_USER, USER, FakeEngine, StepClock, make_route


def active_sessions(sessions, user_id):
    return [s for s in sessions.all_for_user(user_id) if s.status is SessionStatus.ACTIVE]


def test_calculate_route_creates_active_session(service, sessions, engine):
    response = service.calculate_route(USER, ORIGIN, DEST, "시청")

    session = sessions.find_by_id_for_user(USER, response.session_id)
    assert session.status is SessionStatus.ACTIVE
    assert session.distance_m == 850
    assert session.reroute_count == 0
    assert session.dest_name == "시청"
    assert session.completed_at is None

    assert response.distance == 850
    assert response.duration == 600
    assert len(response.instructions) == 3
    assert [i.step for i in response.instructions] == [0, 1, 2]
    assert [i.type for i in response.instructions] == ["depart", "turn", "arrive"]
    assert len(response.waypoints) == 3
    assert len(response.geometry) == 3
    assert engine.calls == [(ORIGIN, DEST)]


def test_calculate_route_default_destination_name(service, sessions):
    response = service.calculate_route(USER, ORIGIN, DEST)

    assert sessions.find_by_id_for_user(USER, response.session_id).dest_name == "목적지"


def test_new_route_cancels_previous_session(service, sessions):
    first = service.calculate_route(USER, ORIGIN, DEST)
    second = service.calculate_route(USER, ORIGIN, DEST)

    old = sessions.find_by_id_for_user(USER, first.session_id)
    assert old.status is SessionStatus.CANCELLED
    assert old.completed_at is not None
    assert sessions.find_active(USER).id == second.session_id
    assert len(active_sessions(sessions, USER)) == 1


def test_sessions_of_other_users_are_independent(service, sessions):
    mine = service.calculate_route(USER, ORIGIN, DEST)
    service.calculate_route(OTHER_USER, ORIGIN, DEST)

    assert sessions.find_by_id_for_user(USER, mine.session_id).status is SessionStatus.ACTIVE


def test_unknown_user(service, sessions, engine):
    with pytest.raises(UserNotFound):
        service.calculate_route("nobody", ORIGIN, DEST)
    assert engine.calls == []


@pytest.mark.parametrize("origin", [(91.0, 127.0), (37.0, 181.0), ("abc", 127.0), (37.0,), None,
                                    (float("nan"), 127.0)])
def test_malformed_coordinates(service, engine, origin):
    with pytest.raises(InvalidArgument):
        service.calculate_route(USER, origin, DEST)
    assert engine.calls == []


def test_route_not_found_persists_nothing(users, sessions):
    service = NavigationService(users, sessions, FakeEngine(RouteNotFound("경로를 찾을 수 없습니다")))

    with pytest.raises(RouteNotFound):
        service.calculate_route(USER, ORIGIN, DEST)

    assert sessions.all_for_user(USER) == []


@pytest.mark.parametrize("error", [
    RouteNotFound("no route"),
    RoutingEngineTimeout("timeout"),
    RoutingEngineUnavailable("down"),
])
def test_engine_failure_keeps_prior_cancellation_only(users, sessions, error):
    engine = FakeEngine(make_route(), error)
    service = NavigationService(users, sessions, engine, clock=StepClock())
    first = service.calculate_route(USER, ORIGIN, DEST)

    with pytest.raises(type(error)):
        service.calculate_route(USER, ORIGIN, DEST)

    stored = sessions.all_for_user(USER)
    assert [s.id for s in stored] == [first.session_id]
    assert stored[0].status is SessionStatus.CANCELLED
    assert active_sessions(sessions, USER) == []


def test_reroute_updates_count_and_distance(users, sessions):
    engine = FakeEngine(make_route(), make_route(distance=600.0, duration=420.0))
    service = NavigationService(users, sessions, engine, clock=StepClock())
    first = service.calculate_route(USER, ORIGIN, DEST)

    response = service.reroute(USER, first.session_id, (37.125, 127.457))

    session = sessions.find_by_id_for_user(USER, first.session_id)
    assert session.reroute_count == 1
    assert session.distance_m == 600
    assert session.status is SessionStatus.ACTIVE
    assert response.session_id == first.session_id
    assert response.distance == 600
    assert response.duration == 420
    # reroute goes from the current position to the original destination
    assert engine.calls[-1] == ((37.125, 127.457), DEST)


def test_reroute_accepts_string_session_id(service, sessions):
    first = service.calculate_route(USER, ORIGIN, DEST)

    service.reroute(USER, str(first.session_id), (37.125, 127.457))
    service.reroute(USER, str(first.session_id), (37.126, 127.458))

    assert sessions.find_by_id_for_user(USER, first.session_id).reroute_count == 2


@pytest.mark.parametrize("error", [
    RouteNotFound("no route"),
    RoutingEngineTimeout("timeout"),
    RoutingEngineUnavailable("down"),
])
def test_reroute_failure_leaves_session_unchanged(users, sessions, error):
    engine = FakeEngine(make_route(), error)
    service = NavigationService(users, sessions, engine, clock=StepClock())
    first = service.calculate_route(USER, ORIGIN, DEST)
    before = asdict(sessions.find_by_id_for_user(USER, first.session_id))

    with pytest.raises(type(error)):
        service.reroute(USER, first.session_id, (37.125, 127.457))

    assert asdict(sessions.find_by_id_for_user(USER, first.session_id)) == before


def test_reroute_someone_elses_session(service):
    first = service.calculate_route(USER, ORIGIN, DEST)

    with pytest.raises(SessionNotFound):
        service.reroute(OTHER_USER, first.session_id, (37.125, 127.457))


def test_reroute_unknown_session(service):
    with pytest.raises(SessionNotFound):
        service.reroute(USER, uuid.uuid4(), (37.125, 127.457))


def test_reroute_invalid_session_id(service):
    with pytest.raises(InvalidArgument):
        service.reroute(USER, "not-a-uuid", (37.125, 127.457))


def test_reroute_ended_session(service, sessions, engine):
    first = service.calculate_route(USER, ORIGIN, DEST)
    service.update_session_status(USER, first.session_id, "COMPLETED")
    calls = len(engine.calls)

    with pytest.raises(InvalidSessionState):
        service.reroute(USER, first.session_id, (37.125, 127.457))

    assert len(engine.calls) == calls
    assert sessions.find_by_id_for_user(USER, first.session_id).reroute_count == 0


@pytest.mark.parametrize("target, expected", [
    ("COMPLETED", SessionStatus.COMPLETED),
    ("CANCELLED", SessionStatus.CANCELLED),
    (SessionStatus.FAILED, SessionStatus.FAILED),
])
def test_update_session_status(service, sessions, target, expected):
    first = service.calculate_route(USER, ORIGIN, DEST)

    updated = service.update_session_status(USER, first.session_id, target)

    assert updated.status is expected
    assert updated.completed_at is not None
    assert sessions.find_by_id_for_user(USER, first.session_id) == updated
    assert sessions.find_active(USER) is None


@pytest.mark.parametrize("target", ["ACTIVE", "DONE", "completed", ""])
def test_update_session_status_rejects_unknown_target(service, sessions, target):
    first = service.calculate_route(USER, ORIGIN, DEST)

    with pytest.raises(InvalidArgument):
        service.update_session_status(USER, first.session_id, target)

    assert sessions.find_by_id_for_user(USER, first.session_id).status is SessionStatus.ACTIVE


def test_update_terminal_session_is_rejected(service, sessions):
    first = service.calculate_route(USER, ORIGIN, DEST)
    ended = service.update_session_status(USER, first.session_id, "CANCELLED")

    with pytest.raises(InvalidSessionState):
        service.update_session_status(USER, first.session_id, "COMPLETED")

    assert sessions.find_by_id_for_user(USER, first.session_id) == ended


def test_update_someone_elses_session(service):
    first = service.calculate_route(USER, ORIGIN, DEST)

    with pytest.raises(SessionNotFound):
        service.update_session_status(OTHER_USER, first.session_id, "COMPLETED")


def test_active_session_and_history(service):
    ids = [service.calculate_route(USER, ORIGIN, DEST).session_id for _ in range(3)]

    assert service.get_active_session(USER).id == ids[-1]

    page, total = service.get_history(USER, offset=0, limit=2)
    assert total == 3
    assert [s.id for s in page] == [ids[2], ids[1]]

    page, total = service.get_history(USER, offset=2, limit=2)
    assert [s.id for s in page] == [ids[0]]


def test_history_rejects_bad_paging(service):
    with pytest.raises(InvalidArgument):
        service.get_history(USER, offset=-1, limit=10)
    with pytest.raises(InvalidArgument):
        service.get_history(USER, offset=0, limit=0)


def test_end_to_end_scenarios(users, sessions):
    engine = FakeEngine(make_route(), make_route(distance=600.0))
    service = NavigationService(users, sessions, engine, clock=StepClock())

    # 1: fresh route
    route = service.calculate_route(USER, (37.123, 127.456), (37.130, 127.460))
    session = sessions.find_by_id_for_user(USER, route.session_id)
    assert (session.status, session.distance_m, session.reroute_count) == (SessionStatus.ACTIVE, 850, 0)
    assert [i.step for i in route.instructions] == [0, 1, 2]

    # 2: reroute from a new position
    service.reroute(USER, route.session_id, (37.125, 127.457))
    session = sessions.find_by_id_for_user(USER, route.session_id)
    assert (session.status, session.distance_m, session.reroute_count) == (SessionStatus.ACTIVE, 600, 1)

    # 3: no route for another user's fresh request
    engine.results = [RouteNotFound("no route")]
    with pytest.raises(RouteNotFound):
        service.calculate_route(OTHER_USER, ORIGIN, DEST)
    assert sessions.all_for_user(OTHER_USER) == []


class GatedEngine(FakeEngine):
    """Holds every caller until all of them are inside route()."""

    def __init__(self, parties, *results):
        super().__init__(*results)
        self.barrier = threading.Barrier(parties, timeout=5)

    def route(self, origin, dest):
        self.barrier.wait()
        return super().route(origin, dest)


def test_concurrent_routes_leave_one_active_session(users, sessions):
    workers = 4
    service = NavigationService(users, sessions, GatedEngine(workers, make_route()), clock=StepClock())
    results, errors = [], []

    def run():
        try:
            results.append(service.calculate_route(USER, ORIGIN, DEST))
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == workers
    assert len(active_sessions(sessions, USER)) == 1
    assert len(sessions.all_for_user(USER)) == workers
