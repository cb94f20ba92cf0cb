import json

from fakes import DAYTIME, incident, sample

from safepath.errors import RoutingUnavailable
from safepath.models import Coordinate, RatingCell, RoutePolyline, Severity, ZoneKind
from safepath.outcome import OutcomeStatus
from safepath.sampler import RouteRiskSampler
from safepath.sources import MemoryIncidentSource, MemoryRatingSource, MemoryStore
from safepath.system import SafePathEngine

SCENARIO = RoutePolyline(
    points=(Coordinate(0, 0), Coordinate(0, 0.01), Coordinate(0, 0.02)),
    distance_m=2224.0,
    duration_s=1590.0,
)


class FixedRouter:
    def __init__(self, route=None) -> None:
        self.route_result = route

    def route(self, start, end, profile="walking"):
        if self.route_result is None:
            raise RoutingUnavailable("down")
        return self.route_result


def make_engine(router=None, store=None) -> SafePathEngine:
    incidents = MemoryIncidentSource([incident("crit", 0, 0.01, Severity.CRITICAL)])
    return SafePathEngine(
        incidents=incidents,
        ratings=MemoryRatingSource([RatingCell(Coordinate(0, 0), 2.0, 3)]),
        store=store,
        router=router,
        sampler=RouteRiskSampler(incidents, clock=lambda: DAYTIME),
    )


def test_plan_route_scores_routed_polyline() -> None:
    engine = make_engine(router=FixedRouter(SCENARIO))

    plan = engine.plan_route(Coordinate(0, 0), Coordinate(0, 0.02))

    assert plan.route_status is OutcomeStatus.OK
    assert not plan.is_estimate
    assert plan.assessment.score == 3.7
    assert plan.assessment.total_incidents == 1
    assert plan.assessment.high_risk_sample_count == 1
    assert plan.assessment.sampled_point_count == 3


def test_plan_route_uses_estimate_when_routing_fails() -> None:
    engine = make_engine(router=FixedRouter(None))

    plan = engine.plan_route(Coordinate(0, 0), Coordinate(0, 0.02))

    assert plan.is_estimate
    assert plan.route.points == (Coordinate(0, 0), Coordinate(0, 0.02))
    assert plan.assessment.sampled_point_count == 2


def test_position_updates_drive_geofence() -> None:
    engine = make_engine()
    danger = engine.geofence.add_zone(ZoneKind.DANGER, "Crossing", Coordinate(1, 1), radius_m=100)
    events = []
    engine.geofence.subscribe(events.append)

    engine.update_position(sample(0, 0))
    engine.update_position(sample(1, 1))
    engine.update_position(sample(1, 1.0002))

    assert engine.geofence.current_zone == danger
    assert len(events) == 1


def test_start_restores_last_location_into_geofence() -> None:
    store = MemoryStore()
    store.set("lastKnownLocation", json.dumps({"lat": 2.0, "lng": 2.0, "accuracy": 10}).encode())
    engine = make_engine(store=store)
    safe = engine.geofence.add_zone(ZoneKind.SAFE, "Home", Coordinate(2, 2), radius_m=50)

    engine.start()

    assert engine.tracker.current().coordinate == Coordinate(2, 2)
    assert engine.geofence.current_zone == safe
    engine.close()


def test_route_incidents_and_heatmap() -> None:
    engine = make_engine()

    listed = engine.route_incidents(SCENARIO)
    heat = engine.heatmap_for(Coordinate(0, 0))

    assert [i.incident_id for i in listed] == ["crit"]
    assert heat[0].intensity == 0.8


def test_engines_do_not_share_state() -> None:
    first = make_engine()
    second = make_engine()
    first.geofence.add_zone(ZoneKind.SAFE, "Only first", Coordinate(0, 0), radius_m=10)
    first.update_position(sample(0, 0))

    assert second.tracker.current() is None
    assert second.geofence.zones(ZoneKind.SAFE) == []
