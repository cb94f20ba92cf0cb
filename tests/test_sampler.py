import threading
import time
from datetime import datetime, timezone

import pytest
from fakes import DAYTIME, NIGHTTIME, PointIncidentSource, incident

from safepath.models import Coordinate, RoutePolyline, Severity
from safepath.sampler import (
    END_UNSAFE_NOTE,
    LOWEST_BAND,
    NIGHT_NOTES,
    START_UNSAFE_NOTE,
    RouteRiskSampler,
    dedupe_incidents,
    is_night,
    recommendation_for,
    round_score,
    sample_points,
    score_route,
)
from safepath.sources import MemoryIncidentSource


def line(count: int, step: float = 0.001) -> list:
    return [Coordinate(0, i * step) for i in range(count)]


class FixedCheck:
    def __init__(self, unsafe=(), failing=()) -> None:
        self.unsafe = set(unsafe)
        self.failing = set(failing)

    def is_safe(self, point: Coordinate) -> bool:
        if point in self.failing:
            raise RuntimeError("check failed")
        return point not in self.unsafe


def test_sample_points_keep_both_endpoints() -> None:
    for count in (2, 3, 9, 10, 11, 25, 32, 101):
        points = line(count, step=0.0001)
        samples = sample_points(points, 10)
        assert samples[0] == points[0]
        assert samples[-1] == points[-1]

    assert len(sample_points(line(32, step=0.0001), 10)) == 12
    assert len(sample_points(line(3), 10)) == 3


def test_route_with_no_incidents_is_very_safe() -> None:
    sampler = RouteRiskSampler(MemoryIncidentSource([]), clock=lambda: DAYTIME)

    result = sampler.assess(line(20))

    assert result.score == 5.0
    assert result.recommendation == "This route appears very safe with low crime activity."
    assert result.total_incidents == 0
    assert result.notes == []


def test_single_critical_incident_on_three_point_route() -> None:
    route = RoutePolyline(points=(Coordinate(0, 0), Coordinate(0, 0.01), Coordinate(0, 0.02)), distance_m=2224, duration_s=1600)
    source = MemoryIncidentSource([incident("c1", 0, 0.01, Severity.CRITICAL)])
    sampler = RouteRiskSampler(source, clock=lambda: DAYTIME)

    result = sampler.assess(route)

    assert result.total_incidents == 1
    assert result.high_risk_sample_count == 1
    assert result.sampled_point_count == 3
    assert result.score == 3.7
    assert result.recommendation.startswith("This route has moderate safety")
    assert result.analysis == "Route analyzed across 3 checkpoints"
    assert [i.incident_id for i in result.incidents] == ["c1"]


def test_one_failed_lookup_only_drops_its_own_contribution() -> None:
    points = line(10)
    source = PointIncidentSource(
        {p: [incident(f"i{n}", p.lat, p.lng)] for n, p in enumerate(points)},
        failing=(points[4],),
    )
    sampler = RouteRiskSampler(source, clock=lambda: DAYTIME)

    result = sampler.assess(points)

    assert result.sampled_point_count == 10
    assert result.failed_sample_count == 1
    assert result.total_incidents == 9
    assert len(result.incidents) == 9


def test_slow_lookup_times_out_as_empty() -> None:
    points = line(3)
    release = threading.Event()

    class SlowSource:
        def query(self, center, radius_deg):
            if center == points[1]:
                release.wait(5)
            return [incident("near", center.lat, center.lng, Severity.HIGH)] if center == points[1] else []

    sampler = RouteRiskSampler(SlowSource(), timeout_seconds=0.2, clock=lambda: DAYTIME)
    try:
        result = sampler.assess(points)
    finally:
        release.set()

    assert result.sampled_point_count == 3
    assert result.failed_sample_count == 1
    assert result.total_incidents == 0
    assert result.score == 5.0


def test_duplicate_incidents_listed_once_most_severe_first() -> None:
    older = datetime(2024, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2024, 3, 1, tzinfo=timezone.utc)
    batches = [
        [incident("a", 0, 0, Severity.LOW), incident("b", 0, 0, Severity.HIGH, occurred_at=older)],
        [incident("b", 0, 0, Severity.HIGH, occurred_at=older), incident("c", 0, 0, Severity.HIGH, occurred_at=newer)],
        [incident("d", 0, 0, Severity.CRITICAL)],
    ]

    merged = dedupe_incidents(batches)

    assert [i.incident_id for i in merged] == ["d", "c", "b", "a"]


def test_incident_counted_at_every_sample_that_sees_it() -> None:
    points = line(3, step=0.002)
    sampler = RouteRiskSampler(MemoryIncidentSource([incident("x", 0, 0.0005, Severity.HIGH)]), clock=lambda: DAYTIME)

    result = sampler.assess(points)

    assert result.total_incidents == 2
    assert result.high_risk_sample_count == 2
    assert len(result.incidents) == 1


def test_score_bounds_and_rounding() -> None:
    assert score_route(0, 0, 5) == 5.0
    assert score_route(100, 5, 5) == 1.0
    assert score_route(1, 1, 3) == pytest.approx(5 - (1 / 6 * 2 + 1 / 3 * 3))
    assert round_score(2.25) == 2.3
    assert round_score(3.666) == 3.7


def test_recommendation_bands() -> None:
    assert recommendation_for(4.5).startswith("This route appears very safe")
    assert recommendation_for(3.5).startswith("This route has moderate safety")
    assert recommendation_for(2.5).startswith("This route passes through areas with elevated crime")
    assert recommendation_for(2.49) == LOWEST_BAND


def test_night_adds_caution_notes() -> None:
    sampler = RouteRiskSampler(MemoryIncidentSource([]), clock=lambda: NIGHTTIME)

    result = sampler.assess(line(3))

    assert result.notes == NIGHT_NOTES
    assert result.advice[0] == result.recommendation
    assert is_night(datetime(2024, 1, 1, 5, 59))
    assert not is_night(datetime(2024, 1, 1, 6, 0))
    assert is_night(datetime(2024, 1, 1, 22, 0))


def test_unsafe_endpoints_add_notes_and_failed_checks_do_not() -> None:
    points = line(4)
    sampler = RouteRiskSampler(
        MemoryIncidentSource([]),
        endpoint_check=FixedCheck(unsafe=(points[0], points[-1])),
        clock=lambda: DAYTIME,
    )
    assert sampler.assess(points).notes == [START_UNSAFE_NOTE, END_UNSAFE_NOTE]

    sampler = RouteRiskSampler(
        MemoryIncidentSource([]),
        endpoint_check=FixedCheck(unsafe=(points[-1],), failing=(points[-1],)),
        clock=lambda: DAYTIME,
    )
    assert sampler.assess(points).notes == []


def test_listing_pass_uses_wider_radius() -> None:
    points = line(3, step=0.01)
    source = MemoryIncidentSource([incident("wide", 0.005, 0.01)])
    sampler = RouteRiskSampler(source, clock=lambda: DAYTIME)

    assert sampler.assess(points).total_incidents == 0
    assert [i.incident_id for i in sampler.list_incidents(points)] == ["wide"]


def test_route_needs_two_points() -> None:
    sampler = RouteRiskSampler(MemoryIncidentSource([]))

    with pytest.raises(ValueError):
        sampler.assess([Coordinate(0, 0)])


class SleepySource:
    def __init__(self, delay: float, release: threading.Event | None = None) -> None:
        self.delay = delay
        self.release = release
        self.threads = set()

    def query(self, center, radius_deg):
        self.threads.add(threading.current_thread().name)
        if self.release is not None:
            self.release.wait(5)
        else:
            time.sleep(self.delay)
        return [incident(f"at-{center.lng}", center.lat, center.lng)]


def test_queued_lookups_get_their_own_timeout() -> None:
    sampler = RouteRiskSampler(SleepySource(0.2), max_workers=1, timeout_seconds=0.3, clock=lambda: DAYTIME)
    try:
        result = sampler.assess(line(3))
    finally:
        sampler.close()

    assert result.failed_sample_count == 0
    assert result.total_incidents == 3


def test_stuck_lookups_do_not_grow_thread_count() -> None:
    release = threading.Event()
    source = SleepySource(0, release=release)
    sampler = RouteRiskSampler(source, max_workers=2, timeout_seconds=0.1, clock=lambda: DAYTIME)
    try:
        for _ in range(3):
            assert sampler.assess(line(3)).failed_sample_count == 3
    finally:
        release.set()
        sampler.close()

    assert len(source.threads) <= 2
