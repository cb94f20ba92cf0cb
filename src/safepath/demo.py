from __future__ import annotations

from datetime import datetime, timedelta, timezone

from safepath.models import (
    Coordinate,
    IncidentRecord,
    PositionSample,
    RatingCell,
    RoutePolyline,
    Severity,
    ZoneKind,
)
from safepath.sampler import RouteRiskSampler
from safepath.sources import MemoryIncidentSource, MemoryRatingSource, MemoryStore
from safepath.system import SafePathEngine


def build_demo_engine() -> SafePathEngine:
    now = datetime.now(timezone.utc)
    incidents = MemoryIncidentSource(
        [
            IncidentRecord(
                incident_id="CR-101",
                coordinate=Coordinate(25.3190, 82.9760),
                category="robbery",
                severity=Severity.HIGH,
                occurred_at=now - timedelta(days=2),
                reported_at=now - timedelta(days=2),
            ),
            IncidentRecord(
                incident_id="CR-102",
                coordinate=Coordinate(25.3205, 82.9781),
                category="harassment",
                severity=Severity.MEDIUM,
                occurred_at=now - timedelta(hours=6),
                reported_at=now - timedelta(hours=5),
            ),
        ]
    )
    ratings = MemoryRatingSource(
        [
            RatingCell(Coordinate(25.319, 82.976), average_safety_score=2.0, sample_count=4),
            RatingCell(Coordinate(25.321, 82.979), average_safety_score=4.5, sample_count=6),
            RatingCell(Coordinate(25.322, 82.981), average_safety_score=1.0, sample_count=1),
        ]
    )
    engine = SafePathEngine(
        incidents=incidents,
        ratings=ratings,
        store=MemoryStore(),
        sampler=RouteRiskSampler(incidents, clock=lambda: datetime(2024, 1, 1, 14, 0)),
    )
    engine.geofence.add_zone(ZoneKind.SAFE, "Campus gate", Coordinate(25.3176, 82.9739), radius_m=150)
    engine.geofence.add_zone(ZoneKind.DANGER, "Unlit underpass", Coordinate(25.3190, 82.9760), radius_m=80)
    return engine


def main() -> None:
    engine = build_demo_engine()
    events = []
    engine.geofence.subscribe(events.append)

    for step, (lat, lng) in enumerate([(25.3176, 82.9739), (25.3177, 82.9739), (25.3190, 82.9760)]):
        engine.update_position(PositionSample(Coordinate(lat, lng), captured_at_ms=step * 1000, accuracy_m=8.0))

    route = RoutePolyline(
        points=tuple(Coordinate(25.3176 + i * 0.0003, 82.9739 + i * 0.0004) for i in range(12)),
        distance_m=620.0,
        duration_s=450.0,
    )
    assessment = engine.sampler.assess(route)

    print("=== SafePath Route Assessment ===")
    print(f"Safety score: {assessment.score}/5")
    print(f"Incidents: {assessment.total_incidents} (high-risk checkpoints: {assessment.high_risk_sample_count})")
    print(assessment.analysis)
    print("\nAdvice:")
    for line in assessment.advice:
        print(f" - {line}")

    print("\nZone events:")
    for event in events:
        label = f"entered {event.current.name}" if event.current else f"left {event.previous.name}"
        print(f" - {label}")

    print("\nHeatmap:")
    for point in engine.heatmap_for(Coordinate(25.32, 82.978)):
        print(f" - {point.coordinate.lat:.3f},{point.coordinate.lng:.3f} intensity={point.intensity:.2f}")

    engine.close()


if __name__ == "__main__":
    main()
