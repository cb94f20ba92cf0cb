from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude out of range: {self.lng}")


DEFAULT_LOCATION = Coordinate(25.3176, 82.9739)


@dataclass(frozen=True)
class PositionSample:
    coordinate: Coordinate
    captured_at_ms: int
    accuracy_m: Optional[float] = None
    speed_mps: Optional[float] = None
    heading_deg: Optional[float] = None


@dataclass(frozen=True)
class TrackedPosition:
    coordinate: Coordinate
    accuracy_m: Optional[float]
    speed_mps: float
    heading_deg: Optional[float]
    captured_at_ms: int

    @classmethod
    def from_sample(cls, sample: PositionSample) -> "TrackedPosition":
        return cls(
            coordinate=sample.coordinate,
            accuracy_m=sample.accuracy_m,
            speed_mps=sample.speed_mps or 0.0,
            heading_deg=sample.heading_deg,
            captured_at_ms=sample.captured_at_ms,
        )


class AccuracyTier(str, Enum):
    HIGH = "high"
    GOOD = "good"
    LOW = "low"

    @classmethod
    def classify(cls, accuracy_m: Optional[float]) -> Optional["AccuracyTier"]:
        if accuracy_m is None:
            return None
        if accuracy_m <= 10:
            return cls.HIGH
        if accuracy_m <= 50:
            return cls.GOOD
        return cls.LOW


@dataclass(frozen=True)
class LocationOptions:
    high_accuracy: bool = True
    timeout_ms: int = 15_000
    max_cache_age_ms: int = 30_000


QUICK_LOCATION_OPTIONS = LocationOptions(high_accuracy=True, timeout_ms=15_000, max_cache_age_ms=30_000)
PRECISE_LOCATION_OPTIONS = LocationOptions(high_accuracy=True, timeout_ms=20_000, max_cache_age_ms=10_000)


class ZoneKind(str, Enum):
    SAFE = "safe"
    DANGER = "danger"


@dataclass(frozen=True)
class Zone:
    zone_id: str
    name: str
    center: Coordinate
    radius_m: float
    kind: ZoneKind
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ZoneTransition:
    previous: Optional[Zone]
    current: Optional[Zone]
    position: Coordinate

    @property
    def entered(self) -> Optional[Zone]:
        return self.current

    @property
    def exited(self) -> Optional[Zone]:
        return self.previous


@dataclass(frozen=True)
class RoutePolyline:
    points: Tuple[Coordinate, ...]
    distance_m: float
    duration_s: float
    instructions: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.points) < 2:
            raise ValueError("a route needs at least two points")

    @property
    def start(self) -> Coordinate:
        return self.points[0]

    @property
    def end(self) -> Coordinate:
        return self.points[-1]


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def is_high_risk(self) -> bool:
        return self in (Severity.HIGH, Severity.CRITICAL)


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


@dataclass(frozen=True)
class IncidentRecord:
    incident_id: str
    coordinate: Coordinate
    category: str
    severity: Severity
    occurred_at: datetime
    reported_at: datetime


@dataclass(frozen=True)
class RouteSafetyAssessment:
    score: float
    total_incidents: int
    high_risk_sample_count: int
    recommendation: str
    sampled_point_count: int
    notes: List[str] = field(default_factory=list)
    incidents: List[IncidentRecord] = field(default_factory=list)
    failed_sample_count: int = 0

    @property
    def analysis(self) -> str:
        return f"Route analyzed across {self.sampled_point_count} checkpoints"

    @property
    def advice(self) -> List[str]:
        return [self.recommendation, *self.notes]


@dataclass(frozen=True)
class Rating:
    coordinate: Coordinate
    safety_score: int
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class RatingCell:
    coordinate: Coordinate
    average_safety_score: float
    sample_count: int


@dataclass(frozen=True)
class HeatPoint:
    coordinate: Coordinate
    intensity: float
