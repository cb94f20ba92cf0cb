from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import requests

from safepath.models import Coordinate, IncidentRecord, LocationOptions, PositionSample, Severity

DAYTIME = datetime(2024, 5, 1, 12, 0)
NIGHTTIME = datetime(2024, 5, 1, 23, 30)


def incident(
    incident_id: str,
    lat: float,
    lng: float,
    severity: Severity = Severity.MEDIUM,
    occurred_at: Optional[datetime] = None,
    category: str = "theft",
) -> IncidentRecord:
    occurred_at = occurred_at or datetime(2024, 4, 30, 20, 0, tzinfo=timezone.utc)
    return IncidentRecord(
        incident_id=incident_id,
        coordinate=Coordinate(lat, lng),
        category=category,
        severity=severity,
        occurred_at=occurred_at,
        reported_at=occurred_at,
    )


def sample(lat: float, lng: float, accuracy_m: Optional[float] = 5.0, at_ms: int = 0) -> PositionSample:
    return PositionSample(coordinate=Coordinate(lat, lng), captured_at_ms=at_ms, accuracy_m=accuracy_m)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[dict] = []

    def get(self, url: str, params: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeLocationSource:
    def __init__(self, *fixes: Any) -> None:
        self.fixes = list(fixes)
        self.requests: List[LocationOptions] = []
        self.on_sample: Optional[Callable[[PositionSample], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.cancelled = False

    def current_position(self, options: LocationOptions) -> PositionSample:
        self.requests.append(options)
        item = self.fixes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def watch(self, options, on_sample, on_error):
        self.on_sample = on_sample
        self.on_error = on_error
        self.cancelled = False

        def cancel() -> None:
            self.cancelled = True

        return cancel


class PointIncidentSource:
    """Answers by exact sample point; raises for points listed in ``failing``."""

    def __init__(self, by_point: dict, failing: tuple = ()) -> None:
        self.by_point = by_point
        self.failing = set(failing)
        self.calls: List[tuple] = []

    def query(self, center: Coordinate, radius_deg: float) -> List[IncidentRecord]:
        self.calls.append((center, radius_deg))
        if center in self.failing:
            raise RuntimeError("lookup failed")
        return list(self.by_point.get(center, []))
