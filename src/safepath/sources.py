"""Collaborator interfaces consumed by the engine, plus the adapters we ship.

The engine only talks to the ``Protocol`` types below. ``HttpIncidentSource``
and ``HttpRatingSource`` speak to the incident/rating service in ``backend/``;
``SqliteStore`` and ``MemoryStore`` are device-scoped key-value stores.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Protocol

import requests

from safepath.config import INCIDENT_API_URL, QUERY_TIMEOUT_SECONDS, STORE_PATH
from safepath.errors import IncidentQueryFailed, RatingQueryFailed
from safepath.models import (
    Coordinate,
    IncidentRecord,
    LocationOptions,
    PositionSample,
    RatingCell,
    Severity,
)

logger = logging.getLogger(__name__)


class IncidentSource(Protocol):
    def query(self, center: Coordinate, radius_deg: float) -> List[IncidentRecord]: ...


class RatingSource(Protocol):
    def nearby(self, center: Coordinate, radius_deg: float) -> List[RatingCell]: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...


class LocationSource(Protocol):
    def current_position(self, options: LocationOptions) -> PositionSample: ...

    def watch(
        self,
        options: LocationOptions,
        on_sample: Callable[[PositionSample], None],
        on_error: Callable[[Exception], None],
    ) -> Callable[[], None]: ...


class EndpointSafetyCheck(Protocol):
    def is_safe(self, point: Coordinate) -> bool: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value


class SqliteStore:
    """Key-value store persisted in a single sqlite table."""

    def __init__(self, path: str | Path = STORE_PATH) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[bytes]:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO kv (key,value,updated_at) VALUES (?,?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, value, datetime.now(timezone.utc).isoformat()),
            )


def parse_datetime(value: Any) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_incident(raw: dict[str, Any]) -> IncidentRecord:
    """Build an IncidentRecord from the service's crime-data JSON row."""

    occurred = parse_datetime(raw.get("incident_date"))
    return IncidentRecord(
        incident_id=str(raw["id"]),
        coordinate=Coordinate(float(raw["lat"]), float(raw["lng"])),
        category=str(raw.get("category") or "other"),
        severity=Severity(str(raw.get("severity") or "medium").lower()),
        occurred_at=occurred,
        reported_at=parse_datetime(raw.get("created_at")) if raw.get("created_at") else occurred,
    )


def parse_rating_cell(raw: dict[str, Any]) -> RatingCell:
    return RatingCell(
        coordinate=Coordinate(float(raw["lat"]), float(raw["lng"])),
        average_safety_score=float(raw["averageScore"]),
        sample_count=int(raw["ratingCount"]),
    )


class _HttpSource:
    def __init__(
        self,
        base_url: str = INCIDENT_API_URL,
        timeout_seconds: float = QUERY_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _get_data(self, path: str, center: Coordinate, radius_deg: float) -> dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}{path}",
            params={"lat": center.lat, "lng": center.lng, "radius": radius_deg},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("success"):
            raise ValueError(payload.get("message") or "unsuccessful response")
        return payload.get("data") or {}


class HttpIncidentSource(_HttpSource):
    def query(self, center: Coordinate, radius_deg: float) -> List[IncidentRecord]:
        try:
            data = self._get_data("/api/crime-data", center, radius_deg)
            return [parse_incident(row) for row in data.get("crimes", [])]
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise IncidentQueryFailed(f"crime-data query at {center.lat},{center.lng} failed: {exc}") from exc


class HttpRatingSource(_HttpSource):
    def nearby(self, center: Coordinate, radius_deg: float) -> List[RatingCell]:
        try:
            data = self._get_data("/api/ratings/heatmap", center, radius_deg)
            return [parse_rating_cell(row) for row in data.get("heatmapPoints", [])]
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise RatingQueryFailed(f"heatmap query at {center.lat},{center.lng} failed: {exc}") from exc


def _in_box(point: Coordinate, center: Coordinate, radius_deg: float) -> bool:
    return abs(point.lat - center.lat) <= radius_deg and abs(point.lng - center.lng) <= radius_deg


class MemoryIncidentSource:
    """Bounding-box lookup over a fixed list, same query shape as the service."""

    def __init__(self, incidents: List[IncidentRecord]) -> None:
        self.incidents = list(incidents)

    def query(self, center: Coordinate, radius_deg: float) -> List[IncidentRecord]:
        return [item for item in self.incidents if _in_box(item.coordinate, center, radius_deg)]


class MemoryRatingSource:
    def __init__(self, cells: List[RatingCell]) -> None:
        self.cells = list(cells)

    def nearby(self, center: Coordinate, radius_deg: float) -> List[RatingCell]:
        return [cell for cell in self.cells if _in_box(cell.coordinate, center, radius_deg)]
