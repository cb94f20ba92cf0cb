from __future__ import annotations

import logging
import math
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from safepath.config import (
    ASSESSMENT_RADIUS_DEG,
    ASSESSMENT_SAMPLE_TARGET,
    LISTING_RADIUS_DEG,
    LISTING_SAMPLE_TARGET,
    NIGHT_END_HOUR,
    NIGHT_START_HOUR,
    QUERY_TIMEOUT_SECONDS,
    QUERY_WORKERS,
)
from safepath.models import Coordinate, IncidentRecord, RoutePolyline, RouteSafetyAssessment
from safepath.sources import EndpointSafetyCheck, IncidentSource

logger = logging.getLogger(__name__)


RECOMMENDATION_BANDS = [
    (4.5, "This route appears very safe with low crime activity."),
    (3.5, "This route has moderate safety. Stay alert and consider walking with others."),
    (2.5, "This route passes through areas with elevated crime. Consider alternative routes."),
]
LOWEST_BAND = "This route may not be safe. Strongly consider an alternative route or using transportation."

NIGHT_NOTES = [
    "Night travel - extra caution advised.",
    "Stay in well-lit areas.",
    "Share your live location with a trusted contact.",
]
START_UNSAFE_NOTE = "Starting location has safety concerns."
END_UNSAFE_NOTE = "Destination area has safety concerns."

RouteInput = Union[RoutePolyline, Sequence[Coordinate]]

POLL_SECONDS = 0.05


def sample_points(points: Sequence[Coordinate], target: int) -> List[Coordinate]:
    """Pick every ``n // target``-th point, always keeping both endpoints."""

    if not points:
        return []
    stride = max(1, len(points) // max(target, 1))
    indices = list(range(0, len(points), stride))
    if indices[-1] != len(points) - 1:
        indices.append(len(points) - 1)
    return [points[i] for i in indices]


def score_route(total_incidents: int, high_risk_samples: int, sampled: int) -> float:
    """Unrounded 1-5 route score. The 2/3 weights are empirical; keep them."""

    if sampled <= 0:
        return 5.0
    crime_ratio = min(total_incidents / (sampled * 2), 1.0)
    high_risk_ratio = high_risk_samples / sampled
    return max(1.0, 5.0 - (crime_ratio * 2 + high_risk_ratio * 3))


def round_score(score: float) -> float:
    # half-up, so 2.25 -> 2.3 rather than banker's 2.2
    return math.floor(score * 10 + 0.5) / 10


def recommendation_for(score: float) -> str:
    for floor, text in RECOMMENDATION_BANDS:
        if score >= floor:
            return text
    return LOWEST_BAND


def is_night(moment: datetime) -> bool:
    return moment.hour >= NIGHT_START_HOUR or moment.hour < NIGHT_END_HOUR


def dedupe_incidents(batches: Iterable[Iterable[IncidentRecord]]) -> List[IncidentRecord]:
    """Merge per-point results, first occurrence of an id wins, most severe first."""

    unique: dict[str, IncidentRecord] = {}
    for batch in batches:
        for incident in batch:
            unique.setdefault(incident.incident_id, incident)
    return sorted(
        unique.values(),
        key=lambda item: (item.severity.rank, item.occurred_at.timestamp()),
        reverse=True,
    )


class RouteRiskSampler:
    def __init__(
        self,
        incidents: IncidentSource,
        endpoint_check: EndpointSafetyCheck | None = None,
        timeout_seconds: float = QUERY_TIMEOUT_SECONDS,
        max_workers: int = QUERY_WORKERS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.incidents = incidents
        self.endpoint_check = endpoint_check
        self.timeout_seconds = timeout_seconds
        self.max_workers = max(1, max_workers)
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="safepath-query")

    def assess(self, route: RouteInput) -> RouteSafetyAssessment:
        points = _points_of(route)
        samples = sample_points(points, ASSESSMENT_SAMPLE_TARGET)
        results = self._query_incidents(samples, ASSESSMENT_RADIUS_DEG)

        total = 0
        high_risk = 0
        failed = 0
        for found in results:
            if found is None:
                failed += 1
                continue
            total += len(found)
            if any(item.severity.is_high_risk for item in found):
                high_risk += 1

        raw_score = score_route(total, high_risk, len(samples))
        assessment = RouteSafetyAssessment(
            score=round_score(raw_score),
            total_incidents=total,
            high_risk_sample_count=high_risk,
            recommendation=recommendation_for(raw_score),
            sampled_point_count=len(samples),
            notes=self._context_notes(points[0], points[-1]),
            incidents=dedupe_incidents(found for found in results if found),
            failed_sample_count=failed,
        )
        logger.info(
            "Route assessed: score=%.1f incidents=%d high_risk=%d samples=%d failed=%d",
            assessment.score,
            total,
            high_risk,
            len(samples),
            failed,
        )
        return assessment

    def list_incidents(self, route: RouteInput) -> List[IncidentRecord]:
        """Coarser pass for incident listings: fewer samples, wider radius."""

        samples = sample_points(_points_of(route), LISTING_SAMPLE_TARGET)
        results = self._query_incidents(samples, LISTING_RADIUS_DEG)
        return dedupe_incidents(found for found in results if found)

    def _context_notes(self, start: Coordinate, end: Coordinate) -> List[str]:
        notes: List[str] = []
        if self.endpoint_check is not None:
            check = self.endpoint_check.is_safe
            (start_ok, start_safe), (end_ok, end_safe) = self._fan_out([(check, (start,)), (check, (end,))])
            # an endpoint whose check failed is unknown, not unsafe
            if start_ok and not start_safe:
                notes.append(START_UNSAFE_NOTE)
            if end_ok and not end_safe:
                notes.append(END_UNSAFE_NOTE)
        if is_night(self.clock()):
            notes.extend(NIGHT_NOTES)
        return notes

    def _query_incidents(self, samples: List[Coordinate], radius_deg: float) -> List[Optional[List[IncidentRecord]]]:
        outcomes = self._fan_out([(self.incidents.query, (point, radius_deg)) for point in samples])
        return [list(value) if ok else None for ok, value in outcomes]

    def close(self) -> None:
        """Release lookup threads; lookups still running are abandoned."""

        self._executor.shutdown(wait=False, cancel_futures=True)

    def _fan_out(self, calls: List[Tuple[Callable[..., Any], tuple]]) -> List[Tuple[bool, Any]]:
        """Run calls concurrently; a failure or timeout yields ``(False, None)``.

        Each call gets ``timeout_seconds`` from the moment a worker picks it
        up. Calls still queued once every wave of workers has had its full
        budget are given up on as well.
        """

        if not calls:
            return []
        started: Dict[int, float] = {}

        def run(index: int, func: Callable[..., Any], args: tuple) -> Any:
            started[index] = time.monotonic()
            return func(*args)

        futures = [self._executor.submit(run, index, func, args) for index, (func, args) in enumerate(calls)]
        waves = math.ceil(len(calls) / self.max_workers)
        batch_deadline = time.monotonic() + self.timeout_seconds * waves
        pending = set(range(len(futures)))
        expired = set()

        while pending:
            now = time.monotonic()
            for index in list(pending):
                if futures[index].done():
                    pending.discard(index)
                    continue
                began = started.get(index)
                if now >= batch_deadline or (began is not None and now - began >= self.timeout_seconds):
                    futures[index].cancel()
                    expired.add(index)
                    pending.discard(index)
            if not pending:
                break
            deadlines = [started[i] + self.timeout_seconds for i in pending if i in started]
            next_check = min(deadlines + [batch_deadline, now + POLL_SECONDS])
            wait([futures[i] for i in pending], timeout=max(0.0, next_check - now), return_when=FIRST_COMPLETED)

        outcomes: List[Tuple[bool, Any]] = []
        for index, future in enumerate(futures):
            if index in expired:
                logger.warning("Lookup %d timed out after %.1fs, counting it as empty", index, self.timeout_seconds)
                outcomes.append((False, None))
                continue
            exc = future.exception()
            if exc is not None:
                logger.warning("Lookup %d failed, counting it as empty: %s", index, exc)
                outcomes.append((False, None))
                continue
            outcomes.append((True, future.result()))
        return outcomes


def _points_of(route: RouteInput) -> List[Coordinate]:
    points = list(route.points) if isinstance(route, RoutePolyline) else list(route)
    if len(points) < 2:
        raise ValueError("a route needs at least two points")
    return points
