"""OSRM routing client.

Routing is a third-party service that is often slow or rate limited, so every
request carries a timeout and transient failures are retried with a linear
backoff. When no route can be had at all, ``plan_route`` substitutes a
straight-line estimate so callers always get something to assess.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Protocol

import requests

from safepath.config import (
    OSRM_URL,
    ROUTING_BACKOFF_SECONDS,
    ROUTING_MAX_RETRIES,
    ROUTING_PROFILE,
    ROUTING_TIMEOUT_SECONDS,
)
from safepath.errors import ErrorKind, RoutingUnavailable
from safepath.geodesy import straight_line_route
from safepath.models import Coordinate, RoutePolyline
from safepath.outcome import Outcome

logger = logging.getLogger(__name__)

RETRIABLE_STATUS = {429, 500, 502, 503, 504}


class RoutingProvider(Protocol):
    def route(self, start: Coordinate, end: Coordinate, profile: str = ROUTING_PROFILE) -> RoutePolyline: ...


class OsrmRouter:
    def __init__(
        self,
        base_url: str = OSRM_URL,
        timeout_seconds: float = ROUTING_TIMEOUT_SECONDS,
        max_retries: int = ROUTING_MAX_RETRIES,
        backoff_seconds: float = ROUTING_BACKOFF_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()

    def route(self, start: Coordinate, end: Coordinate, profile: str = ROUTING_PROFILE) -> RoutePolyline:
        url = f"{self.base_url}/route/v1/{profile}/{start.lng},{start.lat};{end.lng},{end.lat}"
        params = {"overview": "full", "geometries": "geojson", "steps": "true", "alternatives": "false"}

        last_error = "no attempt made"
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = self.backoff_seconds * attempt
                logger.info("Retrying route calculation (%d/%d) in %.1fs", attempt, self.max_retries, delay)
                time.sleep(delay)
            try:
                response = self.session.get(url, params=params, timeout=self.timeout_seconds)
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = f"transport error: {exc}"
                continue

            if response.status_code in RETRIABLE_STATUS:
                last_error = f"HTTP {response.status_code}"
                continue
            if response.status_code != 200:
                raise RoutingUnavailable(f"routing provider answered HTTP {response.status_code}")

            try:
                return parse_osrm_route(response.json())
            except (ValueError, KeyError, IndexError, TypeError) as exc:
                raise RoutingUnavailable(f"unusable routing response: {exc}") from exc

        raise RoutingUnavailable(f"routing failed after {self.max_retries + 1} attempts ({last_error})")


def parse_osrm_route(data: Dict[str, Any]) -> RoutePolyline:
    if data.get("code") != "Ok" or not data.get("routes"):
        raise ValueError(f"no route found (code={data.get('code')})")

    route = data["routes"][0]
    points = tuple(Coordinate(float(lat), float(lng)) for lng, lat in route["geometry"]["coordinates"])

    instructions: List[str] = []
    for leg in route.get("legs", []):
        for step in leg.get("steps", []):
            maneuver = step.get("maneuver", {})
            text = maneuver.get("instruction") or " ".join(
                part for part in (maneuver.get("type"), maneuver.get("modifier"), step.get("name")) if part
            )
            if text:
                instructions.append(text)

    return RoutePolyline(
        points=points,
        distance_m=float(route.get("distance", 0.0)),
        duration_s=float(route.get("duration", 0.0)),
        instructions=tuple(instructions),
    )


def plan_route(
    router: RoutingProvider | None,
    start: Coordinate,
    end: Coordinate,
    profile: str = ROUTING_PROFILE,
) -> Outcome[RoutePolyline]:
    if router is None:
        return Outcome.degraded(straight_line_route(start, end), ErrorKind.ROUTING_UNAVAILABLE)
    try:
        return Outcome.ok(router.route(start, end, profile))
    except RoutingUnavailable as exc:
        logger.warning("Routing unavailable, using straight-line estimate: %s", exc)
        return Outcome.degraded(straight_line_route(start, end), exc.kind)
