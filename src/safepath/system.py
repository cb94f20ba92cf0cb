from __future__ import annotations

from dataclasses import dataclass
from typing import List

from safepath.geofence import GeofenceMonitor
from safepath.heatmap import HeatmapAggregator
from safepath.models import (
    Coordinate,
    HeatPoint,
    IncidentRecord,
    PositionSample,
    RoutePolyline,
    RouteSafetyAssessment,
)
from safepath.outcome import OutcomeStatus
from safepath.routing import RoutingProvider, plan_route
from safepath.sampler import RouteRiskSampler
from safepath.sources import EndpointSafetyCheck, IncidentSource, KeyValueStore, RatingSource
from safepath.tracker import AcceptResult, Accepted, PositionTracker


@dataclass(frozen=True)
class RoutePlan:
    route: RoutePolyline
    route_status: OutcomeStatus
    assessment: RouteSafetyAssessment

    @property
    def is_estimate(self) -> bool:
        return self.route_status is not OutcomeStatus.OK


class SafePathEngine:
    """One user's tracker, geofences, route assessment and heatmap."""

    def __init__(
        self,
        incidents: IncidentSource,
        ratings: RatingSource,
        store: KeyValueStore | None = None,
        router: RoutingProvider | None = None,
        endpoint_check: EndpointSafetyCheck | None = None,
        sampler: RouteRiskSampler | None = None,
    ) -> None:
        self.tracker = PositionTracker(store=store)
        self.geofence = GeofenceMonitor()
        self.sampler = sampler or RouteRiskSampler(incidents, endpoint_check=endpoint_check)
        self.heatmap = HeatmapAggregator(ratings)
        self.router = router
        self.tracker.subscribe(self._on_position)

    def start(self) -> None:
        self.tracker.bootstrap()
        seeded = self.tracker.current()
        if seeded is not None:
            self.geofence.evaluate(seeded.coordinate)

    def update_position(self, sample: PositionSample) -> AcceptResult:
        return self.tracker.accept(sample)

    def plan_route(self, start: Coordinate, end: Coordinate) -> RoutePlan:
        routed = plan_route(self.router, start, end)
        assessment = self.sampler.assess(routed.value)
        return RoutePlan(route=routed.value, route_status=routed.status, assessment=assessment)

    def route_incidents(self, route: RoutePolyline) -> List[IncidentRecord]:
        return self.sampler.list_incidents(route)

    def heatmap_for(self, center: Coordinate) -> List[HeatPoint]:
        return self.heatmap.for_viewport(center)

    def close(self) -> None:
        self.tracker.close()
        self.sampler.close()

    def _on_position(self, accepted: Accepted) -> None:
        self.geofence.evaluate(accepted.position.coordinate)
