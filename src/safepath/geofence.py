from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from safepath.geodesy import is_within_zone
from safepath.models import Coordinate, Zone, ZoneKind, ZoneTransition

logger = logging.getLogger(__name__)


class GeofenceMonitor:
    """Tracks which safe or danger zone the user is currently in.

    A point inside both a safe and a danger circle resolves to the danger
    zone. Events fire only when the resolved ``(kind, zone_id)`` changes.
    """

    def __init__(self) -> None:
        self._zones: Dict[ZoneKind, List[Zone]] = {ZoneKind.SAFE: [], ZoneKind.DANGER: []}
        self._current: Optional[Zone] = None
        self._listeners: List[Callable[[ZoneTransition], None]] = []

    @property
    def current_zone(self) -> Optional[Zone]:
        return self._current

    def zones(self, kind: ZoneKind) -> List[Zone]:
        return list(self._zones[kind])

    def add_zone(self, kind: ZoneKind, name: str, center: Coordinate, radius_m: float) -> Zone:
        if radius_m < 0:
            raise ValueError("radius_m must be non-negative")
        zone = Zone(zone_id=uuid.uuid4().hex[:12], name=name, center=center, radius_m=radius_m, kind=kind)
        self._zones[kind].append(zone)
        return zone

    def remove_zone(self, zone_id: str) -> bool:
        for kind, zones in self._zones.items():
            kept = [z for z in zones if z.zone_id != zone_id]
            if len(kept) != len(zones):
                self._zones[kind] = kept
                return True
        return False

    def subscribe(self, callback: Callable[[ZoneTransition], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def resolve(self, point: Coordinate) -> Optional[Zone]:
        for kind in (ZoneKind.DANGER, ZoneKind.SAFE):
            for zone in self._zones[kind]:
                if is_within_zone(point, zone):
                    return zone
        return None

    def evaluate(self, point: Coordinate) -> Optional[ZoneTransition]:
        resolved = self.resolve(point)
        if _identity(resolved) == _identity(self._current):
            return None

        transition = ZoneTransition(previous=self._current, current=resolved, position=point)
        self._current = resolved
        if resolved is not None:
            logger.info("Entered %s zone: %s", resolved.kind.value, resolved.name)
        else:
            logger.info("Left %s zone: %s", transition.previous.kind.value, transition.previous.name)

        for callback in list(self._listeners):
            try:
                callback(transition)
            except Exception:
                logger.exception("Zone listener failed")
        return transition


def _identity(zone: Optional[Zone]) -> Optional[Tuple[ZoneKind, str]]:
    return (zone.kind, zone.zone_id) if zone is not None else None
