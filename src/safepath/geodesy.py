"""Distance, bearing and zone membership on a spherical Earth."""

from __future__ import annotations

import math

from safepath.config import WALKING_SPEED_MPS
from safepath.models import Coordinate, RoutePolyline, Zone

EARTH_RADIUS_M = 6_371_000.0


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters (haversine)."""

    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_M * c


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from ``a`` to ``b`` in [0, 360)."""

    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_lambda = math.radians(b.lng - a.lng)

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def is_within_zone(point: Coordinate, zone: Zone) -> bool:
    """Inside or on the boundary of the zone circle."""

    return distance_m(point, zone.center) <= zone.radius_m


def straight_line_route(start: Coordinate, end: Coordinate, speed_mps: float = WALKING_SPEED_MPS) -> RoutePolyline:
    """Two-point route used when no routing provider answers."""

    dist = distance_m(start, end)
    return RoutePolyline(
        points=(start, end),
        distance_m=dist,
        duration_s=dist / max(speed_mps, 0.1),
        instructions=("Head straight to the destination",),
    )
