from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    ROUTING_UNAVAILABLE = "routing_unavailable"
    INCIDENT_QUERY_FAILED = "incident_query_failed"
    RATING_QUERY_FAILED = "rating_query_failed"
    GEOLOCATION_DENIED = "geolocation_denied"
    GEOLOCATION_UNAVAILABLE = "geolocation_unavailable"
    GEOLOCATION_TIMEOUT = "geolocation_timeout"
    INSIGNIFICANT_CHANGE = "insignificant_change"
    LOW_ACCURACY = "low_accuracy"


class SafePathError(Exception):
    """Base error carrying the ErrorKind that callers branch on."""

    kind: ErrorKind = ErrorKind.ROUTING_UNAVAILABLE

    def __init__(self, message: str = "", kind: ErrorKind | None = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)


class RoutingUnavailable(SafePathError):
    kind = ErrorKind.ROUTING_UNAVAILABLE


class IncidentQueryFailed(SafePathError):
    kind = ErrorKind.INCIDENT_QUERY_FAILED


class RatingQueryFailed(SafePathError):
    kind = ErrorKind.RATING_QUERY_FAILED


class GeolocationError(SafePathError):
    """Raised by a LocationSource; kind is one of the GEOLOCATION_* values."""

    kind = ErrorKind.GEOLOCATION_UNAVAILABLE

    @property
    def is_transient(self) -> bool:
        return self.kind is ErrorKind.GEOLOCATION_TIMEOUT
