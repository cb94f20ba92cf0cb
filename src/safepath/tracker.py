from __future__ import annotations

import json
import logging
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Union

from safepath.config import LAST_LOCATION_KEY
from safepath.errors import ErrorKind, GeolocationError
from safepath.geodesy import distance_m
from safepath.models import (
    DEFAULT_LOCATION,
    PRECISE_LOCATION_OPTIONS,
    QUICK_LOCATION_OPTIONS,
    AccuracyTier,
    Coordinate,
    LocationOptions,
    PositionSample,
    TrackedPosition,
)
from safepath.outcome import Outcome
from safepath.sources import KeyValueStore, LocationSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    position: TrackedPosition
    tier: Optional[AccuracyTier]
    moved_m: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: ErrorKind
    moved_m: float

    @property
    def accepted(self) -> bool:
        return False


AcceptResult = Union[Accepted, Rejected]


class PositionTracker:
    """Owns the current position and its bounded history.

    Raw device streams repeat near-identical fixes; anything within
    ``MIN_MOVE_M`` of the current position is rejected so that geofence and
    UI state are not churned. History is kept in arrival order.
    """

    HISTORY_LIMIT = 100
    MIN_MOVE_M = 5.0
    GOOD_ACCURACY_M = 50.0

    def __init__(
        self,
        store: KeyValueStore | None = None,
        store_key: str = LAST_LOCATION_KEY,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._store = store
        self._store_key = store_key
        self._retry_delay_seconds = retry_delay_seconds
        self._current: Optional[TrackedPosition] = None
        self._history: Deque[TrackedPosition] = deque(maxlen=self.HISTORY_LIMIT)
        self._has_live_fix = False
        self._listeners: List[Callable[[Accepted], None]] = []
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="safepath-store") if store is not None else None
        self._cancel_watch: Optional[Callable[[], None]] = None
        self.auto_resolve_enabled = True
        self.last_error: Optional[ErrorKind] = None

    @property
    def is_tracking(self) -> bool:
        return self._cancel_watch is not None

    def current(self) -> Optional[TrackedPosition]:
        return self._current

    def history(self) -> List[TrackedPosition]:
        return list(self._history)

    def subscribe(self, callback: Callable[[Accepted], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def accept(self, sample: PositionSample) -> AcceptResult:
        moved: Optional[float] = None
        if self._current is not None:
            moved = distance_m(self._current.coordinate, sample.coordinate)
            if self._has_live_fix and moved <= self.MIN_MOVE_M:
                logger.debug("Location change too small (%.1fm), skipping update", moved)
                return Rejected(reason=ErrorKind.INSIGNIFICANT_CHANGE, moved_m=moved)

        position = TrackedPosition.from_sample(sample)
        self._current = position
        self._has_live_fix = True
        self._history.append(position)
        self.last_error = None

        tier = AccuracyTier.classify(sample.accuracy_m)
        if tier is not None:
            logger.debug("%s accuracy location obtained: %sm", tier.value, sample.accuracy_m)

        self._persist(position)
        result = Accepted(position=position, tier=tier, moved_m=moved)
        self._emit(result)
        return result

    def bootstrap(self) -> Optional[TrackedPosition]:
        """Seed ``current`` from the last persisted fix, if it is a real one."""

        if self._store is None:
            return None
        raw = self._store.get(self._store_key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            coordinate = Coordinate(float(data["lat"]), float(data["lng"]))
            accuracy = data.get("accuracy")
            accuracy = float(accuracy) if accuracy is not None else None
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable saved location: %s", exc)
            return None

        if coordinate == DEFAULT_LOCATION:
            logger.info("Saved location is the default location, waiting for a fresh fix")
            return None
        if self._current is None:
            self._current = TrackedPosition(
                coordinate=coordinate,
                accuracy_m=accuracy,
                speed_mps=0.0,
                heading_deg=None,
                captured_at_ms=0,
            )
            logger.info("Using saved location %.5f,%.5f", coordinate.lat, coordinate.lng)
        return self._current

    def resolve_now(self, source: LocationSource) -> Outcome[TrackedPosition]:
        """One-shot fix: a quick request, then a precise one if the first is poor."""

        if not self.auto_resolve_enabled:
            return Outcome.failed(self.last_error or ErrorKind.GEOLOCATION_DENIED)

        try:
            first = source.current_position(QUICK_LOCATION_OPTIONS)
        except GeolocationError as exc:
            return self._resolution_failed(exc)

        self.accept(first)
        best = first
        if first.accuracy_m is not None and first.accuracy_m > self.GOOD_ACCURACY_M:
            if self._retry_delay_seconds > 0:
                time.sleep(self._retry_delay_seconds)
            try:
                second = source.current_position(PRECISE_LOCATION_OPTIONS)
            except GeolocationError as exc:
                logger.info("Precise location attempt failed (%s), keeping first fix", exc.kind.value)
            else:
                if second.accuracy_m is None or second.accuracy_m < first.accuracy_m:
                    if not self.accept(second).accepted:
                        # a sharper fix of the same spot still replaces the first one
                        self._replace_latest(second)
                    best = second

        position = TrackedPosition.from_sample(best)
        if best.accuracy_m is not None and best.accuracy_m > self.GOOD_ACCURACY_M:
            return Outcome.degraded(position, ErrorKind.LOW_ACCURACY)
        return Outcome.ok(position)

    def enable_auto_resolve(self) -> None:
        self.auto_resolve_enabled = True
        self.last_error = None

    def start_tracking(self, source: LocationSource, options: LocationOptions = QUICK_LOCATION_OPTIONS) -> None:
        if self._cancel_watch is not None:
            self.stop_tracking()
        self._cancel_watch = source.watch(options, self.accept, self._on_watch_error)
        logger.info("Location tracking started")

    def stop_tracking(self) -> None:
        if self._cancel_watch is None:
            return
        cancel, self._cancel_watch = self._cancel_watch, None
        cancel()
        logger.info("Location tracking stopped")

    def close(self) -> None:
        """Stop watching and wait for pending persistence writes."""

        self.stop_tracking()
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.shutdown(wait=True)

    def _fallback(self) -> TrackedPosition:
        if self._current is not None:
            return self._current
        return TrackedPosition(
            coordinate=DEFAULT_LOCATION, accuracy_m=None, speed_mps=0.0, heading_deg=None, captured_at_ms=0
        )

    def _resolution_failed(self, exc: GeolocationError) -> Outcome[TrackedPosition]:
        self.last_error = exc.kind
        if exc.is_transient:
            logger.info("Location request timed out, will try again later")
            return Outcome.degraded(self._fallback(), exc.kind)

        self.auto_resolve_enabled = False
        logger.warning("Location resolution stopped: %s", exc)
        if exc.kind is ErrorKind.GEOLOCATION_DENIED:
            return Outcome.failed(exc.kind)
        return Outcome.degraded(self._fallback(), exc.kind)

    def _on_watch_error(self, exc: Exception) -> None:
        if not isinstance(exc, GeolocationError):
            logger.warning("Location watch error: %s", exc)
            return
        self.last_error = exc.kind
        if exc.is_transient:
            logger.info("Location watch timed out, waiting for next fix")
            return
        self.auto_resolve_enabled = False
        logger.warning("Location watch failed: %s", exc)
        self.stop_tracking()

    def _replace_latest(self, sample: PositionSample) -> None:
        previous = self._current
        position = TrackedPosition.from_sample(sample)
        self._current = position
        if self._history:
            self._history[-1] = position
        else:
            self._history.append(position)
        self._persist(position)
        moved = distance_m(previous.coordinate, position.coordinate) if previous is not None else None
        self._emit(Accepted(position=position, tier=AccuracyTier.classify(sample.accuracy_m), moved_m=moved))

    def _persist(self, position: TrackedPosition) -> None:
        if self._writer is None:
            return
        payload = json.dumps(
            {
                "lat": position.coordinate.lat,
                "lng": position.coordinate.lng,
                "accuracy": position.accuracy_m,
            }
        ).encode()
        future = self._writer.submit(self._store.set, self._store_key, payload)
        future.add_done_callback(_log_write_failure)

    def _emit(self, result: Accepted) -> None:
        for callback in list(self._listeners):
            try:
                callback(result)
            except Exception:
                logger.exception("Position listener failed")


def _log_write_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Could not persist last known location: %s", exc)
