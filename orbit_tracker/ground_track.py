"""
Ground-track sampling.

A track is recomputed from scratch on every call; callers that want the path
to slide forward re-invoke it on a timer anchored to the current time.
"""

from datetime import datetime, timedelta
from typing import Generic, Iterator, Optional, Sequence, Tuple, TypeVar

import structlog

from orbit_tracker.exceptions import (
    FrameConversionError,
    InvalidInput,
    OrbitTrackerError,
    PropagationError,
    PropagationFailure,
)
from orbit_tracker.frames import as_utc, subpoint
from orbit_tracker.models import GroundTrackPoint, OrbitalElementSet
from orbit_tracker.propagator import Propagator

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_default_propagator = Propagator()


class ScanResult(Generic[T]):
    """
    Output of a time scan: the produced items, how many samples were
    dropped, and the error that made the whole scan fail (if any).

    Behaves as a read-only sequence of its items. A failed scan always has
    no items.
    """

    def __init__(self, items: Sequence[T] = (), dropped: int = 0,
                 error: Optional[OrbitTrackerError] = None):
        self.items: Tuple[T, ...] = tuple(items) if error is None else ()
        self.dropped = dropped
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def __repr__(self) -> str:
        return f"ScanResult(items={len(self.items)}, dropped={self.dropped}, error={self.error!r})"


def sample_times(start_time: datetime, duration_minutes: float, step_minutes: float):
    """Instants start + k*step for k = 0, 1, ... while k*step <= duration."""
    if not step_minutes > 0:
        raise InvalidInput(f"step must be positive, got {step_minutes}")
    if not duration_minutes >= 0:
        raise InvalidInput(f"duration must be non-negative, got {duration_minutes}")
    start_time = as_utc(start_time)
    k = 0
    while k * step_minutes <= duration_minutes + 1e-9:
        yield start_time + timedelta(minutes=k * step_minutes)
        k += 1


def ground_track(elements: OrbitalElementSet, start_time: datetime, duration_minutes: float,
                 step_minutes: float, propagator: Optional[Propagator] = None,
                 stale_warning_days: float = 30.0) -> ScanResult[GroundTrackPoint]:
    """
    Sample the sub-satellite path over a time window.

    Args:
        elements: Orbital elements of the object
        start_time: First sample instant
        duration_minutes: Window length
        step_minutes: Sample spacing
        propagator: Propagator to use (shared default if omitted)
        stale_warning_days: Log a warning when the elements are older than this

    Returns:
        ScanResult of GroundTrackPoint. Samples that fail propagation or frame
        conversion are dropped; invalid elements fail the whole scan.
    """
    propagator = propagator or _default_propagator
    times = list(sample_times(start_time, duration_minutes, step_minutes))

    age_days = elements.age_days(times[0])
    if age_days > stale_warning_days:
        logger.warning("tle_stale", catalog_number=elements.catalog_number,
                       age_days=round(age_days, 1), line1=elements.line1, line2=elements.line2)

    points = []
    dropped = 0
    last_error = None
    for instant in times:
        try:
            position = subpoint(propagator.propagate(elements, instant))
        except PropagationError as exc:
            if exc.reason is PropagationFailure.INVALID_ELEMENTS:
                logger.error("ground_track_failed", catalog_number=elements.catalog_number,
                             reason=exc.reason.value, error=str(exc))
                return ScanResult(dropped=len(times), error=exc)
            dropped += 1
            last_error = exc
            continue
        except FrameConversionError as exc:
            dropped += 1
            last_error = exc
            continue
        points.append(GroundTrackPoint(time=instant, position=position))

    if not points and last_error is not None:
        logger.error("ground_track_failed", catalog_number=elements.catalog_number,
                     samples=len(times), error=str(last_error))
        return ScanResult(dropped=dropped, error=last_error)

    if dropped:
        logger.debug("ground_track_samples_dropped", catalog_number=elements.catalog_number,
                     dropped=dropped, samples=len(times))
    return ScanResult(points, dropped=dropped)


def max_longitude_jump(track: Sequence[GroundTrackPoint]) -> float:
    """Largest longitude change between consecutive points (degrees)."""
    return max(
        (abs(b.longitude_deg - a.longitude_deg) for a, b in zip(track, track[1:])),
        default=0.0,
    )


def antimeridian_crossings(track: Sequence[GroundTrackPoint]) -> int:
    """Number of consecutive-point longitude jumps larger than 180 degrees."""
    return sum(
        1 for a, b in zip(track, track[1:])
        if abs(b.longitude_deg - a.longitude_deg) > 180.0
    )
