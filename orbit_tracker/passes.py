"""
Overhead pass prediction.

The predictor steps through the horizon at a fixed one-minute resolution and
runs a two-state machine over the observer elevation:

    OUTSIDE_PASS --(elevation > threshold)--> INSIDE_PASS   open a pass
    INSIDE_PASS  --(elevation < threshold)--> OUTSIDE_PASS  close and emit it

Pass boundaries are the sampled instants, so start and end times carry up to
one sample interval of error. A pass still open when the horizon ends is
dropped unless ``include_open`` is set, in which case it is reported with
``truncated=True`` and the last sample as its end.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

import structlog

from orbit_tracker.exceptions import (
    FrameConversionError,
    InvalidInput,
    PropagationError,
    PropagationFailure,
)
from orbit_tracker.frames import as_utc, subpoint
from orbit_tracker.ground_track import ScanResult
from orbit_tracker.models import OrbitalElementSet, Pass
from orbit_tracker.propagator import Propagator
from orbit_tracker.visibility import visibility

logger = structlog.get_logger(__name__)

SCAN_STEP_MINUTES = 1.0

_default_propagator = Propagator()


class ScanState(Enum):
    OUTSIDE_PASS = "outside"
    INSIDE_PASS = "inside"


class _OpenPass:
    """Pass under construction while the scan is inside it."""

    def __init__(self, start_time: datetime, elevation: float, azimuth: float):
        self.start_time = start_time
        self.start_azimuth = azimuth
        self.max_elevation = elevation
        self.max_elevation_time = start_time

    def observe(self, time: datetime, elevation: float) -> None:
        if elevation > self.max_elevation:
            self.max_elevation = elevation
            self.max_elevation_time = time

    def close(self, end_time: datetime, end_azimuth: float, truncated: bool = False) -> Pass:
        return Pass(
            start_time=self.start_time,
            end_time=end_time,
            max_elevation_deg=self.max_elevation,
            max_elevation_time=self.max_elevation_time,
            start_azimuth_deg=self.start_azimuth,
            end_azimuth_deg=end_azimuth,
            duration_minutes=(end_time - self.start_time).total_seconds() / 60.0,
            truncated=truncated,
        )


def predict_passes(elements: OrbitalElementSet, observer_lat: float, observer_lon: float,
                   start_time: datetime, horizon_hours: float = 24.0,
                   min_elevation_deg: float = 10.0, observer_alt_m: float = 0.0,
                   propagator: Optional[Propagator] = None,
                   include_open: bool = False) -> ScanResult[Pass]:
    """
    Find above-threshold intervals for an observer.

    Args:
        elements: Orbital elements of the object
        observer_lat: Observer latitude (degrees)
        observer_lon: Observer longitude (degrees)
        start_time: Scan start
        horizon_hours: Scan length
        min_elevation_deg: Elevation threshold (degrees)
        observer_alt_m: Observer altitude (meters)
        propagator: Propagator to use (shared default if omitted)
        include_open: Report a pass still open at the horizon as truncated

    Returns:
        ScanResult of Pass in start-time order. Failed samples are skipped;
        invalid elements or observer coordinates fail the whole scan.
    """
    propagator = propagator or _default_propagator
    if not all(math.isfinite(v) for v in (observer_lat, observer_lon, observer_alt_m)):
        error = InvalidInput(f"non-finite observer location: lat={observer_lat}, "
                             f"lon={observer_lon}, alt={observer_alt_m}")
        logger.error("pass_prediction_failed", catalog_number=elements.catalog_number,
                     error=str(error))
        return ScanResult(error=error)
    if not horizon_hours > 0:
        return ScanResult(error=InvalidInput(f"horizon must be positive, got {horizon_hours}"))

    start_time = as_utc(start_time)
    samples = int(round(horizon_hours * 60.0 / SCAN_STEP_MINUTES))

    passes = []
    state = ScanState.OUTSIDE_PASS
    current = None
    last_time = last_azimuth = None
    dropped = 0
    last_error = None

    for k in range(samples):
        time = start_time + timedelta(minutes=k * SCAN_STEP_MINUTES)
        try:
            position = subpoint(propagator.propagate(elements, time))
        except PropagationError as exc:
            if exc.reason is PropagationFailure.INVALID_ELEMENTS:
                logger.error("pass_prediction_failed", catalog_number=elements.catalog_number,
                             reason=exc.reason.value, error=str(exc))
                return ScanResult(dropped=samples, error=exc)
            dropped += 1
            last_error = exc
            continue
        except FrameConversionError as exc:
            dropped += 1
            last_error = exc
            continue

        look = visibility(position, observer_lat, observer_lon, observer_alt_m)
        if not look.valid:
            dropped += 1
            continue
        elevation = look.elevation_deg
        last_time, last_azimuth = time, look.azimuth_deg

        if state is ScanState.OUTSIDE_PASS:
            if elevation > min_elevation_deg:
                state = ScanState.INSIDE_PASS
                current = _OpenPass(time, elevation, look.azimuth_deg)
        else:
            current.observe(time, elevation)
            if elevation < min_elevation_deg:
                passes.append(current.close(time, look.azimuth_deg))
                state = ScanState.OUTSIDE_PASS
                current = None

    if dropped == samples and last_error is not None:
        logger.error("pass_prediction_failed", catalog_number=elements.catalog_number,
                     samples=samples, error=str(last_error))
        return ScanResult(dropped=dropped, error=last_error)

    if state is ScanState.INSIDE_PASS:
        if include_open:
            passes.append(current.close(last_time, last_azimuth, truncated=True))
        else:
            logger.debug("open_pass_dropped", catalog_number=elements.catalog_number,
                         start_time=current.start_time.isoformat())

    logger.debug("passes_predicted", catalog_number=elements.catalog_number,
                 passes=len(passes), dropped=dropped)
    return ScanResult(passes, dropped=dropped)


def next_pass(passes: Iterable[Pass], now: datetime) -> Optional[Pass]:
    """First pass that has not ended by ``now``."""
    now = as_utc(now)
    for candidate in passes:
        if candidate.end_time > now:
            return candidate
    return None


def minutes_until(candidate: Pass, now: datetime) -> float:
    """Minutes from ``now`` to the pass start; zero if the pass is under way."""
    return max(0.0, (candidate.start_time - as_utc(now)).total_seconds() / 60.0)
