"""
Satellite State Propagation

Turns an OrbitalElementSet and an absolute instant into an ECI (TEME) state
vector, or a PropagationError naming why it could not.

Engines:
- ``sgp4``: the proven sgp4 library (Vallado et al. 2006). Selects the
  near-Earth SGP4 or deep-space SDP4 branch from the orbital period.
- ``reference``: the native near-Earth implementation in sgp4_reference.py.

Propagation is a pure function of (elements, instant). Initialised model
records are cached per element set; the cache is an optimisation only.
"""

import math
import threading
from collections import OrderedDict
from datetime import datetime

import structlog
from sgp4.api import Satrec, WGS72

from config import EARTH_RADIUS_KM
from orbit_tracker.exceptions import PropagationError, PropagationFailure
from orbit_tracker.frames import as_utc, julian_date, subpoint
from orbit_tracker.models import GeodeticPosition, OrbitalElementSet, StateVector
from orbit_tracker.sgp4_reference import NearEarthSGP4

logger = structlog.get_logger(__name__)


# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Satellite has decayed",
    6: "Satellite has decayed (low altitude)",
}

SGP4_ERROR_REASONS = {
    1: PropagationFailure.NUMERICAL_DEGENERACY,
    2: PropagationFailure.INVALID_ELEMENTS,
    3: PropagationFailure.NUMERICAL_DEGENERACY,
    4: PropagationFailure.NUMERICAL_DEGENERACY,
    5: PropagationFailure.DECAYED,
    6: PropagationFailure.DECAYED,
}

ENGINES = ("sgp4", "reference")


def minutes_since_epoch(elements: OrbitalElementSet, instant: datetime) -> float:
    return (as_utc(instant) - elements.epoch).total_seconds() / 60.0


def validate_elements(elements: OrbitalElementSet) -> None:
    """
    Reject element sets no engine can propagate.

    Raises:
        PropagationError: ``invalid-elements`` for impossible values,
            ``decayed`` when the perigee lies below the Earth's surface
    """
    values = (elements.mean_motion, elements.eccentricity, elements.inclination_deg,
              elements.bstar)
    if not all(math.isfinite(v) for v in values):
        raise PropagationError(PropagationFailure.INVALID_ELEMENTS, "non-finite element",
                               catalog_number=elements.catalog_number)
    if elements.mean_motion <= 0.0:
        raise PropagationError(PropagationFailure.INVALID_ELEMENTS,
                               f"mean motion {elements.mean_motion} must be positive",
                               catalog_number=elements.catalog_number)
    if not 0.0 <= elements.eccentricity < 1.0:
        raise PropagationError(PropagationFailure.INVALID_ELEMENTS,
                               f"eccentricity {elements.eccentricity} outside [0, 1)",
                               catalog_number=elements.catalog_number)
    if not 0.0 <= elements.inclination_deg <= 180.0:
        raise PropagationError(PropagationFailure.INVALID_ELEMENTS,
                               f"inclination {elements.inclination_deg} outside [0, 180]",
                               catalog_number=elements.catalog_number)
    if elements.perigee_altitude_km < 0.0:
        raise PropagationError(PropagationFailure.DECAYED,
                               f"perigee {elements.perigee_altitude_km:.1f} km below the surface",
                               catalog_number=elements.catalog_number)


class Propagator:
    """
    SGP4/SDP4 propagator with per-element-set model caching.

    Safe to share between threads.
    """

    def __init__(self, engine: str = "sgp4", cache_size: int = 4096):
        if engine not in ENGINES:
            raise ValueError(f"unknown engine {engine!r}, expected one of {ENGINES}")
        self.engine = engine
        self.cache_size = cache_size
        self._cache = OrderedDict()
        self._lock = threading.Lock()

    def propagate(self, elements: OrbitalElementSet, instant: datetime) -> StateVector:
        """
        Propagate an element set to an instant.

        Args:
            elements: Parsed orbital elements
            instant: Target time (naive values are UTC)

        Returns:
            StateVector with TEME position (km) and velocity (km/s)

        Raises:
            PropagationError: decayed, numerically degenerate or invalid elements
        """
        instant = as_utc(instant)
        model = self._model(elements)

        if self.engine == "sgp4":
            jd, fr = julian_date(instant)
            with model["lock"]:
                error, position, velocity = model["record"].sgp4(jd, fr)
            if error != 0:
                reason = SGP4_ERROR_REASONS.get(error, PropagationFailure.NUMERICAL_DEGENERACY)
                raise PropagationError(
                    reason,
                    f"SGP4 error {error}: {SGP4_ERROR_CODES.get(error, 'unknown')}",
                    catalog_number=elements.catalog_number,
                    tsince_minutes=minutes_since_epoch(elements, instant),
                )
        else:
            position, velocity = model["record"].propagate(minutes_since_epoch(elements, instant))

        state = StateVector(
            instant=instant,
            position=tuple(float(c) for c in position),
            velocity=tuple(float(c) for c in velocity),
        )
        self._check_state(elements, state)
        return state

    def propagate_geodetic(self, elements: OrbitalElementSet, instant: datetime) -> GeodeticPosition:
        """Propagate and convert to the geodetic sub-satellite point."""
        return subpoint(self.propagate(elements, instant))

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _model(self, elements: OrbitalElementSet) -> dict:
        with self._lock:
            model = self._cache.get(elements)
            if model is not None:
                self._cache.move_to_end(elements)
                return model

        validate_elements(elements)
        if self.engine == "sgp4":
            record = Satrec.twoline2rv(elements.line1, elements.line2, WGS72)
            if record.error != 0:
                raise PropagationError(
                    SGP4_ERROR_REASONS.get(record.error, PropagationFailure.INVALID_ELEMENTS),
                    f"SGP4 initialisation error {record.error}",
                    catalog_number=elements.catalog_number,
                )
        else:
            record = NearEarthSGP4(elements)

        model = {"record": record, "lock": threading.Lock()}
        with self._lock:
            self._cache[elements] = model
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return model

    def _check_state(self, elements: OrbitalElementSet, state: StateVector) -> None:
        if not all(math.isfinite(c) for c in state.position + state.velocity):
            raise PropagationError(PropagationFailure.NUMERICAL_DEGENERACY,
                                   "non-finite state vector",
                                   catalog_number=elements.catalog_number)
        if state.radius_km < EARTH_RADIUS_KM:
            raise PropagationError(PropagationFailure.DECAYED,
                                   f"radius {state.radius_km:.1f} km below the surface",
                                   catalog_number=elements.catalog_number)
