"""
Satellite Propagation & Ground Visibility Package

Parses Two-Line Element sets, propagates them with SGP4/SDP4, converts the
result to geodetic coordinates, and answers observer questions: visibility,
ground tracks and upcoming passes.

Modules:
    tle_parser: TLE parsing, checksums and reconstruction
    propagator: SGP4/SDP4 propagation with per-element-set caching
    sgp4_reference: Native near-Earth SGP4 implementation
    frames: Sidereal time and ECI/geodetic conversion
    visibility: Observer range, elevation and azimuth
    ground_track: Sub-satellite path sampling
    passes: Overhead pass prediction
    catalog: Ingest filtering and the tracked-object set
    sources: Space-Track and CelesTrak adapters
    scheduler: Background position ticks and selection refresh
    app: Flask HTTP service

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

__version__ = "1.0.0"

from orbit_tracker.exceptions import (  # noqa: E402
    ChecksumMismatch,
    FrameConversionError,
    InvalidInput,
    MalformedElementSet,
    OrbitTrackerError,
    PropagationError,
    PropagationFailure,
)
from orbit_tracker.models import (  # noqa: E402
    Category,
    GeodeticPosition,
    ObserverLocation,
    OrbitalElementSet,
    OrbitClass,
    Pass,
    TrackedObject,
)
from orbit_tracker.tle_parser import TLEParser, parse_tle  # noqa: E402
from orbit_tracker.propagator import Propagator  # noqa: E402
from orbit_tracker.visibility import visibility  # noqa: E402
from orbit_tracker.ground_track import ground_track  # noqa: E402
from orbit_tracker.passes import predict_passes  # noqa: E402
from orbit_tracker.catalog import Catalog  # noqa: E402

__all__ = [
    "Catalog",
    "Category",
    "ChecksumMismatch",
    "FrameConversionError",
    "GeodeticPosition",
    "InvalidInput",
    "MalformedElementSet",
    "ObserverLocation",
    "OrbitClass",
    "OrbitTrackerError",
    "OrbitalElementSet",
    "Pass",
    "PropagationError",
    "PropagationFailure",
    "Propagator",
    "TLEParser",
    "TrackedObject",
    "ground_track",
    "parse_tle",
    "predict_passes",
    "visibility",
]
