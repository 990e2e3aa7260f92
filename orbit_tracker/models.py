"""
Value types shared by the parser, propagator, visibility and catalog modules.

All records are immutable. Consumers that need a different value build a new
record rather than mutating one they were handed.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from config import (
    EARTH_RADIUS_KM,
    GRAVITATIONAL_PARAMETER,
    MINUTES_PER_DAY,
    DEEP_SPACE_PERIOD_MIN,
    LEO_CEILING_KM,
    GEO_ALTITUDE_KM,
    GEO_BAND_KM,
)
from orbit_tracker.exceptions import FrameConversionError, InvalidInput

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True)
class OrbitalElementSet:
    """Mean orbital elements decoded from one TLE pair."""

    catalog_number: int
    classification: str
    international_designator: str
    epoch: datetime
    epoch_year: int
    epoch_day: float
    mean_motion: float  # rev/day
    mean_motion_dot: float  # rev/day^2 / 2
    mean_motion_ddot: float  # rev/day^3 / 6
    bstar: float  # 1/earth radii
    eccentricity: float
    inclination_deg: float
    raan_deg: float
    arg_perigee_deg: float
    mean_anomaly_deg: float
    element_set_number: int
    revolution_number: int
    line1: str = field(repr=False)
    line2: str = field(repr=False)
    checksum_ok: bool = field(default=True, compare=False)

    @property
    def period_minutes(self) -> float:
        return MINUTES_PER_DAY / self.mean_motion

    @property
    def is_deep_space(self) -> bool:
        return self.period_minutes >= DEEP_SPACE_PERIOD_MIN

    @property
    def semi_major_axis_km(self) -> float:
        n_rad_s = self.mean_motion * 2.0 * math.pi / 86400.0
        return (GRAVITATIONAL_PARAMETER / (n_rad_s * n_rad_s)) ** (1.0 / 3.0)

    @property
    def perigee_altitude_km(self) -> float:
        return self.semi_major_axis_km * (1.0 - self.eccentricity) - EARTH_RADIUS_KM

    @property
    def apogee_altitude_km(self) -> float:
        return self.semi_major_axis_km * (1.0 + self.eccentricity) - EARTH_RADIUS_KM

    def age_days(self, now: datetime) -> float:
        """Days elapsed between the element epoch and ``now`` (negative if in the future)."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.epoch.tzinfo)
        return (now - self.epoch).total_seconds() / 86400.0


class Category(str, Enum):
    """Fleet a tracked object belongs to, derived from its name."""

    STATION = "station"
    STARLINK = "starlink"
    WEATHER = "weather"
    NAVIGATION = "navigation"
    COMMUNICATION = "communication"
    OTHER = "other"


# Checked in order; the first keyword hit wins.
CATEGORY_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.STATION, ("ISS", "ZARYA", "TIANGONG", "TIANHE", "CSS")),
    (Category.STARLINK, ("STARLINK",)),
    (Category.WEATHER, ("NOAA", "GOES", "METOP", "WEATHER")),
    (Category.NAVIGATION, ("GPS", "GLONASS", "GALILEO", "BEIDOU")),
    (Category.COMMUNICATION, ("IRIDIUM", "INTELSAT", "TELESAT")),
)

CATEGORY_COLORS: Dict[Category, str] = {
    Category.STATION: "#00ff00",
    Category.STARLINK: "#00bfff",
    Category.WEATHER: "#ffa500",
    Category.COMMUNICATION: "#ff1493",
    Category.NAVIGATION: "#9370db",
    Category.OTHER: "#00ffff",
}


def categorize(name: str) -> Category:
    """Assign a fleet category by case-insensitive keyword match on the name."""
    upper = (name or "").upper()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in upper for keyword in keywords):
            return category
    return Category.OTHER


class OrbitClass(str, Enum):
    LEO = "LEO"
    MEO = "MEO"
    GEO = "GEO"
    HEO = "HEO"


def classify_orbit(altitude_km: float) -> OrbitClass:
    """
    Classify an orbit by altitude.

    GEO covers a band around the geostationary altitude; anything above that
    band is reported as HEO.
    """
    if altitude_km < LEO_CEILING_KM:
        return OrbitClass.LEO
    if altitude_km < GEO_ALTITUDE_KM - GEO_BAND_KM:
        return OrbitClass.MEO
    if altitude_km <= GEO_ALTITUDE_KM + GEO_BAND_KM:
        return OrbitClass.GEO
    return OrbitClass.HEO


@dataclass(frozen=True)
class TrackedObject:
    catalog_id: int
    name: str
    object_type: str
    category: Category
    elements: OrbitalElementSet


@dataclass(frozen=True)
class StateVector:
    """ECI (TEME) position in km and velocity in km/s at one instant."""

    instant: datetime
    position: Vector3
    velocity: Vector3

    @property
    def radius_km(self) -> float:
        return math.sqrt(sum(c * c for c in self.position))

    @property
    def speed_kms(self) -> float:
        return math.sqrt(sum(c * c for c in self.velocity))


def _all_finite(*values: float) -> bool:
    # numpy scalars convert through float()
    try:
        return all(not isinstance(v, (str, bytes)) and math.isfinite(float(v)) for v in values)
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class GeodeticPosition:
    """Latitude/longitude in degrees, altitude in km above the reference ellipsoid."""

    latitude_deg: float
    longitude_deg: float
    altitude_km: float

    def __post_init__(self):
        if not _all_finite(self.latitude_deg, self.longitude_deg, self.altitude_km):
            raise FrameConversionError(
                f"non-finite geodetic position: lat={self.latitude_deg}, "
                f"lon={self.longitude_deg}, alt={self.altitude_km}"
            )
        if not -90.0 <= self.latitude_deg <= 90.0:
            raise FrameConversionError(f"latitude out of range: {self.latitude_deg}")
        if not -180.0 <= self.longitude_deg <= 180.0:
            raise FrameConversionError(f"longitude out of range: {self.longitude_deg}")


@dataclass(frozen=True)
class ObserverLocation:
    latitude_deg: float
    longitude_deg: float
    altitude_m: float = 0.0
    name: str = ""

    def __post_init__(self):
        if not _all_finite(self.latitude_deg, self.longitude_deg, self.altitude_m):
            raise InvalidInput(
                f"non-finite observer location: lat={self.latitude_deg}, "
                f"lon={self.longitude_deg}, alt={self.altitude_m}"
            )
        if not -90.0 <= self.latitude_deg <= 90.0:
            raise InvalidInput(f"observer latitude out of range: {self.latitude_deg}")
        if not -180.0 <= self.longitude_deg <= 180.0:
            raise InvalidInput(f"observer longitude out of range: {self.longitude_deg}")


@dataclass(frozen=True)
class VisibilityResult:
    range_km: float
    elevation_deg: float
    azimuth_deg: float
    is_visible: bool
    valid: bool = True


INVALID_VISIBILITY = VisibilityResult(
    range_km=0.0, elevation_deg=-90.0, azimuth_deg=0.0, is_visible=False, valid=False
)


@dataclass(frozen=True)
class Pass:
    start_time: datetime
    end_time: datetime
    max_elevation_deg: float
    max_elevation_time: datetime
    start_azimuth_deg: float
    end_azimuth_deg: float
    duration_minutes: float
    truncated: bool = False


@dataclass(frozen=True)
class GroundTrackPoint:
    time: datetime
    position: GeodeticPosition

    @property
    def latitude_deg(self) -> float:
        return self.position.latitude_deg

    @property
    def longitude_deg(self) -> float:
        return self.position.longitude_deg

    @property
    def altitude_km(self) -> float:
        return self.position.altitude_km


@dataclass(frozen=True)
class PositionSnapshotEntry:
    """One object's position in a per-tick renderer snapshot."""

    catalog_id: int
    name: str
    position: GeodeticPosition
    orbit_class: OrbitClass
    category: Optional[Category] = None
