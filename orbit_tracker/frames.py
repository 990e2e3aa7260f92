"""
Reference frame conversions.

ECI (TEME, the SGP4 output frame) is rotated into the Earth-fixed frame by
Greenwich Mean Sidereal Time and then converted to geodetic coordinates on
the WGS-84 ellipsoid. Angles crossing this module's boundary are in degrees;
sidereal time is in radians.
"""

import math
from datetime import datetime, timezone
from typing import Sequence, Tuple

import numpy as np
from sgp4.api import jday

from config import WGS84_A_KM, WGS84_F, EARTH_ROTATION_RAD_S
from orbit_tracker.exceptions import FrameConversionError
from orbit_tracker.models import GeodeticPosition, StateVector

TWOPI = 2.0 * math.pi
J2000_JD = 2451545.0
DAYS_PER_CENTURY = 36525.0

WGS84_E2 = 2.0 * WGS84_F - WGS84_F * WGS84_F

GEODETIC_TOLERANCE_RAD = 1.0e-13
GEODETIC_MAX_ITER = 20


def as_utc(instant: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def julian_date(instant: datetime) -> Tuple[float, float]:
    """
    Convert datetime to Julian date and fraction.

    Args:
        instant: Datetime (naive values are UTC)

    Returns:
        Tuple of (julian_day, fraction)
    """
    dt = as_utc(instant)
    seconds = dt.second + dt.microsecond / 1.0e6
    return jday(dt.year, dt.month, dt.day, dt.hour, dt.minute, seconds)


def sidereal_time(instant: datetime) -> float:
    """
    Greenwich Mean Sidereal Time in radians, [0, 2*pi).

    IAU-82 expression in Julian centuries of UT1 from J2000 (UT1 taken as UTC).
    """
    jd, fr = julian_date(instant)
    tut1 = ((jd - J2000_JD) + fr) / DAYS_PER_CENTURY
    seconds = (
        -6.2e-6 * tut1 * tut1 * tut1
        + 0.093104 * tut1 * tut1
        + (876600.0 * 3600.0 + 8640184.812866) * tut1
        + 67310.54841
    )
    gmst = math.fmod(math.radians(seconds / 240.0), TWOPI)
    if gmst < 0.0:
        gmst += TWOPI
    return gmst


def _rotate_z(vector: Sequence[float], angle: float) -> np.ndarray:
    """Rotate a vector about +Z by ``angle`` radians."""
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    rotation = np.array([
        [cos_a, -sin_a, 0.0],
        [sin_a, cos_a, 0.0],
        [0.0, 0.0, 1.0],
    ])
    return rotation @ np.asarray(vector, dtype=float)


def eci_to_ecef(position: Sequence[float], velocity: Sequence[float],
                gmst: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rotate an ECI state into the Earth-fixed frame.

    Args:
        position: ECI position [x, y, z] (km)
        velocity: ECI velocity [vx, vy, vz] (km/s)
        gmst: Greenwich sidereal time (rad)

    Returns:
        Tuple of (r_ecef, v_ecef); velocity includes the Earth-rotation term
    """
    r_ecef = _rotate_z(position, -gmst)
    v_rot = _rotate_z(velocity, -gmst)
    v_ecef = np.array([
        v_rot[0] + EARTH_ROTATION_RAD_S * r_ecef[1],
        v_rot[1] - EARTH_ROTATION_RAD_S * r_ecef[0],
        v_rot[2],
    ])
    return r_ecef, v_ecef


def ecef_to_geodetic(r_ecef: Sequence[float]) -> Tuple[float, float, float]:
    """
    ECEF to geodetic latitude/longitude (deg) and height (km) on WGS-84.

    Iterates on geodetic latitude; the height expression stays finite at
    the poles.
    """
    x, y, z = (float(c) for c in r_ecef)
    if not all(math.isfinite(c) for c in (x, y, z)):
        raise FrameConversionError(f"non-finite ECEF position: {(x, y, z)}")

    a = WGS84_A_KM
    e2 = WGS84_E2
    p = math.hypot(x, y)
    lon = math.atan2(y, x)

    lat = math.atan2(z, p * (1.0 - e2))
    for _ in range(GEODETIC_MAX_ITER):
        sin_lat = math.sin(lat)
        n = a / math.sqrt(1.0 - e2 * sin_lat * sin_lat)
        new_lat = math.atan2(z + e2 * n * sin_lat, p)
        if abs(new_lat - lat) < GEODETIC_TOLERANCE_RAD:
            lat = new_lat
            break
        lat = new_lat

    sin_lat = math.sin(lat)
    height = p * math.cos(lat) + z * sin_lat - a * math.sqrt(1.0 - e2 * sin_lat * sin_lat)

    lon_deg = math.degrees(lon)
    lon_deg = (lon_deg + 180.0) % 360.0 - 180.0
    return math.degrees(lat), lon_deg, height


def eci_to_geodetic(position: Sequence[float], gmst: float) -> GeodeticPosition:
    """
    Convert an ECI position (km) to geodetic coordinates.

    Args:
        position: ECI position [x, y, z] (km)
        gmst: Greenwich sidereal time (rad) at the position's instant

    Returns:
        GeodeticPosition with latitude/longitude in degrees, altitude in km

    Raises:
        FrameConversionError: non-finite input or output
    """
    if not math.isfinite(gmst):
        raise FrameConversionError(f"non-finite sidereal time: {gmst}")
    lat, lon, alt = ecef_to_geodetic(_rotate_z(position, -gmst))
    return GeodeticPosition(latitude_deg=lat, longitude_deg=lon, altitude_km=alt)


def geodetic_to_ecef(latitude_deg: float, longitude_deg: float, altitude_km: float) -> np.ndarray:
    lat = math.radians(latitude_deg)
    lon = math.radians(longitude_deg)
    sin_lat = math.sin(lat)
    n = WGS84_A_KM / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    return np.array([
        (n + altitude_km) * math.cos(lat) * math.cos(lon),
        (n + altitude_km) * math.cos(lat) * math.sin(lon),
        (n * (1.0 - WGS84_E2) + altitude_km) * sin_lat,
    ])


def geodetic_to_eci(latitude_deg: float, longitude_deg: float, altitude_km: float,
                    gmst: float) -> np.ndarray:
    """Inverse of eci_to_geodetic: geodetic point to ECI position (km)."""
    return _rotate_z(geodetic_to_ecef(latitude_deg, longitude_deg, altitude_km), gmst)


def subpoint(state: StateVector) -> GeodeticPosition:
    """Geodetic point directly below a propagated state."""
    return eci_to_geodetic(state.position, sidereal_time(state.instant))
