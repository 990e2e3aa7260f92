"""
Observer-relative visibility geometry.

Both the satellite and the observer are placed on a spherical Earth of
radius 6371 km and the line of sight is resolved into the observer's local
east/north/up frame. The sphere is a deliberate simplification: the
elevation and azimuth error it introduces is well below what TLE accuracy
supports, and it keeps the computation to a handful of trigonometric calls.
"""

import math
from typing import Optional

import structlog

from config import MEAN_EARTH_RADIUS_KM
from orbit_tracker.models import (
    INVALID_VISIBILITY,
    GeodeticPosition,
    ObserverLocation,
    VisibilityResult,
)

logger = structlog.get_logger(__name__)


def _is_finite(*values) -> bool:
    try:
        return all(math.isfinite(v) for v in values)
    except TypeError:
        return False


def _spherical_to_cartesian(lat_rad: float, lon_rad: float, radius: float):
    cos_lat = math.cos(lat_rad)
    return (
        radius * cos_lat * math.cos(lon_rad),
        radius * cos_lat * math.sin(lon_rad),
        radius * math.sin(lat_rad),
    )


def visibility(satellite_position: Optional[GeodeticPosition], observer_lat: float,
               observer_lon: float, observer_alt_m: float = 0.0) -> VisibilityResult:
    """
    Range, elevation and azimuth of a satellite seen from an observer.

    Args:
        satellite_position: Sub-satellite point and altitude (degrees, km)
        observer_lat: Observer latitude (degrees)
        observer_lon: Observer longitude (degrees)
        observer_alt_m: Observer altitude (meters)

    Returns:
        VisibilityResult; azimuth in [0, 360) clockwise from north. Non-finite
        inputs give the invalid sentinel (``valid=False``) instead of raising.
    """
    sat_lat = getattr(satellite_position, "latitude_deg", None)
    sat_lon = getattr(satellite_position, "longitude_deg", None)
    sat_alt = getattr(satellite_position, "altitude_km", None)
    if not _is_finite(sat_lat, sat_lon, sat_alt):
        logger.error("invalid_satellite_position", position=satellite_position)
        return INVALID_VISIBILITY
    if not _is_finite(observer_lat, observer_lon, observer_alt_m):
        logger.error("invalid_observer_position", latitude=observer_lat,
                     longitude=observer_lon, altitude_m=observer_alt_m)
        return INVALID_VISIBILITY

    obs_lat = math.radians(observer_lat)
    obs_lon = math.radians(observer_lon)
    obs = _spherical_to_cartesian(obs_lat, obs_lon, MEAN_EARTH_RADIUS_KM + observer_alt_m / 1000.0)
    sat = _spherical_to_cartesian(math.radians(sat_lat), math.radians(sat_lon),
                                  MEAN_EARTH_RADIUS_KM + sat_alt)

    dx = sat[0] - obs[0]
    dy = sat[1] - obs[1]
    dz = sat[2] - obs[2]
    range_km = math.sqrt(dx * dx + dy * dy + dz * dz)

    sin_lat, cos_lat = math.sin(obs_lat), math.cos(obs_lat)
    sin_lon, cos_lon = math.sin(obs_lon), math.cos(obs_lon)
    east = -sin_lon * dx + cos_lon * dy
    north = -sin_lat * cos_lon * dx - sin_lat * sin_lon * dy + cos_lat * dz
    up = cos_lat * cos_lon * dx + cos_lat * sin_lon * dy + sin_lat * dz

    elevation = math.degrees(math.atan2(up, math.hypot(east, north)))
    azimuth = math.degrees(math.atan2(east, north)) % 360.0
    if azimuth >= 360.0:
        azimuth = 0.0

    return VisibilityResult(
        range_km=range_km,
        elevation_deg=elevation,
        azimuth_deg=azimuth,
        is_visible=elevation > 0.0,
    )


def visibility_from(satellite_position: GeodeticPosition,
                    observer: ObserverLocation) -> VisibilityResult:
    return visibility(satellite_position, observer.latitude_deg, observer.longitude_deg,
                      observer.altitude_m)


def visibility_quality(elevation_deg: float) -> str:
    """Operator-facing label for an elevation angle."""
    if elevation_deg < 0:
        return "below horizon"
    if elevation_deg < 10:
        return "very low"
    if elevation_deg < 30:
        return "low"
    if elevation_deg < 60:
        return "good"
    return "excellent"
