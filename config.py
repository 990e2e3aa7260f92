"""
Orbit Tracker Configuration and Constants

This module contains physical constants, fallback TLE data and the runtime
configuration used throughout the project.

Constants:
    WGS-72 gravitational constants as specified by Vallado et al. (2006, AAS 06-675)
    for use with SGP4 orbital propagation. WGS-84 ellipsoid parameters are used
    for the geodetic frame conversion, and a mean spherical Earth radius for the
    observer visibility geometry.

Runtime configuration:
    TrackerConfig is read from ``ORBIT_TRACKER_*`` environment variables, e.g.

        ORBIT_TRACKER_UPDATE_INTERVAL_MS=2000
        ORBIT_TRACKER_MAX_TLE_AGE_DAYS=30

Fallback TLE Data:
    Hardcoded ISS TLE data for demonstrations when live data is unavailable.

    IMPORTANT: Update this TLE data periodically for accuracy.
    - Low Earth Orbit (LEO) satellites: Update weekly
    - Medium Earth Orbit (MEO): Update monthly
    - Geostationary (GEO): Update quarterly

    Sources for updated TLEs:
    - Space-Track.org (requires free registration)
    - CelesTrak.org (public access)

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

import os
from typing import Dict, Any, Optional

from pydantic import BaseModel, Field

# WGS-72 Gravitational Constants (per Vallado et al. 2006, AAS 06-675)
EARTH_RADIUS_KM: float = 6378.135  # Earth equatorial radius (km)
GRAVITATIONAL_PARAMETER: float = 398600.8  # Earth gravitational parameter (km³/s²)
J2: float = 0.001082616  # Second zonal harmonic coefficient
J3: float = -0.00000253881  # Third zonal harmonic coefficient
J4: float = -0.00000165597  # Fourth zonal harmonic coefficient

# WGS-84 ellipsoid (geodetic conversion)
WGS84_A_KM: float = 6378.137
WGS84_F: float = 1.0 / 298.257223563

# Spherical Earth used by the visibility geometry
MEAN_EARTH_RADIUS_KM: float = 6371.0

EARTH_ROTATION_RAD_S: float = 7.2921159e-5

MINUTES_PER_DAY: float = 1440.0
DEEP_SPACE_PERIOD_MIN: float = 225.0  # SDP4 branch at or above this period

# Orbit classification boundaries (altitude, km)
LEO_CEILING_KM: float = 2000.0
GEO_ALTITUDE_KM: float = 35786.0
GEO_BAND_KM: float = 1000.0

# Fallback ISS TLE for demonstrations
FALLBACK_ISS_TLE: Dict[str, Any] = {
    'name': 'ISS (ZARYA)',
    'norad_id': 25544,
    'line1': '1 25544U 98067A   25230.51041667  .00002182  00000-0  13103-3 0  9996',
    'line2': '2 25544  51.6416  45.1234 0002329  75.6910 284.4861 15.50000000123457',
    'epoch': '2025-08-18T12:15:00Z',
}

ENV_PREFIX = "ORBIT_TRACKER_"


class SpaceTrackCredentials(BaseModel):
    """Explicit Space-Track.org login passed to the data-source client."""

    username: str
    password: str

    @classmethod
    def from_env(cls) -> Optional["SpaceTrackCredentials"]:
        username = os.getenv("SPACETRACK_USERNAME")
        password = os.getenv("SPACETRACK_PASSWORD")
        if not username or not password:
            return None
        return cls(username=username, password=password)


class TrackerConfig(BaseModel):
    """Runtime settings for catalog filtering, scheduling and scans."""

    update_interval_ms: int = Field(1000, ge=500, le=5000)
    max_tle_age_days: float = Field(60.0, gt=0)
    stale_warning_days: float = Field(30.0, gt=0)
    refresh_after_hours: float = Field(24.0, gt=0)
    ground_track_minutes: float = Field(180.0, gt=0)
    ground_track_step_minutes: float = Field(2.0, gt=0)
    pass_horizon_hours: float = Field(24.0, gt=0)
    max_pass_horizon_hours: float = Field(168.0, gt=0)
    max_track_samples: int = Field(10000, ge=1)
    min_elevation_deg: float = Field(10.0, ge=-90, le=90)
    selection_refresh_s: float = Field(5.0, gt=0)
    max_workers: int = Field(4, ge=1)
    spacetrack_base_url: str = "https://www.space-track.org"
    celestrak_base_url: str = "https://celestrak.org"
    request_timeout_s: float = Field(30.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "TrackerConfig":
        """
        Build a config from ``ORBIT_TRACKER_*`` variables.

        Unset variables keep their defaults; values are validated by the model.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)
