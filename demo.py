"""
Orbit Tracker Demonstration

This script walks through the tracker core on the bundled ISS element set:
- TLE parsing and checksum validation
- Orbital propagation and geodetic sub-satellite points
- Ground-track sampling
- Observer visibility and pass prediction
- Catalog ingest with freshness filtering
- A few seconds of background position ticks

Usage:
    python demo.py [--lat 40.0] [--lon -75.0] [--verbose]

Arguments:
    --lat, --lon: Observer location in degrees
    --verbose: Enable debug logging
"""

import argparse
import logging
import threading
from datetime import timedelta

import numpy as np

from config import FALLBACK_ISS_TLE
from logging_config import configure_logging, get_logger
from orbit_tracker.catalog import Catalog
from orbit_tracker.frames import subpoint
from orbit_tracker.ground_track import antimeridian_crossings, ground_track
from orbit_tracker.models import ObserverLocation, OrbitalElementSet, classify_orbit
from orbit_tracker.passes import minutes_until, next_pass, predict_passes
from orbit_tracker.propagator import Propagator
from orbit_tracker.scheduler import PositionTicker
from orbit_tracker.sources import SatelliteRecord
from orbit_tracker.tle_parser import format_tle, parse_tle
from orbit_tracker.visibility import visibility_from, visibility_quality

logger = get_logger(__name__)

ISS_NAME = FALLBACK_ISS_TLE["name"]
ISS_LINE1 = FALLBACK_ISS_TLE["line1"]
ISS_LINE2 = FALLBACK_ISS_TLE["line2"]


def demonstrate_tle_parsing(line1: str, line2: str, name: str) -> OrbitalElementSet:
    """
    Parse a TLE pair and log its mean elements.

    Parameters
    ----------
    line1 : str
        TLE line 1
    line2 : str
        TLE line 2
    name : str
        Satellite name

    Returns
    -------
    OrbitalElementSet
        Parsed elements
    """
    elements = parse_tle(line1, line2)
    logger.info("tle_parsed", name=name, catalog_number=elements.catalog_number,
                epoch=elements.epoch.isoformat(), checksum_ok=elements.checksum_ok)
    logger.info("mean_elements",
                inclination_deg=elements.inclination_deg,
                raan_deg=elements.raan_deg,
                eccentricity=elements.eccentricity,
                mean_motion=elements.mean_motion,
                bstar=elements.bstar,
                period_min=round(elements.period_minutes, 2),
                perigee_km=round(elements.perigee_altitude_km, 1),
                apogee_km=round(elements.apogee_altitude_km, 1))
    return elements


def demonstrate_propagation(propagator: Propagator, elements: OrbitalElementSet) -> None:
    """Propagate at a few offsets from epoch and log ECI radius and sub-satellite point."""
    for minutes in (0, 30, 60, 90, 120):
        instant = elements.epoch + timedelta(minutes=minutes)
        state = propagator.propagate(elements, instant)
        point = subpoint(state)
        logger.info("propagated",
                    t_min=minutes,
                    radius_km=round(float(np.linalg.norm(state.position)), 2),
                    speed_kms=round(state.speed_kms, 3),
                    lat=round(point.latitude_deg, 3),
                    lon=round(point.longitude_deg, 3),
                    alt_km=round(point.altitude_km, 1),
                    orbit_class=classify_orbit(point.altitude_km).value)


def demonstrate_ground_track(propagator: Propagator, elements: OrbitalElementSet) -> None:
    track = ground_track(elements, elements.epoch, 180.0, 2.0, propagator)
    altitudes = np.array([point.altitude_km for point in track])
    logger.info("ground_track",
                points=len(track),
                dropped=track.dropped,
                antimeridian_crossings=antimeridian_crossings(track),
                min_alt_km=round(float(altitudes.min()), 1),
                max_alt_km=round(float(altitudes.max()), 1))


def demonstrate_passes(propagator: Propagator, elements: OrbitalElementSet,
                       observer: ObserverLocation) -> None:
    """
    Log current visibility and the next day of passes for an observer.

    Parameters
    ----------
    propagator : Propagator
        Shared propagator
    elements : OrbitalElementSet
        Satellite elements
    observer : ObserverLocation
        Ground observer
    """
    now = elements.epoch
    look = visibility_from(subpoint(propagator.propagate(elements, now)), observer)
    logger.info("visibility_now",
                elevation_deg=round(look.elevation_deg, 2),
                azimuth_deg=round(look.azimuth_deg, 2),
                range_km=round(look.range_km, 1),
                quality=visibility_quality(look.elevation_deg))

    passes = predict_passes(elements, observer.latitude_deg, observer.longitude_deg, now,
                            horizon_hours=24.0, min_elevation_deg=10.0,
                            observer_alt_m=observer.altitude_m, propagator=propagator)
    if not passes.ok:
        logger.error("pass_prediction_failed", error=str(passes.error))
        return
    for item in passes:
        logger.info("pass",
                    start=item.start_time.isoformat(),
                    duration_min=round(item.duration_minutes, 1),
                    max_elevation_deg=round(item.max_elevation_deg, 1),
                    azimuth=f"{item.start_azimuth_deg:.0f} -> {item.end_azimuth_deg:.0f}")
    upcoming = next_pass(passes, now)
    if upcoming is not None:
        logger.info("next_pass", minutes=round(minutes_until(upcoming, now)))


def demonstrate_catalog(elements: OrbitalElementSet) -> Catalog:
    """Ingest the ISS plus a stale copy of it and show the freshness filter at work."""
    stale_line1, stale_line2 = format_tle(
        90001, elements.epoch - timedelta(days=90),
        inclination_deg=elements.inclination_deg, raan_deg=elements.raan_deg,
        eccentricity=elements.eccentricity, arg_perigee_deg=elements.arg_perigee_deg,
        mean_anomaly_deg=elements.mean_anomaly_deg, mean_motion=elements.mean_motion,
        bstar=elements.bstar,
    )
    records = [
        SatelliteRecord(catalog_id=elements.catalog_number, name=ISS_NAME,
                        tle_line1=elements.line1, tle_line2=elements.line2),
        SatelliteRecord(catalog_id=90001, name="OLD COPY", tle_line1=stale_line1,
                        tle_line2=stale_line2),
    ]
    catalog = Catalog()
    report = catalog.ingest(records, now=elements.epoch)
    logger.info("catalog_report", **report.to_dict())
    return catalog


def demonstrate_ticker(catalog: Catalog, elements: OrbitalElementSet, seconds: float = 3.0) -> None:
    """Run the background ticker for a few seconds, starting at the element epoch."""
    start = elements.epoch
    ticks = []

    def clock():
        return start + timedelta(seconds=len(ticks))

    def on_snapshot(result):
        ticks.append(result)
        entry = result.entries[0]
        logger.info("tick", instant=result.instant.isoformat(),
                    lat=round(entry.position.latitude_deg, 3),
                    lon=round(entry.position.longitude_deg, 3))

    ticker = PositionTicker(catalog, on_snapshot, interval_ms=500, clock=clock)
    ticker.start()
    threading.Event().wait(seconds)
    ticker.stop()
    logger.info("ticker_summary", published=ticker.published, deferred=ticker.deferred,
                discarded=ticker.discarded)


def main() -> None:
    parser = argparse.ArgumentParser(description="Orbit tracker demonstration")
    parser.add_argument("--lat", type=float, default=40.0, help="Observer latitude (deg)")
    parser.add_argument("--lon", type=float, default=-75.0, help="Observer longitude (deg)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    observer = ObserverLocation(args.lat, args.lon, name="demo observer")
    propagator = Propagator()

    elements = demonstrate_tle_parsing(ISS_LINE1, ISS_LINE2, ISS_NAME)
    demonstrate_propagation(propagator, elements)
    demonstrate_ground_track(propagator, elements)
    demonstrate_passes(propagator, elements, observer)
    catalog = demonstrate_catalog(elements)
    demonstrate_ticker(catalog, elements)


if __name__ == "__main__":
    main()
