"""
Orbit Tracker HTTP service.

A thin Flask host around the catalog, propagator and scan functions. It
reports aggregate counts and transient failures; propagation internals stay
in the logs.

Usage:
    python -m orbit_tracker.app [--group stations] [--tle-file FILE] [--port 5001]
"""

import argparse
import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import FALLBACK_ISS_TLE, TrackerConfig
from logging_config import configure_logging, get_logger
from orbit_tracker import __version__
from orbit_tracker.catalog import Catalog
from orbit_tracker.exceptions import (
    DataSourceError,
    FrameConversionError,
    InvalidInput,
    PropagationError,
)
from orbit_tracker.frames import subpoint
from orbit_tracker.ground_track import ground_track
from orbit_tracker.models import CATEGORY_COLORS, Category, ObserverLocation, TrackedObject
from orbit_tracker.passes import minutes_until, next_pass, predict_passes
from orbit_tracker.scheduler import propagate_batch
from orbit_tracker.sources import CelestrakClient, SatelliteRecord, records_from_file
from orbit_tracker.visibility import visibility_from, visibility_quality

logger = get_logger(__name__)


def _timestamp_arg() -> datetime:
    raw = request.args.get("timestamp")
    if not raw:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidInput(f"invalid timestamp {raw!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _float_arg(name: str, default: Optional[float] = None) -> float:
    raw = request.args.get(name)
    if raw is None or raw == "":
        if default is None:
            raise InvalidInput(f"missing query parameter {name!r}")
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidInput(f"query parameter {name!r} must be a number") from exc


def _observer_arg() -> ObserverLocation:
    return ObserverLocation(
        latitude_deg=_float_arg("lat"),
        longitude_deg=_float_arg("lon"),
        altitude_m=_float_arg("alt", 0.0),
    )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_object(obj: TrackedObject) -> dict:
    elements = obj.elements
    return {
        "catalog_id": obj.catalog_id,
        "name": obj.name,
        "object_type": obj.object_type,
        "category": obj.category.value,
        "color": CATEGORY_COLORS[obj.category],
        "epoch": elements.epoch.isoformat(),
        "inclination_deg": elements.inclination_deg,
        "eccentricity": elements.eccentricity,
        "mean_motion": elements.mean_motion,
        "period_minutes": elements.period_minutes,
        "perigee_km": elements.perigee_altitude_km,
        "apogee_km": elements.apogee_altitude_km,
    }


def serialize_pass(item) -> dict:
    return {
        "start_time": item.start_time.isoformat(),
        "end_time": item.end_time.isoformat(),
        "max_elevation_deg": item.max_elevation_deg,
        "max_elevation_time": item.max_elevation_time.isoformat(),
        "start_azimuth_deg": item.start_azimuth_deg,
        "end_azimuth_deg": item.end_azimuth_deg,
        "duration_minutes": item.duration_minutes,
        "truncated": item.truncated,
    }


def create_app(catalog: Optional[Catalog] = None,
               config: Optional[TrackerConfig] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        catalog: Catalog to serve (an empty one if omitted)
        config: Runtime settings (the catalog's if omitted)
    """
    config = config or (catalog.config if catalog is not None else TrackerConfig())
    catalog = catalog if catalog is not None else Catalog(config)

    app = Flask(__name__)
    CORS(app, origins="*", send_wildcard=True)
    app.config["CATALOG"] = catalog
    app.config["TRACKER_CONFIG"] = config

    def lookup(catalog_id: int) -> Optional[TrackedObject]:
        return catalog.get(catalog_id)

    def not_found(catalog_id: int):
        return jsonify({"error": f"Satellite {catalog_id} not found"}), 404

    @app.route("/health", methods=["GET"])
    def health_check():
        generation, objects = catalog.snapshot()
        report = catalog.last_report
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "catalog": {
                "satellites_loaded": len(objects),
                "generation": generation,
                "last_update": _isoformat(catalog.last_updated),
                "data_freshness": "stale" if catalog.needs_refresh() else "fresh",
                "summary": report.summary() if report is not None else None,
            },
            "configuration": {
                "update_interval_ms": config.update_interval_ms,
                "max_tle_age_days": config.max_tle_age_days,
                "min_elevation_deg": config.min_elevation_deg,
            },
        }), 200

    @app.route("/api/satellites", methods=["GET"])
    def list_satellites():
        objects = catalog.search(request.args.get("search", ""))
        category = request.args.get("category")
        if category:
            try:
                wanted = Category(category.lower())
            except ValueError as exc:
                raise InvalidInput(f"unknown category {category!r}") from exc
            objects = [obj for obj in objects if obj.category is wanted]
        return jsonify({
            "satellites": [serialize_object(obj) for obj in objects],
            "count": len(objects),
            "total": len(catalog),
        })

    @app.route("/api/positions", methods=["GET"])
    def positions():
        instant = _timestamp_arg()
        generation, objects = catalog.snapshot()
        result = propagate_batch(objects, instant, catalog.propagator, generation)
        return jsonify({
            "timestamp": result.instant.isoformat(),
            "generation": result.generation,
            "positions": [
                {
                    "catalog_id": entry.catalog_id,
                    "name": entry.name,
                    "latitude": entry.position.latitude_deg,
                    "longitude": entry.position.longitude_deg,
                    "altitude_km": entry.position.altitude_km,
                    "orbit_class": entry.orbit_class.value,
                    "category": entry.category.value if entry.category else None,
                }
                for entry in result.entries
            ],
            "count": result.count,
            "failures": result.failures,
        })

    @app.route("/api/satellites/<int:catalog_id>/ground-track", methods=["GET"])
    def satellite_ground_track(catalog_id: int):
        obj = lookup(catalog_id)
        if obj is None:
            return not_found(catalog_id)
        minutes = _float_arg("minutes", config.ground_track_minutes)
        step = _float_arg("step", config.ground_track_step_minutes)
        if step > 0 and minutes / step > config.max_track_samples:
            raise InvalidInput(
                f"ground track of {minutes} min at {step} min steps exceeds "
                f"{config.max_track_samples} samples"
            )
        track = ground_track(
            obj.elements,
            _timestamp_arg(),
            minutes,
            step,
            catalog.propagator,
            config.stale_warning_days,
        )
        if not track.ok:
            return jsonify({"error": "Ground track unavailable for this satellite"}), 422
        return jsonify({
            "catalog_id": catalog_id,
            "points": [
                {
                    "time": point.time.isoformat(),
                    "latitude": point.latitude_deg,
                    "longitude": point.longitude_deg,
                    "altitude_km": point.altitude_km,
                }
                for point in track
            ],
            "dropped": track.dropped,
        })

    @app.route("/api/satellites/<int:catalog_id>/visibility", methods=["GET"])
    def satellite_visibility(catalog_id: int):
        obj = lookup(catalog_id)
        if obj is None:
            return not_found(catalog_id)
        observer = _observer_arg()
        instant = _timestamp_arg()
        try:
            position = subpoint(catalog.propagator.propagate(obj.elements, instant))
        except (PropagationError, FrameConversionError) as exc:
            logger.warning("visibility_unavailable", catalog_id=catalog_id, error=str(exc))
            return jsonify({"error": "Position unavailable for this satellite"}), 422
        look = visibility_from(position, observer)
        return jsonify({
            "catalog_id": catalog_id,
            "timestamp": instant.isoformat(),
            "range_km": look.range_km,
            "elevation_deg": look.elevation_deg,
            "azimuth_deg": look.azimuth_deg,
            "is_visible": look.is_visible,
            "quality": visibility_quality(look.elevation_deg),
        })

    @app.route("/api/satellites/<int:catalog_id>/passes", methods=["GET"])
    def satellite_passes(catalog_id: int):
        obj = lookup(catalog_id)
        if obj is None:
            return not_found(catalog_id)
        observer = _observer_arg()
        now = _timestamp_arg()
        hours = _float_arg("hours", config.pass_horizon_hours)
        if hours > config.max_pass_horizon_hours:
            raise InvalidInput(
                f"prediction window {hours} h exceeds {config.max_pass_horizon_hours} h"
            )
        result = predict_passes(
            obj.elements,
            observer.latitude_deg,
            observer.longitude_deg,
            now,
            horizon_hours=hours,
            min_elevation_deg=_float_arg("min_elevation", config.min_elevation_deg),
            observer_alt_m=observer.altitude_m,
            propagator=catalog.propagator,
            include_open=request.args.get("include_open", "").lower() in ("1", "true", "yes"),
        )
        if not result.ok:
            return jsonify({"error": "Pass prediction unavailable for this satellite"}), 422

        upcoming = next_pass(result, now)
        message = None
        if upcoming is not None:
            message = f"Next pass in {round(minutes_until(upcoming, now))} minutes"
        return jsonify({
            "catalog_id": catalog_id,
            "observer": {"latitude": observer.latitude_deg, "longitude": observer.longitude_deg,
                         "altitude_m": observer.altitude_m},
            "prediction_window_hours": hours,
            "passes": [serialize_pass(item) for item in result],
            "next_pass": message,
        })

    @app.errorhandler(InvalidInput)
    def handle_invalid_input(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(Exception)
    def handle_error(error):
        if isinstance(error, HTTPException):
            return error
        logger.error("unhandled_error", error=str(error), traceback=traceback.format_exc())
        return jsonify({
            "error": "Internal server error",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 500

    return app


def load_catalog(config: TrackerConfig, group: Optional[str] = None,
                 tle_file: Optional[str] = None) -> Catalog:
    """Build a catalog from a TLE file, a CelesTrak group, or the bundled ISS elements."""
    catalog = Catalog(config)
    records = []
    try:
        if tle_file:
            records = records_from_file(tle_file)
        elif group:
            records = CelestrakClient(config=config).group(group)
    except (DataSourceError, OSError) as exc:
        logger.error("catalog_source_failed", error=str(exc))

    if not records:
        logger.warning("using_fallback_tle", catalog_id=FALLBACK_ISS_TLE["norad_id"])
        records = [SatelliteRecord(
            catalog_id=FALLBACK_ISS_TLE["norad_id"],
            name=FALLBACK_ISS_TLE["name"],
            object_type="PAYLOAD",
            tle_line1=FALLBACK_ISS_TLE["line1"],
            tle_line2=FALLBACK_ISS_TLE["line2"],
        )]
        # bundled elements are old; accept them regardless of age
        epoch = datetime.fromisoformat(FALLBACK_ISS_TLE["epoch"].replace("Z", "+00:00"))
        catalog.ingest(records, now=epoch)
        return catalog

    catalog.ingest(records)
    return catalog


def main() -> None:
    parser = argparse.ArgumentParser(description="Orbit Tracker HTTP service")
    parser.add_argument("--group", help="CelesTrak group to load (e.g. stations, active)")
    parser.add_argument("--tle-file", help="Local 2-line or 3-line TLE file")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5001)
    parser.add_argument("--json-logs", action="store_true", help="Render logs as JSON lines")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO, json=args.json_logs)
    config = TrackerConfig.from_env()
    catalog = load_catalog(config, group=args.group, tle_file=args.tle_file)

    logger.info("starting_orbit_tracker", satellites=len(catalog), port=args.port)
    create_app(catalog, config).run(host=args.host, port=args.port, debug=False)


if __name__ == "__main__":
    main()
