"""
Data-source adapters.

The core only needs a sequence of SatelliteRecord values; these adapters
produce them from Space-Track.org JSON, CelesTrak TLE text, or plain TLE
files. Credentials are passed in explicitly and the HTTP session can be
injected, so nothing here holds global state.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

import requests
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from config import SpaceTrackCredentials, TrackerConfig
from orbit_tracker.exceptions import AuthenticationError, DataSourceError, MalformedElementSet
from orbit_tracker.models import Category
from orbit_tracker.tle_parser import catalog_number, split_tle_text

logger = structlog.get_logger(__name__)

# ISS, CSS, Hubble, and a handful of weather and navigation satellites
POPULAR_NORAD_IDS = (25544, 48274, 20580, 43013, 28654, 33591, 43689, 40294, 41866, 47964, 47967)

CATEGORY_QUERIES = {
    Category.STATION: "/class/gp/OBJECT_TYPE/PAYLOAD/OBJECT_NAME/~~ISS,TIANHE/decay_date/null-val",
    Category.STARLINK: "/class/gp/OBJECT_NAME/~~STARLINK",
    Category.WEATHER: "/class/gp/OBJECT_NAME/~~NOAA,GOES,METOP",
    Category.NAVIGATION: "/class/gp/OBJECT_NAME/~~GPS,GLONASS,GALILEO,BEIDOU",
}
ACTIVE_QUERY = "/class/gp/decay_date/null-val"


class SatelliteRecord(BaseModel):
    """One raw record from a data source, before any validation of its elements."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    catalog_id: int = Field(alias="NORAD_CAT_ID")
    name: str = Field("UNKNOWN", alias="OBJECT_NAME")
    object_type: str = Field("UNKNOWN", alias="OBJECT_TYPE")
    tle_line1: Optional[str] = Field(None, alias="TLE_LINE1")
    tle_line2: Optional[str] = Field(None, alias="TLE_LINE2")
    epoch: Optional[datetime] = Field(None, alias="EPOCH")

    @field_validator("name", "object_type", mode="before")
    @classmethod
    def _default_blank(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return "UNKNOWN"
        return value.strip() if isinstance(value, str) else value

    @field_validator("epoch", mode="before")
    @classmethod
    def _parse_epoch(cls, value):
        # Space-Track epochs are naive UTC strings, e.g. "2024-02-14 12:00:00"
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip().replace("Z", "+00:00").replace(" ", "T"))
            except ValueError:
                return None
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def records_from_spacetrack_json(data: Iterable[Any]) -> List[SatelliteRecord]:
    """Convert Space-Track ``gp`` class JSON rows; rows that fail validation are skipped."""
    records = []
    for row in data or ():
        try:
            records.append(SatelliteRecord.model_validate(row))
        except ValidationError as exc:
            logger.warning("spacetrack_row_skipped", row=row, errors=exc.error_count())
    return records


def records_from_tle_text(text: str, object_type: str = "UNKNOWN") -> List[SatelliteRecord]:
    """Convert 2-line or 3-line TLE text; groups without a readable catalog number are skipped."""
    records = []
    for name, line1, line2 in split_tle_text(text or ""):
        try:
            catalog_id = catalog_number(line1)
        except MalformedElementSet as exc:
            logger.warning("tle_group_skipped", name=name, error=str(exc))
            continue
        records.append(SatelliteRecord(
            catalog_id=catalog_id,
            name=name,
            object_type=object_type,
            tle_line1=line1,
            tle_line2=line2,
        ))
    return records


class SpaceTrackClient:
    """
    Space-Track.org client using cookie-based session authentication.

    Args:
        credentials: Account used for ``/ajaxauth/login``
        session: HTTP session (a new requests.Session if omitted)
        config: Base URL and request timeout
    """

    LOGIN_PATH = "/ajaxauth/login"
    QUERY_PATH = "/basicspacedata/query"

    def __init__(self, credentials: SpaceTrackCredentials,
                 session: Optional[requests.Session] = None,
                 config: Optional[TrackerConfig] = None):
        self.credentials = credentials
        self.session = session or requests.Session()
        self.config = config or TrackerConfig()
        self.authenticated = False

    def login(self) -> None:
        """
        Authenticate the session.

        Raises:
            AuthenticationError: credentials rejected
            DataSourceError: the login request itself failed
        """
        url = self.config.spacetrack_base_url + self.LOGIN_PATH
        try:
            response = self.session.post(
                url,
                data={"identity": self.credentials.username, "password": self.credentials.password},
                timeout=self.config.request_timeout_s,
            )
        except requests.RequestException as exc:
            raise DataSourceError(f"Space-Track login request failed: {exc}") from exc

        if response.status_code in (401, 403) or "Failed" in (response.text or ""):
            self.authenticated = False
            logger.warning("spacetrack_login_rejected", username=self.credentials.username,
                           status=response.status_code)
            raise AuthenticationError("Authentication failed. Please check your username and password.")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise DataSourceError(f"Space-Track login failed: {exc}") from exc

        self.authenticated = True
        logger.info("spacetrack_login_ok", username=self.credentials.username)

    def query(self, path: str) -> List[SatelliteRecord]:
        """Run a ``basicspacedata`` query path (logging in first if needed)."""
        if not self.authenticated:
            self.login()
        url = self.config.spacetrack_base_url + self.QUERY_PATH + path
        try:
            response = self.session.get(url, timeout=self.config.request_timeout_s)
        except requests.RequestException as exc:
            raise DataSourceError(f"Space-Track query failed: {exc}") from exc

        if response.status_code in (401, 403):
            self.authenticated = False
            raise AuthenticationError("Authentication failed. Please check your username and password.")
        try:
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as exc:
            raise DataSourceError(f"API request failed: {exc}") from exc
        except ValueError as exc:
            raise DataSourceError(f"Space-Track returned invalid JSON: {exc}") from exc

        records = records_from_spacetrack_json(data)
        logger.info("spacetrack_query", path=path, records=len(records))
        return records

    def by_norad_ids(self, norad_ids: Sequence[int]) -> List[SatelliteRecord]:
        ids = ",".join(str(int(i)) for i in norad_ids)
        return self.query(f"/class/gp/NORAD_CAT_ID/{ids}/orderby/NORAD_CAT_ID,EPOCH/format/json")

    def by_category(self, category: Category, limit: int = 100) -> List[SatelliteRecord]:
        base = CATEGORY_QUERIES.get(Category(category), ACTIVE_QUERY)
        return self.query(f"{base}/orderby/NORAD_CAT_ID/limit/{int(limit)}/format/json")

    def active(self, limit: int = 500) -> List[SatelliteRecord]:
        return self.query(f"{ACTIVE_QUERY}/orderby/NORAD_CAT_ID/limit/{int(limit)}/format/json")

    def popular(self) -> List[SatelliteRecord]:
        return self.by_norad_ids(POPULAR_NORAD_IDS)


class CelestrakClient:
    """Public CelesTrak GP endpoint, TLE format."""

    def __init__(self, session: Optional[requests.Session] = None,
                 config: Optional[TrackerConfig] = None):
        self.session = session or requests.Session()
        self.config = config or TrackerConfig()

    def group(self, name: str = "stations") -> List[SatelliteRecord]:
        """
        Fetch one CelesTrak group (e.g. ``stations``, ``active``, ``gps-ops``).

        Raises:
            DataSourceError: request failed or returned an error status
        """
        url = f"{self.config.celestrak_base_url}/NORAD/elements/gp.php"
        try:
            response = self.session.get(url, params={"GROUP": name, "FORMAT": "tle"},
                                        timeout=self.config.request_timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DataSourceError(f"CelesTrak fetch of {name!r} failed: {exc}") from exc

        records = records_from_tle_text(response.text)
        logger.info("celestrak_fetched", group=name, records=len(records))
        return records


def records_from_file(path: str) -> List[SatelliteRecord]:
    """Read a local TLE file."""
    with open(path, "r", encoding="ascii", errors="replace") as handle:
        return records_from_tle_text(handle.read())
