"""
TLE Parser Module

Provides utilities for parsing Two-Line Element (TLE) sets into immutable
OrbitalElementSet records, validating their structure and checksums, and
rebuilding TLE text from element values.

The parser reads the fixed-width NORAD format directly:

    Line 1: catalog number, classification, designator, epoch, drag terms
    Line 2: inclination, RAAN, eccentricity, argument of perigee,
            mean anomaly, mean motion, revolution number

Checksum mismatches are advisory: a ChecksumMismatch warning is emitted and
the element set is still returned with ``checksum_ok=False``.
"""

import math
import warnings
from datetime import datetime, timezone, timedelta
from typing import Iterator, Tuple

import structlog

from orbit_tracker.exceptions import ChecksumMismatch, MalformedElementSet
from orbit_tracker.models import OrbitalElementSet

logger = structlog.get_logger(__name__)

TLE_LINE_LENGTH = 69
EPOCH_PIVOT_YEAR = 57  # two-digit years below this are 20xx (Sputnik-era convention)

_ALPHA5 = "ABCDEFGHJKLMNPQRSTUVWXYZ"  # I and O are not used


class TLEParser:
    """
    Parser and utilities for Two-Line Element (TLE) sets.

    Provides methods for:
    - Parsing TLE lines into an OrbitalElementSet
    - Checksum computation and verification
    - Epoch decoding with the two-digit year pivot
    - Reconstructing TLE strings from element values
    """

    def parse_tle(self, line1: str, line2: str) -> OrbitalElementSet:
        """
        Parse TLE lines into an element set.

        Args:
            line1: First line of TLE (69 characters)
            line2: Second line of TLE (69 characters)

        Returns:
            OrbitalElementSet

        Raises:
            MalformedElementSet: wrong length, non-numeric fields, mismatched
                catalog numbers or an impossible epoch
        """
        line1 = _strip_line_ending(line1)
        line2 = _strip_line_ending(line2)

        for number, line in ((1, line1), (2, line2)):
            if len(line) != TLE_LINE_LENGTH:
                raise MalformedElementSet(
                    f"TLE line {number} must be {TLE_LINE_LENGTH} characters, got {len(line)}",
                    line_number=number,
                )
            if line[0] != str(number):
                raise MalformedElementSet(
                    f"TLE line {number} must start with '{number}'", line_number=number
                )

        catalog_number = _catalog_number(line1[2:7], 1)
        if _catalog_number(line2[2:7], 2) != catalog_number:
            raise MalformedElementSet(
                f"catalog number mismatch: {line1[2:7]!r} vs {line2[2:7]!r}", line_number=2
            )

        two_digit_year = _integer(line1[18:20], "epoch year", 1)
        epoch_day = _number(line1[20:32], "epoch day", 1)
        year = self.resolve_year(two_digit_year)
        epoch = self.epoch_to_datetime(year, epoch_day)

        checksum_ok = True
        for number, line in ((1, line1), (2, line2)):
            if not verify_checksum(line):
                checksum_ok = False
                mismatch = ChecksumMismatch(number, tle_checksum(line), line[68])
                logger.warning("tle_checksum_mismatch", catalog_number=catalog_number,
                               line_number=number, expected=mismatch.expected, found=mismatch.found)
                warnings.warn(mismatch, stacklevel=2)

        return OrbitalElementSet(
            catalog_number=catalog_number,
            classification=line1[7].strip() or "U",
            international_designator=line1[9:17].strip(),
            epoch=epoch,
            epoch_year=year,
            epoch_day=epoch_day,
            mean_motion=_number(line2[52:63], "mean motion", 2),
            mean_motion_dot=_number(line1[33:43], "mean motion derivative", 1),
            mean_motion_ddot=_implied_decimal(line1[44:52], "mean motion second derivative", 1),
            bstar=_implied_decimal(line1[53:61], "B* drag term", 1),
            eccentricity=_number("0." + line2[26:33].strip(), "eccentricity", 2),
            inclination_deg=_number(line2[8:16], "inclination", 2),
            raan_deg=_number(line2[17:25], "right ascension of ascending node", 2),
            arg_perigee_deg=_number(line2[34:42], "argument of perigee", 2),
            mean_anomaly_deg=_number(line2[43:51], "mean anomaly", 2),
            element_set_number=_integer(line1[64:68], "element set number", 1, blank=0),
            revolution_number=_integer(line2[63:68], "revolution number", 2, blank=0),
            line1=line1,
            line2=line2,
            checksum_ok=checksum_ok,
        )

    @staticmethod
    def resolve_year(two_digit_year: int) -> int:
        """Expand a two-digit TLE year: below 57 is 20xx, otherwise 19xx."""
        if two_digit_year < EPOCH_PIVOT_YEAR:
            return 2000 + two_digit_year
        return 1900 + two_digit_year

    def epoch_to_datetime(self, year: int, epoch_day: float) -> datetime:
        """
        Convert TLE epoch to datetime.

        Args:
            year: Four-digit year
            epoch_day: Day of year with fractional part (1.0 is Jan 1 00:00)

        Returns:
            Datetime object in UTC
        """
        days_in_year = 366 if _is_leap(year) else 365
        if not math.isfinite(epoch_day) or epoch_day < 1.0 or epoch_day >= days_in_year + 1:
            raise MalformedElementSet(
                f"epoch day {epoch_day} is not a valid day of {year}", line_number=1
            )
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        return start + timedelta(days=epoch_day - 1.0)

    def format_tle(self, catalog_number: int, epoch: datetime, inclination_deg: float,
                   raan_deg: float, eccentricity: float, arg_perigee_deg: float,
                   mean_anomaly_deg: float, mean_motion: float, bstar: float = 0.0,
                   mean_motion_dot: float = 0.0, mean_motion_ddot: float = 0.0,
                   classification: str = "U", international_designator: str = "",
                   element_set_number: int = 999, revolution_number: int = 0) -> Tuple[str, str]:
        """
        Build a TLE pair from element values.

        Checksums are computed; the epoch is rendered to 1e-8 day.

        Returns:
            Tuple of (line1, line2) strings
        """
        if epoch.tzinfo is None:
            epoch = epoch.replace(tzinfo=timezone.utc)
        epoch = epoch.astimezone(timezone.utc)
        start = datetime(epoch.year, 1, 1, tzinfo=timezone.utc)
        epoch_day = (epoch - start).total_seconds() / 86400.0 + 1.0

        ndot_sign = "-" if mean_motion_dot < 0 else " "
        ndot_str = ndot_sign + f"{abs(mean_motion_dot):.8f}"[1:]

        line1 = f"1 {catalog_number:05d}{classification[:1] or 'U'} "
        line1 += f"{international_designator:<8.8} "
        line1 += f"{epoch.year % 100:02d}{epoch_day:012.8f} "
        line1 += f"{ndot_str} "
        line1 += _format_implied_decimal(mean_motion_ddot) + " "
        line1 += _format_implied_decimal(bstar) + " "
        line1 += f"0 {element_set_number % 10000:4d}"
        line1 += str(tle_checksum(line1))

        line2 = f"2 {catalog_number:05d} "
        line2 += f"{inclination_deg:8.4f} "
        line2 += f"{raan_deg % 360.0:8.4f} "
        line2 += f"{int(round(eccentricity * 1e7)):07d} "
        line2 += f"{arg_perigee_deg % 360.0:8.4f} "
        line2 += f"{mean_anomaly_deg % 360.0:8.4f} "
        line2 += f"{mean_motion:11.8f}"
        line2 += f"{revolution_number % 100000:5d}"
        line2 += str(tle_checksum(line2))

        return line1, line2


_default_parser = TLEParser()


def parse_tle(line1: str, line2: str) -> OrbitalElementSet:
    """Module-level shortcut for TLEParser().parse_tle."""
    return _default_parser.parse_tle(line1, line2)


def format_tle(*args, **kwargs) -> Tuple[str, str]:
    """Module-level shortcut for TLEParser().format_tle."""
    return _default_parser.format_tle(*args, **kwargs)


def catalog_number(line1: str) -> int:
    """Catalog number from columns 3-7 of a line 1, Alpha-5 aware."""
    return _catalog_number(line1[2:7], 1)


def tle_checksum(line: str) -> int:
    """Modulo-10 checksum over columns 1-68: digits count their value, '-' counts 1."""
    checksum = 0
    for char in line[:68]:
        if char.isdigit():
            checksum += int(char)
        elif char == "-":
            checksum += 1
    return checksum % 10


def verify_checksum(line: str) -> bool:
    return len(line) >= 69 and line[68] == str(tle_checksum(line))


def split_tle_text(text: str) -> Iterator[Tuple[str, str, str]]:
    """
    Yield (name, line1, line2) from 2-line or 3-line TLE text.

    Names prefixed with "0 " (3LE format) are unwrapped. Incomplete groups
    are skipped.
    """
    lines = [ln.rstrip() for ln in text.splitlines() if ln.strip()]
    i = 0
    while i < len(lines):
        current = lines[i]
        if current.startswith("1 ") and i + 1 < len(lines) and lines[i + 1].startswith("2 "):
            yield "UNKNOWN", current, lines[i + 1]
            i += 2
        elif (not current.startswith(("1 ", "2 ")) and i + 2 < len(lines)
              and lines[i + 1].startswith("1 ") and lines[i + 2].startswith("2 ")):
            name = current[2:] if current.startswith("0 ") else current
            yield name.strip(), lines[i + 1], lines[i + 2]
            i += 3
        else:
            logger.debug("tle_text_line_skipped", line=current)
            i += 1


def _strip_line_ending(line: str) -> str:
    if line is None:
        raise MalformedElementSet("TLE line is missing")
    return line.rstrip("\r\n")


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def _number(text: str, field_name: str, line_number: int) -> float:
    try:
        value = float(text.strip())
    except ValueError:
        raise MalformedElementSet(
            f"TLE line {line_number} {field_name} is not numeric: {text!r}",
            line_number=line_number,
        ) from None
    if not math.isfinite(value):
        raise MalformedElementSet(
            f"TLE line {line_number} {field_name} is not finite: {text!r}",
            line_number=line_number,
        )
    return value


def _integer(text: str, field_name: str, line_number: int, blank=None) -> int:
    stripped = text.strip()
    if not stripped and blank is not None:
        return blank
    if not stripped.isdigit():
        raise MalformedElementSet(
            f"TLE line {line_number} {field_name} is not an integer: {text!r}",
            line_number=line_number,
        )
    return int(stripped)


def _catalog_number(text: str, line_number: int) -> int:
    """Decode a 5-character catalog number, including Alpha-5 (A0001 = 100001)."""
    stripped = text.strip()
    if stripped and stripped[0] in _ALPHA5 and stripped[1:].isdigit():
        return (_ALPHA5.index(stripped[0]) + 10) * 10000 + int(stripped[1:])
    return _integer(text, "catalog number", line_number)


def _implied_decimal(text: str, field_name: str, line_number: int) -> float:
    """
    Decode TLE exponential notation: ' 21844-3' is 0.21844e-3.
    """
    if not text.strip():
        return 0.0
    sign = -1.0 if text[0] == "-" else 1.0
    mantissa = text[1:6].replace(" ", "0")
    exponent = text[6:8].strip() or "0"
    if not mantissa.isdigit():
        raise MalformedElementSet(
            f"TLE line {line_number} {field_name} mantissa is not numeric: {text!r}",
            line_number=line_number,
        )
    try:
        power = int(exponent)
    except ValueError:
        raise MalformedElementSet(
            f"TLE line {line_number} {field_name} exponent is not numeric: {text!r}",
            line_number=line_number,
        ) from None
    return sign * float("0." + mantissa) * 10.0 ** power


def _format_implied_decimal(value: float) -> str:
    """Format a number in TLE exponential notation (8 characters)."""
    if value == 0.0:
        return " 00000-0"

    sign = "-" if value < 0 else " "
    abs_val = abs(value)
    exp = int(math.floor(math.log10(abs_val))) + 1
    digits = int(round(abs_val / 10.0 ** exp * 100000))
    if digits >= 100000:
        digits //= 10
        exp += 1
    if not -9 <= exp <= 9:
        raise ValueError(f"value {value} cannot be written in TLE exponential notation")
    exp_sign = "-" if exp < 0 else "+"
    return f"{sign}{digits:05d}{exp_sign}{abs(exp)}"
