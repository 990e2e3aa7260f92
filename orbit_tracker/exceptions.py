"""
Error taxonomy for parsing, propagation and visibility computations.

Parse-time:
    MalformedElementSet   structural failure, the element set is never built
    ChecksumMismatch      advisory warning, parsing continues
Compute-time:
    PropagationError      reason is one of PropagationFailure
    FrameConversionError  non-finite or out-of-range geodetic output
    InvalidInput          caller passed non-finite coordinates
Data sources:
    DataSourceError       fetch failed or payload unusable
    AuthenticationError   credentials rejected
"""

from enum import Enum
from typing import Optional


class OrbitTrackerError(Exception):
    """Base class for all orbit tracker errors."""


class MalformedElementSet(OrbitTrackerError, ValueError):
    """A TLE pair that cannot be decoded into an element set."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class ChecksumMismatch(UserWarning):
    """TLE line checksum does not match its content (advisory only)."""

    def __init__(self, line_number: int, expected: int, found: str):
        super().__init__(
            f"TLE line {line_number} checksum mismatch: expected {expected}, found {found!r}"
        )
        self.line_number = line_number
        self.expected = expected
        self.found = found


class PropagationFailure(str, Enum):
    """Why a propagation attempt produced no state vector."""

    DECAYED = "decayed"
    NUMERICAL_DEGENERACY = "numerical-degeneracy"
    INVALID_ELEMENTS = "invalid-elements"


class PropagationError(OrbitTrackerError):
    """Propagation failed for one element set at one instant."""

    def __init__(self, reason: PropagationFailure, message: str = "",
                 catalog_number: Optional[int] = None, tsince_minutes: Optional[float] = None):
        self.reason = PropagationFailure(reason)
        self.catalog_number = catalog_number
        self.tsince_minutes = tsince_minutes
        detail = f"{self.reason.value}: {message}" if message else self.reason.value
        super().__init__(detail)


class FrameConversionError(OrbitTrackerError):
    """ECI to geodetic conversion produced an unusable value."""


class InvalidInput(OrbitTrackerError, ValueError):
    """Non-finite or out-of-range coordinates supplied by the caller."""


class DataSourceError(OrbitTrackerError):
    """A data-source request failed or returned an unusable payload."""


class AuthenticationError(DataSourceError):
    """The data source rejected the supplied credentials."""
