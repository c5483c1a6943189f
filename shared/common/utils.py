# shared/common/utils.py
"""
Common Utility Functions and Classes
"""

import math
import time
import threading
import logging
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Tuple, Union

from django.utils import timezone

from .constants import EARTH_RADIUS_KM
from .exceptions import OperationCancelledError

logger = logging.getLogger(__name__)


# =============================================================================
# DATE/TIME UTILITIES
# =============================================================================

def utc_today() -> date:
    """Get the current calendar date in UTC"""
    return timezone.now().date()


def calendar_days_between(earlier: Union[date, datetime], later: Union[date, datetime]) -> int:
    """Whole calendar days from earlier to later (negative if reversed)"""
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days


# =============================================================================
# NUMBER UTILITIES
# =============================================================================

def round_decimal(value: Union[Decimal, float], places: int = 2) -> Decimal:
    """Round to specified decimal places, halves away from zero"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal(10) ** -places, rounding=ROUND_HALF_UP)


def round_half_up(value: Union[Decimal, float, int]) -> int:
    """Round to the nearest integer with halves rounding up"""
    return int(round_decimal(value, 0))


def percentage(part: float, whole: float) -> float:
    """Calculate percentage"""
    if whole == 0:
        return 0.0
    return (part / whole) * 100


# =============================================================================
# GEO UTILITIES
# =============================================================================

def haversine_distance_km(
    lon1: float,
    lat1: float,
    lon2: float,
    lat2: float
) -> float:
    """Great-circle distance in kilometres between two (lon, lat) points"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(lon: float, lat: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Latitude/longitude box enclosing a circle around a point.

    Returns:
        (min_lon, min_lat, max_lon, max_lat), clamped to valid coordinates.
    """
    lat_delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat = max(lat - lat_delta, -90.0)
    max_lat = min(lat + lat_delta, 90.0)

    cos_lat = math.cos(math.radians(lat))
    if max_lat >= 90.0 or min_lat <= -90.0 or cos_lat < 1e-9:
        return (-180.0, min_lat, 180.0, max_lat)

    lon_delta = math.degrees(radius_km / (EARTH_RADIUS_KM * cos_lat))
    # Boxes crossing the antimeridian fall back to the full longitude range
    if lon_delta >= 180.0 or lon - lon_delta < -180.0 or lon + lon_delta > 180.0:
        return (-180.0, min_lat, 180.0, max_lat)
    return (lon - lon_delta, min_lat, lon + lon_delta, max_lat)


# =============================================================================
# DEADLINES AND CANCELLATION
# =============================================================================

class Deadline:
    """
    Cancellation signal for operations that fan out to storage or events.

    Callers hand a Deadline to an engine operation; the operation calls
    check() before each write phase and aborts with OperationCancelledError
    once the timeout elapses or cancel() is called.

    Usage:
        deadline = Deadline(seconds=2.5)
        service.complete_gig(gig_id, deadline=deadline)
    """

    def __init__(self, seconds: Optional[float] = None):
        self._expires_at = time.monotonic() + seconds if seconds is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal cancellation to the running operation."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        if self._expires_at is None:
            return False
        return time.monotonic() >= self._expires_at

    @property
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    def check(self, operation: str = 'operation') -> None:
        """Raise OperationCancelledError if cancelled or past the deadline."""
        if self.cancelled:
            logger.warning(f"{operation} cancelled by caller")
            raise OperationCancelledError(
                f"{operation} was cancelled",
                details={'reason': 'cancelled'}
            )
        if self.expired:
            logger.warning(f"{operation} exceeded its deadline")
            raise OperationCancelledError(
                f"{operation} exceeded its deadline",
                details={'reason': 'deadline_exceeded'}
            )


def check_deadline(deadline: Optional[Deadline], operation: str = 'operation') -> None:
    """Check an optional deadline; no-op when none was supplied."""
    if deadline is not None:
        deadline.check(operation)


def as_str(value: Any) -> Optional[str]:
    """Stringify identifiers for event payloads"""
    return str(value) if value is not None else None
