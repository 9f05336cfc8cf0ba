"""
Tick Conversion
===============

Maps user-facing continuous time onto the integer millisecond lattice used for
all constraint arithmetic.

GUARANTEES:
- Every value that enters a network is an integer number of ticks (1 tick = 1 ms)
- Lossy conversions are detected, never silently rounded away
  (tolerance: PRECISION_TOLERANCE_SECONDS)
- Absolute times are always relative to an explicit, timezone-aware epoch
- Naive datetimes are interpreted as UTC, never local time
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Optional, Union
import math
import re

from ..contracts.base import InvalidTimeSpec, PrecisionLoss


TICKS_PER_SECOND = 1000
MICROSECONDS_PER_TICK = 1000
PRECISION_TOLERANCE_SECONDS = 1e-4

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Seconds = Union[int, float]
AbsoluteTime = Union[str, datetime]


# =============================================================================
# SECONDS <-> TICKS
# =============================================================================

def _require_seconds(seconds: object) -> float:
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise InvalidTimeSpec(f"Expected a number of seconds, got {seconds!r}")
    if not math.isfinite(seconds):
        raise InvalidTimeSpec(f"Seconds must be finite, got {seconds!r}")
    return float(seconds)


def seconds_to_ticks(seconds: Seconds) -> int:
    """Round a seconds value to the nearest millisecond tick."""
    value = _require_seconds(seconds)
    return int(round(value * TICKS_PER_SECOND))


def ticks_to_seconds(ticks: int) -> float:
    return ticks / TICKS_PER_SECOND


def validate_precision(seconds: Seconds) -> int:
    """
    Convert seconds to ticks, rejecting values the lattice cannot hold.

    Raises PrecisionLoss when the round trip drifts by more than
    PRECISION_TOLERANCE_SECONDS.
    """
    value = _require_seconds(seconds)
    ticks = seconds_to_ticks(value)
    error = abs(ticks_to_seconds(ticks) - value)
    if error > PRECISION_TOLERANCE_SECONDS:
        raise PrecisionLoss(value, ticks, error)
    return ticks


# =============================================================================
# ABSOLUTE TIME <-> TICKS
# =============================================================================

def normalize_datetime(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware datetimes are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_iso8601(text: str) -> datetime:
    """Parse an ISO-8601 timestamp, extended or basic format ('Z' accepted)."""
    if not isinstance(text, str) or not text:
        raise InvalidTimeSpec(f"Expected an ISO-8601 timestamp, got {text!r}")
    try:
        dt = datetime.fromisoformat(text.strip())
    except ValueError as exc:
        raise InvalidTimeSpec(f"Invalid ISO-8601 timestamp {text!r}") from exc
    return normalize_datetime(dt)


def _round_microseconds(total_us: int) -> int:
    """Nearest tick for an exact microsecond count (ties to even)."""
    ticks, remainder = divmod(total_us, MICROSECONDS_PER_TICK)
    doubled = remainder * 2
    if doubled > MICROSECONDS_PER_TICK or (
        doubled == MICROSECONDS_PER_TICK and ticks % 2 == 1
    ):
        ticks += 1
    return ticks


def timedelta_to_ticks(delta: timedelta) -> int:
    """Exact conversion of a timedelta; sub-tick residue beyond tolerance fails."""
    total_us = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    ticks = _round_microseconds(total_us)
    error_us = abs(ticks * MICROSECONDS_PER_TICK - total_us)
    if error_us > PRECISION_TOLERANCE_SECONDS * 1_000_000:
        raise PrecisionLoss(total_us / 1_000_000, ticks, error_us / 1_000_000)
    return ticks


def datetime_to_ticks(value: datetime, epoch: datetime = UNIX_EPOCH) -> int:
    """Ticks elapsed from `epoch` to `value` (negative before the epoch)."""
    return timedelta_to_ticks(normalize_datetime(value) - normalize_datetime(epoch))


def iso_to_ticks(value: AbsoluteTime, epoch: datetime = UNIX_EPOCH) -> int:
    """ISO-8601 timestamp (or datetime) to ticks since `epoch`."""
    if isinstance(value, datetime):
        return datetime_to_ticks(value, epoch)
    return datetime_to_ticks(parse_iso8601(value), epoch)


def ticks_to_datetime(ticks: int, epoch: datetime = UNIX_EPOCH) -> datetime:
    return normalize_datetime(epoch) + timedelta(milliseconds=ticks)


def ticks_to_iso(ticks: int, epoch: datetime = UNIX_EPOCH) -> str:
    return ticks_to_datetime(ticks, epoch).isoformat()


# =============================================================================
# DURATIONS
# =============================================================================

_ISO_DURATION = re.compile(
    r'^(?P<sign>[-+])?P'
    r'(?:(?P<years>\d+(?:[.,]\d+)?)Y)?'
    r'(?:(?P<months>\d+(?:[.,]\d+)?)M)?'
    r'(?:(?P<weeks>\d+(?:[.,]\d+)?)W)?'
    r'(?:(?P<days>\d+(?:[.,]\d+)?)D)?'
    r'(?:T'
    r'(?:(?P<hours>\d+(?:[.,]\d+)?)H)?'
    r'(?:(?P<minutes>\d+(?:[.,]\d+)?)M)?'
    r'(?:(?P<seconds>\d+(?:[.,]\d+)?)S)?'
    r')?$'
)

_DURATION_UNIT_SECONDS = {
    'weeks': 604800,
    'days': 86400,
    'hours': 3600,
    'minutes': 60,
    'seconds': 1,
}


def is_iso_duration(text: object) -> bool:
    return isinstance(text, str) and text.lstrip('+-').startswith('P')


def parse_iso_duration(text: str) -> int:
    """
    Parse an ISO-8601 duration ("PT2H", "P1DT30M", "PT0.5S") into ticks.

    Years and months have no fixed length and are rejected.
    """
    match = _ISO_DURATION.match(text.strip()) if isinstance(text, str) else None
    # "P", "PT" and a dangling "T" match the pattern but carry no component
    if match is None or text.strip().endswith(('P', 'T')):
        raise InvalidTimeSpec(f"Invalid ISO-8601 duration {text!r}")
    if match.group('years') or match.group('months'):
        raise InvalidTimeSpec(
            f"Duration {text!r} uses calendar units (years/months) with no fixed length"
        )

    total = Decimal(0)
    for unit, factor in _DURATION_UNIT_SECONDS.items():
        raw = match.group(unit)
        if raw:
            try:
                total += Decimal(raw.replace(',', '.')) * factor
            except InvalidOperation as exc:
                raise InvalidTimeSpec(f"Invalid ISO-8601 duration {text!r}") from exc

    exact_ticks = total * TICKS_PER_SECOND
    ticks = int(exact_ticks.to_integral_value(rounding=ROUND_HALF_EVEN))
    error = abs(exact_ticks - ticks) / TICKS_PER_SECOND
    if error > Decimal(str(PRECISION_TOLERANCE_SECONDS)):
        raise PrecisionLoss(float(total), ticks, float(error))

    return -ticks if match.group('sign') == '-' else ticks


def duration_to_ticks(value: Union[Seconds, str, timedelta]) -> int:
    """Seconds, ISO-8601 duration string, or timedelta to ticks."""
    if isinstance(value, timedelta):
        return timedelta_to_ticks(value)
    if isinstance(value, str):
        return parse_iso_duration(value)
    return validate_precision(value)


def absolute_to_ticks(
    value: Union[Seconds, AbsoluteTime],
    epoch: datetime = UNIX_EPOCH
) -> int:
    """
    Absolute time to ticks since `epoch`.

    Numbers are read as seconds after the epoch; strings and datetimes as
    ISO-8601 timestamps.
    """
    if isinstance(value, (str, datetime)):
        return iso_to_ticks(value, epoch)
    return validate_precision(value)


def optional_ticks_to_seconds(ticks: Optional[int]) -> Optional[float]:
    return None if ticks is None else ticks_to_seconds(ticks)
