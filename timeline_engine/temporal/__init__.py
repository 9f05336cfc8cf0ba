"""
Temporal Conversion Layer
=========================

Continuous time (seconds, ISO-8601 timestamps and durations) to integer
millisecond ticks and back.

INVARIANTS:
- 1 tick = 1 millisecond
- Conversions that would drift by more than 1e-4 s raise PrecisionLoss
"""

from .conversion import (
    TICKS_PER_SECOND,
    PRECISION_TOLERANCE_SECONDS,
    UNIX_EPOCH,
    seconds_to_ticks,
    ticks_to_seconds,
    validate_precision,
    normalize_datetime,
    parse_iso8601,
    datetime_to_ticks,
    timedelta_to_ticks,
    iso_to_ticks,
    ticks_to_datetime,
    ticks_to_iso,
    is_iso_duration,
    parse_iso_duration,
    duration_to_ticks,
    absolute_to_ticks,
)

__all__ = [
    'TICKS_PER_SECOND',
    'PRECISION_TOLERANCE_SECONDS',
    'UNIX_EPOCH',
    'seconds_to_ticks',
    'ticks_to_seconds',
    'validate_precision',
    'normalize_datetime',
    'parse_iso8601',
    'datetime_to_ticks',
    'timedelta_to_ticks',
    'iso_to_ticks',
    'ticks_to_datetime',
    'ticks_to_iso',
    'is_iso_duration',
    'parse_iso_duration',
    'duration_to_ticks',
    'absolute_to_ticks',
]
