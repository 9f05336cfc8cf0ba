"""
Intervals
=========

An interval is two time points (start, end) of one network plus a
back-reference to that network. Everything it reports is read from the solved
network; it stores no bounds of its own.

END SPECS:
==========
  None                         open-ended: end - start in [0, +inf)
  ISO timestamp / datetime     fixed end (and end >= start)
  number / timedelta / "PT2H"  exact duration (seconds, timedelta, ISO-8601)
  (min, max)                   duration range; either side may be None

START SPECS:
============
  None                         floating start
  ISO timestamp / datetime     fixed start
  number                       fixed start, seconds after the network epoch
  (earliest, latest)           absolute window; either side may be None
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union
import logging

from ..contracts.base import (
    ORIGIN, Constraint, TickRange, DuplicateId, InvalidBounds, InvalidTimeSpec,
)
from ..temporal.conversion import (
    duration_to_ticks, is_iso_duration, optional_ticks_to_seconds,
)
from .allen import AllenBridge, AllenRelation, RelationSet
from .stn import SimpleTemporalNetwork

logger = logging.getLogger(__name__)

TimeSpec = Union[None, int, float, str, datetime, timedelta, tuple]

_DEFAULT_BRIDGE = AllenBridge()


@dataclass(frozen=True)
class Interval:
    """
    Interval handle inside one network.

    Participants are referenced by id only.
    """
    interval_id: str
    start: str
    end: str
    stn: SimpleTemporalNetwork = field(compare=False, repr=False)
    participant_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def endpoints(self) -> Tuple[str, str]:
        return (self.start, self.end)

    def get_metadata(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None

    # Bounds (all require a solved network)

    def duration(self) -> TickRange:
        """Tightest range of end - start implied by every constraint."""
        return self.stn.distance(self.start, self.end)

    def duration_seconds(self) -> Tuple[Optional[float], Optional[float]]:
        span = self.duration()
        return (optional_ticks_to_seconds(span.lower), optional_ticks_to_seconds(span.upper))

    def start_bounds(self) -> TickRange:
        return self.stn.bounds(self.start)

    def end_bounds(self) -> TickRange:
        return self.stn.bounds(self.end)

    def earliest_start(self) -> Optional[int]:
        return self.stn.earliest(self.start)

    def latest_start(self) -> Optional[int]:
        return self.stn.latest(self.start)

    def earliest_end(self) -> Optional[int]:
        return self.stn.earliest(self.end)

    def latest_end(self) -> Optional[int]:
        return self.stn.latest(self.end)

    # Relations

    def relation_to(self, other: Interval, exact: bool = False) -> RelationSet:
        return allen_relation(self.stn, self, other, exact=exact)

    def relate(self, relation: AllenRelation, other: Interval) -> Tuple[Constraint, ...]:
        """Assert `relation(self, other)` on this interval's network."""
        return assert_relation(self.stn, relation, self, other)


# =============================================================================
# CONSTRUCTION
# =============================================================================

def _next_interval_id(stn: SimpleTemporalNetwork) -> str:
    n = len(stn)
    while f"interval_{n}_start" in stn or f"interval_{n}_end" in stn:
        n += 1
    return f"interval_{n}"


def _start_constraints(
    stn: SimpleTemporalNetwork,
    start: str,
    spec: TimeSpec
) -> List[Constraint]:
    if spec is None:
        return []
    if isinstance(spec, tuple):
        earliest, latest = _pair(spec, "start window")
        lower = None if earliest is None else stn.to_ticks(earliest)
        upper = None if latest is None else stn.to_ticks(latest)
        return [Constraint(ORIGIN, start, lower, upper)]
    at = stn.to_ticks(spec)
    return [Constraint(ORIGIN, start, at, at)]


def _end_constraints(
    stn: SimpleTemporalNetwork,
    start: str,
    end: str,
    spec: TimeSpec
) -> List[Constraint]:
    if spec is None:
        return [Constraint(start, end, 0, None)]
    if isinstance(spec, tuple):
        shortest, longest = _pair(spec, "duration range")
        lower = None if shortest is None else duration_to_ticks(shortest)
        upper = None if longest is None else duration_to_ticks(longest)
        return [Constraint(start, end, lower, upper)]
    if isinstance(spec, datetime) or (isinstance(spec, str) and not is_iso_duration(spec)):
        at = stn.to_ticks(spec)
        return [Constraint(ORIGIN, end, at, at), Constraint(start, end, 0, None)]
    length = duration_to_ticks(spec)
    return [Constraint(start, end, length, length)]


def _pair(spec: tuple, what: str) -> Tuple[object, object]:
    if len(spec) != 2:
        raise InvalidTimeSpec(f"A {what} must be a (min, max) pair, got {spec!r}")
    return spec[0], spec[1]


def interval_constraints(
    stn: SimpleTemporalNetwork,
    start: str,
    end: str,
    start_spec: TimeSpec = None,
    end_spec: TimeSpec = None
) -> List[Constraint]:
    """Constraints implied by a pair of specs. Does not touch the network."""
    constraints = _start_constraints(stn, start, start_spec)
    constraints += _end_constraints(stn, start, end, end_spec)
    for constraint in constraints:
        if constraint.is_empty:
            raise InvalidBounds(constraint.lower, constraint.upper)
    return constraints


def add_interval(
    stn: SimpleTemporalNetwork,
    start_spec: TimeSpec = None,
    end_spec: TimeSpec = None,
    interval_id: Optional[str] = None,
    participant_id: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None
) -> Interval:
    """
    Add an interval's two time points and the constraints its specs imply.

    Every spec is converted and validated before the network is touched, so a
    rejected interval (PrecisionLoss, InvalidTimeSpec, InvalidBounds,
    DuplicateId) leaves the network unchanged.
    """
    interval_id = interval_id or _next_interval_id(stn)
    start = f"{interval_id}_start"
    end = f"{interval_id}_end"

    constraints = interval_constraints(stn, start, end, start_spec, end_spec)
    for point in (start, end):
        if point in stn:
            raise DuplicateId(point)

    stn.add_time_point(start)
    stn.add_time_point(end)
    stn.add_constraints(constraints)
    logger.debug("Added interval %s with %d constraints", interval_id, len(constraints))

    return Interval(
        interval_id=interval_id,
        start=start,
        end=end,
        stn=stn,
        participant_id=participant_id,
        metadata=tuple(sorted((metadata or {}).items()))
    )


# =============================================================================
# RELATIONS
# =============================================================================

def assert_relation(
    stn: SimpleTemporalNetwork,
    relation: AllenRelation,
    a: Interval,
    b: Interval,
    bridge: Optional[AllenBridge] = None
) -> Tuple[Constraint, ...]:
    """Assert `relation(a, b)` on `stn`."""
    bridge = bridge or _DEFAULT_BRIDGE
    return bridge.assert_relation(stn, relation, a.endpoints, b.endpoints)


def allen_relation(
    stn: SimpleTemporalNetwork,
    a: Interval,
    b: Interval,
    exact: bool = False,
    bridge: Optional[AllenBridge] = None
) -> RelationSet:
    """
    Relations of `a` with respect to `b` still possible in the solved `stn`.

    The intervals are looked up by endpoint id, so intervals created on an
    input network can be classified on a union or composition of it.
    """
    bridge = bridge or _DEFAULT_BRIDGE
    return bridge.classify(stn, a.endpoints, b.endpoints, exact=exact)


__all__ = [
    'Interval',
    'TimeSpec',
    'add_interval',
    'interval_constraints',
    'assert_relation',
    'allen_relation',
]
