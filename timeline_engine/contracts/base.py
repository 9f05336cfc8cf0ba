"""
Base Contracts and Shared Types

These are the foundational types used across all layers of the engine.
All records here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- Records are frozen dataclasses; exceptions convert to Error records
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto


# Reserved id of the distinguished zero point every network is created with.
ORIGIN = "origin"


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Insertion errors (synchronous, network left unchanged)
    DUPLICATE_ID = auto()
    UNKNOWN_POINT = auto()
    INVALID_BOUNDS = auto()

    # Solving errors
    INCONSISTENT = auto()
    STALE = auto()
    TIMEOUT = auto()

    # Conversion errors
    PRECISION_LOSS = auto()
    INVALID_TIME_SPEC = auto()

    # Composition errors
    EPOCH_MISMATCH = auto()
    OVERLAPPING_NETWORKS = auto()

    # Registry errors
    UNKNOWN_INTERVAL = auto()
    UNKNOWN_PARTICIPANT = auto()
    UNKNOWN_BRIDGE = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data as well as exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )


class TemporalError(Exception):
    """Root of the engine's exception taxonomy."""

    code: ErrorCode = ErrorCode.INVALID_TIME_SPEC

    def context(self) -> Tuple[Tuple[str, str], ...]:
        return ()

    def to_error(self) -> Error:
        """Freeze this exception into an Error record."""
        return Error(
            code=self.code,
            message=str(self),
            timestamp=datetime.now(timezone.utc),
            context=self.context()
        )


class DuplicateId(TemporalError):
    code = ErrorCode.DUPLICATE_ID

    def __init__(self, point_id: str, kind: str = "Time point"):
        super().__init__(f"{kind} '{point_id}' already exists")
        self.point_id = point_id

    def context(self) -> Tuple[Tuple[str, str], ...]:
        return (("point_id", self.point_id),)


class UnknownPoint(TemporalError):
    code = ErrorCode.UNKNOWN_POINT

    def __init__(self, point_id: str):
        super().__init__(f"Time point '{point_id}' is not part of this network")
        self.point_id = point_id

    def context(self) -> Tuple[Tuple[str, str], ...]:
        return (("point_id", self.point_id),)


class InvalidBounds(TemporalError):
    code = ErrorCode.INVALID_BOUNDS

    def __init__(self, lower: Optional[int], upper: Optional[int]):
        super().__init__(f"Lower bound {lower} exceeds upper bound {upper}")
        self.lower = lower
        self.upper = upper


class InconsistentNetwork(TemporalError):
    """
    Raised by solve() when path consistency derives a contradictory self-loop.

    `witness` is the self-loop edge on the offending point (lower > 0 or
    upper < 0); `via` is the intermediate point whose triangle produced it.
    """
    code = ErrorCode.INCONSISTENT

    def __init__(self, witness: Constraint, via: Optional[str] = None):
        super().__init__(
            f"Network is inconsistent: {witness.from_point} -> {witness.to_point} "
            f"bounded to [{witness.lower}, {witness.upper}]"
            + (f" via {via}" if via is not None else "")
        )
        self.witness = witness
        self.via = via

    def context(self) -> Tuple[Tuple[str, str], ...]:
        ctx = (("witness", self.witness.describe()),)
        if self.via is not None:
            ctx += (("via", self.via),)
        return ctx


class StaleBounds(TemporalError):
    code = ErrorCode.STALE

    def __init__(self):
        super().__init__("Network was mutated since the last solve(); call solve() first")


class SolveTimeout(TemporalError):
    code = ErrorCode.TIMEOUT

    def __init__(self, timeout_seconds: float):
        super().__init__(f"solve() exceeded its deadline of {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class PrecisionLoss(TemporalError):
    code = ErrorCode.PRECISION_LOSS

    def __init__(self, seconds: float, ticks: int, error: float):
        super().__init__(
            f"{seconds}s cannot be represented in millisecond ticks "
            f"(nearest {ticks} ticks, error {error:.6f}s)"
        )
        self.seconds = seconds
        self.ticks = ticks
        self.error = error


class InvalidTimeSpec(TemporalError):
    code = ErrorCode.INVALID_TIME_SPEC


class EpochMismatch(TemporalError):
    code = ErrorCode.EPOCH_MISMATCH

    def __init__(self, first: datetime, second: datetime):
        super().__init__(
            f"Networks are anchored to different epochs ({first.isoformat()} vs "
            f"{second.isoformat()})"
        )


class OverlappingNetworks(TemporalError):
    code = ErrorCode.OVERLAPPING_NETWORKS

    def __init__(self, shared: Tuple[str, ...]):
        super().__init__(f"Networks share time points: {', '.join(shared)}")
        self.shared = shared


class UnknownInterval(TemporalError):
    code = ErrorCode.UNKNOWN_INTERVAL


class UnknownParticipant(TemporalError):
    code = ErrorCode.UNKNOWN_PARTICIPANT


class UnknownBridge(TemporalError):
    code = ErrorCode.UNKNOWN_BRIDGE


# =============================================================================
# GRAPH PRIMITIVES (Immutable)
# =============================================================================

@dataclass(frozen=True)
class TickRange:
    """
    Closed range of ticks. None on either side means unbounded.
    """
    lower: Optional[int]
    upper: Optional[int]

    @property
    def is_empty(self) -> bool:
        return (
            self.lower is not None
            and self.upper is not None
            and self.lower > self.upper
        )

    @property
    def is_point(self) -> bool:
        return self.lower is not None and self.lower == self.upper

    @property
    def width(self) -> Optional[int]:
        if self.lower is None or self.upper is None:
            return None
        return self.upper - self.lower

    def contains(self, value: int) -> bool:
        if self.lower is not None and value < self.lower:
            return False
        if self.upper is not None and value > self.upper:
            return False
        return True

    def is_within(self, other: TickRange) -> bool:
        """True when this range is a subset of `other`."""
        lower_ok = other.lower is None or (
            self.lower is not None and self.lower >= other.lower
        )
        upper_ok = other.upper is None or (
            self.upper is not None and self.upper <= other.upper
        )
        return lower_ok and upper_ok


@dataclass(frozen=True)
class Constraint:
    """
    Directed difference constraint: `to_point - from_point in [lower, upper]`.

    Bounds are ticks; None means unbounded on that side. A Constraint may
    describe an empty range (a witness of inconsistency), but networks reject
    such ranges at insertion.
    """
    from_point: str
    to_point: str
    lower: Optional[int]
    upper: Optional[int]

    @property
    def bounds(self) -> TickRange:
        return TickRange(self.lower, self.upper)

    @property
    def is_empty(self) -> bool:
        return self.bounds.is_empty

    def intersect(self, other: Constraint) -> Constraint:
        """Tightest-wins intersection of two constraints on the same ordered pair."""
        if (self.from_point, self.to_point) != (other.from_point, other.to_point):
            raise ValueError("Can only intersect constraints on the same ordered pair")
        return Constraint(
            from_point=self.from_point,
            to_point=self.to_point,
            lower=_max_lower(self.lower, other.lower),
            upper=_min_upper(self.upper, other.upper)
        )

    def reversed(self) -> Constraint:
        """Same constraint seen from the other endpoint."""
        return Constraint(
            from_point=self.to_point,
            to_point=self.from_point,
            lower=None if self.upper is None else -self.upper,
            upper=None if self.lower is None else -self.lower
        )

    def describe(self) -> str:
        lower = "-inf" if self.lower is None else str(self.lower)
        upper = "+inf" if self.upper is None else str(self.upper)
        return f"{self.to_point} - {self.from_point} in [{lower}, {upper}]"


def _max_lower(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _min_upper(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


# =============================================================================
# LIFECYCLE STATES (Explicit, no implicit transitions)
# =============================================================================

class NetworkState(Enum):
    """
    Explicit network lifecycle states.

    UNSOLVED -> SOLVED | INCONSISTENT via solve()
    any mutation -> UNSOLVED, except that insertions keep INCONSISTENT
    INCONSISTENT -> UNSOLVED only through a removal (repair)
    """
    UNSOLVED = "unsolved"
    SOLVED = "solved"
    INCONSISTENT = "inconsistent"
