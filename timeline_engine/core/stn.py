"""
Simple Temporal Network
=======================

Incremental difference-constraint graph with PC-2 path-consistency solving.

INVARIANTS:
- Every inserted constraint has lower <= upper (violations are rejected)
- Constraints on the same ordered pair are intersected, never overwritten
- Any mutation invalidates the minimal-network cache
- Tightening runs on a working copy and is committed only on success
- Bound queries never auto-solve; stale or inconsistent networks fail closed

REPRESENTATION:
===============
Time points are index handles into an arena owned by this network. The dense
minimal network is a distance matrix `d` where `d[i, j]` is the upper bound of
`t_j - t_i` (+inf when unbounded); the lower bound of `t_j - t_i` is
`-d[j, i]`. Composing the triangle (i, k, j) and intersecting with (i, j) is
then a min-plus update of both entries.

Arithmetic is exact. The matrix is int64 with `INT64_UNBOUNDED` as +inf while
every finite path sum provably fits; otherwise it holds Python ints (object
dtype) with `math.inf` as +inf.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import math
import time

import numpy as np

from ..contracts.base import (
    ORIGIN, Constraint, TickRange, NetworkState,
    DuplicateId, UnknownPoint, InvalidBounds, InconsistentNetwork,
    StaleBounds, SolveTimeout,
)
from ..contracts.events import AuditEventType
from ..observability import LogCollector, MetricsCollector
from ..temporal.conversion import (
    UNIX_EPOCH, normalize_datetime, absolute_to_ticks, ticks_to_datetime,
)

logger = logging.getLogger(__name__)

INT64_UNBOUNDED = int(np.iinfo(np.int64).max)
# Finite entries of an int64 matrix stay below this, so two of them sum safely
_INT64_SAFE = 2 ** 61


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class STNConfig:
    """Configuration for a network."""
    epoch: datetime = UNIX_EPOCH
    solve_timeout_seconds: Optional[float] = None


@dataclass(frozen=True)
class SolveStats:
    """Outcome of one successful solve."""
    passes: int
    tightened_edges: int
    duration_ms: float
    time_points: int


# =============================================================================
# NETWORK
# =============================================================================

class SimpleTemporalNetwork:
    """
    Simple Temporal Network with PC-2 path consistency.

    Usage:
        stn = SimpleTemporalNetwork()
        stn.add_time_point("a")
        stn.add_constraint(ORIGIN, "a", 0, 5000)
        stn.solve()
        stn.earliest("a")  # 0
    """

    def __init__(
        self,
        config: Optional[STNConfig] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self._config = config or STNConfig()
        # Fixed for the lifetime of the network; every absolute bound depends on it
        self._epoch = normalize_datetime(self._config.epoch)
        self._timeout = self._config.solve_timeout_seconds
        self._metrics = metrics
        self._audit = LogCollector("stn")

        self._points: List[str] = [ORIGIN]
        self._index: Dict[str, int] = {ORIGIN: 0}
        self._edges: Dict[Tuple[str, str], Constraint] = {}
        # Assertions whose intersection with the stored edge came out empty
        self._conflicts: Dict[Tuple[str, str], List[Constraint]] = {}

        self._minimal: Optional[np.ndarray] = np.zeros((1, 1), dtype=np.int64)
        self._state = NetworkState.SOLVED
        self._inconsistency: Optional[InconsistentNetwork] = None
        self._last_stats = SolveStats(
            passes=0, tightened_edges=0, duration_ms=0.0, time_points=1
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def epoch(self) -> datetime:
        return self._epoch

    @property
    def state(self) -> NetworkState:
        return self._state

    @property
    def is_solved(self) -> bool:
        return self._state == NetworkState.SOLVED

    @property
    def audit_log(self) -> LogCollector:
        return self._audit

    @property
    def metrics(self) -> Optional[MetricsCollector]:
        return self._metrics

    @property
    def solve_timeout_seconds(self) -> Optional[float]:
        return self._timeout

    @property
    def last_solve_stats(self) -> SolveStats:
        return self._last_stats

    @property
    def inconsistency(self) -> Optional[InconsistentNetwork]:
        """The error that put the network into the inconsistent state, if any."""
        return self._inconsistency

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._index

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return (
            f"SimpleTemporalNetwork(points={len(self._points)}, "
            f"edges={len(self._edges)}, state={self._state.value})"
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_time_point(self, point_id: str) -> None:
        """Add a time point. Raises DuplicateId if the id is taken."""
        if not isinstance(point_id, str) or not point_id:
            raise ValueError("Time point id must be a non-empty string")
        if point_id in self._index:
            raise DuplicateId(point_id)

        self._index[point_id] = len(self._points)
        self._points.append(point_id)
        self._invalidate()
        self._audit.record(AuditEventType.TIME_POINT, "added", entity_id=point_id)

    def add_constraint(
        self,
        from_point: str,
        to_point: str,
        lower: Optional[int],
        upper: Optional[int]
    ) -> Constraint:
        """
        Constrain `to_point - from_point` to [lower, upper] ticks.

        An existing constraint on the same ordered pair is intersected with the
        new bounds. Returns the stored constraint for the pair.
        """
        constraint = Constraint(from_point, to_point, lower, upper)
        self._validate(constraint)
        return self._insert(constraint)

    def add_constraints(self, constraints: Iterable[Constraint]) -> Tuple[Constraint, ...]:
        """
        Insert several constraints all-or-nothing.

        Every constraint is validated before any is inserted, so a rejected
        batch leaves the network unchanged.
        """
        batch = tuple(constraints)
        for constraint in batch:
            self._validate(constraint)
        return tuple(self._insert(c) for c in batch)

    def remove_constraint(self, from_point: str, to_point: str) -> bool:
        """
        Remove every constraint stored on the ordered pair.

        This is a repair: an inconsistent network becomes unsolved again.
        Returns False when nothing was stored on the pair.
        """
        self._require_point(from_point)
        self._require_point(to_point)
        key = (from_point, to_point)
        removed = self._edges.pop(key, None) is not None
        removed = self._conflicts.pop(key, None) is not None or removed
        if removed:
            self._repair()
            self._audit.record(
                AuditEventType.CONSTRAINT, "removed",
                entity_id=f"{from_point}->{to_point}"
            )
        return removed

    def remove_time_point(self, point_id: str) -> None:
        """Remove a time point and every constraint touching it."""
        if point_id == ORIGIN:
            raise ValueError("The origin cannot be removed")
        self._require_point(point_id)

        self._edges = {
            k: c for k, c in self._edges.items() if point_id not in k
        }
        self._conflicts = {
            k: cs for k, cs in self._conflicts.items() if point_id not in k
        }
        self._points.remove(point_id)
        self._index = {p: i for i, p in enumerate(self._points)}
        self._repair()
        self._audit.record(AuditEventType.TIME_POINT, "removed", entity_id=point_id)

    def _validate(self, constraint: Constraint) -> None:
        for bound in (constraint.lower, constraint.upper):
            if bound is not None and (isinstance(bound, bool) or not isinstance(bound, int)):
                raise TypeError(f"Bounds must be integer ticks or None, got {bound!r}")
        if constraint.is_empty:
            raise InvalidBounds(constraint.lower, constraint.upper)
        self._require_point(constraint.from_point)
        self._require_point(constraint.to_point)

    def _insert(self, constraint: Constraint) -> Constraint:
        key = (constraint.from_point, constraint.to_point)
        existing = self._edges.get(key)
        if existing is None:
            stored = constraint
            self._edges[key] = stored
        else:
            merged = existing.intersect(constraint)
            if merged.is_empty:
                self._conflicts.setdefault(key, []).append(constraint)
                stored = existing
            else:
                stored = merged
                self._edges[key] = stored

        self._invalidate()
        self._audit.record(
            AuditEventType.CONSTRAINT, "added",
            entity_id=f"{constraint.from_point}->{constraint.to_point}",
            metadata={"lower": constraint.lower, "upper": constraint.upper}
        )
        return stored

    def _invalidate(self) -> None:
        # Insertions only tighten, so an inconsistent network stays inconsistent
        self._minimal = None
        if self._state != NetworkState.INCONSISTENT:
            self._state = NetworkState.UNSOLVED

    def _repair(self) -> None:
        self._minimal = None
        self._state = NetworkState.UNSOLVED
        self._inconsistency = None

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def time_points(self) -> List[str]:
        """All time points in arena order, origin first."""
        return list(self._points)

    def constraints(self) -> List[Constraint]:
        """The stored edge list (the surface callers persist and re-add)."""
        stored = list(self._edges.values())
        for conflicts in self._conflicts.values():
            stored.extend(conflicts)
        return stored

    def constraint(self, from_point: str, to_point: str) -> Constraint:
        """
        Current bounds of `to_point - from_point`.

        Minimal-network bounds when solved; otherwise the intersection of what
        is stored on the pair in either direction, conflicting assertions
        included (a contradicted pair comes back empty).
        """
        i = self._require_point(from_point)
        j = self._require_point(to_point)

        if self._state == NetworkState.SOLVED:
            bounds = self._matrix_bounds(i, j)
            return Constraint(from_point, to_point, bounds.lower, bounds.upper)

        if i == j:
            return Constraint(from_point, to_point, 0, 0)
        result = Constraint(from_point, to_point, None, None)
        forward = (from_point, to_point)
        backward = (to_point, from_point)
        direct = [self._edges[forward]] if forward in self._edges else []
        inverse = [self._edges[backward]] if backward in self._edges else []
        for stored in direct + self._conflicts.get(forward, []):
            result = result.intersect(stored)
        for stored in inverse + self._conflicts.get(backward, []):
            result = result.intersect(stored.reversed())
        return result

    def distance(self, from_point: str, to_point: str) -> TickRange:
        """Solved bounds of `to_point - from_point`. Requires a solved network."""
        i = self._require_point(from_point)
        j = self._require_point(to_point)
        self._require_solved()
        return self._matrix_bounds(i, j)

    def earliest(self, point_id: str) -> Optional[int]:
        """Earliest tick of the point relative to the origin (None = unbounded)."""
        return self.distance(ORIGIN, point_id).lower

    def latest(self, point_id: str) -> Optional[int]:
        """Latest tick of the point relative to the origin (None = unbounded)."""
        return self.distance(ORIGIN, point_id).upper

    def bounds(self, point_id: str) -> TickRange:
        return self.distance(ORIGIN, point_id)

    def earliest_schedule(self) -> Dict[str, int]:
        """
        Earliest-time assignment for every point with a finite earliest bound.

        On a minimal network this assignment satisfies every constraint among
        the points it covers.
        """
        self._require_solved()
        schedule = {}
        for point in self._points:
            value = self._matrix_bounds(0, self._index[point]).lower
            if value is not None:
                schedule[point] = value
        return schedule

    def to_ticks(self, value) -> int:
        """Absolute time (ISO-8601, datetime, or seconds after epoch) to ticks."""
        return absolute_to_ticks(value, self._epoch)

    def to_datetime(self, ticks: int) -> datetime:
        return ticks_to_datetime(ticks, self._epoch)

    def _require_point(self, point_id: str) -> int:
        index = self._index.get(point_id)
        if index is None:
            raise UnknownPoint(point_id)
        return index

    def _require_solved(self) -> None:
        if self._state == NetworkState.INCONSISTENT:
            raise self._reraise_inconsistency()
        if self._state != NetworkState.SOLVED:
            raise StaleBounds()

    def _reraise_inconsistency(self) -> InconsistentNetwork:
        known = self._inconsistency
        return InconsistentNetwork(known.witness, known.via)

    def _matrix_bounds(self, i: int, j: int) -> TickRange:
        d = self._minimal
        unbounded = _unbounded(d)
        lower = None if d[j, i] == unbounded else -int(d[j, i])
        upper = None if d[i, j] == unbounded else int(d[i, j])
        return TickRange(lower, upper)

    # -------------------------------------------------------------------------
    # Solving
    # -------------------------------------------------------------------------

    def solve(self, timeout_seconds: Optional[float] = None) -> SolveStats:
        """
        Run PC-2 path consistency to a fixpoint.

        For every triple (i, k, j) the bounds of (i, j) are intersected with the
        composition [l_ik + l_kj, u_ik + u_kj]; full passes repeat until no edge
        changes. Raises InconsistentNetwork as soon as a self-loop excludes zero,
        SolveTimeout if the deadline passes. Neither leaves partial bounds
        behind. Solving an already-solved network is a no-op.
        """
        if self._state == NetworkState.SOLVED:
            return self._last_stats
        if self._state == NetworkState.INCONSISTENT:
            raise self._reraise_inconsistency()

        timeout = timeout_seconds if timeout_seconds is not None else self._timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        self._audit.record(
            AuditEventType.SOLVE, "started",
            metadata={"time_points": len(self._points), "edges": len(self._edges)}
        )
        started = time.perf_counter()

        working = self._build_matrix()
        original = working.copy()
        try:
            passes = self._path_consistency(working, deadline, timeout)
        except InconsistentNetwork as exc:
            self._state = NetworkState.INCONSISTENT
            self._inconsistency = exc
            self._minimal = None
            self._audit.record(
                AuditEventType.SOLVE, "inconsistent",
                entity_id=exc.witness.from_point,
                metadata={"witness": exc.witness.describe(), "via": exc.via}
            )
            if self._metrics:
                self._metrics.record("stn_inconsistent_total", 1)
            logger.debug("STN inconsistent: %s", exc)
            raise
        except SolveTimeout:
            self._audit.record(
                AuditEventType.SOLVE, "timeout", metadata={"timeout_seconds": timeout}
            )
            logger.warning(
                "STN solve exceeded %ss with %d time points; bounds left unchanged",
                timeout, len(self._points)
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        stats = SolveStats(
            passes=passes,
            tightened_edges=int(np.count_nonzero(working != original)),
            duration_ms=duration_ms,
            time_points=len(self._points)
        )

        self._minimal = working
        self._state = NetworkState.SOLVED
        self._last_stats = stats

        self._audit.record(
            AuditEventType.SOLVE, "completed",
            metadata={"passes": stats.passes, "tightened_edges": stats.tightened_edges}
        )
        if self._metrics:
            self._metrics.record("stn_solve_duration_ms", duration_ms)
            self._metrics.record("stn_solve_passes", stats.passes)
            self._metrics.record("stn_tightened_edges", stats.tightened_edges)
            self._metrics.record("stn_time_points", stats.time_points)
        logger.debug(
            "STN solved: %d points, %d passes, %d edges tightened",
            stats.time_points, stats.passes, stats.tightened_edges
        )
        return stats

    def consistent(self) -> bool:
        """
        Whether the constraints admit a schedule.

        Solves if needed; never modifies the stored constraints.
        """
        if self._state == NetworkState.SOLVED:
            return True
        if self._state == NetworkState.INCONSISTENT:
            return False
        try:
            self.solve()
        except InconsistentNetwork:
            return False
        return True

    def _build_matrix(self) -> np.ndarray:
        n = len(self._points)
        constraints = self.constraints()
        magnitude = max(
            (abs(b) for c in constraints for b in (c.lower, c.upper) if b is not None),
            default=0
        )
        # Shortest paths are simple, so finite entries never exceed n * magnitude
        if magnitude * n < _INT64_SAFE:
            d = np.full((n, n), INT64_UNBOUNDED, dtype=np.int64)
        else:
            logger.debug("Bounds up to %d ticks; solving with Python integers", magnitude)
            d = np.full((n, n), math.inf, dtype=object)
        np.fill_diagonal(d, 0)
        for constraint in constraints:
            i = self._index[constraint.from_point]
            j = self._index[constraint.to_point]
            if constraint.upper is not None:
                d[i, j] = min(d[i, j], constraint.upper)
            if constraint.lower is not None:
                d[j, i] = min(d[j, i], -constraint.lower)
        return d

    def _path_consistency(
        self,
        d: np.ndarray,
        deadline: Optional[float],
        timeout: Optional[float]
    ) -> int:
        """Tighten `d` in place to the fixpoint. Returns the number of passes."""
        self._check_self_loops(d, via=None)
        n = d.shape[0]
        unbounded = _unbounded(d)
        through = np.empty_like(d)
        passes = 0
        while True:
            passes += 1
            before = d.copy()
            for k in range(n):
                if deadline is not None and time.monotonic() > deadline:
                    raise SolveTimeout(timeout)
                column = d[:, k:k + 1].copy()
                row = d[k:k + 1, :].copy()
                # Unbounded legs stay unbounded; only finite legs are summed
                finite = (column != unbounded) & (row != unbounded)
                through.fill(unbounded)
                np.add(column, row, out=through, where=finite)
                np.minimum(d, through, out=d)
                self._check_self_loops(d, via=self._points[k])
            if np.array_equal(before, d):
                return passes

    def _check_self_loops(self, d: np.ndarray, via: Optional[str]) -> None:
        negative = np.flatnonzero(np.diagonal(d) < 0)
        if negative.size:
            i = int(negative[0])
            loop = int(d[i, i])
            point = self._points[i]
            raise InconsistentNetwork(
                Constraint(point, point, lower=-loop, upper=loop), via=via
            )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def copy(self) -> SimpleTemporalNetwork:
        """Independent snapshot sharing only the epoch and metrics collector."""
        clone = SimpleTemporalNetwork(
            STNConfig(epoch=self._epoch, solve_timeout_seconds=self._timeout),
            metrics=self._metrics
        )
        clone._points = list(self._points)
        clone._index = dict(self._index)
        clone._edges = dict(self._edges)
        clone._conflicts = {k: list(v) for k, v in self._conflicts.items()}
        clone._minimal = None if self._minimal is None else self._minimal.copy()
        clone._state = self._state
        clone._inconsistency = self._inconsistency
        clone._last_stats = self._last_stats
        return clone


def _unbounded(d: np.ndarray):
    """The +inf sentinel of a distance matrix."""
    return math.inf if d.dtype == object else INT64_UNBOUNDED
