"""
Network Composition
===================

Builds new networks out of independent ones.

GUARANTEES:
- Inputs are never mutated; every merge runs on a snapshot copy
- A merge is all-or-nothing: on InconsistentNetwork / SolveTimeout the error
  propagates and no partially merged network is returned
- Both inputs must share an epoch (EpochMismatch otherwise)
- union() unifies identical ids; compose() never aliases ids implicitly
"""

from __future__ import annotations
from typing import Iterable, List, Optional, Sequence
import logging

from ..contracts.base import (
    ORIGIN, Constraint, DuplicateId, EpochMismatch, UnknownPoint,
)
from ..contracts.events import AuditEventType
from .stn import SimpleTemporalNetwork

logger = logging.getLogger(__name__)


def _check_epochs(first: SimpleTemporalNetwork, second: SimpleTemporalNetwork) -> None:
    if first.epoch != second.epoch:
        raise EpochMismatch(first.epoch, second.epoch)


def _merged_copy(
    first: SimpleTemporalNetwork,
    second: SimpleTemporalNetwork,
    extra: Sequence[Constraint] = ()
) -> SimpleTemporalNetwork:
    merged = first.copy()
    for point in second.time_points():
        if point not in merged:
            merged.add_time_point(point)
    merged.add_constraints(list(second.constraints()) + list(extra))
    return merged


def _finish(
    merged: SimpleTemporalNetwork,
    action: str,
    timeout_seconds: Optional[float]
) -> SimpleTemporalNetwork:
    merged.solve(timeout_seconds=timeout_seconds)
    merged.audit_log.record(
        AuditEventType.MERGE, action,
        metadata={"time_points": len(merged), "edges": len(merged.constraints())}
    )
    logger.debug("%s produced a network with %d time points", action, len(merged))
    return merged


def union(
    first: SimpleTemporalNetwork,
    second: SimpleTemporalNetwork,
    timeout_seconds: Optional[float] = None
) -> SimpleTemporalNetwork:
    """
    Merge two networks: identical ids are the same time point, others coexist.

    The merged constraint set is solved once and the solved network returned.
    """
    _check_epochs(first, second)
    merged = _merged_copy(first, second)
    return _finish(merged, "union", timeout_seconds)


def compose(
    first: SimpleTemporalNetwork,
    second: SimpleTemporalNetwork,
    bridging: Iterable[Constraint],
    timeout_seconds: Optional[float] = None
) -> SimpleTemporalNetwork:
    """
    Chain two networks through caller-supplied bridging constraints.

    The networks may share only the origin; any other shared id raises
    DuplicateId. Each bridging constraint must join a non-origin point of one
    network to a non-origin point of the other.
    """
    _check_epochs(first, second)

    first_points = set(first.time_points()) - {ORIGIN}
    second_points = set(second.time_points()) - {ORIGIN}
    shared = sorted(first_points & second_points)
    if shared:
        raise DuplicateId(shared[0])

    bridges: List[Constraint] = list(bridging)
    for bridge in bridges:
        if ORIGIN in (bridge.from_point, bridge.to_point):
            raise ValueError(
                f"Bridging constraint {bridge.describe()} must join non-origin "
                f"points of the two networks"
            )
        for point in (bridge.from_point, bridge.to_point):
            if point not in first_points and point not in second_points:
                raise UnknownPoint(point)
        ends = {bridge.from_point in first_points, bridge.to_point in first_points}
        if ends != {True, False}:
            raise ValueError(
                f"Bridging constraint {bridge.describe()} must join the two networks"
            )

    merged = _merged_copy(first, second, bridges)
    return _finish(merged, "compose", timeout_seconds)


def chain(
    first: SimpleTemporalNetwork,
    second: SimpleTemporalNetwork,
    exit_point: str,
    entry_point: str,
    lower: Optional[int] = 0,
    upper: Optional[int] = None,
    timeout_seconds: Optional[float] = None
) -> SimpleTemporalNetwork:
    """Compose with one bridge: entry_point - exit_point in [lower, upper]."""
    return compose(
        first, second,
        [Constraint(exit_point, entry_point, lower, upper)],
        timeout_seconds=timeout_seconds
    )


__all__ = [
    'union',
    'compose',
    'chain',
]
