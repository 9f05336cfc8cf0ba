"""
Timeline Engine

A temporal constraint engine: Simple Temporal Networks solved by path
consistency, an Allen interval algebra bridge, and tick-precision time
conversion. Layers communicate only through explicit contracts.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Immutable records: Constraint, TickRange, Error, audit entries
   - Error taxonomy rooted at TemporalError

2. TEMPORAL CONVERSION (temporal/)
   - Seconds, ISO-8601 timestamps and durations <-> integer millisecond ticks
   - MUST NOT: round silently (PrecisionLoss beyond 1e-4 s)

3. CORE ENGINE (core/)
   - STN + PC-2, AllenBridge, intervals, composition, batch solving
   - Timeline facade: schedule queries, bridges and segmentation
   - MUST NOT: plan, auto-solve, or serve stale bounds

4. OBSERVABILITY (observability/)
   - Append-only audit logs and metrics
   - MUST NOT: influence engine behavior
"""

from .contracts import (
    ORIGIN,
    ErrorCode, Error, TemporalError,
    DuplicateId, UnknownPoint, InvalidBounds, InconsistentNetwork,
    StaleBounds, SolveTimeout, PrecisionLoss, InvalidTimeSpec,
    EpochMismatch, OverlappingNetworks, UnknownInterval, UnknownParticipant, UnknownBridge,
    TickRange, Constraint, NetworkState,
)
from .core import (
    SimpleTemporalNetwork, STNConfig, SolveStats,
    AllenRelation, AllenBridge, RelationSet,
    Interval, add_interval, assert_relation, allen_relation,
    union, compose, chain,
    partition, BatchSolveConfig, BatchSolver, BatchSolveReport, solve_partitioned,
    Participant, ParticipantRegistry,
    Bridge, BridgeType, Timeline, Slot, Segment,
)
from .observability import LogCollector, MetricsCollector

__version__ = "0.1.0"

__all__ = [
    'ORIGIN',
    'ErrorCode',
    'Error',
    'TemporalError',
    'DuplicateId',
    'UnknownPoint',
    'InvalidBounds',
    'InconsistentNetwork',
    'StaleBounds',
    'SolveTimeout',
    'PrecisionLoss',
    'InvalidTimeSpec',
    'EpochMismatch',
    'OverlappingNetworks',
    'UnknownInterval',
    'UnknownParticipant',
    'UnknownBridge',
    'TickRange',
    'Constraint',
    'NetworkState',
    'SimpleTemporalNetwork',
    'STNConfig',
    'SolveStats',
    'AllenRelation',
    'AllenBridge',
    'RelationSet',
    'Interval',
    'add_interval',
    'assert_relation',
    'allen_relation',
    'union',
    'compose',
    'chain',
    'partition',
    'BatchSolveConfig',
    'BatchSolver',
    'BatchSolveReport',
    'solve_partitioned',
    'Participant',
    'ParticipantRegistry',
    'Bridge',
    'BridgeType',
    'Timeline',
    'Slot',
    'Segment',
    'LogCollector',
    'MetricsCollector',
]
