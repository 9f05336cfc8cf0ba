"""
Core Temporal Constraint Engine

RESPONSIBILITY: Constraint networks, path-consistency solving, Allen relations,
                intervals, composition and parallel batch solving
ALLOWED INPUTS: Tick-valued constraints; continuous time via the temporal layer
OUTPUTS: Solved bounds, relation sets, composed networks, batch reports

WHAT THIS LAYER MUST NOT DO:
============================
- Choose actions or search for plans (callers only ask "is this feasible")
- Auto-solve on a bound query (solve cost stays visible to the caller)
- Return bounds from a stale or inconsistent network
- Persist networks (callers serialize the edge list and re-add it)

BOUNDARY ENFORCEMENT:
=====================
- Time points are handles local to one network, never a global table
- Composition builds new networks; inputs are never mutated
- Batch workers own their network exclusively for the duration of a solve
"""

from .stn import SimpleTemporalNetwork, STNConfig, SolveStats
from .allen import AllenRelation, AllenBridge, RelationSet, ALL_RELATIONS
from .interval import Interval, add_interval, assert_relation, allen_relation
from .composition import union, compose, chain
from .topology import TopologyEngine, GraphMetrics, partition, shared_time_points
from .batch import (
    BatchSolveConfig, BatchSolver, BatchSolveReport, ComponentResult,
    ComponentStatus, solve_partitioned,
)
from .participants import Participant, ParticipantRegistry, DEFAULT_AGENT_CAPABILITIES
from .bridges import Bridge, BridgeType
from .timeline import Timeline, Slot, Segment

__all__ = [
    'SimpleTemporalNetwork',
    'STNConfig',
    'SolveStats',
    'AllenRelation',
    'AllenBridge',
    'RelationSet',
    'ALL_RELATIONS',
    'Interval',
    'add_interval',
    'assert_relation',
    'allen_relation',
    'union',
    'compose',
    'chain',
    'TopologyEngine',
    'GraphMetrics',
    'partition',
    'shared_time_points',
    'BatchSolveConfig',
    'BatchSolver',
    'BatchSolveReport',
    'ComponentResult',
    'ComponentStatus',
    'solve_partitioned',
    'Participant',
    'ParticipantRegistry',
    'DEFAULT_AGENT_CAPABILITIES',
    'Bridge',
    'BridgeType',
    'Timeline',
    'Slot',
    'Segment',
]
