"""
Contracts Layer

Immutable data model, error taxonomy, and audit records shared by all layers.
"""

from .base import (
    ORIGIN,
    ErrorCode, Error, TemporalError,
    DuplicateId, UnknownPoint, InvalidBounds, InconsistentNetwork,
    StaleBounds, SolveTimeout, PrecisionLoss, InvalidTimeSpec,
    EpochMismatch, OverlappingNetworks, UnknownInterval, UnknownParticipant, UnknownBridge,
    TickRange, Constraint, NetworkState,
)
from .events import AuditEventType, AuditLogEntry, MetricPoint

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
    'AuditEventType',
    'AuditLogEntry',
    'MetricPoint',
]
