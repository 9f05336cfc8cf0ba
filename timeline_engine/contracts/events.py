"""
Audit and Metric Records

Immutable records emitted by the engine layers and consumed by the
observability collectors. Records are copies; collectors never hand them back
to the layer that produced them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple
from enum import Enum
import hashlib


class AuditEventType(Enum):
    """Explicit audit event types."""
    TIME_POINT = "time_point"
    CONSTRAINT = "constraint"
    SOLVE = "solve"
    MERGE = "merge"
    BATCH = "batch"
    PARTICIPANT = "participant"
    ERROR = "error"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(
        sequence: int,
        event_type: AuditEventType,
        layer: str,
        action: str,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, object]] = None
    ) -> AuditLogEntry:
        """Factory with deterministic entry id derived from the layer sequence."""
        seed = f"{layer}|{sequence}|{action}|{entity_id or ''}"
        entry_hash = hashlib.sha256(seed.encode('utf-8')).hexdigest()[:16]
        return AuditLogEntry(
            entry_id=f"audit_{entry_hash}",
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=tuple((k, str(v)) for k, v in (metadata or {}).items())
        )

    def get(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
