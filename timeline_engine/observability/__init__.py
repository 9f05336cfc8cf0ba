"""
Observability & Audit Layer

RESPONSIBILITY: Audit logging and metrics for network mutation and solving
ALLOWED INPUTS: Audit entries and metric values from other layers
OUTPUTS: LogCollector, MetricsCollector

WHAT THIS LAYER MUST NOT DO:
============================
- Modify network behavior
- Filter or interpret events (only record them)
- Make decisions based on logged data
- Raise into the caller when recording

BOUNDARY ENFORCEMENT:
=====================
- Receives immutable records (never references to network state)
- Provides read-only access to logs and metrics
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from enum import Enum
import threading

# ONLY import from contracts - never from other layers' implementations
from ..contracts.events import AuditLogEntry, AuditEventType, MetricPoint


# =============================================================================
# LOG COLLECTOR
# =============================================================================

class LogCollector:
    """
    Append-only audit log for one engine object (a network, a batch run).

    Collectors are append-only - no modification of collected data.
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []
        self._sequence: int = 0

    def record(
        self,
        event_type: AuditEventType,
        action: str,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, object]] = None
    ) -> AuditLogEntry:
        """Build and collect an entry stamped with this collector's sequence."""
        entry = AuditLogEntry.create(
            sequence=self._sequence,
            event_type=event_type,
            layer=self._layer_name,
            action=action,
            entity_id=entity_id,
            metadata=metadata
        )
        self.collect(entry)
        return entry

    def collect(self, entry: AuditLogEntry):
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)
        self._sequence += 1

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        action: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = self._entries

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]

        if action:
            entries = [e for e in entries if e.action == action]

        return list(entries)

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect and aggregate engine metrics.

    One collector may be shared by many networks and by batch workers, so
    recording is serialized with a lock.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._lock = threading.Lock()
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="stn_solve_duration_ms",
                metric_type=MetricType.TIMING,
                description="Wall time of one path-consistency solve"
            ),
            MetricDefinition(
                name="stn_solve_passes",
                metric_type=MetricType.HISTOGRAM,
                description="Full PC-2 passes needed to reach the fixpoint"
            ),
            MetricDefinition(
                name="stn_tightened_edges",
                metric_type=MetricType.HISTOGRAM,
                description="Directed edges tightened by one solve"
            ),
            MetricDefinition(
                name="stn_inconsistent_total",
                metric_type=MetricType.COUNTER,
                description="Solves that ended in an inconsistency"
            ),
            MetricDefinition(
                name="stn_time_points",
                metric_type=MetricType.GAUGE,
                description="Time points in the network at solve time"
            ),
            MetricDefinition(
                name="batch_components_total",
                metric_type=MetricType.COUNTER,
                description="Components dispatched to the batch worker pool"
            ),
            MetricDefinition(
                name="batch_failures_total",
                metric_type=MetricType.COUNTER,
                description="Components whose batch solve did not succeed",
                labels=("status",)
            ),
            MetricDefinition(
                name="batch_duration_ms",
                metric_type=MetricType.TIMING,
                description="Wall time of one batch solve including the barrier"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            labels=label_tuple
        )
        with self._lock:
            self._metrics.setdefault(metric_name, []).append(point)

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        """Get metric data points."""
        with self._lock:
            return list(self._metrics.get(metric_name, []))

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self.get_metric(metric_name)
        return points[-1] if points else None

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        points = self.get_metric(metric_name)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


__all__ = [
    'LogCollector',
    'MetricType',
    'MetricDefinition',
    'MetricsCollector',
]
