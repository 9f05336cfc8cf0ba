"""
Parallel Batch Solving
======================

Solves many networks that share no time points on a fixed-size worker pool.

INVARIANTS:
- Inputs are verified pairwise disjoint (origin excepted) before any work starts
- Each worker owns its network exclusively for the duration of the call
- Results are collected only after every task completes (barrier)
- One component's failure never cancels its siblings
- Result order follows input order, independent of pool size or scheduling
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, Future, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple
import logging
import time

from ..contracts.base import (
    Error, TemporalError, InconsistentNetwork, SolveTimeout, OverlappingNetworks,
)
from ..contracts.events import AuditEventType
from ..observability import LogCollector, MetricsCollector
from .stn import SimpleTemporalNetwork, SolveStats
from .topology import partition, shared_time_points

logger = logging.getLogger(__name__)


@dataclass
class BatchSolveConfig:
    """Configuration for batch solving."""
    max_workers: int = 4
    solve_timeout_seconds: Optional[float] = None  # per component
    all_or_nothing: bool = False


class ComponentStatus(Enum):
    CONSISTENT = "consistent"
    INCONSISTENT = "inconsistent"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ComponentResult:
    """Outcome of solving one network of the batch."""
    index: int
    status: ComponentStatus
    time_points: int
    solve_ms: float
    stats: Optional[SolveStats] = None
    error: Optional[Error] = None
    exception: Optional[TemporalError] = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.status == ComponentStatus.CONSISTENT


@dataclass(frozen=True)
class BatchSolveReport:
    """Aggregate of every component result, in input order."""
    results: Tuple[ComponentResult, ...]
    duration_ms: float

    @property
    def all_ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def ok_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failures(self) -> Tuple[ComponentResult, ...]:
        return tuple(r for r in self.results if not r.ok)

    def raise_first_failure(self) -> None:
        """All-or-nothing view of the report: raise the first failure, if any."""
        failures = self.failures
        if failures:
            raise failures[0].exception


class BatchSolver:
    """
    Fixed-size worker pool for independent networks.

    Usage:
        solver = BatchSolver(BatchSolveConfig(max_workers=8))
        report = solver.solve_all(networks)
        for result in report.failures:
            ...
    """

    def __init__(
        self,
        config: Optional[BatchSolveConfig] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self._config = config or BatchSolveConfig()
        if self._config.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._metrics = metrics
        self._audit = LogCollector("batch")

    @property
    def config(self) -> BatchSolveConfig:
        return self._config

    @property
    def audit_log(self) -> LogCollector:
        return self._audit

    def solve_all(self, networks: Sequence[SimpleTemporalNetwork]) -> BatchSolveReport:
        """
        Solve every network and report each outcome.

        Raises OverlappingNetworks if two inputs share a time point (or are the
        same object). With `all_or_nothing`, the first failure is raised after
        the barrier instead of being reported.
        """
        networks = list(networks)
        self._check_disjoint(networks)

        started = time.perf_counter()
        timeout = self._config.solve_timeout_seconds
        with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
            futures: List[Future] = [
                pool.submit(_solve_one, index, network, timeout)
                for index, network in enumerate(networks)
            ]
            wait(futures)
        # Unexpected (non-temporal) errors propagate from here, after the barrier
        results = tuple(f.result() for f in futures)
        report = BatchSolveReport(
            results=results,
            duration_ms=(time.perf_counter() - started) * 1000
        )

        self._record(report)
        if self._config.all_or_nothing:
            report.raise_first_failure()
        return report

    def _check_disjoint(self, networks: Sequence[SimpleTemporalNetwork]) -> None:
        if len({id(n) for n in networks}) != len(networks):
            raise OverlappingNetworks(("<same network submitted twice>",))
        shared = shared_time_points(networks)
        if shared:
            raise OverlappingNetworks(tuple(shared))

    def _record(self, report: BatchSolveReport) -> None:
        failures = report.failures
        self._audit.record(
            AuditEventType.BATCH, "completed",
            metadata={
                "components": len(report.results),
                "failures": len(failures),
                "duration_ms": round(report.duration_ms, 3),
            }
        )
        for failure in failures:
            self._audit.record(
                AuditEventType.ERROR, failure.status.value,
                entity_id=str(failure.index),
                metadata={"message": failure.error.message}
            )
            logger.warning(
                "Batch component %d failed (%s): %s",
                failure.index, failure.status.value, failure.error.message
            )

        if self._metrics:
            self._metrics.record("batch_components_total", len(report.results))
            self._metrics.record("batch_duration_ms", report.duration_ms)
            for failure in failures:
                self._metrics.record(
                    "batch_failures_total", 1, labels={"status": failure.status.value}
                )


def _solve_one(
    index: int,
    network: SimpleTemporalNetwork,
    timeout: Optional[float]
) -> ComponentResult:
    started = time.perf_counter()
    try:
        stats = network.solve(timeout_seconds=timeout)
    except InconsistentNetwork as exc:
        return _failed(index, network, started, ComponentStatus.INCONSISTENT, exc)
    except SolveTimeout as exc:
        return _failed(index, network, started, ComponentStatus.TIMEOUT, exc)

    return ComponentResult(
        index=index,
        status=ComponentStatus.CONSISTENT,
        time_points=len(network),
        solve_ms=(time.perf_counter() - started) * 1000,
        stats=stats
    )


def _failed(
    index: int,
    network: SimpleTemporalNetwork,
    started: float,
    status: ComponentStatus,
    exc: TemporalError
) -> ComponentResult:
    return ComponentResult(
        index=index,
        status=status,
        time_points=len(network),
        solve_ms=(time.perf_counter() - started) * 1000,
        error=exc.to_error().with_context("component", str(index)),
        exception=exc
    )


def solve_partitioned(
    stn: SimpleTemporalNetwork,
    config: Optional[BatchSolveConfig] = None,
    metrics: Optional[MetricsCollector] = None
) -> Tuple[List[SimpleTemporalNetwork], BatchSolveReport]:
    """
    Partition a network into connected components and batch-solve them.

    Returns the component networks (solved where consistent) with the report.
    The input network is left untouched.
    """
    parts = partition(stn)
    report = BatchSolver(config, metrics or stn.metrics).solve_all(parts)
    return parts, report


__all__ = [
    'BatchSolveConfig',
    'ComponentStatus',
    'ComponentResult',
    'BatchSolveReport',
    'BatchSolver',
    'solve_partitioned',
]
