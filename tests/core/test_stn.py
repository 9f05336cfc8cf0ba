"""
Simple Temporal Network Tests
=============================

INVARIANTS TESTED:
1. Insertion errors are synchronous and leave the network unchanged
2. Constraints on one ordered pair are intersected (tightest wins)
3. Bound queries never auto-solve and fail closed when stale or inconsistent
4. Inconsistency is terminal until a removal repairs the network
5. Timed-out solves commit nothing
"""

import pytest
from datetime import datetime, timezone

from timeline_engine.contracts.base import (
    ORIGIN, Constraint, TickRange, NetworkState, ErrorCode,
    DuplicateId, UnknownPoint, InvalidBounds, InconsistentNetwork,
    StaleBounds, SolveTimeout,
)
from timeline_engine.contracts.events import AuditEventType
from timeline_engine.core.stn import SimpleTemporalNetwork, STNConfig
from timeline_engine.observability import MetricsCollector


def make_stn(*points: str, **kwargs) -> SimpleTemporalNetwork:
    """Factory for a network with the given time points."""
    stn = SimpleTemporalNetwork(**kwargs)
    for point in points:
        stn.add_time_point(point)
    return stn


class TestConstruction:

    def test_new_network_is_trivially_consistent(self):
        stn = SimpleTemporalNetwork()

        assert stn.consistent() is True
        assert stn.state == NetworkState.SOLVED
        assert stn.time_points() == [ORIGIN]
        assert stn.earliest(ORIGIN) == 0
        assert stn.latest(ORIGIN) == 0

    def test_duplicate_time_point(self):
        stn = make_stn("a")

        with pytest.raises(DuplicateId):
            stn.add_time_point("a")
        with pytest.raises(DuplicateId):
            stn.add_time_point(ORIGIN)

        assert stn.time_points() == [ORIGIN, "a"]

    def test_invalid_time_point_id(self):
        stn = SimpleTemporalNetwork()
        with pytest.raises(ValueError):
            stn.add_time_point("")

    def test_epoch_is_fixed_at_creation(self):
        config = STNConfig(epoch=datetime(2025, 1, 1))
        stn = SimpleTemporalNetwork(config)

        config.epoch = datetime(2030, 1, 1, tzinfo=timezone.utc)

        assert stn.epoch == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert stn.to_ticks("2025-01-01T00:00:01Z") == 1000
        assert stn.to_datetime(1000) == datetime(2025, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


class TestAddConstraint:

    def test_unknown_point(self):
        stn = make_stn("a")

        with pytest.raises(UnknownPoint) as exc_info:
            stn.add_constraint("a", "missing", 0, 1)

        assert exc_info.value.point_id == "missing"
        assert stn.constraints() == []

    def test_invalid_bounds_rejected_not_clamped(self):
        stn = make_stn("a", "b")

        with pytest.raises(InvalidBounds):
            stn.add_constraint("a", "b", 10, 5)

        assert stn.constraints() == []

    def test_non_integer_bounds_rejected(self):
        stn = make_stn("a", "b")

        with pytest.raises(TypeError):
            stn.add_constraint("a", "b", 1.5, 2)
        with pytest.raises(TypeError):
            stn.add_constraint("a", "b", True, 2)

    def test_same_pair_is_intersected(self):
        stn = make_stn("a", "b")

        stn.add_constraint("a", "b", 0, 10)
        stored = stn.add_constraint("a", "b", 5, 20)

        assert stored == Constraint("a", "b", 5, 10)
        assert stn.constraints() == [Constraint("a", "b", 5, 10)]

    def test_unbounded_sides(self):
        stn = make_stn("a", "b")
        stn.add_constraint("a", "b", None, 10)
        stn.add_constraint("a", "b", 2, None)

        assert stn.constraints() == [Constraint("a", "b", 2, 10)]

    def test_batch_insert_is_all_or_nothing(self):
        stn = make_stn("a", "b")

        with pytest.raises(UnknownPoint):
            stn.add_constraints([
                Constraint("a", "b", 0, 5),
                Constraint("a", "nope", 0, 5),
            ])

        assert stn.constraints() == []

    def test_mutation_invalidates_solution(self):
        stn = make_stn("a")
        stn.solve()

        stn.add_constraint(ORIGIN, "a", 0, 5)

        assert stn.state == NetworkState.UNSOLVED
        with pytest.raises(StaleBounds):
            stn.earliest("a")


class TestSolve:

    def test_chain_bounds(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 10, 20)
        stn.add_constraint("a", "b", 5, 5)

        stn.solve()

        assert stn.earliest("b") == 15
        assert stn.latest("b") == 25
        assert stn.distance(ORIGIN, "b") == TickRange(15, 25)
        assert stn.distance("b", "a") == TickRange(-5, -5)

    def test_unconstrained_point_is_unbounded(self):
        stn = make_stn("a")
        stn.solve()

        assert stn.earliest("a") is None
        assert stn.latest("a") is None
        assert stn.bounds("a") == TickRange(None, None)

    def test_reverse_edges_tighten(self):
        stn = make_stn("a", "b", "c")
        stn.add_constraint("a", "b", 0, 10)
        stn.add_constraint("b", "c", 0, 10)
        stn.add_constraint("c", "a", -5, None)

        stn.solve()

        assert stn.constraint("a", "c") == Constraint("a", "c", 0, 5)
        assert stn.constraint("a", "b") == Constraint("a", "b", 0, 5)

    def test_no_implicit_auto_solve(self):
        stn = make_stn("a")
        stn.add_constraint(ORIGIN, "a", 1, 2)

        with pytest.raises(StaleBounds) as exc_info:
            stn.latest("a")

        assert exc_info.value.to_error().code == ErrorCode.STALE
        assert stn.state == NetworkState.UNSOLVED

    def test_idempotent_second_solve(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 0, 10)
        stn.add_constraint("a", "b", 1, 3)

        first = stn.solve()
        bounds = {(p, q): stn.constraint(p, q) for p in stn.time_points() for q in stn.time_points()}
        second = stn.solve()

        assert second is first
        assert bounds == {
            (p, q): stn.constraint(p, q) for p in stn.time_points() for q in stn.time_points()
        }

    def test_solve_reports_stats(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 0, 10)
        stn.add_constraint("a", "b", 1, 3)

        stats = stn.solve()

        assert stats.time_points == 3
        assert stats.passes >= 1
        assert stats.tightened_edges > 0
        assert stn.last_solve_stats is stats

    def test_earliest_schedule_satisfies_constraints(self):
        stn = make_stn("a", "b", "c")
        stn.add_constraint(ORIGIN, "a", 5, 10)
        stn.add_constraint("a", "b", 2, 4)
        stn.add_constraint("b", "c", 1, None)
        stn.add_constraint("a", "c", None, 6)
        stn.solve()

        schedule = stn.earliest_schedule()

        assert schedule == {ORIGIN: 0, "a": 5, "b": 7, "c": 8}
        for c in stn.constraints():
            assert c.bounds.contains(schedule[c.to_point] - schedule[c.from_point])


class TestInconsistency:

    def make_contradiction(self) -> SimpleTemporalNetwork:
        stn = make_stn("a", "b")
        stn.add_constraint("a", "b", 5, 10)
        stn.add_constraint("b", "a", 0, 3)
        return stn

    def test_solve_raises_with_self_loop_witness(self):
        stn = self.make_contradiction()

        with pytest.raises(InconsistentNetwork) as exc_info:
            stn.solve()

        witness = exc_info.value.witness
        assert witness.from_point == witness.to_point
        assert (witness.lower is not None and witness.lower > 0) or (
            witness.upper is not None and witness.upper < 0
        )
        assert exc_info.value.to_error().code == ErrorCode.INCONSISTENT
        assert stn.state == NetworkState.INCONSISTENT

    def test_consistent_reports_false(self):
        stn = self.make_contradiction()

        assert stn.consistent() is False
        assert stn.consistent() is False

    def test_queries_fail_closed(self):
        stn = self.make_contradiction()
        stn.consistent()

        with pytest.raises(InconsistentNetwork):
            stn.earliest("a")
        with pytest.raises(InconsistentNetwork):
            stn.distance("a", "b")
        with pytest.raises(InconsistentNetwork):
            stn.solve()

    def test_insertion_keeps_terminal_state(self):
        stn = self.make_contradiction()
        stn.consistent()

        stn.add_constraint(ORIGIN, "a", 0, 100)

        assert stn.state == NetworkState.INCONSISTENT
        assert stn.consistent() is False

    def test_removal_repairs(self):
        stn = self.make_contradiction()
        stn.consistent()

        assert stn.remove_constraint("b", "a") is True

        assert stn.state == NetworkState.UNSOLVED
        assert stn.inconsistency is None
        stn.solve()
        assert stn.distance("a", "b") == TickRange(5, 10)

    def test_conflicting_assertions_on_one_pair(self):
        stn = make_stn("a", "b")
        stn.add_constraint("a", "b", 0, 5)
        stn.add_constraint("a", "b", 10, 20)

        assert len(stn.constraints()) == 2
        assert stn.consistent() is False

        stn.remove_constraint("a", "b")

        assert stn.constraints() == []
        assert stn.consistent() is True

    def test_direct_self_loop(self):
        stn = make_stn("a")
        stn.add_constraint("a", "a", 1, 2)

        with pytest.raises(InconsistentNetwork) as exc_info:
            stn.solve()

        assert exc_info.value.witness == Constraint("a", "a", 1, -1)
        assert exc_info.value.via is None

    def test_remove_nothing(self):
        stn = make_stn("a", "b")
        assert stn.remove_constraint("a", "b") is False
        with pytest.raises(UnknownPoint):
            stn.remove_constraint("a", "zzz")


class TestInspection:

    def test_unsolved_constraint_combines_both_directions(self):
        stn = make_stn("a", "b")
        stn.add_constraint("a", "b", 2, 8)
        stn.add_constraint("b", "a", -5, None)

        assert stn.constraint("a", "b") == Constraint("a", "b", 2, 5)
        assert stn.constraint("b", "a") == Constraint("b", "a", -5, -2)

    def test_unsolved_constraint_includes_conflicting_assertions(self):
        stn = make_stn("a", "b")
        stn.add_constraint("a", "b", 0, 5)
        stn.add_constraint("a", "b", 10, 20)

        assert stn.constraint("a", "b").is_empty
        assert stn.constraint("b", "a").is_empty

    def test_unrelated_pair_is_unbounded(self):
        stn = make_stn("a", "b")

        assert stn.constraint("a", "b") == Constraint("a", "b", None, None)
        assert stn.constraint("a", "a") == Constraint("a", "a", 0, 0)

    def test_remove_time_point_drops_incident_constraints(self):
        stn = make_stn("a", "b", "c")
        stn.add_constraint("a", "b", 0, 1)
        stn.add_constraint("b", "c", 0, 1)
        stn.add_constraint(ORIGIN, "c", 0, 1)

        stn.remove_time_point("b")

        assert stn.time_points() == [ORIGIN, "a", "c"]
        assert stn.constraints() == [Constraint(ORIGIN, "c", 0, 1)]
        stn.solve()
        assert stn.latest("c") == 1

    def test_origin_cannot_be_removed(self):
        stn = SimpleTemporalNetwork()
        with pytest.raises(ValueError):
            stn.remove_time_point(ORIGIN)
        with pytest.raises(UnknownPoint):
            stn.remove_time_point("ghost")

    def test_copy_is_independent(self):
        stn = make_stn("a")
        stn.add_constraint(ORIGIN, "a", 0, 10)
        stn.solve()

        clone = stn.copy()
        clone.add_time_point("b")
        clone.add_constraint("a", "b", 1, 1)

        assert "b" not in stn
        assert stn.is_solved
        assert not clone.is_solved
        assert clone.epoch == stn.epoch


class TestLargeBounds:
    """Bounds past 2**53 ticks are solved without rounding."""

    def test_one_tick_contradiction_is_detected(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 2 ** 53, 2 ** 53)
        stn.add_constraint(ORIGIN, "b", 2 ** 53 + 1, 2 ** 53 + 1)
        stn.add_constraint("a", "b", 0, 0)

        assert stn.consistent() is False

    def test_pinned_point_keeps_exact_tick(self):
        stn = make_stn("a")
        stn.add_constraint(ORIGIN, "a", 2 ** 53 + 1, 2 ** 53 + 1)
        stn.solve()

        assert stn.earliest("a") == 2 ** 53 + 1
        assert stn.latest("a") == 2 ** 53 + 1

    def test_bounds_beyond_int64_range(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 2 ** 63, 2 ** 63)
        stn.add_constraint("a", "b", 1, None)
        stn.solve()

        assert stn.earliest("b") == 2 ** 63 + 1
        assert stn.latest("b") is None
        assert stn.distance("b", "a") == TickRange(None, -1)

    def test_contradiction_beyond_int64_range(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 2 ** 63, 2 ** 63)
        stn.add_constraint(ORIGIN, "b", 2 ** 63, 2 ** 63)
        stn.add_constraint("a", "b", 1, 1)

        with pytest.raises(InconsistentNetwork) as exc_info:
            stn.solve()
        assert exc_info.value.witness.is_empty


class TestTimeout:

    def test_timeout_commits_nothing(self):
        stn = make_stn("a", "b")
        stn.add_constraint(ORIGIN, "a", 0, 10)
        stn.add_constraint("a", "b", 1, 3)

        with pytest.raises(SolveTimeout) as exc_info:
            stn.solve(timeout_seconds=-1)

        assert exc_info.value.to_error().code == ErrorCode.TIMEOUT
        assert stn.state == NetworkState.UNSOLVED
        with pytest.raises(StaleBounds):
            stn.earliest("b")

        stn.solve()
        assert stn.earliest("b") == 1

    def test_configured_deadline(self):
        stn = make_stn("a", config=STNConfig(solve_timeout_seconds=-1))
        stn.add_constraint(ORIGIN, "a", 0, 10)

        with pytest.raises(SolveTimeout):
            stn.solve()

        assert stn.solve(timeout_seconds=60).time_points == 2


class TestObservability:

    def test_metrics_recorded_on_solve(self):
        metrics = MetricsCollector()
        stn = make_stn("a", "b", metrics=metrics)
        stn.add_constraint(ORIGIN, "a", 0, 10)

        stn.solve()

        assert metrics.get_latest("stn_time_points").value == 3
        assert len(metrics.get_metric("stn_solve_duration_ms")) == 1

    def test_inconsistency_counted(self):
        metrics = MetricsCollector()
        stn = make_stn("a", metrics=metrics)
        stn.add_constraint("a", "a", 1, 1)

        assert stn.consistent() is False
        assert metrics.compute_aggregates("stn_inconsistent_total")["sum"] == 1

    def test_audit_trail(self):
        stn = make_stn("a")
        stn.add_constraint(ORIGIN, "a", 0, 1)
        stn.solve()

        log = stn.audit_log
        assert len(log.get_entries(AuditEventType.TIME_POINT)) == 1
        assert len(log.get_entries(AuditEventType.CONSTRAINT, action="added")) == 1
        actions = [e.action for e in log.get_entries(AuditEventType.SOLVE)]
        assert actions == ["started", "completed"]
