"""
Timeline Tests
==============

Tests for the interval registry, schedule queries, bridges and segmentation.
"""

import pytest
from datetime import datetime, timezone

from timeline_engine.contracts.base import (
    ORIGIN, ErrorCode, DuplicateId, InvalidBounds, StaleBounds,
    UnknownBridge, UnknownInterval, UnknownParticipant,
)
from timeline_engine.core.allen import AllenRelation
from timeline_engine.core.participants import Participant, ParticipantRegistry
from timeline_engine.core.stn import STNConfig
from timeline_engine.core.bridges import Bridge, BridgeType
from timeline_engine.core.timeline import Segment, Slot, Timeline

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def create_timeline(registry=None) -> Timeline:
    """a = [0, 10s], b = [20s, 30s], c = [25s, 40s]."""
    timeline = Timeline(STNConfig(epoch=EPOCH), participants=registry)
    timeline.add_interval(0, 10, interval_id="a")
    timeline.add_interval(20, 10, interval_id="b")
    timeline.add_interval(25, 15, interval_id="c")
    timeline.solve()
    return timeline


class TestSlot:

    def test_duration_and_seconds(self):
        slot = Slot(1500, 4000)
        assert slot.duration == 2500
        assert slot.start_seconds == 1.5
        assert slot.end_seconds == 4.0

    def test_half_open_overlap(self):
        assert Slot(0, 10).overlaps(Slot(5, 15))
        assert not Slot(0, 10).overlaps(Slot(10, 20))


class TestIntervals:

    def test_docstring_example(self):
        timeline = Timeline(STNConfig(epoch=EPOCH))
        timeline.add_interval("2025-01-01T10:00:00Z", "PT1H", interval_id="a")
        timeline.add_interval(None, "PT30M", interval_id="b")
        timeline.relate("a", AllenRelation.MEETS, "b")
        timeline.solve()

        assert timeline.schedule()["b"] == Slot(39_600_000, 41_400_000)

    def test_get_and_list(self):
        timeline = create_timeline()

        assert timeline.get_interval("b").start == "b_start"
        assert [i.interval_id for i in timeline.intervals()] == ["a", "b", "c"]

    def test_unknown_interval(self):
        with pytest.raises(UnknownInterval):
            create_timeline().get_interval("zz")

    def test_remove_interval(self):
        timeline = create_timeline()

        removed = timeline.remove_interval("b")

        assert removed.interval_id == "b"
        assert "b_start" not in timeline.stn
        assert "b_end" not in timeline.stn
        with pytest.raises(UnknownInterval):
            timeline.get_interval("b")
        timeline.solve()
        assert list(timeline.schedule()) == ["a", "c"]

    def test_relate_by_name(self):
        timeline = Timeline()
        a = timeline.add_interval(0, 5, interval_id="a")
        timeline.add_interval(None, 3, interval_id="b")

        constraints = timeline.relate(a, "met-by", "b")
        timeline.solve()

        assert len(constraints) == 1
        assert timeline.stn.earliest("b_start") == -3000
        assert timeline.relation("b", "a") == frozenset({AllenRelation.MEETS})

    def test_constrain_points_directly(self):
        timeline = Timeline()
        timeline.add_interval(None, 5, interval_id="a")

        timeline.constrain(ORIGIN, "a_start", 7000, 7000)
        timeline.solve()

        assert timeline.schedule()["a"] == Slot(7000, 12000)

    def test_inconsistent_relation(self):
        timeline = create_timeline()

        timeline.relate("c", "before", "a")

        assert timeline.consistent() is False


class TestParticipants:

    def create_registry(self) -> ParticipantRegistry:
        registry = ParticipantRegistry()
        registry.register(Participant.agent("robot", "Robot"))
        registry.register(Participant.entity("arm", "Arm", owner_id="robot"))
        return registry

    def test_unknown_participant_rejected_before_mutation(self):
        timeline = Timeline(participants=self.create_registry())

        with pytest.raises(UnknownParticipant):
            timeline.add_interval(0, 1, participant_id="ghost")

        assert timeline.stn.time_points() == [ORIGIN]

    def test_filter_by_participant(self):
        timeline = Timeline(participants=self.create_registry())
        timeline.add_interval(0, 10, interval_id="a", participant_id="robot")
        timeline.add_interval(5, 10, interval_id="b", participant_id="arm")
        timeline.add_interval(30, 10, interval_id="c", participant_id="robot")
        timeline.solve()

        assert [i.interval_id for i in timeline.intervals("robot")] == ["a", "c"]
        assert list(timeline.schedule("arm")) == ["b"]
        assert timeline.find_next_available_slot(10, 0, participant_id="robot") == \
            Slot(10_000, 20_000)

    def test_participants_are_optional(self):
        timeline = Timeline()
        interval = timeline.add_interval(0, 1, participant_id="anyone")
        assert interval.participant_id == "anyone"


class TestScheduleQueries:

    def test_schedule_uses_earliest_times(self):
        timeline = Timeline()
        timeline.add_interval((0, 60), 10, interval_id="a")
        timeline.solve()

        assert timeline.schedule() == {"a": Slot(0, 10_000)}

    def test_unanchored_intervals_are_not_scheduled(self):
        timeline = create_timeline()
        timeline.add_interval(None, 5, interval_id="floating")
        timeline.solve()

        assert "floating" not in timeline.schedule()

    def test_queries_require_solved_network(self):
        timeline = create_timeline()
        timeline.add_interval(50, 1)

        with pytest.raises(StaleBounds):
            timeline.schedule()

    def test_overlapping_intervals(self):
        timeline = create_timeline()

        overlapping = timeline.overlapping_intervals(5, 21)

        assert [i.interval_id for i in overlapping] == ["a", "b"]

    def test_overlapping_with_absolute_times(self):
        timeline = create_timeline()

        overlapping = timeline.overlapping_intervals(
            "2025-01-01T00:00:26Z", datetime(2025, 1, 1, 0, 1, tzinfo=timezone.utc)
        )

        assert [i.interval_id for i in overlapping] == ["b", "c"]

    def test_touching_intervals_do_not_conflict(self):
        assert create_timeline().check_conflicts(10, 20) == []

    def test_conflicts(self):
        conflicts = create_timeline().check_conflicts(35, 45)
        assert [i.interval_id for i in conflicts] == ["c"]

    def test_free_slots(self):
        timeline = create_timeline()

        assert timeline.find_free_slots(5, 0, 60) == [
            Slot(10_000, 20_000),
            Slot(40_000, 60_000),
        ]
        assert timeline.find_free_slots("PT15S", 0, 60) == [Slot(40_000, 60_000)]

    def test_no_free_slots(self):
        assert create_timeline().find_free_slots(5, 22, 38) == []

    def test_next_available_slot(self):
        timeline = create_timeline()

        assert timeline.find_next_available_slot(5, 0) == Slot(10_000, 15_000)
        assert timeline.find_next_available_slot(15, 0) == Slot(40_000, 55_000)
        assert timeline.find_next_available_slot(5, 12) == Slot(12_000, 17_000)
        assert timeline.find_next_available_slot(5, 100) == Slot(100_000, 105_000)


class TestUpdateInterval:

    def test_update_moves_interval(self):
        timeline = create_timeline()

        updated = timeline.update_interval("a", 50, 5)
        timeline.solve()

        assert updated.interval_id == "a"
        assert timeline.schedule()["a"] == Slot(50_000, 55_000)
        assert timeline.schedule()["b"] == Slot(20_000, 30_000)

    def test_relations_survive_update(self):
        timeline = Timeline()
        timeline.add_interval(0, 10, interval_id="a")
        timeline.add_interval(None, 5, interval_id="b")
        timeline.relate("a", AllenRelation.MEETS, "b")

        timeline.update_interval("a", 100, 10)
        timeline.solve()

        assert timeline.schedule()["b"] == Slot(110_000, 115_000)

    def test_update_repairs_inconsistent_timeline(self):
        timeline = create_timeline()
        timeline.relate("c", "before", "a")
        assert timeline.consistent() is False

        timeline.update_interval("c", -100, 15)

        assert timeline.consistent() is True
        assert timeline.schedule()["c"] == Slot(-100_000, -85_000)

    def test_rejected_update_leaves_network_unchanged(self):
        timeline = create_timeline()
        before = timeline.stn.constraints()

        with pytest.raises(InvalidBounds):
            timeline.update_interval("a", (10, 5), 10)

        assert timeline.stn.constraints() == before
        assert timeline.stn.is_solved

    def test_participant_and_metadata_kept_unless_given(self):
        timeline = Timeline()
        timeline.add_interval(0, 1, interval_id="a", participant_id="robot",
                              metadata={"kind": "task"})

        kept = timeline.update_interval("a", 5, 1)
        assert kept.participant_id == "robot"
        assert kept.get_metadata("kind") == "task"

        changed = timeline.update_interval("a", 5, 1, participant_id="arm",
                                           metadata={"kind": "rest"})
        assert changed.participant_id == "arm"
        assert timeline.get_interval("a").get_metadata("kind") == "rest"

    def test_unknown_interval(self):
        with pytest.raises(UnknownInterval):
            create_timeline().update_interval("zz", 0, 1)


class TestBridgeRecord:

    def test_absolute_bridge(self):
        bridge = Bridge("b1", position=5, metadata=(("owner", "ops"),))

        assert not bridge.is_semantic
        assert bridge.bridge_type == BridgeType.DECISION
        assert bridge.get_metadata("owner") == "ops"
        assert bridge.get_metadata("missing") is None

    @pytest.mark.parametrize("kwargs", [
        {},
        {"position": 5, "relation": AllenRelation.STARTS},
        {"relation": AllenRelation.BEFORE},
        {"position": 5, "reference": "a"},
    ])
    def test_malformed_bridges(self, kwargs):
        with pytest.raises(ValueError):
            Bridge("b1", **kwargs)

    def test_position_must_be_ticks(self):
        with pytest.raises(TypeError):
            Bridge("b1", position=True)

    def test_semantic_resolution(self):
        assert Bridge("s", relation=AllenRelation.STARTS).resolve(100, 200) == 100
        assert Bridge("s", relation=AllenRelation.MEETS).resolve(100, 200) == 100
        assert Bridge("s", relation=AllenRelation.FINISHES).resolve(100, 200) == 200
        assert Bridge("s", relation=AllenRelation.MET_BY).resolve(100, 200) == 200
        assert Bridge("s", relation=AllenRelation.DURING).resolve(100, 201) == 150


class TestBridges:

    def test_add_and_get(self):
        timeline = create_timeline()

        bridge = timeline.add_bridge("check", 15, "condition", metadata={"gate": "qa"})

        assert bridge.position == 15_000
        assert bridge.bridge_type == BridgeType.CONDITION
        assert timeline.get_bridge("check") == bridge
        assert bridge.get_metadata("gate") == "qa"

    def test_absolute_times_accepted(self):
        timeline = create_timeline()

        bridge = timeline.add_bridge("noon", "2025-01-01T12:00:00Z")

        assert bridge.position == 43_200_000

    def test_duplicate_bridge_id(self):
        timeline = create_timeline()
        timeline.add_bridge("check", 15)

        with pytest.raises(DuplicateId, match="Bridge 'check' already exists"):
            timeline.add_bridge("check", 16)

    def test_unknown_bridge(self):
        timeline = create_timeline()

        with pytest.raises(UnknownBridge) as exc_info:
            timeline.get_bridge("ghost")
        assert exc_info.value.to_error().code == ErrorCode.UNKNOWN_BRIDGE
        with pytest.raises(UnknownBridge):
            timeline.remove_bridge("ghost")
        with pytest.raises(UnknownBridge):
            timeline.update_bridge("ghost", 5)

    def test_bridges_sorted_by_position(self):
        timeline = create_timeline()
        timeline.add_bridge("late", 30)
        timeline.add_bridge("early", 15)
        timeline.add_bridge("a_done", relation="finishes", reference="a")

        assert [b.bridge_id for b in timeline.get_bridges()] == ["a_done", "early", "late"]

    def test_semantic_positions(self):
        timeline = create_timeline()
        timeline.add_bridge("kickoff", relation=AllenRelation.STARTS)
        timeline.add_bridge("b_done", relation="finishes", reference="b")
        timeline.add_bridge("mid_c", relation="during", reference="c")

        assert timeline.bridge_positions() == {
            "kickoff": 0, "b_done": 30_000, "mid_c": 32_500,
        }

    def test_semantic_bridge_on_unscheduled_interval_has_no_position(self):
        timeline = create_timeline()
        timeline.add_interval(None, 5, interval_id="floating")
        timeline.add_bridge("f", relation="starts", reference="floating")
        timeline.add_bridge("abs", 15)
        timeline.solve()

        assert timeline.bridge_positions() == {"abs": 15_000}
        assert [b.bridge_id for b in timeline.get_bridges()] == ["abs", "f"]

    def test_semantic_bridges_need_solved_network(self):
        timeline = create_timeline()
        timeline.add_bridge("abs", 15)
        timeline.add_interval(50, 1)

        assert timeline.bridge_positions() == {"abs": 15_000}

        timeline.add_bridge("kickoff", relation="starts")
        with pytest.raises(StaleBounds):
            timeline.get_bridges()

    def test_unknown_reference_rejected(self):
        timeline = create_timeline()

        with pytest.raises(UnknownInterval):
            timeline.add_bridge("x", relation="starts", reference="zz")
        with pytest.raises(UnknownBridge):
            timeline.get_bridge("x")

    def test_update_and_remove(self):
        timeline = create_timeline()
        timeline.add_bridge("check", 15)

        updated = timeline.update_bridge("check", 18, BridgeType.SYNCHRONIZATION)

        assert timeline.get_bridge("check") == updated
        assert updated.position == 18_000
        assert timeline.remove_bridge("check") == updated
        assert timeline.get_bridges() == []

    def test_bridges_in_range_is_inclusive(self):
        timeline = create_timeline()
        for bridge_id, at in (("b10", 10), ("b20", 20), ("b45", 45)):
            timeline.add_bridge(bridge_id, at)

        in_range = timeline.bridges_in_range(10, 20)

        assert [b.bridge_id for b in in_range] == ["b10", "b20"]

    def test_placement_on_interval_boundary_rejected(self):
        timeline = create_timeline()
        timeline.add_bridge("ok", 15)
        timeline.validate_bridge_placements()

        timeline.add_bridge("clash", 10)
        with pytest.raises(ValueError, match="interval 'a' boundary"):
            timeline.validate_bridge_placements()

    def test_referenced_interval_cannot_be_removed(self):
        timeline = create_timeline()
        timeline.add_bridge("a_done", relation="finishes", reference="a")

        with pytest.raises(ValueError):
            timeline.remove_interval("a")

        assert timeline.get_interval("a").interval_id == "a"


class TestSegmentation:

    def test_timeline_bounds(self):
        assert create_timeline().timeline_bounds() == Slot(0, 40_000)

        empty = Timeline()
        empty.solve()
        assert empty.timeline_bounds() is None
        assert empty.segment_by_bridges() == []

    def test_no_bridges_is_one_segment(self):
        [segment] = create_timeline().segment_by_bridges()

        assert segment.number == 1
        assert (segment.start, segment.end) == (0, 40_000)
        assert segment.bridge_before is None
        assert segment.interval_ids == ["a", "b", "c"]

    def test_bridge_splits_schedule(self):
        timeline = create_timeline()
        gate = timeline.add_bridge("gate", 15)

        first, second = timeline.segment_by_bridges()

        assert first == Segment(1, 0, 15_000, None, (("a", Slot(0, 10_000)),))
        assert second.number == 2
        assert second.bridge_before == gate
        assert second.schedule == {"b": Slot(20_000, 30_000), "c": Slot(25_000, 40_000)}

    def test_spanning_interval_lands_in_both_segments(self):
        timeline = create_timeline()
        timeline.add_bridge("mid", 27)

        first, second = timeline.segment_by_bridges()

        assert first.interval_ids == ["a", "b", "c"]
        assert second.interval_ids == ["b", "c"]

    def test_empty_segments_are_dropped(self):
        timeline = create_timeline()
        timeline.add_bridge("first", 12)
        timeline.add_bridge("second", 15)

        segments = timeline.segment_by_bridges()

        assert [s.number for s in segments] == [1, 3]
        assert segments[1].bridge_before.bridge_id == "second"

    def test_semantic_bridge_cuts_at_resolved_position(self):
        timeline = create_timeline()
        timeline.add_bridge("a_done", relation="finishes", reference="a")

        first, second = timeline.segment_by_bridges()

        assert (first.end, second.start) == (10_000, 10_000)
        assert first.interval_ids == ["a"]
        assert second.interval_ids == ["b", "c"]

    def test_segmentation_requires_solved_network(self):
        timeline = create_timeline()
        timeline.add_interval(50, 1)

        with pytest.raises(StaleBounds):
            timeline.segment_by_bridges()
