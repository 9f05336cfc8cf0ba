"""
Timeline
========

Interval registry over one network, plus schedule queries.

The schedule is the earliest-time assignment of the solved network: every
anchored point sits at its earliest bound. On a minimal network that
assignment satisfies every constraint among anchored points, so the
schedule is always a feasible one. Intervals with an unanchored endpoint
(no finite earliest bound) are not scheduled.

Schedule queries take absolute times the same way interval specs do
(ISO-8601, datetime, or seconds after the epoch) and report ticks.
Slots are half-open: [start, end).

Bridges mark instants on the schedule and cut it into segments; they add no
constraints to the network.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple, Union
import logging

from ..contracts.base import (
    ORIGIN, Constraint, DuplicateId, UnknownBridge, UnknownInterval, UnknownParticipant,
)
from ..observability import MetricsCollector
from ..temporal.conversion import duration_to_ticks, ticks_to_seconds
from .allen import AllenBridge, AllenRelation, RelationSet
from .bridges import Bridge, BridgeType
from .interval import Interval, TimeSpec, add_interval, interval_constraints
from .participants import ParticipantRegistry
from .stn import SimpleTemporalNetwork, STNConfig, SolveStats

logger = logging.getLogger(__name__)

IntervalRef = Union[str, Interval]


@dataclass(frozen=True)
class Slot:
    """Half-open span of ticks [start, end)."""
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_seconds(self) -> float:
        return ticks_to_seconds(self.start)

    @property
    def end_seconds(self) -> float:
        return ticks_to_seconds(self.end)

    def overlaps(self, other: Slot) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class Segment:
    """
    One stretch of the schedule between consecutive bridge positions.

    `number` counts every stretch, empty ones included, so numbers may skip.
    """
    number: int
    start: int
    end: int
    bridge_before: Optional[Bridge]
    slots: Tuple[Tuple[str, Slot], ...]

    @property
    def interval_ids(self) -> List[str]:
        return [interval_id for interval_id, _ in self.slots]

    @property
    def schedule(self) -> Dict[str, Slot]:
        return dict(self.slots)


class Timeline:
    """
    Intervals, relations, schedule queries and bridges on one network.

    Usage:
        timeline = Timeline()
        a = timeline.add_interval("2025-01-01T10:00:00Z", "PT1H", interval_id="a")
        b = timeline.add_interval(None, "PT30M", interval_id="b")
        timeline.relate("a", AllenRelation.MEETS, "b")
        timeline.solve()
        timeline.schedule()["b"]  # Slot starting at 11:00
    """

    def __init__(
        self,
        config: Optional[STNConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        participants: Optional[ParticipantRegistry] = None,
        bridge: Optional[AllenBridge] = None
    ):
        self._stn = SimpleTemporalNetwork(config, metrics)
        self._participants = participants
        self._bridge = bridge or AllenBridge()
        self._intervals: Dict[str, Interval] = {}
        self._bridges: Dict[str, Bridge] = {}

    @property
    def stn(self) -> SimpleTemporalNetwork:
        return self._stn

    @property
    def participants(self) -> Optional[ParticipantRegistry]:
        return self._participants

    # -------------------------------------------------------------------------
    # Intervals
    # -------------------------------------------------------------------------

    def add_interval(
        self,
        start_spec: TimeSpec = None,
        end_spec: TimeSpec = None,
        interval_id: Optional[str] = None,
        participant_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> Interval:
        self._check_participant(participant_id)
        interval = add_interval(
            self._stn, start_spec, end_spec,
            interval_id=interval_id,
            participant_id=participant_id,
            metadata=metadata
        )
        self._intervals[interval.interval_id] = interval
        return interval

    def get_interval(self, interval_id: str) -> Interval:
        try:
            return self._intervals[interval_id]
        except KeyError:
            raise UnknownInterval(f"Unknown interval '{interval_id}'") from None

    def intervals(self, participant_id: Optional[str] = None) -> List[Interval]:
        if participant_id is None:
            return list(self._intervals.values())
        return [i for i in self._intervals.values() if i.participant_id == participant_id]

    def update_interval(
        self,
        interval_id: str,
        start_spec: TimeSpec = None,
        end_spec: TimeSpec = None,
        participant_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> Interval:
        """
        Replace an interval's specs in place.

        The anchoring and duration constraints (origin to either endpoint and
        start to end) are swapped for the ones the new specs imply; relations
        to other intervals are kept. Participant and metadata are kept unless
        given. The new specs are validated first, so a rejected update leaves
        the network unchanged.
        """
        interval = self.get_interval(interval_id)
        self._check_participant(participant_id)
        constraints = interval_constraints(
            self._stn, interval.start, interval.end, start_spec, end_spec
        )

        start, end = interval.endpoints
        for a, b in ((ORIGIN, start), (ORIGIN, end), (start, end)):
            self._stn.remove_constraint(a, b)
            self._stn.remove_constraint(b, a)
        self._stn.add_constraints(constraints)

        updated = replace(
            interval,
            participant_id=participant_id or interval.participant_id,
            metadata=(
                interval.metadata if metadata is None
                else tuple(sorted(metadata.items()))
            )
        )
        self._intervals[interval_id] = updated
        logger.debug("Updated interval %s with %d constraints", interval_id, len(constraints))
        return updated

    def remove_interval(self, interval_id: str) -> Interval:
        """Remove an interval, its time points and every constraint touching them."""
        interval = self.get_interval(interval_id)
        for bridge in self._bridges.values():
            if bridge.reference == interval_id:
                raise ValueError(
                    f"Interval '{interval_id}' is referenced by bridge '{bridge.bridge_id}'"
                )
        self._stn.remove_time_point(interval.start)
        self._stn.remove_time_point(interval.end)
        del self._intervals[interval_id]
        logger.debug("Removed interval %s", interval_id)
        return interval

    def _resolve(self, ref: IntervalRef) -> Interval:
        if isinstance(ref, Interval):
            return self.get_interval(ref.interval_id)
        return self.get_interval(ref)

    def _check_participant(self, participant_id: Optional[str]) -> None:
        if (
            participant_id is not None
            and self._participants is not None
            and participant_id not in self._participants
        ):
            raise UnknownParticipant(f"Unknown participant '{participant_id}'")

    # -------------------------------------------------------------------------
    # Bridges
    # -------------------------------------------------------------------------

    def add_bridge(
        self,
        bridge_id: str,
        position=None,
        bridge_type: Union[BridgeType, str] = BridgeType.DECISION,
        relation: Union[AllenRelation, str, None] = None,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> Bridge:
        """
        Add a bridge at an absolute time, or semantically against an interval.

        `position` takes absolute times the same way interval specs do. A
        semantic bridge gives `relation` instead, with `reference` naming the
        interval (None means the whole timeline).
        """
        if bridge_id in self._bridges:
            raise DuplicateId(bridge_id, kind="Bridge")
        bridge = self._make_bridge(bridge_id, position, bridge_type, relation, reference, metadata)
        self._bridges[bridge_id] = bridge
        logger.debug("Added %s bridge %s", bridge.bridge_type.value, bridge_id)
        return bridge

    def update_bridge(
        self,
        bridge_id: str,
        position=None,
        bridge_type: Union[BridgeType, str] = BridgeType.DECISION,
        relation: Union[AllenRelation, str, None] = None,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> Bridge:
        """Replace an existing bridge record; same arguments as add_bridge."""
        self.get_bridge(bridge_id)
        bridge = self._make_bridge(bridge_id, position, bridge_type, relation, reference, metadata)
        self._bridges[bridge_id] = bridge
        return bridge

    def get_bridge(self, bridge_id: str) -> Bridge:
        try:
            return self._bridges[bridge_id]
        except KeyError:
            raise UnknownBridge(f"Unknown bridge '{bridge_id}'") from None

    def remove_bridge(self, bridge_id: str) -> Bridge:
        bridge = self.get_bridge(bridge_id)
        del self._bridges[bridge_id]
        logger.debug("Removed bridge %s", bridge_id)
        return bridge

    def bridge_positions(self) -> Dict[str, int]:
        """
        Tick position of every bridge that has one.

        Semantic bridges are resolved against the schedule, so they need a
        solved network; one whose reference is not scheduled has no position.
        """
        positions = {}
        slots: Optional[Dict[str, Slot]] = None
        bounds: Optional[Slot] = None
        for bridge in self._bridges.values():
            if not bridge.is_semantic:
                positions[bridge.bridge_id] = bridge.position
                continue
            if slots is None:
                slots = self.schedule()
                bounds = _bounds(slots.values())
            target = bounds if bridge.reference is None else slots.get(bridge.reference)
            if target is not None:
                positions[bridge.bridge_id] = bridge.resolve(target.start, target.end)
        return positions

    def get_bridges(self) -> List[Bridge]:
        """All bridges by position; bridges without a position come last, by id."""
        positions = self.bridge_positions()
        return sorted(
            self._bridges.values(),
            key=lambda b: (
                b.bridge_id not in positions, positions.get(b.bridge_id, 0), b.bridge_id
            )
        )

    def bridges_in_range(self, start, end) -> List[Bridge]:
        """Bridges positioned inside [start, end], both ends included."""
        low, high = self._stn.to_ticks(start), self._stn.to_ticks(end)
        positions = self.bridge_positions()
        return [
            b for b in self.get_bridges()
            if b.bridge_id in positions and low <= positions[b.bridge_id] <= high
        ]

    def validate_bridge_placements(self) -> None:
        """
        Reject absolute bridges sitting exactly on a scheduled interval boundary.

        Semantic bridges sit on boundaries by construction and are not checked.
        Requires a solved network.
        """
        slots = self.schedule()
        for bridge in self._bridges.values():
            if bridge.is_semantic:
                continue
            for interval_id, slot in slots.items():
                if bridge.position in (slot.start, slot.end):
                    raise ValueError(
                        f"Bridge '{bridge.bridge_id}' position conflicts with "
                        f"interval '{interval_id}' boundary"
                    )

    def _make_bridge(
        self,
        bridge_id: str,
        position,
        bridge_type: Union[BridgeType, str],
        relation: Union[AllenRelation, str, None],
        reference: Optional[str],
        metadata: Optional[Dict[str, str]]
    ) -> Bridge:
        if isinstance(relation, str):
            relation = AllenRelation.parse(relation)
        if reference is not None:
            self.get_interval(reference)
        return Bridge(
            bridge_id=bridge_id,
            bridge_type=BridgeType(bridge_type),
            position=None if position is None else self._stn.to_ticks(position),
            relation=relation,
            reference=reference,
            metadata=tuple(sorted((metadata or {}).items()))
        )

    # -------------------------------------------------------------------------
    # Relations and solving
    # -------------------------------------------------------------------------

    def relate(
        self,
        a: IntervalRef,
        relation: Union[AllenRelation, str],
        b: IntervalRef
    ) -> Tuple[Constraint, ...]:
        """Assert `relation(a, b)`. Relations may be given by name or code."""
        if isinstance(relation, str):
            relation = AllenRelation.parse(relation)
        first, second = self._resolve(a), self._resolve(b)
        return self._bridge.assert_relation(
            self._stn, relation, first.endpoints, second.endpoints
        )

    def relation(self, a: IntervalRef, b: IntervalRef, exact: bool = False) -> RelationSet:
        first, second = self._resolve(a), self._resolve(b)
        return self._bridge.classify(self._stn, first.endpoints, second.endpoints, exact=exact)

    def constrain(
        self,
        from_point: str,
        to_point: str,
        lower: Optional[int],
        upper: Optional[int]
    ) -> Constraint:
        return self._stn.add_constraint(from_point, to_point, lower, upper)

    def solve(self, timeout_seconds: Optional[float] = None) -> SolveStats:
        return self._stn.solve(timeout_seconds=timeout_seconds)

    def consistent(self) -> bool:
        return self._stn.consistent()

    # -------------------------------------------------------------------------
    # Schedule queries (require a solved network)
    # -------------------------------------------------------------------------

    def schedule(self, participant_id: Optional[str] = None) -> Dict[str, Slot]:
        """Earliest-time slot of every anchored interval, keyed by interval id."""
        earliest = self._stn.earliest_schedule()
        slots = {}
        for interval in self.intervals(participant_id):
            if interval.start in earliest and interval.end in earliest:
                slots[interval.interval_id] = Slot(
                    earliest[interval.start], earliest[interval.end]
                )
        return slots

    def overlapping_intervals(
        self,
        window_start,
        window_end,
        participant_id: Optional[str] = None
    ) -> List[Interval]:
        """Scheduled intervals overlapping [window_start, window_end)."""
        window = Slot(self._stn.to_ticks(window_start), self._stn.to_ticks(window_end))
        slots = self.schedule(participant_id)
        return [
            self._intervals[interval_id]
            for interval_id, slot in slots.items()
            if slot.overlaps(window)
        ]

    def check_conflicts(
        self,
        start,
        end,
        participant_id: Optional[str] = None
    ) -> List[Interval]:
        """Scheduled intervals a new interval at [start, end) would collide with."""
        return self.overlapping_intervals(start, end, participant_id)

    def find_free_slots(
        self,
        duration,
        window_start,
        window_end,
        participant_id: Optional[str] = None
    ) -> List[Slot]:
        """Gaps of at least `duration` between scheduled intervals inside the window."""
        needed = duration_to_ticks(duration)
        window = Slot(self._stn.to_ticks(window_start), self._stn.to_ticks(window_end))

        free = []
        cursor = window.start
        for busy in self._busy(participant_id):
            if busy.end <= cursor:
                continue
            if busy.start >= window.end:
                break
            if busy.start - cursor >= needed:
                free.append(Slot(cursor, busy.start))
            cursor = max(cursor, busy.end)
        if window.end - cursor >= needed:
            free.append(Slot(cursor, window.end))
        return free

    def find_next_available_slot(
        self,
        duration,
        earliest_start,
        participant_id: Optional[str] = None
    ) -> Slot:
        """First slot of exactly `duration` starting no earlier than `earliest_start`."""
        needed = duration_to_ticks(duration)
        cursor = self._stn.to_ticks(earliest_start)
        for busy in self._busy(participant_id):
            if busy.end <= cursor:
                continue
            if busy.start - cursor >= needed:
                break
            cursor = max(cursor, busy.end)
        return Slot(cursor, cursor + needed)

    def _busy(self, participant_id: Optional[str]) -> List[Slot]:
        """Scheduled slots sorted by start, with overlapping ones merged."""
        merged: List[Slot] = []
        for slot in sorted(self.schedule(participant_id).values(), key=lambda s: (s.start, s.end)):
            if merged and slot.start <= merged[-1].end:
                last = merged[-1]
                merged[-1] = Slot(last.start, max(last.end, slot.end))
            else:
                merged.append(slot)
        return merged

    # -------------------------------------------------------------------------
    # Segmentation (requires a solved network)
    # -------------------------------------------------------------------------

    def timeline_bounds(self) -> Optional[Slot]:
        """Earliest scheduled start to latest scheduled end; None when nothing is scheduled."""
        return _bounds(self.schedule().values())

    def segment_by_bridges(self) -> List[Segment]:
        """
        Cut the schedule at every positioned bridge.

        Cut points are the timeline start, each bridge position in order, and
        the timeline end. A segment holds the scheduled intervals overlapping
        its stretch, so an interval spanning a bridge lands in both segments.
        Stretches holding no interval are dropped. Without bridges the whole
        schedule is one segment.
        """
        slots = self.schedule()
        bounds = _bounds(slots.values())
        if bounds is None:
            return []
        ordered = tuple(slots.items())

        positions = self.bridge_positions()
        bridges = [b for b in self.get_bridges() if b.bridge_id in positions]
        if not bridges:
            return [Segment(1, bounds.start, bounds.end, None, ordered)]

        cuts: List[Tuple[int, Optional[Bridge]]] = [(bounds.start, None)]
        cuts += [(positions[b.bridge_id], b) for b in bridges]
        cuts.append((bounds.end, None))

        segments = []
        for number, ((start, before), (end, _)) in enumerate(zip(cuts, cuts[1:]), start=1):
            members = tuple(
                (interval_id, slot) for interval_id, slot in ordered
                if slot.start < end and slot.end > start
            )
            if members:
                segments.append(Segment(number, start, end, before, members))
        logger.debug(
            "Segmented %d intervals at %d bridges into %d segments",
            len(ordered), len(bridges), len(segments)
        )
        return segments


def _bounds(slots) -> Optional[Slot]:
    slots = list(slots)
    if not slots:
        return None
    return Slot(min(s.start for s in slots), max(s.end for s in slots))


__all__ = [
    'Slot',
    'Segment',
    'Timeline',
]
