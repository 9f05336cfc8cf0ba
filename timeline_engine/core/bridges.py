"""
Bridges
=======

A bridge is a named instant on a timeline where control passes between
stretches of the schedule: a decision, a condition check, a synchronization.
Bridges never constrain the network; they only cut the solved schedule into
segments.

POSITIONS:
==========
  absolute   `position` in ticks after the network epoch
  semantic   `relation` to a reference interval (or the whole timeline when
             `reference` is None), resolved against the earliest schedule:

             STARTS / MEETS      the reference's start
             FINISHES / MET_BY   the reference's end
             DURING              the reference's midpoint (rounded down)

INVARIANTS:
- A bridge has exactly one kind of position
- Bridge records are immutable; updates replace the record
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .allen import AllenRelation


class BridgeType(Enum):
    """What happens at a bridge."""
    DECISION = "decision"
    CONDITION = "condition"
    SYNCHRONIZATION = "synchronization"
    RESOURCE_CHECK = "resource_check"
    AUTO_GENERATED = "auto_generated"


SEMANTIC_RELATIONS = frozenset({
    AllenRelation.STARTS,
    AllenRelation.MEETS,
    AllenRelation.FINISHES,
    AllenRelation.MET_BY,
    AllenRelation.DURING,
})


@dataclass(frozen=True)
class Bridge:
    """Immutable bridge record."""
    bridge_id: str
    bridge_type: BridgeType = BridgeType.DECISION
    position: Optional[int] = None
    relation: Optional[AllenRelation] = None
    reference: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.bridge_id, str) or not self.bridge_id:
            raise ValueError("Bridge id must be a non-empty string")
        if (self.position is None) == (self.relation is None):
            raise ValueError(
                f"Bridge '{self.bridge_id}' needs either an absolute position "
                f"or a semantic relation"
            )
        if self.position is not None and (
            isinstance(self.position, bool) or not isinstance(self.position, int)
        ):
            raise TypeError(f"Bridge position must be integer ticks, got {self.position!r}")
        if self.relation is not None and self.relation not in SEMANTIC_RELATIONS:
            raise ValueError(
                f"'{self.relation.value}' does not place bridge '{self.bridge_id}' "
                f"at a single instant"
            )
        if self.reference is not None and self.relation is None:
            raise ValueError(
                f"Bridge '{self.bridge_id}' has a reference but no semantic relation"
            )

    @property
    def is_semantic(self) -> bool:
        return self.relation is not None

    def get_metadata(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None

    def resolve(self, start: int, end: int) -> int:
        """Position of a semantic bridge whose reference spans [start, end]."""
        if self.relation in (AllenRelation.STARTS, AllenRelation.MEETS):
            return start
        if self.relation in (AllenRelation.FINISHES, AllenRelation.MET_BY):
            return end
        if self.relation == AllenRelation.DURING:
            return start + (end - start) // 2
        return self.position


__all__ = [
    'BridgeType',
    'Bridge',
    'SEMANTIC_RELATIONS',
]
