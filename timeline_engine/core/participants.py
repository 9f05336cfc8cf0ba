"""
Participants
============

Agents and entities that take part in timeline intervals.

INVARIANTS:
- Participants are immutable; every update returns a new record
- A participant is an agent iff it has at least one capability
- Intervals refer to participants by id only (weak reference, never ownership)
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..contracts.base import UnknownParticipant, DuplicateId
from ..contracts.events import AuditEventType
from ..observability import LogCollector


DEFAULT_AGENT_CAPABILITIES: FrozenSet[str] = frozenset({
    "decision_making",
    "action_execution",
    "communication",
    "learning",
    "goal_setting",
})


@dataclass(frozen=True)
class Participant:
    """Agent or entity tag: identifier, capability set, property map."""
    participant_id: str
    name: str
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    properties: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    owner_id: Optional[str] = None

    def __post_init__(self):
        if not self.participant_id:
            raise ValueError("participant_id must be non-empty")

    @classmethod
    def agent(
        cls,
        participant_id: str,
        name: str,
        capabilities: Iterable[str] = DEFAULT_AGENT_CAPABILITIES,
        properties: Optional[Dict[str, str]] = None
    ) -> Participant:
        return cls(
            participant_id=participant_id,
            name=name,
            capabilities=frozenset(capabilities),
            properties=tuple(sorted((properties or {}).items()))
        )

    @classmethod
    def entity(
        cls,
        participant_id: str,
        name: str,
        owner_id: Optional[str] = None,
        properties: Optional[Dict[str, str]] = None
    ) -> Participant:
        return cls(
            participant_id=participant_id,
            name=name,
            properties=tuple(sorted((properties or {}).items())),
            owner_id=owner_id
        )

    @property
    def is_agent(self) -> bool:
        return bool(self.capabilities)

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    def with_capabilities(self, *capabilities: str) -> Participant:
        return replace(self, capabilities=self.capabilities | frozenset(capabilities))

    def without_capabilities(self, *capabilities: str) -> Participant:
        return replace(self, capabilities=self.capabilities - frozenset(capabilities))

    def get_property(self, key: str) -> Optional[str]:
        for k, v in self.properties:
            if k == key:
                return v
        return None

    def with_property(self, key: str, value: str) -> Participant:
        updated = dict(self.properties)
        updated[key] = value
        return replace(self, properties=tuple(sorted(updated.items())))

    def transfer_ownership(self, owner_id: Optional[str]) -> Participant:
        return replace(self, owner_id=owner_id)


class ParticipantRegistry:
    """Id-keyed store of participants. Replacing a record is an explicit update."""

    def __init__(self):
        self._participants: Dict[str, Participant] = {}
        self._audit = LogCollector("participants")

    @property
    def audit_log(self) -> LogCollector:
        return self._audit

    def register(self, participant: Participant) -> Participant:
        if participant.participant_id in self._participants:
            raise DuplicateId(participant.participant_id, kind="Participant")
        self._participants[participant.participant_id] = participant
        self._audit.record(
            AuditEventType.PARTICIPANT, "registered",
            entity_id=participant.participant_id,
            metadata={"agent": participant.is_agent}
        )
        return participant

    def update(self, participant: Participant) -> Participant:
        """Replace the stored record with an updated version of it."""
        self.get(participant.participant_id)
        self._participants[participant.participant_id] = participant
        self._audit.record(
            AuditEventType.PARTICIPANT, "updated", entity_id=participant.participant_id
        )
        return participant

    def remove(self, participant_id: str) -> Participant:
        participant = self.get(participant_id)
        del self._participants[participant_id]
        self._audit.record(AuditEventType.PARTICIPANT, "removed", entity_id=participant_id)
        return participant

    def get(self, participant_id: str) -> Participant:
        try:
            return self._participants[participant_id]
        except KeyError:
            raise UnknownParticipant(f"Unknown participant '{participant_id}'") from None

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)

    def all(self) -> List[Participant]:
        return list(self._participants.values())

    def agent_ids(self) -> List[str]:
        return [p.participant_id for p in self._participants.values() if p.is_agent]

    def entity_ids(self) -> List[str]:
        return [p.participant_id for p in self._participants.values() if not p.is_agent]

    def owned_by(self, owner_id: str) -> List[Participant]:
        return [p for p in self._participants.values() if p.owner_id == owner_id]


__all__ = [
    'DEFAULT_AGENT_CAPABILITIES',
    'Participant',
    'ParticipantRegistry',
]
