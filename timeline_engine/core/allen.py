"""
Allen Interval Algebra Bridge
=============================

Translates the 13 qualitative Allen relations into STN difference constraints
and classifies solved interval pairs back into relations.

INVARIANTS:
- Relation dispatch is a closed enum; inversion is a pure table lookup
- Strict inequalities (x < y) are encoded as a minimum gap of one tick
- Asserting a relation is all-or-nothing: every constraint is validated first
- Classification returns the SET of relations still possible, never a forced pick

ENDPOINT NOTATION:
==================
A = (As, Ae), B = (Bs, Be). Each relation is a conjunction of conditions on
pairs of endpoints, read as "x <op> y":

  lt        x < y           asserted as y - x in [gap, +inf)
  eq        x = y           asserted as y - x in [0, 0]
  precedes  x <= y / x < y  asserted as y - x in [0, +inf), classified strictly

`precedes` only appears in before/after, which are asserted exactly as the
quantitative form Bs - Ae in [0, +inf) but classified with Allen's strict
definition.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, List, Tuple
import logging

from ..contracts.base import Constraint, TickRange
from .stn import SimpleTemporalNetwork

logger = logging.getLogger(__name__)

# (start_id, end_id) of one interval inside a network
Endpoints = Tuple[str, str]


class AllenRelation(Enum):
    """The 13 mutually exclusive Allen relations of A with respect to B."""
    BEFORE = "before"
    AFTER = "after"
    MEETS = "meets"
    MET_BY = "met_by"
    OVERLAPS = "overlaps"
    OVERLAPPED_BY = "overlapped_by"
    DURING = "during"
    CONTAINS = "contains"
    STARTS = "starts"
    STARTED_BY = "started_by"
    FINISHES = "finishes"
    FINISHED_BY = "finished_by"
    EQUALS = "equals"

    @property
    def inverse(self) -> AllenRelation:
        """The relation of B with respect to A."""
        return _INVERSES[self]

    @property
    def code(self) -> str:
        """Language-neutral relation code."""
        return _CODES[self]

    def describe(self, locale: str = "en") -> str:
        """Human-readable name; unknown locales fall back to English."""
        table = _DESCRIPTIONS.get(locale, _DESCRIPTIONS["en"])
        return table[self]

    @classmethod
    def from_code(cls, code: str) -> AllenRelation:
        try:
            return _BY_CODE[code.upper()]
        except KeyError:
            raise ValueError(f"Unknown Allen relation code: {code!r}") from None

    @classmethod
    def parse(cls, text: str) -> AllenRelation:
        """Accept a relation name ("met_by", "met-by", "Met By") or a code ("ADJ_B")."""
        normalized = text.strip().lower().replace("-", "_").replace(" ", "_")
        for relation in cls:
            if relation.value == normalized:
                return relation
        return cls.from_code(text.strip())


RelationSet = FrozenSet[AllenRelation]

ALL_RELATIONS: RelationSet = frozenset(AllenRelation)


_INVERSES = {
    AllenRelation.BEFORE: AllenRelation.AFTER,
    AllenRelation.AFTER: AllenRelation.BEFORE,
    AllenRelation.MEETS: AllenRelation.MET_BY,
    AllenRelation.MET_BY: AllenRelation.MEETS,
    AllenRelation.OVERLAPS: AllenRelation.OVERLAPPED_BY,
    AllenRelation.OVERLAPPED_BY: AllenRelation.OVERLAPS,
    AllenRelation.DURING: AllenRelation.CONTAINS,
    AllenRelation.CONTAINS: AllenRelation.DURING,
    AllenRelation.STARTS: AllenRelation.STARTED_BY,
    AllenRelation.STARTED_BY: AllenRelation.STARTS,
    AllenRelation.FINISHES: AllenRelation.FINISHED_BY,
    AllenRelation.FINISHED_BY: AllenRelation.FINISHES,
    AllenRelation.EQUALS: AllenRelation.EQUALS,
}

_CODES = {
    AllenRelation.BEFORE: "PRECEDES",
    AllenRelation.AFTER: "FOLLOWS",
    AllenRelation.MEETS: "ADJ_F",
    AllenRelation.MET_BY: "ADJ_B",
    AllenRelation.OVERLAPS: "OVERLAP_F",
    AllenRelation.OVERLAPPED_BY: "OVERLAP_B",
    AllenRelation.DURING: "WITHIN",
    AllenRelation.CONTAINS: "CONTAINS",
    AllenRelation.STARTS: "START_ALIGN",
    AllenRelation.STARTED_BY: "START_EXTEND",
    AllenRelation.FINISHES: "END_ALIGN",
    AllenRelation.FINISHED_BY: "END_EXTEND",
    AllenRelation.EQUALS: "EQ",
}

_BY_CODE = {code: relation for relation, code in _CODES.items()}

_DESCRIPTIONS: Dict[str, Dict[AllenRelation, str]] = {
    "en": {
        AllenRelation.BEFORE: "before",
        AllenRelation.AFTER: "after",
        AllenRelation.MEETS: "meets",
        AllenRelation.MET_BY: "met by",
        AllenRelation.OVERLAPS: "overlaps",
        AllenRelation.OVERLAPPED_BY: "overlapped by",
        AllenRelation.DURING: "during",
        AllenRelation.CONTAINS: "contains",
        AllenRelation.STARTS: "starts",
        AllenRelation.STARTED_BY: "started by",
        AllenRelation.FINISHES: "finishes",
        AllenRelation.FINISHED_BY: "finished by",
        AllenRelation.EQUALS: "equals",
    },
    "es": {
        AllenRelation.BEFORE: "antes de",
        AllenRelation.AFTER: "después de",
        AllenRelation.MEETS: "se encuentra con",
        AllenRelation.MET_BY: "es encontrado por",
        AllenRelation.OVERLAPS: "se superpone con",
        AllenRelation.OVERLAPPED_BY: "es superpuesto por",
        AllenRelation.DURING: "durante",
        AllenRelation.CONTAINS: "contiene",
        AllenRelation.STARTS: "comienza",
        AllenRelation.STARTED_BY: "es comenzado por",
        AllenRelation.FINISHES: "termina",
        AllenRelation.FINISHED_BY: "es terminado por",
        AllenRelation.EQUALS: "es igual a",
    },
    "fr": {
        AllenRelation.BEFORE: "avant",
        AllenRelation.AFTER: "après",
        AllenRelation.MEETS: "rencontre",
        AllenRelation.MET_BY: "rencontré par",
        AllenRelation.OVERLAPS: "chevauche",
        AllenRelation.OVERLAPPED_BY: "chevauché par",
        AllenRelation.DURING: "pendant",
        AllenRelation.CONTAINS: "contient",
        AllenRelation.STARTS: "commence",
        AllenRelation.STARTED_BY: "commencé par",
        AllenRelation.FINISHES: "finit",
        AllenRelation.FINISHED_BY: "fini par",
        AllenRelation.EQUALS: "égal à",
    },
}


# =============================================================================
# RELATION DEFINITIONS
# =============================================================================

# Endpoint slots: 0 = As, 1 = Ae, 2 = Bs, 3 = Be
AS, AE, BS, BE = 0, 1, 2, 3

LT = "lt"
EQ = "eq"
PRECEDES = "precedes"

Condition = Tuple[str, int, int]

_CONDITIONS: Dict[AllenRelation, Tuple[Condition, ...]] = {
    AllenRelation.BEFORE: ((PRECEDES, AE, BS),),
    AllenRelation.AFTER: ((PRECEDES, BE, AS),),
    AllenRelation.MEETS: ((EQ, AE, BS),),
    AllenRelation.MET_BY: ((EQ, BE, AS),),
    AllenRelation.OVERLAPS: ((LT, AS, BS), (LT, BS, AE), (LT, AE, BE)),
    AllenRelation.OVERLAPPED_BY: ((LT, BS, AS), (LT, AS, BE), (LT, BE, AE)),
    AllenRelation.DURING: ((LT, BS, AS), (LT, AE, BE)),
    AllenRelation.CONTAINS: ((LT, AS, BS), (LT, BE, AE)),
    AllenRelation.STARTS: ((EQ, AS, BS), (LT, AE, BE)),
    AllenRelation.STARTED_BY: ((EQ, AS, BS), (LT, BE, AE)),
    AllenRelation.FINISHES: ((EQ, AE, BE), (LT, BS, AS)),
    AllenRelation.FINISHED_BY: ((EQ, AE, BE), (LT, AS, BS)),
    AllenRelation.EQUALS: ((EQ, AS, BS), (EQ, AE, BE)),
}


def _possible(kind: str, bounds: TickRange, gap: int) -> bool:
    """Whether `y - x` with the given solved bounds can satisfy the condition."""
    if kind == EQ:
        return bounds.contains(0)
    # lt and precedes are both strict when classifying
    return bounds.upper is None or bounds.upper >= gap


class AllenBridge:
    """
    Qualitative <-> quantitative translation over one network.

    Usage:
        bridge = AllenBridge()
        bridge.assert_relation(stn, AllenRelation.MEETS, ("a_start", "a_end"),
                               ("b_start", "b_end"))
        stn.solve()
        bridge.classify(stn, ("a_start", "a_end"), ("b_start", "b_end"))
    """

    def __init__(self, strict_gap: int = 1):
        if strict_gap < 1:
            raise ValueError("strict_gap must be at least one tick")
        self._gap = strict_gap

    @property
    def strict_gap(self) -> int:
        return self._gap

    # -------------------------------------------------------------------------
    # Relation -> constraints
    # -------------------------------------------------------------------------

    def constraints_for(
        self,
        relation: AllenRelation,
        a: Endpoints,
        b: Endpoints,
        strict: bool = False
    ) -> List[Constraint]:
        """
        Constraints encoding `relation(A, B)`.

        With `strict=True` before/after also require the one-tick gap, which is
        the form used when testing whether a relation can still hold.
        """
        slots = (a[0], a[1], b[0], b[1])
        constraints = []
        for kind, x, y in _CONDITIONS[relation]:
            if kind == EQ:
                lower, upper = 0, 0
            elif kind == LT or strict:
                lower, upper = self._gap, None
            else:
                lower, upper = 0, None
            constraints.append(Constraint(slots[x], slots[y], lower, upper))
        return constraints

    def assert_relation(
        self,
        stn: SimpleTemporalNetwork,
        relation: AllenRelation,
        a: Endpoints,
        b: Endpoints
    ) -> Tuple[Constraint, ...]:
        """Add the constraints of `relation(A, B)` to the network, all-or-nothing."""
        stored = stn.add_constraints(self.constraints_for(relation, a, b))
        logger.debug("Asserted %s(%s, %s)", relation.value, a, b)
        return stored

    # -------------------------------------------------------------------------
    # Solved bounds -> relations
    # -------------------------------------------------------------------------

    def classify(
        self,
        stn: SimpleTemporalNetwork,
        a: Endpoints,
        b: Endpoints,
        exact: bool = False
    ) -> RelationSet:
        """
        Relations between A and B still consistent with the solved bounds.

        Each condition is checked against the minimal-network bounds of its
        endpoint pair. This never excludes a relation that some schedule
        realises, but with wide slack it may keep a relation whose conditions
        are only pairwise satisfiable. `exact=True` removes those by asserting
        each candidate on a snapshot copy and re-solving.

        Requires a solved network (StaleBounds / InconsistentNetwork otherwise).
        """
        slots = (a[0], a[1], b[0], b[1])
        distances: Dict[Tuple[int, int], TickRange] = {}

        def bounds(x: int, y: int) -> TickRange:
            if (x, y) not in distances:
                distances[(x, y)] = stn.distance(slots[x], slots[y])
            return distances[(x, y)]

        candidates = frozenset(
            relation for relation, conditions in _CONDITIONS.items()
            if all(_possible(kind, bounds(x, y), self._gap) for kind, x, y in conditions)
        )
        if not exact:
            return candidates
        return frozenset(
            relation for relation in candidates
            if self._trial(stn, relation, a, b)
        )

    def holds(
        self,
        stn: SimpleTemporalNetwork,
        relation: AllenRelation,
        a: Endpoints,
        b: Endpoints
    ) -> bool:
        """Whether `relation(A, B)` is entailed: it is the only possible relation."""
        return self.classify(stn, a, b, exact=True) == frozenset({relation})

    def _trial(
        self,
        stn: SimpleTemporalNetwork,
        relation: AllenRelation,
        a: Endpoints,
        b: Endpoints
    ) -> bool:
        trial = stn.copy()
        trial.add_constraints(self.constraints_for(relation, a, b, strict=True))
        return trial.consistent()


__all__ = [
    'AllenRelation',
    'RelationSet',
    'ALL_RELATIONS',
    'Endpoints',
    'AllenBridge',
]
