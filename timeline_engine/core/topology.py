"""
Topology Engine
===============

Structural analysis of a network's constraint graph using graph topology.

SCOPE:
======
This engine computes CONNECTIVITY, not BOUNDS.

ALLOWED:
- Graph construction from the stored edge list
- Connected components (partitioning for batch solving)
- Path finding (which constraints relate two points)
- Structural metrics (density, diameter)

FORBIDDEN:
- Reading or tightening bounds - that is the solver's job
- Treating a constraint's width as edge weight: a constraint is a connection

THE ORIGIN:
===========
Every network shares the origin, so it is left out of the connectivity
graph. Otherwise every anchored point would fall into one component.
Partitioning replicates the origin (and its constraints) into each component.
Because the origin is the only point the components share, a negative cycle
through it splits into cycles inside single components: the components are
jointly consistent iff each one is, and origin-relative bounds are unchanged.
"""

from __future__ import annotations
from typing import Dict, List, Set, Optional, Sequence
from dataclasses import dataclass
import logging
import networkx as nx

from ..contracts.base import ORIGIN
from .stn import SimpleTemporalNetwork, STNConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphMetrics:
    """Immutable structural metrics for a constraint graph."""
    node_count: int
    edge_count: int
    density: float
    is_connected: bool
    connected_components_count: int
    diameter: Optional[int] = None  # Only for connected graphs


class TopologyEngine:
    """
    Structural view of one network's constraint graph.

    Wraps NetworkX; edges are undirected because connectivity, not
    direction, decides which points can influence each other.
    """

    def __init__(self):
        self._graph = nx.Graph()
        self._order: Dict[str, int] = {}

    def build_graph(self, stn: SimpleTemporalNetwork) -> None:
        """
        Build graph from the network's time points and stored constraints.

        Replaces internal graph state.
        """
        self._graph = nx.Graph()
        self._order = {}

        for position, point in enumerate(stn.time_points()):
            if point != ORIGIN:
                self._graph.add_node(point)
                self._order[point] = position

        for constraint in stn.constraints():
            if ORIGIN in (constraint.from_point, constraint.to_point):
                continue
            if constraint.from_point == constraint.to_point:
                continue
            self._graph.add_edge(constraint.from_point, constraint.to_point)

    def get_connected_components(self) -> List[Set[str]]:
        """
        Disjoint groups of points that share no constraint path.

        Ordered by the earliest-added point of each component so partitioning
        is deterministic.
        """
        if not self._graph:
            return []

        components = [set(c) for c in nx.connected_components(self._graph)]
        components.sort(key=lambda c: min(self._order[p] for p in c))
        return components

    def ordered(self, component: Set[str]) -> List[str]:
        """Points of a component in network arena order."""
        return sorted(component, key=self._order.__getitem__)

    def compute_metrics(self) -> GraphMetrics:
        if not self._graph:
            return GraphMetrics(0, 0, 0.0, False, 0, None)

        is_connected = nx.is_connected(self._graph)

        diameter = None
        if is_connected and len(self._graph) > 1:
            diameter = nx.diameter(self._graph)

        return GraphMetrics(
            node_count=self._graph.number_of_nodes(),
            edge_count=self._graph.number_of_edges(),
            density=nx.density(self._graph),
            is_connected=is_connected,
            connected_components_count=nx.number_connected_components(self._graph),
            diameter=diameter
        )

    def get_shortest_path(self, start_id: str, end_id: str) -> Optional[List[str]]:
        """
        Shortest chain of constraints linking two points.

        None when the points are unrelated (other than through the origin).
        """
        try:
            return nx.shortest_path(self._graph, source=start_id, target=end_id)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def clear(self):
        self._graph.clear()
        self._order = {}


# =============================================================================
# PARTITIONING
# =============================================================================

def partition(stn: SimpleTemporalNetwork) -> List[SimpleTemporalNetwork]:
    """
    Split a network into one unsolved network per connected component.

    Each part carries the origin and every constraint touching its points;
    the input is not modified.
    """
    engine = TopologyEngine()
    engine.build_graph(stn)
    components = engine.get_connected_components()

    constraints = stn.constraints()
    parts = []
    for component in components:
        part = SimpleTemporalNetwork(
            STNConfig(epoch=stn.epoch, solve_timeout_seconds=stn.solve_timeout_seconds),
            metrics=stn.metrics
        )
        for point in engine.ordered(component):
            part.add_time_point(point)
        part.add_constraints(
            c for c in constraints
            if (c.from_point in component or c.from_point == ORIGIN)
            and (c.to_point in component or c.to_point == ORIGIN)
        )
        parts.append(part)

    logger.debug("Partitioned %d time points into %d components", len(stn) - 1, len(parts))
    return parts


def shared_time_points(networks: Sequence[SimpleTemporalNetwork]) -> List[str]:
    """Ids (other than the origin) that occur in more than one network."""
    seen: Set[str] = set()
    shared: Set[str] = set()
    for network in networks:
        points = set(network.time_points()) - {ORIGIN}
        shared |= seen & points
        seen |= points
    return sorted(shared)


__all__ = [
    'GraphMetrics',
    'TopologyEngine',
    'partition',
    'shared_time_points',
]
