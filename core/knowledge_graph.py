"""
Knowledge Graph - Node-level prerequisite DAG for one unit.

Features:
    - Prerequisite relationships as directed edges (prerequisite -> dependent)
    - Bottleneck detection (weak nodes gating several downstream nodes)
    - Recommended review list ("check these prerequisites in this order")
    - Cycle detection for template validation

All analytics are pure: they take the unit's nodes plus a level lookup and
never mutate the template.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import networkx as nx

from .models import Node

LevelLookup = Callable[[str], int]

# A node at or below this level is "weakly understood".
BOTTLENECK_MAX_LEVEL = 1
# ...and it is a bottleneck when at least this many nodes depend on it.
BOTTLENECK_MIN_DEPENDENTS = 2
# Prerequisites at or below this level are not yet reliably independent.
REVIEW_MAX_LEVEL = 2


@dataclass(frozen=True)
class ReviewItem:
    """One prerequisite the instructor should check."""
    id: str
    title: str
    level: int

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "level": self.level}


class UnitGraph:
    """
    Directed graph of a unit's nodes.

    Edges run FROM a prerequisite TO the node that lists it. Prerequisite ids
    that do not resolve within the unit and self-references are left out of
    the graph, so queries degrade to empty results instead of raising.
    """

    def __init__(self, nodes: Sequence[Node]):
        self.nodes: Dict[str, Node] = {}
        self.graph = nx.DiGraph()

        for node in nodes:
            self.nodes.setdefault(node.id, node)
            self.graph.add_node(node.id)

        for node in nodes:
            for prereq in node.prerequisites:
                if prereq in self.nodes and prereq != node.id:
                    self.graph.add_edge(prereq, node.id)

    # ==================== Query Methods ====================

    def get_prerequisites(self, node_id: str) -> List[str]:
        """Immediate prerequisites that resolve within the unit."""
        if node_id not in self.graph:
            return []
        return list(self.graph.predecessors(node_id))

    def dependent_count(self, node_id: str) -> int:
        if node_id not in self.graph:
            return 0
        return self.graph.out_degree(node_id)

    def edges(self) -> List[Tuple[str, str]]:
        """(prerequisite, dependent) pairs, each at most once."""
        return list(self.graph.edges())

    def find_cycle(self) -> Optional[List[str]]:
        """
        Return the node ids along one prerequisite cycle, or None for a DAG.

        The returned path is closed: first id == last id.
        """
        try:
            cycle_edges = nx.find_cycle(self.graph)
        except nx.NetworkXNoCycle:
            return None
        path = [u for u, _ in cycle_edges]
        path.append(cycle_edges[-1][1])
        return path

    # ==================== Analytics ====================

    def bottlenecks(self, get_level: LevelLookup) -> List[str]:
        """
        Weak nodes that gate two or more downstream nodes.

        n is a bottleneck iff level(n) <= 1 and dependents(n) >= 2.
        Returned in the unit's node order.
        """
        return [
            node_id for node_id in self.nodes
            if get_level(node_id) <= BOTTLENECK_MAX_LEVEL
            and self.dependent_count(node_id) >= BOTTLENECK_MIN_DEPENDENTS
        ]

    def recommended_review(self, target_id: str, get_level: LevelLookup) -> List[ReviewItem]:
        """
        Prerequisites of target to check, in the order they were declared.

        Only prerequisites at level <= 2 are kept; ids that do not resolve in
        the unit are skipped.
        """
        target = self.nodes.get(target_id)
        if target is None:
            return []
        return _review_items(target.prerequisites, self.nodes, get_level)

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get graph statistics."""
        is_dag = nx.is_directed_acyclic_graph(self.graph)
        return {
            "total_nodes": self.graph.number_of_nodes(),
            "total_edges": self.graph.number_of_edges(),
            "is_dag": is_dag,
            "max_depth": nx.dag_longest_path_length(self.graph) if is_dag and self.nodes else 0,
        }


# ==================== Functional Entry Points ====================

def get_bottleneck_node_ids(nodes: Sequence[Node], get_level: LevelLookup) -> List[str]:
    """Bottleneck node ids for a unit's nodes."""
    return UnitGraph(nodes).bottlenecks(get_level)


def get_recommended_prerequisites(target: Node, nodes: Sequence[Node],
                                  get_level: LevelLookup) -> List[ReviewItem]:
    """Recommended review list for target, resolved against nodes."""
    return _review_items(target.prerequisites, {n.id: n for n in nodes}, get_level)


def _review_items(prerequisites: Sequence[str], by_id: Dict[str, Node],
                  get_level: LevelLookup) -> List[ReviewItem]:
    result = []
    for prereq_id in prerequisites:
        level = get_level(prereq_id)
        if level > REVIEW_MAX_LEVEL:
            continue
        prereq = by_id.get(prereq_id)
        if prereq is not None:
            result.append(ReviewItem(id=prereq.id, title=prereq.title, level=level))
    return result


def find_prerequisite_cycle(nodes: Sequence[Node]) -> Optional[List[str]]:
    """Node ids along a prerequisite cycle, or None when the nodes form a DAG."""
    return UnitGraph(nodes).find_cycle()
