"""
Layered Layout - 2-D positions for DAG nodes, grouped by topological rank.

Algorithm:
    1. Rank: longest path from a source (prerequisites always rank lower)
    2. Order within rank: barycenter sweeps to reduce edge crossings,
       ties broken by input order so re-layout is stable
    3. Place: ranks spaced along the main axis, nodes packed along the
       cross axis and centered against the widest rank

Node and edge dicts are renderer-shaped: nodes carry "id", edges carry
"source" and "target". Positions are top-left corners.
"""

import logging
from typing import Dict, List, Sequence, Tuple

import networkx as nx

logger = logging.getLogger(__name__)

DIRECTIONS = ("LR", "RL", "TB", "BT")
DEFAULT_DIRECTION = "LR"
NODE_SEP = 40
RANK_SEP = 60
ORDERING_PASSES = 4

# (source side, target side) per flow direction
ANCHOR_SIDES = {
    "LR": ("right", "left"),
    "RL": ("left", "right"),
    "TB": ("bottom", "top"),
    "BT": ("top", "bottom"),
}


def _build_graph(nodes: Sequence[dict], edges: Sequence[dict]) -> nx.DiGraph:
    graph = nx.DiGraph()
    for node in nodes:
        graph.add_node(node["id"])
    for edge in edges:
        source, target = edge["source"], edge["target"]
        if source in graph and target in graph and source != target:
            graph.add_edge(source, target)

    # Layering needs a DAG; drop the closing edge of each cycle found.
    while not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        source, target = cycle[-1][0], cycle[-1][1]
        logger.warning("Prerequisite cycle through %s; ignoring edge %s -> %s for layout",
                       [u for u, _ in cycle], source, target)
        graph.remove_edge(source, target)
    return graph


def assign_ranks(graph: nx.DiGraph) -> Dict[str, int]:
    """Longest-path layering: sources get rank 0, others 1 + max(pred rank)."""
    ranks: Dict[str, int] = {}
    for node_id in nx.topological_sort(graph):
        preds = list(graph.predecessors(node_id))
        ranks[node_id] = 1 + max(ranks[p] for p in preds) if preds else 0
    return ranks


def order_layers(graph: nx.DiGraph, ranks: Dict[str, int],
                 input_order: Dict[str, int]) -> List[List[str]]:
    """
    Group nodes by rank and order each layer by neighbour barycenters.

    Alternates downward sweeps (using predecessors) and upward sweeps
    (using successors). Sorting is stable, so equal barycenters keep the
    previous order.
    """
    depth = max(ranks.values()) + 1 if ranks else 0
    layers: List[List[str]] = [[] for _ in range(depth)]
    for node_id in sorted(ranks, key=lambda n: input_order[n]):
        layers[ranks[node_id]].append(node_id)

    def sweep(layer_indices, neighbours):
        for i in layer_indices:
            position = {n: idx for idx, n in enumerate(layers[i - 1 if neighbours == "pred" else i + 1])}
            current = {n: idx for idx, n in enumerate(layers[i])}

            def barycenter(node_id):
                adjacent = graph.predecessors(node_id) if neighbours == "pred" else graph.successors(node_id)
                hits = [position[a] for a in adjacent if a in position]
                if not hits:
                    return float(current[node_id])
                return sum(hits) / len(hits)

            layers[i] = sorted(layers[i], key=lambda n: (barycenter(n), current[n]))

    for _ in range(ORDERING_PASSES):
        sweep(range(1, depth), "pred")
        sweep(range(depth - 2, -1, -1), "succ")
    return layers


def get_layouted_elements(nodes: Sequence[dict], edges: Sequence[dict],
                          node_width: float, node_height: float,
                          direction: str = DEFAULT_DIRECTION,
                          node_sep: float = NODE_SEP,
                          rank_sep: float = RANK_SEP) -> Tuple[List[dict], List[dict]]:
    """
    Position nodes in rank layers and attach anchor sides.

    Args:
        nodes: Dicts with an "id" key (other keys are preserved)
        edges: Dicts with "source" and "target" keys
        node_width: Fixed width of every node
        node_height: Fixed height of every node
        direction: "LR" (default), "RL", "TB" or "BT"
        node_sep: Minimum gap between nodes in the same rank
        rank_sep: Minimum gap between ranks

    Returns:
        (positioned node copies, edge copies with anchor sides)
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown layout direction: {direction}")

    graph = _build_graph(nodes, edges)
    input_order = {node["id"]: i for i, node in enumerate(nodes)}
    ranks = assign_ranks(graph)
    layers = order_layers(graph, ranks, input_order)

    horizontal = direction in ("LR", "RL")
    reverse = direction in ("RL", "BT")
    main_size = node_width if horizontal else node_height
    cross_size = node_height if horizontal else node_width
    main_step = main_size + rank_sep
    cross_step = cross_size + node_sep
    widest = max((len(layer) for layer in layers), default=0)
    last_rank = len(layers) - 1

    coordinates: Dict[str, Tuple[float, float]] = {}
    for rank, layer in enumerate(layers):
        main = (last_rank - rank if reverse else rank) * main_step
        offset = (widest - len(layer)) * cross_step / 2
        for index, node_id in enumerate(layer):
            cross = offset + index * cross_step
            coordinates[node_id] = (main, cross) if horizontal else (cross, main)

    source_side, target_side = ANCHOR_SIDES[direction]
    layouted_nodes = []
    for node in nodes:
        x, y = coordinates[node["id"]]
        layouted_nodes.append({
            **node,
            "position": {"x": x, "y": y},
            "rank": ranks[node["id"]],
            "source_position": source_side,
            "target_position": target_side,
        })
    layouted_edges = [
        {**edge, "source_position": source_side, "target_position": target_side}
        for edge in edges
    ]
    return layouted_nodes, layouted_edges
