"""Tests for core/layout.py"""

import pytest

from core.layout import NODE_SEP, RANK_SEP, get_layouted_elements

WIDTH = 180
HEIGHT = 56


def graph(node_ids, pairs):
    nodes = [{"id": n, "label": n} for n in node_ids]
    edges = [{"id": f"{s}-{t}", "source": s, "target": t} for s, t in pairs]
    return nodes, edges


def test_rank_exceeds_every_prerequisite_rank():
    nodes, edges = graph(
        ["A", "B", "C", "D", "E", "F"],
        [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"), ("A", "D"), ("D", "E"), ("B", "E")],
    )
    laid, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    rank = {n["id"]: n["rank"] for n in laid}
    for edge in edges:
        assert rank[edge["target"]] > rank[edge["source"]]
    assert rank == {"A": 0, "B": 1, "C": 1, "D": 2, "E": 3, "F": 0}


def test_left_to_right_positions_and_anchors():
    nodes, edges = graph(["A", "B"], [("A", "B")])
    laid, laid_edges = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    by_id = {n["id"]: n for n in laid}
    assert by_id["A"]["position"] == {"x": 0, "y": 0}
    assert by_id["B"]["position"] == {"x": WIDTH + RANK_SEP, "y": 0}
    assert by_id["A"]["source_position"] == "right"
    assert by_id["B"]["target_position"] == "left"
    assert laid_edges[0]["source"] == "A" and laid_edges[0]["target"] == "B"
    assert laid_edges[0]["source_position"] == "right"
    assert by_id["A"]["label"] == "A"


def test_top_to_bottom_flow():
    nodes, edges = graph(["A", "B"], [("A", "B")])
    laid, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT, direction="TB")
    by_id = {n["id"]: n for n in laid}
    assert by_id["B"]["position"] == {"x": 0, "y": HEIGHT + RANK_SEP}
    assert by_id["A"]["source_position"] == "bottom"
    assert by_id["B"]["target_position"] == "top"


def test_reversed_flow_mirrors_main_axis():
    nodes, edges = graph(["A", "B"], [("A", "B")])
    laid, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT, direction="RL")
    by_id = {n["id"]: n for n in laid}
    assert by_id["A"]["position"]["x"] > by_id["B"]["position"]["x"]
    assert by_id["A"]["source_position"] == "left"


def test_nodes_in_one_rank_keep_minimum_separation():
    nodes, edges = graph(["A", "B", "C"], [])
    laid, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    ys = sorted(n["position"]["y"] for n in laid)
    assert all(n["position"]["x"] == 0 for n in laid)
    for first, second in zip(ys, ys[1:]):
        assert second - first >= HEIGHT + NODE_SEP


def test_barycenter_ordering_uncrosses_edges():
    # B2 hangs off A2 and B1 off A1, but B2 is listed first.
    nodes, edges = graph(["A1", "A2", "B2", "B1"], [("A1", "B1"), ("A2", "B2")])
    laid, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    y = {n["id"]: n["position"]["y"] for n in laid}
    assert y["A1"] < y["A2"]
    assert y["B1"] < y["B2"]


def test_layout_is_deterministic():
    nodes, edges = graph(
        ["A", "B", "C", "D", "E"],
        [("A", "C"), ("B", "C"), ("A", "D"), ("C", "E"), ("D", "E")],
    )
    first, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    second, _ = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    assert first == second


def test_dangling_edges_and_cycles_degrade_gracefully():
    nodes, edges = graph(["A", "B", "C"], [("A", "B"), ("B", "C"), ("C", "A"), ("ghost", "A")])
    laid, laid_edges = get_layouted_elements(nodes, edges, WIDTH, HEIGHT)
    assert {n["id"] for n in laid} == {"A", "B", "C"}
    assert len(laid_edges) == 4


def test_empty_graph():
    assert get_layouted_elements([], [], WIDTH, HEIGHT) == ([], [])


def test_unknown_direction_rejected():
    with pytest.raises(ValueError):
        get_layouted_elements([], [], WIDTH, HEIGHT, direction="XY")
