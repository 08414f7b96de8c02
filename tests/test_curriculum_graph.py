"""Tests for core/curriculum_graph.py"""

import asyncio

from conftest import make_node

from core.curriculum_graph import build_curriculum_graph
from core.models import Unit


def build(templates, student):
    return asyncio.run(build_curriculum_graph(templates, student))


def test_built_in_edges(templates, ledger):
    student = ledger.add_student("s1", "Aiko", "square_root", ["SR-01"])
    graph = build(templates, student)
    assert [v.unit_id for v in graph.vertices] == ["square_root", "quadratic_function", "trigonometric_ratio"]
    assert set(graph.edges) == {
        ("square_root", "quadratic_function"),
        ("square_root", "trigonometric_ratio"),
        ("quadratic_function", "trigonometric_ratio"),
    }
    assert [u.unit_id for u in graph.get_prerequisite_units("trigonometric_ratio")] == [
        "square_root", "quadratic_function",
    ]


def test_unvisited_units_count_as_zero(templates, ledger):
    student = ledger.add_student("s1", "Aiko", "square_root", ["SR-01"])
    graph = build(templates, student)
    quadratic = graph.get_unit("quadratic_function").understanding
    assert quadratic.average == 0
    assert quadratic.achievement_rate == 0
    assert quadratic.node_count == 11


def test_understanding_reflects_ledger(templates, ledger):
    unit = templates.load_unit_template("square_root")
    student = ledger.add_student("s1", "Aiko", unit.unit_id, unit.node_ids())
    for node_id in unit.node_ids()[:3]:
        student = ledger.record_level_change(student, unit.unit_id, node_id, 4)

    graph = build(templates, student)
    understanding = graph.get_unit("square_root").understanding
    assert understanding.node_count == 9
    assert understanding.average == 12 / 9
    assert understanding.achievement_rate == 3 / 9


def test_missing_student_yields_zero_everywhere(templates):
    graph = build(templates, None)
    assert all(v.understanding.average == 0 for v in graph.vertices)
    assert len(graph.edges) == 3


def test_edges_to_unavailable_units_are_dropped(templates, ledger):
    dependent = Unit(unit_id="custom-dep", unit_name="Dep", nodes=[make_node("a")],
                     prerequisite_unit_ids=["custom-gone", "square_root", "square_root"])
    templates.save_custom_template(dependent)
    student = ledger.add_student("s1", "Aiko", "custom-dep", ["a"])

    graph = build(templates, student)
    incoming = [s for s, t in graph.edges if t == "custom-dep"]
    assert incoming == ["square_root"]

    gone = Unit(unit_id="custom-gone", unit_name="Gone", nodes=[make_node("b")])
    templates.save_custom_template(gone)
    graph = build(templates, student)
    assert [s for s, t in graph.edges if t == "custom-dep"] == ["custom-gone", "square_root"]

    templates.delete_custom_template("custom-gone")
    graph = build(templates, student)
    assert [s for s, t in graph.edges if t == "custom-dep"] == ["square_root"]


def test_readiness(templates, ledger):
    sqrt = templates.load_unit_template("square_root")
    student = ledger.add_student("s1", "Aiko", sqrt.unit_id, sqrt.node_ids())
    for node_id in sqrt.node_ids():
        student = ledger.record_level_change(student, sqrt.unit_id, node_id, 2)

    graph = build(templates, student)
    ready = graph.readiness("quadratic_function")
    assert [p["unit_id"] for p in ready["prerequisites"]] == ["square_root"]
    assert ready["average"] == 2.0
    assert ready["achievement_rate"] == 1.0

    trig = graph.readiness("trigonometric_ratio")
    assert trig["average"] == 1.0
    assert trig["achievement_rate"] == 0.5

    root = graph.readiness("square_root")
    assert root["prerequisites"] == []
    assert root["average"] is None


def test_to_dict(templates):
    data = build(templates, None).to_dict()
    assert len(data["units"]) == 3
    assert {"source": "square_root", "target": "quadratic_function"} in data["edges"]
    assert data["units"][0]["understanding"]["node_count"] == 0
