"""Tests for core/unit_understanding.py"""

from core.unit_understanding import compute_unit_understanding


def test_average_and_achievement_rate():
    lvl = {"n1": 0, "n2": 2, "n3": 4, "n4": 1, "n5": 3}
    result = compute_unit_understanding(list(lvl), lvl.get)
    assert result.average == 2.0
    assert result.achievement_rate == 0.6
    assert result.achieved_count == 3
    assert result.node_count == 5


def test_empty_unit_is_zero_not_nan():
    result = compute_unit_understanding([], lambda _: 4)
    assert result.average == 0
    assert result.achievement_rate == 0
    assert result.node_count == 0


def test_missing_levels_count_as_zero():
    result = compute_unit_understanding(["a", "b", "c"], {"a": 3}.get)
    assert result.average == 1.0
    assert result.achieved_count == 1


def test_values_are_not_rounded():
    result = compute_unit_understanding(["a", "b", "c"], {"a": 1, "b": 1, "c": 2}.get)
    assert result.average == 4 / 3
    assert result.achievement_rate == 1 / 3
    assert result.to_dict()["average"] == 4 / 3
