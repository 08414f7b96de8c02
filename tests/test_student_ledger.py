"""Tests for core/student_ledger.py"""

import json
import threading
from datetime import date

import pytest
from conftest import DEMO_ID

from core.exceptions import NotFoundError, StorageError, ValidationError
from core.models import LEGACY_UNIT_ID, UnderstandingLevel
from core.student_ledger import StudentLedger, create_initial_student


def add(ledger, student_id="s1", name="Aiko", unit_id="u1", node_ids=("a", "b", "c")):
    return ledger.add_student(student_id, name, unit_id, list(node_ids))


# ==================== Records ====================

def test_new_student_starts_at_level_zero(ledger):
    student = add(ledger)
    records = student.node_status_by_unit["u1"]
    assert list(records) == ["a", "b", "c"]
    for record in records.values():
        assert record.understanding_level == UnderstandingLevel.NOT_STUDIED
        assert record.last_checked == "2024-05-01"
        assert record.memo == ""
    assert ledger.get_student("s1") == student


def test_blank_name_rejected(ledger, store):
    with pytest.raises(ValidationError):
        add(ledger, name="   ")
    assert store.client.keys("*") == []


def test_unknown_student(ledger):
    assert ledger.load_student("ghost") is None
    with pytest.raises(NotFoundError):
        ledger.get_student("ghost")


def test_legacy_record_is_migrated_on_load(ledger, store):
    legacy = {
        "student_id": "old",
        "name": "Old",
        "node_status": {"QF-01": {"node_id": "QF-01", "understanding_level": 2, "last_checked": "2023-04-01"}},
    }
    store.set_json(store.student_key("old"), legacy)
    student = ledger.load_student("old")
    assert student.get_level(LEGACY_UNIT_ID, "QF-01") == 2
    # migration does not write back
    assert "node_status" in store.get_json(store.student_key("old"))


def test_corrupt_record_is_treated_as_absent(ledger, store):
    store.client.set(store.student_key("bad"), "not json")
    assert ledger.load_student("bad") is None
    store.client.set(store.student_key("bad2"), json.dumps({"name": "no id"}))
    assert ledger.load_student("bad2") is None


# ==================== Registry ====================

def test_index_defaults_to_demo_student(ledger):
    assert ledger.load_student_ids() == [DEMO_ID]
    assert ledger.list_students() == []


def test_registry_keeps_order_without_duplicates(ledger):
    ledger.save_student_ids([])
    add(ledger, "s1")
    add(ledger, "s2", name="Ben")
    add(ledger, "s1", name="Aiko again")
    assert ledger.load_student_ids() == ["s1", "s2"]
    assert [s.name for s in ledger.list_students()] == ["Aiko again", "Ben"]


def test_delete_student_is_idempotent(ledger):
    add(ledger, "s1")
    assert ledger.delete_student("s1") is True
    assert ledger.delete_student("s1") is False
    assert "s1" not in ledger.load_student_ids()
    assert ledger.load_student("s1") is None


def test_ensure_demo_student_creates_once(ledger, templates):
    unit = templates.load_unit_template("square_root")
    demo = ledger.ensure_demo_student(unit, "Demo")
    assert demo.student_id == DEMO_ID
    assert list(demo.node_status_by_unit) == ["square_root"]
    ledger.record_level_change(demo, "square_root", "SR-01", 3)
    again = ledger.ensure_demo_student(unit, "Demo")
    assert again.get_level("square_root", "SR-01") == 3


# ==================== Ledger Updates ====================

def test_ensure_unit_status_initializes_new_unit(ledger):
    student = add(ledger)
    updated = ledger.ensure_unit_status(student, "u2", ["x", "y"])
    assert updated is not student
    assert set(updated.node_status_by_unit) == {"u1", "u2"}
    assert all(r.understanding_level == 0 for r in updated.node_status_by_unit["u2"].values())
    assert "u2" not in student.node_status_by_unit
    assert ledger.get_student("s1") == updated


def test_ensure_unit_status_is_a_noop_for_known_unit(ledger):
    student = add(ledger)
    ledger.record_level_change(student, "u1", "a", 4)
    fresh = ledger.get_student("s1")
    assert ledger.ensure_unit_status(fresh, "u1", ["a", "b", "c", "d"]) is fresh
    assert ledger.get_student("s1").get_level("u1", "a") == 4
    assert "d" not in ledger.get_student("s1").node_status_by_unit["u1"]


def test_level_change_stamps_date_and_keeps_memo(ledger, clock):
    student = add(ledger)
    student = ledger.record_memo_change(student, "u1", "a", "needs practice")
    clock.day = date(2024, 6, 2)
    student = ledger.record_level_change(student, "u1", "a", 3)
    record = student.node_status_by_unit["u1"]["a"]
    assert record.understanding_level == UnderstandingLevel.INDEPENDENT
    assert record.last_checked == "2024-06-02"
    assert record.memo == "needs practice"


def test_memo_change_keeps_level_and_date(ledger, clock):
    student = add(ledger)
    student = ledger.record_level_change(student, "u1", "b", 2)
    clock.day = date(2024, 7, 1)
    student = ledger.record_memo_change(student, "u1", "b", "explained it well")
    record = student.node_status_by_unit["u1"]["b"]
    assert record.understanding_level == 2
    assert record.last_checked == "2024-05-01"
    assert record.memo == "explained it well"


def test_invalid_level_rejected(ledger):
    student = add(ledger)
    with pytest.raises(ValidationError):
        ledger.record_level_change(student, "u1", "a", 5)
    assert ledger.get_student("s1").get_level("u1", "a") == 0


def test_edits_from_stale_objects_are_not_lost(ledger):
    stale = add(ledger)
    ledger.record_level_change(stale, "u1", "a", 4)
    ledger.record_level_change(stale, "u1", "b", 3)
    ledger.record_memo_change(stale, "u1", "c", "memo")
    stored = ledger.get_student("s1")
    assert stored.get_level("u1", "a") == 4
    assert stored.get_level("u1", "b") == 3
    assert stored.node_status_by_unit["u1"]["c"].memo == "memo"


def test_concurrent_edits_on_distinct_nodes_all_land(ledger):
    node_ids = [f"n{i}" for i in range(20)]
    student = add(ledger, node_ids=node_ids)
    threads = [
        threading.Thread(target=ledger.record_level_change, args=(student, "u1", node_id, 3))
        for node_id in node_ids
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    stored = ledger.get_student("s1")
    assert all(stored.get_level("u1", node_id) == 3 for node_id in node_ids)


def test_level_change_in_back_filled_unit_keeps_siblings(ledger):
    student = add(ledger)
    student = ledger.ensure_unit_status(student, "u2", ["x", "y"])
    updated = ledger.record_level_change(student, "u2", "x", 1)
    assert updated.get_level("u2", "x") == 1
    assert list(updated.node_status_by_unit["u2"]) == ["x", "y"]
    assert updated.get_level("u1", "a") == 0


# ==================== Storage Failures ====================

def test_write_failure_propagates(flaky_store, clock):
    ledger = StudentLedger(flaky_store, DEMO_ID, clock=clock)
    student = add(ledger)
    flaky_store.client.fail_writes = True
    with pytest.raises(StorageError):
        ledger.save_student(student)
    with pytest.raises(StorageError):
        ledger.record_level_change(student, "u1", "a", 3)
    flaky_store.client.fail_writes = False
    assert ledger.get_student("s1").get_level("u1", "a") == 0


def test_read_failure_is_treated_as_absent(flaky_store, clock):
    ledger = StudentLedger(flaky_store, DEMO_ID, clock=clock)
    add(ledger)
    flaky_store.client.fail_reads = True
    assert ledger.load_student("s1") is None
    assert ledger.load_student_ids() == [DEMO_ID]


# ==================== Administration ====================

def test_reset_all_understanding(ledger, clock):
    first = add(ledger, "s1")
    second = add(ledger, "s2", name="Ben")
    ledger.record_level_change(first, "u1", "a", 4)
    ledger.record_memo_change(second, "u1", "b", "memo")
    ledger.ensure_unit_status(ledger.get_student("s2"), "u2", ["x"])

    clock.day = date(2024, 9, 1)
    assert ledger.reset_all_understanding() == 2

    for student_id in ("s1", "s2"):
        student = ledger.get_student(student_id)
        for status in student.node_status_by_unit.values():
            for record in status.values():
                assert record.understanding_level == 0
                assert record.last_checked == "2024-09-01"
                assert record.memo == ""
    assert set(ledger.get_student("s2").node_status_by_unit) == {"u1", "u2"}


def test_reset_skips_registered_ids_without_records(ledger):
    add(ledger, "s1")
    assert ledger.load_student_ids() == [DEMO_ID, "s1"]
    assert ledger.reset_all_understanding() == 1


def test_remove_all_except_demo(ledger, store):
    ledger.save_student(create_initial_student(DEMO_ID, "Demo", "u1", ["a"], "2024-05-01"))
    add(ledger, "s1")
    add(ledger, "s2", name="Ben")

    assert ledger.remove_all_except_demo() == 2
    assert ledger.load_student_ids() == [DEMO_ID]
    assert ledger.load_student("s1") is None
    assert ledger.load_student("s2") is None
    assert ledger.load_student(DEMO_ID) is not None
