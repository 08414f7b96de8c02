"""
Student Ledger - Per-student understanding records backed by the store.

Features:
    - Schema migration on load (legacy single-unit ledgers are promoted)
    - Lazy back-fill of a unit's records the first time it is visited
    - Level / memo edits merged into the stored record under a per-student lock
    - Student registry (ordered index of ids, demo student by default)
    - Administrative bulk reset / cleanup
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from redis_store import RedisStore

from .exceptions import NotFoundError, StorageError, ValidationError
from .models import Student, UnderstandingLevel, UnderstandingRecord, Unit, migrate_student

logger = logging.getLogger(__name__)


def initial_records(node_ids: Sequence[str], today: str) -> Dict[str, UnderstandingRecord]:
    """Level 0 records stamped today, one per node id."""
    return {
        node_id: UnderstandingRecord(
            node_id=node_id,
            understanding_level=UnderstandingLevel.NOT_STUDIED,
            last_checked=today,
            memo="",
        )
        for node_id in node_ids
    }


def create_initial_student(student_id: str, name: str, unit_id: str,
                           node_ids: Sequence[str], today: str) -> Student:
    """New student with one unit initialized."""
    return Student(
        student_id=student_id,
        name=name,
        node_status_by_unit={unit_id: initial_records(node_ids, today)},
    )


class StudentLedger:
    """
    Reads and writes Student records.

    Mutation helpers re-read the stored record, merge the change and write
    the whole record back while holding a lock keyed by student id, so
    concurrent node-level edits on one student are not lost.
    """

    def __init__(self, store: RedisStore, demo_student_id: Optional[str] = None,
                 clock: Callable[[], date] = date.today):
        self.store = store
        self.demo_student_id = demo_student_id or store.settings.demo_student_id
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def today(self) -> str:
        return self.clock().isoformat()

    @contextmanager
    def _student_lock(self, student_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(student_id, threading.Lock())
        with lock:
            yield

    # ==================== Records ====================

    def load_student(self, student_id: str) -> Optional[Student]:
        """
        Load and migrate a student record.

        Returns:
            Student, or None when absent or unreadable (logged, never raised)
        """
        try:
            raw = self.store.get_json(self.store.student_key(student_id))
        except StorageError:
            logger.warning("Unreadable student record %s; treating as absent", student_id, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return Student.from_dict(migrate_student(raw))
        except (KeyError, TypeError, ValueError, AttributeError):
            logger.warning("Malformed student record %s; treating as absent", student_id, exc_info=True)
            return None

    def get_student(self, student_id: str) -> Student:
        """Like load_student, but raises NotFoundError when absent."""
        student = self.load_student(student_id)
        if student is None:
            raise NotFoundError("student", student_id)
        return student

    def save_student(self, student: Student):
        """Write the whole record. StorageError propagates."""
        self.store.set_json(self.store.student_key(student.student_id), student.to_dict())

    # ==================== Registry ====================

    def load_student_ids(self) -> List[str]:
        """Registered ids in order; defaults to the demo student."""
        try:
            ids = self.store.get_json(self.store.students_index_key())
        except StorageError:
            logger.warning("Unreadable student index; using default", exc_info=True)
            ids = None
        if not isinstance(ids, list):
            return [self.demo_student_id]
        return [i for i in ids if isinstance(i, str)]

    def save_student_ids(self, ids: Sequence[str]):
        self.store.set_json(self.store.students_index_key(), list(ids))

    def list_students(self) -> List[Student]:
        students = []
        for student_id in self.load_student_ids():
            student = self.load_student(student_id)
            if student is not None:
                students.append(student)
        return students

    def add_student(self, student_id: str, name: str, unit_id: str,
                    node_ids: Sequence[str]) -> Student:
        """Create, save and register a student with one unit initialized."""
        if not name.strip():
            raise ValidationError("Student name is required")
        student = create_initial_student(student_id, name.strip(), unit_id, node_ids, self.today())
        with self._student_lock(student_id):
            self.save_student(student)
        ids = self.load_student_ids()
        if student_id not in ids:
            self.save_student_ids(ids + [student_id])
        logger.info("Added student %s", student_id)
        return student

    def ensure_demo_student(self, unit: Unit, name: str) -> Student:
        """Load the demo student, creating it on first use."""
        student = self.load_student(self.demo_student_id)
        if student is not None:
            return student
        return self.add_student(self.demo_student_id, name, unit.unit_id, unit.node_ids())

    def delete_student(self, student_id: str) -> bool:
        """Remove the record and its index entry. Idempotent."""
        with self._student_lock(student_id):
            deleted = self.store.delete(self.store.student_key(student_id)) > 0
        ids = self.load_student_ids()
        if student_id in ids:
            self.save_student_ids([i for i in ids if i != student_id])
        return deleted

    # ==================== Ledger Updates ====================

    def ensure_unit_status(self, student: Student, unit_id: str,
                           node_ids: Sequence[str]) -> Student:
        """
        Initialize a unit's records if the student has none yet.

        Returns the same object when the unit already exists; otherwise a new
        Student with level 0 records for node_ids, which is also persisted.
        """
        if unit_id in student.node_status_by_unit:
            return student

        with self._student_lock(student.student_id):
            current = self.load_student(student.student_id) or student
            if unit_id in current.node_status_by_unit:
                return current
            by_unit = dict(current.node_status_by_unit)
            by_unit[unit_id] = initial_records(node_ids, self.today())
            updated = Student(
                student_id=current.student_id,
                name=current.name,
                grade=current.grade,
                school_type=current.school_type,
                node_status_by_unit=by_unit,
            )
            self.save_student(updated)
        return updated

    def _update_record(self, student: Student, unit_id: str, node_id: str,
                       change: Callable[[Optional[UnderstandingRecord]], UnderstandingRecord]) -> Student:
        with self._student_lock(student.student_id):
            current = self.load_student(student.student_id) or student
            by_unit = {u: dict(status) for u, status in current.node_status_by_unit.items()}
            unit_status = by_unit.setdefault(unit_id, {})
            unit_status[node_id] = change(unit_status.get(node_id))
            updated = Student(
                student_id=current.student_id,
                name=current.name,
                grade=current.grade,
                school_type=current.school_type,
                node_status_by_unit=by_unit,
            )
            self.save_student(updated)
        return updated

    def record_level_change(self, student: Student, unit_id: str, node_id: str, level: int) -> Student:
        """Set a level, stamp today, keep the memo."""
        try:
            new_level = UnderstandingLevel(level)
        except ValueError:
            raise ValidationError(f"Understanding level must be 0-4, got {level}",
                                  node_id=node_id, offending_id=str(level)) from None
        today = self.today()

        def change(existing: Optional[UnderstandingRecord]) -> UnderstandingRecord:
            return UnderstandingRecord(
                node_id=node_id,
                understanding_level=new_level,
                last_checked=today,
                memo=existing.memo if existing and existing.memo is not None else "",
            )

        return self._update_record(student, unit_id, node_id, change)

    def record_memo_change(self, student: Student, unit_id: str, node_id: str, memo: str) -> Student:
        """Set a memo, keep level and last_checked."""
        def change(existing: Optional[UnderstandingRecord]) -> UnderstandingRecord:
            return UnderstandingRecord(
                node_id=node_id,
                understanding_level=existing.understanding_level if existing else UnderstandingLevel.NOT_STUDIED,
                last_checked=existing.last_checked if existing else None,
                memo=memo,
            )

        return self._update_record(student, unit_id, node_id, change)

    # ==================== Administration ====================

    def reset_all_understanding(self) -> int:
        """
        Rewrite every record of every registered student to level 0 / today /
        empty memo, keeping the unit and node structure.

        Returns:
            Number of students rewritten
        """
        today = self.today()
        count = 0
        for student_id in self.load_student_ids():
            with self._student_lock(student_id):
                student = self.load_student(student_id)
                if student is None:
                    continue
                student.node_status_by_unit = {
                    unit_id: initial_records(list(status), today)
                    for unit_id, status in student.node_status_by_unit.items()
                }
                self.save_student(student)
            count += 1
        logger.info("Reset understanding for %d students", count)
        return count

    def remove_all_except_demo(self) -> int:
        """
        Delete every registered student except the demo one.

        Returns:
            Number of students removed
        """
        count = 0
        for student_id in self.load_student_ids():
            if student_id == self.demo_student_id:
                continue
            with self._student_lock(student_id):
                self.store.delete(self.store.student_key(student_id))
            count += 1
        self.save_student_ids([self.demo_student_id])
        logger.info("Removed %d students (kept %s)", count, self.demo_student_id)
        return count
