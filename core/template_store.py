"""
Template Store - Built-in catalog merged with user-authored custom units.

Features:
    - Listing ordered by (subject_order, unit_order); custom units last
    - Custom definitions shadow built-in ones with the same unit_id
    - Save-time validation (the one hard-fail boundary): ids, referential
      integrity, category/difficulty ranges, prerequisite cycles
    - Export / import of the canonical unit document
    - Editing helpers (new unit, copy, next node id, node removal)

The listing snapshot is explicit state of a TemplateStore instance:
refresh() rebuilds it from storage; save/delete refresh it as well.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from redis_store import RedisStore

from .catalog import BuiltInCatalog
from .exceptions import NotFoundError, StorageError, ValidationError
from .knowledge_graph import find_prerequisite_cycle
from .models import MAX_DIFFICULTY, MIN_DIFFICULTY, Category, Node, Unit, UnitMeta

logger = logging.getLogger(__name__)

CUSTOM_SUBJECT = "custom"


# ==================== Validation ====================

def validate_unit(unit: Unit):
    """
    Check a unit before it may be stored.

    Raises:
        ValidationError: naming the offending node/id on the first violation
    """
    if not unit.unit_id.strip() or not unit.unit_name.strip():
        raise ValidationError("Unit id and unit name are required")

    seen = set()
    for index, node in enumerate(unit.nodes):
        if not node.id.strip():
            raise ValidationError(f"Node {index + 1} has no id", offending_id=node.id)
        if node.id in seen:
            raise ValidationError(f"Duplicate node id: {node.id}", node_id=node.id, offending_id=node.id)
        seen.add(node.id)

        if not isinstance(node.category, Category):
            raise ValidationError(
                f"Node '{node.id}' has unknown category '{node.category}'",
                node_id=node.id, offending_id=str(node.category),
            )
        if not MIN_DIFFICULTY <= node.difficulty <= MAX_DIFFICULTY:
            raise ValidationError(
                f"Node '{node.id}' difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}",
                node_id=node.id, offending_id=str(node.difficulty),
            )

    for node in unit.nodes:
        for prereq_id in node.prerequisites:
            if prereq_id == node.id:
                raise ValidationError(
                    f"Node '{node.title or node.id}' lists itself as a prerequisite",
                    node_id=node.id, offending_id=prereq_id,
                )
            if prereq_id not in seen:
                raise ValidationError(
                    f"Node '{node.title or node.id}' has a prerequisite '{prereq_id}' that does not exist",
                    node_id=node.id, offending_id=prereq_id,
                )

    if unit.prerequisite_unit_ids is not None:
        for prereq_unit in unit.prerequisite_unit_ids:
            if not isinstance(prereq_unit, str) or not prereq_unit.strip():
                raise ValidationError("Unit prerequisites must be non-empty ids", offending_id=str(prereq_unit))
            if prereq_unit == unit.unit_id:
                raise ValidationError("A unit cannot be its own prerequisite", offending_id=prereq_unit)

    cycle = find_prerequisite_cycle(unit.nodes)
    if cycle:
        raise ValidationError(
            f"Prerequisite cycle: {' -> '.join(cycle)}",
            node_id=cycle[0], offending_id=cycle[-2],
        )


class TemplateDocument(BaseModel):
    """Minimum shape an import document must have before full validation."""
    model_config = ConfigDict(extra="allow")

    unit_id: str
    nodes: List[Any]

    @field_validator("unit_id")
    @classmethod
    def unit_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("unit_id must not be empty")
        return value


# ==================== Editing Helpers ====================

def _timestamp() -> int:
    return int(time.time() * 1000)


def empty_node(node_id: str) -> Node:
    return Node(id=node_id, title="")


def new_custom_unit(now: Optional[int] = None) -> Unit:
    """Blank custom unit with a single empty node."""
    return Unit(
        unit_id=f"custom-{now or _timestamp()}",
        unit_name="New unit",
        nodes=[empty_node("N-01")],
    )


def copy_unit(source: Unit, now: Optional[int] = None) -> Unit:
    """Editable copy of a unit under a fresh id."""
    copied = Unit.from_dict(source.to_dict())
    copied.unit_id = f"copy-{source.unit_id}-{now or _timestamp()}"
    copied.unit_name = f"{source.unit_name} (copy)"
    return copied


def next_node_id(unit: Unit) -> str:
    """First free id in the N-01, N-02, ... sequence."""
    existing = set(unit.node_ids())
    num = 1
    while f"N-{num:02d}" in existing:
        num += 1
    return f"N-{num:02d}"


def remove_node(unit: Unit, node_id: str) -> Unit:
    """Unit without node_id, with the id stripped from remaining prerequisites."""
    copied = Unit.from_dict(unit.to_dict())
    copied.nodes = [n for n in copied.nodes if n.id != node_id]
    for node in copied.nodes:
        node.prerequisites = [p for p in node.prerequisites if p != node_id]
    return copied


# ==================== Store ====================

class TemplateStore:
    """Built-in and custom unit templates behind one lookup."""

    def __init__(self, store: RedisStore, catalog: Optional[BuiltInCatalog] = None):
        self.store = store
        self.catalog = catalog or BuiltInCatalog()
        self._units: Optional[List[UnitMeta]] = None

    # ==================== Custom Records ====================

    def _read_custom_record(self, unit_id: str) -> Optional[dict]:
        try:
            record = self.store.get_json(self.store.template_key(unit_id))
        except StorageError:
            logger.warning("Unreadable custom template %s; treating as absent", unit_id, exc_info=True)
            return None
        if not isinstance(record, dict) or not isinstance(record.get("unit"), dict):
            return None
        return record

    def load_custom_template(self, unit_id: str) -> Optional[Unit]:
        record = self._read_custom_record(unit_id)
        if record is None:
            return None
        try:
            return Unit.from_dict(record["unit"])
        except ValidationError:
            logger.warning("Stored custom template %s is malformed; ignoring", unit_id)
            return None

    def load_custom_templates(self) -> List[Unit]:
        """All readable custom units in insertion order."""
        records: List[Tuple[int, Unit]] = []
        key_prefix = self.store.template_key("")
        for key in self.store.scan_keys("template"):
            unit_id = key[len(key_prefix):]
            record = self._read_custom_record(unit_id)
            if record is None:
                continue
            try:
                unit = Unit.from_dict(record["unit"])
            except ValidationError:
                logger.warning("Stored custom template %s is malformed; ignoring", unit_id)
                continue
            records.append((int(record.get("seq", 0)), unit))
        records.sort(key=lambda item: item[0])
        return [unit for _, unit in records]

    # ==================== Listing ====================

    def refresh(self) -> List[UnitMeta]:
        """Rebuild the available-units snapshot from the catalog and storage."""
        custom_order = self.catalog.max_subject_order() + 1
        custom = self.load_custom_templates()
        custom_ids = {u.unit_id for u in custom}

        units = [u for u in self.catalog.units if u.unit_id not in custom_ids]
        units.extend(
            UnitMeta(
                unit_id=u.unit_id,
                unit_name=u.unit_name,
                grade=u.grade,
                subject=CUSTOM_SUBJECT,
                subject_order=custom_order,
                unit_order=index,
                is_custom=True,
            )
            for index, u in enumerate(custom)
        )
        units.sort(key=lambda u: (u.subject_order, u.unit_order))
        self._units = units
        return list(units)

    def list_available_units(self) -> List[UnitMeta]:
        """Available units from the last refresh (refreshing on first use)."""
        if self._units is None:
            return self.refresh()
        return list(self._units)

    def list_units_grouped_by_subject(self) -> List[Tuple[str, List[UnitMeta]]]:
        groups: Dict[str, List[UnitMeta]] = {}
        for unit in self.list_available_units():
            groups.setdefault(unit.subject, []).append(unit)
        return list(groups.items())

    # ==================== Lookup ====================

    def load_unit_template(self, unit_id: str) -> Unit:
        """
        Resolve a unit, custom definitions first.

        Raises:
            NotFoundError: neither a custom nor a built-in unit
        """
        custom = self.load_custom_template(unit_id)
        if custom is not None:
            return custom
        return self.catalog.load_template(unit_id)

    async def get_unit_template(self, unit_id: str) -> Unit:
        """Awaitable lookup; cancelling the awaiting task abandons the load."""
        return await asyncio.to_thread(self.load_unit_template, unit_id)

    def get_unit_prerequisites(self, unit_id: str) -> List[str]:
        """Unit-level prerequisites; unknown ids yield an empty list."""
        custom = self.load_custom_template(unit_id)
        if custom is not None:
            return list(custom.prerequisite_unit_ids or [])
        return self.catalog.get_prerequisites(unit_id)

    # ==================== Mutation ====================

    def save_custom_template(self, unit: Unit) -> Unit:
        """
        Validate then upsert a custom unit by unit_id.

        Raises:
            ValidationError: nothing is written
            StorageError: the write failed
        """
        try:
            validate_unit(unit)
        except ValidationError as e:
            logger.warning("Rejected template %s: %s", unit.unit_id, e.message)
            raise

        existing = self._read_custom_record(unit.unit_id)
        seq = int(existing["seq"]) if existing and "seq" in existing else self.store.incr(self.store.template_seq_key())
        self.store.set_json(self.store.template_key(unit.unit_id), {"seq": seq, "unit": unit.to_dict()})
        logger.info("Saved custom template %s (%d nodes)", unit.unit_id, len(unit.nodes))
        self.refresh()
        return unit

    def delete_custom_template(self, unit_id: str) -> bool:
        """Idempotent removal. Student ledgers are left untouched."""
        deleted = self.store.delete(self.store.template_key(unit_id)) > 0
        if deleted:
            logger.info("Deleted custom template %s", unit_id)
        self.refresh()
        return deleted

    # ==================== Export / Import ====================

    async def export_template(self, unit_id: str) -> dict:
        """Canonical document for a built-in or custom unit."""
        unit = await self.get_unit_template(unit_id)
        return unit.to_dict()

    def import_template(self, document: Any, unit_id: Optional[str] = None) -> Unit:
        """
        Accept an exported document and save it as a custom unit.

        Args:
            document: Parsed JSON document
            unit_id: Fresh id to import under (keeps the document's id if None)

        Raises:
            ValidationError: wrong shape, or rejected by save-time validation
        """
        try:
            TemplateDocument.model_validate(document)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid template document: {e.errors()[0]['msg']}") from None

        unit = Unit.from_dict(document)
        if unit_id is not None:
            unit.unit_id = unit_id
        return self.save_custom_template(unit)
