"""
Models - Unit templates and per-student understanding records.

Structure:
    Unit (e.g., "Quadratic Functions")
    └── Node (e.g., "Vertex form")  -- prerequisites point at sibling nodes

    Student
    └── node_status_by_unit: unit_id -> node_id -> UnderstandingRecord

Serialization uses plain dicts (to_dict / from_dict) so records can be stored
as JSON in the key-value backend and exchanged through the export contract.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Optional

from .exceptions import ValidationError


class Category(str, Enum):
    """Closed vocabulary for what kind of understanding a node captures."""
    DEFINITION = "definition"
    INTERPRETATION = "interpretation"
    OPERATION = "operation"
    APPLICATION = "application"
    GRAPH = "graph"
    OTHER = "other"


class UnderstandingLevel(IntEnum):
    """0 = never studied ... 4 = can explain to others."""
    NOT_STUDIED = 0
    SEEN = 1
    WITH_GUIDANCE = 2
    INDEPENDENT = 3
    CAN_EXPLAIN = 4


MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


# ==================== Template Model ====================

@dataclass
class Node:
    """A single learning concept inside a unit."""
    id: str
    title: str
    description: str = ""
    category: Category = Category.DEFINITION
    difficulty: int = 1
    prerequisites: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "difficulty": self.difficulty,
            "prerequisites": list(self.prerequisites),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Node":
        """Create from dictionary, raising ValidationError on malformed fields."""
        if not isinstance(data, dict):
            raise ValidationError("Node entry must be an object")
        node_id = data.get("id")
        if not isinstance(node_id, str):
            raise ValidationError("Node 'id' must be a string", offending_id=str(node_id))

        raw_category = data.get("category", Category.DEFINITION.value)
        try:
            category = Category(raw_category)
        except ValueError:
            raise ValidationError(
                f"Node '{node_id}' has unknown category '{raw_category}'",
                node_id=node_id, offending_id=str(raw_category),
            ) from None

        difficulty = data.get("difficulty", 1)
        if isinstance(difficulty, bool) or not isinstance(difficulty, int):
            raise ValidationError(
                f"Node '{node_id}' difficulty must be an integer",
                node_id=node_id, offending_id=str(difficulty),
            )

        prerequisites = data.get("prerequisites") or []
        tags = data.get("tags") or []
        if not isinstance(prerequisites, list) or not all(isinstance(p, str) for p in prerequisites):
            raise ValidationError(f"Node '{node_id}' prerequisites must be a list of ids", node_id=node_id)
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError(f"Node '{node_id}' tags must be a list of strings", node_id=node_id)

        return cls(
            id=node_id,
            title=str(data.get("title", "") or ""),
            description=str(data.get("description", "") or ""),
            category=category,
            difficulty=difficulty,
            prerequisites=list(prerequisites),
            tags=list(tags),
        )


@dataclass
class Unit:
    """
    A named, graded collection of nodes.

    `prerequisite_unit_ids` is independent of node-level edges and is only
    consulted by the curriculum graph. None means "not declared".
    """
    unit_id: str
    unit_name: str
    grade: str = ""
    description: str = ""
    nodes: List[Node] = field(default_factory=list)
    prerequisite_unit_ids: Optional[List[str]] = None

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> dict:
        data = {
            "unit_id": self.unit_id,
            "unit_name": self.unit_name,
            "grade": self.grade,
            "description": self.description,
            "nodes": [n.to_dict() for n in self.nodes],
        }
        if self.prerequisite_unit_ids is not None:
            data["prerequisite_unit_ids"] = list(self.prerequisite_unit_ids)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Unit":
        """Create from dictionary, raising ValidationError on malformed fields."""
        if not isinstance(data, dict):
            raise ValidationError("Unit document must be an object")
        unit_id = data.get("unit_id")
        unit_name = data.get("unit_name", "")
        if not isinstance(unit_id, str) or not isinstance(unit_name, str):
            raise ValidationError("Unit 'unit_id' and 'unit_name' must be strings")
        nodes = data.get("nodes")
        if not isinstance(nodes, list):
            raise ValidationError(f"Unit '{unit_id}' must contain a 'nodes' list")

        prerequisite_unit_ids = data.get("prerequisite_unit_ids")
        if prerequisite_unit_ids is not None and (
            not isinstance(prerequisite_unit_ids, list)
            or not all(isinstance(u, str) for u in prerequisite_unit_ids)
        ):
            raise ValidationError(f"Unit '{unit_id}' prerequisite_unit_ids must be a list of ids")

        return cls(
            unit_id=unit_id,
            unit_name=unit_name,
            grade=str(data.get("grade", "") or ""),
            description=str(data.get("description", "") or ""),
            nodes=[Node.from_dict(n) for n in nodes],
            prerequisite_unit_ids=list(prerequisite_unit_ids) if prerequisite_unit_ids is not None else None,
        )


@dataclass(frozen=True)
class UnitMeta:
    """Listing entry for a unit, with derived display ordering."""
    unit_id: str
    unit_name: str
    grade: str
    subject: str
    subject_order: int
    unit_order: int
    is_custom: bool = False

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "unit_name": self.unit_name,
            "grade": self.grade,
            "subject": self.subject,
            "subject_order": self.subject_order,
            "unit_order": self.unit_order,
            "is_custom": self.is_custom,
        }


# ==================== Student Ledger Records ====================

@dataclass
class UnderstandingRecord:
    """A student's understanding of one node."""
    node_id: str
    understanding_level: UnderstandingLevel = UnderstandingLevel.NOT_STUDIED
    last_checked: Optional[str] = None  # ISO 8601 date
    memo: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "node_id": self.node_id,
            "understanding_level": int(self.understanding_level),
        }
        if self.last_checked is not None:
            data["last_checked"] = self.last_checked
        if self.memo is not None:
            data["memo"] = self.memo
        return data

    @classmethod
    def from_dict(cls, node_id: str, data: dict) -> "UnderstandingRecord":
        return cls(
            node_id=data.get("node_id", node_id),
            understanding_level=UnderstandingLevel(int(data.get("understanding_level", 0))),
            last_checked=data.get("last_checked"),
            memo=data.get("memo"),
        )


NodeStatus = Dict[str, UnderstandingRecord]


@dataclass
class Student:
    """A student and their per-unit, per-node understanding ledger."""
    student_id: str
    name: str
    grade: Optional[str] = None
    school_type: Optional[str] = None
    node_status_by_unit: Dict[str, NodeStatus] = field(default_factory=dict)

    def get_level(self, unit_id: str, node_id: str) -> int:
        """Level for a node, 0 when no record exists."""
        record = self.node_status_by_unit.get(unit_id, {}).get(node_id)
        return int(record.understanding_level) if record else 0

    def level_getter(self, unit_id: str) -> Callable[[str], int]:
        """Level lookup bound to one unit, as consumed by the analytics."""
        return lambda node_id: self.get_level(unit_id, node_id)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "student_id": self.student_id,
            "name": self.name,
            "node_status_by_unit": {
                unit_id: {nid: rec.to_dict() for nid, rec in status.items()}
                for unit_id, status in self.node_status_by_unit.items()
            },
        }
        if self.grade is not None:
            data["grade"] = self.grade
        if self.school_type is not None:
            data["school_type"] = self.school_type
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Student":
        """Deserialize an already-migrated record (see migrate_student)."""
        return cls(
            student_id=data["student_id"],
            name=data.get("name", ""),
            grade=data.get("grade"),
            school_type=data.get("school_type"),
            node_status_by_unit={
                unit_id: {
                    nid: UnderstandingRecord.from_dict(nid, rec)
                    for nid, rec in (status or {}).items()
                }
                for unit_id, status in (data.get("node_status_by_unit") or {}).items()
            },
        )


# ==================== Schema Migration ====================

# Records written before per-unit ledgers existed tracked a single unit only.
LEGACY_UNIT_ID = "quadratic_function"


def migrate_student(raw: dict) -> dict:
    """
    Promote a stored student record to the per-unit ledger shape.

    - `node_status_by_unit` present -> kept as is
    - legacy flat `node_status`      -> moved under LEGACY_UNIT_ID
    - neither                        -> empty per-unit ledger

    Pure: returns a new dict and never persists. Idempotent.
    """
    data = copy.deepcopy(raw)
    if isinstance(data.get("node_status_by_unit"), dict):
        return data
    legacy = data.pop("node_status", None)
    if isinstance(legacy, dict):
        data["node_status_by_unit"] = {LEGACY_UNIT_ID: legacy}
    else:
        data["node_status_by_unit"] = {}
    return data
