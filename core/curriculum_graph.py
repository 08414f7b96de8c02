"""
Curriculum Graph - Unit-level DAG across the whole curriculum.

Vertices are units carrying a student's aggregate understanding; edges come
from unit-level prerequisites (declared independently of node edges).
Units the student has never visited, or whose template cannot be loaded,
count as zero understanding rather than failing the whole map.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .exceptions import NotFoundError, StorageError, ValidationError
from .models import Student, UnitMeta
from .template_store import TemplateStore
from .unit_understanding import EMPTY_UNDERSTANDING, UnitUnderstanding, compute_unit_understanding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitVertex:
    unit_id: str
    unit_name: str
    grade: str
    subject: str
    understanding: UnitUnderstanding

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "unit_name": self.unit_name,
            "grade": self.grade,
            "subject": self.subject,
            "understanding": self.understanding.to_dict(),
        }


class CurriculumGraph:
    """Units as vertices, prerequisite units as incoming edges."""

    def __init__(self, vertices: List[UnitVertex], edges: List[Tuple[str, str]]):
        self.vertices = vertices
        self.edges = edges
        self.graph = nx.DiGraph()
        for vertex in vertices:
            self.graph.add_node(vertex.unit_id)
        self.graph.add_edges_from(edges)
        self._by_id: Dict[str, UnitVertex] = {v.unit_id: v for v in vertices}

    def get_unit(self, unit_id: str) -> Optional[UnitVertex]:
        return self._by_id.get(unit_id)

    def get_prerequisite_units(self, unit_id: str) -> List[UnitVertex]:
        """Direct prerequisite units with their understanding."""
        if unit_id not in self.graph:
            return []
        return [self._by_id[p] for p in self.graph.predecessors(unit_id)]

    def readiness(self, unit_id: str) -> dict:
        """
        How well the prerequisite units of unit_id are understood.

        average / achievement_rate are the means over prerequisite units
        (1.0 achievement when there are none).
        """
        prereqs = self.get_prerequisite_units(unit_id)
        if not prereqs:
            return {"unit_id": unit_id, "prerequisites": [], "average": None, "achievement_rate": 1.0}
        return {
            "unit_id": unit_id,
            "prerequisites": [p.to_dict() for p in prereqs],
            "average": sum(p.understanding.average for p in prereqs) / len(prereqs),
            "achievement_rate": sum(p.understanding.achievement_rate for p in prereqs) / len(prereqs),
        }

    def to_dict(self) -> dict:
        return {
            "units": [v.to_dict() for v in self.vertices],
            "edges": [{"source": s, "target": t} for s, t in self.edges],
        }


async def _unit_understanding(templates: TemplateStore, meta: UnitMeta,
                              student: Optional[Student]) -> UnitUnderstanding:
    if student is None:
        return EMPTY_UNDERSTANDING
    try:
        unit = await templates.get_unit_template(meta.unit_id)
    except (NotFoundError, StorageError, ValidationError):
        logger.warning("Could not load unit %s for curriculum map", meta.unit_id)
        return EMPTY_UNDERSTANDING
    return compute_unit_understanding(unit.node_ids(), student.level_getter(meta.unit_id))


async def build_curriculum_graph(templates: TemplateStore,
                                 student: Optional[Student]) -> CurriculumGraph:
    """
    Aggregate understanding for every available unit and link prerequisites.

    Edges to units that are no longer available are dropped.
    """
    units = await asyncio.to_thread(templates.list_available_units)
    understandings = await asyncio.gather(
        *(_unit_understanding(templates, meta, student) for meta in units)
    )
    prerequisites = await asyncio.gather(
        *(asyncio.to_thread(templates.get_unit_prerequisites, meta.unit_id) for meta in units)
    )
    vertices = [
        UnitVertex(
            unit_id=meta.unit_id,
            unit_name=meta.unit_name,
            grade=meta.grade,
            subject=meta.subject,
            understanding=understanding,
        )
        for meta, understanding in zip(units, understandings)
    ]

    known = {meta.unit_id for meta in units}
    edges = list(dict.fromkeys(
        (prereq_id, meta.unit_id)
        for meta, prereq_ids in zip(units, prerequisites)
        for prereq_id in prereq_ids
        if prereq_id in known and prereq_id != meta.unit_id
    ))
    return CurriculumGraph(vertices, edges)
