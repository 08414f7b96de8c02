"""
Core module - Knowledge-graph data model and analytics.

Components:
    - models: Unit / Node templates, understanding records, schema migration
    - knowledge_graph: Node-level DAG, bottlenecks, recommended review
    - unit_understanding: Unit-level aggregate statistics
    - layout: Layered 2-D layout for DAGs
    - graph_view: Renderer payloads (colors, labels, edge emphasis)
    - catalog / template_store: Built-in and custom unit templates
    - student_ledger: Per-student records backed by the store
    - curriculum_graph: Unit-level DAG across the curriculum

Store-backed components are imported from their own modules.
"""

from .exceptions import InsightMapError, NotFoundError, StorageError, ValidationError
from .models import Category, Node, Student, UnderstandingLevel, UnderstandingRecord, Unit, UnitMeta
from .knowledge_graph import UnitGraph, get_bottleneck_node_ids, get_recommended_prerequisites
from .unit_understanding import UnitUnderstanding, compute_unit_understanding
from .layout import get_layouted_elements

__all__ = [
    "InsightMapError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "Category",
    "Node",
    "Student",
    "UnderstandingLevel",
    "UnderstandingRecord",
    "Unit",
    "UnitMeta",
    "UnitGraph",
    "get_bottleneck_node_ids",
    "get_recommended_prerequisites",
    "UnitUnderstanding",
    "compute_unit_understanding",
    "get_layouted_elements",
]
