"""
Graph View - Renderer payloads for unit and curriculum maps.

The renderer receives, per node, an id, a label, a fill color keyed by
understanding level and a position from the layered layout; per edge a
source/target pair. Hover and selection events flow back as node ids and
drive edge emphasis through emphasize_edges().
"""

import math
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .knowledge_graph import UnitGraph
from .layout import DEFAULT_DIRECTION, get_layouted_elements
from .models import Category, Unit, UnderstandingLevel
from .unit_understanding import UnitUnderstanding

NODE_WIDTH = 180
NODE_HEIGHT = 56

LEVEL_COLORS: Dict[int, str] = {
    0: "#e74c3c",  # red
    1: "#e67e22",  # orange
    2: "#f1c40f",  # yellow
    3: "#27ae60",  # dark green
    4: "#2ecc71",  # green
}
UNKNOWN_LEVEL_COLOR = "#bdc3c7"
DARK_TEXT = "#1a1a1a"
LIGHT_TEXT = "#fff"

CONNECTED_EDGE_STYLE = {"stroke": "#0d6efd", "stroke_width": 3}
DIMMED_EDGE_STYLE = {"opacity": 0.2}

# Display labels live here, away from the model, so a locale can swap them.
LEVEL_LABELS: Dict[int, str] = {
    UnderstandingLevel.NOT_STUDIED: "Not studied",
    UnderstandingLevel.SEEN: "Has seen it",
    UnderstandingLevel.WITH_GUIDANCE: "Can do with guidance",
    UnderstandingLevel.INDEPENDENT: "Can solve alone",
    UnderstandingLevel.CAN_EXPLAIN: "Can explain to others",
}

CATEGORY_LABELS: Dict[str, str] = {
    Category.DEFINITION.value: "Definition",
    Category.INTERPRETATION.value: "Interpretation",
    Category.OPERATION.value: "Operation",
    Category.APPLICATION.value: "Application",
    Category.GRAPH.value: "Graph",
    Category.OTHER.value: "Other",
}


def level_to_color(level: int) -> str:
    return LEVEL_COLORS.get(level, UNKNOWN_LEVEL_COLOR)


def text_color(level: float) -> str:
    """Dark text on the light end of the ramp, white on the greens."""
    return DARK_TEXT if level <= 2 else LIGHT_TEXT


def level_label(level: int, labels: Optional[Mapping[int, str]] = None) -> str:
    return (labels or LEVEL_LABELS).get(level, str(level))


def category_label(category: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return (labels or CATEGORY_LABELS).get(category, category)


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (2.5 -> 3), unlike round()."""
    return int(math.floor(value + 0.5))


# ==================== Unit Map ====================

def build_unit_view(unit: Unit, get_level: Callable[[str], int],
                    direction: str = DEFAULT_DIRECTION) -> dict:
    """
    Nodes and edges for one unit's map, laid out and colored by level.

    Bottleneck nodes are flagged so the renderer can highlight them.
    """
    unit_graph = UnitGraph(unit.nodes)
    bottlenecks = set(unit_graph.bottlenecks(get_level))

    nodes = []
    for node in unit.nodes:
        level = get_level(node.id)
        nodes.append({
            "id": node.id,
            "label": node.title,
            "level": level,
            "color": level_to_color(level),
            "text_color": text_color(level),
            "bottleneck": node.id in bottlenecks,
            "level_label": level_label(level),
            "category_label": category_label(node.category.value),
            **node.to_dict(),
        })

    # Only edges that resolve within the unit, once each.
    edges = [
        {"id": f"{source}-{target}", "source": source, "target": target}
        for source, target in unit_graph.edges()
    ]

    nodes, edges = get_layouted_elements(nodes, edges, NODE_WIDTH, NODE_HEIGHT, direction)
    return {
        "unit_id": unit.unit_id,
        "nodes": nodes,
        "edges": edges,
        "bottlenecks": [n for n in unit.node_ids() if n in bottlenecks],
    }


# ==================== Curriculum Map ====================

def build_curriculum_view(units: Sequence[dict], edges: Sequence[tuple],
                          direction: str = DEFAULT_DIRECTION) -> dict:
    """
    Unit-level map: each unit colored by its rounded average level and
    labeled with its achievement percentage.

    Args:
        units: Dicts with "unit_id", "unit_name" and "understanding"
               (a UnitUnderstanding)
        edges: (prerequisite unit id, unit id) pairs
    """
    nodes = []
    for unit in units:
        understanding: UnitUnderstanding = unit["understanding"]
        rounded_level = round_half_up(understanding.average)
        percent = round_half_up(understanding.achievement_rate * 100)
        nodes.append({
            "id": unit["unit_id"],
            "label": f"{unit['unit_name']} ({percent}%)",
            "average": understanding.average,
            "achievement_percent": percent,
            "color": level_to_color(rounded_level),
            "text_color": text_color(understanding.average),
        })

    flow_edges = [
        {"id": f"{source}-{target}", "source": source, "target": target}
        for source, target in edges
    ]
    nodes, flow_edges = get_layouted_elements(nodes, flow_edges, NODE_WIDTH, NODE_HEIGHT, direction)
    return {"nodes": nodes, "edges": flow_edges}


# ==================== Edge Emphasis ====================

def emphasize_edges(edges: Sequence[dict], hovered_id: Optional[str] = None,
                    selected_id: Optional[str] = None) -> List[dict]:
    """
    Style edges around the focused node.

    Hover takes precedence over a persisted selection. Edges touching the
    focused node are thickened, recolored and animated; all others are
    dimmed. With no focus, edges are returned unstyled.
    """
    focus = hovered_id if hovered_id is not None else selected_id
    if focus is None:
        return [{**e, "style": None, "animated": False} for e in edges]

    focus = str(focus)
    styled = []
    for edge in edges:
        connected = str(edge["source"]) == focus or str(edge["target"]) == focus
        styled.append({
            **edge,
            "style": dict(CONNECTED_EDGE_STYLE) if connected else dict(DIMMED_EDGE_STYLE),
            "animated": connected,
        })
    return styled
