"""
Unit Understanding - Aggregate statistics over a unit's nodes.

    average          -> mean level (0..4), 0 for an empty unit
    achievement_rate -> share of nodes at level >= 2 (0..1)

Values are never rounded here; rounding happens where they are displayed.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .models import UnderstandingLevel

ACHIEVED_LEVEL = UnderstandingLevel.WITH_GUIDANCE


@dataclass(frozen=True)
class UnitUnderstanding:
    average: float
    achievement_rate: float
    node_count: int
    achieved_count: int

    def to_dict(self) -> dict:
        return {
            "average": self.average,
            "achievement_rate": self.achievement_rate,
            "node_count": self.node_count,
            "achieved_count": self.achieved_count,
        }


EMPTY_UNDERSTANDING = UnitUnderstanding(average=0.0, achievement_rate=0.0, node_count=0, achieved_count=0)


def compute_unit_understanding(node_ids: Sequence[str],
                               get_level: Callable[[str], Optional[int]]) -> UnitUnderstanding:
    """
    Average level and achievement rate for a unit.

    Args:
        node_ids: All node ids belonging to the unit
        get_level: Level lookup; missing entries (None) count as level 0

    Returns:
        UnitUnderstanding with raw (unrounded) values
    """
    if not node_ids:
        return EMPTY_UNDERSTANDING

    total = 0
    achieved = 0
    for node_id in node_ids:
        level = int(get_level(node_id) or 0)
        total += level
        if level >= ACHIEVED_LEVEL:
            achieved += 1

    count = len(node_ids)
    return UnitUnderstanding(
        average=total / count,
        achievement_rate=achieved / count,
        node_count=count,
        achieved_count=achieved,
    )
