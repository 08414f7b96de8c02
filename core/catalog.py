"""
Catalog - Static built-in units shipped with the package.

Layout on disk:
    data/catalog.json              -> subjects, unit registration, unit prerequisites
    data/templates/{unit_id}.json  -> one Unit template per built-in unit

Built-in units are read-only and fixed for the life of the process.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import NotFoundError
from .models import Unit, UnitMeta

DATA_DIR = Path(__file__).parent / "data"


class BuiltInCatalog:
    """Registered built-in units, their subjects and curriculum prerequisites."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        with open(self.data_dir / "catalog.json", "r", encoding="utf-8") as f:
            data = json.load(f)

        subject_order = {s["name"]: s["order"] for s in data.get("subjects", [])}
        self.subject_order: Dict[str, int] = subject_order
        self.units: List[UnitMeta] = [
            UnitMeta(
                unit_id=u["unit_id"],
                unit_name=u["unit_name"],
                grade=u.get("grade", ""),
                subject=u["subject"],
                subject_order=subject_order.get(u["subject"], len(subject_order) + 1),
                unit_order=u.get("order", i),
            )
            for i, u in enumerate(data.get("units", []))
        ]
        self.unit_prerequisites: Dict[str, List[str]] = {
            unit_id: list(prereqs)
            for unit_id, prereqs in data.get("unit_prerequisites", {}).items()
        }
        self._ids = {u.unit_id for u in self.units}

    def is_built_in(self, unit_id: str) -> bool:
        return unit_id in self._ids

    def unit_ids(self) -> List[str]:
        return [u.unit_id for u in self.units]

    def max_subject_order(self) -> int:
        return max((u.subject_order for u in self.units), default=0)

    def get_prerequisites(self, unit_id: str) -> List[str]:
        """Static curriculum prerequisites; unknown ids have none."""
        return list(self.unit_prerequisites.get(unit_id, []))

    def load_template(self, unit_id: str) -> Unit:
        """
        Read a built-in template from disk.

        Raises:
            NotFoundError: unit_id is not registered
        """
        if not self.is_built_in(unit_id):
            raise NotFoundError("unit", unit_id)
        with open(self.data_dir / "templates" / f"{unit_id}.json", "r", encoding="utf-8") as f:
            return Unit.from_dict(json.load(f))
