"""
FastAPI Backend for Insight Map

Endpoints:
    GET    /units                                   - Available units (optionally grouped)
    GET    /units/{unit_id}                         - Unit template
    GET    /units/{unit_id}/prerequisites           - Unit-level prerequisites
    GET    /units/{unit_id}/export                  - Canonical template document
    PUT    /templates/{unit_id}                     - Save (upsert) a custom template
    POST   /templates/import                        - Import a template document
    DELETE /templates/{unit_id}                     - Delete a custom template
    GET    /students                                - Registered students
    POST   /students                                - Add a student
    GET    /students/{id}                           - Student record
    DELETE /students/{id}                           - Delete a student
    POST   /students/{id}/units/{unit_id}           - Initialize a unit's records
    PUT    /students/{id}/units/{unit_id}/nodes/{node_id}/level
    PUT    /students/{id}/units/{unit_id}/nodes/{node_id}/memo
    GET    /students/{id}/units/{unit_id}/map       - Laid-out unit map with bottlenecks
    GET    /students/{id}/units/{unit_id}/summary   - Unit aggregate statistics
    GET    /students/{id}/units/{unit_id}/nodes/{node_id}/recommendations
    GET    /students/{id}/curriculum                - Curriculum-wide unit map
    GET    /students/{id}/curriculum/{unit_id}/readiness - Prerequisite-unit readiness
    POST   /admin/reset-understanding               - Reset every record to level 0
    POST   /admin/remove-all-except-demo            - Delete every non-demo student
"""

import asyncio
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import Settings, get_settings
from core.catalog import BuiltInCatalog
from core.curriculum_graph import build_curriculum_graph
from core.exceptions import NotFoundError, StorageError, ValidationError
from core.graph_view import build_curriculum_view, build_unit_view, emphasize_edges
from core.knowledge_graph import UnitGraph
from core.layout import DEFAULT_DIRECTION, DIRECTIONS
from core.models import Unit
from core.student_ledger import StudentLedger
from core.template_store import TemplateStore
from core.unit_understanding import compute_unit_understanding
from logging_config import setup_logging
from redis_store import RedisStore


# ==================== Request/Response Models ====================

class AddStudentRequest(BaseModel):
    name: str
    student_id: Optional[str] = None  # Auto-generate if not provided
    unit_id: Optional[str] = None


class LevelChangeRequest(BaseModel):
    level: int


class MemoChangeRequest(BaseModel):
    memo: str


class ImportRequest(BaseModel):
    document: Any
    unit_id: Optional[str] = None  # Fresh id when importing as new


class CountResponse(BaseModel):
    count: int


class StudentSummary(BaseModel):
    student_id: str
    name: str
    grade: Optional[str] = None


# ==================== App Factory ====================

def create_app(store: Optional[RedisStore] = None, settings: Optional[Settings] = None,
               catalog: Optional[BuiltInCatalog] = None,
               clock: Callable[[], date] = date.today) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    store = store or RedisStore(settings=settings)
    templates = TemplateStore(store, catalog)
    ledger = StudentLedger(store, settings.demo_student_id, clock=clock)

    app = FastAPI(
        title="Insight Map API",
        description="Understanding maps over prerequisite graphs of learning concepts",
        version="1.0.0"
    )

    # Allow frontend to connect
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict this
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.templates = templates
    app.state.ledger = ledger

    # ==================== Error Mapping ====================

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": "not_found", "message": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        return JSONResponse(status_code=503, content={"error": "storage_error", "message": str(exc)})

    # ==================== Helpers ====================
    # Plain `def` endpoints run in FastAPI's threadpool; the async ones only
    # touch the store through asyncio.to_thread.

    def load_student(student_id: str):
        """Student record; the demo student is created on first access."""
        if student_id == ledger.demo_student_id:
            unit = templates.load_unit_template(settings.default_unit_id)
            return ledger.ensure_demo_student(unit, settings.demo_student_name)
        return ledger.get_student(student_id)

    def student_and_unit(student_id: str, unit_id: str, node_id: Optional[str] = None):
        """
        Load both and back-fill the unit's records for the student.

        Raises:
            NotFoundError: unknown student, unit, or node_id not in the unit
        """
        student = load_student(student_id)
        unit = templates.load_unit_template(unit_id)
        if node_id is not None and unit.get_node(node_id) is None:
            raise NotFoundError("node", node_id)
        student = ledger.ensure_unit_status(student, unit.unit_id, unit.node_ids())
        return student, unit

    # ==================== Units & Templates ====================

    @app.get("/health")
    def health():
        return {"status": "ok", "redis": store.ping()}

    @app.get("/units")
    def list_units(grouped: bool = False, refresh: bool = False):
        if refresh:
            templates.refresh()
        if grouped:
            return [
                {"subject": subject, "units": [u.to_dict() for u in units]}
                for subject, units in templates.list_units_grouped_by_subject()
            ]
        return [u.to_dict() for u in templates.list_available_units()]

    @app.get("/units/{unit_id}")
    def get_unit(unit_id: str):
        return templates.load_unit_template(unit_id).to_dict()

    @app.get("/units/{unit_id}/prerequisites")
    def get_unit_prerequisites(unit_id: str) -> List[str]:
        return templates.get_unit_prerequisites(unit_id)

    @app.get("/units/{unit_id}/export")
    async def export_unit(unit_id: str):
        document = await templates.export_template(unit_id)
        headers = {"Content-Disposition": f'attachment; filename="template-{unit_id}.json"'}
        return JSONResponse(content=document, headers=headers)

    @app.put("/templates/{unit_id}")
    def save_template(unit_id: str, document: Dict[str, Any]):
        unit = Unit.from_dict({**document, "unit_id": unit_id})
        return templates.save_custom_template(unit).to_dict()

    @app.post("/templates/import")
    def import_template(request: ImportRequest):
        unit = templates.import_template(request.document, unit_id=request.unit_id)
        return unit.to_dict()

    @app.delete("/templates/{unit_id}")
    def delete_template(unit_id: str):
        return {"deleted": templates.delete_custom_template(unit_id)}

    # ==================== Students ====================

    @app.get("/students", response_model=List[StudentSummary])
    def list_students():
        if ledger.demo_student_id in ledger.load_student_ids():
            load_student(ledger.demo_student_id)
        return [
            StudentSummary(student_id=s.student_id, name=s.name, grade=s.grade)
            for s in ledger.list_students()
        ]

    @app.post("/students")
    def add_student(request: AddStudentRequest):
        student_id = request.student_id or f"student-{int(time.time() * 1000)}"
        unit = templates.load_unit_template(request.unit_id or settings.default_unit_id)
        student = ledger.add_student(student_id, request.name, unit.unit_id, unit.node_ids())
        return student.to_dict()

    @app.get("/students/{student_id}")
    def get_student(student_id: str):
        return load_student(student_id).to_dict()

    @app.delete("/students/{student_id}")
    def delete_student(student_id: str):
        return {"deleted": ledger.delete_student(student_id)}

    @app.post("/students/{student_id}/units/{unit_id}")
    def ensure_unit(student_id: str, unit_id: str):
        student, _ = student_and_unit(student_id, unit_id)
        return student.to_dict()

    @app.put("/students/{student_id}/units/{unit_id}/nodes/{node_id}/level")
    def change_level(student_id: str, unit_id: str, node_id: str, request: LevelChangeRequest):
        student, unit = student_and_unit(student_id, unit_id, node_id)
        student = ledger.record_level_change(student, unit.unit_id, node_id, request.level)
        return student.node_status_by_unit[unit.unit_id][node_id].to_dict()

    @app.put("/students/{student_id}/units/{unit_id}/nodes/{node_id}/memo")
    def change_memo(student_id: str, unit_id: str, node_id: str, request: MemoChangeRequest):
        student, unit = student_and_unit(student_id, unit_id, node_id)
        student = ledger.record_memo_change(student, unit.unit_id, node_id, request.memo)
        return student.node_status_by_unit[unit.unit_id][node_id].to_dict()

    # ==================== Analytics ====================

    @app.get("/students/{student_id}/units/{unit_id}/map")
    def unit_map(student_id: str, unit_id: str, hovered: Optional[str] = None,
                 selected: Optional[str] = None, direction: str = DEFAULT_DIRECTION):
        if direction not in DIRECTIONS:
            raise ValidationError(f"Unknown layout direction: {direction}", offending_id=direction)
        student, unit = student_and_unit(student_id, unit_id)
        view = build_unit_view(unit, student.level_getter(unit.unit_id), direction)
        view["edges"] = emphasize_edges(view["edges"], hovered, selected)
        return view

    @app.get("/students/{student_id}/units/{unit_id}/summary")
    def unit_summary(student_id: str, unit_id: str):
        student = load_student(student_id)
        unit = templates.load_unit_template(unit_id)
        get_level = student.level_getter(unit.unit_id)
        understanding = compute_unit_understanding(unit.node_ids(), get_level)
        return {
            "unit_id": unit.unit_id,
            **understanding.to_dict(),
            "bottlenecks": UnitGraph(unit.nodes).bottlenecks(get_level),
        }

    @app.get("/students/{student_id}/units/{unit_id}/nodes/{node_id}/recommendations")
    def recommendations(student_id: str, unit_id: str, node_id: str):
        student = load_student(student_id)
        unit = templates.load_unit_template(unit_id)
        if unit.get_node(node_id) is None:
            raise NotFoundError("node", node_id)
        items = UnitGraph(unit.nodes).recommended_review(node_id, student.level_getter(unit.unit_id))
        return [item.to_dict() for item in items]

    @app.get("/students/{student_id}/curriculum")
    async def curriculum(student_id: str, hovered: Optional[str] = None, selected: Optional[str] = None):
        student = await asyncio.to_thread(load_student, student_id)
        graph = await build_curriculum_graph(templates, student)
        view = build_curriculum_view(
            [{"unit_id": v.unit_id, "unit_name": v.unit_name, "understanding": v.understanding}
             for v in graph.vertices],
            graph.edges,
        )
        view["edges"] = emphasize_edges(view["edges"], hovered, selected)
        view["units"] = [v.to_dict() for v in graph.vertices]
        return view

    @app.get("/students/{student_id}/curriculum/{unit_id}/readiness")
    async def readiness(student_id: str, unit_id: str):
        student = await asyncio.to_thread(load_student, student_id)
        graph = await build_curriculum_graph(templates, student)
        if graph.get_unit(unit_id) is None:
            raise NotFoundError("unit", unit_id)
        return graph.readiness(unit_id)

    # ==================== Administration ====================

    @app.post("/admin/reset-understanding", response_model=CountResponse)
    def reset_understanding():
        return CountResponse(count=ledger.reset_all_understanding())

    @app.post("/admin/remove-all-except-demo", response_model=CountResponse)
    def remove_all_except_demo():
        return CountResponse(count=ledger.remove_all_except_demo())

    return app


app = create_app()


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
