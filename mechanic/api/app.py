"""
Mechanic API — FastAPI endpoints.

Exposes the task service for:
- Task inspection (read-only evaluation)
- Blocking and unblocking tasks
- Triggering passes and reloading the catalog
- Service configuration
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from mechanic.models.config import MechanicConfig
from mechanic.models.task import PassReport
from mechanic.service.loop import MechanicService
from mechanic.storage.preferences import MemoryPreferenceStore
from mechanic.storage.settings import MemorySettingsStore
from mechanic.tasks.base import Task


# --- Request/Response Models ---

class TaskSummary(BaseModel):
    id: str
    title: str
    description: str = ""
    kind: str
    blocked: bool


class TaskStatusResponse(TaskSummary):
    satisfied: bool
    error: Optional[str] = None


class ReloadResponse(BaseModel):
    loaded: int
    errors: List[dict]


def _summary(service: MechanicService, task: Task) -> TaskSummary:
    return TaskSummary(
        id=task.id,
        title=task.title,
        description=task.description,
        kind=type(task).__name__,
        blocked=service.is_blocked(task.id),
    )


# --- Application Factory ---

def create_app(
    service: Optional[MechanicService] = None,
    config: Optional[MechanicConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Mechanic API",
        description="Audits and repairs developer environment preferences",
        version="0.1.0",
    )

    svc = service or MechanicService(
        store=MemoryPreferenceStore(),
        settings=MemorySettingsStore(),
        config=config,
    )
    app.state.service = svc

    def _get_task(task_id: str) -> Task:
        task = svc.get_task(task_id)
        if task is None:
            raise HTTPException(404, "Task not found")
        return task

    # === TASKS ===

    @app.get("/tasks", response_model=List[TaskSummary])
    def list_tasks():
        """All known tasks."""
        return [_summary(svc, t) for t in svc.get_tasks()]

    @app.get("/tasks/{task_id:path}/status", response_model=TaskStatusResponse)
    def get_task_status(task_id: str):
        """Evaluate a task without repairing it."""
        task = _get_task(task_id)
        evaluation = svc.evaluate_task(task)
        return TaskStatusResponse(
            **_summary(svc, task).model_dump(),
            satisfied=evaluation.satisfied,
            error=evaluation.error,
        )

    @app.post("/tasks/{task_id:path}/block")
    def block_task(task_id: str):
        _get_task(task_id)
        svc.block_task(task_id)
        return {"status": "blocked", "task_id": task_id}

    @app.delete("/tasks/{task_id:path}/block")
    def unblock_task(task_id: str):
        _get_task(task_id)
        svc.unblock_task(task_id)
        return {"status": "unblocked", "task_id": task_id}

    # === SERVICE ===

    @app.get("/service/status")
    def service_status():
        last = svc.last_report
        return {
            "status": svc.status,
            "tasks": len(svc.get_tasks()),
            "blocked": sorted(svc.config.blocked_task_ids),
            "build_errors": len(svc.build_errors),
            "failing_sources": svc.failures.snapshot(),
            "last_pass": last.id if last else None,
            "failed_task_ids": last.failed_task_ids if last else [],
        }

    @app.post("/service/trigger", response_model=PassReport)
    def trigger_pass():
        """Run one pass now."""
        return svc.run_pass()

    @app.post("/service/reload", response_model=ReloadResponse)
    def reload_tasks():
        """Rediscover tasks from the configured sources."""
        results = svc.load_tasks()
        return ReloadResponse(
            loaded=sum(1 for r in results if r.ok),
            errors=[{"source": r.source, "error": r.error} for r in results if not r.ok],
        )

    @app.get("/service/config")
    def get_config():
        return svc.config.model_dump(mode="json")

    @app.put("/service/config")
    def update_config(new_config: MechanicConfig):
        svc.config = new_config
        return new_config.model_dump(mode="json")

    # === PASSES ===

    @app.get("/passes", response_model=List[PassReport])
    def list_passes(limit: int = 20):
        """Most recent pass reports, newest last."""
        return svc.history[-limit:] if limit > 0 else []

    return app


# Default application instance
app = create_app()
