import logging
import time
from typing import List, Literal, Optional

from pydantic import BaseModel
from fastapi import APIRouter, Depends, HTTPException

from api import state
from api.dependencies import get_task_store
from api.metrics import TIMER_TOGGLES_TOTAL, observe_request
from planbook.models import Task, TaskCreate, TaskFilters, TaskPatch, TaskStatus
from storage.task_store import TaskStore

router = APIRouter()
logger = logging.getLogger(__name__)


class TimerIn(BaseModel):
    action: Literal["toggle", "start", "stop"] = "toggle"


class ArchiveIn(BaseModel):
    ids: List[str]


def _dump(tasks: List[Task]) -> List[dict]:
    return [t.model_dump(mode="json") for t in tasks]


@router.get("/tasks")
async def list_tasks(
    include_archived: bool = False,
    status: Optional[TaskStatus] = None,
    tag: Optional[str] = None,
    search: str = "",
    store: TaskStore = Depends(get_task_store),
) -> dict:
    filters = TaskFilters(
        status=[status] if status else [],
        tags=[tag] if tag else [],
        search=search,
    )
    tasks = store.filter(filters)
    if include_archived:
        tasks += store.filter(filters.model_copy(update={"archived": True}))
    active = store.active_timer()
    return {
        "tasks": _dump(tasks),
        "total": len(tasks),
        "active_timer": active.id if active else None,
    }


@router.post("/tasks/archive")
async def archive_tasks(payload: ArchiveIn, store: TaskStore = Depends(get_task_store)) -> dict:
    archived = store.archive(payload.ids)
    state.persist()
    return {"status": "archived", "archived": len(archived), "ids": [t.id for t in archived]}


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, store: TaskStore = Depends(get_task_store)) -> Task:
    task = store.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/tasks", status_code=201)
async def create_task(payload: TaskCreate, store: TaskStore = Depends(get_task_store)) -> Task:
    started = time.time()
    task = store.create(payload)
    state.persist()
    observe_request("/tasks", "created", started)
    return task


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskPatch,
    store: TaskStore = Depends(get_task_store),
) -> Task:
    task = store.update(task_id, payload)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    state.persist()
    return task


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, store: TaskStore = Depends(get_task_store)) -> dict:
    if not store.delete(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    state.persist()
    return {"status": "deleted", "id": task_id}


@router.post("/tasks/{task_id}/timer")
async def task_timer(
    task_id: str,
    payload: Optional[TimerIn] = None,
    store: TaskStore = Depends(get_task_store),
) -> dict:
    action = payload.action if payload is not None else "toggle"
    if action == "start":
        task = store.start_timer(task_id)
    elif action == "stop":
        task = store.stop_timer(task_id)
    else:
        task = store.toggle_timer(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    state.persist()
    TIMER_TOGGLES_TOTAL.inc()
    return {
        "task": task.model_dump(mode="json"),
        "running": task.timer_running,
        "elapsed_min": store.elapsed_minutes(task_id),
    }


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, store: TaskStore = Depends(get_task_store)) -> Task:
    task = store.complete(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    state.persist()
    return task
