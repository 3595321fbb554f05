import logging
import time
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel
from fastapi import APIRouter, Depends, HTTPException

from api import state
from api.dependencies import get_preferences, get_scheduler
from api.metrics import observe_request
from extraction.quick_entry import parse_quick_add
from planbook.models import UserPreferences
from scheduling.scheduler import Scheduler

router = APIRouter()
logger = logging.getLogger(__name__)


class QuickAddIn(BaseModel):
    text: str
    kind: Literal["task", "event"] = "task"


class ParseIn(BaseModel):
    text: str


class ScheduleIn(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    title: Optional[str] = None


@router.post("/quick-add", status_code=201)
async def quick_add(payload: QuickAddIn, scheduler: Scheduler = Depends(get_scheduler)) -> dict:
    started = time.time()
    logger.info(f"Quick add ({payload.kind}): {payload.text[:50]}")

    if payload.kind == "event":
        event = scheduler.quick_add_event(payload.text)
        if event is None:
            observe_request("/quick-add", "rejected", started)
            raise HTTPException(status_code=400, detail="No time found in text")
        state.persist()
        observe_request("/quick-add", "created", started)
        return {"kind": "event", "event": event.model_dump(mode="json")}

    task = scheduler.quick_add_task(payload.text)
    state.persist()
    observe_request("/quick-add", "created", started)
    return {"kind": "task", "task": task.model_dump(mode="json")}


@router.post("/parse")
async def parse_text(
    payload: ParseIn,
    prefs: UserPreferences = Depends(get_preferences),
    scheduler: Scheduler = Depends(get_scheduler),
) -> dict:
    """Parse quick-add text without writing anything."""
    result = parse_quick_add(payload.text, prefs.grid_step_min, now=scheduler.local_now())
    return {"title": result.title, **result.model_dump(mode="json")}


@router.get("/free-window")
async def free_window(min_minutes: int = 0, scheduler: Scheduler = Depends(get_scheduler)) -> dict:
    window = scheduler.next_free_window(min_minutes=min_minutes)
    if window is None:
        return {"window": None}
    return {
        "window": {
            "start": window.start.isoformat(),
            "end": window.end.isoformat(),
            "duration_min": window.duration_min,
        }
    }


@router.post("/tasks/{task_id}/schedule")
async def schedule_task(
    task_id: str,
    payload: Optional[ScheduleIn] = None,
    scheduler: Scheduler = Depends(get_scheduler),
) -> dict:
    """Block time for a task: the given range, or the next free window today."""
    if scheduler.tasks.get(task_id) is None:
        raise HTTPException(status_code=404, detail="Task not found")

    payload = payload or ScheduleIn()
    if payload.start is not None and payload.end is not None:
        result = scheduler.schedule_task(task_id, payload.start, payload.end, title=payload.title)
    elif payload.start is None and payload.end is None:
        result = scheduler.auto_schedule(task_id)
        if result is None:
            raise HTTPException(status_code=409, detail="No free window left today")
    else:
        raise HTTPException(status_code=400, detail="Give both start and end, or neither")

    task, block = result
    state.persist()
    return {"task": task.model_dump(mode="json"), "event": block.model_dump(mode="json")}
