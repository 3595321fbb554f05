import os
import logging
from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api import state
from api.dependencies import get_event_store, get_task_store
from api.metrics import EVENTS_GAUGE, TASKS_GAUGE
from storage.event_store import EventStore
from storage.task_store import TaskStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    events: EventStore = Depends(get_event_store),
    tasks: TaskStore = Depends(get_task_store),
) -> dict:
    """Health check endpoint for container orchestration."""
    active = tasks.active_timer()
    return {
        "status": "healthy",
        "profile": os.getenv("DEPLOYMENT_PROFILE", "unknown"),
        "persistence": "file" if state.snapshot_store is not None else "memory",
        "events": len(events),
        "tasks": len(tasks),
        "active_timer": active.id if active else None,
    }


@router.get("/metrics")
async def metrics(
    events: EventStore = Depends(get_event_store),
    tasks: TaskStore = Depends(get_task_store),
) -> Response:
    """
    Prometheus scrape endpoint.
    """
    EVENTS_GAUGE.set(len(events))
    TASKS_GAUGE.set(len(tasks))

    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
