from datetime import datetime
from typing import Optional

from fastapi import HTTPException

from api import state
from planbook.models import UserPreferences, ensure_aware
from scheduling.scheduler import Scheduler
from storage.event_store import EventStore
from storage.task_store import TaskStore


def get_event_store() -> EventStore:
    return state.events


def get_task_store() -> TaskStore:
    return state.tasks


def get_scheduler() -> Scheduler:
    return state.scheduler


def get_preferences() -> UserPreferences:
    return state.prefs


def parse_instant(value: Optional[str], name: str) -> Optional[datetime]:
    """ISO-8601 query parameter to an aware datetime (naive means UTC)."""
    if value is None or value == "":
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}. Use ISO 8601")
