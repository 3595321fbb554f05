from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


EventSource = Literal["manual", "task_block", "imported_ics", "from_selection"]
TaskStatus = Literal["todo", "in_progress", "blocked", "done", "cancelled"]
TaskPriority = Literal["low", "med", "high", "urgent"]
RecurrenceRule = Literal["DAILY", "WEEKLY", "MONTHLY", "CUSTOM"]

DEFAULT_EVENT_TITLE = "Untitled Event"
DEFAULT_TASK_TITLE = "Untitled Task"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clean_labels(values: List[str]) -> List[str]:
    out: List[str] = []
    for v in values:
        v2 = v.strip()
        if v2 and v2 not in out:
            out.append(v2)
    return out


class Recurrence(BaseModel):
    """Stored recurrence descriptor. Never expanded into occurrences."""

    rule: RecurrenceRule
    rrule: Optional[str] = None
    end_date: Optional[datetime] = None


class Event(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_EVENT_TITLE
    description: str = ""

    start: datetime
    end: datetime
    all_day: bool = False

    source: EventSource = "manual"
    linked_task_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    recurrence: Optional[Recurrence] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("title")
    @classmethod
    def title_or_default(cls, v: str) -> str:
        return v.strip() or DEFAULT_EVENT_TITLE

    @field_validator("description", mode="before")
    @classmethod
    def description_not_null(cls, v):
        return v or ""

    @field_validator("start", "end", "created_at", "updated_at")
    @classmethod
    def aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator("tags")
    @classmethod
    def tags_clean(cls, v: List[str]) -> List[str]:
        return _clean_labels(v)

    @property
    def duration_min(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TASK_TITLE
    description: str = ""
    status: TaskStatus = "todo"
    priority: TaskPriority = "med"

    due_date: Optional[datetime] = None
    scheduled: Optional[datetime] = None
    estimate_min: Optional[int] = Field(None, ge=0)
    spent_min: int = Field(0, ge=0)

    tags: List[str] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)
    context: Optional[str] = None
    recurrence: Optional[Recurrence] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    archived: bool = False
    timer_start_time: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_or_default(cls, v: str) -> str:
        return v.strip() or DEFAULT_TASK_TITLE

    @field_validator("description", mode="before")
    @classmethod
    def description_not_null(cls, v):
        return v or ""

    @field_validator(
        "due_date", "scheduled", "created_at", "updated_at", "completed_at", "timer_start_time"
    )
    @classmethod
    def aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)

    @field_validator("tags", "links")
    @classmethod
    def labels_clean(cls, v: List[str]) -> List[str]:
        return _clean_labels(v)

    @property
    def timer_running(self) -> bool:
        return self.timer_start_time is not None


# --- write inputs -------------------------------------------------------------
# Create inputs carry only what a caller may choose; ids and stamps belong to the store.
# Patch inputs have every field optional; only fields explicitly set are applied.


class EventCreate(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: bool = False
    source: EventSource = "manual"
    linked_task_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    recurrence: Optional[Recurrence] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class EventPatch(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: Optional[bool] = None
    linked_task_id: Optional[str] = None
    tags: Optional[List[str]] = None
    recurrence: Optional[Recurrence] = None
    meta: Optional[Dict[str, Any]] = None


class TaskCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: TaskStatus = "todo"
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    scheduled: Optional[datetime] = None
    estimate_min: Optional[int] = Field(None, ge=0)
    spent_min: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)
    context: Optional[str] = None
    recurrence: Optional[Recurrence] = None


class TaskPatch(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    scheduled: Optional[datetime] = None
    estimate_min: Optional[int] = Field(None, ge=0)
    spent_min: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    links: Optional[List[str]] = None
    context: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    archived: Optional[bool] = None


class TaskFilters(BaseModel):
    status: List[TaskStatus] = Field(default_factory=list)
    priority: List[TaskPriority] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    search: str = ""
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None
    archived: bool = False

    sort_by: str = "due_date"
    sort_order: Literal["asc", "desc"] = "asc"


# --- parser results ---------------------------------------------------------


class QuickEntry(BaseModel):
    clean_title: str = ""
    scheduled: Optional[datetime] = None
    due_date: Optional[datetime] = None
    duration_minutes: Optional[int] = None


class QuickAddResult(QuickEntry):
    tags: List[str] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)
    priority: Optional[TaskPriority] = None
    recurrence: Optional[Recurrence] = None
    reminder_minutes: Optional[int] = None
    estimate_min: Optional[int] = None
    context: Optional[str] = None

    @property
    def title(self) -> str:
        return self.clean_title or DEFAULT_TASK_TITLE


# --- preferences ------------------------------------------------------------


class UserPreferences(BaseModel):
    timezone: str = "UTC"

    grid_step_min: int = Field(15, ge=1, le=240)
    day_start_hour: int = Field(9, ge=0, le=23)
    day_end_hour: int = Field(18, ge=1, le=24)

    default_event_duration_min: int = Field(60, gt=0)
    default_task_duration_min: int = Field(30, gt=0)
    default_priority: TaskPriority = "med"

    @model_validator(mode="after")
    def working_hours_ordered(self) -> "UserPreferences":
        if self.day_end_hour <= self.day_start_hour:
            raise ValueError("day_end_hour must be after day_start_hour")
        return self
