"""
Pointer gestures on a day column: drag-create, drag-move, drag-resize and
dropping a task onto the grid.

Each gesture is a three-phase state machine. Pointer-down captures a grid
coordinate, pointer-move recomputes a preview from geometry alone, and
pointer-up produces exactly one result: a store write for move/resize, or a
CreateRangeRequest for create/drop that the caller confirms with a title.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal, Optional, Tuple, Union

from planbook.models import Event, ensure_aware
from scheduling.grid import (
    MINUTES_PER_DAY,
    at_minutes,
    clamp_minutes,
    offset_from_time,
    offset_ratio,
    snap_minutes,
    start_of_day,
    time_from_offset,
)
from storage.event_store import EventStore
from storage.task_store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_CREATE_TITLE = "New event"
DEFAULT_BLOCK_TITLE = "Task block"
TASK_DROP_DURATION_MIN = 60

Edge = Literal["start", "end"]
Range = Tuple[int, int]


@dataclass(frozen=True)
class DayColumn:
    """Pixel geometry of one day column. `day` fixes the date and wall-clock zone."""

    day: datetime
    top: float
    height: float
    step_min: int = 15

    @property
    def midnight(self) -> datetime:
        return start_of_day(ensure_aware(self.day))

    def minutes_at(self, pointer_y: float) -> int:
        return time_from_offset(offset_ratio(pointer_y, self.top, self.height), self.step_min)

    def y_for(self, minutes: int) -> float:
        return self.top + offset_from_time(minutes) * self.height

    def instant(self, minutes: int) -> datetime:
        return at_minutes(self.midnight, minutes)

    def minutes_of(self, instant: datetime) -> int:
        """Minutes from this column's midnight, clamped to the day."""
        delta = ensure_aware(instant) - self.midnight
        return clamp_minutes(delta.total_seconds() // 60)


@dataclass(frozen=True)
class CreateRangeRequest:
    """A confirmed time range waiting for a title before it becomes an event."""

    start: datetime
    end: datetime
    default_title: str = DEFAULT_CREATE_TITLE
    task_id: Optional[str] = None


def commit_create(request: CreateRangeRequest, events: EventStore, title: Optional[str] = None) -> Event:
    """Create the event for a confirmed range; a task drop yields a linked time block."""
    title = (title or "").strip() or request.default_title
    if request.task_id:
        return events.create_time_block(request.task_id, request.start, request.end, title=title)
    return events.create(title=title, start=request.start, end=request.end, all_day=False)


class DragCreate:
    def __init__(self, column: DayColumn, pointer_y: float):
        self.column = column
        self.anchor_min = column.minutes_at(pointer_y)
        self.current_min = self.anchor_min

    def move(self, pointer_y: float) -> Range:
        self.current_min = self.column.minutes_at(pointer_y)
        return self.preview()

    def preview(self) -> Range:
        a = min(self.anchor_min, self.current_min)
        b = max(self.anchor_min, self.current_min)
        # a click without movement still creates one grid step
        return a, max(a + self.column.step_min, b)

    def finish(self) -> CreateRangeRequest:
        a, b = self.preview()
        return CreateRangeRequest(start=self.column.instant(a), end=self.column.instant(b))


class DragMove:
    def __init__(self, column: DayColumn, event: Event, pointer_y: float):
        self.column = column
        self.event_id = event.id
        step = column.step_min
        top = column.minutes_of(event.start)
        bottom = top + event.duration_min
        self.start_min = snap_minutes(top, step)
        self.duration_min = max(step, snap_minutes(bottom - top, step))
        self.offset_min = column.minutes_at(pointer_y) - self.start_min

    def move(self, pointer_y: float) -> Range:
        m = self.column.minutes_at(pointer_y)
        latest = MINUTES_PER_DAY - self.duration_min
        self.start_min = max(0, min(m - self.offset_min, latest))
        return self.preview()

    def preview(self) -> Range:
        return self.start_min, self.start_min + self.duration_min

    def commit(self, events: EventStore) -> Optional[Event]:
        start = self.column.instant(self.start_min)
        end = start + timedelta(minutes=self.duration_min)
        return events.reschedule(self.event_id, start, end, all_day=False)


class DragResize:
    def __init__(self, column: DayColumn, event: Event, edge: Edge):
        self.column = column
        self.event_id = event.id
        self.edge = edge
        top = column.minutes_of(event.start)
        self.start_min = snap_minutes(top, column.step_min)
        self.end_min = snap_minutes(top + event.duration_min, column.step_min)

    def move(self, pointer_y: float) -> Range:
        m = self.column.minutes_at(pointer_y)
        step = self.column.step_min
        if self.edge == "start":
            self.start_min = max(0, min(m, self.end_min - step))
        else:
            self.end_min = min(MINUTES_PER_DAY, max(m, self.start_min + step))
        return self.preview()

    def preview(self) -> Range:
        return self.start_min, self.end_min

    def commit(self, events: EventStore) -> Optional[Event]:
        return events.reschedule(
            self.event_id,
            self.column.instant(self.start_min),
            self.column.instant(self.end_min),
            all_day=False,
        )


Gesture = Union[DragCreate, DragMove, DragResize]


class DragController:
    """Routes pointer events for one day column to at most one active gesture."""

    def __init__(self, column: DayColumn, events: EventStore, tasks: Optional[TaskStore] = None):
        self.column = column
        self.events = events
        self.tasks = tasks
        self.gesture: Optional[Gesture] = None

    @property
    def active(self) -> bool:
        return self.gesture is not None

    def pointer_down(self, pointer_y: float) -> Range:
        """Press on empty grid: start drag-create."""
        self.gesture = DragCreate(self.column, pointer_y)
        return self.gesture.preview()

    def grab_event(self, event_id: str, pointer_y: float) -> Optional[Range]:
        event = self.events.get(event_id)
        if event is None:
            return None
        self.gesture = DragMove(self.column, event, pointer_y)
        return self.gesture.preview()

    def grab_edge(self, event_id: str, edge: Edge) -> Optional[Range]:
        event = self.events.get(event_id)
        if event is None:
            return None
        self.gesture = DragResize(self.column, event, edge)
        return self.gesture.preview()

    def pointer_move(self, pointer_y: float) -> Optional[Range]:
        if self.gesture is None:
            return None
        return self.gesture.move(pointer_y)

    def pointer_up(self) -> Union[Event, CreateRangeRequest, None]:
        gesture, self.gesture = self.gesture, None
        if gesture is None:
            return None
        if isinstance(gesture, DragCreate):
            return gesture.finish()
        committed = gesture.commit(self.events)
        logger.debug("Committed %s for event %s", type(gesture).__name__, gesture.event_id)
        return committed

    def cancel(self) -> None:
        self.gesture = None

    def drop_task(self, task_id: str, pointer_y: float) -> CreateRangeRequest:
        """A task dropped on the grid proposes a one-hour block at the drop point."""
        start = self.column.instant(self.column.minutes_at(pointer_y))
        task = self.tasks.get(task_id) if self.tasks is not None else None
        return CreateRangeRequest(
            start=start,
            end=start + timedelta(minutes=TASK_DROP_DURATION_MIN),
            default_title=task.title if task is not None else DEFAULT_BLOCK_TITLE,
            task_id=task_id,
        )
