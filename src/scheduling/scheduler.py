from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from extraction.quick_entry import parse_quick_add
from planbook.models import Event, Task, UserPreferences, ensure_aware, utc_now
from scheduling.free_window import TimeWindow, next_free_window
from scheduling.grid import at_hour
from storage.event_store import EventStore
from storage.task_store import TaskStore, task_span

logger = logging.getLogger(__name__)


class Scheduler:
    """Turns quick-add text and free windows into store writes."""

    def __init__(
        self,
        events: EventStore,
        tasks: TaskStore,
        prefs: Optional[UserPreferences] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.events = events
        self.tasks = tasks
        self.prefs = prefs or UserPreferences()
        self._clock = clock

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        """`now` in the user's timezone; an explicit aware `now` keeps its own zone."""
        if now is not None:
            return ensure_aware(now) if now.tzinfo is not None else self._to_local(ensure_aware(now))
        return self._to_local(ensure_aware(self._clock()))

    def _to_local(self, instant: datetime) -> datetime:
        try:
            return instant.astimezone(ZoneInfo(self.prefs.timezone))
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using UTC", self.prefs.timezone)
            return instant

    def quick_add_task(self, text: str, now: Optional[datetime] = None) -> Task:
        now = self.local_now(now)
        parsed = parse_quick_add(text, self.prefs.grid_step_min, now=now)
        task = self.tasks.create(
            title=parsed.title,
            priority=parsed.priority or self.prefs.default_priority,
            due_date=parsed.due_date,
            scheduled=parsed.scheduled,
            estimate_min=parsed.estimate_min or parsed.duration_minutes,
            tags=parsed.tags,
            links=parsed.links,
            context=parsed.context,
            recurrence=parsed.recurrence,
        )
        logger.info("Quick-added task %s from %r", task.id, text)
        return task

    def quick_add_event(self, text: str, now: Optional[datetime] = None) -> Optional[Event]:
        """Create an event from text; None when no start time could be parsed."""
        now = self.local_now(now)
        parsed = parse_quick_add(text, self.prefs.grid_step_min, now=now)
        if parsed.scheduled is None:
            logger.debug("No time in %r, no event created", text)
            return None
        end = parsed.due_date
        if end is None or end <= parsed.scheduled:
            end = parsed.scheduled + timedelta(minutes=self.prefs.default_event_duration_min)
        return self.events.create(
            title=parsed.clean_title or None,
            start=parsed.scheduled,
            end=end,
            source="manual",
            tags=parsed.tags,
            recurrence=parsed.recurrence,
        )

    def schedule_task(
        self,
        task_id: str,
        start: datetime,
        end: datetime,
        title: Optional[str] = None,
    ) -> Optional[Tuple[Task, Event]]:
        """Block [start, end) for a task and write the schedule back onto it."""
        task = self.tasks.get(task_id)
        if task is None:
            logger.debug("Cannot schedule unknown task %s", task_id)
            return None
        block = self.events.create_time_block(task_id, start, end, title=title or task.title)
        updated = self.tasks.update(task_id, {"scheduled": block.start, "due_date": block.end})
        return updated, block

    def busy_today(self, now: Optional[datetime] = None) -> List[TimeWindow]:
        """Busy windows for today's working hours: events plus scheduled tasks without a block."""
        now = self.local_now(now)
        day_start = at_hour(now, self.prefs.day_start_hour)
        day_end = at_hour(now, self.prefs.day_end_hour)
        busy = [TimeWindow(e.start, e.end) for e in self.events.overlapping(day_start, day_end)]
        blocked = {e.linked_task_id for e in self.events.list() if e.linked_task_id}
        for t in self.tasks.in_range(day_start, day_end):
            span = task_span(t)
            if t.id not in blocked and span and span[1] > span[0] and t.status not in ("done", "cancelled"):
                busy.append(TimeWindow(*span))
        return busy

    def next_free_window(self, now: Optional[datetime] = None, min_minutes: int = 0) -> Optional[TimeWindow]:
        now = self.local_now(now)
        return next_free_window(
            self.busy_today(now),
            step_min=self.prefs.grid_step_min,
            day_start_hour=self.prefs.day_start_hour,
            day_end_hour=self.prefs.day_end_hour,
            now=now,
            min_minutes=min_minutes,
        )

    def auto_schedule(self, task_id: str, now: Optional[datetime] = None) -> Optional[Tuple[Task, Event]]:
        """Put a task into the next free window today long enough for its estimate."""
        task = self.tasks.get(task_id)
        if task is None:
            return None
        minutes = task.estimate_min or self.prefs.default_task_duration_min
        window = self.next_free_window(now, min_minutes=minutes)
        if window is None:
            logger.info("No free window of %d min today for task %s", minutes, task_id)
            return None
        return self.schedule_task(task_id, window.start, window.start + timedelta(minutes=minutes))
