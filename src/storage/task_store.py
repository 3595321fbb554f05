from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from planbook.models import (
    Task,
    TaskCreate,
    TaskFilters,
    TaskPatch,
    TaskPriority,
    ensure_aware,
    new_id,
    utc_now,
)
from scheduling.grid import start_of_day

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"low": 0, "med": 1, "high": 2, "urgent": 3}
STATUS_RANK = {"todo": 0, "in_progress": 1, "blocked": 2, "done": 3, "cancelled": 4}
CLOSED_STATUSES = {"done", "cancelled"}

_NON_NULLABLE = {"title", "status", "priority", "spent_min", "tags", "links", "archived"}


def _patch_dict(patch: Union[TaskPatch, Dict[str, Any], None]) -> Dict[str, Any]:
    if patch is None:
        return {}
    if not isinstance(patch, TaskPatch):
        patch = TaskPatch.model_validate(patch)
    changes = patch.model_dump(exclude_unset=True)
    return {k: v for k, v in changes.items() if not (v is None and k in _NON_NULLABLE)}


def task_span(task: Task) -> Optional[Tuple[datetime, datetime]]:
    """Calendar extent of a task: [scheduled or due, due or scheduled]."""
    start = task.scheduled or task.due_date
    end = task.due_date or task.scheduled
    if start is None or end is None:
        return None
    if end < start:
        start, end = end, start
    return start, end


def whole_minutes(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() // 60))


class TaskStore:
    """
    Canonical in-memory collection of tasks.

    Owns the single-active-timer invariant: starting a timer on one task stops
    whichever timer was running, folding its elapsed minutes into spent_min.
    """

    def __init__(
        self,
        tasks: Optional[Iterable[Task]] = None,
        clock: Callable[[], datetime] = utc_now,
        default_priority: TaskPriority = "med",
    ):
        self._clock = clock
        self._default_priority = default_priority
        self._tasks: Dict[str, Task] = {}
        self._active_id: Optional[str] = None
        for t in tasks or []:
            self._tasks[t.id] = t.model_copy(deep=True)
        self._settle_timers()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return ensure_aware(now) if now is not None else ensure_aware(self._clock())

    def _settle_timers(self) -> None:
        running = [t for t in self._tasks.values() if t.timer_start_time is not None]
        if not running:
            return
        keep = max(running, key=lambda t: t.timer_start_time)
        for t in running:
            if t.id != keep.id:
                logger.warning("Clearing stale timer on task %s", t.id)
                t.timer_start_time = None
        self._active_id = keep.id

    # --- reads --------------------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    def list(self, include_archived: bool = True) -> List[Task]:
        """Tasks newest first."""
        tasks = reversed(list(self._tasks.values()))
        return [t.model_copy(deep=True) for t in tasks if include_archived or not t.archived]

    def _open(self) -> List[Task]:
        return [t for t in self.list(include_archived=False) if t.status not in CLOSED_STATUSES]

    def in_range(self, start: datetime, end: datetime) -> List[Task]:
        """Tasks whose calendar extent meets the half-open range [start, end)."""
        start, end = ensure_aware(start), ensure_aware(end)
        out = []
        for t in self.list():
            span = task_span(t)
            if span is None:
                continue
            s, e = span
            if s == e:
                if start <= s < end:
                    out.append(t)
            elif s < end and e > start:
                out.append(t)
        return out

    def overdue(self, now: Optional[datetime] = None) -> List[Task]:
        now = self._now(now)
        return [t for t in self._open() if t.due_date is not None and t.due_date < now]

    def due_today(self, now: Optional[datetime] = None) -> List[Task]:
        """Open tasks due on the calendar day of `now`, in the timezone of `now`."""
        now = self._now(now)
        day = now.date()
        return [
            t for t in self._open()
            if t.due_date is not None and t.due_date.astimezone(now.tzinfo).date() == day
        ]

    def upcoming(self, days: int = 7, now: Optional[datetime] = None) -> List[Task]:
        now = self._now(now)
        horizon = start_of_day(now) + timedelta(days=days + 1)
        tasks = [t for t in self._open() if t.due_date is not None and now <= t.due_date < horizon]
        return sorted(tasks, key=lambda t: t.due_date)

    def by_tag(self, tag: str) -> List[Task]:
        tag = tag.strip().lstrip("#").lower()
        return [t for t in self.list() if tag in (x.lower() for x in t.tags)]

    def backlinks(self, target_id: str) -> List[Task]:
        """Tasks whose links reference target_id."""
        return [t for t in self.list() if target_id in t.links]

    def filter(self, filters: Optional[TaskFilters] = None) -> List[Task]:
        f = filters or TaskFilters()
        search = f.search.strip().lower()
        wanted_tags = {x.lower() for x in f.tags}
        due_from = ensure_aware(f.due_from)
        due_to = ensure_aware(f.due_to)

        def keep(t: Task) -> bool:
            if t.archived != f.archived:
                return False
            if f.status and t.status not in f.status:
                return False
            if f.priority and t.priority not in f.priority:
                return False
            if wanted_tags and not wanted_tags.intersection(x.lower() for x in t.tags):
                return False
            if search and search not in t.title.lower() and search not in t.description.lower():
                return False
            if due_from is not None and (t.due_date is None or t.due_date < due_from):
                return False
            if due_to is not None and (t.due_date is None or t.due_date > due_to):
                return False
            return True

        return self._sorted([t for t in self.list() if keep(t)], f.sort_by, f.sort_order == "desc")

    @staticmethod
    def _sorted(tasks: List[Task], sort_by: str, descending: bool) -> List[Task]:
        def key(t: Task):
            value = getattr(t, sort_by, None)
            if sort_by == "priority":
                return PRIORITY_RANK[value]
            if sort_by == "status":
                return STATUS_RANK[value]
            if isinstance(value, str):
                return value.lower()
            return value

        # Tasks without a value for the sort field go last in either order.
        present = [t for t in tasks if getattr(t, sort_by, None) is not None]
        missing = [t for t in tasks if getattr(t, sort_by, None) is None]
        return sorted(present, key=key, reverse=descending) + missing

    # --- writes -------------------------------------------------------------

    def create(self, data: Union[TaskCreate, Dict[str, Any], None] = None, **fields: Any) -> Task:
        if isinstance(data, TaskCreate):
            payload = data.model_copy(update=fields) if fields else data
        else:
            payload = TaskCreate.model_validate({**(data or {}), **fields})

        now = self._now()
        values = payload.model_dump(exclude={"title", "priority"})
        task = Task(
            **values,
            id=new_id(),
            title=payload.title or "",
            priority=payload.priority or self._default_priority,
            created_at=now,
            updated_at=now,
            completed_at=now if payload.status == "done" else None,
        )
        self._tasks[task.id] = task
        logger.info("Created task %s (%s, %s)", task.id, task.status, task.priority)
        return task.model_copy(deep=True)

    def update(self, task_id: str, patch: Union[TaskPatch, Dict[str, Any], None] = None, **fields: Any) -> Optional[Task]:
        current = self._tasks.get(task_id)
        if current is None:
            logger.debug("Ignoring update for unknown task %s", task_id)
            return None

        changes = _patch_dict(patch)
        changes.update(_patch_dict(fields) if fields else {})
        now = self._now()

        new_status = changes.get("status", current.status)
        if new_status in CLOSED_STATUSES and current.timer_start_time is not None:
            current = self._fold_timer(current, now)
        if new_status == "done" and current.status != "done":
            changes["completed_at"] = now
        elif new_status != "done" and current.status == "done":
            changes["completed_at"] = None

        merged = {**current.model_dump(), **changes, "updated_at": now}
        updated = Task.model_validate(merged)
        self._tasks[task_id] = updated
        logger.debug("Updated task %s: %s", task_id, sorted(changes))
        return updated.model_copy(deep=True)

    def delete(self, task_id: str) -> bool:
        """Remove a task. Events linked to it are left untouched."""
        if self._tasks.pop(task_id, None) is None:
            logger.debug("Ignoring delete for unknown task %s", task_id)
            return False
        if self._active_id == task_id:
            self._active_id = None
        logger.info("Deleted task %s", task_id)
        return True

    def complete(self, task_id: str) -> Optional[Task]:
        return self.update(task_id, {"status": "done"})

    def batch_update(self, task_ids: Iterable[str], patch: Union[TaskPatch, Dict[str, Any]]) -> List[Task]:
        """Apply one patch to several tasks; unknown ids are skipped."""
        if not isinstance(patch, TaskPatch):
            patch = TaskPatch.model_validate(patch)
        out = []
        for task_id in task_ids:
            updated = self.update(task_id, patch)
            if updated is not None:
                out.append(updated)
        return out

    def archive(self, task_ids: Iterable[str]) -> List[Task]:
        archived = self.batch_update(task_ids, {"archived": True})
        logger.info("Archived %d task(s)", len(archived))
        return archived

    # --- timers -------------------------------------------------------------

    def _fold_timer(self, task: Task, now: datetime) -> Task:
        elapsed = whole_minutes(task.timer_start_time, now)
        stopped = task.model_copy(
            update={
                "spent_min": task.spent_min + elapsed,
                "timer_start_time": None,
                "updated_at": now,
            }
        )
        self._tasks[task.id] = stopped
        if self._active_id == task.id:
            self._active_id = None
        logger.info("Stopped timer on task %s (+%d min)", task.id, elapsed)
        return stopped

    def active_timer(self) -> Optional[Task]:
        return self.get(self._active_id) if self._active_id else None

    def start_timer(self, task_id: str, now: Optional[datetime] = None) -> Optional[Task]:
        """Start timing task_id, stopping any other running timer first.

        Starting the timer that is already running only refreshes its start stamp.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("Ignoring timer start for unknown task %s", task_id)
            return None
        now = self._now(now)
        if self._active_id and self._active_id != task_id and self._active_id in self._tasks:
            self._fold_timer(self._tasks[self._active_id], now)

        started = task.model_copy(update={"timer_start_time": now, "updated_at": now})
        self._tasks[task_id] = started
        self._active_id = task_id
        logger.info("Started timer on task %s", task_id)
        return started.model_copy(deep=True)

    def stop_timer(self, task_id: str, now: Optional[datetime] = None) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if task.timer_start_time is None:
            return task.model_copy(deep=True)
        return self._fold_timer(task, self._now(now)).model_copy(deep=True)

    def toggle_timer(self, task_id: str, now: Optional[datetime] = None) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if task.timer_start_time is not None:
            return self.stop_timer(task_id, now)
        return self.start_timer(task_id, now)

    def elapsed_minutes(self, task_id: str, now: Optional[datetime] = None) -> int:
        """Minutes on the running timer, recomputed from its start stamp on each call."""
        task = self._tasks.get(task_id)
        if task is None or task.timer_start_time is None:
            return 0
        return whole_minutes(task.timer_start_time, self._now(now))
