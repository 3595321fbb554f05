from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from integration.ics_codec import from_ics, to_ics
from planbook.models import (
    DEFAULT_EVENT_TITLE,
    Event,
    EventCreate,
    EventPatch,
    ensure_aware,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

REPAIR_DURATION = timedelta(hours=1)

# Fields a patch may not null out; an explicit None for them is ignored.
_NON_NULLABLE = {"title", "start", "end", "all_day", "tags", "meta"}


def repair_range(start: datetime, end: datetime) -> datetime:
    """End of a valid range for start. An end not after start becomes start + 1h."""
    if end <= start:
        logger.debug("Repairing inverted range %s..%s", start, end)
        return start + REPAIR_DURATION
    return end


def _patch_dict(patch: Union[EventPatch, Dict[str, Any], None]) -> Dict[str, Any]:
    if patch is None:
        return {}
    if not isinstance(patch, EventPatch):
        patch = EventPatch.model_validate(patch)
    changes = patch.model_dump(exclude_unset=True)
    return {k: v for k, v in changes.items() if not (v is None and k in _NON_NULLABLE)}


class EventStore:
    """
    Canonical in-memory collection of calendar events.

    Every read returns copies; callers change state only through the methods
    below. Writes never reject a time range: inverted ranges are repaired.
    Operations on unknown ids are no-ops returning None/False.
    """

    def __init__(
        self,
        events: Optional[Iterable[Event]] = None,
        clock: Callable[[], datetime] = utc_now,
        default_duration_min: int = 60,
    ):
        self._clock = clock
        self._default_duration = timedelta(minutes=default_duration_min)
        self._events: Dict[str, Event] = {}
        for e in events or []:
            self._events[e.id] = e.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._events

    def _now(self) -> datetime:
        return ensure_aware(self._clock())

    def _unique_id(self, wanted: Optional[str]) -> str:
        if wanted and wanted not in self._events:
            return wanted
        return new_id()

    # --- reads --------------------------------------------------------------

    def get(self, event_id: str) -> Optional[Event]:
        event = self._events.get(event_id)
        return event.model_copy(deep=True) if event is not None else None

    def list(self) -> List[Event]:
        return sorted((e.model_copy(deep=True) for e in self._events.values()), key=lambda e: e.start)

    def overlapping(self, start: datetime, end: datetime) -> List[Event]:
        """Events intersecting the half-open range [start, end)."""
        start, end = ensure_aware(start), ensure_aware(end)
        return [e for e in self.list() if e.start < end and e.end > start]

    def for_date(self, day: date, tz: Optional[tzinfo] = None) -> List[Event]:
        """Events whose start falls on `day` in timezone `tz` (UTC by default)."""
        tz = tz or timezone.utc
        if isinstance(day, datetime):
            day = day.astimezone(tz).date()
        return [e for e in self.list() if e.start.astimezone(tz).date() == day]

    def linked_to_task(self, task_id: str) -> List[Event]:
        return [e for e in self.list() if e.linked_task_id == task_id]

    # --- writes -------------------------------------------------------------

    def create(self, data: Union[EventCreate, Dict[str, Any], None] = None, **fields: Any) -> Event:
        if isinstance(data, EventCreate):
            payload = data.model_copy(update=fields) if fields else data
        else:
            payload = EventCreate.model_validate({**(data or {}), **fields})

        now = self._now()
        start = ensure_aware(payload.start) or now
        end = ensure_aware(payload.end) or start + self._default_duration
        event = Event(
            id=self._unique_id(payload.id),
            title=payload.title or DEFAULT_EVENT_TITLE,
            description=payload.description or "",
            start=start,
            end=repair_range(start, end),
            all_day=payload.all_day,
            source=payload.source,
            linked_task_id=payload.linked_task_id,
            tags=list(payload.tags),
            recurrence=payload.recurrence,
            meta=dict(payload.meta),
            created_at=now,
            updated_at=now,
        )
        self._events[event.id] = event
        logger.info("Created event %s (%s, %s..%s)", event.id, event.source, event.start, event.end)
        return event.model_copy(deep=True)

    def update(self, event_id: str, patch: Union[EventPatch, Dict[str, Any], None] = None, **fields: Any) -> Optional[Event]:
        current = self._events.get(event_id)
        if current is None:
            logger.debug("Ignoring update for unknown event %s", event_id)
            return None

        changes = _patch_dict(patch)
        changes.update(_patch_dict(fields) if fields else {})
        merged = {**current.model_dump(), **changes, "updated_at": self._now()}
        updated = Event.model_validate(merged)
        updated.end = repair_range(updated.start, updated.end)

        self._events[event_id] = updated
        logger.debug("Updated event %s: %s", event_id, sorted(changes))
        return updated.model_copy(deep=True)

    def reschedule(self, event_id: str, start: datetime, end: datetime, all_day: bool = False) -> Optional[Event]:
        """Rewrite the time range of an event (drag move/resize commits)."""
        return self.update(event_id, {"start": start, "end": end, "all_day": all_day})

    def delete(self, event_id: str) -> bool:
        """Remove an event. A linked task is left untouched."""
        if self._events.pop(event_id, None) is None:
            logger.debug("Ignoring delete for unknown event %s", event_id)
            return False
        logger.info("Deleted event %s", event_id)
        return True

    def link_task(self, event_id: str, task_id: str) -> Optional[Event]:
        return self.update(event_id, {"linked_task_id": task_id})

    def create_time_block(
        self,
        task_id: str,
        start: datetime,
        end: datetime,
        title: Optional[str] = None,
    ) -> Event:
        return self.create(
            title=title or f"Time block for task {task_id}",
            description="Time block created from task",
            start=start,
            end=end,
            source="task_block",
            linked_task_id=task_id,
        )

    # --- ICS ------------------------------------------------------------------

    def import_events(self, events: Iterable[Event]) -> List[Event]:
        now = self._now()
        added: List[Event] = []
        dropped = 0
        for e in events:
            try:
                end = repair_range(e.start, e.end)
            except OverflowError:
                dropped += 1
                continue
            event = e.model_copy(
                update={
                    "id": self._unique_id(e.id),
                    "end": end,
                    "created_at": now,
                    "updated_at": now,
                },
                deep=True,
            )
            self._events[event.id] = event
            added.append(event.model_copy(deep=True))
        if dropped:
            logger.warning("Dropped %d imported event(s) whose range could not be repaired", dropped)
        logger.info("Imported %d event(s)", len(added))
        return added

    def import_ics(self, text) -> List[Event]:
        return self.import_events(from_ics(text, now=self._now()))

    def export_ics(
        self,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        calendar_name: str = "Planbook",
    ) -> str:
        """ICS text for events overlapping the range (all events when unbounded)."""
        if range_start is None or range_end is None:
            events = self.list()
        else:
            events = self.overlapping(range_start, range_end)
        return to_ics(events, calendar_name=calendar_name, now=self._now())
