from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from planbook.models import Event, Task, utc_now
from storage.event_store import EventStore
from storage.task_store import TaskStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SnapshotStore:
    """JSON file holding both store collections: {"version", "events", "tasks"}."""

    def __init__(self, path: str = "data/planbook.json"):
        self.path = Path(path)

    def load_records(self) -> Tuple[List[Event], List[Task]]:
        """
        Read events and tasks from disk. Returns empty collections if the file
        is missing or invalid; a single bad record only drops that record.
        """
        try:
            if not self.path.exists():
                return [], []
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read snapshot %s: %s", self.path, e)
            return [], []
        if not isinstance(data, dict):
            logger.warning("Ignoring snapshot %s: not a JSON object", self.path)
            return [], []

        events: List[Event] = []
        for raw in data.get("events") or []:
            try:
                events.append(Event.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid event in snapshot: %s", e)

        tasks: List[Task] = []
        for raw in data.get("tasks") or []:
            try:
                tasks.append(Task.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid task in snapshot: %s", e)

        return events, tasks

    def load(
        self,
        clock: Callable[[], datetime] = utc_now,
        default_event_duration_min: int = 60,
        default_priority: str = "med",
    ) -> Tuple[EventStore, TaskStore]:
        events, tasks = self.load_records()
        logger.info("Loaded %d event(s) and %d task(s) from %s", len(events), len(tasks), self.path)
        # TaskStore keeps only the most recent running timer.
        return (
            EventStore(events, clock=clock, default_duration_min=default_event_duration_min),
            TaskStore(reversed(tasks), clock=clock, default_priority=default_priority),
        )

    def save(self, events: EventStore, tasks: TaskStore, indent: Optional[int] = 2) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": SNAPSHOT_VERSION,
            "events": [e.model_dump(mode="json") for e in events.list()],
            "tasks": [t.model_dump(mode="json") for t in tasks.list()],
        }
        self.path.write_text(
            json.dumps(data, ensure_ascii=False, indent=indent),
            encoding="utf-8",
        )
        logger.debug("Saved snapshot to %s", self.path)
