import logging
import os
from datetime import datetime
from typing import Callable, Optional

from planbook.models import UserPreferences, utc_now
from scheduling.scheduler import Scheduler
from storage.event_store import EventStore
from storage.preferences_store import PreferencesStore
from storage.snapshot_store import SnapshotStore
from storage.task_store import TaskStore

logger = logging.getLogger(__name__)

# Configuration; an empty snapshot path keeps everything in memory
SNAPSHOT_PATH = os.getenv("PLANBOOK_SNAPSHOT_PATH", "data/planbook.json").strip()
PREFERENCES_PATH = os.getenv("PLANBOOK_PREFERENCES_PATH", "data/preferences.json").strip()

preferences_store = PreferencesStore(PREFERENCES_PATH)
snapshot_store: Optional[SnapshotStore] = SnapshotStore(SNAPSHOT_PATH) if SNAPSHOT_PATH else None

# Process-wide instances, replaced by load() at startup
clock: Callable[[], datetime] = utc_now
prefs = UserPreferences()
events = EventStore(clock=clock)
tasks = TaskStore(clock=clock)
scheduler = Scheduler(events, tasks, prefs, clock=clock)


def reset(
    new_prefs: Optional[UserPreferences] = None,
    new_clock: Callable[[], datetime] = utc_now,
) -> None:
    """Replace the process state with empty stores."""
    global clock, prefs, events, tasks, scheduler
    clock = new_clock
    prefs = new_prefs or UserPreferences()
    events = EventStore(clock=clock, default_duration_min=prefs.default_event_duration_min)
    tasks = TaskStore(clock=clock, default_priority=prefs.default_priority)
    scheduler = Scheduler(events, tasks, prefs, clock=clock)


def load() -> None:
    global prefs, events, tasks, scheduler
    prefs = preferences_store.load()
    if snapshot_store is None:
        reset(prefs, clock)
        return
    events, tasks = snapshot_store.load(
        clock=clock,
        default_event_duration_min=prefs.default_event_duration_min,
        default_priority=prefs.default_priority,
    )
    scheduler = Scheduler(events, tasks, prefs, clock=clock)


def persist() -> None:
    if snapshot_store is not None:
        snapshot_store.save(events, tasks)
