from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from scheduling.grid import at_hour, minutes_between, round_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @property
    def duration_min(self) -> int:
        return minutes_between(self.start, self.end)

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and self.end > other.start


def as_window(item: Any) -> TimeWindow:
    """Accept TimeWindow, anything with start/end attributes, or a (start, end) pair."""
    if isinstance(item, TimeWindow):
        return item
    if hasattr(item, "start") and hasattr(item, "end"):
        return TimeWindow(item.start, item.end)
    start, end = item
    return TimeWindow(start, end)


def next_free_window(
    busy: Iterable[Any],
    step_min: int = 15,
    day_start_hour: int = 9,
    day_end_hour: int = 18,
    now: Optional[datetime] = None,
    min_minutes: int = 0,
) -> Optional[TimeWindow]:
    """Next open window today within working hours, or None.

    Single forward sweep over busy intervals sorted by start. Overlapping busy
    ranges need no merging: the cursor only ever moves forward past their ends.
    With min_minutes > 0, shorter gaps are skipped.
    """
    now = now or datetime.now(timezone.utc)
    day_start = at_hour(now, day_start_hour)
    day_end = at_hour(now, day_end_hour)
    need = timedelta(minutes=max(0, min_minutes))

    windows: List[TimeWindow] = sorted(
        (w for w in map(as_window, busy) if w.end > day_start and w.start < day_end),
        key=lambda w: w.start,
    )

    cursor = round_up(max(now, day_start), step_min)
    for w in windows:
        if cursor >= day_end:
            break
        if w.start > cursor:
            gap_end = min(w.start, day_end)
            if gap_end > cursor and gap_end - cursor >= need:
                return TimeWindow(cursor, gap_end)
        cursor = round_up(max(cursor, w.end), step_min)

    if day_end > cursor and day_end - cursor >= need:
        return TimeWindow(cursor, day_end)

    logger.debug("No free window left today (cursor=%s, day_end=%s)", cursor, day_end)
    return None
