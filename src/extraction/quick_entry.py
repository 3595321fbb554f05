"""
Quick-entry parser for free text typed into the capture box.

Recognised fragments are matched and removed in a fixed priority order; what
is left, whitespace-normalised, becomes the title. Each matcher sees the text
as left by the matchers before it, so earlier matchers win overlaps
(durations before bare numbers, weekday names before generic times of day).
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from re import Match, Pattern
from typing import Callable, List, Optional, Tuple

from planbook.models import QuickAddResult, QuickEntry, Recurrence, TaskPriority
from scheduling.grid import round_up, start_of_day

logger = logging.getLogger(__name__)

MIN_DERIVED_DURATION_MIN = 5

_TIME = r"(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?"
_RANGE = rf"{_TIME}(?:\s*[-–]\s*{_TIME})?(?!\w)"
_WEEKDAY = (
    r"mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:rs(?:day)?)?"
    r"|fri(?:day)?|sat(?:urday)?|sun(?:day)?"
)
_WEEKDAY_INDEX = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}
_RRULE_DAY = {0: "MO", 1: "TU", 2: "WE", 3: "TH", 4: "FR", 5: "SA", 6: "SU"}

_PRIORITY_WORDS = {
    "urgent": "urgent",
    "critical": "urgent",
    "asap": "urgent",
    "high": "high",
    "important": "high",
    "priority": "high",
    "medium": "med",
    "med": "med",
    "low": "low",
    "minor": "low",
}

CONTEXT_TAGS = ("lab", "writing", "reading", "analysis", "admin")


@dataclass
class ParseState:
    now: datetime
    step_min: int

    scheduled: Optional[datetime] = None
    due_date: Optional[datetime] = None
    duration: Optional[int] = None
    end_anchor: bool = False
    anchor_day: Optional[datetime] = None

    tags: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    priority: Optional[TaskPriority] = None
    recurrence: Optional[Recurrence] = None
    reminder_minutes: Optional[int] = None
    estimate_min: Optional[int] = None


@dataclass(frozen=True)
class Matcher:
    """A pattern plus the extractor that consumes its match.

    The extractor returns False to decline a match, which leaves that text in
    place. Non-repeating matchers consume only the first accepted match.
    """

    name: str
    pattern: Pattern[str]
    extract: Callable[[Match[str], ParseState], bool]
    repeat: bool = False

    def apply(self, text: str, state: ParseState) -> str:
        spans: List[Tuple[int, int]] = []
        for m in self.pattern.finditer(text):
            if self.extract(m, state):
                spans.append(m.span())
                if not self.repeat:
                    break
        if not spans:
            return text
        logger.debug("matcher %s consumed %d fragment(s)", self.name, len(spans))
        return _cut(text, spans)


def _cut(text: str, spans: List[Tuple[int, int]]) -> str:
    parts = []
    pos = 0
    for start, end in spans:
        parts.append(text[pos:start])
        pos = end
    parts.append(text[pos:])
    return re.sub(r"\s{2,}", " ", " ".join(parts)).strip()


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# --- clock helpers ----------------------------------------------------------


def _clock(hh: Optional[str], mm: Optional[str], meridiem: Optional[str]) -> Optional[Tuple[int, int]]:
    """Normalise a wall-clock fragment to 24h. None when out of range."""
    if hh is None:
        return None
    hour = int(hh)
    minute = int(mm) if mm else 0
    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12 + (12 if meridiem.lower().startswith("p") else 0)
    elif hour > 23:
        return None
    return hour, minute


def _on_day(day: datetime, hour: int, minute: int) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _end_of_day(day: datetime) -> datetime:
    return day.replace(hour=23, minute=59, second=0, microsecond=0)


def _add_months(day: datetime, months: int) -> datetime:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last))


def _next_weekday(now: datetime, weekday: int) -> datetime:
    # Same weekday as today means next week; "today" has its own matcher.
    ahead = (weekday - now.weekday()) % 7 or 7
    return start_of_day(now) + timedelta(days=ahead)


def _apply_range(state: ParseState, day: datetime, groups: Tuple[Optional[str], ...]) -> bool:
    sh, sm, sap, eh, em, eap = groups
    if eh is not None:
        sap = sap or eap
        eap = eap or sap
    start = _clock(sh, sm, sap)
    if start is None:
        return False
    begin = _on_day(day, *start)
    state.scheduled = round_up(begin, state.step_min)
    state.anchor_day = day
    end = _clock(eh, em, eap) if eh is not None else None
    if end is not None:
        due = _on_day(day, *end)
        # an end at or before the start runs past midnight
        if due <= begin:
            due = _on_day(day + timedelta(days=1), *end)
        if due > state.scheduled:
            state.due_date = due
            state.end_anchor = True
    return True


def _minutes(amount: str, unit: str) -> int:
    n = int(amount)
    unit = unit.lower()
    if unit.startswith("d"):
        return n * 1440
    if unit.startswith("h"):
        return n * 60
    return n


# --- extractors -------------------------------------------------------------


def _x_link(m: Match[str], s: ParseState) -> bool:
    name = m.group(1).strip()
    if name and name not in s.links:
        s.links.append(name)
    return True


def _x_tag(m: Match[str], s: ParseState) -> bool:
    tag = m.group(1)
    if tag not in s.tags:
        s.tags.append(tag)
    return True


def _x_priority(m: Match[str], s: ParseState) -> bool:
    level = _PRIORITY_WORDS.get(m.group(1).lower())
    if level and s.priority is None:
        s.priority = level
    return True


def _x_recurrence(m: Match[str], s: ParseState) -> bool:
    phrase = re.sub(r"\s+", " ", m.group(1).lower())
    if s.recurrence is not None:
        return True
    if phrase in {"every day", "each day", "daily"}:
        s.recurrence = Recurrence(rule="DAILY")
    elif phrase.endswith("week") or phrase == "weekly":
        s.recurrence = Recurrence(rule="WEEKLY")
    elif phrase.endswith("month") or phrase == "monthly":
        s.recurrence = Recurrence(rule="MONTHLY")
    else:
        weekday = _WEEKDAY_INDEX[phrase.split(" ")[-1][:3]]
        s.recurrence = Recurrence(rule="CUSTOM", rrule=f"FREQ=WEEKLY;BYDAY={_RRULE_DAY[weekday]}")
    return True


def _x_now(m: Match[str], s: ParseState) -> bool:
    s.scheduled = round_up(s.now, s.step_min)
    return True


def _x_in(m: Match[str], s: ParseState) -> bool:
    s.scheduled = round_up(s.now, s.step_min)
    s.duration = _minutes(m.group(1), m.group(2))
    return True


def _x_for(m: Match[str], s: ParseState) -> bool:
    s.duration = _minutes(m.group(1), m.group(2))
    return True


def _x_reminder(m: Match[str], s: ParseState) -> bool:
    s.reminder_minutes = _minutes(m.group(1), m.group(2))
    return True


def _x_estimate(m: Match[str], s: ParseState) -> bool:
    s.estimate_min = _minutes(m.group(1), m.group(2))
    return True


def _day_for_word(word: str, now: datetime) -> datetime:
    day = start_of_day(now)
    if word.lower() in {"tmr", "tomorrow"}:
        day += timedelta(days=1)
    return day


def _x_day_time(m: Match[str], s: ParseState) -> bool:
    day = _day_for_word(m.group(1), s.now)
    return _apply_range(s, day, m.groups()[1:7])


def _x_weekday(m: Match[str], s: ParseState) -> bool:
    day = _next_weekday(s.now, _WEEKDAY_INDEX[m.group(1).lower()[:3]])
    if m.group(2) is not None:
        return _apply_range(s, day, m.groups()[1:7])
    s.anchor_day = day
    if s.due_date is None:
        s.due_date = _end_of_day(day)
    return True


def _x_next_period(m: Match[str], s: ParseState) -> bool:
    base = start_of_day(s.now)
    day = base + timedelta(days=7) if m.group(1).lower() == "week" else _add_months(base, 1)
    s.anchor_day = day
    if s.due_date is None:
        s.due_date = _end_of_day(day)
    return True


def _x_day_word(m: Match[str], s: ParseState) -> bool:
    day = _day_for_word(m.group(1), s.now)
    s.anchor_day = day
    if s.due_date is None:
        s.due_date = _end_of_day(day)
    return True


def _x_time_of_day(m: Match[str], s: ParseState) -> bool:
    if s.scheduled is not None:
        return False
    clock = _clock(m.group(1), m.group(2), m.group(3))
    if clock is None:
        return False
    day = s.anchor_day or start_of_day(s.now)
    s.scheduled = round_up(_on_day(day, *clock), s.step_min)
    return True


def _x_clock_colon(m: Match[str], s: ParseState) -> bool:
    if s.scheduled is not None:
        return False
    clock = _clock(m.group(1), m.group(2), None)
    if clock is None:
        return False
    day = s.anchor_day or start_of_day(s.now)
    s.scheduled = round_up(_on_day(day, *clock), s.step_min)
    return True


_DURATION_UNIT = r"(m|mins?|minutes?|h|hrs?|hours?)"

TIME_MATCHERS: Tuple[Matcher, ...] = (
    Matcher("now", _rx(r"\bnow\b"), _x_now),
    Matcher("in", _rx(rf"\bin\s+(\d{{1,3}})\s?{_DURATION_UNIT}\b"), _x_in),
    Matcher("for", _rx(rf"\bfor\s+(\d{{1,3}})\s?{_DURATION_UNIT}\b"), _x_for),
    Matcher(
        "reminder",
        _rx(r"\bremind(?:\s+me)?\s+(\d+)\s*(mins?|minutes?|hours?|hrs?|days?)\b(?:\s+before)?"),
        _x_reminder,
    ),
    Matcher("estimate", _rx(r"\b(\d+)\s*(mins?|minutes?|hours?|hrs?)\b"), _x_estimate),
    Matcher("day_time", _rx(rf"\b(today|tonight|tmr|tomorrow)\s+(?:at\s+)?{_RANGE}"), _x_day_time),
    Matcher(
        "weekday",
        _rx(rf"\b(?:on\s+|next\s+)?({_WEEKDAY})\b(?:\s+(?:at\s+)?{_RANGE})?"),
        _x_weekday,
    ),
    Matcher("next_period", _rx(r"\bnext\s+(week|month)\b"), _x_next_period),
    Matcher("day_word", _rx(r"\b(today|tonight|tmr|tomorrow)\b"), _x_day_word),
    Matcher(
        "time_of_day",
        _rx(r"(?<![\w:])(?:at\s+)?(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)(?!\w)"),
        _x_time_of_day,
    ),
    Matcher("clock", _rx(r"(?<![\w:])(?:at\s+)?(\d{1,2}):(\d{2})(?![\w:])"), _x_clock_colon),
)

MARKUP_MATCHERS: Tuple[Matcher, ...] = (
    Matcher("link", _rx(r"\[\[([^\]]+)\]\]"), _x_link, repeat=True),
    Matcher("tag", _rx(r"(?<![\w&])#([\w-]+)"), _x_tag, repeat=True),
    Matcher("priority", _rx(r"(?<!\w)!([a-z]+)\b"), _x_priority, repeat=True),
    Matcher(
        "recurrence",
        _rx(
            rf"\b(every\s+(?:day|week|month|{_WEEKDAY})|each\s+(?:day|week|month)|daily|weekly|monthly)\b"
        ),
        _x_recurrence,
    ),
)


def _clean_title(text: str) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    return re.sub(r"^[,.;:\s-]+|[,.;:\s-]+$", "", text)


def _run(text: str, matchers: Tuple[Matcher, ...], state: ParseState) -> str:
    working = (text or "").strip()
    for matcher in matchers:
        working = matcher.apply(working, state)
    return _clean_title(working)


def _finish(state: ParseState) -> Optional[int]:
    if state.duration is not None:
        if state.scheduled is None:
            state.scheduled = round_up(state.now, state.step_min)
        state.due_date = state.scheduled + timedelta(minutes=state.duration)
        return state.duration
    if state.end_anchor and state.scheduled is not None and state.due_date is not None:
        derived = round((state.due_date - state.scheduled).total_seconds() / 60)
        return max(MIN_DERIVED_DURATION_MIN, derived)
    return None


def parse_quick_entry(text: str, grid_step_min: int = 15, now: Optional[datetime] = None) -> QuickEntry:
    """Extract schedule, due date and duration; the rest of the text is the title.

    Wall-clock fragments ("today 3pm") are resolved in the timezone of `now`.
    Missing or unparseable time expressions leave the fields as None.
    """
    state = ParseState(now=now or datetime.now(timezone.utc), step_min=grid_step_min)
    title = _run(text, TIME_MATCHERS, state)
    duration = _finish(state)
    return QuickEntry(
        clean_title=title,
        scheduled=state.scheduled,
        due_date=state.due_date,
        duration_minutes=duration,
    )


def parse_quick_add(text: str, grid_step_min: int = 15, now: Optional[datetime] = None) -> QuickAddResult:
    """parse_quick_entry plus tags, links, priority, recurrence, reminder and estimate."""
    state = ParseState(now=now or datetime.now(timezone.utc), step_min=grid_step_min)
    title = _run(text, MARKUP_MATCHERS + TIME_MATCHERS, state)
    duration = _finish(state)
    context = next((t.lower() for t in state.tags if t.lower() in CONTEXT_TAGS), None)
    return QuickAddResult(
        clean_title=title,
        scheduled=state.scheduled,
        due_date=state.due_date,
        duration_minutes=duration,
        tags=state.tags,
        links=state.links,
        priority=state.priority,
        recurrence=state.recurrence,
        reminder_minutes=state.reminder_minutes,
        estimate_min=state.estimate_min,
        context=context,
    )
