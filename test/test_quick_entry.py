from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from extraction.quick_entry import parse_quick_add, parse_quick_entry

NOW = datetime(2026, 3, 10, 10, 7, tzinfo=timezone.utc)  # Tuesday


def _at(hour, minute=0, day=10):
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


def test_now_for_duration():
    r = parse_quick_entry("write draft now for 25m", 15, now=NOW)
    assert r.clean_title == "write draft"
    assert r.scheduled == _at(10, 15)
    assert r.due_date == r.scheduled + timedelta(minutes=25)
    assert r.duration_minutes == 25


def test_today_at_pm_hour():
    r = parse_quick_entry("meeting today 3pm", 15, now=NOW)
    assert r.scheduled == _at(15, 0)
    assert r.clean_title == "meeting"
    assert r.due_date is None
    assert r.duration_minutes is None


def test_in_minutes_schedules_now():
    r = parse_quick_entry("standup in 30m", 15, now=NOW)
    assert r.clean_title == "standup"
    assert r.scheduled == _at(10, 15)
    assert r.due_date == _at(10, 45)


def test_for_applies_to_explicit_time():
    r = parse_quick_entry("call today 3pm for 45m", 15, now=NOW)
    assert r.scheduled == _at(15, 0)
    assert r.due_date == _at(15, 45)
    assert r.clean_title == "call"


def test_tomorrow_with_minutes():
    r = parse_quick_entry("call mom tomorrow 9:30am", 15, now=NOW)
    assert r.scheduled == _at(9, 30, day=11)
    assert r.clean_title == "call mom"


def test_noon_and_midnight_meridiem():
    assert parse_quick_entry("lunch today 12pm", now=NOW).scheduled == _at(12, 0)
    assert parse_quick_entry("backup today 12am", now=NOW).scheduled == _at(0, 0)


def test_time_is_rounded_up_to_grid():
    r = parse_quick_entry("check today 3:05pm", 15, now=NOW)
    assert r.scheduled == _at(15, 15)


def test_same_weekday_moves_to_next_week():
    r = parse_quick_entry("review tuesday", 15, now=NOW)
    assert r.scheduled is None
    assert r.due_date == _at(23, 59, day=17)
    assert r.clean_title == "review"


def test_today_wins_over_weekday_policy():
    r = parse_quick_entry("review today 4pm", 15, now=NOW)
    assert r.scheduled == _at(16, 0)


def test_weekday_with_time():
    r = parse_quick_entry("gym friday 6pm", 15, now=NOW)
    assert r.scheduled == _at(18, 0, day=13)
    assert r.clean_title == "gym"


def test_time_range_derives_duration():
    r = parse_quick_entry("sync today 3pm-4:30pm", 15, now=NOW)
    assert r.scheduled == _at(15, 0)
    assert r.due_date == _at(16, 30)
    assert r.duration_minutes == 90


def test_range_inherits_meridiem():
    r = parse_quick_entry("workshop friday 9-10am", 15, now=NOW)
    assert r.scheduled == _at(9, 0, day=13)
    assert r.due_date == _at(10, 0, day=13)
    assert r.duration_minutes == 60
    assert r.clean_title == "workshop"


def test_derived_duration_has_floor():
    r = parse_quick_entry("ping today 3pm-3:02pm", 15, now=NOW)
    assert r.duration_minutes == 5


def test_range_ending_after_midnight_rolls_to_next_day():
    r = parse_quick_entry("sync today 11pm-1am", 15, now=NOW)
    assert r.scheduled == _at(23, 0)
    assert r.due_date == _at(1, 0, day=11)
    assert r.duration_minutes == 120
    assert r.clean_title == "sync"


def test_generic_time_of_day():
    r = parse_quick_entry("call bob at 3pm", 15, now=NOW)
    assert r.scheduled == _at(15, 0)
    assert r.clean_title == "call bob"

    r = parse_quick_entry("dentist 14:30", 15, now=NOW)
    assert r.scheduled == _at(14, 30)
    assert r.clean_title == "dentist"


def test_no_time_leaves_fields_unset():
    r = parse_quick_entry("buy milk", 15, now=NOW)
    assert r.clean_title == "buy milk"
    assert r.scheduled is None
    assert r.due_date is None
    assert r.duration_minutes is None


def test_empty_text():
    r = parse_quick_entry("", 15, now=NOW)
    assert r.clean_title == ""
    assert r.scheduled is None


def test_wall_clock_in_timezone_of_now():
    berlin = ZoneInfo("Europe/Berlin")
    now = datetime(2026, 3, 10, 10, 7, tzinfo=berlin)
    r = parse_quick_entry("meeting today 3pm", 15, now=now)
    assert (r.scheduled.hour, r.scheduled.minute) == (15, 0)
    assert r.scheduled.utcoffset() == timedelta(hours=1)


def test_reminder_and_estimate_are_stripped():
    r = parse_quick_add("paper review 45 min remind 10 min", 15, now=NOW)
    assert r.estimate_min == 45
    assert r.reminder_minutes == 10
    assert r.clean_title == "paper review"

    r = parse_quick_add("renew visa remind 2 days", 15, now=NOW)
    assert r.reminder_minutes == 2880
    assert parse_quick_add("deep work 2 hours", now=NOW).estimate_min == 120


def test_rich_variant_markup():
    r = parse_quick_add("Draft intro #writing #paper [[Thesis]] !high tomorrow 9am", 15, now=NOW)
    assert r.clean_title == "Draft intro"
    assert r.tags == ["writing", "paper"]
    assert r.links == ["Thesis"]
    assert r.priority == "high"
    assert r.context == "writing"
    assert r.scheduled == _at(9, 0, day=11)


def test_priority_synonyms_first_wins():
    assert parse_quick_add("fix prod !asap", now=NOW).priority == "urgent"
    assert parse_quick_add("!minor tidy desk", now=NOW).priority == "low"
    r = parse_quick_add("x !low !urgent", now=NOW)
    assert r.priority == "low"
    assert r.clean_title == "x"


def test_unknown_priority_marker_is_stripped():
    r = parse_quick_add("ship it !someday", now=NOW)
    assert r.priority is None
    assert r.clean_title == "ship it"


def test_duplicate_tags_kept_once():
    r = parse_quick_add("read #ml #ml #papers", now=NOW)
    assert r.tags == ["ml", "papers"]
    assert r.context is None


def test_recurrence_descriptors():
    r = parse_quick_add("water plants every monday", now=NOW)
    assert r.recurrence.rule == "CUSTOM"
    assert r.recurrence.rrule == "FREQ=WEEKLY;BYDAY=MO"
    assert r.clean_title == "water plants"
    assert r.due_date is None

    assert parse_quick_add("daily standup", now=NOW).recurrence.rule == "DAILY"
    assert parse_quick_add("review each week", now=NOW).recurrence.rule == "WEEKLY"
    assert parse_quick_add("pay rent monthly", now=NOW).recurrence.rule == "MONTHLY"


def test_next_week_and_month():
    r = parse_quick_add("plan next week", now=NOW)
    assert r.due_date == _at(23, 59, day=17)
    assert r.clean_title == "plan"

    r = parse_quick_add("taxes next month", now=NOW)
    assert r.due_date == datetime(2026, 4, 10, 23, 59, tzinfo=timezone.utc)


def test_rich_variant_default_title():
    r = parse_quick_add("now #admin", now=NOW)
    assert r.clean_title == ""
    assert r.title == "Untitled Task"
    assert r.context == "admin"
