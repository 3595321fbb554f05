from datetime import timedelta

import pytest
from pydantic import ValidationError

from planbook.models import Task, TaskFilters
from storage.task_store import TaskStore


def test_create_defaults(tasks, now):
    t = tasks.create(title="Write")
    assert t.status == "todo"
    assert t.priority == "med"
    assert t.spent_min == 0
    assert t.completed_at is None
    assert t.created_at == now


def test_store_default_priority(clock):
    store = TaskStore(clock=clock, default_priority="high")
    assert store.create(title="x").priority == "high"
    assert store.create(title="y", priority="low").priority == "low"


def test_blank_title_defaults():
    assert TaskStore().create(title="   ").title == "Untitled Task"


def test_create_done_stamps_completed(tasks, now):
    assert tasks.create(title="x", status="done").completed_at == now


def test_done_stamps_and_reopen_clears(tasks, clock):
    t = tasks.create(title="x")
    later = clock.advance(minutes=30)
    done = tasks.update(t.id, {"status": "done"})
    assert done.completed_at == later

    reopened = tasks.update(t.id, {"status": "todo"})
    assert reopened.completed_at is None


def test_status_transitions_are_unrestricted(tasks):
    t = tasks.create(title="x")
    for status in ("in_progress", "blocked", "in_progress", "cancelled", "todo", "done", "blocked"):
        assert tasks.update(t.id, status=status).status == status


def test_invalid_patch_raises(tasks):
    t = tasks.create(title="x")
    with pytest.raises(ValidationError):
        tasks.update(t.id, {"status": "finished"})
    with pytest.raises(ValidationError):
        tasks.update(t.id, {"estimate_min": -1})


def test_unknown_ids_are_noops(tasks):
    tasks.create(title="x")
    before = tasks.list()
    assert tasks.update("missing", {"title": "y"}) is None
    assert tasks.delete("missing") is False
    assert tasks.start_timer("missing") is None
    assert tasks.toggle_timer("missing") is None
    assert tasks.complete("missing") is None
    assert tasks.list() == before


def test_starting_timer_stops_the_running_one(tasks, clock):
    a = tasks.create(title="A")
    b = tasks.create(title="B")

    tasks.start_timer(b.id)
    clock.advance(minutes=25)
    tasks.start_timer(a.id)

    b_after = tasks.get(b.id)
    assert b_after.spent_min == 25
    assert b_after.timer_start_time is None
    assert tasks.get(a.id).timer_start_time == clock.now
    assert tasks.active_timer().id == a.id
    assert [t.id for t in tasks.list() if t.timer_running] == [a.id]


def test_restart_refreshes_start_stamp(tasks, clock):
    a = tasks.create(title="A")
    tasks.start_timer(a.id)
    later = clock.advance(minutes=10)
    again = tasks.start_timer(a.id)
    assert again.timer_start_time == later
    assert again.spent_min == 0


def test_stop_folds_whole_minutes(tasks, clock):
    a = tasks.create(title="A", spent_min=5)
    tasks.start_timer(a.id)
    clock.advance(seconds=150)
    assert tasks.elapsed_minutes(a.id) == 2
    stopped = tasks.stop_timer(a.id)
    assert stopped.spent_min == 7
    assert stopped.timer_start_time is None
    assert tasks.active_timer() is None
    # stopping again changes nothing
    assert tasks.stop_timer(a.id).spent_min == 7


def test_toggle_timer(tasks, clock):
    a = tasks.create(title="A")
    assert tasks.toggle_timer(a.id).timer_running is True
    clock.advance(minutes=3)
    toggled = tasks.toggle_timer(a.id)
    assert toggled.timer_running is False
    assert toggled.spent_min == 3
    assert tasks.elapsed_minutes(a.id) == 0


def test_completing_running_task_stops_timer(tasks, clock):
    a = tasks.create(title="A")
    tasks.start_timer(a.id)
    clock.advance(minutes=40)
    done = tasks.complete(a.id)
    assert done.status == "done"
    assert done.spent_min == 40
    assert done.timer_start_time is None
    assert tasks.active_timer() is None


def test_deleting_running_task_clears_active(tasks):
    a = tasks.create(title="A")
    tasks.start_timer(a.id)
    tasks.delete(a.id)
    assert tasks.active_timer() is None


def test_only_latest_running_timer_survives_load(now):
    older = Task(title="old", timer_start_time=now - timedelta(hours=2))
    newer = Task(title="new", timer_start_time=now - timedelta(minutes=5))
    store = TaskStore([older, newer], clock=lambda: now)
    assert store.active_timer().id == newer.id
    assert store.get(older.id).timer_start_time is None


def test_archive_batch(tasks):
    a = tasks.create(title="A")
    b = tasks.create(title="B")
    c = tasks.create(title="C")
    archived = tasks.archive([a.id, "missing", b.id])
    assert {t.id for t in archived} == {a.id, b.id}
    assert [t.id for t in tasks.list(include_archived=False)] == [c.id]
    assert len(tasks.list()) == 3


def test_batch_update(tasks):
    a = tasks.create(title="A")
    b = tasks.create(title="B")
    out = tasks.batch_update([a.id, b.id], {"priority": "urgent", "tags": ["sprint"]})
    assert [t.priority for t in out] == ["urgent", "urgent"]
    assert tasks.by_tag("#Sprint") and len(tasks.by_tag("sprint")) == 2


def test_list_newest_first(tasks):
    a = tasks.create(title="A")
    b = tasks.create(title="B")
    assert [t.id for t in tasks.list()] == [b.id, a.id]


def test_due_queries(tasks, at):
    overdue = tasks.create(title="late", due_date=at(8))
    today = tasks.create(title="today", due_date=at(17))
    soon = tasks.create(title="soon", due_date=at(9, day=13))
    tasks.create(title="far", due_date=at(9, day=30))
    tasks.create(title="done late", due_date=at(7), status="done")

    assert [t.id for t in tasks.overdue()] == [overdue.id]
    assert {t.id for t in tasks.due_today()} == {overdue.id, today.id}
    assert [t.id for t in tasks.upcoming(days=7)] == [today.id, soon.id]


def test_backlinks(tasks):
    a = tasks.create(title="A", links=["note-1"])
    tasks.create(title="B", links=["note-2"])
    assert [t.id for t in tasks.backlinks("note-1")] == [a.id]


def test_filter_and_sort(tasks, at):
    a = tasks.create(title="Write paper", priority="low", due_date=at(12), tags=["paper"])
    b = tasks.create(title="Review paper", priority="urgent", due_date=at(9), tags=["paper"])
    c = tasks.create(title="Email", priority="high", tags=["admin"], description="about the paper")
    tasks.create(title="Old paper", tags=["paper"], status="cancelled")

    by_due = tasks.filter(TaskFilters(tags=["paper"], status=["todo"]))
    assert [t.id for t in by_due] == [b.id, a.id]

    by_priority = tasks.filter(TaskFilters(search="paper", status=["todo"], sort_by="priority", sort_order="desc"))
    assert [t.id for t in by_priority] == [b.id, c.id, a.id]

    ranged = tasks.filter(TaskFilters(due_from=at(10), due_to=at(13)))
    assert [t.id for t in ranged] == [a.id]


def test_in_range_uses_task_extent(tasks, at):
    block = tasks.create(title="block", scheduled=at(9), due_date=at(10))
    point = tasks.create(title="point", due_date=at(11))
    tasks.create(title="nothing")

    assert [t.id for t in tasks.in_range(at(10), at(11))] == []
    assert [t.id for t in tasks.in_range(at(9, 30), at(9, 45))] == [block.id]
    assert [t.id for t in tasks.in_range(at(11), at(12))] == [point.id]
