from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from scheduling.grid import (
    at_minutes,
    minutes_since_midnight,
    offset_from_time,
    offset_ratio,
    round_up,
    snap_minutes,
    time_from_offset,
)


def test_time_from_offset_snaps_to_step():
    assert time_from_offset(0.5, 15) == 720
    # floor(0.3 * 1440) = 432 -> nearest 15 is 435
    assert time_from_offset(0.3, 15) == 435
    assert time_from_offset(0.3, 30) == 420


def test_time_from_offset_clamps_ratio():
    assert time_from_offset(-0.2, 15) == 0
    assert time_from_offset(1.7, 15) == 1440
    assert time_from_offset(float("nan"), 15) == 0


def test_offset_ratio_zero_height_column():
    assert offset_ratio(120.0, 100.0, 0.0) == 0.0
    assert offset_ratio(120.0, 100.0, -5.0) == 0.0


def test_offset_ratio_clamps_to_column():
    assert offset_ratio(150.0, 100.0, 200.0) == 0.25
    assert offset_ratio(50.0, 100.0, 200.0) == 0.0
    assert offset_ratio(900.0, 100.0, 200.0) == 1.0


def test_offset_from_time_inverse():
    assert offset_from_time(720) == 0.5
    assert time_from_offset(offset_from_time(615), 15) == 615


def test_snap_halves_round_up():
    assert snap_minutes(7.5, 15) == 15
    assert snap_minutes(7, 15) == 0
    assert snap_minutes(10, 0) == 10  # step clamped to 1


def test_round_up_to_next_grid_line():
    t = datetime(2026, 3, 10, 10, 7, 30, tzinfo=timezone.utc)
    assert round_up(t, 15) == datetime(2026, 3, 10, 10, 15, tzinfo=timezone.utc)


def test_round_up_keeps_exact_grid_line():
    t = datetime(2026, 3, 10, 10, 15, tzinfo=timezone.utc)
    assert round_up(t, 15) == t


def test_round_up_crosses_midnight():
    t = datetime(2026, 3, 10, 23, 50, tzinfo=timezone.utc)
    assert round_up(t, 15) == datetime(2026, 3, 11, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("step", [1, 5, 15, 30, 60])
def test_round_up_idempotent(step):
    t = datetime(2026, 3, 10, 10, 7, 13, 999, tzinfo=timezone.utc)
    for offset in range(0, 180, 7):
        instant = t + timedelta(minutes=offset, seconds=offset)
        once = round_up(instant, step)
        assert round_up(once, step) == once
        assert once >= instant


def test_round_up_uses_local_wall_clock():
    kolkata = ZoneInfo("Asia/Kolkata")  # +05:30
    t = datetime(2026, 3, 10, 10, 7, tzinfo=kolkata)
    out = round_up(t, 15)
    assert (out.hour, out.minute) == (10, 15)
    assert out.tzinfo is kolkata


def test_at_minutes_and_back():
    day = datetime(2026, 3, 10, 17, 42, tzinfo=timezone.utc)
    instant = at_minutes(day, 615)
    assert instant == datetime(2026, 3, 10, 10, 15, tzinfo=timezone.utc)
    assert minutes_since_midnight(instant) == 615
