"""
Time-grid geometry for day/week columns.

A day column maps its pixel height onto the 24h day. Pointer positions are
expressed as a ratio of that height and converted into minutes since midnight,
snapped to the grid step. All conversions clamp instead of raising.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

MINUTES_PER_DAY = 24 * 60

_EPOCH = datetime(1970, 1, 1)
_MICROSECOND = timedelta(microseconds=1)


def _step(step_min: int) -> int:
    return max(1, int(step_min))


def clamp_ratio(ratio: float) -> float:
    if ratio != ratio:  # NaN
        return 0.0
    return min(max(float(ratio), 0.0), 1.0)


def offset_ratio(pointer_y: float, container_top: float, container_height: float) -> float:
    """Fraction of the column height at pointer_y. A zero-height column yields 0."""
    if container_height <= 0:
        return 0.0
    y = min(max(pointer_y - container_top, 0.0), container_height)
    return y / container_height


def snap_minutes(minutes: float, step_min: int) -> int:
    """Round to the nearest multiple of step_min (halves round up)."""
    step = _step(step_min)
    return int(math.floor(minutes / step + 0.5)) * step


def time_from_offset(ratio: float, step_min: int = 15) -> int:
    """Minutes since midnight for a column ratio, snapped to the grid."""
    minutes = math.floor(clamp_ratio(ratio) * MINUTES_PER_DAY)
    return snap_minutes(minutes, step_min)


def offset_from_time(minutes: float) -> float:
    return clamp_ratio(minutes / MINUTES_PER_DAY)


def clamp_minutes(minutes: int) -> int:
    return min(max(int(minutes), 0), MINUTES_PER_DAY)


def round_up(instant: datetime, step_min: int = 15) -> datetime:
    """Round an instant up to the next grid line of its own wall clock.

    Instants already on a grid line are returned unchanged, so the function is
    idempotent.
    """
    step_us = _step(step_min) * 60 * 1_000_000
    wall = instant.replace(tzinfo=None)
    micros = (wall - _EPOCH) // _MICROSECOND
    rounded = -(-micros // step_us) * step_us
    return (_EPOCH + timedelta(microseconds=rounded)).replace(tzinfo=instant.tzinfo)


def add_minutes(instant: datetime, minutes: int) -> datetime:
    return instant + timedelta(minutes=minutes)


def start_of_day(instant: datetime) -> datetime:
    return instant.replace(hour=0, minute=0, second=0, microsecond=0)


def at_minutes(day: datetime, minutes: int) -> datetime:
    """The instant `minutes` after local midnight of `day`."""
    return start_of_day(day) + timedelta(minutes=minutes)


def at_hour(day: datetime, hour: int) -> datetime:
    return at_minutes(day, hour * 60)


def minutes_since_midnight(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)
