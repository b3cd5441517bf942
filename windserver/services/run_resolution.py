from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Sequence

from windserver.models import GFS_AVAILABILITY_LAG_HOURS, GFS_CYCLE_HOURS

RUN_ID_RE = re.compile(r"^(?P<day>\d{8})_(?P<hour>\d{2})z$")


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _cycle_interval_hours(cycle_hours: Sequence[int]) -> int:
    hours = sorted(cycle_hours)
    if len(hours) < 2:
        return 24
    return hours[1] - hours[0]


def resolve_run_time(
    now: datetime,
    *,
    cycle_hours: Sequence[int] = GFS_CYCLE_HOURS,
    lag_hours: int = GFS_AVAILABILITY_LAG_HOURS,
) -> datetime:
    """Latest run whose data should be published by ``now``.

    A run at hour ``h`` counts as available once the UTC hour reaches
    ``h + lag_hours``. Before the first such threshold of the day, fall back to
    the previous day's last run.
    """
    if not cycle_hours:
        raise ValueError("cycle_hours cannot be empty")
    now_utc = _as_utc(now)
    hours = sorted(cycle_hours)
    available = [h for h in hours if now_utc.hour >= h + lag_hours]
    if available:
        run_day = now_utc
        run_hour = available[-1]
    else:
        run_day = now_utc - timedelta(days=1)
        run_hour = hours[-1]
    return run_day.replace(hour=run_hour, minute=0, second=0, microsecond=0)


def next_update_time(
    now: datetime,
    *,
    cycle_hours: Sequence[int] = GFS_CYCLE_HOURS,
    lag_hours: int = GFS_AVAILABILITY_LAG_HOURS,
) -> datetime:
    current = resolve_run_time(now, cycle_hours=cycle_hours, lag_hours=lag_hours)
    return current + timedelta(hours=_cycle_interval_hours(cycle_hours) + lag_hours)


def run_id(run_time: datetime) -> str:
    return _as_utc(run_time).strftime("%Y%m%d_%Hz")


def parse_run_id(value: str) -> datetime | None:
    match = RUN_ID_RE.match(value)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group("day"), "%Y%m%d")
    except ValueError:
        return None
    hour = int(match.group("hour"))
    if not 0 <= hour <= 23:
        return None
    return parsed.replace(hour=hour, tzinfo=timezone.utc)
