"""
TCG Tracker — Time helpers

All pipeline timestamps are timezone-aware UTC. Day keys are ISO calendar
dates ("YYYY-MM-DD") computed in UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_key(moment: datetime) -> str:
    """UTC calendar day of `moment` as YYYY-MM-DD."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date().isoformat()


def previous_day_key(moment: datetime) -> str:
    return day_key(moment - timedelta(days=1))


def hour_period_start(moment: datetime) -> datetime:
    """Truncate to the start of the UTC hour."""
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def stagger_timestamps(start: datetime, count: int, span_seconds: float) -> list[datetime]:
    """
    `count` timestamps evenly spread over [start, start + span).

    The first timestamp is `start`; consecutive timestamps are
    span_seconds / count apart so none lands on the next window's start.
    """
    if count <= 0:
        return []
    step = max(span_seconds, 0.0) / count
    return [start + timedelta(seconds=step * i) for i in range(count)]
