"""
Clock abstraction.

Business logic asks a Clock for "now" instead of reading the system time,
so day boundaries can be pinned in tests.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, moment: datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment

    def advance(self, **kwargs) -> None:
        self._moment = self._moment + timedelta(**kwargs)


def utc_now(clock: Optional[Clock] = None) -> datetime:
    return (clock or SystemClock()).now().astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of `moment` in the named timezone."""
    aware = moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    return aware.astimezone(ZoneInfo(tz_name)).date()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive database timestamps as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
