# groupfit/calendar_week.py
# =============================================================================
# Week-key arithmetic. A week key is the YYYY-MM-DD string of the Monday that
# starts the week. Every function takes an optional reference ``now`` so a
# single clock drives all calculations (default: local system time).
# =============================================================================

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import NamedTuple, Optional, Union

DateLike = Union[date, datetime, str]

_END_OF_DAY = time(23, 59, 59, 999000)


class InvalidWeekIdentifier(ValueError):
    """Raised when a week key does not parse as a calendar date."""

    def __init__(self, value: object):
        super().__init__(f"Invalid week key: {value!r}")
        self.value = value


class Direction(str, Enum):
    PREVIOUS = "previous"
    NEXT = "next"

    @classmethod
    def _missing_(cls, value):
        if value == "prev":
            return cls.PREVIOUS
        return None


class WeekRange(NamedTuple):
    start: datetime
    end: datetime


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now()


def _parse(value: object) -> Optional[datetime]:
    """Best-effort ISO parse. Returns None instead of raising."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        # Single reference clock: aware values are compared in local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def is_valid_date_string(value: object) -> bool:
    return _parse(value) is not None


def today_string(now: Optional[datetime] = None) -> str:
    return _now(now).date().isoformat()


def week_identifier_of(value: Optional[DateLike] = None, now: Optional[datetime] = None) -> str:
    """Return the Monday (YYYY-MM-DD) of the week containing ``value``.

    Weeks start on Monday. With no value, the week of ``now`` is returned.
    """
    parsed = _parse(value) if value is not None else _now(now)
    if parsed is None:
        raise InvalidWeekIdentifier(value)
    day = parsed.date()
    return (day - timedelta(days=day.weekday())).isoformat()


def parse_week_identifier(week_id: object) -> date:
    """Validate a week key and return its calendar date (not shifted to Monday)."""
    parsed = _parse(week_id)
    if parsed is None:
        raise InvalidWeekIdentifier(week_id)
    return parsed.date()


def week_range_of(week_id: object) -> WeekRange:
    """Start at 00:00:00 on the key's date, end six days later at 23:59:59.999."""
    start_day = parse_week_identifier(week_id)
    try:
        last_day = start_day + timedelta(days=6)
    except OverflowError:
        raise InvalidWeekIdentifier(week_id) from None
    start = datetime.combine(start_day, time.min)
    end = datetime.combine(last_day, _END_OF_DAY)
    return WeekRange(start=start, end=end)


def adjacent_week(week_id: object, direction: Union[Direction, str]) -> str:
    """Step one week back or forward, re-deriving the key from the shifted date."""
    direction = Direction(direction)
    day = parse_week_identifier(week_id)
    days = -7 if direction is Direction.PREVIOUS else 7
    try:
        shifted = day + timedelta(days=days)
    except OverflowError:
        # No week before year 1 or after year 9999
        raise InvalidWeekIdentifier(week_id) from None
    return week_identifier_of(shifted)


def is_today(day_index: int, now: Optional[datetime] = None) -> bool:
    """True iff ``now`` falls on ``day_index`` (0 = Monday ... 6 = Sunday)."""
    return _now(now).weekday() == day_index


def days_until(target: object, now: Optional[datetime] = None) -> int:
    """Signed whole days from today to ``target``. 0 when ``target`` is unparseable."""
    parsed = _parse(target)
    if parsed is None:
        return 0
    return (parsed.date() - _now(now).date()).days


def is_in_future(value: object, now: Optional[datetime] = None) -> bool:
    parsed = _parse(value)
    if parsed is None:
        return False
    return parsed > datetime.combine(_now(now).date(), _END_OF_DAY)


def is_in_past(value: object, now: Optional[datetime] = None) -> bool:
    parsed = _parse(value)
    if parsed is None:
        return False
    return parsed < datetime.combine(_now(now).date(), time.min)


def display_label(value: str, now: Optional[datetime] = None) -> str:
    """'Today', 'Yesterday' or a short 'Jan 5' label. Unparseable input is returned as-is."""
    parsed = _parse(value)
    if parsed is None:
        return value
    day = parsed.date()
    today = _now(now).date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day:%b} {day.day}"
