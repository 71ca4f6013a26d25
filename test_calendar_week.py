"""
Tests for week-key arithmetic. A fixed reference clock is passed explicitly.
"""
from datetime import date, datetime

import pytest

from groupfit.calendar_week import (
    Direction,
    InvalidWeekIdentifier,
    adjacent_week,
    days_until,
    display_label,
    is_in_future,
    is_in_past,
    is_today,
    is_valid_date_string,
    parse_week_identifier,
    today_string,
    week_identifier_of,
    week_range_of,
)

# Wednesday
NOW = datetime(2026, 1, 14, 10, 30)


# ─── Week identifiers ────────────────────────────────────────────────────────

@pytest.mark.parametrize("day", range(12, 19))
def test_every_day_of_week_maps_to_monday(day):
    assert week_identifier_of(date(2026, 1, day)) == "2026-01-12"


def test_sunday_belongs_to_previous_monday():
    assert week_identifier_of("2026-01-11") == "2026-01-05"


def test_week_identifier_accepts_strings_and_datetimes():
    assert week_identifier_of("2026-01-14") == "2026-01-12"
    assert week_identifier_of("2026-01-18T23:59:00") == "2026-01-12"
    assert week_identifier_of(datetime(2026, 1, 13, 6, 0)) == "2026-01-12"


def test_week_identifier_defaults_to_reference_now():
    assert week_identifier_of(now=NOW) == "2026-01-12"


def test_week_identifier_across_year_boundary():
    assert week_identifier_of("2026-01-01") == "2025-12-29"


def test_week_identifier_round_trips():
    key = week_identifier_of(NOW)
    assert week_identifier_of(key) == key
    assert parse_week_identifier(key).isoformat() == key


def test_week_identifier_rejects_garbage():
    with pytest.raises(InvalidWeekIdentifier):
        week_identifier_of("next tuesday")


# ─── Week range ──────────────────────────────────────────────────────────────

def test_week_range_bounds():
    start, end = week_range_of("2026-01-12")
    assert start == datetime(2026, 1, 12, 0, 0, 0)
    assert end == datetime(2026, 1, 18, 23, 59, 59, 999000)
    assert start.weekday() == 0
    assert end.weekday() == 6


@pytest.mark.parametrize("day", ["2026-03-02", "2026-03-29", "2026-10-26", "2024-02-26"])
def test_week_range_of_normalized_date(day):
    rng = week_range_of(week_identifier_of(day))
    assert rng.start.weekday() == 0
    assert (rng.start.hour, rng.start.minute, rng.start.second) == (0, 0, 0)
    assert rng.end.weekday() == 6
    assert (rng.end - rng.start).days == 6


@pytest.mark.parametrize("bad", ["", "not-a-date", "2026-02-30", "2026-13-01"])
def test_week_range_invalid_identifier(bad):
    with pytest.raises(InvalidWeekIdentifier):
        week_range_of(bad)


def test_invalid_identifier_is_value_error():
    with pytest.raises(ValueError, match="Invalid week key"):
        week_range_of("garbage")


# ─── Adjacent weeks ──────────────────────────────────────────────────────────

def test_adjacent_week_next_and_previous():
    assert adjacent_week("2026-01-12", "next") == "2026-01-19"
    assert adjacent_week("2026-01-12", Direction.PREVIOUS) == "2026-01-05"
    assert adjacent_week("2026-01-12", "prev") == "2026-01-05"


def test_adjacent_week_crosses_year():
    assert adjacent_week("2025-12-29", "next") == "2026-01-05"
    assert adjacent_week("2026-01-05", "previous") == "2025-12-29"


@pytest.mark.parametrize("week", ["2026-01-05", "2026-03-23", "2026-10-19", "2028-02-28"])
def test_adjacent_week_inverse(week):
    assert adjacent_week(adjacent_week(week, "next"), "previous") == week
    assert adjacent_week(adjacent_week(week, "previous"), "next") == week


def test_adjacent_week_renormalizes_mid_week_input():
    assert adjacent_week("2026-01-14", "next") == "2026-01-19"


def test_adjacent_week_invalid():
    with pytest.raises(InvalidWeekIdentifier):
        adjacent_week("yesterday", "next")
    with pytest.raises(ValueError):
        adjacent_week("2026-01-12", "sideways")


def test_adjacent_week_past_calendar_limits():
    with pytest.raises(InvalidWeekIdentifier):
        adjacent_week("9999-12-27", "next")
    with pytest.raises(InvalidWeekIdentifier):
        adjacent_week("0001-01-01", "previous")
    assert adjacent_week("9999-12-27", "previous") == "9999-12-20"


def test_week_range_past_calendar_limit():
    with pytest.raises(InvalidWeekIdentifier):
        week_range_of("9999-12-31")
    assert week_range_of("9999-12-27").end.date() == date(9999, 12, 31)


# ─── Today / countdown / past & future ───────────────────────────────────────

def test_is_today_uses_monday_index():
    assert is_today(2, now=NOW)
    assert not is_today(0, now=NOW)
    assert is_today(6, now=datetime(2026, 1, 18, 23, 0))


def test_days_until():
    assert days_until("2026-01-24", now=NOW) == 10
    assert days_until("2026-01-14", now=NOW) == 0
    assert days_until("2026-01-10", now=NOW) == -4
    assert days_until("2026-01-15T01:00:00", now=NOW) == 1


def test_days_until_unparseable_is_zero():
    assert days_until("someday", now=NOW) == 0
    assert days_until(None, now=NOW) == 0


def test_is_in_future():
    assert is_in_future("2026-01-15", now=NOW)
    assert not is_in_future("2026-01-14", now=NOW)
    assert not is_in_future("2026-01-14T23:59:00", now=NOW)
    assert not is_in_future("2026-01-13", now=NOW)
    assert not is_in_future("soon", now=NOW)


def test_is_in_past():
    assert is_in_past("2026-01-13", now=NOW)
    assert is_in_past("2026-01-13T23:59:59", now=NOW)
    assert not is_in_past("2026-01-14", now=NOW)
    assert not is_in_past("2026-01-20", now=NOW)
    assert not is_in_past("long ago", now=NOW)


# ─── Small helpers ───────────────────────────────────────────────────────────

def test_today_string():
    assert today_string(NOW) == "2026-01-14"


def test_is_valid_date_string():
    assert is_valid_date_string("2026-01-14")
    assert not is_valid_date_string("2026-02-30")
    assert not is_valid_date_string("")


def test_display_label():
    assert display_label("2026-01-14", now=NOW) == "Today"
    assert display_label("2026-01-13", now=NOW) == "Yesterday"
    assert display_label("2026-01-05", now=NOW) == "Jan 5"
    assert display_label("whenever", now=NOW) == "whenever"
