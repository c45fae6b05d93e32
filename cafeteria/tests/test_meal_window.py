"""
Window calculator tests - half-month windows and the 5-day lock.
"""
from datetime import date, timedelta

import pytest

from cafeteria.services.meal_window import (
    LOCK_DAYS,
    is_canonical_window,
    is_locked,
    lock_date_for,
    month_windows,
    pick_window,
)


def test_first_half_of_month():
    w = pick_window(date(2025, 3, 5))
    assert (w.start, w.end) == (date(2025, 3, 1), date(2025, 3, 14))
    # 2025-03-01 - 5d = 2025-02-24 <= today
    assert w.locked is True


def test_second_half_of_month():
    w = pick_window(date(2025, 3, 20))
    assert (w.start, w.end) == (date(2025, 3, 15), date(2025, 3, 31))
    assert w.lock_date == date(2025, 3, 10)
    assert w.locked is True


@pytest.mark.parametrize("day", [1, 7, 14])
def test_days_1_to_14_map_to_first_window(day):
    w = pick_window(date(2024, 2, day))
    assert (w.start, w.end) == (date(2024, 2, 1), date(2024, 2, 14))


@pytest.mark.parametrize("year,month,last", [(2024, 2, 29), (2025, 2, 28), (2025, 4, 30), (2025, 12, 31)])
def test_second_window_ends_on_last_day(year, month, last):
    w = pick_window(date(year, month, 15))
    assert (w.start, w.end) == (date(year, month, 15), date(year, month, last))


def test_lock_holds_for_every_day_of_a_year():
    day = date(2025, 1, 1)
    while day.year == 2025:
        w = pick_window(day)
        assert w.start <= day <= w.end
        assert w.locked == (day >= w.start - timedelta(days=LOCK_DAYS))
        day += timedelta(days=1)


def test_is_locked_boundary():
    start = date(2025, 3, 15)
    assert lock_date_for(start) == date(2025, 3, 10)
    assert is_locked(start, date(2025, 3, 9)) is False
    assert is_locked(start, date(2025, 3, 10)) is True


def test_month_windows_december():
    first, second = month_windows(2025, 12)
    assert first.start == date(2025, 12, 1)
    assert second.end == date(2025, 12, 31)


def test_canonical_window():
    assert is_canonical_window(date(2025, 3, 1), date(2025, 3, 14))
    assert is_canonical_window(date(2025, 3, 15), date(2025, 3, 31))
    assert not is_canonical_window(date(2025, 3, 2), date(2025, 3, 14))
    assert not is_canonical_window(date(2025, 3, 15), date(2025, 3, 30))
