"""
Meal-plan window calculator.

A month is split in two half-month windows: days 1-14 and day 15 to the end
of the month. A window locks LOCK_DAYS days before it starts; after that its
selections can no longer be edited.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

LOCK_DAYS = 5
MONTHS_AHEAD = 4


@dataclass(frozen=True)
class MealWindow:
    start: date
    end: date
    locked: bool = False

    @property
    def lock_date(self) -> date:
        return lock_date_for(self.start)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def lock_date_for(start: date) -> date:
    return start - timedelta(days=LOCK_DAYS)


def is_locked(start: date, today: date) -> bool:
    return today >= lock_date_for(start)


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = (month - 1) + offset
    return year + index // 12, index % 12 + 1


def month_windows(year: int, month: int) -> List[MealWindow]:
    """The two canonical windows of a month (unlocked)"""
    last_day = calendar.monthrange(year, month)[1]
    return [
        MealWindow(date(year, month, 1), date(year, month, 14)),
        MealWindow(date(year, month, 15), date(year, month, last_day)),
    ]


def is_canonical_window(start: date, end: date) -> bool:
    return any(
        w.start == start and w.end == end
        for w in month_windows(start.year, start.month)
    )


def pick_window(today: Optional[date] = None) -> MealWindow:
    """Return the window a person should currently see.

    The window containing `today` wins (locked or not); otherwise the first
    upcoming window whose lock date has not passed yet.
    """
    today = today or utc_today()
    for offset in range(MONTHS_AHEAD):
        year, month = _shift_month(today.year, today.month, offset)
        for w in month_windows(year, month):
            lock = lock_date_for(w.start)
            if w.start <= today <= w.end:
                return MealWindow(w.start, w.end, locked=today >= lock)
            if today < lock:
                return MealWindow(w.start, w.end, locked=False)

    # Fallback: first half of next month
    year, month = _shift_month(today.year, today.month, 1)
    return MealWindow(date(year, month, 1), date(year, month, 14), locked=False)
