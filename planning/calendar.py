from datetime import date, timedelta
from typing import Iterable, Iterator, Optional


WEEKEND_DAYS = (5, 6)  # Saturday, Sunday

# A workday always exists within this many calendar days, even with long holidays
MAX_NON_WORKING_STREAK = 60


class WorkCalendar:
    """Workday lookup over weekends plus an explicit set of non-working days.

    For ``listed_years`` the non-working days are a complete production
    calendar: weekends are taken from ``holidays`` only, so a transferred
    working Saturday stays a workday.
    """

    def __init__(
        self,
        holidays: Optional[Iterable[date]] = None,
        weekend_days: Iterable[int] = WEEKEND_DAYS,
        country_code: str = "RU",
        listed_years: Iterable[int] = (),
    ):
        self.holidays = frozenset(holidays or ())
        self.weekend_days = frozenset(weekend_days)
        self.country_code = country_code
        self.listed_years = frozenset(listed_years)

    def is_workday(self, day: date) -> bool:
        if day in self.holidays:
            return False
        return day.year in self.listed_years or day.weekday() not in self.weekend_days

    def ensure_workday(self, day: date) -> date:
        """Return the same day if it is a workday, otherwise the next workday."""
        if self.is_workday(day):
            return day
        return self.next_workday(day)

    def next_workday(self, day: date) -> date:
        current = day
        for _ in range(MAX_NON_WORKING_STREAK):
            current += timedelta(days=1)
            if self.is_workday(current):
                return current
        raise ValueError(f'No workday within {MAX_NON_WORKING_STREAK} days after {day}')

    def workdays_from(self, day: date) -> Iterator[date]:
        """Lazily yield workdays starting at ``day`` (inclusive)."""
        current = self.ensure_workday(day)
        while True:
            yield current
            current = self.next_workday(current)

    def add_workdays(self, day: date, workdays: int) -> date:
        current = day
        for _ in range(workdays):
            current = self.next_workday(current)
        return current

    def count_workdays(self, start: date, end: date) -> int:
        """Count workdays in the inclusive range [start, end]."""
        if end < start:
            return 0
        count = 0
        current = start
        while current <= end:
            if self.is_workday(current):
                count += 1
            current += timedelta(days=1)
        return count
