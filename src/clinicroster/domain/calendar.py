"""Sunday-anchored week arithmetic and the clinic business calendar.

Every week computation in the package goes through ``week_start``. Weeks run
Sunday to Saturday; week numbers follow ISO rules shifted to a Sunday anchor
(a week belongs to the year holding its Wednesday, and week 1 is the week
containing 4 January).
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

SATURDAY = 5
SUNDAY = 6

_WEEK_KEY_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")


class FairnessDimension(Enum):
    """Workload dimensions tracked for fairness."""

    TOTAL = "total"
    NIGHT = "night"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"
    HOLIDAY_ADJACENT = "holiday_adjacent"


def week_start(d: date) -> date:
    """Return the Sunday that opens the week containing ``d``."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def week_dates(d: date) -> list[date]:
    """Return the seven dates of the Sunday-anchored week containing ``d``."""
    start = week_start(d)
    return [start + timedelta(days=i) for i in range(7)]


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of dates from start to end."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


@dataclass(frozen=True, order=True)
class WeekKey:
    """Identifier for a Sunday-anchored week, rendered as ``YYYY-Www``.

    Attributes:
        year: Year containing the week's Wednesday.
        number: 1-based week number; week 1 contains 4 January.
    """

    year: int
    number: int

    @classmethod
    def from_date(cls, d: date) -> "WeekKey":
        start = week_start(d)
        year = (start + timedelta(days=3)).year
        first = week_start(date(year, 1, 4))
        return cls(year=year, number=(start - first).days // 7 + 1)

    @classmethod
    def parse(cls, text: str) -> "WeekKey":
        """Parse ``2026-W07`` style keys.

        Raises:
            ValueError: If the text is malformed or the week does not exist.
        """
        match = _WEEK_KEY_RE.match(text.strip())
        if not match:
            raise ValueError(f"Invalid week key: {text!r}")
        key = cls(year=int(match.group(1)), number=int(match.group(2)))
        if key.number < 1 or cls.from_date(key.start) != key:
            raise ValueError(f"Week {text!r} does not exist")
        return key

    @property
    def start(self) -> date:
        return week_start(date(self.year, 1, 4)) + timedelta(weeks=self.number - 1)

    @property
    def end(self) -> date:
        return self.start + timedelta(days=6)

    @property
    def dates(self) -> list[date]:
        return date_range(self.start, self.end)

    def __str__(self) -> str:
        return f"{self.year}-W{self.number:02d}"


class ClinicCalendar:
    """Business days and holidays for a clinic.

    Holidays are only counted when they fall on a business day, since closed
    weekdays already carry no work.
    """

    def __init__(
        self,
        holidays: Iterable[date] = (),
        closed_weekdays: Optional[Iterable[int]] = None,
    ):
        self.holidays = frozenset(holidays)
        self.closed_weekdays = frozenset(
            closed_weekdays if closed_weekdays is not None else {SUNDAY}
        )

    def is_holiday(self, d: date) -> bool:
        return d in self.holidays

    def is_business_day(self, d: date) -> bool:
        return d.weekday() not in self.closed_weekdays

    def is_workable(self, d: date) -> bool:
        """Business day that is not a holiday."""
        return self.is_business_day(d) and not self.is_holiday(d)

    def business_days(self, start: date, end: date) -> list[date]:
        return [d for d in date_range(start, end) if self.is_business_day(d)]

    def holidays_between(self, start: date, end: date) -> int:
        """Count holidays that fall on business days in [start, end]."""
        return sum(1 for d in self.business_days(start, end) if self.is_holiday(d))

    def workable_days(self, start: date, end: date) -> list[date]:
        return [d for d in date_range(start, end) if self.is_workable(d)]

    def weekly_quota(self, target: int, d: date) -> int:
        """Workdays owed in the week of ``d``: the target minus weekday holidays."""
        start = week_start(d)
        holidays = self.holidays_between(start, start + timedelta(days=6))
        return max(0, target - holidays)

    def is_holiday_adjacent(self, d: date) -> bool:
        if self.is_holiday(d):
            return False
        return self.is_holiday(d - timedelta(days=1)) or self.is_holiday(d + timedelta(days=1))

    def classify(self, d: date, night: bool = False) -> frozenset[FairnessDimension]:
        """Dimensions a worked shift on ``d`` counts toward."""
        dims = {FairnessDimension.TOTAL}
        if night:
            dims.add(FairnessDimension.NIGHT)
        if d.weekday() in (SATURDAY, SUNDAY):
            dims.add(FairnessDimension.WEEKEND)
        if self.is_holiday(d):
            dims.add(FairnessDimension.HOLIDAY)
        elif self.is_holiday_adjacent(d):
            dims.add(FairnessDimension.HOLIDAY_ADJACENT)
        return frozenset(dims)
