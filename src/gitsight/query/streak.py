"""Longest run of consecutive active calendar days."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date, timedelta
from typing import NamedTuple, Optional

from .temporal import calendar_date


class Streak(NamedTuple):
    count: int
    start: Optional[date]
    end: Optional[date]


def longest_run(days: Iterable[date]) -> Streak:
    """Find the longest run of consecutive dates.

    Duplicates and input order do not matter. When two runs have the same
    length the earlier one wins.
    """
    ordered = sorted(set(days))
    if not ordered:
        return Streak(0, None, None)

    best = Streak(1, ordered[0], ordered[0])
    run_start = ordered[0]
    run_length = 1
    one_day = timedelta(days=1)

    for previous, current in zip(ordered, ordered[1:]):
        if current - previous == one_day:
            run_length += 1
        else:
            run_start = current
            run_length = 1
        # Strictly greater keeps the first maximal run on ties
        if run_length > best.count:
            best = Streak(run_length, run_start, current)

    return best


def longest_streak(values: Iterable[Optional[str]]) -> Streak:
    """Longest streak over RFC3339 timestamps, each dated in its own offset.

    NULL values are ignored. Malformed timestamps raise FunctionArgumentError.
    """
    return longest_run(
        calendar_date(value, "active_longest") for value in values if value is not None
    )


class _DateCollector(ABC):
    """Base for SQLite aggregates that collect own-offset calendar dates."""

    name = ""

    def __init__(self):
        self.days: set[date] = set()

    def step(self, value: Optional[str]) -> None:
        if value is not None:
            self.days.add(calendar_date(value, self.name))

    @abstractmethod
    def finalize(self):
        """Return the aggregate value for the collected days."""


class ActiveLongestCount(_DateCollector):
    """Length of the longest run of consecutive active days."""

    name = "active_longest_count"

    def finalize(self) -> int:
        return longest_run(self.days).count


class ActiveLongestStart(_DateCollector):
    """First day (YYYY-MM-DD) of the longest streak."""

    name = "active_longest_start"

    def finalize(self) -> Optional[str]:
        start = longest_run(self.days).start
        return start.isoformat() if start else None


class ActiveLongestEnd(_DateCollector):
    """Last day (YYYY-MM-DD) of the longest streak."""

    name = "active_longest_end"

    def finalize(self) -> Optional[str]:
        end = longest_run(self.days).end
        return end.isoformat() if end else None


class ActiveDays(_DateCollector):
    """Number of distinct active calendar days."""

    name = "active_days"

    def finalize(self) -> int:
        return len(self.days)


AGGREGATES = (ActiveLongestCount, ActiveLongestStart, ActiveLongestEnd, ActiveDays)
