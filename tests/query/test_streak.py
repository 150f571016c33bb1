"""Tests for the longest-streak function and its SQLite aggregates."""

import random
from datetime import date, timedelta

import pytest

from gitsight.errors import FunctionArgumentError
from gitsight.query.streak import (
    AGGREGATES,
    ActiveDays,
    ActiveLongestCount,
    ActiveLongestEnd,
    ActiveLongestStart,
    Streak,
    longest_run,
    longest_streak,
)


def summer_timestamps():
    """2021-07-17 .. 2021-08-02 (17 days) plus an isolated 2021-09-01."""
    start = date(2021, 7, 17)
    values = [f"{start + timedelta(days=i)}T12:00:00+00:00" for i in range(17)]
    values.append("2021-09-01T09:00:00+00:00")
    return values


class TestLongestStreak:
    def test_seventeen_day_run(self):
        assert longest_streak(summer_timestamps()) == Streak(
            17, date(2021, 7, 17), date(2021, 8, 2)
        )

    def test_empty(self):
        assert longest_streak([]) == Streak(0, None, None)

    def test_single_date(self):
        assert longest_streak(["2021-10-12T10:00:00+02:00"]) == Streak(
            1, date(2021, 10, 12), date(2021, 10, 12)
        )

    def test_invariant_to_order_and_duplicates(self):
        values = summer_timestamps()
        shuffled = values + [v.replace("T12:00:00", "T18:30:00") for v in values]
        random.Random(7).shuffle(shuffled)
        assert longest_streak(shuffled) == longest_streak(values)

    def test_ties_keep_earliest_run(self):
        days = [date(2021, 1, 1), date(2021, 1, 2), date(2021, 3, 1), date(2021, 3, 2)]
        assert longest_run(days) == Streak(2, date(2021, 1, 1), date(2021, 1, 2))

    def test_dates_taken_in_own_offset(self):
        # Same instant, different calendar days depending on the recorded offset
        values = ["2021-10-12T23:30:00-05:00", "2021-10-13T04:30:00+00:00"]
        assert longest_streak(values).count == 2

    def test_nulls_ignored(self):
        assert longest_streak([None, "2021-10-12T10:00:00Z", None]).count == 1

    def test_malformed_raises(self):
        with pytest.raises(FunctionArgumentError):
            longest_streak(["2021-10-12"])


class TestAggregates:
    def _run(self, aggregate_cls, values):
        aggregate = aggregate_cls()
        for value in values:
            aggregate.step(value)
        return aggregate.finalize()

    def test_count_start_end(self):
        values = summer_timestamps()
        assert self._run(ActiveLongestCount, values) == 17
        assert self._run(ActiveLongestStart, values) == "2021-07-17"
        assert self._run(ActiveLongestEnd, values) == "2021-08-02"

    def test_empty_group(self):
        assert self._run(ActiveLongestCount, []) == 0
        assert self._run(ActiveLongestStart, []) is None
        assert self._run(ActiveLongestEnd, []) is None

    def test_active_days_counts_distinct_dates(self):
        values = ["2021-10-12T01:00:00Z", "2021-10-12T05:00:00Z", "2021-10-14T01:00:00Z"]
        assert self._run(ActiveDays, values) == 2

    def test_every_aggregate_is_concrete(self):
        for aggregate_cls in AGGREGATES:
            assert aggregate_cls.name
            assert self._run(aggregate_cls, []) in (0, None)

    def test_collector_base_is_abstract(self):
        base = ActiveDays.__mro__[1]
        with pytest.raises(TypeError):
            base()
