from datetime import datetime, time, timedelta

import pytest

from whenparse.errors import BoundExceeded, EmptyTerm, NoFutureOccurrence
from whenparse.schedule import (
    OneTimeSchedule,
    RepeatedSchedule,
    apply_term,
    next_occurrence,
)
from whenparse.terms import (
    DateTerm,
    KeywordTerm,
    LimiterTerm,
    MonthDayTerm,
    MonthTerm,
    Scope,
    SequenceTerm,
    Term,
    TimeTerm,
    WeekDayTerm,
    YearTerm,
)


def term(*subterms):
    return Term(tuple(subterms))


def every(unit, count=1):
    return SequenceTerm(((unit, count),), looped=True)


def span(unit, count):
    return SequenceTerm(((unit, count),))


def at(hour, minute=0):
    return TimeTerm(time(hour, minute))


def limited(t, lower=None, upper=None):
    parts = list(t.subterms)
    if lower is not None:
        parts.append(LimiterTerm(True).wrap(term(lower)))
    if upper is not None:
        parts.append(LimiterTerm(False).wrap(term(upper)))
    return Term(tuple(parts))


@pytest.mark.unit
class TestOneShot:
    def test_relative_span(self):
        since = datetime(2025, 1, 1, 10, 0)
        assert next_occurrence(term(span(Scope.MINUTE, 20)), since) == datetime(
            2025, 1, 1, 10, 20
        )

    def test_span_with_several_units(self):
        since = datetime(2025, 1, 31, 8, 30)
        t = term(SequenceTerm(((Scope.MONTH, 1), (Scope.DAY, 2), (Scope.HOUR, 3))))
        # Jan 31 + 1 month is clamped to Feb 28
        assert next_occurrence(t, since) == datetime(2025, 3, 2, 11, 30)

    def test_time_later_today(self):
        since = datetime(2025, 1, 1, 8, 0)
        assert next_occurrence(term(at(9)), since) == datetime(2025, 1, 1, 9, 0)

    def test_time_already_passed_rolls_to_tomorrow(self):
        since = datetime(2025, 1, 1, 10, 0)
        assert next_occurrence(term(at(9)), since) == datetime(2025, 1, 2, 9, 0)

    def test_one_shot_may_land_on_reference(self):
        since = datetime(2025, 1, 1, 9, 0)
        assert next_occurrence(term(at(9)), since) == since

    def test_tomorrow_at(self):
        since = datetime(2025, 1, 1, 22, 0)
        t = term(KeywordTerm(1), at(9))
        assert next_occurrence(t, since) == datetime(2025, 1, 2, 9, 0)

    def test_today_at_passed_time_never_occurs(self):
        since = datetime(2025, 1, 1, 22, 0)
        with pytest.raises(NoFutureOccurrence):
            next_occurrence(term(KeywordTerm(0), at(9)), since)

    def test_weekday_gets_default_time(self):
        since = datetime(2025, 1, 1, 12, 0)  # Wednesday
        assert next_occurrence(term(WeekDayTerm(5)), since) == datetime(2025, 1, 3)
        assert next_occurrence(
            term(WeekDayTerm(5)), since, default_time=time(8, 30)
        ) == datetime(2025, 1, 3, 8, 30)

    def test_same_weekday_earlier_today_moves_a_week(self):
        since = datetime(2025, 1, 1, 12, 0)  # Wednesday
        t = term(WeekDayTerm(3), at(9))
        assert next_occurrence(t, since) == datetime(2025, 1, 8, 9, 0)

    def test_date_without_year_rolls_to_next_year(self):
        since = datetime(2025, 12, 25)
        assert next_occurrence(term(DateTerm(24, 12)), since) == datetime(2026, 12, 24)

    def test_leap_day_clamps_in_common_years(self):
        since = datetime(2025, 1, 1)
        assert next_occurrence(term(DateTerm(29, 2)), since) == datetime(2025, 2, 28)

    def test_absolute_date(self):
        since = datetime(2025, 1, 1)
        t = term(DateTerm(24, 12, 2025), at(18, 30))
        assert next_occurrence(t, since) == datetime(2025, 12, 24, 18, 30)

    def test_absolute_date_in_the_past(self):
        with pytest.raises(NoFutureOccurrence):
            next_occurrence(term(DateTerm(24, 12, 2020)), datetime(2025, 1, 1))

    def test_year_month_and_day(self):
        t = term(YearTerm(2030), MonthTerm(3), MonthDayTerm(5))
        assert next_occurrence(t, datetime(2025, 1, 1)) == datetime(2030, 3, 5)

    def test_month_only(self):
        since = datetime(2025, 4, 10)
        assert next_occurrence(term(MonthTerm(3)), since) == datetime(2026, 3, 1)

    def test_next_week_on_monday(self):
        since = datetime(2025, 1, 1, 12, 0)  # Wednesday
        t = term(span(Scope.WEEK, 1), WeekDayTerm(1))
        assert next_occurrence(t, since) == datetime(2025, 1, 6)

    def test_empty_term(self):
        with pytest.raises(EmptyTerm):
            next_occurrence(term(), datetime(2025, 1, 1))


@pytest.mark.unit
class TestRepeating:
    def test_every_monday_at_nine(self):
        t = term(WeekDayTerm(1, looped=True), at(9))
        since = datetime(2024, 1, 3, 8, 0)
        assert next_occurrence(t, since) == datetime(2024, 1, 8, 9, 0)

    def test_repeating_is_strictly_after(self):
        t = term(WeekDayTerm(1, looped=True), at(9))
        since = datetime(2024, 1, 8, 9, 0)
        assert next_occurrence(t, since) == datetime(2024, 1, 15, 9, 0)

    def test_later_the_same_day(self):
        t = term(WeekDayTerm(1, looped=True), at(9))
        since = datetime(2024, 1, 8, 8, 59)
        assert next_occurrence(t, since) == datetime(2024, 1, 8, 9, 0)

    def test_every_day_at(self):
        t = term(every(Scope.DAY), at(9))
        assert next_occurrence(t, datetime(2025, 1, 1, 8, 0)) == datetime(2025, 1, 1, 9)
        assert next_occurrence(t, datetime(2025, 1, 1, 10, 0)) == datetime(2025, 1, 2, 9)

    def test_every_twenty_minutes(self):
        t = term(every(Scope.MINUTE, 20))
        since = datetime(2025, 1, 1, 10, 5)
        assert next_occurrence(t, since) == datetime(2025, 1, 1, 10, 25)

    def test_thirty_first_of_every_month(self):
        t = term(MonthDayTerm(31), every(Scope.MONTH))
        assert next_occurrence(t, datetime(2024, 2, 15)) == datetime(2024, 2, 29)
        assert next_occurrence(t, datetime(2024, 3, 31, 0, 1)) == datetime(2024, 4, 30)

    def test_every_thirty_first_keeps_the_day(self):
        t = term(MonthDayTerm(31, looped=True))
        assert next_occurrence(t, datetime(2024, 4, 30)) == datetime(2024, 5, 31)

    def test_christmas_eve_every_year(self):
        t = term(DateTerm(24, 12), every(Scope.YEAR))
        assert next_occurrence(t, datetime(2024, 12, 25)) == datetime(2025, 12, 24)
        assert next_occurrence(t, datetime(2024, 6, 1)) == datetime(2024, 12, 24)

    def test_every_two_weeks_on_monday(self):
        t = term(every(Scope.WEEK, 2), WeekDayTerm(1))
        assert next_occurrence(t, datetime(2024, 1, 8)) == datetime(2024, 1, 22)

    def test_every_monday_in_march(self):
        t = term(MonthTerm(3), WeekDayTerm(1, looped=True))
        assert next_occurrence(t, datetime(2024, 3, 12)) == datetime(2024, 3, 18)
        assert next_occurrence(t, datetime(2024, 3, 25)) == datetime(2025, 3, 3)

    def test_every_march(self):
        t = term(MonthTerm(3, looped=True))
        assert next_occurrence(t, datetime(2024, 3, 10)) == datetime(2025, 3, 1)

    @pytest.mark.parametrize(
        "t",
        [
            term(WeekDayTerm(1, looped=True), at(9)),
            term(MonthDayTerm(31), every(Scope.MONTH)),
            term(MonthTerm(2), WeekDayTerm(5, looped=True), at(18)),
            term(every(Scope.DAY, 3), at(7, 30)),
            term(DateTerm(29, 2, looped=True)),
        ],
    )
    def test_occurrences_strictly_increase(self, t):
        current = datetime(2023, 11, 17, 13, 45)
        for _ in range(30):
            following = next_occurrence(t, current)
            assert following > current
            current = following

    def test_idempotent(self):
        t = term(WeekDayTerm(4, looped=True), at(14, 15))
        since = datetime(2025, 5, 5, 12, 0)
        assert next_occurrence(t, since) == next_occurrence(t, since)


@pytest.mark.unit
class TestBounds:
    def test_from_bound_moves_the_start(self):
        t = limited(term(WeekDayTerm(1, looped=True)), lower=DateTerm(1, 2, 2025))
        assert next_occurrence(t, datetime(2025, 1, 1)) == datetime(2025, 2, 3)

    def test_from_bound_in_the_past_has_no_effect(self):
        t = limited(term(WeekDayTerm(1, looped=True)), lower=DateTerm(1, 2, 2020))
        assert next_occurrence(t, datetime(2025, 1, 1)) == datetime(2025, 1, 6)

    def test_until_bound(self):
        t = limited(term(WeekDayTerm(1, looped=True)), upper=DateTerm(1, 2, 2025))
        assert next_occurrence(t, datetime(2025, 1, 20)) == datetime(2025, 1, 27)
        with pytest.raises(BoundExceeded) as info:
            next_occurrence(t, datetime(2025, 1, 28))
        assert info.value.candidate == datetime(2025, 2, 3)
        assert info.value.bound == datetime(2025, 2, 1)

    def test_explicit_bounds_override(self):
        t = limited(term(WeekDayTerm(1, looped=True)), upper=DateTerm(1, 2, 2025))
        assert next_occurrence(t, datetime(2025, 1, 28), bounds=(None, None)) == datetime(
            2025, 2, 3
        )


@pytest.mark.unit
class TestSchedules:
    def test_one_time_schedule(self):
        since = datetime(2025, 1, 1, 10, 0)
        schedule = OneTimeSchedule(term(span(Scope.MINUTE, 20)), since)
        assert not schedule.is_repeating
        assert schedule.when == datetime(2025, 1, 1, 10, 20)
        assert schedule.next_occurrence(since + timedelta(minutes=5)) == schedule.when
        with pytest.raises(NoFutureOccurrence):
            schedule.next_occurrence(since + timedelta(hours=1))
        assert schedule.to_dict() == {
            "kind": "once",
            "expression": "in 20 minutes",
            "when": "2025-01-01T10:20:00",
        }

    def test_repeated_schedule_occurrences(self):
        t = limited(term(WeekDayTerm(1, looped=True), at(9)), upper=DateTerm(20, 1, 2025))
        schedule = RepeatedSchedule(t, datetime(2025, 1, 1))
        assert schedule.is_repeating
        assert schedule.upper == datetime(2025, 1, 20)
        assert schedule.occurrences(datetime(2025, 1, 1), 5) == [
            datetime(2025, 1, 6, 9, 0),
            datetime(2025, 1, 13, 9, 0),
        ]
        assert schedule.to_dict()["until"] == "2025-01-20T00:00:00"
        assert schedule.describe() == "every Monday at 09:00 until on 20.01.2025"

    def test_apply_term_does_not_roll_forward(self):
        since = datetime(2025, 1, 1, 10, 0)
        assert apply_term(term(at(9)), since) == datetime(2025, 1, 1, 9, 0)


@pytest.mark.unit
class TestConvergence:
    """A handful of Sub-Terms settles within a few fixup rounds."""

    @pytest.mark.parametrize(
        "t, since, expected",
        [
            (
                term(MonthTerm(3), WeekDayTerm(1, looped=True)),
                datetime(2024, 3, 25),
                datetime(2025, 3, 3),
            ),
            (
                term(MonthDayTerm(31), every(Scope.MONTH)),
                datetime(2024, 3, 31, 0, 1),
                datetime(2024, 4, 30),
            ),
            (
                term(MonthTerm(2), WeekDayTerm(5, looped=True), at(18)),
                datetime(2023, 11, 17, 13, 45),
                datetime(2024, 2, 2, 18, 0),
            ),
            (
                term(every(Scope.WEEK, 2), WeekDayTerm(1), at(9)),
                datetime(2024, 1, 8, 10, 0),
                datetime(2024, 1, 22, 9, 0),
            ),
            (
                term(DateTerm(29, 2, looped=True)),
                datetime(2023, 3, 1),
                datetime(2024, 2, 29),
            ),
        ],
    )
    def test_few_rounds(self, monkeypatch, t, since, expected):
        monkeypatch.setattr("whenparse.schedule.MAX_FIXUP_ROUNDS", 8)
        assert next_occurrence(t, since) == expected

    def test_round_cap_gives_up(self, monkeypatch):
        monkeypatch.setattr("whenparse.schedule.MAX_FIXUP_ROUNDS", 2)
        t = term(MonthTerm(3), WeekDayTerm(1, looped=True))
        with pytest.raises(NoFutureOccurrence):
            next_occurrence(t, datetime(2024, 3, 25))


@pytest.mark.unit
class TestCalendarEdges:
    def test_span_past_the_last_year(self):
        with pytest.raises(NoFutureOccurrence):
            next_occurrence(term(span(Scope.DAY, 99999999)), datetime(2025, 1, 1))

    def test_yearly_date_after_the_last_one(self):
        t = term(DateTerm(31, 12, looped=True))
        with pytest.raises(NoFutureOccurrence):
            next_occurrence(t, datetime(9999, 12, 31, 12, 0))

    def test_bound_past_the_last_year(self):
        t = limited(term(WeekDayTerm(1, looped=True)), upper=span(Scope.YEAR, 9000))
        with pytest.raises(NoFutureOccurrence):
            RepeatedSchedule(t, datetime(2025, 1, 1))
