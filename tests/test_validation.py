from datetime import datetime, time

import pytest

from whenparse.errors import (
    AbsoluteLoopConflict,
    BoundOrderingError,
    EmptyTerm,
    IncompatibleScope,
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
from whenparse.validation import (
    validate_full_term,
    validate_limit_term,
    validate_partial_term,
)

REFERENCE = datetime(2025, 1, 1, 12, 0)
NINE = TimeTerm(time(9, 0))
EVERY_MONDAY = WeekDayTerm(1, looped=True)


@pytest.mark.unit
class TestPartialValidation:
    def test_compatible_parts(self):
        validate_partial_term((EVERY_MONDAY, NINE))
        validate_partial_term((DateTerm(24, 12), SequenceTerm(((Scope.YEAR, 1),), True)))

    def test_overlapping_scopes(self):
        with pytest.raises(IncompatibleScope):
            validate_partial_term((NINE, TimeTerm(time(10, 0))))
        with pytest.raises(IncompatibleScope):
            validate_partial_term((MonthDayTerm(5), WeekDayTerm(1)))
        with pytest.raises(IncompatibleScope):
            validate_partial_term((KeywordTerm(1), SequenceTerm(((Scope.DAY, 2),))))

    def test_absolute_and_looped(self):
        with pytest.raises(AbsoluteLoopConflict):
            validate_partial_term((EVERY_MONDAY, DateTerm(1, 5, 2025)))
        with pytest.raises(AbsoluteLoopConflict):
            validate_partial_term((YearTerm(2030), SequenceTerm(((Scope.MONTH, 1),), True)))

    def test_year_combinations(self):
        validate_partial_term((YearTerm(2030), MonthTerm(3), MonthDayTerm(5), NINE))
        with pytest.raises(IncompatibleScope):
            validate_partial_term((YearTerm(2030), WeekDayTerm(2)))
        with pytest.raises(IncompatibleScope):
            validate_partial_term((YearTerm(2030), SequenceTerm(((Scope.HOUR, 2),))))

    def test_limiter_needs_a_repetition(self):
        with pytest.raises(IncompatibleScope):
            validate_partial_term((WeekDayTerm(1), LimiterTerm(True)))
        with pytest.raises(EmptyTerm):
            validate_partial_term((LimiterTerm(True),))
        validate_partial_term((EVERY_MONDAY, LimiterTerm(True)))

    def test_limiter_comes_last(self):
        with pytest.raises(IncompatibleScope):
            validate_partial_term((EVERY_MONDAY, LimiterTerm(True), NINE))

    def test_each_limit_once(self):
        with pytest.raises(IncompatibleScope):
            validate_partial_term((EVERY_MONDAY, LimiterTerm(False), LimiterTerm(False)))
        validate_partial_term((EVERY_MONDAY, LimiterTerm(True), LimiterTerm(False)))

    def test_limit_term_must_not_repeat(self):
        validate_limit_term((DateTerm(1, 2, 2025),))
        with pytest.raises(IncompatibleScope):
            validate_limit_term((EVERY_MONDAY,))
        with pytest.raises(IncompatibleScope):
            validate_limit_term((LimiterTerm(True),))


@pytest.mark.unit
class TestFullValidation:
    def test_builds_term(self):
        term = validate_full_term((EVERY_MONDAY, NINE), REFERENCE)
        assert isinstance(term, Term)
        assert term.is_looped and not term.is_absolute
        assert term.scope == Scope.WEEKDAY | Scope.HOUR | Scope.MINUTE

    def test_empty(self):
        with pytest.raises(EmptyTerm):
            validate_full_term((), REFERENCE)

    def test_bare_limiter_is_incomplete(self):
        with pytest.raises(EmptyTerm):
            validate_full_term((EVERY_MONDAY, LimiterTerm(True)), REFERENCE)

    def test_bounds_in_order(self):
        lower = LimiterTerm(True).wrap(Term((DateTerm(1, 2, 2025),)))
        upper = LimiterTerm(False).wrap(Term((DateTerm(1, 3, 2025),)))
        term = validate_full_term((EVERY_MONDAY, lower, upper), REFERENCE)
        assert term.limiter(True) == lower
        assert term.limiter(False) == upper

    def test_bounds_out_of_order(self):
        lower = LimiterTerm(True).wrap(Term((DateTerm(1, 3, 2025),)))
        upper = LimiterTerm(False).wrap(Term((DateTerm(1, 2, 2025),)))
        with pytest.raises(BoundOrderingError) as info:
            validate_full_term((EVERY_MONDAY, lower, upper), REFERENCE)
        assert info.value.lower == datetime(2025, 3, 1)
        assert info.value.upper == datetime(2025, 2, 1)

    def test_past_bound_is_allowed(self):
        lower = LimiterTerm(True).wrap(Term((DateTerm(1, 2, 2020),)))
        term = validate_full_term((EVERY_MONDAY, lower), REFERENCE)
        assert term.limiter(True).limit.is_absolute
