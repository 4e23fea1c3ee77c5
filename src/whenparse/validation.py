"""
Rules deciding which combinations of Sub-Terms make a valid Term.

``validate_partial_term`` runs after every Sub-Term the parser adds and
rejects a branch as early as possible. ``validate_full_term`` runs once an
expression has been read completely.
"""

from datetime import datetime, time
from typing import Sequence

from whenparse.errors import (
    AbsoluteLoopConflict,
    BoundOrderingError,
    EmptyTerm,
    IncompatibleScope,
)
from whenparse.schedule import resolve_bounds
from whenparse.terms import LimiterTerm, Scope, SubTerm, SubTermKind, Term, TermType


def validate_partial_term(subterms: Sequence[SubTerm]) -> None:
    content = [s for s in subterms if not s.is_limiter]
    limiters = [s for s in subterms if s.is_limiter]

    looped = [s for s in content if s.type & TermType.LOOPED]
    absolute = [s for s in content if s.is_absolute]
    if looped and absolute:
        raise AbsoluteLoopConflict(
            f"'{absolute[0].describe()}' is a fixed date and cannot repeat"
        )

    scope = Scope.INVALID
    for subterm in content:
        if scope & subterm.scope:
            raise IncompatibleScope(
                f"'{subterm.describe()}' repeats a unit of time already given"
            )
        scope |= subterm.scope

    if absolute:
        for subterm in content:
            if subterm.is_absolute:
                continue
            if not subterm.is_timepoint or subterm.kind == SubTermKind.WEEK_DAY:
                raise IncompatibleScope(
                    f"'{subterm.describe()}' cannot be combined with a fixed date"
                )

    if limiters:
        first = subterms.index(limiters[0])
        if any(not s.is_limiter for s in subterms[first:]):
            raise IncompatibleScope("limits must come after the repetition")
        if not content:
            raise EmptyTerm("a limit needs something to repeat")
        if not looped:
            raise IncompatibleScope("only repeating expressions can be limited")
        kinds = [s.type & (TermType.FROM | TermType.UNTIL) for s in limiters]
        if len(set(kinds)) != len(kinds):
            raise IncompatibleScope("each limit may only be given once")


def validate_limit_term(subterms: Sequence[SubTerm]) -> None:
    """The expression after "from" or "until" must name one fixed instant."""
    for subterm in subterms:
        if subterm.is_limiter:
            raise IncompatibleScope("limits cannot be nested")
        if subterm.type & TermType.LOOPED:
            raise IncompatibleScope(f"the limit '{subterm.describe()}' cannot repeat")
    validate_partial_term(subterms)


def validate_full_term(
    subterms: Sequence[SubTerm],
    reference: datetime,
    default_time: time = time(0),
) -> Term:
    """Build the final Term, checking what can only be judged once it is complete."""
    validate_partial_term(subterms)
    term = Term(tuple(subterms))
    if not term.content:
        raise EmptyTerm("expression names no time")

    for is_from in (True, False):
        limiter = term.limiter(is_from)
        if limiter is None:
            continue
        if not isinstance(limiter, LimiterTerm) or limiter.limit is None:
            raise EmptyTerm(f"'{limiter.describe()}' needs a time after it")
        validate_limit_term(limiter.limit.subterms)

    lower, upper = resolve_bounds(term, reference, default_time)
    if lower is not None and upper is not None and lower >= upper:
        raise BoundOrderingError(lower, upper)
    return term
