"""
Turning a Term into concrete datetimes.

The evaluator applies a Term's Sub-Terms to a reference datetime, spans
first and then points from coarse to fine. When the result is not after
the reference it "fixes up": it advances one Sub-Term by its own unit,
re-applies everything finer and checks that every point still holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional

from whenparse.errors import BoundExceeded, EmptyTerm, NoFutureOccurrence
from whenparse.terms import (
    Scope,
    SequenceTerm,
    SubTerm,
    SubTermKind,
    Term,
    TermType,
)

# each round advances at least one unit, so this is only reached by
# combinations that can never be satisfied
MAX_FIXUP_ROUNDS = 500

_DAY_OR_COARSER = Scope.YEAR | Scope.MONTH | Scope.WEEK | Scope.DAY


def _granularity(subterm: SubTerm) -> int:
    scope = subterm.scope
    if scope & Scope.YEAR:
        return 0
    if scope & Scope.MONTH:
        return 1
    if scope & (Scope.WEEK | Scope.DAY):
        return 2
    return 3


@dataclass(frozen=True)
class _Step:
    subterm: SubTerm
    fenced: bool


@dataclass(frozen=True)
class _Plan:
    steps: tuple[_Step, ...]
    pinned: Scope
    default_time: Optional[time]

    @classmethod
    def for_term(cls, term: Term, default_time: time) -> _Plan:
        content = term.content
        if not content:
            raise EmptyTerm(f"{term.describe() or 'expression'} names no time")
        spans = [s for s in content if s.is_timespan]
        points = sorted((s for s in content if s.is_timepoint), key=_granularity)

        steps = []
        for span in spans:
            fenced = bool(points) and isinstance(span, SequenceTerm) and span.looped
            steps.append(_Step(span, fenced))
        month_fixed = any(p.scope & Scope.MONTH for p in points)
        for point in points:
            fenced = point.kind == SubTermKind.WEEK_DAY and month_fixed
            steps.append(_Step(point, fenced))

        pinned = Scope.INVALID
        for span in spans:
            pinned |= span.scope

        needs_default = any(p.scope & _DAY_OR_COARSER for p in points) and not (
            term.scope & (Scope.HOUR | Scope.MINUTE)
        )
        return cls(tuple(steps), pinned, default_time if needs_default else None)

    def apply_from(self, dt: datetime, start: int = 0) -> datetime:
        try:
            for step in self.steps[start:]:
                dt = step.subterm.apply(dt, step.fenced)
        except (ValueError, OverflowError) as e:
            raise NoFutureOccurrence(f"outside the supported calendar: {e}") from e
        if self.default_time is not None:
            dt = dt.replace(
                hour=self.default_time.hour,
                minute=self.default_time.minute,
                second=0,
                microsecond=0,
            )
        return dt

    def cleanup(self, dt: datetime) -> datetime:
        try:
            for step in self.steps:
                if step.subterm.type & TermType.NEEDS_FIXUP_CLEANUP:
                    dt = step.subterm.fixup_cleanup(dt)
        except (ValueError, OverflowError) as e:
            raise NoFutureOccurrence(f"outside the supported calendar: {e}") from e
        return dt

    def matches(self, dt: datetime) -> bool:
        return all(s.subterm.matches(dt) for s in self.steps if s.subterm.is_timepoint)

    def fixup(self, candidate: datetime) -> datetime:
        """Return the smallest single-unit advance of ``candidate`` that still fits."""
        for index in reversed(range(len(self.steps))):
            subterm = self.steps[index].subterm
            scope = subterm.fixup_scope
            if scope is None:
                continue
            if not subterm.is_timespan and scope & self.pinned:
                continue
            try:
                advanced = subterm.fixup(candidate)
            except (ValueError, OverflowError):
                # ran off the end of the calendar; a coarser unit will too
                break
            # a repeating span advances by the whole span, then redoes the points
            start = index + 1 if subterm.is_timespan else index
            try:
                moved = self.cleanup(self.apply_from(advanced, start))
            except NoFutureOccurrence:
                continue
            if moved > candidate and self.matches(moved):
                return moved
        raise NoFutureOccurrence("no later occurrence exists")


def apply_term(term: Term, since: datetime, default_time: time = time(0)) -> datetime:
    """Apply every Sub-Term once without moving past ``since``."""
    return _Plan.for_term(term, default_time).apply_from(since)


def next_occurrence(
    term: Term,
    since: datetime,
    *,
    strict: Optional[bool] = None,
    default_time: time = time(0),
    bounds: Optional[tuple[Optional[datetime], Optional[datetime]]] = None,
) -> datetime:
    """
    The first datetime the Term describes after ``since``.

    Repeating Terms must land strictly after ``since``; one-shot Terms may
    land on it. ``bounds`` is a ``(from, until)`` pair; when omitted the
    Term's own limiters are resolved against ``since``.
    """
    strict = term.is_looped if strict is None else strict
    plan = _Plan.for_term(term, default_time)
    lower, upper = bounds if bounds is not None else resolve_bounds(term, since, default_time)

    start = since
    threshold_strict = strict
    if lower is not None and lower > since:
        start = lower
        threshold_strict = False

    def satisfied(dt: datetime) -> bool:
        return dt > start if threshold_strict else dt >= start

    candidate = plan.cleanup(plan.apply_from(start))
    rounds = 0
    while not satisfied(candidate):
        rounds += 1
        if rounds > MAX_FIXUP_ROUNDS:
            raise NoFutureOccurrence(f"{term.describe()} does not occur after {since}")
        try:
            candidate = plan.fixup(candidate)
        except NoFutureOccurrence:
            raise NoFutureOccurrence(
                f"{term.describe()} does not occur after {since:%Y-%m-%d %H:%M}"
            ) from None

    if upper is not None and upper <= candidate:
        raise BoundExceeded(candidate, upper)
    return candidate


def resolve_bound(term: Term, since: datetime, default_time: time = time(0)) -> datetime:
    """
    The instant a limiter Term stands for. A fixed date in the past is
    still a valid bound, so it is returned as is.
    """
    try:
        return next_occurrence(term, since, strict=False, default_time=default_time)
    except NoFutureOccurrence:
        return apply_term(term, since, default_time)


def resolve_bounds(
    term: Term, since: datetime, default_time: time = time(0)
) -> tuple[Optional[datetime], Optional[datetime]]:
    resolved = []
    for is_from in (True, False):
        limiter = term.limiter(is_from)
        if limiter is None or limiter.limit is None:
            resolved.append(None)
        else:
            resolved.append(resolve_bound(limiter.limit, since, default_time))
    return resolved[0], resolved[1]


# ─── Schedules ─────────────────────────────────────────────


class Schedule:
    is_repeating: bool = False

    def __init__(self, term: Term, default_time: time = time(0)):
        self.term = term
        self.default_time = default_time

    def next_occurrence(self, since: datetime) -> datetime:
        raise NotImplementedError

    def describe(self) -> str:
        return self.term.describe()

    def to_dict(self) -> dict:
        raise NotImplementedError


class OneTimeSchedule(Schedule):
    """A single instant, resolved when the schedule is created."""

    def __init__(self, term: Term, since: datetime, default_time: time = time(0)):
        super().__init__(term, default_time)
        self.since = since
        self.when = next_occurrence(
            term, since, strict=False, default_time=default_time, bounds=(None, None)
        )

    def next_occurrence(self, since: datetime) -> datetime:
        if self.when < since:
            raise NoFutureOccurrence(
                f"{self.describe()} was at {self.when:%Y-%m-%d %H:%M}"
            )
        return self.when

    def to_dict(self) -> dict:
        return {
            "kind": "once",
            "expression": self.describe(),
            "when": self.when.isoformat(),
        }


class RepeatedSchedule(Schedule):
    is_repeating = True

    def __init__(
        self,
        term: Term,
        since: datetime,
        default_time: time = time(0),
    ):
        super().__init__(term, default_time)
        self.since = since
        self.lower, self.upper = resolve_bounds(term, since, default_time)

    def next_occurrence(self, since: datetime) -> datetime:
        return next_occurrence(
            self.term,
            since,
            strict=True,
            default_time=self.default_time,
            bounds=(self.lower, self.upper),
        )

    def occurrences(self, since: datetime, count: int) -> list[datetime]:
        """Up to ``count`` consecutive occurrences, stopping at the 'until' bound."""
        found = []
        current = since
        for _ in range(count):
            try:
                current = self.next_occurrence(current)
            except BoundExceeded:
                break
            found.append(current)
        return found

    def to_dict(self) -> dict:
        return {
            "kind": "repeated",
            "expression": self.describe(),
            "from": self.lower.isoformat() if self.lower else None,
            "until": self.upper.isoformat() if self.upper else None,
        }
