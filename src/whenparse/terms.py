"""
Sub-Terms, Terms and the recognizers that read them from text.

A Sub-Term is the smallest meaningful fragment of an expression: a time
("at 9:00"), a date ("on 24.12."), a day of the month ("on the 5th"), a
weekday, a month, a year, a span ("in 2 days and 3 hours"), a day keyword
("tomorrow") or a limiter ("from", "until"). Each kind knows how to

* recognize itself at the start of a piece of text (``parse``),
* move a datetime onto itself (``apply``),
* move a datetime one cycle of its own unit forward (``fixup``),
* describe itself in words (``describe``).

A Term is an ordered, validated combination of Sub-Terms. Both are
immutable, so the parser can share them between exploration branches.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum, IntFlag
from functools import lru_cache
from typing import ClassVar, Iterator, Optional

from dateutil.relativedelta import relativedelta

from whenparse.errors import ExpressionError
from whenparse.shared import ordinal
from whenparse.words import (
    WordKey,
    alternation,
    datetime_format_to_regex,
    tr_keywords,
    tr_list,
)


class Scope(IntFlag):
    INVALID = 0x00
    YEAR = 0x01
    MONTH = 0x02
    WEEK = 0x04
    DAY = 0x08
    WEEKDAY = 0x08
    MONTHDAY = 0x0C
    HOUR = 0x10
    MINUTE = 0x20


class TermType(IntFlag):
    INVALID = 0x00
    TIMEPOINT = 0x01
    TIMESPAN = 0x02
    ABSOLUTE = 0x10
    LOOPED = 0x20
    NEEDS_FIXUP_CLEANUP = 0x40
    FROM = 0x100
    UNTIL = 0x200


class SubTermKind(Enum):
    TIME = "time"
    INVERTED_TIME = "inverted time"
    DATE = "date"
    MONTH_DAY = "month day"
    WEEK_DAY = "weekday"
    MONTH = "month"
    YEAR = "year"
    SEQUENCE = "sequence"
    KEYWORD = "keyword"
    LIMITER = "limiter"


# span units, coarse to fine
SPAN_UNITS = (Scope.YEAR, Scope.MONTH, Scope.WEEK, Scope.DAY, Scope.HOUR, Scope.MINUTE)

_SPAN_KEYS = {
    Scope.YEAR: WordKey.SPAN_KEY_YEAR,
    Scope.MONTH: WordKey.SPAN_KEY_MONTH,
    Scope.WEEK: WordKey.SPAN_KEY_WEEK,
    Scope.DAY: WordKey.SPAN_KEY_DAY,
    Scope.HOUR: WordKey.SPAN_KEY_HOUR,
    Scope.MINUTE: WordKey.SPAN_KEY_MINUTE,
}

_UNIT_NAMES = {
    Scope.YEAR: "year",
    Scope.MONTH: "month",
    Scope.WEEK: "week",
    Scope.DAY: "day",
    Scope.HOUR: "hour",
    Scope.MINUTE: "minute",
}

_WEEKDAY_NAMES = list(calendar.day_name)
_MONTH_NAMES = list(calendar.month_name)[1:]

# any year works for checking day/month combinations, as long as it is a leap year
_LEAP_YEAR = 2000


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _clamped(dt: datetime, day: int) -> datetime:
    return dt.replace(day=min(day, days_in_month(dt.year, dt.month)))


def add_span(dt: datetime, unit: Scope, count: int) -> datetime:
    if unit == Scope.YEAR:
        return dt + relativedelta(years=count)
    if unit == Scope.MONTH:
        return dt + relativedelta(months=count)
    if unit == Scope.WEEK:
        return dt + timedelta(weeks=count)
    if unit == Scope.DAY:
        return dt + timedelta(days=count)
    if unit == Scope.HOUR:
        return dt + timedelta(hours=count)
    if unit == Scope.MINUTE:
        return dt + timedelta(minutes=count)
    raise AssertionError(f"not a span unit: {unit!r}")


# ─── regex building blocks ─────────────────────────────────


def _optional(key: WordKey, locale: str) -> str:
    words = tr_list(key, locale=locale)
    return alternation(words) + "?" if words else ""


def _required(key: WordKey, locale: str) -> Optional[str]:
    words = tr_list(key, locale=locale)
    return alternation(words) if words else None


@dataclass(frozen=True)
class _Affix:
    prefix: str
    suffix: str
    looped: bool


def _affixes(
    prefix: WordKey,
    suffix: WordKey,
    loop_prefix: WordKey,
    loop_suffix: WordKey,
    locale: str,
) -> tuple[_Affix, ...]:
    """
    The prefix/suffix combinations a recognizer tries, in order: loop prefix
    with plain suffix, plain prefix with loop suffix, plain prefix with plain
    suffix. Loop forms need their loop word to be present.
    """
    combos = []
    plain_prefix = _optional(prefix, locale)
    plain_suffix = _optional(suffix, locale)
    looped_prefix = _required(loop_prefix, locale)
    looped_suffix = _required(loop_suffix, locale)
    if looped_prefix is not None:
        combos.append(_Affix(looped_prefix, plain_suffix, True))
    if looped_suffix is not None:
        combos.append(_Affix(plain_prefix, looped_suffix, True))
    combos.append(_Affix(plain_prefix, plain_suffix, False))
    return tuple(combos)


def _compile(body: str) -> re.Pattern:
    return re.compile(r"^" + body + r"\s*", re.IGNORECASE)


def _ampm_tokens(locale: str) -> dict[str, str]:
    am = tr_list(WordKey.TIME_AM, locale=locale)
    pm = tr_list(WordKey.TIME_PM, locale=locale)
    if not am or not pm:
        return {}
    ampm = r"\s*(?P<ampm>" + "|".join(am + pm) + ")"
    return {"ap": ampm, "AP": ampm}


def _time_tokens(locale: str) -> dict[str, str]:
    tokens = {
        "hh": r"(?P<hour>\d{2})(?!\d)",
        "h": r"(?P<hour>\d{1,2})(?!\d)",
        "mm": r"(?P<minute>\d{2})(?!\d)",
        "m": r"(?P<minute>\d{1,2})(?!\d)",
        "ss": r"(?P<second>\d{2})(?!\d)",
        "s": r"(?P<second>\d{1,2})(?!\d)",
    }
    tokens.update(_ampm_tokens(locale))
    return tokens


def _time_patterns(key: WordKey, locale: str) -> list[str]:
    patterns = tr_list(key, escape=False, sort=False, locale=locale)
    if not _ampm_tokens(locale):
        patterns = [p for p in patterns if "ap" not in p.lower()]
    return patterns


def _hour_from_match(match: re.Match, locale: str) -> Optional[int]:
    hour = int(match.group("hour"))
    marker = match.groupdict().get("ampm")
    if not marker:
        return hour
    if not 1 <= hour <= 12:
        return None
    am = [w.lower() for w in tr_list(WordKey.TIME_AM, escape=False, locale=locale)]
    hour = hour % 12
    return hour if marker.lower() in am else hour + 12


def _valid_time(hour: Optional[int], minute: int) -> Optional[time]:
    if hour is None or not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour, minute)


@lru_cache(maxsize=None)
def _time_regexes(locale: str) -> tuple[re.Pattern, ...]:
    prefix = _optional(WordKey.TIME_PREFIX, locale)
    suffix = _optional(WordKey.TIME_SUFFIX, locale)
    tokens = _time_tokens(locale)
    return tuple(
        _compile(prefix + "(?:" + datetime_format_to_regex(p, tokens) + ")" + suffix)
        for p in _time_patterns(WordKey.TIME_PATTERN, locale)
    )


@lru_cache(maxsize=None)
def _inverted_time_regexes(locale: str) -> tuple[tuple[re.Pattern, int], ...]:
    prefix = _optional(WordKey.TIME_PREFIX, locale)
    suffix = _optional(WordKey.TIME_SUFFIX, locale)
    keywords = [re.escape(w) for w, _ in tr_keywords(WordKey.INV_TIME_KEYWORD, locale)]
    tokens = _time_tokens(locale)
    regexes = []
    for expr in tr_list(WordKey.INV_TIME_EXPR_PATTERN, escape=False, sort=False, locale=locale):
        template, _, sign = expr.rpartition(":")
        direction = -1 if sign == "-" else 1
        for hour_pattern in _time_patterns(WordKey.INV_TIME_HOUR_PATTERN, locale):
            hours = "(?P<hours>" + datetime_format_to_regex(hour_pattern, tokens) + ")"
            for minute_pattern in tr_list(
                WordKey.INV_TIME_MINUTE_PATTERN, escape=False, sort=False, locale=locale
            ):
                minutes = datetime_format_to_regex(minute_pattern, tokens)
                minutes = "(?P<minutes>" + "|".join([minutes] + keywords) + ")"
                body = "".join(
                    {"{minutes}": minutes, "{hours}": hours}.get(part, re.escape(part))
                    for part in re.split(r"(\{minutes\}|\{hours\})", template)
                )
                regexes.append((_compile(prefix + body + suffix), direction))
    return tuple(regexes)


def _date_tokens() -> dict[str, str]:
    return {
        "dd": r"(?P<day>\d{2})(?!\d)",
        "d": r"(?P<day>\d{1,2})(?!\d)",
        "MM": r"(?P<month>\d{2})(?!\d)",
        "M": r"(?P<month>\d{1,2})(?!\d)",
        "yyyy": r"(?P<year>\d{4})(?!\d)",
        "yy": r"(?P<short_year>\d{2})(?!\d)",
    }


@lru_cache(maxsize=None)
def _date_regexes(locale: str) -> tuple[tuple[re.Pattern, bool], ...]:
    regexes = []
    tokens = _date_tokens()
    patterns = [
        datetime_format_to_regex(p, tokens)
        for p in tr_list(WordKey.DATE_PATTERN, escape=False, sort=False, locale=locale)
    ]
    for affix in _affixes(
        WordKey.DATE_PREFIX,
        WordKey.DATE_SUFFIX,
        WordKey.DATE_LOOP_PREFIX,
        WordKey.DATE_LOOP_SUFFIX,
        locale,
    ):
        for pattern in patterns:
            has_year = "year>" in pattern
            if affix.looped and has_year:
                continue
            regexes.append(
                (_compile(affix.prefix + "(?:" + pattern + ")" + affix.suffix), affix.looped)
            )
    return tuple(regexes)


@lru_cache(maxsize=None)
def _month_day_regexes(locale: str) -> tuple[tuple[re.Pattern, bool], ...]:
    regexes = []
    indicators = []
    for indicator in tr_list(WordKey.MONTH_DAY_INDICATOR, escape=False, locale=locale):
        before, _, after = indicator.partition("_")
        indicators.append(re.escape(before) + r"(?P<day>\d{1,2})(?!\d)" + re.escape(after))
    for affix in _affixes(
        WordKey.MONTH_DAY_PREFIX,
        WordKey.MONTH_DAY_SUFFIX,
        WordKey.MONTH_DAY_LOOP_PREFIX,
        WordKey.MONTH_DAY_LOOP_SUFFIX,
        locale,
    ):
        for indicator in indicators:
            regexes.append((_compile(affix.prefix + indicator + affix.suffix), affix.looped))
    return tuple(regexes)


def _name_lookup(keys: tuple[WordKey, ...], locale: str) -> dict[str, int]:
    lookup = {}
    for key in keys:
        for index, name in enumerate(tr_list(key, escape=False, sort=False, locale=locale)):
            lookup.setdefault(name.lower(), index + 1)
    return lookup


@lru_cache(maxsize=None)
def _named_regexes(
    kind: SubTermKind, locale: str
) -> tuple[tuple[tuple[re.Pattern, bool], ...], dict[str, int]]:
    if kind == SubTermKind.WEEK_DAY:
        names = (WordKey.WEEK_DAY_NAMES, WordKey.WEEK_DAY_SHORT_NAMES)
        affix_keys = (
            WordKey.WEEK_DAY_PREFIX,
            WordKey.WEEK_DAY_SUFFIX,
            WordKey.WEEK_DAY_LOOP_PREFIX,
            WordKey.WEEK_DAY_LOOP_SUFFIX,
        )
    else:
        names = (WordKey.MONTH_NAMES, WordKey.MONTH_SHORT_NAMES)
        affix_keys = (
            WordKey.MONTH_PREFIX,
            WordKey.MONTH_SUFFIX,
            WordKey.MONTH_LOOP_PREFIX,
            WordKey.MONTH_LOOP_SUFFIX,
        )
    lookup = _name_lookup(names, locale)
    # a name must not stop in the middle of a word
    name_re = (
        "(?P<name>"
        + "|".join(re.escape(n) for n in sorted(lookup, key=len, reverse=True))
        + r")(?!\w)"
    )
    regexes = tuple(
        (_compile(affix.prefix + name_re + affix.suffix), affix.looped)
        for affix in _affixes(*affix_keys, locale)
    )
    return regexes, lookup


@lru_cache(maxsize=None)
def _year_regex(locale: str) -> re.Pattern:
    prefix = _optional(WordKey.YEAR_PREFIX, locale)
    suffix = _optional(WordKey.YEAR_SUFFIX, locale)
    return _compile(prefix + r"(?P<year>-?\d{4,})(?!\d)" + suffix)


@lru_cache(maxsize=None)
def _sequence_regexes(locale: str):
    units = {}
    names = []
    for unit, key in _SPAN_KEYS.items():
        for name in tr_list(key, escape=False, locale=locale):
            units[name.lower()] = unit
            names.append(name)
    names.sort(key=len, reverse=True)
    unit_names = "(?:" + "|".join(re.escape(n) for n in names) + r")(?!\w)"
    unit_re = "(?P<unit>" + unit_names + ")"
    conj = _required(WordKey.SPAN_CONJUNCTION, locale)
    suffix = _required(WordKey.SPAN_SUFFIX, locale)
    counts = {True: r"(?:\d+\s+)?", False: r"\d+\s+"}

    def tail(looped: bool) -> str:
        # the conjunction belongs to the span only when another item follows
        parts = [conj + r"(?=\s*" + counts[looped] + unit_names + ")"] if conj else []
        if suffix:
            parts.append(suffix)
        return "(?:" + "|".join(parts) + ")?" if parts else ""

    items = {
        True: _compile(r"(?:(?P<count>\d+)\s+)?" + unit_re + tail(True)),
        False: _compile(r"(?P<count>\d+)\s+" + unit_re + tail(False)),
    }
    prefixes = {
        False: _compile(_optional(WordKey.SPAN_PREFIX, locale)),
    }
    loop_prefix = _required(WordKey.SPAN_LOOP_PREFIX, locale)
    if loop_prefix is not None:
        prefixes[True] = _compile(loop_prefix)
    return prefixes, items, units


@lru_cache(maxsize=None)
def _keyword_regexes(locale: str) -> tuple[tuple[re.Pattern, int], ...]:
    return tuple(
        (_compile(re.escape(word) + r"(?!\w)"), int(value))
        for word, value in tr_keywords(WordKey.KEYWORD_DAYSPAN, locale)
    )


@lru_cache(maxsize=None)
def _limiter_regexes(locale: str) -> tuple[tuple[re.Pattern, bool], ...]:
    regexes = []
    for key, is_from in ((WordKey.LIMITER_FROM, True), (WordKey.LIMITER_UNTIL, False)):
        words = tr_list(key, locale=locale)
        if words:
            regexes.append((_compile(alternation(words) + r"(?=\s|$)"), is_from))
    return tuple(regexes)


# ─── Sub-Terms ─────────────────────────────────────────────


class SubTerm:
    """
    Base class of all Sub-Term kinds.

    ``apply`` and ``fixup`` return new datetimes. ``fenced`` asks a Sub-Term
    to stay within the unit that a coarser part of the Term already fixed.
    """

    kind: ClassVar[SubTermKind]
    looped: bool = False

    @property
    def type(self) -> TermType:
        raise NotImplementedError

    @property
    def scope(self) -> Scope:
        raise NotImplementedError

    @property
    def fixup_scope(self) -> Optional[Scope]:
        """The unit ``fixup`` advances by, or None when there is none."""
        return None

    @property
    def is_timepoint(self) -> bool:
        return bool(self.type & TermType.TIMEPOINT)

    @property
    def is_timespan(self) -> bool:
        return bool(self.type & TermType.TIMESPAN)

    @property
    def is_absolute(self) -> bool:
        return bool(self.type & TermType.ABSOLUTE)

    @property
    def is_limiter(self) -> bool:
        return bool(self.type & (TermType.FROM | TermType.UNTIL))

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        raise NotImplementedError

    def fixup(self, dt: datetime) -> datetime:
        raise AssertionError(f"{self.kind.value} cannot be advanced")

    def fixup_cleanup(self, dt: datetime) -> datetime:
        return dt

    def matches(self, dt: datetime) -> bool:
        return True

    def describe(self) -> str:
        raise NotImplementedError

    @classmethod
    def parse(cls, text: str, locale: str) -> Optional[tuple[SubTerm, int]]:
        raise NotImplementedError

    @classmethod
    def syntax(cls, as_loop: bool) -> Optional[tuple[str, str]]:
        return None


@dataclass(frozen=True)
class TimeTerm(SubTerm):
    time: time

    kind: ClassVar[SubTermKind] = SubTermKind.TIME

    @property
    def type(self) -> TermType:
        return TermType.TIMEPOINT

    @property
    def scope(self) -> Scope:
        return Scope.HOUR | Scope.MINUTE

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return Scope.DAY

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return dt.replace(
            hour=self.time.hour, minute=self.time.minute, second=0, microsecond=0
        )

    def fixup(self, dt: datetime) -> datetime:
        return dt + timedelta(days=1)

    def matches(self, dt: datetime) -> bool:
        return (dt.hour, dt.minute) == (self.time.hour, self.time.minute)

    def describe(self) -> str:
        return f"at {self.time:%H:%M}"

    @classmethod
    def parse(cls, text, locale):
        for regex in _time_regexes(locale):
            match = regex.match(text)
            if not match:
                continue
            minute = int(match.group("minute") or 0) if "minute" in regex.groupindex else 0
            value = _valid_time(_hour_from_match(match, locale), minute)
            if value is not None:
                return cls(value), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return None
        return "Time", "[at] <time> [o'clock], e.g. 'at 9:30', '5 pm'"


@dataclass(frozen=True)
class InvertedTimeTerm(TimeTerm):
    """A time given relative to the hour: "quarter past 5", "10 to 7"."""

    kind: ClassVar[SubTermKind] = SubTermKind.INVERTED_TIME

    @classmethod
    def parse(cls, text, locale):
        keywords = {w.lower(): int(v) for w, v in tr_keywords(WordKey.INV_TIME_KEYWORD, locale)}
        for regex, direction in _inverted_time_regexes(locale):
            match = regex.match(text)
            if not match:
                continue
            hour = _hour_from_match(match, locale)
            if hour is None or not 0 <= hour <= 23:
                continue
            minute = match.groupdict().get("minute")
            minute = int(minute) if minute else keywords[match.group("minutes").lower()]
            if direction < 0:
                hour = 23 if hour == 0 else hour - 1
                minute = 60 - minute
            value = _valid_time(hour, minute)
            if value is not None:
                return cls(value), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return None
        return "Time", "<minutes> past|to <hour>, e.g. 'quarter past 5', '10 to 7 pm'"


@dataclass(frozen=True)
class DateTerm(SubTerm):
    day: int
    month: int
    year: Optional[int] = None
    looped: bool = False

    kind: ClassVar[SubTermKind] = SubTermKind.DATE

    @property
    def type(self) -> TermType:
        if self.year is not None:
            return TermType.TIMEPOINT | TermType.ABSOLUTE
        if self.looped:
            return TermType.TIMEPOINT | TermType.LOOPED
        return TermType.TIMEPOINT

    @property
    def scope(self) -> Scope:
        scope = Scope.MONTH | Scope.MONTHDAY
        return scope | Scope.YEAR if self.year is not None else scope

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return None if self.year is not None else Scope.YEAR

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        year = dt.year if self.year is None else self.year
        day = min(self.day, days_in_month(year, self.month))
        return dt.replace(year=year, month=self.month, day=day)

    def fixup(self, dt: datetime) -> datetime:
        return self.apply(dt + relativedelta(years=1))

    def matches(self, dt: datetime) -> bool:
        if self.year is not None and dt.year != self.year:
            return False
        return dt.month == self.month and dt.day == min(
            self.day, days_in_month(dt.year, self.month)
        )

    def describe(self) -> str:
        if self.year is not None:
            return f"on {self.day:02d}.{self.month:02d}.{self.year:04d}"
        return f"{'every' if self.looped else 'on'} {self.day:02d}.{self.month:02d}."

    @classmethod
    def parse(cls, text, locale):
        for regex, looped in _date_regexes(locale):
            match = regex.match(text)
            if not match:
                continue
            groups = match.groupdict()
            year = None
            if groups.get("year"):
                year = int(groups["year"])
            elif groups.get("short_year"):
                year = 2000 + int(groups["short_year"])
            if year is not None and not 1 <= year <= 9999:
                continue
            day, month = int(groups["day"]), int(groups["month"])
            if not 1 <= month <= 12:
                continue
            if not 1 <= day <= days_in_month(_LEAP_YEAR if year is None else year, month):
                continue
            return cls(day, month, year, looped), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return "Date", "every <day>.<month>., e.g. 'every 24.12.'"
        return "Date", "[on] <day>.<month>.[<year>], e.g. 'on 24.12.', '1.5.2025'"


@dataclass(frozen=True)
class MonthDayTerm(SubTerm):
    day: int
    looped: bool = False

    kind: ClassVar[SubTermKind] = SubTermKind.MONTH_DAY

    @property
    def type(self) -> TermType:
        return TermType.TIMEPOINT | (TermType.LOOPED if self.looped else 0)

    @property
    def scope(self) -> Scope:
        return Scope.MONTHDAY

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return Scope.MONTH

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return _clamped(dt, self.day)

    def fixup(self, dt: datetime) -> datetime:
        return self.apply(dt + relativedelta(months=1))

    def matches(self, dt: datetime) -> bool:
        return dt.day == min(self.day, days_in_month(dt.year, dt.month))

    def describe(self) -> str:
        return f"{'every' if self.looped else 'on the'} {ordinal(self.day)}"

    @classmethod
    def parse(cls, text, locale):
        for regex, looped in _month_day_regexes(locale):
            match = regex.match(text)
            if not match:
                continue
            day = int(match.group("day"))
            if 1 <= day <= 31:
                return cls(day, looped), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return "Day of month", "every <n>th, e.g. 'every 15th'"
        return "Day of month", "[on the] <n>th [of], e.g. 'on the 5th'"


@dataclass(frozen=True)
class WeekDayTerm(SubTerm):
    weekday: int  # ISO, Monday is 1
    looped: bool = False

    kind: ClassVar[SubTermKind] = SubTermKind.WEEK_DAY

    @property
    def type(self) -> TermType:
        return (
            TermType.TIMEPOINT
            | TermType.NEEDS_FIXUP_CLEANUP
            | (TermType.LOOPED if self.looped else 0)
        )

    @property
    def scope(self) -> Scope:
        return Scope.WEEKDAY

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return Scope.WEEK

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        result = dt + timedelta(days=self.weekday - dt.isoweekday())
        if fenced:
            if (result.year, result.month) < (dt.year, dt.month):
                result += timedelta(days=7)
            elif (result.year, result.month) > (dt.year, dt.month):
                result -= timedelta(days=7)
        return result

    def fixup(self, dt: datetime) -> datetime:
        return dt + timedelta(days=7)

    def fixup_cleanup(self, dt: datetime) -> datetime:
        # a finer fixup may have moved the date off the weekday
        if dt.isoweekday() == self.weekday:
            return dt
        return self.apply(dt, fenced=True)

    def matches(self, dt: datetime) -> bool:
        return dt.isoweekday() == self.weekday

    def describe(self) -> str:
        name = _WEEKDAY_NAMES[self.weekday - 1]
        return f"{'every' if self.looped else 'on'} {name}"

    @classmethod
    def parse(cls, text, locale):
        regexes, lookup = _named_regexes(SubTermKind.WEEK_DAY, locale)
        for regex, looped in regexes:
            match = regex.match(text)
            if match:
                return cls(lookup[match.group("name").lower()], looped), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return "Weekday", "every <weekday>, e.g. 'every Monday'"
        return "Weekday", "[on|next] <weekday>, e.g. 'on Friday'"


@dataclass(frozen=True)
class MonthTerm(SubTerm):
    month: int
    looped: bool = False

    kind: ClassVar[SubTermKind] = SubTermKind.MONTH

    @property
    def type(self) -> TermType:
        return TermType.TIMEPOINT | (TermType.LOOPED if self.looped else 0)

    @property
    def scope(self) -> Scope:
        return Scope.MONTH

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return Scope.YEAR

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return dt.replace(month=self.month, day=1)

    def fixup(self, dt: datetime) -> datetime:
        return self.apply(dt + relativedelta(years=1))

    def matches(self, dt: datetime) -> bool:
        return dt.month == self.month

    def describe(self) -> str:
        name = _MONTH_NAMES[self.month - 1]
        return f"{'every' if self.looped else 'in'} {name}"

    @classmethod
    def parse(cls, text, locale):
        regexes, lookup = _named_regexes(SubTermKind.MONTH, locale)
        for regex, looped in regexes:
            match = regex.match(text)
            if match:
                return cls(lookup[match.group("name").lower()], looped), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return "Month", "every <month>, e.g. 'every March'"
        return "Month", "[in|next] <month>, e.g. 'in March'"


@dataclass(frozen=True)
class YearTerm(SubTerm):
    year: int

    kind: ClassVar[SubTermKind] = SubTermKind.YEAR

    @property
    def type(self) -> TermType:
        return TermType.TIMEPOINT | TermType.ABSOLUTE

    @property
    def scope(self) -> Scope:
        return Scope.YEAR

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return dt.replace(year=self.year, month=1, day=1)

    def matches(self, dt: datetime) -> bool:
        return dt.year == self.year

    def describe(self) -> str:
        return f"in {self.year:04d}"

    @classmethod
    def parse(cls, text, locale):
        match = _year_regex(locale).match(text)
        if match:
            year = int(match.group("year"))
            if 1 <= year <= 9999:
                return cls(year), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return None
        return "Year", "[in] <year>, e.g. 'in 2030'"


@dataclass(frozen=True)
class SequenceTerm(SubTerm):
    """An amount of time, made of one count per unit: "2 days and 3 hours"."""

    sequence: tuple[tuple[Scope, int], ...]
    looped: bool = False

    kind: ClassVar[SubTermKind] = SubTermKind.SEQUENCE

    def __post_init__(self):
        order = {unit: i for i, unit in enumerate(SPAN_UNITS)}
        object.__setattr__(
            self, "sequence", tuple(sorted(self.sequence, key=lambda x: order[x[0]]))
        )

    @property
    def type(self) -> TermType:
        return TermType.TIMESPAN | (TermType.LOOPED if self.looped else 0)

    @property
    def scope(self) -> Scope:
        scope = Scope.INVALID
        for unit, _ in self.sequence:
            scope |= unit
        return scope

    @property
    def fixup_scope(self) -> Optional[Scope]:
        return self.sequence[0][0] if self.looped else None

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        for unit, count in self.sequence:
            # units of a day or more are decided by the timepoints when fenced
            if fenced and unit in (Scope.YEAR, Scope.MONTH, Scope.WEEK, Scope.DAY):
                continue
            dt = add_span(dt, unit, count)
        return dt

    def fixup(self, dt: datetime) -> datetime:
        if not self.looped:
            raise AssertionError("only repeating spans can be advanced")
        for unit, count in self.sequence:
            dt = add_span(dt, unit, count)
        return dt

    def describe(self) -> str:
        parts = [
            f"{count} {_UNIT_NAMES[unit]}{'' if count == 1 else 's'}"
            for unit, count in self.sequence
        ]
        return f"{'every' if self.looped else 'in'} {' and '.join(parts)}"

    @classmethod
    def parse(cls, text, locale):
        prefixes, items, units = _sequence_regexes(locale)
        for looped in (True, False):
            prefix = prefixes.get(looped)
            if prefix is None:
                continue
            match = prefix.match(text)
            if not match or (looped and not match.group()):
                continue
            pos = match.end()
            collected: dict[Scope, int] = {}
            while True:
                item = items[looped].match(text[pos:])
                if not item:
                    break
                unit = units[item.group("unit").lower()]
                if unit in collected:
                    break
                collected[unit] = int(item.group("count") or 1)
                pos += item.end()
            if collected:
                return cls(tuple(collected.items()), looped), pos
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return "Span", "every [<n>] <unit> [and ...], e.g. 'every 2 weeks'"
        return "Span", "[in] <n> <unit> [and ...], e.g. 'in 2 days and 3 hours'"


@dataclass(frozen=True)
class KeywordTerm(SubTerm):
    days: int

    kind: ClassVar[SubTermKind] = SubTermKind.KEYWORD

    @property
    def type(self) -> TermType:
        return TermType.TIMESPAN

    @property
    def scope(self) -> Scope:
        return Scope.DAY

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return dt + timedelta(days=self.days)

    def describe(self) -> str:
        if self.days == 0:
            return "today"
        if self.days == 1:
            return "tomorrow"
        if self.days == 2:
            return "day after tomorrow"
        return f"in {self.days} days"

    @classmethod
    def parse(cls, text, locale):
        for regex, days in _keyword_regexes(locale):
            match = regex.match(text)
            if match:
                return cls(days), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if as_loop:
            return None
        return "Keyword", "today | tomorrow | day after tomorrow"


@dataclass(frozen=True)
class LimiterTerm(SubTerm):
    """
    "from" or "until". Parsed bare; once the expression that follows it is
    complete the parser wraps that Term into ``limit``.
    """

    is_from: bool
    limit: Optional[Term] = None

    kind: ClassVar[SubTermKind] = SubTermKind.LIMITER

    @property
    def type(self) -> TermType:
        return TermType.FROM if self.is_from else TermType.UNTIL

    @property
    def scope(self) -> Scope:
        return Scope.INVALID

    def apply(self, dt: datetime, fenced: bool = False) -> datetime:
        return dt

    def wrap(self, limit: Term) -> LimiterTerm:
        return LimiterTerm(self.is_from, limit)

    def describe(self) -> str:
        word = "from" if self.is_from else "until"
        return f"{word} {self.limit.describe()}" if self.limit else word

    @classmethod
    def parse(cls, text, locale):
        for regex, is_from in _limiter_regexes(locale):
            match = regex.match(text)
            if match:
                return cls(is_from), match.end()
        return None

    @classmethod
    def syntax(cls, as_loop):
        if not as_loop:
            return None
        return "Limit", "<repetition> from <time> until <time>"


RECOGNIZERS: tuple[type[SubTerm], ...] = (
    TimeTerm,
    InvertedTimeTerm,
    DateTerm,
    MonthDayTerm,
    WeekDayTerm,
    MonthTerm,
    YearTerm,
    SequenceTerm,
    KeywordTerm,
    LimiterTerm,
)


def syntax(as_loop: bool) -> list[tuple[str, str]]:
    """Short usage lines for the recognizers that accept the given form."""
    return [s for cls in RECOGNIZERS if (s := cls.syntax(as_loop)) is not None]


# ─── Terms ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Term:
    """A validated, ordered combination of Sub-Terms."""

    subterms: tuple[SubTerm, ...] = ()
    scope: Scope = field(init=False, default=Scope.INVALID)
    is_looped: bool = field(init=False, default=False)
    is_absolute: bool = field(init=False, default=False)

    def __post_init__(self):
        scope = Scope.INVALID
        looped = absolute = False
        for subterm in self.content:
            scope |= subterm.scope
            looped = looped or bool(subterm.type & TermType.LOOPED)
            absolute = absolute or subterm.is_absolute
        object.__setattr__(self, "scope", scope)
        object.__setattr__(self, "is_looped", looped)
        object.__setattr__(self, "is_absolute", absolute)

    def __iter__(self) -> Iterator[SubTerm]:
        return iter(self.subterms)

    def __len__(self) -> int:
        return len(self.subterms)

    def __getitem__(self, index: int) -> SubTerm:
        return self.subterms[index]

    @property
    def content(self) -> tuple[SubTerm, ...]:
        """Sub-Terms other than limiters."""
        return tuple(s for s in self.subterms if not s.is_limiter)

    def limiter(self, is_from: bool) -> Optional[LimiterTerm]:
        for subterm in self.subterms:
            if isinstance(subterm, LimiterTerm) and subterm.is_from == is_from:
                return subterm
        return None

    @property
    def kinds(self) -> tuple[SubTermKind, ...]:
        return tuple(s.kind for s in self.subterms)

    def describe(self) -> str:
        return " ".join(s.describe() for s in self.subterms)

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class TermSelection:
    """
    Every reading of one expression. More than one Term means the text is
    ambiguous and the caller has to pick; none means ``error`` says why.
    The order of the alternatives is not significant.
    """

    text: str
    index: int = 0
    terms: tuple[Term, ...] = ()
    error: Optional[ExpressionError] = None

    def __iter__(self) -> Iterator[Term]:
        return iter(self.terms)

    def __len__(self) -> int:
        return len(self.terms)

    def __getitem__(self, index: int) -> Term:
        return self.terms[index]

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_ambiguous(self) -> bool:
        return len(self.terms) > 1


@dataclass(frozen=True)
class MultiTerm:
    """One TermSelection per ``;`` separated part of the input, in input order."""

    text: str
    selections: tuple[TermSelection, ...] = ()

    def __iter__(self) -> Iterator[TermSelection]:
        return iter(self.selections)

    def __len__(self) -> int:
        return len(self.selections)

    def __getitem__(self, index: int) -> TermSelection:
        return self.selections[index]

    @property
    def errors(self) -> list[ExpressionError]:
        return [s.error for s in self.selections if s.error is not None]

    def raise_first_error(self) -> None:
        for error in self.errors:
            raise error
