"""
Locale word tables and the helpers that turn them into regular expressions.

Every entry is a ``|`` separated list of alternatives. Entries of the form
``word:value`` attach a value to a word (keywords), and ``_`` inside an
indicator marks where the number goes.
"""

import re
from enum import Enum, auto
from functools import lru_cache
from typing import Mapping

DEFAULT_LOCALE = "en"


class WordKey(Enum):
    TIME_PREFIX = auto()
    TIME_SUFFIX = auto()
    TIME_PATTERN = auto()
    TIME_AM = auto()
    TIME_PM = auto()

    DATE_PREFIX = auto()
    DATE_SUFFIX = auto()
    DATE_LOOP_PREFIX = auto()
    DATE_LOOP_SUFFIX = auto()
    DATE_PATTERN = auto()

    INV_TIME_EXPR_PATTERN = auto()
    INV_TIME_HOUR_PATTERN = auto()
    INV_TIME_MINUTE_PATTERN = auto()
    INV_TIME_KEYWORD = auto()

    MONTH_DAY_PREFIX = auto()
    MONTH_DAY_SUFFIX = auto()
    MONTH_DAY_LOOP_PREFIX = auto()
    MONTH_DAY_LOOP_SUFFIX = auto()
    MONTH_DAY_INDICATOR = auto()

    WEEK_DAY_PREFIX = auto()
    WEEK_DAY_SUFFIX = auto()
    WEEK_DAY_LOOP_PREFIX = auto()
    WEEK_DAY_LOOP_SUFFIX = auto()
    WEEK_DAY_NAMES = auto()
    WEEK_DAY_SHORT_NAMES = auto()

    MONTH_PREFIX = auto()
    MONTH_SUFFIX = auto()
    MONTH_LOOP_PREFIX = auto()
    MONTH_LOOP_SUFFIX = auto()
    MONTH_NAMES = auto()
    MONTH_SHORT_NAMES = auto()

    YEAR_PREFIX = auto()
    YEAR_SUFFIX = auto()

    SPAN_PREFIX = auto()
    SPAN_SUFFIX = auto()
    SPAN_LOOP_PREFIX = auto()
    SPAN_CONJUNCTION = auto()
    SPAN_KEY_MINUTE = auto()
    SPAN_KEY_HOUR = auto()
    SPAN_KEY_DAY = auto()
    SPAN_KEY_WEEK = auto()
    SPAN_KEY_MONTH = auto()
    SPAN_KEY_YEAR = auto()

    KEYWORD_DAYSPAN = auto()

    LIMITER_FROM = auto()
    LIMITER_UNTIL = auto()

    EXPRESSION_SEPARATOR = auto()


_LOOP_PREFIXES = "every |any |all |on every |on any |on all "

ENGLISH = {
    WordKey.TIME_PREFIX: "at ",
    WordKey.TIME_SUFFIX: " o'clock",
    WordKey.TIME_PATTERN: (
        "hh:mm ap|h:mm ap|hh:m ap|h:m ap|hh ap|h ap|hh:mm|h:mm|hh:m|h:m|hh|h"
    ),
    WordKey.TIME_AM: "am|a.m.",
    WordKey.TIME_PM: "pm|p.m.",
    WordKey.DATE_PREFIX: "on |on the |the ",
    WordKey.DATE_SUFFIX: "",
    WordKey.DATE_LOOP_PREFIX: _LOOP_PREFIXES,
    WordKey.DATE_LOOP_SUFFIX: "",
    WordKey.DATE_PATTERN: (
        "dd.MM.yyyy|d.MM.yyyy|dd.M.yyyy|d.M.yyyy|"
        "dd. MM. yyyy|d. MM. yyyy|dd. M. yyyy|d. M. yyyy|"
        "dd-MM-yyyy|d-MM-yyyy|dd-M-yyyy|d-M-yyyy|"
        "dd.MM.yy|d.MM.yy|dd.M.yy|d.M.yy|"
        "dd. MM. yy|d. MM. yy|dd. M. yy|d. M. yy|"
        "dd-MM-yy|d-MM-yy|dd-M-yy|d-M-yy|"
        "dd.MM.|d.MM.|dd.M.|d.M.|"
        "dd. MM.|d. MM.|dd. M.|d. M.|"
        "dd-MM|d-MM|dd-M|d-M"
    ),
    WordKey.INV_TIME_EXPR_PATTERN: (
        "{minutes} past {hours}:+|{minutes}-past {hours}:+|{minutes} to {hours}:-"
    ),
    WordKey.INV_TIME_HOUR_PATTERN: "hh ap|h ap|hh|h",
    WordKey.INV_TIME_MINUTE_PATTERN: "mm|m",
    WordKey.INV_TIME_KEYWORD: "quarter:15|half:30",
    WordKey.MONTH_DAY_PREFIX: "on |on the |the |next |on next |on the next ",
    WordKey.MONTH_DAY_SUFFIX: " of",
    WordKey.MONTH_DAY_LOOP_PREFIX: _LOOP_PREFIXES,
    WordKey.MONTH_DAY_LOOP_SUFFIX: "",
    WordKey.MONTH_DAY_INDICATOR: "_.|_th|_st|_nd|_rd|_",
    WordKey.WEEK_DAY_PREFIX: "on |next |on next |on the next ",
    WordKey.WEEK_DAY_SUFFIX: "",
    WordKey.WEEK_DAY_LOOP_PREFIX: _LOOP_PREFIXES,
    WordKey.WEEK_DAY_LOOP_SUFFIX: "",
    WordKey.WEEK_DAY_NAMES: (
        "Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"
    ),
    WordKey.WEEK_DAY_SHORT_NAMES: "Mon|Tue|Wed|Thu|Fri|Sat|Sun",
    WordKey.MONTH_PREFIX: (
        "in |on |next |on next |on the next |in next |in the next "
    ),
    WordKey.MONTH_SUFFIX: "",
    WordKey.MONTH_LOOP_PREFIX: _LOOP_PREFIXES,
    WordKey.MONTH_LOOP_SUFFIX: "",
    WordKey.MONTH_NAMES: (
        "January|February|March|April|May|June|July|"
        "August|September|October|November|December"
    ),
    WordKey.MONTH_SHORT_NAMES: "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec",
    WordKey.YEAR_PREFIX: "in ",
    WordKey.YEAR_SUFFIX: "",
    WordKey.SPAN_PREFIX: "in ",
    WordKey.SPAN_SUFFIX: "",
    WordKey.SPAN_LOOP_PREFIX: "every |all ",
    WordKey.SPAN_CONJUNCTION: " and",
    WordKey.SPAN_KEY_MINUTE: "min|mins|minute|minutes",
    WordKey.SPAN_KEY_HOUR: "hour|hours",
    WordKey.SPAN_KEY_DAY: "day|days",
    WordKey.SPAN_KEY_WEEK: "week|weeks",
    WordKey.SPAN_KEY_MONTH: "mon|mons|month|months",
    WordKey.SPAN_KEY_YEAR: "year|years",
    WordKey.KEYWORD_DAYSPAN: "today:0|tomorrow:1|day after tomorrow:2",
    WordKey.LIMITER_FROM: "from",
    WordKey.LIMITER_UNTIL: "until|to",
    WordKey.EXPRESSION_SEPARATOR: ";",
}

_GERMAN_LOOP_PREFIXES = "jeden |jede |jedes |alle |am jeden "

GERMAN = {
    WordKey.TIME_PREFIX: "um ",
    WordKey.TIME_SUFFIX: " Uhr",
    WordKey.TIME_PATTERN: "hh:mm|h:mm|hh:m|h:m|hh|h",
    WordKey.TIME_AM: "",
    WordKey.TIME_PM: "",
    WordKey.DATE_PREFIX: "am |den |am den ",
    WordKey.DATE_SUFFIX: "",
    WordKey.DATE_LOOP_PREFIX: _GERMAN_LOOP_PREFIXES,
    WordKey.DATE_LOOP_SUFFIX: "",
    WordKey.DATE_PATTERN: ENGLISH[WordKey.DATE_PATTERN],
    WordKey.INV_TIME_EXPR_PATTERN: "{minutes} nach {hours}:+|{minutes} vor {hours}:-",
    WordKey.INV_TIME_HOUR_PATTERN: "hh|h",
    WordKey.INV_TIME_MINUTE_PATTERN: "mm|m",
    WordKey.INV_TIME_KEYWORD: "viertel:15",
    WordKey.MONTH_DAY_PREFIX: "am |den |am nächsten ",
    WordKey.MONTH_DAY_SUFFIX: "",
    WordKey.MONTH_DAY_LOOP_PREFIX: _GERMAN_LOOP_PREFIXES,
    WordKey.MONTH_DAY_LOOP_SUFFIX: "",
    WordKey.MONTH_DAY_INDICATOR: "_.|_",
    WordKey.WEEK_DAY_PREFIX: "am |nächsten |am nächsten ",
    WordKey.WEEK_DAY_SUFFIX: "",
    WordKey.WEEK_DAY_LOOP_PREFIX: _GERMAN_LOOP_PREFIXES,
    WordKey.WEEK_DAY_LOOP_SUFFIX: "",
    WordKey.WEEK_DAY_NAMES: (
        "Montag|Dienstag|Mittwoch|Donnerstag|Freitag|Samstag|Sonntag"
    ),
    WordKey.WEEK_DAY_SHORT_NAMES: "Mo|Di|Mi|Do|Fr|Sa|So",
    WordKey.MONTH_PREFIX: "im |nächsten |im nächsten ",
    WordKey.MONTH_SUFFIX: "",
    WordKey.MONTH_LOOP_PREFIX: _GERMAN_LOOP_PREFIXES,
    WordKey.MONTH_LOOP_SUFFIX: "",
    WordKey.MONTH_NAMES: (
        "Januar|Februar|März|April|Mai|Juni|Juli|"
        "August|September|Oktober|November|Dezember"
    ),
    WordKey.MONTH_SHORT_NAMES: "Jan|Feb|Mär|Apr|Mai|Jun|Jul|Aug|Sep|Okt|Nov|Dez",
    WordKey.YEAR_PREFIX: "im Jahr |in ",
    WordKey.YEAR_SUFFIX: "",
    WordKey.SPAN_PREFIX: "in ",
    WordKey.SPAN_SUFFIX: "",
    WordKey.SPAN_LOOP_PREFIX: "alle |jede |jeden |jedes ",
    WordKey.SPAN_CONJUNCTION: " und",
    WordKey.SPAN_KEY_MINUTE: "min|minute|minuten",
    WordKey.SPAN_KEY_HOUR: "std|stunde|stunden",
    WordKey.SPAN_KEY_DAY: "tag|tage|tagen",
    WordKey.SPAN_KEY_WEEK: "woche|wochen",
    WordKey.SPAN_KEY_MONTH: "monat|monate|monaten",
    WordKey.SPAN_KEY_YEAR: "jahr|jahre|jahren",
    WordKey.KEYWORD_DAYSPAN: "heute:0|morgen:1|übermorgen:2",
    WordKey.LIMITER_FROM: "ab|von",
    WordKey.LIMITER_UNTIL: "bis",
    WordKey.EXPRESSION_SEPARATOR: ";",
}

LOCALES: dict[str, dict[WordKey, str]] = {
    "en": ENGLISH,
    "de": GERMAN,
}


def _table(locale: str) -> dict[WordKey, str]:
    try:
        return LOCALES[locale]
    except KeyError:
        raise KeyError(f"unknown locale {locale!r}") from None


def tr_word(key: WordKey, escape: bool = True, locale: str = DEFAULT_LOCALE) -> str:
    """Return the raw table entry for ``key``, regex-escaped unless asked not to."""
    word = _table(locale)[key]
    return re.escape(word) if escape else word


@lru_cache(maxsize=None)
def _split_list(key: WordKey, escape: bool, sort: bool, locale: str) -> tuple[str, ...]:
    words = [w for w in _table(locale)[key].split("|") if w]
    if sort:
        # longest first, so that alternations prefer "on the next " to "on "
        words.sort(key=len, reverse=True)
    if escape:
        words = [re.escape(w) for w in words]
    return tuple(words)


def tr_list(
    key: WordKey,
    escape: bool = True,
    sort: bool = True,
    locale: str = DEFAULT_LOCALE,
) -> list[str]:
    """
    Split the entry for ``key`` into its alternatives.

    Sorting is by descending length. Pass ``sort=False`` for lists whose
    position carries meaning, such as week day and month names.
    """
    return list(_split_list(key, escape, sort, locale))


def tr_keywords(key: WordKey, locale: str = DEFAULT_LOCALE) -> list[tuple[str, str]]:
    """Split ``word:value`` entries, longest word first."""
    pairs = []
    for item in tr_list(key, escape=False, locale=locale):
        word, _, value = item.rpartition(":")
        pairs.append((word, value))
    return pairs


def alternation(words: list[str]) -> str:
    """Join already escaped alternatives into a non-capturing group."""
    return "(?:" + "|".join(words) + ")"


_QUOTED = re.compile(r"'((?:[^']|'')*)'")


def _translate_chunk(chunk: str, token_re: re.Pattern, tokens: Mapping[str, str]) -> str:
    parts = []
    pos = 0
    for match in token_re.finditer(chunk):
        parts.append(re.escape(chunk[pos : match.start()]))
        parts.append(tokens[match.group()])
        pos = match.end()
    parts.append(re.escape(chunk[pos:]))
    return "".join(parts)


def datetime_format_to_regex(pattern: str, tokens: Mapping[str, str]) -> str:
    """
    Convert a date/time format pattern such as ``dd.MM.yyyy`` into a regex.

    ``tokens`` maps each format token to the regex that replaces it; longer
    tokens win over their prefixes. Text in single quotes is copied literally
    (``''`` stands for one quote) and all other text is escaped, so
    characters like ``.`` only ever match themselves.
    """
    token_re = re.compile(
        "|".join(re.escape(t) for t in sorted(tokens, key=len, reverse=True))
    )
    parts = []
    pos = 0
    for match in _QUOTED.finditer(pattern):
        parts.append(_translate_chunk(pattern[pos : match.start()], token_re, tokens))
        literal = match.group(1).replace("''", "'") or "'"
        parts.append(re.escape(literal))
        pos = match.end()
    parts.append(_translate_chunk(pattern[pos:], token_re, tokens))
    return "".join(parts)
