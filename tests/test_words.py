import re

import pytest

from whenparse.words import (
    LOCALES,
    WordKey,
    datetime_format_to_regex,
    tr_keywords,
    tr_list,
    tr_word,
)

DATE_TOKENS = {
    "dd": r"(?P<day>\d{2})",
    "d": r"(?P<day>\d{1,2})",
    "MM": r"(?P<month>\d{2})",
    "M": r"(?P<month>\d{1,2})",
    "yyyy": r"(?P<year>\d{4})",
}


@pytest.mark.unit
class TestWordTables:
    """Every locale must answer for every key."""

    @pytest.mark.parametrize("locale", sorted(LOCALES))
    def test_every_key_defined(self, locale):
        missing = [key for key in WordKey if key not in LOCALES[locale]]
        assert missing == []

    def test_unknown_locale_is_a_key_error(self):
        with pytest.raises(KeyError):
            tr_word(WordKey.TIME_PREFIX, locale="xx")

    def test_tr_word_escapes(self):
        assert tr_word(WordKey.TIME_SUFFIX) == re.escape(" o'clock")
        assert tr_word(WordKey.TIME_SUFFIX, escape=False) == " o'clock"


@pytest.mark.unit
class TestTrList:
    def test_sorted_longest_first(self):
        words = tr_list(WordKey.DATE_PREFIX, escape=False)
        assert words == sorted(words, key=len, reverse=True)
        assert words[0] == "on the "

    def test_unsorted_keeps_table_order(self):
        names = tr_list(WordKey.WEEK_DAY_NAMES, escape=False, sort=False)
        assert names[0] == "Monday"
        assert names[6] == "Sunday"

    def test_empty_entry_gives_empty_list(self):
        assert tr_list(WordKey.DATE_SUFFIX) == []

    def test_escaped_alternatives_match_literally(self):
        words = tr_list(WordKey.TIME_AM)
        assert r"a\.m\." in words

    def test_keywords_split_on_last_colon(self):
        pairs = dict(tr_keywords(WordKey.KEYWORD_DAYSPAN))
        assert pairs == {"today": "0", "tomorrow": "1", "day after tomorrow": "2"}


@pytest.mark.unit
class TestDatetimeFormatToRegex:
    def test_tokens_are_replaced(self):
        regex = datetime_format_to_regex("dd.MM.yyyy", DATE_TOKENS)
        match = re.fullmatch(regex, "24.12.2025")
        assert match.group("day", "month", "year") == ("24", "12", "2025")

    def test_separators_are_literal(self):
        regex = datetime_format_to_regex("dd.MM.", DATE_TOKENS)
        assert re.fullmatch(regex, "24.12.")
        assert not re.fullmatch(regex, "24x12y")

    def test_longer_token_wins(self):
        regex = datetime_format_to_regex("d-M", DATE_TOKENS)
        assert re.fullmatch(regex, "5-7")
        assert not re.fullmatch(regex, "5-")

    def test_quoted_text_is_copied_verbatim(self):
        regex = datetime_format_to_regex("dd 'of' MM", DATE_TOKENS)
        match = re.fullmatch(regex, "05 of 11")
        assert match.group("day", "month") == ("05", "11")

    def test_quoted_token_letters_are_not_tokens(self):
        regex = datetime_format_to_regex("'dd' d", DATE_TOKENS)
        assert re.fullmatch(regex, "dd 5")

    def test_doubled_quote_is_one_quote(self):
        regex = datetime_format_to_regex("d''M", DATE_TOKENS)
        assert re.fullmatch(regex, "5'7")
        regex = datetime_format_to_regex("'o''clock' d", DATE_TOKENS)
        assert re.fullmatch(regex, "o'clock 5")
