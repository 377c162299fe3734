"""Test script for tokenizing free-form notepad lines."""

import pytest

from calc_pad.errors import InvalidNumberError, UnknownFunctionError
from calc_pad.tokenizer import TokenKind, parse_number, tokenize


def kinds(text, known_names=()):
    return [token.kind for token in tokenize(text, known_names)]


def test_number_unit_and_operator():
    tokens = tokenize("5 GiB + 3")
    assert [token.kind for token in tokens] == [
        TokenKind.NUMBER,
        TokenKind.UNIT,
        TokenKind.OPERATOR,
        TokenKind.NUMBER,
    ]
    assert tokens[0].value == 5
    assert tokens[1].value.name == "GiB"


def test_number_formats():
    assert parse_number("1,234.5", (0, 7)) == 1234.5
    assert parse_number("5k", (0, 2)) == 5000
    assert parse_number("1,000,000", (0, 9)) == 1000000
    for bad in ("1.2.3", "1,00", "12,34,567"):
        with pytest.raises(InvalidNumberError):
            parse_number(bad, (0, len(bad)))


def test_invalid_number_in_text_raises():
    with pytest.raises(InvalidNumberError):
        tokenize("1.2.3 + 4")


def test_conversion_keyword_needs_a_unit_after_it():
    assert kinds("convert 5 GB to MB please") == [
        TokenKind.NUMBER,
        TokenKind.UNIT,
        TokenKind.KEYWORD,
        TokenKind.UNIT,
    ]
    # "to" without a unit is plain prose
    assert kinds("go to the shop") == []


def test_currency_prefix_and_suffix():
    prefix = tokenize("$5")
    assert [token.kind for token in prefix] == [TokenKind.CURRENCY, TokenKind.NUMBER]
    assert prefix[0].value.currency == "USD"

    suffix = tokenize("5$")
    assert [token.kind for token in suffix] == [TokenKind.NUMBER, TokenKind.CURRENCY]

    assert tokenize("€20")[0].value.currency == "EUR"


def test_currency_rate_literal():
    tokens = tokenize("$5/hr")
    assert [token.kind for token in tokens] == [TokenKind.CURRENCY, TokenKind.NUMBER]
    assert tokens[0].value.name == "$/h"


def test_composite_unit_after_number():
    tokens = tokenize("100 MB/hour")
    assert [token.kind for token in tokens] == [TokenKind.NUMBER, TokenKind.UNIT]
    assert tokens[1].value.name == "MB/h"
    assert tokens[1].text == "MB/hour"


def test_division_by_a_quantity_is_not_a_composite_unit():
    assert kinds("1000 GiB / 10 minutes") == [
        TokenKind.NUMBER,
        TokenKind.UNIT,
        TokenKind.OPERATOR,
        TokenKind.NUMBER,
        TokenKind.UNIT,
    ]


def test_percent_and_of():
    assert kinds("50%") == [TokenKind.NUMBER, TokenKind.PERCENT]
    assert kinds("10% of 50") == [
        TokenKind.NUMBER,
        TokenKind.PERCENT,
        TokenKind.KEYWORD,
        TokenKind.NUMBER,
    ]


def test_line_reference():
    tokens = tokenize("line3 * 2")
    assert tokens[0].kind is TokenKind.LINE_REF
    assert tokens[0].value == 2


def test_function_call():
    assert kinds("sqrt(16)") == [
        TokenKind.FUNCTION,
        TokenKind.LPAREN,
        TokenKind.NUMBER,
        TokenKind.RPAREN,
    ]


def test_unknown_function_is_an_error():
    with pytest.raises(UnknownFunctionError):
        tokenize("foo(3)")
    # Parenthesised prose is not a call
    assert kinds("3 item(s)") == [TokenKind.NUMBER, TokenKind.LPAREN, TokenKind.RPAREN]


def test_identifiers():
    assert kinds("servers * 2") == [TokenKind.IDENT, TokenKind.OPERATOR, TokenKind.NUMBER]
    assert kinds("total", known_names={"total"}) == [TokenKind.IDENT]
    assert kinds("total") == []


def test_prose_is_skipped():
    assert kinds("API load: 1000 QPS * 5 minutes") == [
        TokenKind.NUMBER,
        TokenKind.UNIT,
        TokenKind.OPERATOR,
        TokenKind.NUMBER,
        TokenKind.UNIT,
    ]
    # A word that happens to be a unit name is prose without a number
    assert kinds("second try: 5+3") == [TokenKind.NUMBER, TokenKind.OPERATOR, TokenKind.NUMBER]


def test_stray_hyphens_are_dropped():
    assert kinds("Q3 - planning notes") == []
    assert kinds("- buy milk") == []


def test_spans_point_into_the_line():
    tokens = tokenize("abc 42")
    assert tokens[0].span == (4, 6)
    shifted = tokenize("abc 42", offset=10)
    assert shifted[0].span == (14, 16)


def test_dates_and_clock_times_are_prose():
    assert kinds("Meeting 2024-01-15") == []
    assert kinds("Call us at 10:30") == []
    assert kinds("Call us at 10:30, then 5 * 3") == [
        TokenKind.NUMBER,
        TokenKind.OPERATOR,
        TokenKind.NUMBER,
    ]
    # Spaced subtraction is still arithmetic
    assert kinds("2024 - 1") == [TokenKind.NUMBER, TokenKind.OPERATOR, TokenKind.NUMBER]


def test_commas_outside_parentheses_are_punctuation():
    assert kinds("Hi, 5 + 3") == [TokenKind.NUMBER, TokenKind.OPERATOR, TokenKind.NUMBER]
    assert TokenKind.COMMA in kinds("sqrt(4, 5)")
