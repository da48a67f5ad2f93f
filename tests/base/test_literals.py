# tests/base/test_literals.py

import pytest

from async_docstore.base.literals import infer_literal, infer_sequence


@pytest.mark.parametrize(
    "token, expected",
    [
        ("21", 21),
        ("-4", -4),
        ("3.5", 3.5),
        ("1e3", 1000.0),
        ("true", True),
        ("FALSE", False),
        ("Bob", "Bob"),
        ("", ""),
    ],
)
def test_infer_literal_unquoted(token, expected):
    result = infer_literal(token)
    assert result == expected
    assert type(result) is type(expected)


def test_integer_token_is_int_not_float():
    assert isinstance(infer_literal("42"), int)
    assert not isinstance(infer_literal("42"), bool)


def test_leading_zero_is_float_not_int():
    """'007' does not round-trip through int parsing, so it stays a float."""
    assert infer_literal("007") == 7.0
    assert isinstance(infer_literal("007"), float)


@pytest.mark.parametrize("token", ["'42'", '"42"', "'true'", "'Bob'"])
def test_quoted_token_stays_string(token):
    assert infer_literal(token) == token[1:-1]
    assert isinstance(infer_literal(token), str)


@pytest.mark.parametrize("token", ["nan", "inf", "-Infinity", "1_000"])
def test_number_like_words_are_not_numbers(token):
    assert infer_literal(token) == token


def test_non_string_passes_through():
    marker = object()
    assert infer_literal(marker) is marker
    assert infer_literal(5) == 5


@pytest.mark.parametrize(
    "text, expected",
    [
        ("(1, 2, 3)", [1, 2, 3]),
        ("[a, b]", ["a", "b"]),
        ("x, 'y, z', 4", ["x", "y, z", 4]),
        ("single", ["single"]),
        ("(1,,2,)", [1, 2]),
    ],
)
def test_infer_sequence(text, expected):
    assert infer_sequence(text) == expected


def test_infer_sequence_maps_existing_lists():
    assert infer_sequence(["1", "two", True]) == [1, "two", True]
