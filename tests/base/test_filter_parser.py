# tests/base/test_filter_parser.py

import re

import pytest

from async_docstore.base.filter_parser import compile_filter, tokenize
from async_docstore.base.query import (PatternMatch, QueryFilter,
                                       QueryLogical, QueryNot, QueryOperator,
                                       QueryPattern, QueryRaw,
                                       find_raw_segments)


# --- Single comparisons ---


@pytest.mark.parametrize(
    "source, operator, value",
    [
        ("age = 21", QueryOperator.EQ, 21),
        ("age == 21", QueryOperator.EQ, 21),
        ("age != 21", QueryOperator.NE, 21),
        ("age >= 21", QueryOperator.GTE, 21),
        ("age <= 21", QueryOperator.LTE, 21),
        ("age > 21", QueryOperator.GT, 21),
        ("age < 21", QueryOperator.LT, 21),
        ("age gte 21", QueryOperator.GTE, 21),
        ("age ne 21", QueryOperator.NE, 21),
    ],
)
def test_comparison_operators(source, operator, value):
    expr = compile_filter(source)
    assert expr == QueryFilter("age", operator, value)


def test_greater_or_equal_is_not_split_on_equals():
    expr = compile_filter("age >= 21")
    assert isinstance(expr, QueryFilter)
    assert expr.field_path == "age"
    assert expr.operator == QueryOperator.GTE
    assert expr.value == 21
    assert isinstance(expr.value, int)


def test_operator_needs_no_surrounding_spaces():
    assert compile_filter("age>=21") == QueryFilter("age", QueryOperator.GTE, 21)


def test_quoted_value_stays_string():
    expr = compile_filter("zip = '02134'")
    assert expr == QueryFilter("zip", QueryOperator.EQ, "02134")


def test_quoted_value_keeps_inner_spaces_and_keywords():
    expr = compile_filter("title = 'war and peace'")
    assert expr == QueryFilter("title", QueryOperator.EQ, "war and peace")


def test_boolean_and_float_values():
    assert compile_filter("active = true").value is True
    assert compile_filter("price < 9.5").value == 9.5


def test_dotted_field_path():
    expr = compile_filter("address.city = Boston")
    assert expr == QueryFilter("address.city", QueryOperator.EQ, "Boston")


# --- Membership ---


def test_in_with_parenthesized_list():
    expr = compile_filter("status in (new, open, 3)")
    assert expr == QueryFilter("status", QueryOperator.IN, ["new", "open", 3])


def test_nin_and_all_with_bracketed_list():
    assert compile_filter("tag nin [a, b]") == QueryFilter("tag", QueryOperator.NIN, ["a", "b"])
    assert compile_filter("tags all [x,y]") == QueryFilter("tags", QueryOperator.ALL, ["x", "y"])


def test_word_operator_is_only_an_operator_between_operands():
    """A field literally named 'in' is not mistaken for the operator."""
    expr = compile_filter("in = 5")
    assert expr == QueryFilter("in", QueryOperator.EQ, 5)


# --- LIKE ---


def test_like_contains():
    expr = compile_filter("name like '%oh%'")
    assert expr == QueryPattern("name", "oh", PatternMatch.CONTAINS)


def test_like_prefix():
    expr = compile_filter("name like Jo%")
    assert expr == QueryPattern("name", "^Jo", PatternMatch.PREFIX)
    assert re.search(expr.pattern, "John")
    assert not re.search(expr.pattern, "MoJo")


def test_like_suffix():
    expr = compile_filter("name like %son")
    assert expr == QueryPattern("name", "son$", PatternMatch.SUFFIX)
    assert re.search(expr.pattern, "Jackson")
    assert not re.search(expr.pattern, "Sonny")


def test_like_escapes_regex_characters():
    expr = compile_filter("file like '%a.b%'")
    assert re.search(expr.pattern, "xa.by")
    assert not re.search(expr.pattern, "xaXby")


def test_like_interior_wildcard():
    expr = compile_filter("name like J%n%")
    assert re.search(expr.pattern, "Jason")
    assert expr.match == PatternMatch.PREFIX


# --- Logical composition ---


def test_or_of_two_comparisons():
    expr = compile_filter("a = 1 or b = 2")
    assert expr == QueryLogical(
        "or",
        [QueryFilter("a", QueryOperator.EQ, 1), QueryFilter("b", QueryOperator.EQ, 2)],
    )


def test_chained_combinators_are_flattened():
    expr = compile_filter("a = 1 and b = 2 and c = 3")
    assert isinstance(expr, QueryLogical)
    assert expr.operator == "and"
    assert len(expr.conditions) == 3


def test_and_binds_tighter_than_or():
    expr = compile_filter("a = 1 and b = 2 or c = 3")
    assert expr.operator == "or"
    first, second = expr.conditions
    assert isinstance(first, QueryLogical) and first.operator == "and"
    assert second == QueryFilter("c", QueryOperator.EQ, 3)


def test_symbolic_and_word_combinators_mix():
    expr = compile_filter("a = 1 && b = 2 || c = 3 OR d = 4")
    assert expr.operator == "or"
    assert len(expr.conditions) == 3


def test_nor():
    expr = compile_filter("a = 1 nor b = 2")
    assert expr == QueryLogical(
        "nor",
        [QueryFilter("a", QueryOperator.EQ, 1), QueryFilter("b", QueryOperator.EQ, 2)],
    )


def test_not_prefix():
    expr = compile_filter("not status = 'banned'")
    assert expr == QueryNot(QueryFilter("status", QueryOperator.EQ, "banned"))


def test_not_inside_conjunction():
    expr = compile_filter("age > 5 and not name = x")
    assert expr.operator == "and"
    assert isinstance(expr.conditions[1], QueryNot)


# --- Degenerate input ---


@pytest.mark.parametrize("source", [None, "", "   "])
def test_empty_filter_matches_everything(source):
    assert compile_filter(source) is None


def test_segment_without_operator_is_raw():
    expr = compile_filter("just some words")
    assert expr == QueryRaw("just some words")


def test_dangling_combinator_yields_raw_segment():
    expr = compile_filter("a = 1 and")
    assert isinstance(expr, QueryLogical)
    assert find_raw_segments(expr) == [""]


def test_missing_field_name_is_raw():
    assert isinstance(compile_filter("= 5"), QueryRaw)


def test_non_string_filter_raises_type_error():
    with pytest.raises(TypeError):
        compile_filter(42)


def test_compile_is_idempotent_on_trees():
    tree = compile_filter("a = 1 or b = 2")
    assert compile_filter(tree) is tree


def test_tokenize_keeps_offsets():
    tokens = tokenize("a>=1")
    assert [t.text for t in tokens] == ["a", ">=", "1", ""]
    assert tokens[1].start == 1 and tokens[1].end == 3
