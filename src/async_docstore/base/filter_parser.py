# src/async_docstore/base/filter_parser.py
"""
Filter expression compiler.

Turns a human readable filter such as

    age >= 21 and name like 'Jo%' or not status = 'banned'

into a backend-neutral QueryExpression tree. The string is first split into
an operator-tagged token stream and then parsed by recursive descent with
the grammar

    expression := nor_expr ( OR nor_expr )*
    nor_expr   := and_expr ( NOR and_expr )*
    and_expr   := unary ( AND unary )*
    unary      := NOT unary | comparison

Chained combinators are flattened, so 'a and b and c' yields one AND node
with three children. Parentheses carry no grouping meaning; they are kept as
part of the surrounding text (list literals such as 'id in (1, 2)' rely on
that).
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from .literals import infer_literal, infer_sequence
from .query import (
    SEQUENCE_OPERATORS,
    PatternMatch,
    QueryExpression,
    QueryFilter,
    QueryLogical,
    QueryNot,
    QueryOperator,
    QueryPattern,
    QueryRaw,
)

log = logging.getLogger(__name__)

# Token kinds
STRING = "STRING"
WORD = "WORD"
CMP = "CMP"
OR = "OR"
AND = "AND"
NOR = "NOR"
EOF = "EOF"

_TOKEN_RE = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<string>'[^']*'?|"[^"]*"?)
    | (?P<logic>\|\||&&)
    | (?P<cmp>==|!=|>=|<=|=|>|<)
    | (?P<word>
        (?:[^\s'"=<>!&|]|!(?!=)|&(?!&)|\|(?!\|))
        (?:[^\s=<>!&|]|!(?!=)|&(?!&)|\|(?!\|))*
      )
    """,
    re.VERBOSE,
)

_LOGICAL_WORDS = {"or": OR, "and": AND, "nor": NOR}
_LOGICAL_SYMBOLS = {"||": OR, "&&": AND}

_SYMBOLIC_OPERATORS = {
    "=": QueryOperator.EQ,
    "==": QueryOperator.EQ,
    "!=": QueryOperator.NE,
    ">=": QueryOperator.GTE,
    "<=": QueryOperator.LTE,
    ">": QueryOperator.GT,
    "<": QueryOperator.LT,
}

LIKE = "like"

_WORD_OPERATORS = {
    "eq": QueryOperator.EQ,
    "ne": QueryOperator.NE,
    "gte": QueryOperator.GTE,
    "lte": QueryOperator.LTE,
    "gt": QueryOperator.GT,
    "lt": QueryOperator.LT,
    "in": QueryOperator.IN,
    "nin": QueryOperator.NIN,
    "all": QueryOperator.ALL,
    "like": LIKE,
}

# The first kind present in a comparison segment wins.
OPERATOR_PRECEDENCE = (
    QueryOperator.EQ,
    QueryOperator.NE,
    QueryOperator.GTE,
    QueryOperator.LTE,
    QueryOperator.GT,
    QueryOperator.LT,
    QueryOperator.IN,
    QueryOperator.NIN,
    QueryOperator.ALL,
    LIKE,
)


@dataclass
class Token:
    kind: str
    text: str
    start: int
    end: int
    operator: Union[QueryOperator, str, None] = None


def tokenize(source: str) -> List[Token]:
    """Splits a filter string into tokens, keeping source offsets."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:  # pragma: no cover - every character is matched
            raise ValueError(f"Unexpected character {source[pos]!r} at {pos}")
        kind = match.lastgroup
        text = match.group()
        start, end = match.span()
        pos = end
        if kind == "space":
            continue
        if kind == "string":
            tokens.append(Token(STRING, text, start, end))
        elif kind == "logic":
            tokens.append(Token(_LOGICAL_SYMBOLS[text], text, start, end))
        elif kind == "cmp":
            tokens.append(Token(CMP, text, start, end, _SYMBOLIC_OPERATORS[text]))
        else:
            logical = _LOGICAL_WORDS.get(text.lower())
            if logical:
                tokens.append(Token(logical, text, start, end))
            else:
                tokens.append(Token(WORD, text, start, end))
    tokens.append(Token(EOF, "", len(source), len(source)))
    return tokens


class FilterParser:
    """Recursive-descent parser over the token stream of one filter string."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _peek_at(self, offset: int) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def parse(self) -> QueryExpression:
        return self._parse_or()

    def _parse_chain(self, kind: str, operator: str, parse_operand) -> QueryExpression:
        operands = [parse_operand()]
        while self._peek().kind == kind:
            self._advance()
            operands.append(parse_operand())
        if len(operands) == 1:
            return operands[0]
        return QueryLogical(operator=operator, conditions=operands)

    def _parse_or(self) -> QueryExpression:
        return self._parse_chain(OR, "or", self._parse_nor)

    def _parse_nor(self) -> QueryExpression:
        return self._parse_chain(NOR, "nor", self._parse_and)

    def _parse_and(self) -> QueryExpression:
        return self._parse_chain(AND, "and", self._parse_unary)

    def _parse_unary(self) -> QueryExpression:
        token = self._peek()
        following = self._peek_at(1)
        if (
            token.kind == WORD
            and token.text.lower() == "not"
            and following.kind not in (OR, AND, NOR, EOF)
        ):
            self._advance()
            return QueryNot(condition=self._parse_unary())
        return self._parse_comparison()

    def _parse_comparison(self) -> QueryExpression:
        first = self.pos
        while self._peek().kind not in (OR, AND, NOR, EOF):
            self._advance()
        segment = self.tokens[first:self.pos]
        if not segment:
            return QueryRaw(text="")

        seg_start, seg_end = segment[0].start, segment[-1].end
        text = self.source[seg_start:seg_end].strip()

        operator_token = self._select_operator(segment)
        if operator_token is None:
            log.debug(f"No operator found in filter segment {text!r}")
            return QueryRaw(text=text)

        field_path = self.source[seg_start:operator_token.start].strip()
        raw_value = self.source[operator_token.end:seg_end].strip()
        if not field_path:
            log.debug(f"Filter segment {text!r} has no field name")
            return QueryRaw(text=text)

        operator = operator_token.operator
        if operator == LIKE:
            return self._build_pattern(field_path, raw_value)
        if operator in SEQUENCE_OPERATORS:
            value = infer_sequence(raw_value)
        else:
            value = infer_literal(raw_value)
        return QueryFilter(field_path=field_path, operator=operator, value=value)

    @staticmethod
    def _select_operator(segment: List[Token]) -> Optional[Token]:
        candidates: List[Token] = []
        for index, token in enumerate(segment):
            if token.kind == CMP:
                candidates.append(token)
            elif (
                token.kind == WORD
                and 0 < index < len(segment) - 1
                and token.text.lower() in _WORD_OPERATORS
            ):
                token.operator = _WORD_OPERATORS[token.text.lower()]
                candidates.append(token)
        for operator in OPERATOR_PRECEDENCE:
            for token in candidates:
                if token.operator == operator:
                    return token
        return None

    @staticmethod
    def _build_pattern(field_path: str, raw_value: str) -> QueryPattern:
        value = str(infer_literal(raw_value))
        leading = value.startswith("%")
        trailing = value.endswith("%")
        core = value.strip("%")
        body = ".*".join(re.escape(part) for part in core.split("%"))
        if leading and trailing:
            return QueryPattern(field_path, body, PatternMatch.CONTAINS)
        if trailing:
            return QueryPattern(field_path, f"^{body}", PatternMatch.PREFIX)
        if leading:
            return QueryPattern(field_path, f"{body}$", PatternMatch.SUFFIX)
        return QueryPattern(field_path, body, PatternMatch.SUBSTRING)


def compile_filter(
    filter_expr: Union[str, QueryExpression, None],
) -> Optional[QueryExpression]:
    """
    Compile a filter string into a QueryExpression tree.

    An existing QueryExpression is returned unchanged and an empty filter
    yields None (match everything). Segments without an operator come back
    as QueryRaw nodes rather than raising.
    """
    if filter_expr is None or isinstance(filter_expr, QueryExpression):
        return filter_expr
    if not isinstance(filter_expr, str):
        raise TypeError(
            f"Filter must be a string or QueryExpression, got {type(filter_expr).__name__}"
        )
    if not filter_expr.strip():
        return None
    expression = FilterParser(filter_expr).parse()
    log.debug(f"Compiled filter {filter_expr!r} -> {expression!r}")
    return expression
