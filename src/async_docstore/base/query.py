# src/async_docstore/base/query.py
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Literal, Optional

# --- Setup Logging ---
log = logging.getLogger(__name__)


# --- Query Operator Enum ---
class QueryOperator(Enum):
    """Enumeration of comparison operators a filter leaf can carry."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    # Membership
    IN = "in"
    NIN = "nin"
    ALL = "all"


SEQUENCE_OPERATORS = (QueryOperator.IN, QueryOperator.NIN, QueryOperator.ALL)


class PatternMatch(Enum):
    """How a LIKE pattern is anchored against the field value."""

    CONTAINS = "contains"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    SUBSTRING = "substring"


# --- Structured Query Expression Classes ---
@dataclass
class QueryExpression:
    """Base class for backend-neutral query predicate nodes."""

    pass


@dataclass
class QueryFilter(QueryExpression):
    """Represents a single comparison (field_path <operator> value)."""

    field_path: str
    operator: QueryOperator
    value: Any


@dataclass
class QueryPattern(QueryExpression):
    """Represents a regular-expression match on a field, compiled from LIKE."""

    field_path: str
    pattern: str
    match: PatternMatch = PatternMatch.SUBSTRING


@dataclass
class QueryLogical(QueryExpression):
    """Represents a logical combination (AND/OR/NOR) of expressions."""

    operator: Literal["and", "or", "nor"]
    conditions: List[QueryExpression] = field(default_factory=list)


@dataclass
class QueryNot(QueryExpression):
    """Negates a single expression."""

    condition: QueryExpression


@dataclass
class QueryRaw(QueryExpression):
    """
    A filter segment in which no operator was found.

    The compiler hands it back untouched; deciding whether it means anything
    is up to the caller.
    """

    text: str


def iter_expression(expression: Optional[QueryExpression]) -> Iterator[QueryExpression]:
    """Yields every node of an expression tree, depth first."""
    if expression is None:
        return
    yield expression
    if isinstance(expression, QueryLogical):
        for condition in expression.conditions:
            yield from iter_expression(condition)
    elif isinstance(expression, QueryNot):
        yield from iter_expression(expression.condition)


def find_raw_segments(expression: Optional[QueryExpression]) -> List[str]:
    """Returns the text of every QueryRaw node in the tree."""
    return [node.text for node in iter_expression(expression) if isinstance(node, QueryRaw)]
