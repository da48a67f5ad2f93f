# src/async_docstore/base/literals.py
import logging
from typing import Any, List, Union

log = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool]

_QUOTES = ("'", '"')
_LIST_BRACKETS = {"(": ")", "[": "]"}


def _is_quoted(token: str) -> bool:
    return len(token) >= 2 and token[0] in _QUOTES and token[-1] == token[0]


def _as_number(token: str) -> Union[int, float, None]:
    """Returns the numeric value of token, or None when it is not numeric."""
    stripped = token.strip()
    if not stripped or "_" in stripped:
        return None
    try:
        number = float(stripped)
    except ValueError:
        return None
    # nan/inf spellings are words, not numbers, in a filter string
    if number != number or number in (float("inf"), float("-inf")):
        return None
    try:
        as_int = int(stripped)
    except ValueError:
        return number
    if str(as_int) == stripped:
        return as_int
    return number


def infer_literal(token: Any) -> Any:
    """
    Convert a raw token into a typed scalar.

    Rules are applied in order:
        1. A token wrapped in matching single or double quotes yields the
           inner string, never interpreted further.
        2. A numeric token yields an int when it round-trips exactly through
           int parsing, a float otherwise.
        3. 'true' / 'false' (any case) yield the matching bool.
        4. Anything else is returned unchanged.

    Non-string input is returned as-is, so already typed values survive a
    second pass.
    """
    if not isinstance(token, str):
        return token
    if _is_quoted(token):
        return token[1:-1]
    number = _as_number(token)
    if number is not None:
        return number
    lowered = token.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return token


def _split_top_level(text: str) -> List[str]:
    """Split on commas that are not inside a quoted section."""
    parts: List[str] = []
    current: List[str] = []
    quote = None
    for ch in text:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in _QUOTES:
            quote = ch
            current.append(ch)
        elif ch == ",":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def infer_sequence(text: Any) -> List[Any]:
    """
    Convert a list literal into a list of typed scalars.

    Accepts '(a, b)', '[a, b]' or a bare 'a, b'. Items are trimmed and
    passed through infer_literal; empty items are dropped. A single token
    yields a one-element list.
    """
    if isinstance(text, (list, tuple, set)):
        return [infer_literal(item) for item in text]
    if not isinstance(text, str):
        return [text]
    body = text.strip()
    if len(body) >= 2 and _LIST_BRACKETS.get(body[0]) == body[-1]:
        body = body[1:-1]
    items = [part.strip() for part in _split_top_level(body)]
    values = [infer_literal(item) for item in items if item]
    log.debug(f"Inferred sequence {values!r} from {text!r}")
    return values
