# src/async_docstore/base/projection.py
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import RequestException

log = logging.getLogger(__name__)

ALL_FIELDS = "*"

_DESCENDING_WORDS = {"desc", "dsc", "descending", "-1"}
_ASCENDING_WORDS = {"asc", "ascending", "1"}


class SortDirection(Enum):
    ASCENDING = 1
    DESCENDING = -1


@dataclass
class FieldProjection:
    """
    The set of fields a returned record keeps.

    `fields` is None for "all fields"; otherwise it is an ordered list that
    always includes the identifier field.
    """

    id_field: str
    fields: Optional[List[str]] = None

    @property
    def includes_all(self) -> bool:
        return self.fields is None

    @property
    def is_id_only(self) -> bool:
        return self.fields is not None and self.fields == [self.id_field]

    @property
    def requires_read(self) -> bool:
        """False when the identifier alone answers the request."""
        return not self.is_id_only

    def apply(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Returns a copy of record restricted to the projected fields."""
        if self.fields is None:
            return dict(record)
        projected: Dict[str, Any] = {}
        for path in self.fields:
            found, value = get_path(record, path)
            if found:
                set_path(projected, path, value)
        return projected


@dataclass
class SortSpec:
    """Ordered (field, direction) pairs; earlier pairs take precedence."""

    keys: List[Tuple[str, SortDirection]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.keys)


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in value.strip().strip(",").split(",") if part.strip()]


def build_field_projection(
    fields: Union[str, Sequence[str], None], id_field: str
) -> FieldProjection:
    """
    Build a projection from a comma-delimited string or a list of names.

    None, an empty value or '*' select every field. Any explicit list gets
    the identifier field added in front when it is missing.
    """
    if fields is None:
        return FieldProjection(id_field)
    if isinstance(fields, str):
        if fields.strip() in ("", ALL_FIELDS):
            return FieldProjection(id_field)
        names = _split_list(fields)
    elif isinstance(fields, (list, tuple, set)):
        names = [str(name).strip() for name in fields if str(name).strip()]
        if not names or ALL_FIELDS in names:
            return FieldProjection(id_field)
    else:
        raise RequestException(
            f"Field list must be a string or a list of names, got {type(fields).__name__}"
        )

    ordered: List[str] = []
    for name in names:
        if name not in ordered:
            ordered.append(name)
    if id_field not in ordered:
        ordered.insert(0, id_field)
    log.debug(f"Built field projection {ordered!r}")
    return FieldProjection(id_field, ordered)


def _parse_direction(token: Any) -> SortDirection:
    if isinstance(token, SortDirection):
        return token
    text = str(token).strip().lower()
    if text in _DESCENDING_WORDS:
        return SortDirection.DESCENDING
    if text in _ASCENDING_WORDS or not text:
        return SortDirection.ASCENDING
    raise RequestException(f"Invalid sort direction '{token}'.")


def build_sort_spec(sort: Union[str, Sequence[Any], None]) -> SortSpec:
    """
    Build a sort spec from 'name desc, age' style strings or from a list of
    strings or (field, direction) pairs. A missing direction means ascending.
    """
    if not sort:
        return SortSpec()
    if isinstance(sort, str):
        items: Sequence[Any] = _split_list(sort)
    elif isinstance(sort, (list, tuple)):
        items = sort
    else:
        raise RequestException(
            f"Sort must be a string or a list, got {type(sort).__name__}"
        )

    keys: List[Tuple[str, SortDirection]] = []
    for item in items:
        if isinstance(item, str):
            parts = item.split()
        elif isinstance(item, (list, tuple)):
            parts = list(item)
        else:
            raise RequestException(f"Invalid sort item {item!r}.")
        if not parts:
            continue
        if len(parts) > 2:
            raise RequestException(f"Invalid sort item {item!r}.")
        name = str(parts[0]).strip()
        if not name:
            continue
        direction = _parse_direction(parts[1]) if len(parts) == 2 else SortDirection.ASCENDING
        keys.append((name, direction))
    return SortSpec(keys)


# --- Dotted path helpers ---


def get_path(record: Mapping[str, Any], path: str) -> Tuple[bool, Any]:
    """
    Look up a dotted field path. Returns (found, value). Numeric parts index
    into lists.
    """
    if path in record:
        return True, record[path]
    current: Any = record
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return False, None
    return True, current


def set_path(record: Dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted field path, creating intermediate mappings."""
    parts = path.split(".")
    current = record
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value
