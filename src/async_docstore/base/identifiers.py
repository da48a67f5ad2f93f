# src/async_docstore/base/identifiers.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Union

from bson import ObjectId

from .exceptions import RequestException
from .literals import infer_literal

log = logging.getLogger(__name__)

DEFAULT_ID_FIELD = "_id"
DEFAULT_ALIAS_FIELD = "id"
NATIVE_ID_LENGTH = 24

ExternalValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class ExternalId:
    """An identifier in the form callers send and receive (string or number)."""

    value: ExternalValue


@dataclass(frozen=True)
class NativeId:
    """An identifier in the document store's own format."""

    handle: ObjectId

    def __str__(self) -> str:
        return str(self.handle)


Identifier = Union[ExternalId, NativeId]


def split_id_list(id_list: str) -> List[str]:
    """Split a comma-delimited id string, dropping empty elements."""
    return [part.strip() for part in id_list.strip().strip(",").split(",") if part.strip()]


class IdentifierNormalizer:
    """
    Converts identifiers between their external representation and the
    document store's native id type.

    A string of exactly 24 characters that parses as an ObjectId is treated
    as native; every other value is passed through, optionally run through
    literal inference so that '42' becomes 42. None of the operations raise
    for odd input, with the exception of records_to_ids, which reports records
    that carry no identifier at all.
    """

    def __init__(
        self,
        id_field: str = DEFAULT_ID_FIELD,
        alias_field: str = DEFAULT_ALIAS_FIELD,
    ):
        self.id_field = id_field
        self.alias_field = alias_field

    # --- Classification ---

    @staticmethod
    def is_native_shaped(value: Any) -> bool:
        return (
            isinstance(value, str)
            and len(value) == NATIVE_ID_LENGTH
            and ObjectId.is_valid(value)
        )

    def classify(self, value: Any, infer_unquoted: bool = False) -> Identifier:
        """Tags a raw identifier as native or external."""
        if isinstance(value, NativeId):
            return value
        if isinstance(value, ExternalId):
            value = value.value
        if isinstance(value, ObjectId):
            return NativeId(value)
        if self.is_native_shaped(value):
            return NativeId(ObjectId(value))
        if infer_unquoted and isinstance(value, str):
            return ExternalId(infer_literal(value))
        return ExternalId(value)

    @staticmethod
    def unwrap(identifier: Identifier) -> Any:
        """Returns the value a backend expects for a tagged identifier."""
        if isinstance(identifier, NativeId):
            return identifier.handle
        return identifier.value

    # --- External -> native ---

    def to_native_id(self, value: Any, infer_unquoted: bool = False) -> Any:
        """Convert a single scalar identifier to the value stored by the backend."""
        return self.unwrap(self.classify(value, infer_unquoted))

    def record_id(self, record: Mapping[str, Any]) -> Any:
        """Returns the identifier of a record, falling back to the alias field."""
        value = record.get(self.id_field)
        if value is None:
            value = record.get(self.alias_field)
        return value

    def record_to_native(
        self, record: Mapping[str, Any], infer_unquoted: bool = False
    ) -> Dict[str, Any]:
        """
        Returns a copy of record with its identifier converted to native form
        and stored under id_field. An alias field used as the source is
        removed. Records without an identifier are returned as a plain copy.
        """
        converted = dict(record)
        value = converted.get(self.id_field)
        if value is None and self.alias_field in converted:
            value = converted.pop(self.alias_field)
        if value is None:
            converted.pop(self.id_field, None)
            return converted
        converted[self.id_field] = self.to_native_id(value, infer_unquoted)
        return converted

    def to_native_ids(self, ids: Union[str, Sequence[Any], Any]) -> List[Any]:
        """
        Convert an id list to native ids.

        A comma-delimited string is split first and every element goes through
        literal inference. Elements of a structured sequence are converted
        as-is; records inside it contribute their identifier.
        """
        if isinstance(ids, str):
            return [self.to_native_id(part, infer_unquoted=True) for part in split_id_list(ids)]
        if isinstance(ids, Mapping) or not isinstance(ids, (list, tuple, set)):
            ids = [ids]
        native: List[Any] = []
        for item in ids:
            if isinstance(item, Mapping):
                item = self.record_id(item)
            native.append(self.to_native_id(item))
        return native

    # --- Native -> external ---

    def to_external_id(self, record_or_id: Any) -> Any:
        """
        Inverse of to_native_id. A bare native id becomes its string form; a
        record has its identifier field rewritten in place and is returned.
        """
        if isinstance(record_or_id, NativeId):
            return str(record_or_id)
        if isinstance(record_or_id, ObjectId):
            return str(record_or_id)
        if not isinstance(record_or_id, dict):
            return record_or_id
        record = record_or_id
        value = record.get(self.id_field)
        if value is None and self.alias_field in record:
            value = record.pop(self.alias_field)
        if value is None:
            return record
        if isinstance(value, (ObjectId, NativeId)):
            value = str(value)
        record[self.id_field] = value
        return record

    # --- Record helpers ---

    def records_to_ids(self, records: Sequence[Mapping[str, Any]]) -> List[Any]:
        """Collects the identifier of every record, raising for records without one."""
        ids = []
        for index, record in enumerate(records):
            value = self.record_id(record)
            if value is None or value == "":
                raise RequestException(
                    f"Identifying field '{self.id_field}' can not be empty "
                    f"(record at position {index})."
                )
            ids.append(value)
        return ids

    def ids_as_records(self, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        """Synthesizes id-only records in external form."""
        return [{self.id_field: self.to_external_id(value)} for value in ids]
