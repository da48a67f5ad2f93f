# src/async_docstore/db_implementations/memory_store.py
import asyncio
import copy
import logging
import re
from datetime import datetime
from logging import LoggerAdapter
from typing import (Any, Callable, Dict, Iterable, List, Mapping, Optional,
                    Sequence, Tuple)

from bson import ObjectId

from async_docstore.base.exceptions import (BackendException,
                                            KeyAlreadyExistsException,
                                            RequestException)
from async_docstore.base.interfaces import (Document, DocumentCollection,
                                            DocumentStore)
from async_docstore.base.projection import (FieldProjection, SortDirection,
                                            SortSpec, get_path)
from async_docstore.base.query import (QueryExpression, QueryFilter,
                                       QueryLogical, QueryNot, QueryOperator,
                                       QueryPattern, QueryRaw)

base_logger = logging.getLogger(__name__)

_MISSING = object()


def _storage_key(value: Any) -> Tuple[str, Any]:
    """Hashable key for an identifier. 1 and 1.0 collide, True and 1 do not."""
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("number", value)
    if isinstance(value, ObjectId):
        return ("objectid", value)
    if isinstance(value, str):
        return ("string", value)
    raise BackendException(f"Unsupported identifier type {type(value).__name__}")


# --- Predicate evaluation ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _equals(value: Any, target: Any) -> bool:
    """Equality with array semantics: a list field matches any of its elements."""
    if value is _MISSING:
        return target is None
    if isinstance(value, list) and not isinstance(target, list):
        return any(_values_equal(item, target) for item in value)
    return _values_equal(value, target)


def _ordered(value: Any, target: Any, compare: Callable[[Any, Any], bool]) -> bool:
    if value is _MISSING or value is None:
        return False
    if isinstance(value, list):
        return any(_ordered(item, target, compare) for item in value)
    comparable = (
        (_is_number(value) and _is_number(target))
        or (isinstance(value, str) and isinstance(target, str))
        or (isinstance(value, datetime) and isinstance(target, datetime))
        or (isinstance(value, ObjectId) and isinstance(target, ObjectId))
    )
    if not comparable:
        return False
    return compare(value, target)


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple, set)) else [value]


_ORDERED_OPERATORS = {
    QueryOperator.GT: lambda a, b: a > b,
    QueryOperator.GTE: lambda a, b: a >= b,
    QueryOperator.LT: lambda a, b: a < b,
    QueryOperator.LTE: lambda a, b: a <= b,
}


def _matches_filter(document: Document, expression: QueryFilter) -> bool:
    found, value = get_path(document, expression.field_path)
    if not found:
        value = _MISSING
    op = expression.operator
    target = expression.value

    if op == QueryOperator.EQ:
        return _equals(value, target)
    if op == QueryOperator.NE:
        return not _equals(value, target)
    if op in _ORDERED_OPERATORS:
        return _ordered(value, target, _ORDERED_OPERATORS[op])
    if op == QueryOperator.IN:
        return any(_equals(value, item) for item in _as_list(target))
    if op == QueryOperator.NIN:
        return not any(_equals(value, item) for item in _as_list(target))
    if op == QueryOperator.ALL:
        targets = _as_list(target)
        if value is _MISSING or not targets:
            return False
        return all(_equals(value, item) for item in targets)
    raise RequestException(f"Unsupported query operator: {op!r}")


def _matches_pattern(document: Document, expression: QueryPattern) -> bool:
    found, value = get_path(document, expression.field_path)
    if not found:
        return False
    regex = re.compile(expression.pattern)
    candidates = value if isinstance(value, list) else [value]
    return any(isinstance(item, str) and regex.search(item) for item in candidates)


def matches(document: Document, expression: Optional[QueryExpression]) -> bool:
    """Evaluate a predicate tree against a document."""
    if expression is None:
        return True
    if isinstance(expression, QueryFilter):
        return _matches_filter(document, expression)
    if isinstance(expression, QueryPattern):
        return _matches_pattern(document, expression)
    if isinstance(expression, QueryLogical):
        results = (matches(document, cond) for cond in expression.conditions)
        if expression.operator == "and":
            return all(results)
        if expression.operator == "or":
            return any(results)
        if expression.operator == "nor":
            return not any(results)
        raise RequestException(f"Unsupported logical operator: {expression.operator!r}")
    if isinstance(expression, QueryNot):
        return not matches(document, expression.condition)
    if isinstance(expression, QueryRaw):
        raise RequestException(f"Cannot evaluate filter segment '{expression.text}'.")
    raise TypeError(f"Unknown QueryExpression type: {type(expression)}")


# --- Sorting ---

_TYPE_RANK = (
    (type(None), 0),
    (bool, 6),
    (int, 1),
    (float, 1),
    (str, 2),
    (dict, 3),
    (list, 4),
    (ObjectId, 5),
    (datetime, 7),
)


def _sort_key(document: Document, field_path: str) -> Tuple[int, Any]:
    found, value = get_path(document, field_path)
    if not found or value is None:
        return (0, 0)
    for value_type, rank in _TYPE_RANK:
        if isinstance(value, value_type):
            if value_type in (dict, list):
                return (rank, repr(value))
            return (rank, value)
    return (8, repr(value))


def sort_documents(documents: List[Document], sort: Optional[SortSpec]) -> List[Document]:
    """Sort by every sort key, the first key taking precedence."""
    if not sort:
        return documents
    ordered = list(documents)
    for field_path, direction in reversed(sort.keys):
        ordered.sort(
            key=lambda doc: _sort_key(doc, field_path),
            reverse=direction == SortDirection.DESCENDING,
        )
    return ordered


# --- Collection ---


class MemoryDocumentCollection(DocumentCollection):
    """
    In-memory collection using a Python dictionary keyed by identifier.

    Each operation completes without yielding to the event loop once it has
    started, so single-document read-modify operations are atomic.
    """

    def __init__(
        self,
        name: str,
        data: Dict[Tuple[str, Any], Document],
        id_field: str = "_id",
        required_fields: Sequence[str] = (),
    ):
        super().__init__(name, id_field)
        self._data = data
        self._required_fields = tuple(required_fields)
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}[{name}]")

    # --- Helpers ---

    def _fail(self, message: str, operation: str, exc_type=BackendException) -> Exception:
        self._logger.warning(f"{message} (operation: {operation})")
        return exc_type(message, operation=operation, collection=self.name)

    def _validate(self, document: Document, operation: str) -> None:
        for field_name in self._required_fields:
            found, _ = get_path(document, field_name)
            if not found:
                raise self._fail(
                    f"Document failed validation: missing required field '{field_name}'",
                    operation,
                )

    def _key(self, document_id: Any, operation: str) -> Tuple[str, Any]:
        try:
            return _storage_key(document_id)
        except BackendException as e:
            raise self._fail(str(e), operation) from e

    def _matching(self, query: Optional[QueryExpression]) -> List[Document]:
        return [doc for doc in self._data.values() if matches(doc, query)]

    @staticmethod
    def _project(document: Document, projection: FieldProjection) -> Document:
        return projection.apply(copy.deepcopy(document))

    def _apply_set(self, document: Document, fields: Document, operation: str) -> None:
        if self.id_field in fields and not _values_equal(
            fields[self.id_field], document.get(self.id_field)
        ):
            raise self._fail(
                f"Field '{self.id_field}' is immutable and can not be updated", operation
            )
        for path, value in fields.items():
            parts = path.split(".")
            target = document
            for part in parts[:-1]:
                nested = target.get(part)
                if not isinstance(nested, dict):
                    nested = {}
                    target[part] = nested
                target = nested
            target[parts[-1]] = copy.deepcopy(value)

    # --- Writes ---

    async def insert_one(self, document: Document, logger: LoggerAdapter) -> Any:
        await asyncio.sleep(0)
        operation = "insert_one"
        if document.get(self.id_field) is None:
            document[self.id_field] = ObjectId()
        key = self._key(document[self.id_field], operation)
        if key in self._data:
            raise self._fail(
                f"Duplicate key error: {self.id_field} {document[self.id_field]!r}",
                operation,
                KeyAlreadyExistsException,
            )
        self._validate(document, operation)
        self._data[key] = copy.deepcopy(document)
        logger.debug(f"Inserted document {document[self.id_field]!r} into '{self.name}'")
        return document[self.id_field]

    async def insert_many(
        self, documents: List[Document], logger: LoggerAdapter, ordered: bool = False
    ) -> Dict[int, Exception]:
        failures: Dict[int, Exception] = {}
        for index, document in enumerate(documents):
            try:
                await self.insert_one(document, logger)
            except BackendException as e:
                failures[index] = e
                if ordered:
                    skipped = BackendException(
                        "Not attempted after an earlier failure",
                        operation="insert_many",
                        collection=self.name,
                    )
                    for later in range(index + 1, len(documents)):
                        failures[later] = skipped
                    break
        logger.debug(
            f"insert_many into '{self.name}': {len(documents) - len(failures)} written, "
            f"{len(failures)} failed"
        )
        return failures

    async def replace_one(
        self,
        document_id: Any,
        document: Document,
        logger: LoggerAdapter,
        upsert: bool = False,
    ) -> bool:
        await asyncio.sleep(0)
        operation = "replace_one"
        key = self._key(document_id, operation)
        if key not in self._data and not upsert:
            return False
        replacement = copy.deepcopy(document)
        replacement[self.id_field] = document_id
        self._validate(replacement, operation)
        self._data[key] = replacement
        logger.debug(f"Replaced document {document_id!r} in '{self.name}'")
        return True

    async def update_many(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        logger: LoggerAdapter,
    ) -> int:
        await asyncio.sleep(0)
        targets = self._matching(query)
        for document in targets:
            self._apply_set(document, fields, "update_many")
        logger.debug(f"update_many on '{self.name}' matched {len(targets)} documents")
        return len(targets)

    async def find_one_and_update(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        await asyncio.sleep(0)
        for document in self._data.values():
            if matches(document, query):
                self._apply_set(document, fields, "find_one_and_update")
                return self._project(document, projection)
        return None

    async def find_one_and_delete(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        await asyncio.sleep(0)
        for key, document in self._data.items():
            if matches(document, query):
                del self._data[key]
                return self._project(document, projection)
        return None

    async def delete_many(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        await asyncio.sleep(0)
        keys = [key for key, doc in self._data.items() if matches(doc, query)]
        for key in keys:
            del self._data[key]
        logger.debug(f"delete_many on '{self.name}' removed {len(keys)} documents")
        return len(keys)

    # --- Reads ---

    async def find(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Document]:
        await asyncio.sleep(0)
        documents = sort_documents(self._matching(query), sort)
        if skip > 0:
            documents = documents[skip:]
        if limit > 0:
            documents = documents[:limit]
        return [self._project(doc, projection) for doc in documents]

    async def count(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        await asyncio.sleep(0)
        return len(self._matching(query))


class MemoryDocumentStore(DocumentStore):
    """
    Document store kept in process memory. Collections spring into existence
    on first use, as they do in MongoDB.

    Args:
        required_fields: Optional mapping of collection name to the fields
                         every stored document must carry. Writes missing one
                         of them fail like a collection validator would.
    """

    def __init__(self, required_fields: Optional[Mapping[str, Iterable[str]]] = None):
        self._collections: Dict[str, Dict[Tuple[str, Any], Document]] = {}
        self._required_fields = {
            name: tuple(fields) for name, fields in (required_fields or {}).items()
        }
        base_logger.debug("Initialized in-memory document store")

    def select_collection(self, name: str, id_field: str = "_id") -> MemoryDocumentCollection:
        if not name:
            raise RequestException("A collection name is required.")
        data = self._collections.setdefault(name, {})
        return MemoryDocumentCollection(
            name, data, id_field=id_field, required_fields=self._required_fields.get(name, ())
        )
