# src/async_docstore/record_service.py

import asyncio
import logging
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import (Any, Awaitable, Callable, Dict, List, Mapping, Optional,
                    Sequence, Tuple, Union)

from bson import ObjectId

from async_docstore.base.exceptions import (BackendException,
                                            ObjectNotFoundException,
                                            RequestException)
from async_docstore.base.filter_parser import compile_filter
from async_docstore.base.identifiers import (DEFAULT_ALIAS_FIELD,
                                             DEFAULT_ID_FIELD,
                                             IdentifierNormalizer)
from async_docstore.base.interfaces import (Document, DocumentCollection,
                                            DocumentStore)
from async_docstore.base.literals import infer_literal
from async_docstore.base.options import BatchOptions, RetrieveOptions
from async_docstore.base.projection import (FieldProjection,
                                            build_field_projection,
                                            build_sort_spec)
from async_docstore.base.query import (QueryExpression, QueryFilter,
                                       QueryOperator, find_raw_segments)
from async_docstore.base.utils import as_record, as_record_list

RECORD_FAILURES = (RequestException, ObjectNotFoundException, BackendException)

FieldsArg = Union[str, Sequence[str], None]
FilterArg = Union[str, QueryExpression, None]


@dataclass
class RecordError:
    """Stands in for a record that could not be processed within a batch."""

    index: int
    identifier: Any
    error: Exception


@dataclass
class RecordPage:
    """Records returned by a filtered retrieve plus response metadata."""

    records: List[Document]
    meta: Dict[str, Any] = field(default_factory=dict)


RecordOutcome = Union[Document, RecordError]


def _lookup_key(value: Any) -> Tuple[str, Any]:
    if isinstance(value, ObjectId):
        return ("objectid", str(value))
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("number", value)
    return (type(value).__name__, value)


class RecordService:
    """
    Record-level CRUD over a schema-less document store.

    The service accepts records, id lists and filter strings in external form,
    normalizes them (identifiers, projections, predicate trees), runs the
    matching store primitives and hands records back with external ids.

    Batch operations that work record by record report per-record failures as
    RecordError entries in input order. With BatchOptions(rollback=True) they
    stop at the first failure and raise it instead.
    """

    def __init__(
        self,
        store: DocumentStore,
        id_field: str = DEFAULT_ID_FIELD,
        alias_field: str = DEFAULT_ALIAS_FIELD,
        max_concurrency: int = 10,
    ):
        if not isinstance(store, DocumentStore):
            raise TypeError("store must be an instance of DocumentStore")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._store = store
        self._id_field = id_field
        self._normalizer = IdentifierNormalizer(id_field, alias_field)
        self._max_concurrency = max_concurrency
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{store.__class__.__name__}]"
        )
        self._logger.info(
            f"Record service created over {store.__class__.__name__} "
            f"(id field: '{id_field}', alias: '{alias_field}')"
        )

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def normalizer(self) -> IdentifierNormalizer:
        return self._normalizer

    # --- Request normalization ---

    def _collection(self, table: str) -> DocumentCollection:
        if not table or not isinstance(table, str):
            raise RequestException("A table or collection name is required.")
        return self._store.select_collection(table, id_field=self._id_field)

    def _projection(self, fields: FieldsArg) -> FieldProjection:
        return build_field_projection(fields, self._id_field)

    def _query(self, filter: FilterArg, required: bool = False) -> Optional[QueryExpression]:
        try:
            query = compile_filter(filter)
        except TypeError as e:
            raise RequestException(str(e)) from e
        raw_segments = find_raw_segments(query)
        if raw_segments:
            raise RequestException(
                f"Filter contains segments without a recognized operator: {raw_segments!r}"
            )
        if required and query is None:
            raise RequestException("There is no filter in the request.")
        return query

    def _id_query(self, native_id: Any) -> QueryExpression:
        return QueryFilter(self._id_field, QueryOperator.EQ, native_id)

    def _ids_query(self, native_ids: Sequence[Any]) -> QueryExpression:
        return QueryFilter(self._id_field, QueryOperator.IN, list(native_ids))

    def _require_id(self, value: Any) -> Any:
        if value is None or value == "":
            raise RequestException(f"Identifying field '{self._id_field}' can not be empty.")
        return self._normalizer.to_native_id(value)

    def _require_ids(self, id_list: Any) -> List[Any]:
        native_ids = self._normalizer.to_native_ids(id_list) if id_list else []
        native_ids = [value for value in native_ids if value is not None and value != ""]
        if not native_ids:
            raise RequestException("There are no record ids in the request.")
        return native_ids

    def _record_ids(self, records: Any) -> List[Any]:
        ids = self._normalizer.records_to_ids(as_record_list(records))
        return [self._normalizer.to_native_id(value) for value in ids]

    def _strip_identifier(self, record: Mapping[str, Any]) -> Document:
        return {
            key: value
            for key, value in record.items()
            if key not in (self._id_field, self._normalizer.alias_field)
        }

    def _external(self, document: Document) -> Document:
        return self._normalizer.to_external_id(document)

    def _record_error(self, index: int, identifier: Any, error: Exception) -> RecordError:
        return RecordError(index, self._normalizer.to_external_id(identifier), error)

    # --- Execution helpers ---

    async def _run_batch(
        self,
        collection: DocumentCollection,
        items: Sequence[Any],
        identifiers: Sequence[Any],
        worker: Callable[[Any], Awaitable[Document]],
        fail_fast: bool,
        logger: LoggerAdapter,
    ) -> List[RecordOutcome]:
        """
        Apply `worker` to every item. Results keep the input order. Items run
        concurrently (bounded by max_concurrency) unless the batch is fail-fast
        or the collection does not support concurrent operations.
        """
        if fail_fast or not collection.supports_concurrency:
            results: List[RecordOutcome] = []
            for index, item in enumerate(items):
                try:
                    results.append(await worker(item))
                except RECORD_FAILURES as e:
                    if fail_fast:
                        logger.warning(
                            f"Stopping batch on '{collection.name}' at position {index}: {e}"
                        )
                        raise
                    results.append(self._record_error(index, identifiers[index], e))
            return results

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def guarded(index: int, item: Any) -> RecordOutcome:
            async with semaphore:
                try:
                    return await worker(item)
                except RECORD_FAILURES as e:
                    return self._record_error(index, identifiers[index], e)

        return list(
            await asyncio.gather(*(guarded(index, item) for index, item in enumerate(items)))
        )

    def _not_found(self, collection: DocumentCollection, native_id: Any) -> ObjectNotFoundException:
        return ObjectNotFoundException(
            f"Record '{self._normalizer.to_external_id(native_id)}' not found "
            f"in '{collection.name}'."
        )

    async def _find_by_id(
        self,
        collection: DocumentCollection,
        native_id: Any,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Document:
        document = await collection.find_one(self._id_query(native_id), projection, logger)
        if document is None:
            raise self._not_found(collection, native_id)
        return self._external(document)

    async def _respond_by_id(
        self,
        collection: DocumentCollection,
        native_id: Any,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Document:
        """Response for a record just written; an id-only projection needs no read."""
        if not projection.requires_read:
            return self._normalizer.ids_as_records([native_id])[0]
        return await self._find_by_id(collection, native_id, projection, logger)

    async def _read_by_ids(
        self,
        collection: DocumentCollection,
        native_ids: Sequence[Any],
        projection: FieldProjection,
        logger: LoggerAdapter,
        failures: Optional[Mapping[int, Exception]] = None,
    ) -> List[RecordOutcome]:
        """
        Read the records for `native_ids` and return them in id order. Ids
        with no matching record, and positions listed in `failures`, come back
        as RecordError entries.
        """
        failures = failures or {}
        wanted = [value for index, value in enumerate(native_ids) if index not in failures]
        documents = (
            await collection.find(self._ids_query(wanted), projection, logger)
            if wanted
            else []
        )
        by_id = {_lookup_key(doc.get(self._id_field)): doc for doc in documents}
        return self._ordered_outcomes(collection, native_ids, by_id, failures)

    def _ordered_outcomes(
        self,
        collection: DocumentCollection,
        native_ids: Sequence[Any],
        by_id: Mapping[Tuple[str, Any], Document],
        failures: Optional[Mapping[int, Exception]] = None,
    ) -> List[RecordOutcome]:
        failures = failures or {}
        outcomes: List[RecordOutcome] = []
        for index, value in enumerate(native_ids):
            if index in failures:
                outcomes.append(self._record_error(index, value, failures[index]))
                continue
            document = by_id.get(_lookup_key(value))
            if document is None:
                outcomes.append(
                    self._record_error(index, value, self._not_found(collection, value))
                )
            else:
                outcomes.append(self._external(dict(document)))
        return outcomes

    async def _matching_ids(
        self,
        collection: DocumentCollection,
        query: Optional[QueryExpression],
        logger: LoggerAdapter,
    ) -> List[Any]:
        id_only = FieldProjection(self._id_field, [self._id_field])
        documents = await collection.find(query, id_only, logger)
        return [doc[self._id_field] for doc in documents]

    async def _replace(
        self,
        collection: DocumentCollection,
        native_id: Any,
        body: Document,
        projection: FieldProjection,
        logger: LoggerAdapter,
        upsert: bool,
    ) -> Document:
        replaced = await collection.replace_one(native_id, body, logger, upsert=upsert)
        if not replaced:
            raise self._not_found(collection, native_id)
        return await self._respond_by_id(collection, native_id, projection, logger)

    async def _merge(
        self,
        collection: DocumentCollection,
        native_id: Any,
        patch: Document,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Document:
        if not patch:
            raise RequestException("There are no fields to merge in the request.")
        document = await collection.find_one_and_update(
            self._id_query(native_id), patch, projection, logger
        )
        if document is None:
            raise self._not_found(collection, native_id)
        return self._external(document)

    async def _delete(
        self,
        collection: DocumentCollection,
        native_id: Any,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Document:
        document = await collection.find_one_and_delete(
            self._id_query(native_id), projection, logger
        )
        if document is None:
            raise self._not_found(collection, native_id)
        return self._external(document)

    # --- Create ---

    async def create_records(
        self,
        table: str,
        records: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
        options: Union[BatchOptions, Mapping[str, Any], None] = None,
    ) -> List[RecordOutcome]:
        """
        Insert several records in one batch.

        Returns one entry per input record, in input order: the created record
        (projected, with an external id) or a RecordError describing why that
        record was not written. With rollback=True the first failure is raised
        as a BackendException instead.
        """
        batch_options = BatchOptions.coerce(options)
        collection = self._collection(table)
        projection = self._projection(fields)
        documents = [self._normalizer.record_to_native(r) for r in as_record_list(records)]
        requested_ids = [doc.get(self._id_field) for doc in documents]

        logger.debug(f"Creating {len(documents)} record(s) in '{table}'")
        failures = await collection.insert_many(
            documents, logger, ordered=batch_options.rollback
        )
        if failures and batch_options.rollback:
            index = min(failures)
            error = failures[index]
            logger.warning(f"Batch create on '{table}' stopped at position {index}: {error}")
            raise BackendException(
                f"Record at position {index} could not be created: {error}",
                operation="create_records",
                collection=table,
            ) from error

        native_ids = [
            doc.get(self._id_field) if index not in failures else requested_ids[index]
            for index, doc in enumerate(documents)
        ]
        if not projection.requires_read:
            by_id = {
                _lookup_key(value): {self._id_field: value}
                for index, value in enumerate(native_ids)
                if index not in failures
            }
            results = self._ordered_outcomes(collection, native_ids, by_id, failures)
        else:
            results = await self._read_by_ids(
                collection, native_ids, projection, logger, failures
            )
        logger.info(
            f"Created {len(documents) - len(failures)} of {len(documents)} record(s) in '{table}'"
        )
        return results

    async def create_record(
        self,
        table: str,
        record: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        """Insert one record; a record that already carries an id is upserted."""
        collection = self._collection(table)
        projection = self._projection(fields)
        document = self._normalizer.record_to_native(as_record(record))
        native_id = document.get(self._id_field)
        if native_id is None:
            native_id = await collection.insert_one(document, logger)
        else:
            await collection.replace_one(native_id, document, logger, upsert=True)
        logger.info(f"Created record '{self._normalizer.to_external_id(native_id)}' in '{table}'")
        return await self._respond_by_id(collection, native_id, projection, logger)

    # --- Update (full replacement) ---

    async def update_records(
        self,
        table: str,
        records: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
        options: Union[BatchOptions, Mapping[str, Any], None] = None,
    ) -> List[RecordOutcome]:
        """Replace every record by its id, inserting records that do not exist yet."""
        batch_options = BatchOptions.coerce(options)
        collection = self._collection(table)
        projection = self._projection(fields)
        payload = as_record_list(records)
        native_ids = self._record_ids(payload)
        bodies = [self._strip_identifier(record) for record in payload]

        async def replace(item: Tuple[Any, Document]) -> Document:
            native_id, body = item
            return await self._replace(collection, native_id, body, projection, logger, upsert=True)

        results = await self._run_batch(
            collection, list(zip(native_ids, bodies)), native_ids, replace,
            batch_options.rollback, logger,
        )
        logger.info(f"Updated {len(results)} record(s) in '{table}'")
        return results

    async def update_record(
        self,
        table: str,
        record: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        collection = self._collection(table)
        projection = self._projection(fields)
        payload = as_record(record)
        native_id = self._require_id(self._normalizer.record_id(payload))
        result = await self._replace(
            collection, native_id, self._strip_identifier(payload), projection, logger, upsert=True
        )
        logger.info(f"Updated record '{self._normalizer.to_external_id(native_id)}' in '{table}'")
        return result

    async def update_record_by_id(
        self,
        table: str,
        record: Any,
        id: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        """Replace the record stored under `id`; an id inside the payload is ignored."""
        collection = self._collection(table)
        projection = self._projection(fields)
        native_id = self._require_id(id)
        body = self._strip_identifier(as_record(record))
        result = await self._replace(collection, native_id, body, projection, logger, upsert=True)
        logger.info(f"Updated record '{self._normalizer.to_external_id(native_id)}' in '{table}'")
        return result

    async def update_records_by_filter(
        self,
        table: str,
        patch: Any,
        filter: FilterArg,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[Document]:
        """
        Replace the body of every record matching `filter` with `patch`. Each
        record keeps its id. Stops at the first record the store rejects.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        query = self._query(filter, required=True)
        body = self._strip_identifier(as_record(patch))
        if not body:
            raise RequestException("There are no fields in the record.")

        native_ids = await self._matching_ids(collection, query, logger)
        replaced = []
        for native_id in native_ids:
            if await collection.replace_one(native_id, body, logger, upsert=False):
                replaced.append(native_id)
        logger.info(f"Replaced {len(replaced)} record(s) matching filter in '{table}'")

        if not projection.requires_read:
            return self._normalizer.ids_as_records(replaced)
        if not replaced:
            return []
        outcomes = await self._read_by_ids(collection, replaced, projection, logger)
        return [outcome for outcome in outcomes if not isinstance(outcome, RecordError)]

    async def update_records_by_ids(
        self,
        table: str,
        patch: Any,
        id_list: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        """
        Replace the body of each listed record with `patch`, keeping its id.
        Ids that match no record come back as RecordError entries.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        body = self._strip_identifier(as_record(patch))
        if not body:
            raise RequestException("There are no fields in the record.")
        native_ids = self._require_ids(id_list)

        async def replace(native_id: Any) -> Document:
            return await self._replace(collection, native_id, body, projection, logger, upsert=False)

        results = await self._run_batch(
            collection, native_ids, native_ids, replace, False, logger
        )
        logger.info(f"Replaced {len(results)} listed record(s) in '{table}'")
        return results

    # --- Merge (partial update) ---

    async def merge_records(
        self,
        table: str,
        records: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
        options: Union[BatchOptions, Mapping[str, Any], None] = None,
    ) -> List[RecordOutcome]:
        """Apply each record as a patch to the stored record with the same id."""
        batch_options = BatchOptions.coerce(options)
        collection = self._collection(table)
        projection = self._projection(fields)
        payload = as_record_list(records)
        native_ids = self._record_ids(payload)
        patches = [self._strip_identifier(record) for record in payload]

        async def merge(item: Tuple[Any, Document]) -> Document:
            native_id, patch = item
            return await self._merge(collection, native_id, patch, projection, logger)

        results = await self._run_batch(
            collection, list(zip(native_ids, patches)), native_ids, merge,
            batch_options.rollback, logger,
        )
        logger.info(f"Merged {len(results)} record(s) in '{table}'")
        return results

    async def merge_record(
        self,
        table: str,
        record: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        """
        Patch a stored record with the fields of `record`, which must carry
        the id. Returns the record as it is after the patch.

        Raises:
            ObjectNotFoundException: If no record has that id.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        payload = as_record(record)
        native_id = self._require_id(self._normalizer.record_id(payload))
        result = await self._merge(
            collection, native_id, self._strip_identifier(payload), projection, logger
        )
        logger.info(f"Merged record '{self._normalizer.to_external_id(native_id)}' in '{table}'")
        return result

    async def merge_record_by_id(
        self,
        table: str,
        patch: Any,
        id: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        collection = self._collection(table)
        projection = self._projection(fields)
        native_id = self._require_id(id)
        result = await self._merge(
            collection, native_id, self._strip_identifier(as_record(patch)), projection, logger
        )
        logger.info(f"Merged record '{self._normalizer.to_external_id(native_id)}' in '{table}'")
        return result

    async def merge_records_by_filter(
        self,
        table: str,
        patch: Any,
        filter: FilterArg,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[Document]:
        """Set the fields of `patch` on every record matching `filter`."""
        collection = self._collection(table)
        projection = self._projection(fields)
        query = self._query(filter, required=True)
        body = self._strip_identifier(as_record(patch))
        if not body:
            raise RequestException("There are no fields to merge in the request.")

        native_ids = await self._matching_ids(collection, query, logger)
        if not native_ids:
            logger.info(f"No records matching filter to merge in '{table}'")
            return []
        matched = await collection.update_many(self._ids_query(native_ids), body, logger)
        logger.info(f"Merged {matched} record(s) matching filter in '{table}'")

        if not projection.requires_read:
            return self._normalizer.ids_as_records(native_ids)
        outcomes = await self._read_by_ids(collection, native_ids, projection, logger)
        return [outcome for outcome in outcomes if not isinstance(outcome, RecordError)]

    async def merge_records_by_ids(
        self,
        table: str,
        patch: Any,
        id_list: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        """
        Set the fields of `patch` on every listed record in a single store
        call. Ids that match no record come back as RecordError entries.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        body = self._strip_identifier(as_record(patch))
        if not body:
            raise RequestException("There are no fields to merge in the request.")
        native_ids = self._require_ids(id_list)

        matched = await collection.update_many(self._ids_query(native_ids), body, logger)
        logger.info(f"Merged {matched} of {len(native_ids)} listed record(s) in '{table}'")

        if not projection.requires_read and matched == len(native_ids):
            return self._normalizer.ids_as_records(native_ids)
        return await self._read_by_ids(collection, native_ids, projection, logger)

    # --- Delete ---

    async def delete_records(
        self,
        table: str,
        records: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        """Delete the records identified by the given record payloads."""
        native_ids = self._record_ids(records)
        return await self._delete_by_native_ids(table, native_ids, logger, fields)

    async def delete_record(
        self,
        table: str,
        record: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        collection = self._collection(table)
        projection = self._projection(fields)
        native_id = self._require_id(self._normalizer.record_id(as_record(record)))
        result = await self._delete(collection, native_id, projection, logger)
        logger.info(f"Deleted record '{self._normalizer.to_external_id(native_id)}' from '{table}'")
        return result

    async def delete_record_by_id(
        self,
        table: str,
        id: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        """
        Atomically remove the record with `id` and return it.

        Raises:
            ObjectNotFoundException: If no record has that id.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        native_id = self._require_id(id)
        result = await self._delete(collection, native_id, projection, logger)
        logger.info(f"Deleted record '{self._normalizer.to_external_id(native_id)}' from '{table}'")
        return result

    async def delete_records_by_filter(
        self,
        table: str,
        filter: FilterArg,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[Document]:
        """
        Delete every record matching `filter` and return them as they were.
        An empty filter is refused rather than clearing the collection.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        query = self._query(filter, required=True)

        documents = await collection.find(query, projection, logger)
        if not documents:
            logger.info(f"No records matching filter to delete in '{table}'")
            return []
        native_ids = [doc[self._id_field] for doc in documents]
        deleted = await collection.delete_many(self._ids_query(native_ids), logger)
        logger.info(f"Deleted {deleted} record(s) matching filter from '{table}'")
        return [self._external(doc) for doc in documents]

    async def delete_records_by_ids(
        self,
        table: str,
        id_list: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        """Delete the listed records. Ids that match nothing come back as RecordError entries."""
        native_ids = self._require_ids(id_list)
        return await self._delete_by_native_ids(table, native_ids, logger, fields)

    async def _delete_by_native_ids(
        self,
        table: str,
        native_ids: List[Any],
        logger: LoggerAdapter,
        fields: FieldsArg,
    ) -> List[RecordOutcome]:
        collection = self._collection(table)
        projection = self._projection(fields)
        outcomes = await self._read_by_ids(collection, native_ids, projection, logger)
        existing = [
            value
            for value, outcome in zip(native_ids, outcomes)
            if not isinstance(outcome, RecordError)
        ]
        if existing:
            deleted = await collection.delete_many(self._ids_query(existing), logger)
            logger.info(f"Deleted {deleted} of {len(native_ids)} listed record(s) from '{table}'")
        return outcomes

    # --- Retrieve ---

    async def retrieve_records_by_filter(
        self,
        table: str,
        logger: LoggerAdapter,
        filter: FilterArg = None,
        fields: FieldsArg = None,
        options: Union[RetrieveOptions, Mapping[str, Any], None] = None,
    ) -> RecordPage:
        """
        Retrieve the records matching `filter` (every record when it is empty).

        Args:
            table: Collection name.
            logger: Logger adapter for recording operations.
            filter: Filter expression string or QueryExpression.
            fields: Comma-delimited field names or a list; None or '*' for all.
            options: RetrieveOptions or a mapping with limit, offset,
                     sort (or order) and include_count (or includeCount).

        Returns:
            A RecordPage. meta["count"] holds the total number of matching
            records, ignoring offset and limit, when include_count is set.
        """
        retrieve_options = RetrieveOptions.coerce(options)
        collection = self._collection(table)
        projection = self._projection(fields)
        query = self._query(filter)
        sort = build_sort_spec(retrieve_options.sort)

        documents = await collection.find(
            query,
            projection,
            logger,
            sort=sort,
            skip=retrieve_options.offset,
            limit=retrieve_options.limit,
        )
        meta: Dict[str, Any] = {}
        if retrieve_options.include_count:
            meta["count"] = await collection.count(query, logger)
        logger.info(f"Retrieved {len(documents)} record(s) from '{table}'")
        return RecordPage([self._external(doc) for doc in documents], meta)

    async def retrieve_records(
        self,
        table: str,
        records: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        native_ids = self._record_ids(records)
        collection = self._collection(table)
        return await self._read_by_ids(collection, native_ids, self._projection(fields), logger)

    async def retrieve_record(
        self,
        table: str,
        record: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        native_id = self._require_id(self._normalizer.record_id(as_record(record)))
        collection = self._collection(table)
        return await self._find_by_id(collection, native_id, self._projection(fields), logger)

    async def retrieve_records_by_ids(
        self,
        table: str,
        id_list: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> List[RecordOutcome]:
        """Retrieve the listed records in id order. An empty id list yields no records."""
        collection = self._collection(table)
        projection = self._projection(fields)
        if not id_list:
            return []
        native_ids = self._normalizer.to_native_ids(id_list)
        if not native_ids:
            return []
        results = await self._read_by_ids(collection, native_ids, projection, logger)
        logger.info(f"Retrieved {len(results)} listed record(s) from '{table}'")
        return results

    async def retrieve_record_by_id(
        self,
        table: str,
        id: Any,
        logger: LoggerAdapter,
        fields: FieldsArg = None,
    ) -> Document:
        """
        Retrieve one record. A string id that did not match is retried as
        the number it spells, if it spells one.

        Raises:
            ObjectNotFoundException: If neither form of the id matches a record.
        """
        collection = self._collection(table)
        projection = self._projection(fields)
        native_id = self._require_id(id)

        document = await collection.find_one(self._id_query(native_id), projection, logger)
        if document is None and isinstance(native_id, str):
            numeric_id = infer_literal(native_id)
            if isinstance(numeric_id, (int, float)) and not isinstance(numeric_id, bool):
                logger.debug(f"Retrying lookup of '{native_id}' as number {numeric_id!r}")
                document = await collection.find_one(
                    self._id_query(numeric_id), projection, logger
                )
        if document is None:
            raise self._not_found(collection, native_id)
        return self._external(document)
