# src/async_docstore/db_implementations/mongodb_store.py

import logging
import re
from logging import LoggerAdapter
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import (AsyncIOMotorClient, AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from async_docstore.base.exceptions import (BackendException,
                                            KeyAlreadyExistsException,
                                            RequestException)
from async_docstore.base.interfaces import (Document, DocumentCollection,
                                            DocumentStore)
from async_docstore.base.projection import (FieldProjection, SortDirection,
                                            SortSpec)
from async_docstore.base.query import (SEQUENCE_OPERATORS, QueryExpression,
                                       QueryFilter, QueryLogical, QueryNot,
                                       QueryOperator, QueryPattern, QueryRaw)

base_logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000

_MONGO_OPERATORS = {
    QueryOperator.NE: "$ne",
    QueryOperator.GT: "$gt",
    QueryOperator.GTE: "$gte",
    QueryOperator.LT: "$lt",
    QueryOperator.LTE: "$lte",
    QueryOperator.IN: "$in",
    QueryOperator.NIN: "$nin",
    QueryOperator.ALL: "$all",
}

_MONGO_LOGICAL = {"and": "$and", "or": "$or", "nor": "$nor"}


# --- Translation ---


def translate_expression(expression: Optional[QueryExpression]) -> Dict[str, Any]:
    """
    Translate a predicate tree into a MongoDB filter document.

    NOT has no top-level form in MongoDB, so a negated condition becomes a
    single-element $nor. Unparsed segments are rejected.
    """
    if expression is None:
        return {}

    if isinstance(expression, QueryFilter):
        field = expression.field_path
        op = expression.operator
        val = expression.value
        if op == QueryOperator.EQ:
            return {field: val}
        mongo_op = _MONGO_OPERATORS.get(op)
        if mongo_op is None:
            raise RequestException(f"Unsupported query operator for MongoDB: {op!r}")
        if op in SEQUENCE_OPERATORS:
            if isinstance(val, (tuple, set)):
                val = list(val)
            elif not isinstance(val, list):
                val = [val]
        return {field: {mongo_op: val}}

    if isinstance(expression, QueryPattern):
        return {expression.field_path: {"$regex": expression.pattern}}

    if isinstance(expression, QueryLogical):
        mongo_logic_op = _MONGO_LOGICAL.get(expression.operator)
        if mongo_logic_op is None:
            raise RequestException(
                f"Unsupported logical operator for MongoDB: {expression.operator!r}"
            )
        translated = [translate_expression(cond) for cond in expression.conditions if cond]
        if mongo_logic_op == "$nor":
            return {"$nor": translated} if translated else {}
        filtered = [part for part in translated if part]
        if not filtered:
            return {}
        if len(filtered) == 1:
            return filtered[0]
        return {mongo_logic_op: filtered}

    if isinstance(expression, QueryNot):
        return {"$nor": [translate_expression(expression.condition)]}

    if isinstance(expression, QueryRaw):
        raise RequestException(f"Cannot translate filter segment '{expression.text}'.")

    raise TypeError(f"Unknown QueryExpression type: {type(expression)}")


def translate_projection(projection: FieldProjection) -> Optional[Dict[str, int]]:
    """None lets MongoDB return whole documents."""
    if projection.includes_all:
        return None
    return {field: 1 for field in projection.fields}


def translate_sort(sort: Optional[SortSpec]) -> Optional[List[Tuple[str, int]]]:
    if not sort:
        return None
    return [
        (field, DESCENDING if direction == SortDirection.DESCENDING else ASCENDING)
        for field, direction in sort.keys
    ]


# --- Collection ---


class MongoDocumentCollection(DocumentCollection):
    """
    MongoDB collection implementation using Motor.

    Single-document operations rely on MongoDB's own atomicity
    (find_one_and_update, find_one_and_delete). No transactions are opened.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        name: str,
        id_field: str = "_id",
    ):
        super().__init__(name, id_field)
        if id_field != "_id":
            base_logger.warning(
                f"MongoDB typically uses '_id' as the id field, "
                f"but '{id_field}' was provided for collection '{name}'."
            )
        self._collection = collection
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{name}]"
        )

    def _handle_db_error(self, error: Exception, operation: str) -> None:
        self._logger.error(
            f"MongoDB error during {operation} on '{self.name}': {error}", exc_info=True
        )
        if isinstance(error, DuplicateKeyError):
            match = re.search(r"index: (\S+).* dup key: ({.*?})", str(error))
            index = match.group(1) if match else "unknown"
            key = match.group(2) if match else "unknown"
            raise KeyAlreadyExistsException(
                f"Duplicate key error on index '{index}'. Key: {key}",
                operation=operation,
                collection=self.name,
            ) from error
        raise BackendException(
            f"MongoDB error: {error}", operation=operation, collection=self.name
        ) from error

    # --- Writes ---

    async def insert_one(self, document: Document, logger: LoggerAdapter) -> Any:
        if document.get(self.id_field) is None:
            document.pop(self.id_field, None)
        try:
            result = await self._collection.insert_one(document)
        except PyMongoError as e:
            self._handle_db_error(e, "insert_one")
        document[self.id_field] = result.inserted_id
        logger.debug(f"Inserted document {result.inserted_id!r} into '{self.name}'")
        return result.inserted_id

    async def insert_many(
        self, documents: List[Document], logger: LoggerAdapter, ordered: bool = False
    ) -> Dict[int, Exception]:
        if not documents:
            return {}
        for document in documents:
            if document.get(self.id_field) is None:
                document.pop(self.id_field, None)
        failures: Dict[int, Exception] = {}
        try:
            await self._collection.insert_many(documents, ordered=ordered)
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            for write_error in write_errors:
                exc_type = (
                    KeyAlreadyExistsException
                    if write_error.get("code") == DUPLICATE_KEY_CODE
                    else BackendException
                )
                failures[write_error["index"]] = exc_type(
                    write_error.get("errmsg", "Write failed"),
                    operation="insert_many",
                    collection=self.name,
                )
            if ordered and write_errors:
                first_failure = min(failures)
                skipped = BackendException(
                    "Not attempted after an earlier failure",
                    operation="insert_many",
                    collection=self.name,
                )
                for later in range(first_failure + 1, len(documents)):
                    failures.setdefault(later, skipped)
            self._logger.warning(
                f"insert_many into '{self.name}' reported {len(write_errors)} write errors"
            )
        except PyMongoError as e:
            self._handle_db_error(e, "insert_many")
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
        replacement = {k: v for k, v in document.items() if k != self.id_field}
        try:
            result = await self._collection.replace_one(
                {self.id_field: document_id}, replacement, upsert=upsert
            )
        except PyMongoError as e:
            self._handle_db_error(e, "replace_one")
        logger.debug(
            f"replace_one {document_id!r} in '{self.name}': matched={result.matched_count}, "
            f"upserted={result.upserted_id!r}"
        )
        return result.matched_count > 0 or result.upserted_id is not None

    async def update_many(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        logger: LoggerAdapter,
    ) -> int:
        query_filter = translate_expression(query)
        logger.debug(f"MongoDB update_many filter: {query_filter}, $set: {fields}")
        try:
            result = await self._collection.update_many(query_filter, {"$set": fields})
        except PyMongoError as e:
            self._handle_db_error(e, "update_many")
        return result.matched_count

    async def find_one_and_update(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        query_filter = translate_expression(query)
        logger.debug(f"MongoDB find_one_and_update filter: {query_filter}, $set: {fields}")
        try:
            return await self._collection.find_one_and_update(
                query_filter,
                {"$set": fields},
                projection=translate_projection(projection),
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            self._handle_db_error(e, "find_one_and_update")

    async def find_one_and_delete(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        query_filter = translate_expression(query)
        logger.debug(f"MongoDB find_one_and_delete filter: {query_filter}")
        try:
            return await self._collection.find_one_and_delete(
                query_filter, projection=translate_projection(projection)
            )
        except PyMongoError as e:
            self._handle_db_error(e, "find_one_and_delete")

    async def delete_many(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        query_filter = translate_expression(query)
        logger.debug(f"MongoDB delete_many filter: {query_filter}")
        try:
            result = await self._collection.delete_many(query_filter)
        except PyMongoError as e:
            self._handle_db_error(e, "delete_many")
        return result.deleted_count

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
        query_filter = translate_expression(query)
        mongo_sort = translate_sort(sort)
        logger.debug(
            f"MongoDB find filter: {query_filter}, sort: {mongo_sort}, "
            f"skip: {skip}, limit: {limit}"
        )
        try:
            cursor = self._collection.find(query_filter, translate_projection(projection))
            if mongo_sort:
                cursor = cursor.sort(mongo_sort)
            if skip > 0:
                cursor = cursor.skip(skip)
            if limit > 0:
                cursor = cursor.limit(limit)
            return [document async for document in cursor]
        except PyMongoError as e:
            self._handle_db_error(e, "find")

    async def count(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        query_filter = translate_expression(query)
        try:
            count_val = await self._collection.count_documents(query_filter)
        except PyMongoError as e:
            self._handle_db_error(e, "count")
        logger.debug(f"Counted {count_val} documents in '{self.name}'")
        return int(count_val)


class MongoDocumentStore(DocumentStore):
    """Document store backed by a MongoDB database reached through Motor."""

    def __init__(self, client: AsyncIOMotorClient, database_name: str):
        """
        Args:
            client: An instance of AsyncIOMotorClient.
            database_name: The name of the MongoDB database.
        """
        if not isinstance(client, AsyncIOMotorClient):
            raise TypeError("client must be an instance of AsyncIOMotorClient")
        self._client = client
        self._database_name = database_name
        self._db: AsyncIOMotorDatabase = client[database_name]
        base_logger.info(f"MongoDB document store created for database '{database_name}'")

    def select_collection(self, name: str, id_field: str = "_id") -> MongoDocumentCollection:
        if not name:
            raise RequestException("A collection name is required.")
        return MongoDocumentCollection(self._db[name], name, id_field=id_field)
