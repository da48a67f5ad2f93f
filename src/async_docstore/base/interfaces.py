# src/async_docstore/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, Dict, List, Optional

from async_docstore.base.projection import FieldProjection, SortSpec
from async_docstore.base.query import QueryExpression

Document = Dict[str, Any]


class DocumentCollection(ABC):
    """
    Native operations on one collection of a schema-less document store.

    Queries are backend-neutral QueryExpression trees (None matches every
    document); each implementation translates them to its own query form.
    Documents carry their identifier under `id_field` in native form.
    Implementations raise BackendException (or KeyAlreadyExistsException) for
    store failures and never return partial results silently.
    """

    def __init__(self, name: str, id_field: str = "_id"):
        self._name = name
        self._id_field = id_field

    @property
    def name(self) -> str:
        """The collection name."""
        return self._name

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def supports_concurrency(self) -> bool:
        """Whether several operations may be in flight on this collection at once."""
        return True

    # --- Writes ---

    @abstractmethod
    async def insert_one(self, document: Document, logger: LoggerAdapter) -> Any:
        """
        Insert a new document, generating a native id when none is set.

        Returns:
            The identifier of the inserted document. The id is also written
            into `document`.

        Raises:
            KeyAlreadyExistsException: If a document with the same id exists.
        """
        pass

    @abstractmethod
    async def insert_many(
        self, documents: List[Document], logger: LoggerAdapter, ordered: bool = False
    ) -> Dict[int, Exception]:
        """
        Insert several documents, generating ids where missing.

        Args:
            documents: Documents to insert; generated ids are written into them.
            logger: Logger adapter for recording operations.
            ordered: If True, stop at the first failure. Documents after it are
                     reported as not attempted.

        Returns:
            A mapping of input position to the exception that prevented that
            document from being written. Empty when every insert succeeded.
        """
        pass

    @abstractmethod
    async def replace_one(
        self,
        document_id: Any,
        document: Document,
        logger: LoggerAdapter,
        upsert: bool = False,
    ) -> bool:
        """
        Replace the body of the document with `document_id`.

        Returns:
            True if a document was replaced or inserted, False if nothing
            matched and `upsert` is False.
        """
        pass

    @abstractmethod
    async def update_many(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        logger: LoggerAdapter,
    ) -> int:
        """
        Set `fields` on every document matching `query`.

        Returns:
            The number of matched documents.
        """
        pass

    @abstractmethod
    async def find_one_and_update(
        self,
        query: Optional[QueryExpression],
        fields: Document,
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        """
        Atomically set `fields` on the first matching document and return it
        as it is after the change, or None when nothing matched.
        """
        pass

    @abstractmethod
    async def find_one_and_delete(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        """
        Atomically remove the first matching document and return it, or None
        when nothing matched.
        """
        pass

    @abstractmethod
    async def delete_many(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        """
        Remove every document matching `query`.

        Returns:
            The number of removed documents.
        """
        pass

    # --- Reads ---

    @abstractmethod
    async def find(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Document]:
        """
        Return the documents matching `query`.

        Args:
            query: Predicate tree, or None for every document.
            projection: Fields to return.
            logger: Logger adapter for recording operations.
            sort: Optional ordering; insertion order of its keys is precedence.
            skip: Number of matching documents to skip.
            limit: Maximum number of documents to return; 0 means no limit.
        """
        pass

    async def find_one(
        self,
        query: Optional[QueryExpression],
        projection: FieldProjection,
        logger: LoggerAdapter,
    ) -> Optional[Document]:
        """
        Return the first document matching `query`, or None.

        This default implementation reuses `find` with a limit of one.
        """
        documents = await self.find(query, projection, logger, limit=1)
        return documents[0] if documents else None

    @abstractmethod
    async def count(
        self, query: Optional[QueryExpression], logger: LoggerAdapter
    ) -> int:
        """Count the documents matching `query`, ignoring skip and limit."""
        pass


class DocumentStore(ABC):
    """A connected document store handing out collection handles."""

    @abstractmethod
    def select_collection(self, name: str, id_field: str = "_id") -> DocumentCollection:
        """
        Return a handle for the named collection. Does not create it.

        Args:
            name: The collection name.
            id_field: Name of the identifier field in stored documents.
        """
        pass
