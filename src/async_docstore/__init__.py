# src/async_docstore/__init__.py

"""
Async Document Store Library Initialization.

This package provides record-level CRUD over schema-less document stores:
filter strings compiled to predicate trees, identifier normalization between
external and native forms, and backend implementations for MongoDB and for
process memory.

It initializes a logger with a NullHandler and makes the record service,
exceptions, query types and store implementations available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import DocumentCollection, DocumentStore
from .base.exceptions import (
    BackendException,
    KeyAlreadyExistsException,
    ObjectNotFoundException,
    RequestException,
)

# --------------------------------------------------------------------------
# Query and Request Normalization Exports
# --------------------------------------------------------------------------
from .base.query import (
    PatternMatch,
    QueryExpression,
    QueryFilter,
    QueryLogical,
    QueryNot,
    QueryOperator,
    QueryPattern,
    QueryRaw,
)
from .base.filter_parser import compile_filter
from .base.literals import infer_literal
from .base.identifiers import IdentifierNormalizer
from .base.options import BatchOptions, RetrieveOptions

# --------------------------------------------------------------------------
# Service and Store Implementation Exports
# --------------------------------------------------------------------------
from .record_service import RecordError, RecordPage, RecordService
from .db_implementations.mongodb_store import MongoDocumentStore
from .db_implementations.memory_store import MemoryDocumentStore

__all__ = [
    # Core
    "DocumentCollection",
    "DocumentStore",
    "RecordService",
    "RecordError",
    "RecordPage",
    # Exceptions
    "RequestException",
    "ObjectNotFoundException",
    "BackendException",
    "KeyAlreadyExistsException",
    # Query
    "compile_filter",
    "infer_literal",
    "QueryExpression",
    "QueryFilter",
    "QueryLogical",
    "QueryNot",
    "QueryOperator",
    "QueryPattern",
    "QueryRaw",
    "PatternMatch",
    # Identifiers and options
    "IdentifierNormalizer",
    "RetrieveOptions",
    "BatchOptions",
    # Implementations
    "MongoDocumentStore",
    "MemoryDocumentStore",
    # Logging
    "logger",
]

__version__ = "0.1.0"
