# tests/conftest.py
import logging
import os
import uuid

import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from async_docstore.db_implementations.memory_store import MemoryDocumentStore
from async_docstore.db_implementations.mongodb_store import MongoDocumentStore
from async_docstore.record_service import RecordService

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)

# --- Constants ---
MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017")

# Collection whose documents must carry a "name" field.
VALIDATED_COLLECTION = "validated_people"
REQUIRED_FIELDS = {VALIDATED_COLLECTION: ["name"]}


# --- Availability Checks ---
def is_mongodb_available():
    """Check if a MongoDB server answers at MONGO_URI."""
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
        logging.info(f"MongoDB found and responsive at {MONGO_URI}")
        return True
    except PyMongoError as e:
        logging.warning(
            f"MongoDB not found or not responsive at {MONGO_URI}: {e}. "
            "Skipping MongoDB tests."
        )
        return False
    finally:
        client.close()


AVAILABLE_IMPLEMENTATIONS = ["memory"]
if is_mongodb_available():
    AVAILABLE_IMPLEMENTATIONS.append("mongodb")


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_docstore_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Store Fixtures ---


@pytest.fixture
def memory_store():
    return MemoryDocumentStore(required_fields=REQUIRED_FIELDS)


@pytest_asyncio.fixture
async def mongodb_store():
    """
    A MongoDB store on a throwaway database, dropped after the test. The
    validated collection gets a $jsonSchema validator requiring "name".
    """
    if "mongodb" not in AVAILABLE_IMPLEMENTATIONS:
        pytest.skip("MongoDB not available.")
    client = AsyncIOMotorClient(MONGO_URI)
    database_name = f"pytest_docstore_{uuid.uuid4().hex[:12]}"
    try:
        await client[database_name].create_collection(
            VALIDATED_COLLECTION,
            validator={"$jsonSchema": {"required": REQUIRED_FIELDS[VALIDATED_COLLECTION]}},
        )
        yield MongoDocumentStore(client, database_name)
    finally:
        await client.drop_database(database_name)
        client.close()


@pytest.fixture(params=AVAILABLE_IMPLEMENTATIONS)
def store(request):
    """Parametrized fixture returning each available store implementation."""
    impl_key = request.param
    if impl_key == "memory":
        return request.getfixturevalue("memory_store")
    elif impl_key == "mongodb":
        return request.getfixturevalue("mongodb_store")
    raise ValueError(f"Unknown store implementation key: {impl_key}")


@pytest.fixture
def service(store):
    return RecordService(store)


@pytest.fixture
def memory_service(memory_store):
    return RecordService(memory_store)


# --- Seed Data ---

PEOPLE = [
    {"name": "Ann", "age": 34, "tags": ["admin", "dev"], "city": "Boston"},
    {"name": "Bob", "age": 27, "tags": ["dev"], "city": "Austin"},
    {"name": "Cara", "age": 41, "tags": ["ops"], "city": "Boston"},
    {"name": "Dan", "age": 19, "tags": [], "city": "Denver"},
]


@pytest_asyncio.fixture
async def people(service, logger):
    """Stores PEOPLE in the 'people' collection and returns the created records."""
    return await service.create_records("people", [dict(p) for p in PEOPLE], logger)
