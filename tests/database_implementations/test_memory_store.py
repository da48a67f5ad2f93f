# tests/database_implementations/test_memory_store.py

import asyncio

import pytest
from bson import ObjectId

from async_docstore.base.exceptions import (BackendException,
                                            KeyAlreadyExistsException,
                                            RequestException)
from async_docstore.base.interfaces import DocumentStore
from async_docstore.base.projection import FieldProjection
from async_docstore.base.query import (QueryFilter, QueryOperator,
                                       QueryPattern, QueryRaw)
from async_docstore.db_implementations.memory_store import (
    MemoryDocumentCollection, MemoryDocumentStore, matches)
from async_docstore.record_service import RecordService

DOC = {"_id": 1, "name": "Ann", "age": 34, "tags": ["a", "b"], "meta": {"level": 2}, "nothing": None}


@pytest.mark.parametrize(
    "expression, expected",
    [
        (QueryFilter("age", QueryOperator.EQ, 34), True),
        (QueryFilter("age", QueryOperator.EQ, 34.0), True),
        (QueryFilter("age", QueryOperator.EQ, "34"), False),
        (QueryFilter("age", QueryOperator.GT, "1"), False),
        (QueryFilter("tags", QueryOperator.EQ, "a"), True),
        (QueryFilter("tags", QueryOperator.IN, ["z", "b"]), True),
        (QueryFilter("tags", QueryOperator.NIN, ["b"]), False),
        (QueryFilter("tags", QueryOperator.ALL, ["a", "b"]), True),
        (QueryFilter("tags", QueryOperator.ALL, ["a", "c"]), False),
        (QueryFilter("meta.level", QueryOperator.GTE, 2), True),
        (QueryFilter("missing", QueryOperator.EQ, None), True),
        (QueryFilter("missing", QueryOperator.NE, 5), True),
        (QueryFilter("missing", QueryOperator.LT, 5), False),
        (QueryFilter("nothing", QueryOperator.EQ, None), True),
        (QueryFilter("active", QueryOperator.EQ, 1), False),
        (QueryPattern("name", "^A"), True),
        (QueryPattern("age", "3"), False),
    ],
)
def test_matches(expression, expected):
    assert matches(DOC, expression) is expected


def test_bool_is_not_a_number():
    assert not matches({"flag": True}, QueryFilter("flag", QueryOperator.EQ, 1))
    assert matches({"flag": True}, QueryFilter("flag", QueryOperator.EQ, True))


def test_raw_segment_is_rejected():
    with pytest.raises(RequestException):
        matches(DOC, QueryRaw("oops"))


async def test_insert_generates_object_id(logger):
    collection = MemoryDocumentStore().select_collection("things")
    document = {"name": "x"}
    new_id = await collection.insert_one(document, logger)
    assert isinstance(new_id, ObjectId)
    assert document["_id"] == new_id


async def test_duplicate_insert(logger):
    collection = MemoryDocumentStore().select_collection("things")
    await collection.insert_one({"_id": "k"}, logger)
    with pytest.raises(KeyAlreadyExistsException):
        await collection.insert_one({"_id": "k"}, logger)


async def test_required_fields_apply_to_replace(logger):
    store = MemoryDocumentStore(required_fields={"things": ["name"]})
    collection = store.select_collection("things")
    await collection.insert_one({"_id": 1, "name": "x"}, logger)
    with pytest.raises(BackendException):
        await collection.replace_one(1, {"other": True}, logger)


async def test_id_field_is_immutable(logger):
    collection = MemoryDocumentStore().select_collection("things")
    await collection.insert_one({"_id": 1, "name": "x"}, logger)
    with pytest.raises(BackendException):
        await collection.update_many(None, {"_id": 2}, logger)


async def test_collections_share_state_across_handles(logger):
    store = MemoryDocumentStore()
    await store.select_collection("things").insert_one({"name": "x"}, logger)
    assert await store.select_collection("things").count(None, logger) == 1
    assert await store.select_collection("others").count(None, logger) == 0


async def test_find_returns_copies(logger):
    collection = MemoryDocumentStore().select_collection("things")
    await collection.insert_one({"_id": 1, "tags": ["a"]}, logger)
    found = await collection.find(None, FieldProjection("_id"), logger)
    found[0]["tags"].append("mutated")
    again = await collection.find_one(None, FieldProjection("_id"), logger)
    assert again["tags"] == ["a"]


async def test_ordered_insert_many_reports_skipped(logger):
    store = MemoryDocumentStore(required_fields={"things": ["name"]})
    collection = store.select_collection("things")
    failures = await collection.insert_many(
        [{"name": "a"}, {}, {"name": "c"}], logger, ordered=True
    )
    assert set(failures) == {1, 2}
    assert await collection.count(None, logger) == 1


async def test_concurrent_batch_keeps_input_order(logger):
    service = RecordService(MemoryDocumentStore(), max_concurrency=2)
    created = await service.create_records(
        "things", [{"_id": i, "n": i} for i in range(10)], logger
    )
    payload = [{"_id": i, "n": i * 10} for i in reversed(range(10))]
    results = await asyncio.gather(
        service.merge_records("things", payload[:5], logger),
        service.merge_records("things", payload[5:], logger),
    )
    flat = results[0] + results[1]
    assert [r["_id"] for r in flat] == [p["_id"] for p in payload]
    assert [r["n"] for r in flat] == [p["n"] for p in payload]
    assert len(created) == 10


def test_service_validates_constructor_arguments():
    with pytest.raises(TypeError):
        RecordService(object())
    with pytest.raises(ValueError):
        RecordService(MemoryDocumentStore(), max_concurrency=0)
    assert isinstance(MemoryDocumentStore(), DocumentStore)


async def test_id_only_projection_skips_read(logger, monkeypatch):
    reads = []
    original_find = MemoryDocumentCollection.find

    async def counting_find(self, *args, **kwargs):
        reads.append(args[0] if args else kwargs.get("query"))
        return await original_find(self, *args, **kwargs)

    monkeypatch.setattr(MemoryDocumentCollection, "find", counting_find)
    service = RecordService(MemoryDocumentStore())

    created = await service.create_records("things", [{"n": 1}, {"n": 2}], logger, fields="_id")
    updated = await service.update_record(
        "things", {"_id": created[0]["_id"], "n": 5}, logger, fields="_id"
    )
    assert updated == {"_id": created[0]["_id"]}
    assert reads == []

    await service.create_records("things", [{"n": 3}], logger)
    assert len(reads) == 1
