# tests/test_delete.py

import pytest
from bson import ObjectId

from async_docstore.base.exceptions import (ObjectNotFoundException,
                                            RequestException)
from async_docstore.record_service import RecordError


async def test_delete_record_by_id_returns_removed_record(service, people, logger):
    removed = await service.delete_record_by_id("people", people[0]["_id"], logger)
    assert removed["name"] == "Ann"
    with pytest.raises(ObjectNotFoundException):
        await service.retrieve_record_by_id("people", people[0]["_id"], logger)


async def test_delete_record_by_id_unknown(service, logger):
    with pytest.raises(ObjectNotFoundException):
        await service.delete_record_by_id("people", str(ObjectId()), logger)


async def test_delete_record_by_id_requires_id(service, logger):
    with pytest.raises(RequestException):
        await service.delete_record_by_id("people", "", logger)


async def test_delete_record_uses_payload_id(service, people, logger):
    removed = await service.delete_record(
        "people", {"id": people[1]["_id"], "name": "whatever"}, logger, fields="name"
    )
    assert removed == {"_id": people[1]["_id"], "name": "Bob"}


async def test_delete_records_by_filter(service, people, logger):
    removed = await service.delete_records_by_filter("people", "age < 30", logger)
    assert {r["name"] for r in removed} == {"Bob", "Dan"}
    page = await service.retrieve_records_by_filter("people", logger, options={"include_count": True})
    assert page.meta["count"] == 2


@pytest.mark.parametrize("empty_filter", [None, "", "   "])
async def test_delete_records_by_filter_refuses_empty_filter(service, people, logger, empty_filter):
    with pytest.raises(RequestException):
        await service.delete_records_by_filter("people", empty_filter, logger)
    page = await service.retrieve_records_by_filter("people", logger)
    assert len(page.records) == len(people)


async def test_delete_records_by_filter_rejects_unparsed_segment(service, people, logger):
    with pytest.raises(RequestException):
        await service.delete_records_by_filter("people", "age < 30 or everything", logger)
    page = await service.retrieve_records_by_filter("people", logger)
    assert len(page.records) == len(people)


async def test_delete_records_by_ids_marks_unknown(service, people, logger):
    missing = str(ObjectId())
    results = await service.delete_records_by_ids(
        "people", [people[2]["_id"], missing], logger, fields="_id"
    )
    assert results[0] == {"_id": people[2]["_id"]}
    assert isinstance(results[1], RecordError)
    assert isinstance(results[1].error, ObjectNotFoundException)

    remaining = await service.retrieve_records_by_filter("people", logger)
    assert people[2]["_id"] not in {r["_id"] for r in remaining.records}


async def test_delete_records_from_payloads(service, people, logger):
    removed = await service.delete_records("people", people[:2], logger)
    assert [r["name"] for r in removed] == ["Ann", "Bob"]
    remaining = await service.retrieve_records_by_filter("people", logger)
    assert {r["name"] for r in remaining.records} == {"Cara", "Dan"}
