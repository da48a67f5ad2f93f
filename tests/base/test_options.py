# tests/base/test_options.py

import pytest

from async_docstore.base.exceptions import RequestException
from async_docstore.base.options import BatchOptions, RetrieveOptions


def test_defaults():
    options = RetrieveOptions.coerce(None)
    assert options.limit == 0
    assert options.offset == 0
    assert options.sort is None
    assert options.include_count is False
    assert BatchOptions.coerce(None).rollback is False


def test_aliases_are_accepted():
    options = RetrieveOptions.coerce({"order": "name desc", "includeCount": True, "limit": 5})
    assert options.sort == "name desc"
    assert options.include_count is True
    assert options.limit == 5


def test_instance_passes_through():
    options = BatchOptions(rollback=True)
    assert BatchOptions.coerce(options) is options


@pytest.mark.parametrize(
    "value",
    [
        {"limit": -1},
        {"offset": "many"},
        {"unknown_key": 1},
        "limit=5",
    ],
)
def test_invalid_options_raise_request_exception(value):
    with pytest.raises(RequestException):
        RetrieveOptions.coerce(value)


def test_batch_options_reject_unknown_keys():
    with pytest.raises(RequestException):
        BatchOptions.coerce({"rollback": True, "atomic": True})
