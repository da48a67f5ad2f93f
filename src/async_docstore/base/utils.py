import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Mapping

from .exceptions import RequestException

logger = logging.getLogger(__name__)


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses and container types to
    plain storage-compatible values.

    It handles:
    - Pydantic BaseModel instances (dumped by alias)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item)

    Backend-native values such as ObjectId or datetime are left untouched.

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            serialized = data.model_dump(by_alias=True)
        except TypeError as e:
            logger.debug(f"Error using model_dump(by_alias=True): {e}")
            serialized = data.model_dump()
        return prepare_for_storage(serialized)

    if isinstance(data, Mapping):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_for_storage(item) for item in data)

    if isinstance(data, set):
        return [prepare_for_storage(item) for item in data]

    return data


def _is_record_like(data: Any) -> bool:
    return isinstance(data, Mapping) or (
        not isinstance(data, type)
        and (is_dataclass(data) or callable(getattr(data, "model_dump", None)))
    )


def as_record(data: Any, message: str = "There are no record fields in the request.") -> Dict[str, Any]:
    """
    Convert one record payload to a plain dict.

    Raises:
        RequestException: If the payload is empty or not record shaped.
    """
    if not data or not _is_record_like(data):
        raise RequestException(message)
    record = prepare_for_storage(data)
    if not record:
        raise RequestException(message)
    return dict(record)


def as_record_list(data: Any) -> List[Dict[str, Any]]:
    """
    Normalize a batch payload to a list of plain dict records.

    A single record (a mapping, a dataclass or a Pydantic model) is wrapped in
    a list. Every element of a sequence must itself be record shaped.

    Raises:
        RequestException: If the payload is empty or contains non-records.
    """
    message = "There are no record sets in the request."
    if not data:
        raise RequestException(message)
    if _is_record_like(data):
        return [as_record(data, message)]
    if not isinstance(data, (list, tuple)):
        raise RequestException(message)
    records = []
    for index, item in enumerate(data):
        if not _is_record_like(item) or not item:
            raise RequestException(
                f"Record at position {index} is empty or not a set of fields."
            )
        records.append(as_record(item))
    return records
