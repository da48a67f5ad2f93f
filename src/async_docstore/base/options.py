# src/async_docstore/base/options.py
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .exceptions import RequestException

O = TypeVar("O", bound="OperationOptions")


class OperationOptions(BaseModel):
    """Base for per-operation options. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    @classmethod
    def coerce(cls: Type[O], value: Union[O, Mapping[str, Any], None]) -> O:
        """
        Accept an options instance, a plain mapping or None. Invalid values
        and unrecognized keys are reported as a RequestException.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise RequestException(
                f"{cls.__name__} must be given as a mapping, got {type(value).__name__}"
            )
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
                for err in e.errors()
            )
            raise RequestException(f"Invalid {cls.__name__}: {problems}") from e


class RetrieveOptions(OperationOptions):
    """Options recognized by retrieve_records_by_filter."""

    limit: int = Field(default=0, ge=0)
    offset: int = Field(default=0, ge=0)
    sort: Optional[Union[str, List[Union[str, Tuple[str, Any]]]]] = Field(
        default=None, validation_alias=AliasChoices("sort", "order")
    )
    include_count: bool = Field(
        default=False, validation_alias=AliasChoices("include_count", "includeCount")
    )


class BatchOptions(OperationOptions):
    """
    Options recognized by the record-by-record batch operations.

    rollback=True stops the batch at the first failing record and raises.
    Records written before the failure stay written: this is not a
    transaction, only a refusal to continue past an error.
    """

    rollback: bool = False
