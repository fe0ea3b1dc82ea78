from typing import Any

from pydantic import BaseModel
from pydantic.fields import FieldInfo


class RequiredFieldError(ValueError):
    """
    A required field holds its zero value.

    field is the dotted wire path (e.g. "shipping.carrier"), name the dotted
    field title (e.g. "Shipping.Carrier").
    """

    def __init__(self, field: str, name: str, message: str):
        self.field = field
        self.name = name
        super().__init__(message)


def _is_zero(value: Any) -> bool:
    """Return True if value equals the zero value of its type."""
    if value is None:
        return True
    if isinstance(value, BaseModel):
        return all(
            _field_is_zero(field_info, getattr(value, name))
            for name, field_info in type(value).model_fields.items()
        )
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if isinstance(value, (bool, int, float)):
        return value == 0
    return False


def _field_is_zero(field_info: FieldInfo, value: Any) -> bool:
    # Any-typed fields hold arbitrary JSON; their zero value is null only
    if field_info.annotation is Any:
        return value is None
    return _is_zero(value)


def validate_required_fields(record: BaseModel, _prefix: str = '', _name_prefix: str = '') -> None:
    """
    Check that every field of a record holds a non-zero value.

    Fields are visited in declaration order and nested records are checked
    recursively. Only the first failure is reported. Lists are not traversed,
    and an empty list counts as missing, as do 0, False and "". A field typed
    Any is missing only when null.

    Args:
        record: A single model instance

    Raises:
        TypeError: if record is not a model instance
        RequiredFieldError: naming the first field without a value
    """
    if not isinstance(record, BaseModel):
        raise TypeError(f"record must be a model instance, got {type(record).__name__}")

    for name, field_info in type(record).model_fields.items():
        value = getattr(record, name)
        path = f"{_prefix}{field_info.alias or name}"
        title = f"{_name_prefix}{field_info.title or name}"

        if _field_is_zero(field_info, value):
            raise RequiredFieldError(path, title, f"field {title} ({path}) is required and cannot be zero")

        if isinstance(value, str) and len(value) == 0:
            raise RequiredFieldError(path, title, f"field {title} ({path}) must be a non-empty string")

        if isinstance(value, BaseModel):
            validate_required_fields(value, _prefix=f"{path}.", _name_prefix=f"{title}.")
