"""Tagged field updates for partial (PUT/PATCH-style) edits.

A request field is in exactly one of three states:

    Unset      - not present in the body, leave the stored value alone
    Clear      - present as null or "", remove an optional value
    Set(value) - present with a value, store it

Keeping the three apart avoids guessing between "not provided" and
"provided as empty".
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel

T = TypeVar("T")


class Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"


class Clear:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CLEAR"


@dataclass(frozen=True)
class Set(Generic[T]):
    value: T


UNSET = Unset()
CLEAR = Clear()

FieldUpdate = Union[Unset, Clear, Set[T]]


def field_update(model: BaseModel, name: str) -> FieldUpdate:
    """Classify one field of a parsed request body."""
    if name not in model.model_fields_set:
        return UNSET
    value: Any = getattr(model, name)
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return CLEAR
    return Set(value)
