"""
Value kinds for store documents.

Documents read from MongoDB hold ``None``, scalars, ``ObjectId``, nested
documents and lists. ``classify`` is the one place that inspects the Python
type of such a value; everything else (path enumeration, resolution,
serialization) matches on the returned ``ValueKind``.

Examples:
    >>> classify([1, 2])
    <ValueKind.LIST: 'list'>
    >>> classify({"a": 1})
    <ValueKind.DOCUMENT: 'document'>
    >>> bool(ABSENT)
    False
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Final

from bson import ObjectId
from bson.decimal128 import Decimal128


class ValueKind(str, Enum):
    """Tag of a document value."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"
    IDENTIFIER = "identifier"
    LIST = "list"
    DOCUMENT = "document"
    SCALAR = "scalar"  # any other BSON scalar: datetime, Binary, Regex, ...

    @property
    def is_container(self) -> bool:
        return self in (ValueKind.LIST, ValueKind.DOCUMENT)


def classify(value: Any) -> ValueKind:
    """Return the kind of a document value."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float, Decimal128)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, ObjectId):
        return ValueKind.IDENTIFIER
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    if isinstance(value, Mapping):
        return ValueKind.DOCUMENT
    return ValueKind.SCALAR


class _Absent:
    """Result of resolving a field path that does not exist."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Final = _Absent()


__all__ = ["ValueKind", "classify", "ABSENT"]
