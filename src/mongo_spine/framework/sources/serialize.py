"""Transport-safe encoding of resolved document values.

Nested documents collapse to one relaxed Extended JSON string (field order as
stored), so a flat schema can hold them at the cost of structure.
"""

from __future__ import annotations

from typing import Any

from bson import json_util

from mongo_spine.core.values import ValueKind, classify


def serialize_value(value: Any) -> Any:
    """Map a store value to a scalar, a list, or a JSON string. Never fails."""
    match classify(value):
        case ValueKind.NULL:
            return None
        case ValueKind.LIST:
            return [serialize_value(item) for item in value]
        case ValueKind.DOCUMENT:
            try:
                return json_util.dumps(value, json_options=json_util.RELAXED_JSON_OPTIONS)
            except (TypeError, ValueError):
                # only reachable for hand-built mappings holding non-BSON values
                return str(dict(value))
        case ValueKind.IDENTIFIER:
            return str(value)
        case _:
            return value


__all__ = ["serialize_value"]
