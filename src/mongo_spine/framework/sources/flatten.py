"""
Dotted field paths for nested documents.

``enumerate_paths`` turns a document into the set of flat field paths an
indexing schema can address; ``resolve_path`` reads the value behind one
path. They are independent of how leaf values are later encoded (see
``serialize``), so the addressing scheme can be checked on its own.

Addressing rules:
    - nested documents are descended: ``{"a": {"b": 1}}`` -> ``a.b``
    - a list of scalars is one path, kept whole: ``{"tags": ["x", "y"]}``
      -> ``tags``
    - a list holding documents or lists is addressed per index:
      ``{"a": [{"d": 2}]}`` -> ``a.0.d``; an inner list only gets its index
      path (``m.0``) and is not expanded further; scalar elements of such a
      mixed list get no path
    - everything else, ``None`` included, is a leaf

Examples:
    >>> doc = {"a": {"b": 1, "c": [{"d": 2}]}}
    >>> sorted(enumerate_paths(doc))
    ['a.b', 'a.c.0.d']
    >>> resolve_path(doc, "a.c.0.d")
    2
    >>> resolve_path(doc, "a.c.5.d")
    ABSENT
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from mongo_spine.core.values import ABSENT, ValueKind, classify

PATH_SEPARATOR = "."


@dataclass(frozen=True)
class MalformedPathAccess:
    """Why a path walk stopped early. Reported, never raised."""

    path: str
    segment: str
    reason: str

    @property
    def is_bad_index(self) -> bool:
        return self.reason in ("non_numeric_index", "index_out_of_range")


@dataclass(frozen=True)
class PathResolution:
    """Outcome of walking a field path through a document."""

    value: Any
    issue: MalformedPathAccess | None = None

    @property
    def found(self) -> bool:
        return self.value is not ABSENT


def enumerate_paths(doc: Mapping[str, Any]) -> set[str]:
    """Return every addressable flat field path of ``doc``."""
    paths: set[str] = set()
    _collect_paths(doc, None, paths)
    return paths


def _collect_paths(doc: Mapping[str, Any], parent: str | None, paths: set[str]) -> None:
    for key, value in doc.items():
        current = key if parent is None else f"{parent}{PATH_SEPARATOR}{key}"

        match classify(value):
            case ValueKind.DOCUMENT:
                _collect_paths(value, current, paths)
            case ValueKind.LIST:
                if any(classify(item).is_container for item in value):
                    _collect_indexed(value, current, paths)
                else:
                    paths.add(current)
            case _:
                paths.add(current)


def _collect_indexed(items: Any, current: str, paths: set[str]) -> None:
    for index, item in enumerate(items):
        indexed = f"{current}{PATH_SEPARATOR}{index}"
        match classify(item):
            case ValueKind.DOCUMENT:
                _collect_paths(item, indexed, paths)
            case ValueKind.LIST:
                # two-dimensional arrays are address-only
                paths.add(indexed)
            case _:
                pass


def trace_path(doc: Mapping[str, Any], path: str) -> PathResolution:
    """Walk ``path`` through ``doc``, reporting why it stopped if it did."""
    segments = path.split(PATH_SEPARATOR)
    value: Any = doc.get(segments[0], ABSENT)

    for segment in segments[1:]:
        if value is ABSENT:
            break

        match classify(value):
            case ValueKind.LIST:
                if not (segment.isascii() and segment.isdigit()):
                    return PathResolution(
                        ABSENT, MalformedPathAccess(path, segment, "non_numeric_index")
                    )
                index = int(segment)
                if index >= len(value):
                    return PathResolution(
                        ABSENT, MalformedPathAccess(path, segment, "index_out_of_range")
                    )
                value = value[index]
            case ValueKind.DOCUMENT:
                value = value.get(segment, ABSENT)
            case _:
                return PathResolution(
                    ABSENT, MalformedPathAccess(path, segment, "not_a_container")
                )

    return PathResolution(value)


def resolve_path(doc: Mapping[str, Any], path: str) -> Any:
    """Return the value at ``path`` or ``ABSENT``. Never raises."""
    return trace_path(doc, path).value


__all__ = [
    "MalformedPathAccess",
    "PathResolution",
    "enumerate_paths",
    "resolve_path",
    "trace_path",
]
