"""
Pull-based flat-record stream over a MongoDB cursor.

``CursorStream`` owns the cursor it wraps. The cursor is closed exactly once:
the moment exhaustion is detected, when the cursor raises, or on ``close()``
(also called by ``with`` blocks). There is no finalizer; a stream that is
abandoned without being exhausted or closed keeps its server-side cursor
until the server times it out.

Each pulled document becomes one flat record:

    flatten=True   keys = enumerate_paths(doc)   {"a.b": 1, "a.c.0.d": 2}
    flatten=False  keys = top-level keys         {"a": '{"b": 1, ...}'}

Usage:
    with data_source.execute(query, "orders") as stream:
        for record in stream:
            index(record)

    # explicit pull contract
    while stream.has_next():
        record = stream.next_record()
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterator, Protocol

from bson.errors import BSONError
from pymongo.errors import PyMongoError

from mongo_spine.core.errors import StreamExhaustedError, StreamFaultError
from mongo_spine.core.logging import get_logger
from mongo_spine.framework.sources.flatten import enumerate_paths, trace_path
from mongo_spine.framework.sources.serialize import serialize_value

logger = get_logger(__name__)

FlatRecord = dict[str, Any]


def to_flat_record(document: Mapping[str, Any], *, flatten: bool = True) -> FlatRecord:
    """Project one document onto flat keys with transport-safe values."""
    record: FlatRecord = {}
    if not flatten:
        for key, value in document.items():
            record[key] = serialize_value(value)
        return record

    for path in enumerate_paths(document):
        resolution = trace_path(document, path)
        if resolution.issue is not None and resolution.issue.is_bad_index:
            logger.warning(
                "invalid_array_index",
                path=path,
                segment=resolution.issue.segment,
                reason=resolution.issue.reason,
            )
        record[path] = serialize_value(resolution.value) if resolution.found else None
    return record


class DocumentCursor(Protocol):
    """The part of ``pymongo.cursor.Cursor`` the stream relies on."""

    def __next__(self) -> Mapping[str, Any]: ...

    def close(self) -> None: ...


class CursorStream:
    """Wraps a cursor as a sequence of flat records.

    Args:
        cursor: Open cursor; ownership passes to the stream
        flatten: Enumerate nested paths (True) or keep top-level keys (False)
        name: Label used in log events, usually the collection name
    """

    def __init__(
        self,
        cursor: DocumentCursor,
        *,
        flatten: bool = True,
        name: str | None = None,
    ):
        self._cursor: DocumentCursor | None = cursor
        self._flatten = flatten
        self._name = name
        self._pending: Mapping[str, Any] | None = None
        self.records_emitted = 0

    @property
    def flatten(self) -> bool:
        return self._flatten

    @property
    def closed(self) -> bool:
        return self._cursor is None

    def has_next(self) -> bool:
        """Whether another record is available.

        Reads at most one document ahead. Closes the cursor as soon as it is
        found exhausted.

        Raises:
            StreamFaultError: The cursor failed; it has been closed
        """
        if self._pending is not None:
            return True
        if self._cursor is None:
            return False

        try:
            self._pending = next(self._cursor)
        except StopIteration:
            self.close()
            return False
        except (PyMongoError, BSONError) as exc:
            self.close()
            raise StreamFaultError(
                f"Cursor failed while reading: {exc}", cause=exc
            ).with_context(collection=self._name) from exc
        return True

    def next_record(self) -> FlatRecord:
        """Pull the next flat record.

        Raises:
            StreamExhaustedError: No record is available
            StreamFaultError: The cursor failed while reading ahead
        """
        if not self.has_next():
            raise StreamExhaustedError("No more records available").with_context(
                collection=self._name
            )
        document, self._pending = self._pending, None
        record = to_flat_record(document, flatten=self._flatten)
        self.records_emitted += 1
        return record

    def close(self) -> None:
        """Release the cursor. Safe to call more than once."""
        cursor, self._cursor = self._cursor, None
        self._pending = None
        if cursor is None:
            return
        try:
            cursor.close()
        except PyMongoError as exc:
            logger.warning("cursor_close_failed", collection=self._name, error=str(exc))
        logger.debug(
            "cursor_closed", collection=self._name, records_emitted=self.records_emitted
        )

    def __iter__(self) -> Iterator[FlatRecord]:
        return self

    def __next__(self) -> FlatRecord:
        if not self.has_next():
            raise StopIteration
        return self.next_record()

    def __enter__(self) -> CursorStream:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"CursorStream(name={self._name!r}, flatten={self._flatten}, {state})"


__all__ = ["CursorStream", "DocumentCursor", "FlatRecord", "to_flat_record"]
