"""
Shared pytest fixtures for mongo-spine tests.

This module provides:
- ``FakeCursor``: an in-memory stand-in for ``pymongo.cursor.Cursor``
- ``FakeExecutor``: a query executor that records queries and serves
  ``CursorStream`` objects over canned documents
- Logging isolation so CLI runs do not leave structlog writing to a
  closed capture stream
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

import pytest
import structlog

from mongo_spine.framework.sources.stream import CursorStream


class FakeCursor:
    """Iterates canned documents; optionally fails after ``fail_after`` reads."""

    def __init__(
        self,
        documents: Iterable[Mapping[str, Any]] = (),
        *,
        fail_after: int | None = None,
        error: Exception | None = None,
    ):
        self._documents = list(documents)
        self._position = 0
        self._fail_after = fail_after
        self._error = error
        self.close_count = 0
        self.reads = 0

    def __iter__(self) -> FakeCursor:
        return self

    def __next__(self) -> Mapping[str, Any]:
        if self._fail_after is not None and self.reads >= self._fail_after:
            assert self._error is not None
            raise self._error
        if self._position >= len(self._documents):
            raise StopIteration
        document = self._documents[self._position]
        self._position += 1
        self.reads += 1
        return document

    def close(self) -> None:
        self.close_count += 1


class FakeExecutor:
    """Serves streams over per-collection documents and records each query.

    ``documents`` is either a list (same documents for every query) or a
    callable ``(query) -> list`` for query-dependent results.
    """

    def __init__(self, documents: Any = (), *, error: Exception | None = None):
        self._documents = documents
        self._error = error
        self.queries: list[str] = []
        self.cursors: list[FakeCursor] = []
        self.flatten_args: list[bool | None] = []

    def execute(
        self, query: str, collection: str, *, flatten: bool | None = None
    ) -> CursorStream:
        self.queries.append(query)
        self.flatten_args.append(flatten)
        if self._error is not None:
            raise self._error
        documents = self._documents(query) if callable(self._documents) else self._documents
        cursor = FakeCursor(documents)
        self.cursors.append(cursor)
        return CursorStream(cursor, flatten=True if flatten is None else flatten, name=collection)


@pytest.fixture
def fake_cursor_factory():
    """Build ``FakeCursor`` objects inside a test."""
    return FakeCursor


@pytest.fixture
def fake_executor_factory():
    """Build ``FakeExecutor`` objects inside a test."""
    return FakeExecutor


@pytest.fixture(autouse=True)
def _isolate_logging():
    """Restore structlog defaults and root handlers after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep ``MONGO_SPINE_*`` variables from the outer shell out of tests."""
    for key in list(os.environ):
        if key.startswith("MONGO_SPINE_"):
            monkeypatch.delenv(key, raising=False)
