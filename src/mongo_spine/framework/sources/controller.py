"""
Phase-driven query controller.

One controller serves one entity (one collection) of an import run. It picks
the query template for the current synchronization phase, lets the host
context substitute ``${...}`` tokens, rewrites local date literals to UTC,
executes the query and pulls records from the resulting stream.

Phases:
    ::

        FULL_IMPORT      "query"             -> next_row()              flat records
        DELTA_DISCOVERY  "deltaQuery"        -> next_modified_row_key() {"_id": "..."}
        DELTA_IMPORT     "deltaImportQuery"  -> next_row()              flat records
        anything else    no query            -> None

The controller owns at most one live ``CursorStream``. Moving to another
phase closes the previous phase's stream before the new query runs. A
full or delta import stream that is exhausted is kept (closed) so further
``next_row()`` calls keep returning None without re-querying until
``reset()``; a delta discovery stream is released on exhaustion so the next
phase starts clean.

Usage:
    metrics = QueryMetrics()
    with PhaseController(context, data_source, metrics=metrics) as controller:
        for record in controller.rows():
            index(record)
    metrics.queries_executed
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import tzinfo
from typing import Any, Iterator, Protocol

from mongo_spine.core.errors import MissingConfigError, MongoSpineError
from mongo_spine.core.logging import LogContext, get_logger
from mongo_spine.core.temporal import DEFAULT_SOURCE_TZ, rewrite_datetimes
from mongo_spine.framework.sources.context import (
    COLLECTION,
    DELTA_IMPORT_QUERY,
    DELTA_QUERY,
    QUERY,
    ImportContext,
    SyncPhase,
)
from mongo_spine.framework.sources.stream import CursorStream, FlatRecord

logger = get_logger(__name__)

ID_FIELD = "_id"

# phase -> (entity attribute, message when missing)
PHASE_QUERIES: dict[SyncPhase, tuple[str, str]] = {
    SyncPhase.FULL_IMPORT: (QUERY, "query is required for full-import"),
    SyncPhase.DELTA_DISCOVERY: (DELTA_QUERY, "deltaQuery is required for delta-import"),
    SyncPhase.DELTA_IMPORT: (DELTA_IMPORT_QUERY, "deltaImportQuery is required for delta-import"),
}


class QueryExecutor(Protocol):
    """Anything that turns query text into a cursor stream (``MongoDataSource``)."""

    def execute(
        self, query: str, collection: str, *, flatten: bool | None = None
    ) -> CursorStream: ...


@dataclass
class QueryMetrics:
    """Counters for one import session, owned by the caller."""

    queries_executed: int = 0
    records_emitted: int = 0
    markers_emitted: int = 0
    markers_skipped: int = 0
    date_fallbacks: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class PhaseController:
    """Runs the active phase's query and hands out its records.

    Args:
        context: Host import context (phase, attributes, tokens)
        executor: Query executor, normally a ``MongoDataSource``
        metrics: Caller-owned counters; a private instance if omitted
        source_tz: Timezone of date literals in query text

    Raises:
        MissingConfigError: The entity has no ``collection`` attribute
    """

    def __init__(
        self,
        context: ImportContext,
        executor: QueryExecutor,
        *,
        metrics: QueryMetrics | None = None,
        source_tz: tzinfo = DEFAULT_SOURCE_TZ,
    ):
        collection = context.get_entity_attribute(COLLECTION)
        if collection is None or not collection.strip():
            raise MissingConfigError(
                COLLECTION, "Collection name must be specified for MongoDB entity"
            )
        self._context = context
        self._executor = executor
        self._collection = collection.strip()
        self._source_tz = source_tz
        self.metrics = metrics if metrics is not None else QueryMetrics()
        self._stream: CursorStream | None = None
        self._stream_phase: SyncPhase | None = None
        self.last_query: str | None = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def active_phase(self) -> SyncPhase | None:
        """Phase whose stream is currently held, if any."""
        return self._stream_phase if self._stream is not None else None

    def current_phase(self) -> SyncPhase | None:
        return SyncPhase.parse(self._context.current_phase)

    def query_for_phase(self, phase: SyncPhase | str | None) -> str | None:
        """Raw query template for ``phase``; None for unrecognized phases.

        Raises:
            MissingConfigError: The phase's attribute is absent or blank
        """
        parsed = SyncPhase.parse(phase)
        if parsed is None:
            return None
        return self._template(parsed)

    def _template(self, phase: SyncPhase) -> str:
        attribute, message = PHASE_QUERIES[phase]
        query = self._context.get_entity_attribute(attribute)
        if query is None or not query.strip():
            raise MissingConfigError(attribute, message)
        return query

    # ------------------------------------------------------------------ #
    # Record pulls
    # ------------------------------------------------------------------ #

    def next_row(self) -> FlatRecord | None:
        """Next flat record of a full or delta import; None when done.

        An exhausted stream is kept, so further calls keep returning None
        without querying again. Call ``reset()`` (or use ``rows()``) to run
        the query afresh, e.g. after the delta marker tokens changed.
        """
        phase = self.current_phase()
        if phase not in (SyncPhase.FULL_IMPORT, SyncPhase.DELTA_IMPORT):
            logger.debug(
                "no_rows_for_phase",
                collection=self._collection,
                phase=str(self._context.current_phase),
            )
            return None

        stream = self._stream_for(phase)
        try:
            if not stream.has_next():
                return None
            record = stream.next_record()
        except MongoSpineError as exc:
            self._release()
            raise exc.with_context(phase=phase.value, query=self.last_query)

        self.metrics.records_emitted += 1
        return record

    def rows(self) -> Iterator[FlatRecord]:
        """Run the current phase's query afresh and yield all its records."""
        self.reset()
        while (record := self.next_row()) is not None:
            yield record

    def next_modified_row_key(self) -> dict[str, str] | None:
        """Next change marker ``{"_id": "..."}`` of delta discovery.

        Rows without an identifier are skipped. Returns None, and releases
        the stream, once the discovery query is exhausted.
        """
        phase = self.current_phase()
        if phase is not SyncPhase.DELTA_DISCOVERY:
            return None

        stream = self._stream_for(phase, flatten=False)
        try:
            while stream.has_next():
                row = stream.next_record()
                identifier = row.get(ID_FIELD)
                if identifier is None:
                    self.metrics.markers_skipped += 1
                    logger.warning("delta_row_missing_id", collection=self._collection)
                    continue
                self.metrics.markers_emitted += 1
                logger.debug("delta_marker_found", collection=self._collection, id=identifier)
                return {ID_FIELD: str(identifier)}
        except MongoSpineError as exc:
            self._release()
            raise exc.with_context(phase=phase.value, query=self.last_query)

        self._release()
        logger.info(
            "delta_discovery_exhausted",
            collection=self._collection,
            markers=self.metrics.markers_emitted,
        )
        return None

    def modified_row_keys(self) -> Iterator[dict[str, str]]:
        """Yield every change marker of the delta discovery query."""
        while (marker := self.next_modified_row_key()) is not None:
            yield marker

    # ------------------------------------------------------------------ #
    # Stream ownership
    # ------------------------------------------------------------------ #

    def _stream_for(self, phase: SyncPhase, flatten: bool | None = None) -> CursorStream:
        if self._stream is not None and self._stream_phase is not phase:
            logger.debug(
                "stream_discarded",
                collection=self._collection,
                previous_phase=self._stream_phase.value if self._stream_phase else None,
                phase=phase.value,
            )
            self._release()
        if self._stream is None:
            self._stream = self._open(phase, flatten)
            self._stream_phase = phase
        return self._stream

    def _open(self, phase: SyncPhase, flatten: bool | None) -> CursorStream:
        template = self._template(phase)

        with LogContext(collection=self._collection, phase=phase.value):
            resolved = self._context.replace_tokens(template)
            rewritten = rewrite_datetimes(resolved, self._source_tz)
            for issue in rewritten.malformed:
                self.metrics.date_fallbacks += 1
                logger.warning(
                    "malformed_date_literal",
                    literal=issue.literal,
                    replacement=issue.replacement,
                    reason=issue.reason,
                )

            query = rewritten.text or ""
            self.last_query = query
            try:
                stream = self._executor.execute(query, self._collection, flatten=flatten)
            except MongoSpineError as exc:
                logger.error("query_failed", query=query, error=exc.message)
                raise exc.with_context(phase=phase.value)

            self.metrics.queries_executed += 1
            logger.debug("stream_opened", flatten=stream.flatten)
            return stream

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        self._stream_phase = None
        if stream is not None:
            stream.close()

    def reset(self) -> None:
        """Drop the held stream so the next pull re-runs the phase's query."""
        self._release()

    def close(self) -> None:
        """Release the live stream, if any."""
        self._release()

    def __enter__(self) -> PhaseController:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["PhaseController", "QueryExecutor", "QueryMetrics", "PHASE_QUERIES"]
