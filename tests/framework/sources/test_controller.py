"""Tests for mongo_spine.framework.sources.controller module.

Covers:
- Query selection per synchronization phase
- Token substitution then UTC date rewriting of query text
- Stream ownership across phase changes
- Delta discovery markers and exhaustion
- Error context on failures
- Caller-owned metrics
"""

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure
from structlog.testing import capture_logs

from mongo_spine.core.errors import (
    MissingConfigError,
    QueryExecutionError,
    StreamFaultError,
)
from mongo_spine.framework.sources.context import SimpleImportContext, SyncPhase
from mongo_spine.framework.sources.controller import PhaseController, QueryMetrics
from mongo_spine.framework.sources.stream import CursorStream

OID_1 = ObjectId("64e1f0c2a1b2c3d4e5f60718")
OID_2 = ObjectId("64e1f0c2a1b2c3d4e5f60719")

ATTRIBUTES = {
    "collection": "orders",
    "query": '{"status": "open"}',
    "deltaQuery": '{"updatedAt": {"$gte": {"$date": "${since}"}}}',
    "deltaImportQuery": '{"_id": {"$oid": "${delta._id}"}}',
}


def _context(phase=SyncPhase.FULL_IMPORT, attributes=None, variables=None):
    return SimpleImportContext(
        attributes=dict(ATTRIBUTES if attributes is None else attributes),
        current_phase=phase,
        variables=dict(variables or {}),
    )


class TestConstruction:
    @pytest.mark.parametrize("collection", [None, "", "  "])
    def test_collection_required(self, collection, fake_executor_factory):
        attributes = dict(ATTRIBUTES)
        if collection is None:
            del attributes["collection"]
        else:
            attributes["collection"] = collection
        with pytest.raises(MissingConfigError) as exc_info:
            PhaseController(_context(attributes=attributes), fake_executor_factory())
        assert exc_info.value.key == "collection"
        assert exc_info.value.message == "Collection name must be specified for MongoDB entity"

    def test_no_query_runs_at_construction(self, fake_executor_factory):
        executor = fake_executor_factory()
        controller = PhaseController(_context(), executor)
        assert executor.queries == []
        assert controller.collection == "orders"
        assert controller.active_phase is None


class TestQueryForPhase:
    def test_templates(self, fake_executor_factory):
        controller = PhaseController(_context(), fake_executor_factory())
        assert controller.query_for_phase(SyncPhase.FULL_IMPORT) == ATTRIBUTES["query"]
        assert controller.query_for_phase("delta_discovery") == ATTRIBUTES["deltaQuery"]
        assert controller.query_for_phase("delta-import") == ATTRIBUTES["deltaImportQuery"]

    def test_unknown_phase_has_no_query(self, fake_executor_factory):
        controller = PhaseController(_context(), fake_executor_factory())
        assert controller.query_for_phase("find_delta") is None
        assert controller.query_for_phase(None) is None

    @pytest.mark.parametrize(
        "phase, attribute, message",
        [
            (SyncPhase.FULL_IMPORT, "query", "query is required for full-import"),
            (SyncPhase.DELTA_DISCOVERY, "deltaQuery", "deltaQuery is required for delta-import"),
            (
                SyncPhase.DELTA_IMPORT,
                "deltaImportQuery",
                "deltaImportQuery is required for delta-import",
            ),
        ],
    )
    def test_missing_attribute(self, phase, attribute, message, fake_executor_factory):
        attributes = dict(ATTRIBUTES)
        attributes[attribute] = " "
        controller = PhaseController(_context(phase, attributes), fake_executor_factory())
        with pytest.raises(MissingConfigError) as exc_info:
            controller.query_for_phase(phase)
        assert exc_info.value.key == attribute
        assert exc_info.value.message == message


class TestFullImport:
    def test_rows_in_order_then_none(self, fake_executor_factory):
        executor = fake_executor_factory([{"n": 1}, {"n": 2}])
        controller = PhaseController(_context(), executor)
        assert controller.next_row() == {"n": 1}
        assert controller.next_row() == {"n": 2}
        assert controller.next_row() is None
        assert executor.queries == ['{"status": "open"}']

    def test_exhausted_stream_is_not_requeried(self, fake_executor_factory):
        executor = fake_executor_factory([{"n": 1}])
        controller = PhaseController(_context(), executor)
        controller.next_row()
        assert controller.next_row() is None
        assert controller.next_row() is None
        assert len(executor.queries) == 1
        assert executor.cursors[0].close_count == 1

    def test_reset_reruns_query_with_new_tokens(self, fake_executor_factory):
        def documents(query):
            return [{"_id": ObjectId(query.split('"')[5])}]

        executor = fake_executor_factory(documents)
        context = _context(SyncPhase.DELTA_IMPORT)
        controller = PhaseController(context, executor)

        context.set_delta_marker({"_id": str(OID_1)})
        assert controller.next_row() == {"_id": str(OID_1)}
        assert controller.next_row() is None

        context.set_delta_marker({"_id": str(OID_2)})
        assert controller.next_row() is None
        controller.reset()
        assert controller.next_row() == {"_id": str(OID_2)}
        assert executor.queries == [
            '{"_id": {"$oid": "64e1f0c2a1b2c3d4e5f60718"}}',
            '{"_id": {"$oid": "64e1f0c2a1b2c3d4e5f60719"}}',
        ]
        assert executor.cursors[0].close_count == 1

    def test_rows_reruns_the_query(self, fake_executor_factory):
        executor = fake_executor_factory([{"n": 1}])
        controller = PhaseController(_context(), executor)
        assert list(controller.rows()) == [{"n": 1}]
        assert list(controller.rows()) == [{"n": 1}]
        assert len(executor.queries) == 2

    def test_empty_result(self, fake_executor_factory):
        controller = PhaseController(_context(), fake_executor_factory([]))
        assert controller.next_row() is None

    def test_flatten_left_to_source_settings(self, fake_executor_factory):
        executor = fake_executor_factory([{"a": {"b": 1}}])
        controller = PhaseController(_context(), executor)
        assert controller.next_row() == {"a.b": 1}
        assert executor.flatten_args == [None]

    def test_dates_rewritten_after_token_substitution(self, fake_executor_factory):
        attributes = dict(ATTRIBUTES, query='{"ts": {"$gte": {"$date": "${since}"}}}')
        executor = fake_executor_factory([])
        context = _context(attributes=attributes, variables={"since": "2025-08-20 12:34:56"})
        controller = PhaseController(context, executor)
        controller.next_row()
        assert executor.queries == ['{"ts": {"$gte": {"$date": "2025-08-20T04:34:56Z"}}}']
        assert controller.last_query == executor.queries[0]

    def test_source_timezone_is_configurable(self, fake_executor_factory):
        from datetime import timezone

        attributes = dict(ATTRIBUTES, query='{"ts": "2025-08-20 12:34:56"}')
        executor = fake_executor_factory([])
        controller = PhaseController(
            _context(attributes=attributes), executor, source_tz=timezone.utc
        )
        controller.next_row()
        assert executor.queries == ['{"ts": "2025-08-20T12:34:56Z"}']

    def test_malformed_date_counted_and_logged(self, fake_executor_factory):
        attributes = dict(ATTRIBUTES, query='{"ts": "2025-02-30 10:00:00"}')
        executor = fake_executor_factory([])
        metrics = QueryMetrics()
        controller = PhaseController(_context(attributes=attributes), executor, metrics=metrics)
        with capture_logs() as logs:
            controller.next_row()
        assert executor.queries == ['{"ts": "2025-02-30T10:00:00Z"}']
        assert metrics.date_fallbacks == 1
        assert any(entry["event"] == "malformed_date_literal" for entry in logs)


class TestUnrecognizedPhase:
    @pytest.mark.parametrize("phase", [None, "find_delta", "delete"])
    def test_returns_none_without_querying(self, phase, fake_executor_factory):
        executor = fake_executor_factory([{"n": 1}])
        controller = PhaseController(_context(phase), executor)
        assert controller.next_row() is None
        assert controller.next_modified_row_key() is None
        assert executor.queries == []

    def test_next_row_during_discovery_returns_none(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}])
        controller = PhaseController(_context(SyncPhase.DELTA_DISCOVERY), executor)
        assert controller.next_row() is None
        assert executor.queries == []

    def test_marker_during_full_import_returns_none(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}])
        controller = PhaseController(_context(), executor)
        assert controller.next_modified_row_key() is None
        assert executor.queries == []


class TestDeltaDiscovery:
    def test_markers(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1, "x": 1}, {"_id": OID_2}])
        context = _context(SyncPhase.DELTA_DISCOVERY, variables={"since": "2025-08-20 12:34:56"})
        controller = PhaseController(context, executor)
        assert controller.next_modified_row_key() == {"_id": "64e1f0c2a1b2c3d4e5f60718"}
        assert controller.next_modified_row_key() == {"_id": "64e1f0c2a1b2c3d4e5f60719"}
        assert controller.next_modified_row_key() is None
        assert executor.queries == ['{"updatedAt": {"$gte": {"$date": "2025-08-20T04:34:56Z"}}}']

    def test_discovery_is_always_shallow(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}])
        controller = PhaseController(_context(SyncPhase.DELTA_DISCOVERY), executor)
        controller.next_modified_row_key()
        assert executor.flatten_args == [False]

    def test_exhaustion_releases_stream(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}])
        controller = PhaseController(_context(SyncPhase.DELTA_DISCOVERY), executor)
        controller.next_modified_row_key()
        assert controller.active_phase is SyncPhase.DELTA_DISCOVERY
        assert controller.next_modified_row_key() is None
        assert controller.active_phase is None
        assert executor.cursors[0].close_count == 1

    def test_rows_without_identifier_are_skipped(self, fake_executor_factory):
        metrics = QueryMetrics()
        executor = fake_executor_factory([{"x": 1}, {"_id": None}, {"_id": 7}])
        controller = PhaseController(
            _context(SyncPhase.DELTA_DISCOVERY), executor, metrics=metrics
        )
        assert list(controller.modified_row_keys()) == [{"_id": "7"}]
        assert metrics.markers_skipped == 2
        assert metrics.markers_emitted == 1

    def test_non_identifier_ids_are_stringified(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": "sku-1"}, {"_id": 42}])
        controller = PhaseController(_context(SyncPhase.DELTA_DISCOVERY), executor)
        assert list(controller.modified_row_keys()) == [{"_id": "sku-1"}, {"_id": "42"}]


class TestPhaseTransitions:
    def test_discovery_then_import_per_marker(self, fake_executor_factory):
        def documents(query):
            if "updatedAt" in query:
                return [{"_id": OID_1}, {"_id": OID_2}]
            return [{"_id": ObjectId(query.split('"')[5]), "status": "open"}]

        executor = fake_executor_factory(documents)
        metrics = QueryMetrics()
        context = _context(SyncPhase.DELTA_DISCOVERY, variables={"since": "2025-08-20 00:00:00"})
        controller = PhaseController(context, executor, metrics=metrics)

        markers = list(controller.modified_row_keys())
        context.current_phase = SyncPhase.DELTA_IMPORT
        records = []
        for marker in markers:
            context.set_delta_marker(marker)
            records.extend(controller.rows())

        assert records == [
            {"_id": str(OID_1), "status": "open"},
            {"_id": str(OID_2), "status": "open"},
        ]
        assert executor.queries[1:] == [
            '{"_id": {"$oid": "64e1f0c2a1b2c3d4e5f60718"}}',
            '{"_id": {"$oid": "64e1f0c2a1b2c3d4e5f60719"}}',
        ]
        assert metrics.queries_executed == 3
        assert metrics.markers_emitted == 2
        assert metrics.records_emitted == 2

    def test_phase_change_discards_open_stream(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}, {"_id": OID_2}])
        context = _context(SyncPhase.FULL_IMPORT)
        controller = PhaseController(context, executor)
        controller.next_row()
        assert controller.active_phase is SyncPhase.FULL_IMPORT

        context.current_phase = SyncPhase.DELTA_DISCOVERY
        controller.next_modified_row_key()
        assert executor.cursors[0].close_count == 1
        assert controller.active_phase is SyncPhase.DELTA_DISCOVERY
        assert executor.cursors[1].close_count == 0

    def test_returning_to_a_phase_requeries(self, fake_executor_factory):
        executor = fake_executor_factory([{"_id": OID_1}])
        context = _context(SyncPhase.FULL_IMPORT)
        controller = PhaseController(context, executor)
        controller.next_row()
        context.current_phase = SyncPhase.DELTA_IMPORT
        controller.next_row()
        context.current_phase = SyncPhase.FULL_IMPORT
        assert controller.next_row() == {"_id": str(OID_1)}
        assert len(executor.queries) == 3

    def test_close_releases_stream(self, fake_executor_factory):
        executor = fake_executor_factory([{"n": 1}, {"n": 2}])
        with PhaseController(_context(), executor) as controller:
            controller.next_row()
        assert executor.cursors[0].close_count == 1
        assert controller.active_phase is None


class TestFailures:
    def test_execute_failure_carries_phase(self, fake_executor_factory):
        executor = fake_executor_factory(error=QueryExecutionError("bad").with_context(query="q"))
        controller = PhaseController(_context(), executor)
        with pytest.raises(QueryExecutionError) as exc_info:
            controller.next_row()
        assert exc_info.value.context.phase == "full_import"
        assert controller.active_phase is None

    def test_fault_mid_stream(self, fake_cursor_factory):
        cursor = fake_cursor_factory(
            [{"n": 1}, {"n": 2}], fail_after=1, error=OperationFailure("killed")
        )

        class Executor:
            def execute(self, query, collection, *, flatten=None):
                return CursorStream(cursor, name=collection)

        controller = PhaseController(_context(), Executor())
        assert controller.next_row() == {"n": 1}
        with pytest.raises(StreamFaultError) as exc_info:
            controller.next_row()
        err = exc_info.value
        assert err.context.phase == "full_import"
        assert err.context.query == '{"status": "open"}'
        assert err.context.collection == "orders"
        assert cursor.close_count == 1
        assert controller.active_phase is None


class TestQueryMetrics:
    def test_to_dict(self):
        metrics = QueryMetrics(queries_executed=2, records_emitted=5)
        assert metrics.to_dict() == {
            "queries_executed": 2,
            "records_emitted": 5,
            "markers_emitted": 0,
            "markers_skipped": 0,
            "date_fallbacks": 0,
        }

    def test_private_metrics_when_omitted(self, fake_executor_factory):
        controller = PhaseController(_context(), fake_executor_factory([{"n": 1}]))
        list(controller.rows())
        assert controller.metrics.queries_executed == 1
        assert controller.metrics.records_emitted == 1
