"""
MongoDB source package.

Provides path flattening, value serialization, query parsing, cursor
streams, the MongoDB data source and the phase-driven query controller.
"""

from mongo_spine.framework.sources.context import (
    ImportContext,
    SimpleImportContext,
    SyncPhase,
)
from mongo_spine.framework.sources.controller import PhaseController, QueryMetrics
from mongo_spine.framework.sources.flatten import (
    MalformedPathAccess,
    PathResolution,
    enumerate_paths,
    resolve_path,
    trace_path,
)
from mongo_spine.framework.sources.mongo import MongoDataSource
from mongo_spine.framework.sources.serialize import serialize_value
from mongo_spine.framework.sources.shell import ShellSyntaxError, parse_query, shell_to_extended_json
from mongo_spine.framework.sources.stream import CursorStream, FlatRecord, to_flat_record

__all__ = [
    # Context
    "SyncPhase",
    "ImportContext",
    "SimpleImportContext",
    # Flattening
    "MalformedPathAccess",
    "PathResolution",
    "enumerate_paths",
    "resolve_path",
    "trace_path",
    "serialize_value",
    # Query syntax
    "ShellSyntaxError",
    "parse_query",
    "shell_to_extended_json",
    # Streams
    "CursorStream",
    "FlatRecord",
    "to_flat_record",
    # Source + controller
    "MongoDataSource",
    "PhaseController",
    "QueryMetrics",
]
