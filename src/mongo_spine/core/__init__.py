"""mongo-spine core -- primitives shared by every part of the import path.

Architecture::

    errors.py      Structured error hierarchy (MongoSpineError and subclasses)
    logging.py     structlog configuration and scoped context
    settings.py    MongoSourceSettings (pydantic-settings)
    temporal.py    Local date literal -> UTC instant rewriting for query text
    values.py      ValueKind tag, classify(), ABSENT
"""

from mongo_spine.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingConfigError,
    MongoSpineError,
    QueryExecutionError,
    SourceConnectionError,
    StreamExhaustedError,
    StreamFaultError,
)
from mongo_spine.core.temporal import MalformedDate, RewriteResult, rewrite_datetimes, to_utc_iso
from mongo_spine.core.values import ABSENT, ValueKind, classify

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "MongoSpineError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SourceConnectionError",
    "QueryExecutionError",
    "StreamFaultError",
    "StreamExhaustedError",
    # Temporal
    "MalformedDate",
    "RewriteResult",
    "rewrite_datetimes",
    "to_utc_iso",
    # Values
    "ABSENT",
    "ValueKind",
    "classify",
]
