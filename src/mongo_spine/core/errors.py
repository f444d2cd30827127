"""
Structured error types for mongo-spine.

Every failure surfaced by the import path is a typed error carrying a
category, an explicit (always false here) retry flag, structured context
and the chained cause. Recoverable anomalies, such as an invalid array index
in a field path or an unparseable date inside query text, are NOT errors:
they are reported as diagnostics (see ``MalformedPathAccess`` and
``MalformedDate``) and never abort an import.

Manifesto:
    - **Typed hierarchy:** configuration, connection, query and stream
      faults are distinct classes so callers can decide what to abort
    - **Rich context:** errors carry collection, phase and query text so an
      operator can diagnose a failed phase from the log line alone
    - **Error chaining:** the driver exception is kept as ``cause``
    - **No retry logic:** faults are not transient-aware; orchestration above
      this package decides whether to restart a whole import

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                     MongoSpineError                          │
        │        (category, retryable, context, cause)                 │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError          SourceError         DatabaseError      │
        │  (CONFIG)             (SOURCE)            (DATABASE)         │
        │      │                    │                    │             │
        │  MissingConfigError   StreamFaultError    QueryExecutionError│
        │  InvalidConfigError   SourceConnectionError                  │
        │                                                              │
        │  StreamExhaustedError (INTERNAL, illegal state)              │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = QueryExecutionError("find failed").with_context(
    ...     collection="orders", query='{"status": "open"}'
    ... )
    >>> err.context.collection
    'orders'
    >>> err.to_dict()["category"]
    'DATABASE'

Tags:
    error-handling, exception-hierarchy, error-context, mongo-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, DNS, authentication handshake
    DATABASE = "DATABASE"         # Query submission, server-side faults
    SOURCE = "SOURCE"             # Cursor faults while pulling
    PARSE = "PARSE"               # Query text that is not a filter document
    CONFIG = "CONFIG"             # Missing or invalid settings/attributes
    INTERNAL = "INTERNAL"         # Misuse, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        collection: Collection the failing query targeted
        phase: Synchronization phase that was active
        query: Query text after token substitution and date rewriting
        database: Database name
        metadata: Additional key-value pairs
    """

    collection: str | None = None
    phase: str | None = None
    query: str | None = None
    database: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("collection", "phase", "query", "database"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MongoSpineError(Exception):
    """
    Base exception for all mongo-spine errors.

    Subclasses set ``default_category``; ``retryable`` defaults to False
    throughout because nothing in this package retries.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MongoSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryExecutionError("find failed").with_context(
                collection="orders", query=text
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MongoSpineError):
    """Configuration error. Aborts the whole import run."""

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """A required property or entity attribute is missing or blank."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """A property value cannot be used."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# SOURCE / DATABASE ERRORS
# =============================================================================


class SourceError(MongoSpineError):
    """Error raised while talking to the document store."""

    default_category = ErrorCategory.SOURCE


class SourceConnectionError(SourceError):
    """Store unreachable or authentication failed at session start."""

    default_category = ErrorCategory.NETWORK


class StreamFaultError(SourceError):
    """
    Fault while pulling from an open cursor.

    Fatal for the stream: the cursor has already been closed when this is
    raised, and no partial record was emitted.
    """


class DatabaseError(MongoSpineError):
    """Query or server-side error."""

    default_category = ErrorCategory.DATABASE


class QueryExecutionError(DatabaseError):
    """Malformed query text or a store fault at query submission."""


class StreamExhaustedError(MongoSpineError):
    """A record was requested from a stream that has no more records."""

    default_category = ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MongoSpineError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SourceError",
    "SourceConnectionError",
    "StreamFaultError",
    "DatabaseError",
    "QueryExecutionError",
    "StreamExhaustedError",
]
