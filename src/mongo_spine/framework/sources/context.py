"""
Host import-framework context.

The phase controller never reads configuration directly. It asks an
``ImportContext`` for the current synchronization phase, for per-entity
attributes (``collection``, ``query``, ``deltaQuery``, ``deltaImportQuery``)
and to substitute ``${...}`` tokens in query text. A host framework supplies
its own implementation; ``SimpleImportContext`` covers embedding, the CLI
and tests.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class SyncPhase(str, Enum):
    """Synchronization phases of an import run."""

    FULL_IMPORT = "full_import"
    DELTA_DISCOVERY = "delta_discovery"
    DELTA_IMPORT = "delta_import"

    @classmethod
    def parse(cls, value: SyncPhase | str | None) -> SyncPhase | None:
        """Map a phase name to a member; unknown names map to None."""
        if value is None or isinstance(value, SyncPhase):
            return value
        normalized = value.strip().lower().replace("-", "_")
        for member in cls:
            if member.value == normalized:
                return member
        return None


# Entity attribute names
COLLECTION = "collection"
QUERY = "query"
DELTA_QUERY = "deltaQuery"
DELTA_IMPORT_QUERY = "deltaImportQuery"

TOKEN_PATTERN = re.compile(r"\$\{([^}]+)\}")


@runtime_checkable
class ImportContext(Protocol):
    """What the phase controller needs from the host framework."""

    @property
    def current_phase(self) -> SyncPhase | str | None:
        """Phase of the running import; unrecognized values are inert."""
        ...

    def get_entity_attribute(self, name: str) -> str | None:
        """Attribute of the entity being imported, or None."""
        ...

    def replace_tokens(self, text: str) -> str:
        """Substitute ``${...}`` placeholders in ``text``."""
        ...


@dataclass
class SimpleImportContext:
    """
    Dictionary-backed ``ImportContext``.

    Tokens are dotted names looked up in ``variables``; nested mappings are
    walked (``${delta._id}`` reads ``variables["delta"]["_id"]``). An unknown
    token is replaced by an empty string.

    Example:
        >>> ctx = SimpleImportContext(
        ...     attributes={"collection": "orders", "query": "{}"},
        ...     current_phase=SyncPhase.FULL_IMPORT,
        ...     variables={"last_index_time": "2025-08-20 12:34:56"},
        ... )
        >>> ctx.replace_tokens('{"ts": "${last_index_time}"}')
        '{"ts": "2025-08-20 12:34:56"}'
    """

    attributes: dict[str, str] = field(default_factory=dict)
    current_phase: SyncPhase | str | None = None
    variables: dict[str, Any] = field(default_factory=dict)

    def get_entity_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def replace_tokens(self, text: str) -> str:
        return TOKEN_PATTERN.sub(lambda m: self._lookup(m.group(1).strip()), text)

    def _lookup(self, name: str) -> str:
        value: Any = self.variables
        for part in name.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return ""
            value = value[part]
        return "" if value is None else str(value)

    def set_delta_marker(self, marker: Mapping[str, Any]) -> None:
        """Expose a discovered change marker as ``${delta.<key>}``."""
        self.variables["delta"] = dict(marker)


__all__ = [
    "SyncPhase",
    "ImportContext",
    "SimpleImportContext",
    "COLLECTION",
    "QUERY",
    "DELTA_QUERY",
    "DELTA_IMPORT_QUERY",
]
