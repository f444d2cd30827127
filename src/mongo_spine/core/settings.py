"""Connection and mapping settings for a MongoDB import session.

``MongoSourceSettings`` reads ``MONGO_SPINE_*`` environment variables and
``.env`` files. Host frameworks that hand over a flat property mapping with
camelCase keys (``database``, ``host``, ``port``, ``username``, ``password``,
``mapMongoFields``) use :meth:`MongoSourceSettings.from_properties`.

Examples:
    >>> settings = MongoSourceSettings.from_properties(
    ...     {"database": "shop", "host": "db1,db2", "port": "27017"}
    ... )
    >>> settings.seeds()
    [('db1', 27017), ('db2', 27017)]

Tags:
    settings, configuration, pydantic, environment, mongo-spine
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta, timezone, tzinfo

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from mongo_spine.core.errors import InvalidConfigError, MissingConfigError

# Host-framework property name -> settings field
PROPERTY_FIELDS: dict[str, str] = {
    "database": "database",
    "host": "host",
    "port": "port",
    "username": "username",
    "password": "password",
    "serverSelectionTimeoutMS": "server_selection_timeout_ms",
    "mapMongoFields": "map_mongo_fields",
    "sourceTimezoneOffset": "source_utc_offset_hours",
}


class MongoSourceSettings(BaseSettings):
    """Settings for one MongoDB data source.

    Fields
    ──────
    database                : Database name (required before connecting)
    host                    : Comma-separated seed hosts
    port                    : Comma-separated ports; one port is shared by all
                              hosts when the list lengths differ
    username / password     : Optional credential pair (auth source = database)
    server_selection_timeout_ms : How long connect() waits for a server
    map_mongo_fields        : Flatten nested documents into dotted paths
                              (False keeps top-level keys only)
    source_utc_offset_hours : Timezone of date literals embedded in queries
    log_level               : Structlog log level
    """

    model_config = SettingsConfigDict(
        env_prefix="MONGO_SPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    database: str = Field(default="")
    host: str = Field(default="localhost")
    port: str = Field(default="27017")
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    server_selection_timeout_ms: int = Field(default=30_000, gt=0)

    # ── Mapping ──────────────────────────────────────────────────
    map_mongo_fields: bool = Field(default=True)
    source_utc_offset_hours: float = Field(default=8.0, ge=-14, le=14)

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    @classmethod
    def from_properties(cls, properties: Mapping[str, str | None]) -> MongoSourceSettings:
        """Build settings from a host framework's property mapping.

        ``mapMongoFields`` is enabled only by the exact text ``true``
        (case-insensitive); any other value disables flattening.

        Raises:
            InvalidConfigError: If a property fails validation
        """
        values: dict[str, object] = {}
        for prop, field_name in PROPERTY_FIELDS.items():
            raw = properties.get(prop)
            if raw is None:
                continue
            if field_name == "map_mongo_fields":
                values[field_name] = str(raw).strip().lower() == "true"
            else:
                values[field_name] = raw
        try:
            return cls(**values)
        except ValidationError as exc:
            first = exc.errors()[0]
            key = ".".join(str(part) for part in first.get("loc", ())) or "properties"
            raise InvalidConfigError(key, first.get("input"), str(exc)) from exc

    def require_database(self) -> str:
        """Return the database name or raise if it is blank."""
        if not self.database or not self.database.strip():
            raise MissingConfigError("database", "MongoDB database name must be specified")
        return self.database.strip()

    def seeds(self) -> list[tuple[str, int]]:
        """Resolve ``host``/``port`` into ``(host, port)`` seed pairs."""
        hosts = [h.strip() for h in self.host.split(",")]
        ports = [p.strip() for p in self.port.split(",")]
        if any(not h for h in hosts):
            raise InvalidConfigError("host", self.host)

        seeds = []
        for i, host in enumerate(hosts):
            raw_port = ports[i] if len(hosts) == len(ports) else ports[0]
            try:
                seeds.append((host, int(raw_port)))
            except ValueError as exc:
                raise InvalidConfigError("port", self.port) from exc
        return seeds

    @property
    def source_timezone(self) -> tzinfo:
        """Fixed-offset timezone for date literals in query text."""
        return timezone(timedelta(hours=self.source_utc_offset_hours))

    @property
    def password_value(self) -> str | None:
        return self.password.get_secret_value() if self.password is not None else None


__all__ = ["MongoSourceSettings", "PROPERTY_FIELDS"]
