"""
MongoDB data source for an import session.

``MongoDataSource`` owns the ``MongoClient`` for the lifetime of one import
run and turns query text into ``CursorStream`` objects. It reads from
secondaries when available (``secondaryPreferred``) and authenticates
against the configured database when a username is set.

Usage:
    settings = MongoSourceSettings.from_properties(
        {"database": "shop", "host": "db1,db2", "port": "27017"}
    )
    with MongoDataSource(settings).connect() as source:
        with source.execute('{"status": "open"}', "orders") as stream:
            for record in stream:
                ...
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from bson import json_util
from bson.errors import BSONError
from pymongo import MongoClient, ReadPreference
from pymongo.database import Database
from pymongo.errors import PyMongoError

from mongo_spine.core.errors import ErrorCategory, QueryExecutionError, SourceConnectionError
from mongo_spine.core.logging import get_logger
from mongo_spine.core.settings import MongoSourceSettings
from mongo_spine.framework.sources.shell import parse_query
from mongo_spine.framework.sources.stream import CursorStream

logger = get_logger(__name__)


def _seed_address(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class MongoDataSource:
    """Connection-owning source of cursor streams.

    Args:
        settings: Connection and mapping settings
        client: Pre-built client (tests, embedding); the source will not
            close a client it did not create
    """

    def __init__(
        self,
        settings: MongoSourceSettings,
        *,
        client: MongoClient | None = None,
    ):
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._db: Database | None = None
        if client is not None:
            self._db = client[settings.require_database()]

    @property
    def settings(self) -> MongoSourceSettings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._db is not None

    def connect(self) -> MongoDataSource:
        """Open the client and check the server answers.

        Raises:
            MissingConfigError: Database name is blank (before any I/O)
            SourceConnectionError: Server unreachable or authentication failed
        """
        if self._db is not None:
            return self

        database = self._settings.require_database()
        seeds = self._settings.seeds()
        options: dict[str, Any] = {
            "host": [_seed_address(host, port) for host, port in seeds],
            "read_preference": ReadPreference.SECONDARY_PREFERRED,
            "serverSelectionTimeoutMS": self._settings.server_selection_timeout_ms,
        }
        if self._settings.username:
            options.update(
                username=self._settings.username,
                password=self._settings.password_value or "",
                authSource=database,
            )

        client: MongoClient | None = None
        try:
            client = MongoClient(**options)
            client.admin.command("ping")
        except PyMongoError as exc:
            if client is not None:
                client.close()
            logger.error("mongo_connect_failed", database=database, seeds=seeds, error=str(exc))
            raise SourceConnectionError(
                f"Unable to connect to MongoDB: {exc}", cause=exc
            ).with_context(database=database) from exc

        self._client = client
        self._owns_client = True
        self._db = client[database]
        logger.info("mongo_connected", database=database, seeds=len(seeds))
        return self

    def execute(
        self,
        query: str,
        collection: str,
        *,
        flatten: bool | None = None,
    ) -> CursorStream:
        """Run a find-by-filter query and wrap its cursor.

        Args:
            query: Extended JSON (or mongo shell syntax) filter document
            collection: Collection to query
            flatten: Override ``map_mongo_fields`` for this stream

        Raises:
            QueryExecutionError: Query text is not a JSON object, or the
                store rejected the query
        """
        db = self._database()

        try:
            filter_doc = parse_query(query)
        except (ValueError, TypeError, BSONError) as exc:
            raise QueryExecutionError(
                f"Query is not valid Extended JSON or shell syntax: {exc}",
                category=ErrorCategory.PARSE,
                cause=exc,
            ).with_context(collection=collection, query=query) from exc
        if not isinstance(filter_doc, Mapping):
            raise QueryExecutionError(
                "Query must be a JSON object", category=ErrorCategory.PARSE
            ).with_context(collection=collection, query=query)

        logger.info(
            "query_executed",
            collection=collection,
            query=json_util.dumps(filter_doc, json_options=json_util.RELAXED_JSON_OPTIONS),
        )
        try:
            cursor = db[collection].find(filter_doc)
        except PyMongoError as exc:
            raise QueryExecutionError(
                f"Query execution failed: {exc}", cause=exc
            ).with_context(collection=collection, query=query) from exc

        if flatten is None:
            flatten = self._settings.map_mongo_fields
        return CursorStream(cursor, flatten=flatten, name=collection)

    def _database(self) -> Database:
        self.connect()
        if self._db is None:
            raise SourceConnectionError("MongoDB client is not connected")
        return self._db

    def close(self) -> None:
        """Close the client if this source created it."""
        client, self._client = self._client, None
        self._db = None
        if client is None or not self._owns_client:
            return
        try:
            client.close()
        except PyMongoError as exc:
            logger.warning("mongo_close_failed", error=str(exc))
        else:
            logger.info("mongo_client_closed")

    def __enter__(self) -> MongoDataSource:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["MongoDataSource"]
