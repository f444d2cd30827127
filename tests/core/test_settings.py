"""Tests for mongo_spine.core.settings module.

Covers:
- Defaults and environment overrides
- Building from a host framework property mapping
- Seed resolution from comma-separated host/port lists
- Required database name
"""

from datetime import timedelta

import pytest

from mongo_spine.core.errors import InvalidConfigError, MissingConfigError
from mongo_spine.core.settings import MongoSourceSettings


class TestDefaults:
    def test_defaults(self):
        s = MongoSourceSettings()
        assert s.database == ""
        assert s.host == "localhost"
        assert s.port == "27017"
        assert s.username is None
        assert s.password is None
        assert s.map_mongo_fields is True
        assert s.source_utc_offset_hours == 8.0
        assert s.server_selection_timeout_ms == 30_000

    def test_default_timezone_is_utc_plus_eight(self):
        assert MongoSourceSettings().source_timezone.utcoffset(None) == timedelta(hours=8)


class TestEnvOverride:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MONGO_SPINE_DATABASE", "shop")
        monkeypatch.setenv("MONGO_SPINE_HOST", "db1,db2")
        monkeypatch.setenv("MONGO_SPINE_MAP_MONGO_FIELDS", "false")
        s = MongoSourceSettings()
        assert s.database == "shop"
        assert s.host == "db1,db2"
        assert s.map_mongo_fields is False

    def test_password_is_secret(self, monkeypatch):
        monkeypatch.setenv("MONGO_SPINE_PASSWORD", "hunter2")
        s = MongoSourceSettings()
        assert "hunter2" not in repr(s)
        assert s.password_value == "hunter2"


class TestFromProperties:
    def test_basic_properties(self):
        s = MongoSourceSettings.from_properties(
            {
                "database": "shop",
                "host": "db1",
                "port": "27018",
                "username": "reader",
                "password": "secret",
            }
        )
        assert s.database == "shop"
        assert s.seeds() == [("db1", 27018)]
        assert s.username == "reader"
        assert s.password_value == "secret"

    @pytest.mark.parametrize(
        "raw, expected",
        [("true", True), ("TRUE", True), (" true ", True), ("false", False), ("yes", False), ("1", False)],
    )
    def test_map_mongo_fields_needs_literal_true(self, raw, expected):
        s = MongoSourceSettings.from_properties({"database": "shop", "mapMongoFields": raw})
        assert s.map_mongo_fields is expected

    def test_missing_map_mongo_fields_keeps_default(self):
        s = MongoSourceSettings.from_properties({"database": "shop"})
        assert s.map_mongo_fields is True

    def test_timezone_offset_property(self):
        s = MongoSourceSettings.from_properties({"sourceTimezoneOffset": "-5"})
        assert s.source_timezone.utcoffset(None) == timedelta(hours=-5)

    def test_invalid_value_raises_config_error(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            MongoSourceSettings.from_properties({"serverSelectionTimeoutMS": "soon"})
        assert exc_info.value.key == "server_selection_timeout_ms"

    def test_unknown_properties_ignored(self):
        s = MongoSourceSettings.from_properties({"database": "shop", "driver": "x"})
        assert s.database == "shop"


class TestRequireDatabase:
    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_database_raises(self, name):
        with pytest.raises(MissingConfigError) as exc_info:
            MongoSourceSettings(database=name).require_database()
        assert exc_info.value.key == "database"
        assert exc_info.value.message == "MongoDB database name must be specified"

    def test_returns_stripped_name(self):
        assert MongoSourceSettings(database=" shop ").require_database() == "shop"


class TestSeeds:
    def test_single_host(self):
        assert MongoSourceSettings().seeds() == [("localhost", 27017)]

    def test_matching_lists_pair_up(self):
        s = MongoSourceSettings(host="a, b, c", port="1,2,3")
        assert s.seeds() == [("a", 1), ("b", 2), ("c", 3)]

    def test_first_port_shared_when_lengths_differ(self):
        s = MongoSourceSettings(host="a,b,c", port="27018,27019")
        assert s.seeds() == [("a", 27018), ("b", 27018), ("c", 27018)]

    def test_blank_host_rejected(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            MongoSourceSettings(host="a,,b").seeds()
        assert exc_info.value.key == "host"

    def test_non_numeric_port_rejected(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            MongoSourceSettings(port="mongo").seeds()
        assert exc_info.value.key == "port"
