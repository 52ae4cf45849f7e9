"""
Unit tests for configuration loading and validation.
"""

import pytest

from portal.unifiles_core.config import (
    ObservabilityConfig,
    PartitionConfig,
    PortalConfig,
    SessionBackend,
    SessionConfig,
    StoreBackend,
    StoreConfig,
)
from portal.unifiles_core.session import MemorySessionPersistence, SqliteSessionPersistence
from portal.unifiles_core.session.persistence import create_session_persistence
from portal.unifiles_core.store import InMemoryRecordStore, SqliteRecordStore, create_record_store


class TestFromEnv:
    """Tests for environment loading."""

    def test_defaults(self, monkeypatch):
        for var in ("UNIFILES_STORE_BACKEND", "UNIFILES_SESSION_BACKEND", "LOG_FORMAT"):
            monkeypatch.delenv(var, raising=False)

        config = PortalConfig.from_env()

        assert config.store.backend is StoreBackend.MEMORY
        assert config.session.backend is SessionBackend.MEMORY
        assert config.session.key == "user"
        assert config.partitions.students == "Registration"

    def test_backend_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UNIFILES_STORE_BACKEND", "SQLite")
        monkeypatch.setenv("UNIFILES_DATA_DIR", str(tmp_path))

        config = StoreConfig.from_env()

        assert config.backend is StoreBackend.SQLITE
        assert config.data_dir == str(tmp_path)

    def test_invalid_backend_names_variable(self, monkeypatch):
        monkeypatch.setenv("UNIFILES_STORE_BACKEND", "firestore")

        with pytest.raises(ValueError, match="UNIFILES_STORE_BACKEND"):
            StoreConfig.from_env()


class TestValidate:
    """Tests for PortalConfig.validate()."""

    def test_default_is_valid(self):
        PortalConfig().validate()

    def test_empty_session_key(self):
        config = PortalConfig(session=SessionConfig(key=""))
        with pytest.raises(ValueError, match="SESSION_KEY"):
            config.validate()

    def test_identity_partitions_distinct(self):
        config = PortalConfig(partitions=PartitionConfig(admins="Registration"))
        with pytest.raises(ValueError, match="distinct"):
            config.validate()

    def test_login_logs_not_identity_partition(self):
        config = PortalConfig(partitions=PartitionConfig(login_logs="Ceo"))
        with pytest.raises(ValueError, match="Login log"):
            config.validate()

    def test_log_format(self):
        config = PortalConfig(observability=ObservabilityConfig(log_format="xml"))
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            config.validate()


class TestFactories:
    """Backends are selected from configuration."""

    def test_record_store_backends(self, tmp_path):
        assert isinstance(create_record_store(StoreConfig()), InMemoryRecordStore)
        sqlite = create_record_store(StoreConfig(backend=StoreBackend.SQLITE, data_dir=str(tmp_path)))
        assert isinstance(sqlite, SqliteRecordStore)

    def test_session_backends(self, tmp_path):
        assert isinstance(create_session_persistence(SessionConfig()), MemorySessionPersistence)
        persistence = create_session_persistence(
            SessionConfig(backend=SessionBackend.SQLITE, path=str(tmp_path / "s.db"))
        )
        assert isinstance(persistence, SqliteSessionPersistence)
