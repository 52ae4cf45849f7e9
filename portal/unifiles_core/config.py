"""
Configuration management for the UniFiles core.

All configuration is done via environment variables. This module provides
typed, frozen configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Partition names are fixed per deployment and shared by every view
    - Session snapshots are stored under one well-known key

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Renaming a partition requires migrating the stored records first
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported record store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class SessionBackend(Enum):
    """Supported session persistence backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


def _enum_from_env(enum_cls: type[Enum], var: str, default: str) -> Enum:
    raw = os.getenv(var, default).lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {var} '{raw}'. Must be one of: {allowed}")


@dataclass(frozen=True)
class StoreConfig:
    """Record store configuration.

    Attributes:
        backend: Which record store backend to use
        data_dir: Directory for the SQLite database file
        db_name: SQLite database file name
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.MEMORY
    data_dir: str = "./data"
    db_name: str = "records.db"
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            backend=_enum_from_env(StoreBackend, "UNIFILES_STORE_BACKEND", "memory"),
            data_dir=os.getenv("UNIFILES_DATA_DIR", "./data"),
            db_name=os.getenv("UNIFILES_STORE_DB", "records.db"),
            busy_timeout_ms=int(os.getenv("UNIFILES_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class SessionConfig:
    """Session persistence configuration.

    Attributes:
        backend: Where the session snapshot is persisted
        path: SQLite file holding the session snapshot
        key: Well-known key the snapshot is stored under
    """

    backend: SessionBackend = SessionBackend.MEMORY
    path: str = "./data/session.db"
    key: str = "user"

    @classmethod
    def from_env(cls) -> SessionConfig:
        """Load configuration from environment variables."""
        return cls(
            backend=_enum_from_env(SessionBackend, "UNIFILES_SESSION_BACKEND", "memory"),
            path=os.getenv("UNIFILES_SESSION_PATH", "./data/session.db"),
            key=os.getenv("UNIFILES_SESSION_KEY", "user"),
        )


@dataclass(frozen=True)
class PartitionConfig:
    """Names of the record partitions the core reads and writes.

    Attributes:
        students: Student identity partition
        admins: Admin identity partition
        ceos: CEO identity partition
        login_logs: Append-only login audit partition
        past_questions: Past question papers partition
        id_field: Credential id field shared by identity partitions
        name_field: Normalized display name field shared by identity partitions
    """

    students: str = "Registration"
    admins: str = "AdminUser"
    ceos: str = "Ceo"
    login_logs: str = "LoginLogs"
    past_questions: str = "PastQuestions"
    id_field: str = "studentID"
    name_field: str = "studentName"

    @classmethod
    def from_env(cls) -> PartitionConfig:
        """Load configuration from environment variables."""
        return cls(
            students=os.getenv("UNIFILES_PARTITION_STUDENTS", "Registration"),
            admins=os.getenv("UNIFILES_PARTITION_ADMINS", "AdminUser"),
            ceos=os.getenv("UNIFILES_PARTITION_CEOS", "Ceo"),
            login_logs=os.getenv("UNIFILES_PARTITION_LOGIN_LOGS", "LoginLogs"),
            past_questions=os.getenv("UNIFILES_PARTITION_PAST_QUESTIONS", "PastQuestions"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class PortalConfig:
    """Complete core configuration.

    Attributes:
        store: Record store configuration
        session: Session persistence configuration
        partitions: Partition names
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    partitions: PartitionConfig = field(default_factory=PartitionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> PortalConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            session=SessionConfig.from_env(),
            partitions=PartitionConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.session.key:
            raise ValueError("UNIFILES_SESSION_KEY must not be empty")

        identity_partitions = [
            self.partitions.students,
            self.partitions.admins,
            self.partitions.ceos,
        ]
        if len(set(identity_partitions)) != len(identity_partitions):
            raise ValueError("Identity partitions must be distinct")
        if self.partitions.login_logs in identity_partitions:
            raise ValueError("Login log partition must not be an identity partition")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.store.backend == StoreBackend.SQLITE and not os.path.exists(self.store.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.store.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Portal configuration loaded",
            extra={
                "store_backend": self.store.backend.value,
                "data_dir": self.store.data_dir
                if self.store.backend == StoreBackend.SQLITE
                else None,
                "session_backend": self.session.backend.value,
                "session_key": self.session.key,
                "identity_partitions": [
                    self.partitions.students,
                    self.partitions.admins,
                    self.partitions.ceos,
                ],
                "log_level": self.observability.log_level,
            },
        )
