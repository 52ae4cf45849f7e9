"""
Configuration for the UniFiles gateway.

Uses pydantic-settings for environment variable loading. Partition
names and logging still come from the core's UNIFILES_* / LOG_*
variables; this class only selects where the core keeps its data.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

from portal.unifiles_core.config import (
    PortalConfig,
    SessionBackend,
    SessionConfig,
    StoreBackend,
    StoreConfig,
)


class Settings(BaseSettings):
    """Gateway configuration loaded from environment."""

    # Gateway settings
    host: str = Field(default="0.0.0.0", description="Gateway bind host")
    port: int = Field(default=8080, description="Gateway bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Core backends
    store_backend: StoreBackend = Field(default=StoreBackend.MEMORY, description="Record store backend")
    data_dir: str = Field(default="./data", description="Record store data directory")
    session_backend: SessionBackend = Field(
        default=SessionBackend.MEMORY, description="Session snapshot backend"
    )
    session_path: str = Field(default="./data/session.db", description="Session snapshot file")

    model_config = {"env_prefix": "CONSOLE_"}

    def portal_config(self) -> PortalConfig:
        """Core configuration with this gateway's backend selection."""
        base = PortalConfig.from_env()
        config = PortalConfig(
            store=StoreConfig(
                backend=self.store_backend,
                data_dir=self.data_dir,
                db_name=base.store.db_name,
                busy_timeout_ms=base.store.busy_timeout_ms,
            ),
            session=SessionConfig(
                backend=self.session_backend,
                path=self.session_path,
                key=base.session.key,
            ),
            partitions=base.partitions,
            observability=base.observability,
        )
        config.validate()
        return config
