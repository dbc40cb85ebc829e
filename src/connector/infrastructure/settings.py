"""Connector settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. A host stream engine may instead hand the sink an opaque
string mapping, which ``ConnectionSettings.from_config`` normalises.
"""

from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Keys accepted in a host-engine config mapping that differ from field names.
_CONFIG_ALIASES: dict[str, str] = {
    "user": "username",
    "dbname": "database",
    "graph": "graph_name",
    "pool_size": "pool_max_connections",
    "pool_max_size": "pool_max_connections",
    "pool_min_size": "pool_min_connections",
    "acquire_timeout": "acquire_timeout_seconds",
    "connect_timeout": "connect_timeout_seconds",
}


class ConnectionSettings(BaseSettings):
    """Graph database connection settings.

    Environment variables:
        GRAPH_SINK_DB_HOST: Database host (default: localhost)
        GRAPH_SINK_DB_PORT: Database port (default: 5432)
        GRAPH_SINK_DB_DATABASE: Database name (default: graph_sink)
        GRAPH_SINK_DB_USERNAME: Database user (default: graph_sink)
        GRAPH_SINK_DB_PASSWORD: Database password (required in production)
        GRAPH_SINK_DB_GRAPH_NAME: AGE graph name (default: stream_graph)
        GRAPH_SINK_DB_POOL_MIN_CONNECTIONS: Connections opened eagerly (default: 1)
        GRAPH_SINK_DB_POOL_MAX_CONNECTIONS: Maximum leased sessions (default: 4)
        GRAPH_SINK_DB_ACQUIRE_TIMEOUT_SECONDS: Max wait for a free session (default: 30)
        GRAPH_SINK_DB_CONNECT_TIMEOUT_SECONDS: TCP connect timeout (default: 10)
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_SINK_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port", ge=1, le=65535)
    database: str = Field(default="graph_sink", description="Database name")
    username: str = Field(default="graph_sink", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    graph_name: str = Field(
        default="stream_graph",
        description="Name of the AGE graph elements are written to",
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
    )
    pool_min_connections: int = Field(
        default=1,
        description="Connections opened when the pool is created",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=4,
        description="Maximum sessions leased at the same time",
        ge=1,
        le=100,
    )
    acquire_timeout_seconds: float = Field(
        default=30.0,
        description="How long session() waits for a free pooled connection",
        gt=0,
    )
    connect_timeout_seconds: int = Field(
        default=10,
        description="TCP connect timeout passed to the driver",
        ge=1,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "ConnectionSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ConnectionSettings":
        """Build settings from a host-engine configuration mapping.

        Keys may use dashes or underscores (``pool-size`` and ``pool_size``
        are equivalent) and a few common aliases are understood. Unknown
        keys are ignored. Values not given fall back to the environment.

        Raises:
            pydantic.ValidationError: If a value fails validation.
        """
        normalized: dict[str, Any] = {}
        for key, value in config.items():
            name = key.strip().lower().replace("-", "_").replace(".", "_")
            normalized[_CONFIG_ALIASES.get(name, name)] = value
        # An explicit pool size must not be undercut by an environment minimum.
        if (
            "pool_max_connections" in normalized
            and "pool_min_connections" not in normalized
        ):
            normalized["pool_min_connections"] = 1
        return cls(**normalized)


class SinkSettings(BaseSettings):
    """Behavioural settings of a sink instance.

    Environment variables:
        GRAPH_SINK_BATCH_SIZE: Statements per round trip; 1 disables batching
        GRAPH_SINK_FAIL_ON_ERROR: Fail the sink after the first failed element
        GRAPH_SINK_STRICT_TEMPLATES: Reject statements with unbound placeholders
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_SINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    batch_size: int = Field(
        default=1,
        description="Statements grouped per round trip (1 = no batching)",
        ge=1,
        le=10_000,
    )
    fail_on_error: bool = Field(
        default=False,
        description="Move the sink to FAILED after an element fails",
    )
    strict_templates: bool = Field(
        default=False,
        description="Validate placeholders before execution",
    )


@lru_cache
def get_connection_settings() -> ConnectionSettings:
    """Get cached connection settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return ConnectionSettings()


@lru_cache
def get_sink_settings() -> SinkSettings:
    """Get cached sink settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return SinkSettings()
