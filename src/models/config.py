"""Configuration models for the MongoDB sync tool."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.filter import PredicateFilter

MAX_BATCH_SIZE = 10000
DEFAULT_BATCH_SIZE = 1000


class SyncMode(str, Enum):
    """Granularity of a sync run."""

    COLLECTION = "collection"
    DATABASE = "database"
    INSTANCE = "instance"
    INCREMENTAL = "incremental"

    @classmethod
    def values(cls) -> list[str]:
        return [mode.value for mode in cls]


class EndpointConfig(BaseModel):
    """Connection settings for one MongoDB endpoint."""

    host: str = Field(default="", description="Server host name or address")
    port: int | None = Field(default=None, description="Server port")
    username: str | None = Field(default=None, description="Optional user name")
    password: str | None = Field(default=None, description="Optional password")
    database: str | None = Field(default=None, description="Database to sync")
    auth_source: str = Field(
        default="admin", description="Authentication database, used when username is set"
    )
    options: dict[str, Any] = Field(
        default_factory=dict, description="Extra connection string options"
    )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class RunConfig(BaseModel):
    """Settings for a single sync run.

    Types are deliberately permissive for ``mode``, ``batch_size`` and the name
    lists so that bad user input survives construction and is reported by
    :func:`src.utils.validator.validate_run_config` as a list of violations.
    """

    mode: str = Field(default=SyncMode.DATABASE.value, description="Sync mode")
    source: EndpointConfig = Field(default_factory=EndpointConfig)
    target: EndpointConfig = Field(default_factory=EndpointConfig)
    collections: list[Any] = Field(
        default_factory=list, description="Explicit collection names to sync"
    )
    databases: list[Any] = Field(
        default_factory=list, description="Explicit database names to sync"
    )
    exclude_collections: list[str] = Field(default_factory=list)
    exclude_databases: list[str] = Field(default_factory=list)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, description="Documents per write")
    reset_target: bool = Field(
        default=False, description="Drop each target collection before copying"
    )
    dry_run: bool = Field(default=False, description="Count and classify without writing")
    filter: PredicateFilter = Field(default_factory=PredicateFilter)
    timestamp_field: str = Field(
        default="updatedAt", description="Field compared against the since-cursor"
    )
    since: datetime | None = Field(
        default=None, description="Explicit start of the incremental window"
    )

    @field_validator("filter", mode="before")
    @classmethod
    def wrap_plain_filter(cls, v: Any) -> Any:
        """Accept a bare query document wherever a PredicateFilter is expected."""
        if isinstance(v, dict) and "conditions" not in v:
            return {"conditions": v}
        return v

    @property
    def sync_mode(self) -> SyncMode:
        return SyncMode(self.mode)

    @property
    def target_database(self) -> str | None:
        """Target database name, defaulting to the source database name."""
        return self.target.database or self.source.database


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=False,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the MONGOSYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONGOSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    sync: RunConfig = Field(default_factory=RunConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
