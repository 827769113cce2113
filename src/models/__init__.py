"""Data models for the MongoDB sync tool."""

from src.models.config import (
    AppConfig,
    EndpointConfig,
    LoggingConfig,
    RunConfig,
    SyncMode,
)
from src.models.filter import PredicateFilter
from src.models.results import (
    CollectionResult,
    DatabaseResult,
    MultiDatabaseResult,
    RunResult,
)

__all__ = [
    "AppConfig",
    "EndpointConfig",
    "LoggingConfig",
    "RunConfig",
    "SyncMode",
    "PredicateFilter",
    "CollectionResult",
    "DatabaseResult",
    "MultiDatabaseResult",
    "RunResult",
]
