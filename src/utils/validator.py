"""Validation of run configuration before any connection is attempted."""

import re
from dataclasses import dataclass
from typing import Any

from src.models.config import MAX_BATCH_SIZE, EndpointConfig, RunConfig, SyncMode

_INVALID_DATABASE_CHARS = re.compile(r'[/\\. "$*<>:|?]')
MAX_DATABASE_NAME_LENGTH = 64


@dataclass(frozen=True)
class ConfigViolation:
    """One problem found in a RunConfig."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def validate_run_config(config: RunConfig) -> list[ConfigViolation]:
    """Check a RunConfig and return every violation found (empty when valid)."""
    violations: list[ConfigViolation] = []

    violations.extend(_validate_endpoint("source", config.source))
    violations.extend(_validate_endpoint("target", config.target))

    if config.mode not in SyncMode.values():
        violations.append(
            ConfigViolation(
                "mode",
                f"invalid sync mode {config.mode!r}, expected one of {', '.join(SyncMode.values())}",
            )
        )

    if config.batch_size <= 0:
        violations.append(ConfigViolation("batch_size", "must be a positive integer"))
    elif config.batch_size > MAX_BATCH_SIZE:
        violations.append(
            ConfigViolation("batch_size", f"must not exceed {MAX_BATCH_SIZE}")
        )

    for name in config.collections:
        if not _is_non_empty_string(name):
            violations.append(ConfigViolation("collections", f"invalid collection name {name!r}"))
        elif "\0" in name:
            violations.append(
                ConfigViolation("collections", f"collection name {name!r} contains a null byte")
            )

    for name in config.databases:
        if not _is_non_empty_string(name):
            violations.append(ConfigViolation("databases", f"invalid database name {name!r}"))
        elif not is_valid_database_name(name):
            violations.append(
                ConfigViolation("databases", f"database name {name!r} is not allowed")
            )

    if config.mode in SyncMode.values():
        violations.extend(_validate_mode_requirements(config))

    return violations


def is_valid_database_name(name: str) -> bool:
    if not name or _INVALID_DATABASE_CHARS.search(name):
        return False
    return len(name) <= MAX_DATABASE_NAME_LENGTH


def _validate_endpoint(label: str, endpoint: EndpointConfig) -> list[ConfigViolation]:
    violations = []
    if not endpoint.host or not endpoint.host.strip():
        violations.append(ConfigViolation(f"{label}.host", "host is required"))
    if endpoint.port is None:
        violations.append(ConfigViolation(f"{label}.port", "port is required"))
    elif not 0 < endpoint.port < 65536:
        violations.append(ConfigViolation(f"{label}.port", f"port {endpoint.port} is out of range"))
    return violations


def _validate_mode_requirements(config: RunConfig) -> list[ConfigViolation]:
    mode = config.sync_mode
    database = config.source.database

    if mode is SyncMode.COLLECTION:
        violations = []
        if not database:
            violations.append(
                ConfigViolation("source.database", "collection mode requires a database name")
            )
        if not config.collections:
            violations.append(
                ConfigViolation("collections", "collection mode requires at least one collection")
            )
        return violations

    if mode is SyncMode.DATABASE and not database and not config.databases:
        return [
            ConfigViolation(
                "source.database", "database mode requires a database name or a database list"
            )
        ]

    if mode is SyncMode.INCREMENTAL:
        violations = []
        if not database:
            violations.append(
                ConfigViolation("source.database", "incremental mode requires a database name")
            )
        if not config.timestamp_field or not config.timestamp_field.strip():
            violations.append(
                ConfigViolation("timestamp_field", "incremental mode requires a timestamp field")
            )
        return violations

    return []


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""
