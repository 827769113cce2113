"""Result models produced by the syncers.

Aggregates derive every total from their children, so a result tree built
bottom-up can never report counts that disagree with its leaves.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.models.config import SyncMode


class CollectionResult(BaseModel):
    """Outcome of copying one collection."""

    model_config = ConfigDict(frozen=True)

    collection: str = Field(..., description="Collection name")
    count: int = Field(default=0, ge=0, description="Documents copied or upserted")
    inserted: int = Field(default=0, ge=0, description="Documents inserted (incremental)")
    updated: int = Field(default=0, ge=0, description="Documents replaced (incremental)")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    success: bool = Field(default=True)
    error: str | None = Field(default=None)
    warnings: list[str] = Field(
        default_factory=list, description="Non-fatal problems, e.g. index replication"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def speed(self) -> float:
        """Documents per second, 0 when no time elapsed."""
        if self.duration_seconds <= 0:
            return 0.0
        return self.count / self.duration_seconds


class DatabaseResult(BaseModel):
    """Outcome of copying the resolved collections of one database."""

    model_config = ConfigDict(frozen=True)

    database: str = Field(..., description="Source database name")
    collections: list[CollectionResult] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    error: str | None = Field(
        default=None, description="Database-level failure, e.g. collection listing"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_count(self) -> int:
        return sum(r.count for r in self.collections)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_inserted(self) -> int:
        return sum(r.inserted for r in self.collections)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_updated(self) -> int:
        return sum(r.updated for r in self.collections)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return sum(1 for r in self.collections if r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.collections if not r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.error is None and self.fail_count == 0

    def failures(self) -> list[CollectionResult]:
        return [r for r in self.collections if not r.success]


class MultiDatabaseResult(BaseModel):
    """Outcome of copying several databases, or a whole instance."""

    model_config = ConfigDict(frozen=True)

    databases: list[DatabaseResult] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    error: str | None = Field(default=None)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_databases(self) -> int:
        return len(self.databases)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_count(self) -> int:
        return sum(r.total_count for r in self.databases)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return sum(1 for r in self.databases if r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.databases if not r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.error is None and self.fail_count == 0


class RunResult(BaseModel):
    """What a sync run hands back to its caller."""

    model_config = ConfigDict(frozen=True)

    mode: SyncMode
    outcome: DatabaseResult | MultiDatabaseResult

    @property
    def success(self) -> bool:
        return self.outcome.success

    @property
    def total_count(self) -> int:
        return self.outcome.total_count

    @property
    def partial(self) -> bool:
        """True when some children succeeded and others failed."""
        return not self.success and self.outcome.success_count > 0

    def to_summary(self) -> dict[str, Any]:
        """Flatten into ``{mode, success, <aggregate fields>, error?}``."""
        summary: dict[str, Any] = {"mode": self.mode.value}
        summary.update(self.outcome.model_dump(mode="json"))
        summary["success"] = self.success
        if summary.get("error") is None:
            summary.pop("error", None)
        return summary
