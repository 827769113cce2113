"""Predicate filter value threaded through every copy operation."""

import copy
import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PredicateFilter(BaseModel):
    """Immutable MongoDB query predicate restricting which documents are copied."""

    model_config = ConfigDict(frozen=True)

    conditions: dict[str, Any] = Field(
        default_factory=dict, description="MongoDB query document"
    )

    @classmethod
    def since(cls, field: str, cursor: Any) -> "PredicateFilter":
        """Build a range predicate selecting documents with ``field >= cursor``."""
        return cls(conditions={field: {"$gte": cursor}})

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    def as_query(self) -> dict[str, Any]:
        """Return a copy of the query document safe to hand to a driver call."""
        return copy.deepcopy(self.conditions)

    def combine(self, other: "PredicateFilter") -> "PredicateFilter":
        """Conjunction of two predicates. Empty predicates are identity."""
        if self.is_empty:
            return other
        if other.is_empty:
            return self
        return PredicateFilter(conditions={"$and": [self.as_query(), other.as_query()]})

    def describe(self) -> str:
        """Render the predicate as JSON for log output."""
        return json.dumps(self.conditions, default=_json_default, sort_keys=True)


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
