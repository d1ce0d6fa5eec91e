"""
Knowledge record types and query filter schema.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> Optional["Priority"]:
        """Return the matching priority, or None for anything outside the enumeration."""
        if isinstance(value, Priority):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# Comparison rank used for sorting: high > medium > low > unset
PRIORITY_RANK = {
    None: 0,
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
}

USER_DATA_PREFIX = "user_data."


def user_data_category(key: str) -> str:
    """Category under which a keyed fact is stored."""
    return f"{USER_DATA_PREFIX}{key}"


@dataclass(frozen=True)
class KnowledgeRecord:
    """A persisted unit of preserved information tied to a conversation scope."""

    id: str
    scope: str
    content: str
    created_at: datetime
    modified_at: datetime
    version: int = 1
    category: Optional[str] = None
    priority: Optional[Priority] = None
    origin_reference: Optional[str] = None

    @property
    def user_data_key(self) -> Optional[str]:
        """The fact key when this record stores a keyed fact."""
        if self.category and self.category.startswith(USER_DATA_PREFIX):
            return self.category[len(USER_DATA_PREFIX):]
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value if self.priority else None
        data["created_at"] = self.created_at.isoformat()
        data["modified_at"] = self.modified_at.isoformat()
        return data


SortField = Literal["created_at", "modified_at", "priority"]


class QueryFilter(BaseModel):
    """Criteria for RecordStore.query."""

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    priority: Optional[Priority] = None
    created_between: Optional[Tuple[datetime, datetime]] = None
    limit: Optional[int] = None
    sort_by: Optional[SortField] = None
    sort_direction: Literal["asc", "desc"] = "desc"

    @field_validator('priority', mode='before')
    @classmethod
    def priority_must_be_known(cls, v):
        if v is None:
            return None
        priority = Priority.parse(v)
        if priority is None:
            raise ValueError(f'priority must be one of: {[p.value for p in Priority]}')
        return priority

    @field_validator('limit')
    @classmethod
    def limit_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('limit cannot be negative')
        return v

    @model_validator(mode='after')
    def range_must_be_ordered(self):
        if self.created_between is not None:
            start, end = self.created_between
            if start > end:
                raise ValueError('created_between start must not be after end')
        return self
