"""Query models - filter criteria, sort criteria and collection statistics."""

from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from todo_core.models.todo import TodoPriority, TodoStatus
from todo_core.utils.clock import ensure_utc


class TodoFilter(BaseModel):
    """Filter criteria. Every field is optional; fields that are set are ANDed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    status: Optional[Union[TodoStatus, list[TodoStatus]]] = Field(
        None,
        description="Single status or any of several"
    )
    priority: Optional[Union[TodoPriority, list[TodoPriority]]] = Field(
        None,
        description="Single priority or any of several"
    )
    complete: Optional[bool] = None
    tags: Optional[Union[str, list[str]]] = Field(
        None,
        description="Matches when any tag overlaps, case-insensitive"
    )
    due_before: Optional[datetime] = Field(None, description="Inclusive upper bound on due_date")
    due_after: Optional[datetime] = Field(None, description="Inclusive lower bound on due_date")
    search_text: Optional[str] = Field(
        None,
        description="Case-insensitive substring over text, description and tags"
    )

    @field_validator("due_before", "due_after")
    @classmethod
    def _bounds_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def statuses(self) -> Optional[list[TodoStatus]]:
        if self.status is None:
            return None
        return self.status if isinstance(self.status, list) else [self.status]

    def priorities(self) -> Optional[list[TodoPriority]]:
        if self.priority is None:
            return None
        return self.priority if isinstance(self.priority, list) else [self.priority]

    def tag_set(self) -> Optional[set[str]]:
        if self.tags is None:
            return None
        tags = [self.tags] if isinstance(self.tags, str) else self.tags
        return {tag.strip().lower() for tag in tags}


class TodoSort(BaseModel):
    """Sort criteria."""
    field: str = Field(..., description="Todo field name, snake_case or camelCase")
    direction: Literal["asc", "desc"] = "asc"


class TodoStatistics(BaseModel):
    """Aggregate counts over a todo collection."""
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
    by_status: dict[TodoStatus, int] = Field(default_factory=dict)
    by_priority: dict[TodoPriority, int] = Field(default_factory=dict)


class ServiceStatistics(TodoStatistics):
    """Collection statistics plus completion metrics."""
    completion_rate: float = Field(0.0, ge=0.0, le=100.0, description="Percent of todos complete")
    average_completion_time_ms: Optional[float] = Field(
        None,
        description="Mean created_at to updated_at span of complete todos"
    )
