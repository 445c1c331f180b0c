"""Todo model - the task item, its validation rules and its single mutation path."""

from enum import Enum
from datetime import datetime
from typing import Any, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from todo_core.utils.clock import ensure_utc, utc_now
from todo_core.utils.config import TodoConfig
from todo_core.utils.errors import InvalidData, UnsupportedTransition, ValidationFailed
from todo_core.utils.ids import IdGenerator, generate_todo_id
from todo_core.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class TodoStatus(str, Enum):
    """Todo lifecycle status."""
    PENDING = "pending"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TodoPriority(str, Enum):
    """Todo priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def normalize_tags(tags: Optional[list[str]]) -> list[str]:
    """Trim, lower-case and de-duplicate tags, keeping first-seen order."""
    normalized: list[str] = []
    for tag in tags or []:
        value = tag.strip().lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


class TodoData(BaseModel):
    """User-supplied data for creating a todo."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    text: str = Field(
        ...,
        min_length=1,
        max_length=TodoConfig.MAX_TEXT_LENGTH,
        description="Todo text, trimmed"
    )
    description: Optional[str] = Field(
        None,
        max_length=TodoConfig.MAX_DESCRIPTION_LENGTH,
        description="Longer free-text description"
    )
    complete: bool = Field(default=False, description="Completion flag")
    status: Optional[TodoStatus] = Field(None, description="Defaults from complete when omitted")
    priority: Optional[TodoPriority] = Field(None, description="Defaults to medium when omitted")
    due_date: Optional[datetime] = Field(None, description="Due date, naive values read as UTC")
    tags: list[str] = Field(default_factory=list, description="Free-form labels")

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)


class TodoUpdate(BaseModel):
    """Partial changes for an existing todo. Only fields that are set get applied."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    text: Optional[str] = Field(None, min_length=1, max_length=TodoConfig.MAX_TEXT_LENGTH)
    description: Optional[str] = Field(None, max_length=TodoConfig.MAX_DESCRIPTION_LENGTH)
    complete: Optional[bool] = None
    status: Optional[TodoStatus] = None
    priority: Optional[TodoPriority] = None
    due_date: Optional[datetime] = None
    tags: Optional[list[str]] = None

    @field_validator("text")
    @classmethod
    def _text_not_cleared(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Text is required and cannot be empty")
        return value

    @field_validator("complete", "status", "priority")
    @classmethod
    def _not_cleared(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            raise ValueError(f"{info.field_name.capitalize()} cannot be cleared")
        return value

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: Optional[list[str]]) -> list[str]:
        return normalize_tags(value)


class TodoValidation(BaseModel):
    """Outcome of validating todo data."""
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def _describe_errors(exc: ValidationError) -> list[str]:
    """Turn pydantic errors into one readable message per violation."""
    # loc carries the camelCase alias when one exists
    names = {info.alias: name for name, info in Todo.model_fields.items() if info.alias}
    messages = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "todo"
        field = names.get(field, field)
        label = field.replace("_", " ").capitalize()
        kind = error["type"]
        if kind == "missing":
            messages.append(f"{label} is required")
        elif kind == "string_too_short":
            messages.append(f"{label} is required and cannot be empty")
        elif kind == "string_too_long":
            messages.append(f"{label} cannot exceed {error['ctx']['max_length']} characters")
        elif kind == "enum":
            messages.append(f"Invalid {field} value")
        elif kind == "extra_forbidden":
            messages.append(f"{label} cannot be set")
        elif kind == "value_error":
            messages.append(str(error["ctx"]["error"]))
        else:
            messages.append(f"{label}: {error['msg']}")
    return messages


def _past_due_warnings(due_date: Optional[datetime]) -> list[str]:
    if due_date is not None and due_date < utc_now():
        return ["Due date is in the past"]
    return []


def _parse_todo_data(data: Any) -> tuple[Optional[TodoData], TodoValidation]:
    if isinstance(data, TodoData):
        data = data.model_dump(exclude_unset=True)
    try:
        parsed = TodoData.model_validate(data)
    except ValidationError as exc:
        return None, TodoValidation(is_valid=False, errors=_describe_errors(exc))
    return parsed, TodoValidation(is_valid=True, warnings=_past_due_warnings(parsed.due_date))


def validate_todo_data(data: Union[TodoData, dict[str, Any]]) -> TodoValidation:
    """
    Validate creation data without building a todo.

    Every violation is reported, not just the first. A due date in the past
    is only a warning.
    """
    _, validation = _parse_todo_data(data)
    return validation


class Todo(BaseModel):
    """
    A single task item.

    The model is frozen: id and created_at are fixed at construction and the
    only way to change content is update(), which returns a new value with a
    refreshed updated_at.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(..., min_length=1, description="Opaque unique id")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    updated_at: datetime = Field(..., description="Last accepted mutation (UTC)")
    text: str = Field(..., description="Todo text")
    description: Optional[str] = Field(None, description="Longer description")
    complete: bool = Field(default=False)
    status: TodoStatus = Field(default=TodoStatus.PENDING)
    priority: TodoPriority = Field(default=TodoPriority.MEDIUM)
    due_date: Optional[datetime] = Field(None, description="Due date (UTC)")
    tags: tuple[str, ...] = Field(default=(), description="Normalized tags")

    @field_validator("created_at", "updated_at", "due_date")
    @classmethod
    def _timestamps_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(normalize_tags(list(value)))

    @property
    def is_overdue(self) -> bool:
        if self.due_date is None:
            return False
        return self.due_date < utc_now() and not self.complete

    @property
    def is_pending(self) -> bool:
        return self.status is TodoStatus.PENDING and not self.complete

    @property
    def is_completed(self) -> bool:
        return self.complete and self.status is TodoStatus.COMPLETED

    @classmethod
    def create(
        cls,
        data: Union[TodoData, dict[str, Any]],
        *,
        id_generator: Optional[IdGenerator] = None,
    ) -> "Todo":
        """Validate creation data and build a new todo with defaults filled in."""
        parsed, validation = _parse_todo_data(data)
        if not validation.is_valid:
            raise ValidationFailed(validation.errors, validation.warnings)
        for warning in validation.warnings:
            logger.warning("Todo created with warning", warning=warning)

        now = utc_now()
        status = parsed.status
        if status is None:
            status = TodoStatus.COMPLETED if parsed.complete else TodoStatus.PENDING

        return cls(
            id=(id_generator or generate_todo_id)(),
            created_at=now,
            updated_at=now,
            text=parsed.text,
            description=parsed.description,
            complete=parsed.complete,
            status=status,
            priority=parsed.priority or TodoPriority.MEDIUM,
            due_date=parsed.due_date,
            tags=tuple(parsed.tags),
        )

    def update(self, changes: Union[TodoUpdate, dict[str, Any], None] = None, **fields: Any) -> "Todo":
        """
        Return a copy with the given changes applied.

        Only the fields present in changes are validated. updated_at is always
        refreshed and never moves backwards. Setting complete without an
        explicit status moves pending to completed and back; archived stays
        archived.
        """
        if isinstance(changes, TodoUpdate):
            payload = changes.model_dump(exclude_unset=True)
        else:
            payload = dict(changes or {})
        payload.update(fields)

        try:
            update = TodoUpdate.model_validate(payload)
        except ValidationError as exc:
            raise ValidationFailed(_describe_errors(exc)) from exc

        applied = update.model_dump(exclude_unset=True)
        if "due_date" in applied:
            for warning in _past_due_warnings(applied["due_date"]):
                logger.warning("Todo updated with warning", todo_id=self.id, warning=warning)

        if "complete" in applied and "status" not in applied:
            if applied["complete"] and self.status is TodoStatus.PENDING:
                applied["status"] = TodoStatus.COMPLETED
            elif not applied["complete"] and self.status is TodoStatus.COMPLETED:
                applied["status"] = TodoStatus.PENDING
        if "tags" in applied:
            applied["tags"] = tuple(applied["tags"])

        applied["updated_at"] = max(utc_now(), self.updated_at)
        return self.model_copy(update=applied)

    def toggle(self) -> "Todo":
        """Flip completion, moving status between pending and completed."""
        if self.status is TodoStatus.ARCHIVED:
            raise UnsupportedTransition(self.id, self.status.value)
        return self.update(
            complete=not self.complete,
            status=TodoStatus.PENDING if self.complete else TodoStatus.COMPLETED,
        )

    def add_tag(self, tag: str) -> "Todo":
        normalized = tag.strip().lower()
        if not normalized or normalized in self.tags:
            return self
        return self.update(tags=[*self.tags, normalized])

    def remove_tag(self, tag: str) -> "Todo":
        normalized = tag.strip().lower()
        if normalized not in self.tags:
            return self
        return self.update(tags=[t for t in self.tags if t != normalized])

    def has_tag(self, tag: str) -> bool:
        return tag.strip().lower() in self.tags

    def content(self) -> dict[str, Any]:
        """Return the user-editable fields, as accepted by TodoData."""
        return self.model_dump(
            include={"text", "description", "complete", "status", "priority", "due_date", "tags"}
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the plain record kept in the blob store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, record: Any) -> "Todo":
        """Rebuild a todo from a stored record, keeping its id and timestamps."""
        try:
            return cls.model_validate(record)
        except ValidationError as exc:
            raise InvalidData(f"Invalid todo record: {'; '.join(_describe_errors(exc))}") from exc

    def clone(self) -> "Todo":
        return self.model_copy(deep=True)


def validate_todo(todo: Todo) -> TodoValidation:
    """Check an existing todo's content against the creation rules."""
    content = todo.content()
    content["tags"] = list(content["tags"])
    _, validation = _parse_todo_data(content)
    if not todo.id:
        validation = TodoValidation(
            is_valid=False,
            errors=["Id is required", *validation.errors],
            warnings=validation.warnings,
        )
    return validation
