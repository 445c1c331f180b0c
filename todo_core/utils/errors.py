"""Error handling utilities."""

from typing import Optional


class TodoCoreError(Exception):
    """Base exception for todo-core."""
    pass


class ValidationFailed(TodoCoreError):
    """Todo field content or shape is invalid."""

    def __init__(self, errors: list[str], warnings: Optional[list[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(f"Invalid todo data: {', '.join(self.errors)}")


class NotFound(TodoCoreError):
    """Operation referenced an unknown todo id."""

    def __init__(self, todo_id: str):
        self.todo_id = todo_id
        super().__init__(f"Todo with id {todo_id} not found")


class StorageError(TodoCoreError):
    """Durable store read or write failed."""
    pass


class InvalidData(TodoCoreError):
    """Malformed import payload or persisted record."""
    pass


class UnsupportedTransition(TodoCoreError):
    """Requested status change is not defined for the todo's current state."""

    def __init__(self, todo_id: str, status: str):
        self.todo_id = todo_id
        self.status = status
        super().__init__(f"Cannot toggle todo {todo_id} in status {status}")
