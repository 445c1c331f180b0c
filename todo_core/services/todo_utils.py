"""Pure helpers over an ordered sequence of todos: filter, sort, group, statistics."""

import locale
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Iterable, Optional, Sequence, Union
from pydantic.alias_generators import to_camel

from todo_core.models.query import TodoFilter, TodoSort, TodoStatistics
from todo_core.models.todo import Todo, TodoPriority, TodoStatus

FilterCriteria = Union[TodoFilter, dict[str, Any], None]

DERIVED_FIELDS = ("is_overdue", "is_pending", "is_completed")


def _as_filter(criteria: FilterCriteria) -> TodoFilter:
    if isinstance(criteria, TodoFilter):
        return criteria
    return TodoFilter.model_validate(criteria or {})


def _matches(todo: Todo, criteria: TodoFilter) -> bool:
    statuses = criteria.statuses()
    if statuses is not None and todo.status not in statuses:
        return False

    priorities = criteria.priorities()
    if priorities is not None and todo.priority not in priorities:
        return False

    if criteria.complete is not None and todo.complete != criteria.complete:
        return False

    tags = criteria.tag_set()
    if tags is not None and not tags.intersection(todo.tags):
        return False

    # Date bounds never match a todo without a due date
    if criteria.due_before is not None:
        if todo.due_date is None or todo.due_date > criteria.due_before:
            return False

    if criteria.due_after is not None:
        if todo.due_date is None or todo.due_date < criteria.due_after:
            return False

    if criteria.search_text is not None:
        needle = criteria.search_text.lower()
        in_text = needle in todo.text.lower()
        in_description = bool(todo.description) and needle in todo.description.lower()
        in_tags = any(needle in tag for tag in todo.tags)
        if not (in_text or in_description or in_tags):
            return False

    return True


def filter_todos(todos: Iterable[Todo], criteria: FilterCriteria = None) -> list[Todo]:
    """
    Return the todos matching every criterion that is set.

    Criteria left unset impose no constraint, so an empty filter returns the
    input unchanged in content and order.
    """
    criteria = _as_filter(criteria)
    return [todo for todo in todos if _matches(todo, criteria)]


def resolve_field(field: str) -> str:
    """Map a snake_case or camelCase field name to the Todo attribute name."""
    if field in Todo.model_fields or field in DERIVED_FIELDS:
        return field
    for name, info in Todo.model_fields.items():
        if info.alias == field:
            return name
    for name in DERIVED_FIELDS:
        if to_camel(name) == field:
            return name
    raise ValueError(f"Unknown todo field: {field}")


def _compare_values(a: Any, b: Any) -> int:
    if isinstance(a, datetime) and isinstance(b, datetime):
        delta = a.timestamp() - b.timestamp()
        return (delta > 0) - (delta < 0)
    if isinstance(a, str) and isinstance(b, str):
        left, right = locale.strxfrm(a), locale.strxfrm(b)
        return (left > right) - (left < right)
    if isinstance(a, bool) and isinstance(b, bool):
        return int(a) - int(b)
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return (a > b) - (a < b)
    left = locale.strxfrm(_fallback_str(a))
    right = locale.strxfrm(_fallback_str(b))
    return (left > right) - (left < right)


def _fallback_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (tuple, list)):
        return ",".join(str(item) for item in value)
    return str(value)


def sort_todos(todos: Iterable[Todo], field: str, direction: str = "asc") -> list[Todo]:
    """
    Stable sort by one field.

    Datetimes compare by epoch, strings by locale collation, booleans as
    False < True, numbers numerically, anything else by its string form.
    Todos with equal keys keep their input order in either direction.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction: {direction}")
    name = resolve_field(field)
    sign = -1 if direction == "desc" else 1

    def compare(a: Todo, b: Todo) -> int:
        return sign * _compare_values(getattr(a, name), getattr(b, name))

    return sorted(todos, key=cmp_to_key(compare))


def apply_sort(todos: Iterable[Todo], sort: TodoSort) -> list[Todo]:
    return sort_todos(todos, sort.field, sort.direction)


def group_todos(todos: Iterable[Todo], field: str) -> dict[Any, list[Todo]]:
    """Group todos by the value of one field, keeping first-seen key order."""
    name = resolve_field(field)
    groups: dict[Any, list[Todo]] = {}
    for todo in todos:
        groups.setdefault(getattr(todo, name), []).append(todo)
    return groups


def get_todo_statistics(todos: Sequence[Todo]) -> TodoStatistics:
    """Count totals plus a zero-filled breakdown for every status and priority."""
    by_status = {status: 0 for status in TodoStatus}
    by_priority = {priority: 0 for priority in TodoPriority}
    completed = 0
    overdue = 0

    for todo in todos:
        if todo.complete:
            completed += 1
        if todo.is_overdue:
            overdue += 1
        by_status[todo.status] += 1
        by_priority[todo.priority] += 1

    return TodoStatistics(
        total=len(todos),
        completed=completed,
        pending=len(todos) - completed,
        overdue=overdue,
        by_status=by_status,
        by_priority=by_priority,
    )


def find_todo_by_id(todos: Iterable[Todo], todo_id: str) -> Optional[Todo]:
    return next((todo for todo in todos if todo.id == todo_id), None)


def todo_exists(todos: Iterable[Todo], todo_id: str) -> bool:
    return find_todo_by_id(todos, todo_id) is not None


def get_all_tags(todos: Iterable[Todo]) -> list[str]:
    """All distinct tags in the collection, sorted."""
    return sorted({tag for todo in todos for tag in todo.tags})


def to_map(todos: Iterable[Todo]) -> dict[str, Todo]:
    return {todo.id: todo for todo in todos}


def get_default_sort() -> TodoSort:
    return TodoSort(field="created_at", direction="desc")


def is_valid_filter(criteria: FilterCriteria) -> bool:
    """A filter is valid unless its due-date bounds form an empty range."""
    criteria = _as_filter(criteria)
    if criteria.due_before is not None and criteria.due_after is not None:
        return criteria.due_before >= criteria.due_after
    return True
