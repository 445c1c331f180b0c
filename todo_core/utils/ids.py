"""Unique id generation for todos."""

import itertools
from typing import Callable

from ulid import ULID

# Any zero-argument callable returning a fresh string id
IdGenerator = Callable[[], str]


def generate_todo_id() -> str:
    """Generate a todo id (ULID format)."""
    return str(ULID())


class SequentialIdGenerator:
    """Deterministic ids for tests: todo-0001, todo-0002, ..."""

    def __init__(self, prefix: str = "todo", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter):04d}"
