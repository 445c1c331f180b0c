"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("TODO_STORAGE_KEY", "todos")
os.environ.setdefault("TODO_BACKUP_KEY", "todos_backup")

from todo_core.services.blob_store import InMemoryBlobStore, reset_blob_store
from todo_core.services.todo_service import TodoService
from todo_core.utils.config import TodoConfig
from todo_core.utils.ids import SequentialIdGenerator


@pytest.fixture
def blob_store():
    """Empty in-memory blob store."""
    return InMemoryBlobStore()


@pytest.fixture
def id_generator():
    """Deterministic ids: todo-0001, todo-0002, ..."""
    return SequentialIdGenerator()


@pytest.fixture
def config():
    return TodoConfig(storage_key="todos", backup_key="todos_backup", snapshot_version="1.0")


@pytest.fixture
def service(blob_store, id_generator, config):
    """TodoService over an empty in-memory store."""
    return TodoService(blob_store, id_generator=id_generator, config=config)


@pytest.fixture
def change_log(service):
    """Record every list-changed and operation callback of the service fixture."""
    log = {"lists": [], "operations": []}
    service.bind_todo_list_changed(lambda todos: log["lists"].append(todos))
    service.bind_todo_operation(lambda todo, operation: log["operations"].append((todo.id, operation)))
    return log


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def reset_default_blob_store():
    """Make get_blob_store() rebuild from the environment in this test."""
    reset_blob_store()
    yield
    reset_blob_store()
