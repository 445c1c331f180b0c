"""Centralized todo-core settings with environment variable support."""

import os
from typing import Optional


class TodoConfig:
    """Storage keys, snapshot version and validation limits."""

    # Environment variable defaults
    STORAGE_KEY = os.environ.get("TODO_STORAGE_KEY", "todos")
    BACKUP_KEY = os.environ.get("TODO_BACKUP_KEY", "todos_backup")
    STORAGE_DIR: Optional[str] = os.environ.get("TODO_STORAGE_DIR") or None
    SNAPSHOT_VERSION = os.environ.get("TODO_SNAPSHOT_VERSION", "1.0")

    # Validation limits
    MAX_TEXT_LENGTH = 500
    MAX_DESCRIPTION_LENGTH = 1000

    def __init__(
        self,
        storage_key: Optional[str] = None,
        backup_key: Optional[str] = None,
        storage_dir: Optional[str] = None,
        snapshot_version: Optional[str] = None,
    ):
        self.storage_key = storage_key or self.STORAGE_KEY
        self.backup_key = backup_key or self.BACKUP_KEY
        self.storage_dir = storage_dir or self.STORAGE_DIR
        self.snapshot_version = snapshot_version or self.SNAPSHOT_VERSION

    @classmethod
    def from_env(cls) -> "TodoConfig":
        """Build a config from the environment as it is now, not at import time."""
        return cls(
            storage_key=os.environ.get("TODO_STORAGE_KEY"),
            backup_key=os.environ.get("TODO_BACKUP_KEY"),
            storage_dir=os.environ.get("TODO_STORAGE_DIR"),
            snapshot_version=os.environ.get("TODO_SNAPSHOT_VERSION"),
        )
