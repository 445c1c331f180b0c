"""Todo service - owns the todo collection, persistence and change notification."""

import json
from typing import Any, Callable, Iterable, Optional, Union

from todo_core.models.query import ServiceStatistics, TodoFilter, TodoSort, TodoStatistics
from todo_core.models.snapshot import ImportReport, RejectedRecord, Snapshot
from todo_core.models.todo import Todo, TodoPriority, TodoStatus, TodoUpdate, validate_todo
from todo_core.services.blob_store import BlobStore, get_blob_store
from todo_core.services.todo_utils import (
    FilterCriteria,
    apply_sort,
    filter_todos,
    find_todo_by_id,
    get_todo_statistics,
    group_todos,
    sort_todos,
)
from todo_core.utils.clock import day_bounds, utc_now
from todo_core.utils.config import TodoConfig
from todo_core.utils.errors import InvalidData, NotFound, StorageError, ValidationFailed
from todo_core.utils.ids import IdGenerator, generate_todo_id
from todo_core.utils.logging import get_structured_logger, log_timing, sanitize_text

logger = get_structured_logger(__name__)

TodoListChangedCallback = Callable[[list[Todo]], None]
TodoOperationCallback = Callable[[Todo, str], None]
TodoChanges = Union[TodoUpdate, dict[str, Any]]

OPERATION_ADD = "add"
OPERATION_UPDATE = "update"
OPERATION_DELETE = "delete"


class TodoService:
    """
    Owns the authoritative todo list.

    Every accepted mutation ends in a commit: the in-memory list is replaced,
    serialized to the blob store under the primary key, and the change
    listener (if bound) receives a copy. There is one listener slot for list
    changes and one for per-todo operations; binding again replaces the
    previous callback.
    """

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        *,
        id_generator: Optional[IdGenerator] = None,
        config: Optional[TodoConfig] = None,
    ):
        self.config = config or TodoConfig()
        self.blob_store = blob_store if blob_store is not None else get_blob_store()
        self.id_generator = id_generator or generate_todo_id
        self._on_todo_list_changed: Optional[TodoListChangedCallback] = None
        self._on_todo_operation: Optional[TodoOperationCallback] = None
        self._todos: list[Todo] = self._load()
        logger.info(
            "TodoService initialized",
            storage_key=self.config.storage_key,
            todo_count=len(self._todos)
        )

    @property
    def todos(self) -> list[Todo]:
        """A copy of the current list, in insertion order."""
        return list(self._todos)

    def __len__(self) -> int:
        return len(self._todos)

    # ---- listeners ----

    def bind_todo_list_changed(self, callback: Optional[TodoListChangedCallback]) -> None:
        """Set the callback invoked with the whole list after every commit."""
        self._on_todo_list_changed = callback

    def bind_todo_operation(self, callback: Optional[TodoOperationCallback]) -> None:
        """Set the callback invoked per todo with "add", "update" or "delete"."""
        self._on_todo_operation = callback

    # ---- persistence internals ----

    def _load(self) -> list[Todo]:
        try:
            raw = self.blob_store.get_item(self.config.storage_key)
        except Exception as e:
            logger.error("Error loading todos from storage", error=str(e), exc_info=True)
            return []

        if raw is None:
            return []

        try:
            records = json.loads(raw)
        except ValueError as e:
            logger.error("Stored todos are not valid JSON", error=str(e))
            return []

        if not isinstance(records, list):
            logger.error("Stored todos are not a list", payload_type=type(records).__name__)
            return []

        todos = []
        for index, record in enumerate(records):
            try:
                todos.append(Todo.from_record(record))
            except InvalidData as e:
                logger.warning("Skipping unreadable stored todo", record_index=index, error=str(e))
        return todos

    def _persist(self, todos: list[Todo]) -> None:
        payload = json.dumps([todo.to_record() for todo in todos])

        try:
            with log_timing("persist_todos", logger=logger, todo_count=len(todos)):
                self.blob_store.set_item(self.config.storage_key, payload)
        except Exception as e:
            logger.error("Failed to persist todos", error=str(e), payload_bytes=len(payload))
            raise StorageError(f"Failed to persist todos: {e}") from e

    def _commit(self, todos: list[Todo]) -> None:
        self._todos = list(todos)
        self._persist(self._todos)

        if self._on_todo_list_changed is not None:
            self._on_todo_list_changed(list(self._todos))

    def _notify_operation(self, todo: Todo, operation: str) -> None:
        if self._on_todo_operation is not None:
            self._on_todo_operation(todo, operation)

    def _find_index(self, todo_id: str) -> Optional[int]:
        for index, todo in enumerate(self._todos):
            if todo.id == todo_id:
                return index
        return None

    def _require_index(self, todo_id: str) -> int:
        index = self._find_index(todo_id)
        if index is None:
            raise NotFound(todo_id)
        return index

    def _replace_at(self, index: int, todo: Todo) -> Todo:
        todos = list(self._todos)
        todos[index] = todo
        self._commit(todos)
        self._notify_operation(todo, OPERATION_UPDATE)
        return todo

    # ---- CRUD ----

    def add(self, text: str, priority: Union[TodoPriority, str] = TodoPriority.MEDIUM) -> Todo:
        """Create a todo from text and append it. Raises ValidationFailed."""
        todo = Todo.create({"text": text, "priority": priority}, id_generator=self.id_generator)

        self._commit([*self._todos, todo])
        self._notify_operation(todo, OPERATION_ADD)

        logger.info("Todo added", todo_id=todo.id, todo_text=sanitize_text(todo.text))
        return todo

    def get(self, todo_id: str) -> Optional[Todo]:
        return find_todo_by_id(self._todos, todo_id)

    def update(self, todo_id: str, changes: Optional[TodoChanges] = None, **fields: Any) -> Todo:
        """
        Apply partial changes to a todo.

        Raises NotFound for an unknown id and ValidationFailed for bad changes.
        An explicit status is applied as given, including archived.
        """
        index = self._require_index(todo_id)
        updated = self._todos[index].update(changes, **fields)
        return self._replace_at(index, updated)

    def edit(self, todo_id: str, text: str) -> Todo:
        """Replace a todo's text."""
        return self.update(todo_id, text=text)

    def remove(self, todo_id: str) -> bool:
        """Delete a todo. Returns False, with no side effects, for an unknown id."""
        index = self._find_index(todo_id)
        if index is None:
            logger.debug("Remove ignored for unknown todo", todo_id=todo_id)
            return False

        todo = self._todos[index]
        self._commit([t for t in self._todos if t.id != todo_id])
        self._notify_operation(todo, OPERATION_DELETE)
        return True

    def toggle(self, todo_id: str) -> Todo:
        """
        Flip completion between pending/incomplete and completed/complete.

        Raises NotFound for an unknown id and UnsupportedTransition for an
        archived todo.
        """
        index = self._require_index(todo_id)
        return self._replace_at(index, self._todos[index].toggle())

    # ---- bulk operations ----

    def add_many(self, texts: Iterable[str]) -> list[Todo]:
        """Create a todo per valid text in a single commit; invalid texts are logged and skipped."""
        new_todos: list[Todo] = []
        for text in texts:
            try:
                new_todos.append(Todo.create({"text": text}, id_generator=self.id_generator))
            except ValidationFailed as e:
                logger.warning(
                    "Skipping invalid todo text",
                    todo_text=sanitize_text(text) if isinstance(text, str) else None,
                    errors=e.errors
                )

        self._commit([*self._todos, *new_todos])
        for todo in new_todos:
            self._notify_operation(todo, OPERATION_ADD)

        logger.info("Todos added in bulk", accepted=len(new_todos))
        return new_todos

    def remove_many(self, todo_ids: Iterable[str]) -> int:
        """Delete every todo whose id is given, in a single commit. Returns the count removed."""
        ids = set(todo_ids)
        removed = [todo for todo in self._todos if todo.id in ids]

        self._commit([todo for todo in self._todos if todo.id not in ids])
        for todo in removed:
            self._notify_operation(todo, OPERATION_DELETE)

        return len(removed)

    def update_many(self, updates: Iterable[tuple[str, TodoChanges]]) -> list[Todo]:
        """
        Apply (todo_id, changes) pairs in a single commit.

        Unknown ids and invalid changes are logged and skipped so one bad entry
        never blocks the rest.
        """
        todos = list(self._todos)
        positions = {todo.id: index for index, todo in enumerate(todos)}
        updated: list[Todo] = []

        for todo_id, changes in updates:
            index = positions.get(todo_id)
            if index is None:
                logger.warning("Skipping update for unknown todo", todo_id=todo_id)
                continue
            try:
                todos[index] = todos[index].update(changes)
            except ValidationFailed as e:
                logger.warning("Skipping invalid todo update", todo_id=todo_id, errors=e.errors)
                continue
            updated.append(todos[index])

        self._commit(todos)
        for todo in updated:
            self._notify_operation(todo, OPERATION_UPDATE)

        return updated

    def toggle_all(self, complete: bool) -> list[Todo]:
        """Mark every non-archived todo complete or pending in a single commit."""
        status = TodoStatus.COMPLETED if complete else TodoStatus.PENDING
        updates = []
        for todo in self._todos:
            if todo.status is TodoStatus.ARCHIVED:
                logger.debug("Archived todo left out of toggle_all", todo_id=todo.id)
                continue
            updates.append((todo.id, {"complete": complete, "status": status}))
        return self.update_many(updates)

    def clear_completed(self) -> int:
        """Remove every complete todo. Returns the count removed."""
        return self.remove_many([todo.id for todo in self._todos if todo.complete])

    def clear_all(self) -> None:
        self._commit([])

    # ---- queries ----

    def find_todos(self, criteria: FilterCriteria = None) -> list[Todo]:
        return filter_todos(self._todos, criteria)

    def search_todos(self, query: str) -> list[Todo]:
        """Case-insensitive search over text, description and tags. A blank query returns everything."""
        if not query.strip():
            return self.todos
        return filter_todos(self._todos, TodoFilter(search_text=query.strip()))

    def by_status(self, status: Union[TodoStatus, str]) -> list[Todo]:
        return filter_todos(self._todos, TodoFilter(status=status))

    def by_priority(self, priority: Union[TodoPriority, str]) -> list[Todo]:
        return filter_todos(self._todos, TodoFilter(priority=priority))

    def overdue(self) -> list[Todo]:
        """Incomplete todos whose due date has passed."""
        now = utc_now()
        candidates = filter_todos(self._todos, TodoFilter(complete=False, due_before=now))
        return [todo for todo in candidates if todo.due_date < now]

    def due_today(self) -> list[Todo]:
        """Incomplete todos due within the current UTC calendar day."""
        start, end = day_bounds(utc_now())
        return filter_todos(self._todos, TodoFilter(complete=False, due_after=start, due_before=end))

    def sorted_by(self, field: str, ascending: bool = True) -> list[Todo]:
        return sort_todos(self._todos, field, "asc" if ascending else "desc")

    def sort(self, sort: Union[TodoSort, dict[str, Any]]) -> list[Todo]:
        return apply_sort(self._todos, TodoSort.model_validate(sort))

    def grouped_by(self, field: str) -> dict[Any, list[Todo]]:
        return group_todos(self._todos, field)

    # ---- statistics ----

    def statistics(self) -> TodoStatistics:
        return get_todo_statistics(self._todos)

    def count(self) -> dict[str, int]:
        stats = self.statistics()
        return {"total": stats.total, "completed": stats.completed, "pending": stats.pending}

    def completion_rate(self) -> float:
        """Percent of todos that are complete, 0 for an empty list."""
        stats = self.statistics()
        return (stats.completed / stats.total) * 100 if stats.total else 0.0

    def priority_distribution(self) -> dict[TodoPriority, int]:
        return self.statistics().by_priority

    def service_statistics(self) -> ServiceStatistics:
        """Collection statistics plus completion rate and average completion time."""
        stats = self.statistics()
        completed = [todo for todo in self._todos if todo.complete]
        average_ms = None
        if completed:
            spans = [(todo.updated_at - todo.created_at).total_seconds() * 1000 for todo in completed]
            average_ms = sum(spans) / len(spans)

        return ServiceStatistics(
            **stats.model_dump(),
            completion_rate=self.completion_rate(),
            average_completion_time_ms=average_ms,
        )

    # ---- export / import / backup ----

    def snapshot(self) -> Snapshot:
        return Snapshot(
            version=self.config.snapshot_version,
            timestamp=utc_now(),
            items=[todo.to_record() for todo in self._todos],
        )

    def export(self) -> str:
        """Serialize the collection as an indented JSON snapshot."""
        return self.snapshot().model_dump_json(indent=2)

    @staticmethod
    def _snapshot_items(data: Union[str, bytes, dict[str, Any], Snapshot]) -> list[Any]:
        if isinstance(data, Snapshot):
            payload: Any = data.model_dump(mode="json")
        elif isinstance(data, (str, bytes, bytearray)):
            try:
                payload = json.loads(data)
            except ValueError as e:
                raise InvalidData(f"Failed to parse import data: {e}") from e
        else:
            payload = data

        if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
            raise InvalidData("Invalid import data format: expected an object with an items array")
        return payload["items"]

    def import_with_report(self, data: Union[str, bytes, dict[str, Any], Snapshot]) -> ImportReport:
        """
        Import a snapshot and report what was rejected.

        Invalid records are dropped. A record whose id is already present
        replaces that todo in place, so ids stay unique. accepted counts
        distinct ids; when a payload repeats an id the last valid record wins.
        Accepted records are persisted in a single commit. The snapshot
        version is not checked.
        """
        records = self._snapshot_items(data)
        todos = list(self._todos)
        positions = {todo.id: index for index, todo in enumerate(todos)}
        accepted = 0
        replaced = 0
        imported_ids: set[str] = set()
        rejected: list[RejectedRecord] = []

        for index, record in enumerate(records):
            try:
                todo = Todo.from_record(record)
            except InvalidData as e:
                rejected.append(RejectedRecord(index=index, reasons=[str(e)]))
                continue

            validation = validate_todo(todo)
            if not validation.is_valid:
                rejected.append(RejectedRecord(index=index, reasons=validation.errors))
                continue

            if todo.id in imported_ids:
                # Repeated id within one payload, the later record wins
                todos[positions[todo.id]] = todo
                continue
            imported_ids.add(todo.id)

            if todo.id in positions:
                todos[positions[todo.id]] = todo
                replaced += 1
            else:
                positions[todo.id] = len(todos)
                todos.append(todo)
            accepted += 1

        self._commit(todos)

        logger.info("Todos imported", accepted=accepted, replaced=replaced, rejected=len(rejected))
        return ImportReport(accepted=accepted, replaced=replaced, rejected=rejected)

    def import_data(self, data: Union[str, bytes, dict[str, Any], Snapshot]) -> int:
        """Import a snapshot, returning how many records were accepted. Raises InvalidData."""
        return self.import_with_report(data).accepted

    def backup(self) -> str:
        """Write an export snapshot to the backup key and return it."""
        backup = self.export()
        try:
            self.blob_store.set_item(self.config.backup_key, backup)
        except Exception as e:
            logger.warning("Failed to store backup", backup_key=self.config.backup_key, error=str(e))
        return backup

    def load_backup(self) -> Optional[str]:
        """Return the most recent stored backup, or None."""
        try:
            return self.blob_store.get_item(self.config.backup_key)
        except Exception as e:
            logger.warning("Failed to read backup", backup_key=self.config.backup_key, error=str(e))
            return None

    def restore(self, snapshot: Union[str, bytes, dict[str, Any], Snapshot, None] = None) -> bool:
        """
        Replace the collection with a snapshot, defaulting to the stored backup.

        Never raises: any failure is logged, the previous collection is kept
        in memory and in storage, and False is returned.
        """
        previous = self._todos
        try:
            if snapshot is None:
                snapshot = self.load_backup()
                if snapshot is None:
                    raise InvalidData("No backup available")
            self._todos = []
            self.import_data(snapshot)
        except Exception as e:
            self._todos = previous
            logger.error("Failed to restore from backup", error=str(e))
            # The restored list may already be stored, e.g. when a listener raised
            try:
                self._persist(previous)
            except StorageError:
                logger.warning("Stored todos may not match memory after failed restore", todo_count=len(previous))
            return False

        logger.info("Todos restored", todo_count=len(self._todos))
        return True

    # ---- integrity ----

    def is_valid(self, todo: Todo) -> bool:
        return validate_todo(todo).is_valid

    def validate_all(self) -> list[Todo]:
        """Return the todos that fail validation."""
        return [todo for todo in self._todos if not self.is_valid(todo)]

    def repair(self) -> int:
        """Drop invalid todos, committing only when something was removed. Returns the count removed."""
        valid = [todo for todo in self._todos if self.is_valid(todo)]
        removed = len(self._todos) - len(valid)
        if removed:
            self._commit(valid)
            logger.warning("Invalid todos removed", removed=removed)
        return removed
