"""Tests for TodoService CRUD, bulk operations, queries and listeners."""

import errno
import json
import pytest
from datetime import datetime, timedelta, timezone
from todo_core.models.todo import TodoPriority, TodoStatus
from todo_core.services.blob_store import InMemoryBlobStore
from todo_core.services.todo_service import TodoService
from todo_core.utils.errors import NotFound, StorageError, UnsupportedTransition, ValidationFailed
from tests.utils.assertions import assert_stored_todos, assert_valid_todo


@pytest.mark.unit
def test_add_trims_persists_and_notifies(service, blob_store, change_log):
    """Test add stores the trimmed text and runs one commit."""
    todo = service.add("  Buy milk  ")

    assert todo.text == "Buy milk"
    assert todo.priority == TodoPriority.MEDIUM
    assert_valid_todo(todo)
    assert service.todos == [todo]

    records = assert_stored_todos(blob_store)
    assert [record["text"] for record in records] == ["Buy milk"]

    assert change_log["lists"] == [[todo]]
    assert change_log["operations"] == [(todo.id, "add")]


@pytest.mark.unit
def test_add_with_priority(service):
    """Test add accepts a priority enum or its value."""
    assert service.add("Pay rent", TodoPriority.CRITICAL).priority == TodoPriority.CRITICAL
    assert service.add("Read book", "low").priority == TodoPriority.LOW


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "   ", "x" * 501])
def test_add_rejects_invalid_text(service, blob_store, change_log, text):
    """Test invalid text raises and leaves no trace."""
    with pytest.raises(ValidationFailed):
        service.add(text)

    assert service.todos == []
    assert blob_store.get_item("todos") is None
    assert change_log["lists"] == []


@pytest.mark.unit
def test_add_rejects_invalid_priority(service):
    """Test an unknown priority is a validation failure."""
    with pytest.raises(ValidationFailed) as exc_info:
        service.add("Pay rent", "urgent")

    assert exc_info.value.errors == ["Invalid priority value"]


@pytest.mark.unit
def test_ids_unique_across_session(service):
    """Test every added todo gets a distinct id."""
    todos = [service.add(f"Item {i}") for i in range(20)]
    todos += service.add_many([f"Bulk {i}" for i in range(20)])

    assert len({todo.id for todo in todos}) == 40


@pytest.mark.unit
def test_get(service):
    """Test lookup by id."""
    todo = service.add("Buy milk")

    assert service.get(todo.id) == todo
    assert service.get("missing") is None


@pytest.mark.unit
def test_update_applies_changes(service, change_log, freeze_time_fixture):
    """Test update validates, commits and reports."""
    todo = service.add("Draft")
    freeze_time_fixture.tick(timedelta(minutes=1))

    updated = service.update(todo.id, {"text": "Final", "tags": ["Work"]}, priority="high")

    assert updated.id == todo.id
    assert updated.created_at == todo.created_at
    assert updated.updated_at > todo.updated_at
    assert updated.text == "Final"
    assert updated.tags == ("work",)
    assert updated.priority == TodoPriority.HIGH
    assert service.get(todo.id) == updated
    assert change_log["operations"][-1] == (todo.id, "update")


@pytest.mark.unit
def test_update_unknown_id_raises_not_found(service, change_log):
    """Test update on a missing id."""
    with pytest.raises(NotFound) as exc_info:
        service.update("missing", text="Anything")

    assert exc_info.value.todo_id == "missing"
    assert change_log["lists"] == []


@pytest.mark.unit
def test_update_invalid_changes_leave_todo_untouched(service):
    """Test a rejected update changes nothing."""
    todo = service.add("Draft")

    with pytest.raises(ValidationFailed):
        service.update(todo.id, text="   ")

    assert service.get(todo.id) == todo


@pytest.mark.unit
def test_update_can_archive_and_unarchive(service):
    """Test an explicit status moves to and from archived."""
    todo = service.add("Old task")

    archived = service.update(todo.id, status="archived")
    assert archived.status == TodoStatus.ARCHIVED

    restored = service.update(todo.id, status=TodoStatus.PENDING)
    assert restored.status == TodoStatus.PENDING


@pytest.mark.unit
def test_edit_replaces_text(service):
    """Test edit is an update of the text only."""
    todo = service.add("Draft")

    assert service.edit(todo.id, " Final ").text == "Final"


@pytest.mark.unit
def test_remove(service, change_log):
    """Test remove deletes, commits and reports."""
    first = service.add("Buy milk")
    second = service.add("Call bank")

    assert service.remove(first.id) is True
    assert service.todos == [second]
    assert change_log["operations"][-1] == (first.id, "delete")


@pytest.mark.unit
def test_remove_unknown_id_has_no_side_effects(service, blob_store, change_log):
    """Test remove on a missing id returns False without committing."""
    assert service.remove("missing") is False

    assert blob_store.get_item("todos") is None
    assert change_log["lists"] == []
    assert change_log["operations"] == []


@pytest.mark.unit
def test_toggle_flips_and_syncs_status(service, change_log):
    """Test toggle drives pending/incomplete <-> completed/complete."""
    todo = service.add("Buy milk")

    done = service.toggle(todo.id)
    assert (done.complete, done.status) == (True, TodoStatus.COMPLETED)

    undone = service.toggle(todo.id)
    assert (undone.complete, undone.status) == (False, TodoStatus.PENDING)
    assert change_log["operations"][-2:] == [(todo.id, "update"), (todo.id, "update")]


@pytest.mark.unit
def test_toggle_unknown_and_archived(service):
    """Test toggle errors."""
    with pytest.raises(NotFound):
        service.toggle("missing")

    todo = service.add("Old task")
    service.update(todo.id, status="archived")
    with pytest.raises(UnsupportedTransition):
        service.toggle(todo.id)
    assert service.get(todo.id).status == TodoStatus.ARCHIVED


@pytest.mark.unit
def test_add_many_skips_invalid_in_one_commit(service, change_log, caplog):
    """Test bulk add logs and skips bad texts and commits once."""
    added = service.add_many(["Buy milk", "", "   ", " Call bank ", "x" * 501])

    assert [todo.text for todo in added] == ["Buy milk", "Call bank"]
    assert service.todos == added
    assert len(change_log["lists"]) == 1
    assert change_log["operations"] == [(todo.id, "add") for todo in added]
    assert sum("Skipping invalid todo text" in r.getMessage() for r in caplog.records) == 3


@pytest.mark.unit
def test_remove_many(service, change_log):
    """Test bulk removal in one commit, ignoring unknown ids."""
    todos = service.add_many(["a", "b", "c"])
    change_log["lists"].clear()

    removed = service.remove_many([todos[0].id, todos[2].id, "missing"])

    assert removed == 2
    assert service.todos == [todos[1]]
    assert len(change_log["lists"]) == 1


@pytest.mark.unit
def test_update_many_skips_bad_entries(service):
    """Test bulk update skips unknown ids and invalid changes."""
    first, second = service.add_many(["a", "b"])

    updated = service.update_many([
        (first.id, {"priority": "high"}),
        ("missing", {"priority": "low"}),
        (second.id, {"text": ""}),
    ])

    assert [todo.id for todo in updated] == [first.id]
    assert service.get(first.id).priority == TodoPriority.HIGH
    assert service.get(second.id).text == "b"


@pytest.mark.unit
def test_toggle_all(service, change_log):
    """Test toggle_all sets every non-archived todo in one commit."""
    todos = service.add_many(["a", "b", "c"])
    service.update(todos[2].id, status="archived")
    change_log["lists"].clear()

    updated = service.toggle_all(True)

    assert [todo.id for todo in updated] == [todos[0].id, todos[1].id]
    assert all(todo.is_completed for todo in updated)
    assert service.get(todos[2].id).status == TodoStatus.ARCHIVED
    assert len(change_log["lists"]) == 1

    service.toggle_all(False)
    assert service.statistics().completed == 0


@pytest.mark.unit
def test_clear_completed_keeps_pending(service):
    """Test N complete and M pending leave exactly the M pending."""
    todos = service.add_many([f"Item {i}" for i in range(7)])
    for todo in todos[:3]:
        service.toggle(todo.id)

    removed = service.clear_completed()

    assert removed == 3
    assert len(service.todos) == 4
    assert all(todo.complete is False for todo in service.todos)


@pytest.mark.unit
def test_clear_all(service, blob_store):
    """Test clear_all empties and persists."""
    service.add_many(["a", "b"])

    service.clear_all()

    assert service.todos == []
    assert assert_stored_todos(blob_store) == []


@pytest.mark.unit
def test_listener_last_registration_wins(service):
    """Test rebinding a listener replaces the previous one."""
    first_calls, second_calls = [], []
    service.bind_todo_list_changed(first_calls.append)
    service.bind_todo_list_changed(second_calls.append)

    service.add("Buy milk")

    assert first_calls == []
    assert len(second_calls) == 1


@pytest.mark.unit
def test_listener_receives_a_copy(service):
    """Test the list handed to listeners is not the internal list."""
    received = []
    service.bind_todo_list_changed(received.append)
    service.add("Buy milk")

    received[0].clear()

    assert len(service.todos) == 1


@pytest.mark.unit
def test_query_results_are_copies(service):
    """Test mutating a returned list does not touch the collection."""
    service.add_many(["a", "b"])

    service.todos.clear()
    service.find_todos().clear()
    service.search_todos(" ").clear()

    assert len(service) == 2


@pytest.mark.unit
def test_storage_failure_raises_storage_error(id_generator, config):
    """Test a failed write is wrapped and the listener is not called."""
    service = TodoService(InMemoryBlobStore(quota_bytes=10), id_generator=id_generator, config=config)
    calls = []
    service.bind_todo_list_changed(calls.append)

    with pytest.raises(StorageError) as exc_info:
        service.add("This record is far larger than ten bytes")

    assert isinstance(exc_info.value.__cause__, OSError)
    assert exc_info.value.__cause__.errno == errno.ENOSPC
    assert calls == []


@pytest.mark.unit
def test_find_and_search(service):
    """Test query delegation."""
    milk = service.add("Buy milk")
    bank = service.add("Call bank")
    service.update(bank.id, description="Ask about MILK money", tags=["Finance"])

    assert service.find_todos({"tags": "finance"}) == [service.get(bank.id)]
    assert [t.id for t in service.search_todos("milk")] == [milk.id, bank.id]
    assert [t.id for t in service.search_todos("  ")] == [milk.id, bank.id]
    assert service.search_todos("nothing") == []


@pytest.mark.unit
def test_by_status_and_priority(service):
    """Test status and priority shortcuts."""
    low = service.add("a", "low")
    high = service.add("b", "high")
    service.toggle(high.id)

    assert service.by_status(TodoStatus.COMPLETED) == [service.get(high.id)]
    assert service.by_status("pending") == [low]
    assert service.by_priority("low") == [low]


@pytest.mark.unit
def test_overdue_and_due_today(service, freeze_time_fixture):
    """Test date queries use the current time at call time."""
    yesterday = service.add("yesterday")
    service.update(yesterday.id, due_date=datetime(2024, 12, 8, 9, 0, tzinfo=timezone.utc))
    this_morning = service.add("this morning")
    service.update(this_morning.id, due_date=datetime(2024, 12, 9, 8, 0, tzinfo=timezone.utc))
    tonight = service.add("tonight")
    service.update(tonight.id, due_date=datetime(2024, 12, 9, 22, 0, tzinfo=timezone.utc))
    done_today = service.add("done today")
    service.update(done_today.id, due_date=datetime(2024, 12, 9, 1, 0, tzinfo=timezone.utc))
    service.toggle(done_today.id)
    service.add("no date")

    assert [t.text for t in service.overdue()] == ["yesterday", "this morning"]
    assert [t.text for t in service.due_today()] == ["this morning", "tonight"]

    freeze_time_fixture.move_to("2024-12-10 00:30:00")
    assert [t.text for t in service.overdue()] == ["yesterday", "this morning", "tonight"]
    assert service.due_today() == []


@pytest.mark.unit
def test_sorted_grouped_and_sort(service):
    """Test sorting and grouping over the collection."""
    service.add("charlie", "high")
    service.add("alpha", "low")
    service.add("bravo", "high")

    assert [t.text for t in service.sorted_by("text")] == ["alpha", "bravo", "charlie"]
    assert [t.text for t in service.sorted_by("text", ascending=False)] == ["charlie", "bravo", "alpha"]
    assert [t.text for t in service.sort({"field": "text", "direction": "desc"})][0] == "charlie"
    assert [t.text for t in service.grouped_by("priority")[TodoPriority.HIGH]] == ["charlie", "bravo"]
    # Insertion order is untouched by queries
    assert [t.text for t in service.todos] == ["charlie", "alpha", "bravo"]


@pytest.mark.unit
def test_statistics_helpers(service, freeze_time_fixture):
    """Test counts, completion rate and distributions."""
    assert service.completion_rate() == 0.0
    assert service.service_statistics().average_completion_time_ms is None

    first = service.add("Buy milk", "high")
    service.add("Call bank")
    freeze_time_fixture.tick(timedelta(seconds=90))
    service.toggle(first.id)

    assert service.count() == {"total": 2, "completed": 1, "pending": 1}
    assert service.completion_rate() == 50.0
    assert service.priority_distribution()[TodoPriority.HIGH] == 1

    stats = service.service_statistics()
    assert stats.total == 2
    assert stats.completion_rate == 50.0
    assert stats.average_completion_time_ms == 90_000


@pytest.mark.unit
def test_commit_writes_json_records(service, blob_store):
    """Test the primary key holds a JSON array in the record shape."""
    service.add("Buy milk")

    raw = blob_store.get_item("todos")
    records = json.loads(raw)
    assert records[0]["id"] == "todo-0001"
    assert records[0]["createdAt"].endswith("Z")
