# tests/test_persistence.py

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path

import pytest

from errors import StorageQuotaError
from models import CategoryInput, SortBy, SortDirection, StoreState, TaskFilter, TaskInput, TaskStatus
from snapshot import SCHEMA_VERSION, deserialize, format_timestamp, parse_timestamp, serialize
from storage import SORT_PREFERENCE_KEY, STATE_KEY, FileStorage, MemoryStorage, StateRepository
from store import TaskStore

from conftest import START, TODAY


def test_corrupt_payload_loads_empty_state(make_store) -> None:
    storage = MemoryStorage(initial={STATE_KEY: "invalid json{]"})

    assert StateRepository(storage).load() == StoreState()
    store = make_store(storage)
    assert store.tasks == []
    assert store.task_count == 0


@pytest.mark.parametrize("blob", ["[]", "null", '{"version": 1}', '{"state": "nope"}'])
def test_payload_without_state_object_loads_empty(blob: str) -> None:
    storage = MemoryStorage(initial={STATE_KEY: blob})
    assert StateRepository(storage).load() == StoreState()


def test_missing_key_loads_empty_state(storage: MemoryStorage) -> None:
    state = StateRepository(storage).load()
    assert state.tasks == []
    assert state.current_filter is TaskFilter.ALL
    assert state.sort_by is SortBy.DATE_CREATED
    assert state.sort_direction is SortDirection.DESC


def test_every_mutation_writes_versioned_envelope(store: TaskStore, storage: MemoryStorage,
                                                  add) -> None:
    add("Buy milk", due_date=TODAY)

    payload = json.loads(storage.get_item(STATE_KEY))
    assert payload["version"] == SCHEMA_VERSION
    raw_task = payload["state"]["tasks"][0]
    assert raw_task["title"] == "Buy milk"
    assert raw_task["dueDate"] == TODAY.isoformat()
    assert raw_task["createdAt"] == "2026-03-02T09:00:00.000Z"
    assert raw_task["customOrder"] == 0
    assert set(payload["state"]) == {
        "tasks", "categories", "currentFilter", "categoryFilters", "tagFilters", "sortBy",
        "sortDirection",
    }


def test_round_trip_through_storage(make_store, storage: MemoryStorage) -> None:
    first = make_store(storage)
    cat = first.add_category(CategoryInput(name="Work", color="#3b82f6"))
    a = first.add_task(TaskInput(title="a", tags=["Urgent"], category_id=cat.id,
                                 due_date=TODAY + timedelta(days=2)))
    b = first.add_task(TaskInput(title="b"))
    first.toggle_complete(b.id)
    first.move_up(b.id)
    first.set_filter(TaskFilter.ACTIVE)
    first.set_category_filter([cat.id, None])
    first.set_tag_filter(["urgent"])
    first.set_sort_by(SortBy.PRIORITY)

    second = make_store(storage)

    assert second.tasks == first.tasks
    assert second.categories == first.categories
    assert second.current_filter is TaskFilter.ACTIVE
    assert second.category_filters == [cat.id, None]
    assert second.tag_filters == ["urgent"]
    assert second.sort_by is SortBy.PRIORITY
    assert second.get_task(b.id).status is TaskStatus.COMPLETED
    assert second.ordered_ids() == [b.id, a.id]


def test_selection_and_search_are_not_persisted(make_store, storage: MemoryStorage) -> None:
    first = make_store(storage)
    tid = first.add_task(TaskInput(title="x")).id
    first.select(tid)
    first.set_search_query("x")

    second = make_store(storage)
    assert second.selected_ids == []
    assert second.search_query == ""
    assert "search" not in storage.get_item(STATE_KEY).lower()


def test_stamps_stay_increasing_after_reload(make_store, storage: MemoryStorage) -> None:
    first = make_store(storage)
    tid = first.add_task(TaskInput(title="x")).id
    last = first.toggle_complete(tid).updated_at

    second = make_store(storage)
    assert second.toggle_complete(tid).updated_at > last


def test_quota_exceeded_keeps_running(clock, caplog) -> None:
    storage = MemoryStorage(quota=64)
    store = TaskStore(StateRepository(storage), clock=clock)

    with caplog.at_level(logging.ERROR, logger="storage"):
        task = store.add_task(TaskInput(title="too big to store"))

    assert store.get_task(task.id) is not None
    assert STATE_KEY not in storage
    assert "quota" in caplog.text.lower()


def test_memory_storage_quota_error() -> None:
    storage = MemoryStorage(quota=4)
    storage.set_item("a", "1234")
    with pytest.raises(StorageQuotaError):
        storage.set_item("b", "x")
    storage.set_item("a", "abcd")
    assert storage.get_item("a") == "abcd"


def test_unversioned_snapshot_gets_defaults() -> None:
    blob = json.dumps({
        "state": {
            "tasks": [
                {"id": "a", "title": "Old", "status": "completed", "priority": "high",
                 "createdAt": "2025-01-01T10:00:00.000Z", "updatedAt": "2025-01-02T10:00:00.000Z"},
                {"id": "b", "title": "Other", "priority": "urgent"},
                {"id": "c"},
            ],
            "currentFilter": "completed",
        },
    })

    state = deserialize(blob, now=START)

    assert [t.id for t in state.tasks] == ["a", "b"]
    old, other = state.tasks
    assert old.tags == [] and old.category_id is None
    assert [old.custom_order, other.custom_order] == [0, 1]
    assert old.completed_at == parse_timestamp("2025-01-02T10:00:00.000Z")
    assert other.priority.value == "medium"
    assert other.created_at == START
    assert state.current_filter is TaskFilter.COMPLETED
    assert state.categories == []


def test_deserialize_repairs_invariants() -> None:
    blob = json.dumps({
        "version": 1,
        "state": {
            "tasks": [
                {"id": "a", "title": "A", "customOrder": 5, "categoryId": "gone",
                 "tags": ["x", "X", " ", "y" * 31]},
                {"id": "b", "title": "B", "customOrder": 5, "status": "pending",
                 "completedAt": "2025-01-01T00:00:00.000Z"},
                {"id": "a", "title": "dup id", "customOrder": 1},
            ],
            "categories": [
                {"id": "c1", "name": "Work", "color": "ABCDEF"},
                {"id": "c2", "name": "work", "color": "#000000"},
                {"id": "c3", "name": "Bad", "color": "red"},
            ],
            "categoryFilters": ["c1", "c2", None],
            "tagFilters": ["x", "", "x"],
            "sortBy": "nonsense",
        },
    })

    state = deserialize(blob, now=START)

    assert [t.title for t in state.tasks] == ["dup id", "A", "B"]
    assert [t.custom_order for t in state.tasks] == [0, 1, 2]
    assert len({t.id for t in state.tasks}) == 3
    task_a = state.tasks[1]
    assert task_a.category_id is None
    assert task_a.tags == ["x"]
    assert state.tasks[2].completed_at is None
    assert [c.id for c in state.categories] == ["c1"]
    assert state.categories[0].color == "#abcdef"
    assert state.category_filters == ["c1", None]
    assert state.tag_filters == ["x"]
    assert state.sort_by is SortBy.DATE_CREATED


def test_serialize_deserialize_preserves_state(store: TaskStore, add) -> None:
    add("x", tags=["a"])
    state = store.snapshot()
    assert deserialize(serialize(state)) == state


def test_timestamp_format() -> None:
    assert format_timestamp(START) == "2026-03-02T09:00:00.000Z"
    assert parse_timestamp("2026-03-02T09:00:00.000Z") == START
    assert parse_timestamp("not a date") is None


def test_sort_preference_cache(make_store, storage: MemoryStorage) -> None:
    first = make_store(storage)
    first.set_sort_by(SortBy.TITLE)
    first.set_sort_direction(SortDirection.ASC)
    assert json.loads(storage.get_item(SORT_PREFERENCE_KEY)) == {
        "sortBy": "title", "sortDirection": "asc",
    }

    storage.remove_item(STATE_KEY)
    second = make_store(storage)
    assert second.sort_by is SortBy.DATE_CREATED
    second.load_sort_preference()
    assert (second.sort_by, second.sort_direction) == (SortBy.TITLE, SortDirection.ASC)


def test_malformed_sort_preference_is_ignored() -> None:
    storage = MemoryStorage(initial={SORT_PREFERENCE_KEY: '{"sortBy": "bogus"}'})
    assert StateRepository(storage).load_sort_preference() is None


def test_file_storage_round_trip(tmp_path: Path) -> None:
    storage = FileStorage(tmp_path / "data")
    assert storage.get_item(STATE_KEY) is None

    storage.set_item(STATE_KEY, '{"ok": true}')
    assert (tmp_path / "data" / "task-storage.json").read_text(encoding="utf-8") == '{"ok": true}'
    assert storage.get_item(STATE_KEY) == '{"ok": true}'

    storage.remove_item(STATE_KEY)
    storage.remove_item(STATE_KEY)
    assert storage.get_item(STATE_KEY) is None


def test_file_storage_quota(tmp_path: Path) -> None:
    storage = FileStorage(tmp_path, quota=10)
    storage.set_item("a", "12345")
    with pytest.raises(StorageQuotaError):
        storage.set_item("b", "123456")


def test_repository_clear(storage: MemoryStorage, store: TaskStore, add) -> None:
    add("x")
    store.set_sort_by(SortBy.TITLE)
    StateRepository(storage).clear()
    assert STATE_KEY not in storage
    assert SORT_PREFERENCE_KEY not in storage


@pytest.mark.parametrize(
    "blob",
    [
        '{"state": {"tasks": [{"id": "a", "title": "x", "createdAt": 1e20}]}, "version": 1}',
        '{"state": {"tasks": [{"id": "a", "title": "x", "updatedAt": NaN}]}, "version": 1}',
        '{"state": {"tasks": [{"id": "a", "title": "x", "completedAt": -Infinity,'
        ' "status": "completed"}]}, "version": 1}',
    ],
)
def test_out_of_range_timestamps_are_dropped(blob: str, make_store) -> None:
    state = StateRepository(MemoryStorage(initial={STATE_KEY: blob})).load()

    assert [t.title for t in state.tasks] == ["x"]
    assert state.tasks[0].created_at is not None
    assert state.tasks[0].updated_at >= state.tasks[0].created_at
    assert make_store(MemoryStorage(initial={STATE_KEY: blob})).task_count == 1


def test_deeply_nested_payload_loads_empty_state(make_store) -> None:
    blob = "[" * 200000 + "]" * 200000
    storage = MemoryStorage(initial={STATE_KEY: blob})

    assert StateRepository(storage).load() == StoreState()
    assert make_store(storage).task_count == 0


def test_epoch_millisecond_timestamps() -> None:
    assert parse_timestamp(1772442000000) == START
    assert parse_timestamp(float("nan")) is None
    assert parse_timestamp(10 ** 20) is None


def test_reload_picks_up_stored_state(make_store, storage: MemoryStorage) -> None:
    first = make_store(storage)
    kept = first.add_task(TaskInput(title="kept")).id
    first.select(kept)
    first.set_search_query("kept")

    other = make_store(storage)
    added = other.add_task(TaskInput(title="from elsewhere")).id

    first.reload()

    assert first.ordered_ids() == [kept, added]
    assert first.selected_ids == []
    assert first.search_query == ""
