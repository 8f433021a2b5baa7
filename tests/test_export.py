# tests/test_export.py

from __future__ import annotations

import csv
import io
import json
from datetime import date
from pathlib import Path

from export import CSV_HEADERS, export_csv, export_filename, export_json, write_export
from models import CategoryInput, TaskFilter
from snapshot import format_timestamp
from store import TaskStore


def test_json_round_trip_keeps_ids_stamps_and_order(store: TaskStore, add) -> None:
    a, b, c = add("a"), add("b"), add("c")
    store.move_up(c)

    payload = json.loads(store.export_json())

    exported = {t["id"]: t for t in payload["tasks"]}
    for task in store.tasks:
        assert exported[task.id]["createdAt"] == format_timestamp(task.created_at)
        assert exported[task.id]["customOrder"] == task.custom_order
    assert [t["id"] for t in payload["tasks"]] == [a, c, b]


def test_json_metadata(store: TaskStore, add, clock) -> None:
    store.add_category(CategoryInput(name="Work", color="#112233"))
    a = add("a")
    add("b")
    store.toggle_complete(a)

    full = json.loads(store.export_json())
    assert full["exportedAt"] == format_timestamp(clock.now())
    assert full["version"] == 1
    assert full["taskCount"] == 2
    assert "filter" not in full
    assert [c["name"] for c in full["categories"]] == ["Work"]

    done = json.loads(store.export_json(TaskFilter.COMPLETED))
    assert done["filter"] == "completed"
    assert done["totalTasks"] == 2
    assert done["filteredTasks"] == 1
    assert done["taskCount"] == 1
    assert [t["id"] for t in done["tasks"]] == [a]


def test_json_is_pretty_printed(store: TaskStore, add) -> None:
    add("Café")
    text = store.export_json()
    assert "\n  " in text
    assert "Café" in text


def test_csv_header_only_when_empty() -> None:
    text = export_csv([], [])
    assert text.splitlines() == [",".join(CSV_HEADERS)]
    assert text == "Title,Description,Status,Priority,Due Date,Category,Tags,Created At,Completed At"


def test_csv_rows(store: TaskStore, add) -> None:
    cat = store.add_category(CategoryInput(name="Work", color="#112233"))
    tid = add('Say "hi", now', description="line one\nline two",
              tags=["urgent", "important", "work"], category_id=cat.id)
    store.toggle_complete(tid)
    task = store.get_task(tid)

    text = store.export_csv()

    assert '"Say ""hi"", now"' in text
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == CSV_HEADERS
    assert rows[1] == [
        'Say "hi", now',
        "line one\nline two",
        "completed",
        "medium",
        "",
        "Work",
        "urgent; important; work",
        format_timestamp(task.created_at),
        format_timestamp(task.completed_at),
    ]
    assert not text.endswith("\n")


def test_csv_status_filter(store: TaskStore, add) -> None:
    a = add("a")
    add("b")
    store.toggle_complete(a)
    rows = list(csv.reader(io.StringIO(store.export_csv(TaskFilter.ACTIVE))))
    assert [r[0] for r in rows[1:]] == ["b"]


def test_filename(store: TaskStore, add) -> None:
    for title in ("a", "b", "c"):
        add(title)
    assert store.export_filename("json") == "tasks-3-tasks-2026-03-02.json"
    assert export_filename(0, ".csv", date(2025, 12, 31)) == "tasks-0-tasks-2025-12-31.csv"


def test_write_export(tmp_path: Path) -> None:
    path = write_export(export_json([], []), tmp_path / "out", "tasks-0-tasks-2026-03-02.json")
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))["taskCount"] == 0
