"""JSON / CSV export of tasks and categories."""
from __future__ import annotations
import csv
import io
import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from models import Category, Task, TaskFilter
from query import filter_by_status
from snapshot import SCHEMA_VERSION, category_to_dict, format_date, format_timestamp, task_to_dict

CSV_HEADERS = ['Title', 'Description', 'Status', 'Priority', 'Due Date', 'Category', 'Tags',
               'Created At', 'Completed At']
TAG_SEPARATOR = '; '


def export_json(tasks: Sequence[Task], categories: Sequence[Category],
                status_filter: Optional[TaskFilter] = None,
                now: Optional[datetime] = None) -> str:
    """Pretty-printed JSON with export metadata, tasks and categories.

    With a status filter the metadata also records the filter and both the
    total and the filtered task counts.
    """
    selected = filter_by_status(tasks, status_filter) if status_filter else list(tasks)
    payload: Dict[str, object] = {
        'exportedAt': format_timestamp(now or datetime.now(timezone.utc)),
        'version': SCHEMA_VERSION,
        'taskCount': len(selected),
    }
    if status_filter:
        payload['filter'] = TaskFilter(status_filter).value
        payload['totalTasks'] = len(tasks)
        payload['filteredTasks'] = len(selected)
    payload['tasks'] = [task_to_dict(t) for t in selected]
    payload['categories'] = [category_to_dict(c) for c in categories]
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _csv_row(task: Task, category_names: Dict[str, str]) -> List[str]:
    return [
        task.title,
        task.description,
        task.status.value,
        task.priority.value,
        format_date(task.due_date) or '',
        category_names.get(task.category_id, '') if task.category_id else '',
        TAG_SEPARATOR.join(task.tags),
        format_timestamp(task.created_at) or '',
        format_timestamp(task.completed_at) or '',
    ]


def export_csv(tasks: Sequence[Task], categories: Sequence[Category],
               status_filter: Optional[TaskFilter] = None) -> str:
    """Header row plus one row per task; no trailing newline.

    Values holding a comma, quote or line break are quoted with inner
    quotes doubled. Categories are written by name.
    """
    selected = filter_by_status(tasks, status_filter) if status_filter else list(tasks)
    names = {c.id: c.name for c in categories}
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n', quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADERS)
    for task in selected:
        writer.writerow(_csv_row(task, names))
    text = buf.getvalue()
    return text[:-1] if text.endswith('\n') else text


def export_filename(count: int, ext: str, today: Optional[date] = None) -> str:
    day = (today or date.today()).isoformat()
    return f"tasks-{count}-tasks-{day}.{ext.lstrip('.')}"


def write_export(content: str, export_dir: Path, filename: str) -> Path:
    export_dir = Path(export_dir)
    export_dir.mkdir(parents=True, exist_ok=True)
    path = export_dir / filename
    with open(path, 'w', encoding='utf-8', newline='') as f:
        f.write(content)
    return path
