"""Snapshot (de)serialization for the persisted store state.

Stored form: ``{"state": {...}, "version": N}`` as one JSON string.
Dates are ISO-8601 strings (timestamps in UTC with a trailing "Z", due
dates as plain "YYYY-MM-DD").

deserialize() upgrades older payloads step by step through _UPGRADES and
then builds entities with a single set of field defaults, so a snapshot
written by any earlier version loads without crashing.
"""
from __future__ import annotations
import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ids import generate_id
from models import (
    Category, SortBy, SortDirection, StoreState, Task, TaskFilter, TaskPriority, TaskStatus,
)
from errors import ValidationError
from validation import (
    DESCRIPTION_MAX, MAX_CATEGORIES, MAX_TAGS_PER_TASK, TAG_MAX_LENGTH, TITLE_MAX,
    normalize_color,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class SnapshotError(ValueError):
    """Payload cannot be turned into a state at all."""


# -------------------- date helpers --------------------
def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or raw == '':
        return None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)):
        # epoch milliseconds
        try:
            return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(raw).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_date(raw: Any) -> Optional[date]:
    if raw is None or raw == '':
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


# -------------------- entity <-> dict --------------------
def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status.value,
        'priority': task.priority.value,
        'dueDate': format_date(task.due_date),
        'createdAt': format_timestamp(task.created_at),
        'updatedAt': format_timestamp(task.updated_at),
        'completedAt': format_timestamp(task.completed_at),
        'categoryId': task.category_id,
        'tags': list(task.tags),
        'customOrder': task.custom_order,
    }


def category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        'id': category.id,
        'name': category.name,
        'color': category.color,
        'createdAt': format_timestamp(category.created_at),
        'updatedAt': format_timestamp(category.updated_at),
    }


def _enum(enum_cls, raw: Any, default):
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def _task_from_dict(raw: Mapping[str, Any], position: int, now: datetime) -> Optional[Task]:
    title = raw.get('title')
    if not isinstance(title, str) or not title.strip():
        return None
    created = parse_timestamp(raw.get('createdAt')) or now
    updated = parse_timestamp(raw.get('updatedAt')) or created
    status = _enum(TaskStatus, raw.get('status'), TaskStatus.PENDING)
    order = raw.get('customOrder')
    tags = raw.get('tags')
    return Task(
        id=str(raw.get('id') or generate_id()),
        title=title[:TITLE_MAX],
        description=str(raw.get('description') or '')[:DESCRIPTION_MAX],
        status=status,
        priority=_enum(TaskPriority, raw.get('priority'), TaskPriority.MEDIUM),
        due_date=parse_date(raw.get('dueDate')),
        category_id=raw.get('categoryId') or None,
        tags=[str(t) for t in tags] if isinstance(tags, list) else [],
        custom_order=order if isinstance(order, int) and not isinstance(order, bool) else position,
        created_at=created,
        updated_at=max(updated, created),
        completed_at=parse_timestamp(raw.get('completedAt')),
    )


def _category_from_dict(raw: Mapping[str, Any], now: datetime) -> Optional[Category]:
    name = raw.get('name')
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        color = normalize_color(raw.get('color'))
    except ValidationError:
        return None
    created = parse_timestamp(raw.get('createdAt')) or now
    return Category(
        id=str(raw.get('id') or generate_id()),
        name=name.strip(),
        color=color,
        created_at=created,
        updated_at=parse_timestamp(raw.get('updatedAt')) or created,
    )


# -------------------- schema upgrades --------------------
def _upgrade_v0(state: Dict[str, Any]) -> Dict[str, Any]:
    """Unversioned payloads predate categories, tags and manual ordering."""
    state.setdefault('categories', [])
    state.setdefault('categoryFilters', [])
    state.setdefault('tagFilters', [])
    tasks = state.get('tasks') if isinstance(state.get('tasks'), list) else []
    for position, raw in enumerate(tasks):
        if isinstance(raw, dict):
            raw.setdefault('tags', [])
            raw.setdefault('categoryId', None)
            raw.setdefault('customOrder', position)
    state['tasks'] = tasks
    return state


_UPGRADES: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    0: _upgrade_v0,
}


def upgrade(state: Dict[str, Any], version: int) -> Dict[str, Any]:
    while version < SCHEMA_VERSION:
        step = _UPGRADES.get(version)
        if step is not None:
            state = step(state)
            logger.info("Snapshot upgraded from schema v%d", version)
        version += 1
    if version > SCHEMA_VERSION:
        logger.warning("Snapshot schema v%d is newer than v%d; loading known fields only",
                       version, SCHEMA_VERSION)
    return state


# -------------------- invariant repair --------------------
def repair(state: StoreState) -> StoreState:
    """Re-establish store invariants on a freshly loaded state.

    Dense custom_order, unique ids, unique category names (first wins),
    no dangling category references, clean tag lists, completed_at set
    iff completed, filters limited to known values.
    """
    categories: List[Category] = []
    names = set()
    cat_ids = set()
    for cat in state.categories:
        key = cat.name.lower()
        if key in names or cat.id in cat_ids or len(categories) >= MAX_CATEGORIES:
            logger.warning("Dropping category %s (%s) from snapshot", cat.id, cat.name)
            continue
        names.add(key)
        cat_ids.add(cat.id)
        categories.append(cat)

    seen_ids = set()
    tasks: List[Task] = []
    for task in state.tasks:
        if task.id in seen_ids:
            task.id = generate_id()
        seen_ids.add(task.id)
        if task.category_id is not None and task.category_id not in cat_ids:
            task.category_id = None
        task.tags = _clean_tags(task.tags)
        if task.status is TaskStatus.COMPLETED:
            task.completed_at = task.completed_at or task.updated_at
        else:
            task.completed_at = None
        tasks.append(task)

    tasks.sort(key=lambda t: t.custom_order)  # stable: ties keep stored order
    for rank, task in enumerate(tasks):
        task.custom_order = rank

    state.tasks = tasks
    state.categories = categories
    state.category_filters = list(dict.fromkeys(
        c for c in state.category_filters if c is None or c in cat_ids))
    state.tag_filters = list(dict.fromkeys(t for t in state.tag_filters if t))
    return state


def _clean_tags(tags: List[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for raw in tags:
        tag = raw.strip()
        if not tag or len(tag) > TAG_MAX_LENGTH or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        out.append(tag)
    return out[:MAX_TAGS_PER_TASK]


# -------------------- public API --------------------
def serialize(state: StoreState) -> str:
    payload = {
        'state': {
            'tasks': [task_to_dict(t) for t in state.tasks],
            'categories': [category_to_dict(c) for c in state.categories],
            'currentFilter': state.current_filter.value,
            'categoryFilters': list(state.category_filters),
            'tagFilters': list(state.tag_filters),
            'sortBy': state.sort_by.value,
            'sortDirection': state.sort_direction.value,
        },
        'version': SCHEMA_VERSION,
    }
    return json.dumps(payload, ensure_ascii=False)


def deserialize(blob: str, now: Optional[datetime] = None) -> StoreState:
    """Parse a stored payload; raises SnapshotError when it is unusable."""
    try:
        payload = json.loads(blob)
    except (TypeError, ValueError, RecursionError) as exc:
        raise SnapshotError(f'Unparseable snapshot: {exc}') from exc
    if not isinstance(payload, dict) or not isinstance(payload.get('state'), dict):
        raise SnapshotError('Snapshot has no state object')
    version = payload.get('version')
    if not isinstance(version, int) or isinstance(version, bool):
        version = 0
    raw = upgrade(dict(payload['state']), version)
    now = now or datetime.now(timezone.utc)

    raw_tasks = raw.get('tasks') if isinstance(raw.get('tasks'), list) else []
    raw_categories = raw.get('categories') if isinstance(raw.get('categories'), list) else []
    tasks = [t for t in (_task_from_dict(r, i, now) for i, r in enumerate(raw_tasks)
                         if isinstance(r, dict)) if t is not None]
    categories = [c for c in (_category_from_dict(r, now) for r in raw_categories
                              if isinstance(r, dict)) if c is not None]
    skipped = len(raw_tasks) - len(tasks)
    if skipped:
        logger.warning("Skipped %d unreadable task record(s) in snapshot", skipped)

    cat_filters = raw.get('categoryFilters')
    tag_filters = raw.get('tagFilters')
    state = StoreState(
        tasks=tasks,
        categories=categories,
        current_filter=_enum(TaskFilter, raw.get('currentFilter'), TaskFilter.ALL),
        category_filters=[c if c is None else str(c) for c in cat_filters]
        if isinstance(cat_filters, list) else [],
        tag_filters=[str(t) for t in tag_filters] if isinstance(tag_filters, list) else [],
        sort_by=_enum(SortBy, raw.get('sortBy'), SortBy.DATE_CREATED),
        sort_direction=_enum(SortDirection, raw.get('sortDirection'), SortDirection.DESC),
    )
    return repair(state)
