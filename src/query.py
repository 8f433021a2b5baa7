"""Query composition: status/category/tag filters, free-text search, sort.

All functions are pure; they take tasks in canonical (custom_order) order
and return new lists. run_query() is the single pipeline every view goes
through.
"""
from __future__ import annotations
import locale
import unicodedata
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from models import (
    CategoryFilter, Query, SortBy, SortDirection, Task, TaskFilter, TaskStatus,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# -------------------- filters --------------------
def filter_by_status(tasks: Iterable[Task], status: TaskFilter) -> List[Task]:
    if status is TaskFilter.ACTIVE:
        return [t for t in tasks if t.status is TaskStatus.PENDING]
    if status is TaskFilter.COMPLETED:
        return [t for t in tasks if t.status is TaskStatus.COMPLETED]
    return list(tasks)


def filter_by_category(tasks: Iterable[Task], selection: CategoryFilter) -> List[Task]:
    if selection.is_empty:
        return list(tasks)
    out: List[Task] = []
    for t in tasks:
        if t.category_id is None:
            if selection.include_uncategorized:
                out.append(t)
        elif t.category_id in selection.category_ids:
            out.append(t)
    return out


def filter_by_tags(tasks: Iterable[Task], tags: Sequence[str]) -> List[Task]:
    """OR semantics: a task passes when it carries any selected tag."""
    wanted = {t.strip().lower() for t in tags if t and t.strip()}
    if not wanted:
        return list(tasks)
    return [t for t in tasks if any(tag.lower() in wanted for tag in t.tags)]


def search(tasks: Iterable[Task], text: Optional[str]) -> List[Task]:
    needle = (text or '').strip().lower()
    if not needle:
        return list(tasks)
    return [t for t in tasks
            if needle in t.title.lower() or needle in t.description.lower()]


# -------------------- sorting --------------------
def _created(task: Task) -> datetime:
    return task.created_at or _EPOCH


def _fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize('NFKD', text)
    return ''.join(c for c in decomposed if not unicodedata.combining(c))


def _title_key(task: Task) -> Tuple[str, str]:
    """Accent-folded base letters first, then the active locale's collation."""
    folded = task.title.casefold()
    return locale.strxfrm(_fold_accents(folded)), locale.strxfrm(folded)


def sort_tasks(tasks: Iterable[Task], sort_by: Optional[SortBy],
               direction: SortDirection = SortDirection.ASC) -> List[Task]:
    """Sort by the given key; sort_by=None keeps the incoming order.

    Creation-date and priority ties fall back to creation date ascending
    whatever the direction. For due dates, dated tasks always come before
    undated ones; only the dated part is reversed by direction.
    """
    items = list(tasks)
    if sort_by is None:
        return items
    reverse = direction is SortDirection.DESC

    if sort_by is SortBy.DUE_DATE:
        dated = [t for t in items if t.due_date is not None]
        undated = [t for t in items if t.due_date is None]
        dated.sort(key=lambda t: t.due_date, reverse=reverse)
        return dated + undated

    if sort_by is SortBy.TITLE:
        items.sort(key=_title_key, reverse=reverse)
        return items

    # secondary key first; list.sort is stable (also with reverse=True)
    items.sort(key=_created)
    if sort_by is SortBy.PRIORITY:
        items.sort(key=lambda t: t.priority.rank, reverse=reverse)
    elif reverse:
        # equal creation stamps keep the ascending order established above
        items.sort(key=_created, reverse=True)
    return items


# -------------------- pipeline --------------------
def run_query(tasks: Iterable[Task], query: Query) -> List[Task]:
    result = filter_by_status(tasks, query.status)
    result = filter_by_category(result, query.categories)
    result = filter_by_tags(result, query.tags)
    result = search(result, query.search)
    return sort_tasks(result, query.sort_by, query.direction)
