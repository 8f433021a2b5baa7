"""Transient task selection and bulk actions over it.

The selection is never persisted. Bulk actions skip ids that do not
resolve, always clear the selection afterwards and accept an empty list.
"""
import logging
from typing import Dict, Iterable, List, Optional

from models import Category, Task, TaskStatus

logger = logging.getLogger(__name__)


class SelectionMixin:
    """Selection + bulk executor for TaskStore.

    Expects the host to provide ``_tasks``, ``_categories``, ``_selected``,
    ``_remove_task()``, ``_snapshot_task()``, ``_touch()`` and ``_persist()``.
    """
    _tasks: Dict[str, Task]
    _categories: Dict[str, Category]
    _selected: List[str]

    # -------------------- selection --------------------
    @property
    def selected_ids(self) -> List[str]:
        return list(self._selected)

    @property
    def selection_count(self) -> int:
        return len(self._selected)

    def is_selected(self, task_id: str) -> bool:
        return task_id in self._selected

    def select(self, task_id: str) -> None:
        if task_id in self._tasks and task_id not in self._selected:
            self._selected.append(task_id)

    def deselect(self, task_id: str) -> None:
        if task_id in self._selected:
            self._selected.remove(task_id)

    def toggle_selection(self, task_id: str) -> None:
        if task_id in self._selected:
            self.deselect(task_id)
        else:
            self.select(task_id)

    def select_all(self, visible_ids: Iterable[str]) -> None:
        self._selected = [tid for tid in dict.fromkeys(visible_ids) if tid in self._tasks]

    def clear_selection(self) -> None:
        self._selected = []

    def are_all_selected(self, visible_ids: Iterable[str]) -> bool:
        ids = list(visible_ids)
        return bool(ids) and all(tid in self._selected for tid in ids)

    def selected_tasks(self) -> List[Task]:
        return [self._snapshot_task(self._tasks[tid]) for tid in self._selected if tid in self._tasks]

    # -------------------- bulk actions --------------------
    def bulk_complete(self, task_ids: Iterable[str]) -> int:
        done = 0
        for tid in list(task_ids):
            task = self._tasks.get(tid)
            if task is None or task.status is TaskStatus.COMPLETED:
                continue
            task.status = TaskStatus.COMPLETED
            self._touch(task)
            task.completed_at = task.updated_at
            done += 1
        return self._finish_bulk('complete', done)

    def bulk_delete(self, task_ids: Iterable[str]) -> int:
        removed = 0
        for tid in list(task_ids):
            if tid in self._tasks:
                self._remove_task(tid)
                removed += 1
        return self._finish_bulk('delete', removed)

    def bulk_set_category(self, task_ids: Iterable[str], category_id: Optional[str]) -> int:
        if category_id is not None and category_id not in self._categories:
            logger.debug("Bulk set-category skipped: unknown category %s", category_id)
            return self._finish_bulk('set-category', 0)
        changed = 0
        for tid in list(task_ids):
            task = self._tasks.get(tid)
            if task is None or task.category_id == category_id:
                continue
            task.category_id = category_id
            self._touch(task)
            changed += 1
        return self._finish_bulk('set-category', changed)

    def _finish_bulk(self, action: str, affected: int) -> int:
        self._selected = []
        logger.debug("Bulk %s affected=%d", action, affected)
        if affected:
            self._persist()
        return affected
