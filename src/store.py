"""Task store: owns tasks, categories and view preferences.

Tasks live in an id -> Task mapping with a separate list of ids ordered by
custom_order. Every public mutation validates first, then mutates, then
asks the repository to write a snapshot (best effort). Reads hand out
copies so callers cannot break invariants behind the store's back.

Manual ordering, tags and selection/bulk actions are split into the
OrderingMixin, TagRegistryMixin and SelectionMixin classes.
"""
from __future__ import annotations
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

import export
from errors import DuplicateError, LimitExceededError, NotFoundError, ValidationError
from ids import Clock, generate_id
from models import (
    UNSET, Category, CategoryFilter, CategoryInput, CategoryPatch, Query, SortBy,
    SortDirection, StoreState, Task, TaskFilter, TaskInput, TaskPatch, TaskPriority,
    TaskStatus,
)
from ordering import OrderingMixin
from query import filter_by_status, run_query
from selection import SelectionMixin
from snapshot import repair
from storage import StateRepository
from tags import TagRegistryMixin
from validation import (
    MAX_CATEGORIES, normalize_color, normalize_tag_list, tag_key, validate_category_name,
    validate_description, validate_due_date, validate_title,
)

logger = logging.getLogger(__name__)


def _coerce_priority(value) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        raise ValidationError(f'Invalid priority: {value}', field='priority') from None


def _coerce_status(value) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValidationError(f'Invalid status: {value}', field='status') from None


class TaskStore(OrderingMixin, TagRegistryMixin, SelectionMixin):
    def __init__(self, repository: Optional[StateRepository] = None,
                 clock: Optional[Clock] = None,
                 state: Optional[StoreState] = None,
                 id_factory: Callable[[], str] = generate_id):
        self._repository = repository
        self._clock = clock or Clock()
        self._new_id = id_factory
        self._tasks: Dict[str, Task] = {}
        self._order: List[str] = []
        self._categories: Dict[str, Category] = {}
        self._selected: List[str] = []
        self._last_stamp: Optional[datetime] = None
        self.current_filter: TaskFilter = TaskFilter.ALL
        self.category_filters: List[Optional[str]] = []
        self.tag_filters: List[str] = []
        self.sort_by: SortBy = SortBy.DATE_CREATED
        self.sort_direction: SortDirection = SortDirection.DESC
        self.search_query: str = ''
        if state is None and repository is not None:
            state = repository.load()
        if state is not None:
            self._load_state(state)

    # -------------------- loading / snapshot --------------------
    def _load_state(self, state: StoreState) -> None:
        state = repair(state)
        self._tasks = {t.id: t for t in state.tasks}
        self._order = [t.id for t in state.tasks]
        self._categories = {c.id: c for c in state.categories}
        self.current_filter = state.current_filter
        self.category_filters = list(state.category_filters)
        self.tag_filters = list(state.tag_filters)
        self.sort_by = state.sort_by
        self.sort_direction = state.sort_direction
        stamps = [s for t in state.tasks for s in (t.created_at, t.updated_at, t.completed_at) if s]
        stamps += [s for c in state.categories for s in (c.created_at, c.updated_at) if s]
        self._last_stamp = max(stamps) if stamps else None

    def snapshot(self) -> StoreState:
        """Persistable state (selection and search text are left out)."""
        return StoreState(
            tasks=[self._snapshot_task(self._tasks[tid]) for tid in self._order],
            categories=[replace(c) for c in self._categories.values()],
            current_filter=self.current_filter,
            category_filters=list(self.category_filters),
            tag_filters=list(self.tag_filters),
            sort_by=self.sort_by,
            sort_direction=self.sort_direction,
        )

    def reload(self) -> None:
        """Drop in-memory state and rehydrate from the repository."""
        self._selected = []
        self.search_query = ''
        state = self._repository.load() if self._repository is not None else StoreState()
        self._tasks, self._order, self._categories = {}, [], {}
        self._load_state(state)

    def _persist(self) -> None:
        if self._repository is None:
            return
        self._repository.save(self.snapshot())

    # -------------------- time --------------------
    def _stamp(self) -> datetime:
        """Strictly increasing timestamp across the whole store."""
        self._last_stamp = self._clock.stamp(self._last_stamp)
        return self._last_stamp

    def _touch(self, entity) -> None:
        entity.updated_at = self._stamp()

    # -------------------- helpers --------------------
    @staticmethod
    def _snapshot_task(task: Task) -> Task:
        return replace(task, tags=list(task.tags))

    def _require_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError('Task not found', field='id')
        return task

    def _require_category(self, category_id: str) -> Category:
        category = self._categories.get(category_id)
        if category is None:
            raise NotFoundError('Category not found', field='category_id')
        return category

    def _check_category_ref(self, category_id: Optional[str]) -> Optional[str]:
        if category_id is None:
            return None
        self._require_category(category_id)
        return category_id

    def _remove_task(self, task_id: str) -> None:
        self._drop_from_order(task_id)
        del self._tasks[task_id]
        if task_id in self._selected:
            self._selected.remove(task_id)

    # -------------------- task queries --------------------
    @property
    def tasks(self) -> List[Task]:
        """All tasks in manual (custom_order) order."""
        return [self._snapshot_task(self._tasks[tid]) for tid in self._order]

    @property
    def task_count(self) -> int:
        return len(self._order)

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return self._snapshot_task(task) if task is not None else None

    def _live_tasks(self) -> List[Task]:
        return [self._tasks[tid] for tid in self._order]

    # -------------------- task operations --------------------
    def add_task(self, data: TaskInput) -> Task:
        title = validate_title(data.title)
        description = validate_description(data.description)
        priority = _coerce_priority(data.priority) if data.priority is not None else TaskPriority.MEDIUM
        due = validate_due_date(data.due_date, self._clock.today()) if data.due_date else None
        category_id = self._check_category_ref(data.category_id)
        tags = normalize_tag_list(data.tags or ())

        now = self._stamp()
        task = Task(
            id=self._new_id(),
            title=title,
            description=description,
            priority=priority,
            due_date=due,
            category_id=category_id,
            tags=tags,
            custom_order=len(self._order),
            created_at=now,
            updated_at=now,
        )
        self._tasks[task.id] = task
        self._order.append(task.id)
        logger.debug("Task added id=%s order=%d", task.id, task.custom_order)
        self._persist()
        return self._snapshot_task(task)

    def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        task = self._require_task(task_id)
        changes = {}
        if patch.title is not UNSET:
            changes['title'] = validate_title(patch.title)
        if patch.description is not UNSET:
            changes['description'] = validate_description(patch.description)
        if patch.priority is not UNSET:
            changes['priority'] = _coerce_priority(patch.priority)
        if patch.status is not UNSET:
            changes['status'] = _coerce_status(patch.status)
        if patch.due_date is not UNSET:
            changes['due_date'] = (validate_due_date(patch.due_date, self._clock.today())
                                   if patch.due_date is not None else None)
        if patch.category_id is not UNSET:
            changes['category_id'] = self._check_category_ref(patch.category_id)
        if patch.tags is not UNSET:
            changes['tags'] = normalize_tag_list(patch.tags or ())

        previous_status = task.status
        for name, value in changes.items():
            setattr(task, name, value)
        self._touch(task)
        if task.status is not previous_status:
            task.completed_at = task.updated_at if task.is_completed else None
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))
        self._persist()
        return self._snapshot_task(task)

    def delete_task(self, task_id: str) -> bool:
        if task_id not in self._tasks:
            return False
        self._remove_task(task_id)
        logger.debug("Task deleted id=%s", task_id)
        self._persist()
        return True

    def toggle_complete(self, task_id: str) -> Task:
        task = self._require_task(task_id)
        task.status = TaskStatus.PENDING if task.is_completed else TaskStatus.COMPLETED
        self._touch(task)
        task.completed_at = task.updated_at if task.is_completed else None
        self._persist()
        return self._snapshot_task(task)

    def set_priority(self, task_id: str, priority: TaskPriority) -> Task:
        return self.update_task(task_id, TaskPatch(priority=priority))

    def set_due_date(self, task_id: str, due: date) -> Task:
        return self.update_task(task_id, TaskPatch(due_date=due))

    def clear_due_date(self, task_id: str) -> Task:
        return self.update_task(task_id, TaskPatch(due_date=None))

    def assign_category(self, task_id: str, category_id: Optional[str]) -> Task:
        return self.update_task(task_id, TaskPatch(category_id=category_id))

    # -------------------- category operations --------------------
    @property
    def categories(self) -> List[Category]:
        return [replace(c) for c in self._categories.values()]

    def get_category(self, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        return replace(category) if category is not None else None

    def _check_unique_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        key = name.lower()
        for cat in self._categories.values():
            if cat.id != exclude_id and cat.name.lower() == key:
                raise DuplicateError('Category name must be unique', field='name')

    def add_category(self, data: CategoryInput) -> Category:
        if len(self._categories) >= MAX_CATEGORIES:
            raise LimitExceededError(f'Maximum {MAX_CATEGORIES} categories allowed')
        name = validate_category_name(data.name)
        self._check_unique_name(name)
        color = normalize_color(data.color)
        now = self._stamp()
        category = Category(id=self._new_id(), name=name, color=color,
                            created_at=now, updated_at=now)
        self._categories[category.id] = category
        logger.debug("Category added id=%s name=%s", category.id, name)
        self._persist()
        return replace(category)

    def update_category(self, category_id: str, patch: CategoryPatch) -> Category:
        category = self._require_category(category_id)
        name = category.name
        color = category.color
        if patch.name is not None:
            name = validate_category_name(patch.name)
            self._check_unique_name(name, exclude_id=category_id)
        if patch.color is not None:
            color = normalize_color(patch.color)
        if name == category.name and color == category.color:
            return replace(category)
        category.name = name
        category.color = color
        self._touch(category)
        self._persist()
        return replace(category)

    def delete_category(self, category_id: str) -> None:
        self._require_category(category_id)
        del self._categories[category_id]
        cleared = 0
        for task in self._live_tasks():
            if task.category_id == category_id:
                task.category_id = None
                self._touch(task)
                cleared += 1
        self.category_filters = [c for c in self.category_filters if c != category_id]
        logger.debug("Category deleted id=%s tasks_cleared=%d", category_id, cleared)
        self._persist()

    # -------------------- view preferences --------------------
    def set_filter(self, value: TaskFilter) -> None:
        self.current_filter = TaskFilter(value)
        self._persist()

    def set_category_filter(self, category_ids: Sequence[Optional[str]]) -> None:
        self.category_filters = list(dict.fromkeys(
            c for c in category_ids if c is None or c in self._categories))
        self._persist()

    def clear_category_filter(self) -> None:
        self.set_category_filter([])

    def set_tag_filter(self, tags: Sequence[str]) -> None:
        cleaned: List[str] = []
        for tag in tags:
            if tag and tag.strip() and tag_key(tag) not in {t.lower() for t in cleaned}:
                cleaned.append(tag.strip())
        self.tag_filters = cleaned
        self._persist()

    def clear_tag_filter(self) -> None:
        self.set_tag_filter([])

    def set_sort_by(self, sort_by: SortBy) -> None:
        self.sort_by = SortBy(sort_by)
        self._sort_changed()

    def set_sort_direction(self, direction: SortDirection) -> None:
        self.sort_direction = SortDirection(direction)
        self._sort_changed()

    def toggle_sort_direction(self) -> None:
        self.sort_direction = self.sort_direction.flipped()
        self._sort_changed()

    def _sort_changed(self) -> None:
        if self._repository is not None:
            self._repository.save_sort_preference(self.sort_by, self.sort_direction)
        self._persist()

    def load_sort_preference(self) -> None:
        if self._repository is None:
            return
        preference = self._repository.load_sort_preference()
        if preference:
            self.sort_by, self.sort_direction = preference

    def set_search_query(self, text: str) -> None:
        self.search_query = text or ''

    def clear_search(self) -> None:
        self.search_query = ''

    # -------------------- composed queries --------------------
    def current_query(self) -> Query:
        return Query(
            status=self.current_filter,
            categories=CategoryFilter.from_list(self.category_filters),
            tags=tuple(self.tag_filters),
            search=self.search_query,
            sort_by=self.sort_by,
            direction=self.sort_direction,
        )

    def query(self, criteria: Query) -> List[Task]:
        return [self._snapshot_task(t) for t in run_query(self._live_tasks(), criteria)]

    def view(self) -> List[Task]:
        """Tasks as the current filters, search and sort would show them."""
        return self.query(self.current_query())

    def tasks_by_category(self, category_id: Optional[str]) -> List[Task]:
        selection = (CategoryFilter(include_uncategorized=True) if category_id is None
                     else CategoryFilter(category_ids=frozenset([category_id])))
        return self.query(Query(categories=selection, sort_by=None))

    def uncategorized_tasks(self) -> List[Task]:
        return self.tasks_by_category(None)

    def tasks_by_tag(self, tag: str) -> List[Task]:
        return self.query(Query(tags=(tag,), sort_by=None))

    def tasks_with_tag(self, tag: str) -> List[Task]:
        return self.tasks_by_tag(tag)

    # -------------------- counts --------------------
    def completed_count(self) -> int:
        return sum(1 for t in self._tasks.values() if t.is_completed)

    def filter_count(self, value: TaskFilter) -> int:
        return len(filter_by_status(self._tasks.values(), TaskFilter(value)))

    def priority_count(self, priority: TaskPriority) -> int:
        return sum(1 for t in self._tasks.values() if t.priority is TaskPriority(priority))

    def category_task_count(self, category_id: str) -> int:
        return sum(1 for t in self._tasks.values() if t.category_id == category_id)

    # -------------------- due dates --------------------
    def _is_overdue(self, task: Task, today: date) -> bool:
        return task.due_date is not None and not task.is_completed and task.due_date < today

    def is_overdue(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and self._is_overdue(task, self._clock.today())

    def overdue_tasks(self) -> List[Task]:
        today = self._clock.today()
        return [self._snapshot_task(t) for t in self._live_tasks() if self._is_overdue(t, today)]

    def tasks_due_today(self) -> List[Task]:
        return self._due_between(self._clock.today(), self._clock.today())

    def tasks_due_this_week(self) -> List[Task]:
        today = self._clock.today()
        return self._due_between(today, today + timedelta(days=7))

    def tasks_without_due_date(self) -> List[Task]:
        return [self._snapshot_task(t) for t in self._live_tasks() if t.due_date is None]

    def _due_between(self, start: date, end: date) -> List[Task]:
        return [self._snapshot_task(t) for t in self._live_tasks()
                if t.due_date is not None and start <= t.due_date <= end]

    def __str__(self) -> str:
        return (f'Tasks: {len(self._order)} ({self.completed_count()} completed), '
                f'Categories: {len(self._categories)}')

    # -------------------- export --------------------
    def export_json(self, status_filter: Optional[TaskFilter] = None) -> str:
        return export.export_json(self._live_tasks(), list(self._categories.values()),
                                  status_filter, now=self._clock.now())

    def export_csv(self, status_filter: Optional[TaskFilter] = None) -> str:
        return export.export_csv(self._live_tasks(), list(self._categories.values()),
                                 status_filter)

    def export_filename(self, ext: str) -> str:
        return export.export_filename(len(self._order), ext, self._clock.today())
