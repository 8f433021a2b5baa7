"""Data models for the task tracker.

Enumerations carry the string values used in snapshots and exports
("pending", "dateCreated", ...) so a stored value maps straight back to
its member. Tags are plain strings living inside each task; there is no
separate tag record.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, FrozenSet, List, Optional, Sequence, Tuple


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.CRITICAL: 4,
}


class TaskFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class SortBy(str, Enum):
    DATE_CREATED = "dateCreated"
    PRIORITY = "priority"
    TITLE = "title"
    DUE_DATE = "dueDate"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class _Unset:
    """Marker for "field not supplied" in patch objects (None means clear)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class Task:
    """A single trackable task.

    Fields:
        id: Opaque unique id.
        title: 1-100 characters.
        description: 0-500 characters.
        status: Pending or completed.
        priority: Low/medium/high/critical (default medium).
        due_date: Calendar day, or None.
        category_id: Weak reference to a Category, or None.
        tags: Up to 10 strings, unique case-insensitively.
        custom_order: Dense 0-based manual rank across all tasks.
        created_at/updated_at: UTC timestamps; updated_at only moves forward.
        completed_at: Set iff status is completed.
    """
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    category_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    custom_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    def has_tag(self, tag: str) -> bool:
        needle = tag.strip().lower()
        return any(t.lower() == needle for t in self.tags)

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"Task(id={self.id}, title={self.title}, status={self.status.value})"


@dataclass
class Category:
    id: str
    name: str
    color: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class TaskInput:
    """Fields accepted when creating a task; only title is required."""
    title: str
    description: str = ""
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    category_id: Optional[str] = None
    tags: Sequence[str] = ()


@dataclass
class TaskPatch:
    """Partial update; fields left as UNSET are not touched.

    For due_date and category_id an explicit None clears the value.
    """
    title: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    due_date: Any = UNSET
    category_id: Any = UNSET
    tags: Any = UNSET


@dataclass
class CategoryInput:
    name: str
    color: str


@dataclass
class CategoryPatch:
    name: Optional[str] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class CategoryFilter:
    """Selected category ids; include_uncategorized adds tasks without one.

    An empty selection means no filtering at all.
    """
    category_ids: FrozenSet[str] = frozenset()
    include_uncategorized: bool = False

    @classmethod
    def from_list(cls, values: Sequence[Optional[str]]) -> "CategoryFilter":
        """Build from the stored form: ids, with None standing for uncategorized."""
        ids = frozenset(v for v in values if v is not None)
        return cls(category_ids=ids, include_uncategorized=any(v is None for v in values))

    @property
    def is_empty(self) -> bool:
        return not self.category_ids and not self.include_uncategorized


@dataclass(frozen=True)
class Query:
    """One composed view: filter -> search -> sort.

    sort_by=None keeps the manual (custom_order) order.
    """
    status: TaskFilter = TaskFilter.ALL
    categories: CategoryFilter = CategoryFilter()
    tags: Tuple[str, ...] = ()
    search: str = ""
    sort_by: Optional[SortBy] = SortBy.DATE_CREATED
    direction: SortDirection = SortDirection.DESC


@dataclass
class StoreState:
    """Everything that is persisted (selection and search text are not)."""
    tasks: List[Task] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    current_filter: TaskFilter = TaskFilter.ALL
    category_filters: List[Optional[str]] = field(default_factory=list)
    tag_filters: List[str] = field(default_factory=list)
    sort_by: SortBy = SortBy.DATE_CREATED
    sort_direction: SortDirection = SortDirection.DESC
