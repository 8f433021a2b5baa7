"""Tag registry: tag operations that span every task's tag list.

Tags have no record of their own. Identity is case-insensitive; the
casing a tag was first stored with is what listings show.
"""
import logging
from typing import Dict, Iterable, List, Tuple

from errors import DuplicateError, LimitExceededError, NotFoundError, ValidationError
from models import Task
from validation import MAX_TAGS_PER_TASK, normalize_tag, tag_key

logger = logging.getLogger(__name__)


def _replace_tags(tags: List[str], sources: set, target: str) -> List[str]:
    """Swap every tag whose key is in ``sources`` for ``target``.

    The target lands where the first source tag was, unless the task
    already carries it, in which case the sources are simply dropped.
    """
    target_key = target.lower()
    has_target = any(t.lower() == target_key and t.lower() not in sources for t in tags)
    out: List[str] = []
    placed = has_target
    for tag in tags:
        key = tag.lower()
        if key in sources:
            if not placed:
                out.append(target)
                placed = True
            continue
        out.append(tag)
    return out


class TagRegistryMixin:
    """Tag operations for TaskStore.

    Expects the host to provide ``_tasks``, ``_order``, ``tag_filters``,
    ``_require_task()``, ``_touch()`` and ``_persist()``.
    """
    _tasks: Dict[str, Task]
    _order: List[str]
    tag_filters: List[str]

    # -------------------- single task --------------------
    def add_tag_to_task(self, task_id: str, tag: str) -> None:
        task = self._require_task(task_id)
        cleaned = normalize_tag(tag)
        if task.has_tag(cleaned):
            raise DuplicateError('Tag already exists', field='tags')
        if len(task.tags) >= MAX_TAGS_PER_TASK:
            raise LimitExceededError(f'Maximum {MAX_TAGS_PER_TASK} tags per task', field='tags')
        task.tags.append(cleaned)
        self._touch(task)
        logger.debug("Tag added task=%s tag=%s", task_id, cleaned)
        self._persist()

    def remove_tag_from_task(self, task_id: str, tag: str) -> None:
        task = self._require_task(task_id)
        key = tag_key(tag)
        remaining = [t for t in task.tags if t.lower() != key]
        if len(remaining) == len(task.tags):
            return
        task.tags = remaining
        self._touch(task)
        self._persist()

    # -------------------- across all tasks --------------------
    def remove_tag_everywhere(self, tag: str) -> int:
        """Drop a tag from every task; returns how many tasks changed."""
        key = tag_key(tag)
        changed = 0
        for task in self._iter_tasks():
            remaining = [t for t in task.tags if t.lower() != key]
            if len(remaining) != len(task.tags):
                task.tags = remaining
                self._touch(task)
                changed += 1
        filters = [t for t in self.tag_filters if t.lower() != key]
        filter_changed = len(filters) != len(self.tag_filters)
        self.tag_filters = filters
        logger.debug("Tag removed everywhere tag=%s tasks=%d", tag, changed)
        if changed or filter_changed:
            self._persist()
        return changed

    def rename_tag_everywhere(self, old_tag: str, new_tag: str) -> int:
        new_value = normalize_tag(new_tag)
        old_key = tag_key(old_tag)
        carriers = [t for t in self._iter_tasks() if t.has_tag(old_key)]
        if not carriers:
            raise NotFoundError('Tag not found', field='tags')
        for task in carriers:
            task.tags = _replace_tags(task.tags, {old_key}, new_value)
            self._touch(task)
        self.tag_filters = _replace_tags(self.tag_filters, {old_key}, new_value)
        logger.debug("Tag renamed %s -> %s tasks=%d", old_tag, new_value, len(carriers))
        self._persist()
        return len(carriers)

    def merge_tags_everywhere(self, source_tags: Iterable[str], target_tag: str) -> int:
        sources = {tag_key(s) for s in source_tags if s and s.strip()}
        if not sources:
            raise ValidationError('Must provide at least one tag to merge', field='tags')
        target = normalize_tag(target_tag, empty_message='Target tag name cannot be empty')
        changed = 0
        for task in self._iter_tasks():
            if not any(t.lower() in sources for t in task.tags):
                continue
            task.tags = _replace_tags(task.tags, sources, target)
            self._touch(task)
            changed += 1
        self.tag_filters = _replace_tags(self.tag_filters, sources, target)
        logger.debug("Tags merged %s -> %s tasks=%d", sorted(sources), target, changed)
        self._persist()
        return changed

    # -------------------- listings --------------------
    def list_all_tags(self) -> List[str]:
        return sorted(self._first_seen_tags(), key=lambda t: (t.lower(), t))

    def tag_usage_count(self, tag: str) -> int:
        key = tag_key(tag)
        return sum(1 for task in self._iter_tasks() if task.has_tag(key))

    def tags_with_count(self) -> List[Tuple[str, int]]:
        """(tag, count) pairs, most used first; ties keep first-seen order."""
        counts: Dict[str, int] = {}
        display: Dict[str, str] = {}
        for task in self._iter_tasks():
            for tag in task.tags:
                key = tag.lower()
                display.setdefault(key, tag)
                counts[key] = counts.get(key, 0) + 1
        pairs = [(display[k], counts[k]) for k in display]
        pairs.sort(key=lambda p: p[1], reverse=True)
        return pairs

    def _first_seen_tags(self) -> List[str]:
        seen: Dict[str, str] = {}
        for task in self._iter_tasks():
            for tag in task.tags:
                seen.setdefault(tag.lower(), tag)
        return list(seen.values())

    def _iter_tasks(self):
        return (self._tasks[tid] for tid in self._order)
