"""Manual ordering over tasks (custom_order).

custom_order is a dense 0-based rank. Every operation here computes a new
id sequence and hands it to reorder(), which is the only place ranks are
assigned.
"""
import logging
from typing import Dict, Iterable, List

from models import Task

logger = logging.getLogger(__name__)


class OrderingMixin:
    """Reorder/move operations for TaskStore.

    Expects the host to provide ``_tasks`` (id -> Task), ``_order`` (ids by
    rank), ``_touch(task)`` and ``_persist()``.
    """
    _tasks: Dict[str, Task]
    _order: List[str]

    def ordered_ids(self) -> List[str]:
        return list(self._order)

    def reorder(self, task_ids: Iterable[str]) -> None:
        """Put the given ids first, in the given order.

        Unknown and repeated ids are ignored; tasks not listed keep their
        relative order after the listed ones, so ranks stay 0..N-1.
        """
        listed: List[str] = []
        seen = set()
        for tid in task_ids:
            if tid in self._tasks and tid not in seen:
                seen.add(tid)
                listed.append(tid)
        new_order = listed + [tid for tid in self._order if tid not in seen]
        changed = self._apply_order(new_order)
        logger.debug("Reordered tasks listed=%d changed=%d", len(listed), changed)
        if changed:
            self._persist()

    def move_up(self, task_id: str) -> bool:
        idx = self._rank_of(task_id)
        if idx is None or idx == 0:
            return False
        ids = list(self._order)
        ids[idx - 1], ids[idx] = ids[idx], ids[idx - 1]
        self.reorder(ids)
        return True

    def move_down(self, task_id: str) -> bool:
        idx = self._rank_of(task_id)
        if idx is None or idx >= len(self._order) - 1:
            return False
        ids = list(self._order)
        ids[idx], ids[idx + 1] = ids[idx + 1], ids[idx]
        self.reorder(ids)
        return True

    def move_to_position(self, task_id: str, position: int) -> bool:
        """Move a task to ``position`` (clamped to the valid range)."""
        idx = self._rank_of(task_id)
        if idx is None:
            return False
        target = max(0, min(int(position), len(self._order) - 1))
        if target == idx:
            return False
        ids = list(self._order)
        ids.pop(idx)
        ids.insert(target, task_id)
        self.reorder(ids)
        return True

    # -------------------- internals --------------------
    def _rank_of(self, task_id: str):
        task = self._tasks.get(task_id)
        return None if task is None else task.custom_order

    def _apply_order(self, new_order: List[str]) -> int:
        changed = 0
        for rank, tid in enumerate(new_order):
            task = self._tasks[tid]
            if task.custom_order != rank:
                task.custom_order = rank
                self._touch(task)
                changed += 1
        self._order = new_order
        return changed

    def _drop_from_order(self, task_id: str) -> None:
        """Remove an id and close the gap it leaves."""
        idx = self._order.index(task_id)
        del self._order[idx]
        for rank in range(idx, len(self._order)):
            self._tasks[self._order[rank]].custom_order = rank
