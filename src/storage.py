"""Persistence helpers: key-value backends and the state repository.

The store writes one JSON snapshot under STATE_KEY after every mutation
and caches the sort preference under SORT_PREFERENCE_KEY. Reading never
raises: a missing key or a corrupt payload yields the empty state.
Writing never raises either: storage failures are logged and the store
keeps running on its in-memory state.
"""
from __future__ import annotations
import errno
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from errors import StorageError, StorageQuotaError
from models import SortBy, SortDirection, StoreState
from snapshot import SnapshotError, deserialize, serialize

logger = logging.getLogger(__name__)

STATE_KEY = 'task-storage'
SORT_PREFERENCE_KEY = 'taskSortPreference'

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, 'EDQUOT', errno.ENOSPC)}


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _check_quota(quota: int, used_elsewhere: int, value: str) -> None:
    if quota and used_elsewhere + len(value.encode('utf-8')) > quota:
        raise StorageQuotaError(f'Storage quota of {quota} bytes exceeded')


class MemoryStorage:
    """Dict-backed storage; ``quota`` (bytes, 0 = unlimited) caps the total size."""

    def __init__(self, quota: int = 0, initial: Optional[Dict[str, str]] = None):
        self.quota = quota
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        used = sum(len(v.encode('utf-8')) for k, v in self._items.items() if k != key)
        _check_quota(self.quota, used, value)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class FileStorage:
    """One UTF-8 file per key inside ``directory``."""

    def __init__(self, directory: Path, quota: int = 0):
        self.directory = Path(directory)
        self.quota = quota

    def _path(self, key: str) -> Path:
        safe = ''.join(c if c.isalnum() or c in '-_' else '_' for c in key)
        return self.directory / f'{safe}.json'

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f'Cannot read {path}: {exc}') from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        if self.quota:
            used = sum(p.stat().st_size for p in self.directory.glob('*.json')
                       if p != path) if self.directory.exists() else 0
            _check_quota(self.quota, used, value)
        tmp = path.with_suffix('.tmp')
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp, 'w', encoding='utf-8') as f:
                f.write(value)
            tmp.replace(path)
        except OSError as exc:
            if exc.errno in _QUOTA_ERRNOS:
                raise StorageQuotaError(f'No space left writing {path}') from exc
            raise StorageError(f'Cannot write {path}: {exc}') from exc

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError(f'Cannot remove {path}: {exc}') from exc


class StateRepository:
    """Reads and writes the versioned store snapshot."""

    def __init__(self, storage: KeyValueStorage, key: str = STATE_KEY,
                 sort_key: str = SORT_PREFERENCE_KEY):
        self.storage = storage
        self.key = key
        self.sort_key = sort_key

    def load(self) -> StoreState:
        try:
            blob = self.storage.get_item(self.key)
        except StorageError:
            logger.exception("Reading stored state failed; starting empty")
            return StoreState()
        if blob is None:
            logger.info("No stored state under %r; starting empty", self.key)
            return StoreState()
        try:
            state = deserialize(blob)
        except (SnapshotError, ValueError, ArithmeticError, OSError, RecursionError,
                TypeError, AttributeError, KeyError) as exc:
            logger.warning("Stored state under %r is corrupt (%s); starting empty", self.key, exc)
            return StoreState()
        logger.info("Loaded state tasks=%d categories=%d", len(state.tasks), len(state.categories))
        return state

    def save(self, state: StoreState) -> bool:
        """Write the snapshot; returns False (after logging) when storage refuses it."""
        blob = serialize(state)
        try:
            self.storage.set_item(self.key, blob)
        except StorageQuotaError:
            logger.exception("Storage quota exceeded; state kept in memory only")
            return False
        except StorageError:
            logger.exception("Writing state failed; state kept in memory only")
            return False
        return True

    # -------------------- sort preference cache --------------------
    def save_sort_preference(self, sort_by: SortBy, direction: SortDirection) -> bool:
        blob = json.dumps({'sortBy': sort_by.value, 'sortDirection': direction.value})
        try:
            self.storage.set_item(self.sort_key, blob)
        except StorageError:
            logger.exception("Writing sort preference failed")
            return False
        return True

    def load_sort_preference(self) -> Optional[Tuple[SortBy, SortDirection]]:
        try:
            blob = self.storage.get_item(self.sort_key)
        except StorageError:
            logger.exception("Reading sort preference failed")
            return None
        if not blob:
            return None
        try:
            raw = json.loads(blob)
            return SortBy(raw['sortBy']), SortDirection(raw['sortDirection'])
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed sort preference %r", blob)
            return None

    def clear(self) -> None:
        for key in (self.key, self.sort_key):
            try:
                self.storage.remove_item(key)
            except StorageError:
                logger.exception("Removing %r failed", key)
