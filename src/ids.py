"""Identifier generation and the engine clock."""
from __future__ import annotations

import itertools
import secrets
import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_sequence = itertools.count(1)

ONE_MS = timedelta(milliseconds=1)


def _random_base36(length: int = 9) -> str:
    return ''.join(secrets.choice(_BASE36) for _ in range(length))


def generate_id() -> str:
    """Return "<epoch-ms>-<sequence>-<random>".

    The process-wide sequence keeps ids distinct even when several are
    minted within the same millisecond.
    """
    return f"{int(time.time() * 1000)}-{next(_sequence)}-{_random_base36()}"


class Clock:
    """Wall clock used for timestamps and due-date checks."""

    def now(self) -> datetime:
        # millisecond precision, matches the ISO strings written to storage
        now = datetime.now(timezone.utc)
        return now.replace(microsecond=(now.microsecond // 1000) * 1000)

    def today(self) -> date:
        return datetime.now().date()

    def stamp(self, previous: Optional[datetime] = None) -> datetime:
        """Return now, or previous + 1ms when now is not strictly later."""
        now = self.now()
        if previous is not None and now <= previous:
            return previous + ONE_MS
        return now
