"""
Bounded in-memory cache of task statuses.

Only terminal entries are ever evicted. Active entries are what admission
control relies on, so losing one would let a duplicate through.
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional

from loguru import logger

from core.models import TaskStatus


class TaskStatusCache:
    """
    LRU-ordered mapping of task id to ``TaskStatus``.

    Entries move to the end whenever they are written, so iteration order is
    oldest-updated first.
    """

    def __init__(self, max_entries: int = 10_000, retention_days: int = 7):
        self.max_entries = max_entries
        self.retention = timedelta(days=retention_days)
        self._entries: "OrderedDict[str, TaskStatus]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._entries

    def __iter__(self) -> Iterator[TaskStatus]:
        return iter(list(self._entries.values()))

    def get(self, task_id: str) -> Optional[TaskStatus]:
        return self._entries.get(task_id)

    def put(self, status: TaskStatus) -> None:
        self._entries[status.task_id] = status
        self._entries.move_to_end(status.task_id)
        self._evict()

    def for_email(self, email: str) -> List[TaskStatus]:
        """Statuses for ``email``, newest first."""
        matches = [s for s in self._entries.values() if s.email == email]
        return sorted(matches, key=lambda s: s.created_at, reverse=True)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop terminal entries not updated within the retention window."""
        cutoff = (now or datetime.now(timezone.utc)) - self.retention
        stale = [tid for tid, s in self._entries.items() if s.is_terminal and s.updated_at < cutoff]
        for tid in stale:
            del self._entries[tid]
        if stale:
            logger.debug(f"Swept {len(stale)} expired task statuses")
        return len(stale)

    def _evict(self) -> None:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        self.sweep()
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        victims = [tid for tid, s in self._entries.items() if s.is_terminal][:overflow]
        for tid in victims:
            del self._entries[tid]
        if len(self._entries) > self.max_entries:
            logger.warning(
                f"Status cache above capacity with active tasks only | size={len(self._entries)} | max={self.max_entries}"
            )
