"""
Status reconciliation after a restart.

Rebuilds the in-memory status cache from recent analysis records so that
clients polling ``/analysis-status`` keep getting answers. Restored
non-terminal tasks are not re-queued.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from loguru import logger

from config.settings import QueueSettings, get_settings
from core.enums import TERMINAL_STATES
from core.models import ReconciliationResult, TaskStatus
from orchestration.analysis_queue import AnalysisQueue
from orchestration.task_persistence import AnalysisRecordRepository


class StatusReconciler:
    def __init__(
        self,
        queue: AnalysisQueue,
        repository: AnalysisRecordRepository,
        queue_settings: Optional[QueueSettings] = None,
    ):
        self.queue = queue
        self.repository = repository
        self.settings = queue_settings or get_settings().queue

    async def reconcile(self, lookback_days: Optional[int] = None) -> ReconciliationResult:
        """
        Restore records created within ``lookback_days`` whose id is not cached
        and that are either still active or were updated recently. Only the
        newest record per task id counts; older runs of a resubmitted task are
        history.
        """
        now = datetime.now(timezone.utc)
        lookback = self.settings.reconcile_lookback_days if lookback_days is None else lookback_days
        terminal_window = timedelta(hours=self.settings.reconcile_terminal_window_hours)

        records = await self.repository.list_since(now - timedelta(days=lookback))
        restored = 0
        seen: Set[str] = set()
        for record in records:
            if record["task_id"] in seen:
                continue
            seen.add(record["task_id"])

            status = TaskStatus.from_record(record)
            terminal = status.status in TERMINAL_STATES
            if terminal and now - status.updated_at >= terminal_window:
                continue
            if self.queue.restore_status(status):
                restored += 1

        logger.info(f"Reconciled analysis statuses | restored={restored} | considered={len(records)}")
        return ReconciliationResult(restored=restored, total_considered=len(records))
