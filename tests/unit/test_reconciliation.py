"""
Unit Tests for Status Reconciliation
"""

from datetime import timedelta

import pytest

from core.enums import TaskState
from core.models import TaskStatus
from orchestration.reconciliation import StatusReconciler


@pytest.fixture
def reconciler(queue, repository, queue_settings):
    return StatusReconciler(queue, repository, queue_settings=queue_settings)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_restores_non_terminal_records(self, reconciler, queue, repository):
        for i in range(5):
            repository.seed(f"task-{i}", "processing" if i % 2 else "queued")

        result = await reconciler.reconcile()

        assert result.restored == 5
        assert result.total_considered == 5
        assert queue.get_status("task-1").status == TaskState.PROCESSING.value
        assert queue.get_status("task-0").status == TaskState.QUEUED.value
        assert queue.queue_snapshot().queue_length == 0

    @pytest.mark.asyncio
    async def test_skips_terminal_records_outside_window(self, reconciler, queue, repository):
        repository.seed("recent-done", "completed", updated_ago=timedelta(hours=2))
        repository.seed("old-done", "failed", updated_ago=timedelta(hours=30))

        result = await reconciler.reconcile()

        assert result.restored == 1
        assert queue.get_status("recent-done") is not None
        assert queue.get_status("old-done") is None

    @pytest.mark.asyncio
    async def test_ignores_records_older_than_lookback(self, reconciler, queue, repository):
        repository.seed("ancient", "queued", created_ago=timedelta(days=10))

        result = await reconciler.reconcile()

        assert result.total_considered == 0
        assert queue.get_status("ancient") is None

    @pytest.mark.asyncio
    async def test_does_not_overwrite_cached_status(self, reconciler, queue, repository):
        queue.restore_status(
            TaskStatus(task_id="task-0", email="owner@example.com", url="https://x/", status=TaskState.COMPLETED)
        )
        repository.seed("task-0", "queued")

        result = await reconciler.reconcile()

        assert result.restored == 0
        assert queue.get_status("task-0").status == TaskState.COMPLETED.value

    @pytest.mark.asyncio
    async def test_legacy_sending_state_is_restored_as_processing(self, reconciler, queue, repository):
        repository.seed("legacy", "sending_email")

        await reconciler.reconcile()

        assert queue.get_status("legacy").status == TaskState.PROCESSING.value

    @pytest.mark.asyncio
    async def test_only_newest_record_per_task_counts(self, reconciler, queue, repository):
        repository.seed("t1", "processing", created_ago=timedelta(days=3), updated_ago=timedelta(days=3))
        repository.seed("t1", "completed", created_ago=timedelta(hours=31), updated_ago=timedelta(hours=30))

        result = await reconciler.reconcile()

        assert result.restored == 0
        assert result.total_considered == 2
        assert queue.get_status("t1") is None

    @pytest.mark.asyncio
    async def test_zero_lookback_considers_nothing(self, reconciler, queue, repository):
        repository.seed("recent", "queued")

        result = await reconciler.reconcile(lookback_days=0)

        assert result.total_considered == 0
        assert queue.get_status("recent") is None
