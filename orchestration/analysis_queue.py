"""
Analysis Queue: in-process FIFO with durable status tracking.

One worker coroutine per process drains an ``asyncio.Lock``-protected deque
and runs the analysis pipeline for one task at a time. The queue owns:

- admission control (one active task per (email, url) identity)
- the in-memory status cache and its fire-and-forget mirror in the store
- retry with linear backoff; retries re-enter at the front of the deque
- cleanup of the shared working collection after every attempt
- graceful shutdown bounded by ``shutdown_timeout``
"""

import asyncio
import functools
import time
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from loguru import logger

from config.settings import QueueSettings, get_settings
from core.enums import ACTIVE_STATES, EmailState, TaskState
from core.exceptions import AnalysisPipelineError, QueueShuttingDownError
from core.identity import generate_task_id, normalize_url
from core.models import (
    PipelineResult,
    QueueItem,
    QueueSnapshot,
    SubmissionResult,
    Task,
    TaskStatus,
    utcnow,
)
from infrastructure.monitoring import MetricsCollector
from infrastructure.working_store import WorkingCollection
from orchestration.retry_policy import is_retryable_error
from orchestration.status_cache import TaskStatusCache
from orchestration.task_persistence import AnalysisRecordRepository

_SWEEP_INTERVAL_SECONDS = 3600.0


class AnalysisQueue:
    """
    Single-consumer analysis task queue.

    Usage:
        queue = AnalysisQueue(pipeline, notifier, repository, working_collection)
        result = await queue.submit("owner@example.com", "https://example.com")
        if not result.duplicate:
            outcome = await result.outcome  # optional; submit never blocks
    """

    def __init__(
        self,
        pipeline: Any,
        notifier: Any,
        repository: AnalysisRecordRepository,
        working_collection: WorkingCollection,
        metrics: Optional[MetricsCollector] = None,
        queue_settings: Optional[QueueSettings] = None,
    ):
        self.pipeline = pipeline
        self.notifier = notifier
        self.repository = repository
        self.working_collection = working_collection
        self.metrics = metrics
        self.settings = queue_settings or get_settings().queue

        self.statuses = TaskStatusCache(
            max_entries=self.settings.status_cache_max_entries,
            retention_days=self.settings.status_retention_days,
        )

        self._queue: Deque[Task] = deque()
        self._lock = asyncio.Lock()
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional[Task] = None
        self._pending_retries: Set[asyncio.Task] = set()
        self._persist_tasks: Set[asyncio.Task] = set()
        self._persist_tails: Dict[str, asyncio.Task] = {}
        self._accepting = True
        self._stopping = False
        self._last_sweep = time.monotonic()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def submit(self, email: str, url: str, user_id: Optional[str] = None) -> SubmissionResult:
        """
        Admit an (email, url) request.

        Returns a duplicate result, without queueing, when a task with the
        same identity is already queued or processing. Never waits for the
        pipeline.

        Raises:
            QueueShuttingDownError: shutdown has begun
        """
        if not self._accepting:
            raise QueueShuttingDownError()

        normalized = normalize_url(url)
        task_id = generate_task_id(email, normalized)

        existing = self.statuses.get(task_id)
        if existing is not None and existing.status in ACTIVE_STATES:
            logger.info(f"Duplicate submission rejected | task_id={task_id} | status={existing.status}")
            return SubmissionResult(duplicate=True, task_id=task_id, status=existing)

        status = TaskStatus(task_id=task_id, email=email, url=normalized)
        self.statuses.put(status)
        self._maybe_sweep()

        try:
            status.record_id = await self.repository.create_record(
                task_id=task_id,
                email=email,
                url=normalized,
                status=TaskState.QUEUED.value,
                email_status=EmailState.PENDING.value,
                user_id=user_id,
            )
        except Exception as e:
            logger.warning(f"Failed to persist analysis record | task_id={task_id} | error={e}")

        task = Task(
            task_id=task_id,
            email=email,
            url=normalized,
            user_id=user_id,
            outcome=asyncio.get_running_loop().create_future(),
        )

        async with self._lock:
            self._queue.append(task)
            self._report_queue_length()

        logger.info(f"Task queued | task_id={task_id} | url={normalized} | position={len(self._queue)}")
        self._ensure_worker()
        return SubmissionResult(duplicate=False, task_id=task_id, status=status, outcome=task.outcome)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(self, task_id: str, **patch: Any) -> Optional[TaskStatus]:
        """
        Patch the cached status and mirror the patch to the store.

        The cache is updated synchronously; the store write runs in the
        background and is ordered after earlier writes for the same task.
        """
        current = self.statuses.get(task_id)
        if current is None:
            return None

        values = {k: v.value if isinstance(v, Enum) else v for k, v in patch.items()}
        updated = current.model_copy(update={**values, "updated_at": utcnow()})
        self.statuses.put(updated)
        self._persist(task_id, updated.record_id, values)
        return updated

    def get_status(self, task_id: str) -> Optional[TaskStatus]:
        return self.statuses.get(task_id)

    def get_statuses_for_email(self, email: str) -> List[TaskStatus]:
        return self.statuses.for_email(email)

    def restore_status(self, status: TaskStatus) -> bool:
        """Insert a status rebuilt from the store unless the id is already cached."""
        if status.task_id in self.statuses:
            return False
        self.statuses.put(status)
        return True

    def queue_snapshot(self) -> QueueSnapshot:
        now = time.time()
        return QueueSnapshot(
            queue_length=len(self._queue),
            is_processing=self._current is not None,
            current_task=self._current.summary() if self._current else None,
            queue_items=[
                QueueItem(
                    task_id=t.task_id,
                    url=t.url,
                    email=t.email,
                    retries=t.retry_count,
                    wait_time_ms=int((now - t.queued_at) * 1000),
                )
                for t in self._queue
            ],
        )

    @property
    def is_processing(self) -> bool:
        return self._current is not None

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._stopping:
            return
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="analysis-queue-worker")
            logger.info("Queue processor started")

    async def _run(self) -> None:
        while not self._stopping:
            pending = [t for t in self._pending_retries if not t.done()]
            if pending:
                await asyncio.wait(pending)
                continue

            async with self._lock:
                if not self._queue:
                    if any(not t.done() for t in self._pending_retries):
                        continue
                    self._worker = None
                    logger.info("Queue processor stopped. All tasks completed.")
                    return
                task = self._queue.popleft()
                self._report_queue_length()

            await self._process(task)

    async def _process(self, task: Task) -> None:
        self._current = task
        task.processing_started_at = time.time()
        self.update_status(task.task_id, status=TaskState.PROCESSING)

        logger.info(
            f"Processing task {task.task_id} | url={task.url} | attempt={task.retry_count + 1} | "
            f"queued_for_ms={int((task.processing_started_at - task.queued_at) * 1000)} | "
            f"remaining={len(self._queue)}"
        )

        start = time.perf_counter()
        try:
            result: PipelineResult = await self.pipeline.run(task.url, task.email, task)
            if not result.success:
                raise AnalysisPipelineError(
                    result.error or "Analysis pipeline failed",
                    stage=result.failed_stage,
                    retryable=result.retryable,
                )

            self.update_status(task.task_id, report_directory=result.report_directory)
            await self._notify(task, result)
            self.update_status(task.task_id, status=TaskState.COMPLETED)

            duration = time.perf_counter() - start
            self._record_outcome("completed", duration)
            logger.info(f"Task {task.task_id} completed in {duration:.1f}s")
            task.resolve(
                {
                    "success": True,
                    "task_id": task.task_id,
                    "status": TaskState.COMPLETED.value,
                    "report_directory": result.report_directory,
                    "processing_time_ms": int(duration * 1000),
                }
            )
        except Exception as e:
            self._handle_failure(task, e, time.perf_counter() - start)
        finally:
            self._current = None
            await self._cleanup(task)

    async def _notify(self, task: Task, result: PipelineResult) -> None:
        """Deliver the report e-mail. Failures only touch ``email_status``."""
        self.update_status(task.task_id, email_status=EmailState.SENDING)
        try:
            await self.notifier.send_analysis_report(
                to=task.email,
                url=task.url,
                report_directory=result.report_directory,
                analysis_results=result,
            )
        except Exception as e:
            logger.error(f"Failed to send analysis email | task_id={task.task_id} | to={task.email} | error={e}")
            self.update_status(task.task_id, email_status=EmailState.FAILED, email_error=str(e))
            self._record_notification("failed")
            return

        self.update_status(task.task_id, email_status=EmailState.SENT)
        self._record_notification("sent")
        logger.info(f"Analysis email sent | task_id={task.task_id} | to={task.email}")

    def _handle_failure(self, task: Task, error: Exception, duration: float) -> None:
        retryable = self.is_retryable_error(error)

        if retryable and task.retry_count < self.settings.max_retries and not self._stopping:
            task.retry_count += 1
            delay = self.settings.retry_base_delay * task.retry_count
            logger.warning(
                f"Retrying task {task.task_id} (attempt {task.retry_count + 1}/{self.settings.max_retries + 1}) "
                f"in {delay:.1f}s | error={error}"
            )
            self.update_status(task.task_id, status=TaskState.QUEUED)
            self._record_outcome("retried", duration)
            self._schedule_retry(task, delay)
            return

        logger.error(
            f"Task {task.task_id} failed | attempts={task.retry_count + 1} | retryable={retryable} | error={error}"
        )
        self.update_status(task.task_id, status=TaskState.FAILED)
        self._record_outcome("failed", duration)
        task.resolve(
            {
                "success": False,
                "task_id": task.task_id,
                "status": TaskState.FAILED.value,
                "error": str(error),
            }
        )

    def _schedule_retry(self, task: Task, delay: float) -> None:
        retry = asyncio.create_task(self._reinsert_after(task, delay), name=f"analysis-retry-{task.task_id}")
        self._pending_retries.add(retry)
        retry.add_done_callback(self._pending_retries.discard)

    async def _reinsert_after(self, task: Task, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lock:
            self._queue.appendleft(task)
            self._report_queue_length()
        self._ensure_worker()

    async def _cleanup(self, task: Task) -> None:
        logger.debug(f"Cleaning up after task {task.task_id}")
        try:
            await self.working_collection.clear()
        except Exception as e:
            logger.error(f"Working collection cleanup failed | task_id={task.task_id} | error={e}")

    def is_retryable_error(self, error: BaseException) -> bool:
        """
        Decide whether a failed attempt deserves another try.

        An aborted pipeline already carries its own classification; anything
        else is classified here.
        """
        if isinstance(error, AnalysisPipelineError):
            return error.retryable
        return is_retryable_error(error, self.settings.retryable_keywords)

    # ------------------------------------------------------------------
    # Persistence mirroring
    # ------------------------------------------------------------------

    def _persist(self, task_id: str, record_id: Optional[int], values: Dict[str, Any]) -> None:
        if record_id is None:
            logger.debug(f"No stored record for status update | task_id={task_id} | patch={values}")
            return
        previous = self._persist_tails.get(task_id)
        write = asyncio.create_task(self._write_patch(record_id, values, previous))
        self._persist_tails[task_id] = write
        self._persist_tasks.add(write)
        write.add_done_callback(functools.partial(self._forget_write, task_id))

    def _forget_write(self, task_id: str, write: asyncio.Task) -> None:
        self._persist_tasks.discard(write)
        if self._persist_tails.get(task_id) is write:
            del self._persist_tails[task_id]

    async def _write_patch(self, record_id: int, values: Dict[str, Any], previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        try:
            await self.repository.update_record(record_id, values)
        except Exception as e:
            logger.warning(f"Failed to persist status update | record_id={record_id} | patch={values} | error={e}")

    async def flush_persistence(self) -> None:
        """Wait for in-flight store writes."""
        while self._persist_tasks:
            await asyncio.wait(set(self._persist_tasks))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_until_idle(self) -> None:
        """Wait until the queue is drained and no retry is pending."""
        while True:
            worker = self._worker
            if worker is None or worker.done():
                break
            await asyncio.wait({worker})
        await self.flush_persistence()

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting work and let the in-flight task finish.

        When the task does not finish within ``timeout`` seconds the working
        collection is cleared and the worker is cancelled. Tasks still in the
        deque stay ``queued`` in the store.
        """
        timeout = self.settings.shutdown_timeout if timeout is None else timeout
        self._accepting = False
        self._stopping = True
        logger.info(f"Analysis queue shutting down | in_flight={self.is_processing} | queued={len(self._queue)}")

        for retry in list(self._pending_retries):
            retry.cancel()

        worker = self._worker
        if worker is not None and not worker.done():
            done, _ = await asyncio.wait({worker}, timeout=timeout)
            if not done:
                # Cancelling runs the attempt's finally block, which clears the working collection
                logger.warning(f"In-flight task did not finish within {timeout}s; cancelling it")
                worker.cancel()
                await asyncio.wait({worker})

        if self._queue:
            logger.warning(f"{len(self._queue)} queued task(s) left unprocessed at shutdown")

        await self.flush_persistence()
        logger.info("Analysis queue stopped")

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _report_queue_length(self) -> None:
        if self.metrics is not None:
            self.metrics.update_queue_length(len(self._queue))

    def _record_outcome(self, outcome: str, duration: float) -> None:
        if self.metrics is not None:
            self.metrics.record_task_outcome(outcome, duration)

    def _record_notification(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_notification(status)

    def _maybe_sweep(self) -> None:
        now = time.monotonic()
        if now - self._last_sweep >= _SWEEP_INTERVAL_SECONDS:
            self._last_sweep = now
            self.statuses.sweep()
