"""
Analysis Pipeline Orchestration

Runs the four required stages in order and then the five independent report
generators. Required-stage failures abort the run and remove the task's
report directory; report failures are recorded and skipped.
"""

import asyncio
import secrets
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from loguru import logger

from config.settings import get_settings
from core.exceptions import StageError
from core.identity import hostname_of
from core.models import PipelineResult, ReportResult, StageResult, Task, utcnow
from infrastructure.monitoring import MetricsCollector
from orchestration.retry_policy import is_retryable_error


def report_directory_name(email: str, url: str, started_at: float) -> Tuple[str, str]:
    """
    Return ``(email_folder, run_folder)`` for a task's report directory.

    ``owner@example.com`` + ``https://www.site.io/`` started at
    2025-03-01 10:20:30.123 UTC gives
    ``("owner_example_com", "www_site_io_2025-03-01T10-20-30")``.
    """
    email_folder = email.replace("@", "_").replace(".", "_")
    host_folder = (hostname_of(url) or "site").replace(".", "_")
    stamp = datetime.fromtimestamp(started_at, tz=timezone.utc).isoformat()
    stamp = stamp.replace(":", "-").replace(".", "-")[:19]
    return email_folder, f"{host_folder}_{stamp}"


class AnalysisPipeline:
    """
    Ordered composition of required stages and optional report generators.

    Required stages expose ``async run(url, config) -> StageResult``; report
    generators expose ``async generate(url, report_dir) -> ReportResult``.
    """

    def __init__(
        self,
        required_stages: Sequence[Tuple[str, Any]],
        report_stages: Sequence[Tuple[str, Any]],
        reports_dir: Optional[Path] = None,
        metrics: Optional[MetricsCollector] = None,
        retryable_keywords: Optional[Sequence[str]] = None,
    ):
        settings = get_settings()
        self.required_stages = list(required_stages)
        self.report_stages = list(report_stages)
        self.reports_dir = Path(reports_dir or settings.reports.reports_dir)
        self.metrics = metrics
        self.retryable_keywords = list(
            retryable_keywords if retryable_keywords is not None else settings.queue.retryable_keywords
        )

    def create_report_directory(self, email: str, url: str, started_at: float) -> Path:
        """Create a fresh directory, suffixing 4 random hex chars on collision."""
        email_folder, run_folder = report_directory_name(email, url, started_at)
        parent = self.reports_dir / email_folder
        parent.mkdir(parents=True, exist_ok=True)

        candidate = parent / run_folder
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = parent / f"{run_folder}_{secrets.token_hex(2)}"

    async def run(self, url: str, email: str, task: Task) -> PipelineResult:
        result = PipelineResult(start_time=utcnow())
        started_at = task.processing_started_at or time.time()

        report_dir = self.create_report_directory(email, url, started_at)
        result.report_directory = str(report_dir)
        logger.info(f"Starting analysis for {url} | task_id={task.task_id} | report_dir={report_dir}")

        config: Dict[str, Any] = {
            "task_id": task.task_id,
            "email": email,
            "domain": hostname_of(url),
            "report_directory": str(report_dir),
        }

        for name, stage in self.required_stages:
            error = await self._run_required(name, stage, url, config, result)
            if error is not None:
                result.success = False
                result.error = str(error)
                result.failed_stage = name
                result.retryable = is_retryable_error(error, self.retryable_keywords)
                result.end_time = utcnow()
                await self._remove_directory(report_dir)
                result.report_directory = None
                logger.error(f"Required stage '{name}' failed for {url}: {error} | retryable={result.retryable}")
                return result

        for name, generator in self.report_stages:
            await self._run_report(name, generator, url, report_dir, result)

        result.success = True
        result.end_time = utcnow()
        logger.info(
            f"Analysis finished for {url} | reports={len(result.successful_reports)}/{len(self.report_stages)}"
        )
        return result

    async def _run_required(
        self, name: str, stage: Any, url: str, config: Dict[str, Any], result: PipelineResult
    ) -> Optional[BaseException]:
        logger.info(f"Stage '{name}' starting")
        start = time.perf_counter()
        error: Optional[BaseException] = None
        try:
            outcome: StageResult = await stage.run(url, config)
            if not outcome.success:
                error = StageError(outcome.error or f"Stage '{name}' reported failure", stage=name)
        except Exception as e:
            error = e
            outcome = StageResult(success=False, error=str(e))

        duration = time.perf_counter() - start
        result.steps[name] = {
            "success": error is None,
            "error": None if error is None else str(error),
            "duration": round(duration, 3),
            "data": outcome.data,
        }
        if error is None:
            logger.info(f"Stage '{name}' completed in {duration:.1f}s")
        return error

    async def _run_report(
        self, name: str, generator: Any, url: str, report_dir: Path, result: PipelineResult
    ) -> None:
        start = time.perf_counter()
        try:
            outcome: ReportResult = await generator.generate(url, str(report_dir))
        except Exception as e:
            outcome = ReportResult(success=False, error=str(e), duration=time.perf_counter() - start)

        result.steps[name] = outcome.model_dump()
        if self.metrics is not None:
            self.metrics.record_report_stage(name, outcome.success)
        if outcome.success:
            logger.info(f"Report '{name}' written to {outcome.path}")
        else:
            logger.warning(f"Report '{name}' failed: {outcome.error}")

    async def _remove_directory(self, path: Path) -> None:
        try:
            await asyncio.to_thread(shutil.rmtree, path)
            logger.info(f"Removed report directory {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove report directory {path}: {e}")
