"""
In-memory test doubles for the analysis queue's collaborators.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core.exceptions import DatabaseQueryError
from core.models import PipelineResult


class FakeRepository:
    """In-memory stand-in for AnalysisRecordRepository."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []
        self.updates: List[tuple] = []
        self.fail = False
        self.update_delay = 0.0

    async def create_record(self, task_id, email, url, status="queued", email_status="pending", user_id=None):
        if self.fail:
            raise DatabaseQueryError("store unavailable")
        now = datetime.now(timezone.utc)
        self.records.append(
            {
                "id": len(self.records) + 1,
                "task_id": task_id,
                "user_id": user_id,
                "email": email,
                "url": url,
                "status": status,
                "email_status": email_status,
                "report_directory": None,
                "email_error": None,
                "created_at": now,
                "updated_at": now,
            }
        )
        return self.records[-1]["id"]

    def seed(self, task_id, status, user_id=None, created_ago=timedelta(hours=1), updated_ago=timedelta(hours=1)):
        """Insert a pre-existing row, as if written by an earlier process."""
        now = datetime.now(timezone.utc)
        self.records.append(
            {
                "id": len(self.records) + 1,
                "task_id": task_id,
                "user_id": user_id,
                "email": "owner@example.com",
                "url": f"https://{task_id}.example.com/",
                "status": status,
                "email_status": "pending",
                "report_directory": None,
                "email_error": None,
                "created_at": now - created_ago,
                "updated_at": now - updated_ago,
            }
        )

    async def update_record(self, record_id, patch):
        if self.update_delay:
            await asyncio.sleep(self.update_delay)
        if self.fail:
            raise DatabaseQueryError("store unavailable")
        self.updates.append((record_id, dict(patch)))
        record = next((r for r in self.records if r["id"] == record_id), None)
        if record is None:
            return False
        record.update(patch)
        record["updated_at"] = datetime.now(timezone.utc)
        return True

    async def get_by_task_id(self, task_id):
        return self._newest(task_id)

    async def list_since(self, cutoff):
        rows = [r for r in self.records if r["created_at"] >= cutoff]
        return sorted(rows, key=lambda r: (r["created_at"], r["id"]), reverse=True)

    async def list_for_user(self, user_id, page, page_size):
        rows = [r for r in reversed(self.records) if r["user_id"] == user_id]
        return rows[(page - 1) * page_size : page * page_size]

    async def count_for_user(self, user_id):
        return sum(1 for r in self.records if r["user_id"] == user_id)

    def _newest(self, task_id) -> Optional[Dict[str, Any]]:
        matches = [r for r in self.records if r["task_id"] == task_id]
        return matches[-1] if matches else None


class FakeWorkingCollection:
    def __init__(self):
        self.clear_calls = 0

    async def clear(self) -> int:
        self.clear_calls += 1
        return 0


class FakePipeline:
    """
    Scripted pipeline.

    ``script`` maps a url to a list of outcomes consumed one per attempt; an
    outcome is a PipelineResult or an exception to raise. Unscripted attempts
    succeed. ``gate`` (if set) blocks every run until released.
    """

    def __init__(self, script: Optional[Dict[str, list]] = None):
        self.script = {url: list(outcomes) for url, outcomes in (script or {}).items()}
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.running = 0
        self.max_running = 0

    async def run(self, url, email, task):
        self.calls.append((task.task_id, url, task.retry_count))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)

            outcomes = self.script.get(url)
            outcome = outcomes.pop(0) if outcomes else None
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome or PipelineResult(success=True, report_directory=f"/reports/{task.task_id}")
        finally:
            self.running -= 1


class FakeNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    async def send_analysis_report(self, to, url, report_directory, analysis_results):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "url": url, "report_directory": report_directory})
        return {"accepted": [to]}


def failed_result(error: str = "Request timeout", retryable: bool = True) -> PipelineResult:
    return PipelineResult(success=False, error=error, failed_stage="website", retryable=retryable)


class InMemoryPages:
    """Working collection backed by a list, for exercising real stages."""

    def __init__(self, pages: Optional[List[Dict[str, Any]]] = None):
        self.pages: List[Dict[str, Any]] = []
        for page in pages or []:
            self.pages.append({"id": len(self.pages) + 1, **page})

    async def insert_pages(self, pages):
        for page in pages:
            self.pages.append({"id": len(self.pages) + 1, **page})
        return len(pages)

    async def fetch_for_domain(self, domain):
        return [dict(p) for p in self.pages if p.get("domain") == domain]

    async def update_page(self, page_id, values):
        for page in self.pages:
            if page["id"] == page_id:
                page.update(values)

    async def clear(self):
        removed = len(self.pages)
        self.pages.clear()
        return removed


class FakeLLM:
    """Returns canned JSON objects in order; the last one repeats."""

    def __init__(self, *responses: Dict[str, Any]):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def complete_json(self, prompt, system=None, **kwargs):
        self.prompts.append(prompt)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]
