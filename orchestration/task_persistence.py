"""
Analysis Record Persistence

Durable twin of the in-memory task status. Every admission inserts a row;
status transitions patch the row their admission inserted. Rows outlive the
process so the status cache can be rebuilt after a restart and users can
page through their history.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, insert, select, update

from infrastructure.database import DatabaseManager
from infrastructure.schema import analysis_records_table

_MUTABLE_FIELDS = frozenset({"status", "email_status", "report_directory", "email_error", "user_id"})


class AnalysisRecordRepository:
    """
    Repository for persisting and querying analysis records.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository with database manager.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager

    async def create_record(
        self,
        task_id: str,
        email: str,
        url: str,
        status: str = "queued",
        email_status: str = "pending",
        user_id: Optional[str] = None,
    ) -> int:
        """
        Insert the record for a freshly admitted task.

        Args:
            task_id: Deterministic task identifier
            email: Requesting e-mail address
            url: Normalized URL
            status: Initial task state
            email_status: Initial e-mail state
            user_id: Authenticated user, when the request carried a token

        Returns:
            Primary key of the new row
        """
        now = datetime.now(timezone.utc)
        query = (
            insert(analysis_records_table)
            .values(
                task_id=task_id,
                user_id=user_id,
                email=email,
                url=url,
                status=status,
                email_status=email_status,
                created_at=now,
                updated_at=now,
            )
            .returning(analysis_records_table.c.id)
        )
        return int(await self.db.fetch_scalar(query))

    async def update_record(self, record_id: int, patch: Dict[str, Any]) -> bool:
        """
        Apply a partial update to the row ``record_id``.

        Unknown keys are ignored. ``updated_at`` is always refreshed.

        Returns:
            True if a row was updated
        """
        values = {k: v for k, v in patch.items() if k in _MUTABLE_FIELDS}
        values["updated_at"] = datetime.now(timezone.utc)

        query = (
            update(analysis_records_table)
            .where(analysis_records_table.c.id == record_id)
            .values(**values)
        )
        return await self.db.execute(query) > 0

    async def get_by_task_id(self, task_id: str) -> Optional[Dict[str, Any]]:
        query = (
            select(analysis_records_table)
            .where(analysis_records_table.c.task_id == task_id)
            .order_by(analysis_records_table.c.id.desc())
            .limit(1)
        )
        return await self.db.fetch_one(query)

    async def list_since(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Records created at or after ``cutoff``, newest first."""
        query = (
            select(analysis_records_table)
            .where(analysis_records_table.c.created_at >= cutoff)
            .order_by(analysis_records_table.c.created_at.desc(), analysis_records_table.c.id.desc())
        )
        return await self.db.fetch_all(query)

    async def list_for_user(self, user_id: str, page: int, page_size: int) -> List[Dict[str, Any]]:
        """One page of a user's records, newest first. ``page`` is 1-based."""
        query = (
            select(analysis_records_table)
            .where(analysis_records_table.c.user_id == user_id)
            .order_by(analysis_records_table.c.created_at.desc(), analysis_records_table.c.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return await self.db.fetch_all(query)

    async def count_for_user(self, user_id: str) -> int:
        query = (
            select(func.count())
            .select_from(analysis_records_table)
            .where(analysis_records_table.c.user_id == user_id)
        )
        return int(await self.db.fetch_scalar(query) or 0)
