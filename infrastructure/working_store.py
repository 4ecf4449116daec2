"""
Working Collection: scratch table shared by the pipeline stages.

The website stage fills it, the analysis stages annotate the rows and the
report generators read them back. It is emptied after every task so that
one task's pages never leak into the next one's reports.
"""

from typing import Any, Dict, Iterable, List

from loguru import logger
from sqlalchemy import delete, insert, select, update

from infrastructure.database import DatabaseManager
from infrastructure.schema import page_extractions_table


class WorkingCollection:
    """Access to the ``page_extractions`` scratch table."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        self.table = page_extractions_table

    async def insert_pages(self, pages: Iterable[Dict[str, Any]]) -> int:
        rows = list(pages)
        if not rows:
            return 0
        await self.db.execute(insert(self.table).values(rows))
        return len(rows)

    async def fetch_for_domain(self, domain: str) -> List[Dict[str, Any]]:
        query = select(self.table).where(self.table.c.domain == domain).order_by(self.table.c.id)
        return await self.db.fetch_all(query)

    async def update_page(self, page_id: int, values: Dict[str, Any]) -> None:
        await self.db.execute(update(self.table).where(self.table.c.id == page_id).values(**values))

    async def clear(self) -> int:
        """
        Delete every row. The table itself is kept.

        Never raises: cleanup runs in the queue's ``finally`` block and a
        failure here must not mask the task outcome.

        Returns:
            Number of deleted rows, or -1 when the delete failed
        """
        try:
            deleted = await self.db.execute(delete(self.table))
            logger.info(f"Cleared working collection {self.table.name} | rows={deleted}")
            return deleted
        except Exception as e:
            logger.error(f"Failed to clear working collection {self.table.name}: {e}")
            return -1
