"""
Database Schema: SQLAlchemy Core Table Definitions

``analysis_records`` is the durable twin of the in-memory task status.
The working table (``page_extractions`` by default) is scratch space filled
by the required pipeline stages and emptied after every task.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

from config.settings import get_settings

metadata = MetaData()

analysis_records_table = Table(
    "analysis_records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", String(32), nullable=False, index=True),
    Column("user_id", String(64), index=True),
    Column("email", String(320), index=True),
    Column("url", String(2048), nullable=False),
    Column("status", String(20), nullable=False, default="queued"),
    Column("email_status", String(20), nullable=False, default="pending"),
    Column("report_directory", String(1024)),
    Column("email_error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now(), index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index("idx_analysis_records_email_created", "email", "created_at"),
    Index("idx_analysis_records_user_created", "user_id", "created_at"),
)

page_extractions_table = Table(
    get_settings().working_store.table_name,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("url", String(2048), nullable=False),
    Column("domain", String(255), nullable=False, index=True),
    Column("status_code", Integer),
    Column("title", Text),
    Column("meta", JSON),
    Column("headings", JSON),
    Column("text", Text),
    Column("json_ld", JSON),
    Column("geo_schema", JSON),
    Column("geo_score", JSON),
    Column("claims_evaluation", JSON),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

__all__ = ["metadata", "analysis_records_table", "page_extractions_table"]
