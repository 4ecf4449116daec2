"""
Dependency Injection Container: Centralized Object Lifecycle Management

Wires the analysis engine's object graph with dependency-injector:

    Settings -> Infrastructure -> Stages -> Pipeline -> Queue -> Reconciler

Everything stateful (database pool, metrics registry, LLM client, the queue
itself) is a singleton. There is exactly one AnalysisQueue per process.
"""

from typing import Any, Tuple

from dependency_injector import containers, providers
from dependency_injector.wiring import Provide, inject
from loguru import logger

from config.settings import Settings, get_settings
from core.enums import ReportStage, RequiredStage
from execution.claims_analyzer import ClaimsAnalyzer
from execution.geo_scorer import GeoScorer
from execution.notifier import EmailNotifier
from execution.reports import (
    CrawlabilityReport,
    FAQReport,
    MetaTagsReport,
    ProfessionalReport,
    StructuredDataReport,
)
from execution.schema_analyzer import SchemaAnalyzer
from execution.website_analyzer import WebsiteAnalyzer
from infrastructure.database import DatabaseManager
from infrastructure.llm_client import LLMClient
from infrastructure.monitoring import MetricsCollector
from infrastructure.working_store import WorkingCollection
from orchestration.analysis_queue import AnalysisQueue
from orchestration.pipeline import AnalysisPipeline
from orchestration.reconciliation import StatusReconciler
from orchestration.task_persistence import AnalysisRecordRepository


def _stage(name: str, stage: Any) -> Tuple[str, Any]:
    return name, stage


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Stage order matters: required stages run in the order listed, each one
    reading what the previous stages wrote to the working collection.
    """

    # Configuration
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer (singletons)
    database: providers.Singleton[DatabaseManager] = providers.Singleton(DatabaseManager)

    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    llm_client: providers.Singleton[LLMClient] = providers.Singleton(
        LLMClient,
        llm_settings=config.provided.llm,
    )

    record_repository: providers.Singleton[AnalysisRecordRepository] = providers.Singleton(
        AnalysisRecordRepository,
        db_manager=database,
    )

    working_collection: providers.Singleton[WorkingCollection] = providers.Singleton(
        WorkingCollection,
        db_manager=database,
    )

    # Required analysis stages
    website_analyzer = providers.Factory(
        WebsiteAnalyzer,
        working_collection=working_collection,
        scraping_settings=config.provided.scraping,
    )

    schema_analyzer = providers.Factory(SchemaAnalyzer, working_collection=working_collection)

    geo_scorer = providers.Factory(
        GeoScorer,
        working_collection=working_collection,
        llm_client=llm_client,
        llm_settings=config.provided.llm,
    )

    claims_analyzer = providers.Factory(
        ClaimsAnalyzer,
        working_collection=working_collection,
        llm_client=llm_client,
        llm_settings=config.provided.llm,
    )

    # Report generators
    professional_report = providers.Factory(ProfessionalReport, working_collection=working_collection)
    crawlability_report = providers.Factory(
        CrawlabilityReport,
        working_collection=working_collection,
        scraping_settings=config.provided.scraping,
    )
    faq_report = providers.Factory(FAQReport, working_collection=working_collection)
    structured_data_report = providers.Factory(StructuredDataReport, working_collection=working_collection)
    meta_tags_report = providers.Factory(MetaTagsReport, working_collection=working_collection)

    pipeline: providers.Singleton[AnalysisPipeline] = providers.Singleton(
        AnalysisPipeline,
        required_stages=providers.List(
            providers.Callable(_stage, RequiredStage.WEBSITE.value, website_analyzer),
            providers.Callable(_stage, RequiredStage.GEO.value, schema_analyzer),
            providers.Callable(_stage, RequiredStage.SCORING.value, geo_scorer),
            providers.Callable(_stage, RequiredStage.RISK_CLAIMS.value, claims_analyzer),
        ),
        report_stages=providers.List(
            providers.Callable(_stage, ReportStage.PROFESSIONAL.value, professional_report),
            providers.Callable(_stage, ReportStage.CRAWLABILITY.value, crawlability_report),
            providers.Callable(_stage, ReportStage.FAQ.value, faq_report),
            providers.Callable(_stage, ReportStage.STRUCTURED_DATA.value, structured_data_report),
            providers.Callable(_stage, ReportStage.META_TAGS.value, meta_tags_report),
        ),
        reports_dir=config.provided.reports.reports_dir,
        metrics=metrics,
        retryable_keywords=config.provided.queue.retryable_keywords,
    )

    notifier: providers.Singleton[EmailNotifier] = providers.Singleton(
        EmailNotifier,
        smtp_settings=config.provided.smtp,
    )

    # Orchestration layer
    queue: providers.Singleton[AnalysisQueue] = providers.Singleton(
        AnalysisQueue,
        pipeline=pipeline,
        notifier=notifier,
        repository=record_repository,
        working_collection=working_collection,
        metrics=metrics,
        queue_settings=config.provided.queue,
    )

    reconciler: providers.Singleton[StatusReconciler] = providers.Singleton(
        StatusReconciler,
        queue=queue,
        repository=record_repository,
        queue_settings=config.provided.queue,
    )


# Global container instance
container = Container()


async def shutdown_container() -> None:
    """Drain the queue and release connections, in that order."""
    logger.info("Cleaning up dependency injection container")

    await container.queue().shutdown()

    try:
        await container.llm_client().close()
    except Exception as e:
        logger.error(f"LLM client cleanup failed: {e}")

    try:
        await container.database().close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Database cleanup failed: {e}")


# Convenience functions for dependency injection
@inject
def get_database(db: DatabaseManager = Provide[Container.database]) -> DatabaseManager:
    """Get database manager instance."""
    return db


@inject
def get_queue(queue: AnalysisQueue = Provide[Container.queue]) -> AnalysisQueue:
    """Get the process-wide analysis queue."""
    return queue


__all__ = [
    "Container",
    "container",
    "shutdown_container",
    "get_database",
    "get_queue",
    "DatabaseManager",
    "MetricsCollector",
    "AnalysisQueue",
    "AnalysisRecordRepository",
    "StatusReconciler",
]
