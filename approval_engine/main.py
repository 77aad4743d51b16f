"""
Approval Engine - Composition Root

Wires the engine to its production collaborators: MongoDB repositories,
the HTTP directory and the notification outbox.
"""

from typing import Any, Dict, Optional

from .config.settings import Settings, settings as default_settings
from .engine.engine import WorkflowEngine
from .repositories.delegate_repo import MongoDelegateRepository
from .repositories.instance_repo import MongoInstanceRepository
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .repositories.template_repo import MongoTemplateRepository
from .scheduler.sweep_scheduler import SweepScheduler
from .services.directory_service import HttpDirectoryService
from .services.notification_service import OutboxNotificationPublisher
from .utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Engine Factory
# =============================================================================

def build_engine(config: Optional[Settings] = None, ensure_indexes: bool = True) -> WorkflowEngine:
    """
    Create a WorkflowEngine backed by MongoDB

    Args:
        config: Settings override, defaults to the environment settings
        ensure_indexes: Create collection indexes before returning
    """
    config = config or default_settings

    if ensure_indexes:
        create_indexes()

    directory = HttpDirectoryService(
        base_url=config.directory_base_url,
        api_key=config.directory_api_key,
        timeout=config.directory_timeout_seconds
    )

    engine = WorkflowEngine(
        template_repo=MongoTemplateRepository(),
        instance_repo=MongoInstanceRepository(),
        directory=directory,
        publisher=OutboxNotificationPublisher(),
        delegate_repo=MongoDelegateRepository(),
        lock_timeout_seconds=config.lock_timeout_seconds,
        max_conflict_retries=config.max_conflict_retries,
        reminder_interval_hours=config.reminder_interval_hours
    )
    logger.info(f"Approval engine ready (environment={config.environment}, db={config.mongo_db})")
    return engine


def build_scheduler(engine: WorkflowEngine, config: Optional[Settings] = None) -> SweepScheduler:
    config = config or default_settings
    return SweepScheduler(
        engine,
        sweep_interval_seconds=config.sweep_interval_seconds,
        reminder_check_minutes=config.reminder_check_minutes
    )


def health() -> Dict[str, Any]:
    """Health summary including database connectivity"""
    mongo_health = health_check()
    return {
        "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
        "environment": default_settings.environment,
        "mongo": mongo_health
    }


def shutdown(scheduler: Optional[SweepScheduler] = None) -> None:
    """Stop the scheduler and close database connections"""
    logger.info("Shutting down...")
    if scheduler is not None:
        scheduler.stop()
    close_connection()
    logger.info("Shutdown complete")
