import asyncio
import time

from celery.signals import worker_process_init
from loguru import logger

from app.celery_app import celery_app
from app.config.settings import settings
from app.core.logger import setup_logger
from app.jobs.queue import ProcessResult, process_next_job
from app.notifications.service import NotificationService
from app.services.llm.completion import PydanticAICompletionClient


@worker_process_init.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logger(level=settings.log_level, log_file=settings.log_file or None, service="worker")


async def _drain_one() -> ProcessResult:
    return await process_next_job(PydanticAICompletionClient(), NotificationService())


@celery_app.task(
    autoretry_for=(ConnectionError,),
    retry_backoff=30,
    retry_kwargs={"max_retries": 3},
)
def process_plan_queue_task() -> str:
    """Run one pending base plan job, if any."""
    task_start = time.time()
    result = asyncio.run(_drain_one())
    logger.info(
        "Plan queue task finished",
        status=result.status,
        job_id=result.job_id,
        elapsed_seconds=round(time.time() - task_start, 2),
    )
    return str(result.status)


def dispatch_plan_queue() -> None:
    """Ask a worker to drain the queue. Best-effort: failures are logged only."""
    if not settings.plan_queue_dispatch_enabled:
        logger.debug("Plan queue dispatch disabled")
        return
    try:
        process_plan_queue_task.delay()
    except Exception as e:
        logger.warning("Plan queue dispatch failed", error=str(e), error_type=type(e).__name__)
