"""
Scheduled Task Module

Uses APScheduler to purge expired KV store entries (model cache, rate-limit counters).
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from onemin_gateway.config import get_settings
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository

logger = logging.getLogger(__name__)

# Global Scheduler Instance
_scheduler: Optional[AsyncIOScheduler] = None


async def cleanup_expired_kv_task(kv_repo: KVStoreRepository) -> int:
    """
    Scheduled KV Store Cleanup Task

    Deletes expired key-value pairs.

    Returns:
        int: Number of deleted keys (0 on failure)
    """
    logger.info("Starting scheduled KV store cleanup task")

    try:
        deleted_count = await kv_repo.cleanup_expired()
    except Exception as e:
        logger.error("KV store cleanup task failed: %s", e, exc_info=True)
        return 0

    logger.info("KV store cleanup task completed: %d expired keys deleted", deleted_count)
    return deleted_count


def start_scheduler(kv_repo: KVStoreRepository) -> None:
    """
    Start Scheduled Task Scheduler

    Skipped for the Redis backend, which expires keys natively.
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already started")
        return

    settings = get_settings()
    if settings.KV_STORE_TYPE == "redis":
        logger.info("Scheduler not started: KV store cleanup skipped (using Redis)")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        cleanup_expired_kv_task,
        trigger=IntervalTrigger(minutes=settings.KV_CLEANUP_INTERVAL_MINUTES),
        args=[kv_repo],
        id="cleanup_expired_kv",
        name="Clean up expired KV pairs",
        replace_existing=True,
    )
    _scheduler.start()

    logger.info(
        "Scheduler started: KV store cleanup every %d minutes",
        settings.KV_CLEANUP_INTERVAL_MINUTES,
    )


def shutdown_scheduler() -> None:
    """
    Shutdown Scheduled Task Scheduler

    Gracefully stops all scheduled tasks.
    """
    global _scheduler

    if _scheduler is None:
        return

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Scheduler shutdown completed")
