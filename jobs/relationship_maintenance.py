"""Relationship maintenance jobs.

- Debounce pump: processes ids whose quiet period has elapsed (every second)
- Pending sweep: flushes every pending trigger in batches (every 30 seconds)
- Daily maintenance: TTL sweep and state backup (3:30 AM)
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from domains.resurfacing import config
from domains.resurfacing.engine import ResurfacingEngine


async def pump_debounce_queue(engine: ResurfacingEngine):
    """Process content ids whose debounce delay has elapsed."""
    results = await engine.orchestrator.fire_due()
    if results:
        failed = sum(1 for r in results if not r.success)
        logger.debug(f"Debounce pump: processed={len(results)}, failed={failed}")


async def sweep_pending_updates(engine: ResurfacingEngine):
    """Flush all pending relationship updates."""
    processed = await engine.orchestrator.process_pending_updates()
    if processed:
        logger.info(f"Relationship sweep: processed {processed} pending updates")
    else:
        logger.debug("Relationship sweep: nothing pending")


async def run_daily_maintenance(engine: ResurfacingEngine):
    """Sweep expired relationships and back up learned state."""
    logger.info("Running relationship maintenance job")

    removed = await engine.orchestrator.perform_maintenance()
    if removed:
        logger.info(f"Relationship maintenance: removed {removed} expired relationships")

    result = await engine.backup_state()
    if not result.success:
        logger.error(f"Relationship maintenance: state backup failed: {result.error}")


def register_relationship_jobs(scheduler: AsyncIOScheduler, engine: ResurfacingEngine):
    """Register relationship maintenance jobs with the scheduler.

    Args:
        scheduler: APScheduler instance
        engine: Initialised ResurfacingEngine
    """
    scheduler.add_job(
        pump_debounce_queue,
        'interval',
        seconds=config.DEBOUNCE_POLL_SECONDS,
        args=[engine],
        id="relationship_debounce",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,    # Combine missed runs
    )
    logger.info(f"Registered relationship debounce pump (every {config.DEBOUNCE_POLL_SECONDS}s)")

    scheduler.add_job(
        sweep_pending_updates,
        'interval',
        seconds=config.BATCH_PROCESSING_INTERVAL,
        args=[engine],
        id="relationship_sweep",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered relationship sweep job (every {config.BATCH_PROCESSING_INTERVAL}s)")

    scheduler.add_job(
        run_daily_maintenance,
        'cron',
        hour=3,
        minute=30,
        args=[engine],
        id="relationship_maintenance",
    )
    logger.info("Registered relationship maintenance job (daily at 3:30 AM)")
