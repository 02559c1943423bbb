"""Sweeper logic for content jobs."""

import asyncio
import logging
from typing import Optional

import asyncpg

from content_jobs.claimer import JobClaimer
from content_jobs.config import ContentJobsConfig


async def run_sweeper_loop(
    config: ContentJobsConfig,
    db_pool: Optional[asyncpg.Pool],
    logger: logging.Logger,
    interval_seconds: float = 60.0,
    shutdown_event: asyncio.Event = None,
    claimer: Optional[JobClaimer] = None,
    once: bool = False,
) -> int:
    """
    Run the sweeper loop that reclaims jobs stuck in processing.

    A job is stuck when its claim is older than config.stale_timeout_seconds,
    e.g. because the worker holding it crashed.

    Args:
        config: Content jobs configuration
        db_pool: Database connection pool
        logger: Logger instance
        interval_seconds: Time to sleep between sweeps
        shutdown_event: Optional event to signal shutdown
        claimer: Job claimer, built from db_pool if None
        once: Run a single sweep and return

    Returns:
        Total number of reclaimed jobs
    """
    claimer = claimer or JobClaimer(config, db_pool, logger)
    total = 0

    logger.info(
        f"Starting sweeper loop (stale_timeout={config.stale_timeout_seconds}s, "
        f"interval={interval_seconds}s)"
    )

    while True:
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting sweeper loop")
            break

        try:
            reclaimed = await claimer.sweep_stale_jobs()
            total += len(reclaimed)
        except Exception as e:
            logger.error(f"Error in sweeper loop: {str(e)}", exc_info=True)

        if once:
            break

        if shutdown_event is None:
            await asyncio.sleep(interval_seconds)
            continue
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass

    return total
