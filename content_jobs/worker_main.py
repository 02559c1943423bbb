"""CLI entrypoint and programmatic interface for worker."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

import asyncpg

from content_jobs.config import ContentJobsConfig
from content_jobs.worker import run_worker_loop


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: ContentJobsConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)


async def run_worker(
    config: Optional[ContentJobsConfig] = None,
    db_pool=None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    concurrency: int = 1,
    poll_interval_seconds: float = 10.0,
    once: bool = False,
):
    """
    Run the worker programmatically.

    Args:
        config: ContentJobsConfig instance. If None, will load from environment.
        db_pool: Database connection pool. If None, will create from config.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Optional asyncio.Event for graceful shutdown.
        concurrency: Jobs processed at once.
        poll_interval_seconds: Sleep when no job is pending.
        once: Process a single batch and return.

    Example:
        ```python
        from content_jobs import run_worker, ContentJobsConfig
        import asyncio

        config = ContentJobsConfig.from_env()
        asyncio.run(run_worker(config=config, concurrency=3))
        ```
    """
    if config is None:
        config = ContentJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    db_pool_provided = db_pool is not None
    if db_pool is None:
        db_pool = await create_db_pool(config)

    try:
        return await run_worker_loop(
            config=config,
            db_pool=db_pool,
            logger=logger,
            concurrency=concurrency,
            poll_interval_seconds=poll_interval_seconds,
            shutdown_event=shutdown_event,
            once=once,
        )
    finally:
        if not db_pool_provided and db_pool:
            await db_pool.close()


def main():
    """Main entrypoint for worker."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Content Jobs Worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process one batch of jobs and exit",
    )
    parser.add_argument(
        "--concurrent",
        type=int,
        default=1,
        metavar="N",
        help="Number of jobs to process at once (default: 1)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=10.0,
        metavar="S",
        help="Seconds to wait when no job is pending (default: 10)",
    )

    args = parser.parse_args()

    if args.concurrent < 1:
        parser.error("--concurrent must be at least 1")

    try:
        config = ContentJobsConfig.from_env()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        try:
            logger.info("Starting content jobs worker...")
            totals = await run_worker(
                config=config,
                logger=logger,
                shutdown_event=shutdown_event,
                concurrency=args.concurrent,
                poll_interval_seconds=args.poll_interval,
                once=args.once,
            )
            logger.info(f"Worker finished: {totals}")
        except Exception as e:
            logger.error(f"Fatal error in worker: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
