"""CLI entrypoint for sweeper."""

import argparse
import asyncio
import logging
import signal
import sys

from content_jobs.config import ContentJobsConfig
from content_jobs.sweeper import run_sweeper_loop
from content_jobs.worker_main import create_db_pool, setup_logging


def main():
    """Main entrypoint for sweeper."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Content Jobs Stale Job Sweeper")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=60.0,
        metavar="S",
        help="Seconds between sweeps (default: 60)",
    )

    args = parser.parse_args()

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
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)

            logger.info("Starting sweeper loop...")
            reclaimed = await run_sweeper_loop(
                config=config,
                db_pool=db_pool,
                logger=logger,
                interval_seconds=args.interval,
                shutdown_event=shutdown_event,
                once=args.once,
            )
            logger.info(f"Sweeper finished, reclaimed {reclaimed} jobs")
        except Exception as e:
            logger.error(f"Fatal error in sweeper: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
