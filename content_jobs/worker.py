"""Worker logic for content jobs."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

import asyncpg

from content_jobs.claimer import JobClaimer
from content_jobs.config import ContentJobsConfig
from content_jobs.errors import GenerationError, NoJobAvailable, PublishError
from content_jobs.generator import ContentGenerator
from content_jobs.models import (
    GeneratedContent,
    GenerationOptions,
    Job,
    JobFailure,
    JobStatus,
    JobSuccess,
    PublishResult,
)
from content_jobs.publisher import WordPressPublisher
from content_jobs.retry import RetryPolicy
from content_jobs.validator import ContentValidator

PublisherFactory = Callable[[Job], WordPressPublisher]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def build_retry_policy(config: ContentJobsConfig) -> RetryPolicy:
    """Build the in-call retry policy for external requests."""
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        backoff_policy=config.retry_backoff_policy,
    )


def build_generator(
    config: ContentJobsConfig, logger: Optional[logging.Logger] = None
) -> ContentGenerator:
    """Build the content generator from config."""
    return ContentGenerator(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        model=config.openai_model,
        max_tokens=config.openai_max_tokens,
        temperature=config.openai_temperature,
        timeout=config.request_timeout_seconds,
        retry_policy=build_retry_policy(config),
        validator=ContentValidator() if config.validate_content else None,
        logger=logger,
    )


def make_publisher_factory(
    config: ContentJobsConfig, logger: Optional[logging.Logger] = None
) -> PublisherFactory:
    """
    Build a function returning the publisher for a job.

    Jobs routed to a configured site publish there; all others go to the
    default WordPress site. Publishers are created once per site.
    """
    retry_policy = build_retry_policy(config)
    default = WordPressPublisher(
        base_url=config.wordpress_base_url,
        username=config.wordpress_username,
        app_password=config.wordpress_app_password,
        post_status=config.wordpress_post_status,
        timeout=config.request_timeout_seconds,
        retry_policy=retry_policy,
        logger=logger,
    )
    by_site: dict[str, WordPressPublisher] = {}

    def publisher_for(job: Job) -> WordPressPublisher:
        site = config.get_site(job.site_id) if job.site_id else None
        if site is None:
            return default
        if site.id not in by_site:
            by_site[site.id] = WordPressPublisher.for_site(
                site, config, retry_policy=retry_policy, logger=logger
            )
        return by_site[site.id]

    return publisher_for


async def process_next_job(
    claimer: JobClaimer,
    generator: ContentGenerator,
    publisher_for: PublisherFactory,
    logger: logging.Logger,
) -> Job:
    """
    Claim one pending job and run it through generation and publishing.

    Content generated on an earlier attempt is reused from the job's draft, so
    a publish failure does not pay for generation twice. Once a post is
    created its ID and URL go into the draft as well, and a later attempt
    completes the job from them without publishing again. Generation and
    publish failures release the job as failed; any other error propagates
    and leaves the job processing for the sweeper to reclaim.

    Args:
        claimer: Job claimer
        generator: Content generator
        publisher_for: Returns the publisher for a job
        logger: Logger instance

    Returns:
        The released job

    Raises:
        NoJobAvailable: If no job is pending
    """
    job = await claimer.claim_next()
    started = time.monotonic()
    timings: dict[str, int] = {}

    try:
        options = GenerationOptions.model_validate(job.options)

        if job.draft:
            content = GeneratedContent.model_validate(job.draft)
            logger.info(f"Reusing generated draft for job {job.id}")
        else:
            generation_started = time.monotonic()
            content = await generator.generate(job.topic, options)
            timings["generation_ms"] = _elapsed_ms(generation_started)
            await claimer.save_draft(job, content)

        if job.draft and job.draft.get("post_id"):
            result = PublishResult.model_validate(job.draft)
            logger.info(
                f"Job {job.id} was already published as post {result.post_id}"
            )
        else:
            publish_started = time.monotonic()
            result = await publisher_for(job).publish(
                content, categories=options.categories, tags=options.tags
            )
            timings["publish_ms"] = _elapsed_ms(publish_started)
            await claimer.save_draft(job, content, published=result)

    except (GenerationError, PublishError) as e:
        logger.error(f"Job {job.id} failed: {str(e)}")
        timings["total_ms"] = _elapsed_ms(started)
        return await claimer.release(
            job.id, JobFailure(error=str(e), retryable=e.retryable), timings
        )

    timings["total_ms"] = _elapsed_ms(started)
    return await claimer.release(job.id, JobSuccess.from_publish(content, result), timings)


async def process_jobs_concurrently(
    claimer: JobClaimer,
    generator: ContentGenerator,
    publisher_for: PublisherFactory,
    logger: logging.Logger,
    max_jobs: int = 3,
) -> dict[str, int]:
    """
    Process up to ``max_jobs`` jobs at once.

    Each slot claims its own job, so no two slots ever work on the same one.

    Returns:
        Counts of processed, completed, retried and failed jobs
    """
    results = await asyncio.gather(
        *(
            process_next_job(claimer, generator, publisher_for, logger)
            for _ in range(max_jobs)
        ),
        return_exceptions=True,
    )

    summary = {"processed": 0, "completed": 0, "retried": 0, "failed": 0}
    for result in results:
        if isinstance(result, NoJobAvailable):
            continue
        if isinstance(result, BaseException):
            logger.error(
                f"Error processing job: {str(result)}",
                exc_info=(type(result), result, result.__traceback__),
            )
            continue

        summary["processed"] += 1
        if result.status == JobStatus.COMPLETED:
            summary["completed"] += 1
        elif result.status == JobStatus.PENDING:
            summary["retried"] += 1
        else:
            summary["failed"] += 1

    logger.info(
        f"Processed {summary['processed']} jobs: {summary['completed']} completed, "
        f"{summary['retried']} retried, {summary['failed']} failed"
    )
    return summary


async def run_worker_loop(
    config: ContentJobsConfig,
    db_pool: Optional[asyncpg.Pool],
    logger: logging.Logger,
    generator: Optional[ContentGenerator] = None,
    publisher_for: Optional[PublisherFactory] = None,
    claimer: Optional[JobClaimer] = None,
    concurrency: int = 1,
    poll_interval_seconds: float = 10.0,
    shutdown_event: asyncio.Event = None,
    once: bool = False,
) -> dict[str, Any]:
    """
    Run the worker loop that claims and processes pending jobs.

    Args:
        config: Content jobs configuration
        db_pool: Database connection pool
        logger: Logger instance
        generator: Content generator, built from config if None
        publisher_for: Publisher factory, built from config if None
        claimer: Job claimer, built from db_pool if None
        concurrency: Jobs processed per iteration
        poll_interval_seconds: Sleep when no job is pending
        shutdown_event: Optional event to signal shutdown
        once: Stop after a single iteration

    Returns:
        Totals of processed, completed, retried and failed jobs
    """
    claimer = claimer or JobClaimer(config, db_pool, logger)
    generator = generator or build_generator(config, logger)
    publisher_for = publisher_for or make_publisher_factory(config, logger)

    totals = {"processed": 0, "completed": 0, "retried": 0, "failed": 0}

    logger.info(f"Starting worker loop (concurrency={concurrency})")

    while True:
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting worker loop")
            break

        try:
            summary = await process_jobs_concurrently(
                claimer, generator, publisher_for, logger, max_jobs=concurrency
            )
        except Exception as e:
            logger.error(f"Error in worker loop: {str(e)}", exc_info=True)
            if once:
                break
            await asyncio.sleep(5)
            continue

        for key, value in summary.items():
            totals[key] += value

        if once:
            break

        if summary["processed"] == 0:
            logger.debug("No pending jobs")
            await _wait(shutdown_event, poll_interval_seconds)

    return totals


async def _wait(shutdown_event: Optional[asyncio.Event], seconds: float) -> None:
    """Sleep for ``seconds``, waking early on shutdown."""
    if shutdown_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
