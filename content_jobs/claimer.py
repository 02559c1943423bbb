"""Claiming, releasing and reclaiming content jobs."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import asyncpg
import pydantic

from content_jobs.config import ContentJobsConfig
from content_jobs.errors import (
    ConcurrentModificationError,
    DuplicateTopicError,
    InvalidTransitionError,
    NoJobAvailable,
    ValidationError,
)
from content_jobs.models import (
    MAX_RETRIES,
    GeneratedContent,
    GenerationOptions,
    Job,
    JobOutcome,
    JobStatus,
    JobSuccess,
    PublishResult,
    completion_fields,
    failure_fields,
    validate_topic,
)
from content_jobs.store import JobStore
from content_jobs.topic_router import route, topic_similarity

DUPLICATE_CHECK_STATUSES = [
    JobStatus.PENDING,
    JobStatus.PROCESSING,
    JobStatus.COMPLETED,
]


class JobClaimer:
    """High-level API for the content job lifecycle."""

    def __init__(
        self,
        config: ContentJobsConfig,
        db_pool: Optional[asyncpg.Pool],
        logger: Optional[logging.Logger] = None,
        store: Optional[JobStore] = None,
    ):
        self.config = config
        self.store = store or JobStore(db_pool)
        self.logger = logger or logging.getLogger(__name__)

    async def create_job(
        self,
        topic: str,
        options: Optional[dict[str, Any]] = None,
        site_id: Optional[str] = None,
        allow_duplicate: bool = False,
    ) -> Job:
        """
        Create a pending job.

        When no site is given and sites are configured, the topic is routed to
        the best-matching site. Unless ``allow_duplicate`` is set, a topic that
        a recent live or completed job already covers is rejected.

        Raises:
            DuplicateTopicError: If a recent job has a near-identical topic
            ValidationError: For a bad topic, options or unknown site
        """
        topic = validate_topic(topic)

        try:
            parsed = GenerationOptions.model_validate(options or {})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid options: {e}") from e
        options = parsed.model_dump(exclude_unset=True)

        if not allow_duplicate:
            duplicate = await self.find_duplicate(topic)
            if duplicate is not None:
                similarity = topic_similarity(topic, duplicate.topic)
                self.logger.info(
                    f"Rejected topic {topic!r}: duplicates job {duplicate.id} "
                    f"(similarity={similarity:.2f})"
                )
                raise DuplicateTopicError(topic, duplicate.id, similarity)

        if site_id is not None:
            if self.config.sites and self.config.get_site(site_id) is None:
                raise ValidationError(f"Unknown site {site_id!r}")
        elif self.config.sites:
            match = route(topic, self.config.sites)
            if match:
                site_id = match.site.id

        job = await self.store.create_job(topic, options=options, site_id=site_id)
        self.logger.info(f"Created job {job.id} for topic {topic!r} (site={site_id})")
        return job

    async def find_duplicate(self, topic: str) -> Optional[Job]:
        """
        Find the newest recent job whose topic is too similar to ``topic``.

        Pending, processing and completed jobs created within the duplicate
        window count. Failed jobs do not. A window of 0 days disables the
        check.
        """
        if self.config.duplicate_window_days <= 0:
            return None

        since = datetime.now(timezone.utc) - timedelta(
            days=self.config.duplicate_window_days
        )
        recent = await self.store.list_recent_jobs(since, DUPLICATE_CHECK_STATUSES)
        for job in recent:
            similarity = topic_similarity(topic, job.topic)
            if similarity > self.config.duplicate_similarity_threshold:
                return job
        return None

    async def get_job(self, job_id: UUID) -> Job:
        """Get a job by ID."""
        return await self.store.get_job(job_id)

    async def list_jobs(
        self,
        *,
        status: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[Job]:
        """List jobs with optional filters."""
        return await self.store.list_jobs(
            status=status,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
        )

    async def list_runs(self, job_id: UUID) -> list[dict[str, Any]]:
        """List the recorded attempts of a job."""
        await self.store.get_job(job_id)
        return await self.store.list_runs(job_id)

    async def get_stats(self) -> dict[str, Any]:
        """Get job counts per status."""
        return await self.store.get_stats()

    async def claim_next(self) -> Job:
        """
        Atomically claim the oldest pending job.

        Returns:
            The job, now processing with claimed_at set

        Raises:
            NoJobAvailable: If no job is pending
        """
        job = await self.store.claim_next_job(datetime.now(timezone.utc))
        if job is None:
            raise NoJobAvailable()

        self.logger.info(
            f"Claimed job {job.id} (topic={job.topic!r}, retry_count={job.retry_count})"
        )
        return job

    async def save_draft(
        self,
        job: Job,
        content: GeneratedContent,
        published: Optional[PublishResult] = None,
    ) -> Job:
        """
        Cache work done on a processing job for later attempts.

        Once the post exists its ID and URL are stored next to the content, so
        a later attempt completes the job without publishing it again.
        """
        draft = content.model_dump()
        if published is not None:
            draft.update(published.model_dump())
        return await self.store.update_job(
            job.id,
            {"draft": draft},
            expected={"status": JobStatus.PROCESSING, "claimed_at": job.claimed_at},
        )

    async def release(
        self,
        job_id: UUID,
        outcome: JobOutcome,
        timings: Optional[dict[str, int]] = None,
    ) -> Job:
        """
        Release a processing job with the outcome of its attempt.

        Success completes the job with its result fields. Failure requeues it
        with retry_count incremented while retries remain, and otherwise marks
        it as a terminal error. claimed_at is cleared in both cases.

        Args:
            job_id: Job to release
            outcome: JobSuccess or JobFailure
            timings: Optional generation_ms, publish_ms and total_ms for the run log

        Raises:
            InvalidTransitionError: If the job is not processing, e.g. already completed
            JobNotFoundError: If the job does not exist
        """
        job = await self.store.get_job(job_id)
        expected = {
            "status": JobStatus.PROCESSING,
            "claimed_at": job.claimed_at,
            "retry_count": job.retry_count,
        }

        if isinstance(outcome, JobSuccess):
            fields = completion_fields(outcome, datetime.now(timezone.utc))
            run_outcome = "completed"
            error = None
        else:
            fields = failure_fields(job, outcome.error, outcome.retryable)
            run_outcome = (
                "retrying" if fields["status"] == JobStatus.PENDING else "failed"
            )
            error = outcome.error

        run = {
            "attempt": job.retry_count,
            "outcome": run_outcome,
            "error": error,
            **(timings or {}),
        }
        released = await self.store.update_job(
            job_id, fields, expected=expected, run=run
        )

        if run_outcome == "completed":
            self.logger.info(
                f"Job {job_id} completed (post_id={released.published_post_id})"
            )
        elif run_outcome == "retrying":
            self.logger.warning(
                f"Job {job_id} failed and was requeued "
                f"(retry {released.retry_count}/{MAX_RETRIES}): {error}"
            )
        else:
            self.logger.error(f"Job {job_id} failed permanently: {error}")

        return released

    async def sweep_stale_jobs(self, now: Optional[datetime] = None) -> list[Job]:
        """
        Reclaim jobs left processing for longer than the stale timeout.

        Each stale job is released as a failure, so it returns to pending with
        retry_count incremented, or becomes a terminal error once retries are
        exhausted. A job re-claimed or released in the meantime is left alone.

        Returns:
            The reclaimed jobs
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.config.stale_timeout_seconds)
        stale_jobs = await self.store.find_stale_jobs(cutoff)

        reclaimed = []
        for job in stale_jobs:
            error = (
                f"Claim expired: processing since {job.claimed_at.isoformat()} "
                f"without release"
            )
            try:
                updated = await self.store.update_job(
                    job.id,
                    failure_fields(job, error),
                    expected={
                        "status": JobStatus.PROCESSING,
                        "claimed_at": job.claimed_at,
                    },
                    run={"attempt": job.retry_count, "outcome": "stale", "error": error},
                )
            except (InvalidTransitionError, ConcurrentModificationError):
                self.logger.info(f"Job {job.id} changed during sweep, skipping")
                continue

            reclaimed.append(updated)

        if reclaimed:
            self.logger.warning(f"Reclaimed {len(reclaimed)} stale jobs")
        return reclaimed

    async def requeue_job(self, job_id: UUID) -> Job:
        """
        Return a failed job to pending while it has retries left.

        Raises:
            InvalidTransitionError: If the job is not in error or has no retries left
        """
        job = await self.store.get_job(job_id)
        if job.status != JobStatus.ERROR or job.retry_count >= MAX_RETRIES:
            raise InvalidTransitionError(
                job_id,
                job.status.value,
                JobStatus.PENDING.value,
                f"Job {job_id} cannot be requeued "
                f"(status={job.status.value}, retry_count={job.retry_count})",
            )

        requeued = await self.store.update_job(
            job_id,
            {
                "status": JobStatus.PENDING,
                "retry_count": job.retry_count + 1,
                "last_error": None,
            },
            expected={"status": JobStatus.ERROR, "retry_count": job.retry_count},
        )
        self.logger.info(f"Requeued job {job_id} (retry_count={requeued.retry_count})")
        return requeued
