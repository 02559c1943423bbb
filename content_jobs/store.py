"""Database store layer for content jobs."""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import asyncpg

from content_jobs.errors import (
    ConstraintViolation,
    InvalidTransitionError,
    JobNotFoundError,
)
from content_jobs.models import Job, JobStatus, prepare_update, validate_topic

JSON_COLUMNS = ("options", "draft")


class JobStore:
    """Database layer for content job operations."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def create_job(
        self,
        topic: str,
        options: Optional[dict[str, Any]] = None,
        site_id: Optional[str] = None,
    ) -> Job:
        """
        Insert a new pending job.

        Raises:
            ValidationError: If the topic is empty, whitespace-only or too long
        """
        topic = validate_topic(topic)
        job_id = uuid4()

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO content_jobs (id, topic, status, options, site_id, retry_count)
                VALUES ($1, $2, $3, $4, $5, 0)
                RETURNING *
                """,
                job_id,
                topic,
                JobStatus.PENDING.value,
                json.dumps(options or {}),
                site_id,
            )

        return self._row_to_job(row)

    async def get_job(self, job_id: UUID) -> Job:
        """Get a job by ID."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM content_jobs WHERE id = $1", job_id)

        if not row:
            raise JobNotFoundError(job_id)

        return self._row_to_job(row)

    async def list_jobs(
        self,
        status: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[Job]:
        """List jobs with optional filters, newest first."""
        query = "SELECT * FROM content_jobs WHERE 1=1"
        params = []
        param_idx = 1

        if status:
            query += f" AND status = ${param_idx}"
            params.append(JobStatus(status).value)
            param_idx += 1

        if created_after:
            query += f" AND created_at >= ${param_idx}"
            params.append(created_after)
            param_idx += 1

        if created_before:
            query += f" AND created_at < ${param_idx}"
            params.append(created_before)
            param_idx += 1

        query += f" ORDER BY created_at DESC, id DESC LIMIT ${param_idx}"
        params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [self._row_to_job(row) for row in rows]

    async def list_recent_jobs(
        self,
        created_after: datetime,
        statuses: list[JobStatus],
        limit: int = 200,
    ) -> list[Job]:
        """List jobs created since a time with one of the given statuses, newest first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM content_jobs
                WHERE created_at >= $1 AND status = ANY($2::text[])
                ORDER BY created_at DESC, id DESC
                LIMIT $3
                """,
                created_after,
                [JobStatus(s).value for s in statuses],
                limit,
            )

        return [self._row_to_job(row) for row in rows]

    async def update_job(
        self,
        job_id: UUID,
        fields: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
        run: Optional[dict[str, Any]] = None,
    ) -> Job:
        """
        Apply a partial update to a job.

        The row is locked, validated against the job invariants after merging
        ``fields``, and written with a status-conditional UPDATE. When ``run``
        is given, the attempt is logged in the same transaction.

        Args:
            job_id: Job to update
            fields: Columns to change
            expected: Column values the stored row must still hold
            run: attempt, outcome, error and timings for the run log

        Raises:
            JobNotFoundError: If the job does not exist
            ValidationError: If the fields or status transition are invalid
            ConstraintViolation: If the resulting row would break an invariant
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM content_jobs WHERE id = $1 FOR UPDATE", job_id
                )
                if not row:
                    raise JobNotFoundError(job_id)

                current = self._row_to_job(row)
                changes = prepare_update(current.fields(), fields, expected)
                if not changes:
                    return current

                assignments = []
                params = []
                param_idx = 1
                for column, value in changes.items():
                    assignments.append(f"{column} = ${param_idx}")
                    params.append(self._encode(column, value))
                    param_idx += 1

                query = (
                    f"UPDATE content_jobs SET {', '.join(assignments)}, updated_at = now()"
                    f" WHERE id = ${param_idx} AND status = ${param_idx + 1}"
                    " RETURNING *"
                )
                params.extend([job_id, current.status.value])

                try:
                    updated = await conn.fetchrow(query, *params)
                except asyncpg.CheckViolationError as e:
                    raise ConstraintViolation(str(e)) from e

                if updated is not None and run is not None:
                    await self._insert_run(conn, job_id, **run)

        if updated is None:
            raise InvalidTransitionError(
                job_id,
                current.status.value,
                JobStatus(changes.get("status", current.status)).value,
            )

        return self._row_to_job(updated)

    async def claim_next_job(self, now: datetime) -> Optional[Job]:
        """
        Atomically claim the oldest pending job.

        Uses FOR UPDATE SKIP LOCKED so that concurrent callers never claim the
        same job. Returns None when no job is pending.
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE content_jobs
                SET status = $1, claimed_at = $2, updated_at = now()
                WHERE status = $3
                  AND id = (
                    SELECT id FROM content_jobs
                    WHERE status = $3
                    ORDER BY created_at ASC, id ASC
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                  )
                RETURNING *
                """,
                JobStatus.PROCESSING.value,
                now,
                JobStatus.PENDING.value,
            )

        return self._row_to_job(row) if row else None

    async def find_stale_jobs(self, claimed_before: datetime) -> list[Job]:
        """Find processing jobs claimed before the given cutoff."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM content_jobs
                WHERE status = $1
                  AND claimed_at < $2
                ORDER BY claimed_at ASC
                """,
                JobStatus.PROCESSING.value,
                claimed_before,
            )

        return [self._row_to_job(row) for row in rows]

    @staticmethod
    async def _insert_run(
        conn: asyncpg.Connection,
        job_id: UUID,
        attempt: int,
        outcome: str,
        error: Optional[str] = None,
        generation_ms: Optional[int] = None,
        publish_ms: Optional[int] = None,
        total_ms: Optional[int] = None,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO content_job_runs (
                job_id, attempt, outcome, error, generation_ms, publish_ms, total_ms
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            job_id,
            attempt,
            outcome,
            error,
            generation_ms,
            publish_ms,
            total_ms,
        )

    async def list_runs(self, job_id: UUID) -> list[dict[str, Any]]:
        """List recorded attempts for a job, oldest first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM content_job_runs
                WHERE job_id = $1
                ORDER BY created_at ASC, id ASC
                """,
                job_id,
            )

        return [
            {
                "job_id": str(row["job_id"]),
                "attempt": row["attempt"],
                "outcome": row["outcome"],
                "error": row["error"],
                "generation_ms": row["generation_ms"],
                "publish_ms": row["publish_ms"],
                "total_ms": row["total_ms"],
                "created_at": row["created_at"].isoformat(),
            }
            for row in rows
        ]

    async def get_stats(self) -> dict[str, Any]:
        """Get job counts per status for monitoring."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total_jobs,
                    COUNT(*) FILTER (WHERE status = 'pending') AS pending_jobs,
                    COUNT(*) FILTER (WHERE status = 'processing') AS processing_jobs,
                    COUNT(*) FILTER (WHERE status = 'completed') AS completed_jobs,
                    COUNT(*) FILTER (WHERE status = 'error') AS error_jobs,
                    COALESCE(AVG(retry_count), 0)::float AS avg_retry_count,
                    MIN(created_at) FILTER (WHERE status = 'pending') AS oldest_pending_job
                FROM content_jobs
                """
            )

        oldest = row["oldest_pending_job"]
        return {
            "total_jobs": row["total_jobs"],
            "pending_jobs": row["pending_jobs"],
            "processing_jobs": row["processing_jobs"],
            "completed_jobs": row["completed_jobs"],
            "error_jobs": row["error_jobs"],
            "avg_retry_count": row["avg_retry_count"],
            "oldest_pending_job": oldest.isoformat() if oldest else None,
        }

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        """Convert a Python value to its database parameter form."""
        if isinstance(value, JobStatus):
            return value.value
        if column in JSON_COLUMNS and value is not None:
            return json.dumps(value)
        return value

    def _row_to_job(self, row: asyncpg.Record) -> Job:
        """Convert a database row to a Job model."""
        return Job(
            id=row["id"],
            topic=row["topic"],
            status=JobStatus(row["status"]),
            retry_count=row["retry_count"],
            options=json.loads(row["options"])
            if isinstance(row["options"], str)
            else row["options"],
            site_id=row["site_id"],
            claimed_at=row["claimed_at"],
            draft=json.loads(row["draft"])
            if row["draft"] and isinstance(row["draft"], str)
            else row["draft"],
            generated_title=row["generated_title"],
            generated_content=row["generated_content"],
            generated_excerpt=row["generated_excerpt"],
            published_post_id=row["published_post_id"],
            published_url=row["published_url"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
        )
