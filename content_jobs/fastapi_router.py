"""FastAPI router for content jobs HTTP API."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from content_jobs.claimer import JobClaimer
from content_jobs.errors import (
    DuplicateTopicError,
    InvalidTransitionError,
    JobNotFoundError,
    ValidationError,
)
from content_jobs.models import JobStatus

logger = logging.getLogger(__name__)


class CreateJobRequest(BaseModel):
    """Request model for creating a job."""

    topic: str
    options: Optional[Dict[str, Any]] = None
    site_id: Optional[str] = None
    allow_duplicate: bool = False


class JobResponse(BaseModel):
    """Response model for job details."""

    id: str
    topic: str
    status: str
    retry_count: int
    options: Dict[str, Any]
    site_id: Optional[str] = None
    claimed_at: Optional[str] = None
    draft: Optional[Dict[str, Any]] = None
    generated_title: Optional[str] = None
    generated_content: Optional[str] = None
    generated_excerpt: Optional[str] = None
    published_post_id: Optional[str] = None
    published_url: Optional[str] = None
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None


class JobRunResponse(BaseModel):
    """Response model for one recorded processing attempt."""

    job_id: str
    attempt: int
    outcome: str
    error: Optional[str] = None
    generation_ms: Optional[int] = None
    publish_ms: Optional[int] = None
    total_ms: Optional[int] = None
    created_at: str


class StatsResponse(BaseModel):
    """Response model for job statistics."""

    total_jobs: int
    pending_jobs: int
    processing_jobs: int
    completed_jobs: int
    error_jobs: int
    avg_retry_count: float
    oldest_pending_job: Optional[str] = None


class SweepResponse(BaseModel):
    """Response model for a stale job sweep."""

    reclaimed: int
    job_ids: List[str]


def _parse_time(name: str, value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return date_parser.isoparse(value)
    except ValueError as e:
        raise HTTPException(
            status_code=400, detail=f"Invalid {name} format: {e}"
        ) from e


def _parse_job_id(job_id: str) -> UUID:
    try:
        return UUID(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid job ID format") from e


def create_jobs_router(
    claimer_factory: Callable[[], JobClaimer],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for content jobs API.

    Args:
        claimer_factory: Callable that returns a JobClaimer instance
        auth_token: Optional auth token for mutating endpoints

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_claimer() -> JobClaimer:
        """Dependency to get JobClaimer instance."""
        return claimer_factory()

    async def verify_auth_token(
        x_content_jobs_token: Optional[str] = Header(
            None, alias="X-Content-Jobs-Token"
        )
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_content_jobs_token or x_content_jobs_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    @router.post("/jobs", response_model=JobResponse, status_code=201)
    async def create_job(
        request: CreateJobRequest,
        claimer: JobClaimer = Depends(get_claimer),
        _: None = Depends(verify_auth_token),
    ):
        """Create a new pending job."""
        try:
            job = await claimer.create_job(
                request.topic,
                options=request.options,
                site_id=request.site_id,
                allow_duplicate=request.allow_duplicate,
            )
            return JobResponse(**job.to_dict())
        except DuplicateTopicError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error creating job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/stats", response_model=StatsResponse)
    async def get_stats(claimer: JobClaimer = Depends(get_claimer)):
        """Get job counts per status."""
        try:
            return StatsResponse(**await claimer.get_stats())
        except Exception as e:
            logger.exception("Error getting stats")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/sweep", response_model=SweepResponse)
    async def sweep_stale_jobs(
        claimer: JobClaimer = Depends(get_claimer),
        _: None = Depends(verify_auth_token),
    ):
        """Reclaim jobs stuck in processing."""
        try:
            reclaimed = await claimer.sweep_stale_jobs()
            return SweepResponse(
                reclaimed=len(reclaimed), job_ids=[str(job.id) for job in reclaimed]
            )
        except Exception as e:
            logger.exception("Error sweeping stale jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}", response_model=JobResponse)
    async def get_job(
        job_id: str,
        claimer: JobClaimer = Depends(get_claimer),
    ):
        """Get job details by ID."""
        job_uuid = _parse_job_id(job_id)

        try:
            job = await claimer.get_job(job_uuid)
            return JobResponse(**job.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}/runs", response_model=List[JobRunResponse])
    async def list_runs(
        job_id: str,
        claimer: JobClaimer = Depends(get_claimer),
    ):
        """List recorded processing attempts of a job."""
        job_uuid = _parse_job_id(job_id)

        try:
            runs = await claimer.list_runs(job_uuid)
            return [JobRunResponse(**run) for run in runs]
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error listing job runs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/{job_id}/requeue", response_model=JobResponse)
    async def requeue_job(
        job_id: str,
        claimer: JobClaimer = Depends(get_claimer),
        _: None = Depends(verify_auth_token),
    ):
        """Return a failed job to pending."""
        job_uuid = _parse_job_id(job_id)

        try:
            job = await claimer.requeue_job(job_uuid)
            return JobResponse(**job.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error requeueing job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs", response_model=List[JobResponse])
    async def list_jobs(
        status: Optional[str] = Query(None),
        created_after: Optional[str] = Query(None),
        created_before: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=1000),
        claimer: JobClaimer = Depends(get_claimer),
    ):
        """List jobs with optional filters, newest first."""
        if status is not None:
            try:
                JobStatus(status)
            except ValueError as e:
                raise HTTPException(
                    status_code=400, detail=f"Invalid status: {status}"
                ) from e

        after = _parse_time("created_after", created_after)
        before = _parse_time("created_before", created_before)

        try:
            jobs = await claimer.list_jobs(
                status=status,
                created_after=after,
                created_before=before,
                limit=limit,
            )
            return [JobResponse(**job.to_dict()) for job in jobs]
        except Exception as e:
            logger.exception("Error listing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    return router
