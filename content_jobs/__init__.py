"""Content jobs: generate articles for queued topics and publish them to WordPress."""

from content_jobs.claimer import JobClaimer
from content_jobs.config import ContentJobsConfig
from content_jobs.ddl import CONTENT_JOB_RUNS_TABLE_DDL, CONTENT_JOBS_TABLE_DDL
from content_jobs.errors import (
    AuthTokenError,
    ConcurrentModificationError,
    ConstraintViolation,
    ContentJobsError,
    DuplicateTopicError,
    ExternalServiceError,
    GenerationError,
    InvalidTransitionError,
    JobNotFoundError,
    NoJobAvailable,
    PublishError,
    RemoteHttpError,
    ValidationError,
)
from content_jobs.generator import ContentGenerator
from content_jobs.http_client import ContentJobsHttpClient
from content_jobs.models import (
    GeneratedContent,
    GenerationOptions,
    Job,
    JobFailure,
    JobStatus,
    JobSuccess,
    PublishResult,
    Site,
    ValidationReport,
)
from content_jobs.publisher import WordPressPublisher
from content_jobs.retry import RetryPolicy
from content_jobs.store import JobStore
from content_jobs.sweeper import run_sweeper_loop
from content_jobs.taxonomy import WordPressTaxonomy
from content_jobs.topic_router import (
    RouteMatch,
    load_sites,
    route,
    score_site,
    topic_similarity,
)
from content_jobs.validator import ContentValidator
from content_jobs.worker import (
    process_jobs_concurrently,
    process_next_job,
    run_worker_loop,
)
from content_jobs.worker_main import run_worker

__version__ = "0.1.0"

__all__ = [
    "JobClaimer",
    "ContentJobsConfig",
    "CONTENT_JOBS_TABLE_DDL",
    "CONTENT_JOB_RUNS_TABLE_DDL",
    "AuthTokenError",
    "ConcurrentModificationError",
    "ConstraintViolation",
    "ContentJobsError",
    "DuplicateTopicError",
    "ExternalServiceError",
    "GenerationError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "NoJobAvailable",
    "PublishError",
    "RemoteHttpError",
    "ValidationError",
    "ContentGenerator",
    "ContentJobsHttpClient",
    "GeneratedContent",
    "GenerationOptions",
    "Job",
    "JobFailure",
    "JobStatus",
    "JobSuccess",
    "PublishResult",
    "Site",
    "ValidationReport",
    "WordPressPublisher",
    "RetryPolicy",
    "WordPressTaxonomy",
    "ContentValidator",
    "JobStore",
    "run_sweeper_loop",
    "RouteMatch",
    "load_sites",
    "route",
    "score_site",
    "topic_similarity",
    "process_jobs_concurrently",
    "process_next_job",
    "run_worker_loop",
    "run_worker",
]
