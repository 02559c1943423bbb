"""Data models for content jobs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from content_jobs.errors import (
    ConcurrentModificationError,
    ConstraintViolation,
    InvalidTransitionError,
    ValidationError,
)

MAX_TOPIC_LENGTH = 500
MAX_RETRIES = 3


class JobStatus(str, Enum):
    """Job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: [JobStatus.PROCESSING],
    JobStatus.PROCESSING: [JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.ERROR],
    JobStatus.ERROR: [JobStatus.PENDING],
    JobStatus.COMPLETED: [],
}

# Columns that may change after insert.
UPDATABLE_FIELDS = frozenset(
    {
        "topic",
        "status",
        "options",
        "site_id",
        "retry_count",
        "claimed_at",
        "draft",
        "generated_title",
        "generated_content",
        "generated_excerpt",
        "published_post_id",
        "published_url",
        "last_error",
        "completed_at",
    }
)

# Result columns that may only be populated on a completed job.
RESULT_FIELDS = (
    "generated_title",
    "generated_content",
    "generated_excerpt",
    "published_post_id",
    "published_url",
)

REQUIRED_RESULT_FIELDS = ("generated_title", "generated_content", "published_post_id")


class Job:
    """Represents a content job record."""

    def __init__(
        self,
        id: UUID,
        topic: str,
        status: JobStatus,
        retry_count: int = 0,
        options: Optional[Dict[str, Any]] = None,
        site_id: Optional[str] = None,
        claimed_at: Optional[datetime] = None,
        draft: Optional[Dict[str, Any]] = None,
        generated_title: Optional[str] = None,
        generated_content: Optional[str] = None,
        generated_excerpt: Optional[str] = None,
        published_post_id: Optional[str] = None,
        published_url: Optional[str] = None,
        last_error: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ):
        self.id = id
        self.topic = topic
        self.status = JobStatus(status) if isinstance(status, str) else status
        self.retry_count = retry_count
        self.options = options or {}
        self.site_id = site_id
        self.claimed_at = claimed_at
        self.draft = draft
        self.generated_title = generated_title
        self.generated_content = generated_content
        self.generated_excerpt = generated_excerpt
        self.published_post_id = published_post_id
        self.published_url = published_url
        self.last_error = last_error
        self.created_at = created_at
        self.updated_at = updated_at
        self.completed_at = completed_at

    def fields(self) -> Dict[str, Any]:
        """Return the column values of this job, keyed by column name."""
        return {
            "id": self.id,
            "topic": self.topic,
            "status": self.status,
            "retry_count": self.retry_count,
            "options": self.options,
            "site_id": self.site_id,
            "claimed_at": self.claimed_at,
            "draft": self.draft,
            "generated_title": self.generated_title,
            "generated_content": self.generated_content,
            "generated_excerpt": self.generated_excerpt,
            "published_post_id": self.published_post_id,
            "published_url": self.published_url,
            "last_error": self.last_error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": str(self.id),
            "topic": self.topic,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "options": self.options,
            "site_id": self.site_id,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "draft": self.draft,
            "generated_title": self.generated_title,
            "generated_content": self.generated_content,
            "generated_excerpt": self.generated_excerpt,
            "published_post_id": self.published_post_id,
            "published_url": self.published_url,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }


def validate_topic(topic: Any) -> str:
    """Return the stripped topic, or raise ValidationError if it is unusable."""
    if not isinstance(topic, str):
        raise ValidationError("Topic must be a string")

    topic = topic.strip()
    if not topic:
        raise ValidationError("Topic must not be empty")
    if len(topic) > MAX_TOPIC_LENGTH:
        raise ValidationError(
            f"Topic is too long ({len(topic)} > {MAX_TOPIC_LENGTH} characters)"
        )
    return topic


def ensure_transition(job_id: Any, current: JobStatus, target: JobStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if target not in ALLOWED_TRANSITIONS.get(current, []):
        raise InvalidTransitionError(job_id, current.value, target.value)


def check_invariants(row: Dict[str, Any]) -> None:
    """
    Check a complete job row against the job invariants.

    Raises:
        ConstraintViolation: naming the first broken invariant
    """
    try:
        status = JobStatus(row.get("status"))
    except ValueError:
        raise ConstraintViolation(f"Unknown status: {row.get('status')!r}") from None

    retry_count = row.get("retry_count")
    if (
        not isinstance(retry_count, int)
        or isinstance(retry_count, bool)
        or not 0 <= retry_count <= MAX_RETRIES
    ):
        raise ConstraintViolation(
            f"retry_count must be an integer in [0, {MAX_RETRIES}], got {retry_count!r}"
        )

    if (status == JobStatus.PROCESSING) != (row.get("claimed_at") is not None):
        raise ConstraintViolation("claimed_at must be set exactly while processing")

    if (row.get("generated_title") is None) != (row.get("generated_content") is None):
        raise ConstraintViolation(
            "generated_title and generated_content must be set together"
        )

    if status == JobStatus.COMPLETED:
        missing = [f for f in REQUIRED_RESULT_FIELDS if row.get(f) is None]
        if missing:
            raise ConstraintViolation(
                f"Completed job is missing {', '.join(missing)}"
            )
    else:
        present = [f for f in RESULT_FIELDS if row.get(f) is not None]
        if present:
            raise ConstraintViolation(
                f"{', '.join(present)} may only be set on a completed job"
            )

    if (status == JobStatus.ERROR) != (row.get("last_error") is not None):
        raise ConstraintViolation("last_error must be set exactly when status is error")


def prepare_update(
    current: Dict[str, Any],
    fields: Dict[str, Any],
    expected: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Validate a partial update against the current row.

    Args:
        current: The stored row as returned by Job.fields()
        fields: Columns to change
        expected: Column values the stored row must still hold

    Returns:
        The normalized columns to write

    Raises:
        ValidationError: unknown or immutable fields, bad topic or status
        InvalidTransitionError: status differs from expected or move not allowed
        ConstraintViolation: merged row breaks an invariant
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    job_id = current["id"]
    current_status = JobStatus(current["status"])

    changes = dict(fields)
    if "status" in changes:
        try:
            changes["status"] = JobStatus(changes["status"])
        except ValueError:
            raise ValidationError(f"Unknown status: {changes['status']!r}") from None
    target_status = changes.get("status", current_status)

    for column, value in (expected or {}).items():
        if current.get(column) != value:
            if column == "status":
                raise InvalidTransitionError(
                    job_id,
                    current_status.value,
                    target_status.value,
                    f"Job {job_id} is {current_status.value}, expected {JobStatus(value).value}",
                )
            raise ConcurrentModificationError(
                f"Job {job_id} {column} changed concurrently"
            )

    if "topic" in changes:
        changes["topic"] = validate_topic(changes["topic"])

    if target_status != current_status:
        ensure_transition(job_id, current_status, target_status)

    merged = dict(current)
    merged.update(changes)
    check_invariants(merged)

    return changes


class GenerationOptions(BaseModel):
    """Options shaping the prompt sent to the completion API."""

    word_count: int = Field(default=700, gt=0)
    tone: str = "professional"
    audience: str = "general readers"
    key_points: Optional[str] = None
    categories: List[int] = Field(default_factory=list)
    tags: List[int] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class GeneratedContent(BaseModel):
    """Article produced by the content generator."""

    title: str
    content: str
    excerpt: str = ""


class PublishResult(BaseModel):
    """Identifier and URL of a post created on the CMS."""

    post_id: str
    url: Optional[str] = None

    @field_validator("post_id", mode="before")
    @classmethod
    def _coerce_post_id(cls, value):
        return str(value) if isinstance(value, int) else value


class JobSuccess(BaseModel):
    """Successful outcome passed to JobClaimer.release."""

    title: str
    content: str
    post_id: str
    excerpt: Optional[str] = None
    url: Optional[str] = None

    @field_validator("post_id", mode="before")
    @classmethod
    def _coerce_post_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @classmethod
    def from_publish(
        cls, content: GeneratedContent, result: PublishResult
    ) -> "JobSuccess":
        return cls(
            title=content.title,
            content=content.content,
            excerpt=content.excerpt or None,
            post_id=result.post_id,
            url=result.url,
        )


class JobFailure(BaseModel):
    """Failed outcome passed to JobClaimer.release."""

    error: str
    retryable: bool = True


JobOutcome = Union[JobSuccess, JobFailure]


def completion_fields(outcome: JobSuccess, now: datetime) -> Dict[str, Any]:
    """Columns written when a processing job completes."""
    return {
        "status": JobStatus.COMPLETED,
        "claimed_at": None,
        "draft": None,
        "last_error": None,
        "generated_title": outcome.title,
        "generated_content": outcome.content,
        "generated_excerpt": outcome.excerpt,
        "published_post_id": outcome.post_id,
        "published_url": outcome.url,
        "completed_at": now,
    }


def failure_fields(job: Job, error: str, retryable: bool = True) -> Dict[str, Any]:
    """
    Columns written when a processing job fails.

    A retryable failure with retries left requeues the job with retry_count
    incremented; anything else is a terminal error.
    """
    if retryable and job.retry_count < MAX_RETRIES:
        return {
            "status": JobStatus.PENDING,
            "retry_count": job.retry_count + 1,
            "claimed_at": None,
            "last_error": None,
        }
    return {
        "status": JobStatus.ERROR,
        "claimed_at": None,
        "last_error": error,
    }


class ApiFailure(BaseModel):
    """Non-success response from an external API."""

    status: int
    body: str


class CompletionMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class CompletionChoice(BaseModel):
    message: CompletionMessage


class CompletionResponse(BaseModel):
    """Successful chat-completion response."""

    choices: List[CompletionChoice] = Field(min_length=1)
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None

    @property
    def text(self) -> str:
        return self.choices[0].message.content or ""


class WordPressPost(BaseModel):
    """Post object returned by the WordPress REST API."""

    id: int
    link: Optional[str] = None
    status: Optional[str] = None


class WordPressTerm(BaseModel):
    """Category or tag returned by the WordPress REST API."""

    id: int
    name: str
    slug: str = ""


class ValidationReport(BaseModel):
    """Outcome of the quality checks on a generated article."""

    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    word_count: int = 0
    heading_count: int = 0
    paragraph_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


class Site(BaseModel):
    """A publishing target with the keywords used to route topics to it."""

    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    category_ids: List[int] = Field(default_factory=list)
    tag_ids: List[int] = Field(default_factory=list)
    username: Optional[str] = None
    app_password: Optional[str] = None
