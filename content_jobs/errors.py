"""Exception types for the content jobs library."""


class ContentJobsError(Exception):
    """Base exception for all content jobs errors."""

    pass


class ValidationError(ContentJobsError):
    """Raised when input to a job write is malformed."""

    pass


class InvalidTransitionError(ValidationError):
    """Raised when a job cannot move from its current status to the target."""

    def __init__(self, job_id, current: str, target: str, message: str = None):
        self.job_id = job_id
        self.current = current
        self.target = target
        if message is None:
            message = f"Job {job_id} cannot move from {current} to {target}"
        super().__init__(message)


class DuplicateTopicError(ValidationError):
    """Raised when a recent job already covers a near-identical topic."""

    def __init__(self, topic: str, existing_job_id, similarity: float):
        self.topic = topic
        self.existing_job_id = existing_job_id
        self.similarity = similarity
        super().__init__(
            f"Topic {topic!r} duplicates job {existing_job_id} "
            f"(similarity {similarity:.2f})"
        )


class ConstraintViolation(ContentJobsError):
    """Raised when a write would leave a job breaking one of its invariants."""

    pass


class ConcurrentModificationError(ConstraintViolation):
    """Raised when a conditional write finds the job changed since it was read."""

    pass


class JobNotFoundError(ContentJobsError):
    """Raised when a job is not found."""

    def __init__(self, job_id, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class NoJobAvailable(ContentJobsError):
    """Raised by claim_next when no pending job can be claimed."""

    def __init__(self, message: str = "No pending jobs available"):
        super().__init__(message)


class ExternalServiceError(ContentJobsError):
    """Raised when a call to the completion API or the CMS fails."""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        response_body: str = None,
        retryable: bool = True,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.retryable = retryable
        super().__init__(message)


class GenerationError(ExternalServiceError):
    """Raised when content generation fails or returns unusable output."""

    pass


class PublishError(ExternalServiceError):
    """Raised when the CMS rejects or fails a publish request."""

    pass


class AuthTokenError(ContentJobsError):
    """Raised when authentication token is missing or invalid."""

    pass


class RemoteHttpError(ContentJobsError):
    """Raised when an HTTP request to a remote content jobs service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")


def is_retryable_status(status_code: int) -> bool:
    """Return True for HTTP statuses worth retrying (timeouts, throttling, 5xx)."""
    return status_code in (408, 409, 429) or status_code >= 500
