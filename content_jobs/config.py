"""Configuration for the content jobs pipeline."""

import json
import os
from typing import Any, Dict, List, Optional

from content_jobs.models import Site
from content_jobs.topic_router import load_sites

WORDPRESS_POST_STATUSES = ("draft", "publish", "private")


class ContentJobsConfig:
    """Configuration object for content jobs."""

    def __init__(
        self,
        db_dsn: str,
        openai_api_key: str,
        wordpress_base_url: str,
        wordpress_app_password: str,
        wordpress_username: str = "content-bot",
        wordpress_post_status: str = "draft",
        openai_base_url: str = "https://api.openai.com/v1",
        openai_model: str = "gpt-4o-mini",
        openai_max_tokens: int = 2000,
        openai_temperature: float = 0.7,
        request_timeout_seconds: float = 30.0,
        retry_max_attempts: int = 3,
        retry_backoff_policy: Optional[Dict[str, Any]] = None,
        stale_timeout_seconds: int = 3600,
        duplicate_window_days: int = 7,
        duplicate_similarity_threshold: float = 0.8,
        validate_content: bool = True,
        taxonomy_cache_seconds: int = 300,
        api_auth_token: Optional[str] = None,
        sites: Optional[List[Site]] = None,
    ):
        if wordpress_post_status not in WORDPRESS_POST_STATUSES:
            raise ValueError(
                f"Invalid WordPress post status {wordpress_post_status!r}, "
                f"expected one of {', '.join(WORDPRESS_POST_STATUSES)}"
            )

        self.db_dsn = db_dsn
        self.openai_api_key = openai_api_key
        self.openai_base_url = openai_base_url
        self.openai_model = openai_model
        self.openai_max_tokens = openai_max_tokens
        self.openai_temperature = openai_temperature
        self.wordpress_base_url = wordpress_base_url
        self.wordpress_username = wordpress_username
        self.wordpress_app_password = wordpress_app_password
        self.wordpress_post_status = wordpress_post_status
        self.request_timeout_seconds = request_timeout_seconds
        self.retry_max_attempts = retry_max_attempts
        self.retry_backoff_policy = retry_backoff_policy or {
            "type": "exponential",
            "base_seconds": 1,
            "max_seconds": 10,
        }
        self.stale_timeout_seconds = stale_timeout_seconds
        self.duplicate_window_days = duplicate_window_days
        self.duplicate_similarity_threshold = duplicate_similarity_threshold
        self.validate_content = validate_content
        self.taxonomy_cache_seconds = taxonomy_cache_seconds
        self.api_auth_token = api_auth_token
        self.sites = sites or []

    @classmethod
    def from_env(cls) -> "ContentJobsConfig":
        """Create config from environment variables."""
        db_dsn = _require_env("CONTENT_JOBS_DB_DSN")
        openai_api_key = _require_env("OPENAI_API_KEY")
        wordpress_base_url = _require_env("WORDPRESS_BASE_URL")
        wordpress_app_password = _require_env("WORDPRESS_APP_PASSWORD")

        retry_backoff_policy = {
            "type": os.getenv("CONTENT_JOBS_RETRY_BACKOFF_TYPE", "exponential"),
            "base_seconds": float(os.getenv("CONTENT_JOBS_RETRY_BASE_SECONDS", "1")),
            "max_seconds": float(os.getenv("CONTENT_JOBS_RETRY_MAX_SECONDS", "10")),
        }

        sites: List[Site] = []
        sites_json = os.getenv("CONTENT_JOBS_SITES")
        if sites_json:
            try:
                sites = [Site(**site) for site in json.loads(sites_json)]
            except (json.JSONDecodeError, TypeError) as e:
                raise ValueError(f"Invalid JSON in CONTENT_JOBS_SITES: {e}") from e

        sites_path = os.getenv("CONTENT_JOBS_SITES_PATH")
        if sites_path:
            sites.extend(load_sites(sites_path))

        return cls(
            db_dsn=db_dsn,
            openai_api_key=openai_api_key,
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_max_tokens=int(os.getenv("OPENAI_MAX_TOKENS", "2000")),
            openai_temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.7")),
            wordpress_base_url=wordpress_base_url,
            wordpress_username=os.getenv("WORDPRESS_USERNAME", "content-bot"),
            wordpress_app_password=wordpress_app_password,
            wordpress_post_status=os.getenv("WORDPRESS_POST_STATUS", "draft"),
            request_timeout_seconds=float(
                os.getenv("CONTENT_JOBS_REQUEST_TIMEOUT_SECONDS", "30")
            ),
            retry_max_attempts=int(os.getenv("CONTENT_JOBS_RETRY_MAX_ATTEMPTS", "3")),
            retry_backoff_policy=retry_backoff_policy,
            stale_timeout_seconds=int(
                os.getenv("CONTENT_JOBS_STALE_TIMEOUT_SECONDS", "3600")
            ),
            duplicate_window_days=int(
                os.getenv("CONTENT_JOBS_DUPLICATE_WINDOW_DAYS", "7")
            ),
            duplicate_similarity_threshold=float(
                os.getenv("CONTENT_JOBS_DUPLICATE_THRESHOLD", "0.8")
            ),
            validate_content=os.getenv("CONTENT_JOBS_VALIDATE_CONTENT", "true").lower()
            in ("1", "true", "yes"),
            taxonomy_cache_seconds=int(
                os.getenv("WORDPRESS_TAXONOMY_CACHE_SECONDS", "300")
            ),
            api_auth_token=os.getenv("CONTENT_JOBS_API_TOKEN"),
            sites=sites,
        )

    def get_site(self, site_id: Optional[str]) -> Optional[Site]:
        """Get a configured site by ID."""
        for site in self.sites:
            if site.id == site_id:
                return site
        return None


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} environment variable is required")
    return value
