"""Publishing generated content to WordPress through its REST API."""

import asyncio
import logging
from typing import Any, Optional

import aiohttp
import pydantic

from content_jobs.config import ContentJobsConfig
from content_jobs.errors import PublishError, is_retryable_status
from content_jobs.models import GeneratedContent, PublishResult, Site, WordPressPost
from content_jobs.retry import RetryPolicy
from content_jobs.taxonomy import WordPressTaxonomy


class WordPressPublisher:
    """
    Creates posts on a WordPress site.

    Publishing is not idempotent: every successful call creates a new post, so
    callers must not publish a job that already has a post ID.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        app_password: str,
        post_status: str = "draft",
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        api_root: str = "/wp-json/wp/v2",
        default_categories: Optional[list[int]] = None,
        default_tags: Optional[list[int]] = None,
        category_names: Optional[list[str]] = None,
        tag_names: Optional[list[str]] = None,
        taxonomy: Optional[WordPressTaxonomy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the publisher.

        Args:
            base_url: Site URL, e.g. "https://blog.example.com"
            username: WordPress user
            app_password: Application password for the user
            post_status: Status of created posts ("draft", "publish" or "private")
            timeout: Request timeout in seconds
            retry_policy: Retry policy for failed requests
            api_root: Path of the REST API below the site URL
            default_categories: Category IDs used when publish() gets none
            default_tags: Tag IDs used when publish() gets none
            category_names: Category names resolved through ``taxonomy`` when
                there are no category IDs
            tag_names: Tag names resolved through ``taxonomy`` when there are
                no tag IDs
            taxonomy: Name-to-ID lookup for the site's terms
            logger: Logger instance
        """
        self.base_url = base_url.rstrip("/")
        self.api_root = "/" + api_root.strip("/")
        self.auth = aiohttp.BasicAuth(username, app_password)
        self.post_status = post_status
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_categories = default_categories or []
        self.default_tags = default_tags or []
        self.category_names = category_names or []
        self.tag_names = tag_names or []
        self.taxonomy = taxonomy
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def for_site(
        cls,
        site: Site,
        config: ContentJobsConfig,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "WordPressPublisher":
        """
        Build a publisher for a routed site, defaulting to the main credentials.

        Category and tag names of the site are looked up on the site when it
        has no explicit IDs for them.
        """
        base_url = site.url or config.wordpress_base_url
        username = site.username or config.wordpress_username
        app_password = site.app_password or config.wordpress_app_password
        taxonomy = WordPressTaxonomy(
            base_url=base_url,
            username=username,
            app_password=app_password,
            timeout=config.request_timeout_seconds,
            retry_policy=retry_policy,
            cache_seconds=config.taxonomy_cache_seconds,
            logger=logger,
        )
        return cls(
            base_url=base_url,
            username=username,
            app_password=app_password,
            post_status=config.wordpress_post_status,
            timeout=config.request_timeout_seconds,
            retry_policy=retry_policy,
            default_categories=site.category_ids,
            default_tags=site.tag_ids,
            category_names=site.categories,
            tag_names=site.tags,
            taxonomy=taxonomy,
            logger=logger,
        )

    @property
    def posts_url(self) -> str:
        return f"{self.base_url}{self.api_root}/posts"

    async def publish(
        self,
        content: GeneratedContent,
        categories: Optional[list[int]] = None,
        tags: Optional[list[int]] = None,
    ) -> PublishResult:
        """
        Create a post for the generated content.

        Terms come from the arguments, then the default IDs, then the names
        resolved through the taxonomy. A failed name lookup is logged and the
        post goes out without those terms.

        Returns:
            PublishResult with the post ID and link

        Raises:
            PublishError: For non-2xx responses, timeouts and malformed bodies
        """
        payload: dict[str, Any] = {
            "title": content.title,
            "content": content.content,
            "excerpt": content.excerpt,
            "status": self.post_status,
        }
        categories = categories or self.default_categories
        tags = tags or self.default_tags
        if not categories and self.category_names:
            categories = await self._resolve_terms("categories", self.category_names)
        if not tags and self.tag_names:
            tags = await self._resolve_terms("tags", self.tag_names)
        if categories:
            payload["categories"] = categories
        if tags:
            payload["tags"] = tags

        result = await self.retry_policy.run(
            lambda: self._create_post(payload),
            f"WordPress publish of {content.title!r}",
            self.logger,
        )
        self.logger.info(f"Published post {result.post_id} at {result.url}")
        return result

    async def _resolve_terms(self, taxonomy: str, names: list[str]) -> list[int]:
        if self.taxonomy is None:
            return []
        try:
            return await self.taxonomy.resolve(taxonomy, names)
        except PublishError as e:
            self.logger.warning(
                f"Could not resolve WordPress {taxonomy} {names}, publishing without: {e}"
            )
            return []

    async def _create_post(self, payload: dict[str, Any]) -> PublishResult:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.posts_url, json=payload, auth=self.auth
                ) as resp:
                    status = resp.status
                    response_body = await resp.text()
        except asyncio.TimeoutError as e:
            raise PublishError(
                f"WordPress request timed out after {self.timeout.total}s"
            ) from e
        except aiohttp.ClientError as e:
            raise PublishError(f"Network error: {str(e)}") from e

        if not 200 <= status < 300:
            raise PublishError(
                f"WordPress returned HTTP {status}: {response_body[:200]}",
                status_code=status,
                response_body=response_body,
                retryable=is_retryable_status(status),
            )

        try:
            post = WordPressPost.model_validate_json(response_body)
        except pydantic.ValidationError as e:
            # The post may exist already, so a retry could duplicate it
            raise PublishError(
                "Malformed WordPress response",
                status_code=status,
                response_body=response_body,
                retryable=False,
            ) from e

        return PublishResult(post_id=str(post.id), url=post.link)
