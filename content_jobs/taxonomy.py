"""Resolving WordPress category and tag names to term IDs."""

import asyncio
import logging
import time
from typing import Callable, List, Optional

import aiohttp
import pydantic

from content_jobs.errors import PublishError, is_retryable_status
from content_jobs.models import WordPressTerm
from content_jobs.retry import RetryPolicy

TERM_LIST = pydantic.TypeAdapter(List[WordPressTerm])


class WordPressTaxonomy:
    """
    Looks up category and tag IDs on a WordPress site by name.

    Terms are listed through the REST API, following ``X-WP-TotalPages``, and
    cached per taxonomy for ``cache_seconds``. Names match a term's name or
    slug, ignoring case.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        app_password: str,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        api_root: str = "/wp-json/wp/v2",
        cache_seconds: float = 300,
        per_page: int = 100,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_root = "/" + api_root.strip("/")
        self.auth = aiohttp.BasicAuth(username, app_password)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache_seconds = cache_seconds
        self.per_page = per_page
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._cache: dict[str, tuple[float, list[WordPressTerm]]] = {}

    async def resolve_categories(self, names: list[str]) -> list[int]:
        """Category IDs for names, skipping unknown ones."""
        return await self.resolve("categories", names)

    async def resolve_tags(self, names: list[str]) -> list[int]:
        """Tag IDs for names, skipping unknown ones."""
        return await self.resolve("tags", names)

    async def resolve(self, taxonomy: str, names: list[str]) -> list[int]:
        """
        Map term names to IDs in the given taxonomy.

        Unknown names are logged and skipped. Each ID appears once, in the
        order of the names.

        Raises:
            PublishError: If the terms cannot be listed
        """
        if not names:
            return []

        by_key: dict[str, int] = {}
        for term in await self.terms(taxonomy):
            by_key.setdefault(term.name.lower(), term.id)
            if term.slug:
                by_key.setdefault(term.slug.lower(), term.id)

        ids: list[int] = []
        for name in names:
            term_id = by_key.get(name.strip().lower())
            if term_id is None:
                self.logger.warning(f"No WordPress {taxonomy} term named {name!r}")
            elif term_id not in ids:
                ids.append(term_id)
        return ids

    async def terms(self, taxonomy: str) -> list[WordPressTerm]:
        """All terms of a taxonomy, from the cache while it is fresh."""
        now = self.clock()
        cached = self._cache.get(taxonomy)
        if cached and now - cached[0] < self.cache_seconds:
            return cached[1]

        terms = await self.retry_policy.run(
            lambda: self._fetch_terms(taxonomy),
            f"WordPress {taxonomy} lookup",
            self.logger,
        )
        self.logger.info(f"Fetched {len(terms)} WordPress {taxonomy}")
        self._cache[taxonomy] = (now, terms)
        return terms

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _fetch_terms(self, taxonomy: str) -> list[WordPressTerm]:
        url = f"{self.base_url}{self.api_root}/{taxonomy}"
        terms: list[WordPressTerm] = []
        page = 1

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                while True:
                    params = {"per_page": self.per_page, "page": page}
                    async with session.get(url, params=params, auth=self.auth) as resp:
                        status = resp.status
                        response_body = await resp.text()
                        total_pages = resp.headers.get("X-WP-TotalPages")

                    if not 200 <= status < 300:
                        raise PublishError(
                            f"WordPress returned HTTP {status} listing {taxonomy}: "
                            f"{response_body[:200]}",
                            status_code=status,
                            response_body=response_body,
                            retryable=is_retryable_status(status),
                        )

                    try:
                        terms.extend(TERM_LIST.validate_json(response_body))
                    except pydantic.ValidationError as e:
                        raise PublishError(
                            f"Malformed WordPress {taxonomy} response",
                            status_code=status,
                            response_body=response_body,
                            retryable=False,
                        ) from e

                    if page >= int(total_pages or 1):
                        return terms
                    page += 1
        except asyncio.TimeoutError as e:
            raise PublishError(
                f"WordPress request timed out after {self.timeout.total}s"
            ) from e
        except aiohttp.ClientError as e:
            raise PublishError(f"Network error: {str(e)}") from e
