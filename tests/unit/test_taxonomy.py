"""Unit tests for taxonomy module."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from content_jobs.errors import PublishError
from content_jobs.retry import RetryPolicy
from content_jobs.taxonomy import WordPressTaxonomy

CATEGORIES = json.dumps(
    [
        {"id": 3, "name": "Software", "slug": "software"},
        {"id": 4, "name": "Baking & Pastry", "slug": "baking"},
    ]
)


@pytest.fixture
def clock():
    return MagicMock(return_value=1000.0)


@pytest.fixture
def taxonomy(clock):
    return WordPressTaxonomy(
        base_url="https://blog.example.com/",
        username="content-bot",
        app_password="app-password",
        retry_policy=RetryPolicy(max_attempts=2, sleep=AsyncMock()),
        cache_seconds=300,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_resolves_names_and_slugs(taxonomy, mock_http):
    """Names match a term's name or slug regardless of case."""
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(200, CATEGORIES)], method="get")

        ids = await taxonomy.resolve_categories(["SOFTWARE", "baking", "Software"])

    assert ids == [3, 4]
    args, kwargs = session.get.call_args
    assert args[0] == "https://blog.example.com/wp-json/wp/v2/categories"
    assert kwargs["params"] == {"per_page": 100, "page": 1}
    assert kwargs["auth"] == aiohttp.BasicAuth("content-bot", "app-password")


@pytest.mark.asyncio
async def test_unknown_names_are_skipped(taxonomy, mock_http, caplog):
    with patch("aiohttp.ClientSession") as session_cls:
        mock_http(session_cls, [(200, CATEGORIES)], method="get")

        ids = await taxonomy.resolve_categories(["software", "travel"])

    assert ids == [3]
    assert "No WordPress categories term named 'travel'" in caplog.text


@pytest.mark.asyncio
async def test_follows_pages(taxonomy, mock_http):
    first = json.dumps([{"id": 7, "name": "code", "slug": "code"}])
    second = json.dumps([{"id": 8, "name": "bread", "slug": "bread"}])

    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(
            session_cls,
            [
                (200, first, {"X-WP-TotalPages": "2"}),
                (200, second, {"X-WP-TotalPages": "2"}),
            ],
            method="get",
        )

        ids = await taxonomy.resolve_tags(["bread", "code"])

    assert ids == [8, 7]
    pages = [c.kwargs["params"]["page"] for c in session.get.call_args_list]
    assert pages == [1, 2]
    assert session.get.call_args.args[0].endswith("/wp-json/wp/v2/tags")


@pytest.mark.asyncio
async def test_terms_are_cached(taxonomy, clock, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(
            session_cls, [(200, CATEGORIES), (200, CATEGORIES)], method="get"
        )

        await taxonomy.resolve_categories(["software"])
        clock.return_value = 1299.0
        await taxonomy.resolve_categories(["baking"])
        assert session.get.call_count == 1

        clock.return_value = 1301.0
        await taxonomy.resolve_categories(["baking"])
        assert session.get.call_count == 2


@pytest.mark.asyncio
async def test_clear_cache(taxonomy, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(
            session_cls, [(200, CATEGORIES), (200, CATEGORIES)], method="get"
        )

        await taxonomy.resolve_categories(["software"])
        taxonomy.clear_cache()
        await taxonomy.resolve_categories(["software"])

    assert session.get.call_count == 2


@pytest.mark.asyncio
async def test_no_names_makes_no_request(taxonomy):
    with patch("aiohttp.ClientSession") as session_cls:
        assert await taxonomy.resolve_tags([]) == []

    session_cls.assert_not_called()


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(taxonomy, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(401, "unauthorized")], method="get")

        with pytest.raises(PublishError) as exc_info:
            await taxonomy.resolve_categories(["software"])

    assert exc_info.value.status_code == 401
    assert exc_info.value.retryable is False
    assert session.get.call_count == 1


@pytest.mark.asyncio
async def test_server_error_is_retried(taxonomy, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(
            session_cls, [(503, "unavailable"), (200, CATEGORIES)], method="get"
        )

        assert await taxonomy.resolve_categories(["software"]) == [3]

    assert session.get.call_count == 2


@pytest.mark.asyncio
async def test_malformed_body(taxonomy, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        mock_http(session_cls, [(200, '{"not": "a list"}')], method="get")

        with pytest.raises(PublishError, match="Malformed") as exc_info:
            await taxonomy.resolve_categories(["software"])

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_timeout(taxonomy, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        mock_http(
            session_cls, [asyncio.TimeoutError(), asyncio.TimeoutError()], method="get"
        )

        with pytest.raises(PublishError, match="timed out"):
            await taxonomy.resolve_tags(["code"])
