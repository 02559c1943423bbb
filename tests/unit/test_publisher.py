"""Unit tests for publisher module."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from content_jobs.errors import PublishError
from content_jobs.models import GeneratedContent
from content_jobs.publisher import WordPressPublisher
from content_jobs.retry import RetryPolicy
from content_jobs.taxonomy import WordPressTaxonomy

POST_BODY = json.dumps(
    {"id": 321, "link": "https://blog.example.com/?p=321", "status": "draft"}
)


@pytest.fixture
def content():
    return GeneratedContent(
        title="Ten Python Tips", content="<p>Body</p>", excerpt="Body"
    )


@pytest.fixture
def publisher():
    return WordPressPublisher(
        base_url="https://blog.example.com/",
        username="content-bot",
        app_password="app-password",
        retry_policy=RetryPolicy(max_attempts=2, sleep=AsyncMock()),
    )


def test_posts_url(publisher):
    assert publisher.posts_url == "https://blog.example.com/wp-json/wp/v2/posts"


def test_custom_api_root():
    publisher = WordPressPublisher(
        "https://blog.example.com", "u", "p", api_root="index.php?rest_route=/wp/v2/"
    )
    assert publisher.posts_url == "https://blog.example.com/index.php?rest_route=/wp/v2/posts"


@pytest.mark.asyncio
async def test_publish_success(publisher, content, mock_http):
    """Test a created post returns its ID and link."""
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY)])

        result = await publisher.publish(content, categories=[3], tags=[7])

    assert result.post_id == "321"
    assert result.url == "https://blog.example.com/?p=321"

    args, kwargs = session.post.call_args
    assert args[0] == "https://blog.example.com/wp-json/wp/v2/posts"
    assert kwargs["json"] == {
        "title": "Ten Python Tips",
        "content": "<p>Body</p>",
        "excerpt": "Body",
        "status": "draft",
        "categories": [3],
        "tags": [7],
    }
    assert kwargs["auth"] == aiohttp.BasicAuth("content-bot", "app-password")


@pytest.mark.asyncio
async def test_publish_omits_empty_taxonomies(publisher, content, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY)])

        await publisher.publish(content)

    payload = session.post.call_args.kwargs["json"]
    assert "categories" not in payload
    assert "tags" not in payload


@pytest.mark.asyncio
async def test_publish_uses_default_taxonomies(content, mock_http):
    publisher = WordPressPublisher(
        "https://blog.example.com",
        "u",
        "p",
        default_categories=[5],
        default_tags=[9],
    )

    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY), (201, POST_BODY)])

        await publisher.publish(content)
        await publisher.publish(content, categories=[1])

    first, second = session.post.call_args_list
    assert first.kwargs["json"]["categories"] == [5]
    assert first.kwargs["json"]["tags"] == [9]
    assert second.kwargs["json"]["categories"] == [1]


@pytest.mark.asyncio
async def test_publish_retries_server_error(publisher, content, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(502, "bad gateway"), (201, POST_BODY)])

        result = await publisher.publish(content)

    assert result.post_id == "321"
    assert session.post.call_count == 2


@pytest.mark.asyncio
async def test_publish_auth_failure_is_not_retried(publisher, content, mock_http):
    body = '{"code": "rest_cannot_create"}'
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(401, body)])

        with pytest.raises(PublishError) as exc_info:
            await publisher.publish(content)

    assert exc_info.value.status_code == 401
    assert exc_info.value.response_body == body
    assert exc_info.value.retryable is False
    assert session.post.call_count == 1


@pytest.mark.asyncio
async def test_publish_malformed_success_is_not_retried(publisher, content, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, "<html>oops</html>")])

        with pytest.raises(PublishError, match="Malformed") as exc_info:
            await publisher.publish(content)

    assert exc_info.value.retryable is False
    assert session.post.call_count == 1


@pytest.mark.asyncio
async def test_publish_timeout(publisher, content, mock_http):
    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(
            session_cls, [asyncio.TimeoutError(), asyncio.TimeoutError()]
        )

        with pytest.raises(PublishError, match="timed out") as exc_info:
            await publisher.publish(content)

    assert exc_info.value.retryable is True
    assert session.post.call_count == 2


def test_for_site_uses_site_settings(config, sample_sites):
    food = sample_sites[1]

    publisher = WordPressPublisher.for_site(food, config)

    assert publisher.base_url == "https://food.example.com"
    assert publisher.auth == aiohttp.BasicAuth("chef", "chef-password")
    assert publisher.post_status == config.wordpress_post_status


def test_for_site_falls_back_to_default_credentials(config, sample_sites):
    tech = sample_sites[0]

    publisher = WordPressPublisher.for_site(tech, config)

    assert publisher.auth == aiohttp.BasicAuth(
        config.wordpress_username, config.wordpress_app_password
    )
    assert publisher.default_categories == [3]
    assert publisher.default_tags == [7, 8]


@pytest.mark.asyncio
async def test_publish_resolves_term_names(content, mock_http):
    """Sites configured with names publish with the IDs the taxonomy finds."""
    taxonomy = MagicMock(spec=WordPressTaxonomy)
    taxonomy.resolve = AsyncMock(side_effect=[[4], [8]])
    publisher = WordPressPublisher(
        "https://blog.example.com",
        "u",
        "p",
        category_names=["baking"],
        tag_names=["bread"],
        taxonomy=taxonomy,
    )

    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY)])

        await publisher.publish(content)

    payload = session.post.call_args.kwargs["json"]
    assert payload["categories"] == [4]
    assert payload["tags"] == [8]
    assert [c.args for c in taxonomy.resolve.await_args_list] == [
        ("categories", ["baking"]),
        ("tags", ["bread"]),
    ]


@pytest.mark.asyncio
async def test_publish_prefers_ids_over_names(content, mock_http):
    taxonomy = MagicMock(spec=WordPressTaxonomy)
    taxonomy.resolve = AsyncMock(return_value=[99])
    publisher = WordPressPublisher(
        "https://blog.example.com",
        "u",
        "p",
        default_categories=[3],
        category_names=["software"],
        taxonomy=taxonomy,
    )

    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY)])

        await publisher.publish(content, tags=[7])

    payload = session.post.call_args.kwargs["json"]
    assert payload["categories"] == [3]
    assert payload["tags"] == [7]
    taxonomy.resolve.assert_not_awaited()


@pytest.mark.asyncio
async def test_publish_without_terms_when_lookup_fails(content, mock_http, caplog):
    taxonomy = MagicMock(spec=WordPressTaxonomy)
    taxonomy.resolve = AsyncMock(side_effect=PublishError("HTTP 401", status_code=401))
    publisher = WordPressPublisher(
        "https://blog.example.com",
        "u",
        "p",
        category_names=["baking"],
        taxonomy=taxonomy,
    )

    with patch("aiohttp.ClientSession") as session_cls:
        session = mock_http(session_cls, [(201, POST_BODY)])

        result = await publisher.publish(content)

    assert result.post_id == "321"
    assert "categories" not in session.post.call_args.kwargs["json"]
    assert "Could not resolve WordPress categories" in caplog.text


def test_for_site_builds_taxonomy_for_names(config, sample_sites):
    food = sample_sites[1]

    publisher = WordPressPublisher.for_site(food, config)

    assert publisher.category_names == ["baking"]
    assert publisher.tag_names == ["bread"]
    assert publisher.taxonomy.base_url == "https://food.example.com"
    assert publisher.taxonomy.auth == aiohttp.BasicAuth("chef", "chef-password")
    assert publisher.taxonomy.cache_seconds == config.taxonomy_cache_seconds
