"""Content generation through an OpenAI-compatible chat-completion API."""

import asyncio
import logging
import re
from typing import Optional, Union

import aiohttp
import pydantic
from bs4 import BeautifulSoup

from content_jobs.errors import GenerationError, is_retryable_status
from content_jobs.models import (
    ApiFailure,
    CompletionResponse,
    GeneratedContent,
    GenerationOptions,
)
from content_jobs.retry import RetryPolicy
from content_jobs.validator import ContentValidator

SYSTEM_PROMPT = """You are an expert content writer specializing in SEO-optimized blog posts.
Write engaging, informative and well-structured articles that give readers real value.

Format requirements:
- Start with a single <h1> title of 30-60 characters that includes the main keyword
- Use semantic HTML only (h2, h3, p, ul, ol, li); no <html>, <head> or <body> wrappers
- Use 3-6 subheadings and at least one list
- End with a short conclusion and a call to action"""

USER_PROMPT_TEMPLATE = """Write a blog post about: {topic}

- Target audience: {audience}
- Tone: {tone}
- Length: about {word_count} words"""

MARKDOWN_H1 = re.compile(r"^#[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n```\s*$", re.DOTALL)
HTML_TAG = re.compile(r"<[a-zA-Z!/][^>]*>")


class ContentGenerator:
    """Generates articles for topics by calling a chat-completion API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        excerpt_length: int = 160,
        validator: Optional[ContentValidator] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the generator.

        Args:
            api_key: Bearer key for the completion API
            base_url: API root, e.g. "https://api.openai.com/v1"
            model: Model name sent with every request
            max_tokens: Completion token limit
            temperature: Sampling temperature
            timeout: Request timeout in seconds
            retry_policy: Retry policy for failed requests
            excerpt_length: Maximum excerpt length in characters
            validator: Quality checks run on every completion, if given
            logger: Logger instance
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retry_policy = retry_policy or RetryPolicy()
        self.excerpt_length = excerpt_length
        self.validator = validator
        self.logger = logger or logging.getLogger(__name__)

    def build_messages(self, topic: str, options: GenerationOptions) -> list[dict]:
        """Build the chat messages for a topic."""
        user_prompt = USER_PROMPT_TEMPLATE.format(
            topic=topic,
            audience=options.audience,
            tone=options.tone,
            word_count=options.word_count,
        )
        if options.key_points:
            user_prompt += f"\n- Key points to cover: {options.key_points}"

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]

    async def generate(
        self, topic: str, options: Optional[GenerationOptions] = None
    ) -> GeneratedContent:
        """
        Generate an article for a topic.

        Returns:
            GeneratedContent with title, HTML content and plain-text excerpt

        Raises:
            GenerationError: If the API fails, times out or returns unusable output
        """
        options = options or GenerationOptions()
        messages = self.build_messages(topic, options)

        async def attempt() -> GeneratedContent:
            text = await self._complete(messages)
            content = self.parse_content(text, topic)
            if self.validator is not None:
                self.check_quality(content, options)
            return content

        content = await self.retry_policy.run(
            attempt, f"Completion request for topic {topic!r}", self.logger
        )
        self.logger.info(f"Generated article {content.title!r} for topic {topic!r}")
        return content

    def parse_content(self, text: str, topic: str) -> GeneratedContent:
        """Split raw model output into title, body and excerpt."""
        title, body = extract_title(text, topic)

        if not body or not html_to_text(body):
            raise GenerationError(
                "Completion returned empty content", status_code=200, response_body=text
            )

        return GeneratedContent(
            title=title,
            content=body,
            excerpt=make_excerpt(body, self.excerpt_length),
        )

    def check_quality(self, content: GeneratedContent, options: GenerationOptions) -> None:
        """
        Run the validator on an article, logging its warnings.

        Raises:
            GenerationError: If the article has validation errors. The error is
                retryable since another completion may pass.
        """
        report = self.validator.validate(content, options)
        for warning in report.warnings:
            self.logger.warning(f"Article {content.title!r}: {warning}")

        if report.errors:
            raise GenerationError(
                f"Content failed validation: {'; '.join(report.errors)}",
                status_code=200,
            )

    async def _complete(self, messages: list[dict]) -> str:
        url = f"{self.base_url}/chat/completions"
        request_body = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, json=request_body, headers=headers) as resp:
                    status = resp.status
                    response_body = await resp.text()
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Completion request timed out after {self.timeout.total}s"
            ) from e
        except aiohttp.ClientError as e:
            raise GenerationError(f"Network error: {str(e)}") from e

        result = parse_completion_response(status, response_body)
        if isinstance(result, ApiFailure):
            raise GenerationError(
                f"Completion API returned HTTP {result.status}",
                status_code=result.status,
                response_body=result.body,
                retryable=is_retryable_status(result.status),
            )

        return result.text


def parse_completion_response(
    status: int, body: str
) -> Union[CompletionResponse, ApiFailure]:
    """
    Validate a completion API response.

    Returns:
        CompletionResponse for a 2xx with a well-formed body, ApiFailure for
        any other status

    Raises:
        GenerationError: If a 2xx body does not match the expected shape
    """
    if not 200 <= status < 300:
        return ApiFailure(status=status, body=body)

    try:
        return CompletionResponse.model_validate_json(body)
    except pydantic.ValidationError as e:
        raise GenerationError(
            "Malformed completion response", status_code=status, response_body=body
        ) from e


def extract_title(text: str, topic: str) -> tuple[str, str]:
    """
    Pull the top-level heading out of model output.

    Looks for a markdown "# " heading ahead of any HTML, then an HTML <title> or
    <h1>. The heading is removed from the body. When none is found the title is
    derived from the topic.

    Returns:
        (title, body)
    """
    text = text.strip()
    fenced = CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    first_tag = HTML_TAG.search(text)
    leading = text if first_tag is None else text[: first_tag.start()]

    title = None
    match = MARKDOWN_H1.search(leading)
    if match:
        title = match.group(1).strip()
        text = (text[: match.start()] + text[match.end():]).strip()

    if first_tag is None:
        return title or title_from_topic(topic), text

    soup = BeautifulSoup(text, "html.parser")
    for meta in soup.find_all("meta"):
        meta.decompose()

    title_tag = soup.find("title")
    if title_tag:
        title = title or title_tag.get_text(" ", strip=True) or None
        title_tag.decompose()

    h1 = soup.find("h1")
    if h1:
        title = title or h1.get_text(" ", strip=True) or None
        h1.decompose()

    for wrapper in soup.find_all("head"):
        wrapper.decompose()
    root = soup.body or soup.html or soup
    body = root.decode_contents().strip()

    return title or title_from_topic(topic), body


def title_from_topic(topic: str) -> str:
    """Derive a title from the topic, capitalizing the first letter of each word."""
    return " ".join(word[:1].upper() + word[1:] for word in topic.split())


def html_to_text(html: str) -> str:
    """Plain text of an HTML fragment with whitespace collapsed."""
    text = BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
    return " ".join(text.split())


def make_excerpt(html: str, length: int = 160) -> str:
    """
    Build a plain-text excerpt cut to ``length`` characters.

    Truncation happens at a word boundary and is marked with "...".
    """
    text = html_to_text(html)
    if len(text) <= length:
        return text

    cut = text[:length]
    if text[length] != " " and " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:.-") + "..."
