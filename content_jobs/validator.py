"""Quality checks for generated articles."""

from typing import Iterable, Optional

from bs4 import BeautifulSoup

from content_jobs.models import GeneratedContent, GenerationOptions, ValidationReport

FORBIDDEN_PHRASES = ("click here", "read more", "learn more", "find out more")


class ContentValidator:
    """
    Checks a generated article before it is published.

    An empty title or body, or a word count far from the requested length, is
    an error. Title length, heading and paragraph counts, and filler link text
    only produce warnings.
    """

    def __init__(
        self,
        min_word_ratio: float = 0.5,
        max_word_ratio: float = 2.0,
        title_length: tuple[int, int] = (30, 60),
        heading_count: tuple[int, int] = (3, 8),
        min_paragraphs: int = 4,
        forbidden_phrases: Iterable[str] = FORBIDDEN_PHRASES,
    ):
        """
        Initialize the validator.

        Args:
            min_word_ratio: Lowest accepted word count as a share of the target
            max_word_ratio: Highest accepted word count as a share of the target
            title_length: Preferred title length range in characters
            heading_count: Preferred number of h2 and h3 subheadings
            min_paragraphs: Preferred minimum number of paragraphs
            forbidden_phrases: Phrases that should not appear in the text
        """
        self.min_word_ratio = min_word_ratio
        self.max_word_ratio = max_word_ratio
        self.title_length = title_length
        self.heading_count = heading_count
        self.min_paragraphs = min_paragraphs
        self.forbidden_phrases = tuple(p.lower() for p in forbidden_phrases)

    def validate(
        self, content: GeneratedContent, options: Optional[GenerationOptions] = None
    ) -> ValidationReport:
        """Check an article against the requested options."""
        options = options or GenerationOptions()
        soup = BeautifulSoup(content.content, "html.parser")
        text = " ".join(soup.get_text(" ", strip=True).split())

        report = ValidationReport(
            word_count=len(text.split()),
            heading_count=len(soup.find_all(["h2", "h3"])),
            paragraph_count=len(soup.find_all("p")),
        )

        title = content.title.strip()
        if not title:
            report.errors.append("Title is empty")
        elif not self.title_length[0] <= len(title) <= self.title_length[1]:
            report.warnings.append(
                f"Title is {len(title)} characters, "
                f"expected {self.title_length[0]}-{self.title_length[1]}"
            )

        if not text:
            report.errors.append("Content is empty")
            return report

        min_words = int(options.word_count * self.min_word_ratio)
        max_words = int(options.word_count * self.max_word_ratio)
        if report.word_count < min_words:
            report.errors.append(
                f"Content has {report.word_count} words, expected at least {min_words}"
            )
        elif report.word_count > max_words:
            report.errors.append(
                f"Content has {report.word_count} words, expected at most {max_words}"
            )

        low, high = self.heading_count
        if not low <= report.heading_count <= high:
            report.warnings.append(
                f"Content has {report.heading_count} subheadings, expected {low}-{high}"
            )

        if report.paragraph_count < self.min_paragraphs:
            report.warnings.append(
                f"Content has {report.paragraph_count} paragraphs, "
                f"expected at least {self.min_paragraphs}"
            )

        lowered = text.lower()
        for phrase in self.forbidden_phrases:
            if phrase in lowered:
                report.warnings.append(f"Content contains {phrase!r}")

        return report
