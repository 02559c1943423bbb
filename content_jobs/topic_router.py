"""Route free-text topics to the best-matching configured site."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import NamedTuple, Optional, Union

from content_jobs.models import Site

logger = logging.getLogger(__name__)

TOPIC_SCORE = 10
CATEGORY_SCORE = 5
TAG_SCORE = 3


class RouteMatch(NamedTuple):
    site: Site
    score: int


def _matches(topic: str, keyword: str) -> bool:
    keyword = keyword.lower()
    return bool(keyword) and (keyword in topic or topic in keyword)


def score_site(topic: str, site: Site) -> int:
    """
    Score how well a topic fits a site.

    Each site topic keyword that matches adds 10, each category 5 and each tag
    3. A keyword matches when either string contains the other, ignoring case.
    """
    topic = topic.strip().lower()
    if not topic:
        return 0

    score = 0
    score += TOPIC_SCORE * sum(1 for kw in site.topics if _matches(topic, kw))
    score += CATEGORY_SCORE * sum(1 for kw in site.categories if _matches(topic, kw))
    score += TAG_SCORE * sum(1 for kw in site.tags if _matches(topic, kw))
    return score


def topic_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the lowercased word sets of two topics."""
    a = set(first.lower().split())
    b = set(second.lower().split())
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def route(topic: str, sites: Iterable[Site]) -> Optional[RouteMatch]:
    """
    Pick the site with the highest non-zero score for a topic.

    On a tie the first site in iteration order wins. Returns None when no site
    scores above zero.
    """
    best: Optional[RouteMatch] = None

    for site in sites:
        score = score_site(topic, site)
        if score > 0 and (best is None or score > best.score):
            best = RouteMatch(site, score)

    if best is None:
        logger.info(f"No site matched topic {topic!r}")
    else:
        logger.info(f"Routed topic {topic!r} to site {best.site.id} (score={best.score})")
    return best


def load_sites(path: Union[str, Path]) -> list[Site]:
    """
    Load site definitions from a JSON file or a directory of JSON files.

    A file holds either a list of site objects or a single site object. In a
    directory, files are read in name order and the file stem is used as the
    site ID when the object has none.
    """
    path = Path(path)

    if path.is_dir():
        sites = []
        for file in sorted(path.glob("*.json")):
            data = json.loads(file.read_text(encoding="utf-8"))
            data.setdefault("id", file.stem)
            sites.append(Site(**data))
        return sites

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    return [Site(**site) for site in data]
