"""
Article lookup for the news curator
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from topichat.config import Settings
from topichat.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class Article:
    """A news article worth sharing with a room"""
    title: str
    url: str
    description: str = ""
    source: str = ""


class ArticleFinder(ABC):
    """Finds a recent article about an interest"""

    @abstractmethod
    def find_latest(self, interest: str) -> Optional[Article]:
        pass


class MockArticleFinder(ArticleFinder):
    """Deterministic article for development and testing"""

    def find_latest(self, interest: str) -> Optional[Article]:
        return Article(
            title=f"The Future of {interest}: A Fresh Perspective",
            url=f"https://example.com/news/{quote(interest)}",
            description=f"Recent developments in {interest}.",
            source="mock",
        )


class NewsApiArticleFinder(ArticleFinder):
    """NewsAPI `everything` search, newest first"""

    TIMEOUT = 10.0  # seconds

    def __init__(self, api_key: str, url: str, language: str = "ko"):
        self.api_key = api_key
        self.url = url
        self.language = language

    def find_latest(self, interest: str) -> Optional[Article]:
        params = {
            "q": interest,
            "sortBy": "publishedAt",
            "language": self.language,
            "pageSize": 1,
        }
        try:
            response = httpx.get(
                self.url,
                params=params,
                headers={"X-Api-Key": self.api_key},
                timeout=self.TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GenerationError(f"Article lookup failed for {interest}: {e}") from e

        articles = response.json().get("articles") or []
        if not articles:
            logger.info("No articles found for interest: %s", interest)
            return None

        top = articles[0]
        return Article(
            title=top.get("title") or interest,
            url=top.get("url") or "",
            description=top.get("description") or "",
            source=(top.get("source") or {}).get("name", ""),
        )


def get_article_finder(settings: Settings) -> ArticleFinder:
    if settings.news_api_key:
        return NewsApiArticleFinder(settings.news_api_key, settings.news_api_url)
    return MockArticleFinder()
