"""
News Gateway - Recent headlines for an agent's symbols.

Providers:
- NewsAPI (newsapi.org /v2/everything)
- Null gateway when no key is configured (empty result, not an error)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from ..core.config import Settings, get_settings
from ..core.errors import NewsError
from ..models.market import Article

logger = logging.getLogger(__name__)


def build_news_query(
    symbols: Optional[list[str]] = None,
    keywords: Optional[str] = None,
) -> str:
    """Keywords win, then symbols OR-joined, then a generic market query."""
    if keywords:
        return keywords
    if symbols:
        return " OR ".join(symbols)
    return "stock market"


class NewsGateway(ABC):
    """Source of recent news articles"""

    @abstractmethod
    async def get_news(
        self,
        symbols: Optional[list[str]] = None,
        keywords: Optional[str] = None,
    ) -> list[Article]:
        pass


class NullNewsGateway(NewsGateway):
    async def get_news(
        self,
        symbols: Optional[list[str]] = None,
        keywords: Optional[str] = None,
    ) -> list[Article]:
        return []


class NewsAPIGateway(NewsGateway):
    """newsapi.org client"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://newsapi.org/v2/everything",
        page_size: int = 10,
        timeout: int = 10,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.page_size = page_size
        self.timeout = timeout

    async def get_news(
        self,
        symbols: Optional[list[str]] = None,
        keywords: Optional[str] = None,
    ) -> list[Article]:
        params = {
            "q": build_news_query(symbols, keywords),
            "sortBy": "publishedAt",
            "language": "en",
            "pageSize": str(self.page_size),
            "apiKey": self.api_key,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.base_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        detail = (await response.text())[:200]
                        raise NewsError(f"NewsAPI error {response.status}: {detail}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise NewsError(f"NewsAPI request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise NewsError("NewsAPI request timed out") from e

        articles = []
        for item in data.get("articles") or []:
            if not item.get("title"):
                continue
            articles.append(
                Article(
                    title=item["title"],
                    summary=item.get("description") or "",
                    url=item.get("url") or "",
                    source=(item.get("source") or {}).get("name") or "",
                    published_at=item.get("publishedAt"),
                )
            )
        logger.debug(f"Fetched {len(articles)} news articles for '{params['q']}'")
        return articles


def create_news_gateway(settings: Optional[Settings] = None) -> NewsGateway:
    settings = settings or get_settings()
    if settings.news_api_key:
        return NewsAPIGateway(
            api_key=settings.news_api_key,
            base_url=settings.news_api_url,
            page_size=settings.news_page_size,
        )
    logger.info("NEWS_API_KEY not configured, news disabled")
    return NullNewsGateway()
