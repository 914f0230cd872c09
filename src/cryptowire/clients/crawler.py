"""Listing-page crawler for sources without a usable feed."""

import asyncio
import math
import re
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from bs4 import BeautifulSoup

from cryptowire.clients.http import FetchError, Session
from cryptowire.models import ArticleCandidate, Source, SourceMode
from cryptowire.utils.logging import get_logger
from cryptowire.utils.text import absolute_url, origin_of, slugify

logger = get_logger(__name__)

# Site-specific selectors first, generic fallbacks last
LINK_SELECTORS = (
    'article a[href*="/news/"]',
    'a[data-testid="article-card-link"]',
    '.post-card-inline a[href*="/news/"]',
    "article h2 a",
    'h2 a[href*="/news/"]',
    'h3 a[href*="/news/"]',
    '.post-item a[href*="/news/"]',
    '.news-item a[href*="/news/"]',
    ".article-title a",
    '.title a[href*="/news/"]',
    'a[href*="/news/"][title]',
)

# An article lives one path segment below /news/; listings and categories do not match
ARTICLE_URL_PATTERNS = (
    re.compile(r"/news/[^/?#]+/$"),
    re.compile(r"/news/[^/?#]+-\d+$"),
    re.compile(r"/news/[\w-]+$"),
)

LISTING_TOPICS = (
    "latest", "bitcoin", "ethereum", "altcoin", "defi", "nft", "regulation", "technology",
)

MIN_TITLE_LENGTH = 15
LEADING_ORDINAL = re.compile(r"^\s*[\d.\-–—]+\s*")
HEADROOM_FACTOR = 1.5


def is_article_url(url: str) -> bool:
    """Whether url has the shape of a single article rather than a listing."""
    if "/news/" not in url:
        return False
    return any(p.search(url) for p in ARTICLE_URL_PATTERNS)


def additional_listing_pages(listing_url: str) -> list[str]:
    """Paginated and topic listing pages tried after the primary one."""
    origin = origin_of(listing_url)
    separator = "&" if "?" in listing_url else "?"
    pages = [f"{listing_url}{separator}page=2", f"{listing_url}{separator}page=3"]
    pages.extend(f"{origin}/news/{topic}" for topic in LISTING_TOPICS)
    return [p for p in pages if p.rstrip("/") != listing_url.rstrip("/")]


class PageCrawler:
    """Discovers article links by walking a source's listing pages."""

    def __init__(
        self,
        session: Session,
        listing_delay: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._session = session
        self._listing_delay = listing_delay
        self._sleep = sleep or asyncio.sleep

    async def discover_links(
        self,
        source: Source,
        target_count: int,
        discovered_at: datetime | None = None,
    ) -> list[ArticleCandidate]:
        """Collect up to 1.5x target_count article candidates for source.

        The primary listing page is read first. Only when it yields fewer than
        target_count links are the additional pages visited, one at a time with
        a fixed delay, until the headroom is reached or the pages run out. A page
        that fails to load is logged and skipped.

        Every candidate is stamped with the same discovered_at, so a stable
        recency sort keeps them in listing order: front page first, then the
        additional pages in the order they were read.
        """
        limit = math.ceil(target_count * HEADROOM_FACTOR)
        discovered_at = discovered_at or datetime.now(UTC)
        seen: set[str] = set()
        candidates: list[ArticleCandidate] = []

        if not self._session.has_cookies_for(source.base_url):
            await self._session.warm_up(source.base_url)

        await self._collect_from_page(
            source, source.fetch_url, candidates, seen, limit, discovered_at
        )

        if len(candidates) < target_count:
            for page_url in additional_listing_pages(source.fetch_url):
                if len(candidates) >= limit:
                    break
                await self._sleep(self._listing_delay)
                await self._collect_from_page(
                    source, page_url, candidates, seen, limit, discovered_at
                )
                logger.info("Listing progress", source=source.name, found=len(candidates))

        logger.info(
            "Link discovery complete",
            source=source.name,
            found=len(candidates),
            target=target_count,
        )
        return candidates

    async def _collect_from_page(
        self,
        source: Source,
        page_url: str,
        candidates: list[ArticleCandidate],
        seen: set[str],
        limit: int,
        discovered_at: datetime,
    ) -> None:
        try:
            html = await self._session.get_text(page_url, referer=source.base_url)
        except FetchError as e:
            logger.warning("Listing page failed", source=source.name, url=page_url, reason=e.reason)
            return

        for url, title in extract_links(html, page_url):
            if len(candidates) >= limit:
                return
            if url in seen:
                continue
            seen.add(url)
            candidates.append(
                ArticleCandidate(
                    title=title,
                    slug=slugify(title),
                    source_url=url,
                    source_name=source.name,
                    source_weight=source.weight,
                    published_at=discovered_at,
                    mode=SourceMode.PAGE,
                    home_url=source.base_url,
                )
            )


def extract_links(html: str, page_url: str) -> list[tuple[str, str]]:
    """Apply the link selector chain to a listing page.

    Returns:
        (absolute url, title) pairs in selector order, unique by URL.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: list[tuple[str, str]] = []
    found: set[str] = set()

    for selector in LINK_SELECTORS:
        for element in soup.select(selector):
            href = element.get("href")
            if not href:
                continue
            title = _link_title(element)
            if len(title) <= MIN_TITLE_LENGTH:
                continue
            url = absolute_url(href, page_url)
            if url in found or not is_article_url(url):
                continue
            found.add(url)
            links.append((url, title[:200]))
    return links


def _link_title(element) -> str:
    title = element.get_text(" ", strip=True) or element.get("title") or ""
    if not title:
        inner = element.find(["span", "div"])
        title = inner.get_text(" ", strip=True) if inner else ""
    return LEADING_ORDINAL.sub("", title).strip()
