"""RSS/Atom feed fetcher producing article candidates."""

import asyncio
import calendar
from dataclasses import dataclass, field
from datetime import UTC, datetime

import feedparser
import httpx

from cryptowire.models import ArticleCandidate, Source, SourceMode
from cryptowire.utils.logging import get_logger
from cryptowire.utils.text import (
    EXCERPT_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    absolute_url,
    extract_keyword_tags,
    merge_tags,
    slugify,
    strip_html,
)

logger = get_logger(__name__)

FEED_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class FeedResult:
    """Outcome of fetching one source's feed."""

    source: Source
    candidates: list[ArticleCandidate] = field(default_factory=list)
    error: str | None = None


def base_tags(source: Source) -> list[str]:
    return ["crypto", "news", source.name.lower()]


def sort_candidates(candidates: list[ArticleCandidate]) -> list[ArticleCandidate]:
    """Order candidates by source weight, then recency, both descending.

    The sort is stable so equal keys keep their fetch order, which makes the
    winner of a cross-source duplicate deterministic.
    """
    return sorted(
        candidates,
        key=lambda c: (-c.source_weight, -c.published_at.timestamp()),
    )


class FeedFetcher:
    """Fetches all registered feeds concurrently with bounded parallelism."""

    def __init__(
        self,
        timeout: float = 15.0,
        max_concurrency: int = 4,
        max_redirects: int = 5,
    ) -> None:
        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            headers=FEED_HEADERS,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def fetch_all(self, sources: list[Source]) -> list[FeedResult]:
        """Fetch every source's feed, one request per source.

        A failing source yields a FeedResult carrying an error string; it never
        affects the other sources.

        Returns:
            One FeedResult per source, in the order the sources were given.
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(source: Source) -> FeedResult:
            async with semaphore:
                return await self.fetch(source)

        results = await asyncio.gather(*[bounded(s) for s in sources], return_exceptions=True)

        collected: list[FeedResult] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error("Feed processing crashed", source=source.name, error=str(result))
                collected.append(FeedResult(source=source, error=f"unexpected error: {result}"))
            else:
                collected.append(result)
        return collected

    async def fetch(self, source: Source) -> FeedResult:
        """Fetch and parse a single feed."""
        logger.info("Fetching feed", source=source.name, url=source.fetch_url)
        try:
            response = await self._client.get(source.fetch_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("HTTP error fetching feed", source=source.name, status=status)
            return FeedResult(source=source, error=f"HTTP {status}")
        except httpx.TimeoutException:
            logger.warning("Timeout fetching feed", source=source.name)
            return FeedResult(source=source, error="timeout")
        except httpx.RequestError as e:
            logger.warning("Request error fetching feed", source=source.name, error=str(e))
            return FeedResult(source=source, error=f"request error: {e}")

        return self.parse(source, response.content)

    def parse(self, source: Source, content: bytes) -> FeedResult:
        """Parse RSS or Atom content into candidates."""
        feed = feedparser.parse(content)
        if not feed.entries:
            if feed.bozo:
                reason = getattr(feed, "bozo_exception", "unknown")
                logger.warning("Malformed feed", source=source.name, error=str(reason))
                return FeedResult(source=source, error=f"malformed feed: {reason}")
            logger.info("Feed has no items", source=source.name, version=feed.get("version"))
            return FeedResult(source=source)

        fetched_at = datetime.now(UTC)
        candidates = []
        for entry in feed.entries:
            candidate = self._to_candidate(entry, source, fetched_at)
            if candidate is not None:
                candidates.append(candidate)

        logger.info(
            "Feed fetched",
            source=source.name,
            version=feed.get("version") or "unknown",
            items=len(feed.entries),
            candidates=len(candidates),
        )
        return FeedResult(source=source, candidates=candidates)

    def _to_candidate(
        self, entry: dict, source: Source, fetched_at: datetime
    ) -> ArticleCandidate | None:
        """Normalize a feed item; items without a title or link are dropped.

        Undated items all take fetched_at so they keep their feed order.
        """
        title = strip_html(entry.get("title", ""))
        link = (entry.get("link") or "").strip()
        if not title or not link:
            return None

        description = strip_html(entry.get("summary") or entry.get("description") or "")
        categories = [t.get("term") or "" for t in entry.get("tags", [])]
        tags = merge_tags(
            base_tags(source),
            categories,
            extract_keyword_tags(f"{title} {description}"),
        )

        title = title[:TITLE_MAX_LENGTH]
        return ArticleCandidate(
            title=title,
            slug=slugify(title),
            source_url=absolute_url(link, source.base_url),
            source_name=source.name,
            source_weight=source.weight,
            published_at=_published_at(entry, fetched_at),
            excerpt=description[:EXCERPT_MAX_LENGTH],
            tags=tags,
            mode=SourceMode.FEED,
            home_url=source.base_url,
        )


def _published_at(entry: dict, fallback: datetime) -> datetime:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=UTC)
    return fallback


def collect_candidates(results: list[FeedResult]) -> tuple[list[ArticleCandidate], list[str]]:
    """Flatten feed results into priority order plus per-source error strings."""
    candidates: list[ArticleCandidate] = []
    errors: list[str] = []
    for result in results:
        if result.error:
            errors.append(f"{result.source.name}: {result.error}")
        candidates.extend(result.candidates)
    return sort_candidates(candidates), errors
