"""Unit tests for the feed fetcher."""

from datetime import UTC, datetime

import httpx
import pytest
import respx
from httpx import Response

from cryptowire.clients.feeds import FeedFetcher, FeedResult, collect_candidates, sort_candidates
from cryptowire.models import ArticleCandidate, Source

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>Decrypt</title>
<item>
  <title><![CDATA[Bitcoin ETF inflows hit a record]]></title>
  <link>https://decrypt.co/301/bitcoin-etf-inflows</link>
  <description><![CDATA[<p>Spot <b>bitcoin</b> ETF products saw record inflows.</p>]]></description>
  <category>Markets</category>
  <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
</item>
<item>
  <title>Older story</title>
  <link>/302/older-story</link>
  <description>Nothing special.</description>
  <pubDate>Sun, 05 Jan 2025 10:00:00 GMT</pubDate>
</item>
<item>
  <title></title>
  <link>https://decrypt.co/303/untitled</link>
</item>
</channel>
</rss>
"""

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example</title>
  <id>urn:example</id>
  <updated>2025-01-05T09:00:00Z</updated>
  <entry>
    <title>Ethereum upgrade ships on mainnet</title>
    <link href="https://atom.example.com/news/eth-upgrade"/>
    <id>urn:example:1</id>
    <updated>2025-01-05T09:00:00Z</updated>
    <summary>The upgrade lowers fees.</summary>
  </entry>
</feed>
"""

DECRYPT = Source("Decrypt", "https://decrypt.co/feed", "https://decrypt.co", weight=3)
ATOM_SOURCE = Source(
    "AtomNews", "https://atom.example.com/feed", "https://atom.example.com", weight=1
)


def _candidate(title: str, weight: int, published: datetime) -> ArticleCandidate:
    return ArticleCandidate(
        title=title,
        slug=title.lower(),
        source_url=f"https://example.com/{title}",
        source_name="test",
        source_weight=weight,
        published_at=published,
    )


class TestParse:
    """Tests for feed parsing and normalization."""

    @pytest.fixture
    def fetcher(self) -> FeedFetcher:
        return FeedFetcher()

    async def test_rss_items(self, fetcher: FeedFetcher) -> None:
        """Should normalize RSS items and drop items without a title."""
        result = fetcher.parse(DECRYPT, RSS)

        assert result.error is None
        assert [c.title for c in result.candidates] == [
            "Bitcoin ETF inflows hit a record",
            "Older story",
        ]
        first = result.candidates[0]
        assert first.slug == "bitcoin-etf-inflows-hit-a-record"
        assert first.excerpt == "Spot bitcoin ETF products saw record inflows."
        assert first.published_at == datetime(2025, 1, 6, 10, 0, tzinfo=UTC)
        assert first.source_weight == 3
        await fetcher.close()

    async def test_rss_tags(self, fetcher: FeedFetcher) -> None:
        """Should union base tags, feed categories and keyword tags."""
        tags = fetcher.parse(DECRYPT, RSS).candidates[0].tags

        assert tags[:3] == ["crypto", "news", "decrypt"]
        assert "Markets" in tags
        assert "bitcoin" in tags
        assert "etf" in tags
        assert len(tags) <= 10
        await fetcher.close()

    async def test_relative_link_made_absolute(self, fetcher: FeedFetcher) -> None:
        """Should resolve relative item links against the source base URL."""
        older = fetcher.parse(DECRYPT, RSS).candidates[1]
        assert older.source_url == "https://decrypt.co/302/older-story"
        await fetcher.close()

    async def test_atom_entries(self, fetcher: FeedFetcher) -> None:
        """Should parse Atom feeds the same way."""
        result = fetcher.parse(ATOM_SOURCE, ATOM)

        assert len(result.candidates) == 1
        candidate = result.candidates[0]
        assert candidate.source_url == "https://atom.example.com/news/eth-upgrade"
        assert candidate.excerpt == "The upgrade lowers fees."
        assert "ethereum" in candidate.tags
        await fetcher.close()

    async def test_undated_items_keep_feed_order(self, fetcher: FeedFetcher) -> None:
        """Should stamp undated items alike so sorting leaves them in feed order."""
        items = "".join(
            f"<item><title>Undated story number {i}</title>"
            f"<link>https://decrypt.co/40{i}/undated</link></item>"
            for i in range(4)
        )
        content = f'<?xml version="1.0"?><rss version="2.0"><channel>{items}</channel></rss>'

        candidates = fetcher.parse(DECRYPT, content.encode()).candidates

        assert len({c.published_at for c in candidates}) == 1
        assert [c.title for c in sort_candidates(candidates)] == [
            f"Undated story number {i}" for i in range(4)
        ]
        await fetcher.close()

    async def test_empty_document(self, fetcher: FeedFetcher) -> None:
        """Should yield no candidates for a document without items."""
        result = fetcher.parse(DECRYPT, b"<html><body>Not a feed</body></html>")
        assert result.candidates == []
        await fetcher.close()


class TestFetchAll:
    """Tests for concurrent fetching with source isolation."""

    @respx.mock
    async def test_failing_sources_do_not_block_others(self) -> None:
        """Should return one result per source with errors attached."""
        broken = Source("Broken", "https://broken.example.com/feed", "https://broken.example.com")
        slow = Source("Slow", "https://slow.example.com/feed", "https://slow.example.com")
        respx.get(DECRYPT.fetch_url).mock(return_value=Response(200, content=RSS))
        respx.get(broken.fetch_url).mock(return_value=Response(500))
        respx.get(slow.fetch_url).mock(side_effect=httpx.ReadTimeout("slow"))

        async with FeedFetcher(max_concurrency=2) as fetcher:
            results = await fetcher.fetch_all([broken, DECRYPT, slow])

        assert [r.source.name for r in results] == ["Broken", "Decrypt", "Slow"]
        assert results[0].error == "HTTP 500"
        assert len(results[1].candidates) == 2
        assert results[2].error == "timeout"

    def test_collect_candidates(self) -> None:
        """Should flatten results and prefix errors with the source name."""
        now = datetime.now(UTC)
        results = [
            FeedResult(source=ATOM_SOURCE, candidates=[_candidate("low", 1, now)]),
            FeedResult(source=DECRYPT, error="timeout"),
        ]
        candidates, errors = collect_candidates(results)
        assert [c.title for c in candidates] == ["low"]
        assert errors == ["Decrypt: timeout"]


class TestSortCandidates:
    """Tests for candidate priority ordering."""

    def test_weight_then_recency(self) -> None:
        """Should order by weight descending, then newest first."""
        old = datetime(2025, 1, 1, tzinfo=UTC)
        new = datetime(2025, 1, 2, tzinfo=UTC)
        ordered = sort_candidates(
            [
                _candidate("light-new", 1, new),
                _candidate("heavy-old", 3, old),
                _candidate("heavy-new", 3, new),
            ]
        )
        assert [c.title for c in ordered] == ["heavy-new", "heavy-old", "light-new"]

    def test_stable_for_ties(self) -> None:
        """Should keep fetch order for equal keys."""
        at = datetime(2025, 1, 1, tzinfo=UTC)
        ordered = sort_candidates([_candidate("first", 2, at), _candidate("second", 2, at)])
        assert [c.title for c in ordered] == ["first", "second"]
