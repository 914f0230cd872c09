"""Unit tests for text helpers."""

from cryptowire.utils.text import (
    absolute_url,
    extract_keyword_tags,
    host_of,
    make_excerpt,
    merge_tags,
    slugify,
    strip_html,
)


class TestSlugify:
    """Tests for slug derivation."""

    def test_collapses_non_alphanumerics(self) -> None:
        """Should lowercase and join words with single hyphens."""
        assert slugify("Bitcoin Hits $100K — What's Next?") == "bitcoin-hits-100k-what-s-next"

    def test_is_deterministic(self) -> None:
        """Should give the same slug for the same title."""
        assert slugify("Same Title") == slugify("Same Title")

    def test_truncates(self) -> None:
        """Should cap the slug length without a trailing hyphen."""
        slug = slugify("word " * 60)
        assert len(slug) <= 100
        assert not slug.endswith("-")

    def test_non_latin_title_gets_hash(self) -> None:
        """Should never return an empty slug."""
        slug = slugify("Биткоин растёт")
        assert slug.startswith("article-")
        assert slug == slugify("Биткоин растёт")


class TestStripHtml:
    """Tests for markup stripping."""

    def test_strips_cdata_and_tags(self) -> None:
        """Should unwrap CDATA and drop tags."""
        assert strip_html("<![CDATA[<p>Hello <b>world</b></p>]]>") == "Hello world"

    def test_collapses_whitespace(self) -> None:
        """Should collapse runs of whitespace."""
        assert strip_html("a\n\n   b\tc") == "a b c"


class TestTags:
    """Tests for keyword tags and tag merging."""

    def test_whole_word_match_only(self) -> None:
        """Should not match vocabulary terms inside longer words."""
        tags = extract_keyword_tags("An ethereal tokenization story about Bitcoin")
        assert "eth" not in tags
        assert "token" not in tags
        assert "bitcoin" in tags

    def test_keyword_limit(self) -> None:
        """Should return at most five keyword tags."""
        text = "bitcoin ethereum solana cardano polkadot chainlink binance"
        assert len(extract_keyword_tags(text)) == 5

    def test_merge_dedupes_and_caps(self) -> None:
        """Should keep first occurrences and cap at ten tags."""
        merged = merge_tags(["crypto", "news"], ["news", "x"], [f"tag{i}" for i in range(20)])
        assert merged[:2] == ["crypto", "news"]
        assert "x" not in merged
        assert len(merged) == 10


class TestExcerpt:
    """Tests for excerpt generation."""

    def test_short_text_unchanged(self) -> None:
        """Should return text shorter than the limit as is."""
        assert make_excerpt("short text", 200) == "short text"

    def test_cuts_at_word_boundary(self) -> None:
        """Should cut on a word boundary and add an ellipsis."""
        assert make_excerpt("alpha beta gamma delta", 13) == "alpha beta..."


class TestUrls:
    """Tests for URL helpers."""

    def test_protocol_relative(self) -> None:
        """Should default protocol-relative links to https."""
        url = absolute_url("//cdn.example.com/a.jpg", "https://x.com")
        assert url == "https://cdn.example.com/a.jpg"

    def test_relative(self) -> None:
        """Should resolve relative links against the base."""
        assert absolute_url("/news/a", "https://x.com/news/") == "https://x.com/news/a"

    def test_host_of_strips_www(self) -> None:
        """Should drop a leading www."""
        assert host_of("https://www.coindesk.com/markets/") == "coindesk.com"
