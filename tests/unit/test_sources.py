"""Unit tests for the source registry."""

import json
from pathlib import Path

import pytest

from cryptowire.models import SourceMode
from cryptowire.sources import (
    DEFAULT_FEED_SOURCES,
    listing_source,
    load_sources,
    sources_for_mode,
)


class TestRegistry:
    """Tests for the built-in and file-backed registry."""

    def test_defaults_include_listing_page(self) -> None:
        """Should add a page source for the listing URL to the feed sources."""
        sources = load_sources("https://cryptonews.com/news/")
        assert len(sources) == len(DEFAULT_FEED_SOURCES) + 1
        [page] = sources_for_mode(sources, SourceMode.PAGE)
        assert page.fetch_url == "https://cryptonews.com/news/"
        assert page.base_url == "https://cryptonews.com"

    def test_cointelegraph_lowest_weight(self) -> None:
        """Should rank the JS-challenged source below the others."""
        weights = {s.name: s.weight for s in DEFAULT_FEED_SOURCES}
        assert weights["CoinTelegraph"] == min(weights.values())

    def test_listing_source_name(self) -> None:
        """Should name a page source after its host."""
        assert listing_source("https://www.example.com/latest").name == "example.com"

    def test_file(self, tmp_path: Path) -> None:
        """Should read sources from JSON, defaulting weight, mode and base URL."""
        path = tmp_path / "sources.json"
        path.write_text(json.dumps([{"name": "A", "fetch_url": "https://a.example/rss"}]))

        [source] = load_sources(path=path)

        assert source.base_url == "https://a.example"
        assert source.weight == 1
        assert source.mode is SourceMode.FEED

    @pytest.mark.parametrize("content", ["[]", "{not json", '[{"name": "missing url"}]'])
    def test_invalid_file(self, tmp_path: Path, content: str) -> None:
        """Should reject empty or malformed registries."""
        path = tmp_path / "sources.json"
        path.write_text(content)
        with pytest.raises(ValueError):
            load_sources(path=path)
