"""Source registry: the fixed set of sites the pipeline reads from."""

import json
from pathlib import Path

from cryptowire.models import Source, SourceMode
from cryptowire.utils.logging import get_logger
from cryptowire.utils.text import origin_of

logger = get_logger(__name__)

DEFAULT_LISTING_URL = "https://cryptonews.com/news/"

DEFAULT_FEED_SOURCES: tuple[Source, ...] = (
    Source("Decrypt", "https://decrypt.co/feed", "https://decrypt.co", weight=3),
    Source(
        "CoinDesk",
        "https://www.coindesk.com/arc/outboundfeeds/rss/",
        "https://www.coindesk.com",
        weight=3,
    ),
    Source("U.Today", "https://u.today/rss", "https://u.today", weight=2),
    Source("NewsBTC", "https://www.newsbtc.com/feed/", "https://www.newsbtc.com", weight=2),
    Source("BeInCrypto", "https://beincrypto.com/feed/", "https://beincrypto.com", weight=2),
    Source("CryptoPotato", "https://cryptopotato.com/feed/", "https://cryptopotato.com", weight=2),
    Source("CryptoSlate", "https://cryptoslate.com/feed/", "https://cryptoslate.com", weight=2),
    # Lowest priority: full text is usually behind a JS challenge
    Source("CoinTelegraph", "https://cointelegraph.com/rss", "https://cointelegraph.com", weight=1),
)


def listing_source(listing_url: str) -> Source:
    """Page-mode source for the configured listing page."""
    base_url = origin_of(listing_url)
    name = base_url.split("//", 1)[-1].removeprefix("www.")
    return Source(name, listing_url, base_url, weight=1, mode=SourceMode.PAGE)


def load_sources(listing_url: str = DEFAULT_LISTING_URL, path: Path | None = None) -> list[Source]:
    """Load the registry, from a JSON file when one is given.

    The file holds a list of objects with ``name``, ``fetch_url``, ``base_url`` and
    optional ``weight`` and ``mode`` keys. Without a file the built-in feed sources
    are used together with a page source for ``listing_url``.

    Raises:
        ValueError: If the file is malformed or lists no sources.
    """
    if path is None:
        return [*DEFAULT_FEED_SOURCES, listing_source(listing_url)]

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        sources = [
            Source(
                name=item["name"],
                fetch_url=item["fetch_url"],
                base_url=item.get("base_url") or origin_of(item["fetch_url"]),
                weight=int(item.get("weight", 1)),
                mode=SourceMode(item.get("mode", SourceMode.FEED.value)),
            )
            for item in raw
        ]
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"invalid sources file {path}: {e}") from e

    if not sources:
        raise ValueError(f"sources file {path} lists no sources")
    logger.info("Loaded source registry", path=str(path), count=len(sources))
    return sources


def sources_for_mode(sources: list[Source], mode: SourceMode) -> list[Source]:
    return [s for s in sources if s.mode == mode]
