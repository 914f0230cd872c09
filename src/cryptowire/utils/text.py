"""Text helpers shared by the feed, crawl and extraction stages."""

import hashlib
import re
from urllib.parse import urljoin, urlparse

SLUG_MAX_LENGTH = 100
TITLE_MAX_LENGTH = 255
EXCERPT_MAX_LENGTH = 500
MAX_TAGS = 10
MAX_KEYWORD_TAGS = 5

CDATA_PATTERN = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")
NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9]+")

CRYPTO_TERMS = (
    "bitcoin", "btc", "ethereum", "eth", "crypto", "blockchain",
    "defi", "nft", "solana", "sol", "cardano", "ada", "polkadot",
    "dot", "chainlink", "link", "binance", "bnb", "ripple", "xrp",
    "dogecoin", "doge", "shiba", "avalanche", "avax", "polygon",
    "matic", "uniswap", "uni", "trading", "investment", "price",
    "market", "bullish", "bearish", "mining", "staking", "yield",
    "exchange", "wallet", "token", "coin", "altcoin", "hodl",
    "regulation", "sec", "etf", "institutional", "adoption",
)

_TERM_PATTERNS = {term: re.compile(rf"\b{re.escape(term)}\b") for term in CRYPTO_TERMS}


def strip_cdata(value: str) -> str:
    """Unwrap any CDATA sections, keeping their inner text."""
    return CDATA_PATTERN.sub(r"\1", value)


def strip_html(value: str) -> str:
    """Remove CDATA wrappers and markup, collapsing whitespace."""
    text = TAG_PATTERN.sub(" ", strip_cdata(value))
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def slugify(title: str) -> str:
    """Derive the article slug from its title.

    Lowercases, collapses every run of non-alphanumerics into one hyphen and
    truncates. Titles with no latin alphanumerics get a stable hash instead so
    the slug is never empty.
    """
    slug = NON_ALNUM_PATTERN.sub("-", title.lower()).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    if not slug:
        slug = "article-" + hashlib.sha1(title.encode("utf-8")).hexdigest()[:12]
    return slug


def extract_keyword_tags(text: str, limit: int = MAX_KEYWORD_TAGS) -> list[str]:
    """Return crypto vocabulary terms that occur as whole words in text."""
    lowered = text.lower()
    found = [term for term in CRYPTO_TERMS if _TERM_PATTERNS[term].search(lowered)]
    return found[:limit]


def merge_tags(*groups: list[str], limit: int = MAX_TAGS) -> list[str]:
    """Union tag groups in order, dropping blanks, duplicates and oversized tags."""
    merged: list[str] = []
    for group in groups:
        for tag in group:
            tag = tag.strip()
            if 1 < len(tag) < 30 and tag not in merged:
                merged.append(tag)
    return merged[:limit]


def make_excerpt(text: str, length: int) -> str:
    """Cut plain text to length at a word boundary."""
    text = WHITESPACE_PATTERN.sub(" ", text).strip()
    if len(text) <= length:
        return text
    return re.sub(r"\s+\S*$", "", text[:length]) + "..."


def absolute_url(href: str, base_url: str) -> str:
    """Resolve protocol-relative and relative links against base_url."""
    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    return urljoin(base_url, href)


def host_of(url: str) -> str:
    """Hostname of url without a leading www."""
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
