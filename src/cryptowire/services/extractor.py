"""Full-text extraction for article candidates.

Content is located by trying an ordered list of strategies against the parsed
page. A strategy is a plain function taking the document and returning the
extracted fragment, or None to hand over to the next one. Site-specific
selectors come first, then generic containers, then paragraph sweeps.
"""

import html
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import trafilatura
from bs4 import BeautifulSoup, Comment, Tag

from cryptowire.clients.http import FetchError, Session
from cryptowire.clients.storage import ImageStorage
from cryptowire.models import (
    ArticleCandidate,
    ExtractedContent,
    ImageRef,
    QualityFlag,
    RejectReason,
    SourceMode,
)
from cryptowire.services.quality import classify_quality, is_price_widget
from cryptowire.utils.logging import get_logger
from cryptowire.utils.text import (
    MAX_TAGS,
    TITLE_MAX_LENGTH,
    absolute_url,
    host_of,
    make_excerpt,
    merge_tags,
)

logger = get_logger(__name__)

MAX_IMAGES = 10
MIN_IMAGE_SIDE = 200
DEFAULT_MAX_IMAGE_SIZE = 5 * 1024 * 1024

CONTAINER_MIN_TEXT = 200
FALLBACK_MIN_TEXT = 300
FALLBACK_MIN_PARAGRAPH = 20
PAGE_MIN_PARAGRAPH = 50

JUNK_SELECTOR = (
    "script, style, noscript, iframe, .advertisement, .ads, .social-share, .related-posts"
)
CHROME_SELECTOR = "nav, header, footer, .sidebar"


@dataclass(frozen=True)
class SiteSelectors:
    content: str
    image: str


SITE_SELECTORS: dict[str, SiteSelectors] = {
    "cointelegraph.com": SiteSelectors(
        ".post-content, .post__content, article .content, .article-content",
        ".post__lead-image img, .post-cover img, .article-image img",
    ),
    "decrypt.co": SiteSelectors(
        '.post-content, .article-content, [data-module="ArticleBody"]',
        ".featured-image img, .post-featured-image img",
    ),
    "coindesk.com": SiteSelectors(
        ".at-content .at-text, .articleBody, .story-body, .at-body .at-text, "
        '[data-module="ArticleBody"], .article-content, .post-content p, .entry-content p',
        ".featured-image img, .lead-image img, .article-hero img, .hero-image img, .at-image img",
    ),
    "u.today": SiteSelectors(
        ".article-body, .post-content, .content",
        ".article-image img, .featured-image img",
    ),
    "newsbtc.com": SiteSelectors(
        ".entry-content, .post-content, .article-content",
        ".featured-image img, .post-thumbnail img",
    ),
    "beincrypto.com": SiteSelectors(
        ".post-content, .article-content, .entry-content",
        ".featured-image img, .post-image img",
    ),
    "cryptopotato.com": SiteSelectors(
        ".post-content, .article-content, .entry-content",
        ".featured-image img, .post-thumbnail img",
    ),
    "cryptoslate.com": SiteSelectors(
        ".post-content, .article-content, .entry-content",
        ".featured-image img, .post-image img",
    ),
}

GENERIC_SELECTORS = SiteSelectors(
    ".post-content, .article-content, .entry-content, .content, article p",
    '.featured-image img, .post-image img, .article-image img, img[class*="featured"]',
)

FALLBACK_CONTAINER_SELECTORS = (
    ".at-content .at-text",
    ".at-body .at-text",
    ".story-body",
    ".articleBody",
    "article .content",
    "article .text",
    "article .body",
    ".post-content",
    ".entry-content",
    ".article-content",
)
FALLBACK_PARAGRAPH_SELECTORS = ("article p", ".post p", ".entry p", "main p")

PAGE_CONTENT_SELECTORS = (
    ".article-content",
    ".post-content",
    ".entry-content",
    ".content",
    "article .text",
    ".article-body",
    ".post-body",
)

IMAGE_PATTERN_SELECTORS = (
    'img[src*="featured"]',
    'img[src*="hero"]',
    'img[src*="banner"]',
    'img[src*="cover"]',
    'img[src*="thumb"]',
    ".hero img",
    ".banner img",
    ".cover img",
    ".thumbnail img",
    'img[width="1200"]',
    'img[width="1434"]',
    'img[height="600"]',
)
CONTENT_IMAGE_SELECTORS = (
    ".article-image img",
    ".featured-image img",
    ".post-thumbnail img",
    "article img",
    ".content img",
)
META_IMAGE_SELECTORS = (
    'meta[property="og:image"]',
    'meta[name="twitter:image"]',
    'meta[property="og:image:url"]',
)
IMAGE_SRC_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")

TITLE_SELECTORS = (
    "h1.article-title",
    "h1.post-title",
    "h1.entry-title",
    ".article-header h1",
    ".post-header h1",
    "h1",
    "title",
)
DATE_SELECTORS = ("time[datetime]", ".publish-date", ".post-date", ".article-date", "[data-date]")
TAG_SELECTOR = ".tags a, .post-tags a, .article-tags a, .tag-links a"

WHITESPACE = re.compile(r"\s+")


class ExtractionRejected(Exception):
    """Raised when a page was fetched but its content is not acceptable."""

    def __init__(self, reason: RejectReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


@dataclass
class Fragment:
    """Body found by a strategy."""

    html: str
    text: str


ContentStrategy = Callable[[BeautifulSoup], Fragment | None]


def _strip(element: Tag, selector: str) -> None:
    for node in element.select(selector):
        node.decompose()
    for comment in element.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()


def clean_html(fragment: str) -> str:
    """Collapse whitespace in an HTML fragment."""
    return WHITESPACE.sub(" ", fragment).strip()


def container(
    selector: str,
    min_text: int,
    strip: str = JUNK_SELECTOR,
    skip_price_widget: bool = False,
) -> ContentStrategy:
    """Strategy taking the first element matching selector.

    Accepts it when its text is longer than min_text, and, with
    skip_price_widget, when the text is not a ticker widget.
    """

    def strategy(soup: BeautifulSoup) -> Fragment | None:
        element = soup.select_one(selector)
        if element is None:
            return None
        _strip(element, strip)
        text = element.get_text(" ", strip=True)
        if len(text) <= min_text:
            return None
        if skip_price_widget and is_price_widget(text):
            logger.info("Skipping price widget", selector=selector)
            return None
        return Fragment(clean_html(element.decode_contents()), text)

    return strategy


def paragraphs(
    selector: str,
    min_paragraph: int,
    min_total: int,
    skip_price_widget: bool = False,
) -> ContentStrategy:
    """Strategy concatenating every paragraph with more than min_paragraph characters."""

    def strategy(soup: BeautifulSoup) -> Fragment | None:
        kept = []
        for p in soup.select(selector):
            _strip(p, JUNK_SELECTOR)
            text = p.get_text(" ", strip=True)
            if len(text) > min_paragraph:
                kept.append((p, text))
        if not kept:
            return None
        text = " ".join(t for _, t in kept)
        if len(text) <= min_total:
            return None
        if skip_price_widget and is_price_widget(text):
            logger.info("Skipping price widget", selector=selector)
            return None
        body = "".join(f"<p>{clean_html(p.decode_contents())}</p>" for p, _ in kept)
        return Fragment(body, text)

    return strategy


def readable_text(min_text: int) -> ContentStrategy:
    """Strategy handing the whole document to trafilatura."""

    def strategy(soup: BeautifulSoup) -> Fragment | None:
        content = trafilatura.extract(
            str(soup),
            include_comments=False,
            include_tables=False,
            no_fallback=False,
        )
        if not content or len(content) <= min_text:
            return None
        lines = [line.strip() for line in content.splitlines() if line.strip()]
        body = "".join(f"<p>{html.escape(line)}</p>" for line in lines)
        return Fragment(body, " ".join(lines))

    return strategy


def feed_strategies(host: str) -> list[ContentStrategy]:
    """Chain for the feed-plus-fetch path: per-domain table, then stricter fallbacks."""
    site = SITE_SELECTORS.get(host, GENERIC_SELECTORS)
    chain = [container(site.content, CONTAINER_MIN_TEXT)]
    chain.extend(
        container(
            s, FALLBACK_MIN_TEXT, f"{JUNK_SELECTOR}, {CHROME_SELECTOR}", skip_price_widget=True
        )
        for s in FALLBACK_CONTAINER_SELECTORS
    )
    chain.extend(
        paragraphs(s, FALLBACK_MIN_PARAGRAPH, FALLBACK_MIN_TEXT, skip_price_widget=True)
        for s in FALLBACK_PARAGRAPH_SELECTORS
    )
    return chain


def page_strategies(host: str) -> list[ContentStrategy]:
    """Chain for the page-scrape path: site, generic containers, readability, paragraphs."""
    chain: list[ContentStrategy] = []
    if host in SITE_SELECTORS:
        chain.append(container(SITE_SELECTORS[host].content, CONTAINER_MIN_TEXT))
    chain.extend(container(s, CONTAINER_MIN_TEXT) for s in PAGE_CONTENT_SELECTORS)
    chain.append(readable_text(CONTAINER_MIN_TEXT))
    chain.append(paragraphs("p", PAGE_MIN_PARAGRAPH, 0))
    return chain


def run_strategies(soup: BeautifulSoup, chain: list[ContentStrategy]) -> Fragment | None:
    for strategy in chain:
        fragment = strategy(soup)
        if fragment is not None:
            return fragment
    return None


def degraded_body(excerpt: str, source_url: str) -> str:
    """Short body used when full text is unavailable: the excerpt plus a source link."""
    link = (
        f'<p><em>Full text available at the <a href="{html.escape(source_url)}" '
        f'target="_blank" rel="noopener">source</a>.</em></p>'
    )
    if not excerpt:
        return link
    return f"<p><strong>Summary:</strong></p><p>{html.escape(excerpt)}</p>{link}"


def _image_src(img: Tag) -> str | None:
    for attribute in IMAGE_SRC_ATTRIBUTES:
        value = img.get(attribute)
        if value and not value.startswith("data:"):
            return value
    return None


def _is_icon(img: Tag) -> bool:
    width, height = img.get("width"), img.get("height")
    if not width or not height:
        return False
    try:
        return int(width) < MIN_IMAGE_SIDE or int(height) < MIN_IMAGE_SIDE
    except ValueError:
        return False


def extract_images(
    soup: BeautifulSoup, page_url: str, site_selector: str | None = None
) -> list[ImageRef]:
    """Collect up to ten article images, featured first.

    Site selectors are tried first, then attribute-pattern and content image
    selectors; Open Graph and Twitter Card tags are used only when nothing
    else matched. Images declaring both dimensions with either side under
    200px are skipped.
    """
    selectors = [site_selector] if site_selector else []
    selectors.extend(IMAGE_PATTERN_SELECTORS)
    selectors.extend(CONTENT_IMAGE_SELECTORS)

    images: list[ImageRef] = []
    seen: set[str] = set()
    for selector in selectors:
        for img in soup.select(selector):
            src = _image_src(img)
            if not src or _is_icon(img):
                continue
            url = absolute_url(src, page_url)
            if url in seen:
                continue
            seen.add(url)
            images.append(ImageRef(url=url, alt=img.get("alt") or ""))
            if len(images) >= MAX_IMAGES:
                return images

    if not images:
        for selector in META_IMAGE_SELECTORS:
            meta = soup.select_one(selector)
            if meta is not None and meta.get("content"):
                images.append(ImageRef(url=absolute_url(meta["content"], page_url)))
                break
    return images


def extract_title(soup: BeautifulSoup) -> str | None:
    for selector in TITLE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        title = element.get_text(" ", strip=True)
        if len(title) > 10:
            return title[:200]
    return None


def _parse_date(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def extract_published_at(soup: BeautifulSoup) -> datetime | None:
    for selector in DATE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        value = element.get("datetime") or element.get("data-date") or element.get_text(strip=True)
        if value and (parsed := _parse_date(value)):
            return parsed
    return None


def extract_tags(soup: BeautifulSoup) -> list[str]:
    return merge_tags([a.get_text(strip=True) for a in soup.select(TAG_SELECTOR)], limit=MAX_TAGS)


class ContentExtractor:
    """Turns candidates into article bodies, one at a time, over a crawl session."""

    def __init__(
        self,
        session: Session,
        min_content_length: int = 500,
        excerpt_length: int = 200,
        storage: ImageStorage | None = None,
        save_images: bool = True,
        max_image_size: int = DEFAULT_MAX_IMAGE_SIZE,
    ) -> None:
        self._session = session
        self._min_content_length = min_content_length
        self._excerpt_length = excerpt_length
        self._storage = storage
        self._save_images = save_images
        self._max_image_size = max_image_size

    async def extract(self, candidate: ArticleCandidate) -> ExtractedContent:
        """Fetch the candidate's page and extract its content.

        Raises:
            FetchError: If the page could not be fetched, after the single 403 retry.
            ExtractionRejected: If a scraped page is too short or low quality.
        """
        page = await self._session.fetch_page(
            candidate.source_url,
            home_url=candidate.home_url or None,
            referer=candidate.home_url or None,
        )
        soup = BeautifulSoup(page, "html.parser")

        if candidate.mode is SourceMode.PAGE:
            return self._from_page(candidate, soup)
        return self._from_feed_item(candidate, soup)

    def _from_feed_item(self, candidate: ArticleCandidate, soup: BeautifulSoup) -> ExtractedContent:
        host = host_of(candidate.source_url)
        site = SITE_SELECTORS.get(host, GENERIC_SELECTORS)
        images = extract_images(soup, candidate.source_url, site.image)

        fragment = run_strategies(soup, feed_strategies(host)) or Fragment("", "")
        verdict = classify_quality(fragment.html, fragment.text)

        if not verdict.ok:
            logger.info(
                "Falling back to feed excerpt",
                url=candidate.source_url,
                reason=verdict.reason,
                length=len(fragment.text),
            )
            return ExtractedContent(
                html_body=degraded_body(candidate.excerpt, candidate.source_url),
                plain_text_length=len(candidate.excerpt),
                quality_flag=QualityFlag.DEGRADED,
                excerpt=make_excerpt(candidate.excerpt, self._excerpt_length),
                featured_image=images[0] if images else None,
                gallery_images=images[1:],
            )

        logger.info("Full text extracted", url=candidate.source_url, length=len(fragment.text))
        return ExtractedContent(
            html_body=fragment.html,
            plain_text_length=len(fragment.text),
            excerpt=make_excerpt(candidate.excerpt or fragment.text, self._excerpt_length),
            featured_image=images[0] if images else None,
            gallery_images=images[1:],
        )

    def _from_page(self, candidate: ArticleCandidate, soup: BeautifulSoup) -> ExtractedContent:
        # Metadata first: content strategies strip page chrome from the tree
        host = host_of(candidate.source_url)
        site = SITE_SELECTORS.get(host)
        metadata = trafilatura.extract_metadata(str(soup))
        title = extract_title(soup) or (metadata.title if metadata and metadata.title else None)
        published_at = extract_published_at(soup)
        if published_at is None and metadata and metadata.date:
            published_at = _parse_date(metadata.date)
        tags = merge_tags(
            extract_tags(soup),
            list(metadata.tags or []) if metadata else [],
        )
        images = extract_images(soup, candidate.source_url, site.image if site else None)

        fragment = run_strategies(soup, page_strategies(host)) or Fragment("", "")
        verdict = classify_quality(
            fragment.html, fragment.text, min_length=self._min_content_length
        )
        if not verdict.ok:
            reason = (
                RejectReason.TOO_SHORT
                if verdict.reason == "too_short"
                else RejectReason.DEGRADED_QUALITY
            )
            logger.info(
                "Page content rejected",
                url=candidate.source_url,
                reason=reason.value,
                length=len(fragment.text),
            )
            raise ExtractionRejected(reason, f"{len(fragment.text)} chars")

        logger.info("Page content extracted", url=candidate.source_url, length=len(fragment.text))
        return ExtractedContent(
            html_body=fragment.html,
            plain_text_length=len(fragment.text),
            title=title[:TITLE_MAX_LENGTH] if title else None,
            excerpt=make_excerpt(fragment.text, self._excerpt_length),
            published_at=published_at,
            featured_image=images[0] if images else None,
            gallery_images=images[1:],
            extracted_tags=tags,
        )

    async def persist_images(
        self, content: ExtractedContent, slug: str, referer: str | None = None
    ) -> None:
        """Replace remote image URLs with stored copies.

        Images that fail to download, are not images or exceed the size limit
        are dropped. Without storage, or with image saving off, the remote
        URLs are kept as they are.
        """
        if self._storage is None or not self._save_images:
            return

        stored: list[ImageRef] = []
        images = [content.featured_image] if content.featured_image else []
        for image in images + content.gallery_images:
            url = await self._store_image(image.url, slug, referer)
            if url:
                stored.append(ImageRef(url=url, alt=image.alt))

        content.featured_image = stored[0] if stored else None
        content.gallery_images = stored[1:]

    async def _store_image(self, url: str, slug: str, referer: str | None) -> str | None:
        try:
            data, content_type = await self._session.get_bytes(url, referer=referer)
        except FetchError as e:
            logger.warning("Image download failed", url=url, reason=e.reason)
            return None

        if not content_type.startswith("image/"):
            logger.info("Skipping non-image resource", url=url, content_type=content_type)
            return None
        if len(data) > self._max_image_size:
            logger.info("Skipping oversized image", url=url, size=len(data))
            return None

        try:
            return self._storage.upload_image(data, content_type, slug)
        except Exception as e:
            logger.warning("Failed to upload image, skipping", url=url, error=str(e))
            return None
