"""Browser-like HTTP session used for one crawl."""

import asyncio
import random
from collections.abc import Awaitable, Callable

import httpx

from cryptowire.utils.logging import get_logger
from cryptowire.utils.text import host_of, origin_of

logger = get_logger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
)

DOCUMENT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)
IMAGE_ACCEPT = "image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"

BLOCKED_BACKOFF_RANGE = (3.0, 10.0)
WARM_UP_PAUSE_RANGE = (2.0, 5.0)

Sleep = Callable[[float], Awaitable[None]]


class FetchError(Exception):
    """Raised when a page cannot be fetched."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class BlockedError(FetchError):
    """Raised on an HTTP 403 anti-bot response."""


class Session:
    """HTTP session owned by a single crawl invocation.

    Holds the cookie jar captured by the warm-up request and rotates the
    User-Agent per request. It is never shared between concurrent source
    fetches; each run opens its own.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_redirects: int = 5,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def has_cookies_for(self, url: str) -> bool:
        """Whether the jar holds a cookie that would be sent to url's host."""
        host = host_of(url)
        for cookie in self._client.cookies.jar:
            domain = cookie.domain.lstrip(".")
            domain = domain[4:] if domain.startswith("www.") else domain
            if host == domain or host.endswith(f".{domain}"):
                return True
        return False

    def clear_cookies(self) -> None:
        self._client.cookies.clear()

    def headers(self, referer: str | None = None, accept: str = DOCUMENT_ACCEPT) -> dict[str, str]:
        """Browser-like request headers with a rotated User-Agent."""
        headers = {
            "User-Agent": self._rng.choice(USER_AGENTS),
            "Accept": accept,
            "Accept-Language": "en-US,en;q=0.9",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin" if referer else "none",
            "Sec-Fetch-User": "?1",
            "Cache-Control": "max-age=0",
        }
        if referer:
            headers["Referer"] = referer
        return headers

    async def warm_up(self, home_url: str) -> bool:
        """Visit the site's homepage to pick up fresh session cookies.

        Returns:
            True if the homepage answered below 500, False otherwise.
        """
        logger.info("Warming up session", url=home_url)
        try:
            response = await self._client.get(home_url, headers=self.headers())
        except httpx.HTTPError as e:
            logger.warning("Session warm-up failed", url=home_url, error=str(e))
            return False
        await self._sleep(self._rng.uniform(*WARM_UP_PAUSE_RANGE))
        logger.info(
            "Session warmed up",
            url=home_url,
            status=response.status_code,
            cookies=len(self._client.cookies),
        )
        return response.status_code < 500

    async def get_text(
        self, url: str, referer: str | None = None, accept: str = DOCUMENT_ACCEPT
    ) -> str:
        """Fetch url and return the decoded body.

        Raises:
            BlockedError: On HTTP 403.
            FetchError: On any other HTTP error status, timeout or transport error.
        """
        response = await self._get(url, self.headers(referer, accept))
        return response.text

    async def get_bytes(self, url: str, referer: str | None = None) -> tuple[bytes, str]:
        """Fetch a binary resource such as an image.

        Returns:
            Tuple of (body, content type).
        """
        response = await self._get(url, self.headers(referer, IMAGE_ACCEPT))
        return response.content, response.headers.get("content-type", "")

    async def fetch_page(
        self, url: str, home_url: str | None = None, referer: str | None = None
    ) -> str:
        """Fetch an article page, retrying exactly once after a 403.

        On a 403 the cookie jar is cleared, a randomized backoff elapses, the
        session is re-established against the homepage and the fetch is retried
        a single time. A second failure propagates to the caller.
        """
        if home_url and not self.has_cookies_for(home_url):
            await self.warm_up(home_url)
        try:
            return await self.get_text(url, referer=referer)
        except BlockedError:
            backoff = self._rng.uniform(*BLOCKED_BACKOFF_RANGE)
            logger.warning("Page blocked, resetting session", url=url, backoff=round(backoff, 2))
            self.clear_cookies()
            await self._sleep(backoff)
            await self.warm_up(home_url or origin_of(url))
            return await self.get_text(url, referer=referer)

    async def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        try:
            response = await self._client.get(url, headers=headers)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("HTTP error fetching URL", url=url, status=status)
            if status == 403:
                raise BlockedError(f"HTTP {status}") from e
            raise FetchError(f"HTTP {status}") from e
        except httpx.TimeoutException as e:
            logger.warning("Timeout fetching URL", url=url)
            raise FetchError("timeout") from e
        except httpx.TooManyRedirects as e:
            logger.warning("Too many redirects", url=url)
            raise FetchError("too many redirects") from e
        except httpx.RequestError as e:
            logger.warning("Request error fetching URL", url=url, error=str(e))
            raise FetchError(f"request error: {e}") from e
