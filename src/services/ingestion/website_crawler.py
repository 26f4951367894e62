"""Bounded-depth, same-origin website crawler built on httpx.

The crawler walks a site breadth-first from a seed URL, following links
found in each HTML page up to ``max_depth`` hops.  Only pages on the seed's
origin are visited, and URLs that are unlikely to carry readable content
(query strings, fragments, cart/account/login/checkout pages, images,
stylesheets, scripts, PDFs) are skipped.  PDFs are left to the file-upload
path.

Two budgets bound a crawl:

- each page fetch has its own timeout and is retried a few times on
  transport errors;
- the whole crawl runs under ``asyncio.wait_for``; when that expires the
  crawl aborts with :class:`~src.utils.errors.CrawlTimeoutError`.

A seed URL that cannot be reached at all raises
:class:`~src.utils.errors.CrawlConnectivityError`; a seed that accepts the
connection but never answers raises
:class:`~src.utils.errors.CrawlTimeoutError`, so callers can tell a slow
site from an unreachable one.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from urllib.parse import urljoin, urlsplit

import httpx
import structlog
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field

from src.utils.errors import CrawlConnectivityError, CrawlError, CrawlTimeoutError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_USER_AGENT = "botforge-crawler/0.1"

_EXCLUDED_PATH_PATTERNS: tuple[str, ...] = ("/cart", "/account", "/login", "/checkout")
_EXCLUDED_EXTENSIONS: tuple[str, ...] = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".css", ".js",
)
_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# getaddrinfo failures surface as ConnectError with one of these messages.
_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
)

NOT_FOUND_MESSAGE = "Website not found. Please check if the URL is correct."
UNREACHABLE_MESSAGE = (
    "Could not connect to the website. "
    "Please check if the URL is correct and the website is accessible."
)


def timeout_message(seconds: float) -> str:
    """Describe the crawl budget the way users read it ('2 minutes', '0.5 seconds')."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"Website crawling timed out after {minutes} minute{'' if minutes == 1 else 's'}"
    return f"Website crawling timed out after {seconds:g} seconds"


class CrawledPage(BaseModel):
    """One fetched HTML page."""

    model_config = ConfigDict(frozen=True)

    url: str
    html: str
    title: str = ""
    depth: int = Field(default=0, ge=0)


class WebsiteCrawler:
    """Breadth-first crawler limited to one origin.

    Parameters
    ----------
    http_client:
        Optional shared ``httpx.AsyncClient``; one is created per crawl
        when omitted.
    max_pages:
        Upper bound on pages returned by one crawl.
    page_timeout:
        Seconds allowed for a single page fetch.
    max_retries:
        Attempts per page on transport errors.
    retry_delay:
        Seconds to wait between attempts.
    total_timeout:
        Wall-clock seconds allowed for the whole crawl.
    extra_exclude_patterns:
        Additional path substrings to skip (from ``config.yaml``).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        max_pages: int = 50,
        page_timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        total_timeout: float = 120.0,
        extra_exclude_patterns: Iterable[str] = (),
        user_agent: str = _DEFAULT_USER_AGENT,
    ) -> None:
        self._client = http_client
        self._max_pages = max_pages
        self._page_timeout = page_timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._total_timeout = total_timeout
        self._exclude_patterns = _EXCLUDED_PATH_PATTERNS + tuple(extra_exclude_patterns)
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def crawl(self, url: str, max_depth: int = 1) -> list[CrawledPage]:
        """Crawl *url* and return the HTML pages found within *max_depth* hops.

        Raises
        ------
        CrawlTimeoutError
            If the whole crawl exceeds ``total_timeout`` or the seed URL
            keeps timing out.
        CrawlConnectivityError
            If the seed URL cannot be reached.
        CrawlError
            If the seed URL is malformed or answers with an HTTP error.
        """
        seed = url.strip()
        parts = urlsplit(seed)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise CrawlError(message=f"Invalid website URL: {url}", provider_name="crawler")

        logger.info("crawl_started", url=seed, max_depth=max_depth)
        try:
            pages = await asyncio.wait_for(
                self._crawl(seed, max_depth),
                timeout=self._total_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("crawl_timed_out", url=seed, timeout_s=self._total_timeout)
            raise CrawlTimeoutError(
                message=timeout_message(self._total_timeout),
                provider_name="crawler",
            ) from exc

        logger.info("crawl_finished", url=seed, pages=len(pages))
        return pages

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _crawl(self, seed: str, max_depth: int) -> list[CrawledPage]:
        if self._client is not None:
            return await self._walk(self._client, seed, max_depth)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self._page_timeout),
            headers=self._headers,
            follow_redirects=True,
        ) as client:
            return await self._walk(client, seed, max_depth)

    async def _walk(self, client: httpx.AsyncClient, seed: str, max_depth: int) -> list[CrawledPage]:
        origin = self._origin(seed)
        queue: deque[tuple[str, int]] = deque([(seed, 0)])
        seen = {self._visit_key(seed)}
        pages: list[CrawledPage] = []

        while queue and len(pages) < self._max_pages:
            page_url, depth = queue.popleft()
            is_seed = depth == 0

            try:
                response = await self._fetch_page(client, page_url)
            except httpx.ConnectError as exc:
                if is_seed:
                    raise CrawlConnectivityError(
                        message=self._connectivity_message(exc),
                        provider_name="crawler",
                    ) from exc
                logger.debug("crawl_page_unreachable", url=page_url, error=str(exc))
                continue
            except httpx.TimeoutException as exc:
                if is_seed:
                    raise CrawlTimeoutError(
                        message=f"Website did not respond within {self._page_timeout:g} seconds",
                        provider_name="crawler",
                    ) from exc
                logger.debug("crawl_page_timed_out", url=page_url, error=str(exc))
                continue
            except httpx.TransportError as exc:
                if is_seed:
                    raise CrawlConnectivityError(
                        message=UNREACHABLE_MESSAGE,
                        provider_name="crawler",
                    ) from exc
                logger.debug("crawl_page_failed", url=page_url, error=str(exc))
                continue

            if response.status_code >= 400:
                if is_seed:
                    raise CrawlError(
                        message=f"Website returned HTTP {response.status_code} for {page_url}",
                        provider_name="crawler",
                    )
                logger.debug("crawl_page_http_error", url=page_url, status=response.status_code)
                continue

            content_type = response.headers.get("content-type", "").lower()
            if not any(kind in content_type for kind in _HTML_CONTENT_TYPES):
                logger.debug("crawl_page_not_html", url=page_url, content_type=content_type)
                continue

            html = response.text
            soup = BeautifulSoup(html, "html.parser")
            title_tag = soup.find("title")
            pages.append(
                CrawledPage(
                    url=page_url,
                    html=html,
                    title=title_tag.get_text(strip=True) if title_tag else "",
                    depth=depth,
                )
            )

            if depth >= max_depth:
                continue
            for anchor in soup.find_all("a", href=True):
                link = urljoin(page_url, anchor["href"].strip())
                key = self._visit_key(link)
                if key in seen or not self.should_follow(link, origin):
                    continue
                seen.add(key)
                queue.append((link, depth + 1))

        return pages

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """GET *url*, retrying transport errors up to ``max_retries`` times."""
        last_error: httpx.TransportError | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                return await client.get(url, timeout=self._page_timeout, headers=self._headers)
            except httpx.TransportError as exc:
                last_error = exc
                logger.debug(
                    "crawl_fetch_retry",
                    url=url,
                    attempt=attempt,
                    error=type(exc).__name__,
                )
                if attempt < self._max_retries and self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay)
        if last_error is None:
            raise CrawlError(message=f"No fetch attempted for {url}", provider_name="crawler")
        raise last_error

    def should_follow(self, url: str, origin: str) -> bool:
        """Return ``True`` if *url* is a same-origin content page."""
        if "?" in url or "#" in url:
            return False
        if self._origin(url) != origin:
            return False
        path = urlsplit(url).path.lower()
        if any(pattern in path for pattern in self._exclude_patterns):
            return False
        return not path.endswith(_EXCLUDED_EXTENSIONS)

    @staticmethod
    def _origin(url: str) -> str:
        parts = urlsplit(url)
        return f"{parts.scheme.lower()}://{parts.netloc.lower()}"

    @staticmethod
    def _visit_key(url: str) -> str:
        parts = urlsplit(url)
        path = parts.path.rstrip("/") or "/"
        return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}"

    @staticmethod
    def _connectivity_message(exc: httpx.ConnectError) -> str:
        text = str(exc).lower()
        if any(marker in text for marker in _DNS_FAILURE_MARKERS):
            return NOT_FOUND_MESSAGE
        return UNREACHABLE_MESSAGE
