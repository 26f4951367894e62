"""Source processor for HTML pages (crawled or uploaded).

Non-content elements (``script``, ``style``, ``nav``, ``footer``,
``iframe``, ``noscript``) are removed with BeautifulSoup first.  The
cleaned markup then goes through trafilatura for main-content extraction;
when trafilatura finds nothing (very short or unusual pages), the visible
text of the cleaned tree is used instead.  Each page is one unit.
"""

from __future__ import annotations

import re

import structlog
import trafilatura
from bs4 import BeautifulSoup

from src.models.rag import TextUnit

logger = structlog.get_logger(logger_name=__name__)

_STRIPPED_TAGS = ("script", "style", "nav", "footer", "iframe", "noscript")
_BLANK_RUNS = re.compile(r"\n\s*\n+")


class HTMLProcessor:
    """Converts one HTML page into a single text unit."""

    def process(self, html: str, source_label: str) -> list[TextUnit]:
        text, _ = self.extract(html)
        return [TextUnit(text=text, page_index=0, source_label=source_label)]

    def extract(self, html: str) -> tuple[str, str]:
        """Return ``(text, title)`` for *html*."""
        soup = BeautifulSoup(html, "html.parser")
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""

        for tag in soup.find_all(list(_STRIPPED_TAGS)):
            tag.decompose()

        cleaned = str(soup)
        text = trafilatura.extract(
            cleaned,
            include_tables=True,
            include_links=False,
            favor_recall=True,
            output_format="txt",
        )
        if not text or not text.strip():
            body = soup.body or soup
            text = body.get_text(separator="\n")
            logger.debug("html_fallback_text", title=title, characters=len(text))

        text = _BLANK_RUNS.sub("\n\n", text).strip()
        return text, title
