"""Content extraction: uploaded files and fetched web pages -> text units.

:class:`ContentExtractor` resolves the format of a source and delegates to
the matching processor in ``source_processors/``.  The format comes from
the declared MIME type; when that is missing, generic
(``application/octet-stream``) or unknown, the file extension of the
original name decides.

Binary decoders (PDF, DOCX) run in a worker thread via
``asyncio.to_thread`` so a large upload does not stall the event loop.
Each processor releases its decoding buffer before returning, on success
and on failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Union

import structlog

from src.models.rag import TextUnit
from src.services.ingestion.source_processors import (
    DocxProcessor,
    HTMLProcessor,
    PDFProcessor,
    TextProcessor,
)
from src.utils.errors import EmptyContentError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

_MIME_FORMATS: dict[str, str] = {
    "application/pdf": "pdf",
    "text/plain": "text",
    "text/markdown": "text",
    "text/csv": "csv",
    "application/csv": "csv",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/html": "html",
    "application/xhtml+xml": "html",
}

_EXTENSION_FORMATS: dict[str, str] = {
    ".pdf": "pdf",
    ".txt": "text",
    ".md": "text",
    ".csv": "csv",
    ".docx": "docx",
    ".html": "html",
    ".htm": "html",
}

SUPPORTED_FORMATS = frozenset(_EXTENSION_FORMATS.values())


@dataclass(frozen=True)
class FileSource:
    """An uploaded file: declared MIME type plus raw bytes."""

    payload: bytes
    original_name: str
    mime_type: str = ""


@dataclass(frozen=True)
class WebPageSource:
    """A fetched web page."""

    url: str
    html: str
    title: str = ""


Source = Union[FileSource, WebPageSource]  # noqa: UP007


def resolve_format(mime_type: str, original_name: str) -> str:
    """Return the internal format key for a file, or raise.

    Raises
    ------
    UnsupportedFormatError
        If neither the MIME type nor the extension is recognized.
    """
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if mime in _MIME_FORMATS:
        return _MIME_FORMATS[mime]

    extension = PurePosixPath(original_name or "").suffix.lower()
    if extension in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[extension]

    raise UnsupportedFormatError(
        message=f"Unsupported file type: {mime or extension or 'unknown'}",
    )


class ContentExtractor:
    """Turns a :data:`Source` into a list of non-empty text units."""

    def __init__(self) -> None:
        self._pdf = PDFProcessor()
        self._docx = DocxProcessor()
        self._text = TextProcessor()
        self._html = HTMLProcessor()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, source: Source) -> list[TextUnit]:
        """Extract text units from *source*.

        Raises
        ------
        UnsupportedFormatError
            If the file format is not recognized.
        EmptyContentError
            If no unit contains non-whitespace text.
        src.utils.errors.ExtractionError
            If a decoder cannot read the payload.
        """
        if isinstance(source, WebPageSource):
            units = self._html.process(source.html, source.url)
            label = source.url
            fmt = "html"
        else:
            fmt = resolve_format(source.mime_type, source.original_name)
            units = await self._extract_file(fmt, source)
            label = source.original_name

        units = [unit for unit in units if unit.text.strip()]
        if not units:
            raise EmptyContentError(message=f"No text content could be extracted from '{label}'")

        logger.info(
            "content_extracted",
            source=label,
            format=fmt,
            units=len(units),
            characters=sum(len(unit.text) for unit in units),
        )
        return units

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _extract_file(self, fmt: str, source: FileSource) -> list[TextUnit]:
        if fmt == "pdf":
            return await asyncio.to_thread(self._pdf.process, source.payload, source.original_name)
        if fmt == "docx":
            return await asyncio.to_thread(self._docx.process, source.payload, source.original_name)
        if fmt == "html":
            html = source.payload.decode("utf-8", errors="replace")
            return self._html.process(html, source.original_name)
        return self._text.process(source.payload, source.original_name)
