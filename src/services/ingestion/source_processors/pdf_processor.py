"""Source processor for PDF uploads.

Opens the uploaded bytes with PyMuPDF (fitz) directly from memory and
returns one :class:`~src.models.rag.TextUnit` per page that carries text.
Page indexes are 0-based and preserved for pages that are skipped, so a
chunk's ``page_index`` always points at the real page.
"""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.models.rag import TextUnit
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class PDFProcessor:
    """Extracts page-level text units from PDF bytes."""

    def process(self, payload: bytes, source_label: str) -> list[TextUnit]:
        """Read *payload* as a PDF and return one unit per non-empty page.

        Raises
        ------
        ExtractionError
            If the bytes are not a readable PDF.
        """
        try:
            doc = fitz.open(stream=payload, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", source=source_label, error=str(exc))
            raise ExtractionError(
                message=f"Could not open PDF '{source_label}': {exc}",
                provider_name="pymupdf",
            ) from exc

        units: list[TextUnit] = []
        try:
            for page_index in range(len(doc)):
                text = doc[page_index].get_text("text")
                if text.strip():
                    units.append(
                        TextUnit(text=text, page_index=page_index, source_label=source_label)
                    )
            page_count = len(doc)
        finally:
            doc.close()

        logger.info(
            "pdf_processed",
            source=source_label,
            pages=page_count,
            pages_with_text=len(units),
        )
        return units
