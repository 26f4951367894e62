"""Format-specific source processors for the ingestion pipeline.

Each processor converts one input format into
:class:`~src.models.rag.TextUnit` objects, which the chunker then splits:

- **PDFProcessor**   -- one unit per page, via PyMuPDF
- **DocxProcessor**  -- one unit per document, via python-docx
- **TextProcessor**  -- plain text and CSV, one unit per file
- **HTMLProcessor**  -- one unit per page, via BeautifulSoup + trafilatura
"""

from src.services.ingestion.source_processors.docx_processor import DocxProcessor
from src.services.ingestion.source_processors.html_processor import HTMLProcessor
from src.services.ingestion.source_processors.pdf_processor import PDFProcessor
from src.services.ingestion.source_processors.text_processor import TextProcessor

__all__ = [
    "DocxProcessor",
    "HTMLProcessor",
    "PDFProcessor",
    "TextProcessor",
]
