"""Source processor for Word (.docx) uploads.

python-docx reads the XML inside the DOCX zip archive.  Paragraph text is
joined with newlines, followed by table rows (cells separated by `` | ``),
and the whole document becomes a single unit.
"""

from __future__ import annotations

import io
import zipfile

import structlog
from docx import Document
from docx.opc.exceptions import PackageNotFoundError

from src.models.rag import TextUnit
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class DocxProcessor:
    def process(self, payload: bytes, source_label: str) -> list[TextUnit]:
        try:
            document = Document(io.BytesIO(payload))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise ExtractionError(
                message=f"Could not open Word document '{source_label}': {exc}",
                provider_name="python-docx",
            ) from exc

        lines = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    lines.append(" | ".join(cells))

        text = "\n".join(lines)
        logger.info(
            "docx_processed",
            source=source_label,
            paragraphs=len(document.paragraphs),
            tables=len(document.tables),
        )
        return [TextUnit(text=text, page_index=0, source_label=source_label)]
