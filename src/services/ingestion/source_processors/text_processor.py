"""Source processor for plain-text and CSV uploads.

Both formats are decoded as UTF-8 (a leading BOM is dropped, undecodable
bytes are replaced) and kept whole as a single unit.  CSV rows are not
split apart: the recursive chunker already breaks on newlines, so rows
stay intact inside chunks without a per-row unit.
"""

from __future__ import annotations

import structlog

from src.models.rag import TextUnit

logger = structlog.get_logger(logger_name=__name__)


class TextProcessor:
    def process(self, payload: bytes, source_label: str) -> list[TextUnit]:
        text = payload.decode("utf-8-sig", errors="replace")
        # Normalize Windows / old-Mac line endings so separators match.
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        logger.debug("text_processed", source=source_label, characters=len(text))
        return [TextUnit(text=text, page_index=0, source_label=source_label)]
