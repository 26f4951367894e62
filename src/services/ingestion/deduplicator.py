"""Within-batch chunk deduplication.

Only identical text inside one ingestion run is collapsed here.  The same
text arriving in a later run is absorbed by the vector store instead,
because its record id is derived from (content, bot) and the upsert
simply overwrites it.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.models.rag import Chunk

logger = structlog.get_logger(logger_name=__name__)


def dedupe(chunks: Iterable[Chunk]) -> list[Chunk]:
    """Drop chunks whose content equals an earlier chunk's; keep order.

    The first occurrence wins, so a batch ``[a, b, a]`` becomes ``[a, b]``.
    """
    seen: set[str] = set()
    unique: list[Chunk] = []
    dropped = 0
    for chunk in chunks:
        if chunk.content in seen:
            dropped += 1
            continue
        seen.add(chunk.content)
        unique.append(chunk)

    if dropped:
        logger.debug("duplicate_chunks_dropped", dropped=dropped, kept=len(unique))
    return unique
