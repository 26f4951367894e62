"""Training-data ingestion pipeline.

Orchestrates the write path: **extract -> chunk -> dedupe -> embed -> store**.

1. **Extract** (content_extractor.py / source_processors/) -- Format-specific
   readers turn uploaded files (PDF, DOCX, text, CSV, HTML) and crawled
   pages into text units, one per PDF page or web page.

2. **Chunk** (chunker.py / RecursiveTextChunker) -- Splits units into
   ~2048-character windows with ~400 characters of overlap, preferring
   paragraph and sentence boundaries.

3. **Dedupe** (deduplicator.py) -- Drops repeated chunk texts within a run.

4. **Embed / Store** (via IEmbeddingProvider and IVectorStoreProvider) --
   Sequential batches, each followed by a persisted progress checkpoint.

website_crawler.py feeds step 1 with pages from a bounded same-origin crawl.
"""

from src.services.ingestion.chunker import RecursiveTextChunker
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.deduplicator import dedupe
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.website_crawler import WebsiteCrawler

__all__ = [
    "ContentExtractor",
    "IngestionService",
    "RecursiveTextChunker",
    "WebsiteCrawler",
    "dedupe",
]
