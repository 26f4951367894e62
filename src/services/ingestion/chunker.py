"""Recursive separator-based text chunking with overlapping windows.

Splits extracted :class:`~src.models.rag.TextUnit` objects into
:class:`~src.models.rag.Chunk` objects of at most ``chunk_size`` characters
(2048 by default) with roughly ``overlap`` characters (400) shared between
neighbours.

The algorithm has two phases:

1. **Piece splitting** -- a unit longer than ``chunk_size`` is cut on the
   coarsest separator it contains (triple newline, then double newline,
   single newline, sentence terminators, ``;``, ``:``, space, and finally
   single characters).  Only pieces that are still too long are cut again
   with the next finer separator.  Separators stay attached to the piece
   they end, so the pieces concatenate back to the unit exactly.

2. **Greedy merge** -- pieces are packed into windows up to ``chunk_size``.
   After a window is emitted, its trailing pieces totalling at most
   ``overlap`` characters seed the next window.  Overlap is therefore
   piece-aligned: it can be shorter than ``overlap`` when the last piece of
   a window is itself long.

Every chunk is an exact substring of its unit, and chunks never cross unit
(page) boundaries.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterable, Iterator

import structlog

from src.models.rag import Chunk, TextUnit

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = (
    "\n\n\n",
    "\n\n",
    "\n",
    ". ",
    "! ",
    "? ",
    ";",
    ":",
    " ",
    "",
)

# Rough characters-per-token ratio for English prose.
_CHARS_PER_TOKEN = 4


class RecursiveTextChunker:
    """Splits text units into overlapping, separator-aligned chunks.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 2048).
    overlap:
        Target characters shared by consecutive chunks of one unit
        (default 400).  Must be smaller than *chunk_size*.
    separators:
        Separators in priority order.  The empty string means "split into
        single characters" and should come last.
    """

    def __init__(
        self,
        chunk_size: int = 2048,
        overlap: int = 400,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._separators = separators

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, units: Iterable[TextUnit]) -> Iterator[Chunk]:
        """Lazily yield chunks for *units* in order.

        ``position`` counts chunks across all units of the call, starting
        at 0, so it doubles as the chunk's index within the ingestion run.
        Calling :meth:`split` again with the same units yields the same
        chunks.
        """
        position = 0
        for unit in units:
            for offset, text in self.split_text(unit.text):
                yield Chunk(
                    content=text,
                    page_index=unit.page_index,
                    position=position,
                    length=len(text),
                    offset=offset,
                    token_estimate=math.ceil(len(text) / _CHARS_PER_TOKEN),
                )
                position += 1

    def split_text(self, text: str) -> Iterator[tuple[int, str]]:
        """Yield ``(offset, chunk_text)`` pairs for a single unit's text.

        Whitespace-only windows are skipped.
        """
        if not text or not text.strip():
            return
        if len(text) <= self._chunk_size:
            yield 0, text
            return

        pieces = self._split_pieces(text, self._separators)

        window: deque[str] = deque()
        window_len = 0
        window_start = 0

        for piece in pieces:
            if window and window_len + len(piece) > self._chunk_size:
                emitted = "".join(window)
                if emitted.strip():
                    yield window_start, emitted
                # Keep only a tail short enough to be overlap and to leave
                # room for the incoming piece.
                while window and (
                    window_len > self._overlap
                    or window_len + len(piece) > self._chunk_size
                ):
                    dropped = window.popleft()
                    window_len -= len(dropped)
                    window_start += len(dropped)
            window.append(piece)
            window_len += len(piece)

        if window:
            emitted = "".join(window)
            if emitted.strip():
                yield window_start, emitted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _split_pieces(self, text: str, separators: tuple[str, ...]) -> list[str]:
        """Cut *text* into pieces no longer than ``chunk_size``.

        Uses the first separator present in *text*; pieces still over the
        limit are cut again with the remaining, finer separators.
        """
        if len(text) <= self._chunk_size:
            return [text]

        for index, separator in enumerate(separators):
            if separator == "":
                return list(text)
            if separator not in text:
                continue

            finer = separators[index + 1:]
            pieces: list[str] = []
            for part in self._split_keep_separator(text, separator):
                if len(part) > self._chunk_size:
                    pieces.extend(self._split_pieces(part, finer))
                else:
                    pieces.append(part)
            return pieces

        # No separator matched and no character fallback configured.
        return [
            text[start:start + self._chunk_size]
            for start in range(0, len(text), self._chunk_size)
        ]

    @staticmethod
    def _split_keep_separator(text: str, separator: str) -> list[str]:
        """Split on *separator*, leaving it attached to the preceding part."""
        parts = text.split(separator)
        result = [part + separator for part in parts[:-1]]
        if parts[-1]:
            result.append(parts[-1])
        return result
