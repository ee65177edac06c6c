"""Recursive separator-based text chunking with literal overlap.

Splits normalised text into :class:`~docrag.models.rag.TextChunk` objects of
at most ``chunk_size`` characters, where each chunk after the first begins
with the trailing ``overlap`` characters of the chunk before it.

The algorithm runs in two phases:

1. **Decompose** -- split the text on the coarsest separator
   (``"\\n\\n"``), keeping each separator attached to the segment it ends.
   Any segment longer than ``chunk_size - overlap`` is split again on the
   next finer separator (``"\\n"``, ``". "``, ``"! "``, ... ``" "``), down
   to single characters.  The result is a flat list of *atoms*, each short
   enough to follow a full overlap seed inside one chunk.

2. **Accumulate** -- greedily append atoms to a buffer while it fits.  On
   overflow the buffer is emitted and the next buffer is seeded with the
   last ``overlap`` characters of the emitted chunk.  Over character atoms
   this degenerates into hard slices of ``chunk_size`` with a backward
   stride of ``overlap``.

Chunks are not trimmed, so concatenating them after dropping each seed
reproduces the normalised text exactly.
"""

from __future__ import annotations

import math
import re

import structlog

from docrag.models.rag import TextChunk

logger = structlog.get_logger(logger_name=__name__)

# Coarse to fine.  "" means character level.
SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", "")

_HORIZONTAL_WS = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces/tabs, cap blank lines at one, and trim."""
    if not text:
        return ""
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


class TextChunker:
    """Splits text into bounded, overlapping chunks.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 500).
    overlap:
        Characters shared between consecutive chunks (default 50).
        Must be smaller than *chunk_size*.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into ordered :class:`TextChunk` objects.

        Returns an empty list for empty or whitespace-only input.
        """
        normalized = normalize_whitespace(text)
        if not normalized:
            return []

        atoms = self._decompose(normalized, 0)
        pieces = [p for p in self._accumulate(atoms) if p.strip()]

        chunks = [
            TextChunk(order=i, content=piece, token_estimate=estimate_tokens(piece))
            for i, piece in enumerate(pieces)
        ]
        logger.debug(
            "chunking_complete",
            input_chars=len(normalized),
            num_chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks

    def get_chunk_stats(self, chunks: list[TextChunk]) -> dict[str, int | float]:
        """Summarise chunk sizes for logging and the CLI."""
        if not chunks:
            return {
                "count": 0,
                "total_chars": 0,
                "avg_chars": 0.0,
                "min_chars": 0,
                "max_chars": 0,
                "total_tokens": 0,
                "chunk_size": self._chunk_size,
                "overlap": self._overlap,
            }
        sizes = [len(c.content) for c in chunks]
        return {
            "count": len(chunks),
            "total_chars": sum(sizes),
            "avg_chars": sum(sizes) / len(sizes),
            "min_chars": min(sizes),
            "max_chars": max(sizes),
            "total_tokens": sum(c.token_estimate for c in chunks),
            "chunk_size": self._chunk_size,
            "overlap": self._overlap,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _decompose(self, text: str, level: int) -> list[str]:
        """Split *text* into atoms no longer than ``chunk_size - overlap``."""
        limit = self._chunk_size - self._overlap
        if len(text) <= limit:
            return [text]

        separator = SEPARATORS[level]
        if separator == "":
            return list(text)
        if separator not in text:
            return self._decompose(text, level + 1)

        parts = text.split(separator)
        segments = [p + separator for p in parts[:-1]]
        segments.append(parts[-1])

        atoms: list[str] = []
        for segment in segments:
            if not segment:
                continue
            if len(segment) > limit:
                atoms.extend(self._decompose(segment, level + 1))
            else:
                atoms.append(segment)
        return atoms

    def _accumulate(self, atoms: list[str]) -> list[str]:
        """Greedily pack atoms into chunks, seeding each with the overlap."""
        pieces: list[str] = []
        buffer = ""

        for atom in atoms:
            if len(buffer) + len(atom) <= self._chunk_size:
                buffer += atom
                continue

            # The buffer is longer than the overlap here and seed + atom
            # always fits, since atoms are capped at chunk_size - overlap.
            pieces.append(buffer)
            seed = buffer[-self._overlap :] if self._overlap else ""
            buffer = seed + atom

        if buffer:
            pieces.append(buffer)
        return pieces
