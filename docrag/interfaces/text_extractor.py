"""Abstract base class for plain-text extraction from uploaded files."""

from __future__ import annotations

from abc import ABC, abstractmethod


class ITextExtractor(ABC):
    """Contract for turning raw document bytes into plain text."""

    @abstractmethod
    def extract(self, data: bytes, filename: str, content_type: str) -> str:
        """Return the plain text of the document.

        Parameters
        ----------
        data:
            Raw file bytes.
        filename:
            Original filename; its extension is used when *content_type*
            is generic (``application/octet-stream``).
        content_type:
            Normalised MIME type.

        Raises
        ------
        docrag.utils.errors.ExtractionError
            If the document is corrupt or cannot be read.
        """

    @abstractmethod
    def supported_content_types(self) -> list[str]:
        """Return the MIME types this extractor has a dedicated reader for."""
