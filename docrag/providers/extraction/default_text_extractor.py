"""Default plain-text extractor for uploaded documents.

Dispatches on the normalised content type, falling back to the filename
extension when the type is ``application/octet-stream``:

    application/pdf                     → PyMuPDF (fitz), page by page
    text/html                           → BeautifulSoup ``get_text``
    ...wordprocessingml.document (docx) → python-docx paragraphs
    application/rtf                     → striprtf ``rtf_to_text``
    application/msword (legacy .doc)    → rejected with ExtractionError
    anything else                       → UTF-8 decode with replacement

Exact layout fidelity is not a goal; the output only has to be good
enough to chunk and embed.  Bytes containing NUL characters are treated
as binary and rejected rather than decoded into junk text.
"""

from __future__ import annotations

import io
from pathlib import PurePath

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup

from docrag.interfaces.text_extractor import ITextExtractor
from docrag.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PDF = "application/pdf"
_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_MSWORD = "application/msword"
_HTML = "text/html"
_RTF = "application/rtf"

_EXTENSION_TYPES: dict[str, str] = {
    ".pdf": _PDF,
    ".docx": _DOCX,
    ".doc": _MSWORD,
    ".html": _HTML,
    ".htm": _HTML,
    ".rtf": _RTF,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
}


class DefaultTextExtractor(ITextExtractor):
    """Extracts text from PDF, DOCX, HTML, RTF and plain-text uploads."""

    def extract(self, data: bytes, filename: str, content_type: str) -> str:
        kind = self._resolve_type(filename, content_type)
        try:
            if kind == _PDF:
                text = self._extract_pdf(data)
            elif kind == _DOCX:
                text = self._extract_docx(data)
            elif kind == _MSWORD:
                raise ExtractionError(
                    message="Unsupported legacy .doc format",
                    provider_name=self.get_provider_name(),
                )
            elif kind == _HTML:
                text = self._extract_html(data)
            elif kind == _RTF:
                text = self._extract_rtf(data)
            else:
                text = self._decode(data)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not read {filename}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("text_extracted", filename=filename, content_type=kind, chars=len(text))
        return text

    def supported_content_types(self) -> list[str]:
        return [_PDF, _DOCX, _HTML, _RTF, "text/plain", "text/markdown"]

    def get_provider_name(self) -> str:
        return "default_extractor"

    # ------------------------------------------------------------------
    # Format readers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_type(filename: str, content_type: str) -> str:
        if content_type and content_type != "application/octet-stream":
            return content_type
        return _EXTENSION_TYPES.get(PurePath(filename).suffix.lower(), "text/plain")

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(message=f"Corrupt PDF: {exc}", provider_name="pymupdf") from exc

        pages: list[str] = []
        try:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        finally:
            doc.close()
        return "\n\n".join(pages)

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        """DOCX → plain text via python-docx; formatting is stripped."""
        from docx import Document as DocxDocument

        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise ExtractionError(message=f"Corrupt DOCX: {exc}", provider_name="python-docx") from exc
        return "\n\n".join(para.text for para in doc.paragraphs if para.text.strip())

    @staticmethod
    def _extract_html(data: bytes) -> str:
        soup = BeautifulSoup(data, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        return soup.get_text("\n")

    @staticmethod
    def _extract_rtf(data: bytes) -> str:
        """RTF → plain text via striprtf (control words, groups, escapes)."""
        from striprtf.striprtf import rtf_to_text

        return rtf_to_text(data.decode("utf-8", errors="replace"))

    @staticmethod
    def _decode(data: bytes) -> str:
        if b"\x00" in data:
            raise ExtractionError(
                message="Binary content cannot be read as text",
                provider_name="default_extractor",
            )
        if data.startswith(b"\xef\xbb\xbf"):
            data = data[3:]
        return data.decode("utf-8", errors="replace")
