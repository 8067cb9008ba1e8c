"""PDF 附件文本提取（pypdf）。"""

from __future__ import annotations

import base64
import binascii
import io

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from paychat.errors import PdfExtractionError


def _to_bytes(source: bytes | str) -> bytes:
    if isinstance(source, bytes):
        return source
    data = source.split("base64,", 1)[1] if "base64," in source else source
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PdfExtractionError(f"invalid base64 PDF payload: {exc}") from exc


def extract_pdf_text(source: bytes | str) -> str:
    """Return the text of every page, pages separated by a blank line."""
    raw = _to_bytes(source)
    try:
        reader = PdfReader(io.BytesIO(raw))
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as exc:
        raise PdfExtractionError(f"Failed to extract text from PDF: {exc}") from exc
    return "\n\n".join(p for p in pages if p)


__all__ = ["extract_pdf_text"]
