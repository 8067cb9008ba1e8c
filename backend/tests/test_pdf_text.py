from __future__ import annotations

import base64
import io

import pytest
from pypdf import PdfWriter

from paychat.errors import PdfExtractionError
from paychat.services.pdf_text import extract_pdf_text


def _blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def test_blank_pdf_from_data_url_yields_empty_text():
    data_url = "data:application/pdf;base64," + base64.b64encode(_blank_pdf()).decode()

    assert extract_pdf_text(data_url) == ""


def test_raw_bytes_are_accepted():
    assert extract_pdf_text(_blank_pdf()) == ""


def test_invalid_base64_raises():
    with pytest.raises(PdfExtractionError, match="invalid base64"):
        extract_pdf_text("data:application/pdf;base64,@@@")


def test_non_pdf_bytes_raise():
    with pytest.raises(PdfExtractionError):
        extract_pdf_text(b"definitely not a pdf")
