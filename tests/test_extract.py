from __future__ import annotations

import io
import tempfile
import zipfile
from pathlib import Path

import pandas as pd
import pytest
from docx import Document

from drivechat.ingest.extractors import (
    DOCX_MIME,
    PDF_MIME,
    TEXT_MIME,
    XLSX_MIME,
    ContentExtractor,
)


def _minimal_pdf(text: str) -> bytes:
    content = f"BT /F1 18 Tf 20 100 Td ({text}) Tj ET".encode("ascii")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 300 144] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_offset,
    )
    return bytes(out)


@pytest.fixture()
def isolated_tmp(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def test_plain_text_is_utf8_decoded() -> None:
    extractor = ContentExtractor()

    assert extractor.extract("Prüfbericht für Anlage".encode("utf-8"), TEXT_MIME, "a.txt") == "Prüfbericht für Anlage"


def test_unsupported_type_returns_manual_review_placeholder() -> None:
    extractor = ContentExtractor()

    text = extractor.extract(b"\x89PNG", "image/png", "photo.png")

    assert text == "[File: photo.png - Type: image/png - Manual review needed]"
    assert not extractor.supports("image/png")


def test_docx_paragraphs_are_extracted() -> None:
    document = Document()
    document.add_paragraph("Wartungsprotokoll")
    document.add_paragraph("Seil getauscht")
    buffer = io.BytesIO()
    document.save(buffer)

    text = ContentExtractor().extract(buffer.getvalue(), DOCX_MIME, "report.docx")

    assert "Wartungsprotokoll" in text
    assert "Seil getauscht" in text


def test_docx_falls_back_to_raw_xml() -> None:
    xml = (
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        "<w:body><w:p><w:r><w:t>Fallback text</w:t></w:r></w:p></w:body></w:document>"
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", xml)

    text = ContentExtractor().extract(buffer.getvalue(), DOCX_MIME, "partial.docx")

    assert text == "Fallback text"


def test_spreadsheet_sheets_are_concatenated() -> None:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([["Anlage", "Status"], ["100200300", "OK"]]).to_excel(
            writer, sheet_name="Units", header=False, index=False
        )
        pd.DataFrame([["Invoice", "42"]]).to_excel(writer, sheet_name="Billing", header=False, index=False)

    text = ContentExtractor().extract(buffer.getvalue(), XLSX_MIME, "units.xlsx")

    assert "Anlage\tStatus" in text
    assert "100200300\tOK" in text
    assert "Invoice\t42" in text
    assert text.index("Anlage") < text.index("Invoice")
    assert text.endswith("\n")


def test_pdf_text_is_extracted_and_temp_files_removed(isolated_tmp: Path) -> None:
    text = ContentExtractor().extract(_minimal_pdf("Hello PDF"), PDF_MIME, "hello.pdf")

    assert "Hello PDF" in text
    assert list(isolated_tmp.iterdir()) == []


def test_corrupt_pdf_returns_error_placeholder_and_cleans_up(isolated_tmp: Path) -> None:
    text = ContentExtractor().extract(b"definitely not a pdf", PDF_MIME, "broken.pdf")

    assert text.startswith("[Error parsing file: broken.pdf - ")
    assert text.endswith("]")
    assert list(isolated_tmp.iterdir()) == []


def test_invalid_utf8_text_returns_error_placeholder() -> None:
    text = ContentExtractor().extract(b"\xff\xfe\xfa", TEXT_MIME, "latin.txt")

    assert text.startswith("[Error parsing file: latin.txt - ")


@pytest.mark.parametrize(
    ("data", "mime_type", "outcome"),
    [
        (b"Seil getauscht", TEXT_MIME, "success"),
        (b"\x89PNG", "image/png", "placeholder"),
        (b"%PDF-1.4 garbage not a pdf", PDF_MIME, "failure"),
    ],
)
def test_extract_result_reports_outcome(data: bytes, mime_type: str, outcome: str) -> None:
    result = ContentExtractor().extract_result(data, mime_type, "file")

    assert result.outcome == outcome
    assert result.failed is (outcome == "failure")
    assert (result.error is not None) is (outcome == "failure")
