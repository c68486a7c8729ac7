"""Extractors turning raw document bytes into plain text."""
from __future__ import annotations

import io
import logging
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

import pandas as pd
from docx import Document as DocxDocument
from pdfminer.high_level import extract_pages
from pdfminer.layout import LTTextContainer

from drivechat.telemetry import emit_extraction_event

LOGGER = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME = "application/vnd.ms-excel"
TEXT_MIME = "text/plain"


def manual_review_placeholder(file_name: str, mime_type: str) -> str:
    return f"[File: {file_name} - Type: {mime_type} - Manual review needed]"


def error_placeholder(file_name: str, error: BaseException) -> str:
    message = str(error) or type(error).__name__
    return f"[Error parsing file: {file_name} - {message}]"


@dataclass(frozen=True, slots=True)
class Extraction:
    text: str
    outcome: str  # success, placeholder or failure
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.outcome == "failure"


class PDFExtractor:
    """Extract page text from PDF documents via a scoped temporary file."""

    def extract(self, data: bytes, file_name: str = "document.pdf") -> str:
        with tempfile.TemporaryDirectory(prefix="drivechat-pdf-") as tmpdir:
            temp_path = Path(tmpdir) / f"temp_{Path(file_name).name or 'document.pdf'}"
            temp_path.write_bytes(data)
            LOGGER.debug("Decoding PDF %s from %s", file_name, temp_path)
            pages = [self._page_text(layout) for layout in extract_pages(str(temp_path))]
        return "\n".join(pages)

    @staticmethod
    def _page_text(layout) -> str:
        return "".join(
            element.get_text() for element in layout if isinstance(element, LTTextContainer)
        )


class DocxExtractor:
    """Extract raw text from Microsoft Word documents."""

    def extract(self, data: bytes) -> str:
        try:
            document = DocxDocument(io.BytesIO(data))
        except Exception as error:
            LOGGER.warning("python-docx failed to parse DOCX content (%s); using XML fallback", error)
            return self._fallback_extract(data)

        return "\n\n".join(paragraph.text for paragraph in document.paragraphs if paragraph.text)

    def _fallback_extract(self, data: bytes) -> str:
        import xml.etree.ElementTree as ET
        import zipfile

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml_bytes = archive.read("word/document.xml")
        root = ET.fromstring(xml_bytes)
        namespace = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
        return "\n\n".join(node.text for node in root.iter(f"{namespace}t") if node.text)


class SpreadsheetExtractor:
    """Render every sheet of a workbook as tab separated text."""

    def extract(self, data: bytes) -> str:
        sheets: Dict[str, pd.DataFrame] = pd.read_excel(
            io.BytesIO(data), sheet_name=None, header=None, dtype=str
        )
        parts = []
        for sheet_name, frame in sheets.items():
            LOGGER.debug("Rendering sheet %s (%d rows)", sheet_name, len(frame))
            parts.append(frame.to_csv(sep="\t", index=False, header=False) + "\n")
        return "".join(parts)


class TextExtractor:
    """Decode plaintext documents."""

    def extract(self, data: bytes, encoding: str = "utf-8") -> str:
        return data.decode(encoding)


class ContentExtractor:
    """Dispatch raw bytes to the extractor registered for their MIME type.

    ``extract`` never raises: failures and unsupported types come back as
    bracketed placeholder strings so chunking always receives text.
    """

    def __init__(self) -> None:
        pdf = PDFExtractor()
        docx = DocxExtractor()
        spreadsheet = SpreadsheetExtractor()
        text = TextExtractor()
        self._handlers: Dict[str, Callable[[bytes, str], str]] = {
            PDF_MIME: pdf.extract,
            DOCX_MIME: lambda data, _name: docx.extract(data),
            XLSX_MIME: lambda data, _name: spreadsheet.extract(data),
            XLS_MIME: lambda data, _name: spreadsheet.extract(data),
            TEXT_MIME: lambda data, _name: text.extract(data),
        }

    def supports(self, mime_type: str) -> bool:
        return mime_type in self._handlers

    def extract(self, data: bytes, mime_type: str, file_name: str) -> str:
        return self.extract_result(data, mime_type, file_name).text

    def extract_result(self, data: bytes, mime_type: str, file_name: str) -> Extraction:
        """Like ``extract`` but also reports whether the handler succeeded."""

        started = time.perf_counter()
        handler = self._handlers.get(mime_type)

        if handler is None:
            result = Extraction(manual_review_placeholder(file_name, mime_type), "placeholder")
            self._log(file_name, mime_type, data, result, started)
            return result

        try:
            text = handler(data, file_name)
        except Exception as error:
            LOGGER.exception("Error parsing file %s (%s)", file_name, mime_type)
            result = Extraction(
                error_placeholder(file_name, error),
                "failure",
                error=str(error) or type(error).__name__,
            )
            self._log(file_name, mime_type, data, result, started)
            return result

        result = Extraction(text, "success")
        self._log(file_name, mime_type, data, result, started)
        return result

    @staticmethod
    def _log(
        file_name: str,
        mime_type: str,
        data: bytes,
        result: Extraction,
        started: float,
    ) -> None:
        emit_extraction_event(
            file_name=file_name,
            mime_type=mime_type,
            bytes_in=len(data),
            chars_out=len(result.text),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            outcome=result.outcome,
            error=result.error,
        )
