"""doctrine_rag.retrieval.document_loader

Document loading utilities for the two supported sources.

This module turns raw inputs into :class:`doctrine_rag.common.schemas.Document`
objects:
- PDF bytes (the field manual), one document per page, via ``pypdf``.
- CSV text (form-field definitions), one document per row.

Functions
---------
load_pdf_pages
    Extract per-page text from PDF bytes.
parse_csv
    Parse CSV text into header-keyed row dictionaries.
csv_rows_to_documents
    Render parsed rows as form-field documents.

Classes
-------
DocumentSource
    Default document locations used when a request carries no uploads.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from doctrine_rag.common import DoctrineRAGError, Document, InputError

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "utf-8"

FIELD_ALIASES = ("field_label", "field")
INSTRUCTIONS_ALIASES = ("instructions",)
CATEGORY_ALIASES = ("category",)
REQUIRED_ALIASES = ("required",)


def load_pdf_pages(data: bytes) -> List[Document]:
    """Extract the text of every page of a PDF.

    Parameters
    ----------
    data : bytes
        Raw PDF content.

    Returns
    -------
    list[Document]
        One ``"pdf"`` document per page, with 1-based ``page`` metadata.
        Pages without extractable text yield an empty ``text``.

    Raises
    ------
    InputError
        If the bytes cannot be parsed as a PDF.
    """
    if not data:
        raise InputError("PDF upload is empty")

    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError, OSError) as exc:
        logger.warning("Rejected unreadable PDF upload: %s", exc)
        raise InputError("Could not read the uploaded PDF") from exc

    documents = [
        Document(text=text, document_type="pdf", metadata={"page": number})
        for number, text in enumerate(pages, start=1)
    ]
    logger.info("Loaded %d PDF pages", len(documents))
    return documents


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Parse simple comma-separated text.

    The first line holds the headers. Every following non-blank line is split
    on commas and zipped with the headers by position; missing trailing values
    become ``""``. Quoting is not supported.

    Parameters
    ----------
    text : str
        CSV content.

    Returns
    -------
    list[dict[str, str]]
        Parsed rows; empty for empty or header-only input.
    """
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or not lines[0].strip():
        return []

    headers = [header.strip() for header in lines[0].split(",")]
    rows: List[Dict[str, str]] = []
    for line in lines[1:]:
        if not line.strip():
            continue
        values = [value.strip() for value in line.split(",")]
        rows.append({header: values[i] if i < len(values) else "" for i, header in enumerate(headers)})
    return rows


def _lookup(row: Mapping[str, str], aliases: Sequence[str]) -> str:
    lowered = {key.lower(): value for key, value in row.items()}
    for alias in aliases:
        if alias in lowered:
            return lowered[alias]
    return ""


def csv_rows_to_documents(rows: Sequence[Mapping[str, str]]) -> List[Document]:
    """Render form-field rows as ``"csv"`` documents.

    Headers are matched case-insensitively; ``field_label`` and ``field`` are
    both accepted for the field name.
    """
    documents: List[Document] = []
    for row in rows:
        field_name = _lookup(row, FIELD_ALIASES)
        category = _lookup(row, CATEGORY_ALIASES)
        required = _lookup(row, REQUIRED_ALIASES)
        instructions = _lookup(row, INSTRUCTIONS_ALIASES)
        text = (
            f"Category: {category}\n"
            f"Field: {field_name}\n"
            f"Required: {required}\n"
            f"Instructions: {instructions}"
        )
        documents.append(
            Document(
                text=text,
                document_type="csv",
                metadata={"field": field_name, "category": category, "required": required},
            )
        )
    logger.info("Loaded %d form-field rows", len(documents))
    return documents


def load_csv_documents(text: str) -> List[Document]:
    """Parse CSV text and render its rows as documents."""
    return csv_rows_to_documents(parse_csv(text))


@dataclass(frozen=True)
class DocumentSource:
    """Locations of the bundled default documents.

    Attributes
    ----------
    pdf_path : Path
        Default field manual PDF.
    csv_path : Path
        Default form-field CSV.
    """
    pdf_path: Path
    csv_path: Path

    def load_default_pdf(self) -> bytes:
        """Read the default PDF.

        Raises
        ------
        DoctrineRAGError
            If the file is missing or unreadable.
        """
        try:
            return Path(self.pdf_path).read_bytes()
        except OSError as exc:
            raise DoctrineRAGError(f"Default PDF not available: {self.pdf_path}") from exc

    def load_default_csv(self) -> str:
        """Read the default CSV as text."""
        try:
            return Path(self.csv_path).read_text(encoding=DEFAULT_CHARSET)
        except OSError as exc:
            raise DoctrineRAGError(f"Default CSV not available: {self.csv_path}") from exc


__all__ = [
    "DocumentSource",
    "csv_rows_to_documents",
    "load_csv_documents",
    "load_pdf_pages",
    "parse_csv",
]
