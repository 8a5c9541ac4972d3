# delta4qa/pdf_text.py
"""
Page text of Delta4 report PDFs.

pdfplumber is run in layout mode so the wide gaps between header fields
(title / patient name parts) survive as runs of spaces. Layout mode also
pads the page vertically: the top margin and every vertical gap come out as
one or more empty lines. The header is addressed by fixed line numbers, so
that padding is trimmed and each gap is reduced to a single empty line.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import pdfplumber

from delta4qa.errors import PDFExtractionError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def page_lines(text: Optional[str]) -> List[str]:
    """
    Split layout text into stripped lines with no leading or trailing empty
    lines and at most one empty line between two text lines.
    """
    lines: List[str] = []
    for ln in (text or "").splitlines():
        ln = ln.strip()
        if ln or (lines and lines[-1]):
            lines.append(ln)
    if lines and not lines[-1]:
        lines.pop()
    return lines


def extract_pages(pdf_path: PathLike, max_pages: Optional[int] = None) -> List[List[str]]:
    """
    Extract the text of each page as a list of lines.

    Raises PDFExtractionError if the file cannot be opened or read.
    """
    path = Path(pdf_path)
    if not path.exists():
        raise PDFExtractionError(f"PDF not found: {path}")

    try:
        with pdfplumber.open(str(path)) as pdf:
            pages = pdf.pages if max_pages is None else pdf.pages[:max_pages]
            out = [page_lines(page.extract_text(layout=True)) for page in pages]
    except Exception as e:
        raise PDFExtractionError(f"Text extraction failed for {path.name}: {e}") from e

    logger.debug("Extracted %d page(s) from %s", len(out), path.name)
    return out
