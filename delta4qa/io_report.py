# delta4qa/io_report.py
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from delta4qa.config import settings
from delta4qa.cursor import LineCursor
from delta4qa.errors import PDFExtractionError, StructuralMismatch
from delta4qa.models import Delta4Report
from delta4qa.pdf_text import extract_pages
from delta4qa.stages import (
    read_beams,
    read_comments,
    read_criteria,
    read_events,
    read_gamma_table,
    read_header,
    read_summary,
)

PathLike = Union[str, Path]
PageExtractor = Callable[[PathLike], Sequence[Sequence[str]]]

_log = logging.getLogger(__name__)


# =============================================================================
# 1) Core parser for ONE report (from lines)
# =============================================================================
def parse_report_lines(
    lines: Iterable[str],
    *,
    logger: Optional[logging.Logger] = None,
    strict: Optional[bool] = None,
) -> Delta4Report:
    """
    Parse the text lines of one Delta4 report (page 1 followed by page 2).

    Sections are read in report order over a single forward-only cursor:
    header, events, comments, treatment summary, beams, Gamma table,
    acceptance criteria. Any missing required anchor or unreadable field
    aborts the whole parse.

    A malformed Gamma Index Evaluations table is dropped with a warning,
    unless `strict` is set (default from STRICT_GAMMA_TABLE), in which case
    StructuralMismatch propagates.
    """
    log = logger or _log
    strict = settings.STRICT_GAMMA_TABLE if strict is None else strict

    log.info("Parsing data from Delta4 report")
    t0 = time.perf_counter()

    cursor = LineCursor(lines)
    fields: Dict[str, Any] = {}
    warnings: List[str] = []

    read_header(cursor, fields)
    comment_lead = read_events(cursor, fields)
    read_comments(cursor, fields, comment_lead)
    read_summary(cursor, fields)
    read_beams(cursor, fields)

    try:
        fields["gamma_table"] = read_gamma_table(cursor)
    except StructuralMismatch as e:
        if strict:
            raise
        log.warning("Gamma Index Evaluations table dropped: %s", e)
        warnings.append(f"Gamma table omitted: {e}")
        fields["gamma_table"] = None

    read_criteria(cursor, fields)

    report = Delta4Report(**fields, warnings=tuple(warnings))
    log.info("Delta4 report parsed successfully in %0.3f seconds", time.perf_counter() - t0)
    return report


# =============================================================================
# 2) Document entry points
# =============================================================================
def report_lines_from_pdf(
    pdf_path: PathLike,
    extract: PageExtractor = extract_pages,
    n_pages: Optional[int] = None,
) -> List[str]:
    """Concatenate the lines of the first `n_pages` pages (default REPORT_PAGES)."""
    n_pages = settings.REPORT_PAGES if n_pages is None else int(n_pages)
    pages = extract(pdf_path)
    if len(pages) < n_pages:
        raise PDFExtractionError(
            f"{Path(pdf_path).name}: expected at least {n_pages} pages, found {len(pages)}"
        )
    lines: List[str] = []
    for page in pages[:n_pages]:
        lines.extend(page)
    return lines


def parse_report_file(
    pdf_path: PathLike,
    *,
    extract: PageExtractor = extract_pages,
    logger: Optional[logging.Logger] = None,
    strict: Optional[bool] = None,
) -> Delta4Report:
    return parse_report_lines(
        report_lines_from_pdf(pdf_path, extract=extract),
        logger=logger,
        strict=strict,
    )


def _is_pdf_path(content: Any) -> bool:
    return isinstance(content, (str, Path)) and str(content).lower().endswith(".pdf")


def parse_report(
    content: Union[PathLike, Sequence[str]],
    *,
    extract: PageExtractor = extract_pages,
    logger: Optional[logging.Logger] = None,
    strict: Optional[bool] = None,
) -> Delta4Report:
    """
    Parse a Delta4 report given either a PDF path or its text lines.
    """
    if _is_pdf_path(content):
        return parse_report_file(content, extract=extract, logger=logger, strict=strict)
    if isinstance(content, (str, Path)):
        raise ValueError(f"Expected a .pdf path or a sequence of lines, got '{content}'")
    return parse_report_lines(content, logger=logger, strict=strict)


# =============================================================================
# 3) Batch loader (for Streamlit multi-upload or folder batch offline)
# =============================================================================
def parse_reports(
    contents: Iterable[Union[PathLike, Sequence[str]]],
    *,
    extract: PageExtractor = extract_pages,
    logger: Optional[logging.Logger] = None,
    strict: Optional[bool] = None,
) -> List[Delta4Report]:
    reports = [parse_report(c, extract=extract, logger=logger, strict=strict) for c in contents]
    if not reports:
        raise FileNotFoundError("No Delta4 reports provided to parse.")
    return reports
