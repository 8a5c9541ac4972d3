# delta4qa/errors.py
"""
Exceptions raised while reading Delta4 reports.
"""

from typing import Optional


class Delta4Error(Exception):
    """Base exception for all Delta4 QA errors."""
    pass


class ReportParseError(Delta4Error):
    """
    Error while scanning the report text.

    Carries the index of the offending line (or where the scan ended) and
    the anchor/pattern that was expected there.
    """

    def __init__(self, message: str, line_index: Optional[int] = None, expected: Optional[str] = None):
        self.line_index = line_index
        self.expected = expected
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"{message}{where}")


class AnchorNotFound(ReportParseError):
    """A required anchor line was never encountered."""

    def __init__(self, anchor: str, line_index: Optional[int] = None):
        super().__init__(f"Anchor '{anchor}' not found before end of report", line_index, anchor)


class MalformedField(ReportParseError):
    """An anchor was found but its content does not match the expected format."""
    pass


class StructuralMismatch(ReportParseError):
    """Gamma Index Evaluations table rows/columns disagree."""
    pass


class PDFExtractionError(Delta4Error):
    """Error extracting text from a report PDF."""
    pass
