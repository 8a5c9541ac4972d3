from delta4qa.errors import (
    AnchorNotFound,
    Delta4Error,
    MalformedField,
    PDFExtractionError,
    ReportParseError,
    StructuralMismatch,
)
from delta4qa.io_report import parse_report, parse_report_file, parse_report_lines, parse_reports
from delta4qa.models import Beam, Delta4Report, GammaTable

__all__ = [
    "AnchorNotFound",
    "Beam",
    "Delta4Error",
    "Delta4Report",
    "GammaTable",
    "MalformedField",
    "PDFExtractionError",
    "ReportParseError",
    "StructuralMismatch",
    "parse_report",
    "parse_report_file",
    "parse_report_lines",
    "parse_reports",
]
