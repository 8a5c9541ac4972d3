# ============================================================================
# FILE: tests/unit/test_io_report.py
# ============================================================================
"""
Unit tests for report assembly and the document entry points
"""

import logging
import math
from datetime import datetime

import pytest

from delta4qa import (
    AnchorNotFound,
    Delta4Report,
    MalformedField,
    PDFExtractionError,
    ReportParseError,
    StructuralMismatch,
    parse_report,
    parse_report_file,
    parse_report_lines,
    parse_reports,
)
from delta4qa.io_report import report_lines_from_pdf


def _bad_gamma(lines):
    """Second table row one value short of the column labels"""
    out = list(lines)
    out[31] = "2.0 mm 93.5 97.7"
    return out


class TestParseReportLines:
    """Tests for parse_report_lines()"""

    def test_legacy_report(self, legacy_report):
        """Test the legacy layout end to end"""
        r = legacy_report
        assert isinstance(r, Delta4Report)
        assert r.layout == "legacy"
        assert r.title == "Report"
        assert r.name == "Title Jane Doe"
        assert r.patient_id == "12345"
        assert r.clinic == ("123 Main St",)
        assert r.plan == "Prostate VMAT"
        assert r.plan_date == datetime(2017, 1, 2, 10, 30)
        assert r.plan_user == "tech1"
        assert r.meas_user == "tech2"
        assert r.review_status is None
        assert not r.has_review
        assert r.phantom == "delta4 ABC"
        assert r.cumulative_mu == 3453
        assert r.expected_mu == 3456
        assert r.machine == "TrueBeam"
        assert r.temperature == pytest.approx(22.1)
        assert r.norm_dose == pytest.approx(2.0)
        assert r.beams == ()
        assert r.gamma_table is None
        assert r.abs_pass_limit == (90.0, 5.0)
        assert r.gamma_pass_limit == (95.0, 1.0)
        assert r.warnings == ()

    def test_modern_report(self, modern_report):
        """Test the modern layout with review, beams and Gamma table"""
        r = modern_report
        assert r.layout == "modern"
        assert r.name == "Doe, Jane"
        assert r.patient_id == "MRN0001"
        assert r.review_status == "Accepted"
        assert r.review_user == "physicist3"
        assert r.comments[0] == "re-measured after setup"
        assert r.phantom == "Delta4+ phantom SN 1234"
        assert (r.cumulative_mu, r.expected_mu) == (612.0, 615.0)
        assert r.norm_dose == pytest.approx(2.12)
        assert len(r.beams) == 2
        assert r.gamma_table.shape == (3, 3)
        assert r.gamma_table.abs == (1.0, 2.0, 3.0)
        assert r.abs_range == (20.0, 500.0)
        assert math.isinf(r.dta_range[1])

    def test_idempotent(self, modern_lines):
        """Test parsing the same lines twice gives equal reports"""
        assert parse_report_lines(modern_lines) == parse_report_lines(modern_lines)

    def test_to_dict_keys(self, legacy_report, modern_report):
        """Test optional keys are left out when their section is absent"""
        legacy = legacy_report.to_dict()
        assert legacy["ID"] == "12345"
        assert legacy["cumulativeMU"] == 3453
        assert legacy["beams"] == []
        assert "reviewStatus" not in legacy
        assert "gammaTable" not in legacy

        modern = modern_report.to_dict()
        assert modern["reviewStatus"] == "Accepted"
        assert modern["beams"][0]["dailyCF"] == pytest.approx(1.0)
        assert modern["gammaTable"]["abs"] == [1.0, 2.0, 3.0]
        assert modern["gammaTable"]["passRate"][2] == [96.0, 98.9, 99.6]

    def test_missing_plan(self, legacy_lines):
        """Test a report without Plan: fails as a whole"""
        lines = [ln for ln in legacy_lines if not ln.startswith("Plan:")]
        with pytest.raises(AnchorNotFound) as exc:
            parse_report_lines(lines)
        assert "Plan:" in str(exc.value)

    def test_bad_date(self, legacy_lines):
        """Test a malformed Planned: date"""
        lines = list(legacy_lines)
        lines[7] = "Planned: 2017-01-02 10:30 AM tech1"
        with pytest.raises(MalformedField):
            parse_report_lines(lines)

    def test_bad_summary(self, legacy_lines):
        """Test an unreadable Composite line"""
        lines = list(legacy_lines)
        lines[16] = "Composite 200 cGy"
        with pytest.raises(MalformedField):
            parse_report_lines(lines)

    def test_missing_gamma_index_criteria(self, legacy_lines):
        """Test a report truncated before the Gamma Index criteria"""
        with pytest.raises(ReportParseError):
            parse_report_lines(legacy_lines[:-1])

    def test_bad_gamma_table_dropped(self, modern_lines, caplog):
        """Test a malformed Gamma table is dropped with a warning by default"""
        with caplog.at_level(logging.WARNING):
            r = parse_report_lines(_bad_gamma(modern_lines), strict=False)

        assert r.gamma_table is None
        assert len(r.warnings) == 1
        assert r.warnings[0].startswith("Gamma table omitted")
        assert r.gamma_pass_limit == (95.0, 1.0)
        assert "Gamma Index Evaluations table dropped" in caplog.text

    def test_stray_percent_line_drops_gamma_table(self, modern_lines):
        """Test a percent line ahead of the Gamma rows drops the table with a warning"""
        lines = list(modern_lines)
        lines.insert(30, "Passing criteria 95 %")
        r = parse_report_lines(lines, strict=False)

        assert r.gamma_table is None
        assert "before any Gamma table row" in r.warnings[0]
        assert r.abs_pass_limit == (90.0, 3.0)

    def test_bad_gamma_table_strict(self, modern_lines):
        """Test strict mode propagates StructuralMismatch"""
        with pytest.raises(StructuralMismatch):
            parse_report_lines(_bad_gamma(modern_lines), strict=True)

    def test_injected_logger(self, modern_lines, caplog):
        """Test start and finish are logged on the supplied logger"""
        log = logging.getLogger("tests.delta4")
        with caplog.at_level(logging.INFO, logger="tests.delta4"):
            parse_report_lines(modern_lines, logger=log)

        records = [r for r in caplog.records if r.name == "tests.delta4"]
        assert records[0].getMessage() == "Parsing data from Delta4 report"
        assert records[-1].getMessage().startswith("Delta4 report parsed successfully in")


class TestEntryPoints:
    """Tests for parse_report(), parse_report_file() and parse_reports()"""

    @staticmethod
    def _extractor(pages):
        def extract(path):
            return pages
        return extract

    def test_pdf_pages_concatenated(self, modern_lines):
        """Test page 1 and page 2 are read as one line sequence"""
        pages = [modern_lines[:19], modern_lines[19:], ["page 3 is ignored"]]
        r = parse_report_file("qa.pdf", extract=self._extractor(pages))
        assert r.patient_id == "MRN0001"
        assert len(r.beams) == 2

    def test_real_pdf(self, modern_pdf):
        """Test a rendered two-page report parses with the modern header"""
        r = parse_report_file(modern_pdf)

        assert r.layout == "modern"
        assert r.title == "Delta4 Patient QA Report"
        assert r.name == "Doe, Jane"
        assert r.patient_id == "MRN0001"
        assert r.clinic == ("University Hospital", "600 Highland Ave")
        assert r.plan == "HN VMAT"
        assert r.review_status == "Accepted"
        assert r.phantom == "Delta4+ phantom SN 1234"
        assert r.norm_dose == pytest.approx(2.12)
        assert [b.name for b in r.beams] == ["Arc1", "Arc2"]
        assert r.gamma_table.shape == (3, 3)
        assert r.gamma_pass_limit == (95.0, 1.0)

    def test_real_pdf_single_page(self, tmp_path, modern_lines, write_report_pdf):
        """Test a rendered one-page document is rejected"""
        path = write_report_pdf(tmp_path / "one_page.pdf", [modern_lines])
        with pytest.raises(PDFExtractionError):
            parse_report_file(path)

    def test_too_few_pages(self, modern_lines):
        """Test a single-page document is rejected"""
        with pytest.raises(PDFExtractionError):
            report_lines_from_pdf("qa.pdf", extract=self._extractor([modern_lines]))

    def test_parse_report_dispatch(self, legacy_lines):
        """Test PDF paths go to the extractor and line lists are parsed directly"""
        pages = [legacy_lines[:12], legacy_lines[12:]]
        from_pdf = parse_report("QA.PDF", extract=self._extractor(pages))
        from_lines = parse_report(legacy_lines)
        assert from_pdf == from_lines

    def test_parse_report_rejects_other_paths(self):
        """Test a non-PDF path is refused"""
        with pytest.raises(ValueError):
            parse_report("report.txt")

    def test_parse_reports(self, legacy_lines, modern_lines):
        """Test batch parsing keeps input order"""
        reports = parse_reports([legacy_lines, modern_lines])
        assert [r.layout for r in reports] == ["legacy", "modern"]

    def test_parse_reports_empty(self):
        """Test an empty batch raises FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            parse_reports([])
