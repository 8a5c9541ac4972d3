# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import matplotlib

matplotlib.use("Agg")

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from delta4qa.io_report import parse_report_lines

LINE_STEP = 14


@pytest.fixture
def legacy_lines():
    """Legacy-layout report text (title on its own line, no review, no Gamma table)"""
    return [
        "Report",
        "Title   Jane Doe",
        "",
        "12345",
        "Clinic: UW Clinic",
        "123 Main St",
        "Plan: Prostate VMAT",
        "Planned: 1/2/2017 10:30 AM tech1",
        "Measured: 1/3/2017 9:15 AM tech2",
        "Comments:",
        "delta4 ABC",
        "3453/3456",
        "Treatment Summary",
        "Radiation Device: TrueBeam",
        "Temperature: 22.1 C",
        "Reference: Planned Dose",
        "Composite 200 cGy 98.5% 99.1% 97.3% -0.4%",
        "Histograms",
        "Dose Deviation ... 95%...3%...90%...5%",
        "Dist to Agreement ... 95%...90%...3",
        "Gamma Index ... 95%...90%...3%...3...95%...1",
    ]


@pytest.fixture
def modern_lines():
    """April 2016+ layout with review history, beams and a Gamma table"""
    return [
        "Delta4 Patient QA Report",
        "",
        "Doe, Jane",
        "",
        "MRN0001",
        "",
        "Clinic:",
        "University Hospital",
        "600 Highland Ave",
        "",
        "Plan: HN VMAT",
        "Planned: 3/14/2018 2:05 PM physicist1",
        "Measured: 3/15/2018 7:45 AM therapist2",
        "Rejected: 3/15/2018 8:00 AM physicist1",
        "Accepted: 3/15/2018 9:30 AM physicist3",
        "Comments: re-measured after setup",
        "Delta4+ phantom SN 1234",
        "MU 612 / 615",
        "",
        "Treatment Summary",
        "Radiation Device: TrueBeam2",
        "Temperature: 21.5 °C",
        "Reference: Planned Dose",
        "Fraction 2.12 Gy 97.8% 99.3% 99.1% 0.6%",
        "Beam   Daily CF   Dose   Dev<3%   DTA<3mm   Gamma<1   Median Dev",
        "Arc1 1.000 105.9 cGy 98.0% 99.5% 99.4% 0.5%",
        "",
        "Arc2 1.000 106.1 cGy 97.5% 99.0% 98.8% -0.7%",
        "Histograms",
        "Gamma Index Evaluations",
        "1.0 mm 88.1 94.2 97.0",
        "2.0 mm 93.5 97.7 99.1",
        "3.0 mm 96.0 98.9 99.6",
        "1.0 % 2.0 % 3.0 %",
        "Dose Deviation  Range 20% - 500%  Passing 90% within 3%",
        "Dist to Agreement  Range 20% -  Passing 95% within 3 mm",
        "Gamma Index  Range 10% - 500%  Dose 3%  Dist 3 mm  Passing 95% below 1",
    ]


@pytest.fixture
def legacy_report(legacy_lines):
    return parse_report_lines(legacy_lines)


@pytest.fixture
def modern_report(modern_lines):
    return parse_report_lines(modern_lines)


@pytest.fixture
def write_report_pdf():
    """
    Render report pages to a real PDF. Each string is drawn on its own row;
    an empty string leaves a row empty, as the Delta4 export does between
    header fields.
    """
    def _write(path, pages):
        c = canvas.Canvas(str(path), pagesize=letter)
        _, page_h = letter
        for lines in pages:
            c.setFont("Helvetica", 10)
            y = page_h - 72
            for line in lines:
                if line:
                    c.drawString(72, y, line)
                y -= LINE_STEP
            c.showPage()
        c.save()
        return path

    return _write


@pytest.fixture
def modern_pdf(tmp_path, modern_lines, write_report_pdf):
    """Two-page modern report PDF, page 2 starting at Treatment Summary"""
    return write_report_pdf(tmp_path / "delta4_modern.pdf", [modern_lines[:19], modern_lines[19:]])
