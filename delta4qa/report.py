# delta4qa/report.py
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, List, Optional
from xml.sax.saxutils import escape

import numpy as np
import matplotlib.pyplot as plt
from reportlab.lib import colors
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from delta4qa.analysis import classify, classify_beams, evaluate_criteria, plot_gamma_table
from delta4qa.models import Delta4Report

# =============================================================================
# Branding
# =============================================================================
BRAND = {
    "navy": HexColor("#1f2a44"),
    "gold": HexColor("#C99700"),
    "panel": HexColor("#FFFFFF"),
    "border": HexColor("#E5E7EB"),
    "text": HexColor("#111827"),
    "muted": HexColor("#6B7280"),
    "success": HexColor("#0F766E"),
    "danger": HexColor("#B91C1C"),
}


def _status_color(status: str):
    s = (status or "").upper().strip()
    if s == "PASS":
        return BRAND["success"]
    if s == "FAIL":
        return BRAND["danger"]
    return BRAND["muted"]


def _rl_color_to_hex(c: HexColor) -> str:
    hv = c.hexval()
    if isinstance(hv, str) and hv.startswith("0x") and len(hv) == 8:
        return "#" + hv[2:]
    return "#000000"


def _safe_str(x: Any, default: str = "N/A") -> str:
    if x is None:
        return default
    if isinstance(x, float) and np.isnan(x):
        return default
    s = str(x).strip()
    return s if s else default


def _fmt_dt(x: Optional[datetime]) -> str:
    return x.strftime("%Y-%m-%d %H:%M") if x is not None else "N/A"


def _with_user(when: Optional[datetime], user: Optional[str]) -> str:
    s = _fmt_dt(when)
    return f"{s} ({user})" if user else s


def _fig_to_png_bytes(fig: plt.Figure, dpi: int = 220) -> BytesIO:
    buf = BytesIO()
    fig.savefig(buf, format="png", dpi=int(dpi), bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return buf


# =============================================================================
# PDF layout helpers
# =============================================================================
def _draw_header_footer(
    canvas,
    doc,
    *,
    title: str,
    subtitle: str,
    status: str,
    left_note: str,
    logo_path: Optional[Path] = None,
) -> None:
    canvas.saveState()
    page_w, page_h = letter

    canvas.setFillColor(BRAND["navy"])
    canvas.rect(0, page_h - 0.85 * inch, page_w, 0.85 * inch, stroke=0, fill=1)

    canvas.setFillColor(BRAND["gold"])
    canvas.rect(0, page_h - 0.85 * inch, page_w, 0.06 * inch, stroke=0, fill=1)

    x_left = 0.75 * inch
    if logo_path is not None and Path(logo_path).exists():
        canvas.drawImage(
            str(logo_path), x_left, page_h - 0.78 * inch, width=0.55 * inch, height=0.55 * inch, mask="auto"
        )
        x_left += 0.65 * inch

    canvas.setFillColor(colors.white)
    canvas.setFont("Helvetica-Bold", 14)
    canvas.drawString(x_left, page_h - 0.52 * inch, title)

    canvas.setFont("Helvetica", 9.5)
    canvas.setFillColor(HexColor("#E5E7EB"))
    canvas.drawString(x_left, page_h - 0.70 * inch, subtitle)

    badge_w = 1.35 * inch
    badge_h = 0.34 * inch
    x0 = page_w - 0.75 * inch - badge_w
    y0 = page_h - 0.62 * inch
    canvas.setFillColor(_status_color(status))
    canvas.roundRect(x0, y0, badge_w, badge_h, 8, stroke=0, fill=1)

    canvas.setFillColor(colors.white)
    canvas.setFont("Helvetica-Bold", 10)
    canvas.drawCentredString(x0 + badge_w / 2, y0 + 0.11 * inch, (status or "UNKNOWN").upper())

    canvas.setFillColor(BRAND["muted"])
    canvas.setFont("Helvetica", 8.5)
    canvas.drawString(0.75 * inch, 0.55 * inch, left_note)
    canvas.drawRightString(page_w - 0.75 * inch, 0.55 * inch, f"Page {doc.page}")

    canvas.restoreState()


def _table_style_key_value() -> TableStyle:
    return TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, -1), BRAND["panel"]),
            ("BACKGROUND", (0, 0), (0, -1), HexColor("#F3F4F6")),
            ("TEXTCOLOR", (0, 0), (-1, -1), BRAND["text"]),
            ("TEXTCOLOR", (0, 0), (0, -1), BRAND["muted"]),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTSIZE", (0, 0), (-1, -1), 9.2),
            ("LINEBELOW", (0, 0), (-1, -1), 0.25, BRAND["border"]),
            ("BOX", (0, 0), (-1, -1), 0.8, BRAND["border"]),
            ("LEFTPADDING", (0, 0), (-1, -1), 8),
            ("RIGHTPADDING", (0, 0), (-1, -1), 8),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]
    )


def _table_style_status(data: List[list]) -> TableStyle:
    """Header row + zebra rows; last column colored by PASS/FAIL."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), HexColor("#EEF2F7")),
        ("TEXTCOLOR", (0, 0), (-1, 0), BRAND["text"]),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 1), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BOX", (0, 0), (-1, -1), 0.8, BRAND["border"]),
        ("INNERGRID", (0, 0), (-1, -1), 0.25, BRAND["border"]),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
        ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ]

    for r in range(1, len(data)):
        if r % 2 == 0:
            style_cmds.append(("BACKGROUND", (0, r), (-1, r), HexColor("#FAFBFC")))

    status_col = len(data[0]) - 1
    for r in range(1, len(data)):
        s = str(data[r][status_col]).upper()
        style_cmds.append(("TEXTCOLOR", (status_col, r), (status_col, r), _status_color(s)))
        style_cmds.append(("FONTNAME", (status_col, r), (status_col, r), "Helvetica-Bold"))

    return TableStyle(style_cmds)


# =============================================================================
# Public API
# =============================================================================
def generate_pdf_report_bytes(
    report: Delta4Report,
    report_title: str = "Delta4 Patient QA Summary",
    site: Optional[str] = None,
    reviewer: Optional[str] = None,
    logo_path: Optional[Path] = None,
) -> bytes:
    """
    One-report PDF summary: patient/plan block, acceptance criteria with
    PASS/FAIL, per-beam results and the Gamma table heat map when present.

    Returns the PDF bytes; nothing is written to disk.
    """
    criteria = evaluate_criteria(report)
    overall_status, _ = classify(criteria)
    beams = classify_beams(report)

    base_styles = getSampleStyleSheet()
    styleTitle = ParagraphStyle(
        "TitleBrand",
        parent=base_styles["Title"],
        fontName="Helvetica-Bold",
        fontSize=18,
        textColor=BRAND["text"],
        spaceAfter=10,
    )
    styleH = ParagraphStyle(
        "HBrand",
        parent=base_styles["Heading2"],
        fontName="Helvetica-Bold",
        fontSize=12.5,
        textColor=BRAND["text"],
        spaceBefore=10,
        spaceAfter=6,
    )
    styleN = ParagraphStyle(
        "NBrand",
        parent=base_styles["Normal"],
        fontName="Helvetica",
        fontSize=9.5,
        leading=12,
        textColor=BRAND["text"],
    )
    styleMuted = ParagraphStyle("Muted", parent=styleN, textColor=BRAND["muted"])
    styleKey = ParagraphStyle(
        "KeyCell",
        parent=styleN,
        fontName="Helvetica-Bold",
        fontSize=9.2,
        leading=11.2,
        textColor=BRAND["muted"],
    )
    styleVal = ParagraphStyle(
        "ValCell",
        parent=styleN,
        fontName="Helvetica",
        fontSize=9.2,
        leading=11.2,
        textColor=BRAND["text"],
    )

    def Pk(s: str) -> Paragraph:
        return Paragraph(escape(_safe_str(s)), styleKey)

    def Pv(s: Any) -> Paragraph:
        return Paragraph(escape(_safe_str(s)), styleVal)

    pdf_buf = BytesIO()

    header_subtitle = f"{_safe_str(report.title)} • {_safe_str(report.machine)}"
    footer_note = "Research and QA use only. Verify against the original Delta4 report."
    generated_ts = datetime.now().strftime("%Y-%m-%d %H:%M")

    def on_page(canvas, doc):
        _draw_header_footer(
            canvas,
            doc,
            title=report_title,
            subtitle=header_subtitle,
            status=overall_status,
            left_note=f"{footer_note} • Generated {generated_ts}",
            logo_path=logo_path,
        )

    doc = SimpleDocTemplate(
        pdf_buf,
        pagesize=letter,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=1.05 * inch,
        bottomMargin=0.85 * inch,
    )

    story: List[Any] = []

    story.append(Paragraph("Delta4 QA Summary", styleTitle))
    overall_hex = _rl_color_to_hex(_status_color(overall_status))
    story.append(
        Paragraph(
            f"Overall Status: <b><font color='{overall_hex}'>{_safe_str(overall_status, 'UNKNOWN')}</font></b>",
            styleN,
        )
    )
    story.append(Spacer(1, 0.12 * inch))

    review = "N/A"
    if report.review_status is not None:
        review = f"{report.review_status} {_with_user(report.review_date, report.review_user)}"

    header_data = [
        [Pk("Site"), Pv(site or "; ".join(report.clinic))],
        [Pk("Reviewer"), Pv(reviewer)],
        [Pk("Patient Name"), Pv(report.name)],
        [Pk("Patient ID"), Pv(report.patient_id)],
        [Pk("Plan"), Pv(report.plan)],
        [Pk("Planned"), Pv(_with_user(report.plan_date, report.plan_user))],
        [Pk("Measured"), Pv(_with_user(report.meas_date, report.meas_user))],
        [Pk("Review"), Pv(review)],
        [Pk("Radiation Device"), Pv(report.machine)],
        [Pk("Phantom"), Pv(report.phantom)],
        [Pk("Temperature (°C)"), Pv(f"{report.temperature:.1f}")],
        [Pk("Reference"), Pv(report.reference)],
        [Pk("Normalization Dose (Gy)"), Pv(f"{report.norm_dose:.3f}")],
    ]
    if report.cumulative_mu is not None and report.expected_mu is not None:
        header_data.append([Pk("Delivered / Expected MU"), Pv(f"{report.cumulative_mu:g} / {report.expected_mu:g}")])

    t = Table(header_data, colWidths=[2.6 * inch, 4.4 * inch])
    t.setStyle(_table_style_key_value())
    story.append(t)
    story.append(Spacer(1, 0.18 * inch))

    story.append(Paragraph("Acceptance Criteria", styleH))
    story.append(
        Paragraph(
            f"Median dose deviation: {report.dose_dev:+.1f}%. PASS when the pass rate meets the required percentage.",
            styleMuted,
        )
    )
    story.append(Spacer(1, 0.08 * inch))

    crit_tbl = criteria.rename(
        columns={
            "metric": "Metric",
            "criterion": "Criterion",
            "pass_rate": "Pass Rate (%)",
            "required_pct": "Required (%)",
            "status": "Status",
        }
    )[["Metric", "Criterion", "Pass Rate (%)", "Required (%)", "Status"]]
    crit_tbl = crit_tbl.round({"Pass Rate (%)": 1, "Required (%)": 1})
    data = [crit_tbl.columns.tolist()] + crit_tbl.values.tolist()

    tt = Table(data, colWidths=[1.3 * inch, 2.3 * inch, 1.2 * inch, 1.1 * inch, 1.0 * inch])
    tt.setStyle(_table_style_status(data))
    story.append(tt)
    story.append(Spacer(1, 0.18 * inch))

    if not beams.empty:
        story.append(Paragraph("Beams", styleH))
        beam_tbl = beams.rename(
            columns={
                "name": "Beam",
                "dailyCF": "Daily CF",
                "normDose": "Dose (Gy)",
                "absPassRate": "Abs (%)",
                "dtaPassRate": "DTA (%)",
                "gammaPassRate": "Gamma (%)",
                "doseDev": "Dev (%)",
                "status": "Status",
            }
        )
        data = [beam_tbl.columns.tolist()] + beam_tbl.values.tolist()
        bt = Table(data, colWidths=[1.1 * inch] + [0.8 * inch] * 6 + [0.8 * inch])
        bt.setStyle(_table_style_status(data))
        story.append(bt)
        story.append(Spacer(1, 0.18 * inch))

    if report.gamma_table is not None and report.gamma_table.pass_rate:
        story.append(Paragraph("Gamma Index Evaluations", styleH))
        story.append(Paragraph("Pass rate per DTA / dose deviation criterion pair.", styleMuted))
        story.append(Spacer(1, 0.08 * inch))
        png = _fig_to_png_bytes(plot_gamma_table(report.gamma_table))
        story.append(Image(png, width=5.6 * inch, height=3.7 * inch))

    if report.comments:
        story.append(Paragraph("Comments", styleH))
        for c in report.comments:
            story.append(Paragraph(escape(_safe_str(c)), styleN))

    doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
    pdf_buf.seek(0)
    return pdf_buf.getvalue()
