# app.py — Delta4 Patient QA Review
# streamlit run app.py

from __future__ import annotations

import hashlib
import logging
import tempfile
from pathlib import Path
from typing import List, Tuple

import pandas as pd
import streamlit as st

from delta4qa.analysis import (
    append_trending_csv,
    beams_frame,
    classify,
    evaluate_criteria,
    plot_gamma_table,
    plot_pass_rate_trending,
    reports_frame,
    summarize_report,
)
from delta4qa.config import settings
from delta4qa.errors import Delta4Error
from delta4qa.io_report import parse_report_file
from delta4qa.logging_utils import setup_logging
from delta4qa.models import Delta4Report
from delta4qa.report import generate_pdf_report_bytes

# =============================================================================
# App identity
# =============================================================================
APP_VERSION = "1.0.0"
APP_NAME = "Delta4 Patient QA Review"
APP_SHORT_NAME = "Delta4 QA"

st.set_page_config(
    page_title=APP_SHORT_NAME,
    page_icon="🎯",
    layout="wide",
    initial_sidebar_state="expanded",
)

setup_logging(settings)
logger = logging.getLogger("delta4qa.app")

# =============================================================================
# Theme + CSS
# =============================================================================
THEME = {
    "primary": "#1f2a44",
    "accent": "#C99700",
    "bg": "#f5f7fa",
    "panel": "#ffffff",
    "border": "#e5e7eb",
    "text": "#111827",
    "muted": "#4b5563",
    "success": "#0f766e",
    "danger": "#b91c1c",
}


def inject_css(t: dict) -> None:
    st.markdown(
        f"""
<style>
:root {{
  --primary: {t["primary"]};
  --accent: {t["accent"]};
  --bg: {t["bg"]};
  --panel: {t["panel"]};
  --border: {t["border"]};
  --text: {t["text"]};
  --muted: {t["muted"]};
  --success: {t["success"]};
  --danger: {t["danger"]};
  --radius: 16px;
  --shadow: 0 6px 18px rgba(17, 24, 39, 0.06);
}}

.stApp {{ background: var(--bg); }}
footer {{ visibility: hidden; }}

.block-container {{
  padding-top: 1.0rem !important;
  padding-bottom: 2.0rem !important;
  max-width: 1280px;
}}

section[data-testid="stSidebar"] {{
  background: linear-gradient(180deg, rgba(31,42,68,0.98), rgba(31,42,68,0.93));
}}
section[data-testid="stSidebar"] * {{
  color: rgba(255,255,255,0.92) !important;
}}

.section-title {{
  margin: 18px 0 6px 0;
  font-weight: 900;
  font-size: 1.08rem;
  color: var(--text);
}}
.section-sub {{
  margin: 0 0 12px 0;
  color: var(--muted);
  line-height: 1.45;
}}

.status-banner {{
  padding: 0.85rem 1rem;
  border-radius: 0.85rem;
  border: 1px solid var(--border);
  margin: 0.5rem 0 0.75rem 0;
  background: var(--panel);
  box-shadow: var(--shadow);
}}
.status-title {{
  font-weight: 900;
  font-size: 1.02rem;
  margin-bottom: 0.15rem;
}}
.status-sub {{ color: var(--muted); line-height: 1.4; }}
.status-chip {{
  display:inline-flex;
  border-radius:999px;
  padding:5px 10px;
  border:1px solid var(--border);
  font-size:0.82rem;
  margin-left:8px;
}}
.status-chip.pass {{ background: rgba(15,118,110,0.10); color: var(--success); border-color: rgba(15,118,110,0.25); }}
.status-chip.fail {{ background: rgba(185,28,28,0.10); color: var(--danger); border-color: rgba(185,28,28,0.25); }}
</style>
""",
        unsafe_allow_html=True,
    )


inject_css(THEME)

# =============================================================================
# State management
# =============================================================================
def ensure_state() -> None:
    defaults = {
        "system_status": "ready",
        "last_upload_signature": None,
        "site_name": "",
        "reviewer_name": "",
        "strict_gamma": settings.STRICT_GAMMA_TABLE,
    }
    for k, v in defaults.items():
        st.session_state.setdefault(k, v)


ensure_state()

# =============================================================================
# Helpers
# =============================================================================
def _uploaded_signature(files) -> Tuple[Tuple[str, str, int], ...]:
    sig = []
    for f in files:
        b = f.getvalue()
        sig.append((f.name, hashlib.md5(b).hexdigest(), len(b)))
    return tuple(sorted(sig))


def _parse_pdf_bytes(name: str, data: bytes, strict: bool) -> Delta4Report:
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / name
        path.write_bytes(data)
        return parse_report_file(path, strict=strict)


def parse_uploaded(files) -> Tuple[List[Tuple[str, Delta4Report]], pd.DataFrame]:
    """Parse every uploaded PDF; failures are collected instead of stopping the batch."""
    sig = _uploaded_signature(files)
    if st.session_state.get("last_upload_signature") == sig and "reports" in st.session_state:
        return st.session_state["reports"], st.session_state["df_errors"]

    reports: List[Tuple[str, Delta4Report]] = []
    errors = []
    for f in files:
        try:
            reports.append((f.name, _parse_pdf_bytes(f.name, f.getvalue(), st.session_state["strict_gamma"])))
        except Delta4Error as e:
            logger.error("Failed to parse %s: %s", f.name, e, extra={"source_file": f.name})
            errors.append({"SourceFile": f.name, "Error": str(e)})

    df_errors = pd.DataFrame(errors, columns=["SourceFile", "Error"])
    st.session_state["last_upload_signature"] = sig
    st.session_state["reports"] = reports
    st.session_state["df_errors"] = df_errors
    st.session_state.pop("pdf_bytes", None)
    return reports, df_errors


def _status_banner(scope_name: str, status: str, worst_margin: float) -> None:
    s = (status or "").strip().upper()
    if s == "PASS":
        chip = '<span class="status-chip pass">PASS</span>'
        title = f"{scope_name}: All criteria met"
    else:
        chip = '<span class="status-chip fail">FAIL</span>'
        title = f"{scope_name}: Acceptance criteria not met"

    st.markdown(
        f"""
<div class="status-banner">
  <div class="status-title">{title}{chip}</div>
  <div class="status-sub">Smallest margin to the required pass rate: <b>{float(worst_margin):+.1f} %</b></div>
</div>
""",
        unsafe_allow_html=True,
    )


# =============================================================================
# Sidebar
# =============================================================================
with st.sidebar:
    st.markdown(f"### {APP_SHORT_NAME}")
    st.caption(f"Version {APP_VERSION}")
    st.session_state["site_name"] = st.text_input("Site", st.session_state["site_name"])
    st.session_state["reviewer_name"] = st.text_input("Reviewer", st.session_state["reviewer_name"])
    st.session_state["strict_gamma"] = st.checkbox(
        "Reject reports with a malformed Gamma table",
        value=st.session_state["strict_gamma"],
    )
    trend_csv_path = st.text_input("Trend history CSV", str(settings.TREND_CSV))

st.markdown(f"## {APP_NAME}")

tab_upload, tab_results, tab_reports, tab_trends = st.tabs(
    ["Upload & Intake", "Results", "Reports", "Trends"]
)

# =============================================================================
# TAB 1: UPLOAD
# =============================================================================
with tab_upload:
    st.markdown('<div class="section-title">Upload Delta4 reports</div>', unsafe_allow_html=True)
    st.markdown(
        '<div class="section-sub">PDF exports of Delta4 patient QA reports. Pages 1 and 2 are read.</div>',
        unsafe_allow_html=True,
    )
    uploaded = st.file_uploader("Delta4 report PDFs", type=["pdf"], accept_multiple_files=True)

    if uploaded:
        with st.spinner("Parsing reports…"):
            reports, df_errors = parse_uploaded(uploaded)
        st.success(f"Parsed {len(reports)} of {len(uploaded)} report(s).")
        if not df_errors.empty:
            st.error("Some reports could not be parsed.")
            st.dataframe(df_errors, use_container_width=True)
        if reports:
            st.dataframe(reports_frame([r for _, r in reports]), use_container_width=True)
    else:
        st.info("Upload one or more Delta4 report PDFs to begin.")

reports = st.session_state.get("reports", [])

# =============================================================================
# TAB 2: RESULTS
# =============================================================================
with tab_results:
    if not reports:
        st.info("Upload reports in **Upload & Intake** first.")
    else:
        names = [n for n, _ in reports]
        picked = st.selectbox("Report", names, index=0)
        report = dict(reports)[picked]

        criteria = evaluate_criteria(report)
        status, worst = classify(criteria)

        st.markdown('<div class="section-title">QA Verdict</div>', unsafe_allow_html=True)
        _status_banner(report.plan, status, worst)

        for w in report.warnings:
            st.warning(w)

        c1, c2 = st.columns(2, gap="large")
        with c1:
            with st.container(border=True):
                st.markdown("**Patient & plan**")
                st.write(f"**{report.name}** ({report.patient_id})")
                st.write(f"Plan: {report.plan}")
                st.write(f"Measured: {report.meas_date:%Y-%m-%d %H:%M} {report.meas_user or ''}")
                if report.has_review:
                    st.write(f"{report.review_status}: {report.review_date:%Y-%m-%d %H:%M} {report.review_user or ''}")
        with c2:
            with st.container(border=True):
                st.markdown("**Delivery**")
                st.write(f"Device: {report.machine} • Phantom: {report.phantom}")
                st.write(f"Temperature: {report.temperature:.1f} °C • Reference: {report.reference}")
                st.write(f"Normalization dose: {report.norm_dose:.3f} Gy • Median dose dev.: {report.dose_dev:+.1f}%")
                if report.cumulative_mu is not None:
                    st.write(f"MU delivered/expected: {report.cumulative_mu:g} / {report.expected_mu:g}")

        st.markdown('<div class="section-title">Acceptance criteria</div>', unsafe_allow_html=True)
        st.dataframe(criteria, use_container_width=True)

        st.markdown('<div class="section-title">Beams</div>', unsafe_allow_html=True)
        df_beams = beams_frame(report)
        if df_beams.empty:
            st.caption("No per-beam rows in this report.")
        else:
            st.dataframe(df_beams, use_container_width=True)

        if report.gamma_table is not None:
            st.markdown('<div class="section-title">Gamma Index Evaluations</div>', unsafe_allow_html=True)
            st.pyplot(plot_gamma_table(report.gamma_table), clear_figure=True)

        with st.expander("Comments"):
            for c in report.comments:
                st.write(c)

# =============================================================================
# TAB 3: REPORTS
# =============================================================================
with tab_reports:
    if not reports:
        st.info("Upload reports in **Upload & Intake** first.")
    else:
        picked_pdf = st.selectbox("Report for PDF summary", [n for n, _ in reports], key="pdf_pick")
        if st.button("Generate PDF summary", use_container_width=True):
            try:
                st.session_state["pdf_bytes"] = generate_pdf_report_bytes(
                    dict(reports)[picked_pdf],
                    site=st.session_state["site_name"] or None,
                    reviewer=st.session_state["reviewer_name"] or None,
                )
                st.session_state["pdf_name"] = f"{Path(picked_pdf).stem}_summary.pdf"
                st.success("PDF summary generated.")
            except Exception as e:
                logger.exception("PDF generation failed", extra={"source_file": picked_pdf})
                st.error(f"Report generation failed: {e}")

        if st.session_state.get("pdf_bytes"):
            st.download_button(
                "Download PDF",
                data=st.session_state["pdf_bytes"],
                file_name=st.session_state.get("pdf_name", "Delta4_QA_Summary.pdf"),
                mime="application/pdf",
            )

# =============================================================================
# TAB 4: TRENDS
# =============================================================================
with tab_trends:
    trend_path = Path(trend_csv_path)

    if reports and st.button("Append parsed reports to trends", use_container_width=True):
        trend_all = append_trending_csv(trend_path, [summarize_report(r) for _, r in reports])
        st.session_state["trend_all"] = trend_all
        st.success(f"Trends updated: {trend_path.as_posix()}")

    if "trend_all" in st.session_state:
        trend_all = st.session_state["trend_all"]
    elif trend_path.exists():
        trend_all = pd.read_csv(trend_path, dtype={"ID": str})
    else:
        trend_all = None

    if trend_all is None or len(trend_all) == 0:
        st.info("No trend history found yet. Append parsed reports above to begin tracking.")
    else:
        machines = ["All"] + sorted(trend_all["machine"].dropna().astype(str).unique().tolist())
        machine = st.selectbox("Radiation device", machines, index=0)
        fig_tr = plot_pass_rate_trending(trend_all, machine=None if machine == "All" else machine)
        st.pyplot(fig_tr, clear_figure=True, use_container_width=True)

        with st.expander("Trend history table"):
            st.dataframe(trend_all, use_container_width=True)

st.markdown("---")
st.caption(f"{APP_NAME} • Version {APP_VERSION} • Research and QA use only • Not FDA cleared")
