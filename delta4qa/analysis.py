# delta4qa/analysis.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.dates as mdates

from delta4qa.models import Delta4Report, GammaTable


# =============================================================================
# Constants / utils
# =============================================================================
# A metric PASSes when its pass rate is at least the report's required
# percentage (e.g. Gamma [95, 1] -> 95% of points with gamma <= 1).
STATUS_COLORS = {"PASS": "#2ca02c", "FAIL": "#d62728", "UNKNOWN": "#6b7280"}

TREND_COLUMNS = [
    "Date",
    "ID",
    "name",
    "plan",
    "machine",
    "phantom",
    "normDose",
    "absPassRate",
    "dtaPassRate",
    "gammaPassRate",
    "doseDev",
    "status",
]


def _require_columns(df: pd.DataFrame, cols: List[str], fn: str) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{fn}: missing required columns {missing}")


def _safe_date_ymd_from_any(x: Any) -> Optional[str]:
    """
    Convert anything date-like to YYYY-MM-DD.
    Returns None if not parseable.
    """
    if x is None:
        return None
    dt_ = pd.to_datetime(x, errors="coerce")
    if pd.notna(dt_):
        return pd.Timestamp(dt_).strftime("%Y-%m-%d")
    return None


def _status(pass_rate: float, required: float) -> str:
    if not (np.isfinite(pass_rate) and np.isfinite(required)):
        return "UNKNOWN"
    return "PASS" if pass_rate >= required else "FAIL"


# =============================================================================
# Acceptance criteria
# =============================================================================
def evaluate_criteria(report: Delta4Report) -> pd.DataFrame:
    """
    One row per acceptance criterion with the measured pass rate, the
    required percentage and the PASS/FAIL status.
    """
    rows = [
        {
            "metric": "Dose Deviation",
            "pass_rate": report.abs_pass_rate,
            "required_pct": report.abs_pass_limit[0],
            "criterion": f"within {report.abs_pass_limit[1]:g}%",
        },
        {
            "metric": "DTA",
            "pass_rate": report.dta_pass_rate,
            "required_pct": report.dta_pass_limit[0],
            "criterion": f"within {report.dta_pass_limit[1]:g} mm",
        },
        {
            "metric": "Gamma",
            "pass_rate": report.gamma_pass_rate,
            "required_pct": report.gamma_pass_limit[0],
            "criterion": (
                f"gamma <= {report.gamma_pass_limit[1]:g} "
                f"({report.gamma_abs:g}%/{report.gamma_dta:g} mm)"
            ),
        },
    ]
    df = pd.DataFrame(rows)
    df["pass_rate"] = pd.to_numeric(df["pass_rate"], errors="coerce")
    df["required_pct"] = pd.to_numeric(df["required_pct"], errors="coerce")
    df["margin"] = df["pass_rate"] - df["required_pct"]
    df["status"] = [_status(p, r) for p, r in zip(df["pass_rate"], df["required_pct"])]
    return df


def classify(criteria_df: pd.DataFrame) -> Tuple[str, float]:
    """
    Overall verdict from evaluate_criteria() output: FAIL if any metric
    fails, UNKNOWN if none could be evaluated. Also returns the worst margin.
    """
    _require_columns(criteria_df, ["margin", "status"], "classify()")

    margins = pd.to_numeric(criteria_df["margin"], errors="coerce").to_numpy(dtype=float)
    finite = margins[np.isfinite(margins)]
    if finite.size == 0:
        return "UNKNOWN", np.nan

    worst = float(np.min(finite))
    if (criteria_df["status"] == "FAIL").any():
        return "FAIL", worst
    return "PASS", worst


def classify_beams(report: Delta4Report) -> pd.DataFrame:
    """Per-beam Gamma verdict against the plan-level Gamma pass limit."""
    df = beams_frame(report)
    required = report.gamma_pass_limit[0]
    df["status"] = [_status(p, required) for p in df["gammaPassRate"].to_numpy(dtype=float)]
    return df


# =============================================================================
# Tabular views
# =============================================================================
def beams_frame(report: Delta4Report) -> pd.DataFrame:
    cols = ["name", "dailyCF", "normDose", "absPassRate", "dtaPassRate", "gammaPassRate", "doseDev"]
    return pd.DataFrame([b.to_dict() for b in report.beams], columns=cols)


def summarize_report(report: Delta4Report) -> Dict:
    """
    Creates one trend row with a YYYY-MM-DD date (measurement date).
    """
    status, _ = classify(evaluate_criteria(report))
    return {
        "Date": _safe_date_ymd_from_any(report.meas_date),
        "ID": report.patient_id,
        "name": report.name,
        "plan": report.plan,
        "machine": report.machine,
        "phantom": report.phantom,
        "normDose": report.norm_dose,
        "absPassRate": report.abs_pass_rate,
        "dtaPassRate": report.dta_pass_rate,
        "gammaPassRate": report.gamma_pass_rate,
        "doseDev": report.dose_dev,
        "status": status,
    }


def reports_frame(reports: Iterable[Delta4Report]) -> pd.DataFrame:
    return pd.DataFrame([summarize_report(r) for r in reports], columns=TREND_COLUMNS)


# =============================================================================
# Trending
# =============================================================================
def append_trending_csv(
    trend_csv_path: Path,
    new_rows: List[Dict],
    dedup_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Appends rows to the trend CSV, forces Date to YYYY-MM-DD, keeps the last
    row for each (Date, ID, plan, machine) and saves sorted by date.
    """
    trend_csv_path = Path(trend_csv_path)
    trend_csv_path.parent.mkdir(parents=True, exist_ok=True)

    new_df = pd.DataFrame(new_rows)
    if "Date" in new_df.columns:
        new_df["Date"] = pd.to_datetime(new_df["Date"], errors="coerce").dt.strftime("%Y-%m-%d")

    if trend_csv_path.exists():
        old_df = pd.read_csv(trend_csv_path, dtype={"ID": str})
        if "Date" in old_df.columns:
            old_df["Date"] = pd.to_datetime(old_df["Date"], errors="coerce").dt.strftime("%Y-%m-%d")
        all_df = pd.concat([old_df, new_df], ignore_index=True)
    else:
        all_df = new_df.copy()

    if dedup_cols is None:
        dedup_cols = ["Date", "ID", "plan", "machine"]

    for c in dedup_cols:
        if c not in all_df.columns:
            all_df[c] = np.nan

    all_df = all_df.drop_duplicates(subset=dedup_cols, keep="last")

    all_df["Date_dt"] = pd.to_datetime(all_df["Date"], errors="coerce")
    all_df = all_df.sort_values(["Date_dt"], kind="stable").reset_index(drop=True)
    all_df.drop(columns=["Date_dt"], inplace=True, errors="ignore")

    all_df.to_csv(trend_csv_path, index=False)
    return all_df


def _set_smart_date_axis(ax: plt.Axes) -> None:
    locator = mdates.AutoDateLocator(minticks=4, maxticks=8)
    ax.xaxis.set_major_locator(locator)
    ax.xaxis.set_major_formatter(mdates.ConciseDateFormatter(locator))
    ax.tick_params(axis="x", labelsize=10, pad=6)


def _set_smart_xlim(ax: plt.Axes, x: pd.Series) -> None:
    """
    Prevents years of empty x-range when only one point exists.
    """
    if len(x) == 0:
        return
    xmin = pd.Timestamp(np.min(x))
    xmax = pd.Timestamp(np.max(x))
    if xmin == xmax:
        pad = pd.Timedelta(days=14)
        ax.set_xlim(xmin - pad, xmax + pad)
    else:
        span = xmax - xmin
        pad = max(pd.Timedelta(days=2), span * 0.04)
        ax.set_xlim(xmin - pad, xmax + pad)


def plot_pass_rate_trending(
    trend_df: pd.DataFrame,
    metric: str = "gammaPassRate",
    machine: Optional[str] = None,
    limit_pct: Optional[float] = 95.0,
    title: str = "Trending: Delta4 Gamma Pass Rate",
) -> plt.Figure:
    """
    Pass rate over time, markers colored by the stored status, with the
    action limit drawn as a dashed line.
    """
    df = trend_df.copy()
    _require_columns(df, ["Date", metric], "plot_pass_rate_trending()")

    if machine is not None and "machine" in df.columns:
        df = df[df["machine"] == machine]

    df["Date_dt"] = pd.to_datetime(df["Date"], errors="coerce")
    df[metric] = pd.to_numeric(df[metric], errors="coerce")
    df = df.dropna(subset=["Date_dt", metric]).sort_values("Date_dt")

    fig, ax = plt.subplots(figsize=(10.0, 4.6), dpi=150)

    if df.empty:
        ax.set_title("No trend history found yet")
        ax.axis("off")
        fig.tight_layout()
        return fig

    x = df["Date_dt"]
    y = df[metric].to_numpy(dtype=float)
    if "status" in df.columns:
        status = df["status"].fillna("UNKNOWN").astype(str).str.upper().to_numpy()
    else:
        status = np.full(y.shape, "UNKNOWN", dtype=object)

    ax.plot(x, y, linewidth=1.9, alpha=0.40, label="Run (line)")

    for key, color in STATUS_COLORS.items():
        idx = np.where(status == key)[0]
        if idx.size:
            ax.scatter(x.iloc[idx], y[idx], s=46, color=color, zorder=3, label=key)

    if limit_pct is not None:
        ax.axhline(float(limit_pct), linestyle="--", linewidth=1.4, color=STATUS_COLORS["FAIL"], label="Limit")

    ax.set_title(title, fontsize=14, pad=10)
    ax.set_ylabel("Pass rate (%)")
    ax.set_ylim(min(float(np.nanmin(y)), float(limit_pct or 100.0)) - 2.0, 100.5)
    ax.grid(True, axis="y", alpha=0.25)
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)

    _set_smart_date_axis(ax)
    _set_smart_xlim(ax, x)
    ax.legend(loc="lower left", frameon=False, fontsize=9, ncol=5)
    fig.tight_layout()
    return fig


# =============================================================================
# Gamma Index Evaluations heat map
# =============================================================================
def plot_gamma_table(table: GammaTable, title: str = "Gamma Index Evaluations") -> plt.Figure:
    """Pass rate per (DTA, dose deviation) criterion pair."""
    df = table.as_frame()
    fig, ax = plt.subplots(figsize=(6.4, 4.2), dpi=150)

    if df.empty:
        ax.set_title("Empty Gamma table")
        ax.axis("off")
        fig.tight_layout()
        return fig

    data = df.to_numpy(dtype=float)
    im = ax.imshow(data, cmap="RdYlGn", vmin=max(0.0, float(np.nanmin(data)) - 5.0), vmax=100.0, aspect="auto")

    ax.set_xticks(range(df.shape[1]))
    ax.set_xticklabels([f"{c:g}%" for c in df.columns])
    ax.set_yticks(range(df.shape[0]))
    ax.set_yticklabels([f"{r:g} mm" for r in df.index])
    ax.set_xlabel("Dose Deviation")
    ax.set_ylabel("Distance to Agreement")

    for i in range(data.shape[0]):
        for j in range(data.shape[1]):
            ax.text(j, i, f"{data[i, j]:.1f}", ha="center", va="center", fontsize=8)

    fig.colorbar(im, ax=ax, label="Pass rate (%)")
    ax.set_title(title, fontsize=12, pad=8)
    fig.tight_layout()
    return fig
