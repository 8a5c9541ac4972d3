# delta4qa/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import pandas as pd

Pair = Tuple[float, float]


@dataclass(frozen=True)
class Beam:
    """One per-beam result row of the Treatment Summary."""
    name: str
    daily_cf: float
    norm_dose: float        # Gy
    abs_pass_rate: float    # %
    dta_pass_rate: float    # %
    gamma_pass_rate: float  # %
    dose_dev: float         # %, signed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "dailyCF": self.daily_cf,
            "normDose": self.norm_dose,
            "absPassRate": self.abs_pass_rate,
            "dtaPassRate": self.dta_pass_rate,
            "gammaPassRate": self.gamma_pass_rate,
            "doseDev": self.dose_dev,
        }


@dataclass(frozen=True)
class GammaTable:
    """
    Gamma Index Evaluations table.

    Rows are DTA criteria (mm), columns are dose deviation criteria (%).
    `abs` is None when the table ended before its column labels were seen.
    """
    dta: Tuple[float, ...]
    abs: Optional[Tuple[float, ...]]
    pass_rate: Tuple[Tuple[float, ...], ...]

    @property
    def shape(self) -> Tuple[int, int]:
        ncols = len(self.abs) if self.abs is not None else (len(self.pass_rate[0]) if self.pass_rate else 0)
        return len(self.dta), ncols

    def as_frame(self) -> pd.DataFrame:
        columns = list(self.abs) if self.abs is not None else None
        df = pd.DataFrame([list(r) for r in self.pass_rate], index=list(self.dta), columns=columns)
        df.index.name = "DTA (mm)"
        df.columns.name = "Dose Deviation (%)"
        return df

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "dta": list(self.dta),
            "passRate": [list(r) for r in self.pass_rate],
        }
        if self.abs is not None:
            out["abs"] = list(self.abs)
        return out


# Report keys, in report order, for each dataclass attribute.
REPORT_KEYS: Dict[str, str] = {
    "title": "title",
    "name": "name",
    "patient_id": "ID",
    "clinic": "clinic",
    "plan": "plan",
    "plan_date": "planDate",
    "plan_user": "planUser",
    "meas_date": "measDate",
    "meas_user": "measUser",
    "review_status": "reviewStatus",
    "review_date": "reviewDate",
    "review_user": "reviewUser",
    "comments": "comments",
    "phantom": "phantom",
    "cumulative_mu": "cumulativeMU",
    "expected_mu": "expectedMU",
    "machine": "machine",
    "temperature": "temperature",
    "reference": "reference",
    "norm_dose": "normDose",
    "abs_pass_rate": "absPassRate",
    "dta_pass_rate": "dtaPassRate",
    "gamma_pass_rate": "gammaPassRate",
    "dose_dev": "doseDev",
    "beams": "beams",
    "abs_range": "absRange",
    "abs_pass_limit": "absPassLimit",
    "dta_range": "dtaRange",
    "dta_pass_limit": "dtaPassLimit",
    "gamma_range": "gammaRange",
    "gamma_abs": "gammaAbs",
    "gamma_dta": "gammaDta",
    "gamma_pass_limit": "gammaPassLimit",
    "gamma_table": "gammaTable",
}

OPTIONAL_FIELDS = frozenset(
    {
        "plan_user",
        "meas_user",
        "review_status",
        "review_date",
        "review_user",
        "cumulative_mu",
        "expected_mu",
        "gamma_table",
    }
)


@dataclass(frozen=True)
class Delta4Report:
    """Parsed contents of one Delta4 QA report."""

    # Header
    title: str
    name: str
    patient_id: str
    clinic: Tuple[str, ...]
    plan: str

    # Events
    plan_date: datetime
    meas_date: datetime

    # Comments
    comments: Tuple[str, ...]

    # Treatment summary
    machine: str
    temperature: float
    reference: str
    norm_dose: float
    abs_pass_rate: float
    dta_pass_rate: float
    gamma_pass_rate: float
    dose_dev: float

    # Acceptance criteria
    abs_range: Pair
    abs_pass_limit: Pair
    dta_range: Pair
    dta_pass_limit: Pair
    gamma_range: Pair
    gamma_abs: float
    gamma_dta: float
    gamma_pass_limit: Pair

    beams: Tuple[Beam, ...] = ()
    phantom: str = "Unknown"

    # Optional sections
    plan_user: Optional[str] = None
    meas_user: Optional[str] = None
    review_status: Optional[str] = None
    review_date: Optional[datetime] = None
    review_user: Optional[str] = None
    cumulative_mu: Optional[float] = None
    expected_mu: Optional[float] = None
    gamma_table: Optional[GammaTable] = None

    # "modern" (April 2016+) or "legacy" header
    layout: str = "modern"

    # Non-fatal problems met while parsing (e.g. a dropped Gamma table)
    warnings: Tuple[str, ...] = field(default=(), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """
        Report keys as they appear in the Delta4 export; optional keys are
        left out when the corresponding section was absent.
        """
        out: Dict[str, Any] = {}
        for attr, key in REPORT_KEYS.items():
            value = getattr(self, attr)
            if value is None and attr in OPTIONAL_FIELDS:
                continue
            if attr == "beams":
                value = [b.to_dict() for b in value]
            elif attr == "gamma_table":
                value = value.to_dict()
            elif isinstance(value, tuple):
                value = list(value)
            out[key] = value
        return out

    @property
    def has_review(self) -> bool:
        return self.review_status is not None
