# delta4qa/stages.py
"""
Section readers for the Delta4 report text.

Each reader consumes lines from the shared LineCursor, in report order, and
writes what it finds into the `fields` mapping that the assembler turns into
a Delta4Report. Readers never look behind the cursor.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from delta4qa.cursor import LineCursor
from delta4qa.errors import AnchorNotFound, MalformedField, StructuralMismatch
from delta4qa.models import Beam, GammaTable

logger = logging.getLogger(__name__)

Fields = Dict[str, Any]

# =============================================================================
# Patterns
# =============================================================================
NUM = r"[0-9]+(?:\.[0-9]+)?"

RX_NUM = re.compile(NUM)
RX_HEADER_SEP = re.compile(r" {3,}")
RX_MU_RATIO = re.compile(r"([0-9]+)\s*/\s*([0-9]+)")

RX_SUMMARY = re.compile(
    rf"({NUM})\s+(c?Gy)\s+({NUM})%\s+({NUM})%\s+({NUM})%\s+(-?{NUM})%"
)
RX_BEAM = re.compile(
    rf"({NUM})\s+({NUM})\s+(c?Gy)\s+({NUM})%\s+({NUM})%\s+({NUM})%\s+(-?{NUM})%"
)

RX_GAMMA_EVAL = re.compile(r"gamma\s+index\s+evaluations", re.I)
RX_GAMMA_ROW = re.compile(rf"({NUM})\s*mm((?:\s+{NUM})+)")
RX_GAMMA_COL = re.compile(rf"({NUM}) ?%")

RX_ABS_CRITERIA = re.compile(
    rf"({NUM})%[^0-9]+({NUM})%[^0-9]+({NUM})%[^0-9]+({NUM})%"
)
RX_DTA_CRITERIA = re.compile(
    rf"({NUM})%[^0-9]+({NUM})%[^0-9]+({NUM})"
)
RX_GAMMA_CRITERIA = re.compile(
    rf"({NUM})%[^0-9]+({NUM})%[^0-9]+({NUM})%[^0-9]+({NUM})[^0-9]+({NUM})%[^0-9]+({NUM})"
)

EVENT_DATE_FORMAT = "%m/%d/%Y %I:%M %p"  # M/d/yyyy h:m AM|PM
REVIEW_PREFIXES = ("Accepted:", "Rejected:", "Failed:")

# Index of the "Clinic:" line in reports from April 2016 onwards
MODERN_CLINIC_LINE = 6


def starts_with(prefix: str) -> Callable[[str], bool]:
    return lambda line: line.startswith(prefix)


def contains(text: str) -> Callable[[str], bool]:
    return lambda line: text in line


def to_gy(value: float, unit: str) -> float:
    """Normalization dose in Gy, whatever unit the report printed."""
    return value / 100.0 if unit == "cGy" else value


def _remainder(line: str, prefix: str) -> str:
    return line[len(prefix):].strip()


def _read_anchor(cursor: LineCursor, prefix: str) -> Tuple[str, int]:
    """Find a required `prefix` line, consume it and return (line, index)."""
    line = cursor.scan_until(starts_with(prefix), prefix)
    idx = cursor.position
    cursor.advance()
    return line, idx


# =============================================================================
# Header: title, patient, clinic, plan
# =============================================================================
def detect_layout(cursor: LineCursor) -> str:
    line = cursor.line_at(MODERN_CLINIC_LINE)
    if line is not None and line.startswith("Clinic:"):
        return "modern"
    return "legacy"


def _split_header(line: str) -> List[str]:
    return [p.strip() for p in RX_HEADER_SEP.split(line.strip()) if p.strip()]


def _next_filled(cursor: LineCursor, start: int, what: str) -> int:
    i = start
    while True:
        line = cursor.line_at(i)
        if line is None:
            raise MalformedField(f"Report header ends before the {what}", i, what)
        if line.strip():
            return i
        i += 1


def read_header(cursor: LineCursor, fields: Fields) -> None:
    layout = detect_layout(cursor)
    fields["layout"] = layout

    if layout == "modern":
        fields["title"] = cursor.line_at(0).strip()
        fields["name"] = cursor.line_at(2).strip()
        fields["patient_id"] = cursor.line_at(4).strip()
        cursor.seek(5)
    else:
        first = cursor.line_at(0)
        if first is None:
            raise MalformedField("Report has no lines", 0, "title")
        parts = _split_header(first)

        if len(parts) >= 2:
            fields["title"] = parts[0]
            fields["name"] = " ".join(parts[1:])
            id_line = cursor.line_at(2)
            if id_line is None:
                raise MalformedField("Report header ends before the patient ID", 2, "patient ID")
            fields["patient_id"] = id_line.strip()
            cursor.seek(3)
        else:
            # Title printed on its own line; patient name parts follow it
            fields["title"] = parts[0] if parts else ""
            i_name = _next_filled(cursor, 1, "patient name")
            fields["name"] = " ".join(_split_header(cursor.line_at(i_name)))
            i_id = _next_filled(cursor, i_name + 1, "patient ID")
            fields["patient_id"] = cursor.line_at(i_id).strip()
            cursor.seek(i_id + 1)

    cursor.scan_until(starts_with("Clinic:"), "Clinic:")
    cursor.advance()
    fields["clinic"] = tuple(cursor.collect_until(starts_with("Plan:"), "Plan:"))

    line, _ = _read_anchor(cursor, "Plan:")
    fields["plan"] = _remainder(line, "Plan:")


# =============================================================================
# Events: planned, measured, reviewed
# =============================================================================
def parse_event(line: str, line_index: int, anchor: str) -> Tuple[datetime, Optional[str]]:
    """
    '<Anchor>: M/d/yyyy h:m AM [user]' -> (datetime, user or None)
    """
    tokens = line.split()
    if len(tokens) < 4:
        raise MalformedField(f"'{anchor}' line has no date/time", line_index, EVENT_DATE_FORMAT)
    stamp = " ".join(tokens[1:4])
    try:
        when = datetime.strptime(stamp, EVENT_DATE_FORMAT)
    except ValueError as e:
        raise MalformedField(f"'{anchor}' date '{stamp}' is not M/d/yyyy h:m a", line_index, EVENT_DATE_FORMAT) from e
    user = tokens[4] if len(tokens) > 4 else None
    return when, user


def read_events(cursor: LineCursor, fields: Fields) -> str:
    """
    Reads Planned/Measured and the optional review lines, stopping after the
    'Comments:' line. Returns any text that followed 'Comments:' on that line.
    """
    line, idx = _read_anchor(cursor, "Planned:")
    fields["plan_date"], fields["plan_user"] = parse_event(line, idx, "Planned:")

    line, idx = _read_anchor(cursor, "Measured:")
    fields["meas_date"], fields["meas_user"] = parse_event(line, idx, "Measured:")

    # Several review lines may be listed; the last one before Comments wins.
    while True:
        line = cursor.scan_until(
            lambda ln: ln.startswith(REVIEW_PREFIXES) or ln.startswith("Comments:"),
            "Comments:",
        )
        idx = cursor.position
        cursor.advance()

        if line.startswith("Comments:"):
            return _remainder(line, "Comments:")

        status = line.split()[0].rstrip(":")
        when, user = parse_event(line, idx, status)
        if fields.get("review_status") is not None:
            logger.debug("Review line at %d replaces earlier '%s'", idx, fields["review_status"])
        fields["review_status"] = status
        fields["review_date"] = when
        fields["review_user"] = user


# =============================================================================
# Comments: phantom name and delivered/expected MU
# =============================================================================
def tag_comments(comments: Tuple[str, ...], fields: Fields) -> None:
    fields["phantom"] = "Unknown"
    for c in comments:
        if "delta4" in c.lower():
            fields["phantom"] = c
            continue
        m = RX_MU_RATIO.search(c)
        if m:
            fields["cumulative_mu"] = float(m.group(1))
            fields["expected_mu"] = float(m.group(2))


def read_comments(cursor: LineCursor, fields: Fields, first_line: str = "") -> None:
    comments = [first_line] if first_line else []
    comments += cursor.collect_until(contains("Treatment Summary"), "Treatment Summary")
    fields["comments"] = tuple(comments)
    tag_comments(fields["comments"], fields)


# =============================================================================
# Treatment summary: device, temperature, reference, composite/fraction
# =============================================================================
def read_summary(cursor: LineCursor, fields: Fields) -> None:
    line, _ = _read_anchor(cursor, "Radiation Device:")
    fields["machine"] = _remainder(line, "Radiation Device:")

    line, idx = _read_anchor(cursor, "Temperature:")
    m = RX_NUM.search(_remainder(line, "Temperature:"))
    if not m:
        raise MalformedField(f"No temperature value in '{line.strip()}'", idx, "temperature")
    fields["temperature"] = float(m.group(0))

    line, _ = _read_anchor(cursor, "Reference:")
    fields["reference"] = _remainder(line, "Reference:")

    line = cursor.scan_until(
        lambda ln: ln.startswith("Fraction") or ln.startswith("Composite"),
        "Fraction/Composite",
    )
    idx = cursor.position
    keyword = "Fraction" if line.startswith("Fraction") else "Composite"
    m = RX_SUMMARY.search(line[len(keyword):])
    if not m:
        raise MalformedField(f"Unreadable {keyword} statistics '{line.strip()}'", idx, RX_SUMMARY.pattern)

    fields["norm_dose"] = to_gy(float(m.group(1)), m.group(2))
    fields["abs_pass_rate"] = float(m.group(3))
    fields["dta_pass_rate"] = float(m.group(4))
    fields["gamma_pass_rate"] = float(m.group(5))
    fields["dose_dev"] = float(m.group(6))
    cursor.advance()


# =============================================================================
# Beams
# =============================================================================
def parse_beam_row(line: str) -> Optional[Beam]:
    m = RX_BEAM.search(line)
    if not m:
        return None
    return Beam(
        name=line.strip().split()[0],
        daily_cf=float(m.group(1)),
        norm_dose=to_gy(float(m.group(2)), m.group(3)),
        abs_pass_rate=float(m.group(4)),
        dta_pass_rate=float(m.group(5)),
        gamma_pass_rate=float(m.group(6)),
        dose_dev=float(m.group(7)),
    )


def read_beams(cursor: LineCursor, fields: Fields) -> None:
    beams: List[Beam] = []
    while True:
        line = cursor.peek()
        if line is None or "Histograms" in line:
            break
        beam = parse_beam_row(line)
        if beam is not None:
            beams.append(beam)
        cursor.advance()

    if cursor.at_end:
        raise AnchorNotFound("Histograms", cursor.position)
    fields["beams"] = tuple(beams)


# =============================================================================
# Gamma Index Evaluations table (optional)
# =============================================================================
def check_gamma_table(table: GammaTable, line_index: Optional[int] = None) -> None:
    if len(table.pass_rate) != len(table.dta):
        raise StructuralMismatch(
            f"Gamma table has {len(table.pass_rate)} rows for {len(table.dta)} DTA labels",
            line_index,
            "one row per DTA label",
        )
    if table.abs is not None:
        ncols = len(table.abs)
        for i, row in enumerate(table.pass_rate):
            if len(row) != ncols:
                raise StructuralMismatch(
                    f"Gamma table row {i} (DTA {table.dta[i]} mm) has {len(row)} values, expected {ncols}",
                    line_index,
                    f"{ncols} columns",
                )
    elif len({len(r) for r in table.pass_rate}) > 1:
        raise StructuralMismatch("Gamma table rows have unequal widths", line_index, "equal row widths")


def read_gamma_table(cursor: LineCursor) -> Optional[GammaTable]:
    """
    Returns the table, or None when 'Dose Deviation' comes first.
    Raises StructuralMismatch when the collected rows and labels disagree.
    """
    while True:
        line = cursor.peek()
        if line is None or line.startswith("Dose Deviation"):
            logger.debug("No Gamma Index Evaluations table in report")
            return None
        if RX_GAMMA_EVAL.search(line):
            break
        cursor.advance()

    start = cursor.position
    cursor.advance()

    dta: List[float] = []
    rows: List[Tuple[float, ...]] = []
    abs_: Optional[Tuple[float, ...]] = None

    while not cursor.at_end:
        line = cursor.peek()
        # left in place for the criteria reader
        if line.startswith("Dose Deviation"):
            break

        m = RX_GAMMA_ROW.search(line)
        if m:
            dta.append(float(m.group(1)))
            rows.append(tuple(float(v) for v in RX_NUM.findall(m.group(2))))
        elif RX_GAMMA_COL.search(line):
            if not rows:
                raise StructuralMismatch(
                    f"Percent line '{line.strip()}' found before any Gamma table row",
                    cursor.position,
                    "DTA rows before the dose deviation labels",
                )
            abs_ = tuple(float(v) for v in RX_GAMMA_COL.findall(line))
            cursor.advance()
            _check_no_trailing_rows(cursor)
            break
        cursor.advance()

    table = GammaTable(dta=tuple(dta), abs=abs_, pass_rate=tuple(rows))
    check_gamma_table(table, start)
    return table


def _check_no_trailing_rows(cursor: LineCursor) -> None:
    """Nothing between the column labels and 'Dose Deviation' may look like a row."""
    while not cursor.at_end:
        line = cursor.peek()
        if line.startswith("Dose Deviation"):
            return
        if RX_GAMMA_ROW.search(line):
            raise StructuralMismatch(
                f"Gamma table row '{line.strip()}' found after the dose deviation labels",
                cursor.position,
                "column labels after the last row",
            )
        cursor.advance()


# =============================================================================
# Acceptance criteria
# =============================================================================
def _criteria(cursor: LineCursor, anchor: str, rx: re.Pattern) -> List[float]:
    line, idx = _read_anchor(cursor, anchor)
    m = rx.search(line[len(anchor):])
    if not m:
        raise MalformedField(f"Unreadable '{anchor}' criteria '{line.strip()}'", idx, rx.pattern)
    return [float(g) for g in m.groups()]


def read_criteria(cursor: LineCursor, fields: Fields) -> None:
    v = _criteria(cursor, "Dose Deviation", RX_ABS_CRITERIA)
    fields["abs_range"] = (v[0], v[1])
    fields["abs_pass_limit"] = (v[2], v[3])

    v = _criteria(cursor, "Dist to Agreement", RX_DTA_CRITERIA)
    fields["dta_range"] = (v[0], math.inf)
    fields["dta_pass_limit"] = (v[1], v[2])

    v = _criteria(cursor, "Gamma Index", RX_GAMMA_CRITERIA)
    fields["gamma_range"] = (v[0], v[1])
    fields["gamma_abs"] = v[2]
    fields["gamma_dta"] = v[3]
    fields["gamma_pass_limit"] = (v[4], v[5])
