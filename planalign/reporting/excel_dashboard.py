#!/usr/bin/env python3
"""
planalign Excel Alignment Dashboard Generator.

Generates an Excel workbook with:
- Alignment Dashboard (one row per engagement plan)
- Missing Elements (one row per element still missing after auto-fix)

Append-not-overwrite: existing plans are updated, new plans are appended.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from planalign.alignment.model import CATEGORY_KEYS
from planalign.reporting.alignment_explainer import explain_category


# ---------------------------------------------------------------------------
# Palette (openpyxl uses ARGB hex without #)
# ---------------------------------------------------------------------------
_RED_LIGHT = PatternFill(start_color="FFFDE2E2", end_color="FFFDE2E2", fill_type="solid")
_GOLD_LIGHT = PatternFill(start_color="FFFEF3C7", end_color="FFFEF3C7", fill_type="solid")
_EMERALD_LIGHT = PatternFill(start_color="FFD1FAE5", end_color="FFD1FAE5", fill_type="solid")

_HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFFFF")
_HEADER_FILL = PatternFill(start_color="FF1F4E79", end_color="FF1F4E79", fill_type="solid")
_BODY_FONT = Font(name="Calibri", size=10)
_BOLD_FONT = Font(name="Calibri", size=10, bold=True)
_THIN_BORDER = Border(
    left=Side(style="thin", color="FFD9D9D9"),
    right=Side(style="thin", color="FFD9D9D9"),
    top=Side(style="thin", color="FFD9D9D9"),
    bottom=Side(style="thin", color="FFD9D9D9"),
)

DASHBOARD_SHEET = "Alignment Dashboard"
MISSING_SHEET = "Missing Elements"

_DASHBOARD_HEADERS = (
    ["Plan ID", "Outcome", "Initial Coverage %", "Final Coverage %"]
    + [f"{explain_category(k)} %" for k in CATEGORY_KEYS]
    + ["Items Added", "Still Missing", "Extra Items", "Last Evaluated",
       # Reviewer columns (never auto-populated by engine)
       "Clinician Review", "Reviewer Notes"]
)
_REVIEW_COL_START = len(_DASHBOARD_HEADERS) - 1

_MISSING_HEADERS = ["Plan ID", "Category", "Element", "Stage"]


def _style_header_row(ws, num_cols: int) -> None:
    """Apply header styling to first row."""
    for col in range(1, num_cols + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = _THIN_BORDER


def _find_plan_row(ws, plan_id: str) -> Optional[int]:
    """Find existing row for a plan by ID (column A)."""
    for row in range(2, ws.max_row + 1):
        if str(ws.cell(row=row, column=1).value) == str(plan_id):
            return row
    return None


def _outcome_fill(outcome: str) -> Optional[PatternFill]:
    return {
        "ALIGNED": _EMERALD_LIGHT,
        "REPAIRED": _GOLD_LIGHT,
        "PARTIALLY_REPAIRED": _RED_LIGHT,
    }.get(outcome)


# ---------------------------------------------------------------------------
# Sheet builders
# ---------------------------------------------------------------------------

def _build_dashboard_row(ws, payload: Dict[str, Any], row: int) -> None:
    """Populate one Alignment Dashboard row."""
    initial = payload.get("initial_report", {})
    final = payload.get("final_report", {})
    plan = payload.get("plan") or {}
    verification = plan.get("alignmentVerification", {}) if isinstance(plan, dict) else {}
    added = sum((verification.get("itemsAdded") or {}).values())
    still_missing = sum(len(v) for v in (final.get("missing") or {}).values())
    outcome = payload.get("outcome", "")

    data = [
        payload.get("plan_id", ""),
        outcome,
        initial.get("overallCoverage", 0),
        final.get("overallCoverage", 0),
    ]
    data += [(final.get("coveragePercentage") or {}).get(k, 100) for k in CATEGORY_KEYS]
    data += [
        added,
        still_missing,
        ", ".join(final.get("extraItems") or []),
        datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    ]

    for col, val in enumerate(data, 1):
        cell = ws.cell(row=row, column=col, value=val)
        cell.font = _BOLD_FONT if col == 1 else _BODY_FONT
        cell.border = _THIN_BORDER
        cell.alignment = Alignment(vertical="center", wrap_text=(col == len(data) - 1))

    fill = _outcome_fill(outcome)
    if fill is not None:
        ws.cell(row=row, column=2).fill = fill

    # Reviewer columns: preserve existing values, never overwrite
    for col in range(_REVIEW_COL_START, len(_DASHBOARD_HEADERS) + 1):
        cell = ws.cell(row=row, column=col)
        if cell.value is None:
            cell.value = ""
        cell.font = _BODY_FONT
        cell.border = _THIN_BORDER


def _missing_rows(payload: Dict[str, Any]) -> List[List[str]]:
    plan_id = str(payload.get("plan_id", ""))
    rows: List[List[str]] = []
    final = payload.get("final_report", {})
    for key in CATEGORY_KEYS:
        for name in (final.get("missing") or {}).get(key, []):
            rows.append([plan_id, explain_category(key), name, "after auto-fix"])
    return rows


def _rebuild_missing_sheet(ws, payload: Dict[str, Any]) -> None:
    """Replace this plan's rows in the Missing Elements sheet."""
    plan_id = str(payload.get("plan_id", ""))
    for row in range(ws.max_row, 1, -1):
        if str(ws.cell(row=row, column=1).value) == plan_id:
            ws.delete_rows(row)

    for values in _missing_rows(payload):
        row = ws.max_row + 1
        for col, val in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=val)
            cell.font = _BODY_FONT
            cell.border = _THIN_BORDER
            if col == 2:
                cell.fill = _RED_LIGHT


# ---------------------------------------------------------------------------
# Create workbook
# ---------------------------------------------------------------------------

def _create_workbook() -> Workbook:
    """Create a new workbook with both sheets and header rows."""
    wb = Workbook()

    ws1 = wb.active
    ws1.title = DASHBOARD_SHEET
    for col, h in enumerate(_DASHBOARD_HEADERS, 1):
        ws1.cell(row=1, column=col, value=h)
    _style_header_row(ws1, len(_DASHBOARD_HEADERS))
    ws1.freeze_panes = "B2"
    ws1.auto_filter.ref = f"A1:{get_column_letter(len(_DASHBOARD_HEADERS))}1"
    for i in range(1, len(_DASHBOARD_HEADERS) + 1):
        ws1.column_dimensions[get_column_letter(i)].width = 16
    ws1.column_dimensions["A"].width = 24
    ws1.column_dimensions["B"].width = 20

    review_col = get_column_letter(_REVIEW_COL_START)
    dv_review = DataValidation(
        type="list", formula1='"Pending,In Review,Approved,Needs Regeneration"', allow_blank=True
    )
    dv_review.prompt = "Select clinician review status"
    dv_review.promptTitle = "Clinician Review"
    ws1.add_data_validation(dv_review)
    dv_review.add(f"{review_col}2:{review_col}500")

    ws2 = wb.create_sheet(MISSING_SHEET)
    for col, h in enumerate(_MISSING_HEADERS, 1):
        ws2.cell(row=1, column=col, value=h)
    _style_header_row(ws2, len(_MISSING_HEADERS))
    ws2.freeze_panes = "A2"
    for letter, width in zip("ABCD", (24, 20, 40, 16)):
        ws2.column_dimensions[letter].width = width

    return wb


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def update_alignment_dashboard(payload: Dict[str, Any], output_path: Path) -> Path:
    """
    Add or update a plan row in the Excel alignment dashboard.

    If the file exists, opens it and updates/appends.
    If not, creates a new workbook with all sheets and formatting.

    Args:
        payload: Alignment payload from engine.result_to_dict()
        output_path: Path to Excel file

    Returns:
        Path to the Excel file
    """
    if output_path.exists():
        wb = load_workbook(output_path)
    else:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb = _create_workbook()

    ws = wb[DASHBOARD_SHEET]
    plan_id = str(payload.get("plan_id", ""))
    row = _find_plan_row(ws, plan_id) or ws.max_row + 1
    _build_dashboard_row(ws, payload, row)

    _rebuild_missing_sheet(wb[MISSING_SHEET], payload)

    wb.save(output_path)
    return output_path
