#!/usr/bin/env python3
"""
Alignment explainer - plain language descriptions and text report.

Converts category keys, constraint tags and validation reports into
human-readable text for clinicians reviewing an engagement plan.
"""
from __future__ import annotations

from pathlib import Path
from typing import List

from planalign.alignment.model import (
    CATEGORY_KEYS,
    AlignmentResult,
    ConstraintType,
    ValidationReport,
)


# Category key to plain language mapping
_CATEGORY_DESCRIPTIONS = {
    "supplements": "Supplements",
    "clinicTreatments": "Clinic treatments",
    "lifestyleProtocols": "Lifestyle protocols",
    "retestItems": "Retests",
}

_CONSTRAINT_DESCRIPTIONS = {
    ConstraintType.STRUCTURAL: "Phase safety gate",
    ConstraintType.ABSOLUTE: "Stop rule (absolute contraindication)",
    ConstraintType.MONITORING: "Monitoring requirement",
    ConstraintType.WARNING: "Escalation trigger (warning sign)",
    ConstraintType.READINESS: "Readiness criterion",
    ConstraintType.PRECAUTION: "Precaution",
}


def explain_category(key: str) -> str:
    """
    Convert a report category key to a display name.

    Unknown keys are split on camelCase and capitalized.
    """
    if key in _CATEGORY_DESCRIPTIONS:
        return _CATEGORY_DESCRIPTIONS[key]

    words: List[str] = []
    current = ""
    for ch in key:
        if ch.isupper() and current:
            words.append(current)
            current = ch.lower()
        else:
            current += ch
    if current:
        words.append(current)
    return " ".join(words).capitalize()


def explain_constraint_type(ctype: ConstraintType) -> str:
    return _CONSTRAINT_DESCRIPTIONS.get(ctype, ctype.value)


def summarize_report(report: ValidationReport) -> List[str]:
    """
    Plain-language lines for a validation report.

    One line per category, then missing names, then extra items.
    """
    lines: List[str] = []
    status = "ALIGNED" if report.is_aligned else "NOT ALIGNED"
    lines.append(f"Status: {status} (overall coverage {report.overall_coverage}%)")

    for key in CATEGORY_KEYS:
        total = report.totals.get(key, 0)
        covered = report.coverage.get(key, 0)
        pct = report.coverage_percentage.get(key, 100)
        label = explain_category(key)
        if total == 0:
            lines.append(f"  {label}: none in protocol")
        else:
            lines.append(f"  {label}: {covered}/{total} represented ({pct}%)")

    for key in CATEGORY_KEYS:
        for name in report.missing.get(key, []):
            lines.append(f"  [MISSING] {explain_category(key)}: {name}")

    for name in report.extra_items:
        lines.append(f"  [NOT IN PROTOCOL] {name}")

    return lines


def generate_alignment_report(result: AlignmentResult, out_path: Path) -> None:
    """Write a plain-text alignment report for one plan."""
    lines = []
    lines.append("=" * 70)
    lines.append("PLANALIGN — ENGAGEMENT PLAN ALIGNMENT REPORT")
    lines.append("=" * 70)
    lines.append("")
    lines.append(f"Plan:             {result.plan_id or 'Unknown'}")
    lines.append(f"Outcome:          {result.outcome.value}")
    lines.append(f"Repaired:         {'yes' if result.repaired else 'no'}")
    lines.append(f"Protocol items:   {result.elements.total_items()}")
    lines.append(f"Phases:           {len(result.elements.phases)}")
    lines.append("")

    lines.append("-" * 70)
    lines.append("DRAFT AS RECEIVED")
    lines.append("-" * 70)
    lines.extend(summarize_report(result.initial_report))
    lines.append("")

    if result.repaired:
        lines.append("-" * 70)
        lines.append("AFTER AUTO-FIX")
        lines.append("-" * 70)
        lines.extend(summarize_report(result.final_report))
        note = result.plan.get("alignmentNote") if isinstance(result.plan, dict) else None
        if note:
            lines.append(f"  Note: {note}")
        lines.append("")

    if result.elements.safety_constraints:
        lines.append("-" * 70)
        lines.append("SAFETY CONSTRAINTS (informational)")
        lines.append("-" * 70)
        for c in result.elements.safety_constraints:
            lines.append(f"  [{explain_constraint_type(c.type)}] {c.constraint}")
        lines.append("")

    if result.warnings:
        lines.append("-" * 70)
        lines.append("WARNINGS")
        lines.append("-" * 70)
        for w in result.warnings:
            lines.append(f"  {w}")
        lines.append("")

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
