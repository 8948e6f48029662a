#!/usr/bin/env python3
"""
Coverage Validator for planalign.

Checks that an engagement plan textually represents every element extracted
from its protocol. The whole plan is serialized to one lowercase text blob and
each protocol element is looked up with the name variant matcher.

Design:
- Never raises: a null, unparseable or unserializable plan is searched as ""
- Vacuous truth: a category with no source elements is 100% covered
- Safety constraints are informational and never affect is_aligned
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterable, List, Optional

from planalign.alignment.model import (
    CATEGORY_KEYS,
    DEFAULT_POLICY,
    AlignmentPolicy,
    ExtractedElementSet,
    ValidationReport,
)
from planalign.alignment.name_variants import matches

# Structured plan lists scanned for the closed-world (invented item) check
_PHASE_LIST_KEYS = ("supplements", "clinicTreatments", "lifestyleActions")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def coerce_plan(plan: Any) -> Optional[Any]:
    """Parse JSON text plans; return None when the plan is unusable."""
    if plan is None:
        return None
    if isinstance(plan, (str, bytes)):
        try:
            return json.loads(plan)
        except (ValueError, TypeError, RecursionError):
            return None
    return plan


def serialize_plan_text(plan: Any) -> str:
    """
    Serialize an entire plan to one lowercase text blob.

    Returns "" for null, empty, unparseable, unserializable or too deeply
    nested plans.
    """
    data = coerce_plan(plan)
    if not data:
        return ""
    try:
        text = json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return ""
    return text.lower()


def coverage_percent(covered: int, total: int) -> int:
    """100 for an empty category, else covered/total*100 rounded half-up."""
    if total <= 0:
        return 100
    return _round_half_up(covered / total * 100)


def overall_coverage(
    coverage_percentage: Dict[str, int],
    coverage: Dict[str, int],
    totals: Dict[str, int],
    policy: AlignmentPolicy = DEFAULT_POLICY,
) -> int:
    """
    Aggregate coverage across the four categories.

    unweighted: arithmetic mean of the category percentages
    weighted:   covered items / total items (100 when there are no items)
    """
    if policy.overall_mode == "weighted":
        return coverage_percent(sum(coverage.values()), sum(totals.values()))
    values = [coverage_percentage[k] for k in CATEGORY_KEYS]
    return _round_half_up(sum(values) / len(values))


def _entry_name(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry.strip() or None
    if isinstance(entry, dict):
        for key in ("name", "item", "test"):
            value = entry.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def plan_entry_names(plan: Any) -> List[str]:
    """Names listed in the plan's structured sections (phases + retestSchedule)."""
    data = coerce_plan(plan)
    if not isinstance(data, dict):
        return []
    names: List[str] = []
    phases = data.get("phases")
    for phase in phases if isinstance(phases, list) else []:
        if not isinstance(phase, dict):
            continue
        for key in _PHASE_LIST_KEYS:
            entries = phase.get(key)
            for entry in entries if isinstance(entries, list) else []:
                name = _entry_name(entry)
                if name:
                    names.append(name)
    retests = data.get("retestSchedule")
    for entry in retests if isinstance(retests, list) else []:
        name = _entry_name(entry)
        if name:
            names.append(name)
    return names


def find_extra_items(plan: Any, elements: ExtractedElementSet) -> List[str]:
    """
    Plan entries that correspond to no protocol element.

    A plan entry is accounted for when either name matches the other through
    the variant matcher.
    """
    source_names: List[str] = []
    for key in CATEGORY_KEYS:
        source_names.extend(elements.names(key))

    extras: List[str] = []
    for plan_name in plan_entry_names(plan):
        lower_plan_name = plan_name.lower()
        known = any(
            matches(src, lower_plan_name) or matches(plan_name, src.lower())
            for src in source_names
        )
        if not known and plan_name not in extras:
            extras.append(plan_name)
    return extras


def _covered(names: Iterable[str], blob: str) -> Dict[str, List[str]]:
    found: List[str] = []
    missing: List[str] = []
    for name in names:
        if matches(name, blob):
            found.append(name)
        else:
            missing.append(name)
    return {"found": found, "missing": missing}


def validate(
    plan: Any,
    elements: ExtractedElementSet,
    policy: Optional[AlignmentPolicy] = None,
) -> ValidationReport:
    """
    Compute per-category coverage of a plan against extracted elements.

    Args:
        plan: Engagement plan draft (dict, JSON text, or anything malformed)
        elements: ExtractedElementSet from extract()
        policy: Optional AlignmentPolicy (overall coverage mode)

    Returns: ValidationReport (never raises)
    """
    policy = policy or DEFAULT_POLICY
    warnings: List[str] = []

    blob = serialize_plan_text(plan)
    if not blob:
        warnings.append("plan_empty_or_unparseable")

    coverage: Dict[str, int] = {}
    missing: Dict[str, List[str]] = {}
    totals: Dict[str, int] = {}
    percentages: Dict[str, int] = {}

    for key in CATEGORY_KEYS:
        names = elements.names(key)
        result = _covered(names, blob)
        coverage[key] = len(result["found"])
        missing[key] = result["missing"]
        totals[key] = len(names)
        percentages[key] = coverage_percent(coverage[key], totals[key])

    return ValidationReport(
        is_aligned=all(not missing[k] for k in CATEGORY_KEYS),
        coverage=coverage,
        missing=missing,
        coverage_percentage=percentages,
        overall_coverage=overall_coverage(percentages, coverage, totals, policy),
        totals=totals,
        extra_items=find_extra_items(plan, elements) if blob else [],
        warnings=warnings,
    )
