#!/usr/bin/env python3
"""
Auto-Fix Repairer for planalign.

Injects missing protocol elements into a copy of an engagement plan so that
coverage gaps reported by the validator are closed.

Placement policy:
- Supplement: plan phase chosen by the phase-mapping heuristic on the
  element's originating phase label
- ClinicTreatment: fixed late phase min(2, last index) (legacy placement),
  or the heuristic when the policy selects "unified"
- RetestItem: top-level retestSchedule[], independent of phases
- LifestyleProtocol: not repaired unless the policy opts in

Design:
- Never mutates inputs (deep copy)
- Deterministic: no timestamps, no randomness
- Alignment note carries counts only (no item names)
"""
from __future__ import annotations

import copy
from collections import Counter
from typing import Any, Dict, List, Optional

from planalign.alignment.generation_spec import protocol_duration_weeks
from planalign.alignment.model import (
    CATEGORY_FOR_KEY,
    CATEGORY_KEYS,
    DEFAULT_POLICY,
    AlignmentPolicy,
    ConstraintType,
    ExtractedElement,
    ExtractedElementSet,
    ValidationReport,
)
from planalign.alignment.phase_mapping import map_phase_to_week
from planalign.alignment.validator import coerce_plan

SUPPLEMENT_ACTION = "Take {name} as prescribed (per protocol)"
CLINIC_TREATMENT_ACTION = "Discuss {name} with your clinician (clinician decision, per protocol)"
LIFESTYLE_ACTION = "Follow {name} (per protocol)"
RETEST_ACTION = "Schedule {name} (per protocol)"

_CATEGORY_LABELS = {
    "supplements": "supplement(s)",
    "clinicTreatments": "clinic treatment(s)",
    "lifestyleProtocols": "lifestyle protocol(s)",
    "retestItems": "retest(s)",
}


def _copy_plan(plan: Any) -> Dict[str, Any]:
    """Deep copy of a dict plan; anything else (or a plan too deep to copy) becomes an empty plan."""
    data = coerce_plan(plan)
    if not isinstance(data, dict):
        return {}
    try:
        return copy.deepcopy(data)
    except RecursionError:
        return {}


def _ensure_list(container: Dict[str, Any], key: str) -> List[Any]:
    """Return container[key] as a list, wrapping or creating it in place."""
    value = container.get(key)
    if isinstance(value, list):
        return value
    lst: List[Any] = [] if value is None else [value]
    container[key] = lst
    return lst


def _pending_elements(elements: List[ExtractedElement], names: List[str], key: str) -> List[ExtractedElement]:
    """
    Pair missing names with their source elements, preserving duplicates.

    Names with no source element are repaired with default placement.
    """
    wanted = Counter(names)
    out: List[ExtractedElement] = []
    for element in elements:
        if wanted[element.name] > 0:
            out.append(element)
            wanted[element.name] -= 1
    for name in names:
        while wanted[name] > 0:
            out.append(ExtractedElement(name=name, category=CATEGORY_FOR_KEY[key]))
            wanted[name] -= 1
    return out


def _scaffold_phases(elements: ExtractedElementSet) -> List[Dict[str, Any]]:
    """Build empty plan phases from the protocol's phase structure."""
    infos = elements.phases or []
    phases: List[Dict[str, Any]] = []
    for idx, info in enumerate(infos):
        phases.append({
            "phaseNumber": idx + 1,
            "title": info.name,
            "weekRange": f"{info.start_week}-{info.end_week}",
            "supplements": [],
            "clinicTreatments": [],
            "lifestyleActions": [],
            "items": [],
        })
    if not phases:
        phases.append({
            "phaseNumber": 1,
            "title": "Phase 1",
            "supplements": [],
            "clinicTreatments": [],
            "lifestyleActions": [],
            "items": [],
        })
    return phases


class _PhaseTargets:
    """Lazy access to the plan's phases (scaffolded only when needed)."""

    def __init__(self, plan: Dict[str, Any], elements: ExtractedElementSet, policy: AlignmentPolicy):
        self._plan = plan
        self._elements = elements
        self._policy = policy

    def phase_at(self, index: int) -> Optional[Dict[str, Any]]:
        phases = self._plan.get("phases")
        if not isinstance(phases, list) or not phases:
            if not self._policy.scaffold_missing_phases:
                return None
            phases = _scaffold_phases(self._elements)
            self._plan["phases"] = phases

        idx = max(0, min(index, len(phases) - 1))
        phase = phases[idx]
        if not isinstance(phase, dict):
            phase = {"title": "" if phase is None else str(phase)}
            phases[idx] = phase
        return phase

    def last_index(self) -> int:
        phases = self._plan.get("phases")
        if isinstance(phases, list) and phases:
            return len(phases) - 1
        if self._policy.scaffold_missing_phases:
            return max(len(self._elements.phases), 1) - 1
        return 0


def _clinic_phase_index(element: ExtractedElement, targets: _PhaseTargets, policy: AlignmentPolicy) -> int:
    if policy.clinic_treatment_placement == "unified":
        return map_phase_to_week(element.phase_label)
    return min(policy.clinic_treatment_late_phase_index, targets.last_index())


def _retest_entry(element: ExtractedElement) -> Dict[str, Any]:
    timing = element.details.get("timing")
    return {
        "name": element.name,
        "timing": timing if timing else "As scheduled",
        "action": RETEST_ACTION.format(name=element.name),
    }


def alignment_note(added: Dict[str, int], not_repaired: Dict[str, int]) -> str:
    """Human-readable summary of injected item counts."""
    parts = [
        f"{added.get(k, 0)} {_CATEGORY_LABELS[k]}"
        for k in ("supplements", "clinicTreatments", "retestItems")
    ]
    if added.get("lifestyleProtocols"):
        parts.append(f"{added['lifestyleProtocols']} {_CATEGORY_LABELS['lifestyleProtocols']}")
    note = "Alignment auto-fix: added " + ", ".join(parts)

    left = {k: v for k, v in not_repaired.items() if v}
    if left:
        detail = ", ".join(f"{v} {_CATEGORY_LABELS[k]}" for k, v in left.items())
        note += f"; not auto-fixed: {detail}"
    return note


def _write_alignment_note(plan: Dict[str, Any], added: Dict[str, int], not_repaired: Dict[str, int]) -> None:
    plan["alignmentNote"] = alignment_note(added, not_repaired)
    plan["alignmentVerification"] = {
        "autoFixed": any(added.values()),
        "itemsAdded": dict(added),
        "itemsNotRepaired": dict(not_repaired),
    }


def repair(
    plan: Any,
    report: ValidationReport,
    elements: ExtractedElementSet,
    policy: Optional[AlignmentPolicy] = None,
) -> Dict[str, Any]:
    """
    Return a repaired copy of plan with missing elements injected.

    Args:
        plan: Engagement plan draft (never mutated)
        report: ValidationReport for plan against elements
        elements: ExtractedElementSet the report was computed from
        policy: Optional AlignmentPolicy (placement and lifestyle opt-in)

    Returns: Repaired plan dict carrying alignmentNote / alignmentVerification
    """
    policy = policy or DEFAULT_POLICY
    fixed = _copy_plan(plan)
    added = {k: 0 for k in CATEGORY_KEYS}
    not_repaired = {k: 0 for k in CATEGORY_KEYS}

    if report is None or report.is_aligned:
        _write_alignment_note(fixed, added, not_repaired)
        return fixed

    targets = _PhaseTargets(fixed, elements, policy)

    for key in CATEGORY_KEYS:
        names = list(report.missing.get(key, []))
        if not names:
            continue
        pending = _pending_elements(elements.elements_for(key), names, key)

        if key == "retestItems":
            schedule = _ensure_list(fixed, "retestSchedule")
            for element in pending:
                schedule.append(_retest_entry(element))
                added[key] += 1
            continue

        if key == "lifestyleProtocols" and not policy.lifestyle_auto_fix:
            not_repaired[key] += len(pending)
            continue

        for element in pending:
            if key == "clinicTreatments":
                index = _clinic_phase_index(element, targets, policy)
                list_key, action = "clinicTreatments", CLINIC_TREATMENT_ACTION
            elif key == "supplements":
                index = map_phase_to_week(element.phase_label)
                list_key, action = "supplements", SUPPLEMENT_ACTION
            else:
                index = map_phase_to_week(element.phase_label)
                list_key, action = "lifestyleActions", LIFESTYLE_ACTION

            phase = targets.phase_at(index)
            if phase is None:
                not_repaired[key] += 1
                continue
            _ensure_list(phase, list_key).append(element.name)
            _ensure_list(phase, "items").append(action.format(name=element.name))
            added[key] += 1

    _write_alignment_note(fixed, added, not_repaired)
    return fixed


def enforce_safety_rules(plan: Any, elements: ExtractedElementSet) -> Dict[str, Any]:
    """
    Return a copy of plan whose safety rules carry the protocol's stop and
    escalation constraints, and whose timeline is not compressed.

    - absolute contraindications → safetyRules.stopImmediately
    - warning signs → safetyRules.escalation24h
    - totalWeeks raised to the protocol duration when shorter
    """
    fixed = _copy_plan(plan)

    rules = fixed.get("safetyRules")
    if not isinstance(rules, dict):
        rules = {}
        fixed["safetyRules"] = rules

    for ctype, key in ((ConstraintType.ABSOLUTE, "stopImmediately"), (ConstraintType.WARNING, "escalation24h")):
        target = _ensure_list(rules, key)
        for c in elements.constraints_of(ctype):
            if not any(isinstance(r, str) and c.constraint in r for r in target):
                target.append(c.constraint)

    total = fixed.get("totalWeeks")
    required = protocol_duration_weeks(elements)
    if isinstance(total, (int, float)) and not isinstance(total, bool) and total < required:
        fixed["totalWeeks"] = required

    return fixed
