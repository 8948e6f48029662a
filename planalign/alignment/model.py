#!/usr/bin/env python3
"""
Data model classes for the plan alignment pipeline.

This module defines all data structures used by the alignment engine,
including protocol items, extracted elements, validation reports and the
alignment policy.

Design:
- Deterministic: ordered lists everywhere (duplicates are preserved)
- JSON-serializable: every result exposes to_dict() with stable keys
- Immutable configuration: AlignmentPolicy is frozen
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ElementCategory(Enum):
    """
    Clinical element categories tracked for coverage.

    Every protocol item lands in exactly one of these.
    """
    SUPPLEMENT = "Supplement"
    CLINIC_TREATMENT = "ClinicTreatment"
    LIFESTYLE_PROTOCOL = "LifestyleProtocol"
    RETEST = "RetestItem"


class ConstraintType(Enum):
    """
    Safety constraint tags.

    - STRUCTURAL: phase safety gate
    - ABSOLUTE: absolute contraindication (stop rule)
    - MONITORING: monitoring requirement
    - WARNING: warning sign (escalation trigger)
    - READINESS: readiness criterion for entering a phase
    - PRECAUTION: general precaution
    """
    STRUCTURAL = "structural"
    ABSOLUTE = "absolute"
    MONITORING = "monitoring"
    WARNING = "warning"
    READINESS = "readiness"
    PRECAUTION = "precaution"


class AlignmentOutcome(Enum):
    """
    Pipeline outcomes.

    - ALIGNED: draft covered every element, no repair performed
    - REPAIRED: repair closed every gap (re-validation aligned)
    - PARTIALLY_REPAIRED: gaps remain after repair (e.g. lifestyle items)
    """
    ALIGNED = "ALIGNED"
    REPAIRED = "REPAIRED"
    PARTIALLY_REPAIRED = "PARTIALLY_REPAIRED"


# Stable category keys used in reports, in evaluation order
CATEGORY_KEYS = ("supplements", "clinicTreatments", "lifestyleProtocols", "retestItems")

CATEGORY_FOR_KEY = {
    "supplements": ElementCategory.SUPPLEMENT,
    "clinicTreatments": ElementCategory.CLINIC_TREATMENT,
    "lifestyleProtocols": ElementCategory.LIFESTYLE_PROTOCOL,
    "retestItems": ElementCategory.RETEST,
}


@dataclass
class ProtocolItem:
    """
    A single actionable item as authored in the protocol.

    Attributes:
        name: Item name (e.g., "Magnesium Glycinate")
        category: Advisory category tag; inferred when absent
        dosage, timing, rationale, contraindications: Optional clinical detail
        phase_label: Label of the phase the item was authored under
        extra: Any other keys present on the source item
    """
    name: str
    category: Optional[str] = None
    dosage: Optional[Any] = None
    timing: Optional[Any] = None
    rationale: Optional[Any] = None
    contraindications: Optional[Any] = None
    phase_label: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractedElement:
    """
    A categorized clinical element.

    Attributes:
        name: Item name exactly as authored
        category: Resolved ElementCategory
        phase_label: Originating phase label (used for repair placement)
        start_week: Week the element starts in the protocol timeline
        source: Where it came from (core_protocol, phased_expansion, modules, ...)
        details: Clinical detail carried through (dosage, timing, purpose, ...)
    """
    name: str
    category: ElementCategory
    phase_label: Optional[str] = None
    start_week: int = 1
    source: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "phaseLabel": self.phase_label,
            "startWeek": self.start_week,
            "source": self.source,
            "details": dict(self.details),
        }


@dataclass
class SafetyConstraint:
    """A safety constraint carried for information (never validated for presence)."""
    constraint: str
    type: ConstraintType
    phase_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraint": self.constraint,
            "type": self.type.value,
            "phaseLabel": self.phase_label,
        }


@dataclass
class PhaseInfo:
    """Timing metadata for one protocol phase."""
    name: str
    start_week: int
    duration_weeks: int
    kind: str  # "core", "expansion", "module"
    readiness_criteria: List[str] = field(default_factory=list)

    @property
    def end_week(self) -> int:
        return self.start_week + self.duration_weeks - 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "startWeek": self.start_week,
            "durationWeeks": self.duration_weeks,
            "kind": self.kind,
            "readinessCriteria": list(self.readiness_criteria),
        }


@dataclass
class ExtractedElementSet:
    """
    All clinical elements extracted from one protocol.

    The four item lists are ordered and may contain duplicate names
    (the same item authored in two phases stays two entries).
    """
    supplements: List[ExtractedElement] = field(default_factory=list)
    clinic_treatments: List[ExtractedElement] = field(default_factory=list)
    lifestyle_protocols: List[ExtractedElement] = field(default_factory=list)
    retest_items: List[ExtractedElement] = field(default_factory=list)
    safety_constraints: List[SafetyConstraint] = field(default_factory=list)
    phases: List[PhaseInfo] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def elements_for(self, key: str) -> List[ExtractedElement]:
        """Return the element list for a report category key."""
        return {
            "supplements": self.supplements,
            "clinicTreatments": self.clinic_treatments,
            "lifestyleProtocols": self.lifestyle_protocols,
            "retestItems": self.retest_items,
        }[key]

    def names(self, key: str) -> List[str]:
        return [e.name for e in self.elements_for(key)]

    def add(self, element: ExtractedElement) -> None:
        """Append an element to the list matching its category."""
        if element.category == ElementCategory.SUPPLEMENT:
            self.supplements.append(element)
        elif element.category == ElementCategory.CLINIC_TREATMENT:
            self.clinic_treatments.append(element)
        elif element.category == ElementCategory.LIFESTYLE_PROTOCOL:
            self.lifestyle_protocols.append(element)
        else:
            self.retest_items.append(element)

    def total_items(self) -> int:
        return sum(len(self.elements_for(k)) for k in CATEGORY_KEYS)

    def constraints_of(self, ctype: ConstraintType) -> List[SafetyConstraint]:
        return [c for c in self.safety_constraints if c.type == ctype]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key in CATEGORY_KEYS:
            payload[key] = [e.to_dict() for e in self.elements_for(key)]
        payload["safetyConstraints"] = [c.to_dict() for c in self.safety_constraints]
        payload["phases"] = [p.to_dict() for p in self.phases]
        payload["warnings"] = list(self.warnings)
        return payload


@dataclass
class ValidationReport:
    """
    Coverage of one engagement plan against one ExtractedElementSet.

    Attributes:
        is_aligned: True iff no category has missing elements
        coverage: Covered element count per category
        missing: Names of uncovered elements per category (in extraction order)
        coverage_percentage: 0..100 per category (100 when the category is empty)
        overall_coverage: Aggregate 0..100 (policy-selected mean)
        totals: Source element count per category
        extra_items: Plan entries matching no protocol element (informational)
        warnings: Non-fatal issues (e.g., unparseable plan)
    """
    is_aligned: bool
    coverage: Dict[str, int]
    missing: Dict[str, List[str]]
    coverage_percentage: Dict[str, int]
    overall_coverage: int
    totals: Dict[str, int] = field(default_factory=dict)
    extra_items: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def missing_count(self) -> int:
        return sum(len(v) for v in self.missing.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isAligned": self.is_aligned,
            "coverage": dict(self.coverage),
            "missing": {k: list(v) for k, v in self.missing.items()},
            "coveragePercentage": dict(self.coverage_percentage),
            "overallCoverage": self.overall_coverage,
            "totals": dict(self.totals),
            "extraItems": list(self.extra_items),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class AlignmentPolicy:
    """
    Immutable alignment policy.

    Defaults match the legacy auto-fix behavior. See rules/alignment/alignment_contract_v1.json.
    """
    overall_mode: str = "unweighted"                 # "unweighted" | "weighted"
    clinic_treatment_placement: str = "late_phase"   # "late_phase" | "unified"
    clinic_treatment_late_phase_index: int = 2
    lifestyle_auto_fix: bool = False
    scaffold_missing_phases: bool = True
    enforce_safety_rules: bool = False


DEFAULT_POLICY = AlignmentPolicy()


@dataclass
class AlignmentResult:
    """
    Final result of one extract → validate → repair → re-validate run.

    Attributes:
        plan_id: Optional identifier of the plan being aligned
        outcome: ALIGNED / REPAIRED / PARTIALLY_REPAIRED
        elements: Extracted protocol elements
        initial_report: Report for the draft as received
        final_report: Report for the returned plan
        plan: The plan to hand downstream (repaired copy, or a copy of the draft)
        repaired: Whether repair ran
        warnings: Non-fatal issues encountered
    """
    plan_id: Optional[str]
    outcome: AlignmentOutcome
    elements: ExtractedElementSet
    initial_report: ValidationReport
    final_report: ValidationReport
    plan: Dict[str, Any]
    repaired: bool = False
    warnings: List[str] = field(default_factory=list)
