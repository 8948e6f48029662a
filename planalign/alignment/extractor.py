#!/usr/bin/env python3
"""
Protocol Element Extractor for planalign.

Walks a protocol document and produces an ExtractedElementSet: four ordered,
categorized item lists (supplements, clinic treatments, lifestyle protocols,
retest items) plus safety constraints and phase timing.

Design:
- Deterministic: same document always yields the same set, in the same order
- Fail-closed on shape, never on content: malformed containers become empty
- Explicit category tags win; keyword inference is a legacy fallback only
- Duplicates across phases are preserved as distinct entries
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from planalign.alignment.model import (
    ConstraintType,
    ElementCategory,
    ExtractedElement,
    ExtractedElementSet,
    PhaseInfo,
    ProtocolItem,
    SafetyConstraint,
)
from planalign.alignment.normalize import NormalizedPhase, normalize_protocol


# Explicit category tags (lowercased) → category.
# Data-model enum spellings are accepted alongside the authoring tags.
SUPPLEMENT_TAGS = ("supplement", "supplements", "binder")
CLINIC_TREATMENT_TAGS = ("clinic_treatment", "clinic", "iv", "therapy", "clinictreatment")
LIFESTYLE_TAGS = ("lifestyle", "diet", "protocol", "lifestyleprotocol")

# Legacy keyword inference for un-tagged historical data.
# Clinic-treatment keywords are checked before lifestyle keywords; the
# default is Supplement.
CLINIC_TREATMENT_KEYWORDS: Tuple[str, ...] = (
    "iv ", " iv", "infusion", "push", "drip",
    "hbot", "hyperbaric",
    "ozone", "autohemotherapy", "eboo", "mah",
    "red light", "photobiomodulation",
    "cold plunge", "cryotherapy", "cryo",
    "sauna", "infrared",
    "peptide", "injection",
    "phosphatidylcholine iv", "glutathione iv", "nad+",
    "pemf", "pulsed electromagnetic",
)

LIFESTYLE_KEYWORDS: Tuple[str, ...] = (
    "hydration", "water intake",
    "elimination", "bowel",
    "sleep", "circadian",
    "exercise", "movement", "resistance training", "strength training",
    "stress", "meditation",
    "diet", "food", "eating", "nutrition",
    "fasting", "intermittent",
    "sunlight", "light exposure",
)


def category_from_tag(tag: Optional[str]) -> Optional[ElementCategory]:
    """Resolve an explicit category tag; None when absent or unrecognized."""
    if not tag or not isinstance(tag, str):
        return None
    t = tag.strip().lower()
    if t in SUPPLEMENT_TAGS:
        return ElementCategory.SUPPLEMENT
    if t in CLINIC_TREATMENT_TAGS:
        return ElementCategory.CLINIC_TREATMENT
    if t in LIFESTYLE_TAGS:
        return ElementCategory.LIFESTYLE_PROTOCOL
    return None


def infer_legacy_category(name: Optional[str]) -> ElementCategory:
    """
    Keyword-substring category inference for items without a usable tag.

    Order matters: clinic-treatment keywords, then lifestyle keywords,
    then Supplement by default.
    """
    if not name or not isinstance(name, str):
        return ElementCategory.SUPPLEMENT
    lower = name.lower()
    if any(kw in lower for kw in CLINIC_TREATMENT_KEYWORDS):
        return ElementCategory.CLINIC_TREATMENT
    if any(kw in lower for kw in LIFESTYLE_KEYWORDS):
        return ElementCategory.LIFESTYLE_PROTOCOL
    return ElementCategory.SUPPLEMENT


def categorize_item(item: ProtocolItem) -> ElementCategory:
    """Explicit tag when usable, legacy inference otherwise."""
    explicit = category_from_tag(item.category)
    if explicit is not None:
        return explicit
    return infer_legacy_category(item.name)


def _item_details(item: ProtocolItem) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    for key in ("dosage", "timing", "rationale", "contraindications"):
        value = getattr(item, key)
        if value is not None:
            details[key] = value
    if item.category is not None:
        details["category_tag"] = item.category
    return details


def _source_for(phase: NormalizedPhase) -> str:
    return {
        "core": "core_protocol",
        "expansion": "phased_expansion",
        "module": "modules",
    }.get(phase.kind, phase.kind)


def _extract_phase_items(phase: NormalizedPhase, out: ExtractedElementSet) -> None:
    for item in phase.items:
        out.add(ExtractedElement(
            name=item.name,
            category=categorize_item(item),
            phase_label=phase.label,
            start_week=phase.start_week,
            source=_source_for(phase),
            details=_item_details(item),
        ))


def _extract_phase_constraints(phase: NormalizedPhase, out: ExtractedElementSet) -> None:
    for gate in phase.safety_gates:
        out.safety_constraints.append(SafetyConstraint(gate, ConstraintType.STRUCTURAL, phase.label))
    for criterion in phase.readiness_criteria:
        out.safety_constraints.append(SafetyConstraint(criterion, ConstraintType.READINESS, phase.label))


def extract(doc: Any) -> ExtractedElementSet:
    """
    Extract every actionable clinical element from a protocol document.

    Walk order:
    1. Core phase items and safety gates
    2. Each expansion phase's items, safety gates, readiness criteria
    3. Clinic-treatment modalities
    4. Retest schedule entries
    5. Safety summary (absolute, monitoring, warning) and precautions
    6. Legacy modules[].items[]

    Returns: ExtractedElementSet (never raises)
    """
    normalized = normalize_protocol(doc)
    out = ExtractedElementSet(warnings=list(normalized.warnings))

    for phase in normalized.phases:
        out.phases.append(PhaseInfo(
            name=phase.label,
            start_week=phase.start_week,
            duration_weeks=phase.duration_weeks,
            kind=phase.kind,
            readiness_criteria=list(phase.readiness_criteria),
        ))

    for phase in normalized.phased():
        _extract_phase_items(phase, out)
        _extract_phase_constraints(phase, out)

    for modality in normalized.modalities:
        details = dict(modality.details)
        details["is_optional"] = modality.is_optional
        out.clinic_treatments.append(ExtractedElement(
            name=modality.name,
            category=ElementCategory.CLINIC_TREATMENT,
            phase_label=modality.phase_label,
            start_week=modality.start_week,
            source="clinic_treatments",
            details=details,
        ))

    for retest in normalized.retests:
        details = {}
        if retest.timing is not None:
            details["timing"] = retest.timing
        if retest.purpose is not None:
            details["purpose"] = retest.purpose
        out.retest_items.append(ExtractedElement(
            name=retest.name,
            category=ElementCategory.RETEST,
            phase_label=None,
            start_week=1,
            source="retest_schedule",
            details=details,
        ))

    for ctype, text in normalized.safety:
        out.safety_constraints.append(SafetyConstraint(text, ctype))
    for text in normalized.precautions:
        out.safety_constraints.append(SafetyConstraint(text, ConstraintType.PRECAUTION))

    for module in normalized.modules():
        _extract_phase_items(module, out)

    return out
