#!/usr/bin/env python3
"""
Protocol document normalization.

Protocols arrive in two structurally different shapes:

- PHASED: core_protocol + phased_expansion[] (+ clinic_treatments,
  retest_schedule, safety_summary, precautions)
- LEGACY_MODULES: flat modules[] with items[] per module

A document may carry both (MIXED). This module detects the shape and
normalizes everything into one canonical NormalizedProtocol so that the
extractor categorizes a single structure.

Design:
- Never raises: non-dict input, JSON text that fails to parse, or wrong
  container types all normalize to empty collections
- Warnings are recorded instead of errors
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from planalign.alignment.model import ConstraintType, ProtocolItem

DEFAULT_CORE_LABEL = "Core Protocol - Weeks 1-2"
DEFAULT_CORE_DURATION = 2
DEFAULT_EXPANSION_START_WEEK = 3
DEFAULT_PHASE_DURATION = 2
DEFAULT_CLINIC_PHASE = "Available after Week 4"
DEFAULT_CLINIC_START_WEEK = 4

_WEEK_NUMBER = re.compile(r"week\s*(\d+)", re.IGNORECASE)

# safety_summary key → constraint tag
_SAFETY_SUMMARY_KEYS = (
    ("absolute_contraindications", ConstraintType.ABSOLUTE),
    ("monitoring_requirements", ConstraintType.MONITORING),
    ("warning_signs", ConstraintType.WARNING),
)

_ITEM_FIELDS = ("name", "category", "dosage", "timing", "rationale", "contraindications")


class ProtocolShape(Enum):
    """Detected protocol document shape."""
    PHASED = "PHASED"
    LEGACY_MODULES = "LEGACY_MODULES"
    MIXED = "MIXED"
    EMPTY = "EMPTY"


@dataclass
class NormalizedPhase:
    """One phase (core, expansion or legacy module) in canonical form."""
    label: str
    kind: str  # "core", "expansion", "module"
    start_week: int
    duration_weeks: int
    items: List[ProtocolItem] = field(default_factory=list)
    safety_gates: List[str] = field(default_factory=list)
    readiness_criteria: List[str] = field(default_factory=list)


@dataclass
class NormalizedModality:
    """A clinic treatment modality."""
    name: str
    phase_label: str
    start_week: int
    is_optional: bool
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedRetest:
    """A retest schedule entry."""
    name: str
    timing: Optional[Any] = None
    purpose: Optional[Any] = None


@dataclass
class NormalizedProtocol:
    """
    Canonical protocol shape consumed by the extractor.

    phases holds core and expansion phases first (in authoring order), then
    legacy modules (kind == "module").
    """
    shape: ProtocolShape
    phases: List[NormalizedPhase] = field(default_factory=list)
    modalities: List[NormalizedModality] = field(default_factory=list)
    retests: List[NormalizedRetest] = field(default_factory=list)
    safety: List[tuple] = field(default_factory=list)  # (ConstraintType, text)
    precautions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def phased(self) -> List[NormalizedPhase]:
        return [p for p in self.phases if p.kind != "module"]

    def modules(self) -> List[NormalizedPhase]:
        return [p for p in self.phases if p.kind == "module"]


def _as_list(value: Any) -> List[Any]:
    """Containers that are not lists are treated as empty."""
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _as_text_list(value: Any) -> List[str]:
    """Keep non-empty string entries (numbers are stringified)."""
    out: List[str] = []
    for v in _as_list(value):
        if isinstance(v, str) and v.strip():
            out.append(v)
        elif isinstance(v, (int, float)) and not isinstance(v, bool):
            out.append(str(v))
    return out


def coerce_document(doc: Any) -> Dict[str, Any]:
    """Accept a dict or JSON text; anything else becomes an empty document."""
    if isinstance(doc, dict):
        return doc
    if isinstance(doc, (str, bytes)):
        try:
            parsed = json.loads(doc)
        except (ValueError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def detect_shape(data: Dict[str, Any]) -> ProtocolShape:
    """Classify which protocol shape(s) a document carries."""
    has_phased = any(
        k in data for k in ("core_protocol", "phased_expansion", "clinic_treatments",
                            "retest_schedule", "safety_summary", "precautions")
    )
    has_modules = isinstance(data.get("modules"), list)
    if has_phased and has_modules:
        return ProtocolShape.MIXED
    if has_modules:
        return ProtocolShape.LEGACY_MODULES
    if has_phased:
        return ProtocolShape.PHASED
    return ProtocolShape.EMPTY


def normalize_item(raw: Any, phase_label: Optional[str]) -> Optional[ProtocolItem]:
    """
    Convert a raw item (dict or bare string) into a ProtocolItem.

    Returns None when the item carries no usable name.
    """
    if isinstance(raw, str):
        name = raw.strip()
        return ProtocolItem(name=name, phase_label=phase_label) if name else None

    if not isinstance(raw, dict):
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    category = raw.get("category")
    extra = {k: v for k, v in raw.items() if k not in _ITEM_FIELDS}
    return ProtocolItem(
        name=name.strip(),
        category=category if isinstance(category, str) else None,
        dosage=raw.get("dosage"),
        timing=raw.get("timing"),
        rationale=raw.get("rationale"),
        contraindications=raw.get("contraindications"),
        phase_label=phase_label,
        extra=extra,
    )


def _normalize_items(raw_items: Any, label: str, where: str, warnings: List[str]) -> List[ProtocolItem]:
    items: List[ProtocolItem] = []
    for idx, raw in enumerate(_as_list(raw_items)):
        item = normalize_item(raw, label)
        if item is None:
            warnings.append(f"skipped_item_without_name: {where}[{idx}]")
            continue
        items.append(item)
    return items


def _normalize_core(data: Dict[str, Any], warnings: List[str]) -> Optional[NormalizedPhase]:
    core = _as_dict(data.get("core_protocol"))
    if not core:
        return None
    label = core.get("phase_name") if isinstance(core.get("phase_name"), str) else DEFAULT_CORE_LABEL
    return NormalizedPhase(
        label=label,
        kind="core",
        start_week=1,
        duration_weeks=_as_int(core.get("duration_weeks"), DEFAULT_CORE_DURATION),
        items=_normalize_items(core.get("items"), label, "core_protocol.items", warnings),
        safety_gates=_as_text_list(core.get("safety_gates")),
    )


def _normalize_expansion(data: Dict[str, Any], warnings: List[str]) -> List[NormalizedPhase]:
    phases: List[NormalizedPhase] = []
    for idx, raw in enumerate(_as_list(data.get("phased_expansion"))):
        phase = _as_dict(raw)
        if not phase:
            warnings.append(f"skipped_malformed_phase: phased_expansion[{idx}]")
            continue
        label = phase.get("phase_name")
        if not isinstance(label, str) or not label.strip():
            label = f"Phase {idx + 1}"
        phases.append(NormalizedPhase(
            label=label,
            kind="expansion",
            start_week=_as_int(phase.get("start_week"), DEFAULT_EXPANSION_START_WEEK),
            duration_weeks=_as_int(phase.get("duration_weeks"), DEFAULT_PHASE_DURATION),
            items=_normalize_items(phase.get("items"), label, f"phased_expansion[{idx}].items", warnings),
            safety_gates=_as_text_list(phase.get("safety_gates")),
            readiness_criteria=_as_text_list(phase.get("readiness_criteria")),
        ))
    return phases


def _normalize_modules(data: Dict[str, Any], warnings: List[str]) -> List[NormalizedPhase]:
    phases: List[NormalizedPhase] = []
    for idx, raw in enumerate(_as_list(data.get("modules"))):
        module = _as_dict(raw)
        if not module:
            warnings.append(f"skipped_malformed_module: modules[{idx}]")
            continue
        label = module.get("name")
        if not isinstance(label, str) or not label.strip():
            label = f"Module {idx + 1}"
        phases.append(NormalizedPhase(
            label=label,
            kind="module",
            start_week=1,
            duration_weeks=DEFAULT_PHASE_DURATION,
            items=_normalize_items(module.get("items"), label, f"modules[{idx}].items", warnings),
        ))
    return phases


def _clinic_start_week(phase_label: str) -> int:
    m = _WEEK_NUMBER.search(phase_label)
    return int(m.group(1)) if m else DEFAULT_CLINIC_START_WEEK


def _normalize_modalities(data: Dict[str, Any], warnings: List[str]) -> List[NormalizedModality]:
    block = _as_dict(data.get("clinic_treatments"))
    phase_label = block.get("phase") if isinstance(block.get("phase"), str) else DEFAULT_CLINIC_PHASE
    start_week = _clinic_start_week(phase_label)
    lower = phase_label.lower()
    is_optional = "available" in lower or "if stable" in lower

    out: List[NormalizedModality] = []
    for idx, raw in enumerate(_as_list(block.get("available_modalities"))):
        item = normalize_item(raw, phase_label)
        if item is None:
            warnings.append(f"skipped_item_without_name: clinic_treatments.available_modalities[{idx}]")
            continue
        details: Dict[str, Any] = {}
        if isinstance(raw, dict):
            for key in ("indication", "contraindications", "protocol", "notes"):
                if raw.get(key) is not None:
                    details[key] = raw.get(key)
        out.append(NormalizedModality(
            name=item.name,
            phase_label=phase_label,
            start_week=start_week,
            is_optional=is_optional,
            details=details,
        ))
    return out


def _normalize_retests(data: Dict[str, Any], warnings: List[str]) -> List[NormalizedRetest]:
    out: List[NormalizedRetest] = []
    for idx, raw in enumerate(_as_list(data.get("retest_schedule"))):
        if isinstance(raw, str) and raw.strip():
            out.append(NormalizedRetest(name=raw.strip()))
            continue
        entry = _as_dict(raw)
        name = entry.get("test") or entry.get("name")
        if not isinstance(name, str) or not name.strip():
            warnings.append(f"skipped_item_without_name: retest_schedule[{idx}]")
            continue
        out.append(NormalizedRetest(name=name.strip(), timing=entry.get("timing"), purpose=entry.get("purpose")))
    return out


def _normalize_safety(data: Dict[str, Any]) -> List[tuple]:
    summary = _as_dict(data.get("safety_summary"))
    out: List[tuple] = []
    for key, ctype in _SAFETY_SUMMARY_KEYS:
        for text in _as_text_list(summary.get(key)):
            out.append((ctype, text))
    return out


def normalize_protocol(doc: Any) -> NormalizedProtocol:
    """
    Normalize any accepted protocol document into the canonical shape.

    Args:
        doc: Protocol dict or JSON text (phase-based, legacy modules, or both)

    Returns: NormalizedProtocol (never raises)
    """
    if doc is not None and not isinstance(doc, (dict, str, bytes)):
        return NormalizedProtocol(shape=ProtocolShape.EMPTY, warnings=["protocol_not_an_object"])

    data = coerce_document(doc)
    warnings: List[str] = []
    if doc is not None and not data and not isinstance(doc, dict):
        warnings.append("protocol_unparseable")

    shape = detect_shape(data)
    phases: List[NormalizedPhase] = []

    core = _normalize_core(data, warnings)
    if core is not None:
        phases.append(core)
    phases.extend(_normalize_expansion(data, warnings))
    phases.extend(_normalize_modules(data, warnings))

    return NormalizedProtocol(
        shape=shape,
        phases=phases,
        modalities=_normalize_modalities(data, warnings),
        retests=_normalize_retests(data, warnings),
        safety=_normalize_safety(data),
        precautions=_as_text_list(data.get("precautions")),
        warnings=warnings,
    )
