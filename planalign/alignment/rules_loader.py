#!/usr/bin/env python3
"""
Alignment Rules Loader for planalign.

Loads the alignment contract (coverage and repair policy) from
rules/alignment/ and turns it into an immutable AlignmentPolicy.

Design:
- Deterministic
- Minimal validation (fail-closed)
- Immutable policy at runtime
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from planalign.alignment.model import AlignmentPolicy

REPO_ROOT = Path(__file__).resolve().parents[2]
CONTRACT_PATH = REPO_ROOT / "rules" / "alignment" / "alignment_contract_v1.json"

# Values the engine implements. A contract may narrow these, never extend them.
OVERALL_MODES = ("unweighted", "weighted")
CLINIC_TREATMENT_PLACEMENTS = ("late_phase", "unified")


def _read_json(path: Path) -> Dict[str, Any]:
    """Read and parse JSON file with fail-closed error handling."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SystemExit(f"Missing JSON: {path}")
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON: {path}\n{e}")


def _require_bool(section: Dict[str, Any], key: str, default: bool, name: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise SystemExit(f"{name}: {key} must be true/false")
    return value


def load_alignment_contract(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the alignment contract.

    Returns: Contract dict

    Raises: SystemExit if contract is missing, malformed, or not locked
    """
    path = path or CONTRACT_PATH
    obj = _read_json(path)

    if not isinstance(obj, dict):
        raise SystemExit(f"{path.name}: contract must be a JSON object")

    # Fail-closed validation
    meta = obj.get("meta")
    if not isinstance(meta, dict) or meta.get("locked") is not True:
        raise SystemExit(f"{path.name} must have meta.locked=true")

    for section in ("coverage", "repair"):
        if not isinstance(obj.get(section), dict):
            raise SystemExit(f"{path.name} missing {section} section")

    return obj


def policy_from_contract(contract: Dict[str, Any], name: str = "alignment contract") -> AlignmentPolicy:
    """
    Build an AlignmentPolicy from a contract dict.

    Raises: SystemExit on values outside the allowed sets
    """
    coverage = contract.get("coverage", {})
    repair = contract.get("repair", {})
    safety = contract.get("safety", {}) if isinstance(contract.get("safety"), dict) else {}

    overall_mode = coverage.get("overall_mode", "unweighted")
    allowed_modes = coverage.get("allowed_overall_modes", OVERALL_MODES)
    if overall_mode not in OVERALL_MODES or overall_mode not in allowed_modes:
        raise SystemExit(f"{name}: invalid coverage.overall_mode {overall_mode!r}")

    placement = repair.get("clinic_treatment_placement", "late_phase")
    allowed_placements = repair.get("allowed_clinic_treatment_placements", CLINIC_TREATMENT_PLACEMENTS)
    if placement not in CLINIC_TREATMENT_PLACEMENTS or placement not in allowed_placements:
        raise SystemExit(f"{name}: invalid repair.clinic_treatment_placement {placement!r}")

    late_index = repair.get("clinic_treatment_late_phase_index", 2)
    if isinstance(late_index, bool) or not isinstance(late_index, int) or late_index < 0:
        raise SystemExit(f"{name}: repair.clinic_treatment_late_phase_index must be a non-negative integer")

    return AlignmentPolicy(
        overall_mode=overall_mode,
        clinic_treatment_placement=placement,
        clinic_treatment_late_phase_index=late_index,
        lifestyle_auto_fix=_require_bool(repair, "lifestyle_auto_fix", False, name),
        scaffold_missing_phases=_require_bool(repair, "scaffold_missing_phases", True, name),
        enforce_safety_rules=_require_bool(safety, "enforce_safety_rules", False, name),
    )


def load_alignment_policy(path: Optional[Path] = None) -> AlignmentPolicy:
    """Load the contract and return its AlignmentPolicy."""
    contract = load_alignment_contract(path)
    return policy_from_contract(contract, name=(path or CONTRACT_PATH).name)
