#!/usr/bin/env python3
"""
Plan Alignment Engine for planalign.

Aligns a patient-facing engagement plan with its source protocol:
extract → validate → repair (if misaligned) → re-validate.

Design:
- Deterministic: Same input always produces same output
- Closed-world: The protocol is the source of truth; the plan must cover
  every element and is checked for invented ones
- Never fatal: Malformed drafts produce a normal, well-formed result
- Auditable: Initial and final reports are both kept
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, Optional

from planalign import ENGINE_VERSION, GOVERNANCE_VERSION, RULES_VERSIONS
from planalign.alignment.extractor import extract
from planalign.alignment.model import (
    CATEGORY_KEYS,
    DEFAULT_POLICY,
    AlignmentOutcome,
    AlignmentPolicy,
    AlignmentResult,
)
from planalign.alignment.repair import enforce_safety_rules, repair
from planalign.alignment.rules_loader import load_alignment_policy
from planalign.alignment.validator import coerce_plan, validate
from planalign.governance.failure_log import (
    FailureLog,
    log_extra_items,
    log_malformed_plan,
    log_missing_elements,
    log_unrepaired_gap,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


def load_json_document(path: Path) -> Any:
    """Read a JSON input file (protocol or plan) with fail-closed error handling."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SystemExit(f"Missing JSON: {path}")
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON: {path}\n{e}")


def _protocol_id(protocol_doc: Any) -> Optional[str]:
    if isinstance(protocol_doc, dict):
        for key in ("protocol_id", "id", "title"):
            value = protocol_doc.get(key)
            if value is not None:
                return str(value)
    return None


def align_engagement_plan(
    protocol_doc: Any,
    plan: Any,
    policy: Optional[AlignmentPolicy] = None,
    failure_log: Optional[FailureLog] = None,
    plan_id: Optional[str] = None,
    command: str = "",
) -> AlignmentResult:
    """
    Main alignment orchestrator.

    Flow:
    1. Extract protocol elements
    2. Validate the draft
    3. Aligned → ALIGNED (plan returned as an unmodified copy)
    4. Otherwise repair and re-validate:
       a. no gaps left → REPAIRED
       b. gaps left (e.g., lifestyle items) → PARTIALLY_REPAIRED
    5. Optionally enforce safety rules on the returned plan

    Returns: AlignmentResult with both reports and the plan to persist
    """
    policy = policy or DEFAULT_POLICY
    protocol_id = _protocol_id(protocol_doc)

    elements = extract(protocol_doc)
    initial = validate(plan, elements, policy)

    warnings = list(elements.warnings) + list(initial.warnings)

    if failure_log is not None:
        if "plan_empty_or_unparseable" in initial.warnings:
            log_malformed_plan(failure_log, plan_id, protocol_id, command)
        log_missing_elements(failure_log, initial, plan_id, protocol_id, command)
        if initial.extra_items:
            log_extra_items(failure_log, initial.extra_items, plan_id, protocol_id, command)

    if initial.is_aligned:
        outcome = AlignmentOutcome.ALIGNED
        fixed = repair(plan, initial, elements, policy)
        final = initial
        repaired = False
    else:
        fixed = repair(plan, initial, elements, policy)
        final = validate(fixed, elements, policy)
        repaired = True
        outcome = AlignmentOutcome.REPAIRED if final.is_aligned else AlignmentOutcome.PARTIALLY_REPAIRED
        if failure_log is not None and not final.is_aligned:
            log_unrepaired_gap(failure_log, final, plan_id, protocol_id, command)

    if policy.enforce_safety_rules:
        fixed = enforce_safety_rules(fixed, elements)
        final = validate(fixed, elements, policy)

    return AlignmentResult(
        plan_id=plan_id,
        outcome=outcome,
        elements=elements,
        initial_report=initial,
        final_report=final,
        plan=fixed,
        repaired=repaired,
        warnings=warnings,
    )


def summarize_outcome(result: AlignmentResult) -> str:
    """One-line summary for output artifacts and CLI."""
    initial = result.initial_report.overall_coverage
    final = result.final_report.overall_coverage
    if result.outcome == AlignmentOutcome.ALIGNED:
        return f"ALIGNED — All protocol elements represented ({final}% coverage)"
    if result.outcome == AlignmentOutcome.REPAIRED:
        return f"REPAIRED — Coverage {initial}% → {final}% after auto-fix"
    remaining = [k for k in CATEGORY_KEYS if result.final_report.missing.get(k)]
    return (
        f"PARTIALLY_REPAIRED — Coverage {initial}% → {final}%; "
        f"gaps remain in {', '.join(remaining)}"
    )


def result_to_dict(result: AlignmentResult) -> Dict[str, Any]:
    """JSON-serializable payload for an AlignmentResult."""
    return {
        "plan_id": result.plan_id,
        "outcome": result.outcome.value,
        "summary": summarize_outcome(result),
        "repaired": result.repaired,
        "elements": result.elements.to_dict(),
        "initial_report": result.initial_report.to_dict(),
        "final_report": result.final_report.to_dict(),
        "plan": result.plan,
        "warnings": list(result.warnings),
        "governance_version": GOVERNANCE_VERSION,
        "engine_version": ENGINE_VERSION,
        "rules_versions": RULES_VERSIONS,
    }


def write_alignment_output(result: AlignmentResult, out_path: Path) -> None:
    """
    Generate JSON output for an alignment run.

    Output includes:
    - plan_id, outcome, summary
    - extracted elements
    - initial and final validation reports
    - the plan to persist
    - version metadata
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(result_to_dict(result), indent=2, ensure_ascii=False, default=str),
        encoding="utf-8",
    )


def main() -> int:
    """
    CLI for aligning a single engagement plan.

    Usage:
        python3 -m planalign.alignment.engine \
            --protocol protocols/detox_v3.json \
            --plan drafts/plan_42.json

    Outputs to: outputs/alignment/<plan_stem>_alignment.json
    """
    ap = argparse.ArgumentParser()
    ap.add_argument("--protocol", required=True, help="Path to protocol JSON")
    ap.add_argument("--plan", required=True, help="Path to engagement plan draft JSON")
    ap.add_argument("--contract", default=None, help="Optional alignment contract JSON")
    ap.add_argument("--out", default=None, help="Optional output path")
    ap.add_argument("--failure-log", default=None, help="Optional failure log (JSONL) path")
    args = ap.parse_args()

    policy = load_alignment_policy(Path(args.contract) if args.contract else None)
    protocol_doc = load_json_document(Path(args.protocol))
    plan_path = Path(args.plan)
    plan = coerce_plan(plan_path.read_text(encoding="utf-8")) if plan_path.exists() else None

    log = FailureLog(Path(args.failure_log)) if args.failure_log else None
    result = align_engagement_plan(
        protocol_doc, plan, policy=policy, failure_log=log,
        plan_id=plan_path.stem, command=f"align {plan_path.stem}",
    )

    print(f"\nPLAN ALIGNMENT — {plan_path.stem}")
    print(f"Outcome: {result.outcome.value}")
    print(summarize_outcome(result))

    out_path = Path(args.out) if args.out else REPO_ROOT / "outputs" / "alignment" / f"{plan_path.stem}_alignment.json"
    write_alignment_output(result, out_path)
    print(f"Wrote: {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
