#!/usr/bin/env python3
"""
planalign CLI — Pure Python entry point.

Usage:
    python -m planalign extract <protocol.json>
    python -m planalign validate <protocol.json> <plan.json>
    python -m planalign repair <protocol.json> <plan.json>
    python -m planalign align <protocol.json> <plan.json>
    python -m planalign excel
    python -m planalign help

Works on Windows, macOS, and Linux without bash.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DATA_DIR = _PROJECT_ROOT / "data"
_OUTPUT_DIR = _PROJECT_ROOT / "outputs" / "alignment"
_EXCEL_PATH = _PROJECT_ROOT / "outputs" / "alignment_dashboard.xlsx"
_FAILURE_LOG_PATH = _PROJECT_ROOT / "outputs" / "failure_log.jsonl"


def _resolve_json_file(name: str) -> Path:
    """Resolve an input file from name, with or without .json extension."""
    p = Path(name)
    if p.exists():
        return p
    # Try in data/
    candidate = _DATA_DIR / name
    if candidate.exists():
        return candidate
    # Try adding .json
    if not name.endswith(".json"):
        candidate = _DATA_DIR / f"{name}.json"
        if candidate.exists():
            return candidate
        candidate = Path(f"{name}.json")
        if candidate.exists():
            return candidate
    print(f"Error: Input file not found: {name}")
    print(f"  Searched: {p}, {_DATA_DIR / name}")
    sys.exit(1)


def _read_plan(path: Path) -> Optional[Any]:
    """Plans are read leniently: unparseable drafts are aligned as empty."""
    from planalign.alignment.validator import coerce_plan

    return coerce_plan(path.read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


def cmd_extract(args: list) -> int:
    """Extract protocol elements and the generation checklist."""
    if not args:
        print("Usage: python -m planalign extract <protocol_file>")
        return 1

    from planalign.alignment.engine import load_json_document
    from planalign.alignment.extractor import extract
    from planalign.alignment.generation_spec import build_generation_spec
    from planalign.alignment.model import CATEGORY_KEYS
    from planalign.reporting.alignment_explainer import explain_category

    protocol_path = _resolve_json_file(args[0])
    print(f"planalign -- Extracting: {protocol_path.name}")
    print()

    elements = extract(load_json_document(protocol_path))
    for key in CATEGORY_KEYS:
        print(f"  {explain_category(key)}: {len(elements.elements_for(key))}")
    print(f"  Safety constraints: {len(elements.safety_constraints)}")
    print(f"  Phases: {len(elements.phases)}")
    for w in elements.warnings:
        print(f"  Warning: {w}")

    out_path = _OUTPUT_DIR / f"{protocol_path.stem}_elements.json"
    _write_json(out_path, {
        "elements": elements.to_dict(),
        "generation_spec": build_generation_spec(elements),
    })
    print(f"  JSON:  {out_path}")
    print("Done.")
    return 0


def cmd_validate(args: list) -> int:
    """Validate a plan draft against its protocol (no repair)."""
    if len(args) < 2:
        print("Usage: python -m planalign validate <protocol_file> <plan_file>")
        return 1

    from planalign.alignment.engine import load_json_document
    from planalign.alignment.extractor import extract
    from planalign.alignment.generation_spec import build_regeneration_request
    from planalign.alignment.rules_loader import load_alignment_policy
    from planalign.alignment.validator import validate
    from planalign.reporting.alignment_explainer import summarize_report

    protocol_path = _resolve_json_file(args[0])
    plan_path = _resolve_json_file(args[1])
    print(f"planalign -- Validating: {plan_path.name} against {protocol_path.name}")
    print()

    policy = load_alignment_policy()
    elements = extract(load_json_document(protocol_path))
    plan = _read_plan(plan_path)
    report = validate(plan, elements, policy)
    for line in summarize_report(report):
        print(f"  {line}")

    out_path = _OUTPUT_DIR / f"{plan_path.stem}_validation.json"
    payload = {"report": report.to_dict()}
    if not report.is_aligned:
        payload["regeneration_request"] = build_regeneration_request(plan, report, elements)
    _write_json(out_path, payload)
    print(f"  JSON:  {out_path}")
    print()
    return 0 if report.is_aligned else 1


def cmd_repair(args: list) -> int:
    """Validate and auto-fix a plan draft; write the repaired plan."""
    if len(args) < 2:
        print("Usage: python -m planalign repair <protocol_file> <plan_file>")
        return 1

    from planalign.alignment.engine import load_json_document
    from planalign.alignment.extractor import extract
    from planalign.alignment.repair import repair
    from planalign.alignment.rules_loader import load_alignment_policy
    from planalign.alignment.validator import validate

    protocol_path = _resolve_json_file(args[0])
    plan_path = _resolve_json_file(args[1])
    print(f"planalign -- Repairing: {plan_path.name}")
    print()

    policy = load_alignment_policy()
    elements = extract(load_json_document(protocol_path))
    plan = _read_plan(plan_path)
    report = validate(plan, elements, policy)
    fixed = repair(plan, report, elements, policy)
    after = validate(fixed, elements, policy)

    print(f"  Coverage: {report.overall_coverage}% -> {after.overall_coverage}%")
    print(f"  {fixed.get('alignmentNote', '')}")

    out_path = _OUTPUT_DIR / f"{plan_path.stem}_repaired.json"
    _write_json(out_path, fixed)
    print(f"  JSON:  {out_path}")
    print("Done.")
    return 0


def cmd_align(args: list) -> int:
    """Run the full pipeline on one plan (generates all reports)."""
    if len(args) < 2:
        print("Usage: python -m planalign align <protocol_file> <plan_file>")
        return 1

    from planalign.alignment.engine import (
        align_engagement_plan, load_json_document, result_to_dict,
        summarize_outcome, write_alignment_output,
    )
    from planalign.alignment.rules_loader import load_alignment_policy
    from planalign.governance.failure_log import FailureLog
    from planalign.reporting.alignment_explainer import generate_alignment_report
    from planalign.reporting.excel_dashboard import update_alignment_dashboard

    protocol_path = _resolve_json_file(args[0])
    plan_path = _resolve_json_file(args[1])
    print(f"planalign -- Aligning: {plan_path.name} against {protocol_path.name}")
    print()

    policy = load_alignment_policy()
    result = align_engagement_plan(
        load_json_document(protocol_path),
        _read_plan(plan_path),
        policy=policy,
        failure_log=FailureLog(_FAILURE_LOG_PATH),
        plan_id=plan_path.stem,
        command=f"align {plan_path.stem}",
    )
    print(f"  {summarize_outcome(result)}")

    report_path = _OUTPUT_DIR / f"{plan_path.stem}_alignment_report.txt"
    generate_alignment_report(result, report_path)
    print(f"  Text:  {report_path}")

    json_path = _OUTPUT_DIR / f"{plan_path.stem}_alignment.json"
    write_alignment_output(result, json_path)
    print(f"  JSON:  {json_path}")

    update_alignment_dashboard(result_to_dict(result), _EXCEL_PATH)
    print(f"  Excel: {_EXCEL_PATH}")

    print()
    print("Done.")
    return 0


def cmd_excel(args: list) -> int:
    """Regenerate Excel dashboard from all alignment outputs."""
    print("planalign -- Regenerating Excel dashboard")

    from planalign.reporting.excel_dashboard import update_alignment_dashboard

    output_files = sorted(_OUTPUT_DIR.glob("*_alignment.json"))
    if not output_files:
        print(f"  No alignment outputs found in {_OUTPUT_DIR}")
        return 1

    for path in output_files:
        print(f"  Loading: {path.name}")
        payload = json.loads(path.read_text(encoding="utf-8"))
        update_alignment_dashboard(payload, _EXCEL_PATH)

    print(f"  Excel: {_EXCEL_PATH}")
    print("Done.")
    return 0


def cmd_help(args: list) -> int:
    """Show help."""
    print("planalign Plan-Alignment Engine")
    print()
    print("Usage: python -m planalign <command> [args]")
    print()
    print("Commands:")
    print("  extract <protocol>          Extract protocol elements and generation checklist")
    print("  validate <protocol> <plan>  Report coverage of a plan draft (exit 1 if misaligned)")
    print("  repair <protocol> <plan>    Auto-fix a plan draft and write the repaired plan")
    print("  align <protocol> <plan>     Full pipeline (JSON, text report, Excel, failure log)")
    print("  excel                       Regenerate Excel dashboard from alignment outputs")
    print("  help                        Show this help message")
    print()
    print("Examples:")
    print("  python -m planalign extract detox_v3.json")
    print("  python -m planalign validate detox_v3 plan_42")
    print("  python -m planalign align detox_v3 plan_42")
    print()
    return 0


_COMMANDS = {
    "extract": cmd_extract,
    "validate": cmd_validate,
    "repair": cmd_repair,
    "align": cmd_align,
    "excel": cmd_excel,
    "help": cmd_help,
}


def main() -> int:
    args = sys.argv[1:]
    if not args:
        return cmd_help([])

    command = args[0].lower()
    handler = _COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print()
        return cmd_help([])

    return handler(args[1:])


if __name__ == "__main__":
    raise SystemExit(main())
