#!/usr/bin/env python3
"""
planalign Governance Failure Log — append-only observational record.

Records alignment gaps, closed-world violations and malformed inputs detected
during engine execution. Never modifies execution behavior — purely
observational.

Storage: JSON Lines format (one JSON object per line) at outputs/failure_log.jsonl

Categories:
- coverage: A protocol element is missing from an engagement plan
- closed_world: A plan lists an element absent from its protocol
- repair_gap: A missing element could not be auto-fixed
- structural: Input document is malformed or unparseable

Detection sources:
- validation: Detected while validating a draft
- repair: Detected while (or after) repairing a draft
- diagnostic: Detected during a manual/diagnostic run
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from planalign.alignment.model import CATEGORY_KEYS, ValidationReport


@dataclass
class FailureEntry:
    """A single governance failure record."""
    timestamp: str           # ISO 8601 timestamp
    section: str             # Alignment concern (e.g., "coverage", "lifestyle_auto_fix")
    category: str            # "coverage", "closed_world", "repair_gap", "structural"
    description: str         # Factual, non-interpretive description
    command: str             # Triggering command or context (e.g., "align plan_42")
    detection_source: str    # "validation", "repair", "diagnostic"
    plan_id: Optional[str] = None      # Engagement plan identifier if applicable
    protocol_id: Optional[str] = None  # Protocol identifier if applicable
    metadata: Optional[Dict[str, Any]] = None  # Additional structured data


_DEFAULT_LOG_PATH = Path("outputs") / "failure_log.jsonl"


class FailureLog:
    """
    Append-only governance failure log.

    Thread-safe for single-process usage (file append is atomic on most OSes).
    """

    def __init__(self, log_path: Optional[Path] = None):
        self._path = log_path or _DEFAULT_LOG_PATH

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: FailureEntry) -> None:
        """Append a failure entry to the log file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        record = asdict(entry)
        # Remove None values for cleaner output
        record = {k: v for k, v in record.items() if v is not None}
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")

    def read_all(self) -> List[FailureEntry]:
        """Read all failure entries from the log file."""
        if not self._path.exists():
            return []

        entries: List[FailureEntry] = []
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue  # Skip malformed lines
                entries.append(FailureEntry(
                    timestamp=data.get("timestamp", ""),
                    section=data.get("section", ""),
                    category=data.get("category", ""),
                    description=data.get("description", ""),
                    command=data.get("command", ""),
                    detection_source=data.get("detection_source", ""),
                    plan_id=data.get("plan_id"),
                    protocol_id=data.get("protocol_id"),
                    metadata=data.get("metadata"),
                ))

        return entries

    def count(self) -> int:
        """Count total entries without loading all into memory."""
        if not self._path.exists():
            return 0
        count = 0
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    count += 1
        return count

    def summary(self) -> Dict[str, int]:
        """Return counts by category."""
        counts: Dict[str, int] = {}
        for entry in self.read_all():
            counts[entry.category] = counts.get(entry.category, 0) + 1
        return counts


# ---------------------------------------------------------------------------
# Convenience functions for common failure types
# ---------------------------------------------------------------------------

def log_missing_elements(
    log: FailureLog,
    report: ValidationReport,
    plan_id: Optional[str] = None,
    protocol_id: Optional[str] = None,
    command: str = "",
) -> int:
    """Log one entry per category with missing elements. Returns entries written."""
    written = 0
    for key in CATEGORY_KEYS:
        names = report.missing.get(key, [])
        if not names:
            continue
        log.append(FailureEntry(
            timestamp=datetime.now().isoformat(),
            section="coverage",
            category="coverage",
            description=f"{len(names)} {key} element(s) not represented in engagement plan",
            command=command,
            detection_source="validation",
            plan_id=plan_id,
            protocol_id=protocol_id,
            metadata={"category": key, "missing": list(names),
                      "coverage_percentage": report.coverage_percentage.get(key)},
        ))
        written += 1
    return written


def log_unrepaired_gap(
    log: FailureLog,
    report: ValidationReport,
    plan_id: Optional[str] = None,
    protocol_id: Optional[str] = None,
    command: str = "",
) -> int:
    """Log categories still missing elements after repair. Returns entries written."""
    written = 0
    for key in CATEGORY_KEYS:
        names = report.missing.get(key, [])
        if not names:
            continue
        section = "lifestyle_auto_fix" if key == "lifestyleProtocols" else "auto_fix"
        log.append(FailureEntry(
            timestamp=datetime.now().isoformat(),
            section=section,
            category="repair_gap",
            description=f"{len(names)} {key} element(s) remain missing after auto-fix",
            command=command,
            detection_source="repair",
            plan_id=plan_id,
            protocol_id=protocol_id,
            metadata={"category": key, "missing": list(names)},
        ))
        written += 1
    return written


def log_extra_items(
    log: FailureLog,
    extra_items: List[str],
    plan_id: Optional[str] = None,
    protocol_id: Optional[str] = None,
    command: str = "",
) -> None:
    """Log plan entries that correspond to no protocol element."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section="closed_world",
        category="closed_world",
        description=f"{len(extra_items)} plan entr(ies) not present in source protocol",
        command=command,
        detection_source="validation",
        plan_id=plan_id,
        protocol_id=protocol_id,
        metadata={"extra_items": list(extra_items)},
    ))


def log_malformed_plan(
    log: FailureLog,
    plan_id: Optional[str] = None,
    protocol_id: Optional[str] = None,
    command: str = "",
) -> None:
    """Log a draft that was null, empty or unparseable."""
    log.append(FailureEntry(
        timestamp=datetime.now().isoformat(),
        section="plan_input",
        category="structural",
        description="Engagement plan draft empty or unparseable; searched as empty text",
        command=command,
        detection_source="validation",
        plan_id=plan_id,
        protocol_id=protocol_id,
    ))
