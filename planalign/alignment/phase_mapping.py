#!/usr/bin/env python3
"""
Phase label → plan phase index heuristic.

Maps a free-text phase label (e.g. "Phase 2 - Weeks 4-5") to the index of the
engagement plan phase an injected item belongs to. Rules are evaluated in
order; first match wins.
"""
from __future__ import annotations

from typing import Optional, Tuple

# (bucket index, substrings) in evaluation order
PHASE_WEEK_RULES: Tuple[Tuple[int, Tuple[str, ...]], ...] = (
    (0, ("core", "foundation", "week 1", "weeks 1-2")),
    (1, ("phase 1", "week 2", "week 3")),
    (2, ("phase 2", "week 4", "week 5")),
    (3, ("phase 3", "recovery", "week 6")),
)

DEFAULT_PHASE_INDEX = 0


def map_phase_to_week(label: Optional[str]) -> int:
    """Return the plan phase index for a phase label (0 when unknown)."""
    if not label or not isinstance(label, str):
        return DEFAULT_PHASE_INDEX
    lower = label.lower()
    for bucket, needles in PHASE_WEEK_RULES:
        if any(n in lower for n in needles):
            return bucket
    return DEFAULT_PHASE_INDEX
