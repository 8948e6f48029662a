#!/usr/bin/env python3
"""
Name variant matching for clinical element names.

Builds the set of textual forms under which a protocol item may appear in a
plan (case, parenthetical notes, synonyms) and tests substring membership in
a lowercase text blob.

Design:
- Pure: same input always produces the same variant set
- Fixed synonym dictionary (canonical phrase → alternate phrasings)
"""
from __future__ import annotations

import re
from typing import Dict, Set, Tuple

# Canonical phrase → alternate phrasings. A name touching either side pulls in
# the whole entry.
SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "magnesium glycinate": ("magnesium", "mag glycinate"),
    "vitamin d3": ("vitamin d", "d3", "vit d"),
    "vitamin d": ("vitamin d3", "d3", "vit d"),
    "omega-3": ("omega 3", "fish oil", "epa/dha", "epa dha"),
    "omega 3": ("omega-3", "fish oil", "epa/dha", "epa dha"),
    "coenzyme q10": ("coq10", "ubiquinol", "ubiquinone"),
    "coq10": ("coenzyme q10", "ubiquinol", "ubiquinone"),
    "alpha-lipoic acid": ("ala", "lipoic acid", "alpha lipoic"),
    "iv glutathione": ("glutathione iv", "glutathione push", "iv glutathione push"),
    "glutathione iv": ("iv glutathione", "glutathione push"),
    "phosphatidylcholine iv": ("pc iv", "phosphatidylcholine", "pc push"),
    "ozone therapy": ("ozone", "autohemotherapy", "mah", "eboo", "ozone treatment"),
    "dmsa": ("2,3-dimercaptosuccinic acid", "dimercaptosuccinic", "dmsa chelation"),
    "hydration protocol": ("hydration", "water intake", "hydration support"),
    "elimination support": ("elimination", "bowel support", "bowel movement", "bowel regularity"),
    "infrared sauna": ("ir sauna", "sauna", "infrared"),
    "red light therapy": ("red light", "photobiomodulation", "rlt"),
    "pemf": ("pulsed electromagnetic", "pemf therapy", "pulsed emf"),
    "resistance training": ("strength training", "weight training", "resistance exercise"),
    "sleep optimization": ("sleep hygiene", "sleep protocol", "circadian"),
    "circadian rhythm": ("circadian", "light exposure", "morning sunlight"),
}

_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")


def strip_parentheticals(name: str) -> str:
    """Remove parenthetical notes, e.g. "DMSA (cycled)" → "DMSA"."""
    return _PARENTHETICAL.sub("", name).strip()


def variants_of(name: str) -> Set[str]:
    """
    Build the variant set for an item name.

    Contains the raw name, its lowercase form, the parenthetical-stripped form
    and, for every synonym entry whose key or alternate occurs in the lowercased
    name, the key and all of its alternates. Empty strings are never included.
    """
    if not isinstance(name, str) or not name.strip():
        return set()

    variants = {name, name.lower()}

    stripped = strip_parentheticals(name)
    if stripped:
        variants.add(stripped)

    lower_name = name.lower()
    for key, alternates in SYNONYMS.items():
        if key in lower_name or any(alt in lower_name for alt in alternates):
            variants.add(key)
            variants.update(alternates)

    return {v for v in variants if v}


def matches(name: str, text_blob: str) -> bool:
    """True iff any variant of name is a case-insensitive substring of text_blob."""
    if not text_blob:
        return False
    haystack = text_blob.lower()
    return any(v.lower() in haystack for v in variants_of(name))
