"""
Package initializer for planalign.
"""

__version__ = "1.0.0"

# Governance version metadata: included in all output artifacts
GOVERNANCE_VERSION = "v2026.10"
ENGINE_VERSION = __version__
RULES_VERSIONS = {
    "alignment": "alignment_contract_v1",
}

__all__ = ["__version__", "GOVERNANCE_VERSION", "ENGINE_VERSION", "RULES_VERSIONS"]
