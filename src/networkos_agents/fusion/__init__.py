"""
Evidence fusion: confidence-ordered merge, contact deduplication, and scoring policies.
"""

from .fusion import EvidenceFusionEngine, FusedRecord, DedupedContact
from .scoring_policy import (
    AttributeUnion,
    PolicySet,
    ScoreResult,
    ScoringPolicy,
    ScoringRule,
    PolicyConfigError,
    default_company_policy,
    default_contact_policy,
)

__all__ = [
    "EvidenceFusionEngine",
    "FusedRecord",
    "DedupedContact",
    "AttributeUnion",
    "PolicySet",
    "ScoreResult",
    "ScoringPolicy",
    "ScoringRule",
    "PolicyConfigError",
    "default_company_policy",
    "default_contact_policy",
]
