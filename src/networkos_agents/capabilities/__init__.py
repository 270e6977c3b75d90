"""
Built-in capabilities: input schemas and the handlers that adapt
research, scoring, contact discovery, pitch and pipeline collaborators.
"""

from .handlers import (
    CapabilityHandlers,
    PolicyOpportunityScorer,
    InMemoryPipelineStore,
    NullPipelineStore,
    build_default_registry,
)

__all__ = [
    "CapabilityHandlers",
    "PolicyOpportunityScorer",
    "InMemoryPipelineStore",
    "NullPipelineStore",
    "build_default_registry",
]
