"""
Enrichment collaborators: vendor adapters, the multi-provider company
enricher and the multi-source contact finder.
"""

from .company_enricher import MultiProviderCompanyEnricher
from .contact_finder import MultiSourceContactFinder, ContactFinderResult

__all__ = ["MultiProviderCompanyEnricher", "MultiSourceContactFinder", "ContactFinderResult"]
