#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Multi-Provider Company Enricher

Runs company data providers in priority order within a per-lookup cost cap.
The results are returned per provider, unmerged: merging is the fusion
engine's job, so each result becomes one piece of evidence.
"""

from typing import List, Optional, Sequence

from ..config import AppConfig
from ..models.entities import normalize_domain
from ..models.evidence import ProviderResult
from ..utils.logger import get_logger
from .providers import CompanyDataProvider, ClearbitCompanyProvider, ApolloCompanyProvider

logger = get_logger(__name__)


class MultiProviderCompanyEnricher:
    """Company researcher backed by firmographic data providers."""

    def __init__(self, providers: Sequence[CompanyDataProvider], max_cost: float = 1.0):
        """
        Initialize the enricher.

        Args:
            providers: Providers to consult; they run in ``priority`` order
            max_cost: Maximum total provider cost for one lookup
        """
        self.providers = sorted(providers, key=lambda p: p.priority)
        self.max_cost = max_cost
        logger.info(
            f"Company enricher initialized with providers: {', '.join(p.name for p in self.providers) or 'none'}"
        )

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> 'MultiProviderCompanyEnricher':
        config = config or AppConfig()
        providers = [
            ClearbitCompanyProvider(api_key=config.clearbit_api_key, timeout=config.enrichment_timeout_secs),
            ApolloCompanyProvider(api_key=config.apollo_api_key, timeout=config.enrichment_timeout_secs),
        ]
        return cls(providers, max_cost=config.enrichment_max_cost)

    def research(self, domain: str, company_name: Optional[str] = None,
                 depth: str = "standard") -> List[ProviderResult]:
        """
        Look a company up with every affordable provider.

        Args:
            domain: Company domain
            company_name: Known company name (unused by firmographic lookups)
            depth: "basic" stops at the first provider that returns data;
                "standard" and "deep" consult every provider within budget

        Returns:
            List[ProviderResult]: One result per provider consulted, in priority order
        """
        domain = normalize_domain(domain) or domain
        results: List[ProviderResult] = []
        total_cost = 0.0

        for provider in self.providers:
            if total_cost + provider.cost_per_request > self.max_cost:
                logger.debug(
                    f"Skipping {provider.name} for {domain}: cost {provider.cost_per_request:.2f} "
                    f"would exceed cap {self.max_cost:.2f}"
                )
                continue

            try:
                result = provider.fetch_company(domain)
            except Exception as e:
                logger.error(f"Unexpected error looking up {domain} from {provider.name}: {e}")
                continue

            total_cost += result.cost
            results.append(result)
            if result.error:
                logger.warning(f"{provider.name} enrichment for {domain} failed: {result.error}")
            else:
                logger.info(f"{provider.name} enrichment for {domain}: {len(result.data_points)} data points")

            if depth == "basic" and result.data:
                break

        return results
