#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Multi-Source Contact Finder

Queries every contact provider concurrently, then deduplicates, scores and
ranks what they found so the highest-authority people come first.
"""

import time
import concurrent.futures
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Sequence

from ..config import AppConfig
from ..fusion.fusion import EvidenceFusionEngine
from ..models.entities import normalize_domain, normalize_email
from ..utils.logger import get_logger
from .providers import ContactProvider, ContactSearchResult, HunterContactProvider, ApolloContactProvider
from .titles import HIGH_PRIORITY_TITLES, annotate_title, generate_probable_email

logger = get_logger(__name__)

DEFAULT_MAX_CONTACTS = 10


@dataclass
class ContactFinderResult:
    """
    Ranked contacts for one company.

    Each contact dict carries ``confidence``: the highest confidence of the
    providers that reported that person.
    """
    contacts: List[Dict[str, Any]] = field(default_factory=list)
    sources: List[Dict[str, Any]] = field(default_factory=list)
    total_found: int = 0
    cost: float = 0.0
    tokens_used: int = 0
    duration_ms: float = 0.0


class MultiSourceContactFinder:
    """Contact finder that fans out to several people-data providers."""

    def __init__(self, providers: Sequence[ContactProvider],
                 fusion: Optional[EvidenceFusionEngine] = None,
                 default_target_roles: Optional[List[str]] = None,
                 max_workers: int = 3):
        """
        Initialize the contact finder.

        Args:
            providers: Providers to query, in priority order (earlier wins on duplicates)
            fusion: Fusion engine used for deduplication and authority scoring
            default_target_roles: Roles searched when a request names none
            max_workers: Maximum concurrent provider requests
        """
        self.providers = list(providers)
        self.fusion = fusion or EvidenceFusionEngine()
        self.default_target_roles = list(default_target_roles or HIGH_PRIORITY_TITLES)
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None,
                    fusion: Optional[EvidenceFusionEngine] = None) -> 'MultiSourceContactFinder':
        config = config or AppConfig()
        providers = [
            HunterContactProvider(api_key=config.hunter_api_key, timeout=config.enrichment_timeout_secs),
            ApolloContactProvider(api_key=config.apollo_api_key, timeout=config.enrichment_timeout_secs),
        ]
        return cls(
            providers,
            fusion=fusion,
            default_target_roles=config.default_target_roles,
            max_workers=config.enrichment_max_workers,
        )

    def find_contacts(self, domain: str, company_name: Optional[str] = None,
                      target_roles: Optional[List[str]] = None,
                      max_contacts: int = DEFAULT_MAX_CONTACTS) -> ContactFinderResult:
        """
        Find, deduplicate and rank contacts at a company.

        Args:
            domain: Company domain
            company_name: Company name, passed to providers that search by name
            target_roles: Roles to look for (defaults to the configured roles)
            max_contacts: Maximum number of contacts to return

        Returns:
            ContactFinderResult with contacts sorted by authority score
        """
        start = time.time()
        domain = normalize_domain(domain) or domain
        roles = list(target_roles or self.default_target_roles)
        logger.info(f"Finding contacts at {domain} across {len(self.providers)} providers")

        searches = self._search_all(domain, company_name, roles)

        confidence_by_provider: Dict[str, float] = {}
        candidates: List[Dict[str, Any]] = []
        sources = []
        for search in searches:
            if search.error:
                logger.warning(f"{search.provider} contact search failed: {search.error}")
            if not search.contacts:
                continue
            confidence_by_provider[search.provider] = search.confidence
            sources.append({
                "provider": search.provider,
                "confidence": search.confidence,
                "data_points": [c.get("email") or c.get("full_name") for c in search.contacts],
            })
            for contact in search.contacts:
                contact = annotate_title(dict(contact))
                contact.setdefault("source", search.provider)
                candidates.append(contact)

        deduped = self.fusion.deduplicate_contacts(candidates)
        contacts = []
        for entry in deduped[:max_contacts]:
            data = entry.to_dict()
            data["confidence"] = max(
                (confidence_by_provider.get(s, 0.0) for s in data.get("sources", [])),
                default=0.0,
            )
            if data.get("email"):
                data["email"] = normalize_email(data["email"]) or data["email"].strip()
            else:
                guess = generate_probable_email(data.get("first_name"), data.get("last_name"), domain)
                if guess:
                    data["probable_email"] = guess
            contacts.append(data)

        result = ContactFinderResult(
            contacts=contacts,
            sources=sources,
            total_found=len(deduped),
            cost=sum(s.cost for s in searches),
            tokens_used=sum(s.tokens_used for s in searches),
            duration_ms=(time.time() - start) * 1000,
        )
        logger.info(
            f"Found {result.total_found} unique contacts at {domain} "
            f"(returning {len(contacts)}, cost {result.cost:.2f})"
        )
        return result

    def _search_all(self, domain: str, company_name: Optional[str],
                    roles: List[str]) -> List[ContactSearchResult]:
        """Query providers concurrently; results keep provider order."""
        results: List[Optional[ContactSearchResult]] = [None] * len(self.providers)

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {
                executor.submit(provider.search_contacts, domain, company_name, roles): index
                for index, provider in enumerate(self.providers)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                provider = self.providers[index]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Error searching contacts with {provider.name}: {e}")
                    results[index] = ContactSearchResult(provider=provider.name, error=str(e))

        return [r for r in results if r is not None]
