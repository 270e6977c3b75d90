#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Enrichment Providers

Thin adapters over third-party company and people data APIs. Each provider
maps the vendor's response onto company/contact field names and reports how
confident the data is and what the request cost.

Providers never raise for vendor failures: a missing API key, an HTTP error or
an unparseable body yields an empty result with ``confidence == 0`` and the
error recorded, so a single bad vendor cannot fail an enrichment.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..models.entities import map_employee_count_to_size, format_money
from ..models.evidence import ProviderResult
from ..utils.logger import get_logger
from .titles import annotate_title, matches_target_roles

logger = get_logger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_TIMEOUT_SECS = 30

CLEARBIT_COMPANY_URL = "https://company.clearbit.com/v2/companies/find"
APOLLO_ORG_ENRICH_URL = "https://api.apollo.io/v1/organizations/enrich"
APOLLO_PEOPLE_SEARCH_URL = "https://api.apollo.io/v1/mixed_people/search"
HUNTER_DOMAIN_SEARCH_URL = "https://api.hunter.io/v2/domain-search"


class ProviderError(Exception):
    """A provider request failed."""
    pass


class RateLimitError(ProviderError):
    """The provider answered 429."""
    pass


@dataclass
class ContactSearchResult:
    """Contacts one provider found at a company."""
    provider: str
    contacts: List[Dict[str, Any]] = field(default_factory=list)
    confidence: float = 0.0
    cost: float = 0.0
    tokens_used: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None


class HttpProvider:
    """Shared requests session, timeout and retry policy."""

    name = "http"

    def __init__(self, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECS):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @retry(
        stop=stop_after_attempt(DEFAULT_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=(
            retry_if_exception_type(RateLimitError) |
            retry_if_exception_type(requests.ConnectionError) |
            retry_if_exception_type(requests.Timeout)
        ),
        reraise=True,
    )
    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Issue a request and return its decoded JSON body.

        Raises:
            RateLimitError: On 429, after which the request is retried
            ProviderError: On any other non-2xx status or a non-JSON body
        """
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)

        if response.status_code == 429:
            logger.warning(f"Rate limited by {self.name}, retrying")
            raise RateLimitError(f"{self.name} rate limit exceeded")
        if not response.ok:
            raise ProviderError(f"{self.name} error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned invalid JSON: {e}") from e


class CompanyDataProvider(ABC):
    """Looks up firmographic data for a domain."""

    name: str = "provider"
    priority: int = 50
    cost_per_request: float = 0.0
    confidence: float = 0.5

    @abstractmethod
    def fetch_company(self, domain: str) -> ProviderResult:
        pass


class ContactProvider(ABC):
    """Finds people at a company."""

    name: str = "provider"
    confidence: float = 0.5

    @abstractmethod
    def search_contacts(self, domain: str, company_name: Optional[str],
                        target_roles: List[str]) -> ContactSearchResult:
        pass


class ClearbitCompanyProvider(HttpProvider, CompanyDataProvider):
    name = "Clearbit"
    priority = 1
    cost_per_request = 0.10
    confidence = 0.9

    def fetch_company(self, domain: str) -> ProviderResult:
        if not self.configured:
            return ProviderResult.empty(self.name)

        start = time.time()
        try:
            data = self._request(
                "GET", CLEARBIT_COMPANY_URL,
                params={"domain": domain},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except (ProviderError, requests.RequestException) as e:
            logger.warning(f"Clearbit enrichment failed for {domain}: {e}")
            return ProviderResult.empty(self.name, error=str(e), duration_ms=(time.time() - start) * 1000)

        company = self.map_company(data)
        return ProviderResult(
            provider=self.name,
            data=company,
            confidence=self.confidence,
            data_points=list(company),
            cost=self.cost_per_request,
            duration_ms=(time.time() - start) * 1000,
        )

    @staticmethod
    def map_company(data: Dict[str, Any]) -> Dict[str, Any]:
        company: Dict[str, Any] = {}
        category = data.get("category") or {}
        metrics = data.get("metrics") or {}

        if data.get("name"):
            company["name"] = data["name"]
        if data.get("description"):
            company["description"] = data["description"]
        if category.get("industry"):
            company["industry"] = category["industry"]
        if category.get("subIndustry"):
            company["sub_industry"] = category["subIndustry"]
        if metrics.get("employees"):
            company["employee_count"] = metrics["employees"]
            company["size"] = map_employee_count_to_size(metrics["employees"])
        if metrics.get("estimatedAnnualRevenue"):
            company["revenue"] = metrics["estimatedAnnualRevenue"]
        if data.get("tech"):
            company["tech_stack"] = list(data["tech"])
        if data.get("foundedYear"):
            company["founded_year"] = data["foundedYear"]
        if (data.get("linkedin") or {}).get("handle"):
            company["linkedin_url"] = f"https://linkedin.com/company/{data['linkedin']['handle']}"
        if (data.get("twitter") or {}).get("handle"):
            company["twitter_handle"] = data["twitter"]["handle"]

        location = data.get("location")
        if isinstance(location, dict):
            headquarters = {
                "city": location.get("city"),
                "state": location.get("state"),
                "country": location.get("country"),
                "timezone": location.get("timeZone"),
            }
            headquarters = {k: v for k, v in headquarters.items() if v}
            if headquarters:
                company["headquarters"] = headquarters
        return company


class ApolloCompanyProvider(HttpProvider, CompanyDataProvider):
    name = "Apollo.io"
    priority = 2
    cost_per_request = 0.05
    confidence = 0.85

    def fetch_company(self, domain: str) -> ProviderResult:
        if not self.configured:
            return ProviderResult.empty(self.name)

        start = time.time()
        try:
            data = self._request(
                "POST", APOLLO_ORG_ENRICH_URL,
                json={"domain": domain},
                headers={"X-Api-Key": self.api_key, "Cache-Control": "no-cache"},
            )
        except (ProviderError, requests.RequestException) as e:
            logger.warning(f"Apollo enrichment failed for {domain}: {e}")
            return ProviderResult.empty(self.name, error=str(e), duration_ms=(time.time() - start) * 1000)

        company = self.map_organization(data.get("organization") or {})
        return ProviderResult(
            provider=self.name,
            data=company,
            confidence=self.confidence,
            data_points=list(company),
            cost=self.cost_per_request,
            duration_ms=(time.time() - start) * 1000,
        )

    @staticmethod
    def map_organization(org: Dict[str, Any]) -> Dict[str, Any]:
        company: Dict[str, Any] = {}
        if org.get("name"):
            company["name"] = org["name"]
        if org.get("short_description"):
            company["description"] = org["short_description"]
        if org.get("industry"):
            company["industry"] = org["industry"]
        if org.get("estimated_num_employees"):
            company["employee_count"] = org["estimated_num_employees"]
            company["size"] = map_employee_count_to_size(org["estimated_num_employees"])
        if org.get("annual_revenue"):
            company["revenue"] = format_money(float(org["annual_revenue"]))
        if org.get("founded_year"):
            company["founded_year"] = org["founded_year"]
        if org.get("linkedin_url"):
            company["linkedin_url"] = org["linkedin_url"]
        if org.get("twitter_url"):
            company["twitter_handle"] = org["twitter_url"].rstrip("/").split("/")[-1]

        if org.get("total_funding") or org.get("latest_funding_round_date"):
            funding = {
                "total_raised": format_money(float(org["total_funding"])) if org.get("total_funding") else None,
                "last_round_date": org.get("latest_funding_round_date"),
                "stage": org.get("latest_funding_stage"),
            }
            company["funding"] = {k: v for k, v in funding.items() if v}
        return company


class HunterContactProvider(HttpProvider, ContactProvider):
    name = "Hunter.io"
    confidence = 0.85
    cost_per_request = 0.03

    def search_contacts(self, domain: str, company_name: Optional[str],
                        target_roles: List[str]) -> ContactSearchResult:
        if not self.configured:
            return ContactSearchResult(provider=self.name)

        start = time.time()
        try:
            data = self._request(
                "GET", HUNTER_DOMAIN_SEARCH_URL,
                params={"domain": domain, "api_key": self.api_key, "limit": 20},
            )
        except (ProviderError, requests.RequestException) as e:
            logger.warning(f"Hunter.io search failed for {domain}: {e}")
            return ContactSearchResult(provider=self.name, error=str(e),
                                       duration_ms=(time.time() - start) * 1000)

        contacts = []
        for email in (data.get("data") or {}).get("emails") or []:
            title = email.get("position") or ""
            if target_roles and not matches_target_roles(title, target_roles):
                continue
            contacts.append(annotate_title({
                "first_name": email.get("first_name"),
                "last_name": email.get("last_name"),
                "full_name": " ".join(p for p in (email.get("first_name"), email.get("last_name")) if p),
                "email": email.get("value"),
                "email_confidence": email.get("confidence"),
                "linkedin_url": email.get("linkedin"),
                "title": title,
                "company_domain": domain,
                "source": self.name,
            }))

        return ContactSearchResult(
            provider=self.name,
            contacts=contacts,
            confidence=self.confidence,
            cost=self.cost_per_request,
            duration_ms=(time.time() - start) * 1000,
        )


class ApolloContactProvider(HttpProvider, ContactProvider):
    name = "Apollo.io"
    confidence = 0.9
    cost_per_request = 0.05

    def search_contacts(self, domain: str, company_name: Optional[str],
                        target_roles: List[str]) -> ContactSearchResult:
        if not self.configured:
            return ContactSearchResult(provider=self.name)

        start = time.time()
        try:
            data = self._request(
                "POST", APOLLO_PEOPLE_SEARCH_URL,
                json={
                    "q_organization_domains": domain,
                    "page": 1,
                    "per_page": 20,
                    "person_titles": target_roles,
                },
                headers={"X-Api-Key": self.api_key, "Cache-Control": "no-cache"},
            )
        except (ProviderError, requests.RequestException) as e:
            logger.warning(f"Apollo.io search failed for {domain}: {e}")
            return ContactSearchResult(provider=self.name, error=str(e),
                                       duration_ms=(time.time() - start) * 1000)

        contacts = []
        for person in data.get("people") or []:
            contacts.append(annotate_title({
                "first_name": person.get("first_name"),
                "last_name": person.get("last_name"),
                "full_name": person.get("name"),
                "email": person.get("email"),
                "email_confidence": 90 if person.get("email") else 0,
                "phone": person.get("phone_number"),
                "linkedin_url": person.get("linkedin_url"),
                "title": person.get("title") or "",
                "company_domain": domain,
                "source": self.name,
            }))

        return ContactSearchResult(
            provider=self.name,
            contacts=contacts,
            confidence=self.confidence,
            cost=self.cost_per_request,
            duration_ms=(time.time() - start) * 1000,
        )
