#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Entity Models - Companies and contacts enriched during an agent run.

Also holds the identity-key rules: a company is identified by its normalized
domain, a contact by its normalized email, falling back to its full name.
"""

import re
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional
from urllib.parse import urlparse

from email_validator import validate_email, EmailNotValidError


class EntityKind(str, Enum):
    """Kind of real-world entity an Evidence record describes."""
    COMPANY = "company"
    CONTACT = "contact"


COMPANY_SIZES = [
    "1-10", "11-50", "51-200", "201-500",
    "501-1000", "1001-5000", "5001-10000", "10000+",
]

SENIORITY_LEVELS = [
    "C-Level", "VP", "Director", "Manager",
    "Senior", "Mid-Level", "Junior", "Intern",
]


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """
    Reduce a domain or URL to its bare lower-case host.

    "https://www.Acme.io/about" -> "acme.io"
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    if "://" not in raw:
        raw = "//" + raw
    host = urlparse(raw).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    host = host.rstrip(".")
    return host or None


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Validate an email syntactically and return it lower-cased, or None."""
    if not value or not str(value).strip():
        return None
    try:
        result = validate_email(str(value).strip(), check_deliverability=False)
    except EmailNotValidError:
        return None
    return result.normalized.lower()


def email_identity(value: Optional[str]) -> Optional[str]:
    """Lower-cased, stripped email used for matching, or None when blank."""
    if not value:
        return None
    return str(value).strip().lower() or None


def normalize_name(value: Optional[str]) -> Optional[str]:
    """Case-fold a person's name and collapse whitespace."""
    if not value:
        return None
    collapsed = re.sub(r"\s+", " ", str(value)).strip().casefold()
    return collapsed or None


def company_identity_key(domain: Optional[str]) -> Optional[str]:
    return normalize_domain(domain)


def contact_identity_key(email: Optional[str] = None,
                         full_name: Optional[str] = None) -> Optional[str]:
    """
    Identity key for a contact.

    Any non-blank email is the key, lower-cased, whether or not it passes
    validation; internal domains such as ``.local`` must still collapse.

    Args:
        email: Contact email
        full_name: Fallback when no email exists

    Returns:
        "email:<address>" or "name:<full name>", None when neither is present
    """
    email_key = email_identity(email)
    if email_key:
        return f"email:{email_key}"
    normalized = normalize_name(full_name)
    if normalized:
        return f"name:{normalized}"
    return None


def map_employee_count_to_size(count: Optional[int]) -> Optional[str]:
    """Map an employee count to its company size band."""
    if count is None:
        return None
    if count <= 10:
        return "1-10"
    if count <= 50:
        return "11-50"
    if count <= 200:
        return "51-200"
    if count <= 500:
        return "201-500"
    if count <= 1000:
        return "501-1000"
    if count <= 5000:
        return "1001-5000"
    if count <= 10000:
        return "5001-10000"
    return "10000+"


def format_money(amount: float) -> str:
    """Format revenue or funding amounts the way providers display them."""
    if amount >= 1e9:
        return f"${amount / 1e9:.1f}B"
    if amount >= 1e6:
        return f"${amount / 1e6:.1f}M"
    if amount >= 1e3:
        return f"${amount / 1e3:.0f}K"
    return f"${amount:g}"


@dataclass
class Location:
    """Headquarters location of a company."""
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None

    def __str__(self) -> str:
        return ", ".join(part for part in (self.city, self.state, self.country) if part)


@dataclass
class FundingInfo:
    """Funding information for a company."""
    total_raised: Optional[str] = None
    last_round: Optional[str] = None
    last_round_date: Optional[str] = None
    investors: List[str] = field(default_factory=list)
    stage: Optional[str] = None


@dataclass
class Product:
    """A product offered by a company."""
    name: str = ""
    description: str = ""
    category: Optional[str] = None
    url: Optional[str] = None


def _drop_empty(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in data.items():
        if value is None or value == "" or value == [] or value == {}:
            continue
        if isinstance(value, dict):
            value = _drop_empty(value)
            if not value:
                continue
        cleaned[key] = value
    return cleaned


@dataclass
class Company:
    """
    Company representation.

    The fields mirror what enrichment providers report; every field except the
    domain is optional because records are assembled from partial evidence.
    """

    domain: str = ""
    name: Optional[str] = None
    description: Optional[str] = None
    industry: Optional[str] = None
    sub_industry: Optional[str] = None
    size: Optional[str] = None
    employee_count: Optional[int] = None
    revenue: Optional[str] = None
    funding: Optional[FundingInfo] = None
    tech_stack: List[str] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    headquarters: Optional[Location] = None
    founded_year: Optional[int] = None
    linkedin_url: Optional[str] = None
    twitter_handle: Optional[str] = None

    @property
    def identity_key(self) -> Optional[str]:
        return company_identity_key(self.domain)

    def to_dict(self) -> Dict[str, Any]:
        """Convert company to a dictionary, leaving out empty fields."""
        return _drop_empty(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Company':
        """Create a company from dictionary data (as produced by a fused record)."""
        funding = data.get("funding")
        headquarters = data.get("headquarters")
        return cls(
            domain=data.get("domain", ""),
            name=data.get("name"),
            description=data.get("description"),
            industry=data.get("industry"),
            sub_industry=data.get("sub_industry"),
            size=data.get("size"),
            employee_count=data.get("employee_count"),
            revenue=data.get("revenue"),
            funding=FundingInfo(
                total_raised=funding.get("total_raised"),
                last_round=funding.get("last_round"),
                last_round_date=funding.get("last_round_date"),
                investors=list(funding.get("investors") or []),
                stage=funding.get("stage"),
            ) if funding else None,
            tech_stack=list(data.get("tech_stack") or []),
            products=[
                Product(
                    name=p.get("name", ""),
                    description=p.get("description", ""),
                    category=p.get("category"),
                    url=p.get("url"),
                ) if isinstance(p, dict) else Product(name=str(p))
                for p in data.get("products") or []
            ],
            headquarters=Location(
                city=headquarters.get("city"),
                state=headquarters.get("state"),
                country=headquarters.get("country"),
                timezone=headquarters.get("timezone"),
            ) if headquarters else None,
            founded_year=data.get("founded_year"),
            linkedin_url=data.get("linkedin_url"),
            twitter_handle=data.get("twitter_handle"),
        )


@dataclass
class Contact:
    """A person at a target company."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    email_confidence: Optional[int] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    department: Optional[str] = None
    seniority: Optional[str] = None
    decision_maker: bool = False
    influencer: bool = False
    authority_score: int = 0
    company_domain: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.full_name and (self.first_name or self.last_name):
            self.full_name = " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def identity_key(self) -> Optional[str]:
        return contact_identity_key(self.email, self.full_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert contact to a dictionary, leaving out empty fields."""
        data = _drop_empty(asdict(self))
        data["decision_maker"] = self.decision_maker
        data["influencer"] = self.influencer
        data["authority_score"] = self.authority_score
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Contact':
        """Create a contact from dictionary data."""
        return cls(
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            full_name=data.get("full_name"),
            title=data.get("title"),
            email=data.get("email"),
            email_confidence=data.get("email_confidence"),
            phone=data.get("phone"),
            linkedin_url=data.get("linkedin_url"),
            department=data.get("department"),
            seniority=data.get("seniority"),
            decision_maker=bool(data.get("decision_maker", False)),
            influencer=bool(data.get("influencer", False)),
            authority_score=int(data.get("authority_score") or 0),
            company_domain=data.get("company_domain"),
            sources=list(data.get("sources") or []),
        )
