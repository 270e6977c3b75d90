"""
Data models: companies, contacts, and the evidence gathered about them.
"""

from .entities import (
    EntityKind,
    Company,
    Contact,
    FundingInfo,
    Location,
    Product,
    company_identity_key,
    contact_identity_key,
    email_identity,
    normalize_domain,
    normalize_email,
    normalize_name,
)
from .evidence import Evidence, ProviderResult, is_empty_value

__all__ = [
    "EntityKind",
    "Company",
    "Contact",
    "FundingInfo",
    "Location",
    "Product",
    "company_identity_key",
    "contact_identity_key",
    "email_identity",
    "normalize_domain",
    "normalize_email",
    "normalize_name",
    "Evidence",
    "ProviderResult",
    "is_empty_value",
]
