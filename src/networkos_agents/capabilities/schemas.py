#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Capability input schemas.

Each capability the reasoning engine may request declares its input as a
pydantic model. The registry validates requests against these models before
any handler runs, and exports their JSON schema as tool definitions.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.entities import normalize_domain


class CapabilityInput(BaseModel):
    """Base model: unknown keys are rejected so malformed requests fail closed."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class DomainInput(CapabilityInput):
    domain: str = Field(..., description="Company domain, e.g. acme.io")

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        normalized = normalize_domain(value)
        if not normalized or "." not in normalized:
            raise ValueError(f"'{value}' is not a valid company domain")
        return normalized


class ResearchCompanyInput(DomainInput):
    """Research a company to gather intelligence about its business, products and technology."""
    company_name: Optional[str] = Field(None, description="Company name (optional)")
    depth: Optional[Literal["basic", "standard", "deep"]] = Field(None, description="Research depth")


class ScoreOpportunityInput(DomainInput):
    """Score an opportunity on company fit, timing signals and budget indicators."""
    include_contacts: bool = Field(True, description="Include contact analysis in scoring")


class FindContactsInput(DomainInput):
    """Find decision makers and influencers at a company using multiple data sources."""
    company_name: Optional[str] = Field(None, description="Company name")
    target_roles: Optional[List[str]] = Field(None, description="Specific roles to find")
    max_contacts: int = Field(10, ge=1, le=50, description="Maximum contacts to find")


class GeneratePitchInput(DomainInput):
    """Generate a personalized pitch for a specific company and contact."""
    contact_email: Optional[str] = Field(None, description="Email of the contact to address (optional)")
    pitch_type: Literal["email", "linkedin", "call_script"] = Field(..., description="Type of pitch")
    tone: Literal["Professional", "Friendly", "Technical", "Executive"] = Field(
        "Professional", description="Pitch tone"
    )
    focus_products: Optional[List[str]] = Field(None, description="Products to focus on")


class SaveToPipelineInput(DomainInput):
    """Save a qualified opportunity to the pipeline with the appropriate stage."""
    stage: Literal["New Lead", "Researching", "Outreach Started", "Engaged"] = Field(
        ..., description="Pipeline stage"
    )
    primary_contact_email: Optional[str] = Field(None, description="Email of the primary contact")
    notes: Optional[str] = Field(None, description="Notes about the opportunity")


class CompleteWorkflowInput(CapabilityInput):
    """Signal that the workflow is complete and provide the final summary."""
    summary: str = Field(..., min_length=1, description="Summary of what was accomplished")
    recommendations: List[str] = Field(..., description="Strategic recommendations")
    next_steps: List[str] = Field(..., description="Suggested next steps")
