#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Capability Handlers

Adapters between the capability registry and the collaborators that do the
real work (company research, scoring, contact discovery, pitch writing,
pipeline persistence). Handlers read the run snapshot they are given, call
one collaborator and translate its output into evidence and artifacts. They
never mutate run state, so calling one twice is harmless.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Optional

from ..config import AppConfig
from ..enrichment.company_enricher import MultiProviderCompanyEnricher
from ..enrichment.contact_finder import MultiSourceContactFinder
from ..fusion.fusion import EvidenceFusionEngine
from ..fusion.scoring_policy import ScoringPolicy, ScoringRule, always, one_of, matches, flatten_for_scoring
from ..models.entities import EntityKind, contact_identity_key, email_identity
from ..models.evidence import Evidence, ProviderResult
from ..orchestration.errors import CapabilityError
from ..orchestration.registry import CapabilityRegistry, CapabilityContext, CapabilityResult
from ..utils.logger import get_logger
from .schemas import (
    ResearchCompanyInput,
    ScoreOpportunityInput,
    FindContactsInput,
    GeneratePitchInput,
    SaveToPipelineInput,
    CompleteWorkflowInput,
)

logger = get_logger(__name__)

MISSING_COMPANY = "missing_company"
NOT_CONFIGURED = "not_configured"

# Run depth -> research depth
RESEARCH_DEPTHS = {"quick": "basic", "standard": "standard", "deep": "deep"}

COMPANY_COMPLETENESS_FIELDS = [
    "name", "domain", "industry", "size", "description", "tech_stack",
    "products", "funding", "employee_count", "linkedin_url",
]


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------

class CompanyResearcher(ABC):
    @abstractmethod
    def research(self, domain: str, company_name: Optional[str] = None,
                 depth: str = "standard") -> List[ProviderResult]:
        """Return one result per source consulted."""
        pass


@dataclass
class OpportunityScore:
    """Deterministic opportunity score for one company."""
    domain: str
    overall: int
    company_fit: int
    budget_indicators: int
    contact_quality: Optional[int]
    confidence: float
    priority: str
    factors: List[Dict[str, Any]] = field(default_factory=list)
    cost: float = 0.0
    tokens_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "overall": self.overall,
            "company_fit": self.company_fit,
            "budget_indicators": self.budget_indicators,
            "contact_quality": self.contact_quality,
            "confidence": self.confidence,
            "priority": self.priority,
            "factors": copy.deepcopy(self.factors),
        }


class OpportunityScorer(ABC):
    @abstractmethod
    def score(self, company: Dict[str, Any], contacts: List[Dict[str, Any]]) -> OpportunityScore:
        pass


class ContactFinder(ABC):
    """Anything with ``find_contacts`` returning a ContactFinderResult-shaped object."""

    @abstractmethod
    def find_contacts(self, domain: str, company_name: Optional[str] = None,
                      target_roles: Optional[List[str]] = None,
                      max_contacts: int = 10) -> Any:
        pass


@dataclass
class PitchResult:
    pitch: Dict[str, Any]
    cost: float = 0.0
    tokens_used: int = 0


class PitchGenerator(ABC):
    @abstractmethod
    def generate(self, company: Dict[str, Any], contact: Optional[Dict[str, Any]],
                 pitch_type: str, tone: str = "Professional",
                 focus_products: Optional[List[str]] = None) -> PitchResult:
        pass


class PipelineStore(ABC):
    """Where qualified opportunities and generated pitches are persisted."""

    @abstractmethod
    def save_opportunity(self, opportunity: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def save_pitch(self, pitch: Dict[str, Any]) -> Dict[str, Any]:
        pass


# ---------------------------------------------------------------------------
# Built-in collaborators
# ---------------------------------------------------------------------------

LARGE_COMPANY_SIZES = ["501-1000", "1001-5000", "5001-10000", "10000+"]


def default_budget_policy() -> ScoringPolicy:
    """Budget indicators: raised funding and company size."""
    return ScoringPolicy([
        ScoringRule("base", always(), 50),
        ScoringRule("funding_level", matches("funding.total_raised", r"\d(\.\d+)?\s*[mb]\b|million|billion"), 20),
        ScoringRule("company_size_budget", one_of("size", LARGE_COMPANY_SIZES), 15),
    ], name="budget_indicators")


class PolicyOpportunityScorer(OpportunityScorer):
    """
    Rule-based opportunity scorer.

    overall = weighted company fit, budget indicators and (when contacts are
    included) the mean authority of the top three contacts.
    """

    WEIGHTS_WITH_CONTACTS = {"company_fit": 0.5, "budget_indicators": 0.25, "contact_quality": 0.25}
    WEIGHTS_WITHOUT_CONTACTS = {"company_fit": 2 / 3, "budget_indicators": 1 / 3}

    def __init__(self, fusion: Optional[EvidenceFusionEngine] = None,
                 budget_policy: Optional[ScoringPolicy] = None):
        self.fusion = fusion or EvidenceFusionEngine()
        self.budget_policy = budget_policy or default_budget_policy()

    def score(self, company: Dict[str, Any], contacts: List[Dict[str, Any]]) -> OpportunityScore:
        fit = self.fusion.score_company(company)
        budget = self.budget_policy.score(company)

        contact_quality = None
        if contacts:
            authority = sorted(
                (self.fusion.score_contact(c).total for c in contacts), reverse=True
            )[:3]
            contact_quality = round(sum(authority) / len(authority))

        if contact_quality is None:
            weights = self.WEIGHTS_WITHOUT_CONTACTS
            overall = fit.total * weights["company_fit"] + budget.total * weights["budget_indicators"]
        else:
            weights = self.WEIGHTS_WITH_CONTACTS
            overall = (
                fit.total * weights["company_fit"]
                + budget.total * weights["budget_indicators"]
                + contact_quality * weights["contact_quality"]
            )
        overall = int(round(overall))

        flat = flatten_for_scoring(company)
        present = sum(1 for name in COMPANY_COMPLETENESS_FIELDS if flat.get(name))
        confidence = round(present / len(COMPANY_COMPLETENESS_FIELDS), 2)

        factors = [
            {"category": "company_fit", "rule": name, "points": points} for name, points in fit.matched
        ] + [
            {"category": "budget_indicators", "rule": name, "points": points} for name, points in budget.matched
        ]

        return OpportunityScore(
            domain=company.get("domain", ""),
            overall=overall,
            company_fit=fit.total,
            budget_indicators=budget.total,
            contact_quality=contact_quality,
            confidence=confidence,
            priority=priority_for(overall),
            factors=factors,
        )


def priority_for(overall: int) -> str:
    if overall >= 75:
        return "hot"
    if overall >= 50:
        return "warm"
    return "cold"


class InMemoryPipelineStore(PipelineStore):
    """Keeps saved records in lists; useful for tests and dry runs."""

    def __init__(self):
        self.opportunities: List[Dict[str, Any]] = []
        self.pitches: List[Dict[str, Any]] = []

    def save_opportunity(self, opportunity: Dict[str, Any]) -> Dict[str, Any]:
        saved = dict(opportunity, id=opportunity.get("id") or str(uuid.uuid4()))
        self.opportunities.append(saved)
        return copy.deepcopy(saved)

    def save_pitch(self, pitch: Dict[str, Any]) -> Dict[str, Any]:
        saved = dict(pitch, id=pitch.get("id") or str(uuid.uuid4()))
        self.pitches.append(saved)
        return copy.deepcopy(saved)


class NullPipelineStore(PipelineStore):
    """Assigns ids without storing anything."""

    def save_opportunity(self, opportunity: Dict[str, Any]) -> Dict[str, Any]:
        return dict(opportunity, id=opportunity.get("id") or str(uuid.uuid4()))

    def save_pitch(self, pitch: Dict[str, Any]) -> Dict[str, Any]:
        return dict(pitch, id=pitch.get("id") or str(uuid.uuid4()))


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _require_company(context: CapabilityContext, domain: str, purpose: str) -> Dict[str, Any]:
    company = context.company(domain)
    if not company:
        raise CapabilityError(
            f"No company data available for {purpose}; research {domain} first",
            code=MISSING_COMPANY,
        )
    return company


def _find_contact(context: CapabilityContext, domain: str,
                  email: Optional[str]) -> Optional[Dict[str, Any]]:
    contacts = context.contacts_for(domain)
    if email:
        wanted = email_identity(email)
        for contact in contacts:
            if email_identity(contact.get("email")) == wanted:
                return contact
        return None
    if not contacts:
        return None
    return max(contacts, key=lambda c: c.get("authority_score") or 0)


class CapabilityHandlers:
    """The built-in capabilities, bound to their collaborators."""

    def __init__(self,
                 researcher: Optional[CompanyResearcher] = None,
                 scorer: Optional[OpportunityScorer] = None,
                 contact_finder: Optional[ContactFinder] = None,
                 pitch_generator: Optional[PitchGenerator] = None,
                 store: Optional[PipelineStore] = None):
        self.researcher = researcher
        self.scorer = scorer or PolicyOpportunityScorer()
        self.contact_finder = contact_finder
        self.pitch_generator = pitch_generator
        self.store = store or NullPipelineStore()

    def research_company(self, request: ResearchCompanyInput, context: CapabilityContext) -> CapabilityResult:
        if self.researcher is None:
            raise CapabilityError("No company researcher is configured", code=NOT_CONFIGURED)

        depth = request.depth or RESEARCH_DEPTHS.get(context.options.get("depth", "standard"), "standard")
        company_name = request.company_name or context.options.get("company_name")
        results = self.researcher.research(request.domain, company_name, depth)

        evidence = []
        providers = []
        for result in results:
            if result.error or not result.data:
                continue
            evidence.append(Evidence(
                entity_kind=EntityKind.COMPANY,
                entity_key=request.domain,
                provider=result.provider,
                confidence=result.confidence,
                fields=dict(result.data, domain=request.domain),
                data_points=tuple(result.data_points),
                cost=result.cost,
                duration_ms=result.duration_ms,
            ))
            providers.append(result.provider)

        if company_name:
            # Lowest confidence: only fills the name when no provider reported one
            evidence.append(Evidence(
                entity_kind=EntityKind.COMPANY,
                entity_key=request.domain,
                provider="request",
                confidence=0.1,
                fields={"domain": request.domain, "name": company_name},
            ))

        data_points = sorted({p for r in results if not r.error for p in r.data_points})
        if providers:
            summary = f"Researched {request.domain} with {', '.join(providers)} ({len(data_points)} fields)"
        else:
            summary = f"No provider returned data for {request.domain}"

        return CapabilityResult(
            evidence=evidence,
            summary=summary,
            cost=sum(r.cost for r in results),
            tokens=sum(r.tokens_used for r in results),
            payload={"domain": request.domain, "providers": providers, "fields_found": data_points},
        )

    def score_opportunity(self, request: ScoreOpportunityInput, context: CapabilityContext) -> CapabilityResult:
        company = _require_company(context, request.domain, "scoring")
        contacts = context.contacts_for(request.domain) if request.include_contacts else []
        score = self.scorer.score(company, contacts)
        data = score.to_dict()
        data["domain"] = request.domain

        return CapabilityResult(
            summary=f"Scored {request.domain}: {score.overall}/100 ({score.priority})",
            cost=score.cost,
            tokens=score.tokens_used,
            payload={"score": data},
            artifacts={"scores": [data]},
        )

    def find_contacts(self, request: FindContactsInput, context: CapabilityContext) -> CapabilityResult:
        if self.contact_finder is None:
            raise CapabilityError("No contact finder is configured", code=NOT_CONFIGURED)

        company = context.company(request.domain) or {}
        company_name = request.company_name or company.get("name") or context.options.get("company_name")
        target_roles = request.target_roles or context.options.get("target_roles") or None
        found = self.contact_finder.find_contacts(
            request.domain, company_name, target_roles, request.max_contacts
        )

        evidence = []
        for contact in found.contacts:
            data = dict(contact)
            confidence = float(data.pop("confidence", 0.5))
            data.setdefault("company_domain", request.domain)
            key = contact_identity_key(data.get("email"), data.get("full_name"))
            if key is None:
                continue
            sources = data.get("sources") or ["contact_finder"]
            evidence.append(Evidence(
                entity_kind=EntityKind.CONTACT,
                entity_key=key,
                provider=sources[0],
                confidence=min(1.0, max(0.0, confidence)),
                fields=data,
            ))

        return CapabilityResult(
            evidence=evidence,
            summary=f"Found {len(evidence)} contacts at {request.domain} ({found.total_found} before ranking)",
            cost=found.cost,
            tokens=found.tokens_used,
            payload={
                "contacts_found": len(evidence),
                "contacts": [
                    {
                        "name": c.get("full_name"),
                        "title": c.get("title"),
                        "email": c.get("email"),
                        "authority_score": c.get("authority_score"),
                        "decision_maker": c.get("decision_maker", False),
                    }
                    for c in found.contacts
                ],
            },
        )

    def generate_pitch(self, request: GeneratePitchInput, context: CapabilityContext) -> CapabilityResult:
        company = _require_company(context, request.domain, "pitch generation")
        if not context.options.get("generate_pitches", True):
            return CapabilityResult(
                summary="Pitch generation disabled for this run",
                payload={"status": "skipped", "message": "Pitch generation disabled"},
            )
        if self.pitch_generator is None:
            raise CapabilityError("No pitch generator is configured", code=NOT_CONFIGURED)

        contact = _find_contact(context, request.domain, request.contact_email)
        if request.contact_email and contact is None:
            raise CapabilityError(f"No contact with email {request.contact_email} at {request.domain}")

        focus = request.focus_products or context.options.get("focus_products") or None
        generated = self.pitch_generator.generate(company, contact, request.pitch_type, request.tone, focus)
        pitch = dict(generated.pitch)
        pitch.setdefault("type", request.pitch_type)
        pitch.setdefault("tone", request.tone)
        pitch["domain"] = request.domain
        pitch["contact_email"] = (contact or {}).get("email")
        if context.options.get("save_results", True):
            pitch = self.store.save_pitch(pitch)

        body = pitch.get("body") or ""
        return CapabilityResult(
            summary=f"Generated {request.pitch_type} pitch for {request.domain}"
                    + (f" addressed to {contact.get('full_name')}" if contact else ""),
            cost=generated.cost,
            tokens=generated.tokens_used,
            payload={"pitch": {
                "id": pitch.get("id"),
                "type": pitch.get("type"),
                "subject": pitch.get("subject"),
                "body_preview": body[:200] + ("..." if len(body) > 200 else ""),
                "hooks": pitch.get("hooks", []),
            }},
            artifacts={"pitches": [pitch]},
        )

    def save_to_pipeline(self, request: SaveToPipelineInput, context: CapabilityContext) -> CapabilityResult:
        if not context.options.get("save_results", True):
            return CapabilityResult(
                summary="Save disabled; opportunity not persisted",
                payload={"status": "skipped", "message": "Save disabled"},
            )

        company = context.company(request.domain) or {}
        scores = [s for s in context.artifacts.get("scores", []) if s.get("domain") == request.domain]
        opportunity = {
            "domain": request.domain,
            "company_name": company.get("name"),
            "stage": request.stage,
            "primary_contact_email": request.primary_contact_email,
            "score": scores[-1]["overall"] if scores else None,
            "notes": [{
                "content": request.notes or "Created by AI Orchestrator",
                "author": "AI Orchestrator",
                "created_at": datetime.now().isoformat(),
            }],
            "run_id": context.run_id,
        }
        saved = self.store.save_opportunity(opportunity)

        return CapabilityResult(
            summary=f"Saved {request.domain} to pipeline at stage '{request.stage}'",
            payload={"opportunity_id": saved.get("id"), "stage": request.stage},
            artifacts={"opportunities": [saved]},
        )

    def complete_workflow(self, request: CompleteWorkflowInput, context: CapabilityContext) -> CapabilityResult:
        return CapabilityResult(
            summary=request.summary,
            payload={
                "summary": request.summary,
                "recommendations": list(request.recommendations),
                "next_steps": list(request.next_steps),
            },
            terminate=True,
        )


def build_default_registry(researcher: Optional[CompanyResearcher] = None,
                           scorer: Optional[OpportunityScorer] = None,
                           contact_finder: Optional[ContactFinder] = None,
                           pitch_generator: Optional[PitchGenerator] = None,
                           store: Optional[PipelineStore] = None,
                           config: Optional[AppConfig] = None,
                           fusion: Optional[EvidenceFusionEngine] = None) -> CapabilityRegistry:
    """
    Build a registry with the built-in capabilities.

    Research and contact discovery default to the multi-provider adapters
    configured from ``config``. Pitch generation is only registered when a
    pitch generator is supplied.
    """
    config = config or AppConfig()
    fusion = fusion or EvidenceFusionEngine()
    handlers = CapabilityHandlers(
        researcher=researcher or MultiProviderCompanyEnricher.from_config(config),
        scorer=scorer or PolicyOpportunityScorer(fusion),
        contact_finder=contact_finder or MultiSourceContactFinder.from_config(config, fusion),
        pitch_generator=pitch_generator,
        store=store,
    )

    registry = CapabilityRegistry()
    registry.register("research_company", ResearchCompanyInput, handlers.research_company)
    registry.register("score_opportunity", ScoreOpportunityInput, handlers.score_opportunity)
    registry.register("find_contacts", FindContactsInput, handlers.find_contacts)
    if pitch_generator is not None:
        registry.register("generate_pitch", GeneratePitchInput, handlers.generate_pitch)
    registry.register("save_to_pipeline", SaveToPipelineInput, handlers.save_to_pipeline)
    registry.register("complete_workflow", CompleteWorkflowInput, handlers.complete_workflow, terminal=True)
    return registry
