#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Run State

Request models accepted by the orchestrator, the mutable state a single run
owns while the loop is active, and the RunResult handed back to the caller.
"""

import copy
import uuid
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Iterable, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.entities import Company, Contact, EntityKind, company_identity_key, contact_identity_key
from ..models.evidence import Evidence
from ..fusion.fusion import EvidenceFusionEngine, FusedRecord
from .budget import BudgetTracker
from .ledger import Step, StepLedger
from .registry import CapabilityContext

# Confidence given to data the caller already had on file
EXISTING_DATA_CONFIDENCE = 0.5
EXISTING_PROVIDER = "existing"


class TerminationReason(str, Enum):
    """Why a run stopped. Exactly one is reported per run."""
    COMPLETED = "completed"
    BUDGET_EXCEEDED = "budget_exceeded"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    CANCELLED = "cancelled"
    REASONING_UNAVAILABLE = "reasoning_unavailable"


class WorkflowType(str, Enum):
    FULL_QUALIFICATION = "full_qualification"
    QUICK_ASSESSMENT = "quick_assessment"
    FIND_CHAMPIONS = "find_champions"
    CREATE_CAMPAIGN = "create_campaign"
    ENRICH_AND_SCORE = "enrich_and_score"
    CUSTOM = "custom"


class OrchestrationInput(BaseModel):
    domain: Optional[str] = Field(None, description="Company domain")
    company_name: Optional[str] = Field(None, description="Company name")
    existing_company: Optional[Dict[str, Any]] = Field(None, description="Company data already on file")
    existing_contacts: List[Dict[str, Any]] = Field(default_factory=list, description="Contacts already on file")
    target_roles: List[str] = Field(default_factory=list, description="Roles to prioritize")
    focus_products: List[str] = Field(default_factory=list, description="Products to pitch")
    custom_instructions: Optional[str] = Field(None, description="Free-form instructions")


class OrchestrationOptions(BaseModel):
    max_budget: Optional[float] = Field(None, gt=0, description="Budget ceiling for this run")
    depth: Literal["quick", "standard", "deep"] = Field("standard", description="Research depth")
    save_results: bool = Field(True, description="Persist opportunities and pitches")
    generate_pitches: bool = Field(True, description="Allow pitch generation")
    pitch_types: List[Literal["email", "linkedin", "call_script"]] = Field(
        default_factory=lambda: ["email"], description="Pitch types to generate"
    )


class OrchestrationRequest(BaseModel):
    """What a caller asks the orchestrator to do."""
    type: WorkflowType = WorkflowType.CUSTOM
    input: OrchestrationInput = Field(default_factory=OrchestrationInput)
    options: OrchestrationOptions = Field(default_factory=OrchestrationOptions)

    @property
    def company_key(self) -> Optional[str]:
        domain = self.input.domain
        if not domain and self.input.existing_company:
            domain = self.input.existing_company.get("domain")
        return company_identity_key(domain)


class RunState:
    """
    Everything one run accumulates.

    Owned by the orchestration loop thread; handlers only ever see the
    read-only snapshot returned by ``snapshot()``.
    """

    def __init__(self, budget: BudgetTracker, options: Optional[Dict[str, Any]] = None,
                 run_id: Optional[str] = None):
        self.run_id = run_id or str(uuid.uuid4())
        self.budget = budget
        self.ledger = StepLedger()
        self.records: Dict[Tuple[EntityKind, str], FusedRecord] = {}
        self.history: List[Dict[str, Any]] = []
        self.artifacts: Dict[str, List[Any]] = {}
        self.options: Dict[str, Any] = dict(options or {})
        self.termination_reason: Optional[TerminationReason] = None
        self.summary: Optional[str] = None
        self.recommendations: List[str] = []
        self.next_steps: List[str] = []
        self.iterations = 0
        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None

    @property
    def terminated(self) -> bool:
        return self.termination_reason is not None

    def terminate(self, reason: TerminationReason) -> None:
        """Record the termination reason. The first reason recorded sticks."""
        if self.termination_reason is None:
            self.termination_reason = reason
            self.completed_at = datetime.now()

    def fold(self, evidence: Evidence, engine: EvidenceFusionEngine) -> FusedRecord:
        identity = (evidence.entity_kind, evidence.entity_key)
        record = engine.fold(self.records.get(identity), evidence)
        self.records[identity] = record
        return record

    def fold_all(self, evidence: Iterable[Evidence], engine: EvidenceFusionEngine) -> None:
        """Fold several pieces of evidence. If any of them fails to fold, none is applied."""
        staged: Dict[Tuple[EntityKind, str], FusedRecord] = {}
        for item in evidence:
            identity = (item.entity_kind, item.entity_key)
            current = staged[identity] if identity in staged else self.records.get(identity)
            staged[identity] = engine.fold(current, item)
        self.records.update(staged)

    def add_artifacts(self, artifacts: Dict[str, List[Any]]) -> None:
        for kind, items in artifacts.items():
            self.artifacts.setdefault(kind, []).extend(copy.deepcopy(list(items)))

    def companies(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: record.as_dict()
            for (kind, key), record in self.records.items()
            if kind == EntityKind.COMPANY
        }

    def contacts(self) -> List[Dict[str, Any]]:
        contacts = []
        for (kind, key), record in self.records.items():
            if kind != EntityKind.CONTACT:
                continue
            data = record.as_dict()
            data["sources"] = record.providers
            contacts.append(data)
        return contacts

    def seed(self, request: OrchestrationRequest, engine: EvidenceFusionEngine) -> int:
        """
        Fold the caller's existing company and contacts in as evidence.

        Returns:
            int: Number of records seeded
        """
        seeded = 0
        company_key = request.company_key
        existing_company = request.input.existing_company
        if company_key and existing_company:
            data = dict(existing_company or {})
            data["domain"] = company_key
            if request.input.company_name and not data.get("name"):
                data["name"] = request.input.company_name
            self.fold(Evidence(
                entity_kind=EntityKind.COMPANY,
                entity_key=company_key,
                provider=EXISTING_PROVIDER,
                confidence=EXISTING_DATA_CONFIDENCE,
                fields=data,
            ), engine)
            seeded += 1

        for contact in request.input.existing_contacts:
            data = dict(contact)
            if not data.get("full_name") and (data.get("first_name") or data.get("last_name")):
                data["full_name"] = " ".join(
                    p for p in (data.get("first_name"), data.get("last_name")) if p
                )
            key = contact_identity_key(data.get("email"), data.get("full_name"))
            if key is None:
                continue
            if company_key and not data.get("company_domain"):
                data["company_domain"] = company_key
            self.fold(Evidence(
                entity_kind=EntityKind.CONTACT,
                entity_key=key,
                provider=EXISTING_PROVIDER,
                confidence=EXISTING_DATA_CONFIDENCE,
                fields=data,
            ), engine)
            seeded += 1
        return seeded

    def snapshot(self) -> CapabilityContext:
        """Deep-copied view of the run for handlers."""
        return CapabilityContext(
            run_id=self.run_id,
            companies=self.companies(),
            contacts=self.contacts(),
            artifacts=copy.deepcopy(self.artifacts),
            options=copy.deepcopy(self.options),
        )

    def to_result(self) -> 'RunResult':
        return RunResult(
            run_id=self.run_id,
            companies=self.companies(),
            contacts=self.contacts(),
            steps=self.ledger.all(),
            total_cost=self.budget.total_cost,
            total_tokens=self.budget.total_tokens,
            termination_reason=self.termination_reason,
            summary=self.summary,
            recommendations=list(self.recommendations),
            next_steps=list(self.next_steps),
            artifacts=copy.deepcopy(self.artifacts),
            iterations=self.iterations,
            started_at=self.started_at,
            completed_at=self.completed_at or datetime.now(),
        )


@dataclass
class RunResult:
    """What the caller gets back from ``AgentOrchestrator.run``."""
    run_id: str
    companies: Dict[str, Dict[str, Any]]
    contacts: List[Dict[str, Any]]
    steps: Tuple[Step, ...]
    total_cost: float
    total_tokens: int
    termination_reason: Optional[TerminationReason]
    summary: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    artifacts: Dict[str, List[Any]] = field(default_factory=dict)
    iterations: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        if self.termination_reason == TerminationReason.COMPLETED:
            return True
        return bool(self.companies)

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def company(self, domain: str) -> Optional[Dict[str, Any]]:
        return self.companies.get(company_identity_key(domain) or domain)

    def company_entity(self, domain: str) -> Optional[Company]:
        """Typed view of a fused company record."""
        data = self.company(domain)
        return Company.from_dict(data) if data is not None else None

    def contact_entities(self) -> List[Contact]:
        return [Contact.from_dict(c) for c in self.contacts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "success": self.success,
            "termination_reason": self.termination_reason.value if self.termination_reason else None,
            "summary": self.summary,
            "recommendations": self.recommendations,
            "next_steps": self.next_steps,
            "companies": self.companies,
            "contacts": self.contacts,
            "artifacts": self.artifacts,
            "steps": [step.to_dict() for step in self.steps],
            "total_cost": round(self.total_cost, 6),
            "total_tokens": self.total_tokens,
            "iterations": self.iterations,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
        }
