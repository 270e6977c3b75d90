#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Orchestrator Tests

Unit and integration tests for the AgentOrchestrator control loop, driven by
a scripted reasoning engine and a small registry of stub capabilities.
"""

import threading
from typing import Optional
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from conftest import ScriptedEngine, invoke, turn
from networkos_agents.capabilities.handlers import InMemoryPipelineStore, build_default_registry
from networkos_agents.capabilities.schemas import CompleteWorkflowInput
from networkos_agents.config import AppConfig
from networkos_agents.fusion.fusion import EvidenceFusionEngine
from networkos_agents.models.entities import EntityKind
from networkos_agents.models.evidence import Evidence, ProviderResult
from networkos_agents.orchestration.errors import ReasoningUnavailableError
from networkos_agents.orchestration.ledger import StepStatus
from networkos_agents.orchestration.orchestrator import AgentOrchestrator
from networkos_agents.orchestration.prompts import CONTINUE_PROMPT
from networkos_agents.orchestration.registry import CapabilityRegistry, CapabilityResult
from networkos_agents.orchestration.state import OrchestrationRequest, TerminationReason


class ResearchInput(BaseModel):
    """Stub research capability."""
    domain: str
    industry: Optional[str] = None
    cost: float = 0.0


class NoInput(BaseModel):
    """Capability without arguments."""


def research(request, context):
    evidence = []
    if request.industry:
        evidence.append(Evidence(
            entity_kind=EntityKind.COMPANY,
            entity_key=request.domain,
            provider="stub",
            confidence=0.8,
            fields={"domain": request.domain, "industry": request.industry},
        ))
    return CapabilityResult(evidence=evidence, summary=f"Researched {request.domain}", cost=request.cost)


def complete(request, context):
    return CapabilityResult(
        summary=request.summary,
        payload={
            "summary": request.summary,
            "recommendations": request.recommendations,
            "next_steps": request.next_steps,
        },
        terminate=True,
    )


def finish(summary="Qualified acme.io"):
    return invoke("complete_workflow", summary=summary, recommendations=["Call the CTO"], next_steps=["Send email"])


@pytest.fixture
def config():
    config = AppConfig()
    config.max_iterations = 10
    config.budget_ceiling = 5.0
    config.max_parallel_invocations = 1
    config.reasoning_rate_in = 0.015
    config.reasoning_rate_out = 0.075
    config.reasoning_timeout_secs = 5
    config.capability_timeout_secs = 5
    config.save_results = True
    return config


@pytest.fixture
def registry():
    registry = CapabilityRegistry()
    registry.register("research", ResearchInput, research)
    registry.register("complete_workflow", CompleteWorkflowInput, complete, terminal=True)
    return registry


@pytest.fixture
def make_orchestrator(config, registry):
    def factory(engine):
        return AgentOrchestrator(engine, registry, config=config, fusion=EvidenceFusionEngine())
    return factory


@pytest.fixture
def request_spec():
    return OrchestrationRequest(type="quick_assessment", input={"domain": "acme.io", "company_name": "Acme"})


class TestTermination:
    """Every run ends with exactly one termination reason."""

    def test_iteration_cap(self, make_orchestrator, request_spec):
        engine = ScriptedEngine(repeat=lambda: turn(invoke("research", domain="acme.io")))

        result = make_orchestrator(engine).run(request_spec, max_iterations=3)

        assert result.termination_reason == TerminationReason.ITERATION_LIMIT_REACHED
        assert result.iterations == 3
        assert len(engine.calls) == 3
        assert len(result.steps) == 3
        assert result.recommendations == ["Complete the workflow manually"]
        assert result.next_steps == ["Review gathered data"]
        assert "3 iterations" in result.summary

    def test_budget_exceeded_after_flat_costs(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(
            invoke("research", domain="acme.io", cost=0.60),
            invoke("research", domain="acme.io", cost=0.60),
            invoke("research", domain="acme.io", cost=0.60),
        )])

        result = make_orchestrator(engine).run(request_spec, budget_ceiling=1.00)

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED
        assert [s.status for s in result.steps] == [StepStatus.SUCCEEDED, StepStatus.SUCCEEDED]
        assert result.total_cost == pytest.approx(1.20)
        assert len(engine.calls) == 1

    def test_budget_at_ceiling_is_not_exceeded(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([
            turn(invoke("research", domain="acme.io", cost=0.50), invoke("research", domain="acme.io", cost=0.50)),
            turn(finish()),
        ])

        result = make_orchestrator(engine).run(request_spec, budget_ceiling=1.00)

        assert result.termination_reason == TerminationReason.COMPLETED

    def test_model_usage_counts_against_budget(self, make_orchestrator, request_spec):
        # 100k input tokens at 0.015 per 1k
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io"), input_tokens=100_000)])

        result = make_orchestrator(engine).run(request_spec, budget_ceiling=1.00)

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED
        assert result.steps == ()
        assert result.total_tokens == 100_000
        assert result.total_cost == pytest.approx(1.5)

    def test_request_budget_used_when_none_given(self, make_orchestrator):
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io", cost=0.30))])
        request = {"input": {"domain": "acme.io"}, "options": {"max_budget": 0.25}}

        result = make_orchestrator(engine).run(request)

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED

    def test_configured_budget_used_without_request_budget(self, make_orchestrator, config):
        config.budget_ceiling = 0.25
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io", cost=0.30))])

        result = make_orchestrator(engine).run({"input": {"domain": "acme.io"}})

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED

    def test_complete_workflow_terminates(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([
            turn(invoke("research", domain="acme.io", industry="Media & Entertainment")),
            turn(finish()),
        ])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.COMPLETED
        assert result.success
        assert result.summary == "Qualified acme.io"
        assert result.recommendations == ["Call the CTO"]
        assert result.next_steps == ["Send email"]
        assert result.companies["acme.io"]["industry"] == "Media & Entertainment"
        assert [s.capability for s in result.steps] == ["research", "complete_workflow"]

    def test_terminate_alongside_other_invocations(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io"), finish())])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.COMPLETED
        assert len(engine.calls) == 1
        assert len(result.steps) == 2

    def test_finished_text_turn(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(text="Nothing more to do.", finished=True)])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.COMPLETED
        assert result.summary == "Nothing more to do."
        assert result.steps == ()

    def test_unfinished_empty_turn_is_nudged(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(text="Let me think."), turn(finished=True)])

        make_orchestrator(engine).run(request_spec)

        history = engine.calls[1]["history"]
        assert history[-2] == {"role": "assistant", "content": "Let me think.", "invocations": []}
        assert history[-1] == {"role": "user", "content": CONTINUE_PROMPT}


class TestFailures:
    """Failed capabilities and an unreachable reasoning engine."""

    def test_unknown_capability_is_a_failed_step(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(invoke("send_fax", domain="acme.io")), turn(finish())])

        result = make_orchestrator(engine).run(request_spec)

        failed = result.steps[0]
        assert failed.status == StepStatus.FAILED
        assert failed.error.startswith("unknown_capability")
        assert result.termination_reason == TerminationReason.COMPLETED
        tool_entry = engine.calls[1]["history"][-1]
        assert tool_entry["role"] == "tool"
        assert tool_entry["results"][0]["is_error"] is True

    def test_invalid_input_is_a_failed_step(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(invoke("research", industry="Media")), turn(finish())])

        result = make_orchestrator(engine).run(request_spec)

        assert result.steps[0].status == StepStatus.FAILED
        assert result.steps[0].error.startswith("invalid_input")

    def test_reasoning_unavailable_on_first_iteration(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([ReasoningUnavailableError("connection refused")])

        with pytest.raises(ReasoningUnavailableError) as exc_info:
            make_orchestrator(engine).run(request_spec)

        partial = exc_info.value.result
        assert partial.termination_reason == TerminationReason.REASONING_UNAVAILABLE
        assert partial.steps == ()

    def test_reasoning_unavailable_later_returns_partial_result(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([
            turn(invoke("research", domain="acme.io", industry="Gaming")),
            ReasoningUnavailableError("connection refused"),
        ])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.REASONING_UNAVAILABLE
        assert len(result.steps) == 1
        assert result.companies["acme.io"]["industry"] == "Gaming"
        assert result.success

    def test_unexpected_engine_error_later_returns_partial_result(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([
            turn(invoke("research", domain="acme.io", industry="Gaming")),
            KeyError("content"),
        ])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.REASONING_UNAVAILABLE
        assert [s.status for s in result.steps] == [StepStatus.SUCCEEDED]
        assert result.companies["acme.io"]["industry"] == "Gaming"

    def test_unexpected_engine_error_on_first_iteration(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([AttributeError("'NoneType' object has no attribute 'content'")])

        with pytest.raises(ReasoningUnavailableError) as exc_info:
            make_orchestrator(engine).run(request_spec)

        assert isinstance(exc_info.value.__cause__, AttributeError)
        assert "AttributeError" in str(exc_info.value)
        assert exc_info.value.result.termination_reason == TerminationReason.REASONING_UNAVAILABLE

    def test_engine_returning_bad_usage(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([
            turn(invoke("research", domain="acme.io")),
            turn(finish(), input_tokens=float("nan")),
        ])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.REASONING_UNAVAILABLE
        assert len(result.steps) == 1
        assert result.total_cost == 0

    def test_non_finite_cost_is_a_failed_step(self, make_orchestrator, request_spec):
        engine = ScriptedEngine(
            [turn(invoke("research", domain="acme.io", cost=float("nan")))],
            repeat=lambda: turn(invoke("research", domain="acme.io", cost=0.60)),
        )

        result = make_orchestrator(engine).run(request_spec, max_iterations=5, budget_ceiling=1.00)

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED
        assert [s.status for s in result.steps] == [StepStatus.FAILED, StepStatus.SUCCEEDED, StepStatus.SUCCEEDED]
        assert result.steps[0].error.startswith("malformed_output")
        assert result.total_cost == pytest.approx(1.20)

    def test_unfoldable_evidence_is_a_failed_step(self, make_orchestrator, registry, request_spec):
        def mixed_keys(request, context):
            return CapabilityResult(
                evidence=[
                    Evidence(entity_kind=EntityKind.COMPANY, entity_key="acme.io", provider="good",
                             confidence=0.9, fields={"industry": "Gaming"}),
                    Evidence(entity_kind=EntityKind.COMPANY, entity_key="acme.io", provider="bad",
                             confidence=0.9, fields={"funding": {1: "a", "b": 2}}),
                ],
                summary="Mixed keys",
                cost=0.20,
            )

        registry.register("mixed_keys", NoInput, mixed_keys)
        engine = ScriptedEngine([turn(invoke("mixed_keys")), turn(finish())])

        result = make_orchestrator(engine).run(request_spec)

        assert result.termination_reason == TerminationReason.COMPLETED
        failed = result.steps[0]
        assert failed.status == StepStatus.FAILED
        assert failed.error.startswith("malformed_output")
        assert failed.cost == pytest.approx(0.20)
        assert result.total_cost == pytest.approx(0.20)
        assert "acme.io" not in result.companies
        assert engine.calls[1]["history"][-1]["results"][0]["is_error"] is True

    def test_reasoning_timeout(self, make_orchestrator, config, request_spec):
        config.reasoning_timeout_secs = 0.05
        release = threading.Event()

        def stalled(history):
            release.wait(2)
            return turn(finished=True)

        try:
            with pytest.raises(ReasoningUnavailableError):
                make_orchestrator(ScriptedEngine([stalled])).run(request_spec)
        finally:
            release.set()


class TestCancellation:
    def test_cancel_before_first_iteration(self, make_orchestrator, request_spec):
        engine = ScriptedEngine()
        cancel = threading.Event()
        cancel.set()

        result = make_orchestrator(engine).run(request_spec, cancel_event=cancel)

        assert result.termination_reason == TerminationReason.CANCELLED
        assert result.iterations == 0
        assert engine.calls == []

    def test_cancel_between_windows(self, config, registry, request_spec):
        cancel = threading.Event()

        def cancelling(request, context):
            cancel.set()
            return CapabilityResult(summary="cancel requested")

        registry.register("cancel_me", NoInput, cancelling)
        engine = ScriptedEngine([turn(invoke("cancel_me"), invoke("research", domain="acme.io"))])
        orchestrator = AgentOrchestrator(engine, registry, config=config, fusion=EvidenceFusionEngine())

        result = orchestrator.run(request_spec, cancel_event=cancel)

        assert result.termination_reason == TerminationReason.CANCELLED
        assert [s.capability for s in result.steps] == ["cancel_me"]


class TestDispatch:
    """Windows, ordering and progress reporting."""

    def test_parallel_window_keeps_request_order(self, make_orchestrator, config, request_spec):
        config.max_parallel_invocations = 2
        engine = ScriptedEngine([
            turn(
                invoke("research", "a", domain="acme.io"),
                invoke("research", "b", domain="globex.com"),
                invoke("research", "c", domain="initech.com"),
            ),
            turn(finish()),
        ])

        result = make_orchestrator(engine).run(request_spec)

        assert [s.invocation_id for s in result.steps[:3]] == ["a", "b", "c"]
        assert [s.order for s in result.steps] == [1, 2, 3, 4]
        tool_results = engine.calls[1]["history"][-1]["results"]
        assert [r["invocation_id"] for r in tool_results] == ["a", "b", "c"]

    def test_progress_callback_sees_every_step(self, make_orchestrator, request_spec):
        seen = []
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io")), turn(finish())])

        make_orchestrator(engine).run(request_spec, progress_callback=seen.append)

        assert [s.order for s in seen] == [1, 2]
        assert all(s.is_terminal for s in seen)

    def test_failing_progress_callback_does_not_stop_run(self, make_orchestrator, request_spec):
        callback = MagicMock(side_effect=RuntimeError("ui went away"))
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io")), turn(finish())])

        result = make_orchestrator(engine).run(request_spec, progress_callback=callback)

        assert result.termination_reason == TerminationReason.COMPLETED
        assert callback.call_count == 2

    def test_engine_receives_tools_and_system_prompt(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(finished=True)])

        make_orchestrator(engine).run(request_spec)

        call = engine.calls[0]
        assert call["capabilities"] == ["research", "complete_workflow"]
        assert "orchestrator" in call["system"]
        assert "Domain: acme.io" in call["history"][0]["content"]


class TestRunState:
    """Seeding and options seen by handlers."""

    def test_existing_data_is_seeded_and_outranked(self, make_orchestrator):
        request = OrchestrationRequest(
            type="enrich_and_score",
            input={
                "domain": "https://www.acme.io",
                "existing_company": {"name": "Acme", "industry": "Retail"},
                "existing_contacts": [{"first_name": "Dana", "last_name": "Reyes", "title": "CTO"}],
            },
        )
        engine = ScriptedEngine([turn(invoke("research", domain="acme.io", industry="Gaming")), turn(finish())])

        result = make_orchestrator(engine).run(request)

        company = result.companies["acme.io"]
        assert company["name"] == "Acme"
        assert company["industry"] == "Gaming"
        contact = result.contacts[0]
        assert contact["full_name"] == "Dana Reyes"
        assert contact["company_domain"] == "acme.io"
        assert contact["sources"] == ["existing"]
        assert result.company_entity("acme.io").industry == "Gaming"
        assert result.contact_entities()[0].title == "CTO"

    def test_handlers_see_run_options(self, config, registry, request_spec):
        seen = {}

        def inspect(request, context):
            seen.update(context.options)
            return CapabilityResult(summary="ok")

        config.save_results = False
        registry.register("inspect", NoInput, inspect)
        engine = ScriptedEngine([turn(invoke("inspect")), turn(finish())])

        AgentOrchestrator(engine, registry, config=config, fusion=EvidenceFusionEngine()).run(request_spec)

        assert seen["save_results"] is False
        assert seen["depth"] == "standard"
        assert seen["domain"] == "acme.io"
        assert seen["workflow"] == "quick_assessment"

    def test_result_to_dict(self, make_orchestrator, request_spec):
        engine = ScriptedEngine([turn(finish())])

        data = make_orchestrator(engine).run(request_spec).to_dict()

        assert data["termination_reason"] == "completed"
        assert data["steps"][0]["capability"] == "complete_workflow"
        assert data["duration_ms"] >= 0


class TestDefaultCapabilities:
    """End-to-end run through the built-in capabilities with stubbed collaborators."""

    def test_full_qualification(self, config, sample_contacts):
        researcher = MagicMock()
        researcher.research.return_value = [ProviderResult(
            provider="Clearbit",
            data={"name": "Acme", "industry": "Media & Entertainment", "size": "51-200",
                  "funding": {"total_raised": "$25.0M", "stage": "Series B"}},
            confidence=0.9,
            data_points=["name", "industry", "size", "funding"],
            cost=0.10,
        )]
        finder = MagicMock()
        finder.find_contacts.return_value = MagicMock(
            contacts=[dict(c, sources=["Apollo.io"], confidence=0.9) for c in sample_contacts],
            total_found=2, cost=0.05, tokens_used=0,
        )
        store = InMemoryPipelineStore()
        registry = build_default_registry(researcher=researcher, contact_finder=finder, store=store, config=config)
        engine = ScriptedEngine([
            turn(invoke("research_company", domain="acme.io"), input_tokens=1000, output_tokens=200),
            turn(invoke("find_contacts", domain="acme.io"), invoke("score_opportunity", domain="acme.io")),
            turn(invoke("save_to_pipeline", domain="acme.io", stage="Researching")),
            turn(finish()),
        ])
        orchestrator = AgentOrchestrator(engine, registry, config=config)

        result = orchestrator.run(OrchestrationRequest(type="full_qualification", input={"domain": "acme.io"}))

        assert result.termination_reason == TerminationReason.COMPLETED
        assert all(s.status == StepStatus.SUCCEEDED for s in result.steps)
        assert result.companies["acme.io"]["industry"] == "Media & Entertainment"
        assert {c["email"] for c in result.contacts} == {"dana@acme.io", "sam@acme.io"}
        assert result.artifacts["scores"][0]["domain"] == "acme.io"
        assert store.opportunities[0]["score"] == result.artifacts["scores"][0]["overall"]
        # 1k in at 0.015 + 200 out at 0.075, plus provider fees
        assert result.total_cost == pytest.approx(0.015 + 0.015 + 0.10 + 0.05)
        assert result.total_tokens == 1200
