#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Unit tests for the built-in capability handlers.
"""

import copy
import json
from unittest.mock import MagicMock

import pytest

from networkos_agents.capabilities.handlers import (
    CapabilityHandlers,
    InMemoryPipelineStore,
    PitchResult,
    PolicyOpportunityScorer,
    build_default_registry,
    priority_for,
)
from networkos_agents.capabilities.schemas import (
    CompleteWorkflowInput,
    FindContactsInput,
    GeneratePitchInput,
    ResearchCompanyInput,
    SaveToPipelineInput,
    ScoreOpportunityInput,
)
from networkos_agents.enrichment.contact_finder import ContactFinderResult
from networkos_agents.models.entities import EntityKind
from networkos_agents.models.evidence import ProviderResult
from networkos_agents.orchestration.errors import CapabilityError
from networkos_agents.orchestration.registry import CapabilityContext


def make_context(companies=None, contacts=None, artifacts=None, **options):
    return CapabilityContext(
        run_id="run-1",
        companies=companies or {},
        contacts=contacts or [],
        artifacts=artifacts or {},
        options=options,
    )


@pytest.fixture
def researcher():
    researcher = MagicMock()
    researcher.research.return_value = [
        ProviderResult(provider="Clearbit", data={"name": "Acme", "industry": "Media"},
                       confidence=0.9, data_points=["name", "industry"], cost=0.10),
        ProviderResult(provider="Apollo.io", error="Apollo error: 500", cost=0.05),
    ]
    return researcher


@pytest.fixture
def store():
    return InMemoryPipelineStore()


class TestResearchCompany:
    """Tests for the research_company handler."""

    def test_results_become_company_evidence(self, researcher):
        handlers = CapabilityHandlers(researcher=researcher)
        request = ResearchCompanyInput(domain="https://www.acme.io")

        result = handlers.research_company(request, make_context(depth="quick", company_name="Acme Corp"))

        researcher.research.assert_called_once_with("acme.io", "Acme Corp", "basic")
        clearbit, fallback = result.evidence
        assert clearbit.entity_kind == EntityKind.COMPANY
        assert clearbit.entity_key == "acme.io"
        assert clearbit.fields["domain"] == "acme.io"
        assert clearbit.confidence == 0.9
        assert fallback.provider == "request"
        assert fallback.confidence < clearbit.confidence
        assert result.cost == pytest.approx(0.15)
        assert result.payload["providers"] == ["Clearbit"]
        assert "Clearbit" in result.summary

    def test_explicit_depth_wins(self, researcher):
        handlers = CapabilityHandlers(researcher=researcher)
        handlers.research_company(ResearchCompanyInput(domain="acme.io", depth="deep"), make_context(depth="quick"))
        assert researcher.research.call_args[0][2] == "deep"

    def test_no_researcher_configured(self):
        with pytest.raises(CapabilityError) as exc_info:
            CapabilityHandlers().research_company(ResearchCompanyInput(domain="acme.io"), make_context())
        assert exc_info.value.code == "not_configured"


class TestScoreOpportunity:
    """Tests for scoring."""

    def test_requires_company_data(self):
        with pytest.raises(CapabilityError) as exc_info:
            CapabilityHandlers().score_opportunity(ScoreOpportunityInput(domain="acme.io"), make_context())
        assert exc_info.value.code == "missing_company"

    def test_scores_company_with_contacts(self, sample_company, sample_contacts):
        context = make_context(companies={"acme.io": sample_company}, contacts=sample_contacts)

        result = CapabilityHandlers().score_opportunity(ScoreOpportunityInput(domain="acme.io"), context)

        score = result.payload["score"]
        assert score["company_fit"] == 100
        assert score["contact_quality"] == 90
        assert score["priority"] == "hot"
        assert result.artifacts["scores"][0]["domain"] == "acme.io"
        assert result.evidence == []

    def test_without_contacts(self, sample_company, sample_contacts):
        context = make_context(companies={"acme.io": sample_company}, contacts=sample_contacts)

        result = CapabilityHandlers().score_opportunity(
            ScoreOpportunityInput(domain="acme.io", include_contacts=False), context
        )

        assert result.payload["score"]["contact_quality"] is None


class TestPolicyOpportunityScorer:
    def test_weights(self, sample_company, sample_contacts):
        scorer = PolicyOpportunityScorer()

        with_contacts = scorer.score(sample_company, sample_contacts)
        without = scorer.score(sample_company, [])

        # budget: base 50 + raised funding 20
        assert with_contacts.budget_indicators == 70
        assert with_contacts.overall == round(100 * 0.5 + 70 * 0.25 + 90 * 0.25)
        assert without.overall == round(100 * 2 / 3 + 70 / 3)
        assert with_contacts.confidence == 0.9

    def test_sparse_company_scores_base_points(self):
        score = PolicyOpportunityScorer().score({"domain": "acme.io"}, [])
        assert score.overall == 50
        assert score.priority == "warm"
        assert score.confidence == 0.1

    @pytest.mark.parametrize("overall,priority", [(75, "hot"), (74, "warm"), (50, "warm"), (49, "cold")])
    def test_priority_for(self, overall, priority):
        assert priority_for(overall) == priority


class TestFindContacts:
    """Tests for the find_contacts handler."""

    def test_contacts_become_evidence(self):
        finder = MagicMock()
        finder.find_contacts.return_value = ContactFinderResult(
            contacts=[
                {"full_name": "Dana Reyes", "email": "dana@acme.io", "title": "CTO",
                 "sources": ["Apollo.io", "Hunter.io"], "confidence": 0.9, "authority_score": 100},
                {"full_name": "No Identity", "sources": ["Apollo.io"], "confidence": 0.9},
                {"title": "Unnamed"},
            ],
            total_found=3,
            cost=0.08,
        )
        handlers = CapabilityHandlers(contact_finder=finder)
        context = make_context(companies={"acme.io": {"name": "Acme"}}, target_roles=["CTO"])

        result = handlers.find_contacts(FindContactsInput(domain="acme.io", max_contacts=5), context)

        finder.find_contacts.assert_called_once_with("acme.io", "Acme", ["CTO"], 5)
        keys = [ev.entity_key for ev in result.evidence]
        assert keys == ["email:dana@acme.io", "name:no identity"]
        dana = result.evidence[0]
        assert dana.entity_kind == EntityKind.CONTACT
        assert dana.provider == "Apollo.io"
        assert dana.confidence == 0.9
        assert dana.fields["company_domain"] == "acme.io"
        assert "confidence" not in dana.fields
        assert result.cost == 0.08
        assert result.payload["contacts_found"] == 2


class TestGeneratePitch:
    """Tests for the generate_pitch handler."""

    def make_generator(self):
        generator = MagicMock()
        generator.generate.return_value = PitchResult(
            pitch={"subject": "Faster edits", "body": "x" * 250, "hooks": ["Series B"]},
            cost=0.02,
            tokens_used=900,
        )
        return generator

    def test_generates_and_saves_pitch(self, sample_company, sample_contacts, store):
        generator = self.make_generator()
        handlers = CapabilityHandlers(pitch_generator=generator, store=store)
        context = make_context(companies={"acme.io": sample_company}, contacts=sample_contacts,
                               focus_products=["Voice API"])

        result = handlers.generate_pitch(GeneratePitchInput(domain="acme.io", pitch_type="email"), context)

        company, contact, pitch_type, tone, focus = generator.generate.call_args[0]
        assert contact["email"] == "dana@acme.io"
        assert (pitch_type, tone, focus) == ("email", "Professional", ["Voice API"])
        assert result.cost == 0.02
        assert result.tokens == 900
        assert result.payload["pitch"]["body_preview"].endswith("...")
        assert store.pitches[0]["contact_email"] == "dana@acme.io"
        assert result.artifacts["pitches"][0]["id"] == store.pitches[0]["id"]

    def test_named_contact_must_exist(self, sample_company):
        handlers = CapabilityHandlers(pitch_generator=self.make_generator())
        context = make_context(companies={"acme.io": sample_company})

        with pytest.raises(CapabilityError):
            handlers.generate_pitch(
                GeneratePitchInput(domain="acme.io", pitch_type="linkedin", contact_email="ghost@acme.io"), context
            )

    def test_disabled_pitches_are_skipped(self, sample_company):
        generator = self.make_generator()
        handlers = CapabilityHandlers(pitch_generator=generator)
        context = make_context(companies={"acme.io": sample_company}, generate_pitches=False)

        result = handlers.generate_pitch(GeneratePitchInput(domain="acme.io", pitch_type="email"), context)

        assert result.payload["status"] == "skipped"
        generator.generate.assert_not_called()

    def test_not_saved_when_saving_disabled(self, sample_company, store):
        handlers = CapabilityHandlers(pitch_generator=self.make_generator(), store=store)
        context = make_context(companies={"acme.io": sample_company}, save_results=False)

        result = handlers.generate_pitch(GeneratePitchInput(domain="acme.io", pitch_type="email"), context)

        assert store.pitches == []
        assert result.artifacts["pitches"][0].get("id") is None


class TestSaveToPipeline:
    """Tests for the save_to_pipeline handler."""

    def test_saves_opportunity_with_latest_score(self, store):
        context = make_context(
            companies={"acme.io": {"name": "Acme"}},
            artifacts={"scores": [{"domain": "acme.io", "overall": 60}, {"domain": "acme.io", "overall": 82}]},
        )

        result = CapabilityHandlers(store=store).save_to_pipeline(
            SaveToPipelineInput(domain="acme.io", stage="Researching", notes="Strong fit"), context
        )

        saved = store.opportunities[0]
        assert saved["score"] == 82
        assert saved["company_name"] == "Acme"
        assert saved["notes"][0]["content"] == "Strong fit"
        assert saved["run_id"] == "run-1"
        assert result.payload["opportunity_id"] == saved["id"]

    def test_skipped_when_saving_disabled(self, store):
        result = CapabilityHandlers(store=store).save_to_pipeline(
            SaveToPipelineInput(domain="acme.io", stage="New Lead"), make_context(save_results=False)
        )

        assert result.payload["status"] == "skipped"
        assert store.opportunities == []

    def test_saving_twice_keeps_context_unchanged(self, store):
        context = make_context(companies={"acme.io": {"name": "Acme"}})
        before = copy.deepcopy(context)
        handlers = CapabilityHandlers(store=store)

        handlers.save_to_pipeline(SaveToPipelineInput(domain="acme.io", stage="New Lead"), context)
        handlers.save_to_pipeline(SaveToPipelineInput(domain="acme.io", stage="New Lead"), context)

        assert context == before
        assert len(store.opportunities) == 2


class TestCompleteWorkflow:
    def test_terminates_with_summary(self):
        result = CapabilityHandlers().complete_workflow(
            CompleteWorkflowInput(summary="Qualified Acme", recommendations=["Call CTO"], next_steps=["Send email"]),
            make_context(),
        )

        assert result.terminate
        assert result.payload["recommendations"] == ["Call CTO"]


class TestDefaultRegistry:
    """Tests for build_default_registry."""

    def test_registers_builtin_capabilities(self, researcher):
        registry = build_default_registry(researcher=researcher, contact_finder=MagicMock())

        assert registry.names() == [
            "research_company", "score_opportunity", "find_contacts", "save_to_pipeline", "complete_workflow",
        ]
        assert registry.is_terminal("complete_workflow")

    def test_pitch_capability_needs_generator(self, researcher):
        registry = build_default_registry(researcher=researcher, contact_finder=MagicMock(),
                                          pitch_generator=MagicMock())
        assert "generate_pitch" in registry

    def test_invalid_domain_rejected_by_schema(self, researcher):
        registry = build_default_registry(researcher=researcher, contact_finder=MagicMock())

        outcome = registry.invoke("research_company", {"domain": "localhost"})

        assert outcome.error.code == "invalid_input"
        researcher.research.assert_not_called()

    def test_tool_definitions_are_json_serializable(self, researcher):
        registry = build_default_registry(researcher=researcher, contact_finder=MagicMock())
        definitions = registry.tool_definitions()

        assert json.loads(json.dumps(definitions))[0]["name"] == "research_company"
        assert "domain" in definitions[0]["input_schema"]["properties"]
