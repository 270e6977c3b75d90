#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pytest configuration file for the NetworkOS agent core test suite.
"""

import os
import sys
import itertools
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import pytest

# Add the src directory to Python path for accessing networkos_agents
project_root = Path(__file__).parent.parent
src_path = os.path.join(project_root, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from networkos_agents.orchestration.orchestrator import (
    ReasoningEngine,
    ReasoningTurn,
    ToolInvocation,
    TokenUsage,
)

TurnSpec = Union[ReasoningTurn, Callable[[Sequence[Mapping[str, Any]]], ReasoningTurn], Exception]


def invoke(name: str, _id: Optional[str] = None, **payload: Any) -> ToolInvocation:
    """Shorthand for a tool invocation in scripted turns."""
    return ToolInvocation(id=_id or f"call_{name}_{next(_ids)}", name=name, input=payload)


_ids = itertools.count(1)


class ScriptedEngine(ReasoningEngine):
    """
    Reasoning engine double that replays a fixed script of turns.

    Each script entry is a ReasoningTurn, a callable receiving the history, or
    an exception to raise. Once the script runs out, ``repeat`` (if given)
    produces every further turn.
    """

    def __init__(self, script: Sequence[TurnSpec] = (), repeat: Optional[Callable[[], ReasoningTurn]] = None):
        self.script = list(script)
        self.repeat = repeat
        self.calls: List[Dict[str, Any]] = []

    def converse(self, history, capabilities, system=None) -> ReasoningTurn:
        self.calls.append({
            "history": [dict(entry) for entry in history],
            "capabilities": [c["name"] for c in capabilities],
            "system": system,
        })
        if self.script:
            spec = self.script.pop(0)
        elif self.repeat is not None:
            return self.repeat()
        else:
            raise AssertionError("Scripted engine ran out of turns")

        if isinstance(spec, Exception):
            raise spec
        if callable(spec):
            return spec(history)
        return spec


def turn(*invocations: ToolInvocation, finished: bool = False, text: str = "",
         input_tokens: int = 0, output_tokens: int = 0) -> ReasoningTurn:
    return ReasoningTurn(
        invocations=list(invocations),
        finished=finished,
        usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
        text=text,
    )


@pytest.fixture
def scripted_engine():
    """Factory for scripted reasoning engines."""
    return ScriptedEngine


@pytest.fixture(scope="function")
def temp_log_path(tmp_path: Path) -> Path:
    """Temporary log file path for testing."""
    return tmp_path / "test.log"


@pytest.fixture(scope="function")
def mock_env_vars(monkeypatch, temp_log_path: Path, tmp_path: Path):
    """
    Set up environment variables for testing.

    Args:
        monkeypatch: Pytest monkeypatch fixture
        temp_log_path: Temporary log file path
        tmp_path: Pytest temporary directory
    """
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_FILE_PATH", str(temp_log_path))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test_api_key")
    monkeypatch.setenv("ORCHESTRATOR_MAX_ITERATIONS", "5")
    monkeypatch.setenv("ORCHESTRATOR_BUDGET_CEILING", "2.50")
    monkeypatch.setenv("ORCHESTRATOR_MAX_PARALLEL_INVOCATIONS", "2")
    monkeypatch.setenv("SCORING_POLICY_PATH", str(tmp_path / "scoring_policy.json"))
    monkeypatch.setenv("HUNTER_API_KEY", "hunter_key")
    monkeypatch.setenv("SAVE_RESULTS", "false")
    monkeypatch.setenv("DEBUG_MODE", "true")


@pytest.fixture
def sample_company() -> Dict[str, Any]:
    return {
        "domain": "acme.io",
        "name": "Acme",
        "industry": "Media & Entertainment",
        "size": "51-200",
        "description": "Streaming tools for studios",
        "tech_stack": ["AWS", "Kubernetes", "React", "Python"],
        "funding": {"total_raised": "$25.0M", "stage": "Series B"},
        "employee_count": 120,
        "linkedin_url": "https://linkedin.com/company/acme",
    }


@pytest.fixture
def sample_contacts() -> List[Dict[str, Any]]:
    return [
        {
            "full_name": "Dana Reyes",
            "email": "dana@acme.io",
            "title": "Chief Technology Officer",
            "seniority": "C-Level",
            "department": "Engineering",
            "decision_maker": True,
            "email_confidence": 95,
            "company_domain": "acme.io",
        },
        {
            "full_name": "Sam Ortiz",
            "email": "sam@acme.io",
            "title": "Engineering Manager",
            "seniority": "Manager",
            "department": "Engineering",
            "decision_maker": False,
            "email_confidence": 70,
            "company_domain": "acme.io",
        },
    ]
