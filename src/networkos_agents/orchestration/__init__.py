#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Orchestration Package

The control loop that drives a reasoning engine through a run, together with
its bookkeeping: capability registry, budget tracker, step ledger and run state.
"""

from .budget import BudgetTracker
from .errors import (
    OrchestrationError,
    CapabilityError,
    ReasoningUnavailableError,
    LedgerError,
    BudgetError,
)
from .ledger import Step, StepLedger, StepStatus
from .registry import CapabilityRegistry, CapabilityContext, CapabilityResult, CapabilityOutcome
from .state import (
    OrchestrationRequest,
    OrchestrationInput,
    OrchestrationOptions,
    RunResult,
    RunState,
    TerminationReason,
    WorkflowType,
)
from .orchestrator import (
    AgentOrchestrator,
    ReasoningEngine,
    ReasoningTurn,
    ToolInvocation,
    TokenUsage,
    load_policy_set,
)

__all__ = [
    "BudgetTracker",
    "OrchestrationError",
    "CapabilityError",
    "ReasoningUnavailableError",
    "LedgerError",
    "BudgetError",
    "Step",
    "StepLedger",
    "StepStatus",
    "CapabilityRegistry",
    "CapabilityContext",
    "CapabilityResult",
    "CapabilityOutcome",
    "OrchestrationRequest",
    "OrchestrationInput",
    "OrchestrationOptions",
    "RunResult",
    "RunState",
    "TerminationReason",
    "WorkflowType",
    "AgentOrchestrator",
    "ReasoningEngine",
    "ReasoningTurn",
    "ToolInvocation",
    "TokenUsage",
    "load_policy_set",
]
