#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Agent Orchestrator

The control loop that drives a reasoning engine through a run. The engine
decides which capabilities to invoke and when to stop; the loop enforces the
iteration cap and budget ceiling, dispatches invocations through the
capability registry, folds returned evidence into the run state and keeps the
step ledger.

Usage:
    orchestrator = AgentOrchestrator(engine, registry=build_default_registry(...))
    result = orchestrator.run(OrchestrationRequest(type="quick_assessment",
                                                   input={"domain": "acme.io"}))
"""

import logging
import threading
import concurrent.futures
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Any, Callable, Mapping, Optional, Sequence, Tuple, Union

from ..config import AppConfig
from ..fusion.fusion import EvidenceFusionEngine
from ..fusion.scoring_policy import PolicySet, PolicyConfigError
from ..utils.logger import get_logger, log_agent_event
from ..utils.timeout import call_with_timeout, OperationTimeoutError
from .budget import BudgetTracker
from .errors import BudgetError, CapabilityError, ReasoningUnavailableError
from .ledger import Step, StepStatus
from .prompts import ORCHESTRATOR_SYSTEM_PROMPT, CONTINUE_PROMPT, build_instruction
from .registry import CapabilityRegistry, CapabilityContext, CapabilityOutcome, MALFORMED_OUTPUT
from .state import OrchestrationRequest, RunResult, RunState, TerminationReason

logger = get_logger(__name__)

AGENT_NAME = "orchestrator"

ProgressCallback = Callable[[Step], None]


def load_policy_set(config: AppConfig) -> PolicySet:
    """Build scoring policies from the configured policy file, falling back to the defaults."""
    definition = config.load_policy_config()
    if not definition:
        return PolicySet()
    try:
        return PolicySet.from_config(definition)
    except PolicyConfigError as e:
        logger.error(f"Invalid scoring policy at {config.scoring_policy_path}, using defaults: {e}")
        return PolicySet()


@dataclass
class ToolInvocation:
    """One capability call requested by the reasoning engine."""
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": self.input}


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ReasoningTurn:
    """
    One decision from the reasoning engine.

    Attributes:
        invocations: Capability calls requested this turn, in request order
        finished: The engine considers its work done (end of turn, no tools)
        usage: Tokens consumed producing this turn
        text: Any free text the engine produced alongside its decision
    """
    invocations: List[ToolInvocation] = field(default_factory=list)
    finished: bool = False
    usage: TokenUsage = field(default_factory=TokenUsage)
    text: str = ""


class ReasoningEngine(ABC):
    """
    Decision oracle behind the loop.

    ``history`` is a vendor-neutral message list:
        {"role": "user", "content": str}
        {"role": "assistant", "content": str, "invocations": [{"id", "name", "input"}]}
        {"role": "tool", "results": [{"invocation_id", "name", "content", "is_error"}]}
    """

    @abstractmethod
    def converse(self, history: Sequence[Mapping[str, Any]],
                 capabilities: Sequence[Mapping[str, Any]],
                 system: Optional[str] = None) -> ReasoningTurn:
        """
        Return the engine's next turn.

        Raises:
            ReasoningUnavailableError: If the engine cannot be reached
        """
        pass


class AgentOrchestrator:
    """
    Runs one request at a time per call to ``run``; each call builds its own
    run state, so an orchestrator can serve concurrent runs from several threads.
    """

    def __init__(self,
                 engine: ReasoningEngine,
                 registry: CapabilityRegistry,
                 config: Optional[AppConfig] = None,
                 fusion: Optional[EvidenceFusionEngine] = None,
                 system_prompt: str = ORCHESTRATOR_SYSTEM_PROMPT):
        """
        Initialize the orchestrator.

        Args:
            engine: Reasoning engine that decides the next capability calls
            registry: Capabilities the engine may invoke
            config: Application configuration (a fresh AppConfig if None)
            fusion: Fusion engine; built from the configured scoring policy if None
            system_prompt: System prompt passed to the engine on every turn
        """
        self.engine = engine
        self.registry = registry
        self.config = config or AppConfig()
        self.fusion = fusion or EvidenceFusionEngine(load_policy_set(self.config))
        self.system_prompt = system_prompt

        logger.info(f"Agent orchestrator initialized with {len(self.registry)} capabilities")

    def run(self,
            request: Union[OrchestrationRequest, Mapping[str, Any]],
            max_iterations: Optional[int] = None,
            budget_ceiling: Optional[float] = None,
            progress_callback: Optional[ProgressCallback] = None,
            cancel_event: Optional[threading.Event] = None) -> RunResult:
        """
        Execute a request until the engine finishes or a limit is hit.

        Args:
            request: Orchestration request (or its dict form)
            max_iterations: Iteration cap, defaults to the configured value
            budget_ceiling: Budget ceiling, defaults to the request's max_budget
                and then to the configured value
            progress_callback: Called once with each step as it completes
            cancel_event: Set to cancel the run at the next safe point

        Returns:
            RunResult with exactly one termination reason

        Raises:
            ReasoningUnavailableError: If the engine fails on the first
                iteration; the exception's ``result`` holds the partial run
        """
        if not isinstance(request, OrchestrationRequest):
            request = OrchestrationRequest.model_validate(dict(request))

        max_iterations = max_iterations if max_iterations is not None else self.config.max_iterations
        if budget_ceiling is None:
            budget_ceiling = request.options.max_budget
        if budget_ceiling is None:
            budget_ceiling = self.config.budget_ceiling

        state = RunState(
            budget=BudgetTracker(budget_ceiling),
            options={
                "workflow": request.type.value,
                "depth": request.options.depth,
                "save_results": request.options.save_results and self.config.save_results,
                "generate_pitches": request.options.generate_pitches,
                "pitch_types": list(request.options.pitch_types),
                "target_roles": list(request.input.target_roles),
                "focus_products": list(request.input.focus_products),
                "company_name": request.input.company_name,
                "domain": request.company_key,
            },
        )
        seeded = state.seed(request, self.fusion)
        state.history.append({"role": "user", "content": build_instruction(request)})
        tools = self.registry.tool_definitions()

        log_agent_event(
            AGENT_NAME, "start",
            f"Run {state.run_id} started: {request.type.value} for {request.company_key or 'unknown domain'} "
            f"(max_iterations={max_iterations}, budget={budget_ceiling:.2f}, seeded={seeded})",
            run_id=state.run_id,
        )

        while not state.terminated:
            if state.iterations >= max_iterations:
                state.terminate(TerminationReason.ITERATION_LIMIT_REACHED)
                break
            if cancel_event is not None and cancel_event.is_set():
                state.terminate(TerminationReason.CANCELLED)
                break

            state.iterations += 1
            turn = self._converse(state, tools)
            if turn is None:
                break
            if state.budget.exceeded():
                state.terminate(TerminationReason.BUDGET_EXCEEDED)
                break

            if not turn.invocations:
                if turn.finished:
                    if state.summary is None and turn.text:
                        state.summary = turn.text
                    state.terminate(TerminationReason.COMPLETED)
                    break
                state.history.append({"role": "assistant", "content": turn.text, "invocations": []})
                state.history.append({"role": "user", "content": CONTINUE_PROMPT})
                continue

            state.history.append({
                "role": "assistant",
                "content": turn.text,
                "invocations": [inv.to_dict() for inv in turn.invocations],
            })
            completed = self._dispatch(state, turn.invocations, progress_callback, cancel_event)
            if not state.terminated and completed:
                state.terminate(TerminationReason.COMPLETED)

        if state.termination_reason == TerminationReason.ITERATION_LIMIT_REACHED:
            self._fill_fallback(state)

        result = state.to_result()
        log_agent_event(
            AGENT_NAME, "complete",
            f"Run {state.run_id} finished: {result.termination_reason.value} after "
            f"{result.iterations} iterations, {len(result.steps)} steps, cost {result.total_cost:.4f}",
            run_id=state.run_id,
        )
        return result

    def _converse(self, state: RunState, tools: List[Dict[str, Any]]) -> Optional[ReasoningTurn]:
        """
        Ask the engine for its next turn and charge its model usage.

        Any engine failure (transport error, timeout, unparseable response)
        ends the run as reasoning-unavailable. Returns None in that case,
        except on the first iteration, where it raises.
        """
        try:
            turn = call_with_timeout(
                self.engine.converse,
                self.config.reasoning_timeout_secs,
                list(state.history),
                tools,
                system=self.system_prompt,
                operation="reasoning",
            )
            if not isinstance(turn, ReasoningTurn):
                raise TypeError(f"Engine returned {type(turn).__name__} instead of ReasoningTurn")
            state.budget.add(
                turn.usage.input_tokens, turn.usage.output_tokens,
                self.config.reasoning_rate_in, self.config.reasoning_rate_out,
            )
            return turn
        except (ReasoningUnavailableError, OperationTimeoutError) as e:
            error: Exception = e
            message = str(e)
        except Exception as e:
            error = e
            message = f"{type(e).__name__}: {e}"

        state.terminate(TerminationReason.REASONING_UNAVAILABLE)
        log_agent_event(
            AGENT_NAME, "error",
            f"Reasoning engine unavailable on iteration {state.iterations}: {message}",
            level=logging.ERROR, run_id=state.run_id,
        )
        if state.iterations == 1:
            raise ReasoningUnavailableError(message, result=state.to_result()) from error
        return None

    def _dispatch(self, state: RunState, invocations: List[ToolInvocation],
                  progress_callback: Optional[ProgressCallback],
                  cancel_event: Optional[threading.Event]) -> bool:
        """
        Run one turn's invocations in windows and fold their results.

        Returns:
            bool: Whether the terminate capability succeeded this turn
        """
        window = max(1, self.config.max_parallel_invocations)
        tool_results: List[Dict[str, Any]] = []
        completed = False

        for start in range(0, len(invocations), window):
            if start > 0 and cancel_event is not None and cancel_event.is_set():
                state.terminate(TerminationReason.CANCELLED)
                break

            batch = invocations[start:start + window]
            context = state.snapshot()
            steps = [
                state.ledger.begin(
                    inv.name,
                    inv.input if isinstance(inv.input, Mapping) else {"_raw": inv.input},
                    invocation_id=inv.id,
                    iteration=state.iterations,
                )
                for inv in batch
            ]

            if len(batch) == 1:
                outcomes = [self._invoke(batch[0], context)]
            else:
                with concurrent.futures.ThreadPoolExecutor(max_workers=len(batch)) as executor:
                    futures = [executor.submit(self._invoke, inv, context) for inv in batch]
                    outcomes = [f.result() for f in futures]

            over_budget = False
            for inv, step, outcome in zip(batch, steps, outcomes):
                outcome, terminated = self._record(state, step, outcome, progress_callback)
                completed = terminated or completed
                tool_results.append({
                    "invocation_id": inv.id,
                    "name": inv.name,
                    "content": outcome.tool_content(),
                    "is_error": not outcome.ok,
                })
                if state.budget.exceeded():
                    over_budget = True

            if over_budget:
                state.terminate(TerminationReason.BUDGET_EXCEEDED)
                break

        state.history.append({"role": "tool", "results": tool_results})
        return completed

    def _invoke(self, invocation: ToolInvocation, context: CapabilityContext) -> CapabilityOutcome:
        return self.registry.invoke(
            invocation.name,
            invocation.input,
            context,
            timeout_sec=self.config.capability_timeout_secs,
        )

    def _apply(self, state: RunState, outcome: CapabilityOutcome) -> CapabilityOutcome:
        """
        Charge a successful outcome's cost and fold its evidence and artifacts.

        Evidence that cannot be folded turns the outcome into a
        ``malformed_output`` failure; the run state is left without it.
        """
        result = outcome.result
        try:
            state.budget.add_flat(result.cost)
            state.budget.add_tokens(result.tokens)
        except BudgetError as e:
            return outcome.failed(CapabilityError(str(e), code=MALFORMED_OUTPUT))
        try:
            state.fold_all(result.evidence, self.fusion)
            state.add_artifacts(result.artifacts)
        except Exception as e:
            logger.error(f"Could not fold {outcome.name} result: {type(e).__name__}: {e}")
            return outcome.failed(
                CapabilityError(f"Could not fold result: {type(e).__name__}: {e}", code=MALFORMED_OUTPUT),
                cost=result.cost, tokens=result.tokens,
            )
        return outcome

    def _record(self, state: RunState, step: Step, outcome: CapabilityOutcome,
                progress_callback: Optional[ProgressCallback]) -> Tuple[CapabilityOutcome, bool]:
        """
        Fold one outcome into the run and complete its step.

        Returns:
            The outcome as recorded, and whether it was a successful terminate
        """
        terminated = False
        if outcome.ok:
            outcome = self._apply(state, outcome)

        if outcome.ok:
            result = outcome.result
            finished = state.ledger.complete(
                step, StepStatus.SUCCEEDED,
                output_summary=result.summary,
                cost=result.cost,
                tokens=result.tokens,
            )
            if result.terminate or self.registry.is_terminal(outcome.name):
                payload = result.payload
                state.summary = payload.get("summary") or result.summary
                state.recommendations = list(payload.get("recommendations") or [])
                state.next_steps = list(payload.get("next_steps") or [])
                terminated = True
            log_agent_event(
                outcome.name, "complete",
                f"Step {finished.order} succeeded: {result.summary}",
                run_id=state.run_id, step=finished.order,
            )
        else:
            finished = state.ledger.complete(
                step, StepStatus.FAILED, error=outcome.summary,
                cost=outcome.cost, tokens=outcome.tokens,
            )
            log_agent_event(
                outcome.name, "error",
                f"Step {finished.order} failed: {outcome.summary}",
                level=logging.WARNING, run_id=state.run_id, step=finished.order,
            )

        if progress_callback is not None:
            try:
                progress_callback(finished)
            except Exception as e:
                logger.warning(f"Progress callback failed for step {finished.order}: {e}")

        return outcome, terminated

    @staticmethod
    def _fill_fallback(state: RunState) -> None:
        if state.summary is None:
            state.summary = f"Orchestration stopped after {state.iterations} iterations with {len(state.ledger)} steps."
        if not state.recommendations:
            state.recommendations = ["Complete the workflow manually"]
        if not state.next_steps:
            state.next_steps = ["Review gathered data"]
