#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Capability Registry

Maps capability names to schema-validated handlers and normalizes every
outcome (success, validation failure, handler exception, timeout, malformed
output) into one CapabilityOutcome the orchestration loop can record.

A registry is built per orchestrator; there is no module-level registry.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Dict, List, Any, Callable, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError

from ..models.evidence import Evidence
from ..utils.logger import get_logger
from ..utils.timeout import call_with_timeout, OperationTimeoutError
from .errors import CapabilityError

logger = get_logger(__name__)

UNKNOWN_CAPABILITY = "unknown_capability"
INVALID_INPUT = "invalid_input"
HANDLER_FAILED = "handler_failed"
HANDLER_TIMEOUT = "timeout"
MALFORMED_OUTPUT = "malformed_output"


@dataclass
class CapabilityContext:
    """
    Read-only view of the run a handler executes in.

    Snapshots are plain copies taken before dispatch, so handlers running in
    parallel within one turn never observe each other's results.
    """
    run_id: str
    companies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    contacts: List[Dict[str, Any]] = field(default_factory=list)
    artifacts: Dict[str, List[Any]] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)

    def company(self, domain: str) -> Optional[Dict[str, Any]]:
        return self.companies.get(domain)

    def contacts_for(self, domain: str) -> List[Dict[str, Any]]:
        return [c for c in self.contacts if c.get("company_domain") in (None, domain)]


@dataclass
class CapabilityResult:
    """
    What a handler hands back to the loop.

    Attributes:
        evidence: Evidence records to fold into the run state
        summary: Short human-readable summary for the reasoning engine
        cost: Flat cost of the invocation (provider fees, sub-agent model usage)
        tokens: Sub-agent tokens already priced into ``cost``
        payload: Structured data returned to the reasoning engine
        artifacts: Non-entity outputs (scores, pitches, opportunities) keyed by kind
        terminate: Set by the terminate capability
    """
    evidence: List[Evidence] = field(default_factory=list)
    summary: str = ""
    cost: float = 0.0
    tokens: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, List[Any]] = field(default_factory=dict)
    terminate: bool = False


@dataclass
class CapabilityOutcome:
    """
    Uniform result of ``CapabilityRegistry.invoke``.

    ``cost`` and ``tokens`` are only set on a failure whose spending was
    already charged to the run.
    """
    name: str
    input: Dict[str, Any]
    result: Optional[CapabilityResult] = None
    error: Optional[CapabilityError] = None
    cost: float = 0.0
    tokens: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def failed(self, error: CapabilityError, cost: float = 0.0, tokens: int = 0) -> "CapabilityOutcome":
        """Same invocation, recorded as a failure instead."""
        return CapabilityOutcome(name=self.name, input=self.input, error=error, cost=cost, tokens=tokens)

    @property
    def summary(self) -> str:
        if self.ok:
            return self.result.summary
        return f"{self.error.code}: {self.error.message}"

    def tool_content(self) -> str:
        """JSON text handed back to the reasoning engine as the tool result."""
        if self.ok:
            body = {"status": "completed", "summary": self.result.summary}
            body.update(self.result.payload)
        else:
            body = {"status": "failed", **self.error.to_dict()}
        return json.dumps(body, default=str)


def _is_amount(value: Any) -> bool:
    """True for a finite, non-negative number."""
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value) and value >= 0)


Handler = Callable[[BaseModel, CapabilityContext], CapabilityResult]


@dataclass
class Capability:
    name: str
    input_model: Type[BaseModel]
    handler: Handler
    description: str = ""
    terminal: bool = False


class CapabilityRegistry:
    """Named, schema-validated operations the orchestration loop may invoke."""

    def __init__(self):
        self._capabilities: Dict[str, Capability] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def names(self) -> List[str]:
        return list(self._capabilities)

    def get(self, name: str) -> Optional[Capability]:
        return self._capabilities.get(name)

    def is_terminal(self, name: str) -> bool:
        capability = self._capabilities.get(name)
        return bool(capability and capability.terminal)

    def register(self, name: str, input_model: Type[BaseModel], handler: Handler,
                 description: Optional[str] = None, terminal: bool = False) -> Capability:
        """
        Register a capability.

        Args:
            name: Capability name as the reasoning engine will request it
            input_model: Pydantic model the input must satisfy
            handler: Callable(validated_input, context) -> CapabilityResult
            description: Description shown to the reasoning engine (defaults to the model docstring)
            terminal: Whether a successful invocation ends the run

        Raises:
            ValueError: If the name is already registered
        """
        if name in self._capabilities:
            raise ValueError(f"Capability '{name}' is already registered")
        capability = Capability(
            name=name,
            input_model=input_model,
            handler=handler,
            description=description or (input_model.__doc__ or "").strip(),
            terminal=terminal,
        )
        self._capabilities[name] = capability
        logger.debug(f"Registered capability {name}")
        return capability

    def validate(self, name: str, payload: Mapping[str, Any]) -> BaseModel:
        """
        Validate an input payload without invoking anything.

        Raises:
            CapabilityError: ``unknown_capability`` or ``invalid_input``
        """
        capability = self._capabilities.get(name)
        if capability is None:
            raise CapabilityError(
                f"Unknown capability '{name}'",
                code=UNKNOWN_CAPABILITY,
                details={"available": self.names()},
            )
        if not isinstance(payload, Mapping):
            raise CapabilityError(
                f"Input for '{name}' must be an object",
                code=INVALID_INPUT,
            )
        try:
            return capability.input_model.model_validate(dict(payload))
        except ValidationError as e:
            raise CapabilityError(
                f"Invalid input for '{name}'",
                code=INVALID_INPUT,
                details={"errors": [
                    {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in e.errors()
                ]},
            ) from e

    def invoke(self, name: str, payload: Mapping[str, Any],
               context: Optional[CapabilityContext] = None,
               timeout_sec: Optional[float] = None) -> CapabilityOutcome:
        """
        Validate and dispatch one invocation.

        Fails closed: an unknown name or invalid input returns an error outcome
        and the handler is never called. Handler exceptions and timeouts are
        caught and returned as error outcomes too; this method does not raise.
        """
        raw_input = dict(payload) if isinstance(payload, Mapping) else {"_raw": payload}

        try:
            validated = self.validate(name, payload)
        except CapabilityError as e:
            logger.warning(f"Rejected invocation of {name}: {e.message}")
            return CapabilityOutcome(name=name, input=raw_input, error=e)

        capability = self._capabilities[name]
        context = context or CapabilityContext(run_id="adhoc")

        try:
            result = call_with_timeout(
                capability.handler, timeout_sec, validated, context, operation=name
            )
        except CapabilityError as e:
            return CapabilityOutcome(name=name, input=raw_input, error=e)
        except OperationTimeoutError as e:
            return CapabilityOutcome(
                name=name, input=raw_input,
                error=CapabilityError(str(e), code=HANDLER_TIMEOUT),
            )
        except Exception as e:
            logger.error(f"Capability {name} raised {type(e).__name__}: {e}")
            return CapabilityOutcome(
                name=name, input=raw_input,
                error=CapabilityError(f"{type(e).__name__}: {e}", code=HANDLER_FAILED),
            )

        if not isinstance(result, CapabilityResult):
            return CapabilityOutcome(
                name=name, input=raw_input,
                error=CapabilityError(
                    f"Handler returned {type(result).__name__} instead of CapabilityResult",
                    code=MALFORMED_OUTPUT,
                ),
            )
        if (not _is_amount(result.cost) or not _is_amount(result.tokens)
                or any(not isinstance(ev, Evidence) for ev in result.evidence)):
            return CapabilityOutcome(
                name=name, input=raw_input,
                error=CapabilityError("Handler returned invalid evidence or usage", code=MALFORMED_OUTPUT),
            )

        return CapabilityOutcome(name=name, input=validated.model_dump(exclude_none=True), result=result)

    def tool_definitions(self) -> List[Dict[str, Any]]:
        """Name, description and JSON schema for every capability, in registration order."""
        definitions = []
        for capability in self._capabilities.values():
            schema = capability.input_model.model_json_schema()
            schema.pop("title", None)
            schema.pop("description", None)
            definitions.append({
                "name": capability.name,
                "description": capability.description,
                "input_schema": schema,
            })
        return definitions
