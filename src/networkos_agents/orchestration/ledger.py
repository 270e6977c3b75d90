#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Step Ledger

Append-only audit trail of every capability invocation in a run. Each
invocation occupies exactly one entry: it is appended as ``pending`` when
dispatched and completed once, in place, to ``succeeded`` or ``failed``.
Terminal entries never change.
"""

import copy
import threading
from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Any, Mapping, Optional, Tuple

from .errors import LedgerError


class StepStatus(str, Enum):
    """Lifecycle of a step."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    """One logged attempt to invoke a capability."""
    order: int
    capability: str
    input: Mapping[str, Any] = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    output_summary: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    cost: float = 0.0
    tokens: int = 0
    invocation_id: Optional[str] = None
    iteration: int = 0

    def __post_init__(self):
        if not isinstance(self.input, MappingProxyType):
            object.__setattr__(self, "input", MappingProxyType(copy.deepcopy(dict(self.input))))
        object.__setattr__(self, "status", StepStatus(self.status))

    @property
    def is_terminal(self) -> bool:
        return self.status != StepStatus.PENDING

    @property
    def duration_ms(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "iteration": self.iteration,
            "capability": self.capability,
            "invocation_id": self.invocation_id,
            "input": copy.deepcopy(dict(self.input)),
            "status": self.status.value,
            "output_summary": self.output_summary,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "cost": self.cost,
            "tokens": self.tokens,
        }


class StepLedger:
    """Ordered, append-only record of steps."""

    def __init__(self):
        self._steps: List[Step] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._steps)

    def append(self, step: Step) -> Step:
        """
        Append a step.

        Raises:
            LedgerError: If the step's order is not the next position
        """
        with self._lock:
            expected = len(self._steps) + 1
            if step.order != expected:
                raise LedgerError(f"Step order {step.order} does not follow ledger length {expected - 1}")
            self._steps.append(step)
        return step

    def begin(self, capability: str, input: Mapping[str, Any],
              invocation_id: Optional[str] = None, iteration: int = 0) -> Step:
        """Append a pending step for an invocation that is about to run."""
        with self._lock:
            step = Step(
                order=len(self._steps) + 1,
                capability=capability,
                input=input,
                invocation_id=invocation_id,
                iteration=iteration,
            )
            self._steps.append(step)
        return step

    def complete(self, step: Step, status: StepStatus,
                 output_summary: Optional[str] = None,
                 error: Optional[str] = None,
                 cost: float = 0.0,
                 tokens: int = 0) -> Step:
        """
        Move a pending step to its terminal status.

        Raises:
            LedgerError: If the step is unknown, already terminal, or the status is pending
        """
        status = StepStatus(status)
        if status == StepStatus.PENDING:
            raise LedgerError("A step can only be completed to succeeded or failed")

        with self._lock:
            index = step.order - 1
            if index < 0 or index >= len(self._steps) or self._steps[index] is not step:
                raise LedgerError(f"Step {step.order} ({step.capability}) is not the ledger's current entry")
            if step.is_terminal:
                raise LedgerError(f"Step {step.order} ({step.capability}) is already {step.status.value}")

            finished = replace(
                step,
                status=status,
                output_summary=output_summary,
                error=error,
                ended_at=datetime.now(),
                cost=cost,
                tokens=tokens,
            )
            self._steps[index] = finished
        return finished

    def all(self) -> Tuple[Step, ...]:
        """Snapshot of every step, in issue order."""
        with self._lock:
            return tuple(self._steps)

    def failed(self) -> List[Step]:
        return [s for s in self.all() if s.status == StepStatus.FAILED]

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.all()]
