"""Exceptions raised by the orchestration core."""

from typing import Any, Dict, Optional


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""
    pass


class CapabilityError(OrchestrationError):
    """
    A capability could not produce a result.

    Raised by handlers; the loop records it as a failed step and reports
    ``code`` and ``message`` back to the reasoning engine.
    """

    def __init__(self, message: str, code: str = "capability_error",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ReasoningUnavailableError(OrchestrationError):
    """
    The reasoning engine could not be reached.

    When raised out of ``AgentOrchestrator.run`` it carries the partial run
    result, so callers still get the step ledger.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class LedgerError(OrchestrationError):
    """Invalid step ledger operation."""
    pass


class BudgetError(OrchestrationError, ValueError):
    """Invalid budget tracker input."""
    pass
