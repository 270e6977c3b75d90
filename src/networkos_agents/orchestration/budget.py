#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Budget Tracker

Converts token usage and flat provider costs into one running total for a run
and answers a single question: is the run over budget?
"""

import math
import threading
from typing import Dict, Any, Optional

from .errors import BudgetError


class BudgetTracker:
    """
    Running cost and token totals for one run.

    The tracker only ever adds, so cost is non-decreasing and ``remaining()``
    is non-increasing for the lifetime of a run.
    """

    def __init__(self, ceiling: float):
        """
        Initialize the tracker.

        Args:
            ceiling: Budget ceiling in currency units
        """
        if not math.isfinite(ceiling) or ceiling < 0:
            raise BudgetError(f"Budget ceiling must be a finite, non-negative amount, got {ceiling}")
        self.ceiling = float(ceiling)
        self._total_cost = 0.0
        self._tokens_in = 0
        self._tokens_out = 0
        self._tokens_reported = 0
        self._lock = threading.Lock()

    @property
    def total_cost(self) -> float:
        return self._total_cost

    @property
    def total_tokens(self) -> int:
        return self._tokens_in + self._tokens_out + self._tokens_reported

    def add(self, tokens_in: int, tokens_out: int,
            rate_in_per_1k: float, rate_out_per_1k: float) -> float:
        """
        Add model usage.

        Args:
            tokens_in: Input (prompt) tokens
            tokens_out: Output (completion) tokens
            rate_in_per_1k: Price per 1000 input tokens
            rate_out_per_1k: Price per 1000 output tokens

        Returns:
            float: Cost of this usage
        """
        values = (tokens_in, tokens_out, rate_in_per_1k, rate_out_per_1k)
        if not all(math.isfinite(v) for v in values) or min(values) < 0:
            raise BudgetError("Token counts and rates must be finite and non-negative")

        cost = (tokens_in / 1000) * rate_in_per_1k + (tokens_out / 1000) * rate_out_per_1k
        with self._lock:
            self._tokens_in += int(tokens_in)
            self._tokens_out += int(tokens_out)
            self._total_cost += cost
        return cost

    def add_flat(self, cost: float) -> None:
        """Add a flat per-request cost (e.g. an enrichment API call)."""
        if not math.isfinite(cost) or cost < 0:
            raise BudgetError(f"Flat cost must be finite and non-negative, got {cost}")
        with self._lock:
            self._total_cost += float(cost)

    def add_tokens(self, tokens: int) -> None:
        """Count tokens whose cost was already reported as a flat amount."""
        if tokens < 0:
            raise BudgetError(f"Token count must not be negative, got {tokens}")
        with self._lock:
            self._tokens_reported += int(tokens)

    def remaining(self) -> float:
        """Budget left before the ceiling (negative once overrun)."""
        return self.ceiling - self._total_cost

    def exceeded(self, ceiling: Optional[float] = None) -> bool:
        """True once spending is strictly above the ceiling."""
        limit = self.ceiling if ceiling is None else ceiling
        return self._total_cost > limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ceiling": self.ceiling,
            "total_cost": round(self._total_cost, 6),
            "remaining": round(self.remaining(), 6),
            "tokens_in": self._tokens_in,
            "tokens_out": self._tokens_out,
            "tokens_reported": self._tokens_reported,
        }
