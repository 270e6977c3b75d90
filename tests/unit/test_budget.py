#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Unit tests for the budget tracker.
"""

import threading

import pytest

from networkos_agents.orchestration.budget import BudgetTracker
from networkos_agents.orchestration.errors import BudgetError


class TestBudgetTracker:
    """Tests for BudgetTracker."""

    def test_add_prices_tokens_per_thousand(self):
        tracker = BudgetTracker(1.0)

        cost = tracker.add(2000, 1000, rate_in_per_1k=0.015, rate_out_per_1k=0.075)

        assert cost == pytest.approx(0.105)
        assert tracker.total_cost == pytest.approx(0.105)
        assert tracker.total_tokens == 3000

    def test_add_flat_and_reported_tokens(self):
        tracker = BudgetTracker(1.0)

        tracker.add_flat(0.10)
        tracker.add_flat(0.05)
        tracker.add_tokens(500)

        assert tracker.total_cost == pytest.approx(0.15)
        assert tracker.total_tokens == 500

    def test_remaining_decreases(self):
        tracker = BudgetTracker(1.0)
        tracker.add_flat(0.4)
        assert tracker.remaining() == pytest.approx(0.6)
        tracker.add_flat(0.8)
        assert tracker.remaining() == pytest.approx(-0.2)

    def test_exceeded_is_strict(self):
        tracker = BudgetTracker(1.0)
        tracker.add_flat(1.0)
        assert not tracker.exceeded()

        tracker.add_flat(0.01)
        assert tracker.exceeded()

    def test_exceeded_with_explicit_ceiling(self):
        tracker = BudgetTracker(1.0)
        tracker.add_flat(0.5)
        assert tracker.exceeded(0.25)
        assert not tracker.exceeded(0.75)

    def test_two_invocations_over_ceiling(self):
        """Two 0.60 charges against a 1.00 ceiling overrun only after the second."""
        tracker = BudgetTracker(1.00)

        tracker.add_flat(0.60)
        assert not tracker.exceeded()
        tracker.add_flat(0.60)
        assert tracker.exceeded()

    @pytest.mark.parametrize("call", [
        lambda t: t.add(-1, 0, 0.01, 0.01),
        lambda t: t.add(1, 1, -0.01, 0.01),
        lambda t: t.add_flat(-0.1),
        lambda t: t.add_tokens(-5),
    ])
    def test_negative_values_rejected(self, call):
        tracker = BudgetTracker(1.0)
        with pytest.raises(BudgetError):
            call(tracker)
        assert tracker.total_cost == 0

    @pytest.mark.parametrize("call", [
        lambda t: t.add_flat(float("nan")),
        lambda t: t.add_flat(float("inf")),
        lambda t: t.add(float("nan"), 0, 0.01, 0.01),
        lambda t: t.add(10, 10, 0.01, float("inf")),
    ])
    def test_non_finite_values_rejected(self, call):
        tracker = BudgetTracker(1.0)
        with pytest.raises(BudgetError):
            call(tracker)

        tracker.add_flat(1.5)
        assert tracker.total_cost == 1.5
        assert tracker.exceeded()

    @pytest.mark.parametrize("ceiling", [float("nan"), float("inf")])
    def test_non_finite_ceiling_rejected(self, ceiling):
        with pytest.raises(BudgetError):
            BudgetTracker(ceiling)

    def test_negative_ceiling_rejected(self):
        with pytest.raises(BudgetError):
            BudgetTracker(-1)

    def test_concurrent_adds(self):
        tracker = BudgetTracker(100.0)

        def spend():
            for _ in range(100):
                tracker.add_flat(0.01)

        threads = [threading.Thread(target=spend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.total_cost == pytest.approx(8.0)

    def test_to_dict(self):
        tracker = BudgetTracker(0.5)
        tracker.add(1000, 0, 0.1, 0.0)

        data = tracker.to_dict()

        assert data["ceiling"] == 0.5
        assert data["total_cost"] == pytest.approx(0.1)
        assert data["remaining"] == pytest.approx(0.4)
        assert data["tokens_in"] == 1000
