"""Tests for iteration and wall-clock budgets."""

import itertools
import time

import pytest

from resguard.core.errors import BudgetExhaustedError, DeadlineExceededError, InvalidArgumentError
from resguard.execution.budget import Deadline, IterationBudget, guarded_loop


class TestIterationBudget:
    def test_tick_counts(self):
        budget = IterationBudget(10)
        budget.tick()
        budget.tick(cost=4)
        assert budget.used == 5
        assert budget.remaining == 5

    def test_exhausted(self):
        budget = IterationBudget(3, operation="parse")
        budget.tick(3)
        with pytest.raises(BudgetExhaustedError) as exc_info:
            budget.tick()
        assert exc_info.value.context.operation == "parse"
        assert exc_info.value.context.limit == 3
        assert budget.used == 3

    def test_negative_cost(self):
        with pytest.raises(InvalidArgumentError):
            IterationBudget(3).tick(-1)

    @pytest.mark.parametrize("value", [0, -5])
    def test_non_positive_budget(self, value):
        with pytest.raises(InvalidArgumentError):
            IterationBudget(value)

    def test_bounded_stops_infinite_iterator(self):
        """A generator that never ends is cut off after the budget."""
        budget = IterationBudget(100)
        with pytest.raises(BudgetExhaustedError):
            for _ in budget.bounded(itertools.count()):
                pass
        assert budget.used == 100

    def test_bounded_finite(self):
        assert list(IterationBudget(3).bounded("abc")) == ["a", "b", "c"]


class TestDeadline:
    def test_not_expired(self):
        deadline = Deadline(10.0)
        deadline.check()
        assert deadline.remaining() > 9
        assert not deadline.is_expired()

    def test_expired(self):
        deadline = Deadline(0.01, operation="scan")
        time.sleep(0.02)
        assert deadline.is_expired()
        assert deadline.remaining() < 0
        with pytest.raises(DeadlineExceededError) as exc_info:
            deadline.check()
        assert exc_info.value.context.operation == "scan"

    def test_deadline_is_timeout_error(self):
        deadline = Deadline(1.0, start_time=time.monotonic() - 2)
        with pytest.raises(TimeoutError):
            deadline.check()

    def test_invalid(self):
        with pytest.raises(InvalidArgumentError):
            Deadline(0)


class TestGuardedLoop:
    def test_yields_items(self):
        assert list(guarded_loop(range(5), max_iterations=5)) == [0, 1, 2, 3, 4]

    def test_iteration_cap(self):
        with pytest.raises(BudgetExhaustedError):
            list(guarded_loop(itertools.count(), max_iterations=10))

    def test_settings_default(self, monkeypatch):
        monkeypatch.setenv("RESGUARD_MAX_ITERATIONS", "4")
        with pytest.raises(BudgetExhaustedError):
            list(guarded_loop(range(10)))

    def test_explicit_zero_is_rejected_not_defaulted(self, monkeypatch):
        monkeypatch.setenv("RESGUARD_MAX_ITERATIONS", "100")
        with pytest.raises(InvalidArgumentError):
            list(guarded_loop(range(3), max_iterations=0))
        with pytest.raises(InvalidArgumentError):
            list(guarded_loop(range(3), deadline_seconds=0))

    def test_deadline(self):
        def slow():
            while True:
                time.sleep(0.01)
                yield None

        with pytest.raises(DeadlineExceededError):
            for _ in guarded_loop(slow(), max_iterations=10_000, deadline_seconds=0.05):
                pass
