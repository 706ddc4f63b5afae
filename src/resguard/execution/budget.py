"""Iteration and wall-clock budgets for loops driven by untrusted input.

Manifesto:
    A parser loop that fails to advance on a crafted record, or a query
    whose cost grows with attacker-chosen input, will spin until the
    process is killed.  Budgets turn "never terminates" into a typed
    error after a bounded amount of work.

    - **Count work, not time, first:** ``IterationBudget`` is deterministic
    - **Time as a backstop:** ``Deadline`` uses the monotonic clock
    - **Cooperative:** loops call ``tick()`` / ``check()``; nothing is
      interrupted from another thread

Architecture:
    ::

        IterationBudget(max_iterations)
          ├── .tick(cost=1)       ─ charge work, BudgetExhaustedError when spent
          ├── .bounded(iterable)  ─ wrap an iterator
          └── .remaining / .used

        Deadline(seconds)
          ├── .check()            ─ DeadlineExceededError once expired
          ├── .remaining()
          └── .elapsed

        guarded_loop(iterable, max_iterations=, deadline_seconds=)
          └── yields items, charging both budgets per item

Examples:
    >>> budget = IterationBudget(3)
    >>> list(budget.bounded("ab"))
    ['a', 'b']

    Charging query terms:

    >>> budget = IterationBudget(100, operation="search")
    >>> for term in parsed_query.terms:
    ...     budget.tick(cost=term.estimated_cost)
    ...     evaluate(term)

Guardrails:
    - A budget is single-use; create a new one per request
    - ``guarded_loop`` defaults come from ``GuardSettings``

Tags:
    budget, deadline, loop, termination, resguard

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TypeVar

from resguard.core.errors import (
    BudgetExhaustedError,
    DeadlineExceededError,
    InvalidArgumentError,
    LimitExceededError,
)
from resguard.core.limits import check_admission
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)

T = TypeVar("T")


class IterationBudget:
    """Counts units of work against a fixed ceiling."""

    def __init__(self, max_iterations: int, *, operation: str = "loop"):
        if max_iterations <= 0:
            raise InvalidArgumentError(f"max_iterations must be positive, got {max_iterations}")
        self.max_iterations = max_iterations
        self.operation = operation
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.max_iterations - self.used

    def tick(self, cost: int = 1) -> None:
        """Charge ``cost`` units of work."""
        if cost < 0:
            raise InvalidArgumentError(f"cost must be non-negative, got {cost}", operation=self.operation)
        try:
            self.used = check_admission(self.used, self.max_iterations, cost, operation=self.operation)
        except LimitExceededError as exc:
            raise BudgetExhaustedError(
                f"{self.operation}: iteration budget of {self.max_iterations} exhausted",
                operation=self.operation,
                limit=self.max_iterations,
                observed=self.used + cost,
                cause=exc,
            ) from exc

    def bounded(self, iterable: Iterable[T]) -> Iterator[T]:
        """Yield from ``iterable``, charging one unit per item."""
        for item in iterable:
            self.tick()
            yield item


@dataclass
class Deadline:
    """Wall-clock budget on the monotonic clock.

    Attributes:
        seconds: Budget length
        operation: Name for error messages
        start_time: When the budget started
    """

    seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        if self.seconds <= 0:
            raise InvalidArgumentError(f"Deadline must be positive, got {self.seconds}")

    @property
    def deadline(self) -> float:
        return self.start_time + self.seconds

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def remaining(self) -> float:
        """Positive while time remains, negative once expired."""
        return self.deadline - time.monotonic()

    def is_expired(self) -> bool:
        return time.monotonic() >= self.deadline

    def check(self) -> None:
        if self.is_expired():
            logger.warning("deadline_exceeded", operation=self.operation, timeout=self.seconds)
            raise DeadlineExceededError(
                f"Operation '{self.operation}' timed out after {self.seconds}s (ran for {self.elapsed:.2f}s)",
                operation=self.operation,
                limit=self.seconds,
                observed=round(self.elapsed, 3),
            )


def guarded_loop(
    iterable: Iterable[T],
    *,
    max_iterations: int | None = None,
    deadline_seconds: float | None = None,
    operation: str = "loop",
) -> Iterator[T]:
    """Iterate with both an iteration budget and a deadline.

    Limits default to ``GuardSettings.max_iterations`` and
    ``GuardSettings.loop_deadline_seconds``.
    """
    settings = get_settings()
    if max_iterations is None:
        max_iterations = settings.max_iterations
    if deadline_seconds is None:
        deadline_seconds = settings.loop_deadline_seconds
    budget = IterationBudget(max_iterations, operation=operation)
    deadline = Deadline(deadline_seconds, operation=operation)

    for item in iterable:
        budget.tick()
        deadline.check()
        yield item


__all__ = ["IterationBudget", "Deadline", "guarded_loop"]
