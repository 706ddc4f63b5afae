"""
Overflow-safe admission checks for bounded resources.

An admission check rejects a resource-growth request *before* it is
applied: given a running total ``current``, a ceiling ``maximum`` and a
proposed increment ``extra``, the request is admitted only when
``current + extra`` stays within ``maximum``.

The check is written as ``current > maximum - extra`` rather than
``current + extra > maximum``.  With ``0 <= current <= maximum`` and
``extra >= 0`` the subtraction form never leaves the representable range,
whereas the addition form wraps around in fixed-width arithmetic when
``extra`` is close to the type's maximum and then *admits* a huge request.
Python integers do not wrap, but the values checked here usually end up
in fixed-width places (file headers, length prefixes, buffers handed to
C code), so the module keeps both the safe formulation and explicit
fixed-width helpers (``IntWidth``, ``checked_add``, ``checked_mul``).

Manifesto:
    - **Reject before apply:** totals never move on a rejected request
    - **No wraparound:** the comparison is safe at every boundary
    - **Negative increments are invalid:** they would let a caller
      "refund" capacity it never consumed
    - **Reference implementation:** ``exceeds_exact`` is the slow,
      arbitrary-precision oracle the fast check must agree with

Architecture:
    ::

        check_admission(current, maximum, extra) ─┬─ extra < 0          → InvalidArgumentError
                                                  ├─ current > max-extra → LimitExceededError
                                                  └─ ok                  → current + extra

        IntWidth(bits, signed)      INT32 / INT64 / UINT32 / UINT64 / SIZE_T
          ├── checked_add(a, b, w)  → OverflowLimitError instead of wrapping
          ├── checked_mul(a, b, w)  → OverflowLimitError instead of wrapping
          └── wrapping_add(a, b, w) → what a C-style sum would produce

        BoundedCounter(maximum)     thread-safe running total
          ├── admit(extra) / release(amount)
          └── reserve(extra)        context manager, releases on every exit

Examples:
    >>> check_admission(10, 100, 5)
    15
    >>> would_exceed(90, 100, 20)
    True
    >>> checked_add(INT64.max_value, 1, INT64)
    Traceback (most recent call last):
    ...
    resguard.core.errors.OverflowLimitError: ...

Tags:
    admission-check, integer-overflow, limits, quota, resguard

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from resguard.core.errors import InvalidArgumentError, LimitExceededError, OverflowLimitError
from resguard.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IntWidth:
    """A fixed-width integer representation (e.g. int64, uint32)."""

    bits: int
    signed: bool = True

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    @property
    def name(self) -> str:
        return f"{'int' if self.signed else 'uint'}{self.bits}"

    def contains(self, value: int) -> bool:
        return self.min_value <= value <= self.max_value

    def wrap(self, value: int) -> int:
        """Reduce ``value`` the way two's-complement hardware would."""
        modulus = 1 << self.bits
        value %= modulus
        if self.signed and value > self.max_value:
            value -= modulus
        return value


INT32 = IntWidth(32)
INT64 = IntWidth(64)
UINT32 = IntWidth(32, signed=False)
UINT64 = IntWidth(64, signed=False)
SIZE_T = UINT64


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def _require_width(name: str, value: int, width: IntWidth) -> None:
    if not width.contains(value):
        raise OverflowLimitError(
            f"{name}={value} is not representable as {width.name}",
            limit=width.max_value,
            observed=value,
        )


def check_admission(
    current: int,
    maximum: int,
    extra: int,
    *,
    width: IntWidth | None = None,
    operation: str = "admission",
) -> int:
    """Admit ``extra`` on top of ``current`` or raise.

    Args:
        current: Running total, ``0 <= current <= maximum``
        maximum: Ceiling for the total
        extra: Proposed increment
        width: When given, all three values must be representable in it
        operation: Name used in errors and logs

    Returns:
        The new total ``current + extra``.

    Raises:
        InvalidArgumentError: ``extra`` is negative, or ``current``/``maximum``
            are inconsistent
        LimitExceededError: the increment would take the total past ``maximum``
        OverflowLimitError: a value does not fit ``width``
    """
    current = _require_int("current", current)
    maximum = _require_int("maximum", maximum)
    extra = _require_int("extra", extra)

    if width is not None:
        for name, value in (("current", current), ("maximum", maximum), ("extra", extra)):
            _require_width(name, value, width)

    if maximum < 0 or current < 0 or current > maximum:
        raise InvalidArgumentError(
            f"Invalid running total: current={current}, maximum={maximum}",
            operation=operation,
        )

    if extra < 0:
        logger.warning("admission_rejected", operation=operation, reason="negative", extra=extra)
        raise InvalidArgumentError(
            f"Increment must be non-negative, got {extra}",
            operation=operation,
            observed=extra,
        )

    # maximum - extra cannot leave the range: 0 <= maximum and 0 <= extra
    if current > maximum - extra:
        logger.warning(
            "admission_rejected",
            operation=operation,
            reason="limit",
            current=current,
            limit=maximum,
            extra=extra,
        )
        raise LimitExceededError(
            f"{operation}: adding {extra} to {current} exceeds limit {maximum}",
            operation=operation,
            limit=maximum,
            observed=extra,
        )

    return current + extra


def would_exceed(current: int, maximum: int, extra: int) -> bool:
    """Predicate form of :func:`check_admission` (negative ``extra`` counts as exceeding)."""
    return extra < 0 or current > maximum - extra


def exceeds_exact(current: int, maximum: int, extra: int) -> bool:
    """Arbitrary-precision reference: does the true sum exceed ``maximum``?"""
    return current + extra > maximum


def naive_exceeds(current: int, maximum: int, extra: int, width: IntWidth = INT64) -> bool:
    """What ``current + extra > maximum`` evaluates to in ``width`` arithmetic.

    Kept to demonstrate the wraparound the subtraction form avoids.
    """
    return width.wrap(current + extra) > maximum


def checked_add(a: int, b: int, width: IntWidth = INT64) -> int:
    """Add two ``width`` integers, raising instead of wrapping."""
    _require_width("a", a, width)
    _require_width("b", b, width)
    if b > 0 and a > width.max_value - b:
        raise OverflowLimitError(
            f"{a} + {b} overflows {width.name}", limit=width.max_value, observed=(a, b)
        )
    if b < 0 and a < width.min_value - b:
        raise OverflowLimitError(
            f"{a} + {b} underflows {width.name}", limit=width.min_value, observed=(a, b)
        )
    return a + b


def checked_mul(a: int, b: int, width: IntWidth = INT64) -> int:
    """Multiply two ``width`` integers, raising instead of wrapping.

    Used for size products such as ``width * height * channels``.
    """
    _require_width("a", a, width)
    _require_width("b", b, width)
    if a == 0 or b == 0:
        return 0
    negative = (a < 0) != (b < 0)
    bound = -width.min_value if negative else width.max_value
    if abs(a) > bound // abs(b):
        raise OverflowLimitError(
            f"{a} * {b} overflows {width.name}", limit=width.max_value, observed=(a, b)
        )
    return a * b


def wrapping_add(a: int, b: int, width: IntWidth = INT64) -> int:
    """Two's-complement sum, for comparison with :func:`checked_add`."""
    return width.wrap(a + b)


class BoundedCounter:
    """Thread-safe running total with a ceiling.

    Example:
        >>> quota = BoundedCounter(1024, name="upload_bytes")
        >>> quota.admit(512)
        512
        >>> with quota.reserve(256):
        ...     quota.current
        768
        >>> quota.current
        512
    """

    def __init__(self, maximum: int, *, name: str = "counter", initial: int = 0):
        maximum = _require_int("maximum", maximum)
        initial = _require_int("initial", initial)
        if maximum < 0 or initial < 0 or initial > maximum:
            raise InvalidArgumentError(f"Invalid counter bounds: initial={initial}, maximum={maximum}")
        self.maximum = maximum
        self.name = name
        self._current = initial
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        with self._lock:
            return self._current

    @property
    def remaining(self) -> int:
        with self._lock:
            return self.maximum - self._current

    def admit(self, extra: int) -> int:
        """Add ``extra`` or raise; the total is unchanged on rejection."""
        with self._lock:
            self._current = check_admission(self._current, self.maximum, extra, operation=self.name)
            return self._current

    def try_admit(self, extra: int) -> bool:
        with self._lock:
            if would_exceed(self._current, self.maximum, extra):
                return False
            self._current += extra
            return True

    def release(self, amount: int) -> int:
        """Give back ``amount`` previously admitted."""
        amount = _require_int("amount", amount)
        with self._lock:
            if amount < 0 or amount > self._current:
                raise InvalidArgumentError(
                    f"{self.name}: cannot release {amount} of {self._current}",
                    operation=self.name,
                    observed=amount,
                )
            self._current -= amount
            return self._current

    @contextmanager
    def reserve(self, extra: int) -> Iterator[BoundedCounter]:
        """Admit ``extra`` for the duration of the block."""
        self.admit(extra)
        try:
            yield self
        finally:
            self.release(extra)

    def __repr__(self) -> str:
        return f"BoundedCounter(name={self.name!r}, current={self.current}, maximum={self.maximum})"


__all__ = [
    "IntWidth",
    "INT32",
    "INT64",
    "UINT32",
    "UINT64",
    "SIZE_T",
    "check_admission",
    "would_exceed",
    "exceeds_exact",
    "naive_exceeds",
    "checked_add",
    "checked_mul",
    "wrapping_add",
    "BoundedCounter",
]
