"""Tests for resguard.core.limits.

Covers:
- admission check agrees with the arbitrary-precision reference at boundaries
- negative increments and inconsistent totals are rejected
- fixed-width checked arithmetic raises where two's complement would wrap
- BoundedCounter admit/release/reserve semantics under threads
"""

import itertools
import threading

import pytest

from resguard.core.errors import InvalidArgumentError, LimitExceededError, OverflowLimitError
from resguard.core.limits import (
    INT32,
    INT64,
    UINT32,
    UINT64,
    BoundedCounter,
    IntWidth,
    check_admission,
    checked_add,
    checked_mul,
    exceeds_exact,
    naive_exceeds,
    would_exceed,
    wrapping_add,
)

MAX64 = INT64.max_value

BOUNDARY_TOTALS = [0, 1, 2, 100, MAX64 // 2, MAX64 - 1, MAX64]
BOUNDARY_EXTRAS = [0, 1, 2, 99, 100, 101, MAX64 // 2, MAX64 // 2 + 1, MAX64 - 1, MAX64]


def _boundary_cases():
    for current, maximum in itertools.product(BOUNDARY_TOTALS, BOUNDARY_TOTALS):
        if current <= maximum:
            for extra in BOUNDARY_EXTRAS:
                yield current, maximum, extra


class TestCheckAdmission:
    """Tests for check_admission."""

    def test_admits_within_limit(self):
        assert check_admission(10, 100, 5) == 15

    def test_admits_exactly_to_limit(self):
        assert check_admission(90, 100, 10) == 100

    def test_rejects_one_past_limit(self):
        with pytest.raises(LimitExceededError) as exc_info:
            check_admission(90, 100, 11)
        assert exc_info.value.context.limit == 100
        assert exc_info.value.context.observed == 11

    def test_zero_increment_at_full(self):
        assert check_admission(100, 100, 0) == 100

    def test_negative_increment_rejected(self):
        with pytest.raises(InvalidArgumentError):
            check_admission(10, 100, -1)

    def test_negative_increment_is_not_a_limit_error(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            check_admission(10, 100, -1)
        assert not isinstance(exc_info.value, LimitExceededError)

    def test_rejection_is_a_value_error(self):
        with pytest.raises(ValueError):
            check_admission(0, 1, 2)

    @pytest.mark.parametrize("current,maximum", [(-1, 10), (11, 10), (0, -1)])
    def test_inconsistent_totals_rejected(self, current, maximum):
        with pytest.raises(InvalidArgumentError):
            check_admission(current, maximum, 0)

    @pytest.mark.parametrize("value", [1.5, "3", None, True])
    def test_non_integer_rejected(self, value):
        with pytest.raises(InvalidArgumentError):
            check_admission(0, 10, value)

    def test_extra_near_int64_max_rejected(self):
        """The naive sum wraps negative here and would admit."""
        assert naive_exceeds(1, 100, MAX64) is False
        with pytest.raises(LimitExceededError):
            check_admission(1, 100, MAX64, width=INT64)

    def test_width_rejects_unrepresentable_values(self):
        with pytest.raises(OverflowLimitError):
            check_admission(0, 10, MAX64 + 1, width=INT64)

    def test_agrees_with_exact_reference_at_boundaries(self):
        for current, maximum, extra in _boundary_cases():
            expected_reject = exceeds_exact(current, maximum, extra)
            assert would_exceed(current, maximum, extra) is expected_reject, (current, maximum, extra)
            if expected_reject:
                with pytest.raises(LimitExceededError):
                    check_admission(current, maximum, extra, width=INT64)
            else:
                assert check_admission(current, maximum, extra, width=INT64) == current + extra

    def test_subtraction_form_stays_in_range(self):
        for current, maximum, extra in _boundary_cases():
            assert INT64.contains(maximum - extra)

    def test_would_exceed_negative_counts_as_exceeding(self):
        assert would_exceed(0, 100, -5) is True


class TestIntWidth:
    """Tests for IntWidth bounds and wrapping."""

    def test_signed_bounds(self):
        assert INT32.min_value == -(2**31)
        assert INT32.max_value == 2**31 - 1

    def test_unsigned_bounds(self):
        assert UINT32.min_value == 0
        assert UINT64.max_value == 2**64 - 1

    def test_name(self):
        assert INT64.name == "int64"
        assert UINT32.name == "uint32"

    def test_wrap_signed(self):
        assert INT64.wrap(MAX64 + 1) == INT64.min_value

    def test_wrap_unsigned(self):
        assert UINT32.wrap(2**32 + 5) == 5

    def test_custom_width(self):
        int8 = IntWidth(8)
        assert int8.min_value == -128
        assert int8.max_value == 127


class TestCheckedArithmetic:
    """Tests for checked_add / checked_mul."""

    def test_add_ok(self):
        assert checked_add(2, 3) == 5

    def test_add_overflow(self):
        with pytest.raises(OverflowLimitError):
            checked_add(MAX64, 1, INT64)

    def test_add_underflow(self):
        with pytest.raises(OverflowLimitError):
            checked_add(INT64.min_value, -1, INT64)

    def test_add_to_exact_max(self):
        assert checked_add(MAX64 - 1, 1, INT64) == MAX64

    def test_wrapping_add_shows_wraparound(self):
        assert wrapping_add(MAX64, 1, INT64) == INT64.min_value

    def test_mul_ok(self):
        assert checked_mul(65_535, 65_535, UINT64) == 65_535 * 65_535

    def test_mul_zero(self):
        assert checked_mul(0, MAX64) == 0

    def test_mul_overflow_uint32(self):
        with pytest.raises(OverflowLimitError):
            checked_mul(65_536, 65_536, UINT32)

    def test_mul_exact_uint32_max(self):
        assert checked_mul(65_535, 65_537, UINT32) == UINT32.max_value

    def test_mul_negative_bound(self):
        int8 = IntWidth(8)
        assert checked_mul(-16, 8, int8) == -128
        with pytest.raises(OverflowLimitError):
            checked_mul(16, 8, int8)

    def test_operands_must_fit(self):
        with pytest.raises(OverflowLimitError):
            checked_add(2**40, 0, INT32)


class TestBoundedCounter:
    """Tests for BoundedCounter."""

    def test_admit_and_remaining(self):
        counter = BoundedCounter(100)
        assert counter.admit(40) == 40
        assert counter.remaining == 60

    def test_rejected_admit_leaves_total_unchanged(self):
        counter = BoundedCounter(100, initial=90)
        with pytest.raises(LimitExceededError):
            counter.admit(11)
        assert counter.current == 90

    def test_try_admit(self):
        counter = BoundedCounter(10)
        assert counter.try_admit(10) is True
        assert counter.try_admit(1) is False
        assert counter.try_admit(-1) is False

    def test_release(self):
        counter = BoundedCounter(10, initial=5)
        assert counter.release(5) == 0

    def test_release_more_than_held(self):
        counter = BoundedCounter(10, initial=5)
        with pytest.raises(InvalidArgumentError):
            counter.release(6)

    def test_reserve_releases_on_error(self):
        counter = BoundedCounter(10)
        with pytest.raises(RuntimeError):
            with counter.reserve(7):
                assert counter.current == 7
                raise RuntimeError("boom")
        assert counter.current == 0

    def test_reserve_rejected_does_not_release(self):
        counter = BoundedCounter(10, initial=5)
        with pytest.raises(LimitExceededError):
            with counter.reserve(6):
                pass
        assert counter.current == 5

    def test_invalid_bounds(self):
        with pytest.raises(InvalidArgumentError):
            BoundedCounter(10, initial=11)

    def test_concurrent_admits_never_exceed_maximum(self):
        counter = BoundedCounter(1000)
        admitted = []

        def worker():
            for _ in range(200):
                if counter.try_admit(1):
                    admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter.current == 1000
        assert len(admitted) == 1000
