"""Tests for regular-expression shape checks."""

import re

import pytest

from resguard.core.errors import LimitExceededError, UnsafePatternError
from resguard.parsing.patterns import check_pattern, compile_safe, safe_match, safe_search


class TestCheckPattern:
    @pytest.mark.parametrize(
        "pattern",
        [
            r"(a+)+",
            r"(.*)*",
            r"(a|a)*",
            r"(a|ab)*",
            r"(a{1,})+",
            r"(?:a|ab)*",
            r"^(\w+\s?)*$",
            r"((ab)*)+",
            r"(a|)+",
            r"^(a|.)*b$",
            r"(\w|a)+",
            r"(\d|[0-9])*",
            r"(?:x|\s)+",
        ],
    )
    def test_unsafe(self, pattern):
        with pytest.raises(UnsafePatternError):
            check_pattern(pattern)

    @pytest.mark.parametrize(
        "pattern",
        [
            r"(\d+)-(\d+)",
            r"(ab)+",
            r"(a{2,5})+",
            r"(a|b)*",
            r"(cat|dog)+",
            r"(a|.)",
            r"[(a+)]+",
            r"\(a+\)+",
            r"^[\w.+-]+@[\w-]+\.[\w.]+$",
        ],
    )
    def test_safe(self, pattern):
        assert check_pattern(pattern) == pattern

    def test_unsafe_is_value_error(self):
        with pytest.raises(ValueError):
            compile_safe(r"(a+)+$")


class TestSafeSearch:
    def test_search(self):
        assert safe_search(r"\d+", "order 123").group() == "123"

    def test_match(self):
        assert safe_match(r"abc", "ABCD", flags=re.IGNORECASE) is not None
        assert safe_match(r"b", "abc") is None

    def test_input_cap(self):
        with pytest.raises(LimitExceededError):
            safe_search(r"a", "x" * 11, max_input=10)

    def test_explicit_zero_input_cap(self):
        with pytest.raises(LimitExceededError):
            safe_search(r"a", "a", max_input=0)

    def test_input_cap_checked_before_pattern(self):
        with pytest.raises(LimitExceededError):
            safe_search(r"(a+)+", "x" * 11, max_input=10)

    def test_compile_is_cached(self):
        assert compile_safe(r"x+") is compile_safe(r"x+")
