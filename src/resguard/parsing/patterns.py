"""Regular expressions that cannot backtrack catastrophically.

Python's ``re`` engine backtracks.  Patterns that nest unbounded
quantifiers, such as ``(a+)+`` or ``(.*)*``, or that repeat an
alternation whose branches can match the same text, such as ``(a|ab)*``,
take exponential time on an input that almost matches.  ``check_pattern``
refuses those shapes; ``safe_search`` and ``safe_match`` also cap the
input length so even a vetted pattern scans a bounded amount of text.

The shape check is conservative: it may refuse a pattern that happens
to be safe (``(?:x+y)+``), never the other way around for the shapes it
knows.
"""

from __future__ import annotations

import functools
import re

from resguard.core.errors import LimitExceededError, UnsafePatternError
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)

_BRACE_QUANTIFIER = re.compile(r"\{(\d*)(,(\d*))?\}")
# Non-capturing, named and inline-flag group openers
_GROUP_PREFIX = re.compile(r"^\?(?::|P<\w+>|[aiLmsux-]+:)")
# Branches that open with a wildcard, a class or a class escape
_WIDE_START = re.compile(r"\.|\[|\\[wdsWDS]")


def _quantifier_at(pattern: str, i: int) -> tuple[bool, int]:
    """Return (is_unbounded, length) for a quantifier starting at ``i``."""
    if i >= len(pattern):
        return False, 0
    ch = pattern[i]
    if ch in "*+":
        return True, 1
    if ch == "?":
        return False, 1
    if ch == "{":
        m = _BRACE_QUANTIFIER.match(pattern, i)
        if m and (m.group(1) or m.group(2)):
            unbounded = m.group(2) is not None and m.group(3) == ""
            return unbounded, m.end() - i
    return False, 0


def _skip_class(pattern: str, i: int) -> int:
    """Return the index just past the character class starting at ``i``."""
    j = i + 1
    if j < len(pattern) and pattern[j] == "^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern) and pattern[j] != "]":
        j += 2 if pattern[j] == "\\" else 1
    return j + 1


def _overlapping(branches: list[str]) -> bool:
    if len(branches) < 2:
        return False
    for k, a in enumerate(branches):
        for b in branches[k + 1 :]:
            if a == "" or b == "" or a.startswith(b) or b.startswith(a):
                return True
            if _WIDE_START.match(a) or _WIDE_START.match(b):
                return True
    return False


class _Group:
    __slots__ = ("start", "unbounded", "splits")

    def __init__(self, start: int):
        self.start = start
        self.unbounded = False
        self.splits: list[int] = []

    def branches(self, pattern: str, end: int) -> list[str]:
        bounds = [self.start, *self.splits, end]
        parts = [pattern[bounds[k] + 1 : bounds[k + 1]] for k in range(len(bounds) - 1)]
        parts[0] = _GROUP_PREFIX.sub("", parts[0], count=1)
        return parts


def check_pattern(pattern: str) -> str:
    """Raise ``UnsafePatternError`` if ``pattern`` can backtrack exponentially."""
    stack = [_Group(-1)]
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
        elif ch == "[":
            i = _skip_class(pattern, i)
        elif ch == "(":
            stack.append(_Group(i))
            i += 1
            continue
        elif ch == "|":
            stack[-1].splits.append(i)
            i += 1
            continue
        elif ch == ")" and len(stack) > 1:
            group = stack.pop()
            branches = group.branches(pattern, i)
            i += 1
            unbounded, length = _quantifier_at(pattern, i)
            if unbounded and (group.unbounded or _overlapping(branches)):
                logger.warning("pattern_rejected", pattern=pattern[:200])
                raise UnsafePatternError(
                    f"Pattern repeats a group that can match the same text in many ways: {pattern!r}",
                    operation="check_pattern",
                    observed=pattern[group.start : i + length],
                )
            stack[-1].unbounded |= group.unbounded or unbounded
            i += length
            continue
        else:
            i += 1

        # A quantifier directly after an atom
        unbounded, length = _quantifier_at(pattern, i)
        if unbounded:
            stack[-1].unbounded = True
        i += length

    return pattern


@functools.lru_cache(maxsize=256)
def compile_safe(pattern: str, flags: int = 0) -> re.Pattern[str]:
    """Vet and compile ``pattern`` (cached)."""
    return re.compile(check_pattern(pattern), flags)


def _check_input(text: str, max_input: int | None) -> None:
    max_input = max_input if max_input is not None else get_settings().max_pattern_input
    if len(text) > max_input:
        raise LimitExceededError(
            f"Input of {len(text)} characters exceeds {max_input}",
            operation="regex",
            limit=max_input,
            observed=len(text),
        )


def safe_search(pattern: str, text: str, *, flags: int = 0, max_input: int | None = None) -> re.Match[str] | None:
    _check_input(text, max_input)
    return compile_safe(pattern, flags).search(text)


def safe_match(pattern: str, text: str, *, flags: int = 0, max_input: int | None = None) -> re.Match[str] | None:
    _check_input(text, max_input)
    return compile_safe(pattern, flags).match(text)


__all__ = ["check_pattern", "compile_safe", "safe_search", "safe_match"]
