"""Disproportionate resource consumption: review checklist.

Untrusted input can cost far more to process than it cost to send.  The
items below are the attack shapes to look for whenever code accepts
input from outside its trust boundary.  Each item names the resguard
callable that implements a guard for it, where one exists; the rest are
design constraints to apply at the call site.

The checklist is data so that it can be rendered (``resguard checklist``),
linked from code review tooling, or asserted on in tests.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum


class Threat(str, Enum):
    """Attack shapes that lead to disproportionate resource consumption."""

    OVERSIZED_DIMENSIONS = "oversized_dimensions"
    SIZE_OVERFLOW = "size_overflow"
    PARSE_AMPLIFICATION = "parse_amplification"
    HASH_COLLISION = "hash_collision"
    REGEX_BACKTRACKING = "regex_backtracking"
    UNBOUNDED_QUERY = "unbounded_query"
    UNSAFE_DESERIALIZATION = "unsafe_deserialization"
    UNBOUNDED_LOGGING = "unbounded_logging"
    NON_TERMINATING_LOOP = "non_terminating_loop"


@dataclass(frozen=True)
class ChecklistItem:
    threat: Threat
    title: str
    shape: str
    guidance: str
    guard: str | None = None


CHECKLIST: tuple[ChecklistItem, ...] = (
    ChecklistItem(
        threat=Threat.OVERSIZED_DIMENSIONS,
        title="Oversized declared dimensions",
        shape="A small image or font file declares enormous width, height or glyph tables.",
        guidance="Read the header first and reject dimensions over a fixed ceiling before allocating.",
        guard="resguard.parsing.images.inspect_image",
    ),
    ChecklistItem(
        threat=Threat.SIZE_OVERFLOW,
        title="Integer overflow in size validation",
        shape="current + extra wraps around and a huge request passes a limit check.",
        guidance="Reject negative increments and compare current > max - extra.",
        guard="resguard.core.limits.check_admission",
    ),
    ChecklistItem(
        threat=Threat.PARSE_AMPLIFICATION,
        title="Amplification during parsing",
        shape="Decompression bombs and XML entity expansion turn kilobytes into gigabytes.",
        guidance="Cap decompressed output and ratio; refuse DTDs and entity declarations.",
        guard="resguard.parsing.decompress.decompress_bytes",
    ),
    ChecklistItem(
        threat=Threat.HASH_COLLISION,
        title="Hash-collision algorithmic blowup",
        shape="Many keys crafted to collide degrade hash tables to quadratic time.",
        guidance="Cap the number of keys per object or form before inserting them.",
        guard="resguard.parsing.deserialize.load_json",
    ),
    ChecklistItem(
        threat=Threat.REGEX_BACKTRACKING,
        title="Catastrophic regular-expression backtracking",
        shape="Nested quantifiers such as (a+)+ take exponential time on near-matches.",
        guidance="Vet patterns for nested unbounded quantifiers and cap the input length.",
        guard="resguard.parsing.patterns.safe_search",
    ),
    ChecklistItem(
        threat=Threat.UNBOUNDED_QUERY,
        title="Unbounded-cost query languages",
        shape="XPath, SQL or search queries from users with no cost ceiling.",
        guidance="Charge each evaluated term against a budget and stop when it runs out.",
        guard="resguard.execution.budget.IterationBudget",
    ),
    ChecklistItem(
        threat=Threat.UNSAFE_DESERIALIZATION,
        title="Unsafe deserialization",
        shape="pickle or full YAML loaders construct arbitrary objects from input.",
        guidance="Use data-only formats or an explicit class allow-list.",
        guard="resguard.parsing.deserialize.loads_restricted",
    ),
    ChecklistItem(
        threat=Threat.UNBOUNDED_LOGGING,
        title="Unbounded logging volume",
        shape="Every rejected request writes a log line and fills the disk.",
        guidance="Throttle log events and never log the rejected payload.",
        guard="resguard.core.logging.throttle_processor",
    ),
    ChecklistItem(
        threat=Threat.NON_TERMINATING_LOOP,
        title="Non-terminating loops on malformed input",
        shape="A parser loop that never advances on a crafted record spins forever.",
        guidance="Bound iterations and wall-clock time for loops driven by input.",
        guard="resguard.execution.budget.guarded_loop",
    ),
)


def get_item(threat: Threat | str) -> ChecklistItem:
    """Look up the checklist entry for ``threat``."""
    threat = Threat(threat)
    for item in CHECKLIST:
        if item.threat is threat:
            return item
    raise KeyError(threat)


def items_with_guards() -> list[ChecklistItem]:
    return [item for item in CHECKLIST if item.guard is not None]


def render_markdown() -> str:
    """Render the checklist as a markdown task list."""
    lines = ["# Disproportionate resource consumption checklist", ""]
    for item in CHECKLIST:
        lines.append(f"- [ ] **{item.title}**: {item.shape}")
        lines.append(f"  - {item.guidance}")
        if item.guard:
            lines.append(f"  - Guard: `{item.guard}`")
    return "\n".join(lines) + "\n"


def render_json() -> str:
    return json.dumps([{**asdict(item), "threat": item.threat.value} for item in CHECKLIST], indent=2)


__all__ = ["Threat", "ChecklistItem", "CHECKLIST", "get_item", "items_with_guards", "render_markdown", "render_json"]
