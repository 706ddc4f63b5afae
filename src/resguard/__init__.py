"""
resguard - guards against disproportionate resource consumption.

Overflow-safe admission checks, guaranteed-release scoped resources,
scoped locking, and bounded parsers for untrusted input.
"""

__version__ = "0.1.0"

from resguard.core.errors import (  # noqa: E402
    FlushError,
    GuardError,
    InvalidArgumentError,
    LimitExceededError,
)
from resguard.core.limits import BoundedCounter, check_admission, would_exceed  # noqa: E402
from resguard.execution.locking import locked, run_locked  # noqa: E402
from resguard.execution.scoped import ResourceScope, flushing, scoped  # noqa: E402

__all__ = [
    "__version__",
    "GuardError",
    "InvalidArgumentError",
    "LimitExceededError",
    "FlushError",
    "BoundedCounter",
    "check_admission",
    "would_exceed",
    "scoped",
    "ResourceScope",
    "flushing",
    "run_locked",
    "locked",
]
