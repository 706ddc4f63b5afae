"""Core primitives: errors, limits, settings, logging and the review checklist.

Architecture::

    errors.py      Error taxonomy (GuardError, InvalidArgumentError, FlushError)
    limits.py      Overflow-safe admission checks, fixed-width arithmetic
    checklist.py   Disproportionate-resource-consumption checklist
    settings.py    GuardSettings (pydantic-settings, RESGUARD_ prefix)
    logging.py     structlog configuration with log-volume throttling
"""
