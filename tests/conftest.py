"""
Shared pytest fixtures and configuration for resguard tests.

This module provides:
- settings cache isolation (RESGUARD_* env vars are read per test)
- structlog reset so CLI runs cannot leave loggers bound to closed streams
- small compressed payload factories
"""

import gzip
import logging
import sys
from pathlib import Path

import pytest
import structlog

# Ensure resguard package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resguard.core.logging import clear_context
from resguard.core.settings import reset_settings


@pytest.fixture(autouse=True)
def isolate_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def isolate_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    yield
    clear_context()
    structlog.reset_defaults()
    root.handlers[:] = handlers


@pytest.fixture
def zeros_gzip() -> bytes:
    """1 MiB of zeros, gzip-compressed to about a kilobyte."""
    return gzip.compress(b"\0" * (1024 * 1024))
