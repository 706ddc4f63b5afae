"""Limits configuration for resguard.

Every guard takes its bound as an explicit argument; when the caller
passes ``None`` the value comes from ``GuardSettings``.  Settings are read
from ``RESGUARD_*`` environment variables and an optional ``.env`` file,
validated once, and cached per process.

Manifesto:
    Limits are policy, not code.  An operator must be able to tighten
    ``max_decompressed_bytes`` without a release, and a typo in the
    environment must fail at startup rather than disable a guard.

    - **Pydantic validation:** Every bound must be positive
    - **Environment-driven:** ``RESGUARD_MAX_JSON_DEPTH=32``
    - **Sensible defaults:** Safe for a typical web upload handler

Examples:
    >>> from resguard.core.settings import get_settings
    >>> get_settings().max_json_depth
    64

Tags:
    settings, configuration, pydantic, environment, resguard

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class GuardSettings(BaseSettings):
    """Process-wide default limits.

    Fields
    ──────
    log_level                  : structlog level
    log_json                   : JSON logs (None = auto-detect tty)
    max_log_events_per_second  : log volume budget (None = unthrottled)
    max_decompressed_bytes     : output cap for any decompression
    max_compression_ratio      : output/input ratio cap
    max_archive_entries        : member count cap for archives
    max_image_pixels           : width * height cap (Pillow's default)
    max_image_dimension        : cap on either side
    max_xml_bytes              : raw XML document cap
    max_json_bytes             : raw JSON document cap
    max_json_depth             : container nesting cap
    max_object_keys            : keys per JSON object
    max_pattern_input          : text length a regex may scan
    max_iterations             : loop budget over untrusted input
    loop_deadline_seconds      : wall-clock budget for such loops
    """

    model_config = SettingsConfigDict(
        env_prefix="RESGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None
    max_log_events_per_second: float | None = Field(default=None, gt=0)

    # ── Amplification ────────────────────────────────────────────
    max_decompressed_bytes: int = Field(default=64 * MIB, gt=0)
    max_compression_ratio: int = Field(default=100, gt=0)
    max_archive_entries: int = Field(default=10_000, gt=0)

    # ── Declared dimensions ──────────────────────────────────────
    max_image_pixels: int = Field(default=89_478_485, gt=0)
    max_image_dimension: int = Field(default=65_535, gt=0)

    # ── Structured documents ─────────────────────────────────────
    max_xml_bytes: int = Field(default=10 * MIB, gt=0)
    max_json_bytes: int = Field(default=10 * MIB, gt=0)
    max_json_depth: int = Field(default=64, gt=0)
    max_object_keys: int = Field(default=10_000, gt=0)

    # ── Patterns and loops ───────────────────────────────────────
    max_pattern_input: int = Field(default=10_000, gt=0)
    max_iterations: int = Field(default=1_000_000, gt=0)
    loop_deadline_seconds: float = Field(default=30.0, gt=0)


_settings: GuardSettings | None = None


def get_settings(*, _force_reload: bool = False) -> GuardSettings:
    """Load, validate, and cache a :class:`GuardSettings` instance."""
    global _settings
    if _settings is None or _force_reload:
        _settings = GuardSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests and reconfiguration)."""
    global _settings
    _settings = None


__all__ = ["GuardSettings", "get_settings", "reset_settings", "MIB"]
