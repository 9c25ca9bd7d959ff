# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.settings",
#   "purpose": "Configuration models, environment overrides, and cached defaults for extraction runs",
#   "sections": [
#     {"id": "settings", "name": "Extraction Settings", "anchor": "SET", "kind": "pydantic"},
#     {"id": "factories", "name": "Defaults & Factories", "anchor": "DEF", "kind": "factory"},
#     {"id": "environment", "name": "Environment Overrides", "anchor": "ENV", "kind": "pydantic"},
#     {"id": "cache", "name": "Default Settings Cache", "anchor": "CAC", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Configuration for concurrent archive extraction.

:class:`ExtractionSettings` is a Pydantic v2 model holding every tunable the
coordinator consults: worker-pool sizing, the in-flight task bound, copy
buffer size, resource guards, and durability.  Values can be overridden from
the environment through ``SAFEUNZIP_*`` variables (see
:class:`EnvironmentOverrides`); :func:`get_default_settings` merges both and
caches the result for the process.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

__all__ = [
    "EnvironmentOverrides",
    "ExtractionSettings",
    "get_default_settings",
    "invalidate_default_settings",
    "lenient_defaults",
    "safe_defaults",
    "strict_defaults",
]


def _default_max_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


# ============================================================================
# EXTRACTION SETTINGS
# ============================================================================


class ExtractionSettings(BaseModel):
    """Pydantic v2 model for extraction concurrency, guards, and durability.

    **Concurrency**
    - max_workers: Threads in the extraction pool
    - max_in_flight: Upper bound on submitted-but-unfinished entry tasks

    **Resource guards**
    - max_entries: Entry count budget for a whole run
    - max_file_size_bytes: Per-file limit enforced while streaming

    **I/O**
    - copy_buffer_size: Chunk size used to drain entry streams
    - fsync: Flush file contents to disk before a task completes
    - spool_max_bytes: Total libarchive payload bytes held in memory per catalog

    **Naming**
    - placeholder_name: Stem used for file entries whose names sanitise to nothing
    """

    model_config = ConfigDict(
        validate_assignment=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    max_workers: int = Field(
        default_factory=_default_max_workers,
        ge=1,
        le=512,
        description="Number of worker threads extracting entries",
    )

    max_in_flight: Optional[int] = Field(
        default=None,
        ge=1,
        le=100_000,
        description="Maximum queued or running entry tasks (default: 2 x max_workers)",
    )

    copy_buffer_size: int = Field(
        default=1024 * 1024,  # 1 MiB
        ge=1024,
        le=64 * 1024 * 1024,
        description="Chunk size in bytes when copying entry streams to disk",
    )

    max_entries: int = Field(
        default=50_000,
        ge=1,
        le=10_000_000,
        description="Maximum entry count (prevents extraction bombs)",
    )

    max_file_size_bytes: int = Field(
        default=2 * 1024 * 1024 * 1024,  # 2 GiB
        ge=1,
        le=1024 * 1024 * 1024 * 1024,  # 1 TiB
        description="Maximum bytes written for a single file entry",
    )

    fsync: bool = Field(
        default=True,
        description="fsync each extracted file before its task completes",
    )

    spool_max_bytes: int = Field(
        default=8 * 1024 * 1024,  # 8 MiB
        ge=0,
        le=1024 * 1024 * 1024,
        description="Total libarchive payload bytes kept in memory; the rest spools to disk",
    )

    placeholder_name: str = Field(
        default="_unnamed",
        min_length=1,
        max_length=200,
        description="Name stem for file entries whose names sanitise to an empty path",
    )

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator("placeholder_name")
    @classmethod
    def validate_placeholder_name(cls, v: str) -> str:
        """The placeholder must itself be a single safe path segment."""
        from .io.sanitize import sanitize_segment

        if sanitize_segment(v) != v:
            raise ValueError(f"placeholder_name {v!r} is not a safe file name")
        return v

    @model_validator(mode="after")
    def validate_in_flight(self) -> "ExtractionSettings":
        """max_in_flight below max_workers would leave workers idle."""
        if self.max_in_flight is not None and self.max_in_flight < self.max_workers:
            raise ValueError(
                f"max_in_flight ({self.max_in_flight}) must be >= max_workers ({self.max_workers})"
            )
        return self

    # ========================================================================
    # METHODS
    # ========================================================================

    @property
    def effective_max_in_flight(self) -> int:
        return self.max_in_flight if self.max_in_flight is not None else 2 * self.max_workers

    def config_hash(self) -> str:
        """Deterministic digest of the settings for provenance tracking."""
        payload = json.dumps(self.model_dump(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def summary(self) -> Dict[str, str]:
        """Get a human-readable summary of the settings.

        Returns:
            Dictionary mapping setting label to its rendered value.
        """
        return {
            "Workers": str(self.max_workers),
            "Max In-Flight Tasks": str(self.effective_max_in_flight),
            "Copy Buffer": f"{self.copy_buffer_size / 1024:.0f} KiB",
            "Max Entries": f"{self.max_entries:,}",
            "Max File Size": f"{self.max_file_size_bytes / (1024**3):.1f} GiB",
            "Fsync": "yes" if self.fsync else "no",
            "Spool Memory Budget": f"{self.spool_max_bytes / (1024**2):.1f} MiB",
            "Placeholder Name": self.placeholder_name,
        }


# ============================================================================
# DEFAULTS & FACTORIES
# ============================================================================


def safe_defaults() -> ExtractionSettings:
    """Factory for the default extraction settings."""
    return ExtractionSettings()


def lenient_defaults() -> ExtractionSettings:
    """Factory for lenient settings (large archives, no fsync).

    Use only for trusted archives on scratch storage.
    """
    return ExtractionSettings(
        max_entries=1_000_000,
        max_file_size_bytes=100 * 1024 * 1024 * 1024,  # 100 GiB
        fsync=False,
    )


def strict_defaults() -> ExtractionSettings:
    """Factory for strict settings (tight budgets for adversarial archives)."""
    return ExtractionSettings(
        max_entries=10_000,
        max_file_size_bytes=100 * 1024 * 1024,  # 100 MiB
        spool_max_bytes=1024 * 1024,
    )


# ============================================================================
# ENVIRONMENT OVERRIDES
# ============================================================================


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    max_workers: Optional[int] = Field(default=None, alias="SAFEUNZIP_MAX_WORKERS")
    max_in_flight: Optional[int] = Field(default=None, alias="SAFEUNZIP_MAX_IN_FLIGHT")
    max_entries: Optional[int] = Field(default=None, alias="SAFEUNZIP_MAX_ENTRIES")
    max_file_size_bytes: Optional[int] = Field(
        default=None, alias="SAFEUNZIP_MAX_FILE_SIZE_BYTES"
    )
    fsync: Optional[bool] = Field(default=None, alias="SAFEUNZIP_FSYNC")
    log_level: Optional[str] = Field(default=None, alias="SAFEUNZIP_LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_prefix="SAFEUNZIP_", case_sensitive=False, extra="ignore"
    )


def get_env_overrides() -> Dict[str, Any]:
    """Return extraction-setting overrides present in the environment."""

    env = EnvironmentOverrides()
    overrides = env.model_dump(by_alias=False, exclude_none=True)
    overrides.pop("log_level", None)
    return overrides


# ============================================================================
# DEFAULT SETTINGS CACHE
# ============================================================================

_DEFAULT_SETTINGS_CACHE: Optional[ExtractionSettings] = None
_DEFAULT_SETTINGS_LOCK = threading.Lock()


def get_default_settings() -> ExtractionSettings:
    """Return process-wide default settings with environment overrides applied.

    Raises:
        ConfigError: If an environment override is invalid.
    """

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None:
            try:
                overrides = get_env_overrides()
                _DEFAULT_SETTINGS_CACHE = ExtractionSettings(**overrides)
            except ValidationError as exc:
                raise ConfigError(f"Invalid SAFEUNZIP_* environment settings: {exc}") from exc
            if overrides:
                logging.getLogger("SafeUnzip").debug(
                    "applied environment overrides",
                    extra={"stage": "config", "overrides": sorted(overrides)},
                )
        return _DEFAULT_SETTINGS_CACHE


def invalidate_default_settings() -> None:
    """Invalidate the cached default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None
