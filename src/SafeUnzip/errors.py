# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.errors",
#   "purpose": "Define the exception hierarchy used across catalog access, sanitisation, and extraction",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "entry", "name": "Per-Entry Errors", "anchor": "ENT", "kind": "api"},
#     {"id": "aggregate", "name": "Aggregate Failures", "anchor": "AGG", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across catalog access and archive extraction.

Extraction runs fan out one task per archive entry, so most failures are
scoped to a single entry and are recorded rather than raised through the
coordinator.  Those per-entry failures derive from :class:`EntryError` and
carry the entry index, its raw (untrusted) name, and a stable error code.
Run-level problems such as invalid settings or an unreadable archive surface
as :class:`ConfigError` before any entry is touched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from .telemetry import ExtractionErrorCode

if TYPE_CHECKING:  # pragma: no cover
    from .telemetry import EntryFailure

__all__ = [
    "SafeUnzipError",
    "EntryError",
    "CatalogAccessError",
    "FilesystemError",
    "StreamError",
    "ExtractionFailed",
    "UserConfigError",
    "ConfigError",
]


class SafeUnzipError(RuntimeError):
    """Base exception for archive catalog and extraction failures."""


class EntryError(SafeUnzipError):
    """Failure scoped to a single archive entry.

    Attributes:
        index: Position of the entry in the catalog.
        name: Raw entry name as stored in the archive.
        code: Stable error code used for telemetry and reports.
    """

    default_code = ExtractionErrorCode.EXTRACT_IO

    def __init__(
        self,
        message: str,
        *,
        index: Optional[int] = None,
        name: Optional[str] = None,
        code: Optional[ExtractionErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.name = name
        self.code = code or self.default_code


class CatalogAccessError(EntryError):
    """Raised when the catalog cannot yield an entry's metadata or stream."""

    default_code = ExtractionErrorCode.CATALOG


class FilesystemError(EntryError):
    """Raised when directory creation, file creation, or a write fails."""

    default_code = ExtractionErrorCode.EXTRACT_IO


class StreamError(EntryError):
    """Raised when an entry's content stream faults or ends prematurely.

    The partially written target file is left on disk.
    """

    default_code = ExtractionErrorCode.STREAM


class ExtractionFailed(SafeUnzipError):
    """Raised by :meth:`ExtractionReport.raise_for_failures` when entries failed."""

    def __init__(self, message: str, *, failures: Sequence["EntryFailure"] = ()) -> None:
        super().__init__(message)
        self.failures = tuple(failures)


class UserConfigError(RuntimeError):
    """Raised when CLI arguments, settings, or archive inputs are invalid."""


# Alias used throughout the package.
ConfigError = UserConfigError
