"""Aggregated extraction helpers for SafeUnzip.

This subpackage bundles the path sanitiser, the read-only entry catalogs over
zip and libarchive-supported archives, and the concurrent extraction
coordinator.  Re-exporting the most common symbols keeps importing ergonomics
simple for callers and for the CLI.
"""

from .catalog import ArchiveEntry, EntryCatalog, LibarchiveCatalog, ZipCatalog, open_catalog
from .coordinator import ensure_directory, extract_all, extract_archive
from .sanitize import MAX_SEGMENT_BYTES, SanitizedPath, is_within, sanitize, sanitize_segment

__all__ = [
    # Sanitisation
    "MAX_SEGMENT_BYTES",
    "SanitizedPath",
    "is_within",
    "sanitize",
    "sanitize_segment",
    # Catalogs
    "ArchiveEntry",
    "EntryCatalog",
    "LibarchiveCatalog",
    "ZipCatalog",
    "open_catalog",
    # Coordinator
    "ensure_directory",
    "extract_all",
    "extract_archive",
]
