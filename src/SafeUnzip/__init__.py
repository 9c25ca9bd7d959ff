"""SafeUnzip: concurrent, traversal-safe extraction of untrusted archives.

Typical use::

    from SafeUnzip import extract_archive

    report = extract_archive("upload.zip", "/srv/out")
    report.raise_for_failures()

Entry names are rewritten by :func:`sanitize` so that nothing can be written
outside the output root, and entries are extracted concurrently by
:func:`extract_all` over any :class:`EntryCatalog`.
"""

from .errors import (
    CatalogAccessError,
    ConfigError,
    EntryError,
    ExtractionFailed,
    FilesystemError,
    SafeUnzipError,
    StreamError,
)
from .io import (
    ArchiveEntry,
    EntryCatalog,
    LibarchiveCatalog,
    SanitizedPath,
    ZipCatalog,
    extract_all,
    extract_archive,
    open_catalog,
    sanitize,
)
from .settings import ExtractionSettings, get_default_settings
from .telemetry import EntryFailure, ExtractionErrorCode, ExtractionReport

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ArchiveEntry",
    "CatalogAccessError",
    "ConfigError",
    "EntryCatalog",
    "EntryError",
    "EntryFailure",
    "ExtractionErrorCode",
    "ExtractionFailed",
    "ExtractionReport",
    "ExtractionSettings",
    "FilesystemError",
    "LibarchiveCatalog",
    "SafeUnzipError",
    "SanitizedPath",
    "StreamError",
    "ZipCatalog",
    "extract_all",
    "extract_archive",
    "get_default_settings",
    "open_catalog",
    "sanitize",
]
