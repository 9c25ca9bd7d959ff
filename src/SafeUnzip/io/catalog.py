# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.io.catalog",
#   "purpose": "Read-only entry catalogs over zip and libarchive-supported archives",
#   "sections": [
#     {"id": "types", "name": "Entry Types & Protocol", "anchor": "TYP", "kind": "api"},
#     {"id": "zip", "name": "Zip Catalog", "anchor": "ZIP", "kind": "api"},
#     {"id": "libarchive", "name": "Libarchive Catalog", "anchor": "LIB", "kind": "api"},
#     {"id": "factory", "name": "Catalog Factory", "anchor": "FAC", "kind": "factory"}
#   ]
# }
# === /NAVMAP ===

"""Read-only entry catalogs consumed by the extraction coordinator.

A catalog exposes an archive as an indexed collection of entries: the
coordinator asks for ``len(catalog)``, then looks up each entry's metadata
and, for file entries, a single-use byte stream.  Container parsing and
decompression are delegated to :mod:`zipfile` (random access, safe for
concurrent readers) or to libarchive for every other format it detects.

Link and special entries (symlinks, hardlinks, devices, FIFOs, sockets) are
listed so that reports can name them, but their streams are refused: only
regular files and directories are ever materialised.
"""

from __future__ import annotations

import logging
import stat
import tempfile
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, List, Optional, Protocol, Union, runtime_checkable

from ..errors import CatalogAccessError, ConfigError, StreamError
from ..telemetry import ExtractionErrorCode, TelemetryKey, error_message

__all__ = [
    "ArchiveEntry",
    "EntryCatalog",
    "LibarchiveCatalog",
    "ZipCatalog",
    "open_catalog",
]

logger = logging.getLogger("SafeUnzip")

_ZIP_COMPRESSION_NAMES = {
    zipfile.ZIP_STORED: "stored",
    zipfile.ZIP_DEFLATED: "deflated",
    zipfile.ZIP_BZIP2: "bzip2",
    zipfile.ZIP_LZMA: "lzma",
    93: "zstd",
}

_DEFAULT_SPOOL_MAX_BYTES = 8 * 1024 * 1024

# ============================================================================
# ENTRY TYPES & PROTOCOL
# ============================================================================


@dataclass(frozen=True)
class ArchiveEntry:
    """Metadata describing one archive entry.

    ``name`` is the raw, untrusted entry name exactly as stored.
    """

    index: int
    name: str
    is_dir: bool
    kind: str = "file"  # file | dir | symlink | hardlink | special
    size: Optional[int] = None
    compressed_size: Optional[int] = None
    compression: Optional[str] = None
    comment: str = ""

    @property
    def is_link_or_special(self) -> bool:
        return self.kind not in ("file", "dir")


@runtime_checkable
class EntryCatalog(Protocol):
    """Indexed, read-only view of an archive's entries."""

    def __len__(self) -> int:  # pragma: no cover - protocol
        ...

    def entry(self, index: int) -> ArchiveEntry:  # pragma: no cover - protocol
        ...

    def open(self, index: int) -> IO[bytes]:  # pragma: no cover - protocol
        ...

    def close(self) -> None:  # pragma: no cover - protocol
        ...


class _CatalogBase:
    """Shared context-manager plumbing for the concrete catalogs."""

    def close(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ============================================================================
# ZIP CATALOG
# ============================================================================


def _zip_kind(info: zipfile.ZipInfo) -> str:
    if info.is_dir():
        return "dir"
    mode = info.external_attr >> 16
    if mode and stat.S_ISLNK(mode):
        return "symlink"
    if mode and (stat.S_ISCHR(mode) or stat.S_ISBLK(mode) or stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)):
        return "special"
    return "file"


class ZipCatalog(_CatalogBase):
    """Catalog backed by :class:`zipfile.ZipFile`.

    Streams returned by :meth:`open` share the underlying file handle;
    :mod:`zipfile` serialises seeks on it, so entries may be read from
    several threads at once.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path)
        except (OSError, zipfile.BadZipFile) as exc:
            raise ConfigError(f"Unable to open zip archive {self.path}: {exc}") from exc
        self._infos = self._zip.infolist()
        self.format_name = "zip"
        self.comment = self._zip.comment.decode("utf-8", "replace")

    def __len__(self) -> int:
        return len(self._infos)

    def _info(self, index: int) -> zipfile.ZipInfo:
        if index < 0:
            raise CatalogAccessError(f"No entry at index {index}", index=index)
        try:
            return self._infos[index]
        except IndexError as exc:
            raise CatalogAccessError(f"No entry at index {index}", index=index) from exc

    def entry(self, index: int) -> ArchiveEntry:
        info = self._info(index)
        kind = _zip_kind(info)
        return ArchiveEntry(
            index=index,
            name=info.filename,
            is_dir=kind == "dir",
            kind=kind,
            size=info.file_size,
            compressed_size=info.compress_size,
            compression=_ZIP_COMPRESSION_NAMES.get(info.compress_type, str(info.compress_type)),
            comment=info.comment.decode("utf-8", "replace"),
        )

    def open(self, index: int) -> IO[bytes]:
        info = self._info(index)
        kind = _zip_kind(info)
        if kind != "file":
            raise CatalogAccessError(
                f"{kind} entries have no extractable content stream",
                index=index,
                name=info.filename,
            )
        try:
            return self._zip.open(info)
        except (OSError, RuntimeError, NotImplementedError, ValueError, zipfile.BadZipFile) as exc:
            raise CatalogAccessError(
                f"Unable to open entry stream: {exc}", index=index, name=info.filename
            ) from exc

    def close(self) -> None:
        self._zip.close()


# ============================================================================
# LIBARCHIVE CATALOG
# ============================================================================


def _import_libarchive():
    """Import ``libarchive`` on first use; the binding loads a native library."""

    try:
        import libarchive
    except (ImportError, OSError, AttributeError) as exc:
        raise ConfigError(
            "libarchive-c with a system libarchive is required for non-zip archives"
        ) from exc
    return libarchive


def _libarchive_kind(entry) -> str:
    if entry.isdir:
        return "dir"
    if entry.issym:
        return "symlink"
    if entry.islnk:
        return "hardlink"
    if entry.isfifo or entry.isblk or entry.ischr or entry.issock:
        return "special"
    return "file"


def _as_text(value) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class LibarchiveCatalog(_CatalogBase):
    """Catalog for any format libarchive detects (tar, tar.gz, tar.xz, 7z, ...).

    libarchive only reads sequentially, so construction performs one pass
    over the archive: metadata is recorded for every entry and regular file
    payloads are spooled to temporary files.  Each payload can be opened
    exactly once.

    The pass enforces the run's guards before anything is extracted:

    - more than ``max_entries`` entries aborts construction with
      :class:`ConfigError`
    - a payload larger than ``max_file_size_bytes`` stops being spooled; its
      :meth:`open` raises :class:`StreamError` (``E_FILE_SIZE_STREAM``)
    - at most ``spool_max_bytes`` of payload data, summed over all entries,
      is held in memory; the remainder is spooled to disk
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        spool_max_bytes: int = _DEFAULT_SPOOL_MAX_BYTES,
        max_entries: Optional[int] = None,
        max_file_size_bytes: Optional[int] = None,
    ) -> None:
        libarchive = _import_libarchive()
        self.path = Path(path)
        self.format_name: Optional[str] = None
        self.filters: List[str] = []
        self._entries: List[ArchiveEntry] = []
        self._payloads: Dict[int, IO[bytes]] = {}
        self._oversized: Dict[int, int] = {}
        self._max_file_size_bytes = max_file_size_bytes
        self._memory_left = spool_max_bytes
        self._lock = threading.Lock()
        try:
            with libarchive.file_reader(str(self.path)) as archive:
                for index, entry in enumerate(archive):
                    if max_entries is not None and index >= max_entries:
                        raise ConfigError(
                            error_message(
                                ExtractionErrorCode.ENTRY_BUDGET,
                                f"Entry count exceeds limit {max_entries}",
                            )
                        )
                    kind = _libarchive_kind(entry)
                    self._entries.append(
                        ArchiveEntry(
                            index=index,
                            name=entry.pathname or "",
                            is_dir=kind == "dir",
                            kind=kind,
                            size=entry.size,
                        )
                    )
                    if kind == "file":
                        self._spool(index, entry)
                    if self.format_name is None:
                        self.format_name = _as_text(getattr(archive, "format_name", None))
                        filters = getattr(archive, "filter_names", None) or []
                        self.filters = [_as_text(f) for f in filters]
        except (libarchive.ArchiveError, OSError) as exc:
            self.close()
            raise ConfigError(f"Unable to read archive {self.path}: {exc}") from exc
        except ConfigError:
            self.close()
            raise
        logger.debug(
            "catalogued archive",
            extra={
                TelemetryKey.STAGE.value: "catalog",
                "archive": str(self.path),
                TelemetryKey.ENTRIES_TOTAL.value: len(self._entries),
                "format": self.format_name,
            },
        )

    def _spool(self, index: int, entry) -> None:
        """Copy one payload into a spool, honouring the size cap and memory budget."""

        cap = self._max_file_size_bytes
        declared = entry.size
        if cap is not None and declared is not None and declared > cap:
            self._oversized[index] = declared
            return
        if declared is not None and declared <= self._memory_left:
            memory = declared
            spool: IO[bytes] = tempfile.SpooledTemporaryFile(max_size=max(memory, 1))
        else:
            memory = 0
            spool = tempfile.TemporaryFile()
        written = 0
        for block in entry.get_blocks():
            written += len(block)
            if cap is not None and written > cap:
                spool.close()
                self._oversized[index] = written
                return
            spool.write(block)
        spool.seek(0)
        if memory and written <= memory:
            self._memory_left -= written
        self._payloads[index] = spool

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, index: int) -> ArchiveEntry:
        if index < 0 or index >= len(self._entries):
            raise CatalogAccessError(f"No entry at index {index}", index=index)
        return self._entries[index]

    def open(self, index: int) -> IO[bytes]:
        entry = self.entry(index)
        if entry.kind != "file":
            raise CatalogAccessError(
                f"{entry.kind} entries have no extractable content stream",
                index=index,
                name=entry.name,
            )
        if index in self._oversized:
            raise StreamError(
                error_message(
                    ExtractionErrorCode.FILE_SIZE_STREAM,
                    f"payload of at least {self._oversized[index]} bytes exceeds "
                    f"{self._max_file_size_bytes} bytes",
                ),
                index=index,
                name=entry.name,
                code=ExtractionErrorCode.FILE_SIZE_STREAM,
            )
        with self._lock:
            payload = self._payloads.pop(index, None)
        if payload is None:
            raise CatalogAccessError(
                "Entry stream was already consumed", index=index, name=entry.name
            )
        return payload

    def close(self) -> None:
        with self._lock:
            payloads = list(self._payloads.values())
            self._payloads.clear()
        for payload in payloads:
            payload.close()


# ============================================================================
# FACTORY
# ============================================================================


def open_catalog(
    path: Union[str, Path],
    *,
    spool_max_bytes: int = _DEFAULT_SPOOL_MAX_BYTES,
    max_entries: Optional[int] = None,
    max_file_size_bytes: Optional[int] = None,
) -> Union[ZipCatalog, LibarchiveCatalog]:
    """Open ``path`` with the catalog best suited to its format.

    Zip archives get the random-access :class:`ZipCatalog`; anything else is
    handed to :class:`LibarchiveCatalog`, which applies ``max_entries`` and
    ``max_file_size_bytes`` while it reads.  Zip catalogs read nothing up
    front, so the coordinator enforces both guards for them.

    Raises:
        ConfigError: If the archive is missing, cannot be read, or holds more
            than ``max_entries`` entries.
    """

    archive_path = Path(path)
    if not archive_path.is_file():
        raise ConfigError(f"Archive not found: {archive_path}")
    if zipfile.is_zipfile(archive_path):
        return ZipCatalog(archive_path)
    return LibarchiveCatalog(
        archive_path,
        spool_max_bytes=spool_max_bytes,
        max_entries=max_entries,
        max_file_size_bytes=max_file_size_bytes,
    )
