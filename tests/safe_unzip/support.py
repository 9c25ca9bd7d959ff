"""Test helpers: an in-memory catalog, archive builders and tree snapshots.

:class:`MemoryCatalog` implements the catalog protocol over a list of
``(name, payload)`` pairs; a ``None`` payload denotes a directory entry.
It lets tests drive entry ordering and inject stream faults without
building real archives.
"""

from __future__ import annotations

import io
import os
import threading
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from SafeUnzip.io.catalog import ArchiveEntry

EntryDef = Tuple[str, Optional[bytes]]


class FaultyStream(io.BytesIO):
    """Stream whose reads fail, emulating a corrupt compressed payload."""

    def read(self, size: int = -1) -> bytes:  # type: ignore[override]
        raise OSError("simulated decoder fault")


class MemoryCatalog:
    """Catalog over in-memory entries with optional fault injection."""

    def __init__(
        self,
        entries: Sequence[EntryDef],
        *,
        faulty: Iterable[int] = (),
        declared_sizes: Optional[Dict[int, int]] = None,
        kinds: Optional[Dict[int, str]] = None,
    ) -> None:
        self._entries = list(entries)
        self._faulty = set(faulty)
        self._declared = declared_sizes or {}
        self._kinds = kinds or {}
        self._lock = threading.Lock()
        self.opened: List[int] = []
        self.closed = False

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, index: int) -> ArchiveEntry:
        name, payload = self._entries[index]
        kind = self._kinds.get(index, "dir" if payload is None else "file")
        size = self._declared.get(index, None if payload is None else len(payload))
        return ArchiveEntry(index=index, name=name, is_dir=kind == "dir", kind=kind, size=size)

    def open(self, index: int):
        with self._lock:
            self.opened.append(index)
        name, payload = self._entries[index]
        if index in self._faulty:
            return FaultyStream(payload or b"")
        return io.BytesIO(payload or b"")

    def close(self) -> None:
        self.closed = True


def snapshot_tree(root: Path) -> Dict[str, Optional[bytes]]:
    """Map every path under ``root`` to its bytes (``None`` for directories)."""

    tree: Dict[str, Optional[bytes]] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for dirname in dirnames:
            rel = os.path.relpath(os.path.join(dirpath, dirname), root)
            tree[rel.replace(os.sep, "/")] = None
        for filename in filenames:
            full = os.path.join(dirpath, filename)
            rel = os.path.relpath(full, root)
            with open(full, "rb") as handle:
                tree[rel.replace(os.sep, "/")] = handle.read()
    return tree


def build_zip(path: Path, entries: Sequence[EntryDef]) -> Path:
    """Write a zip archive whose entries keep their names verbatim."""

    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, payload in entries:
            info = zipfile.ZipInfo(name)
            if payload is None:
                info.external_attr = 0o40755 << 16
                zf.writestr(info, b"")
            else:
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, payload)
    return path


