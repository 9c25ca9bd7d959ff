# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.io.coordinator",
#   "purpose": "Fan out per-entry extraction work over a bounded worker pool",
#   "sections": [
#     {"id": "filesystem", "name": "Idempotent Filesystem Operations", "anchor": "FS", "kind": "helpers"},
#     {"id": "entry", "name": "Per-Entry Unit of Work", "anchor": "ENT", "kind": "helpers"},
#     {"id": "coordinator", "name": "Extraction Coordinator", "anchor": "CRD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Concurrent extraction of an entry catalog onto the local filesystem.

:func:`extract_all` dispatches one task per catalog index to a thread pool
and joins every task before returning.  Tasks share nothing but the output
directory tree, so correctness rests on two idempotent operations:

- directory creation is "ensure exists" and tolerates concurrent creation of
  the same path by sibling tasks
- file creation truncates or creates, so colliding targets resolve to the
  last completed write

Within a task the parent directory is always ensured before the file is
opened; across tasks there is no ordering, which is why a file entry may be
processed before (or without) the directory entry that names its parent.

Per-entry failures are recorded in the returned
:class:`~SafeUnzip.telemetry.ExtractionReport` and never abort sibling tasks.
Partially written files are left on disk.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent import futures
from pathlib import Path
from typing import IO, List, Optional, Union

from ..concurrency import create_executor
from ..errors import CatalogAccessError, ConfigError, EntryError, FilesystemError, StreamError
from ..settings import ExtractionSettings, get_default_settings
from ..telemetry import (
    EntryFailure,
    ExtractionErrorCode,
    ExtractionMetrics,
    ExtractionReport,
    TelemetryKey,
    error_message,
)
from .catalog import ArchiveEntry, EntryCatalog, open_catalog
from .sanitize import is_within, sanitize

__all__ = ["ensure_directory", "extract_all", "extract_archive"]

_WRITE_FLAGS = (
    os.O_WRONLY
    | os.O_CREAT
    | os.O_TRUNC
    | getattr(os, "O_NOFOLLOW", 0)
    | getattr(os, "O_BINARY", 0)
)

# ============================================================================
# IDEMPOTENT FILESYSTEM OPERATIONS
# ============================================================================


def ensure_directory(path: Path, *, index: Optional[int] = None, name: Optional[str] = None) -> None:
    """Create ``path`` and any missing ancestors; existing directories are success.

    Safe to call concurrently for the same path from several threads.

    Raises:
        FilesystemError: If the path (or an ancestor) exists as a non-directory
            or cannot be created, including names the filesystem cannot
            encode or that exceed its length limits.
    """

    try:
        if path.is_dir():
            return
        path.mkdir(parents=True, exist_ok=True)
    except (OSError, ValueError) as exc:
        raise FilesystemError(
            error_message(ExtractionErrorCode.EXTRACT_IO, f"cannot create directory {path}: {exc}"),
            index=index,
            name=name,
        ) from exc


def _check_within(root: Path, target: Path, entry: ArchiveEntry) -> None:
    if not is_within(root, target):
        raise FilesystemError(
            error_message(ExtractionErrorCode.TRAVERSAL, f"{target} escapes {root}"),
            index=entry.index,
            name=entry.name,
            code=ExtractionErrorCode.TRAVERSAL,
        )


def _open_stream(catalog: EntryCatalog, entry: ArchiveEntry) -> IO[bytes]:
    try:
        return catalog.open(entry.index)
    except EntryError:
        raise
    except Exception as exc:  # noqa: BLE001 - catalog implementations raise arbitrary types
        raise CatalogAccessError(
            error_message(ExtractionErrorCode.CATALOG, str(exc)),
            index=entry.index,
            name=entry.name,
        ) from exc


def _copy_stream(
    stream: IO[bytes],
    target: Path,
    entry: ArchiveEntry,
    settings: ExtractionSettings,
) -> int:
    """Drain ``stream`` into ``target`` (truncate-or-create); return bytes written."""

    try:
        fd = os.open(target, _WRITE_FLAGS, 0o666)
    except (OSError, ValueError) as exc:
        raise FilesystemError(
            error_message(ExtractionErrorCode.EXTRACT_IO, f"cannot open {target}: {exc}"),
            index=entry.index,
            name=entry.name,
        ) from exc

    written = 0
    with os.fdopen(fd, "wb") as out:
        while True:
            try:
                chunk = stream.read(settings.copy_buffer_size)
            except Exception as exc:  # noqa: BLE001 - decoder faults surface as arbitrary types
                raise StreamError(
                    error_message(
                        ExtractionErrorCode.STREAM,
                        f"read failed after {written} bytes: {exc}",
                    ),
                    index=entry.index,
                    name=entry.name,
                ) from exc
            if not chunk:
                break
            if written + len(chunk) > settings.max_file_size_bytes:
                raise StreamError(
                    error_message(
                        ExtractionErrorCode.FILE_SIZE_STREAM,
                        f"exceeded {settings.max_file_size_bytes} bytes",
                    ),
                    index=entry.index,
                    name=entry.name,
                    code=ExtractionErrorCode.FILE_SIZE_STREAM,
                )
            try:
                out.write(chunk)
            except OSError as exc:
                raise FilesystemError(
                    error_message(ExtractionErrorCode.EXTRACT_IO, f"write to {target} failed: {exc}"),
                    index=entry.index,
                    name=entry.name,
                ) from exc
            written += len(chunk)

        try:
            out.flush()
            if settings.fsync:
                os.fsync(out.fileno())
        except OSError as exc:
            raise FilesystemError(
                error_message(ExtractionErrorCode.EXTRACT_IO, f"flush of {target} failed: {exc}"),
                index=entry.index,
                name=entry.name,
            ) from exc

    if entry.size is not None and written != entry.size:
        raise StreamError(
            error_message(
                ExtractionErrorCode.STREAM,
                f"stream ended after {written} of {entry.size} declared bytes",
            ),
            index=entry.index,
            name=entry.name,
        )
    return written


# ============================================================================
# PER-ENTRY UNIT OF WORK
# ============================================================================


def _extract_entry(
    catalog: EntryCatalog,
    index: int,
    root: Path,
    settings: ExtractionSettings,
    metrics: ExtractionMetrics,
) -> None:
    try:
        entry = catalog.entry(index)
    except EntryError:
        raise
    except Exception as exc:  # noqa: BLE001 - catalog implementations raise arbitrary types
        raise CatalogAccessError(
            error_message(ExtractionErrorCode.CATALOG, str(exc)), index=index
        ) from exc

    sanitized = sanitize(entry.name)

    if entry.is_dir:
        # An empty sanitised name denotes the output root, which already exists.
        target = sanitized.join(root)
        _check_within(root, target, entry)
        ensure_directory(target, index=index, name=entry.name)
        metrics.record_dir()
        return

    if entry.is_link_or_special:
        raise CatalogAccessError(
            error_message(ExtractionErrorCode.CATALOG, f"{entry.kind} entries are not extracted"),
            index=index,
            name=entry.name,
        )

    placeholder = sanitized.is_empty
    if placeholder:
        target = root / f"{settings.placeholder_name}-{index}"
    else:
        target = sanitized.join(root)
    _check_within(root, target, entry)

    stream = _open_stream(catalog, entry)
    try:
        ensure_directory(target.parent, index=index, name=entry.name)
        written = _copy_stream(stream, target, entry, settings)
    finally:
        stream.close()
    metrics.record_file(written, placeholder=placeholder)


def _run_entry(
    catalog: EntryCatalog,
    index: int,
    root: Path,
    settings: ExtractionSettings,
    metrics: ExtractionMetrics,
    log: logging.Logger,
    run_id: str,
) -> Optional[EntryFailure]:
    """Execute one entry and convert any failure into a failure record.

    Exceptions that are not :class:`EntryError` are recorded as
    ``E_EXTRACT_IO`` against the entry so that they never reach sibling
    tasks or the coordinator.
    """

    try:
        _extract_entry(catalog, index, root, settings, metrics)
    except EntryError as exc:
        error = exc
        unexpected = False
    except Exception as exc:  # noqa: BLE001 - any fault stays scoped to its entry
        error = FilesystemError(
            error_message(
                ExtractionErrorCode.EXTRACT_IO, f"unexpected {type(exc).__name__}: {exc}"
            ),
            index=index,
        )
        error.__cause__ = exc
        unexpected = True
    else:
        return None

    if error.index is None:
        error.index = index
    metrics.record_failure()
    failure = EntryFailure(
        index=index,
        name=error.name,
        code=error.code,
        message=str(error),
        error_type=type(error).__name__,
    )
    log.warning(
        "entry extraction failed",
        exc_info=error.__cause__ if unexpected else None,
        extra={
            TelemetryKey.STAGE.value: "extract",
            TelemetryKey.RUN_ID.value: run_id,
            TelemetryKey.ENTRY_INDEX.value: index,
            TelemetryKey.ENTRY_NAME.value: error.name,
            TelemetryKey.ERROR_CODE.value: error.code.value,
            TelemetryKey.ERROR.value: str(error),
        },
    )
    return failure


# ============================================================================
# EXTRACTION COORDINATOR
# ============================================================================


def extract_all(
    catalog: EntryCatalog,
    output_root: Union[str, Path],
    *,
    settings: Optional[ExtractionSettings] = None,
    logger: Optional[logging.Logger] = None,
    cancel: Optional[threading.Event] = None,
) -> ExtractionReport:
    """Extract every entry of ``catalog`` under ``output_root``.

    One task per entry index is submitted to a thread pool of
    ``settings.max_workers`` threads; at most
    ``settings.effective_max_in_flight`` tasks are queued or running at any
    time.  The call returns only after every dispatched task finished.

    Args:
        catalog: Read-only entry catalog to extract.
        output_root: Directory receiving the extracted tree; created if absent.
        settings: Extraction settings (process defaults when omitted).
        logger: Logger for structured run and failure records.
        cancel: When set, no further entries are dispatched; entries already
            dispatched run to completion.

    Returns:
        ExtractionReport listing per-entry failures ordered by entry index.

    Raises:
        ConfigError: If the output root cannot be created, the catalog cannot
            report its size, or the entry budget is exceeded.
    """

    policy = settings or get_default_settings()
    log = logger or logging.getLogger("SafeUnzip")

    root = Path(os.path.abspath(output_root))
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Cannot create output root {root}: {exc}") from exc

    try:
        total = len(catalog)
    except Exception as exc:  # noqa: BLE001 - catalog implementations raise arbitrary types
        raise ConfigError(
            error_message(ExtractionErrorCode.CATALOG, f"entry count unavailable: {exc}")
        ) from exc
    if total > policy.max_entries:
        raise ConfigError(
            error_message(
                ExtractionErrorCode.ENTRY_BUDGET,
                f"Entry count {total} exceeds limit {policy.max_entries}",
            )
        )

    report = ExtractionReport(output_root=root)
    metrics = report.metrics
    metrics.total_entries = total
    log.debug(
        "starting extraction",
        extra={
            TelemetryKey.STAGE.value: "extract",
            TelemetryKey.RUN_ID.value: report.run_id,
            TelemetryKey.OUTPUT_ROOT.value: str(root),
            TelemetryKey.ENTRIES_TOTAL.value: total,
            TelemetryKey.WORKERS.value: policy.max_workers,
            TelemetryKey.MAX_IN_FLIGHT.value: policy.effective_max_in_flight,
        },
    )

    failures: List[EntryFailure] = []
    executor, needs_shutdown = create_executor(policy.max_workers)

    if executor is None:
        for index in range(total):
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                break
            failure = _run_entry(catalog, index, root, policy, metrics, log, report.run_id)
            if failure is not None:
                failures.append(failure)
    else:
        slots = threading.BoundedSemaphore(policy.effective_max_in_flight)
        submitted: List[futures.Future] = []
        try:
            for index in range(total):
                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    break
                slots.acquire()
                future = executor.submit(
                    _run_entry, catalog, index, root, policy, metrics, log, report.run_id
                )
                future.add_done_callback(lambda _f: slots.release())
                submitted.append(future)
        finally:
            futures.wait(submitted)
            if needs_shutdown:
                executor.shutdown(wait=True)
        for future in submitted:
            failure = future.result()
            if failure is not None:
                failures.append(failure)

    failures.sort(key=lambda failure: failure.index)
    report.failures = failures
    metrics.finalize()

    log.info(
        "extracted archive",
        extra={
            TelemetryKey.STAGE.value: "extract",
            TelemetryKey.RUN_ID.value: report.run_id,
            TelemetryKey.OUTPUT_ROOT.value: str(root),
            TelemetryKey.CANCELLED.value: report.cancelled,
            **metrics.to_dict(),
        },
    )
    return report


def extract_archive(
    archive_path: Union[str, Path],
    output_root: Union[str, Path],
    *,
    settings: Optional[ExtractionSettings] = None,
    logger: Optional[logging.Logger] = None,
    cancel: Optional[threading.Event] = None,
) -> ExtractionReport:
    """Open ``archive_path`` with :func:`open_catalog` and run :func:`extract_all`."""

    policy = settings or get_default_settings()
    with open_catalog(
        archive_path,
        spool_max_bytes=policy.spool_max_bytes,
        max_entries=policy.max_entries,
        max_file_size_bytes=policy.max_file_size_bytes,
    ) as catalog:
        return extract_all(catalog, output_root, settings=policy, logger=logger, cancel=cancel)
