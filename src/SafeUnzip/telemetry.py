# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.telemetry",
#   "purpose": "Error codes, run metrics, and extraction reports for concurrent archive extraction",
#   "sections": [
#     {"id": "errors", "name": "Error Codes", "anchor": "ERR", "kind": "constants"},
#     {"id": "telemetry", "name": "Telemetry Keys", "anchor": "TEL", "kind": "constants"},
#     {"id": "metrics", "name": "Run Metrics", "anchor": "MET", "kind": "helpers"},
#     {"id": "report", "name": "Extraction Report", "anchor": "REP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Error codes, run metrics, and extraction reports for archive extraction.

Every extraction run produces an :class:`ExtractionReport`.  The report is the
only channel through which per-entry failures reach the caller: worker tasks
record their outcome into shared :class:`ExtractionMetrics` counters and the
coordinator collects :class:`EntryFailure` records once all tasks finished.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

# ============================================================================
# ERROR CODES
# ============================================================================


class ExtractionErrorCode(str, Enum):
    """Stable error codes attached to per-entry and run-level failures."""

    # Catalog
    CATALOG = "E_CATALOG"  # Entry metadata or stream unavailable

    # Filesystem
    EXTRACT_IO = "E_EXTRACT_IO"  # mkdir/open/write failed
    TRAVERSAL = "E_TRAVERSAL"  # Joined path escaped the output root

    # Content stream
    STREAM = "E_STREAM"  # Read fault or truncated stream
    FILE_SIZE_STREAM = "E_FILE_SIZE_STREAM"  # Streamed size exceeds limit

    # Run-level
    ENTRY_BUDGET = "E_ENTRY_BUDGET"  # Too many entries
    CANCELLED = "E_CANCELLED"  # Run cancelled before dispatch


# ============================================================================
# TELEMETRY KEYS
# ============================================================================


class TelemetryKey(str, Enum):
    """Standard ``extra`` keys used on extraction log records."""

    STAGE = "stage"  # "extract", "catalog" or "config"
    RUN_ID = "run_id"
    OUTPUT_ROOT = "output_root"
    ENTRY_INDEX = "entry_index"
    ENTRY_NAME = "entry_name"
    ERROR_CODE = "error_code"
    ERROR = "error"
    WORKERS = "workers"
    MAX_IN_FLIGHT = "max_in_flight"
    CANCELLED = "cancelled"
    ENTRIES_TOTAL = "entries_total"
    FILES_WRITTEN = "files_written"
    DIRS_ENSURED = "dirs_ensured"
    BYTES_WRITTEN = "bytes_written"
    ENTRIES_FAILED = "entries_failed"
    PLACEHOLDERS = "placeholders"
    DURATION_MS = "duration_ms"


# ============================================================================
# METRICS
# ============================================================================


@dataclass
class ExtractionMetrics:
    """Aggregated counters for one extraction run.

    Worker threads update the counters concurrently, so every mutation goes
    through :meth:`record_file`, :meth:`record_dir` or :meth:`record_failure`.
    """

    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    total_entries: int = 0
    files_written: int = 0
    dirs_ensured: int = 0
    bytes_written: int = 0
    entries_failed: int = 0
    placeholders: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        end = self.end_time or time.time()
        return (end - self.start_time) * 1000

    def record_file(self, bytes_written: int, *, placeholder: bool = False) -> None:
        with self._lock:
            self.files_written += 1
            self.bytes_written += bytes_written
            if placeholder:
                self.placeholders += 1

    def record_dir(self) -> None:
        with self._lock:
            self.dirs_ensured += 1

    def record_failure(self) -> None:
        with self._lock:
            self.entries_failed += 1

    def finalize(self) -> None:
        """Mark metrics as complete."""
        self.end_time = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            TelemetryKey.ENTRIES_TOTAL.value: self.total_entries,
            TelemetryKey.FILES_WRITTEN.value: self.files_written,
            TelemetryKey.DIRS_ENSURED.value: self.dirs_ensured,
            TelemetryKey.BYTES_WRITTEN.value: self.bytes_written,
            TelemetryKey.ENTRIES_FAILED.value: self.entries_failed,
            TelemetryKey.PLACEHOLDERS.value: self.placeholders,
            TelemetryKey.DURATION_MS.value: round(self.duration_ms, 2),
        }


# ============================================================================
# REPORT
# ============================================================================


@dataclass(frozen=True)
class EntryFailure:
    """Outcome record for an entry whose extraction was aborted."""

    index: int
    name: Optional[str]
    code: ExtractionErrorCode
    message: str
    error_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "code": self.code.value,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class ExtractionReport:
    """Result of :func:`SafeUnzip.io.coordinator.extract_all`.

    Attributes:
        output_root: Root directory entries were materialised under.
        metrics: Counters collected while the run executed.
        failures: Per-entry failures ordered by entry index.
        cancelled: ``True`` when the run stopped dispatching early.
        run_id: Identifier linking the report to its log records.
    """

    output_root: Path
    metrics: ExtractionMetrics = field(default_factory=ExtractionMetrics)
    failures: List[EntryFailure] = field(default_factory=list)
    cancelled: bool = False
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def ok(self) -> bool:
        """``True`` when every entry was extracted."""
        return not self.failures and not self.cancelled

    @property
    def failed_indices(self) -> List[int]:
        return [failure.index for failure in self.failures]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the report to a JSON-serialisable dictionary."""
        return {
            "run_id": self.run_id,
            "output_root": str(self.output_root),
            "ok": self.ok,
            "cancelled": self.cancelled,
            "metrics": self.metrics.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
        }

    def raise_for_failures(self) -> None:
        """Raise :class:`~SafeUnzip.errors.ExtractionFailed` if any entry failed."""
        if self.ok:
            return
        from .errors import ExtractionFailed

        if self.cancelled and not self.failures:
            raise ExtractionFailed(error_message(ExtractionErrorCode.CANCELLED))
        first = self.failures[0]
        detail = f"{len(self.failures)} entr{'y' if len(self.failures) == 1 else 'ies'} failed"
        detail += f"; first: #{first.index} {first.name!r} ({first.code.value}) {first.message}"
        raise ExtractionFailed(detail, failures=self.failures)


# ============================================================================
# ERROR MESSAGE HELPERS
# ============================================================================


def error_message(code: ExtractionErrorCode, detail: str = "") -> str:
    """Generate a descriptive error message for an error code.

    Args:
        code: The error code
        detail: Additional detail to append

    Returns:
        Human-readable error message
    """
    messages = {
        ExtractionErrorCode.CATALOG: "Archive entry could not be read from the catalog",
        ExtractionErrorCode.EXTRACT_IO: "I/O error during extraction",
        ExtractionErrorCode.TRAVERSAL: "Path traversal detected",
        ExtractionErrorCode.STREAM: "Entry content stream failed",
        ExtractionErrorCode.FILE_SIZE_STREAM: "Streamed file size exceeds limit",
        ExtractionErrorCode.ENTRY_BUDGET: "Entry count exceeds maximum",
        ExtractionErrorCode.CANCELLED: "Extraction cancelled before all entries were dispatched",
    }
    msg = messages.get(code, str(code))
    if detail:
        msg += f": {detail}"
    return msg
