# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.io.sanitize",
#   "purpose": "Convert untrusted archive entry names into safe relative paths",
#   "sections": [
#     {"id": "rules", "name": "Segment Rules", "anchor": "RUL", "kind": "constants"},
#     {"id": "segment", "name": "Segment Sanitisation", "anchor": "SEG", "kind": "helpers"},
#     {"id": "path", "name": "Sanitized Paths", "anchor": "PTH", "kind": "api"},
#     {"id": "containment", "name": "Containment Check", "anchor": "CON", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Path sanitisation for untrusted archive entry names.

Entry names are attacker controlled.  Rather than rejecting suspicious names
outright, :func:`sanitize` rewrites every name into a relative path whose
segments cannot climb out of the output root:

- backslashes are treated as separators, so ``a\\b`` and ``a/b`` agree
- empty segments (leading ``/``, doubled separators) are dropped
- dot-only segments such as ``.``, ``..`` or ``....`` are dropped
- characters that are illegal in file names are removed
- Windows device names (``CON``, ``LPT1.txt``) are prefixed with ``_``
- trailing dots and spaces are stripped
- segments are capped at 255 UTF-8 bytes

The function is pure and never raises.  An input from which nothing survives
yields an empty :class:`SanitizedPath`; callers decide how to name such
entries.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

__all__ = [
    "MAX_SEGMENT_BYTES",
    "SanitizedPath",
    "is_within",
    "sanitize",
    "sanitize_segment",
]

MAX_SEGMENT_BYTES = 255

# ============================================================================
# SEGMENT RULES
# ============================================================================

_ILLEGAL_CHARS = re.compile(r'[/\?<>\\:\*\|"\x00-\x1f\x7f\x80-\x9f]')
_DOT_ONLY = re.compile(r"^\.+$")
_TRAILING_DOTS_SPACES = re.compile(r"[\. ]+$")
_WINDOWS_RESERVED = re.compile(
    r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$",
    re.IGNORECASE,
)


def _truncate_utf8(segment: str, limit: int) -> str:
    """Return the longest prefix of ``segment`` that fits in ``limit`` bytes."""

    encoded = segment.encode("utf-8", "surrogatepass")
    if len(encoded) <= limit:
        return segment
    return encoded[:limit].decode("utf-8", "ignore")


def sanitize_segment(segment: str) -> str:
    """Return a filesystem-safe version of a single path segment.

    The result contains no separator and is never ``.`` or ``..``.  An empty
    string means the segment should be dropped.
    """

    safe = _ILLEGAL_CHARS.sub("", segment)
    if _DOT_ONLY.match(safe):
        return ""
    safe = _TRAILING_DOTS_SPACES.sub("", safe)
    if not safe:
        return ""
    if _WINDOWS_RESERVED.match(safe):
        safe = f"_{safe}"
    safe = _truncate_utf8(safe, MAX_SEGMENT_BYTES)
    return _TRAILING_DOTS_SPACES.sub("", safe)


# ============================================================================
# SANITIZED PATHS
# ============================================================================


@dataclass(frozen=True)
class SanitizedPath:
    """A relative path derived from an untrusted entry name.

    Instances are cheap to recompute and are never cached; :func:`sanitize`
    derives the same value from the same name every time.
    """

    raw: str
    parts: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        """``True`` when no segment of the raw name survived sanitisation."""
        return not self.parts

    @property
    def name(self) -> str:
        """Final segment of the path (empty for an empty path)."""
        return self.parts[-1] if self.parts else ""

    @property
    def parent_parts(self) -> Tuple[str, ...]:
        return self.parts[:-1]

    @property
    def depth(self) -> int:
        return len(self.parts)

    def as_posix(self) -> str:
        return "/".join(self.parts)

    def join(self, root: Union[str, Path]) -> Path:
        """Join the sanitised segments under ``root``."""
        return Path(root).joinpath(*self.parts)

    def __str__(self) -> str:
        return self.as_posix()


def sanitize(name: str) -> SanitizedPath:
    """Map an arbitrary archive entry name to a safe relative path.

    Args:
        name: Raw entry name from the archive catalog.

    Returns:
        SanitizedPath whose segments are non-empty, free of separators, and
        never equal to ``.`` or ``..``.

    Examples:
        >>> sanitize("../../../etc/passwd").as_posix()
        'etc/passwd'
        >>> sanitize("a\\\\b\\\\c").parts
        ('a', 'b', 'c')
        >>> sanitize("////").is_empty
        True
    """

    raw = name if isinstance(name, str) else str(name)
    segments = raw.replace("\\", "/").split("/")
    parts = tuple(safe for safe in (sanitize_segment(s) for s in segments) if safe)
    return SanitizedPath(raw=raw, parts=parts)


# ============================================================================
# CONTAINMENT
# ============================================================================


def is_within(root: Union[str, Path], candidate: Union[str, Path]) -> bool:
    """Return ``True`` if ``candidate`` lexically resolves under ``root``.

    Symlinks are not consulted; the check compares normalised path strings.
    """

    root_norm = os.path.normpath(os.path.abspath(root))
    candidate_norm = os.path.normpath(os.path.abspath(candidate))
    try:
        return os.path.commonpath([root_norm, candidate_norm]) == root_norm
    except ValueError:
        return False
