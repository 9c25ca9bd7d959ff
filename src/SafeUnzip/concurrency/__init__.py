# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.concurrency.__init__",
#   "purpose": "Concurrency helpers shared across SafeUnzip components.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Concurrency helpers shared across SafeUnzip components.

Exposes :func:`create_executor`, which returns a thread pool for
filesystem-bound extraction work, or no executor at all when a single worker
is requested so work runs inline on the calling thread.
"""

from .executors import create_executor

__all__ = ["create_executor"]
