# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.__main__",
#   "purpose": "Entry point for CLI invocation via python -m.",
#   "sections": []
# }
# === /NAVMAP ===

"""Entry point for CLI invocation via python -m."""

from SafeUnzip.cli import app

if __name__ == "__main__":
    app(prog_name="safeunzip")
