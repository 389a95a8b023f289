# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.__main__",
#   "purpose": "Entry point for CLI invocation via python -m.",
#   "sections": []
# }
# === /NAVMAP ===

"""Entry point for CLI invocation via python -m."""

from APIDirectory.Registry.cli import main

if __name__ == "__main__":
    main()
