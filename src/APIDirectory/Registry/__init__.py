# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry",
#   "purpose": "Package initialization for APIDirectory.Registry",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the API directory registry.

The registry tracks provenance and lifecycle metadata for every API
description document in the directory.  This facade exposes the run entry
point, the run context, and the error hierarchy without importing drivers or
network clients until they are first used.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

__version__ = "1.0.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "run": ("pipeline", "run"),
    "RunResult": ("pipeline", "RunResult"),
    "RunContext": ("context", "RunContext"),
    "RunOptions": ("settings", "RunOptions"),
    "RegistryConfig": ("settings", "RegistryConfig"),
    "get_default_config": ("settings", "get_default_config"),
    "RegistryStore": ("registry", "RegistryStore"),
    "Candidate": ("models", "Candidate"),
    "Lead": ("models", "Lead"),
    "COMMANDS": ("commands", "COMMANDS"),
    "DRIVERS": ("drivers", "DRIVERS"),
    "RegistryError": ("errors", "RegistryError"),
    "ConfigurationError": ("errors", "ConfigurationError"),
    "RegistryLoadError": ("errors", "RegistryLoadError"),
    "cli_main": ("cli", "cli_main"),
}

__all__ = [*_EXPORTS, "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .cli import cli_main
    from .commands import COMMANDS
    from .context import RunContext
    from .drivers import DRIVERS
    from .errors import ConfigurationError, RegistryError, RegistryLoadError
    from .models import Candidate, Lead
    from .pipeline import RunResult, run
    from .registry import RegistryStore
    from .settings import RegistryConfig, RunOptions, get_default_config


def __getattr__(name: str) -> Any:
    """Lazily import exports so driver dependencies load on first use."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module = import_module(f"{__name__}.{target[0]}")
    value = getattr(module, target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
