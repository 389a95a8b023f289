# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.registry",
#   "purpose": "Load and persist the provider/service/version registry tree",
#   "sections": [
#     {"id": "store", "name": "Registry Store", "anchor": "STO", "kind": "api"},
#     {"id": "serialise", "name": "Serialisation Tiers", "anchor": "SER", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Persistence for ``metadata/registry.yaml``.

:class:`RegistryStore` owns the registry tree for the lifetime of a run.  The
tree is loaded once, mutated in place by the reconcilers and commands, and
written back by :meth:`RegistryStore.save`.  Saving is skipped entirely while
the store is consistent with what is on disk, and once a save succeeds the
store becomes consistent again so a second call is a no-op.
"""

from __future__ import annotations

import json
import logging
import pprint
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .documents import write_text_atomic, yaml_dump, yaml_parse
from .errors import DocumentValidationError, RegistryLoadError
from .models import Registry
from .settings import RUN_KINDS_SORTED_ON_LOAD, PathsConfiguration
from .tree import sort_tree

__all__ = ["RegistryStore", "serialise_registry"]

LOGGER = logging.getLogger(__name__)


# --- Serialisation Tiers ---


def serialise_registry(registry: Mapping[str, Any]) -> Optional[str]:
    """Return the registry as YAML, falling back to indented JSON.

    ``None`` means both tiers failed and the caller must fall back to a raw
    debug dump.
    """

    try:
        return yaml_dump(registry)
    except (yaml.YAMLError, TypeError, ValueError) as exc:
        LOGGER.warning("YAML serialisation failed: %s", exc, extra={"stage": "save"})
    try:
        return json.dumps(registry, indent=2)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("JSON serialisation failed: %s", exc, extra={"stage": "save"})
    return None


# --- Registry Store ---


class RegistryStore:
    """Owns the in-memory registry and its on-disk representation."""

    def __init__(self, paths: PathsConfiguration, registry: Optional[Registry] = None) -> None:
        self.paths = paths
        self.registry: Registry = registry if registry is not None else {}
        self.consistent = registry is None
        self.failures_error: Optional[Exception] = None

    @property
    def path(self) -> Path:
        return self.paths.registry_path

    def load(self, run_kind: str) -> Registry:
        """Read the registry, key-sorting it for run kinds that need stable diffs.

        Raises:
            RegistryLoadError: When the file is missing or is not a mapping.
        """

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryLoadError(f"Cannot read registry {self.path}: {exc}") from exc
        try:
            data = yaml_parse(text, lenient=False)
        except DocumentValidationError as exc:
            raise RegistryLoadError(f"Malformed registry {self.path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RegistryLoadError(f"Registry {self.path} must be a mapping of providers")
        if run_kind in RUN_KINDS_SORTED_ON_LOAD:
            data = sort_tree(data)
        self.registry = data
        self.consistent = True
        LOGGER.info(
            "registry loaded",
            extra={"stage": "load", "providers": len(data), "run_kind": run_kind},
        )
        return data

    def mark_dirty(self) -> None:
        self.consistent = False

    def strip_data(self) -> None:
        """Drop the per-run ``data`` scratch buffers drivers attach to providers."""

        for record in self.registry.values():
            if isinstance(record, dict):
                record.pop("data", None)

    def save(self, run_kind: str, failures: Mapping[str, Any]) -> bool:
        """Persist the registry and the failure report for ``run_kind``.

        Returns ``True`` when the registry was written as YAML or JSON (or
        nothing needed writing).  A failure to write the failure report is
        kept in :attr:`failures_error` and does not undo the primary save.
        """

        self.failures_error = None
        if self.consistent:
            return True
        LOGGER.info("Saving metadata...", extra={"stage": "save", "run_kind": run_kind})
        if run_kind == "sort":
            self.registry = sort_tree(self.registry)
        self.strip_data()

        text = serialise_registry(self.registry)
        if text is not None:
            write_text_atomic(self.path, text)
        else:
            dump_path = self.paths.debug_dump_path
            write_text_atomic(dump_path, pprint.pformat(self.registry, width=120))
            LOGGER.error(
                "registry could not be serialised; wrote debug dump",
                extra={"stage": "save", "dump": str(dump_path)},
            )

        try:
            write_text_atomic(self.paths.failures_path(run_kind), yaml_dump(dict(failures)))
        except (OSError, yaml.YAMLError, TypeError, ValueError) as exc:
            LOGGER.warning(
                "writing failures: %s",
                exc,
                extra={"stage": "save", "run_kind": run_kind},
            )
            self.failures_error = exc

        if text is not None:
            self.consistent = True
        return text is not None
