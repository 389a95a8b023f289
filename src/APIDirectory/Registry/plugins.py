"""Plugin discovery for acquisition drivers and document validators.

Third-party distributions extend the registry by publishing entry points:

* ``apidirectory.registry.driver``: an object (or class) exposing an async
  ``run(provider, record, context)`` method; the plugin's ``NAME`` attribute,
  or else the entry-point name, becomes the driver name used in
  ``registry.yaml``.
* ``apidirectory.registry.validator``: an object (or class) exposing
  ``validate(document, text, source)`` and returning a
  :class:`~APIDirectory.Registry.validation.ValidationOutcome`.

The built-in maps (``DRIVERS`` and ``VALIDATORS``) are adopted through
:func:`register_plugin_registry`; entry points are merged into them the first
time :func:`ensure_plugins_loaded` runs.  A plugin that fails to load is
logged and skipped.
"""

from __future__ import annotations

import logging
import threading
from importlib import metadata
from typing import Any, Dict, MutableMapping, Optional, Protocol

__all__ = [
    "DriverPlugin",
    "ValidatorPlugin",
    "ENTRY_POINT_GROUPS",
    "ensure_plugins_loaded",
    "register_plugin_registry",
    "get_plugin_registry",
    "plugin_versions",
]

LOGGER = logging.getLogger(__name__)


class DriverPlugin(Protocol):
    async def run(self, provider: str, record: Any, context: Any) -> bool:  # pragma: no cover
        """Populate leads or provider data for ``provider``."""


class ValidatorPlugin(Protocol):
    def validate(self, document: Any, text: str, source: str) -> Any:  # pragma: no cover
        """Validate (and optionally convert) ``document``."""


ENTRY_POINT_GROUPS: Dict[str, str] = {
    "driver": "apidirectory.registry.driver",
    "validator": "apidirectory.registry.validator",
}
_ENTRY_POINT_METHOD = {"driver": "run", "validator": "validate"}

_LOCK = threading.Lock()
_loaded = False
_registries: Dict[str, MutableMapping[str, Any]] = {kind: {} for kind in ENTRY_POINT_GROUPS}
_from_entry_points: Dict[str, Dict[str, str]] = {kind: {} for kind in ENTRY_POINT_GROUPS}


def _check_kind(kind: str) -> None:
    if kind not in ENTRY_POINT_GROUPS:
        raise ValueError(f"Unknown plugin kind: {kind}")


def _distribution_version(entry: Any) -> str:
    dist = getattr(entry, "dist", None)
    version = getattr(dist, "version", None) if dist is not None else None
    if version:
        return str(version)
    package = (getattr(entry, "module", "") or "").partition(".")[0]
    if not package:
        return "unknown"
    try:
        return metadata.version(package)
    except metadata.PackageNotFoundError:
        return "unknown"


def _instantiate(entry: Any, kind: str) -> Any:
    loaded = entry.load()
    plugin = loaded() if isinstance(loaded, type) else loaded
    method = _ENTRY_POINT_METHOD[kind]
    if not callable(getattr(plugin, method, None)):
        raise TypeError(f"{kind} plugin {entry.name!r} has no {method}() method")
    return plugin


def _merge_entry_points(kind: str) -> None:
    registry = _registries[kind]
    for entry in metadata.entry_points().select(group=ENTRY_POINT_GROUPS[kind]):
        try:
            plugin = _instantiate(entry, kind)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "plugin %s failed to load: %s",
                entry.name,
                exc,
                extra={"stage": "plugins", "kind": kind},
            )
            continue
        name = str(getattr(plugin, "NAME", None) or entry.name)
        registry[name] = plugin
        _from_entry_points[kind][name] = _distribution_version(entry)
        LOGGER.info("%s plugin %s registered", kind, name, extra={"stage": "plugins"})


def ensure_plugins_loaded(*, reload: bool = False) -> Dict[str, MutableMapping[str, Any]]:
    """Merge entry-point plugins into the registries once per interpreter.

    ``reload`` drops previously merged entry-point plugins (built-ins stay)
    and discovers again.
    """

    global _loaded
    with _LOCK:
        if reload:
            for kind, names in _from_entry_points.items():
                for name in names:
                    _registries[kind].pop(name, None)
                names.clear()
            _loaded = False
        if not _loaded:
            for kind in ENTRY_POINT_GROUPS:
                _merge_entry_points(kind)
            _loaded = True
        return dict(_registries)


def register_plugin_registry(kind: str, registry: MutableMapping[str, Any]) -> None:
    """Adopt ``registry`` as the map plugins of ``kind`` are merged into."""

    _check_kind(kind)
    with _LOCK:
        previous = _registries[kind]
        if previous is registry:
            return
        for name, plugin in previous.items():
            registry.setdefault(name, plugin)
        _registries[kind] = registry


def get_plugin_registry(kind: str) -> MutableMapping[str, Any]:
    _check_kind(kind)
    return ensure_plugins_loaded()[kind]


def plugin_versions(kind: str) -> Dict[str, str]:
    """Return ``{name: distribution version}`` for plugins loaded from entry points."""

    _check_kind(kind)
    ensure_plugins_loaded()
    return dict(_from_entry_points[kind])
