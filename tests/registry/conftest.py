# === NAVMAP v1 ===
# {
#   "module": "tests.registry.conftest",
#   "purpose": "Shared fixtures for registry tests",
#   "sections": [
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for registry tests.

Every test gets a registry root below ``tmp_path``, a clean set of shared
HTTP clients, and a logger configuration restored to its pytest-friendly
defaults (CLI runs switch propagation off).
"""

from __future__ import annotations

import io
import logging
from typing import Any, Callable, Dict, Optional

import pytest

from APIDirectory.Registry import net
from APIDirectory.Registry.context import RunContext
from APIDirectory.Registry.formatters import Colours, StatusWriter
from APIDirectory.Registry.logging_utils import LOGGER_NAME
from APIDirectory.Registry.registry import RegistryStore
from APIDirectory.Registry.settings import DEFAULT_PATHSPEC, RegistryConfig, RunOptions, reset_default_config
from APIDirectory.Registry.testing import make_config

PLAIN = Colours(red="", yellow="", green="", normal="", clear="")


@pytest.fixture(autouse=True)
def _isolate_registry_state(monkeypatch: pytest.MonkeyPatch):
    for name in ("APIREG_LOG_LEVEL", "APIREG_TIMEOUT_SEC", "APIREG_ROOT", "APIREG_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    net.reset_http_client()
    reset_default_config()
    yield
    net.reset_http_client()
    reset_default_config()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_registry_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config(tmp_path) -> RegistryConfig:
    return make_config(tmp_path)


@pytest.fixture
def make_context(config) -> Callable[..., RunContext]:
    """Return a factory building a :class:`RunContext` over an in-memory registry."""

    def factory(
        command: str = "update",
        registry: Optional[Dict[str, Any]] = None,
        *,
        pathspec: str = DEFAULT_PATHSPEC,
        options: Optional[RunOptions] = None,
    ) -> RunContext:
        store = RegistryStore(config.paths, registry) if registry is not None else None
        return RunContext(
            command=command,
            pathspec=pathspec,
            options=options or RunOptions(),
            config=config,
            store=store,
            status=StatusWriter(io.StringIO(), PLAIN),
        )

    return factory
