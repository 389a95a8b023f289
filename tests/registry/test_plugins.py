"""Entry-point plugin discovery for drivers and validators."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from APIDirectory.Registry import plugins
from APIDirectory.Registry.drivers import DRIVERS, get_driver
from APIDirectory.Registry.validation import ValidationOutcome, get_validator


class _SwaggerHubDriver:
    NAME = "swaggerhub"

    async def run(self, provider, record, context) -> bool:
        return True


class _LenientValidator:
    def validate(self, document, text, source):
        return ValidationOutcome(True, document=document)


class _EntryPoint:
    def __init__(self, name: str, target, module: str = "acme_registry.plugins") -> None:
        self.name = name
        self.module = module
        self.dist = SimpleNamespace(version="2.1.0")
        self._target = target

    def load(self):
        if isinstance(self._target, Exception):
            raise self._target
        return self._target


class _EntryPoints:
    def __init__(self, groups) -> None:
        self._groups = groups

    def select(self, *, group: str):
        return list(self._groups.get(group, []))


@pytest.fixture
def fake_entry_points(monkeypatch):
    groups = {
        "apidirectory.registry.driver": [
            _EntryPoint("hub", _SwaggerHubDriver),
            _EntryPoint("broken", ImportError("missing dependency")),
            _EntryPoint("shapeless", object()),
        ],
        "apidirectory.registry.validator": [_EntryPoint("lenient", _LenientValidator())],
    }
    monkeypatch.setattr(plugins.metadata, "entry_points", lambda: _EntryPoints(groups))
    plugins.ensure_plugins_loaded(reload=True)
    yield
    monkeypatch.undo()
    plugins.ensure_plugins_loaded(reload=True)


def test_entry_point_plugins_join_the_builtin_maps(fake_entry_points) -> None:
    assert isinstance(get_driver("swaggerhub"), _SwaggerHubDriver)
    assert "swaggerhub" in DRIVERS
    assert "broken" not in DRIVERS
    assert "shapeless" not in DRIVERS
    assert isinstance(get_validator("lenient"), _LenientValidator)
    assert plugins.plugin_versions("driver") == {"swaggerhub": "2.1.0"}


def test_reload_keeps_builtins(fake_entry_points) -> None:
    builtin = get_driver("apisjson")

    plugins.ensure_plugins_loaded(reload=True)

    assert get_driver("apisjson") is builtin


def test_unknown_plugin_kind() -> None:
    with pytest.raises(ValueError):
        plugins.get_plugin_registry("converter")
