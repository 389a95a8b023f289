"""Test helpers for exercising registry runs without network access."""

from __future__ import annotations

import contextlib
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

import httpx

from .documents import yaml_dump
from .net import configure_http_client, reset_http_client
from .settings import RegistryConfig

__all__ = ["use_mock_http_client", "route_handler", "make_config", "write_registry", "write_document"]

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


@contextlib.contextmanager
def use_mock_http_client(transport: httpx.AsyncBaseTransport, **client_kwargs: Any) -> Iterator[httpx.AsyncClient]:
    """Temporarily install an async HTTPX client backed by ``transport``."""

    client = httpx.AsyncClient(transport=transport, **client_kwargs)
    configure_http_client(client=client)
    try:
        yield client
    finally:
        reset_http_client()


def route_handler(routes: Mapping[str, Route]) -> Callable[[httpx.Request], httpx.Response]:
    """Build a :class:`httpx.MockTransport` handler from ``url -> response`` routes.

    Unknown URLs answer ``404``.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request) if callable(route) else route

    return handler


def make_config(root: Path) -> RegistryConfig:
    config = RegistryConfig()
    config.paths.root = root
    config.http.http2_enabled = False
    return config


def write_registry(config: RegistryConfig, registry: Mapping[str, Any]) -> Path:
    path = config.paths.registry_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml_dump(dict(registry)), encoding="utf-8")
    return path


def write_document(root: Path, relative: str, document: Dict[str, Any], *, patch: Optional[Dict[str, Any]] = None) -> Path:
    """Write ``document`` as YAML at ``root/relative``, with an optional sibling ``patch.yaml`` one level up."""

    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml_dump(document), encoding="utf-8")
    if patch is not None:
        (path.parent.parent / "patch.yaml").write_text(yaml_dump(patch), encoding="utf-8")
    return path
