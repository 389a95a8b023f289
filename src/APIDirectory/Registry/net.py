# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.net",
#   "purpose": "Shared async HTTPX clients with Hishel caching plus the document retrieval collaborator",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Client API", "anchor": "API", "kind": "api"},
#     {"id": "retrieval", "name": "Retrieval", "anchor": "RET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX + Hishel clients used by drivers and document retrieval.

Three on-disk caches mirror the registry layout: ``index`` for driver index
documents, ``archive`` for tarballs and zip files, and ``main`` for the API
documents themselves.  Each cache gets its own lazily created
:class:`httpx.AsyncClient`; tests replace all of them at once through
:func:`configure_http_client`.
"""

from __future__ import annotations

import contextlib
import logging
import ssl
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import certifi
import httpx
from hishel import AsyncCacheTransport, AsyncFileStorage, Controller

from .errors import RetrievalError
from .settings import RegistryConfig, get_default_config

__all__ = [
    "CACHE_NAMES",
    "RetrievalResult",
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
    "close_http_clients",
    "retrieve",
    "fetch",
    "fetch_json",
    "download",
]

LOGGER = logging.getLogger(__name__)

# --- Constants & globals -------------------------------------------------------

CACHE_NAMES = ("index", "archive", "main")

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENTS: Dict[str, httpx.AsyncClient] = {}
_OVERRIDE_CLIENT: Optional[httpx.AsyncClient] = None
_CLIENT_FACTORY: Optional[Callable[[], Optional[httpx.AsyncClient]]] = None

Progress = Callable[[str], None]

# --- Client construction helpers ----------------------------------------------


def _cache_root(config: RegistryConfig, cache: str) -> Path:
    paths = config.paths
    roots = {
        "index": paths.index_cache,
        "archive": paths.archive_cache,
        "main": paths.main_cache,
    }
    if cache not in roots:
        raise ValueError(f"unknown cache {cache!r}")
    root = roots[cache]
    root.mkdir(parents=True, exist_ok=True)
    return root


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _controller() -> Controller:
    return Controller(
        cacheable_methods=["GET", "HEAD"],
        cacheable_status_codes=[200, 203, 300, 301, 308, 404, 410],
        cache_private=True,
        allow_heuristics=False,
        always_revalidate=True,
    )


async def _response_hook(response: httpx.Response) -> None:
    LOGGER.debug(
        "registry-http-response",
        extra={
            "url": str(response.request.url),
            "status": response.status_code,
            "cache_hit": bool(response.extensions.get("from_cache")),
        },
    )


def _timeout_for(config: RegistryConfig, *, slow: bool = False) -> httpx.Timeout:
    http = config.http
    read = http.slow_timeout_sec if slow else http.timeout_sec
    return httpx.Timeout(connect=http.connect_timeout_sec, read=read, write=read, pool=http.connect_timeout_sec)


def _build_http_client(cache_root: Path, config: RegistryConfig) -> httpx.AsyncClient:
    http = config.http
    verify: Union[ssl.SSLContext, bool] = _build_ssl_context() if http.verify_tls else False
    transport = AsyncCacheTransport(
        transport=httpx.AsyncHTTPTransport(retries=http.max_retries, verify=verify, http2=http.http2_enabled),
        storage=AsyncFileStorage(base_path=cache_root),
        controller=_controller(),
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=_timeout_for(config),
        headers=http.request_headers(),
        trust_env=True,
        follow_redirects=http.follow_redirects,
        event_hooks={"response": [_response_hook]},
    )


# --- Client API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.AsyncClient] = None,
    *,
    factory: Optional[Callable[[], Optional[httpx.AsyncClient]]] = None,
) -> None:
    """Override the shared HTTPX clients or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    global _OVERRIDE_CLIENT, _CLIENT_FACTORY
    with _CLIENT_LOCK:
        _HTTP_CLIENTS.clear()
        _OVERRIDE_CLIENT = client
        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Forget overrides and cached clients (test helper)."""

    global _OVERRIDE_CLIENT, _CLIENT_FACTORY
    with _CLIENT_LOCK:
        _HTTP_CLIENTS.clear()
        _OVERRIDE_CLIENT = None
        _CLIENT_FACTORY = None


def get_http_client(config: Optional[RegistryConfig] = None, *, cache: str = "main") -> httpx.AsyncClient:
    """Return the shared client for ``cache``, creating it if necessary."""

    global _OVERRIDE_CLIENT
    with _CLIENT_LOCK:
        if _OVERRIDE_CLIENT is not None:
            return _OVERRIDE_CLIENT
        if _CLIENT_FACTORY is not None:
            candidate = _CLIENT_FACTORY()
            if candidate is not None and not isinstance(candidate, httpx.AsyncClient):
                raise TypeError("client factory must return an httpx.AsyncClient or None")
            if candidate is not None:
                LOGGER.info(
                    "using custom httpx client",
                    extra={"factory": getattr(_CLIENT_FACTORY, "__qualname__", repr(_CLIENT_FACTORY))},
                )
                _OVERRIDE_CLIENT = candidate
                return candidate
        existing = _HTTP_CLIENTS.get(cache)
        if existing is not None:
            return existing
        cfg = config or get_default_config()
        client = _build_http_client(_cache_root(cfg, cache), cfg)
        _HTTP_CLIENTS[cache] = client
        return client


async def close_http_clients() -> None:
    """Close the clients this module created; injected clients are left open."""

    with _CLIENT_LOCK:
        clients = list(_HTTP_CLIENTS.values())
        _HTTP_CLIENTS.clear()
    for client in clients:
        with contextlib.suppress(Exception):
            await client.aclose()


# --- Retrieval ------------------------------------------------------------------


@dataclass
class RetrievalResult:
    """Outcome of fetching a document from any supported location."""

    ok: bool
    status: Optional[int]
    text: Optional[str] = None
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    url: Optional[str] = None

    @property
    def mediatype(self) -> Optional[str]:
        return self.headers.get("content-type")


def _file_url_path(url: str) -> Path:
    parsed = urlparse(url)
    return Path(url2pathname(unquote(parsed.path)))


def _read_local(path: Path, url: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RetrievalError(f"Could not read {url}: {exc}") from exc


async def retrieve(
    url: str,
    *,
    config: Optional[RegistryConfig] = None,
    cached: Optional[str] = None,
    provider: Optional[Mapping[str, Any]] = None,
    slow: bool = False,
    method: str = "GET",
    body: Optional[str] = None,
    progress: Optional[Progress] = None,
) -> RetrievalResult:
    """Fetch the document at ``url``.

    Sources are tried in a fixed order: an explicit ``cached`` file is read
    in place of the URL, then any bodies the provider's driver stored under
    ``data``, then HTTP(S) and ``blob:`` URLs, ``file://`` URLs, and finally
    ``url`` as a plain local path.

    Raises:
        RetrievalError: On transport failures or unreadable local files.
    """

    cfg = config or get_default_config()
    mark = progress or (lambda marker: None)

    if cached:
        mark("L")
        path = cfg.paths.resolve(cached)
        return RetrievalResult(ok=True, status=200, text=_read_local(path, url), url=path.resolve().as_uri())

    data = provider.get("data") if provider else None
    if data:
        mark("S")
        for item in data:
            if item.get("url") == url:
                return RetrievalResult(ok=True, status=200, text=item.get("text"), url=url)
        LOGGER.warning(
            "Could not find %s in stored data",
            url,
            extra={"stage": "retrieve", "stored_urls": ", ".join(str(item.get("url")) for item in data)},
        )
        return RetrievalResult(ok=False, status=404, url=url)

    if url.startswith("http") or url.startswith("blob"):
        mark("F")
        headers = {"Accept": "*/*", "Accept-Encoding": "gzip,deflate"}
        if body:
            headers["Content-Type"] = "application/json"
        client = get_http_client(cfg, cache="main")
        try:
            response = await client.request(
                method or "GET",
                url,
                content=body,
                headers=headers,
                timeout=_timeout_for(cfg, slow=slow),
            )
        except httpx.HTTPError as exc:
            raise RetrievalError(f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            return RetrievalResult(ok=False, status=response.status_code, headers=response.headers, url=url)
        return RetrievalResult(
            ok=True,
            status=response.status_code,
            text=response.text,
            headers=response.headers,
            url=str(response.url),
        )

    mark("L")
    if url.startswith("file"):
        path = _file_url_path(url)
        return RetrievalResult(ok=True, status=200, text=_read_local(path, url), url=url)

    path = cfg.paths.resolve(url)
    return RetrievalResult(ok=True, status=200, text=_read_local(path, url), url=path.resolve().as_uri())


async def fetch(url: str, *, config: Optional[RegistryConfig] = None, cache: str = "index") -> httpx.Response:
    """GET ``url`` through the cache named ``cache``.

    Raises:
        RetrievalError: On transport failures.
    """

    cfg = config or get_default_config()
    client = get_http_client(cfg, cache=cache)
    try:
        return await client.get(url, timeout=_timeout_for(cfg, slow=True))
    except httpx.HTTPError as exc:
        raise RetrievalError(f"{type(exc).__name__}: {exc}") from exc


async def fetch_json(url: str, *, config: Optional[RegistryConfig] = None) -> Optional[Any]:
    """Return the decoded JSON index at ``url`` or ``None`` on a non-OK status."""

    response = await fetch(url, config=config, cache="index")
    if not response.is_success:
        LOGGER.warning(
            "Received status code %s",
            response.status_code,
            extra={"stage": "driver", "url": url},
        )
        return None
    return response.json()


async def download(
    url: str,
    destination: Path,
    *,
    config: Optional[RegistryConfig] = None,
) -> Optional[Path]:
    """Save the archive at ``url`` to ``destination``; ``None`` on a non-OK status."""

    response = await fetch(url, config=config, cache="archive")
    if not response.is_success:
        LOGGER.warning(
            "Received status code %s",
            response.status_code,
            extra={"stage": "driver", "url": url},
        )
        return None
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(response.content)
    return destination
