"""Merge scanner output into the registry and mark entries for this run."""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .merge import merge_entry
from .models import PATCH_KEY, DiscoveredDocument, Registry, iter_entries

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = ["populate_metadata", "mark_for_run", "ingest_document"]

LOGGER = logging.getLogger(__name__)


def mark_for_run(context: "RunContext", pathspec: str) -> int:
    """Stamp ``run`` on every entry whose file lives below ``pathspec``.

    With ``options.small`` set, providers with at least
    ``config.small_provider_cap`` services are left alone.  Marking alone
    does not make the store dirty; the markers are persisted with whatever
    mutation the command itself makes.
    """

    cap = context.config.small_provider_cap
    marked = 0
    for _provider, gp, _service, _parent, _version, md in iter_entries(context.registry):
        filename = md.get("filename")
        if not isinstance(filename, str) or not filename.startswith(pathspec):
            continue
        if context.options.small and len(gp.get("apis") or {}) >= cap:
            continue
        md["run"] = context.now
        marked += 1
    LOGGER.debug("%d entries marked", marked, extra={"stage": "reconcile"})
    return marked


def _origin_chain(info: Mapping[str, Any]) -> List[Dict[str, Any]]:
    origin = copy.deepcopy(info.get("x-origin"))
    if isinstance(origin, dict):
        origin = [origin]
    if not isinstance(origin, list) or not origin:
        origin = [{}]
    return origin


def ingest_document(context: "RunContext", filename: str, document: DiscoveredDocument) -> Dict[str, Any]:
    """Merge one discovered document into the registry and return its entry."""

    registry: Registry = context.registry
    comps = filename.split("/")
    name = comps.pop()
    version = comps.pop()
    info = document.info
    service = str(info.get("x-serviceName") or "")
    if service:
        comps.pop()
    path_provider = comps.pop() if comps else ""
    provider = str(info.get("x-providerName") or path_provider)

    preferred = info.get("x-preferred")
    origin = _origin_chain(info)
    source = origin.pop()
    format_version = document.format_version
    entry = {
        "name": name,
        "openapi": None if format_version is None else str(format_version),
        "preferred": preferred if isinstance(preferred, bool) else None,
        "unofficial": bool(info.get("x-unofficialSpec")),
        "filename": filename,
        "source": source,
        "history": origin,
        "hash": document.hash,
        "run": context.now,
    }

    gp = registry.get(provider)
    if not isinstance(gp, dict):
        gp = registry[provider] = {"driver": "url", "apis": {}}
    if document.parent_patch:
        gp[PATCH_KEY] = document.parent_patch
    apis = gp.setdefault("apis", {})
    parent = apis.get(service)
    if not isinstance(parent, dict):
        parent = apis[service] = {}
    if document.patch:
        parent[PATCH_KEY] = document.patch

    merged = merge_entry(parent.get(version), entry)
    merged.setdefault("added", context.now)
    merged.pop(PATCH_KEY, None)
    parent[version] = merged
    gp.pop("data", None)
    return merged


def populate_metadata(
    context: "RunContext",
    discovered: Optional[Mapping[str, DiscoveredDocument]] = None,
    pathspec: Optional[str] = None,
) -> Registry:
    """Reconcile ``discovered`` documents into the registry in place.

    An empty scan means a fast run over what the registry already knows, so
    matching entries are marked instead.
    """

    documents = context.discovered if discovered is None else discovered
    spec = context.pathspec if pathspec is None else pathspec
    if not documents:
        LOGGER.info("Default pathspec %s", spec, extra={"stage": "reconcile"})
        mark_for_run(context, spec)
    for filename, document in documents.items():
        ingest_document(context, filename, document)
    if documents:
        context.mark_dirty()
        LOGGER.info(
            "discovered documents reconciled",
            extra={"stage": "reconcile", "documents": len(documents)},
        )
    return context.registry
