"""Discovery of documents already materialised below a pathspec."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from .documents import sha256, yaml_parse
from .errors import DocumentValidationError
from .models import DiscoveredDocument

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = ["DOCUMENT_NAMES", "PATCH_FILENAME", "gather"]

LOGGER = logging.getLogger(__name__)

DOCUMENT_NAMES = ("openapi.yaml", "swagger.yaml", "asyncapi.yaml")
PATCH_FILENAME = "patch.yaml"


def _load_patch(directory: Path, cache: Dict[Path, Optional[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    if directory not in cache:
        patch_path = directory / PATCH_FILENAME
        patch: Optional[Dict[str, Any]] = None
        if patch_path.is_file():
            try:
                loaded = yaml_parse(patch_path.read_text(encoding="utf-8"))
            except DocumentValidationError as exc:
                LOGGER.warning("Unreadable patch %s: %s", patch_path, exc, extra={"stage": "gather"})
            else:
                if isinstance(loaded, dict) and loaded:
                    patch = loaded
        cache[directory] = patch
    return cache[directory]


def gather(context: "RunContext") -> Dict[str, DiscoveredDocument]:
    """Parse every document below the context's pathspec.

    The default pathspec means "everything the registry already knows", so no
    scan happens and an empty map is returned; reconciliation then falls back
    to marking existing entries.  Keys are paths relative to the registry
    root in POSIX form, matching the ``filename`` field of version entries.
    """

    paths = context.config.paths
    pathspec = context.pathspec
    discovered: Dict[str, DiscoveredDocument] = {}
    context.discovered = discovered
    if not pathspec or pathspec == paths.apis_dir:
        return discovered

    base = paths.resolve(pathspec)
    if not base.exists():
        LOGGER.warning("Pathspec not found %s", pathspec, extra={"stage": "gather"})
        return discovered
    LOGGER.info("Gathering from %s", pathspec, extra={"stage": "gather"})

    files = [base] if base.is_file() else sorted(base.rglob("*.yaml"))
    patch_cache: Dict[Path, Optional[Dict[str, Any]]] = {}
    for file in files:
        if file.name not in DOCUMENT_NAMES:
            continue
        text = file.read_text(encoding="utf-8")
        try:
            document = yaml_parse(text)
        except DocumentValidationError as exc:
            LOGGER.warning("Skipping unparsable %s: %s", file, exc, extra={"stage": "gather"})
            continue
        if not isinstance(document, Mapping) or not isinstance(document.get("info"), Mapping):
            LOGGER.warning("Skipping %s without an info object", file, extra={"stage": "gather"})
            continue
        info = dict(document["info"])
        version_dir = file.parent
        service_patch = None
        if info.get("x-serviceName"):
            service_dir = version_dir.parent
            provider_dir = service_dir.parent
            service_patch = _load_patch(service_dir, patch_cache)
        else:
            provider_dir = version_dir.parent
        discovered[paths.relative(file)] = DiscoveredDocument(
            info=info,
            hash=sha256(text),
            openapi=document.get("openapi"),
            swagger=document.get("swagger"),
            asyncapi=document.get("asyncapi"),
            patch=service_patch,
            parent_patch=_load_patch(provider_dir, patch_cache),
        )

    if discovered:
        LOGGER.info("%d API files read", len(discovered), extra={"stage": "gather"})
    return discovered
