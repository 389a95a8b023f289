# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.documents",
#   "purpose": "YAML codec, hashing, version cleansing, and canonical ordering for API documents",
#   "sections": [
#     {"id": "yaml", "name": "YAML Codec", "anchor": "YAML", "kind": "helpers"},
#     {"id": "identity", "name": "Document Identity", "anchor": "IDN", "kind": "helpers"},
#     {"id": "ordering", "name": "Canonical Ordering", "anchor": "ORD", "kind": "helpers"},
#     {"id": "io", "name": "Atomic Writes", "anchor": "IO", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Helpers for reading, fingerprinting, and writing API description documents.

The registry and every harvested document share one YAML dialect: timestamps
stay strings (so ``added``/``updated`` compare lexically with the run token),
anchors are never emitted, lines are never folded, and mapping order is
preserved.  Re-serialising a tree that was parsed with :func:`yaml_parse`
therefore produces byte-identical output.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from packaging.version import InvalidVersion, Version

from .errors import DocumentValidationError
from .tree import Tree, sort_tree

__all__ = [
    "FIELD_ORDER",
    "yaml_parse",
    "yaml_dump",
    "sha256",
    "clean_version",
    "major_minor",
    "count_endpoints",
    "sort_document",
    "detect_format",
    "is_api_blueprint",
    "normalise_info_version",
    "read_document",
    "write_text_atomic",
]

LOGGER = logging.getLogger(__name__)

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"

FIELD_ORDER: Tuple[str, ...] = (
    "swagger",
    "schemes",
    "host",
    "basePath",
    "openapi",
    "asyncapi",
    "id",
    "servers",
    "x-hasEquivalentPaths",
    "info",
    "externalDocs",
    "consumes",
    "produces",
    "securityDefinitions",
    "security",
    "parameters",
    "responses",
    "tags",
    "paths",
    "baseTopic",
    "topics",
    "channels",
    "definitions",
    "components",
)


# --- YAML Codec ---


class _DocumentLoader(yaml.SafeLoader):
    pass


class _DocumentDumper(yaml.SafeDumper):
    def ignore_aliases(self, data: Any) -> bool:
        return True


def _without_timestamps(cls: type) -> None:
    cls.yaml_implicit_resolvers = {
        first: [(tag, pattern) for tag, pattern in resolvers if tag != _TIMESTAMP_TAG]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }


_without_timestamps(_DocumentLoader)
_without_timestamps(_DocumentDumper)
_DocumentDumper.add_representer(Tree, yaml.representer.SafeRepresenter.represent_dict)


def yaml_parse(text: str, *, lenient: bool = True) -> Any:
    """Parse YAML (or JSON) text, retrying leniently when strict parsing fails.

    The lenient pass accepts JSON that is not valid YAML, most commonly JSON
    indented with tab characters.

    Raises:
        DocumentValidationError: When neither pass can parse ``text``.
    """

    try:
        return yaml.load(text, Loader=_DocumentLoader)  # noqa: S506 - SafeLoader subclass
    except yaml.YAMLError as exc:
        if not lenient:
            raise DocumentValidationError(f"YAML parse failure: {exc}", context="parse") from exc
        LOGGER.warning("Falling back to lenient parsing", extra={"stage": "parse"})
        try:
            return json.loads(text)
        except ValueError:
            raise DocumentValidationError(
                "Failed to parse input as YAML or JSON", context="parse"
            ) from exc


def yaml_dump(value: Any) -> str:
    """Serialise ``value`` preserving key order, without folding or anchors."""

    return yaml.dump(
        value,
        Dumper=_DocumentDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


# --- Document Identity ---


def sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def clean_version(version: Any) -> str:
    """Return ``version`` safe for use as both a registry key and a path segment.

    Raises:
        DocumentValidationError: If nothing but dots would be left.

    Examples:
        >>> clean_version("2019-01-01/preview:beta.*")
        '2019-01-01-previewbeta'
    """

    text = str(version).replace("/", "-").replace("\\", "-").replace(":", "").replace(".*", "")
    if not text.strip("."):
        raise DocumentValidationError(f"Unusable version {version!r}")
    return text


def major_minor(version: Any) -> str:
    """Collapse a format version to ``major.minor`` (``"3.0.3"`` -> ``"3.0"``)."""

    text = str(version)
    try:
        parsed = Version(text)
    except InvalidVersion:
        return text
    return f"{parsed.major}.{parsed.minor}"


def count_endpoints(document: Mapping[str, Any]) -> int:
    """Count top-level operations for OpenAPI, AsyncAPI 1.x and AsyncAPI 2.x."""

    for key in ("paths", "webhooks", "topics", "channels"):
        value = document.get(key)
        if isinstance(value, Mapping):
            return len(value)
    return 0


def is_api_blueprint(text: str) -> bool:
    return text.startswith("FORMAT: ")


def detect_format(document: Optional[Mapping[str, Any]]) -> Optional[Tuple[str, str]]:
    """Return ``(format, version)`` describing what kind of document this is."""

    if not isinstance(document, Mapping):
        return None
    if document.get("openapi"):
        return "openapi", major_minor(document["openapi"])
    if document.get("swagger"):
        return "swagger", str(document["swagger"])
    if document.get("asyncapi"):
        return "asyncapi", major_minor(document["asyncapi"])
    if document.get("discoveryVersion"):
        return "google", str(document["discoveryVersion"])
    info = document.get("info")
    if isinstance(info, Mapping) and info.get("_postman_id"):
        return "postman", "2.x"
    if document.get("id") and document.get("requests"):
        return "postman", "1.0"
    return None


# --- Canonical Ordering ---


def sort_document(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Sort keys recursively, then lift well-known top-level fields to the front."""

    ordered = sort_tree(document)
    if not (ordered.get("openapi") or ordered.get("swagger") or ordered.get("asyncapi")):
        return ordered
    result: Dict[str, Any] = {}
    for name in FIELD_ORDER:
        if name in ordered:
            result[name] = ordered.pop(name)
    result.update(ordered)
    return result


# --- Atomic Writes ---


def read_document(path: Path) -> Tuple[str, Any]:
    """Return ``(text, parsed)`` for the document stored at ``path``."""

    text = Path(path).read_text(encoding="utf-8")
    return text, yaml_parse(text)


def write_text_atomic(path: Path, text: str) -> Path:
    """Atomically persist ``text`` to ``path``, creating parent directories."""

    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=str(resolved.parent), delete=False
    ) as handle:
        handle.write(text)
        handle.flush()
        try:
            os.fsync(handle.fileno())
        except (AttributeError, OSError):
            pass
        temp_name = handle.name
    Path(temp_name).replace(resolved)
    return resolved


_VERSION_TRAILER = re.compile(r"\.+$")


def normalise_info_version(document: Dict[str, Any], default: str) -> str:
    """Coerce ``info.version`` to a non-empty string without a trailing dot."""

    info = document.setdefault("info", {})
    version = info.get("version")
    if version is None or version == "" or version == "version":
        version = default
    version = _VERSION_TRAILER.sub("", str(version)) or default
    info["version"] = version
    return version
