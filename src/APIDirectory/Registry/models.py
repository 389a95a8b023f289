"""Record shapes shared by the registry store, reconcilers, and commands.

The persisted registry stays a tree of plain dictionaries so it serialises
byte-for-byte the way it was read.  The ``TypedDict`` declarations below
document the keys the code relies on; :class:`Candidate`, :class:`Lead`, and
:class:`DiscoveredDocument` are run-scoped views that are never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Tuple, TypedDict

__all__ = [
    "PATCH_KEY",
    "SourceRecord",
    "VersionEntry",
    "ProviderRecord",
    "Registry",
    "Candidate",
    "Lead",
    "LeadMap",
    "DiscoveredDocument",
    "iter_versions",
    "iter_entries",
]

PATCH_KEY = "patch"


class SourceRecord(TypedDict, total=False):
    url: str
    format: str
    version: str


class VersionEntry(TypedDict, total=False):
    name: str
    filename: str
    hash: str
    openapi: str
    source: SourceRecord
    history: List[SourceRecord]
    added: str
    updated: str
    valid: bool
    statusCode: int
    mediatype: str
    fixes: int
    autoUpgrade: str
    endpoints: int
    preferred: bool
    unofficial: bool
    cached: str
    run: Any


class ProviderRecord(TypedDict, total=False):
    driver: str
    apis: Dict[str, Dict[str, Any]]
    patch: Dict[str, Any]
    host: str
    data: List[Dict[str, str]]


Registry = Dict[str, Dict[str, Any]]


@dataclass
class Candidate:
    """A (provider, service, version) triple bound to its live registry nodes."""

    provider: str = ""
    driver: str = "url"
    service: str = ""
    version: str = ""
    parent: Dict[str, Any] = field(default_factory=dict)
    gp: Dict[str, Any] = field(default_factory=dict)
    md: Dict[str, Any] = field(default_factory=dict)
    info: Optional[Dict[str, Any]] = None

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.service}" if self.service else self.provider

    @property
    def source_url(self) -> Optional[str]:
        source = self.md.get("source") or {}
        return source.get("url") if isinstance(source, Mapping) else None

    def label(self) -> str:
        return f"{self.provider} {self.driver} {self.service or '-'} {self.version}"


@dataclass
class Lead:
    """A candidate document URL produced by an acquisition driver."""

    url: str
    service: Any = ""
    provider: Optional[str] = None
    preferred: Any = None
    file: Optional[str] = None


LeadMap = Dict[str, Lead]


@dataclass
class DiscoveredDocument:
    """Identity fields parsed from a document already on disk."""

    info: Dict[str, Any]
    hash: str
    openapi: Optional[str] = None
    swagger: Optional[str] = None
    asyncapi: Optional[str] = None
    patch: Optional[Dict[str, Any]] = None
    parent_patch: Optional[Dict[str, Any]] = None

    @property
    def format_version(self) -> Optional[str]:
        return self.openapi or self.swagger or self.asyncapi


def iter_versions(service: Mapping[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield ``(version, entry)`` pairs of a service, skipping its ``patch``."""

    for version, entry in list(service.items()):
        if version == PATCH_KEY or not isinstance(entry, MutableMapping):
            continue
        yield version, entry  # type: ignore[misc]


def iter_entries(
    registry: Mapping[str, Any],
) -> Iterator[Tuple[str, Dict[str, Any], str, Dict[str, Any], str, Dict[str, Any]]]:
    """Walk every version entry as ``(provider, gp, service, parent, version, md)``."""

    for provider, record in list(registry.items()):
        if not isinstance(record, MutableMapping):
            continue
        apis = record.get("apis") or {}
        for service, versions in list(apis.items()):
            if not isinstance(versions, MutableMapping):
                continue
            for version, entry in iter_versions(versions):
                yield provider, record, service, versions, version, entry  # type: ignore[misc]
