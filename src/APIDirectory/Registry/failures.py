"""Run-scoped ledger of soft per-candidate failures."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from .models import Candidate
from .tree import Tree

__all__ = ["FailureLedger"]

LOGGER = logging.getLogger(__name__)


class FailureLedger:
    """Three-level ``provider -> service -> version`` map of failure records.

    Only the latest failure per triple is kept.  Every :meth:`record` call
    invokes ``on_record`` so the owning run can flip its exit code.
    """

    def __init__(self, on_record: Optional[Callable[[], None]] = None) -> None:
        self._tree = Tree()
        self._on_record = on_record

    def record(
        self,
        candidate: Candidate,
        status: Optional[int] = None,
        error: Optional[Any] = None,
        context: Optional[Any] = None,
    ) -> Dict[str, Any]:
        entry = {
            "status": status,
            "error": str(error) if error else "",
            "context": context,
        }
        self._tree.path([candidate.provider, candidate.service])[candidate.version] = entry
        LOGGER.debug(
            "candidate failure recorded",
            extra={
                "stage": "ledger",
                "provider": candidate.provider,
                "service": candidate.service,
                "version": candidate.version,
                "status": status,
            },
        )
        if self._on_record is not None:
            self._on_record()
        return entry

    def get(self, provider: str, service: str, version: str) -> Optional[Dict[str, Any]]:
        services = self._tree.get(provider)
        if services is None:
            return None
        versions = services.get(service)
        if versions is None:
            return None
        return versions.get(version)

    def items(self) -> Iterator[Tuple[str, str, str, Dict[str, Any]]]:
        for provider, services in self._tree.items():
            for service, versions in services.items():
                for version, entry in versions.items():
                    yield provider, service, version, entry

    def __len__(self) -> int:
        return sum(1 for _ in self.items())

    def __bool__(self) -> bool:
        return any(True for _ in self.items())

    def to_dict(self) -> Dict[str, Any]:
        return self._tree.to_dict()
