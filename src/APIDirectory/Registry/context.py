"""Per-run state threaded through every phase of a registry run.

A :class:`RunContext` is built once per invocation and handed to the scanner,
reconcilers, selector, drivers, and commands in turn.  It owns the loaded
registry (through its :class:`~APIDirectory.Registry.registry.RegistryStore`),
the shared leads map, the driver groups, the failure ledger, the run token,
and the lazily launched browser.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .browser import BrowserSession
from .errors import SerializationError
from .failures import FailureLedger
from .formatters import StatusWriter
from .models import Candidate, DiscoveredDocument, LeadMap, Registry
from .registry import RegistryStore
from .settings import DEFAULT_PATHSPEC, RegistryConfig, RunOptions, get_default_config
from .validation import DocumentValidator, get_validator

__all__ = [
    "EXIT_OK",
    "EXIT_FAILURES",
    "EXIT_USAGE",
    "EXIT_REPORT_FAILED",
    "EXIT_NOT_RUN",
    "RunContext",
    "now_token",
]

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_USAGE = 2
EXIT_REPORT_FAILED = 3
EXIT_NOT_RUN = 99


def now_token() -> str:
    """Return the run token: an ISO-8601 UTC timestamp with millisecond precision."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class RunContext:
    command: str
    pathspec: str = DEFAULT_PATHSPEC
    options: RunOptions = field(default_factory=RunOptions)
    config: RegistryConfig = field(default_factory=lambda: get_default_config(copy=True))
    store: Optional[RegistryStore] = None
    now: str = field(default_factory=now_token)
    status: StatusWriter = field(default_factory=StatusWriter)
    validator: Optional[DocumentValidator] = None
    leads: LeadMap = field(default_factory=dict)
    driver_groups: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    discovered: Dict[str, DiscoveredDocument] = field(default_factory=dict)
    new_candidates: List[Candidate] = field(default_factory=list)
    browser: BrowserSession = field(default_factory=BrowserSession)
    exit_code: int = EXIT_NOT_RUN
    failures: FailureLedger = field(init=False)

    def __post_init__(self) -> None:
        if self.store is None:
            self.store = RegistryStore(self.config.paths)
        if self.validator is None:
            self.validator = get_validator(self.config.validator)
        self.failures = FailureLedger(on_record=self._flag_failure)

    def _flag_failure(self) -> None:
        self.exit_code = EXIT_FAILURES

    @property
    def registry(self) -> Registry:
        assert self.store is not None
        return self.store.registry

    def mark_dirty(self) -> None:
        assert self.store is not None
        self.store.mark_dirty()

    def load(self) -> Registry:
        assert self.store is not None
        return self.store.load(self.command)

    async def save(self) -> bool:
        """Normalise the exit code, persist the registry, and release the browser.

        Raises:
            SerializationError: When the registry could only be written as a
                debug dump.
        """

        assert self.store is not None
        if self.exit_code == EXIT_FAILURES and self.command == "update":
            self.exit_code = EXIT_OK
        if self.exit_code == EXIT_NOT_RUN:
            self.exit_code = EXIT_OK
        try:
            saved = self.store.save(self.command, self.failures.to_dict())
            if self.store.failures_error is not None:
                self.exit_code = EXIT_REPORT_FAILED
        finally:
            await self.browser.close()
        if not saved:
            self.exit_code = EXIT_REPORT_FAILED
            raise SerializationError(
                f"registry could not be serialised; see {self.config.paths.debug_dump_path}"
            )
        return saved
