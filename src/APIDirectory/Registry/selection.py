"""Candidate selection and driver grouping."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .models import Candidate, iter_entries

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = ["SELECT_ALL_DRIVER", "selects_all", "get_candidates", "register_driver_group"]

LOGGER = logging.getLogger(__name__)

SELECT_ALL_DRIVER = "none"


def selects_all(context: "RunContext", command: Optional[str] = None, pathspec: Optional[str] = None) -> bool:
    """Return whether every entry is selected regardless of ``run`` markers."""

    if context.options.driver == SELECT_ALL_DRIVER:
        return True
    command = context.command if command is None else command
    pathspec = context.pathspec if pathspec is None else pathspec
    return pathspec == context.config.paths.apis_dir and command != "update"


def register_driver_group(context: "RunContext", driver: str, provider: str, record: Dict[str, Any]) -> None:
    context.driver_groups.setdefault(driver, {})[provider] = record


def get_candidates(context: "RunContext", command: Optional[str] = None, pathspec: Optional[str] = None) -> List[Candidate]:
    """Enumerate the entries this run acts on, in registry order.

    Every selection also registers its provider under its driver in
    ``context.driver_groups`` so each provider's driver runs at most once.
    """

    select_all = selects_all(context, command, pathspec)
    driver_filter = None if select_all else context.options.driver
    result: List[Candidate] = []
    for provider, gp, service, parent, version, md in iter_entries(context.registry):
        driver = gp.get("driver")
        if not (
            select_all
            or (driver_filter and driver_filter == driver)
            or (not driver_filter and md.get("run") == context.now)
        ):
            continue
        candidate = Candidate(
            provider=provider,
            driver=driver,
            service=service,
            version=version,
            parent=parent,
            gp=gp,
            md=md,
        )
        discovered = context.discovered.get(md.get("filename"))
        if discovered is not None:
            candidate.info = discovered.info
        result.append(candidate)
        register_driver_group(context, driver, provider, gp)

    LOGGER.info("%d candidates found", len(result), extra={"stage": "select", "candidates": len(result)})
    return result
