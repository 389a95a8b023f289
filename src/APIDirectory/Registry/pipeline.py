# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.pipeline",
#   "purpose": "Phase-ordered orchestration of one registry run",
#   "sections": [
#     {"id": "result", "name": "Run Result", "anchor": "RES", "kind": "api"},
#     {"id": "phases", "name": "Phase Helpers", "anchor": "PHS", "kind": "helpers"},
#     {"id": "run", "name": "Run Entry Point", "anchor": "RUN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Run orchestration.

A run walks a fixed sequence of phases, each awaited to completion before the
next starts:

1. load ``metadata/registry.yaml``;
2. gather documents below the pathspec and reconcile them into the registry
   (skipped when a driver filter is given; read-only commands only mark the
   entries already registered below the pathspec);
3. select candidates, grouping their providers by driver;
4. run each grouped driver once, collecting leads;
5. fold leads into known candidates; on ``update`` the remaining leads are
   ingested through ``add``;
6. the command's startup hook, the per-candidate loop, and its wrap-up hook
   (newly added candidates first);
7. save the registry and the failure report.

``add`` and ``check`` take a URL in place of the pathspec and skip straight
from load to save.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .commands import CANDIDATE_ERRORS, COMMANDS, URL_COMMANDS, Command
from .context import RunContext
from .drivers import run_drivers
from .errors import UserConfigError
from .leads import trim_leads
from .logging_utils import bind_run
from .models import Candidate, LeadMap
from .net import close_http_clients
from .reconcile import mark_for_run, populate_metadata
from .scanner import gather
from .selection import get_candidates
from .settings import DEFAULT_PATHSPEC, RegistryConfig, RunOptions, get_default_config

__all__ = ["RunResult", "run", "ingest_leads", "process_candidate"]

LOGGER = logging.getLogger(__name__)


# --- Run Result ---


@dataclass
class RunResult:
    """Summary of a finished run."""

    command: str
    candidates: int
    exit_code: int
    failures: Dict[str, Any] = field(default_factory=dict)


# --- Phase Helpers ---


async def ingest_leads(context: RunContext, leads: LeadMap) -> int:
    """Add every remaining lead as a new document, seeding options from the lead."""

    base_options = context.options
    added = 0
    try:
        for url, lead in list(leads.items()):
            record = context.registry.get(lead.provider) if lead.provider else None
            context.options = replace(
                base_options,
                service="" if lead.service is None else str(lead.service),
                cached=context.config.paths.relative(Path(lead.file)) if lead.file else None,
                host=(record or {}).get("host") if lead.provider else base_options.host,
                provider_key=lead.provider,
            )
            if await URL_COMMANDS["add"](context, url):
                added += 1
    finally:
        context.options = base_options
    if added:
        LOGGER.info("%d new documents added from leads", added, extra={"stage": "leads"})
    return added


async def process_candidate(context: RunContext, command: Command, candidate: Candidate) -> None:
    """Run ``command`` for one candidate, recording any failure in the ledger."""

    context.status.prepend(f"{candidate.label()} ")
    try:
        await command.run(context, candidate)
    except CANDIDATE_ERRORS as exc:
        LOGGER.warning(
            "%s failed for %s: %s",
            command.name,
            candidate.label(),
            exc,
            extra={"stage": "command", "command": command.name, "candidate": candidate.key},
        )
        context.failures.record(candidate, getattr(exc, "status_code", None), exc, command.name)
        context.status.line(context.status.coloured("red", exc))
    if command.mutates:
        context.mark_dirty()


# --- Run Entry Point ---


async def run(
    command: str,
    pathspec: Optional[str] = None,
    options: Optional[RunOptions] = None,
    config: Optional[RegistryConfig] = None,
    *,
    context: Optional[RunContext] = None,
) -> RunResult:
    """Execute ``command`` over ``pathspec`` (or a URL for ``add``/``check``).

    Raises:
        UserConfigError: If ``command`` is not a known verb.
        RegistryLoadError: If the registry cannot be loaded.
        ConfigurationError: If a selected provider names an unknown driver.
        SerializationError: If the registry could only be dumped for debugging.
    """

    if command not in COMMANDS and command not in URL_COMMANDS:
        available = ", ".join(sorted([*COMMANDS, *URL_COMMANDS]))
        raise UserConfigError(f"Unknown command '{command}'. Available: {available}")
    if context is None:
        context = RunContext(
            command=command,
            pathspec=pathspec or DEFAULT_PATHSPEC,
            options=options or RunOptions(),
            config=config or get_default_config(copy=True),
        )
    bind_run(command, context.now)

    try:
        context.load()
        if command in URL_COMMANDS:
            await URL_COMMANDS[command](context, context.pathspec)
            await context.save()
            return RunResult(command, 1, context.exit_code, context.failures.to_dict())

        verb = COMMANDS[command]
        if not context.options.driver:
            if verb.mutates:
                populate_metadata(context, gather(context), context.pathspec)
            else:
                mark_for_run(context, context.pathspec)
        candidates: List[Candidate] = get_candidates(context)
        await run_drivers(context)
        leads = trim_leads(context, candidates)
        if command == "update" and leads:
            await ingest_leads(context, leads)

        if verb.startup is not None:
            candidates = await verb.startup(context, candidates)
        for candidate in candidates:
            await process_candidate(context, verb, candidate)
        if verb.wrapup is not None:
            if context.new_candidates:
                await verb.wrapup(context, context.new_candidates)
            await verb.wrapup(context, candidates)

        await context.save()
        LOGGER.info(
            "run complete",
            extra={"stage": "run", "command": command, "candidates": len(candidates), "exit_code": context.exit_code},
        )
        return RunResult(command, len(candidates), context.exit_code, context.failures.to_dict())
    finally:
        await context.browser.close()
        await close_http_clients()
