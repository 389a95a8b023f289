"""Fold driver leads into known candidates."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from .models import Candidate, LeadMap

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = ["trim_leads"]

LOGGER = logging.getLogger(__name__)


def trim_leads(context: "RunContext", candidates: Iterable[Candidate]) -> LeadMap:
    """Consume leads that point at documents the registry already tracks.

    Matching is by the candidate's ``source.url`` alone.  A matched lead hands
    over its cached ``file`` (stored relative to the registry root) and a
    strictly boolean ``preferred`` flag, then leaves the map.  Whatever is
    left are genuinely new documents.
    """

    leads = context.leads
    folded = 0
    if leads:
        for candidate in candidates:
            url = candidate.source_url
            if not url or url not in leads:
                continue
            lead = leads.pop(url)
            if lead.provider and lead.provider != candidate.provider:
                LOGGER.warning(
                    "lead for %s attributed to %s but registered under %s",
                    url,
                    lead.provider,
                    candidate.provider,
                    extra={"stage": "leads", "url": url},
                )
            if lead.file:
                candidate.md["cached"] = context.config.paths.relative(Path(lead.file))
            if isinstance(lead.preferred, bool):
                candidate.md["preferred"] = lead.preferred
            folded += 1
    if folded:
        context.mark_dirty()
    if leads:
        LOGGER.info("%d new leads", len(leads), extra={"stage": "leads", "leads": len(leads)})
    return leads
