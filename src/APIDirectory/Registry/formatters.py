"""Terminal presentation for registry runs.

Per-candidate progress is written as a compact line: the candidate label, a
run of single-character markers emitted as work happens (``F`` fetched over
HTTP, ``L`` read locally, ``S`` served from driver data, ``R`` resolved,
``C`` converted, ``V`` validated), then a final ``✔`` or ``✗``.  Colours are
disabled when ``NO_COLOR`` or ``NODE_DISABLE_COLORS`` is set.  Tabular
summaries reuse :func:`format_table`.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, TextIO, Tuple

__all__ = [
    "Colours",
    "StatusWriter",
    "FAILURE_TABLE_HEADERS",
    "LIST_TABLE_HEADERS",
    "colours_from_env",
    "format_table",
    "format_failure_rows",
]

FAILURE_TABLE_HEADERS: Tuple[str, ...] = ("provider", "service", "version", "status", "error")
LIST_TABLE_HEADERS: Tuple[str, ...] = ("provider", "driver", "service", "version", "filename")


@dataclass(frozen=True)
class Colours:
    red: str = "\x1b[31m"
    yellow: str = "\x1b[33;1m"
    green: str = "\x1b[32m"
    normal: str = "\x1b[0m"
    clear: str = "\r\x1b[1M"


_PLAIN = Colours(red="", yellow="", green="", normal="", clear="")


def colours_from_env(environ: Optional[Mapping[str, str]] = None) -> Colours:
    env = os.environ if environ is None else environ
    if env.get("NO_COLOR") or env.get("NODE_DISABLE_COLORS"):
        return _PLAIN
    return Colours()


class StatusWriter:
    """Writes progress markers and report lines for a run."""

    def __init__(self, stream: Optional[TextIO] = None, colours: Optional[Colours] = None) -> None:
        self._stream = stream
        self.colours = colours or colours_from_env()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def prepend(self, text: str) -> None:
        """Write ``text`` without a trailing newline."""

        self.stream.write(text)
        self.stream.flush()

    def line(self, *parts: Any) -> None:
        self.stream.write(" ".join(str(part) for part in parts) + "\n")
        self.stream.flush()

    def coloured(self, colour: str, text: Any) -> str:
        return f"{getattr(self.colours, colour)}{text}{self.colours.normal}"

    def mark(self, valid: bool) -> None:
        """Terminate the current progress line with a validity marker."""

        self.line("", self.coloured("green", "✔") if valid else self.coloured("red", "✗"))

    def clear(self) -> None:
        """Erase the current progress line."""

        self.prepend(self.colours.clear)


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render a padded ASCII table."""

    column_widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            column_widths[index] = max(column_widths[index], len(cell))

    def _format_row(values: Sequence[str]) -> str:
        return " | ".join(value.ljust(column_widths[index]) for index, value in enumerate(values))

    separator = "-+-".join("-" * width for width in column_widths)
    lines = [_format_row(headers), separator]
    lines.extend(_format_row(row) for row in rows)
    return "\n".join(lines)


def format_failure_rows(failures: Mapping[str, Any]) -> List[Tuple[str, str, str, str, str]]:
    """Flatten a failure tree into table rows."""

    rows: List[Tuple[str, str, str, str, str]] = []
    for provider, services in failures.items():
        for service, versions in services.items():
            for version, record in versions.items():
                status = record.get("status")
                rows.append(
                    (
                        str(provider),
                        str(service) or "-",
                        str(version),
                        "" if status is None else str(status),
                        str(record.get("error") or ""),
                    )
                )
    return rows
