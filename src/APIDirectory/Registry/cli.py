# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.cli",
#   "purpose": "Expose the registry CLI for updating, validating, and maintaining the API directory",
#   "sections": [
#     {"id": "parser", "name": "Parser Construction", "anchor": "PAR", "kind": "api"},
#     {"id": "arg-helpers", "name": "Argument Helpers", "anchor": "ARG", "kind": "helpers"},
#     {"id": "entrypoint", "name": "CLI Entrypoint", "anchor": "ENT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Command-line surface: ``registry <command> [pathspec] [options]``.

``pathspec`` defaults to the ``APIs`` directory; for ``add`` and ``check`` it
is the URL (or local path) of the document instead.  Invoked without a
command the CLI lists the available verbs and exits successfully.  The exit
status follows the run: ``0`` on success, ``1`` when candidates failed,
``2`` for usage errors and ``3`` when the failure report could not be saved.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .commands import COMMANDS, URL_COMMANDS
from .context import EXIT_FAILURES, EXIT_REPORT_FAILED, EXIT_USAGE
from .errors import RegistryError, SerializationError, UserConfigError
from .formatters import FAILURE_TABLE_HEADERS, format_failure_rows, format_table
from .logging_utils import setup_logging
from .pipeline import run
from .settings import DEFAULT_PATHSPEC, RunOptions, get_default_config

__all__ = ["cli_main", "main"]


# --- Parser Construction ---


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="registry",
        description="Maintain the API directory registry and its documents.",
    )
    parser.add_argument("command", nargs="?", help="Processing verb (omit to list them)")
    parser.add_argument(
        "pathspec",
        nargs="?",
        default=DEFAULT_PATHSPEC,
        help="Directory to scan, or the document URL for add/check (default: %(default)s)",
    )
    parser.add_argument("--service", help="Service name for added documents")
    parser.add_argument("--host", help="Override the server host of added documents")
    parser.add_argument("--logo", help="Logo URL recorded in x-logo")
    parser.add_argument(
        "--categories",
        type=_split_categories,
        default=[],
        help="Comma-separated x-apisguru-categories for added documents",
    )
    parser.add_argument("--force", action="store_true", help="Add documents even when validation fails")
    parser.add_argument("--debug", action="store_true", help="Log tracebacks for failures")
    parser.add_argument("--unofficial", action="store_true", help="Mark added documents as unofficial")
    parser.add_argument("--driver", help="Only process providers using this driver ('none' selects everything)")
    parser.add_argument("--small", action="store_true", help="Skip providers with many services")
    parser.add_argument("--skip-drivers", action="store_true", help="Do not run acquisition drivers")
    parser.add_argument("--auto-upgrade", help="Target OpenAPI version for conversion")
    parser.add_argument("--desclang", help="x-description-language for added documents")
    parser.add_argument("--cached", help="Read the document from this local file instead of its URL")
    parser.add_argument("--save-invalid", action="store_true", help="Write invalid documents to temp.yaml")
    parser.add_argument("--root", type=Path, help="Registry checkout root (default: current directory)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for registry output",
    )
    return parser


# --- Argument Helpers ---


def _split_categories(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _options_from_args(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        service=args.service,
        host=args.host,
        logo=args.logo,
        categories=list(args.categories),
        force=args.force,
        debug=args.debug,
        unofficial=args.unofficial,
        driver=args.driver,
        small=args.small,
        skip_drivers=args.skip_drivers,
        auto_upgrade=args.auto_upgrade,
        desclang=args.desclang,
        cached=args.cached,
        save_invalid=args.save_invalid,
    )


def _available_commands() -> List[str]:
    return sorted(COMMANDS) + sorted(URL_COMMANDS)


# --- CLI Entrypoint ---


def cli_main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the registry CLI.

    Args:
        argv: Optional argument vector supplied for testing or scripting.

    Returns:
        Process exit code for the run.
    """

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if not args.command:
        print("Available commands: " + ", ".join(_available_commands()))
        return 0
    if args.command not in COMMANDS and args.command not in URL_COMMANDS:
        print(f"Error: unknown command '{args.command}'", file=sys.stderr)
        print("Available commands: " + ", ".join(_available_commands()), file=sys.stderr)
        return EXIT_USAGE
    if args.command in URL_COMMANDS and args.pathspec == DEFAULT_PATHSPEC:
        print(f"Error: '{args.command}' requires a document URL", file=sys.stderr)
        return EXIT_USAGE

    try:
        config = get_default_config(copy=True)
        if args.root is not None:
            config.paths.root = args.root
        if args.log_level:
            config.logging.level = args.log_level
        logging_config = config.logging
        setup_logging(
            level=logging_config.level,
            retention_days=logging_config.retention_days,
            max_log_size_mb=logging_config.max_log_size_mb,
            log_dir=config.paths.log_dir,
        )
        result = asyncio.run(run(args.command, args.pathspec, _options_from_args(args), config))
    except (UserConfigError, PydanticValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except SerializationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_REPORT_FAILED
    except RegistryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURES
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_FAILURES

    rows = format_failure_rows(result.failures)
    if rows:
        print(format_table(FAILURE_TABLE_HEADERS, rows))
    return result.exit_code


def main() -> None:
    sys.exit(cli_main())


if __name__ == "__main__":  # pragma: no cover
    main()
