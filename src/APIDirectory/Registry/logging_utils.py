"""JSON-lines logging for registry runs.

Every module logs through ``logging.getLogger(__name__)`` below
:data:`LOGGER_NAME` and passes structured fields as ``extra``.
:func:`setup_logging` attaches a terse console handler plus a rotating
``registry-YYYYMMDD.jsonl`` file in which each record carries those fields
and, once :func:`bind_run` has been called, the command and run token of
the current run.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import shutil
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

__all__ = ["JSONFormatter", "LOGGER_NAME", "bind_run", "mask_sensitive_data", "setup_logging"]

LOGGER_NAME = "APIDirectory.Registry"

_MASK = "***masked***"
_SENSITIVE_KEYS = frozenset({"authorization", "api_key", "apikey", "token", "secret", "password"})
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}
_RUN_FIELDS: Dict[str, str] = {}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-like values masked.

    Keys naming a credential are masked, as is any string value carrying an
    ``apikey`` query parameter (source URLs sometimes do).

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """

    def _hide(key: str, value: object) -> bool:
        if key.lower() in _SENSITIVE_KEYS:
            return True
        return isinstance(value, str) and "apikey" in value.lower()

    return {key: _MASK if _hide(key, value) else value for key, value in payload.items()}


def bind_run(command: str, token: str) -> None:
    """Stamp ``command`` and the run token on every record written from now on."""

    _RUN_FIELDS.clear()
    _RUN_FIELDS.update({"command": command, "run": token})


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, logger, message, and every extra field."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_RUN_FIELDS)
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if not isinstance(value, (str, int, float, bool, type(None))):
                value = str(value)
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), ensure_ascii=False)


def _expire_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Gzip day files older than the retention window and delete expired archives."""

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    actions: List[str] = []
    for file in sorted(log_dir.glob("registry-*.jsonl*")):
        modified = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if modified >= cutoff:
            continue
        if file.suffix == ".gz":
            file.unlink(missing_ok=True)
            actions.append(f"deleted {file.name}")
            continue
        archive = file.with_name(file.name + ".gz")
        with file.open("rb") as source, gzip.open(archive, "wb") as target:
            shutil.copyfileobj(source, target)
        file.unlink(missing_ok=True)
        actions.append(f"compressed {file.name}")
    return actions


def _detach_registry_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if not getattr(handler, "_registry_managed", False):
            continue
        logger.removeHandler(handler)
        if getattr(handler, "stream", None) not in (sys.stdout, sys.stderr):
            handler.close()


def _resolve_log_dir(log_dir: Optional[Path]) -> Optional[Path]:
    if log_dir is not None:
        return log_dir
    configured = os.environ.get("APIREG_LOG_DIR", "").strip()
    return Path(configured) if configured else None


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the registry logger.

    Console output goes to stderr so that stdout stays reserved for progress
    lines and reports.  Without ``log_dir`` (or ``APIREG_LOG_DIR``) no file
    is written.  Calling this again replaces the handlers it installed.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _detach_registry_handlers(logger)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console._registry_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    directory = _resolve_log_dir(log_dir)
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
        for action in _expire_logs(directory, retention_days):
            logger.debug(action, extra={"stage": "logging"})
        day = datetime.now(timezone.utc).strftime("%Y%m%d")
        sink = RotatingFileHandler(
            directory / f"registry-{day}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        sink.setFormatter(JSONFormatter())
        sink._registry_managed = True  # type: ignore[attr-defined]
        logger.addHandler(sink)

    logger.propagate = propagate
    return logger
