# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.commands",
#   "purpose": "Per-candidate processing verbs, URL commands, and run wrap-up hooks",
#   "sections": [
#     {"id": "helpers", "name": "Document Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "preferred", "name": "Preferred Versions", "anchor": "PRF", "kind": "api"},
#     {"id": "update", "name": "Update", "anchor": "UPD", "kind": "api"},
#     {"id": "reports", "name": "Read-only Reports", "anchor": "RPT", "kind": "api"},
#     {"id": "maintenance", "name": "Maintenance Commands", "anchor": "MNT", "kind": "api"},
#     {"id": "urls", "name": "URL Commands", "anchor": "URL", "kind": "api"},
#     {"id": "registry", "name": "Command Registry", "anchor": "REG", "kind": "registry"}
#   ]
# }
# === /NAVMAP ===

"""Processing verbs applied to each selected candidate.

Every per-candidate command is an ``async`` callable taking the run context
and a :class:`~APIDirectory.Registry.models.Candidate`; it mutates the live
registry entry behind the candidate and reports progress through the run's
:class:`~APIDirectory.Registry.formatters.StatusWriter`.  Commands that only
read (``urls``, ``metadata``, ``contact``, ``404``, ``list``) are flagged as
such so the pipeline never marks the registry dirty on their behalf and the
store's save remains a no-op.

``add`` and ``check`` act on a URL rather than on candidates and are kept in
:data:`URL_COMMANDS`.  Optional ``startup`` hooks may filter the candidate
list before processing; ``wrapup`` hooks run once afterwards (for ``update``
and ``checkpref`` that is preferred-version reconciliation).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urljoin, urlparse

import tldextract
from packaging.version import InvalidVersion, Version

from .documents import (
    clean_version,
    count_endpoints,
    detect_format,
    is_api_blueprint,
    major_minor,
    normalise_info_version,
    read_document,
    sha256,
    sort_document,
    write_text_atomic,
    yaml_dump,
    yaml_parse,
)
from .errors import DocumentValidationError, RegistryError, RetrievalError
from .formatters import LIST_TABLE_HEADERS, format_table
from .merge import deep_overlay
from .models import PATCH_KEY, Candidate, iter_versions
from .net import retrieve
from .tree import Tree
from .validation import ValidationOutcome, validate_candidate

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = [
    "Command",
    "COMMANDS",
    "URL_COMMANDS",
    "CANDIDATE_ERRORS",
    "register_command",
    "get_server",
    "get_provider",
    "update_preferred_flag",
    "reconcile_preferred",
]

LOGGER = logging.getLogger(__name__)

CandidateHandler = Callable[["RunContext", Candidate], Awaitable[Optional[bool]]]
UrlHandler = Callable[["RunContext", str], Awaitable[bool]]
StartupHook = Callable[["RunContext", List[Candidate]], Awaitable[List[Candidate]]]
WrapupHook = Callable[["RunContext", List[Candidate]], Awaitable[None]]

CANDIDATE_ERRORS: Tuple[type, ...] = (RegistryError, OSError, ValueError, TypeError, KeyError, AttributeError)

_DAY_SECONDS = 24 * 60 * 60
_SERVER_BLOCKLIST = ("localhost", "githubusercontent")
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


# --- Document Helpers ---


def _parse_text(context: "RunContext", text: str, mediatype: Optional[str] = None) -> Any:
    """Parse retrieved text, leaving API Blueprint input to the validator.

    ``info.version`` is coerced to a string before validation sees it.
    """

    if is_api_blueprint(text):
        return {}
    try:
        document = yaml_parse(text)
    except DocumentValidationError as exc:
        LOGGER.warning(
            "Failed to parse input as yaml or API Blueprint: %s",
            exc,
            extra={"stage": "parse", "content_type": mediatype or ""},
        )
        context.exit_code = 1
        return None
    if isinstance(document, dict) and isinstance(document.get("info"), dict):
        normalise_info_version(document, context.config.default_api_version)
    return document


def _adopt(outcome: ValidationOutcome, candidate: Candidate, document: Any) -> Any:
    """Return the validator's replacement document when it repaired or converted."""

    if outcome.document is None:
        return document
    if outcome.patches > 0 or outcome.warnings or outcome.target_version or candidate.md.get("autoUpgrade"):
        return outcome.document
    return document


def _document_path(context: "RunContext", candidate: Candidate) -> Path:
    filename = candidate.md.get("filename")
    if not filename:
        raise DocumentValidationError(f"{candidate.label()} has no filename")
    return context.config.paths.resolve(filename)


def _parse_time(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _status_code(candidate: Candidate) -> int:
    try:
        return int(candidate.md.get("statusCode") or 0)
    except (TypeError, ValueError):
        return 0


# --- Preferred Versions ---


def update_preferred_flag(context: "RunContext", candidate: Candidate, flag: Optional[bool]) -> Candidate:
    """Set (or with ``None`` remove) ``preferred`` in the entry and its document."""

    if flag is None:
        candidate.md.pop("preferred", None)
    else:
        candidate.md["preferred"] = flag
    context.mark_dirty()
    try:
        path = _document_path(context, candidate)
        _text, document = read_document(path)
        info = document.setdefault("info", {})
        if flag is None:
            info.pop("x-preferred", None)
        else:
            info["x-preferred"] = flag
        write_text_atomic(path, yaml_dump(document))
    except (OSError, DocumentValidationError, AttributeError) as exc:
        LOGGER.warning(
            "could not update x-preferred for %s: %s",
            candidate.label(),
            exc,
            extra={"stage": "preferred"},
        )
    return candidate


def _version_order(version: str) -> Tuple[int, Any]:
    try:
        return 1, Version(version)
    except InvalidVersion:
        return 0, version


def _choose_preferred(versions: Mapping[str, Dict[str, Any]]) -> Optional[str]:
    if not versions:
        return None
    epoch = datetime.fromtimestamp(0, tz=timezone.utc)

    def rank(version: str) -> Tuple[datetime, Tuple[int, Any]]:
        return _parse_time(versions[version].get("added")) or epoch, _version_order(version)

    return max(versions, key=rank)


def _unreachable(context: "RunContext", candidate: Candidate) -> bool:
    if _status_code(candidate) >= 400:
        return True
    return context.failures.get(candidate.provider, candidate.service, candidate.version) is not None


async def reconcile_preferred(context: "RunContext", candidates: List[Candidate]) -> None:
    """Leave at most one preferred version per ``provider[:service]``.

    Each service touched by ``candidates`` is judged on all of its versions
    in the registry.  Versions answering with an error status, or failing
    during this run, never win and keep an explicit ``preferred: false``.
    A lone reachable version carries no ``preferred`` flag at all;
    otherwise the most recently added reachable version wins, ties going to
    the greatest version number.
    """

    seen = set()
    for candidate in candidates:
        if candidate.key in seen:
            continue
        seen.add(candidate.key)
        versions = dict(iter_versions(candidate.parent))
        if not versions:
            continue
        views = {
            version: Candidate(
                provider=candidate.provider,
                driver=candidate.driver,
                service=candidate.service,
                version=version,
                parent=candidate.parent,
                gp=candidate.gp,
                md=md,
            )
            for version, md in versions.items()
        }
        failed = {version for version, view in views.items() if _unreachable(context, view)}
        if len(views) == 1:
            (only,) = views.values()
            if failed:
                if "preferred" in only.md and only.md["preferred"] is not False:
                    update_preferred_flag(context, only, False)
            elif "preferred" in only.md:
                update_preferred_flag(context, only, None)
            continue
        preferred = _choose_preferred({v: md for v, md in versions.items() if v not in failed})
        LOGGER.info(
            "%s preferred version %s",
            candidate.key,
            preferred,
            extra={"stage": "wrapup", "versions": len(views), "unreachable": len(failed)},
        )
        for version, view in views.items():
            wanted = version == preferred
            if view.md.get("preferred") is not wanted:
                update_preferred_flag(context, view, wanted)


# --- Update ---


def _record_unreachable(
    context: "RunContext",
    candidate: Candidate,
    status: Optional[int],
    mediatype: Optional[str],
    error: Optional[BaseException] = None,
) -> None:
    md = candidate.md
    if status is not None and status != md.get("statusCode"):
        md["statusCode"] = status
        LOGGER.warning(
            "%s %s %s just flipped to status %s",
            candidate.provider,
            candidate.service,
            candidate.version,
            status,
            extra={"stage": "update"},
        )
    if md.get("preferred") is True:
        update_preferred_flag(context, candidate, False)
    if mediatype:
        md["mediatype"] = mediatype
    context.failures.record(candidate, status, error, mediatype if error is not None else None)
    context.status.line(context.status.coloured("red", "" if status is None else status))


def _rename_version(context: "RunContext", candidate: Candidate, document: Dict[str, Any], new_version: str) -> None:
    md = candidate.md
    old_version = candidate.version
    if new_version != old_version:
        candidate.parent[new_version] = candidate.parent.pop(old_version)
        candidate.version = new_version
    old_filename = md["filename"]
    filename = old_filename.replace(f"/{old_version}/", f"/{new_version}/")
    if document.get("openapi"):
        filename = filename.replace("swagger.yaml", "openapi.yaml")
        md["name"] = "openapi.yaml"
        source = md.setdefault("source", {})
        source["format"] = "openapi"
        source["version"] = major_minor(document["openapi"])
    md["filename"] = filename
    paths = context.config.paths
    target = paths.resolve(filename)
    target.parent.mkdir(parents=True, exist_ok=True)
    origin = paths.resolve(old_filename)
    if filename != old_filename and origin.exists():
        origin.replace(target)


def _stamp_document(candidate: Candidate, document: Dict[str, Any]) -> Dict[str, Any]:
    md = candidate.md
    document = deep_overlay(document, candidate.gp.get(PATCH_KEY) or {})
    document = deep_overlay(document, candidate.parent.get(PATCH_KEY) or {})
    info = document.setdefault("info", {})
    categories = info.get("x-apisguru-categories")
    if isinstance(categories, list):
        info["x-apisguru-categories"] = list(dict.fromkeys(categories))
    info["x-providerName"] = candidate.provider
    origin = copy.deepcopy(md.get("history") or [])
    origin.append(copy.deepcopy(md.get("source") or {}))
    info["x-origin"] = origin
    if candidate.service:
        info["x-serviceName"] = candidate.service
    if isinstance(md.get("preferred"), bool):
        info["x-preferred"] = md["preferred"]
    if md.get("unofficial"):
        info["x-unofficialSpec"] = True
    if ".local" in candidate.provider and not document.get("swagger"):
        servers = document.get("servers")
        if not isinstance(servers, list):
            servers = document["servers"] = []
        if not any(candidate.provider in str((server or {}).get("url", "")) for server in servers):
            servers.insert(0, {"url": f"http://{candidate.provider}"})
    return document


async def update(context: "RunContext", candidate: Candidate) -> bool:
    """Re-fetch, re-validate, normalise, and rewrite one registry document."""

    url = candidate.source_url
    if not url:
        raise RetrievalError(f"{candidate.label()} has no source url")
    if candidate.driver == "external":
        return True

    md = candidate.md
    try:
        result = await retrieve(
            url,
            config=context.config,
            cached=md.get("cached"),
            provider=candidate.gp,
            method=candidate.gp.get("method") or "GET",
            body=md.get("body"),
            progress=context.status.prepend,
        )
    except RetrievalError as exc:
        LOGGER.warning("%s", exc, extra={"stage": "update", "url": url})
        _record_unreachable(context, candidate, exc.status_code, exc.mediatype, exc)
        return False

    if not result.ok:
        _record_unreachable(context, candidate, result.status, result.mediatype)
        return False

    md.pop("statusCode", None)
    text = result.text or ""
    document = _parse_text(context, text, result.mediatype)
    outcome = validate_candidate(context, candidate, document, text, url)
    if not outcome.valid:
        if context.options.save_invalid:
            write_text_atomic(context.config.paths.root / "temp.yaml", yaml_dump(document or {}))
        return False

    auto_upgrade = None
    adopted = _adopt(outcome, candidate, document)
    if adopted is not document:
        document = adopted
        auto_upgrade = document.get("openapi")

    new_version = clean_version(normalise_info_version(document, context.config.default_api_version))
    format_version = document.get("openapi") or document.get("swagger") or document.get("asyncapi")
    if new_version != candidate.version and new_version in candidate.parent:
        raise DocumentValidationError(
            f"{candidate.label()} now reports version {new_version}, which is already registered"
        )
    if new_version != candidate.version or str(format_version) != str(md.get("openapi")):
        context.status.line("  Updated to", new_version, "in", format_version)
        _rename_version(context, candidate, document, new_version)
        if format_version is not None:
            md["openapi"] = str(format_version)

    document = _stamp_document(candidate, document)
    content = yaml_dump(sort_document(document))
    write_text_atomic(context.config.paths.resolve(md["filename"]), content)
    new_hash = sha256(content)
    if md.get("hash") != new_hash:
        md["hash"] = new_hash
        md["updated"] = context.now
    md["endpoints"] = count_endpoints(document)
    md["fixes"] = outcome.fixes
    if auto_upgrade:
        md["autoUpgrade"] = auto_upgrade
        md["openapi"] = auto_upgrade
    return True


async def retry(context: "RunContext", candidate: Candidate) -> Optional[bool]:
    if _status_code(candidate) >= 400:
        return await update(context, candidate)
    context.status.clear()
    return None


# --- Read-only Reports ---


async def urls(context: "RunContext", candidate: Candidate) -> None:
    context.status.line()
    context.status.line("🔗 ", context.status.coloured("yellow", candidate.source_url))


async def metadata(context: "RunContext", candidate: Candidate) -> None:
    context.status.line()
    context.status.line(yaml_dump(candidate.md))


def _candidate_info(context: "RunContext", candidate: Candidate) -> Optional[Mapping[str, Any]]:
    if candidate.info is not None:
        return candidate.info
    try:
        _text, document = read_document(_document_path(context, candidate))
    except (OSError, DocumentValidationError):
        return None
    info = document.get("info") if isinstance(document, Mapping) else None
    return info if isinstance(info, Mapping) else None


async def contact(context: "RunContext", candidate: Candidate) -> None:
    status = context.status
    status.line()
    info = _candidate_info(context, candidate)
    if not info:
        return
    details = info.get("contact") or {}
    for icon, key in (("👤 ", "name"), ("🔗 ", "url"), ("📧 ", "email"), ("🐦 ", "x-twitter")):
        if details.get(key):
            status.line(icon, status.coloured("yellow", details[key]))
    license_info = info.get("license") or {}
    if license_info.get("name"):
        status.line("⚖ ", status.coloured("yellow", license_info["name"]))
    logo = info.get("x-logo") or {}
    if logo.get("url"):
        status.line("🖼 ", status.coloured("yellow", logo["url"]))


async def not_found(context: "RunContext", candidate: Candidate) -> None:
    status = context.status
    if _status_code(candidate) < 400:
        status.clear()
        return
    patch = {**(candidate.parent.get(PATCH_KEY) or {}), **(candidate.gp.get(PATCH_KEY) or {})}
    twitter = ((patch.get("info") or {}).get("contact") or {}).get("x-twitter")
    status.line("🔗 ", status.coloured("red", candidate.source_url), f"@{twitter}" if twitter else "")


async def nop(context: "RunContext", candidate: Candidate) -> bool:
    context.status.line("nop")
    return True


async def list_wrapup(context: "RunContext", candidates: List[Candidate]) -> None:
    rows = [
        (c.provider, str(c.driver), c.service or "-", c.version, str(c.md.get("filename") or ""))
        for c in candidates
    ]
    if rows:
        context.status.line(format_table(LIST_TABLE_HEADERS, rows))


# --- Maintenance Commands ---


async def _validate_file(context: "RunContext", candidate: Candidate) -> bool:
    try:
        path = _document_path(context, candidate)
        text, document = read_document(path)
    except (OSError, DocumentValidationError) as exc:
        context.failures.record(candidate, None, exc, "validate")
        LOGGER.warning("%s", exc, extra={"stage": "validate", "candidate": candidate.key})
        context.status.line(context.status.coloured("red", exc))
        return False
    outcome = validate_candidate(context, candidate, document, text, candidate.md["filename"])
    return outcome.valid


async def validate(context: "RunContext", candidate: Candidate) -> bool:
    return await _validate_file(context, candidate)


async def ci(context: "RunContext", candidate: Candidate) -> Optional[bool]:
    """Re-validate entries updated within ``config.ci_window_days`` of this run."""

    now = _parse_time(context.now)
    updated = _parse_time(candidate.md.get("updated"))
    if now is not None and updated is not None:
        age = round(abs((now - updated).total_seconds()) / _DAY_SECONDS)
        if age <= context.config.ci_window_days:
            return await _validate_file(context, candidate)
    context.status.line(context.status.coloured("yellow", "🕓"))
    return None


async def endpoints(context: "RunContext", candidate: Candidate) -> None:
    try:
        path = _document_path(context, candidate)
        _text, document = read_document(path)
        count = count_endpoints(document)
        candidate.md["endpoints"] = count
        if count == 0:
            path.unlink()
            candidate.parent.pop(candidate.version, None)
        context.status.line(context.status.coloured("green", f"e:{count}"))
    except (OSError, DocumentValidationError, AttributeError) as exc:
        context.failures.record(candidate, None, exc, "endpoints")
        context.status.line(context.status.coloured("red", exc))


async def purge(context: "RunContext", candidate: Candidate) -> None:
    filename = candidate.md.get("filename")
    if filename and context.config.paths.resolve(filename).exists():
        context.status.line()
        return
    context.status.line(context.status.coloured("yellow", "␡"))
    candidate.parent.pop(candidate.version, None)


async def rewrite(context: "RunContext", candidate: Candidate) -> None:
    path = _document_path(context, candidate)
    _text, document = read_document(path)
    info = document.get("info")
    if isinstance(info, dict):
        info["x-preferred"] = candidate.md.get("preferred")
    write_text_atomic(path, yaml_dump(document))
    context.status.line("rw")


async def remove(context: "RunContext", candidate: Candidate) -> None:
    """Delete the document and its entry, pruning emptied service and provider nodes."""

    context.status.line(context.status.coloured("red", "␡"))
    filename = candidate.md.get("filename")
    if filename:
        context.config.paths.resolve(filename).unlink(missing_ok=True)
    registry = context.registry
    apis = (registry.get(candidate.provider) or {}).get("apis") or {}
    service = apis.get(candidate.service)
    if service is None:
        return
    service.pop(candidate.version, None)
    if not service:
        del apis[candidate.service]
    if not apis:
        registry.pop(candidate.provider, None)


# --- URL Commands ---


def get_server(document: Dict[str, Any], url: str, host: Optional[str] = None) -> str:
    """Return the server URL (OpenAPI) or host (Swagger) a document targets.

    ``host`` overrides what the document declares.

    Raises:
        DocumentValidationError: When no server is declared or it is blocklisted.
    """

    if document.get("host"):
        if host:
            document["host"] = host
        return str(document["host"])
    servers = document.get("servers")
    if not isinstance(servers, list):
        servers = document["servers"] = []
    if host:
        servers.insert(0, {"url": host if host.startswith("http") else f"http://{host}"})
    first = servers[0] if servers else None
    if not isinstance(first, Mapping) or not first.get("url"):
        raise DocumentValidationError("Could not determine servers information")
    server = str(first["url"])
    if any(blocked in server for blocked in _SERVER_BLOCKLIST):
        raise DocumentValidationError("Server must not be in blocklist")
    return server


def get_provider(server: str, source: Optional[str] = None) -> str:
    """Infer a provider key (registrable domain) from a server URL.

    Examples:
        >>> get_provider("https://api.example.com/v1")
        'example.com'
        >>> get_provider("http://petstore.local")
        'petstore.local'
    """

    if "://" not in server and not server.startswith("/"):
        server = f"//{server}"
    absolute = urljoin(source or "", server)
    parsed = urlparse(absolute)
    host = parsed.netloc.rsplit("@", 1)[-1]
    extracted = _TLD_EXTRACT(absolute)
    if extracted.domain == "googleapis" or extracted.suffix.split(".")[0] == "googleapis":
        return "googleapis.com"
    if not extracted.suffix or not extracted.domain:
        return host.replace("api.", "", 1)
    return f"{extracted.domain}.{extracted.suffix}"


def _stored_provider(context: "RunContext") -> Optional[Mapping[str, Any]]:
    key = context.options.provider_key
    record = context.registry.get(key) if key else None
    return record if isinstance(record, Mapping) else None


def _describe_source(md: Dict[str, Any], original: Mapping[str, Any], document: Mapping[str, Any]) -> None:
    source = md["source"]
    detected = detect_format(original)
    if detected is None:
        return
    fmt, version = detected
    source["format"] = fmt
    source["version"] = version
    if fmt == "swagger":
        md["name"] = "openapi.yaml" if document.get("openapi") else "swagger.yaml"
        md["openapi"] = document.get("openapi") or document.get("swagger")
    elif fmt == "asyncapi":
        md["name"] = "asyncapi.yaml"
        md["openapi"] = str(original["asyncapi"])
    else:
        md["name"] = "openapi.yaml"
        md["openapi"] = document.get("openapi")


async def check(context: "RunContext", url: str) -> bool:
    """Validate the document at ``url`` and print the provider it would join."""

    status = context.status
    status.prepend(f"{url} ")
    try:
        result = await retrieve(url, config=context.config, cached=context.options.cached, progress=status.prepend)
        if not result.ok:
            status.line(status.coloured("red", result.status))
            context.exit_code = 1
            return False
        text = result.text or ""
        candidate = Candidate(md={"source": {"url": url}, "valid": False})
        document = _parse_text(context, text, result.mediatype)
        outcome = validate_candidate(context, candidate, document, text, url)
        document = _adopt(outcome, candidate, document)
        if not isinstance(document, dict):
            context.exit_code = 1
            return False
        if count_endpoints(document) == 0:
            LOGGER.warning("Cannot add API with 0 endpoints", extra={"stage": "check", "url": url})
            context.exit_code = 1
        status.line(get_provider(get_server(document, url, context.options.host), url))
        return outcome.valid
    except CANDIDATE_ERRORS as exc:
        LOGGER.warning("%s", exc, extra={"stage": "check", "url": url})
        context.exit_code = 1
        return False


async def add(context: "RunContext", url: str) -> bool:
    """Ingest the document at ``url`` as a brand new registry entry."""

    options = context.options
    status = context.status
    status.prepend(f"{url} ")
    try:
        result = await retrieve(
            url,
            config=context.config,
            cached=options.cached,
            provider=_stored_provider(context),
            slow=True,
            progress=status.prepend,
        )
        if not result.ok:
            LOGGER.warning("Received status code %s", result.status, extra={"stage": "add", "url": url})
            status.line(status.coloured("red", result.status))
            return False
        if result.url and not options.cached:
            url = result.url
        md: Dict[str, Any] = {"source": {"url": url}, "valid": False}
        if options.auto_upgrade:
            md["autoUpgrade"] = options.auto_upgrade
        candidate = Candidate(md=md)
        text = result.text or ""
        original = _parse_text(context, text, result.mediatype)
        outcome = validate_candidate(context, candidate, original, text, url)
        if not (outcome.valid or options.force):
            return False
        document = _adopt(outcome, candidate, original)
        if not isinstance(document, dict) or not isinstance(original, dict):
            LOGGER.warning("Nothing to add from %s", url, extra={"stage": "add"})
            return False
        document = copy.deepcopy(document)

        provider = get_provider(get_server(document, url, options.host), url)
        service = options.service or ""
        registry = context.registry
        gp = registry.get(provider)
        if isinstance(gp, dict):
            for _service, parent in (gp.get("apis") or {}).items():
                for _version, entry in iter_versions(parent):
                    if (entry.get("source") or {}).get("url") == url:
                        raise DocumentValidationError("URL already in metadata")

        info = document.setdefault("info", {})
        if options.logo:
            logo = info.get("x-logo")
            if not isinstance(logo, dict):
                logo = info["x-logo"] = {}
            logo["url"] = options.logo
        if options.desclang:
            info["x-description-language"] = options.desclang

        md["added"] = context.now
        md["updated"] = context.now
        md["history"] = []
        md["fixes"] = outcome.fixes
        _describe_source(md, original, document)
        version = clean_version(normalise_info_version(document, context.config.default_api_version))

        md["endpoints"] = count_endpoints(document)
        if md["endpoints"] == 0:
            LOGGER.warning("Not writing API with 0 endpoints", extra={"stage": "add", "url": url})
            context.exit_code = 1
            return False

        if not isinstance(gp, dict):
            gp = registry[provider] = {"driver": "url", "apis": {}}
        parent = gp.setdefault("apis", {}).setdefault(service, {})
        parent[version] = md
        name = md.get("name") or "openapi.yaml"
        md["name"] = name
        parts = [context.config.paths.apis_dir, provider, service, version, name]
        md["filename"] = str(PurePosixPath(*[part for part in parts if part]))
        if options.cached:
            md["cached"] = options.cached

        info["x-providerName"] = provider
        if service:
            info["x-serviceName"] = service
        if options.unofficial:
            info["x-unofficialSpec"] = True
        origin = info.get("x-origin")
        if isinstance(origin, dict):
            origin = [origin]
        if not isinstance(origin, list):
            origin = []
        origin.append(copy.deepcopy(md["source"]))
        info["x-origin"] = origin

        patch = Tree.from_mapping(parent.get(PATCH_KEY))
        if options.categories:
            info["x-apisguru-categories"] = list(options.categories)
            patch.child("info")["x-apisguru-categories"] = list(options.categories)
        if info.get("x-logo"):
            patch.child("info")["x-logo"] = copy.deepcopy(info["x-logo"])
        if options.desclang:
            patch.child("info")["x-description-language"] = options.desclang
        if patch:
            parent[PATCH_KEY] = patch.to_dict()
        document = deep_overlay(document, gp.get(PATCH_KEY) or {})

        content = yaml_dump(sort_document(document))
        md["hash"] = sha256(content)
        write_text_atomic(context.config.paths.resolve(md["filename"]), content)
        context.mark_dirty()
        context.new_candidates.append(
            Candidate(
                provider=provider,
                driver=gp.get("driver") or "url",
                service=service,
                version=version,
                parent=parent,
                gp=gp,
                md=md,
                info=document.get("info"),
            )
        )
        status.line(
            "Wrote new",
            provider,
            service or "-",
            version,
            "in OpenAPI",
            md.get("autoUpgrade") or md.get("openapi"),
            "fixes",
            md.get("fixes") or 0,
            status.coloured("green", "✔") if outcome.valid else status.coloured("red", "✗"),
        )
        return True
    except CANDIDATE_ERRORS as exc:
        LOGGER.warning("%s", exc, extra={"stage": "add", "url": url})
        if options.debug:
            LOGGER.exception("add failed", extra={"stage": "add", "url": url})
        return False


# --- Command Registry ---


@dataclass(frozen=True)
class Command:
    """A processing verb with optional hooks around the candidate loop."""

    name: str
    run: CandidateHandler
    startup: Optional[StartupHook] = None
    wrapup: Optional[WrapupHook] = None
    mutates: bool = True


COMMANDS: Dict[str, Command] = {}


def register_command(command: Command) -> Command:
    """Add ``command`` to :data:`COMMANDS`, replacing any verb of the same name."""

    COMMANDS[command.name] = command
    return command


for _command in (
    Command("update", update, wrapup=reconcile_preferred),
    Command("retry", retry),
    Command("validate", validate),
    Command("ci", ci),
    Command("urls", urls, mutates=False),
    Command("metadata", metadata, mutates=False),
    Command("contact", contact, mutates=False),
    Command("404", not_found, mutates=False),
    Command("endpoints", endpoints),
    Command("purge", purge),
    Command("rewrite", rewrite),
    Command("remove", remove),
    Command("sort", nop),
    Command("list", nop, wrapup=list_wrapup, mutates=False),
    Command("checkpref", nop, wrapup=reconcile_preferred, mutates=False),
):
    register_command(_command)

URL_COMMANDS: Dict[str, UrlHandler] = {"add": add, "check": check}
