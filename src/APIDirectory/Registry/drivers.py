# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.drivers",
#   "purpose": "Acquisition drivers that turn provider configuration into leads and stored data",
#   "sections": [
#     {"id": "base", "name": "Driver Base", "anchor": "BAS", "kind": "api"},
#     {"id": "drivers", "name": "Driver Implementations", "anchor": "DRV", "kind": "api"},
#     {"id": "registry", "name": "Driver Registry", "anchor": "REG", "kind": "registry"},
#     {"id": "dispatch", "name": "Dispatch", "anchor": "DIS", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Acquisition drivers.

Each driver reads its provider's configuration from ``registry.yaml`` and
either adds leads (document URLs plus an inferred service name) to the run's
shared leads map, or stores pre-fetched document bodies in the provider's
transient ``data`` list so that retrieval can be served from memory.  A driver
returns ``False`` when its index cannot be fetched; :func:`run_drivers` logs
that and moves on to the next provider.

Example:
    >>> from APIDirectory.Registry.drivers import DRIVERS
    >>> sorted(DRIVERS)[:3]
    ['apisjson', 'blob', 'catalog']
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Dict, List, MutableMapping, Optional
from urllib.parse import urljoin

import jmespath
from bs4 import BeautifulSoup

from .archives import extract_tar_safe, iter_zip_json
from .errors import ConfigurationError
from .models import Lead
from .net import download, fetch, fetch_json
from .plugins import get_plugin_registry, register_plugin_registry

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = [
    "BaseDriver",
    "NopDriver",
    "ApisJsonDriver",
    "CatalogDriver",
    "GoogleDriver",
    "GithubDriver",
    "ZipDriver",
    "BlobDriver",
    "HtmlDriver",
    "DRIVERS",
    "get_driver",
    "run_drivers",
]

LOGGER = logging.getLogger(__name__)

_DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")


# --- Driver Base ---


class BaseDriver:
    """Shared helpers for driver implementations."""

    NAME = "base"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        raise NotImplementedError

    def _option(self, record: Dict[str, Any], key: str, provider: str) -> Any:
        value = record.get(key)
        if value in (None, ""):
            raise ConfigurationError(f"{self.NAME} driver for {provider} requires '{key}'")
        return value

    def _add_lead(self, context: "RunContext", url: str, **fields: Any) -> None:
        context.leads[url] = Lead(url=url, **fields)


# --- Driver Implementations ---


class NopDriver(BaseDriver):
    """Providers whose single document is fetched later from ``source.url``."""

    NAME = "nop"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        return True


class ApisJsonDriver(BaseDriver):
    """Read an APIs.json index and lead to every ``Swagger`` property."""

    NAME = "apisjson"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_url = self._option(record, "mainUrl", provider)
        LOGGER.info("   %s", main_url, extra={"stage": "driver", "driver": self.NAME})
        index = await fetch_json(main_url, config=context.config)
        if index is None:
            return False
        for api in index.get("apis") or []:
            for prop in api.get("properties") or []:
                if prop.get("type") == "Swagger" and prop.get("url"):
                    url = prop["url"]
                    service = url.split("/")[-1].replace(".json", "")
                    self._add_lead(context, url, service=service)
        return True


class CatalogDriver(BaseDriver):
    """Pair services and URLs extracted from a JSON catalog with JMESPath."""

    NAME = "catalog"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_url = self._option(record, "mainUrl", provider)
        service_query = self._option(record, "serviceQuery", provider)
        url_query = self._option(record, "urlQuery", provider)
        data: List[Dict[str, str]] = []
        record["data"] = data
        LOGGER.info("   %s", main_url, extra={"stage": "driver", "driver": self.NAME})
        catalog = await fetch_json(main_url, config=context.config)
        if catalog is None:
            return False

        services = jmespath.search(service_query, catalog) or []
        urls = jmespath.search(url_query, catalog) or []
        data_items = jmespath.search(record["dataQuery"], catalog) or [] if record.get("dataQuery") else []

        resolved: List[str] = []
        for url in urls:
            if isinstance(url, list):
                url = url[0] if url else ""
            resolved.append(urljoin(main_url, str(url)))

        for index, service in enumerate(services):
            if index >= len(resolved):
                LOGGER.warning(
                    "catalog has more services than urls",
                    extra={"stage": "driver", "driver": self.NAME, "provider": provider},
                )
                break
            if isinstance(service, list):
                service = service[0] if service else ""
            if isinstance(service, str):
                service = service.lower()
            url = resolved[index]
            self._add_lead(context, url, service=service, provider=provider)
            if index < len(data_items) and data_items[index]:
                data.append({"url": url, "text": json.dumps(data_items[index])})
        return True


class GoogleDriver(BaseDriver):
    """Lead to every API listed in a Google API Discovery directory."""

    NAME = "google"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_url = self._option(record, "mainUrl", provider)
        LOGGER.info("   %s", main_url, extra={"stage": "driver", "driver": self.NAME})
        discovery = await fetch_json(main_url, config=context.config)
        if discovery is None:
            return False
        for item in discovery.get("items") or []:
            url = item.get("discoveryRestUrl")
            if url:
                self._add_lead(context, url, service=item.get("name"), preferred=item.get("preferred"))
        return True


def derive_service(file: str, record: Dict[str, Any]) -> str:
    """Derive a service name from a repository-relative file path.

    ``shift``/``pop`` drop leading/trailing path components; then either the
    last ``regex`` capture replaces the name (with spaces turned into dashes)
    or everything from the ``split`` marker onwards is cut.

    Examples:
        >>> derive_service("specs/billing/v1/billing-v1.yaml", {"split": "-v"})
        'billing'
        >>> derive_service("specs/billing/v1/openapi.yaml", {"shift": 1, "pop": 2})
        'billing'
    """

    service = PurePosixPath(file).stem
    shift = int(record.get("shift") or 0)
    pop = int(record.get("pop") or 0)
    if shift or pop:
        components = file.split("/")[shift:]
        if pop:
            components = components[:-pop]
        service = "/".join(components)
    regex = record.get("regex")
    if regex:
        matches = list(re.finditer(regex, service, re.MULTILINE))
        if matches and matches[-1].groups():
            service = matches[-1].group(1) or ""
        service = "-".join(service.split(" "))
    elif record.get("split"):
        service = service.split(record["split"])[0]
    return service


class GithubDriver(BaseDriver):
    """Extract a repository tarball and lead to each matching file."""

    NAME = "github"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        org = self._option(record, "org", provider)
        repo = self._option(record, "repo", provider)
        branch = self._option(record, "branch", provider)
        pattern = self._option(record, "glob", provider)
        LOGGER.info("   %s %s %s %s", org, repo, branch, pattern, extra={"stage": "driver", "driver": self.NAME})

        paths = context.config.paths
        cache_dir = paths.provider_cache(provider)
        cache_dir.mkdir(parents=True, exist_ok=True)
        codeload_url = f"https://codeload.github.com/{org}/{repo}/tar.gz/{branch}"
        tarball = await download(codeload_url, paths.archive_cache / f"{provider}.tar.gz", config=context.config)
        if tarball is None:
            return False
        verbose_logger: Optional[logging.Logger] = LOGGER if record.get("verbose") else None
        extract_tar_safe(tarball, cache_dir, strip=1, logger=verbose_logger)

        count = 0
        for path in sorted(cache_dir.glob(pattern)):
            if not path.is_file():
                continue
            file = path.relative_to(cache_dir).as_posix()
            if "deref" in file:
                continue
            count += 1
            self._add_lead(
                context,
                f"https://raw.githubusercontent.com/{org}/{repo}/{branch}/{file}",
                file=str(path.resolve()),
                service=derive_service(file, record),
                provider=provider,
            )
        LOGGER.info("   %d files found from archive", count, extra={"stage": "driver", "driver": self.NAME})
        return True


class ZipDriver(BaseDriver):
    """Store the JSON documents found in one or more zip archives."""

    NAME = "zip"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_urls = self._option(record, "mainUrl", provider)
        if isinstance(main_urls, str):
            main_urls = [main_urls]
        data: List[Dict[str, str]] = []
        record["data"] = data
        destination = context.config.paths.archive_cache / f"{provider}.zip"
        for url in main_urls:
            LOGGER.info("   %s", url, extra={"stage": "driver", "driver": self.NAME})
            archive = await download(url, destination, config=context.config)
            if archive is None:
                continue
            for name, text in iter_zip_json(archive):
                LOGGER.debug("   %s", name, extra={"stage": "driver", "driver": self.NAME})
                data.append({"url": name, "text": text})
        return True


class BlobDriver(BaseDriver):
    """Click every download link on a rendered page and store the blob bodies."""

    NAME = "blob"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_url = self._option(record, "mainUrl", provider)
        browser = await context.browser.get()
        page = await browser.new_page()
        try:
            await page.goto(main_url, wait_until="networkidle")
            await page.wait_for_selector("a[download]", state="visible")
            handles = await page.query_selector_all("a[download]")
            hrefs: List[str] = []
            for handle in handles:
                await handle.click()
                href = await (await handle.get_property("href")).json_value()
                hrefs.append(str(href))

            data: List[Dict[str, str]] = []
            record["data"] = data
            for href in hrefs:
                if not href.startswith("blob:"):
                    continue
                await page.goto(href, wait_until="networkidle")
                text = await page.content()
                if "<pre" in text and ">{" in text:
                    text = "{" + text.split(">{", 1)[1].split("</pre>")[0]
                components = href.split("/")
                components[-1] = "blobId"
                blob_url = "/".join(components)
                LOGGER.info("   %s", blob_url, extra={"stage": "driver", "driver": self.NAME})
                data.append({"url": blob_url, "text": text})
        finally:
            await page.close()
        return True


class HtmlDriver(BaseDriver):
    """Scrape document links from an HTML index page.

    ``selector`` picks anchors (default ``a[href]``).  With ``regex`` set only
    matching absolute URLs become leads and the first capture group names the
    service; otherwise links ending in ``.json``, ``.yaml`` or ``.yml`` are
    taken and the file stem names the service.
    """

    NAME = "html"

    async def run(self, provider: str, record: Dict[str, Any], context: "RunContext") -> bool:
        main_url = self._option(record, "mainUrl", provider)
        LOGGER.info("   %s", main_url, extra={"stage": "driver", "driver": self.NAME})
        response = await fetch(main_url, config=context.config, cache="index")
        if not response.is_success:
            LOGGER.warning(
                "Received status code %s",
                response.status_code,
                extra={"stage": "driver", "driver": self.NAME, "url": main_url},
            )
            return False
        soup = BeautifulSoup(response.text, "html.parser")
        regex = record.get("regex")
        for anchor in soup.select(record.get("selector") or "a[href]"):
            href = anchor.get("href")
            if not href:
                continue
            url = urljoin(main_url, str(href))
            if regex:
                match = re.search(regex, url)
                if match is None:
                    continue
                service = match.group(1) if match.groups() else ""
            else:
                path = PurePosixPath(url.split("?", 1)[0])
                if path.suffix not in _DOCUMENT_SUFFIXES:
                    continue
                service = path.stem
            self._add_lead(context, url, service=service, provider=provider)
        return True


# --- Driver Registry ---

_NOP = NopDriver()

DRIVERS: MutableMapping[str, BaseDriver] = {
    "nop": _NOP,
    "url": _NOP,
    "external": _NOP,
    "apisjson": ApisJsonDriver(),
    "catalog": CatalogDriver(),
    "google": GoogleDriver(),
    "github": GithubDriver(),
    "zip": ZipDriver(),
    "blob": BlobDriver(),
    "html": HtmlDriver(),
}

register_plugin_registry("driver", DRIVERS)


def get_driver(name: Optional[str]) -> BaseDriver:
    """Return the driver registered under ``name``.

    Raises:
        ConfigurationError: If ``name`` is not a registered driver.
    """

    registry = get_plugin_registry("driver")
    driver = registry.get(name) if name else None
    if driver is None:
        raise ConfigurationError(f"Unknown driver '{name}'. Available: {', '.join(sorted(registry))}")
    return driver


# --- Dispatch ---


async def run_drivers(context: "RunContext") -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Run each grouped provider's driver once, honouring the driver filter.

    Raises:
        ConfigurationError: When a provider names an unknown driver.
    """

    options = context.options
    if options.skip_drivers:
        return {}
    for driver_name, providers in list(context.driver_groups.items()):
        if options.driver and driver_name != options.driver:
            continue
        driver = get_driver(driver_name)
        for provider, record in list(providers.items()):
            LOGGER.info(
                "Running driver %s for %s",
                driver_name,
                provider,
                extra={"stage": "driver", "driver": driver_name, "provider": provider},
            )
            try:
                ok = await driver.run(provider, record, context)
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning(
                    "driver %s failed for %s: %s",
                    driver_name,
                    provider,
                    exc,
                    extra={"stage": "driver", "driver": driver_name, "provider": provider},
                )
                continue
            if not ok:
                LOGGER.warning(
                    "driver %s returned no results for %s",
                    driver_name,
                    provider,
                    extra={"stage": "driver", "driver": driver_name, "provider": provider},
                )
    return context.driver_groups
