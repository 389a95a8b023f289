# === NAVMAP v1 ===
# {
#   "module": "tests.registry.test_drivers",
#   "purpose": "Acquisition driver coverage over mocked HTTP transports",
#   "sections": [
#     {"id": "helpers", "name": "Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "drivers", "name": "Driver Cases", "anchor": "DRV", "kind": "tests"},
#     {"id": "dispatch", "name": "Dispatch Cases", "anchor": "DIS", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Acquisition driver coverage.

Every driver is exercised against an :class:`httpx.MockTransport`, so no test
touches the network.  Archives are built in memory.
"""

from __future__ import annotations

import asyncio
import io
import json
import tarfile
import zipfile

import httpx
import pytest

from APIDirectory.Registry.drivers import DRIVERS, derive_service, get_driver, run_drivers
from APIDirectory.Registry.errors import ConfigurationError
from APIDirectory.Registry.settings import RunOptions
from APIDirectory.Registry.testing import route_handler, use_mock_http_client


# --- Helpers ---


def _run(driver: str, provider: str, record: dict, context) -> bool:
    return asyncio.run(DRIVERS[driver].run(provider, record, context))


def _tarball(files: dict) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, text in files.items():
            payload = text.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            archive.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


def _zipfile(files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in files.items():
            archive.writestr(name, text)
    return buffer.getvalue()


# --- Driver Cases ---


def test_apisjson_driver_leads_to_swagger_properties(make_context) -> None:
    index = {
        "apis": [
            {
                "properties": [
                    {"type": "Swagger", "url": "https://a.com/specs/pets.json"},
                    {"type": "X-Blog", "url": "https://a.com/blog"},
                ]
            },
            {"properties": [{"type": "Swagger", "url": "https://a.com/specs/store.json"}]},
        ]
    }
    routes = {"https://a.com/apis.json": httpx.Response(200, json=index)}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("apisjson", "a.com", {"mainUrl": "https://a.com/apis.json"}, context)

    assert list(context.leads) == ["https://a.com/specs/pets.json", "https://a.com/specs/store.json"]
    assert context.leads["https://a.com/specs/pets.json"].service == "pets"


def test_catalog_driver_pairs_services_urls_and_data(make_context) -> None:
    catalog = {
        "apis": [
            {"name": "Mail", "spec": "specs/mail.json", "doc": {"openapi": "3.0.0"}},
            {"name": "Chat", "spec": ["https://cdn.c.com/chat.json"]},
        ]
    }
    record = {
        "mainUrl": "https://c.com/catalog.json",
        "serviceQuery": "apis[].name",
        "urlQuery": "apis[].spec",
        "dataQuery": "apis[].doc",
    }
    routes = {"https://c.com/catalog.json": httpx.Response(200, json=catalog)}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("catalog", "c.com", record, context)

    assert list(context.leads) == ["https://c.com/specs/mail.json", "https://cdn.c.com/chat.json"]
    mail = context.leads["https://c.com/specs/mail.json"]
    assert (mail.service, mail.provider) == ("mail", "c.com")
    assert context.leads["https://cdn.c.com/chat.json"].service == "chat"
    assert record["data"] == [
        {"url": "https://c.com/specs/mail.json", "text": json.dumps({"openapi": "3.0.0"})}
    ]


def test_catalog_driver_reports_unreachable_index(make_context) -> None:
    record = {"mainUrl": "https://c.com/catalog.json", "serviceQuery": "a", "urlQuery": "b"}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler({}))):
        assert _run("catalog", "c.com", record, context) is False

    assert record["data"] == []
    assert context.leads == {}


def test_catalog_driver_requires_queries(make_context) -> None:
    with pytest.raises(ConfigurationError):
        _run("catalog", "c.com", {"mainUrl": "https://c.com/catalog.json"}, make_context())


def test_google_driver_carries_preferred_flag(make_context) -> None:
    directory = {
        "items": [
            {"name": "drive", "discoveryRestUrl": "https://g.com/drive/v3/rest", "preferred": True},
            {"name": "broken"},
        ]
    }
    routes = {"https://g.com/discovery/v1/apis": httpx.Response(200, json=directory)}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("google", "googleapis.com", {"mainUrl": "https://g.com/discovery/v1/apis"}, context)

    assert list(context.leads) == ["https://g.com/drive/v3/rest"]
    lead = context.leads["https://g.com/drive/v3/rest"]
    assert (lead.service, lead.preferred) == ("drive", True)


def test_github_driver_extracts_archive_and_skips_deref(make_context, config) -> None:
    tarball = _tarball(
        {
            "repo-main/specs/billing/v1/openapi.yaml": "openapi: 3.0.0\n",
            "repo-main/specs/deref/v1/openapi.yaml": "openapi: 3.0.0\n",
            "repo-main/README.md": "# readme\n",
        }
    )
    routes = {"https://codeload.github.com/org/repo/tar.gz/main": httpx.Response(200, content=tarball)}
    record = {
        "org": "org",
        "repo": "repo",
        "branch": "main",
        "glob": "specs/**/openapi.yaml",
        "shift": 1,
        "pop": 2,
    }
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("github", "gh.com", record, context)

    cache = config.paths.provider_cache("gh.com")
    assert (cache / "README.md").is_file()
    url = "https://raw.githubusercontent.com/org/repo/main/specs/billing/v1/openapi.yaml"
    assert list(context.leads) == [url]
    lead = context.leads[url]
    assert lead.service == "billing"
    assert lead.provider == "gh.com"
    assert lead.file == str((cache / "specs/billing/v1/openapi.yaml").resolve())
    assert (config.paths.archive_cache / "gh.com.tar.gz").is_file()


def test_github_driver_returns_false_when_download_fails(make_context) -> None:
    record = {"org": "org", "repo": "repo", "branch": "main", "glob": "*.yaml"}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler({}))):
        assert _run("github", "gh.com", record, context) is False

    assert context.leads == {}


def test_zip_driver_stores_json_objects(make_context) -> None:
    archive = _zipfile(
        {
            "a.json": '{"openapi": "3.0.0"}',
            "notes.txt": "ignored",
            "list.json": "[1, 2]",
        }
    )
    routes = {"https://z.com/specs.zip": httpx.Response(200, content=archive)}
    record = {"mainUrl": ["https://z.com/missing.zip", "https://z.com/specs.zip"]}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("zip", "z.com", record, context)

    assert record["data"] == [{"url": "a.json", "text": '{"openapi": "3.0.0"}'}]
    assert context.leads == {}


def test_html_driver_collects_document_links(make_context) -> None:
    page = """
    <html><body>
      <a href="specs/pets.yaml">Pets</a>
      <a href="/about">About</a>
      <a href="https://h.com/api/v2/openapi.json?raw=1">API v2</a>
      <a>No link</a>
    </body></html>
    """
    routes = {"https://h.com/docs/index.html": httpx.Response(200, text=page)}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("html", "h.com", {"mainUrl": "https://h.com/docs/index.html"}, context)

    assert list(context.leads) == ["https://h.com/docs/specs/pets.yaml", "https://h.com/api/v2/openapi.json?raw=1"]
    assert context.leads["https://h.com/docs/specs/pets.yaml"].service == "pets"
    assert context.leads["https://h.com/api/v2/openapi.json?raw=1"].service == "openapi"


def test_html_driver_regex_filters_and_names_services(make_context) -> None:
    page = '<a href="specs/pets.yaml">Pets</a><a href="https://h.com/api/v2/openapi.json">v2</a>'
    routes = {"https://h.com/docs/index.html": httpx.Response(200, text=page)}
    record = {"mainUrl": "https://h.com/docs/index.html", "regex": r"/api/(v\d+)/"}
    context = make_context()

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert _run("html", "h.com", record, context)

    assert list(context.leads) == ["https://h.com/api/v2/openapi.json"]
    assert context.leads["https://h.com/api/v2/openapi.json"].service == "v2"


@pytest.mark.parametrize(
    "file, record, expected",
    [
        ("specs/billing/v1/billing-v1.yaml", {"split": "-v"}, "billing"),
        ("specs/billing/v1/openapi.yaml", {"shift": 1, "pop": 2}, "billing"),
        ("specs/Billing API/openapi.yaml", {"shift": 1, "pop": 1, "regex": r"^(\w+ \w+)"}, "Billing-API"),
        ("specs/mail.yaml", {}, "mail"),
    ],
)
def test_derive_service(file, record, expected) -> None:
    assert derive_service(file, record) == expected


# --- Dispatch Cases ---


def test_get_driver_rejects_unknown_names() -> None:
    assert get_driver("url") is get_driver("nop")
    with pytest.raises(ConfigurationError):
        get_driver("nosuch")


def test_run_drivers_unknown_driver_is_fatal(make_context) -> None:
    context = make_context()
    context.driver_groups = {"nosuch": {"x.com": {}}}

    with pytest.raises(ConfigurationError):
        asyncio.run(run_drivers(context))


def test_run_drivers_continues_after_a_provider_fails(make_context) -> None:
    index = {"apis": [{"properties": [{"type": "Swagger", "url": "https://ok.com/pets.json"}]}]}
    routes = {"https://ok.com/apis.json": httpx.Response(200, json=index)}
    context = make_context()
    context.driver_groups = {
        "apisjson": {
            "broken.com": {},
            "unreachable.com": {"mainUrl": "https://unreachable.com/apis.json"},
            "ok.com": {"mainUrl": "https://ok.com/apis.json"},
        }
    }

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        asyncio.run(run_drivers(context))

    assert list(context.leads) == ["https://ok.com/pets.json"]


def test_run_drivers_honours_skip_and_filter(make_context) -> None:
    index = {"apis": [{"properties": [{"type": "Swagger", "url": "https://a.com/pets.json"}]}]}
    directory = {"items": [{"name": "drive", "discoveryRestUrl": "https://g.com/drive/v3/rest"}]}
    routes = {
        "https://a.com/apis.json": httpx.Response(200, json=index),
        "https://g.com/discovery": httpx.Response(200, json=directory),
    }
    groups = {
        "apisjson": {"a.com": {"mainUrl": "https://a.com/apis.json"}},
        "google": {"googleapis.com": {"mainUrl": "https://g.com/discovery"}},
    }

    skipped = make_context(options=RunOptions(skip_drivers=True))
    skipped.driver_groups = groups
    filtered = make_context(options=RunOptions(driver="google"))
    filtered.driver_groups = groups

    with use_mock_http_client(httpx.MockTransport(route_handler(routes))):
        assert asyncio.run(run_drivers(skipped)) == {}
        asyncio.run(run_drivers(filtered))

    assert skipped.leads == {}
    assert list(filtered.leads) == ["https://g.com/drive/v3/rest"]
