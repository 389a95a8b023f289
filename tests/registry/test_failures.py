"""Failure ledger and report formatting coverage."""

from __future__ import annotations

import io

from APIDirectory.Registry.failures import FailureLedger
from APIDirectory.Registry.formatters import (
    FAILURE_TABLE_HEADERS,
    Colours,
    StatusWriter,
    colours_from_env,
    format_failure_rows,
    format_table,
)
from APIDirectory.Registry.models import Candidate


def test_ledger_keeps_latest_failure_per_triple() -> None:
    calls = []
    ledger = FailureLedger(on_record=lambda: calls.append(1))
    candidate = Candidate(provider="example.com", service="mail", version="1.0")

    ledger.record(candidate, 500, "server error")
    ledger.record(candidate, 404, RuntimeError("gone"), "update")
    ledger.record(Candidate(provider="example.com", version="2.0"), None)

    assert len(calls) == 3
    assert len(ledger) == 2
    assert ledger.get("example.com", "mail", "1.0") == {"status": 404, "error": "gone", "context": "update"}
    assert ledger.get("example.com", "", "2.0") == {"status": None, "error": "", "context": None}
    assert ledger.get("missing.com", "", "1.0") is None
    assert ledger.get("example.com", "other", "1.0") is None


def test_ledger_to_dict_is_plain_and_detached() -> None:
    ledger = FailureLedger()
    assert not ledger
    ledger.record(Candidate(provider="a.com", version="1"), 404)

    report = ledger.to_dict()
    report["a.com"][""]["1"]["status"] = 500

    assert ledger
    assert type(report) is dict
    assert ledger.get("a.com", "", "1")["status"] == 404


def test_failure_rows_and_table() -> None:
    failures = {"a.com": {"": {"1.0": {"status": 404, "error": "", "context": None}}}}

    rows = format_failure_rows(failures)
    table = format_table(FAILURE_TABLE_HEADERS, rows)

    assert rows == [("a.com", "-", "1.0", "404", "")]
    lines = table.splitlines()
    assert lines[0].split(" | ")[0].strip() == "provider"
    assert set(lines[1]) <= {"-", "+"}
    assert lines[2].startswith("a.com")


def test_status_writer_markers() -> None:
    stream = io.StringIO()
    status = StatusWriter(stream, Colours(red="<r>", yellow="", green="<g>", normal="</>", clear="<c>"))

    status.prepend("a.com url - 1.0 ")
    status.prepend("F")
    status.mark(True)
    status.prepend("V")
    status.mark(False)
    status.clear()

    assert stream.getvalue() == "a.com url - 1.0 F <g>✔</>\nV <r>✗</>\n<c>"


def test_colours_disabled_by_environment() -> None:
    assert colours_from_env({"NO_COLOR": "1"}).red == ""
    assert colours_from_env({"NODE_DISABLE_COLORS": "1"}).green == ""
    assert colours_from_env({}).red == "\x1b[31m"
