"""Structural validator and per-candidate validation coverage."""

from __future__ import annotations

import logging

import pytest

from APIDirectory.Registry.errors import ConfigurationError
from APIDirectory.Registry.models import Candidate
from APIDirectory.Registry.validation import (
    VALIDATORS,
    StructuralValidator,
    ValidationOutcome,
    get_validator,
    validate_candidate,
)

OPENAPI = {
    "openapi": "3.0.3",
    "info": {"title": "Example", "version": "1.0.0"},
    "paths": {"/pets": {}},
}


@pytest.fixture
def validator() -> StructuralValidator:
    return StructuralValidator()


def test_valid_documents_of_each_native_format(validator) -> None:
    swagger = {"swagger": 2.0, "info": {"title": "t", "version": "1"}, "paths": {}}
    asyncapi = {"asyncapi": "2.6.0", "info": {"title": "t", "version": "1"}, "channels": {}}
    webhooks_only = {"openapi": "3.1.0", "info": {"title": "t", "version": "1"}, "webhooks": {}}

    for document in (OPENAPI, swagger, asyncapi, webhooks_only):
        outcome = validator.validate(document, "", "test")
        assert outcome.valid, outcome.context
        assert outcome.fixes == 0


def test_missing_title_is_reported_with_location(validator) -> None:
    document = {"openapi": "3.0.0", "info": {"version": "1.0.0"}, "paths": {}}

    outcome = validator.validate(document, "", "test")

    assert not outcome.valid
    assert outcome.context.startswith("info")
    assert "title" in outcome.context


def test_openapi_without_paths_or_components_is_invalid(validator) -> None:
    outcome = validator.validate({"openapi": "3.0.0", "info": {"title": "t", "version": "1"}}, "", "test")
    assert not outcome.valid


@pytest.mark.parametrize(
    "document, text, hint",
    [
        ({"discoveryVersion": "v1"}, "", "converter plugin"),
        ({}, "FORMAT: 1A\n# API", "API Blueprint"),
        ({"hello": "world"}, "", "Unrecognised"),
    ],
)
def test_non_native_inputs_need_a_converter(validator, document, text, hint) -> None:
    outcome = validator.validate(document, text, "https://example.com/doc")
    assert not outcome.valid
    assert hint in outcome.context


def test_get_validator_lookup(monkeypatch) -> None:
    class AlwaysValid:
        def validate(self, document, text, source):
            return ValidationOutcome(True, document=document, patches=1)

    monkeypatch.setitem(VALIDATORS, "always", AlwaysValid())

    assert isinstance(get_validator(), StructuralValidator)
    assert isinstance(get_validator("always"), AlwaysValid)
    with pytest.raises(ConfigurationError):
        get_validator("nosuch")


def test_validate_candidate_records_and_flips(make_context, caplog) -> None:
    context = make_context("validate", {})
    candidate = Candidate(provider="example.com", version="1.0.0", md={"valid": True})

    with caplog.at_level(logging.WARNING, logger="APIDirectory.Registry.validation"):
        outcome = validate_candidate(context, candidate, {"openapi": "3.0.0"}, "", "test")

    assert not outcome.valid
    assert candidate.md["valid"] is False
    failure = context.failures.get("example.com", "", "1.0.0")
    assert failure["error"] == "Validation failure, openapi 3.0"
    assert failure["context"] == outcome.context
    assert context.exit_code == 1
    assert "just flipped from valid to invalid" in caplog.text
    assert context.status.stream.getvalue() == "V ✗\n"


def test_validate_candidate_success(make_context) -> None:
    context = make_context("validate", {})
    candidate = Candidate(provider="example.com", version="1.0.0")

    outcome = validate_candidate(context, candidate, dict(OPENAPI), "", "test")

    assert outcome.valid
    assert candidate.md["valid"] is True
    assert not context.failures
    assert context.status.stream.getvalue() == "V ✔\n"


def test_validate_candidate_survives_validator_crashes(make_context) -> None:
    class Exploding:
        def validate(self, document, text, source):
            raise KeyError("info")

    context = make_context("validate", {})
    context.validator = Exploding()
    candidate = Candidate(provider="example.com", version="1.0.0")

    outcome = validate_candidate(context, candidate, {}, "", "test")

    assert not outcome.valid
    assert outcome.context.startswith("KeyError")
