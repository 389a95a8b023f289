# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.validation",
#   "purpose": "Validation contract, structural default validator, and per-candidate validation",
#   "sections": [
#     {"id": "contract", "name": "Validator Contract", "anchor": "CON", "kind": "api"},
#     {"id": "structural", "name": "Structural Validator", "anchor": "STR", "kind": "api"},
#     {"id": "registry", "name": "Validator Registry", "anchor": "REG", "kind": "registry"},
#     {"id": "candidate", "name": "Candidate Validation", "anchor": "CAN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Document validation seam used by ``update``, ``add``, ``check`` and ``validate``.

Validators receive the parsed document, its raw text, and the URL or path it
came from, and answer with a :class:`ValidationOutcome`.  An outcome may carry
a replacement document (after conversion or repair) together with the number
of patches applied; callers adopt the replacement whenever ``patches`` is
non-zero or a ``target_version`` is set.

The built-in :class:`StructuralValidator` checks OpenAPI 3.x, Swagger 2.0 and
AsyncAPI documents against small JSON Schemas.  It performs no conversion, so
Google Discovery, Postman and API Blueprint inputs are reported invalid until
a converter is installed through the ``apidirectory.registry.validator``
entry-point group.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, MutableMapping, Optional, Protocol

from jsonschema import Draft7Validator

from .documents import detect_format, is_api_blueprint
from .errors import ConfigurationError, DocumentValidationError
from .models import Candidate
from .plugins import get_plugin_registry, register_plugin_registry

if TYPE_CHECKING:  # pragma: no cover
    from .context import RunContext

__all__ = [
    "ValidationOutcome",
    "DocumentValidator",
    "StructuralValidator",
    "VALIDATORS",
    "get_validator",
    "validate_candidate",
]

LOGGER = logging.getLogger(__name__)


# --- Validator Contract ---


@dataclass
class ValidationOutcome:
    """Result of validating one document."""

    valid: bool
    document: Optional[Dict[str, Any]] = None
    patches: int = 0
    warnings: List[str] = field(default_factory=list)
    context: Optional[str] = None
    target_version: Optional[str] = None

    @property
    def fixes(self) -> int:
        return self.patches + len(self.warnings)


class DocumentValidator(Protocol):
    def validate(self, document: Any, text: str, source: str) -> ValidationOutcome:  # pragma: no cover
        ...


# --- Structural Validator ---

_INFO_SCHEMA = {
    "type": "object",
    "required": ["title", "version"],
    "properties": {"title": {"type": "string"}, "version": {"type": "string"}},
}

_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "openapi": {
        "type": "object",
        "required": ["openapi", "info"],
        "properties": {
            "openapi": {"type": "string", "pattern": r"^3\.\d+(\.\d+)?"},
            "info": _INFO_SCHEMA,
            "paths": {"type": "object"},
            "webhooks": {"type": "object"},
            "components": {"type": "object"},
            "servers": {"type": "array", "items": {"type": "object", "required": ["url"]}},
        },
        "anyOf": [{"required": ["paths"]}, {"required": ["webhooks"]}, {"required": ["components"]}],
    },
    "swagger": {
        "type": "object",
        "required": ["swagger", "info", "paths"],
        "properties": {
            "swagger": {"enum": ["2.0", 2.0]},
            "info": _INFO_SCHEMA,
            "paths": {"type": "object"},
        },
    },
    "asyncapi": {
        "type": "object",
        "required": ["asyncapi", "info"],
        "properties": {
            "asyncapi": {"type": "string"},
            "info": _INFO_SCHEMA,
            "topics": {"type": "object"},
            "channels": {"type": "object"},
        },
    },
}


def _describe_error(error: Any) -> str:
    location = "/".join(str(part) for part in error.absolute_path) or "#"
    return f"{location}: {error.message}"


class StructuralValidator:
    """Validate document structure with minimal per-format JSON Schemas."""

    NAME = "structural"

    def __init__(self) -> None:
        self._validators = {name: Draft7Validator(schema) for name, schema in _SCHEMAS.items()}

    def validate(self, document: Any, text: str, source: str) -> ValidationOutcome:
        if is_api_blueprint(text):
            return ValidationOutcome(False, context="API Blueprint input requires a converter plugin")
        detected = detect_format(document)
        if detected is None:
            return ValidationOutcome(False, context=f"Unrecognised document format from {source}")
        fmt, version = detected
        validator = self._validators.get(fmt)
        if validator is None:
            return ValidationOutcome(False, context=f"{fmt} {version} input requires a converter plugin")
        errors = sorted(validator.iter_errors(document), key=lambda err: [str(part) for part in err.absolute_path])
        if errors:
            return ValidationOutcome(
                False,
                warnings=[_describe_error(err) for err in errors[1:]],
                context=_describe_error(errors[0]),
            )
        return ValidationOutcome(True)


# --- Validator Registry ---

VALIDATORS: MutableMapping[str, DocumentValidator] = {StructuralValidator.NAME: StructuralValidator()}
register_plugin_registry("validator", VALIDATORS)


def get_validator(name: str = StructuralValidator.NAME) -> DocumentValidator:
    """Return the validator registered under ``name``.

    Raises:
        ConfigurationError: If no validator of that name is registered.
    """

    registry = get_plugin_registry("validator")
    try:
        return registry[name]
    except KeyError as exc:
        raise ConfigurationError(
            f"Unknown validator '{name}'. Available: {', '.join(sorted(registry))}"
        ) from exc


# --- Candidate Validation ---


def validate_candidate(
    context: "RunContext",
    candidate: Candidate,
    document: Any,
    text: str,
    source: str,
) -> ValidationOutcome:
    """Validate ``document`` for ``candidate`` and record the verdict.

    Sets ``md.valid``, records a ledger entry on failure, writes the ``V``
    progress marker and the final tick or cross, and warns when a previously
    valid entry turns invalid.
    """

    validator = context.validator
    context.status.prepend("V")
    try:
        outcome = validator.validate(document if document is not None else {}, text, source)
    except DocumentValidationError as exc:
        outcome = ValidationOutcome(False, context=exc.context or str(exc))
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        outcome = ValidationOutcome(False, context=f"{type(exc).__name__}: {exc}")

    if not outcome.valid:
        detected = detect_format(document if isinstance(document, Mapping) else None)
        label = f"{detected[0]} {detected[1]}" if detected else "unknown format"
        error = DocumentValidationError(f"Validation failure, {label}", context=outcome.context)
        LOGGER.warning(
            "%s",
            error,
            extra={"stage": "validate", "candidate": candidate.key, "context": outcome.context},
        )
        context.failures.record(candidate, None, error, outcome.context)
    context.status.mark(outcome.valid)

    previous = candidate.md.get("valid")
    candidate.md["valid"] = outcome.valid
    if previous and not outcome.valid:
        LOGGER.warning(
            "%s %s %s just flipped from valid to invalid",
            candidate.provider,
            candidate.service,
            candidate.version,
            extra={"stage": "validate"},
        )
    return outcome
