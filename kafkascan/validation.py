"""Optional external schema validation and local lint rules.

The scan never depends on a validator: when none is configured, or the
configured one cannot be reached, every schema is reported as unvalidated.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .catalog import normalize_field_name
from .errors import ExternalValidatorUnavailable
from .inference.avro import model_to_avro
from .inference.samples import infer_record
from .logging import get_logger
from .models import (
    UNKNOWN_TOPIC,
    FieldType,
    Provenance,
    ScanWarning,
    SchemaModel,
    TypeKind,
    ValidationOutcome,
    ValidationStatus,
    WarningKind,
)

logger = get_logger("validation")

_SUSPICIOUS_TOKENS = ("user", "customer", "person", "account", "card", "contact", "owner")
_CONTENT_TYPE = "application/vnd.schemaregistry.v1+json"


@dataclass(frozen=True)
class CompatibilityVerdict:
    compatible: bool
    messages: Tuple[str, ...] = ()


class SchemaValidator(Protocol):
    """Narrow interface to an external schema validation service."""

    name: str

    def infer(self, sample: Any) -> SchemaModel:
        """Infer a schema from a sample payload."""

    def lint(self, model: SchemaModel) -> List[str]:
        """Return lint warnings for the schema."""

    def validate(self, model: SchemaModel, target: str) -> CompatibilityVerdict:
        """Check the schema against ``target`` (a registry subject)."""


def lint_schema(model: SchemaModel) -> List[str]:
    """Local lint rules applied to a schema model."""
    messages: List[str] = []
    _lint_record(model.record, model.name, messages)
    return messages


def _lint_record(record: FieldType, path: str, messages: List[str]) -> None:
    if not record.fields:
        messages.append(f"{path}: record has no fields")
    for item in record.fields:
        location = f"{path}.{item.name}"
        if item.type.kind is TypeKind.UNION and not item.default_null:
            messages.append(f"{location}: nullable field has no null default")
        for note in item.annotations:
            if note.startswith("unmapped") or note.startswith("recursive"):
                messages.append(f"{location}: {note}")
        normalized = normalize_field_name(item.name)
        if not item.tags and any(token in normalized for token in _SUSPICIOUS_TOKENS):
            messages.append(f"{location}: name suggests personal data but carries no tags")
        for nested in _records_in(item.type):
            _lint_record(nested, location, messages)


def _records_in(field_type: FieldType) -> Iterable[FieldType]:
    if field_type.kind is TypeKind.RECORD:
        yield field_type
    elif field_type.items is not None:
        yield from _records_in(field_type.items)


def subject_for(model: SchemaModel) -> Optional[str]:
    """Registry subject under the default topic-name strategy."""
    if not model.topic or model.topic == UNKNOWN_TOPIC:
        return None
    return f"{model.topic}-value"


Opener = Callable[[Request, float], bytes]


def _default_opener(request: Request, timeout: float) -> bytes:
    with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
        return response.read()


class SchemaRegistryValidator:
    """Validator backed by the Confluent Schema Registry REST API."""

    name = "schema-registry"

    def __init__(self, url: str, *, timeout: float = 10.0, opener: Opener | None = None) -> None:
        if not url:
            raise ValueError("schema registry url is required")
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._opener = opener or _default_opener

    def infer(self, sample: Any) -> SchemaModel:
        record = infer_record(sample, "Sample")
        return SchemaModel(record=record, provenance=Provenance.INFERRED_FROM_SAMPLE)

    def lint(self, model: SchemaModel) -> List[str]:
        return lint_schema(model)

    def validate(self, model: SchemaModel, target: str) -> CompatibilityVerdict:
        endpoint = f"{self.url}/compatibility/subjects/{quote(target, safe='')}/versions/latest?verbose=true"
        payload = {"schemaType": "AVRO", "schema": json.dumps(model_to_avro(model))}
        request = Request(
            endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": _CONTENT_TYPE, "Accept": _CONTENT_TYPE},
            method="POST",
        )
        try:
            raw = self._opener(request, self.timeout)
        except HTTPError as exc:
            if exc.code == 404:
                return CompatibilityVerdict(True, (f"subject {target} is not registered yet",))
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            if exc.code == 422:
                return CompatibilityVerdict(False, (detail.strip() or str(exc.reason),))
            raise ExternalValidatorUnavailable(f"Schema registry returned {exc.code}: {detail.strip() or exc.reason}") from exc
        except (URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise ExternalValidatorUnavailable(f"Schema registry unreachable at {self.url}: {reason}") from exc

        try:
            response = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ExternalValidatorUnavailable("Schema registry returned invalid JSON") from exc
        if not isinstance(response, dict) or "is_compatible" not in response:
            raise ExternalValidatorUnavailable("Schema registry response lacks 'is_compatible'")
        messages = response.get("messages") or []
        return CompatibilityVerdict(bool(response["is_compatible"]), tuple(str(item) for item in messages))


def validate_schemas(
    schemas: Sequence[SchemaModel],
    validator: SchemaValidator | None,
) -> Tuple[Dict[str, ValidationOutcome], List[ScanWarning]]:
    """Validate every schema, degrading to UNVALIDATED when the validator is absent or down."""
    outcomes: Dict[str, ValidationOutcome] = {}
    warnings: List[ScanWarning] = []
    available = validator is not None

    for model in schemas:
        key = model.call_site_key or model.source
        lint = tuple(validator.lint(model) if validator is not None else lint_schema(model))
        if not available or validator is None:
            outcomes[key] = ValidationOutcome(ValidationStatus.UNVALIDATED, lint, ("no validator available",))
            continue
        subject = subject_for(model)
        if subject is None:
            outcomes[key] = ValidationOutcome(ValidationStatus.UNVALIDATED, lint, ("topic unknown; no subject to check",))
            continue
        try:
            verdict = validator.validate(model, subject)
        except ExternalValidatorUnavailable as exc:
            logger.warning("Schema validation disabled for the rest of the scan: %s", exc)
            warnings.append(ScanWarning(kind=WarningKind.EXTERNAL_VALIDATOR_UNAVAILABLE, message=str(exc)))
            available = False
            outcomes[key] = ValidationOutcome(ValidationStatus.UNVALIDATED, lint, (str(exc),))
            continue
        status = ValidationStatus.COMPATIBLE if verdict.compatible else ValidationStatus.INCOMPATIBLE
        outcomes[key] = ValidationOutcome(status, lint, verdict.messages)
    return outcomes, warnings


def build_validator(url: Optional[str], *, timeout: float = 10.0, enabled: bool = True) -> Optional[SchemaValidator]:
    if not enabled or not url:
        return None
    return SchemaRegistryValidator(url, timeout=timeout)


__all__ = [
    "CompatibilityVerdict",
    "SchemaRegistryValidator",
    "SchemaValidator",
    "build_validator",
    "lint_schema",
    "subject_for",
    "validate_schemas",
]
