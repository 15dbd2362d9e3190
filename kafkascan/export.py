"""Plain-data export of scan reports and catalogs for JSON renderers."""

from __future__ import annotations

from typing import Any, Dict, List

from .catalog import PatternCatalog
from .models import (
    CallSite,
    ClassificationResult,
    FieldSchema,
    FieldType,
    FlagOccurrence,
    ScanReport,
    ScanScope,
    ScanWarning,
    SchemaModel,
    TypeKind,
    ValidationOutcome,
)


def report_to_dict(report: ScanReport) -> Dict[str, Any]:
    """Convert a report into JSON-serializable primitives, preserving order."""
    return {
        "root": report.root,
        "catalog_version": report.catalog_version,
        "cancelled": report.cancelled,
        "scopes": [scope_to_dict(scope) for scope in report.scopes],
        "call_sites": [call_site_to_dict(site) for site in report.call_sites],
        "classifications": [classification_to_dict(result) for result in report.classifications],
        "schemas": [schema_to_dict(schema) for schema in report.schemas],
        "flags": [flag_to_dict(flag) for flag in report.flags],
        "warnings": [warning_to_dict(warning) for warning in report.warnings],
        "validation": {key: validation_to_dict(outcome) for key, outcome in sorted(report.validation.items())},
    }


def scope_to_dict(scope: ScanScope) -> Dict[str, Any]:
    return {
        "path": scope.label,
        "ecosystems": [eco.value for eco in scope.ecosystems],
        "manifests": list(scope.manifests),
        "dependencies": list(scope.dependencies),
    }


def call_site_to_dict(site: CallSite) -> Dict[str, Any]:
    return {
        "key": site.key,
        "role": site.role.value,
        "ecosystem": site.ecosystem.value,
        "file": site.file,
        "line": site.line,
        "topic": site.topic,
        "serializer": site.serializer,
        "custom_serializer": site.is_custom_serializer,
        "schema_registry_url": site.schema_registry_url,
        "auto_register": site.auto_register,
        "use_latest_version": site.use_latest_version,
        "type_reference": site.type_reference.name if site.type_reference else None,
        "scope": site.scope,
    }


def classification_to_dict(result: ClassificationResult) -> Dict[str, Any]:
    return {
        "call_site": result.call_site.key,
        "topic": result.call_site.topic,
        "category": result.category.value,
        "rationale": [
            {"condition": check.condition, "matched": check.matched, "detail": check.detail}
            for check in result.rationale
        ],
    }


def schema_to_dict(schema: SchemaModel) -> Dict[str, Any]:
    return {
        "name": schema.name,
        "call_site": schema.call_site_key,
        "topic": schema.topic,
        "provenance": schema.provenance.value,
        "target_format": schema.target_format.value,
        "source": schema.source,
        "fields": [field_to_dict(item) for item in schema.fields],
    }


def field_to_dict(item: FieldSchema) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": item.name,
        "type": type_to_dict(item.type),
        "nullable": item.nullable,
        "tags": sorted(tag.value for tag in item.tags),
    }
    if item.default_null:
        data["default"] = None
    if item.annotations:
        data["annotations"] = list(item.annotations)
    return data


def type_to_dict(field_type: FieldType) -> Any:
    if field_type.kind is TypeKind.RECORD:
        return {
            "kind": "record",
            "name": field_type.name,
            "fields": [field_to_dict(item) for item in field_type.fields],
        }
    if field_type.items is not None:
        key = "values" if field_type.kind is TypeKind.MAP else "items"
        return {"kind": field_type.kind.value, key: type_to_dict(field_type.items)}
    return field_type.kind.value


def flag_to_dict(flag: FlagOccurrence) -> Dict[str, Any]:
    return {
        "kind": flag.kind.value,
        "file": flag.file,
        "line": flag.line,
        "scope": flag.scope,
        "call_sites": list(flag.call_sites),
    }


def warning_to_dict(warning: ScanWarning) -> Dict[str, Any]:
    return {"kind": warning.kind.value, "message": warning.message, "path": warning.path, "line": warning.line}


def validation_to_dict(outcome: ValidationOutcome) -> Dict[str, Any]:
    return {"status": outcome.status.value, "lint": list(outcome.lint), "messages": list(outcome.messages)}


def catalog_summary(catalog: PatternCatalog) -> Dict[str, Any]:
    """Version plus per-ecosystem pattern counts."""
    ecosystems: List[Dict[str, Any]] = []
    for ecosystem, patterns in sorted(catalog.ecosystems.items(), key=lambda item: item[0].value):
        ecosystems.append(
            {
                "name": ecosystem.value,
                "manifests": list(patterns.manifests),
                "producer_patterns": len(patterns.producers),
                "consumer_patterns": len(patterns.consumers),
                "serializers": len(patterns.serializers),
            }
        )
    return {
        "version": catalog.version,
        "ecosystems": ecosystems,
        "flags": sorted(kind.value for kind in catalog.flags),
        "pii_rules": len(catalog.pii),
    }


__all__ = [
    "catalog_summary",
    "classification_to_dict",
    "report_to_dict",
    "schema_to_dict",
]
