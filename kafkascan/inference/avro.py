"""Conversion between Avro schema documents and :class:`SchemaModel`."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..models import FieldSchema, FieldType, PiiTag, Provenance, SchemaModel, TargetFormat, TypeKind

_PRIMITIVES = {
    "string": TypeKind.STRING,
    "bytes": TypeKind.STRING,
    "int": TypeKind.INTEGER,
    "long": TypeKind.LONG,
    "float": TypeKind.FLOAT,
    "double": TypeKind.DOUBLE,
    "boolean": TypeKind.BOOLEAN,
}

_AVRO_NAMES = {value: key for key, value in _PRIMITIVES.items() if key != "bytes"}


class AvroSchemaError(ValueError):
    """Raised when a document is not a usable Avro record schema."""


@dataclass(frozen=True)
class SchemaDocument:
    """An ``.avsc`` file parsed into a record type."""

    path: str
    name: str
    namespace: Optional[str]
    record: FieldType


def load_schema_document(path: str, text: str) -> SchemaDocument:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise AvroSchemaError(f"{path}: invalid JSON ({exc})") from exc
    record = parse_avro(data)
    namespace = data.get("namespace") if isinstance(data, dict) else None
    return SchemaDocument(path=path, name=record.name or "", namespace=namespace, record=record)


def parse_avro(data: Any) -> FieldType:
    """Convert an Avro record schema (as parsed JSON) into a record ``FieldType``."""
    if not isinstance(data, dict) or data.get("type") != "record":
        raise AvroSchemaError("top-level Avro schema must be a record")
    return _parse_type(data, {})


def _parse_type(node: Any, named: Dict[str, FieldType]) -> FieldType:
    if isinstance(node, str):
        if node == "null":
            return FieldType.nullable(FieldType.primitive(TypeKind.STRING))
        if node in _PRIMITIVES:
            return FieldType.primitive(_PRIMITIVES[node])
        short = node.rsplit(".", 1)[-1]
        if node in named:
            return named[node]
        if short in named:
            return named[short]
        raise AvroSchemaError(f"unknown Avro type '{node}'")
    if isinstance(node, list):
        arms = [arm for arm in node if arm != "null"]
        if len(arms) != 1:
            # Only the null/non-null shape maps onto the model; wider unions degrade to string.
            return FieldType.nullable(FieldType.primitive(TypeKind.STRING))
        inner = _parse_type(arms[0], named)
        return FieldType.nullable(inner) if len(arms) < len(node) else inner
    if not isinstance(node, dict):
        raise AvroSchemaError(f"unsupported Avro type node {node!r}")

    kind = node.get("type")
    if kind == "record":
        name = str(node.get("name") or "Record")
        fields: List[FieldSchema] = []
        for entry in node.get("fields") or []:
            if not isinstance(entry, dict) or "name" not in entry:
                raise AvroSchemaError(f"record {name} has a malformed field")
            field_type = _parse_type(entry.get("type"), named)
            tags = frozenset(PiiTag(tag) for tag in entry.get("tags", []) if tag in PiiTag.__members__)
            if field_type.kind is TypeKind.UNION:
                fields.append(
                    FieldSchema(
                        name=str(entry["name"]),
                        type=field_type,
                        nullable=True,
                        default_null="default" in entry and entry["default"] is None,
                        tags=tags,
                    )
                )
            else:
                fields.append(FieldSchema(name=str(entry["name"]), type=field_type, tags=tags))
        record = FieldType.record(name, fields)
        named[name] = record
        namespace = node.get("namespace")
        if namespace:
            named[f"{namespace}.{name}"] = record
        return record
    if kind == "array":
        return FieldType.array(_parse_type(node.get("items"), named))
    if kind == "map":
        return FieldType.map(_parse_type(node.get("values"), named))
    if kind in ("enum", "fixed"):
        named[str(node.get("name"))] = FieldType.primitive(TypeKind.STRING)
        return FieldType.primitive(TypeKind.STRING)
    if isinstance(kind, (str, list, dict)):
        # {"type": "long", "logicalType": "timestamp-millis"} and similar wrappers
        return _parse_type(kind, named)
    raise AvroSchemaError(f"unsupported Avro type node {node!r}")


def model_to_avro(model: SchemaModel, namespace: Optional[str] = None) -> Dict[str, Any]:
    """Dump a schema model as an Avro record document."""
    document = _record_to_avro(model.record, set())
    if namespace:
        document = {"type": "record", "name": document["name"], "namespace": namespace, "fields": document["fields"]}
    return document


def _record_to_avro(record: FieldType, defined: set[str]) -> Dict[str, Any]:
    name = record.name or "Record"
    defined.add(name)
    fields: List[Dict[str, Any]] = []
    for item in record.fields:
        entry: Dict[str, Any] = {"name": item.name, "type": _type_to_avro(item.type, defined)}
        if item.default_null:
            entry["default"] = None
        if item.tags:
            entry["tags"] = sorted(tag.value for tag in item.tags)
        fields.append(entry)
    return {"type": "record", "name": name, "fields": fields}


def _type_to_avro(field_type: FieldType, defined: set[str]) -> Any:
    kind = field_type.kind
    if kind in _AVRO_NAMES:
        return _AVRO_NAMES[kind]
    if kind is TypeKind.ARRAY and field_type.items is not None:
        return {"type": "array", "items": _type_to_avro(field_type.items, defined)}
    if kind is TypeKind.MAP and field_type.items is not None:
        return {"type": "map", "values": _type_to_avro(field_type.items, defined)}
    if kind is TypeKind.UNION and field_type.items is not None:
        return ["null", _type_to_avro(field_type.items, defined)]
    if kind is TypeKind.RECORD:
        if field_type.name in defined:
            return field_type.name
        return _record_to_avro(field_type, defined)
    raise AvroSchemaError(f"cannot express {kind.value} in Avro")


def model_from_document(document: SchemaDocument, *, call_site_key: str | None = None, topic: str | None = None) -> SchemaModel:
    kwargs: Dict[str, Any] = {}
    if topic:
        kwargs["topic"] = topic
    return SchemaModel(
        record=document.record,
        provenance=Provenance.EXISTING_SCHEMA_FILE,
        target_format=TargetFormat.AVRO,
        source=document.path,
        call_site_key=call_site_key,
        **kwargs,
    )


__all__ = [
    "AvroSchemaError",
    "SchemaDocument",
    "load_schema_document",
    "model_from_document",
    "model_to_avro",
    "parse_avro",
]
