"""Infer record schemas from sample JSON payloads."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..models import FieldSchema, FieldType, TypeKind

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_ONLY_NULL = "only null values in sample; assumed string"


@dataclass(frozen=True)
class SampleDocument:
    """A parsed sample payload and the file it came from."""

    path: str
    key: str
    data: Any


def load_sample(path: str, text: str, stems: Sequence[str] = ()) -> Optional[SampleDocument]:
    """Parse ``text`` as JSON; returns None for documents without an object payload."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if isinstance(data, list):
        objects = [item for item in data if isinstance(item, dict)]
        if not objects:
            return None
    elif not isinstance(data, dict):
        return None
    return SampleDocument(path=path, key=sample_key(path, stems), data=data)


def sample_key(path: str, stems: Sequence[str] = ()) -> str:
    """Normalized lookup key: ``samples/order_event.sample.json`` -> ``orderevent``."""
    name = path.rsplit("/", 1)[-1]
    stem = name.split(".", 1)[0].lower()
    for token in stems:
        if stem != token:
            stem = re.sub(rf"(^|[_\-.]){re.escape(token)}s?($|[_\-.])", r"\1\2", stem)
    return re.sub(r"[\s_\-.]+", "", stem)


def infer_record(data: Any, name: str) -> FieldType:
    """Build a record type from a JSON object, or a list of objects merged together."""
    if isinstance(data, list):
        objects = [item for item in data if isinstance(item, dict)]
        return _merge_objects(objects, name)
    if not isinstance(data, dict):
        raise ValueError("sample payload must be a JSON object")
    return _merge_objects([data], name)


def _merge_objects(objects: Sequence[Dict[str, Any]], name: str) -> FieldType:
    order: List[str] = []
    values: Dict[str, List[Any]] = {}
    for item in objects:
        for key, value in item.items():
            if key not in values:
                order.append(key)
                values[key] = []
            values[key].append(value)

    fields: List[FieldSchema] = []
    for key in order:
        seen = values[key]
        present_everywhere = len(seen) == len(objects)
        non_null = [value for value in seen if value is not None]
        annotations: tuple[str, ...] = ()
        if non_null:
            field_type = _merge_types([_infer_value(value, key) for value in non_null])
        else:
            field_type = FieldType.primitive(TypeKind.STRING)
            annotations = (_ONLY_NULL,)
        if len(non_null) < len(seen) or not present_everywhere:
            fields.append(FieldSchema.optional(key, field_type.non_null, annotations))
        else:
            fields.append(FieldSchema(name=key, type=field_type, annotations=annotations))
    return FieldType.record(name, fields)


def _infer_value(value: Any, key: str) -> FieldType:
    if isinstance(value, bool):
        return FieldType.primitive(TypeKind.BOOLEAN)
    if isinstance(value, int):
        if _INT32_MIN <= value <= _INT32_MAX:
            return FieldType.primitive(TypeKind.INTEGER)
        return FieldType.primitive(TypeKind.LONG)
    if isinstance(value, float):
        return FieldType.primitive(TypeKind.DOUBLE)
    if isinstance(value, dict):
        return _merge_objects([value], _record_name(key))
    if isinstance(value, list):
        items = [item for item in value if item is not None]
        if not items:
            return FieldType.array(FieldType.primitive(TypeKind.STRING))
        if all(isinstance(item, dict) for item in items):
            return FieldType.array(_merge_objects(items, _record_name(key)))
        element = _merge_types([_infer_value(item, key) for item in items])
        if len(items) < len(value):
            element = FieldType.nullable(element)
        return FieldType.array(element)
    return FieldType.primitive(TypeKind.STRING)


def _merge_types(types: Sequence[FieldType]) -> FieldType:
    """Widen numeric types (int -> long -> double) and merge records field by field.

    Arrays and maps merge their element types; any other disagreement falls
    back to string.
    """
    if any(item.kind is TypeKind.UNION for item in types):
        return FieldType.nullable(_merge_types([item.non_null for item in types]))
    first = types[0]
    kinds = {item.kind for item in types}
    if kinds == {TypeKind.RECORD}:
        return _merge_records(types)
    if len(kinds) == 1 and first.kind in (TypeKind.ARRAY, TypeKind.MAP):
        return FieldType(kind=first.kind, items=_merge_types([item.items for item in types if item.items is not None]))
    if len(kinds) == 1:
        return first
    numeric = [TypeKind.INTEGER, TypeKind.LONG, TypeKind.FLOAT, TypeKind.DOUBLE]
    if kinds <= set(numeric):
        return FieldType.primitive(max(kinds, key=numeric.index))
    return FieldType.primitive(TypeKind.STRING)


def _merge_records(records: Sequence[FieldType]) -> FieldType:
    order: List[str] = []
    found: Dict[str, List[FieldSchema]] = {}
    for record in records:
        for item in record.fields:
            if item.name not in found:
                order.append(item.name)
                found[item.name] = []
            found[item.name].append(item)

    fields: List[FieldSchema] = []
    for key in order:
        seen = found[key]
        typed = [item for item in seen if _ONLY_NULL not in item.annotations] or seen
        field_type = _merge_types([item.type.non_null for item in typed])
        annotations = tuple(dict.fromkeys(note for item in typed for note in item.annotations))
        if len(seen) < len(records) or any(item.nullable for item in seen):
            fields.append(FieldSchema.optional(key, field_type, annotations))
        else:
            fields.append(FieldSchema(name=key, type=field_type, annotations=annotations))
    return FieldType.record(records[0].name or "Nested", fields)


def _record_name(key: str) -> str:
    parts = [part for part in re.split(r"[^A-Za-z0-9]+", key) if part]
    return "".join(part[:1].upper() + part[1:] for part in parts) or "Nested"


__all__ = ["SampleDocument", "infer_record", "load_sample", "sample_key"]
