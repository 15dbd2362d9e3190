"""Heuristic PII tagging of schema fields by name."""

from __future__ import annotations

from dataclasses import replace
from typing import FrozenSet, Sequence

from .catalog import PiiRule, normalize_field_name
from .models import FieldSchema, FieldType, PiiTag, SchemaModel, TypeKind


class PiiTagger:
    """Unions catalog tags into every field whose normalized name matches a rule.

    Tagging is a pure function of the schema and the rule table, and applying
    it twice yields the same schema. Matches are heuristic; false positives
    are left for human review.
    """

    def __init__(self, rules: Sequence[PiiRule]) -> None:
        self.rules = tuple(rules)

    def tag(self, model: SchemaModel) -> SchemaModel:
        return replace(model, record=self._tag_type(model.record))

    def tags_for(self, name: str) -> FrozenSet[PiiTag]:
        normalized = normalize_field_name(name)
        found: set[PiiTag] = set()
        for rule in self.rules:
            if rule.matches(normalized):
                found.update(rule.tags)
        return frozenset(found)

    def _tag_type(self, field_type: FieldType) -> FieldType:
        if field_type.kind is TypeKind.RECORD:
            return replace(field_type, fields=tuple(self._tag_field(item) for item in field_type.fields))
        if field_type.items is not None:
            return replace(field_type, items=self._tag_type(field_type.items))
        return field_type

    def _tag_field(self, item: FieldSchema) -> FieldSchema:
        return replace(item, type=self._tag_type(item.type), tags=item.tags | self.tags_for(item.name))


__all__ = ["PiiTagger"]
