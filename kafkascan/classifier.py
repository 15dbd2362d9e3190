"""Deterministic producer classification into categories A-E."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from .catalog import PatternCatalog
from .models import CallSite, Category, ClassificationResult, ConditionCheck, Role, SchemaModel

Guard = Callable[[CallSite, Optional[SchemaModel], PatternCatalog], Tuple[bool, str]]


@dataclass(frozen=True)
class Rule:
    """One row of the decision table: a named guard and the category it selects."""

    condition: str
    guard: Guard
    category: Category


def _auto_register(site: CallSite, schema: Optional[SchemaModel], catalog: PatternCatalog) -> Tuple[bool, str]:
    return site.auto_register, f"auto.register.schemas={'true' if site.auto_register else 'unset'}"


def _custom_serializer(site: CallSite, schema: Optional[SchemaModel], catalog: PatternCatalog) -> Tuple[bool, str]:
    detail = f"serializer={site.serializer}" if site.serializer else "serializer unknown"
    return site.is_custom_serializer, detail


def _schema_missing(site: CallSite, schema: Optional[SchemaModel], catalog: PatternCatalog) -> Tuple[bool, str]:
    if schema is None:
        return True, "no schema could be inferred"
    return False, f"schema from {schema.provenance.value}"


def _registry_integrated(site: CallSite, schema: Optional[SchemaModel], catalog: PatternCatalog) -> Tuple[bool, str]:
    confluent = catalog.is_confluent_serializer(site.serializer, site.ecosystem)
    url = site.schema_registry_url
    detail = f"registry_url={url or 'unset'}, confluent_serializer={'yes' if confluent else 'no'}"
    return bool(url) and confluent, detail


def _fallthrough(site: CallSite, schema: Optional[SchemaModel], catalog: PatternCatalog) -> Tuple[bool, str]:
    return True, "no registry integration detected"


DECISION_TABLE: Tuple[Rule, ...] = (
    Rule("auto_register_enabled", _auto_register, Category.C),
    Rule("custom_serializer", _custom_serializer, Category.E),
    Rule("schema_unresolved", _schema_missing, Category.D),
    Rule("confluent_serializer_with_registry", _registry_integrated, Category.A),
    Rule("default", _fallthrough, Category.B),
)


class ProducerClassifier:
    """Evaluates the decision table top to bottom; the first matching rule wins.

    Every rule is evaluated so the rationale records all checked conditions.
    """

    def __init__(self, catalog: PatternCatalog, rules: Sequence[Rule] = DECISION_TABLE) -> None:
        if not rules:
            raise ValueError("classifier needs at least one rule")
        self.catalog = catalog
        self.rules = tuple(rules)

    def classify(self, call_site: CallSite, schema: Optional[SchemaModel] = None) -> ClassificationResult:
        if call_site.role is not Role.PRODUCER:
            raise ValueError(f"only producers are classified, got {call_site.role.value} at {call_site.key}")
        checks = []
        category: Optional[Category] = None
        for rule in self.rules:
            matched, detail = rule.guard(call_site, schema, self.catalog)
            checks.append(ConditionCheck(condition=rule.condition, matched=matched, detail=detail))
            if matched and category is None:
                category = rule.category
        if category is None:
            category = self.rules[-1].category
        return ClassificationResult(call_site=call_site, category=category, rationale=tuple(checks))


__all__ = ["DECISION_TABLE", "ProducerClassifier", "Rule"]
