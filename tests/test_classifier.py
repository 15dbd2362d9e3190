"""Tests for producer classification."""

from __future__ import annotations

import pytest

from kafkascan.classifier import DECISION_TABLE, ProducerClassifier
from kafkascan.models import (
    UNKNOWN_TOPIC,
    CallSite,
    Category,
    Ecosystem,
    FieldSchema,
    FieldType,
    Provenance,
    Role,
    SchemaModel,
    TypeKind,
)

SCHEMA = SchemaModel(
    record=FieldType.record("Order", [FieldSchema(name="id", type=FieldType.primitive(TypeKind.STRING))]),
    provenance=Provenance.DECLARED_TYPE,
)


def _site(**overrides) -> CallSite:
    values = dict(role=Role.PRODUCER, ecosystem=Ecosystem.JAVA, file="src/Publisher.java", line=10, topic="orders")
    values.update(overrides)
    return CallSite(**values)


@pytest.fixture
def classifier(catalog) -> ProducerClassifier:
    return ProducerClassifier(catalog)


def test_auto_register_takes_priority(classifier) -> None:
    site = _site(auto_register=True, is_custom_serializer=True, serializer="OrderSerializer")

    result = classifier.classify(site, None)

    assert result.category is Category.C
    assert result.decisive.condition == "auto_register_enabled"
    assert [check.condition for check in result.rationale] == [rule.condition for rule in DECISION_TABLE]
    assert [check.matched for check in result.rationale][:3] == [True, True, True]


def test_custom_serializer(classifier) -> None:
    result = classifier.classify(_site(is_custom_serializer=True, serializer="OrderSerializer"), SCHEMA)

    assert result.category is Category.E
    assert result.decisive.detail == "serializer=OrderSerializer"


def test_missing_schema(classifier) -> None:
    result = classifier.classify(_site(serializer="KafkaAvroSerializer", schema_registry_url="http://sr:8081"), None)

    assert result.category is Category.D


def test_confluent_serializer_with_registry(classifier) -> None:
    site = _site(serializer="KafkaAvroSerializer", schema_registry_url="http://sr:8081")

    result = classifier.classify(site, SCHEMA)

    assert result.category is Category.A
    assert result.decisive.detail == "registry_url=http://sr:8081, confluent_serializer=yes"


def test_no_registry_integration(classifier) -> None:
    assert classifier.classify(_site(serializer="KafkaAvroSerializer"), SCHEMA).category is Category.B
    assert classifier.classify(_site(serializer="StringSerializer", schema_registry_url="http://sr:8081"), SCHEMA).category is Category.B
    assert classifier.classify(_site(topic=UNKNOWN_TOPIC), SCHEMA).category is Category.B


def test_consumers_are_rejected(classifier) -> None:
    with pytest.raises(ValueError):
        classifier.classify(_site(role=Role.CONSUMER), SCHEMA)


def test_classifier_requires_rules(catalog) -> None:
    with pytest.raises(ValueError):
        ProducerClassifier(catalog, rules=())
