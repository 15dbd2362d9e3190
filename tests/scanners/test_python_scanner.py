"""Tests for the Python call-site scanner."""

from __future__ import annotations

import pytest

from kafkascan.models import UNKNOWN_TOPIC, Ecosystem, Role, WarningKind
from kafkascan.scanners import PythonScanner
from tests._fixtures.sources import dedent, make_source


@pytest.fixture
def scanner(catalog) -> PythonScanner:
    return PythonScanner(catalog)


def test_inline_lambda_serializer_is_custom(scanner) -> None:
    text = dedent(
        """
        import json

        from kafka import KafkaProducer

        producer = KafkaProducer(
            bootstrap_servers="localhost:9092",
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        )


        def publish(order):
            producer.send("orders", order)
        """
    )

    result = scanner.scan(make_source("app/publisher.py", Ecosystem.PYTHON), text)

    assert [(site.topic, site.line) for site in result.call_sites] == [("orders", 12)]
    assert result.inline_custom is not None
    assert result.inline_custom.startswith("value_serializer=lambda")
    assert [rule.name for rule in result.serializers] == ["json.dumps"]


def test_keyword_topic_and_fstring(scanner) -> None:
    text = dedent(
        """
        from confluent_kafka import Producer

        producer = Producer({"bootstrap.servers": "kafka:9092"})
        producer.produce(topic="payments", value=payload)
        producer.produce(f"audit-{env}", value=payload)
        """
    )

    result = scanner.scan(make_source("jobs.py", Ecosystem.PYTHON), text)

    assert [(site.topic, site.line) for site in result.call_sites] == [("payments", 4), (UNKNOWN_TOPIC, 5)]
    assert [(warning.kind, warning.line) for warning in result.warnings] == [(WarningKind.AMBIGUOUS_TOPIC, 5)]


def test_implicit_concatenation_is_literal(scanner) -> None:
    text = dedent(
        """
        from kafka import KafkaProducer

        producer.send("orders" ".v2", data)
        """
    )

    result = scanner.scan(make_source("jobs.py", Ecosystem.PYTHON), text)

    assert [site.topic for site in result.call_sites] == ["orders.v2"]


def test_subscribe_list_yields_one_site_per_topic(scanner) -> None:
    text = dedent(
        """
        from kafka import KafkaConsumer

        consumer = KafkaConsumer(bootstrap_servers="kafka:9092")
        consumer.subscribe(["orders", "refunds"])
        """
    )

    result = scanner.scan(make_source("worker.py", Ecosystem.PYTHON), text)

    assert [(site.role, site.topic, site.line) for site in result.call_sites] == [
        (Role.CONSUMER, "orders", 4),
        (Role.CONSUMER, "refunds", 4),
    ]


def test_consumer_client_topic_used_without_calls(scanner) -> None:
    text = dedent(
        """
        from kafka import KafkaConsumer

        consumer = KafkaConsumer("shipments", group_id="billing")
        for message in consumer:
            handle(message)
        """
    )

    result = scanner.scan(make_source("worker.py", Ecosystem.PYTHON), text)

    assert [(site.role, site.topic) for site in result.call_sites] == [(Role.CONSUMER, "shipments")]


def test_custom_serializer_function(scanner) -> None:
    text = dedent(
        """
        import json

        from confluent_kafka import Producer


        def serialize_order(order):
            return json.dumps(order.__dict__).encode()
        """
    )

    result = scanner.scan(make_source("serde.py", Ecosystem.PYTHON), text)

    assert result.custom_definitions == ["serialize_order"]


def test_type_reference_from_value_constructor(scanner) -> None:
    text = dedent(
        """
        from kafka import KafkaProducer

        producer.send("orders", value=Order(id=1, email="a@example.com"))
        """
    )

    result = scanner.scan(make_source("jobs.py", Ecosystem.PYTHON), text)

    assert result.call_sites[0].type_reference is not None
    assert result.call_sites[0].type_reference.name == "Order"


def test_registry_url_from_client_config(scanner) -> None:
    text = dedent(
        """
        from confluent_kafka.schema_registry import SchemaRegistryClient

        client = SchemaRegistryClient({"url": "http://registry:8081"})
        """
    )

    result = scanner.scan(make_source("registry.py", Ecosystem.PYTHON), text)

    assert result.registry_urls == ["http://registry:8081"]
    assert result.call_sites == []
