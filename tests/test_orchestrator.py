"""End-to-end tests for the scan orchestrator."""

from __future__ import annotations

import threading

import pytest

from kafkascan.errors import ConfigError, ScanRootError
from kafkascan.export import report_to_dict
from kafkascan.models import (
    UNKNOWN_TOPIC,
    Category,
    FlagKind,
    PiiTag,
    Provenance,
    Role,
    ValidationStatus,
    WarningKind,
)
from kafkascan.orchestrator import Orchestrator
from kafkascan.validation import CompatibilityVerdict, lint_schema

POM = """
<project>
  <dependencies>
    <dependency>
      <groupId>org.apache.kafka</groupId>
      <artifactId>kafka-clients</artifactId>
    </dependency>
  </dependencies>
</project>
"""

PUBLISHER = """
package com.acme;

import org.apache.kafka.clients.producer.KafkaProducer;
import org.apache.kafka.clients.producer.ProducerRecord;

public class OrderPublisher {
    private final KafkaProducer<String, OrderEvent> producer;

    public OrderPublisher(KafkaProducer<String, OrderEvent> producer) {
        this.producer = producer;
    }

    public void publish(OrderEvent event) {
        producer.send(new ProducerRecord<>("orders", event.getId(), event));
    }
}
"""

ORDER_EVENT = """
package com.acme;

public class OrderEvent {
    private String id;
    private String customerEmail;
    private double total;
}
"""

AVRO_PROPERTIES = """
value.serializer=io.confluent.kafka.serializers.KafkaAvroSerializer
schema.registry.url=http://registry:8081
"""

PUBLISHER_KEY = "src/main/java/com/acme/OrderPublisher.java:14"


def _java_repo(repo_builder, properties: str, *, with_model: bool = True) -> None:
    files = {
        "pom.xml": POM,
        "src/main/resources/application.properties": properties,
        "src/main/java/com/acme/OrderPublisher.java": PUBLISHER,
    }
    if with_model:
        files["src/main/java/com/acme/OrderEvent.java"] = ORDER_EVENT
    repo_builder.write(files)


class StaticValidator:
    name = "static"

    def __init__(self, compatible: bool = True) -> None:
        self.compatible = compatible
        self.subjects = []

    def infer(self, sample):
        raise NotImplementedError

    def lint(self, model):
        return lint_schema(model)

    def validate(self, model, target):
        self.subjects.append(target)
        return CompatibilityVerdict(self.compatible, ())


def test_python_inline_lambda_is_custom(repo_builder) -> None:
    repo_builder.write(
        {
            "requirements.txt": "kafka-python==2.0.2\n",
            "app/publisher.py": """
                import json

                from kafka import KafkaProducer

                producer = KafkaProducer(
                    bootstrap_servers="localhost:9092",
                    value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                )


                def publish(order):
                    producer.send("orders", order)
            """,
        }
    )

    report = repo_builder.scan()

    assert [result.category for result in report.classifications] == [Category.E]
    site = report.classifications[0].call_site
    assert site.key == "app/publisher.py:12"
    assert site.topic == "orders"
    assert site.is_custom_serializer
    assert site.serializer.startswith("value_serializer=lambda")
    assert [scope.dependencies for scope in report.scopes] == [("kafka-python",)]
    assert WarningKind.TYPE_UNRESOLVABLE in {warning.kind for warning in report.warnings}


def test_producers_in_one_file_keep_their_own_serializers(repo_builder) -> None:
    repo_builder.write(
        {
            "requirements.txt": "confluent-kafka\nkafka-python\n",
            "app/publisher.py": """
                import json

                from confluent_kafka import SerializingProducer
                from confluent_kafka.schema_registry import SchemaRegistryClient
                from confluent_kafka.schema_registry.avro import AvroSerializer
                from kafka import KafkaProducer

                raw = KafkaProducer(value_serializer=lambda v: json.dumps(v).encode("utf-8"))
                registry = SchemaRegistryClient({"url": "http://registry:8081"})
                avro_serializer = AvroSerializer(registry, open("order.avsc").read())
                producer = SerializingProducer({"value.serializer": avro_serializer})


                def publish(order):
                    raw.send("raw-orders", order)
                    producer.produce("avro-orders", value=order)
            """,
        }
    )

    report = repo_builder.scan()

    by_topic = {result.call_site.topic: result for result in report.classifications}
    raw, avro = by_topic["raw-orders"], by_topic["avro-orders"]
    assert raw.call_site.key == "app/publisher.py:15"
    assert raw.category is Category.E
    assert raw.call_site.is_custom_serializer is True
    assert raw.call_site.serializer.startswith("value_serializer=lambda")
    assert avro.call_site.key == "app/publisher.py:16"
    assert avro.category is not Category.E
    assert avro.call_site.serializer == "AvroSerializer"
    assert avro.call_site.is_custom_serializer is False
    assert avro.call_site.schema_registry_url == "http://registry:8081"


def test_java_auto_register_flag(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES + "auto.register.schemas=true\n")

    report = repo_builder.scan()

    [result] = report.classifications
    assert result.category is Category.C
    assert result.call_site.key == PUBLISHER_KEY
    assert result.call_site.serializer == "KafkaAvroSerializer"
    assert result.call_site.auto_register is True
    assert [(flag.kind, flag.file, flag.line, flag.call_sites) for flag in report.flags] == [
        (FlagKind.AUTO_REGISTER, "src/main/resources/application.properties", 3, (PUBLISHER_KEY,))
    ]
    assert report.scopes[0].dependencies == ("org.apache.kafka", "kafka-clients")


def test_configuration_flag_reaches_producers_in_every_package(repo_builder) -> None:
    repo_builder.write(
        {
            "pom.xml": POM,
            "src/main/resources/application.properties": AVRO_PROPERTIES + "auto.register.schemas=true\n",
            "src/main/java/com/acme/OrderEvent.java": ORDER_EVENT,
            "src/main/java/com/acme/a/APublisher.java": PUBLISHER.replace("package com.acme;", "package com.acme.a;"),
            "src/main/java/com/acme/b/deep/BPublisher.java": PUBLISHER.replace(
                "package com.acme;", "package com.acme.b.deep;"
            ),
        }
    )

    report = repo_builder.scan()

    keys = ("src/main/java/com/acme/a/APublisher.java:14", "src/main/java/com/acme/b/deep/BPublisher.java:14")
    assert [(result.call_site.key, result.category) for result in report.classifications] == [
        (keys[0], Category.C),
        (keys[1], Category.C),
    ]
    assert all(result.call_site.auto_register for result in report.classifications)
    assert [(flag.kind, flag.call_sites) for flag in report.flags] == [(FlagKind.AUTO_REGISTER, keys)]


def test_java_registry_integration_is_category_a(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES)

    report = repo_builder.scan()

    [result] = report.classifications
    assert result.category is Category.A
    assert result.call_site.schema_registry_url == "http://registry:8081"
    [schema] = report.schemas
    assert schema.provenance is Provenance.DECLARED_TYPE
    assert schema.name == "OrderEvent"
    assert schema.call_site_key == PUBLISHER_KEY
    assert schema.field("customerEmail").tags == frozenset({PiiTag.PII})
    assert report.flags == []


def test_missing_declaration_is_category_d(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES, with_model=False)

    report = repo_builder.scan()

    assert [result.category for result in report.classifications] == [Category.D]
    assert report.schemas == []
    assert [(warning.kind, warning.path) for warning in report.warnings] == [
        (WarningKind.TYPE_UNRESOLVABLE, "src/main/java/com/acme/OrderPublisher.java")
    ]


def test_plain_serializer_is_category_b(repo_builder) -> None:
    _java_repo(repo_builder, "value.serializer=org.apache.kafka.common.serialization.StringSerializer\n")

    report = repo_builder.scan()

    [result] = report.classifications
    assert result.category is Category.B
    assert result.call_site.serializer == "StringSerializer"
    assert result.call_site.schema_registry_url is None


def test_non_literal_topic_is_still_classified(repo_builder) -> None:
    repo_builder.write(
        {
            "requirements.txt": "confluent-kafka\n",
            "app/models.py": """
                from dataclasses import dataclass


                @dataclass
                class Order:
                    id: int
                    email: str
            """,
            "app/publisher.py": """
                import os

                from confluent_kafka import Producer

                producer = Producer({"bootstrap.servers": "kafka:9092"})
                TOPIC = os.environ["ORDERS_TOPIC"]


                def publish(order_id, email):
                    producer.produce(TOPIC, value=Order(id=order_id, email=email))
            """,
        }
    )

    report = repo_builder.scan()

    [result] = report.classifications
    assert result.call_site.topic == UNKNOWN_TOPIC
    assert result.category is Category.B
    assert report.schemas[0].topic == UNKNOWN_TOPIC
    assert (WarningKind.AMBIGUOUS_TOPIC, "app/publisher.py") in {
        (warning.kind, warning.path) for warning in report.warnings
    }
    assert report.validation["app/publisher.py:10"].status is ValidationStatus.UNVALIDATED


def test_directory_without_manifest(repo_builder) -> None:
    repo_builder.write(
        {
            "scripts/tool.py": """
                from kafka import KafkaProducer

                KafkaProducer().send("orders", b"x")
            """,
        }
    )

    report = repo_builder.scan()

    assert report.call_sites == []
    assert report.classifications == []
    assert [(warning.kind, warning.path) for warning in report.warnings] == [
        (WarningKind.ECOSYSTEM_UNDETERMINED, "scripts/tool.py")
    ]


def test_declarations_do_not_cross_scopes(repo_builder) -> None:
    repo_builder.write(
        {
            "orders/requirements.txt": "confluent-kafka\n",
            "orders/models.py": """
                from dataclasses import dataclass


                @dataclass
                class Order:
                    id: int
            """,
            "orders/publisher.py": """
                from confluent_kafka import Producer

                producer.produce("orders", value=Order(id=1))
            """,
            "billing/requirements.txt": "confluent-kafka\n",
            "billing/publisher.py": """
                from confluent_kafka import Producer

                producer.produce("invoices", value=Order(id=1))
            """,
        }
    )

    report = repo_builder.scan()

    categories = {result.call_site.topic: result.category for result in report.classifications}
    assert categories == {"invoices": Category.D, "orders": Category.B}
    assert [scope.path for scope in report.scopes] == ["", "billing", "orders"]


def test_schema_files_and_samples_are_fallbacks(repo_builder) -> None:
    repo_builder.write(
        {
            "requirements.txt": "confluent-kafka\n",
            "schemas/order.avsc": """
                {"type": "record", "name": "Order", "fields": [{"name": "id", "type": "long"}]}
            """,
            "schemas/broken.avsc": "{not json",
            "samples/refunds.json": '{"refund_id": 7, "amount": 12.5}',
            "app/publisher.py": """
                from confluent_kafka import Producer

                producer.produce("orders", value=Order(id=1))
                producer.produce("refunds", value=payload)
            """,
        }
    )

    report = repo_builder.scan()

    provenance = {schema.topic: (schema.provenance, schema.source) for schema in report.schemas}
    assert provenance == {
        "orders": (Provenance.EXISTING_SCHEMA_FILE, "schemas/order.avsc"),
        "refunds": (Provenance.INFERRED_FROM_SAMPLE, "samples/refunds.json"),
    }
    assert (WarningKind.FILE_UNREADABLE, "schemas/broken.avsc") in {
        (warning.kind, warning.path) for warning in report.warnings
    }


def test_oversize_files_are_skipped(repo_builder) -> None:
    repo_builder.write(
        {
            ".kafkascan.yml": "scan:\n  max_file_bytes: 200\n",
            "requirements.txt": "confluent-kafka\n",
            "app/big.py": "x = 1\n" * 100,
        }
    )

    report = repo_builder.scan()

    assert [(warning.kind, warning.path) for warning in report.warnings] == [
        (WarningKind.FILE_UNREADABLE, "app/big.py")
    ]


def test_cancelled_scan_returns_partial_report(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES)
    cancel = threading.Event()
    cancel.set()

    report = repo_builder.scan(cancel_event=cancel)

    assert report.cancelled is True
    assert report.call_sites == []
    assert WarningKind.SCAN_CANCELLED in {warning.kind for warning in report.warnings}


def test_reports_are_deterministic_across_worker_counts(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES + "use.latest.version=true\n")

    single = report_to_dict(repo_builder.scan(workers=1))
    pooled = report_to_dict(repo_builder.scan(workers=4))

    assert single == pooled
    assert single["classifications"][0]["category"] == "A"


def test_injected_validator_checks_topic_subject(repo_builder) -> None:
    _java_repo(repo_builder, AVRO_PROPERTIES)
    validator = StaticValidator(compatible=False)

    report = Orchestrator(catalog=repo_builder.catalog, validator=validator).run_scan(repo_builder.path(), workers=1)

    assert validator.subjects == ["orders-value"]
    assert report.validation[PUBLISHER_KEY].status is ValidationStatus.INCOMPATIBLE


def test_consumers_are_reported_but_not_classified(repo_builder) -> None:
    repo_builder.write(
        {
            "requirements.txt": "kafka-python\n",
            "worker.py": """
                from kafka import KafkaConsumer

                consumer = KafkaConsumer("orders", group_id="billing")
            """,
        }
    )

    report = repo_builder.scan()

    assert [(site.role, site.topic) for site in report.call_sites] == [(Role.CONSUMER, "orders")]
    assert report.classifications == []


def test_missing_root_raises(tmp_path) -> None:
    with pytest.raises(ScanRootError):
        Orchestrator().run_scan(tmp_path / "missing")


def test_malformed_config_raises(repo_builder) -> None:
    repo_builder.write({".kafkascan.yml": "scan: [unclosed\n", "requirements.txt": "kafka-python\n"})

    with pytest.raises(ConfigError):
        repo_builder.scan()
