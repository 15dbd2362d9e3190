"""Tests for the Java/Kotlin call-site scanner."""

from __future__ import annotations

import pytest

from kafkascan.models import UNKNOWN_TOPIC, Ecosystem, Role, WarningKind
from kafkascan.scanners import JavaScanner
from tests._fixtures.sources import dedent, make_source


@pytest.fixture
def scanner(catalog) -> JavaScanner:
    return JavaScanner(catalog)


def test_producer_record_topic_and_type(scanner) -> None:
    text = dedent(
        """
        package com.acme.orders;

        import org.apache.kafka.clients.producer.KafkaProducer;
        import org.apache.kafka.clients.producer.ProducerRecord;

        public class OrderPublisher {
            private final KafkaProducer<String, OrderEvent> producer;

            public void publish(OrderEvent event) {
                producer.send(new ProducerRecord<>("orders", event.getId(), event));
            }
        }
        """
    )

    result = scanner.scan(make_source("src/OrderPublisher.java", Ecosystem.JAVA), text)

    assert len(result.call_sites) == 1
    site = result.call_sites[0]
    assert site.role is Role.PRODUCER
    assert site.topic == "orders"
    assert site.line == 10
    assert site.key == "src/OrderPublisher.java:10"
    assert site.type_reference is not None
    assert site.type_reference.name == "OrderEvent"
    assert result.warnings == []


def test_template_send_with_constant_topic_is_unknown(scanner) -> None:
    text = dedent(
        """
        import org.springframework.kafka.core.KafkaTemplate;

        class Publisher {
            void publish(Payment payment) {
                kafkaTemplate.send(topicName, payment);
            }
        }
        """
    )

    result = scanner.scan(make_source("Publisher.java", Ecosystem.JAVA), text)

    assert [site.topic for site in result.call_sites] == [UNKNOWN_TOPIC]
    assert [warning.kind for warning in result.warnings] == [WarningKind.AMBIGUOUS_TOPIC]


def test_template_send_unwraps_nested_record(scanner) -> None:
    text = dedent(
        """
        import org.springframework.kafka.core.KafkaTemplate;

        class Publisher {
            void publish(Payment payment) {
                kafkaTemplate.send(new ProducerRecord<String, Payment>("payments", payment));
            }
        }
        """
    )

    result = scanner.scan(make_source("Publisher.java", Ecosystem.JAVA), text)

    # The send and the record constructor share a line; one call site remains.
    assert [(site.topic, site.line) for site in result.call_sites] == [("payments", 5)]


def test_kafka_listener_topics(scanner) -> None:
    text = dedent(
        """
        import org.springframework.kafka.annotation.KafkaListener;

        class Listener {
            @KafkaListener(topics = {"orders", "refunds"}, groupId = "billing")
            void onMessage(String value) {}
        }
        """
    )

    result = scanner.scan(make_source("Listener.java", Ecosystem.JAVA), text)

    assert sorted(site.topic for site in result.call_sites) == ["orders", "refunds"]
    assert all(site.role is Role.CONSUMER for site in result.call_sites)
    assert len({site.key for site in result.call_sites}) == 1


def test_kotlin_template_interpolation_is_unknown(scanner) -> None:
    text = dedent(
        """
        import org.springframework.kafka.core.KafkaTemplate

        class Publisher(private val template: KafkaTemplate<String, Shipment>) {
            fun publish(shipment: Shipment) {
                template.send("shipments-${env}", shipment)
            }
        }
        """
    )

    result = scanner.scan(make_source("Publisher.kt", Ecosystem.JAVA), text)

    assert [site.topic for site in result.call_sites] == [UNKNOWN_TOPIC]
    assert result.call_sites[0].type_reference.name == "Shipment"


def test_files_without_kafka_imports_yield_no_call_sites(scanner) -> None:
    text = "class Mailer { void send() { client.send(\"x\"); } }"

    result = scanner.scan(make_source("Mailer.java", Ecosystem.JAVA), text)

    assert result.call_sites == []


def test_custom_serializer_definition(scanner) -> None:
    text = dedent(
        """
        import org.apache.kafka.common.serialization.Serializer;

        public class OrderSerializer implements Serializer<Order> {
            private final ObjectMapper mapper = new ObjectMapper();

            public byte[] serialize(String topic, Order order) {
                return mapper.writeValueAsBytes(order);
            }
        }
        """
    )

    result = scanner.scan(make_source("OrderSerializer.java", Ecosystem.JAVA), text)

    assert result.custom_definitions == ["OrderSerializer"]
    assert result.call_sites == []


def test_serializers_and_registry_url_in_source(scanner) -> None:
    text = dedent(
        """
        import io.confluent.kafka.serializers.KafkaAvroSerializer;

        class Config {
            void configure(Properties props) {
                props.put(AbstractKafkaSchemaSerDeConfig.SCHEMA_REGISTRY_URL_CONFIG, "http://sr:8081");
                props.put(ProducerConfig.VALUE_SERIALIZER_CLASS_CONFIG, KafkaAvroSerializer.class);
                props.put(AbstractKafkaSchemaSerDeConfig.AUTO_REGISTER_SCHEMAS, Boolean.TRUE);
            }
        }
        """
    )

    result = scanner.scan(make_source("Config.java", Ecosystem.JAVA), text)

    assert [rule.name for rule in result.serializers] == ["KafkaAvroSerializer"]
    assert result.registry_urls == ["http://sr:8081"]
    assert [kind.value for kind, _ in result.flags] == ["auto.register.schemas"]
