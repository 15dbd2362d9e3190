"""Tests for the Go call-site scanner."""

from __future__ import annotations

import pytest

from kafkascan.models import UNKNOWN_TOPIC, Ecosystem, Role, WarningKind
from kafkascan.scanners import GoScanner
from tests._fixtures.sources import dedent, make_source


@pytest.fixture
def scanner(catalog) -> GoScanner:
    return GoScanner(catalog)


def test_pointer_topic_is_unknown(scanner) -> None:
    text = dedent(
        """
        package main

        import (
        	"github.com/confluentinc/confluent-kafka-go/v2/kafka"
        )

        func publish(p *kafka.Producer, topic string, payload []byte) {
        	p.Produce(&kafka.Message{
        		TopicPartition: kafka.TopicPartition{Topic: &topic, Partition: kafka.PartitionAny},
        		Value:          payload,
        	}, nil)
        }
        """
    )

    result = scanner.scan(make_source("cmd/publish.go", Ecosystem.GO), text)

    assert [(site.topic, site.line) for site in result.call_sites] == [(UNKNOWN_TOPIC, 8)]
    assert [warning.kind for warning in result.warnings] == [WarningKind.AMBIGUOUS_TOPIC]


def test_writer_topic_applies_to_write_messages(scanner) -> None:
    text = dedent(
        """
        package main

        import (
        	"context"

        	"github.com/segmentio/kafka-go"
        )

        func main() {
        	w := &kafka.Writer{Addr: kafka.TCP("localhost:9092"), Topic: "payments"}
        	w.WriteMessages(context.Background(), kafka.Message{Value: []byte("hi")})
        }
        """
    )

    result = scanner.scan(make_source("main.go", Ecosystem.GO), text)

    assert [(site.topic, site.line) for site in result.call_sites] == [("payments", 11)]
    assert result.warnings == []


def test_subscribe_topics_slice(scanner) -> None:
    text = dedent(
        """
        package main

        import "github.com/confluentinc/confluent-kafka-go/v2/kafka"

        func consume(c *kafka.Consumer) {
        	c.SubscribeTopics([]string{"orders", "refunds"}, nil)
        }
        """
    )

    result = scanner.scan(make_source("consume.go", Ecosystem.GO), text)

    assert [(site.role, site.topic) for site in result.call_sites] == [
        (Role.CONSUMER, "orders"),
        (Role.CONSUMER, "refunds"),
    ]


def test_encode_method_is_custom_serializer(scanner) -> None:
    text = dedent(
        """
        package events

        import "encoding/json"

        func (e OrderEvent) Encode() ([]byte, error) {
        	return json.Marshal(e)
        }
        """
    )

    result = scanner.scan(make_source("events.go", Ecosystem.GO), text)

    assert result.custom_definitions == ["OrderEvent"]
    assert [rule.name for rule in result.serializers] == ["json.Marshal"]
    assert result.call_sites == []
