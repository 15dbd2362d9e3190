"""Tests for the schema inference engine."""

from __future__ import annotations

import json

import pytest

from kafkascan.errors import TypeUnresolvable
from kafkascan.inference import (
    Declaration,
    DeclaredField,
    SampleDocument,
    SchemaInferenceEngine,
    extract_declarations,
    load_schema_document,
)
from kafkascan.models import (
    UNKNOWN_TOPIC,
    CallSite,
    Ecosystem,
    Provenance,
    Role,
    TargetFormat,
    TypeReference,
    WarningKind,
)
from tests._fixtures.sources import dedent

MODELS = dedent(
    """
    from dataclasses import dataclass
    from typing import Optional


    @dataclass
    class Order:
        id: int
        email: str
        order_total: float
        coupon: Optional[str] = None
    """
)


def _site(
    *,
    file: str = "app/publisher.py",
    topic: str = "orders",
    type_name: str | None = None,
    candidates: tuple = (),
    serializer: str | None = None,
    custom: bool = False,
) -> CallSite:
    reference = TypeReference(name=type_name, file=file, candidates=candidates) if type_name else None
    return CallSite(
        role=Role.PRODUCER,
        ecosystem=Ecosystem.PYTHON,
        file=file,
        line=12,
        topic=topic,
        serializer=serializer,
        is_custom_serializer=custom,
        type_reference=reference,
    )


def _order_schema(name: str = "Order") -> str:
    return json.dumps(
        {"type": "record", "name": name, "fields": [{"name": "id", "type": "long"}]}
    )


def test_declared_type_wins(catalog) -> None:
    declarations = extract_declarations(MODELS, Ecosystem.PYTHON, "app/models.py")
    engine = SchemaInferenceEngine(catalog, declarations)

    model, warnings = engine.infer(_site(type_name="Order", serializer="AvroSerializer"))

    assert model.provenance is Provenance.DECLARED_TYPE
    assert model.target_format is TargetFormat.AVRO
    assert model.source == "app/models.py:6"
    assert model.call_site_key == "app/publisher.py:12"
    assert model.topic == "orders"
    assert [field.name for field in model.fields] == ["id", "email", "order_total", "coupon"]
    assert model.field("coupon").nullable
    assert warnings == []


def test_nearest_declaration_is_used(catalog) -> None:
    far = Declaration("Order", Ecosystem.PYTHON, "billing/models.py", 3, (DeclaredField("amount", "int"),))
    near = Declaration("Order", Ecosystem.PYTHON, "app/models.py", 3, (DeclaredField("id", "int"),))
    engine = SchemaInferenceEngine(catalog, [far, near])

    model, _ = engine.infer(_site(type_name="Order"))

    assert [field.name for field in model.fields] == ["id"]


def test_subclass_without_own_fields_inherits_base(catalog) -> None:
    base = extract_declarations(MODELS, Ecosystem.PYTHON, "app/models.py")
    child = extract_declarations(
        dedent(
            """
            from app.models import Order


            class PriorityOrder(Order):
                pass
            """
        ),
        Ecosystem.PYTHON,
        "app/priority.py",
    )
    engine = SchemaInferenceEngine(catalog, base + child)

    model, _ = engine.infer(_site(type_name="PriorityOrder"))

    assert model.record.name == "PriorityOrder"
    assert [field.name for field in model.fields] == ["id", "email", "order_total", "coupon"]


def test_candidate_names_are_tried_in_order(catalog) -> None:
    declarations = extract_declarations(MODELS, Ecosystem.PYTHON, "app/models.py")
    engine = SchemaInferenceEngine(catalog, declarations)

    model, _ = engine.infer(_site(type_name="Publisher", candidates=("Order",)))

    assert model.name == "Order"


def test_unmapped_field_types_are_reported(catalog) -> None:
    declaration = Declaration("Order", Ecosystem.PYTHON, "app/models.py", 3, (DeclaredField("when", "Pendulum"),))
    engine = SchemaInferenceEngine(catalog, [declaration])

    _, warnings = engine.infer(_site(type_name="Order"))

    assert [warning.kind for warning in warnings] == [WarningKind.UNMAPPED_TYPE]


def test_existing_schema_file_fallback(catalog) -> None:
    document = load_schema_document("schemas/order.avsc", _order_schema())
    engine = SchemaInferenceEngine(catalog, schema_documents=[document])

    model, _ = engine.infer(_site(type_name="Order", topic=UNKNOWN_TOPIC))

    assert model.provenance is Provenance.EXISTING_SCHEMA_FILE
    assert model.target_format is TargetFormat.AVRO
    assert model.source == "schemas/order.avsc"


def test_schema_file_matched_by_topic(catalog) -> None:
    document = load_schema_document("schemas/payments.avsc", _order_schema("PaymentEvent"))
    engine = SchemaInferenceEngine(catalog, schema_documents=[document])

    model, _ = engine.infer(_site(topic="payments"))

    assert model.name == "PaymentEvent"
    assert model.topic == "payments"


def test_sample_fallback_names_record_after_topic(catalog) -> None:
    sample = SampleDocument(path="samples/orders.json", key="orders", data={"id": 1, "email": "a@example.com"})
    engine = SchemaInferenceEngine(catalog, samples=[sample])

    model, _ = engine.infer(_site(serializer="json.dumps"))

    assert model.provenance is Provenance.INFERRED_FROM_SAMPLE
    assert model.target_format is TargetFormat.JSON
    assert model.name == "Orders"
    assert model.source == "samples/orders.json"


def test_custom_serializer_has_unknown_format(catalog) -> None:
    declarations = extract_declarations(MODELS, Ecosystem.PYTHON, "app/models.py")
    engine = SchemaInferenceEngine(catalog, declarations)

    model, _ = engine.infer(_site(type_name="Order", serializer="value_serializer=lambda v: json", custom=True))

    assert model.target_format is TargetFormat.UNKNOWN


def test_unresolvable_lists_attempts(catalog) -> None:
    engine = SchemaInferenceEngine(catalog)

    with pytest.raises(TypeUnresolvable) as excinfo:
        engine.infer(_site(type_name="Ghost", topic=UNKNOWN_TOPIC))

    assert excinfo.value.subject == "app/publisher.py:12"
    assert excinfo.value.attempts == [
        "no declaration for Ghost",
        "no matching .avsc schema",
        "no co-located sample payload",
    ]


def test_enum_declarations_do_not_count(catalog) -> None:
    status = Declaration("Status", Ecosystem.PYTHON, "app/models.py", 3, kind="enum")
    engine = SchemaInferenceEngine(catalog, [status])

    with pytest.raises(TypeUnresolvable) as excinfo:
        engine.infer(_site(type_name="Status", topic=UNKNOWN_TOPIC))

    assert "Status declares no fields" in excinfo.value.attempts
