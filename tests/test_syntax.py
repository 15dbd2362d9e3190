"""Tests for the shallow syntax helpers."""

from __future__ import annotations

from kafkascan.syntax import (
    LineIndex,
    block_body,
    collection_literals,
    keyword_value,
    literal_values,
    matching_close,
    positional_arguments,
    read_arguments,
    split_top_level,
    string_literal,
)


def test_matching_close_skips_strings_and_comments() -> None:
    text = 'send("a)b", /* ) */ x) // trailing'
    open_index = text.index("(")
    assert matching_close(text, open_index) == text.index("x)") + 1


def test_matching_close_unbalanced() -> None:
    assert matching_close("send(a, b", 4) == -1


def test_read_arguments_splits_top_level_commas() -> None:
    text = 'producer.send("orders", Map.of("a", 1), value)'
    arguments, close = read_arguments(text, text.index("("))

    assert close == len(text) - 1
    assert [arg.text for arg in arguments] == ['"orders"', 'Map.of("a", 1)', "value"]
    assert text[arguments[2].offset :].startswith("value")


def test_string_literal_rejects_expressions_and_templates() -> None:
    assert string_literal('"orders"') == "orders"
    assert string_literal("'orders'") == "orders"
    assert string_literal('@"orders"') == "orders"
    assert string_literal("`orders`") == "orders"
    assert string_literal("`orders-${env}`") is None
    assert string_literal('"orders-$env"') is None
    assert string_literal("TOPIC") is None
    assert string_literal('"a" + suffix') is None


def test_collection_literals() -> None:
    assert collection_literals('List.of("a", "b")') == ["a", "b"]
    assert collection_literals('new String[] {"a"}') == ["a"]
    assert collection_literals('["a", "b"]') == ["a", "b"]
    assert collection_literals('["a", name]') is None
    assert literal_values('"x"') == ["x"]


def test_keyword_value_descends_into_nested_literals() -> None:
    text = 'send({ topic: "orders", messages: [] })'
    arguments, _ = read_arguments(text, text.index("("))

    found = keyword_value(arguments, ["topic"])

    assert found is not None
    assert found.text == '"orders"'
    assert text[found.offset :].startswith('"orders"')


def test_positional_arguments_skip_keywords() -> None:
    text = 'produce(topic="t", value=v, key)'
    arguments, _ = read_arguments(text, text.index("("))

    assert [arg.text for arg in positional_arguments(arguments)] == ["key"]


def test_lambda_arrow_is_not_a_keyword() -> None:
    text = "register(x => x.Id, other)"
    arguments, _ = read_arguments(text, text.index("("))

    assert [arg.text for arg in positional_arguments(arguments)] == ["x => x.Id", "other"]


def test_split_top_level_end_on_close() -> None:
    body = "int a; void f() { return; } String b;"
    chunks = [chunk.text for chunk in split_top_level(body, ";", end_on_close=True)]

    assert chunks == ["int a", "void f() { return; }", "String b"]


def test_line_index() -> None:
    lines = LineIndex("a\nb\nc")
    assert lines.line_of(0) == 1
    assert lines.line_of(2) == 2
    assert lines.line_of(4) == 3


def test_block_body_styles() -> None:
    brace = "class A { int x; }"
    start, end = block_body(brace, brace.index("class") + 7, "brace")
    assert brace[start:end].strip() == "int x;"

    indented = "def serialize(v):\n    return json.dumps(v)\n\nother = 1\n"
    span = block_body(indented, indented.index("("), "indent")
    assert span is not None
    assert indented[span[0] : span[1]].strip() == "return json.dumps(v)"
