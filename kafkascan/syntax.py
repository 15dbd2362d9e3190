"""Shallow, language-agnostic syntax helpers used by scanners and extractors.

Nothing here parses a language. The helpers balance brackets while skipping
string literals and comments, split argument lists at top-level commas and
recognise literal strings, which is enough to read call arguments and type
bodies across the supported ecosystems.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_QUOTES = {'"', "'", "`"}
_MAX_SCAN = 200_000

_KEYWORD_ARG = re.compile(r"^\s*[\"']?(?P<key>[A-Za-z_$][\w$]*)[\"']?\s*(?:=(?![=>])|:(?!:))\s*(?P<value>.*)$", re.DOTALL)
_COLLECTION_PREFIX = re.compile(
    r"^(?:new\s*)?(?:[\w.$]+\s*)?(?:<[^<>]*(?:<[^<>]*>[^<>]*)*>\s*)?(?:\[\s*\]\s*)*(?:[\w.]+\s*)?"
)


@dataclass(frozen=True)
class Argument:
    """A top-level argument with its absolute offset in the scanned text."""

    text: str
    offset: int


class LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, text: str) -> None:
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._starts, offset)


def _skip_string(text: str, index: int) -> int:
    quote = text[index]
    if text.startswith(quote * 3, index) and quote != "`":
        end = text.find(quote * 3, index + 3)
        return len(text) if end == -1 else end + 3
    position = index + 1
    while position < len(text):
        char = text[position]
        if char == "\\":
            position += 2
            continue
        if char == quote:
            return position + 1
        if char == "\n" and quote != "`":
            return position
        position += 1
    return position


def _skip_comment(text: str, index: int) -> int:
    if text.startswith("//", index):
        end = text.find("\n", index)
        return len(text) if end == -1 else end
    if text.startswith("/*", index):
        end = text.find("*/", index + 2)
        return len(text) if end == -1 else end + 2
    return index


def matching_close(text: str, open_index: int) -> int:
    """Return the index of the bracket closing ``text[open_index]`` or -1."""
    if open_index >= len(text) or text[open_index] not in _CLOSERS:
        return -1
    stack = [_CLOSERS[text[open_index]]]
    index = open_index + 1
    limit = min(len(text), open_index + _MAX_SCAN)
    while index < limit:
        char = text[index]
        if char in _QUOTES:
            if char == "'" and _looks_like_apostrophe(text, index):
                index += 1
                continue
            index = _skip_string(text, index)
            continue
        if char == "/" and text.startswith(("//", "/*"), index):
            index = _skip_comment(text, index)
            continue
        if char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ")]}":
            if not stack or char != stack[-1]:
                return -1
            stack.pop()
            if not stack:
                return index
        index += 1
    return -1


def _looks_like_apostrophe(text: str, index: int) -> bool:
    before = text[index - 1] if index > 0 else " "
    after = text[index + 1] if index + 1 < len(text) else " "
    return before.isalpha() and after.isalpha()


def split_top_level(
    text: str,
    separators: str = ",",
    *,
    base_offset: int = 0,
    end_on_close: bool = False,
) -> List[Argument]:
    """Split ``text`` on separators that are not nested in brackets or strings.

    With ``end_on_close`` a chunk also ends after a bracket block that returns
    to depth zero, which separates brace-bodied members such as methods.
    """
    chunks: List[Argument] = []
    depth = 0
    start = 0
    index = 0

    def _emit(end: int) -> None:
        raw = text[start:end]
        stripped = raw.strip()
        if stripped:
            leading = len(raw) - len(raw.lstrip())
            chunks.append(Argument(text=stripped, offset=base_offset + start + leading))

    while index < len(text):
        char = text[index]
        if char in _QUOTES:
            if char == "'" and _looks_like_apostrophe(text, index):
                index += 1
                continue
            index = _skip_string(text, index)
            continue
        if char == "/" and text.startswith(("//", "/*"), index):
            index = _skip_comment(text, index)
            continue
        if char in _CLOSERS:
            depth += 1
        elif char in ")]}":
            depth = max(0, depth - 1)
            if depth == 0 and end_on_close and char == "}":
                _emit(index + 1)
                start = index + 1
        elif depth == 0 and char in separators:
            _emit(index)
            start = index + 1
        index += 1
    _emit(len(text))
    return chunks


def read_arguments(text: str, open_index: int) -> Tuple[List[Argument], int]:
    """Return the top-level arguments of the bracket at ``open_index``."""
    close = matching_close(text, open_index)
    if close == -1:
        return [], -1
    inner = text[open_index + 1 : close]
    return split_top_level(inner, ",", base_offset=open_index + 1), close


def string_literal(value: str) -> Optional[str]:
    """Return the contents of a plain string literal, or None for expressions."""
    value = value.strip()
    prefix = re.match(r"^(?:[rRbBuU]{1,2}|@)?(?=[\"'`])", value)
    if prefix is None:
        return None
    value = value[prefix.end() :]
    if len(value) < 2:
        return None
    quote = value[0]
    if value.startswith(quote * 3) and value.endswith(quote * 3) and len(value) >= 6:
        inner = value[3:-3]
    elif value[-1] == quote:
        inner = value[1:-1]
    else:
        return None
    unescaped = inner.replace("\\\\", "").replace("\\" + quote, "")
    if quote in unescaped:
        return None
    if quote == "`" and "${" in inner:
        return None
    if quote == '"' and _has_template_markers(inner):
        return None
    return inner


def _has_template_markers(inner: str) -> bool:
    # Kotlin/Groovy "${x}" and "$x" interpolation.
    return bool(re.search(r"\$\{[^}]*\}|\$[A-Za-z_]\w*", inner))


def collection_literals(value: str) -> Optional[List[str]]:
    """Return literal elements of a collection expression such as ``List.of("a")``.

    Returns None when the value is not a collection or any element is not a
    plain literal.
    """
    value = value.strip()
    prefix = _COLLECTION_PREFIX.match(value)
    offset = prefix.end() if prefix else 0
    if offset >= len(value) or value[offset] not in _CLOSERS:
        return None
    close = matching_close(value, offset)
    if close != len(value) - 1:
        return None
    elements = split_top_level(value[offset + 1 : close], ",")
    if not elements:
        return None
    literals: List[str] = []
    for element in elements:
        literal = string_literal(element.text)
        if literal is None:
            return None
        literals.append(literal)
    return literals


def literal_values(value: str) -> Optional[List[str]]:
    """Literal string, or collection of literals, else None."""
    single = string_literal(value)
    if single is not None:
        return [single]
    return collection_literals(value)


def is_keyword_argument(argument: str) -> bool:
    return _KEYWORD_ARG.match(argument) is not None and not argument.lstrip().startswith(("{", "[", "("))


def positional_arguments(arguments: Sequence[Argument]) -> List[Argument]:
    return [arg for arg in arguments if not is_keyword_argument(arg.text)]


def keyword_value(arguments: Sequence[Argument], keys: Sequence[str], *, _depth: int = 0) -> Optional[Argument]:
    """Find ``key=value`` / ``key: value`` among arguments, descending into nested literals."""
    if not keys:
        return None
    lowered = {key.lower() for key in keys}
    for arg in arguments:
        match = _KEYWORD_ARG.match(arg.text)
        if match and match.group("key").lower() in lowered:
            value = match.group("value").strip()
            return Argument(text=value, offset=arg.offset + match.start("value"))
    if _depth >= 4:
        return None
    for arg in arguments:
        for nested in _nested_blocks(arg):
            found = keyword_value(nested, keys, _depth=_depth + 1)
            if found is not None:
                return found
    return None


def _nested_blocks(arg: Argument) -> List[List[Argument]]:
    blocks: List[List[Argument]] = []
    text = arg.text
    index = 0
    while index < len(text):
        char = text[index]
        if char in _QUOTES:
            index = _skip_string(text, index)
            continue
        if char in _CLOSERS:
            close = matching_close(text, index)
            if close == -1:
                break
            blocks.append(split_top_level(text[index + 1 : close], ",", base_offset=arg.offset + index + 1))
            index = close + 1
            continue
        index += 1
    return blocks


def brace_block(text: str, start: int, *, limit: int = 2000) -> Optional[Tuple[int, int]]:
    """Locate the first ``{...}`` block after ``start`` (within ``limit`` chars)."""
    open_index = text.find("{", start, start + limit)
    if open_index == -1:
        return None
    close = matching_close(text, open_index)
    if close == -1:
        return None
    return open_index, close


def indent_block(text: str, start: int) -> Tuple[int, int]:
    """Return the span of lines indented deeper than the line containing ``start``."""
    line_start = text.rfind("\n", 0, start) + 1
    header = text[line_start:start]
    base_indent = len(header) - len(header.lstrip())
    line_end = text.find("\n", start)
    if line_end == -1:
        return len(text), len(text)
    body_start = line_end + 1
    position = body_start
    end = body_start
    while position < len(text):
        next_end = text.find("\n", position)
        if next_end == -1:
            next_end = len(text)
        line = text[position:next_end]
        if line.strip():
            indent = len(line) - len(line.lstrip())
            if indent <= base_indent:
                break
            end = next_end
        position = next_end + 1
    return body_start, end


def block_body(text: str, start: int, style: str) -> Optional[Tuple[int, int]]:
    """Span of the body that follows a declaration header at ``start``."""
    if style == "indent":
        body_start, body_end = indent_block(text, start)
        if body_end <= body_start:
            return None
        return body_start, body_end
    block = brace_block(text, start)
    if block is None:
        return None
    return block[0] + 1, block[1]


__all__ = [
    "Argument",
    "LineIndex",
    "block_body",
    "brace_block",
    "collection_literals",
    "indent_block",
    "is_keyword_argument",
    "keyword_value",
    "literal_values",
    "matching_close",
    "positional_arguments",
    "read_arguments",
    "split_top_level",
    "string_literal",
]
