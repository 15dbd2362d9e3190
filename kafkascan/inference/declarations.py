"""Extract data-model declarations (classes, records, structs, interfaces).

Only field names, raw type text and explicit optionality are captured; type
text is normalized later by :mod:`kafkascan.inference.types`.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..logging import get_logger
from ..models import Ecosystem
from ..syntax import LineIndex, brace_block, matching_close, read_arguments, split_top_level

logger = get_logger("inference.declarations")


@dataclass(frozen=True)
class DeclaredField:
    name: str
    type_text: str
    optional: bool = False


@dataclass(frozen=True)
class Declaration:
    """A named type and its fields in declaration order."""

    name: str
    ecosystem: Ecosystem
    file: str
    line: int
    fields: Tuple[DeclaredField, ...] = ()
    kind: str = "class"
    bases: Tuple[str, ...] = ()

    @property
    def is_enum(self) -> bool:
        return self.kind == "enum"


_ANNOTATION = re.compile(r"@[\w.]+(?:\s*\((?:[^()]|\([^()]*\))*\))?\s*")
_CS_ATTRIBUTE = re.compile(r"^\s*\[[^\[\]]*(?:\[[^\[\]]*\][^\[\]]*)*\]\s*")
_NULLABLE_ANNOTATION = re.compile(r"@(?:[\w.]*\.)?Nullable\b")
_MODIFIERS = (
    r"(?:(?:public|private|protected|internal|static|final|transient|volatile|readonly|"
    r"override|virtual|abstract|required|lateinit|open|const|declare|sealed|new)\s+)*"
)

_JAVA_TYPE = re.compile(r"\b(?P<kind>class|record|interface|enum)\s+(?P<name>[A-Z]\w*)")
_JAVA_FIELD = re.compile(_MODIFIERS + r"(?P<type>[\w.$]+(?:\s*<.*>)?(?:\s*\[\s*\])*)\s+(?P<name>[A-Za-z_$][\w$]*)\s*(?:=.*)?$", re.DOTALL)
_KOTLIN_TYPE = re.compile(r"\b(?P<kind>(?:data\s+|value\s+|open\s+|sealed\s+)?class|interface|enum\s+class|object)\s+(?P<name>[A-Z]\w*)")
_KOTLIN_PROPERTY = re.compile(
    _MODIFIERS + r"(?:val|var)\s+(?P<name>\w+)\s*:\s*(?P<type>[^=]+?)\s*(?:=.*)?$", re.DOTALL
)
_CS_TYPE = re.compile(r"\b(?P<kind>class|record(?:\s+(?:class|struct))?|struct|interface|enum)\s+(?P<name>[A-Z]\w*)")
_CS_MEMBER = re.compile(
    _MODIFIERS + r"(?P<type>[\w.]+(?:\s*<.*>)?\??(?:\s*\[\s*\])*\??)\s+(?P<name>[A-Za-z_]\w*)\s*(?P<rest>\{.*|=.*)?$",
    re.DOTALL,
)
_GO_TYPE = re.compile(r"\btype\s+(?P<name>[A-Z]\w*)\s+struct\s*\{")
_GO_FIELD = re.compile(r"^(?P<names>\w+(?:\s*,\s*\w+)*)\s+(?P<type>[^`]+?)\s*(?:`(?P<tag>[^`]*)`)?\s*$")
_GO_JSON_TAG = re.compile(r'json:"(?P<value>[^"]*)"')
_GO_COMMENT = re.compile(r"//[^\n]*")
_RECORD_HEADER = re.compile(r"\s*(?:<[^()]*>)?\s*")
_TS_TYPE = re.compile(
    r"\b(?:export\s+)?(?:declare\s+)?(?P<kind>interface|class|type|enum)\s+(?P<name>[A-Z]\w*)\s*(?:<[^>{=]*>)?\s*(?:extends\s+[^{]+|implements\s+[^{]+)?\s*=?\s*\{"
)
_TS_MEMBER = re.compile(_MODIFIERS + r"(?P<name>[\w$]+|\"[^\"]+\"|'[^']+')\s*(?P<optional>\?)?\s*:\s*(?P<type>.+?)\s*$", re.DOTALL)


def extract_declarations(text: str, ecosystem: Ecosystem, path: str) -> List[Declaration]:
    """Return every declaration found in ``text`` for the given ecosystem."""
    extractor = _EXTRACTORS.get(ecosystem)
    if extractor is None:
        return []
    if ecosystem is Ecosystem.JAVA and path.lower().endswith((".kt", ".kts")):
        extractor = _kotlin_declarations
    return extractor(text, path)


# Java ------------------------------------------------------------------


def _java_declarations(text: str, path: str) -> List[Declaration]:
    lines = LineIndex(text)
    found: List[Declaration] = []
    for match in _JAVA_TYPE.finditer(text):
        kind = match.group("kind")
        name = match.group("name")
        line = lines.line_of(match.start())
        if kind == "enum":
            found.append(Declaration(name, Ecosystem.JAVA, path, line, (), "enum"))
            continue
        fields: List[DeclaredField] = []
        if kind == "record":
            open_index = text.find("(", match.end())
            if open_index != -1 and _RECORD_HEADER.fullmatch(text[match.end() : open_index]):
                arguments, _ = read_arguments(text, open_index)
                for argument in arguments:
                    field = _java_member(argument.text)
                    if field is not None:
                        fields.append(field)
        block = brace_block(text, match.end())
        if block is not None and kind in {"class", "interface"}:
            for member in _members(text[block[0] + 1 : block[1]]):
                if member.startswith("static ") or " static " in member.split("=")[0]:
                    continue
                field = _java_member(member)
                if field is not None:
                    fields.append(field)
        found.append(Declaration(name, Ecosystem.JAVA, path, line, tuple(fields), kind))
    return found


def _java_member(member: str) -> Optional[DeclaredField]:
    nullable = bool(_NULLABLE_ANNOTATION.search(member))
    cleaned = _ANNOTATION.sub("", member).strip()
    if not cleaned or "(" in cleaned.split("=")[0]:
        return None
    match = _JAVA_FIELD.match(cleaned)
    if match is None:
        return None
    type_text = " ".join(match.group("type").split())
    if type_text in {"return", "throw", "package", "import"}:
        return None
    return DeclaredField(match.group("name"), type_text, nullable)


def _members(body: str) -> List[str]:
    """Top-level statements of a brace body, skipping nested blocks such as methods."""
    members: List[str] = []
    for chunk in split_top_level(body, ";", end_on_close=True):
        if chunk.text.endswith("}"):
            continue
        members.append(chunk.text)
    return members


# Kotlin ------------------------------------------------------------------


def _kotlin_declarations(text: str, path: str) -> List[Declaration]:
    lines = LineIndex(text)
    found: List[Declaration] = []
    for match in _KOTLIN_TYPE.finditer(text):
        kind = " ".join(match.group("kind").split())
        name = match.group("name")
        line = lines.line_of(match.start())
        if kind.startswith("enum"):
            found.append(Declaration(name, Ecosystem.JAVA, path, line, (), "enum"))
            continue
        fields: List[DeclaredField] = []
        cursor = match.end()
        rest = text[cursor:]
        stripped = rest.lstrip()
        if stripped.startswith("<"):
            close = rest.find(">")
            cursor += close + 1
            stripped = text[cursor:].lstrip()
        if stripped.startswith("("):
            open_index = text.find("(", cursor)
            arguments, close = read_arguments(text, open_index)
            for argument in arguments:
                field = _kotlin_property(argument.text)
                if field is not None:
                    fields.append(field)
            if close != -1:
                cursor = close + 1
        block = _own_block(text, cursor)
        if block is not None:
            for member in split_top_level(text[block[0] + 1 : block[1]], ";\n", end_on_close=True):
                if member.text.endswith("}") and "=" not in member.text:
                    continue
                field = _kotlin_property(member.text)
                if field is not None:
                    fields.append(field)
        found.append(Declaration(name, Ecosystem.JAVA, path, line, tuple(fields), "class"))
    return found


def _kotlin_property(member: str) -> Optional[DeclaredField]:
    cleaned = _ANNOTATION.sub("", member).strip()
    match = _KOTLIN_PROPERTY.match(cleaned)
    if match is None:
        return None
    type_text = " ".join(match.group("type").split())
    optional = type_text.endswith("?")
    return DeclaredField(match.group("name"), type_text.rstrip("?").strip(), optional)


def _own_block(text: str, cursor: int) -> Optional[Tuple[int, int]]:
    """Body block that directly follows a header (not the next declaration's)."""
    position = cursor
    while position < len(text) and text[position] not in "{\n;=":
        position += 1
    if position < len(text) and text[position] == "\n":
        # Allow the brace on the next line after supertypes.
        next_line = text[position + 1 :].lstrip(" \t")
        if not next_line.startswith("{"):
            return None
        position = text.index("{", position)
    if position >= len(text) or text[position] != "{":
        return None
    close = matching_close(text, position)
    return (position, close) if close != -1 else None


# C# ------------------------------------------------------------------------


def _dotnet_declarations(text: str, path: str) -> List[Declaration]:
    lines = LineIndex(text)
    found: List[Declaration] = []
    for match in _CS_TYPE.finditer(text):
        kind = match.group("kind").split()[0]
        name = match.group("name")
        line = lines.line_of(match.start())
        if kind == "enum":
            found.append(Declaration(name, Ecosystem.DOTNET, path, line, (), "enum"))
            continue
        fields: List[DeclaredField] = []
        cursor = match.end()
        after = text[cursor:].lstrip()
        if kind == "record" and after.startswith("("):
            open_index = text.find("(", cursor)
            arguments, close = read_arguments(text, open_index)
            for argument in arguments:
                field = _dotnet_member(argument.text)
                if field is not None:
                    fields.append(field)
            if close != -1:
                cursor = close + 1
        block = _own_block(text, cursor)
        if block is None and kind != "record":
            block = brace_block(text, cursor, limit=400)
        if block is not None:
            for member in split_top_level(text[block[0] + 1 : block[1]], ";", end_on_close=True):
                field = _dotnet_member(member.text)
                if field is not None:
                    fields.append(field)
        found.append(Declaration(name, Ecosystem.DOTNET, path, line, tuple(fields), kind))
    return found


def _dotnet_member(member: str) -> Optional[DeclaredField]:
    cleaned = member.strip()
    while True:
        stripped = _CS_ATTRIBUTE.sub("", cleaned, count=1)
        if stripped == cleaned:
            break
        cleaned = stripped
    cleaned = cleaned.strip()
    if not cleaned or cleaned.startswith(("const ", "static ", "public const ", "public static ")):
        return None
    match = _CS_MEMBER.match(cleaned)
    if match is None:
        return None
    rest = match.group("rest") or ""
    if rest.startswith("{") and not re.match(r"\{\s*(?:(?:public|private|protected|internal)\s+)?(?:get|init|set)\b", rest):
        return None
    if "(" in cleaned.split("{")[0].split("=")[0]:
        return None
    type_text = " ".join(match.group("type").split())
    optional = type_text.endswith("?")
    return DeclaredField(match.group("name"), type_text.rstrip("?").strip(), optional)


# Go ------------------------------------------------------------------------


def _go_declarations(text: str, path: str) -> List[Declaration]:
    lines = LineIndex(text)
    found: List[Declaration] = []
    for match in _GO_TYPE.finditer(text):
        open_index = match.end() - 1
        close = matching_close(text, open_index)
        if close == -1:
            continue
        fields: List[DeclaredField] = []
        body = _GO_COMMENT.sub("", text[open_index + 1 : close])
        for chunk in split_top_level(body, "\n;"):
            line_text = chunk.text
            if not line_text:
                continue
            field_match = _GO_FIELD.match(line_text)
            if field_match is None:
                continue
            type_text = field_match.group("type").strip()
            tag = field_match.group("tag") or ""
            json_name, omitempty, skip = _go_json_tag(tag)
            if skip:
                continue
            optional = type_text.startswith("*") or omitempty
            names = [name.strip() for name in field_match.group("names").split(",")]
            for name in names:
                if not name[:1].isupper():
                    continue
                field_name = json_name if json_name and len(names) == 1 else name
                fields.append(DeclaredField(field_name, type_text.lstrip("*"), optional))
        found.append(
            Declaration(match.group("name"), Ecosystem.GO, path, lines.line_of(match.start()), tuple(fields), "struct")
        )
    return found


def _go_json_tag(tag: str) -> Tuple[Optional[str], bool, bool]:
    match = _GO_JSON_TAG.search(tag)
    if match is None:
        return None, False, False
    parts = match.group("value").split(",")
    if parts[0] == "-":
        return None, False, True
    return (parts[0] or None), "omitempty" in parts[1:], False


# TypeScript / JavaScript -----------------------------------------------------


def _node_declarations(text: str, path: str) -> List[Declaration]:
    lines = LineIndex(text)
    found: List[Declaration] = []
    for match in _TS_TYPE.finditer(text):
        kind = match.group("kind")
        name = match.group("name")
        line = lines.line_of(match.start())
        if kind == "enum":
            found.append(Declaration(name, Ecosystem.NODE_TS, path, line, (), "enum"))
            continue
        open_index = match.end() - 1
        close = matching_close(text, open_index)
        if close == -1:
            continue
        fields: List[DeclaredField] = []
        for member in split_top_level(text[open_index + 1 : close], ";,\n", end_on_close=True):
            field = _node_member(member.text)
            if field is not None:
                fields.append(field)
        found.append(Declaration(name, Ecosystem.NODE_TS, path, line, tuple(fields), kind))
    return found


def _node_member(member: str) -> Optional[DeclaredField]:
    cleaned = _ANNOTATION.sub("", member).strip()
    if not cleaned or cleaned.startswith(("//", "/*", "*")):
        return None
    head = cleaned.split(":", 1)[0]
    if "(" in head or cleaned.startswith(("get ", "set ", "constructor", "[")):
        return None
    match = _TS_MEMBER.match(cleaned)
    if match is None:
        return None
    type_text = match.group("type")
    if type_text.startswith("(") and "=>" in type_text:
        return None
    type_text = type_text.split("=", 1)[0].strip()
    name = match.group("name").strip("\"'")
    optional = bool(match.group("optional"))
    return DeclaredField(name, type_text, optional)


# Python ----------------------------------------------------------------------

_ENUM_BASES = {"Enum", "StrEnum", "IntEnum", "Flag", "IntFlag"}


def _python_declarations(text: str, path: str) -> List[Declaration]:
    try:
        tree = ast.parse(text)
    except (SyntaxError, ValueError) as exc:
        logger.debug("%s: not parseable as Python (%s)", path, exc)
        return []

    found: List[Declaration] = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.ClassDef):
            continue
        bases = tuple(name for name in (_dotted_name(base).rsplit(".", 1)[-1] for base in node.bases) if name)
        if set(bases) & _ENUM_BASES:
            found.append(Declaration(node.name, Ecosystem.PYTHON, path, node.lineno, (), "enum"))
            continue
        fields: List[DeclaredField] = []
        for statement in node.body:
            if not isinstance(statement, ast.AnnAssign) or not isinstance(statement.target, ast.Name):
                continue
            annotation = ast.unparse(statement.annotation)
            if annotation.startswith(("ClassVar", "typing.ClassVar")):
                continue
            optional = _is_none(statement.value)
            fields.append(DeclaredField(statement.target.id, annotation, optional))
        found.append(Declaration(node.name, Ecosystem.PYTHON, path, node.lineno, tuple(fields), "class", bases))
    return found


def _dotted_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_dotted_name(node.value)}.{node.attr}"
    if isinstance(node, ast.Subscript):
        return _dotted_name(node.value)
    return ""


def _is_none(node: Optional[ast.expr]) -> bool:
    if isinstance(node, ast.Constant) and node.value is None:
        return True
    # dataclasses.field(default=None) / pydantic Field(None)
    if isinstance(node, ast.Call):
        for keyword in node.keywords:
            if keyword.arg == "default" and isinstance(keyword.value, ast.Constant) and keyword.value.value is None:
                return True
        if node.args and isinstance(node.args[0], ast.Constant) and node.args[0].value is None:
            return _dotted_name(node.func).rsplit(".", 1)[-1] == "Field"
    return False


_EXTRACTORS: Dict[Ecosystem, Callable[[str, str], List[Declaration]]] = {
    Ecosystem.JAVA: _java_declarations,
    Ecosystem.PYTHON: _python_declarations,
    Ecosystem.DOTNET: _dotnet_declarations,
    Ecosystem.GO: _go_declarations,
    Ecosystem.NODE_TS: _node_declarations,
}


__all__ = ["Declaration", "DeclaredField", "extract_declarations"]
