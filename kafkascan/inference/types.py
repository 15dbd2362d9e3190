"""Normalize source type expressions into :class:`FieldType` values."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..catalog import EcosystemPatterns
from ..models import Ecosystem, FieldSchema, FieldType, ScanWarning, TypeKind, WarningKind
from ..syntax import matching_close
from .declarations import Declaration, DeclaredField

_NULL_NAMES = {"None", "null", "undefined", "NoneType", "nil"}
_ROOT_BASES = {"object", "ABC", "Generic", "Protocol", "NamedTuple", "TypedDict", "BaseModel", "BaseSettings"}
_GO_MAP = re.compile(r"^map\s*\[")
_GENERIC = re.compile(r"^(?P<base>[\w.$]+)\s*(?P<open>[<\[])")

DeclarationLookup = Callable[[str], Optional[Declaration]]


@dataclass
class ParsedType:
    """Source type text split into a base name, arguments and array/null markers."""

    base: str
    args: List["ParsedType"] = field(default_factory=list)
    nullable: bool = False
    array: bool = False
    map_key: Optional["ParsedType"] = None
    raw: str = ""


def parse_type(text: str, ecosystem: Ecosystem) -> ParsedType:
    """Parse type text such as ``List<Order>``, ``[]*Item`` or ``str | None``."""
    raw = " ".join(text.split())
    value = raw

    arms = _split(value, "|")
    if len(arms) > 1:
        non_null = [arm for arm in arms if arm not in _NULL_NAMES]
        if len(non_null) == 1:
            inner = parse_type(non_null[0], ecosystem)
            inner.nullable = True
            inner.raw = raw
            return inner
        if non_null and all(_is_quoted(arm) for arm in non_null):
            return ParsedType(base="string", nullable=len(non_null) < len(arms), raw=raw)
        return ParsedType(base=raw, nullable=len(non_null) < len(arms), raw=raw)

    nullable = False
    if value.endswith("?"):
        nullable = True
        value = value[:-1].strip()
    if value.startswith("*"):
        nullable = True
        value = value.lstrip("*").strip()

    if value in {"[]byte", "[]uint8"}:
        return ParsedType(base=value, nullable=nullable, raw=raw)
    if value.startswith("[]"):
        return ParsedType(base="[]", args=[parse_type(value[2:], ecosystem)], nullable=nullable, array=True, raw=raw)
    if value.endswith("[]"):
        inner_text = value[:-2].strip()
        if inner_text in {"byte", "Byte"}:
            return ParsedType(base=f"{inner_text}[]", nullable=nullable, raw=raw)
        return ParsedType(base="[]", args=[parse_type(inner_text, ecosystem)], nullable=nullable, array=True, raw=raw)

    go_map = _GO_MAP.match(value)
    if go_map:
        close = matching_close(value, go_map.end() - 1)
        if close != -1:
            key = parse_type(value[go_map.end() : close], ecosystem)
            values = parse_type(value[close + 1 :], ecosystem)
            return ParsedType(base="map", args=[values], nullable=nullable, map_key=key, raw=raw)

    if value.startswith("{") and value.endswith("}"):
        # TypeScript index signature: { [key: string]: Value }
        inner = value[1:-1].strip().rstrip(";,")
        index = re.match(r"^\[\s*\w+\s*:\s*\w+\s*\]\s*:\s*(?P<value>.+)$", inner)
        if index:
            return ParsedType(base="{}", args=[parse_type(index.group("value"), ecosystem)], raw=raw)
        return ParsedType(base="{}", raw=raw, nullable=nullable)

    generic = _GENERIC.match(value)
    if generic:
        open_index = generic.end() - 1
        close = _close_of(value, open_index)
        if close == len(value) - 1:
            args = [parse_type(arg, ecosystem) for arg in _split(value[open_index + 1 : close], ",")]
            return ParsedType(base=generic.group("base"), args=args, nullable=nullable, raw=raw)

    return ParsedType(base=value, nullable=nullable, raw=raw)


def _split(text: str, separator: str) -> List[str]:
    """Split on ``separator`` outside of angle, round, square and curly brackets."""
    parts: List[str] = []
    depth = 0
    start = 0
    for index, char in enumerate(text):
        if char in "<([{":
            depth += 1
        elif char in ">)]}":
            depth = max(0, depth - 1)
        elif char == separator and depth == 0:
            parts.append(text[start:index])
            start = index + 1
    parts.append(text[start:])
    return [part.strip() for part in parts if part.strip()]


def _close_of(text: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char in "<([{":
            depth += 1
        elif char in ">)]}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _is_quoted(value: str) -> bool:
    return len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'"


class TypeNormalizer:
    """Converts declarations of one ecosystem into record ``FieldType`` values.

    Unmapped type names become STRING with an annotation and a warning;
    references to other declarations become nested records, and a reference
    back to a record already being expanded is cut the same way.
    """

    def __init__(self, patterns: EcosystemPatterns, lookup: DeclarationLookup) -> None:
        self.patterns = patterns
        self.lookup = lookup
        self.warnings: List[ScanWarning] = []

    def record_for(self, declaration: Declaration) -> FieldType:
        return self._record(declaration, ())

    def _record(self, declaration: Declaration, stack: Tuple[str, ...]) -> FieldType:
        stack = stack + (declaration.name,)
        fields: List[FieldSchema] = []
        for declared in self._declared_fields(declaration, stack):
            parsed = parse_type(declared.type_text, declaration.ecosystem)
            annotations: List[str] = []
            field_type, optional = self._convert(parsed, stack, annotations, declaration)
            if declared.optional or optional or parsed.nullable:
                fields.append(FieldSchema.optional(declared.name, field_type.non_null, tuple(annotations)))
            else:
                fields.append(FieldSchema(name=declared.name, type=field_type, annotations=tuple(annotations)))
        return FieldType.record(declaration.name, fields)

    def _declared_fields(self, declaration: Declaration, stack: Tuple[str, ...]) -> List[DeclaredField]:
        """Inherited fields first; a redeclared field keeps its base position."""
        merged: Dict[str, DeclaredField] = {}
        for base in declaration.bases:
            if base in _ROOT_BASES or base in stack:
                continue
            parent = self.lookup(base)
            if parent is None or parent.is_enum:
                self.warnings.append(
                    ScanWarning(
                        kind=WarningKind.UNMAPPED_TYPE,
                        message=f"{declaration.name}: base class '{base}' not found; inherited fields omitted",
                        path=declaration.file,
                        line=declaration.line,
                    )
                )
                continue
            for declared in self._declared_fields(parent, stack + (parent.name,)):
                merged.setdefault(declared.name, declared)
        own: set[str] = set()
        for declared in declaration.fields:
            if declared.name in own:
                continue
            own.add(declared.name)
            merged[declared.name] = declared
        return list(merged.values())

    def _convert(
        self,
        parsed: ParsedType,
        stack: Tuple[str, ...],
        annotations: List[str],
        owner: Declaration,
    ) -> Tuple[FieldType, bool]:
        """Return the converted type and whether the wrapper made it optional."""
        containers = self.patterns.containers
        base = parsed.base
        short = base.rsplit(".", 1)[-1]

        if parsed.array or short in containers.array:
            inner = parsed.args[0] if parsed.args else None
            items = self._element(inner, stack, annotations, owner)
            return FieldType.array(items), parsed.nullable
        if base in {"map", "{}"} or short in containers.map:
            inner = parsed.args[-1] if parsed.args else None
            values = self._element(inner, stack, annotations, owner)
            return FieldType.map(values), parsed.nullable
        if short in containers.optional and parsed.args:
            inner_type, _ = self._convert(parsed.args[0], stack, annotations, owner)
            return inner_type.non_null, True
        if short in containers.union and parsed.args:
            non_null = [arg for arg in parsed.args if arg.base not in _NULL_NAMES]
            optional = len(non_null) < len(parsed.args)
            if len(non_null) == 1:
                inner_type, _ = self._convert(non_null[0], stack, annotations, owner)
                return inner_type.non_null, optional
            return self._unmapped(parsed.raw or base, annotations, owner), optional

        kind = self._mapped(base)
        if kind is not None:
            return FieldType.primitive(kind), parsed.nullable

        declaration = self.lookup(short)
        if declaration is not None:
            if declaration.is_enum:
                return FieldType.primitive(TypeKind.STRING), parsed.nullable
            if declaration.name in stack:
                annotations.append(f"recursive reference to {declaration.name}")
                return FieldType.primitive(TypeKind.STRING), parsed.nullable
            return self._record(declaration, stack), parsed.nullable

        return self._unmapped(parsed.raw or base, annotations, owner), parsed.nullable

    def _element(
        self,
        parsed: Optional[ParsedType],
        stack: Tuple[str, ...],
        annotations: List[str],
        owner: Declaration,
    ) -> FieldType:
        if parsed is None:
            annotations.append("untyped collection element")
            return FieldType.primitive(TypeKind.STRING)
        element, optional = self._convert(parsed, stack, annotations, owner)
        if optional or parsed.nullable:
            return FieldType.nullable(element)
        return element

    def _mapped(self, base: str) -> Optional[TypeKind]:
        type_map = self.patterns.type_map
        if base in type_map:
            return type_map[base]
        short = base.rsplit(".", 1)[-1]
        if short in type_map:
            return type_map[short]
        lowered = {key.lower(): value for key, value in type_map.items()}
        if base.lower() in lowered:
            return lowered[base.lower()]
        if short.lower() in lowered:
            return lowered[short.lower()]
        return None

    def _unmapped(self, raw: str, annotations: List[str], owner: Declaration) -> FieldType:
        annotations.append(f"unmapped source type '{raw}' mapped to string")
        self.warnings.append(
            ScanWarning(
                kind=WarningKind.UNMAPPED_TYPE,
                message=f"{owner.name}: unmapped type '{raw}' mapped to string",
                path=owner.file,
                line=owner.line,
            )
        )
        return FieldType.primitive(TypeKind.STRING)


def nearest_declaration(candidates: Sequence[Declaration], path: str, distance: Callable[[str, str], int]) -> Optional[Declaration]:
    """Pick the declaration closest to ``path``; ties go to the first by file path."""
    if not candidates:
        return None
    return min(candidates, key=lambda item: (0 if item.file == path else 1, distance(path, item.file), item.file, item.line))


__all__ = ["ParsedType", "TypeNormalizer", "nearest_declaration", "parse_type"]
