"""Versioned pattern catalog loaded from YAML data.

The catalog is read-only after load and shared by every scanner thread. Rules
live in ``patterns.yml``; this module only validates and compiles them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from importlib import resources
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Tuple

import yaml

from ..errors import CatalogError
from ..models import Ecosystem, FlagKind, PiiTag, Role, TargetFormat, TypeKind

_FLAGS = re.IGNORECASE | re.MULTILINE
_DEFAULT_RESOURCE = "patterns.yml"

_ECOSYSTEM_KEYS = {
    "java": Ecosystem.JAVA,
    "python": Ecosystem.PYTHON,
    "dotnet": Ecosystem.DOTNET,
    "go": Ecosystem.GO,
    "node": Ecosystem.NODE_TS,
}

_TYPE_KINDS = {
    "string": TypeKind.STRING,
    "int": TypeKind.INTEGER,
    "long": TypeKind.LONG,
    "float": TypeKind.FLOAT,
    "double": TypeKind.DOUBLE,
    "boolean": TypeKind.BOOLEAN,
}


@dataclass(frozen=True)
class CallPattern:
    """Producer/consumer call rule.

    ``kind`` is ``call`` for sends/subscriptions and ``client`` for client
    construction; clients only count when a file has no matching calls.
    """

    id: str
    role: Role
    kind: str
    regex: Pattern[str]
    topic_arg: Optional[int] = None
    topic_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SerializerRule:
    name: str
    regex: Pattern[str]
    format: TargetFormat
    confluent: bool


@dataclass(frozen=True)
class CustomSerializerRules:
    definitions: Tuple[Pattern[str], ...] = ()
    library_calls: Tuple[Pattern[str], ...] = ()
    inline: Tuple[Pattern[str], ...] = ()


@dataclass(frozen=True)
class Containers:
    """Generic type names that wrap other types (collections, optionals)."""

    array: FrozenSet[str] = frozenset()
    map: FrozenSet[str] = frozenset()
    optional: FrozenSet[str] = frozenset()
    union: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class EcosystemPatterns:
    ecosystem: Ecosystem
    manifests: Tuple[str, ...]
    source_extensions: Tuple[str, ...]
    block_style: str
    dependencies: Tuple[Pattern[str], ...]
    imports: Tuple[Pattern[str], ...]
    producers: Tuple[CallPattern, ...]
    consumers: Tuple[CallPattern, ...]
    serializers: Tuple[SerializerRule, ...]
    custom_serializers: CustomSerializerRules
    registry_urls: Tuple[Pattern[str], ...]
    type_references: Tuple[Pattern[str], ...]
    type_map: Mapping[str, TypeKind]
    containers: Containers = field(default_factory=Containers)

    @property
    def call_patterns(self) -> Tuple[CallPattern, ...]:
        return self.producers + self.consumers

    def is_manifest(self, filename: str) -> bool:
        return any(fnmatchcase(filename, pattern) for pattern in self.manifests)

    def is_source(self, filename: str) -> bool:
        return filename.lower().endswith(self.source_extensions)


@dataclass(frozen=True)
class PiiRule:
    match: str
    mode: str
    tags: FrozenSet[PiiTag]

    def matches(self, normalized: str) -> bool:
        if self.mode == "exact":
            return normalized == self.match
        return self.match in normalized


@dataclass(frozen=True)
class SampleRules:
    directories: FrozenSet[str] = frozenset()
    stems: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PatternCatalog:
    """Ecosystem-keyed detection tables plus the shared rules."""

    version: str
    ecosystems: Mapping[Ecosystem, EcosystemPatterns]
    flags: Mapping[FlagKind, Tuple[Pattern[str], ...]]
    registry_urls: Tuple[Pattern[str], ...]
    config_files: Tuple[str, ...]
    schema_files: Tuple[str, ...]
    samples: SampleRules
    ignored_types: FrozenSet[str]
    pii: Tuple[PiiRule, ...] = field(default_factory=tuple)

    def for_ecosystem(self, ecosystem: Ecosystem) -> Optional[EcosystemPatterns]:
        return self.ecosystems.get(ecosystem)

    def manifest_ecosystems(self, filename: str) -> List[Ecosystem]:
        return [patterns.ecosystem for patterns in self.ecosystems.values() if patterns.is_manifest(filename)]

    def source_ecosystems(self, filename: str) -> List[Ecosystem]:
        return [patterns.ecosystem for patterns in self.ecosystems.values() if patterns.is_source(filename)]

    def is_config_file(self, filename: str) -> bool:
        lower = filename.lower()
        return any(fnmatchcase(lower, pattern.lower()) for pattern in self.config_files)

    def is_schema_file(self, filename: str) -> bool:
        lower = filename.lower()
        return any(fnmatchcase(lower, pattern.lower()) for pattern in self.schema_files)

    def is_sample_file(self, rel_path: str) -> bool:
        if not rel_path.lower().endswith(".json"):
            return False
        parts = rel_path.lower().split("/")
        if any(part in self.samples.directories for part in parts[:-1]):
            return True
        stem = parts[-1].rsplit(".", 1)[0]
        return any(token in stem for token in self.samples.stems)

    def serializer_rule(self, name: str | None, ecosystem: Ecosystem | None = None) -> Optional[SerializerRule]:
        """Look a serializer up by name, preferring the given ecosystem's table."""
        if not name:
            return None
        ordered = list(self.ecosystems.values())
        if ecosystem in self.ecosystems:
            ordered.sort(key=lambda patterns: patterns.ecosystem is not ecosystem)
        for patterns in ordered:
            for rule in patterns.serializers:
                if rule.name == name:
                    return rule
        return None

    def is_confluent_serializer(self, name: str | None, ecosystem: Ecosystem | None = None) -> bool:
        rule = self.serializer_rule(name, ecosystem)
        return bool(rule and rule.confluent)

    def with_pii_rules(self, extra: Mapping[str, Iterable[str]]) -> "PatternCatalog":
        """Return a copy whose PII table is extended with ``name -> tags`` rules."""
        if not extra:
            return self
        rules = list(self.pii)
        for name, tags in extra.items():
            normalized = normalize_field_name(name)
            if not normalized:
                continue
            rules.append(PiiRule(match=normalized, mode="exact", tags=_parse_tags(tags, f"pii.extra.{name}")))
        return replace(self, pii=tuple(rules))


def normalize_field_name(name: str) -> str:
    """Lowercase and strip separators so ``Email_Address`` matches ``emailaddress``."""
    return re.sub(r"[\s_\-.]+", "", name).lower()


def load_catalog(path: Path | None = None) -> PatternCatalog:
    """Load the packaged catalog, or a replacement document from ``path``."""
    if path is None:
        text = resources.files(__name__).joinpath(_DEFAULT_RESOURCE).read_text(encoding="utf-8")
        origin = _DEFAULT_RESOURCE
    else:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise CatalogError(f"Unable to read catalog {path}: {exc}") from exc
        origin = str(path)
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CatalogError(f"Failed to parse catalog {origin}: {exc}") from exc
    return parse_catalog(data, origin=origin)


def parse_catalog(data: Any, *, origin: str = "<catalog>") -> PatternCatalog:
    if not isinstance(data, dict):
        raise CatalogError(f"{origin}: catalog must be a mapping")

    version = str(data.get("version") or "")
    if not version:
        raise CatalogError(f"{origin}: catalog version is required")

    common = _mapping(data.get("common"), "common")
    flags_data = _mapping(common.get("flags"), "common.flags")
    flags: Dict[FlagKind, Tuple[Pattern[str], ...]] = {}
    for kind in FlagKind:
        flags[kind] = _compile_all(flags_data.get(kind.value), f"common.flags.{kind.value}")

    samples_data = _mapping(common.get("samples"), "common.samples")
    samples = SampleRules(
        directories=frozenset(item.lower() for item in _strings(samples_data.get("directories"))),
        stems=tuple(item.lower() for item in _strings(samples_data.get("stems"))),
    )

    ecosystems: Dict[Ecosystem, EcosystemPatterns] = {}
    for key, raw in _mapping(data.get("ecosystems"), "ecosystems").items():
        ecosystem = _ECOSYSTEM_KEYS.get(str(key).lower())
        if ecosystem is None:
            raise CatalogError(f"{origin}: unknown ecosystem '{key}'")
        ecosystems[ecosystem] = _parse_ecosystem(ecosystem, _mapping(raw, f"ecosystems.{key}"), str(key))

    pii_rules: List[PiiRule] = []
    for index, entry in enumerate(data.get("pii") or []):
        entry_map = _mapping(entry, f"pii[{index}]")
        match = normalize_field_name(str(entry_map.get("match") or ""))
        if not match:
            raise CatalogError(f"{origin}: pii[{index}] requires 'match'")
        mode = str(entry_map.get("mode") or "exact").lower()
        if mode not in {"exact", "contains"}:
            raise CatalogError(f"{origin}: pii[{index}] has unknown mode '{mode}'")
        pii_rules.append(PiiRule(match=match, mode=mode, tags=_parse_tags(entry_map.get("tags"), f"pii[{index}]")))

    return PatternCatalog(
        version=version,
        ecosystems=ecosystems,
        flags=flags,
        registry_urls=_compile_all(common.get("registry_urls"), "common.registry_urls"),
        config_files=tuple(_strings(common.get("config_files"))),
        schema_files=tuple(_strings(common.get("schema_files"))),
        samples=samples,
        ignored_types=frozenset(_strings(common.get("ignored_types"))),
        pii=tuple(pii_rules),
    )


def _parse_ecosystem(ecosystem: Ecosystem, data: Mapping[str, Any], key: str) -> EcosystemPatterns:
    custom = _mapping(data.get("custom_serializers"), f"{key}.custom_serializers")
    containers = _mapping(data.get("containers"), f"{key}.containers")
    type_map: Dict[str, TypeKind] = {}
    for source, target in _mapping(data.get("type_map"), f"{key}.type_map").items():
        kind = _TYPE_KINDS.get(str(target).lower())
        if kind is None:
            raise CatalogError(f"{key}.type_map: unsupported target type '{target}' for '{source}'")
        type_map[str(source)] = kind

    serializers: List[SerializerRule] = []
    for index, entry in enumerate(data.get("serializers") or []):
        entry_map = _mapping(entry, f"{key}.serializers[{index}]")
        try:
            target_format = TargetFormat(str(entry_map.get("format") or "unknown").lower())
        except ValueError as exc:
            raise CatalogError(f"{key}.serializers[{index}]: {exc}") from exc
        serializers.append(
            SerializerRule(
                name=str(entry_map.get("name") or ""),
                regex=_compile(entry_map.get("pattern"), f"{key}.serializers[{index}]"),
                format=target_format,
                confluent=bool(entry_map.get("confluent")),
            )
        )

    block_style = str(data.get("block_style") or "brace")
    if block_style not in {"brace", "indent"}:
        raise CatalogError(f"{key}.block_style must be 'brace' or 'indent'")

    definitions = _compile_all(custom.get("definitions"), f"{key}.custom_serializers.definitions")
    for regex in definitions:
        if "name" not in regex.groupindex:
            raise CatalogError(f"{key}.custom_serializers.definitions: pattern needs a 'name' group")
    type_refs = _compile_all(data.get("type_references"), f"{key}.type_references")
    for regex in type_refs:
        if "type" not in regex.groupindex:
            raise CatalogError(f"{key}.type_references: pattern needs a 'type' group")

    return EcosystemPatterns(
        ecosystem=ecosystem,
        manifests=tuple(_strings(data.get("manifests"))),
        source_extensions=tuple(ext.lower() for ext in _strings(data.get("source_extensions"))),
        block_style=block_style,
        dependencies=_compile_all(data.get("dependencies"), f"{key}.dependencies"),
        imports=_compile_all(data.get("imports"), f"{key}.imports"),
        producers=_parse_calls(data.get("producers"), Role.PRODUCER, f"{key}.producers"),
        consumers=_parse_calls(data.get("consumers"), Role.CONSUMER, f"{key}.consumers"),
        serializers=tuple(serializers),
        custom_serializers=CustomSerializerRules(
            definitions=definitions,
            library_calls=_compile_all(custom.get("library_calls"), f"{key}.custom_serializers.library_calls"),
            inline=_compile_all(custom.get("inline"), f"{key}.custom_serializers.inline"),
        ),
        registry_urls=_compile_all(data.get("registry_urls"), f"{key}.registry_urls"),
        type_references=type_refs,
        type_map=type_map,
        containers=Containers(
            array=frozenset(_strings(containers.get("array"))),
            map=frozenset(_strings(containers.get("map"))),
            optional=frozenset(_strings(containers.get("optional"))),
            union=frozenset(_strings(containers.get("union"))),
        ),
    )


def _parse_calls(value: Any, role: Role, where: str) -> Tuple[CallPattern, ...]:
    patterns: List[CallPattern] = []
    for index, entry in enumerate(value or []):
        entry_map = _mapping(entry, f"{where}[{index}]")
        raw = entry_map.get("pattern")
        if not isinstance(raw, str) or not raw.endswith(("\\(", "\\{")):
            raise CatalogError(f"{where}[{index}]: call patterns must end at an opening bracket")
        kind = str(entry_map.get("kind") or "call")
        if kind not in {"call", "client"}:
            raise CatalogError(f"{where}[{index}]: kind must be 'call' or 'client'")
        topic_arg = entry_map.get("topic_arg")
        if topic_arg is not None and (not isinstance(topic_arg, int) or topic_arg < 0):
            raise CatalogError(f"{where}[{index}]: topic_arg must be a non-negative integer")
        patterns.append(
            CallPattern(
                id=str(entry_map.get("id") or f"{where}[{index}]"),
                role=role,
                kind=kind,
                regex=_compile(raw, f"{where}[{index}]"),
                topic_arg=topic_arg,
                topic_keys=tuple(_strings(entry_map.get("topic_keys"))),
            )
        )
    return tuple(patterns)


def _parse_tags(value: Any, where: str) -> FrozenSet[PiiTag]:
    tags = set()
    for item in _strings(value):
        try:
            tags.add(PiiTag(item.upper()))
        except ValueError as exc:
            raise CatalogError(f"{where}: unknown PII tag '{item}'") from exc
    if not tags:
        raise CatalogError(f"{where}: at least one tag is required")
    return frozenset(tags)


def _compile(value: Any, where: str) -> Pattern[str]:
    if not isinstance(value, str) or not value:
        raise CatalogError(f"{where}: pattern must be a non-empty string")
    try:
        return re.compile(value, _FLAGS)
    except re.error as exc:
        raise CatalogError(f"{where}: invalid pattern {value!r}: {exc}") from exc


def _compile_all(value: Any, where: str) -> Tuple[Pattern[str], ...]:
    return tuple(_compile(item, f"{where}[{index}]") for index, item in enumerate(_strings(value)))


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise CatalogError(f"{where} must be a mapping")
    return value


def _strings(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return []


__all__ = [
    "CallPattern",
    "Containers",
    "CustomSerializerRules",
    "EcosystemPatterns",
    "PatternCatalog",
    "PiiRule",
    "SampleRules",
    "SerializerRule",
    "load_catalog",
    "normalize_field_name",
    "parse_catalog",
]
