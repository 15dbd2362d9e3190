"""Base class for per-ecosystem call-site scanners."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from ..catalog import CallPattern, EcosystemPatterns, PatternCatalog, SerializerRule
from ..logging import get_logger
from ..models import (
    UNKNOWN_TOPIC,
    CallSite,
    Ecosystem,
    FlagKind,
    Role,
    ScanWarning,
    SourceFile,
    TypeReference,
    WarningKind,
)
from ..syntax import (
    Argument,
    LineIndex,
    block_body,
    keyword_value,
    literal_values,
    matching_close,
    positional_arguments,
    read_arguments,
)

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")
_LEADING_RECEIVER = re.compile(r"(\w+)\s*[?!]?\s*\.")
_ENCLOSING_RECEIVER = re.compile(r"(\w+)\s*[?!]?\s*\.\s*\w+\s*\(\s*$")
_ASSIGNMENT = re.compile(r"(\w+)(?:\s*,\s*\w+)*\s*(?::[^=\n]*)?(?::=|=)\s*(?:await\s+)?&?$")
_CHAINED_CALL = re.compile(r"\s*\??\.\s*\w+\s*(?:<[^()]*?>)?\s*\(")


@dataclass(frozen=True)
class SerializerEvidence:
    """Serializer facts found in one span of a file."""

    serializers: Tuple[SerializerRule, ...] = ()
    inline_custom: Optional[str] = None
    identifiers: FrozenSet[str] = frozenset()

    @property
    def conclusive(self) -> bool:
        return bool(self.serializers or self.inline_custom)

    def merge(self, other: "SerializerEvidence") -> "SerializerEvidence":
        rules = self.serializers + tuple(rule for rule in other.serializers if rule not in self.serializers)
        return SerializerEvidence(rules, self.inline_custom or other.inline_custom, self.identifiers | other.identifiers)


@dataclass
class FileScan:
    """Everything a single file contributes to its scope.

    Call sites carry only what the file itself reveals; serializer, registry
    and flag information is completed per scope once every file is scanned.
    ``evidence`` maps a producer's line to what its own arguments and its
    client construction say about serialization; ``residual`` is the
    file-level evidence left once those spans are claimed.
    """

    file: SourceFile
    call_sites: List[CallSite] = field(default_factory=list)
    serializers: List[SerializerRule] = field(default_factory=list)
    custom_definitions: List[str] = field(default_factory=list)
    inline_custom: Optional[str] = None
    registry_urls: List[str] = field(default_factory=list)
    flags: List[Tuple[FlagKind, int]] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    identifiers: FrozenSet[str] = frozenset()
    warnings: List[ScanWarning] = field(default_factory=list)
    evidence: Dict[int, SerializerEvidence] = field(default_factory=dict)
    residual: Optional[SerializerEvidence] = None


@dataclass
class _Found:
    pattern: CallPattern
    offset: int
    line: int
    topics: List[str]
    ambiguous: bool
    end: int = -1


@dataclass
class _Client:
    name: Optional[str]
    offset: int
    start: int
    end: int


class CallSiteScanner:
    """Applies one ecosystem's catalog rules to source files.

    Subclasses adjust how topic arguments are read; the matching itself is
    driven entirely by the catalog.
    """

    ecosystem: Ecosystem = Ecosystem.UNKNOWN

    def __init__(self, catalog: PatternCatalog) -> None:
        patterns = catalog.for_ecosystem(self.ecosystem)
        if patterns is None:
            raise ValueError(f"Catalog {catalog.version} has no rules for {self.ecosystem.value}")
        self.catalog = catalog
        self.patterns: EcosystemPatterns = patterns
        self.logger = get_logger(f"scanners.{self.ecosystem.value}")

    def supports(self, source: SourceFile) -> bool:
        return self.patterns.is_source(source.path.rsplit("/", 1)[-1])

    def scan(self, source: SourceFile, text: str) -> FileScan:
        """Return call sites and scope facts found in a source file."""
        result = FileScan(file=source)
        lines = LineIndex(text)

        result.serializers = self.match_serializers(text)
        result.custom_definitions = self.custom_serializer_definitions(text)
        result.inline_custom = self.inline_custom_serializer(text)
        result.registry_urls = self.registry_urls(text)
        result.flags = scan_flags(self.catalog, text, lines)

        if not self.imports_kafka(text):
            self.logger.debug("%s: no Kafka client import, skipping call patterns", source.path)
            return result

        found: List[_Found] = []
        for pattern in self.patterns.call_patterns:
            for match in pattern.regex.finditer(text):
                try:
                    found.append(self._inspect(pattern, text, match, lines))
                except (ValueError, IndexError) as exc:
                    result.warnings.append(
                        ScanWarning(
                            kind=WarningKind.AMBIGUOUS_TOPIC,
                            message=f"Could not read arguments for {pattern.id}: {exc}",
                            path=source.path,
                            line=lines.line_of(match.start()),
                        )
                    )

        type_hits = self.type_reference_hits(text)
        selected = self._select(found)
        for item in selected:
            topics = item.topics or [UNKNOWN_TOPIC]
            if item.ambiguous:
                result.warnings.append(
                    ScanWarning(
                        kind=WarningKind.AMBIGUOUS_TOPIC,
                        message=f"Topic for {item.pattern.id} is not a literal; recorded as {UNKNOWN_TOPIC}",
                        path=source.path,
                        line=item.line,
                    )
                )
            reference = None
            if item.pattern.role is Role.PRODUCER:
                reference = self._type_reference(type_hits, item.offset, source.path)
            for topic in topics:
                result.call_sites.append(
                    CallSite(
                        role=item.pattern.role,
                        ecosystem=self.ecosystem,
                        file=source.path,
                        line=item.line,
                        topic=topic,
                        type_reference=reference,
                        scope=source.scope,
                        pattern_id=item.pattern.id,
                    )
                )

        if result.call_sites:
            result.identifiers = frozenset(_IDENTIFIER.findall(text))
            self._tie_serializers(result, text, selected, found)
        return result

    # Detection helpers -------------------------------------------------

    def imports_kafka(self, text: str) -> bool:
        if not self.patterns.imports:
            return True
        return any(regex.search(text) for regex in self.patterns.imports)

    def match_serializers(self, text: str) -> List[SerializerRule]:
        return [rule for rule in self.patterns.serializers if rule.regex.search(text)]

    def custom_serializer_definitions(self, text: str) -> List[str]:
        """Names of serializer types whose bodies call a JSON/Avro/Protobuf library."""
        rules = self.patterns.custom_serializers
        names: List[str] = []
        for regex in rules.definitions:
            for match in regex.finditer(text):
                span = block_body(text, match.end(), self.patterns.block_style)
                if span is None:
                    continue
                body = text[span[0] : span[1]]
                if any(library.search(body) for library in rules.library_calls):
                    name = match.group("name")
                    if name and name not in names:
                        names.append(name)
        return names

    def inline_custom_serializer(self, text: str) -> Optional[str]:
        for regex in self.patterns.custom_serializers.inline:
            match = regex.search(text)
            if match:
                return " ".join(match.group(0).split())
        return None

    def registry_urls(self, text: str) -> List[str]:
        urls: List[str] = []
        for regex in self.patterns.registry_urls + self.catalog.registry_urls:
            for match in regex.finditer(text):
                value = match.group("value") if "value" in regex.groupindex else match.group(0)
                if value and value not in urls:
                    urls.append(value)
        return urls

    def type_reference_hits(self, text: str) -> List[Tuple[int, str]]:
        hits: List[Tuple[int, str]] = []
        for regex in self.patterns.type_references:
            for match in regex.finditer(text):
                name = match.group("type").rsplit(".", 1)[-1]
                if self._is_candidate_type(name):
                    hits.append((match.start("type"), name))
        return hits

    def _is_candidate_type(self, name: str) -> bool:
        if not name or not name[0].isupper():
            return False
        if name in self.catalog.ignored_types:
            return False
        return name not in self.patterns.type_map

    # Topic extraction hooks -------------------------------------------

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        """Literal topic names held by an argument, or None for expressions."""
        return literal_values(argument.text)

    def topic_argument(self, pattern: CallPattern, arguments: Sequence[Argument]) -> Optional[Argument]:
        found = keyword_value(arguments, pattern.topic_keys)
        if found is not None:
            return found
        if pattern.topic_arg is not None:
            positional = positional_arguments(arguments)
            if pattern.topic_arg < len(positional):
                return positional[pattern.topic_arg]
        return None

    # Internals ---------------------------------------------------------

    def _inspect(self, pattern: CallPattern, text: str, match: re.Match[str], lines: LineIndex) -> _Found:
        open_index = match.end() - 1
        line = lines.line_of(match.start())
        arguments, close = read_arguments(text, open_index)
        if close == -1:
            return _Found(pattern, match.start(), line, [], ambiguous=bool(pattern.topic_keys or pattern.topic_arg is not None))
        if not pattern.topic_keys and pattern.topic_arg is None:
            return _Found(pattern, match.start(), line, [], ambiguous=False, end=close)
        argument = self.topic_argument(pattern, arguments)
        if argument is None:
            return _Found(pattern, match.start(), line, [], ambiguous=False, end=close)
        values = self.topic_values(argument)
        if not values:
            return _Found(pattern, match.start(), line, [], ambiguous=True, end=close)
        return _Found(pattern, match.start(), line, values, ambiguous=False, end=close)

    def _tie_serializers(
        self, result: FileScan, text: str, selected: Sequence[_Found], found: Sequence[_Found]
    ) -> None:
        """Record, per producer line, the serializer evidence of its own call and its client."""
        clients = [
            _Client(_assigned_name(text, item.offset), item.offset, item.offset, _chain_end(text, item.end))
            for item in sorted(found, key=lambda item: item.offset)
            if item.pattern.role is Role.PRODUCER and item.pattern.kind == "client" and item.end != -1
        ]
        claimed: List[Tuple[int, int]] = []
        for item in selected:
            if item.pattern.role is not Role.PRODUCER or item.end == -1:
                continue
            spans: List[Tuple[int, int]] = []
            if item.pattern.kind == "client":
                spans.append((item.offset, _chain_end(text, item.end)))
            else:
                spans.append((item.offset, item.end))
                client = _client_for(text, item.offset, clients)
                if client is not None:
                    spans.append((client.start, client.end))
            evidence = SerializerEvidence()
            for start, end in spans:
                part = self._span_evidence(text, start, end)
                if part.conclusive:
                    claimed.append((start, end))
                evidence = evidence.merge(part)
            previous = result.evidence.get(item.line)
            result.evidence[item.line] = previous.merge(evidence) if previous else evidence

        if claimed:
            masked = list(text)
            for start, end in claimed:
                masked[start : end + 1] = " " * (end + 1 - start)
            rest = "".join(masked)
            result.residual = SerializerEvidence(
                tuple(self.match_serializers(rest)), self.inline_custom_serializer(rest)
            )

    def _span_evidence(self, text: str, start: int, end: int) -> SerializerEvidence:
        chunk = text[start : end + 1]
        return SerializerEvidence(
            tuple(self.match_serializers(chunk)),
            self.inline_custom_serializer(chunk),
            frozenset(_IDENTIFIER.findall(chunk)),
        )

    def _select(self, found: Iterable[_Found]) -> List[_Found]:
        """Drop client constructions shadowed by calls and duplicate line matches."""
        items = sorted(found, key=lambda item: (item.offset, item.pattern.id))
        selected: List[_Found] = []
        for role in (Role.PRODUCER, Role.CONSUMER):
            calls = [item for item in items if item.pattern.role is role and item.pattern.kind == "call"]
            clients = [item for item in items if item.pattern.role is role and item.pattern.kind == "client"]
            client_topics = sorted({topic for item in clients for topic in item.topics})
            if calls:
                for item in calls:
                    if not item.topics and not item.ambiguous and len(client_topics) == 1:
                        item.topics = list(client_topics)
                selected.extend(_dedupe_lines(calls))
            else:
                selected.extend(_dedupe_lines(clients))
        return selected

    def _type_reference(self, hits: Sequence[Tuple[int, str]], offset: int, path: str) -> Optional[TypeReference]:
        if not hits:
            return None
        ordered: List[str] = []
        for _, name in sorted(hits, key=lambda hit: (abs(hit[0] - offset), hit[0])):
            if name not in ordered:
                ordered.append(name)
        return TypeReference(name=ordered[0], file=path, candidates=tuple(ordered[1:]))


def _dedupe_lines(items: Sequence[_Found]) -> List[_Found]:
    known_lines: Dict[int, bool] = {}
    for item in items:
        if item.topics:
            known_lines[item.line] = True
    kept: List[_Found] = []
    seen: set[Tuple[int, Tuple[str, ...]]] = set()
    for item in items:
        if not item.topics and known_lines.get(item.line):
            continue
        key = (item.line, tuple(item.topics))
        if key in seen:
            continue
        seen.add(key)
        kept.append(item)
    return kept


def _assigned_name(text: str, offset: int) -> Optional[str]:
    """Variable a client construction is assigned to on its own line."""
    line_start = text.rfind("\n", 0, offset) + 1
    match = _ASSIGNMENT.search(text[line_start:offset])
    return match.group(1) if match else None


def _receiver(text: str, offset: int) -> Optional[str]:
    """Receiver of a send call, or of the call enclosing a record construction."""
    match = _LEADING_RECEIVER.match(text, offset)
    if match:
        return match.group(1)
    line_start = text.rfind("\n", 0, offset) + 1
    match = _ENCLOSING_RECEIVER.search(text[line_start:offset])
    return match.group(1) if match else None


def _client_for(text: str, offset: int, clients: Sequence[_Client]) -> Optional[_Client]:
    """The client a call sends through: same variable, else the nearest preceding construction.

    A call whose receiver names a different client is left unbound.
    """
    if not clients:
        return None
    receiver = _receiver(text, offset)
    candidates = list(clients)
    if receiver is not None and any(client.name for client in clients):
        named = [client for client in clients if client.name == receiver]
        candidates = named or [client for client in clients if client.name is None]
    if not candidates:
        return None
    preceding = [client for client in candidates if client.offset < offset]
    if preceding:
        return preceding[-1]
    return candidates[0] if len(candidates) == 1 else None


def _chain_end(text: str, close: int) -> int:
    """Extend a construction over chained builder calls such as ``.SetValueSerializer(...)``."""
    end = close
    while True:
        match = _CHAINED_CALL.match(text, end + 1)
        if match is None:
            return end
        following = matching_close(text, match.end() - 1)
        if following == -1:
            return end
        end = following


def scan_flags(catalog: PatternCatalog, text: str, lines: LineIndex | None = None) -> List[Tuple[FlagKind, int]]:
    """Return ``(flag, line)`` for every enabled auto-register/use-latest setting."""
    index = lines or LineIndex(text)
    hits: List[Tuple[FlagKind, int]] = []
    for kind, patterns in catalog.flags.items():
        seen_lines: set[int] = set()
        for regex in patterns:
            for match in regex.finditer(text):
                line = index.line_of(match.start())
                if line not in seen_lines:
                    seen_lines.add(line)
                    hits.append((kind, line))
    return sorted(hits, key=lambda hit: (hit[1], hit[0].value))


__all__ = ["CallSiteScanner", "FileScan", "SerializerEvidence", "scan_flags"]
