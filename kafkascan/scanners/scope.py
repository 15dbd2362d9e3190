"""Scope-level completion of call sites: serializers, registry URLs and flags."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from ..catalog import PatternCatalog, SerializerRule
from ..logging import get_logger
from ..models import CallSite, Ecosystem, FileKind, FlagKind, FlagOccurrence, Role, ScanScope, SourceFile
from ..syntax import LineIndex
from .base import FileScan, scan_flags

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")
_CONFLUENT, _CUSTOM, _GENERIC = range(3)

logger = get_logger("scanners.scope")


def scan_support_file(
    catalog: PatternCatalog,
    source: SourceFile,
    text: str,
    ecosystems: Iterable[Ecosystem],
) -> FileScan:
    """Scan a configuration file or build manifest for scope-wide settings."""
    result = FileScan(file=source)
    lines = LineIndex(text)
    result.flags = scan_flags(catalog, text, lines)

    urls: List[str] = []
    regexes = list(catalog.registry_urls)
    for ecosystem in ecosystems:
        patterns = catalog.for_ecosystem(ecosystem)
        if patterns is None:
            continue
        regexes.extend(patterns.registry_urls)
        result.serializers.extend(rule for rule in patterns.serializers if rule.regex.search(text))
        if source.kind is FileKind.MANIFEST and patterns.is_manifest(posixpath.basename(source.path)):
            for regex in patterns.dependencies:
                match = regex.search(text)
                if match:
                    name = match.group(0).strip("\"'")
                    if name not in result.dependencies:
                        result.dependencies.append(name)
    for regex in regexes:
        for match in regex.finditer(text):
            value = match.group("value") if "value" in regex.groupindex else match.group(0)
            if value and value not in urls:
                urls.append(value)
    result.registry_urls = urls
    result.identifiers = frozenset(_IDENTIFIER.findall(text))
    return result


@dataclass
class _ScopeFacts:
    registry_url: Optional[str] = None
    config_serializers: List[SerializerRule] = field(default_factory=list)
    custom_names: Dict[Ecosystem, List[str]] = field(default_factory=dict)
    config_identifiers: Set[str] = field(default_factory=set)


def resolve_scope(
    scope: ScanScope,
    scans: Sequence[FileScan],
    catalog: PatternCatalog,
) -> Tuple[List[CallSite], List[FlagOccurrence]]:
    """Complete every producer call site in ``scope`` and associate flags.

    Serializer precedence is Confluent, then custom, then generic. The
    call-site file is consulted before scope configuration. A flag set in a
    configuration file or build manifest applies to every producer of the
    scope; a flag set in source code is attached to the producers at the
    smallest directory distance from it, ties attaching to all of them.
    """
    ordered = sorted(scans, key=lambda scan: scan.file.path)
    facts = _collect_facts(ordered)

    completed: List[CallSite] = []
    for scan in ordered:
        for site in scan.call_sites:
            if site.role is Role.PRODUCER:
                site = _complete_producer(site, scan, facts, catalog)
            completed.append(site)

    flags: List[FlagOccurrence] = []
    producers = [site for site in completed if site.role is Role.PRODUCER]
    updates: Dict[str, Set[FlagKind]] = {}
    for scan in ordered:
        for kind, line in scan.flags:
            if scan.file.kind is FileKind.SOURCE:
                targets = nearest_call_sites(scan.file.path, producers)
            else:
                targets = producers
            keys = tuple(dict.fromkeys(site.key for site in targets))
            for key in keys:
                updates.setdefault(key, set()).add(kind)
            flags.append(FlagOccurrence(kind=kind, file=scan.file.path, line=line, scope=scope.path, call_sites=keys))
            logger.debug("%s:%d %s -> %s", scan.file.path, line, kind.value, ", ".join(keys) or "no producer")

    if updates:
        completed = [_apply_flags(site, updates.get(site.key)) for site in completed]
    return completed, flags


def nearest_call_sites(path: str, candidates: Sequence[CallSite]) -> List[CallSite]:
    """Call sites at the minimal directory distance from ``path``.

    A call site in the same file wins over every other candidate.
    """
    if not candidates:
        return []
    scored = [(_distance(path, site.file), site) for site in candidates]
    best = min(score for score, _ in scored)
    return [site for score, site in scored if score == best]


def directory_distance(a: str, b: str) -> int:
    """Number of directory steps between the parent directories of two files."""
    left = [part for part in posixpath.dirname(a).split("/") if part]
    right = [part for part in posixpath.dirname(b).split("/") if part]
    common = 0
    for x, y in zip(left, right):
        if x != y:
            break
        common += 1
    return (len(left) - common) + (len(right) - common)


def _distance(flag_path: str, site_path: str) -> int:
    if flag_path == site_path:
        return -1
    return directory_distance(flag_path, site_path)


def _collect_facts(scans: Sequence[FileScan]) -> _ScopeFacts:
    facts = _ScopeFacts()
    source_urls: List[str] = []
    config_urls: List[str] = []
    for scan in scans:
        if scan.file.kind is FileKind.SOURCE:
            source_urls.extend(scan.registry_urls)
            names = facts.custom_names.setdefault(scan.file.ecosystem, [])
            for name in scan.custom_definitions:
                if name not in names:
                    names.append(name)
        else:
            config_urls.extend(scan.registry_urls)
            for rule in scan.serializers:
                if rule not in facts.config_serializers:
                    facts.config_serializers.append(rule)
            facts.config_identifiers.update(scan.identifiers)
    urls = config_urls + source_urls
    facts.registry_url = urls[0] if urls else None
    return facts


def _complete_producer(site: CallSite, scan: FileScan, facts: _ScopeFacts, catalog: PatternCatalog) -> CallSite:
    ecosystem = site.ecosystem
    choices: List[Tuple[int, str, bool]] = []

    local = scan.evidence.get(site.line)
    if local is not None:
        known = scan.custom_definitions + facts.custom_names.get(ecosystem, [])
        named = next((name for name in known if name in local.identifiers), None)
        found = _choose(local.serializers, local.inline_custom or named, ())
        if found is not None:
            choices.append(found)

    if not choices or choices[0][0] == _GENERIC:
        config_rules = [rule for rule in facts.config_serializers if _rule_belongs(catalog, rule, ecosystem)]
        if scan.residual is not None:
            rules, inline = list(scan.residual.serializers), scan.residual.inline_custom
        else:
            rules, inline = scan.serializers, scan.inline_custom
        found = _choose(rules, inline or _custom_serializer(scan, facts, ecosystem), config_rules)
        if found is not None:
            choices.append(found)

    serializer: Optional[str] = None
    custom = False
    if choices:
        _, serializer, custom = min(choices, key=lambda choice: choice[0])
    url = scan.registry_urls[0] if scan.registry_urls else facts.registry_url
    return replace(site, serializer=serializer, is_custom_serializer=custom, schema_registry_url=url)


def _choose(
    rules: Sequence[SerializerRule], custom_name: Optional[str], config_rules: Sequence[SerializerRule]
) -> Optional[Tuple[int, str, bool]]:
    """Rank, serializer name and custom marker: Confluent, then custom, then generic."""
    confluent = _first(rules, confluent=True) or _first(config_rules, confluent=True)
    if confluent is not None:
        return _CONFLUENT, confluent.name, False
    if custom_name is not None:
        return _CUSTOM, custom_name, True
    generic = _first(rules, confluent=False) or _first(config_rules, confluent=False)
    if generic is not None:
        return _GENERIC, generic.name, False
    return None


def _custom_serializer(scan: FileScan, facts: _ScopeFacts, ecosystem: Ecosystem) -> Optional[str]:
    if scan.custom_definitions:
        return scan.custom_definitions[0]
    known = facts.custom_names.get(ecosystem, [])
    for name in known:
        if name in scan.identifiers or name in facts.config_identifiers:
            return name
    return None


def _first(rules: Sequence[SerializerRule], *, confluent: bool) -> Optional[SerializerRule]:
    for rule in rules:
        if rule.confluent is confluent:
            return rule
    return None


def _rule_belongs(catalog: PatternCatalog, rule: SerializerRule, ecosystem: Ecosystem) -> bool:
    patterns = catalog.for_ecosystem(ecosystem)
    return patterns is not None and rule in patterns.serializers


def _apply_flags(site: CallSite, kinds: FrozenSet[FlagKind] | Set[FlagKind] | None) -> CallSite:
    if not kinds:
        return site
    return replace(
        site,
        auto_register=site.auto_register or FlagKind.AUTO_REGISTER in kinds,
        use_latest_version=site.use_latest_version or FlagKind.USE_LATEST_VERSION in kinds,
    )


__all__ = ["directory_distance", "nearest_call_sites", "resolve_scope", "scan_support_file"]
