"""Schema inference for producer call sites."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from ..catalog import PatternCatalog, normalize_field_name
from ..errors import TypeUnresolvable
from ..logging import get_logger
from ..models import CallSite, Ecosystem, Provenance, SchemaModel, ScanWarning, TargetFormat, UNKNOWN_TOPIC
from ..scanners.scope import directory_distance
from .avro import SchemaDocument, model_from_document
from .declarations import Declaration
from .samples import SampleDocument, infer_record
from .types import TypeNormalizer, nearest_declaration

logger = get_logger("inference")


class SchemaInferenceEngine:
    """Infers a :class:`SchemaModel` for call sites of a single scan scope.

    Resolution order: a declared type named by the call site's type
    reference, then an existing Avro schema file, then a co-located sample
    payload. When all three fail :class:`TypeUnresolvable` is raised.
    """

    def __init__(
        self,
        catalog: PatternCatalog,
        declarations: Sequence[Declaration] = (),
        schema_documents: Sequence[SchemaDocument] = (),
        samples: Sequence[SampleDocument] = (),
    ) -> None:
        self.catalog = catalog
        self._declarations: Dict[Tuple[Ecosystem, str], List[Declaration]] = defaultdict(list)
        for declaration in declarations:
            self._declarations[(declaration.ecosystem, declaration.name)].append(declaration)
        self._schemas = list(schema_documents)
        self._samples = list(samples)

    def infer(self, call_site: CallSite) -> Tuple[SchemaModel, List[ScanWarning]]:
        """Return the schema for ``call_site`` plus any warnings raised while mapping types."""
        attempts: List[str] = []
        names = call_site.type_reference.names() if call_site.type_reference else ()
        target_format = self._target_format(call_site)

        for name in names:
            declaration = self._find(call_site, name)
            if declaration is None:
                attempts.append(f"no declaration for {name}")
                continue
            if declaration.is_enum or not (declaration.fields or declaration.bases):
                attempts.append(f"{name} declares no fields")
                continue
            model, warnings = self._from_declaration(call_site, declaration, target_format)
            if not model.record.fields:
                attempts.append(f"{name} declares no fields")
                continue
            logger.debug("%s: schema from declared type %s (%s)", call_site.key, name, declaration.file)
            return model, warnings

        document = self._find_schema_document(call_site, names)
        if document is not None:
            logger.debug("%s: schema from existing file %s", call_site.key, document.path)
            return model_from_document(document, call_site_key=call_site.key, topic=call_site.topic), []
        attempts.append("no matching .avsc schema")

        sample = self._find_sample(call_site, names)
        if sample is not None:
            record_name = names[0] if names else _record_name_for_topic(call_site.topic)
            try:
                record = infer_record(sample.data, record_name)
            except ValueError as exc:
                attempts.append(f"sample {sample.path} unusable: {exc}")
            else:
                logger.debug("%s: schema inferred from sample %s", call_site.key, sample.path)
                model = SchemaModel(
                    record=record,
                    provenance=Provenance.INFERRED_FROM_SAMPLE,
                    target_format=target_format,
                    source=sample.path,
                    call_site_key=call_site.key,
                    topic=call_site.topic,
                )
                return model, []
        else:
            attempts.append("no co-located sample payload")

        raise TypeUnresolvable(call_site.key, attempts)

    def _from_declaration(
        self, call_site: CallSite, declaration: Declaration, target_format: TargetFormat
    ) -> Tuple[SchemaModel, List[ScanWarning]]:
        patterns = self.catalog.for_ecosystem(declaration.ecosystem)
        if patterns is None:
            raise TypeUnresolvable(call_site.key, [f"no type map for {declaration.ecosystem.value}"])

        def _lookup(name: str) -> Optional[Declaration]:
            return nearest_declaration(
                self._declarations.get((declaration.ecosystem, name), []), declaration.file, directory_distance
            )

        normalizer = TypeNormalizer(patterns, _lookup)
        record = normalizer.record_for(declaration)
        model = SchemaModel(
            record=record,
            provenance=Provenance.DECLARED_TYPE,
            target_format=target_format,
            source=f"{declaration.file}:{declaration.line}",
            call_site_key=call_site.key,
            topic=call_site.topic,
        )
        return model, normalizer.warnings

    def _find(self, call_site: CallSite, name: str) -> Optional[Declaration]:
        candidates = self._declarations.get((call_site.ecosystem, name), [])
        return nearest_declaration(candidates, call_site.file, directory_distance)

    def _find_schema_document(self, call_site: CallSite, names: Sequence[str]) -> Optional[SchemaDocument]:
        keys = _lookup_keys(call_site, names)
        if not keys:
            return None
        matches = []
        for document in self._schemas:
            stem = document.path.rsplit("/", 1)[-1].rsplit(".", 1)[0]
            if normalize_field_name(document.name) in keys or normalize_field_name(stem) in keys:
                matches.append(document)
        if not matches:
            return None
        return min(matches, key=lambda item: (directory_distance(call_site.file, item.path), item.path))

    def _find_sample(self, call_site: CallSite, names: Sequence[str]) -> Optional[SampleDocument]:
        keys = _lookup_keys(call_site, names)
        if not keys:
            return None
        matches = [sample for sample in self._samples if sample.key in keys]
        if not matches:
            return None
        return min(matches, key=lambda item: (directory_distance(call_site.file, item.path), item.path))

    def _target_format(self, call_site: CallSite) -> TargetFormat:
        if call_site.is_custom_serializer:
            return TargetFormat.UNKNOWN
        rule = self.catalog.serializer_rule(call_site.serializer, call_site.ecosystem)
        return rule.format if rule is not None else TargetFormat.UNKNOWN


def _lookup_keys(call_site: CallSite, names: Sequence[str]) -> set[str]:
    keys = {normalize_field_name(name) for name in names}
    if call_site.topic != UNKNOWN_TOPIC:
        keys.add(normalize_field_name(call_site.topic))
    keys.discard("")
    return keys


def _record_name_for_topic(topic: str) -> str:
    if topic == UNKNOWN_TOPIC:
        return "Record"
    parts = [part for part in topic.replace(".", "-").replace("_", "-").split("-") if part]
    return "".join(part[:1].upper() + part[1:] for part in parts) or "Record"


__all__ = ["SchemaInferenceEngine"]
