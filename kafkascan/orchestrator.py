"""Scan pipeline: index -> scan -> infer -> tag -> classify -> validate."""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .catalog import PatternCatalog, load_catalog
from .classifier import ProducerClassifier
from .config import KafkaScanConfig, load_config
from .errors import FileUnreadable, TypeUnresolvable
from .indexer import SourceIndex
from .inference import (
    AvroSchemaError,
    Declaration,
    SampleDocument,
    SchemaDocument,
    SchemaInferenceEngine,
    extract_declarations,
    load_sample,
    load_schema_document,
)
from .logging import get_logger
from .models import (
    CallSite,
    ClassificationResult,
    Ecosystem,
    FileKind,
    FlagOccurrence,
    Role,
    ScanReport,
    ScanScope,
    ScanWarning,
    SchemaModel,
    SourceFile,
    WarningKind,
)
from .pii import PiiTagger
from .scanners import CallSiteScanner, FileScan, discover_scanners, resolve_scope, scan_support_file
from .validation import SchemaValidator, build_validator, validate_schemas

_POLL_INTERVAL = 0.05


@dataclass
class FileOutcome:
    """What one indexed file contributed to its scope."""

    source: SourceFile
    scan: Optional[FileScan] = None
    declarations: List[Declaration] = field(default_factory=list)
    schema: Optional[SchemaDocument] = None
    sample: Optional[SampleDocument] = None
    warnings: List[ScanWarning] = field(default_factory=list)


class Orchestrator:
    """Coordinates a scan of one source tree.

    Collaborators can be injected; anything left as ``None`` is built from
    the ``.kafkascan.yml`` found at the scan root.
    """

    def __init__(
        self,
        catalog: PatternCatalog | None = None,
        config: KafkaScanConfig | None = None,
        validator: SchemaValidator | None = None,
        *,
        scanners: Optional[Mapping[Ecosystem, CallSiteScanner]] = None,
        classifier: ProducerClassifier | None = None,
    ) -> None:
        self.catalog = catalog
        self.config = config
        self.validator = validator
        self._scanner_overrides = dict(scanners) if scanners is not None else None
        self._classifier = classifier
        self.logger = get_logger("orchestrator")

    def run_scan(
        self,
        path: str | Path,
        *,
        scope: str | Path | None = None,
        cancel_event: threading.Event | None = None,
        workers: int | None = None,
    ) -> ScanReport:
        """Scan ``path`` and return the report.

        Only an unusable root (or scope) and a malformed configuration file
        raise; every other failure is collected as a warning on the report.
        """
        root = Path(path).expanduser().resolve()
        self.logger.info("Starting scan for %s", root)
        config = self.config or load_config(root)
        catalog = self._resolve_catalog(config)
        index = SourceIndex(root, catalog, config, scope=scope)
        scanners = self._select_scanners(catalog, config)
        self.logger.debug("Enabled scanners: %s", ", ".join(sorted(eco.value for eco in scanners)))

        cancel = cancel_event or threading.Event()
        pool_size = workers if workers and workers > 0 else config.scan.workers
        outcomes, warnings, cancelled = self._scan_files(index, scanners, catalog, config, pool_size, cancel)
        warnings.extend(index.warnings)

        scopes = self._scopes_with_dependencies(index.scopes(), outcomes)
        call_sites: List[CallSite] = []
        flags: List[FlagOccurrence] = []
        schemas: List[SchemaModel] = []
        classifications: List[ClassificationResult] = []
        classifier = self._classifier or ProducerClassifier(catalog)
        tagger = PiiTagger(catalog.pii)

        grouped: Dict[str, List[FileOutcome]] = defaultdict(list)
        for outcome in outcomes:
            grouped[outcome.source.scope].append(outcome)

        for scan_scope in scopes:
            members = grouped.get(scan_scope.path, [])
            scans = [outcome.scan for outcome in members if outcome.scan is not None]
            sites, scope_flags = resolve_scope(scan_scope, scans, catalog)
            call_sites.extend(sites)
            flags.extend(scope_flags)

            producers = [site for site in sites if site.role is Role.PRODUCER]
            if not producers:
                continue
            engine = SchemaInferenceEngine(
                catalog,
                declarations=[item for outcome in members for item in outcome.declarations],
                schema_documents=[outcome.schema for outcome in members if outcome.schema is not None],
                samples=[outcome.sample for outcome in members if outcome.sample is not None],
            )
            for site in producers:
                schema: Optional[SchemaModel] = None
                try:
                    inferred, inference_warnings = engine.infer(site)
                except TypeUnresolvable as exc:
                    self.logger.debug("%s", exc)
                    warnings.append(
                        ScanWarning(kind=WarningKind.TYPE_UNRESOLVABLE, message=str(exc), path=site.file, line=site.line)
                    )
                else:
                    warnings.extend(inference_warnings)
                    schema = tagger.tag(inferred)
                    schemas.append(schema)
                classifications.append(classifier.classify(site, schema))

        validator = self._resolve_validator(config)
        validation, validation_warnings = validate_schemas(_sorted_schemas(schemas), validator)
        warnings.extend(validation_warnings)

        if cancelled:
            warnings.append(ScanWarning(kind=WarningKind.SCAN_CANCELLED, message="Scan cancelled before all files were read"))

        report = ScanReport(
            root=str(root),
            scopes=scopes,
            call_sites=sorted(call_sites, key=_site_order),
            classifications=sorted(classifications, key=lambda result: _site_order(result.call_site)),
            schemas=_sorted_schemas(schemas),
            flags=sorted(flags, key=lambda flag: (flag.file, flag.line, flag.kind.value)),
            warnings=sorted(warnings, key=_warning_order),
            validation=validation,
            catalog_version=catalog.version,
            cancelled=cancelled,
        )
        self.logger.info(
            "Scan finished: %d call sites, %d producers classified, %d warnings%s",
            len(report.call_sites),
            len(report.classifications),
            len(report.warnings),
            " (cancelled)" if cancelled else "",
        )
        return report

    def scan_file(
        self,
        source: SourceFile,
        scanners: Mapping[Ecosystem, CallSiteScanner],
        catalog: PatternCatalog,
        config: KafkaScanConfig,
    ) -> FileOutcome:
        """Run every per-file extractor that applies to ``source``."""
        outcome = FileOutcome(source=source)
        if source.kind is FileKind.SOURCE:
            if source.ecosystem is Ecosystem.UNKNOWN:
                outcome.warnings.append(
                    ScanWarning(
                        kind=WarningKind.ECOSYSTEM_UNDETERMINED,
                        message="No build manifest in scope claims this file type",
                        path=source.path,
                    )
                )
                return outcome
            if source.ecosystem not in scanners:
                return outcome

        try:
            text = source.read_text(config.scan.max_file_bytes)
        except FileUnreadable as exc:
            self.logger.debug("Skipping %s: %s", source.path, exc.reason)
            outcome.warnings.append(ScanWarning(kind=WarningKind.FILE_UNREADABLE, message=exc.reason, path=source.path))
            return outcome

        if source.kind is FileKind.SOURCE:
            outcome.scan = scanners[source.ecosystem].scan(source, text)
            outcome.warnings.extend(outcome.scan.warnings)
            outcome.declarations = extract_declarations(text, source.ecosystem, source.path)
        elif source.kind in (FileKind.CONFIG, FileKind.MANIFEST):
            outcome.scan = scan_support_file(catalog, source, text, catalog.ecosystems.keys())
        elif source.kind is FileKind.SCHEMA:
            try:
                outcome.schema = load_schema_document(source.path, text)
            except AvroSchemaError as exc:
                outcome.warnings.append(
                    ScanWarning(kind=WarningKind.FILE_UNREADABLE, message=f"Unusable Avro schema: {exc}", path=source.path)
                )
        elif source.kind is FileKind.SAMPLE:
            outcome.sample = load_sample(source.path, text, catalog.samples.stems)
        return outcome

    # Internals ---------------------------------------------------------

    def _scan_files(
        self,
        index: SourceIndex,
        scanners: Mapping[Ecosystem, CallSiteScanner],
        catalog: PatternCatalog,
        config: KafkaScanConfig,
        workers: int,
        cancel: threading.Event,
    ) -> tuple[List[FileOutcome], List[ScanWarning], bool]:
        outcomes: List[FileOutcome] = []
        warnings: List[ScanWarning] = []
        started: Dict[str, float] = {}
        timeout = config.scan.file_timeout
        cancelled = False

        def _task(source: SourceFile) -> FileOutcome:
            started[source.path] = time.monotonic()
            return self.scan_file(source, scanners, catalog, config)

        pending: Dict[Future[FileOutcome], SourceFile] = {}
        files = iter(index)
        exhausted = False
        executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="kafkascan")
        try:
            while True:
                while not exhausted and len(pending) < workers * 2:
                    if cancel.is_set():
                        cancelled = exhausted = True
                        break
                    source = next(files, None)
                    if source is None:
                        exhausted = True
                        break
                    pending[executor.submit(_task, source)] = source

                if cancel.is_set() and not cancelled:
                    cancelled = exhausted = True
                if cancelled:
                    # Files already being read finish; queued ones are dropped.
                    for future in [future for future in pending if future.cancel()]:
                        del pending[future]
                if not pending:
                    break

                done, _ = wait(list(pending), timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    source = pending.pop(future)
                    try:
                        outcomes.append(future.result())
                    except Exception as exc:  # pragma: no cover - unexpected scanner failure
                        self.logger.exception("Scanning %s failed", source.path)
                        warnings.append(
                            ScanWarning(kind=WarningKind.FILE_UNREADABLE, message=f"Scan failed: {exc}", path=source.path)
                        )

                now = time.monotonic()
                for future, source in list(pending.items()):
                    began = started.get(source.path)
                    if began is not None and now - began > timeout:
                        del pending[future]
                        self.logger.warning("Gave up on %s after %.1fs", source.path, timeout)
                        warnings.append(
                            ScanWarning(
                                kind=WarningKind.FILE_UNREADABLE,
                                message=f"Exceeded the {timeout:g}s per-file time budget",
                                path=source.path,
                            )
                        )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes.sort(key=lambda outcome: outcome.source.path)
        for outcome in outcomes:
            warnings.extend(outcome.warnings)
        self.logger.debug("Scanned %d files", len(outcomes))
        return outcomes, warnings, cancelled

    def _resolve_catalog(self, config: KafkaScanConfig) -> PatternCatalog:
        catalog = self.catalog or load_catalog(config.catalog)
        return catalog.with_pii_rules(config.pii.extra)

    def _select_scanners(
        self, catalog: PatternCatalog, config: KafkaScanConfig
    ) -> Dict[Ecosystem, CallSiteScanner]:
        if self._scanner_overrides is not None:
            return dict(self._scanner_overrides)
        return discover_scanners(catalog, config.scan.ecosystems or None)

    def _resolve_validator(self, config: KafkaScanConfig) -> Optional[SchemaValidator]:
        if self.validator is not None:
            return self.validator
        return build_validator(
            config.validator.url,
            timeout=config.validator.timeout,
            enabled=config.validator.enabled,
        )

    def _scopes_with_dependencies(
        self, scopes: Sequence[ScanScope], outcomes: Sequence[FileOutcome]
    ) -> List[ScanScope]:
        found: Dict[str, List[str]] = defaultdict(list)
        for outcome in outcomes:
            if outcome.scan is None or outcome.source.kind is not FileKind.MANIFEST:
                continue
            bucket = found[outcome.source.scope]
            bucket.extend(name for name in outcome.scan.dependencies if name not in bucket)
        return [replace(scope, dependencies=tuple(found.get(scope.path, ()))) for scope in scopes]


def _site_order(site: CallSite) -> tuple:
    return (site.topic, site.file, site.line, site.role.value)


def _sorted_schemas(schemas: Sequence[SchemaModel]) -> List[SchemaModel]:
    return sorted(schemas, key=lambda schema: (schema.topic, schema.call_site_key or "", schema.name))


def _warning_order(warning: ScanWarning) -> tuple:
    return (warning.path or "", warning.line or 0, warning.kind.value, warning.message)


__all__ = ["FileOutcome", "Orchestrator"]
