"""Source tree indexing: ecosystem detection, scan scopes and file kinds."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .catalog import PatternCatalog
from .config import KafkaScanConfig
from .errors import ScanRootError
from .logging import get_logger
from .models import Ecosystem, FileKind, ScanScope, ScanWarning, SourceFile, WarningKind

logger = get_logger("indexer")

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
    ".idea",
    ".vscode",
    ".kafkascan",
}

DEFAULT_EXCLUDED_DIRS = frozenset(
    {
        "test",
        "tests",
        "__tests__",
        "__mocks__",
        "testdata",
        "test-data",
        "vendor",
        "third_party",
        "target",
        "build",
        "dist",
        "out",
        "bin",
        "obj",
        ".gradle",
        ".mvn",
        "node_modules",
    }
)

_TEST_DIRS = frozenset({"test", "tests", "__tests__", "__mocks__", "testdata", "test-data"})

_TEST_FILE_PATTERNS = (
    "*_test.go",
    "*Test.java",
    "*Tests.java",
    "*Test.kt",
    "*Tests.cs",
    "*Test.cs",
    "test_*.py",
    "*_test.py",
    "*.spec.ts",
    "*.test.ts",
    "*.spec.js",
    "*.test.js",
)


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .kafkascan.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(path: Path) -> List[IgnoreRule]:
    try:
        text = path.read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError):
        return []
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path.name, exc)
        return []

    rules: List[IgnoreRule] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def is_test_file(filename: str) -> bool:
    return any(fnmatchcase(filename, pattern) for pattern in _TEST_FILE_PATTERNS)


@dataclass
class _ScopeState:
    path: str
    ecosystems: List[Ecosystem]
    manifests: List[str]


class SourceIndex:
    """Lazy, restartable view of the files under a scan root.

    Every iteration re-walks the tree. Scopes discovered during the most
    recent walk are available through :meth:`scopes`; warnings collected
    while walking (unreadable directories) through :attr:`warnings`.
    """

    def __init__(
        self,
        root: str | Path,
        catalog: PatternCatalog,
        config: KafkaScanConfig | None = None,
        *,
        scope: str | Path | None = None,
    ) -> None:
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise ScanRootError(f"Scan root not found: {root}")
        if not root_path.is_dir():
            raise ScanRootError(f"Scan root is not a directory: {root}")

        self.root = root_path
        self.catalog = catalog
        self.config = config or KafkaScanConfig(root=root_path)
        self.restriction = self._normalize_scope(scope)
        self.warnings: List[ScanWarning] = []

        self._rules = parse_gitignore(root_path / ".gitignore")
        for pattern in self.config.exclude_paths:
            rule = build_ignore_rule(pattern)
            if rule is not None:
                self._rules.append(rule)
        self._sample_globs = tuple(self.config.samples.paths)
        self._scopes: Dict[str, _ScopeState] = {}
        self._walked = False

    def __iter__(self) -> Iterator[SourceFile]:
        return self.iter_files()

    def scopes(self) -> List[ScanScope]:
        """Scopes that own at least one indexed directory, sorted by path."""
        if not self._walked:
            for _ in self.iter_files():
                pass
        return [
            ScanScope(path=state.path, ecosystems=tuple(state.ecosystems), manifests=tuple(state.manifests))
            for _, state in sorted(self._scopes.items())
        ]

    def iter_files(self) -> Iterator[SourceFile]:
        """Yield every indexed file (source, config, manifest, sample, schema)."""
        self.warnings = []
        self._scopes = {}
        self._walked = True
        dir_scopes: Dict[str, _ScopeState] = {}

        def _on_error(error: OSError) -> None:
            path = getattr(error, "filename", None) or ""
            rel = self._relative(Path(path)) if path else None
            self.warnings.append(
                ScanWarning(kind=WarningKind.FILE_UNREADABLE, message=f"Unreadable directory: {error}", path=rel)
            )

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_on_error):
            current = Path(dirpath)
            rel_dir = "" if current == self.root else current.relative_to(self.root).as_posix()

            parent_rel = posixpath.dirname(rel_dir) if rel_dir else None
            parent = dir_scopes.get(parent_rel) if parent_rel is not None else None
            state = self._scope_for(rel_dir, sorted(filenames), parent)
            dir_scopes[rel_dir] = state

            dirnames[:] = sorted(name for name in dirnames if self._keep_dir(rel_dir, name))

            if not self._in_restriction(rel_dir):
                continue
            self._scopes.setdefault(state.path, state)

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if should_ignore(rel_path, False, self._rules):
                    continue
                if not self.config.scan.include_tests and is_test_file(filename):
                    continue
                source = self._build_source(current / filename, rel_path, filename, state)
                if source is not None:
                    yield source

    # Internals ---------------------------------------------------------

    def _scope_for(self, rel_dir: str, filenames: Sequence[str], parent: Optional[_ScopeState]) -> _ScopeState:
        ecosystems: List[Ecosystem] = []
        manifests: List[str] = []
        for filename in filenames:
            found = [eco for eco in self.catalog.manifest_ecosystems(filename) if self._ecosystem_enabled(eco)]
            if not found:
                continue
            manifests.append(f"{rel_dir}/{filename}" if rel_dir else filename)
            for ecosystem in found:
                if ecosystem not in ecosystems:
                    ecosystems.append(ecosystem)
        if ecosystems:
            logger.debug("Scope %s: %s", rel_dir or ".", ", ".join(eco.value for eco in ecosystems))
            return _ScopeState(path=rel_dir, ecosystems=ecosystems, manifests=manifests)
        if parent is not None:
            return parent
        return _ScopeState(path=rel_dir, ecosystems=[], manifests=[])

    def _ecosystem_enabled(self, ecosystem: Ecosystem) -> bool:
        enabled = self.config.scan.ecosystems
        return not enabled or ecosystem.value in enabled

    def _keep_dir(self, rel_dir: str, name: str) -> bool:
        if name in _EXCLUDED_DIRS:
            return False
        lowered = name.lower()
        if lowered in DEFAULT_EXCLUDED_DIRS:
            if not (self.config.scan.include_tests and lowered in _TEST_DIRS):
                return False
        rel_path = f"{rel_dir}/{name}" if rel_dir else name
        if should_ignore(rel_path, True, self._rules):
            return False
        if self.restriction:
            # Keep ancestors of the restriction and everything below it.
            return self.restriction.startswith(f"{rel_path}/") or self.restriction == rel_path or self._in_restriction(rel_path)
        return True

    def _in_restriction(self, rel_dir: str) -> bool:
        if not self.restriction:
            return True
        return rel_dir == self.restriction or rel_dir.startswith(f"{self.restriction}/")

    def _build_source(self, absolute: Path, rel_path: str, filename: str, state: _ScopeState) -> Optional[SourceFile]:
        kind = self._classify(rel_path, filename, state)
        if kind is FileKind.OTHER:
            return None
        try:
            size = absolute.stat().st_size
        except OSError as exc:
            self.warnings.append(
                ScanWarning(kind=WarningKind.FILE_UNREADABLE, message=f"Cannot stat file: {exc}", path=rel_path)
            )
            return None
        ecosystem = Ecosystem.UNKNOWN
        if kind is FileKind.SOURCE:
            candidates = self.catalog.source_ecosystems(filename)
            ecosystem = next((eco for eco in candidates if eco in state.ecosystems), Ecosystem.UNKNOWN)
        elif len(state.ecosystems) == 1:
            ecosystem = state.ecosystems[0]
        return SourceFile(
            path=rel_path,
            absolute=absolute,
            ecosystem=ecosystem,
            scope=state.path,
            size=size,
            kind=kind,
        )

    def _classify(self, rel_path: str, filename: str, state: _ScopeState) -> FileKind:
        if rel_path in state.manifests:
            return FileKind.MANIFEST
        if self.catalog.is_schema_file(filename):
            return FileKind.SCHEMA
        if self.catalog.is_sample_file(rel_path) or any(fnmatchcase(rel_path, glob) for glob in self._sample_globs):
            return FileKind.SAMPLE
        if self.catalog.is_config_file(filename):
            return FileKind.CONFIG
        if self.catalog.source_ecosystems(filename):
            return FileKind.SOURCE
        return FileKind.OTHER

    def _normalize_scope(self, scope: str | Path | None) -> str:
        if scope is None:
            return ""
        candidate = Path(scope).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        candidate = candidate.resolve()
        try:
            rel = candidate.relative_to(self.root).as_posix()
        except ValueError as exc:
            raise ScanRootError(f"Scope {scope} is outside the scan root {self.root}") from exc
        if not candidate.is_dir():
            raise ScanRootError(f"Scope is not a directory: {scope}")
        return "" if rel == "." else rel

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()


__all__ = [
    "DEFAULT_EXCLUDED_DIRS",
    "IgnoreRule",
    "SourceIndex",
    "build_ignore_rule",
    "is_test_file",
    "parse_gitignore",
    "should_ignore",
]
