"""Helper utilities for constructing temporary source trees in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Mapping

from kafkascan.catalog import PatternCatalog, load_catalog
from kafkascan.config import load_config
from kafkascan.indexer import SourceIndex
from kafkascan.models import ScanReport
from kafkascan.orchestrator import Orchestrator


class RepoBuilder:
    """Utility for writing files into a throwaway source tree and scanning it."""

    def __init__(self, tmp_path: Path, catalog: PatternCatalog | None = None) -> None:
        self.root = tmp_path / "repo"
        self.root.mkdir()
        self.catalog = catalog or load_catalog()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the tree."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def index(self, **kwargs: Any) -> SourceIndex:
        """Return a source index over the tree, honouring its .kafkascan.yml."""
        return SourceIndex(self.root, self.catalog, load_config(self.root), **kwargs)

    def scan(self, **kwargs: Any) -> ScanReport:
        """Run a full scan of the tree with a single worker."""
        kwargs.setdefault("workers", 1)
        return Orchestrator(catalog=self.catalog).run_scan(self.root, **kwargs)

    def path(self) -> Path:
        """Return the tree root path."""
        return self.root


__all__ = ["RepoBuilder"]
