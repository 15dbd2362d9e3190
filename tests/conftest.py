from __future__ import annotations

from pathlib import Path

import pytest

from kafkascan.catalog import PatternCatalog, load_catalog
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture(scope="session")
def catalog() -> PatternCatalog:
    """The packaged pattern catalog, loaded once per session."""
    return load_catalog()


@pytest.fixture
def repo_builder(tmp_path: Path, catalog: PatternCatalog) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path, catalog)
