"""Call-site scanner implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, Sequence, Set

from ..catalog import PatternCatalog
from ..logging import get_logger
from ..models import Ecosystem
from .base import CallSiteScanner, FileScan, scan_flags
from .dotnet import DotNetScanner
from .go import GoScanner
from .java import JavaScanner
from .node import NodeScanner
from .python import PythonScanner
from .scope import nearest_call_sites, resolve_scope, scan_support_file

_ENTRY_POINT_GROUP = "kafkascan.scanners"

logger = get_logger("scanners")

_BUILTIN_FACTORIES: dict[str, Callable[[PatternCatalog], CallSiteScanner]] = {
    Ecosystem.JAVA.value: JavaScanner,
    Ecosystem.PYTHON.value: PythonScanner,
    Ecosystem.DOTNET.value: DotNetScanner,
    Ecosystem.GO.value: GoScanner,
    Ecosystem.NODE_TS.value: NodeScanner,
}


def discover_scanners(
    catalog: PatternCatalog, enabled: Sequence[str] | None = None
) -> Dict[Ecosystem, CallSiteScanner]:
    """Return one scanner per ecosystem, honoring optional enabled names.

    Entry points registered under ``kafkascan.scanners`` replace the builtin
    scanner for the ecosystem their class declares; plugins declaring no
    known ecosystem are skipped.
    """

    enabled_set: Set[str] | None = None
    if enabled:
        enabled_set = {name.lower() for name in enabled}

    factories: Dict[str, Callable[[PatternCatalog], CallSiteScanner]] = dict(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - broken third-party plugin
            raise RuntimeError(f"Failed to load scanner entry point '{entry.name}': {exc}") from exc
        if not (isinstance(loaded, type) and issubclass(loaded, CallSiteScanner)):
            raise TypeError(f"Scanner entry point '{entry.name}' must be a CallSiteScanner subclass")
        try:
            ecosystem = Ecosystem(loaded.ecosystem)
        except ValueError:
            ecosystem = Ecosystem.UNKNOWN
        if ecosystem is Ecosystem.UNKNOWN:
            logger.error(
                "Skipping scanner entry point '%s': %s declares no known ecosystem (expected one of %s)",
                entry.name,
                loaded.__name__,
                ", ".join(sorted(_BUILTIN_FACTORIES)),
            )
            continue
        factories[ecosystem.value] = loaded

    if enabled_set is not None:
        unknown = enabled_set - set(factories)
        if unknown:
            raise ValueError(f"Unknown ecosystems requested: {', '.join(sorted(unknown))}")

    scanners: Dict[Ecosystem, CallSiteScanner] = {}
    for name, factory in factories.items():
        if enabled_set is not None and name not in enabled_set:
            continue
        if catalog.for_ecosystem(Ecosystem(name)) is None:
            continue
        instance = factory(catalog)
        if not isinstance(instance, CallSiteScanner):
            raise TypeError(f"Scanner factory for '{name}' did not return a CallSiteScanner")
        scanners[instance.ecosystem] = instance
    return scanners


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "CallSiteScanner",
    "DotNetScanner",
    "FileScan",
    "GoScanner",
    "JavaScanner",
    "NodeScanner",
    "PythonScanner",
    "discover_scanners",
    "nearest_call_sites",
    "resolve_scope",
    "scan_flags",
    "scan_support_file",
]
