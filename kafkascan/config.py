"""Configuration loading for kafkascan (.kafkascan.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".kafkascan.yml"

DEFAULT_MAX_FILE_BYTES = 2 * 1024 * 1024
DEFAULT_FILE_TIMEOUT = 10.0
DEFAULT_WORKERS = min(32, (os.cpu_count() or 1) + 4)

_ENV_WORKERS = "KAFKASCAN_WORKERS"
_ENV_VALIDATOR_URL = "KAFKASCAN_VALIDATOR_URL"


@dataclass
class ScanConfig:
    """Limits and toggles for the file walk and per-file scanning."""

    workers: int = DEFAULT_WORKERS
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    file_timeout: float = DEFAULT_FILE_TIMEOUT
    include_tests: bool = False
    ecosystems: List[str] = field(default_factory=list)


@dataclass
class SampleConfig:
    """Globs that locate sample payload documents."""

    paths: List[str] = field(default_factory=list)


@dataclass
class ValidatorConfig:
    """External schema validator settings."""

    url: Optional[str] = None
    timeout: float = 10.0
    enabled: bool = True


@dataclass
class PiiConfig:
    """Extra field-name rules merged into the catalog PII table."""

    extra: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class KafkaScanConfig:
    """Represents the settings defined in .kafkascan.yml."""

    root: Path
    exclude_paths: List[str] = field(default_factory=list)
    scan: ScanConfig = field(default_factory=ScanConfig)
    samples: SampleConfig = field(default_factory=SampleConfig)
    validator: ValidatorConfig = field(default_factory=ValidatorConfig)
    pii: PiiConfig = field(default_factory=PiiConfig)
    catalog: Optional[Path] = None


def load_config(config_path: Path, *, environ: Mapping[str, str] | None = None) -> KafkaScanConfig:
    """Load configuration from disk, applying environment overrides."""
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
    else:
        data = {}

    scan_data = _as_dict(data.get("scan"))
    scan = ScanConfig()
    if scan_data:
        workers = _as_int(scan_data.get("workers"))
        if workers is not None and workers > 0:
            scan.workers = workers
        max_bytes = _as_int(scan_data.get("max_file_bytes"))
        if max_bytes is not None and max_bytes > 0:
            scan.max_file_bytes = max_bytes
        timeout = _as_float(scan_data.get("file_timeout"))
        if timeout is not None and timeout > 0:
            scan.file_timeout = timeout
        scan.include_tests = _as_bool(scan_data.get("include_tests")) or False
        scan.ecosystems = [name.lower() for name in _as_str_list(scan_data.get("ecosystems"))]

    samples_data = _as_dict(data.get("samples"))
    samples = SampleConfig(paths=_as_str_list(samples_data.get("paths")))

    validator_data = _as_dict(data.get("validator"))
    validator = ValidatorConfig()
    if validator_data:
        validator.url = _as_str(validator_data.get("url"))
        timeout = _as_float(validator_data.get("timeout"))
        if timeout is not None and timeout > 0:
            validator.timeout = timeout
        enabled = _as_bool(validator_data.get("enabled"))
        if enabled is not None:
            validator.enabled = enabled

    pii_data = _as_dict(data.get("pii"))
    pii = PiiConfig()
    for name, tags in _as_dict(pii_data.get("extra")).items():
        pii.extra[str(name)] = [tag.upper() for tag in _as_str_list(tags)]

    catalog_str = _as_str(data.get("catalog"))
    catalog = (root / catalog_str) if catalog_str else None

    config = KafkaScanConfig(
        root=root,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
        scan=scan,
        samples=samples,
        validator=validator,
        pii=pii,
        catalog=catalog,
    )
    _apply_environment(config, env)
    return config


def _apply_environment(config: KafkaScanConfig, env: Mapping[str, str]) -> None:
    workers = _as_int(env.get(_ENV_WORKERS))
    if workers is not None and workers > 0:
        config.scan.workers = workers
    url = env.get(_ENV_VALIDATOR_URL)
    if url and url.strip():
        config.validator.url = url.strip()


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "KafkaScanConfig",
    "PiiConfig",
    "SampleConfig",
    "ScanConfig",
    "ValidatorConfig",
    "load_config",
]
