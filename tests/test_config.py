"""Tests for kafkascan.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from kafkascan.config import DEFAULT_FILE_TIMEOUT, DEFAULT_MAX_FILE_BYTES, KafkaScanConfig, load_config
from kafkascan.errors import ConfigError


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, KafkaScanConfig)
    assert config.root == tmp_path.resolve()
    assert config.exclude_paths == []
    assert config.scan.max_file_bytes == DEFAULT_MAX_FILE_BYTES
    assert config.scan.file_timeout == pytest.approx(DEFAULT_FILE_TIMEOUT)
    assert config.scan.include_tests is False
    assert config.scan.ecosystems == []
    assert config.samples.paths == []
    assert config.validator.url is None
    assert config.validator.enabled is True
    assert config.pii.extra == {}
    assert config.catalog is None


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".kafkascan.yml"
    config_file.write_text(
        """
exclude_paths:
  - "sandbox/"
scan:
  workers: 3
  max_file_bytes: 4096
  file_timeout: 2.5
  include_tests: true
  ecosystems: [Java, python]
samples:
  paths:
    - "fixtures/**/*.json"
catalog: "kafka/patterns.yml"
validator:
  url: "http://registry:8081"
  timeout: 4
  enabled: false
pii:
  extra:
    loyalty_id: [pii, private]
""",
        encoding="utf-8",
    )

    config = load_config(config_file, environ={})

    assert config.exclude_paths == ["sandbox/"]
    assert config.scan.workers == 3
    assert config.scan.max_file_bytes == 4096
    assert config.scan.file_timeout == pytest.approx(2.5)
    assert config.scan.include_tests is True
    assert config.scan.ecosystems == ["java", "python"]
    assert config.samples.paths == ["fixtures/**/*.json"]
    assert config.catalog == tmp_path.resolve() / "kafka" / "patterns.yml"
    assert config.validator.url == "http://registry:8081"
    assert config.validator.timeout == pytest.approx(4.0)
    assert config.validator.enabled is False
    assert config.pii.extra == {"loyalty_id": ["PII", "PRIVATE"]}


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / ".kafkascan.yml").write_text(
        "scan:\n  workers: -2\n  file_timeout: soon\n",
        encoding="utf-8",
    )

    config = load_config(tmp_path, environ={})

    assert config.scan.workers > 0
    assert config.scan.file_timeout == pytest.approx(DEFAULT_FILE_TIMEOUT)


def test_environment_overrides(tmp_path: Path) -> None:
    (tmp_path / ".kafkascan.yml").write_text("scan:\n  workers: 2\n", encoding="utf-8")

    config = load_config(
        tmp_path,
        environ={"KAFKASCAN_WORKERS": "7", "KAFKASCAN_VALIDATOR_URL": " http://sr:8081 "},
    )

    assert config.scan.workers == 7
    assert config.validator.url == "http://sr:8081"


def test_malformed_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / ".kafkascan.yml").write_text("scan: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    (tmp_path / ".kafkascan.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})
