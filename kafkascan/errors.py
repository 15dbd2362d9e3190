"""Exception types raised by kafkascan components."""

from __future__ import annotations


class KafkaScanError(RuntimeError):
    """Base class for recoverable kafkascan failures."""


class ScanRootError(KafkaScanError):
    """Raised when the scan root is missing or not a directory."""


class ConfigError(KafkaScanError):
    """Raised when the configuration file cannot be parsed."""


class CatalogError(KafkaScanError):
    """Raised when a pattern catalog document is malformed."""


class FileUnreadable(KafkaScanError):
    """Raised when a source file cannot be read within the configured budget."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class TypeUnresolvable(KafkaScanError):
    """Raised when no schema can be produced for a call site."""

    def __init__(self, subject: str, attempts: list[str] | None = None) -> None:
        detail = "; ".join(attempts) if attempts else "no type reference, schema file or sample"
        super().__init__(f"Unable to infer schema for {subject}: {detail}")
        self.subject = subject
        self.attempts = list(attempts or [])


class ExternalValidatorUnavailable(KafkaScanError):
    """Raised by validator collaborators that cannot be reached."""


__all__ = [
    "CatalogError",
    "ConfigError",
    "ExternalValidatorUnavailable",
    "FileUnreadable",
    "KafkaScanError",
    "ScanRootError",
    "TypeUnresolvable",
]
