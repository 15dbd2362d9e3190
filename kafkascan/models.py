"""Core data models shared across kafkascan components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from .errors import FileUnreadable

UNKNOWN_TOPIC = "Unknown"


class Ecosystem(str, Enum):
    JAVA = "java"
    PYTHON = "python"
    DOTNET = "dotnet"
    GO = "go"
    NODE_TS = "node"
    UNKNOWN = "unknown"


class FileKind(str, Enum):
    SOURCE = "source"
    CONFIG = "config"
    MANIFEST = "manifest"
    SAMPLE = "sample"
    SCHEMA = "schema"
    OTHER = "other"


class Role(str, Enum):
    PRODUCER = "producer"
    CONSUMER = "consumer"


@dataclass(frozen=True)
class SourceFile:
    """A file discovered by the indexer, tagged with its ecosystem and scope."""

    path: str
    absolute: Path
    ecosystem: Ecosystem
    scope: str
    size: int
    kind: FileKind = FileKind.OTHER

    def read_text(self, max_bytes: int | None = None) -> str:
        """Return the file contents, raising FileUnreadable on any failure."""
        if max_bytes is not None and self.size > max_bytes:
            raise FileUnreadable(self.path, f"size {self.size} exceeds limit of {max_bytes} bytes")
        try:
            data = self.absolute.read_bytes()
        except OSError as exc:
            raise FileUnreadable(self.path, str(exc)) from exc
        if max_bytes is not None and len(data) > max_bytes:
            raise FileUnreadable(self.path, f"size {len(data)} exceeds limit of {max_bytes} bytes")
        if b"\x00" in data[:8192]:
            raise FileUnreadable(self.path, "binary content")
        return data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ScanScope:
    """Independent slice of the tree rooted at a build manifest."""

    path: str
    ecosystems: Tuple[Ecosystem, ...]
    manifests: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.path or "."


@dataclass(frozen=True)
class TypeReference:
    """Names of the value types a call site appears to send, nearest first."""

    name: str
    file: str
    candidates: Tuple[str, ...] = ()

    def names(self) -> Tuple[str, ...]:
        ordered = [self.name]
        ordered.extend(candidate for candidate in self.candidates if candidate != self.name)
        return tuple(ordered)


@dataclass(frozen=True)
class CallSite:
    """One producer or consumer invocation found in source."""

    role: Role
    ecosystem: Ecosystem
    file: str
    line: int
    topic: str = UNKNOWN_TOPIC
    serializer: Optional[str] = None
    is_custom_serializer: bool = False
    schema_registry_url: Optional[str] = None
    auto_register: bool = False
    use_latest_version: bool = False
    type_reference: Optional[TypeReference] = None
    scope: str = ""
    pattern_id: str = ""

    def __post_init__(self) -> None:
        if not self.topic or not self.topic.strip():
            object.__setattr__(self, "topic", UNKNOWN_TOPIC)

    @property
    def key(self) -> str:
        return f"{self.file}:{self.line}"

    @property
    def topic_known(self) -> bool:
        return self.topic != UNKNOWN_TOPIC


class TypeKind(str, Enum):
    STRING = "string"
    INTEGER = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    ARRAY = "array"
    MAP = "map"
    RECORD = "record"
    UNION = "union"


PRIMITIVE_KINDS = frozenset(
    {
        TypeKind.STRING,
        TypeKind.INTEGER,
        TypeKind.LONG,
        TypeKind.FLOAT,
        TypeKind.DOUBLE,
        TypeKind.BOOLEAN,
    }
)


class PiiTag(str, Enum):
    PII = "PII"
    PRIVATE = "PRIVATE"
    SENSITIVE = "SENSITIVE"
    PHI = "PHI"
    PUBLIC = "PUBLIC"


@dataclass(frozen=True)
class FieldType:
    """Tagged variant covering every target-side type.

    ``items`` holds the element type for arrays, the value type for maps and the
    non-null arm for unions. Records carry ``name`` and ordered ``fields``.
    """

    kind: TypeKind
    items: Optional["FieldType"] = None
    name: Optional[str] = None
    fields: Tuple["FieldSchema", ...] = ()

    def __post_init__(self) -> None:
        if self.kind in (TypeKind.ARRAY, TypeKind.MAP, TypeKind.UNION) and self.items is None:
            raise ValueError(f"{self.kind.value} type requires an inner type")
        if self.kind is TypeKind.UNION and self.items is not None and self.items.kind is TypeKind.UNION:
            raise ValueError("union types cannot wrap another union")
        if self.kind is TypeKind.RECORD:
            seen: set[str] = set()
            for item in self.fields:
                if item.name in seen:
                    raise ValueError(f"duplicate field '{item.name}' in record {self.name}")
                seen.add(item.name)

    @classmethod
    def primitive(cls, kind: TypeKind) -> "FieldType":
        if kind not in PRIMITIVE_KINDS:
            raise ValueError(f"{kind.value} is not a primitive type")
        return cls(kind=kind)

    @classmethod
    def array(cls, items: "FieldType") -> "FieldType":
        return cls(kind=TypeKind.ARRAY, items=items)

    @classmethod
    def map(cls, values: "FieldType") -> "FieldType":
        return cls(kind=TypeKind.MAP, items=values)

    @classmethod
    def record(cls, name: str, fields: Tuple["FieldSchema", ...] | List["FieldSchema"]) -> "FieldType":
        return cls(kind=TypeKind.RECORD, name=name, fields=tuple(fields))

    @classmethod
    def nullable(cls, inner: "FieldType") -> "FieldType":
        if inner.kind is TypeKind.UNION:
            return inner
        return cls(kind=TypeKind.UNION, items=inner)

    @property
    def non_null(self) -> "FieldType":
        if self.kind is TypeKind.UNION and self.items is not None:
            return self.items
        return self


@dataclass(frozen=True)
class FieldSchema:
    """Named field inside a record, with sensitivity tags."""

    name: str
    type: FieldType
    nullable: bool = False
    default_null: bool = False
    tags: FrozenSet[PiiTag] = frozenset()
    annotations: Tuple[str, ...] = ()

    @classmethod
    def optional(cls, name: str, inner: FieldType, annotations: Tuple[str, ...] = ()) -> "FieldSchema":
        """Optional source fields become ``union(null, T)`` defaulting to null."""
        return cls(
            name=name,
            type=FieldType.nullable(inner),
            nullable=True,
            default_null=True,
            annotations=annotations,
        )


class Provenance(str, Enum):
    DECLARED_TYPE = "declared_type"
    INFERRED_FROM_SAMPLE = "inferred_from_sample"
    EXISTING_SCHEMA_FILE = "existing_schema_file"


class TargetFormat(str, Enum):
    AVRO = "avro"
    JSON = "json"
    PROTOBUF = "protobuf"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SchemaModel:
    """Top-level record inferred for a producer, plus where it came from."""

    record: FieldType
    provenance: Provenance
    target_format: TargetFormat = TargetFormat.UNKNOWN
    source: str = ""
    call_site_key: Optional[str] = None
    topic: str = UNKNOWN_TOPIC

    def __post_init__(self) -> None:
        if self.record.kind is not TypeKind.RECORD:
            raise ValueError("schema models must wrap a record type")

    @property
    def name(self) -> str:
        return self.record.name or "Record"

    @property
    def fields(self) -> Tuple[FieldSchema, ...]:
        return self.record.fields

    def field(self, name: str) -> Optional[FieldSchema]:
        for item in self.record.fields:
            if item.name == name:
                return item
        return None


class Category(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"


@dataclass(frozen=True)
class ConditionCheck:
    """One classifier guard and whether it held for the call site."""

    condition: str
    matched: bool
    detail: str = ""


@dataclass(frozen=True)
class ClassificationResult:
    call_site: CallSite
    category: Category
    rationale: Tuple[ConditionCheck, ...]

    @property
    def decisive(self) -> Optional[ConditionCheck]:
        for check in self.rationale:
            if check.matched:
                return check
        return None


class FlagKind(str, Enum):
    AUTO_REGISTER = "auto.register.schemas"
    USE_LATEST_VERSION = "use.latest.version"


@dataclass(frozen=True)
class FlagOccurrence:
    kind: FlagKind
    file: str
    line: int
    scope: str = ""
    call_sites: Tuple[str, ...] = ()


class WarningKind(str, Enum):
    FILE_UNREADABLE = "file_unreadable"
    ECOSYSTEM_UNDETERMINED = "ecosystem_undetermined"
    TYPE_UNRESOLVABLE = "type_unresolvable"
    AMBIGUOUS_TOPIC = "ambiguous_topic"
    EXTERNAL_VALIDATOR_UNAVAILABLE = "external_validator_unavailable"
    UNMAPPED_TYPE = "unmapped_type"
    SCAN_CANCELLED = "scan_cancelled"


@dataclass(frozen=True)
class ScanWarning:
    kind: WarningKind
    message: str
    path: Optional[str] = None
    line: Optional[int] = None


class ValidationStatus(str, Enum):
    UNVALIDATED = "unvalidated"
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"


@dataclass(frozen=True)
class ValidationOutcome:
    status: ValidationStatus
    lint: Tuple[str, ...] = ()
    messages: Tuple[str, ...] = ()


@dataclass
class ScanReport:
    """In-memory result of a scan, ready for external renderers."""

    root: str
    scopes: List[ScanScope] = field(default_factory=list)
    call_sites: List[CallSite] = field(default_factory=list)
    classifications: List[ClassificationResult] = field(default_factory=list)
    schemas: List[SchemaModel] = field(default_factory=list)
    flags: List[FlagOccurrence] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)
    validation: Dict[str, ValidationOutcome] = field(default_factory=dict)
    catalog_version: str = ""
    cancelled: bool = False

    @property
    def producers(self) -> List[CallSite]:
        return [site for site in self.call_sites if site.role is Role.PRODUCER]

    @property
    def consumers(self) -> List[CallSite]:
        return [site for site in self.call_sites if site.role is Role.CONSUMER]

    def classification_for(self, call_site_key: str) -> Optional[ClassificationResult]:
        for result in self.classifications:
            if result.call_site.key == call_site_key:
                return result
        return None

    def schema_for(self, call_site_key: str) -> Optional[SchemaModel]:
        for schema in self.schemas:
            if schema.call_site_key == call_site_key:
                return schema
        return None
