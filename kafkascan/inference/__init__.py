"""Schema inference: declarations, type normalization, samples and Avro files."""

from .avro import AvroSchemaError, SchemaDocument, load_schema_document, model_to_avro, parse_avro
from .declarations import Declaration, DeclaredField, extract_declarations
from .engine import SchemaInferenceEngine
from .samples import SampleDocument, infer_record, load_sample
from .types import TypeNormalizer, parse_type

__all__ = [
    "AvroSchemaError",
    "Declaration",
    "DeclaredField",
    "SampleDocument",
    "SchemaDocument",
    "SchemaInferenceEngine",
    "TypeNormalizer",
    "extract_declarations",
    "infer_record",
    "load_sample",
    "load_schema_document",
    "model_to_avro",
    "parse_avro",
    "parse_type",
]
