"""
Oriole: typed documents over a schemaless document store

Define your schema once. Validate every document. Populate relations with
native aggregation pipelines.
"""

from .base import Schema, Virtual, virtual
from .codec import decode, encode, field_updates
from .collection import Collection, Database
from .errors import (
    DecodeError,
    EncodeError,
    FieldError,
    InvalidProjectionError,
    OrioleError,
    RequiredFieldError,
    SchemaDefinitionError,
    TypeMismatchError,
    UnknownRelationError,
    UnknownSchemaError,
)
from .fields import (
    MISSING,
    FieldKind,
    FieldType,
    boolean,
    date,
    number,
    object_id,
    string,
)
from .pipeline import compile_pipeline, compile_projection_stage
from .projection import Projection, ProjectionMode, compose_projection
from .registry import SchemaRegistry
from .relations import Relation

__version__ = "0.1.0"

__all__ = [
    # Core
    "Schema",
    "Relation",
    "virtual",
    "SchemaRegistry",
    # Field types
    "string",
    "number",
    "date",
    "boolean",
    "object_id",
    # Engine
    "compose_projection",
    "compile_pipeline",
    "compile_projection_stage",
    "decode",
    "encode",
    "field_updates",
    # Query layer
    "Database",
    "Collection",
    # Errors
    "OrioleError",
    "FieldError",
    "RequiredFieldError",
    "TypeMismatchError",
    "InvalidProjectionError",
    "UnknownRelationError",
    "UnknownSchemaError",
    "DecodeError",
    "EncodeError",
    "SchemaDefinitionError",
    # Internal (for advanced use)
    "MISSING",
    "FieldKind",
    "FieldType",
    "Projection",
    "ProjectionMode",
    "Virtual",
]
