"""Exception hierarchy raised by schema validation, projection and population."""

from typing import Any


class OrioleError(Exception):
    """Base class for every error raised by oriole."""


class SchemaDefinitionError(OrioleError, TypeError):
    """A Schema class body declares something inconsistent."""


class FieldError(OrioleError):
    """
    A single field failed validation.

    Parameters
    ----------
    field : str or None
        Name of the failing field. ``None`` when the Field Type is used
        on its own, outside of a schema.
    message : str
        Human-readable description of the failure.
    """

    def __init__(self, field: str | None, message: str):
        self.field = field
        self.message = message
        prefix = f"Field '{field}': " if field is not None else ""
        super().__init__(prefix + message)


class RequiredFieldError(FieldError, ValueError):
    """A required field without a default is missing from the input."""

    def __init__(self, field: str | None):
        super().__init__(field, "value is required")


class TypeMismatchError(FieldError, TypeError):
    """A value does not have the runtime type of the field's declared kind."""

    def __init__(self, field: str | None, expected: str, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(
            field,
            f"expected a value of kind '{expected}', got {type(actual).__name__}",
        )


class InvalidProjectionError(OrioleError, ValueError):
    """A select/omit request cannot be turned into a consistent projection."""


class UnknownRelationError(OrioleError, KeyError):
    """A population request names a relation the schema does not declare."""

    def __init__(self, relation: str, schema: str):
        self.relation = relation
        self.schema = schema
        super().__init__(relation)

    def __str__(self) -> str:
        return f"Schema '{self.schema}' has no relation named '{self.relation}'"


class _DocumentError(OrioleError, ValueError):
    action = "process"

    def __init__(self, schema: str, error: FieldError):
        self.schema = schema
        self.error = error
        self.field = error.field
        super().__init__(f"Could not {self.action} '{schema}' document: {error}")


class DecodeError(_DocumentError):
    """
    A raw stored document could not be decoded.

    Wraps the first field-level failure in ``error`` (also chained as
    ``__cause__``). No partially decoded document is ever returned.
    """

    action = "decode"


class EncodeError(_DocumentError):
    """Caller input could not be encoded for storage."""

    action = "encode"


class UnknownSchemaError(OrioleError, LookupError):
    """A collection name is not bound to any schema in the registry."""


class DuplicateSchemaError(OrioleError):
    """A collection name is registered twice."""


class RegistryFrozenError(OrioleError):
    """Raised when attempting to modify a frozen registry."""
