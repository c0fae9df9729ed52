"""Field type definitions with validation and value transformation support."""

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from bson import ObjectId

from .errors import RequiredFieldError, TypeMismatchError


class _MissingType:
    """Type of the `MISSING` sentinel."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


# Sentinel value to distinguish "no value provided" from "value is None"
MISSING: Any = _MissingType()

# Type mapping from Python types to Field classes (populated at module end)
_TYPE_MAP: dict[type, type["FieldType"]] = {}


class FieldKind(Enum):
    """Closed set of primitive kinds a stored value can have."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    OBJECT_ID = "objectId"


def matches_kind(kind: FieldKind, value: Any) -> bool:
    """
    Check that `value` has the runtime type backing `kind`.

    The check is strict: no coercion happens here. ``bool`` is not accepted
    as a number even though it subclasses ``int``.
    """
    if kind is FieldKind.STRING:
        return isinstance(value, str)
    if kind is FieldKind.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind is FieldKind.DATE:
        return isinstance(value, datetime)
    if kind is FieldKind.BOOLEAN:
        return isinstance(value, bool)
    if kind is FieldKind.OBJECT_ID:
        return isinstance(value, ObjectId)
    raise ValueError(f"Unknown field kind: {kind!r}")


class FieldType:
    """
    Base field class for schema definitions.

    A Field Type describes one stored value: its kind, whether it is
    required, whether it accepts null, its default and an ordered chain of
    transformations applied after validation.

    Field Types are immutable. Every configuration method returns a new
    Field Type and leaves the receiver untouched, so a definition can be
    shared between schemas safely.

    Use the factory functions (`string()`, `number()`, `date()`,
    `boolean()`, `object_id()`) rather than instantiating subclasses.

    Examples
    --------
        >>> from oriole import Schema, number, string
        >>> class UserSchema(Schema):
        ...     name = string().lowercase()
        ...     age = number().default(0)
        ...     status = string().nullable()
    """

    kind: FieldKind

    def __init__(self) -> None:
        self._required = True
        self._nullable = False
        self._default: Any = MISSING
        self._transformations: tuple[Callable[[Any], Any], ...] = ()
        self._on_update: Callable[[], Any] | None = None
        self.name: str | None = None  # Set by Schema metaclass

    def __repr__(self) -> str:
        parts = [self.kind.value]
        if not self._required:
            parts.append("optional")
        if self._nullable:
            parts.append("nullable")
        if self._default is not MISSING:
            parts.append(f"default={self._default!r}")
        return f"{self.__class__.__name__}({', '.join(parts)})"

    def _evolve(self, **changes: Any) -> "FieldType":
        field = copy.copy(self)
        for attr, value in changes.items():
            setattr(field, attr, value)
        return field

    # Configuration (each returns a new Field Type)

    def default(self, value: Any) -> "FieldType":
        """Use `value` when the field is absent from the input."""
        return self._evolve(_default=value)

    def required(self) -> "FieldType":
        return self._evolve(_required=True)

    def optional(self) -> "FieldType":
        return self._evolve(_required=False)

    def nullable(self) -> "FieldType":
        """Accept explicit null. Also makes null the default."""
        return self._evolve(_nullable=True, _default=None)

    def transform(self, func: Callable[[Any], Any]) -> "FieldType":
        """Append a transformation, run after validation in registration order."""
        return self._evolve(_transformations=self._transformations + (func,))

    def on_update(self, func: Callable[[], Any]) -> "FieldType":
        """Compute a fresh value with `func` on every update command."""
        return self._evolve(_on_update=func)

    # Introspection

    @property
    def is_required(self) -> bool:
        return self._required

    @property
    def is_nullable(self) -> bool:
        return self._nullable

    @property
    def has_default(self) -> bool:
        return self._default is not MISSING

    @property
    def default_value(self) -> Any:
        return self._default

    @property
    def transformations(self) -> tuple[Callable[[Any], Any], ...]:
        return self._transformations

    @property
    def update_hook(self) -> Callable[[], Any] | None:
        return self._on_update

    def get_python_type(self) -> type:
        """Return the Python type for this field."""
        raise NotImplementedError

    def validate_and_transform(self, value: Any = MISSING) -> Any:
        """
        Validate a raw value and run it through the transformation chain.

        Parameters
        ----------
        value : Any, optional
            The raw value. Pass `MISSING` (the default) when the value is
            absent from the input.

        Returns
        -------
        Any
            The transformed value, the default for an absent value, or
            `MISSING` for an absent optional field without a default.

        Raises
        ------
        RequiredFieldError
            The value is absent, the field is required and has no default.
        TypeMismatchError
            The value's runtime type does not match the field's kind
            (explicit null on a non-nullable field included).
        """
        if value is MISSING:
            if self._default is not MISSING:
                return self._default
            if self._required:
                raise RequiredFieldError(self.name)
            return MISSING

        if value is None and self._nullable:
            return None

        if not matches_kind(self.kind, value):
            raise TypeMismatchError(self.name, self.kind.value, value)

        for transformation in self._transformations:
            value = transformation(value)
        return value


class StringField(FieldType):
    """
    String field type with case transformations.

    Examples
    --------
        >>> from oriole import string
        >>> email = string().lowercase()
        >>> email.validate_and_transform("Ana@Example.COM")
        'ana@example.com'
    """

    kind = FieldKind.STRING

    def get_python_type(self):
        return str

    def uppercase(self) -> "FieldType":
        return self.transform(str.upper)

    def lowercase(self) -> "FieldType":
        return self.transform(str.lower)

    def trim(self) -> "FieldType":
        return self.transform(str.strip)


class NumberField(FieldType):
    """Number field type. Accepts ``int`` and ``float`` but never ``bool``."""

    kind = FieldKind.NUMBER

    def get_python_type(self):
        return float


class DateField(FieldType):
    """Date field type for datetime.datetime values."""

    kind = FieldKind.DATE

    def get_python_type(self):
        return datetime


class BooleanField(FieldType):
    kind = FieldKind.BOOLEAN

    def get_python_type(self):
        return bool


class ObjectIdField(FieldType):
    """Field holding a `bson.ObjectId`, the store's native document id."""

    kind = FieldKind.OBJECT_ID

    def get_python_type(self):
        return ObjectId


def string() -> StringField:
    return StringField()


def number() -> NumberField:
    return NumberField()


def date() -> DateField:
    return DateField()


def boolean() -> BooleanField:
    return BooleanField()


def object_id() -> ObjectIdField:
    return ObjectIdField()


# Populate type mapping from Python types to Field classes
# This is used by the Schema metaclass to create fields from type annotations
_TYPE_MAP.update(
    {
        str: StringField,
        int: NumberField,
        float: NumberField,
        bool: BooleanField,
        datetime: DateField,
        ObjectId: ObjectIdField,
    }
)


def get_field_class_for_type(python_type: type) -> type[FieldType] | None:
    """
    Get the appropriate Field class for a Python type.

    Parameters
    ----------
    python_type : type
        A Python type (str, int, float, bool, datetime, ObjectId).

    Returns
    -------
    type[FieldType] | None
        The corresponding Field class, or None if not found.
    """
    return _TYPE_MAP.get(python_type)
