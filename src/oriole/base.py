"""Core `Schema` class with metaclass magic, relations and virtual fields."""

import sys
import types
from dataclasses import dataclass
from typing import Any, Callable, Union, get_args, get_origin

from .errors import SchemaDefinitionError
from .fields import MISSING, FieldType, get_field_class_for_type, object_id
from .relations import Relation

ID_FIELD = "_id"


@dataclass(frozen=True)
class Virtual:
    """A computed output field derived from already-decoded fields."""

    name: str
    inputs: tuple[str, ...]
    compute: Callable[[Any], Any]


class SchemaMeta(type):
    """
    Metaclass that collects fields, relations and virtuals from class body.

    Fields are defined either with Field Type builders or with type
    annotations:

        class UserSchema(Schema):
            name = string().lowercase()
            age: int = 0
            bio: str | None = None
    """

    def __new__(mcs, name, bases, namespace):
        fields: dict[str, FieldType] = {}
        relations: dict[str, Relation] = {}
        virtuals: dict[str, Virtual] = {}

        # Parent definitions come first; redefinitions in the child override
        for base in reversed(bases):
            fields.update(getattr(base, "_fields", {}))
            relations.update(getattr(base, "_relations", {}))
            virtuals.update(getattr(base, "_virtuals", {}))

        annotations = _namespace_annotations(namespace)

        # Process type annotations without a Field Type value
        for field_name, type_hint in annotations.items():
            if _is_private(field_name):
                continue
            class_value = namespace.get(field_name, MISSING)
            if isinstance(class_value, (FieldType, Relation)):
                continue
            field = _field_from_annotation(field_name, type_hint, class_value)
            fields[field_name] = field._evolve(name=field_name)
            if class_value is not MISSING:
                del namespace[field_name]

        for attr, value in list(namespace.items()):
            if _is_private(attr):
                continue
            if isinstance(value, FieldType):
                fields[attr] = value._evolve(name=attr)
                del namespace[attr]
            elif isinstance(value, Relation):
                relations[attr] = value._bind(attr)
                del namespace[attr]
            else:
                func = value
                if isinstance(value, (staticmethod, classmethod)):
                    func = value.__func__
                inputs = getattr(func, "_virtual_inputs", None)
                if inputs is not None:
                    virtuals[attr] = Virtual(attr, inputs, func)
                    del namespace[attr]

        if ID_FIELD not in fields:
            fields = {ID_FIELD: object_id().optional()._evolve(name=ID_FIELD), **fields}

        collection = namespace.get("__collection__")
        if collection is None:
            collection = name.removesuffix("Schema").lower() + "s"

        omit = namespace.get("__omit__")
        if omit is None:
            omit = next((b._omit for b in bases if hasattr(b, "_omit")), ())
        omit = tuple(omit)

        _check_definition(name, fields, relations, virtuals, omit)

        namespace["_fields"] = fields
        namespace["_relations"] = relations
        namespace["_virtuals"] = virtuals
        namespace["_collection"] = collection
        namespace["_omit"] = omit

        return super().__new__(mcs, name, bases, namespace)


def _namespace_annotations(namespace: dict) -> dict[str, Any]:
    if "__annotations__" in namespace:
        return namespace["__annotations__"]
    # Python 3.14+ evaluates class annotations lazily (PEP 649)
    if sys.version_info >= (3, 14):
        import annotationlib

        annotate = annotationlib.get_annotate_from_class_namespace(namespace)
        if annotate is not None:
            return annotationlib.call_annotate_function(
                annotate, annotationlib.Format.VALUE
            )
    return {}


def _is_private(name: str) -> bool:
    return name.startswith("_") and name != ID_FIELD


def _field_from_annotation(field_name: str, type_hint: Any, class_value: Any) -> FieldType:
    origin = get_origin(type_hint)
    nullable = False
    actual_type = type_hint

    # Handle Union types (including T | None syntax from Python 3.10+)
    is_union = origin is Union or (
        sys.version_info >= (3, 10) and isinstance(type_hint, types.UnionType)
    )

    if is_union:
        args = get_args(type_hint)
        none_types = [a for a in args if a is type(None)]
        non_none_types = [a for a in args if a is not type(None)]

        if none_types and len(non_none_types) == 1:
            nullable = True
            actual_type = non_none_types[0]
        else:
            raise SchemaDefinitionError(
                f"Field '{field_name}': Union types other than "
                f"Optional (T | None) are not supported. Got: {type_hint}"
            )

    field_class = get_field_class_for_type(actual_type)
    if field_class is None:
        raise SchemaDefinitionError(
            f"Field '{field_name}': Unsupported type '{actual_type}'. "
            f"Supported types: str, int, float, bool, datetime, ObjectId"
        )

    field: FieldType = field_class()
    if nullable:
        field = field.nullable()
    if class_value is not MISSING:
        field = field.default(class_value)
    return field


def _check_definition(
    schema_name: str,
    fields: dict[str, FieldType],
    relations: dict[str, Relation],
    virtuals: dict[str, Virtual],
    omit: tuple[str, ...],
) -> None:
    for label, names, others in (
        ("relation", relations, fields),
        ("virtual", virtuals, {**fields, **relations}),
    ):
        clash = sorted(set(names) & set(others))
        if clash:
            raise SchemaDefinitionError(
                f"{schema_name}: {label} name(s) {clash} collide with other declarations"
            )

    for relation in relations.values():
        if relation.local not in fields:
            raise SchemaDefinitionError(
                f"{schema_name}: relation '{relation.name}' uses local field "
                f"'{relation.local}' which is not declared"
            )

    local_fields = {relation.local for relation in relations.values()}
    for virtual in virtuals.values():
        unknown = [i for i in virtual.inputs if i not in fields]
        if unknown:
            raise SchemaDefinitionError(
                f"{schema_name}: virtual '{virtual.name}' depends on undeclared "
                f"field(s) {unknown}"
            )
        # Populating a relation removes its local field before virtuals run
        replaced = [i for i in virtual.inputs if i in local_fields]
        if replaced:
            raise SchemaDefinitionError(
                f"{schema_name}: virtual '{virtual.name}' depends on relation "
                f"local field(s) {replaced}"
            )

    known = set(fields) | set(relations) | set(virtuals)
    unknown_omit = [n for n in omit if n not in known]
    if unknown_omit:
        raise SchemaDefinitionError(
            f"{schema_name}: __omit__ names undeclared field(s) {unknown_omit}"
        )


class Schema(metaclass=SchemaMeta):
    """
    Base schema class for defining the documents of one collection.

    Subclass `Schema` and declare fields, relations and virtual fields in
    the class body. The metaclass collects them once; the resulting class is
    read-only and can be shared by every query against the collection.

    Class options
    -------------
    __collection__ : str
        Collection name. Defaults to the class name without the "Schema"
        suffix, lower-cased, with an "s" appended.
    __omit__ : tuple of str
        Fields left out of every output unless explicitly selected.

    Examples
    --------
        >>> from oriole import Relation, Schema, object_id, string, virtual
        >>> class UserSchema(Schema):
        ...     __omit__ = ("password",)
        ...
        ...     first_name = string()
        ...     last_name = string()
        ...     password = string()
        ...     age: int = 0
        ...     status: str | None = None
        ...
        ...     @virtual("first_name", "last_name")
        ...     def full_name(doc):
        ...         return f"{doc['first_name']} {doc['last_name']}"
        >>> class PostSchema(Schema):
        ...     title = string()
        ...     author_id = object_id()
        ...     author = Relation(UserSchema, local="author_id")
    """

    _fields: dict[str, FieldType] = {}
    _relations: dict[str, Relation] = {}
    _virtuals: dict[str, Virtual] = {}
    _collection: str = ""
    _omit: tuple[str, ...] = ()

    @classmethod
    def fields(cls) -> dict[str, FieldType]:
        """
        Return all fields defined in this schema, `_id` included.

        Examples
        --------
            >>> from oriole import Schema, string
            >>> class UserSchema(Schema):
            ...     name = string()
            >>> list(UserSchema.fields())
            ['_id', 'name']
        """
        return cls._fields.copy()

    @classmethod
    def relations(cls) -> dict[str, Relation]:
        return cls._relations.copy()

    @classmethod
    def virtuals(cls) -> dict[str, Virtual]:
        return cls._virtuals.copy()

    @classmethod
    def collection_name(cls) -> str:
        return cls._collection

    @classmethod
    def default_omit(cls) -> tuple[str, ...]:
        return cls._omit

    @classmethod
    def decode(cls, raw: dict, projection=None, populate=(), registry=None) -> dict:
        """Decode a raw stored document. See `oriole.codec.decode`."""
        from .codec import decode

        return decode(cls, raw, projection, populate=populate, registry=registry)

    @classmethod
    def encode(cls, data: dict) -> dict:
        """Validate caller input for storage. See `oriole.codec.encode`."""
        from .codec import encode

        return encode(cls, data)

    @classmethod
    def to_pydantic(cls) -> type:
        """
        Generate a Pydantic BaseModel describing decoded documents.

        Returns
        -------
        type
            A dynamically created Pydantic BaseModel class.

        Examples
        --------
            >>> from oriole import Schema, string
            >>> class UserSchema(Schema):
            ...     name = string()
            >>> UserModel = UserSchema.to_pydantic()
            >>> UserModel(name="Ana").model_dump()
            {'id': None, 'name': 'Ana'}
        """
        from .generators.pydantic import create_pydantic_model

        return create_pydantic_model(cls)


def virtual(*inputs: str) -> Callable[[Callable], Callable]:
    """
    Decorator declaring a virtual (computed, never stored) field.

    The decorated function receives the decoded document and returns the
    field value. It must be pure: derive the value from `inputs` only and
    never perform I/O. The inputs are fetched from the store whenever the
    virtual is part of the output, even if the projection would otherwise
    leave them out.

    Parameters
    ----------
    *inputs : str
        Names of the fields the computation reads.

    Examples
    --------
        >>> from oriole import Schema, string, virtual
        >>> class UserSchema(Schema):
        ...     first_name = string()
        ...     last_name = string()
        ...
        ...     @virtual("first_name", "last_name")
        ...     def full_name(doc):
        ...         return f"{doc['first_name']} {doc['last_name']}"
    """

    def decorator(func: Callable) -> Callable:
        func._virtual_inputs = tuple(inputs)  # type: ignore[attr-defined]
        return func

    return decorator
