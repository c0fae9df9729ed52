"""Document codec: raw stored documents to typed output and back."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .errors import DecodeError, EncodeError, FieldError, TypeMismatchError
from .fields import MISSING
from .pipeline import PopulateRequest, requested_relations
from .projection import Projection, compose_projection

if TYPE_CHECKING:
    from .base import Schema
    from .registry import SchemaRegistry


def decode(
    schema: "type[Schema]",
    raw: Mapping[str, Any],
    projection: Projection | None = None,
    *,
    populate: PopulateRequest = (),
    registry: "SchemaRegistry | None" = None,
) -> dict[str, Any]:
    """
    Convert a raw stored document into the schema's typed output shape.

    Parameters
    ----------
    schema : type[Schema]
        Schema of the collection the document came from.
    raw : mapping
        The document as returned by a find or by a population pipeline.
    projection : Projection, optional
        The projection the query ran with. Defaults to the schema's default
        projection. Excluded fields are absent from the output.
    populate : str, iterable of str or mapping, optional
        Relations populated by the pipeline. Their values are decoded with
        the target schema and their local foreign-key fields are skipped.
    registry : SchemaRegistry, optional
        Resolves relation targets declared by collection name.

    Returns
    -------
    dict
        Fields in schema order, then populated relations, then virtuals.

    Raises
    ------
    DecodeError
        A field failed validation. Wraps the first failure; the document is
        rejected as a whole.
    """
    if projection is None:
        projection = compose_projection(schema)

    populated = requested_relations(schema, populate)
    relations = schema.relations()
    skipped = {relations[name].local for name in populated}

    output: dict[str, Any] = {}
    try:
        for name, field in schema.fields().items():
            if name in skipped or not projection.includes(name):
                continue
            value = field.validate_and_transform(raw.get(name, MISSING))
            if value is not MISSING:
                output[name] = value
    except FieldError as e:
        raise DecodeError(schema.__name__, e) from e

    for name in populated:
        if not projection.includes(name) or name not in raw:
            continue
        if not isinstance(raw[name], Mapping):
            error = TypeMismatchError(name, "document", raw[name])
            raise DecodeError(schema.__name__, error) from error
        target = relations[name].resolve(registry)
        try:
            output[name] = decode(target, raw[name], registry=registry)
        except DecodeError as e:
            raise DecodeError(schema.__name__, e.error) from e

    virtuals = schema.virtuals()
    for name in projection.virtuals:
        output[name] = virtuals[name].compute(MappingProxyType(output))

    for name in projection.extra:
        output.pop(name, None)

    return output


def encode(schema: "type[Schema]", data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate caller input and build the document to store.

    Defaults fill absent fields, transformations run, and optional fields
    without a value are left out. Relations, virtuals and undeclared keys are
    rejected: only stored fields may be written.

    Raises
    ------
    EncodeError
        Wraps the first field-level failure.
    """
    fields = schema.fields()
    for name in data:
        if name not in fields:
            error = FieldError(name, "is not a stored field of this schema")
            raise EncodeError(schema.__name__, error)

    document: dict[str, Any] = {}
    try:
        for name, field in fields.items():
            value = field.validate_and_transform(data.get(name, MISSING))
            if value is not MISSING:
                document[name] = value
    except FieldError as e:
        raise EncodeError(schema.__name__, e) from e
    return document


def field_updates(schema: "type[Schema]") -> dict[str, Any]:
    """Fresh values for every field declared with an `on_update` hook."""
    return {
        name: field.update_hook()
        for name, field in schema.fields().items()
        if field.update_hook is not None
    }
