"""Relation population compiler: populate requests to aggregation pipelines."""

import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Union

from loguru import logger

from .errors import UnknownRelationError

if TYPE_CHECKING:
    from .base import Schema
    from .projection import Projection
    from .registry import SchemaRegistry

PipelineStage = dict[str, Any]
PopulateRequest = Union[str, Iterable[str], Mapping[str, Any]]

_NON_WORD = re.compile(r"\W")


def requested_relations(schema: "type[Schema]", populate: PopulateRequest) -> list[str]:
    """
    Normalize a populate request into relation names, in request order.

    Mapping entries with a falsy flag are skipped.

    Raises
    ------
    UnknownRelationError
        A requested name is not a relation of `schema`.
    """
    if isinstance(populate, str):
        names = [populate]
    elif isinstance(populate, Mapping):
        names = [name for name, flag in populate.items() if flag]
    else:
        names = list(populate)

    relations = schema.relations()
    for name in names:
        if name not in relations:
            raise UnknownRelationError(name, schema.__name__)
    return list(dict.fromkeys(names))


def lookup_variable(relation: str, target_field: str) -> str:
    """Pipeline-local variable bound to the foreign-key value of `relation`."""
    return _NON_WORD.sub("_", f"oriole_{relation}_{target_field}_var")


def lookup_field(relation: str) -> str:
    """Temporary field holding the joined documents of `relation`."""
    return _NON_WORD.sub("_", f"oriole_{relation}_data")


def compile_pipeline(
    schema: "type[Schema]",
    filter: Mapping[str, Any] | None,
    populate: PopulateRequest,
    registry: "SchemaRegistry | None" = None,
) -> list[PipelineStage]:
    """
    Compile a populate request into an aggregation pipeline.

    The pipeline starts with a single ``$match`` carrying `filter`
    unmodified. Each populated relation then contributes five stages, in
    request order:

    1. ``$lookup`` of target documents whose target field equals the local
       foreign-key value;
    2. ``$unwind`` of the joined array (a host document without a match is
       dropped from the result);
    3. ``$unset`` of the local foreign-key field;
    4. ``$set`` of the relation name to the joined document;
    5. ``$unset`` of the temporary joined field.

    Parameters
    ----------
    schema : type[Schema]
        Schema of the queried collection.
    filter : mapping or None
        Store-native filter, passed through opaquely.
    populate : str, iterable of str or mapping
        Relations to populate.
    registry : SchemaRegistry, optional
        Resolves relation targets declared by collection name.

    Returns
    -------
    list[dict]
        ``1 + 5 * N`` stages for N populated relations.

    Raises
    ------
    UnknownRelationError
        A requested relation is not declared. Raised before any stage is
        returned.
    """
    names = requested_relations(schema, populate)
    relations = schema.relations()

    pipeline: list[PipelineStage] = [{"$match": filter if filter is not None else {}}]
    for key in names:
        relation = relations[key]
        variable = lookup_variable(key, relation.field)
        data_field = lookup_field(key)

        pipeline.append(
            {
                "$lookup": {
                    "from": relation.target_collection(registry),
                    "let": {variable: f"${relation.local}"},
                    "pipeline": [
                        {
                            "$match": {
                                "$expr": {
                                    "$eq": [f"${relation.field}", f"$${variable}"]
                                }
                            }
                        }
                    ],
                    "as": data_field,
                }
            }
        )
        pipeline.append({"$unwind": f"${data_field}"})
        pipeline.append({"$unset": relation.local})
        pipeline.append({"$set": {key: f"${data_field}"}})
        pipeline.append({"$unset": data_field})

    logger.debug(
        f"Compiled {len(pipeline)}-stage pipeline for '{schema.__name__}' "
        f"populating {names}"
    )
    return pipeline


def compile_projection_stage(projection: "Projection") -> PipelineStage | None:
    """
    Build the ``$project`` stage applied after population, if any.

    It must run after the population stages: projecting earlier would drop
    the local fields the ``$lookup`` stages read.
    """
    store = projection.to_store()
    if store is None:
        return None
    return {"$project": store}
