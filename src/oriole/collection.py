"""Thin query layer binding schemas to store collections."""

from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger

from .codec import decode, encode, field_updates
from .errors import UnknownSchemaError
from .pipeline import (
    PipelineStage,
    compile_pipeline,
    compile_projection_stage,
    requested_relations,
)
from .projection import Projection, compose_projection
from .registry import SchemaRegistry

if TYPE_CHECKING:
    from pymongo.collection import Collection as MongoCollection
    from pymongo.database import Database as MongoDatabase
    from pymongo.results import DeleteResult, UpdateResult

    from .base import Schema


def _sort_stage(sort: Any) -> PipelineStage:
    """
    Build a ``$sort`` stage from any sort spec `find` accepts.

    Accepts a single key (ascending), a mapping, or a list of keys and
    ``(key, direction)`` pairs.
    """
    if isinstance(sort, str):
        return {"$sort": {sort: 1}}
    if isinstance(sort, Mapping):
        return {"$sort": dict(sort)}
    spec: dict[str, Any] = {}
    for item in sort:
        if isinstance(item, str):
            spec[item] = 1
        else:
            key, direction = item
            spec[key] = direction
    return {"$sort": spec}


def _with_update_hooks(schema: "type[Schema]", update: Mapping[str, Any]) -> dict:
    """Merge `on_update` values under ``$set``; keys the caller sets win."""
    update = dict(update)
    hooked = field_updates(schema)
    if hooked:
        update["$set"] = {**hooked, **update.get("$set", {})}
    return update


class _ProjectedQuery:
    """Shared select/omit/options handling for read queries."""

    def __init__(self, collection: "Collection", filter: Mapping[str, Any] | None):
        self._collection = collection
        self._schema = collection.schema
        self._filter = dict(filter or {})
        self._select: dict[str, Any] | None = None
        self._omit: dict[str, Any] | None = None
        self._options: dict[str, Any] = {}

    def select(self, *names: str, **flags: Any):
        """Return only `names` (plus `_id`, unless `_id=False`)."""
        self._select = {**dict.fromkeys(names, True), **flags}
        self._omit = None
        return self

    def omit(self, *names: str, **flags: Any):
        """Leave out `names` in addition to the schema's default omissions."""
        self._omit = {**dict.fromkeys(names, True), **flags}
        self._select = None
        return self

    def options(self, **options: Any):
        """Store-native options (sort, limit, skip, ...) for the command."""
        self._options.update(options)
        return self

    def _projection(self) -> Projection:
        return compose_projection(self._schema, select=self._select, omit=self._omit)

    def _decode_one(self, raw: Mapping[str, Any] | None, projection: Projection):
        if raw is None:
            return None
        return decode(self._schema, raw, projection, registry=self._collection.registry)


class _PopulatingQuery(_ProjectedQuery):
    def __init__(self, collection: "Collection", filter: Mapping[str, Any] | None):
        super().__init__(collection, filter)
        self._population: dict[str, Any] = {}

    def populate(self, *names: str, **flags: Any):
        """Replace the foreign keys of the named relations with their documents."""
        self._population.update({**dict.fromkeys(names, True), **flags})
        return self

    def _populated(self) -> list[str]:
        return requested_relations(self._schema, self._population)

    def _aggregate(
        self, projection: Projection, populated: list[str], **overrides: Any
    ) -> Iterable[Mapping[str, Any]]:
        """
        Run the population pipeline.

        ``sort``, ``skip`` and ``limit`` become stages; every other option is
        passed on to the aggregate command.
        """
        pipeline = compile_pipeline(
            self._schema, self._filter, populated, self._collection.registry
        )
        options = {**self._options, **overrides}
        sort = options.pop("sort", None)
        if sort:
            pipeline.append(_sort_stage(sort))
        if "skip" in options:
            pipeline.append({"$skip": options.pop("skip")})
        if "limit" in options:
            pipeline.append({"$limit": options.pop("limit")})
        project = compile_projection_stage(projection)
        if project is not None:
            pipeline.append(project)

        logger.debug(f"aggregate on '{self._collection.name}': {pipeline}")
        return self._collection.mongo.aggregate(pipeline, **options)

    def _decode(self, raw: Mapping[str, Any], projection: Projection, populated):
        return decode(
            self._schema,
            raw,
            projection,
            populate=populated,
            registry=self._collection.registry,
        )


class FindQuery(_PopulatingQuery):
    """
    Query returning every matching document.

    Examples
    --------
        >>> posts = db.collection(PostSchema)
        >>> posts.find({"published": True}).populate("author").exec()
        >>> for post in posts.find().stream():
        ...     print(post["title"])
    """

    def stream(self) -> Iterator[dict[str, Any]]:
        """
        Issue the command now and decode documents one at a time.

        Projection and population errors are raised immediately; decode
        errors are raised when the failing document is reached.
        """
        projection = self._projection()
        populated = self._populated()
        if populated:
            cursor = self._aggregate(projection, populated)
        else:
            logger.debug(f"find on '{self._collection.name}': {self._filter}")
            cursor = self._collection.mongo.find(
                self._filter, projection=projection.to_store(), **self._options
            )
        return (self._decode(raw, projection, populated) for raw in cursor)

    def exec(self) -> list[dict[str, Any]]:
        return list(self.stream())


class FindOneQuery(_PopulatingQuery):
    """Query returning the first matching document, or None."""

    def exec(self) -> dict[str, Any] | None:
        projection = self._projection()
        populated = self._populated()
        if populated:
            results = list(self._aggregate(projection, populated, limit=1))
            raw = results[0] if results else None
        else:
            logger.debug(f"find_one on '{self._collection.name}': {self._filter}")
            raw = self._collection.mongo.find_one(
                self._filter, projection=projection.to_store(), **self._options
            )
        if raw is None:
            return None
        return self._decode(raw, projection, populated)


class FindOneAndUpdateQuery(_ProjectedQuery):
    """
    Update the first matching document and return it decoded.

    Values of fields declared with `on_update` are merged under the
    update's ``$set``; keys the caller sets explicitly win.
    """

    def __init__(
        self,
        collection: "Collection",
        filter: Mapping[str, Any] | None,
        update: Mapping[str, Any],
    ):
        super().__init__(collection, filter)
        self._update = dict(update)

    def exec(self) -> dict[str, Any] | None:
        update = _with_update_hooks(self._schema, self._update)
        projection = self._projection()
        logger.debug(f"find_one_and_update on '{self._collection.name}': {update}")
        raw = self._collection.mongo.find_one_and_update(
            self._filter, update, projection=projection.to_store(), **self._options
        )
        return self._decode_one(raw, projection)


class FindOneAndReplaceQuery(_ProjectedQuery):
    """Replace the first matching document with validated input."""

    def __init__(
        self,
        collection: "Collection",
        filter: Mapping[str, Any] | None,
        replacement: Mapping[str, Any],
    ):
        super().__init__(collection, filter)
        self._replacement = dict(replacement)

    def exec(self) -> dict[str, Any] | None:
        document = encode(self._schema, self._replacement)
        projection = self._projection()
        logger.debug(f"find_one_and_replace on '{self._collection.name}': {document}")
        raw = self._collection.mongo.find_one_and_replace(
            self._filter, document, projection=projection.to_store(), **self._options
        )
        return self._decode_one(raw, projection)


class FindOneAndDeleteQuery(_ProjectedQuery):
    """Delete the first matching document and return it decoded."""

    def exec(self) -> dict[str, Any] | None:
        projection = self._projection()
        logger.debug(
            f"find_one_and_delete on '{self._collection.name}': {self._filter}"
        )
        raw = self._collection.mongo.find_one_and_delete(
            self._filter, projection=projection.to_store(), **self._options
        )
        return self._decode_one(raw, projection)


class Collection:
    """
    A schema bound to a store collection.

    Parameters
    ----------
    schema : type[Schema]
        Schema of the documents in the collection.
    mongo : pymongo.collection.Collection
        The store collection handle.
    registry : SchemaRegistry, optional
        Resolves relation targets declared by collection name.
    """

    def __init__(
        self,
        schema: "type[Schema]",
        mongo: "MongoCollection",
        registry: SchemaRegistry | None = None,
    ):
        self.schema = schema
        self.mongo = mongo
        self.registry = registry

    @property
    def name(self) -> str:
        return self.schema.collection_name()

    def find(self, filter: Mapping[str, Any] | None = None) -> FindQuery:
        return FindQuery(self, filter)

    def find_one(self, filter: Mapping[str, Any] | None = None) -> FindOneQuery:
        return FindOneQuery(self, filter)

    def find_one_and_update(
        self, filter: Mapping[str, Any] | None, update: Mapping[str, Any]
    ) -> FindOneAndUpdateQuery:
        return FindOneAndUpdateQuery(self, filter, update)

    def find_one_and_replace(
        self, filter: Mapping[str, Any] | None, replacement: Mapping[str, Any]
    ) -> FindOneAndReplaceQuery:
        return FindOneAndReplaceQuery(self, filter, replacement)

    def find_one_and_delete(
        self, filter: Mapping[str, Any] | None = None
    ) -> FindOneAndDeleteQuery:
        return FindOneAndDeleteQuery(self, filter)

    def insert_one(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Validate `data`, insert it and return the stored document decoded."""
        document = encode(self.schema, data)
        result = self.mongo.insert_one(document)
        return decode(
            self.schema, {**document, "_id": result.inserted_id}, registry=self.registry
        )

    def insert_many(self, data: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Validate every item before inserting any of them."""
        documents = [encode(self.schema, item) for item in data]
        result = self.mongo.insert_many(documents)
        return [
            decode(self.schema, {**document, "_id": inserted_id}, registry=self.registry)
            for document, inserted_id in zip(documents, result.inserted_ids)
        ]

    def update_one(
        self,
        filter: Mapping[str, Any] | None,
        update: Mapping[str, Any],
        **options: Any,
    ) -> "UpdateResult":
        """Update the first match, merging `on_update` values under ``$set``."""
        update = _with_update_hooks(self.schema, update)
        logger.debug(f"update_one on '{self.name}': {update}")
        return self.mongo.update_one(dict(filter or {}), update, **options)

    def update_many(
        self,
        filter: Mapping[str, Any] | None,
        update: Mapping[str, Any],
        **options: Any,
    ) -> "UpdateResult":
        update = _with_update_hooks(self.schema, update)
        logger.debug(f"update_many on '{self.name}': {update}")
        return self.mongo.update_many(dict(filter or {}), update, **options)

    def replace_one(
        self,
        filter: Mapping[str, Any] | None,
        replacement: Mapping[str, Any],
        **options: Any,
    ) -> "UpdateResult":
        """Validate `replacement` and replace the first match with it."""
        document = encode(self.schema, replacement)
        logger.debug(f"replace_one on '{self.name}': {document}")
        return self.mongo.replace_one(dict(filter or {}), document, **options)

    def delete_one(
        self, filter: Mapping[str, Any] | None = None, **options: Any
    ) -> "DeleteResult":
        return self.mongo.delete_one(dict(filter or {}), **options)

    def delete_many(
        self, filter: Mapping[str, Any] | None = None, **options: Any
    ) -> "DeleteResult":
        return self.mongo.delete_many(dict(filter or {}), **options)

    def count_documents(self, filter: Mapping[str, Any] | None = None) -> int:
        return self.mongo.count_documents(dict(filter or {}))

    def aggregate(self, pipeline: list[PipelineStage]) -> list[dict[str, Any]]:
        """Run a raw pipeline. Results are returned undecoded."""
        return list(self.mongo.aggregate(pipeline))


class Database:
    """
    Schemas bound to a store database through an explicit registry.

    The registry is built and frozen when the database is constructed; all
    relation targets declared by collection name resolve against it.

    Examples
    --------
        >>> from pymongo import MongoClient
        >>> db = Database(MongoClient()["blog"], [UserSchema, PostSchema])
        >>> db.collection(UserSchema).insert_one({"name": "Ana"})
    """

    def __init__(self, db: "MongoDatabase", schemas: Iterable["type[Schema]"] = ()):
        self.db = db
        self.registry = SchemaRegistry()
        for schema in schemas:
            self.registry.register(schema)
        self.registry.freeze()

    def collection(self, schema: "str | type[Schema]") -> Collection:
        """Return the bound collection for a registered schema or collection name."""
        resolved = self.registry.resolve(schema)
        name = resolved.collection_name()
        if self.registry.get(name) is not resolved:
            raise UnknownSchemaError(
                f"Schema '{resolved.__name__}' is not registered"
            )
        return Collection(resolved, self.db[name], self.registry)

    __getitem__ = collection
