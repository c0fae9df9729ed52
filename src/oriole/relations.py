"""Foreign-key style references from one schema to another."""

from typing import TYPE_CHECKING, Any, Callable, Union

from .errors import UnknownSchemaError

if TYPE_CHECKING:
    from .base import Schema
    from .registry import SchemaRegistry

RelationTarget = Union[str, "type[Schema]", Callable[[], Any]]


class Relation:
    """
    Declare that a field holds a reference to a document of another schema.

    The target is kept as a handle and only resolved when a query needs it,
    so two schemas may reference each other regardless of definition order.

    Parameters
    ----------
    target : str, Schema subclass or callable
        The referenced schema. Either the schema class itself, a
        zero-argument callable returning it (for schemas defined later in
        the module), or a collection name resolved through a
        `SchemaRegistry`.
    local : str
        Name of the field on this schema that stores the foreign-key value.
    field : str, default "_id"
        Field of the target collection matched against the local value.

    Examples
    --------
        >>> from oriole import Relation, Schema, object_id, string
        >>> class PostSchema(Schema):
        ...     title = string()
        ...     author_id = object_id()
        ...     author = Relation(lambda: UserSchema, local="author_id")
        >>> class UserSchema(Schema):
        ...     name = string()
    """

    def __init__(self, target: RelationTarget, *, local: str, field: str = "_id"):
        self.target = target
        self.local = local
        self.field = field
        self.name: str | None = None  # Set by Schema metaclass

    def __repr__(self) -> str:
        target = self.target if isinstance(self.target, str) else "<deferred>"
        return f"Relation({target!r}, local={self.local!r}, field={self.field!r})"

    def _bind(self, name: str) -> "Relation":
        relation = Relation(self.target, local=self.local, field=self.field)
        relation.name = name
        return relation

    def resolve(self, registry: "SchemaRegistry | None" = None) -> "type[Schema]":
        """
        Return the target schema class.

        Raises
        ------
        UnknownSchemaError
            The target is a collection name and no registry (or no matching
            registration) is available.
        """
        from .base import SchemaMeta

        target = self._target()
        if isinstance(target, SchemaMeta):
            return target  # type: ignore[return-value]
        if isinstance(target, str):
            if registry is None:
                raise UnknownSchemaError(
                    f"Relation '{self.name}' targets collection '{target}' "
                    f"but no schema registry was given to resolve it"
                )
            return registry.get(target)
        raise UnknownSchemaError(
            f"Relation '{self.name}' target resolved to {target!r}, "
            f"expected a Schema subclass or a collection name"
        )

    def _target(self) -> Any:
        from .base import SchemaMeta

        if callable(self.target) and not isinstance(self.target, SchemaMeta):
            return self.target()
        return self.target

    def target_collection(self, registry: "SchemaRegistry | None" = None) -> str:
        """Name of the collection holding the referenced documents."""
        target = self._target()
        if isinstance(target, str):
            return target
        return self.resolve(registry).collection_name()
