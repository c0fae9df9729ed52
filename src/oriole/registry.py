"""
Schema registry: explicit binding of collection names to schemas.

The registry is built once at startup and handed to the query layer. It is
the only place where a relation declared by collection name is resolved,
so no module-level or global state is involved.

Invariants:
    - Registry is mutable during startup, frozen before serving
    - Once frozen, no new schemas can be registered
    - Collection names are unique
"""

import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING

from loguru import logger

from .errors import DuplicateSchemaError, RegistryFrozenError, UnknownSchemaError

if TYPE_CHECKING:
    from .base import Schema


class SchemaRegistry:
    """
    Registry of the schemas served by one database.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Examples
    --------
        >>> registry = SchemaRegistry()
        >>> registry.register(UserSchema)
        >>> registry.register(PostSchema)
        >>> registry.freeze()
        >>> registry.get("users") is UserSchema
        True
    """

    def __init__(self) -> None:
        self._schemas: dict[str, type[Schema]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, schema: "type[Schema]") -> None:
        """
        Bind `schema` to its collection name.

        Raises
        ------
        RegistryFrozenError
            The registry is frozen.
        DuplicateSchemaError
            Another schema is already bound to the same collection name.
        """
        name = schema.collection_name()
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register schema '{schema.__name__}': registry is frozen"
                )
            existing = self._schemas.get(name)
            if existing is not None and existing is not schema:
                raise DuplicateSchemaError(
                    f"Collection '{name}' already registered as '{existing.__name__}'"
                )
            self._schemas[name] = schema
            logger.debug(f"Registered schema: {schema.__name__} (collection={name})")

    def get(self, name: str) -> "type[Schema]":
        """
        Return the schema bound to collection `name`.

        Raises
        ------
        UnknownSchemaError
            No schema is bound to `name`.
        """
        try:
            return self._schemas[name]
        except KeyError:
            raise UnknownSchemaError(
                f"No schema registered for collection '{name}'"
            ) from None

    def resolve(self, target: "str | type[Schema]") -> "type[Schema]":
        """Return `target` itself if it is a schema, else look it up by name."""
        if isinstance(target, str):
            return self.get(target)
        return target

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator["type[Schema]"]:
        return iter(list(self._schemas.values()))

    def __len__(self) -> int:
        return len(self._schemas)

    def freeze(self) -> None:
        """
        Freeze the registry.

        Relations whose collection-name target is not registered are logged:
        populating them will fail with `UnknownSchemaError`.

        Raises
        ------
        RegistryFrozenError
            The registry is already frozen.
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")
            self._frozen = True

        for schema in self._schemas.values():
            for name, relation in schema.relations().items():
                if isinstance(relation.target, str) and relation.target not in self:
                    logger.warning(
                        f"Relation '{schema.__name__}.{name}' targets unregistered "
                        f"collection '{relation.target}'"
                    )
        logger.info(f"Schema registry frozen with {len(self._schemas)} schemas")
