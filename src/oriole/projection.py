"""Compose select/omit requests, default omissions and virtuals into projections."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from .base import ID_FIELD
from .errors import InvalidProjectionError

if TYPE_CHECKING:
    from .base import Schema

ProjectionRequest = Union[Iterable[str], Mapping[str, Any]]


class ProjectionMode(Enum):
    SELECT = "select"  # whitelist
    OMIT = "omit"  # blacklist


@dataclass(frozen=True)
class Projection:
    """
    The effective field map of one query.

    Attributes
    ----------
    mode : ProjectionMode
        Whether `fields` is a whitelist or a blacklist.
    fields : dict[str, int]
        Store-level projection: 1 for inclusion, 0 for exclusion. Only
        `_id` may carry the opposite flag of the other entries.
    virtuals : tuple of str
        Virtual fields to compute after decoding.
    extra : tuple of str
        Fields fetched only as virtual inputs. They are removed from the
        output once virtuals are computed.
    """

    mode: ProjectionMode
    fields: dict[str, int] = field(default_factory=dict)
    virtuals: tuple[str, ...] = ()
    extra: tuple[str, ...] = ()

    def includes(self, name: str) -> bool:
        """Whether output field `name` is fetched (virtuals included)."""
        if name in self.virtuals:
            return True
        if self.mode is ProjectionMode.SELECT:
            return self.fields.get(name) == 1
        return self.fields.get(name) != 0

    def to_store(self) -> dict[str, int] | None:
        """Projection document for the store, or None to fetch everything."""
        if not self.fields:
            return None
        return dict(self.fields)


def _requested_names(
    request: ProjectionRequest, *, allow_id_exclusion: bool
) -> tuple[list[str], bool]:
    """
    Normalize a select/omit request into (names, id_excluded).

    A mapping entry with a falsy flag would mix inclusion and exclusion, which
    the store rejects. The only exception is `_id` in a select request.
    """
    if isinstance(request, str):
        request = [request]

    names: list[str] = []
    id_excluded = False
    if isinstance(request, Mapping):
        for name, flag in request.items():
            if flag:
                names.append(name)
            elif name == ID_FIELD and allow_id_exclusion:
                id_excluded = True
            else:
                raise InvalidProjectionError(
                    f"Cannot mix inclusion and exclusion in one projection "
                    f"(field '{name}' is set to {flag!r})"
                )
    else:
        names = list(request)

    return list(dict.fromkeys(names)), id_excluded


def _check_known(schema: "type[Schema]", names: Iterable[str]) -> None:
    known = set(schema.fields()) | set(schema.relations()) | set(schema.virtuals())
    unknown = [n for n in names if n not in known]
    if unknown:
        raise InvalidProjectionError(
            f"Schema '{schema.__name__}' has no field(s) {unknown}"
        )


def compose_projection(
    schema: "type[Schema]",
    select: ProjectionRequest | None = None,
    omit: ProjectionRequest | None = None,
) -> Projection:
    """
    Build the projection of one query against `schema`.

    Parameters
    ----------
    schema : type[Schema]
        The queried schema.
    select : iterable of str or mapping, optional
        Whitelist of output fields. `_id` is always included unless the
        request maps it to a falsy flag.
    omit : iterable of str or mapping, optional
        Fields to leave out, in addition to the schema's `__omit__`.

    Returns
    -------
    Projection
        A consistent projection. The same inputs always produce an equal
        projection.

    Raises
    ------
    InvalidProjectionError
        Both `select` and `omit` are given, the request mixes inclusion and
        exclusion flags, or it names fields the schema does not declare.

    Examples
    --------
        >>> from oriole import Schema, string
        >>> class UserSchema(Schema):
        ...     name = string()
        ...     email = string()
        >>> compose_projection(UserSchema, select=["name"]).fields
        {'_id': 1, 'name': 1}
    """
    if select is not None and omit is not None:
        raise InvalidProjectionError("A projection is either select or omit, not both")

    relations = schema.relations()
    virtuals = schema.virtuals()

    if select is not None:
        names, id_excluded = _requested_names(select, allow_id_exclusion=True)
        _check_known(schema, names)

        fields: dict[str, int] = {ID_FIELD: 0 if id_excluded else 1}
        for name in names:
            if name in virtuals:
                continue
            fields[name] = 1
            if name in relations:
                fields[relations[name].local] = 1

        requested_virtuals = tuple(n for n in names if n in virtuals)
        extra: list[str] = []
        for name in requested_virtuals:
            for input_name in virtuals[name].inputs:
                if fields.get(input_name) != 1:
                    fields[input_name] = 1
                    extra.append(input_name)

        return Projection(
            ProjectionMode.SELECT, fields, requested_virtuals, tuple(extra)
        )

    names, _ = _requested_names(omit or (), allow_id_exclusion=False)
    _check_known(schema, names)
    omitted = list(dict.fromkeys([*schema.default_omit(), *names]))

    fields = {}
    for name in omitted:
        if name in virtuals:
            continue
        fields[name] = 0
        if name in relations:
            fields[relations[name].local] = 0

    computed = tuple(n for n in virtuals if n not in omitted)
    extra = []
    for name in computed:
        for input_name in virtuals[name].inputs:
            if fields.get(input_name) == 0:
                del fields[input_name]
                extra.append(input_name)

    return Projection(ProjectionMode.OMIT, fields, computed, tuple(extra))
