"""Pydantic model generator describing decoded documents."""

from typing import TYPE_CHECKING, Any, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, create_model
from pydantic import Field as PydanticField

from ..base import ID_FIELD

if TYPE_CHECKING:
    from ..base import Schema


def create_pydantic_model(schema_cls: "type[Schema]") -> type[BaseModel]:
    """
    Generate a Pydantic BaseModel from a Schema class.

    The model mirrors the output of `decode` with the default projection:
    `_id` is exposed as ``id`` (alias ``_id``) and relation local fields are
    optional, since population replaces them. Relations and virtuals become
    optional untyped fields since their shape depends on the query.

    Parameters
    ----------
    schema_cls : type[Schema]
        A subclass of Schema.

    Returns
    -------
    type[BaseModel]
        A dynamically created Pydantic BaseModel class.
    """
    pydantic_fields: dict[str, Any] = {}
    # Populating a relation replaces its local field in the output
    local_fields = {relation.local for relation in schema_cls.relations().values()}

    for field_name, field in schema_cls.fields().items():
        python_type: Any = field.get_python_type()
        field_kwargs: dict[str, Any] = {}

        # Optional fields without a default are left out of decoded output
        if (
            field.is_nullable
            or not field.is_required
            or field_name == ID_FIELD
            or field_name in local_fields
        ):
            python_type = Optional[python_type]
            field_kwargs["default"] = None

        # Handle default values (including explicit None)
        if field.has_default:
            field_kwargs["default"] = field.default_value

        model_name = field_name
        if field_name == ID_FIELD:
            # Pydantic treats leading underscores as private attributes
            model_name = "id"
            field_kwargs["alias"] = ID_FIELD

        if field_kwargs:
            pydantic_fields[model_name] = (python_type, PydanticField(**field_kwargs))
        else:
            pydantic_fields[model_name] = (python_type, ...)

    for name in [*schema_cls.relations(), *schema_cls.virtuals()]:
        pydantic_fields[name] = (Optional[Any], None)

    model_name = schema_cls.__name__.removesuffix("Schema") + "Model"
    logger.debug(f"Creating Pydantic model '{model_name}' for {schema_cls.__name__}")
    # Pydantic's create_model is dynamically typed - returns type[BaseModel] at runtime
    return create_model(  # type: ignore[call-overload, no-any-return]
        model_name,
        __config__=ConfigDict(arbitrary_types_allowed=True, populate_by_name=True),
        **pydantic_fields,
    )
