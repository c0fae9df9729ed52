"""Shared fixtures for oriole tests."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from oriole import (
    Relation,
    Schema,
    SchemaRegistry,
    date,
    number,
    object_id,
    string,
    virtual,
)


@pytest.fixture
def user_schema():
    """User schema with a default-omitted field and a virtual."""

    class UserSchema(Schema):
        __omit__ = ("password",)

        name = string()
        age = number().default(0)
        status = string().nullable()
        email = string().lowercase().optional()
        password = string().optional()

        @virtual("name", "age")
        def label(doc):
            return f"{doc['name']} ({doc['age']})"

    return UserSchema


@pytest.fixture
def post_schema(user_schema):
    """Post schema with two relations targeting the users collection."""

    class PostSchema(Schema):
        title = string()
        author_id = object_id()
        editor_id = object_id()
        updated_at = date().optional().on_update(lambda: datetime(2024, 1, 1))

        author = Relation(user_schema, local="author_id")
        editor = Relation(lambda: user_schema, local="editor_id")

    return PostSchema


@pytest.fixture
def registry(user_schema, post_schema):
    """Frozen registry with users and posts."""
    registry = SchemaRegistry()
    registry.register(user_schema)
    registry.register(post_schema)
    registry.freeze()
    return registry


@pytest.fixture
def user_id():
    return ObjectId("65a000000000000000000001")


@pytest.fixture
def raw_user(user_id):
    """A user as stored in the database."""
    return {
        "_id": user_id,
        "name": "Ana",
        "age": 31,
        "status": "active",
        "email": "ana@example.com",
        "password": "hunter2",
    }


@pytest.fixture
def mongo_collection():
    """Store collection double recording the commands issued."""
    collection = MagicMock()
    collection.find.return_value = iter([])
    collection.aggregate.return_value = iter([])
    collection.find_one.return_value = None
    collection.find_one_and_update.return_value = None
    collection.find_one_and_replace.return_value = None
    collection.find_one_and_delete.return_value = None
    return collection


@pytest.fixture
def mongo_db(mongo_collection):
    db = MagicMock()
    db.__getitem__.return_value = mongo_collection
    return db
