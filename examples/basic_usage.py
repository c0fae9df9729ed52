"""
Basic Usage Example: Blog Posts and Their Authors

This example demonstrates the core Oriole workflow:
1. Define schemas with field types, relations and virtual fields
2. Compose projections and compile population pipelines
3. Decode stored documents into typed output
4. Generate Pydantic models describing decoded documents
"""

from datetime import datetime, timezone

from bson import ObjectId

from oriole import (
    Relation,
    Schema,
    compile_pipeline,
    compose_projection,
    date,
    decode,
    object_id,
    string,
    virtual,
)


class UserSchema(Schema):
    """Schema for the authors of the blog."""

    __omit__ = ("password",)

    first_name = string().trim()
    last_name = string().trim()
    email = string().lowercase()
    password = string()
    status: str | None = None

    @virtual("first_name", "last_name")
    def full_name(doc):
        return f"{doc['first_name']} {doc['last_name']}"


class PostSchema(Schema):
    """Schema for blog posts, each written by one user."""

    title = string()
    author_id = object_id()
    updated_at = date().optional().on_update(lambda: datetime.now(timezone.utc))

    author = Relation(UserSchema, local="author_id")


def main() -> None:
    """Walk through projection, population and decoding without a server."""

    # 1. Compose a projection: the password is omitted by default, and the
    # virtual field's inputs are fetched even when the caller omits them
    projection = compose_projection(UserSchema, omit=["first_name"])
    print(f"[OK] Store projection: {projection.to_store()}")
    print(f"[OK] Extra fields fetched for virtuals: {projection.extra}")

    # 2. Compile a population pipeline for post.author_id -> users._id
    pipeline = compile_pipeline(PostSchema, {"title": "Hello"}, ["author"])
    print(f"[OK] Compiled {len(pipeline)} stages:")
    for stage in pipeline:
        print(f"     {stage}")

    # 3. Decode a document as the pipeline would return it
    user_id = ObjectId()
    raw_post = {
        "_id": ObjectId(),
        "title": "Hello",
        "author": {
            "_id": user_id,
            "first_name": " Ada ",
            "last_name": "Lovelace",
            "email": "ADA@EXAMPLE.COM",
            "password": "secret",
        },
    }
    post = decode(PostSchema, raw_post, populate=["author"])
    print(f"[OK] Decoded post by {post['author']['full_name']}")

    # 4. Generate a Pydantic model for the decoded output
    Post = PostSchema.to_pydantic()
    print(f"[OK] Validated {Post.__name__}: {Post.model_validate(post).title}")

    # Running the same query against a live server (requires MongoDB):
    # from pymongo import MongoClient
    # from oriole import Database
    # db = Database(MongoClient()["blog"], [UserSchema, PostSchema])
    # db.collection(PostSchema).find({"title": "Hello"}).populate("author").exec()

    print("\n[SUCCESS] Schemas, projections and pipelines working correctly!")


if __name__ == "__main__":
    main()
