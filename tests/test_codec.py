"""Tests for document decoding and encoding."""

from datetime import datetime

import pytest

from oriole import (
    Schema,
    compose_projection,
    decode,
    encode,
    field_updates,
    number,
    string,
    virtual,
)
from oriole.errors import (
    DecodeError,
    EncodeError,
    RequiredFieldError,
    TypeMismatchError,
)


@pytest.fixture
def profile_schema():
    class ProfileSchema(Schema):
        name = string()
        age = number().default(0)
        status = string().nullable()

    return ProfileSchema


class TestDecode:
    """Test decoding raw stored documents."""

    def test_defaults_and_nullable_fill_absent_fields(self, profile_schema):
        """Absent fields take their default, nullable ones become None."""
        assert decode(profile_schema, {"name": "Ana"}) == {
            "name": "Ana",
            "age": 0,
            "status": None,
        }

    def test_missing_required_field_rejects_document(self):
        """A missing non-nullable field without default fails the decode."""

        class ProfileSchema(Schema):
            name = string()
            age = number().default(0)
            status = string()

        with pytest.raises(DecodeError) as exc_info:
            decode(ProfileSchema, {"name": "Ana"})

        assert isinstance(exc_info.value.error, RequiredFieldError)
        assert exc_info.value.field == "status"
        assert exc_info.value.__cause__ is exc_info.value.error
        assert "ProfileSchema" in str(exc_info.value)

    def test_explicit_null_on_nullable_field(self, profile_schema):
        """Stored nulls are kept on nullable fields."""
        decoded = decode(profile_schema, {"name": "Ana", "status": None})
        assert decoded["status"] is None

    def test_type_mismatch_rejects_document(self, profile_schema):
        """Values of the wrong kind are never coerced."""
        with pytest.raises(DecodeError) as exc_info:
            decode(profile_schema, {"name": "Ana", "age": "31"})
        assert isinstance(exc_info.value.error, TypeMismatchError)
        assert exc_info.value.field == "age"

    def test_id_is_decoded_first(self, profile_schema, user_id):
        """_id is part of the output when stored."""
        decoded = decode(profile_schema, {"_id": user_id, "name": "Ana"})
        assert list(decoded) == ["_id", "name", "age", "status"]
        assert decoded["_id"] == user_id

    def test_select_projection_limits_output(self, profile_schema, user_id):
        """Only selected fields (and _id) are returned."""
        projection = compose_projection(profile_schema, select=["name"])
        raw = {"_id": user_id, "name": "Ana"}
        expected = {"_id": user_id, "name": "Ana"}
        assert decode(profile_schema, raw, projection) == expected

    def test_projected_out_fields_are_not_validated(self, profile_schema):
        """Excluded required fields do not fail the decode."""
        projection = compose_projection(profile_schema, omit=["name"])
        assert decode(profile_schema, {}, projection) == {"age": 0, "status": None}

    def test_transformations_applied(self, user_schema, raw_user):
        """Field transformations run on decoded values."""
        raw_user["email"] = "Ana@Example.COM"
        assert decode(user_schema, raw_user)["email"] == "ana@example.com"

    def test_unknown_stored_keys_ignored(self, profile_schema):
        """Keys the schema does not declare are dropped."""
        decoded = decode(profile_schema, {"name": "Ana", "legacy": True})
        assert "legacy" not in decoded

    def test_raw_document_not_mutated(self, user_schema, raw_user):
        """Decoding leaves its input untouched."""
        snapshot = dict(raw_user)
        decode(user_schema, raw_user)
        assert raw_user == snapshot


class TestDecodeVirtuals:
    """Test computed output fields."""

    def test_default_projection(self, user_schema, raw_user, user_id):
        """Default omissions apply and virtuals are computed."""
        assert decode(user_schema, raw_user) == {
            "_id": user_id,
            "name": "Ana",
            "age": 31,
            "status": "active",
            "email": "ana@example.com",
            "label": "Ana (31)",
        }

    def test_virtual_sees_transformed_values(self, user_schema, raw_user):
        """Virtuals are computed from decoded values."""

        class TaggedSchema(user_schema):
            name = string().uppercase()

        assert decode(TaggedSchema, raw_user)["label"] == "ANA (31)"

    def test_virtual_inputs_removed_when_omitted(self, user_schema, raw_user):
        """Omitted inputs are fetched for the virtual but not returned."""
        projection = compose_projection(user_schema, omit=["name"])
        decoded = decode(user_schema, raw_user, projection)

        assert "name" not in decoded
        assert decoded["label"] == "Ana (31)"

    def test_selected_virtual_only(self, user_schema, raw_user, user_id):
        """Selecting a virtual returns it without its inputs."""
        projection = compose_projection(user_schema, select=["label"])
        raw = {"_id": user_id, "name": "Ana", "age": 31}

        assert decode(user_schema, raw, projection) == {
            "_id": user_id,
            "label": "Ana (31)",
        }

    def test_omitted_virtual_not_computed(self, user_schema, raw_user):
        projection = compose_projection(user_schema, omit=["label"])
        assert "label" not in decode(user_schema, raw_user, projection)

    def test_virtual_receives_read_only_document(self, raw_user):
        """Virtuals cannot modify the document they are computed from."""

        class SneakySchema(Schema):
            name = string()

            @virtual("name")
            def shout(doc):
                doc["name"] = "changed"

        with pytest.raises(TypeError):
            decode(SneakySchema, raw_user)


class TestDecodePopulated:
    """Test decoding of populated relations."""

    @pytest.fixture
    def raw_post(self, raw_user, user_id):
        """A post as returned by a pipeline populating `author`."""
        return {
            "_id": user_id,
            "title": "Hello",
            "editor_id": user_id,
            "author": raw_user,
        }

    def test_populated_relation_decoded_with_target_schema(
        self, post_schema, raw_post, user_id
    ):
        """The joined document is decoded with the target's default projection."""
        decoded = decode(post_schema, raw_post, populate=["author"])

        assert decoded == {
            "_id": user_id,
            "title": "Hello",
            "editor_id": user_id,
            "author": {
                "_id": user_id,
                "name": "Ana",
                "age": 31,
                "status": "active",
                "email": "ana@example.com",
                "label": "Ana (31)",
            },
        }

    def test_local_field_not_required_once_populated(self, post_schema, raw_post):
        """The foreign-key field is replaced by the relation."""
        decoded = decode(post_schema, raw_post, populate=["author"])
        assert "author_id" not in decoded

    def test_unpopulated_relation_requires_local_field(self, post_schema, raw_post):
        """Without population the foreign key is a regular field."""
        with pytest.raises(DecodeError) as exc_info:
            decode(post_schema, raw_post)
        assert exc_info.value.field == "author_id"

    def test_nested_failure_rejects_host(self, post_schema, raw_post):
        """A failing joined document fails the whole host document."""
        del raw_post["author"]["name"]

        with pytest.raises(DecodeError) as exc_info:
            decode(post_schema, raw_post, populate=["author"])

        assert exc_info.value.schema == "PostSchema"
        assert isinstance(exc_info.value.error, RequiredFieldError)
        assert exc_info.value.field == "name"

    def test_non_document_relation_value(self, post_schema, raw_post, user_id):
        """A populated relation must hold a document."""
        raw_post["author"] = user_id

        with pytest.raises(DecodeError) as exc_info:
            decode(post_schema, raw_post, populate=["author"])
        assert isinstance(exc_info.value.error, TypeMismatchError)
        assert exc_info.value.field == "author"

    def test_deferred_target_decoded(self, post_schema, raw_post, raw_user):
        """Relations declared with a callable resolve at decode time."""
        raw_post["author_id"] = raw_post.pop("author")["_id"]
        del raw_post["editor_id"]
        raw_post["editor"] = raw_user

        decoded = decode(post_schema, raw_post, populate=["editor"])
        assert decoded["editor"]["label"] == "Ana (31)"
        assert "password" not in decoded["editor"]


class TestEncode:
    """Test encoding caller input for storage."""

    def test_defaults_transformations_and_optional(self, user_schema):
        """Defaults fill absent fields and optional ones are left out."""
        encoded = encode(user_schema, {"name": "Bo", "email": "BO@EXAMPLE.COM"})
        assert encoded == {
            "name": "Bo",
            "age": 0,
            "status": None,
            "email": "bo@example.com",
        }

    def test_missing_required_field(self, user_schema):
        with pytest.raises(EncodeError) as exc_info:
            encode(user_schema, {"age": 3})
        assert isinstance(exc_info.value.error, RequiredFieldError)
        assert exc_info.value.field == "name"

    def test_undeclared_key_rejected(self, user_schema):
        """Only stored fields may be written."""
        with pytest.raises(EncodeError, match="nickname"):
            encode(user_schema, {"name": "Bo", "nickname": "b"})

    def test_virtual_rejected(self, user_schema):
        with pytest.raises(EncodeError, match="label"):
            encode(user_schema, {"name": "Bo", "label": "Bo (0)"})

    def test_relation_rejected(self, post_schema):
        with pytest.raises(EncodeError, match="author"):
            encode(post_schema, {"title": "Hi", "author": {"name": "Bo"}})

    def test_encoded_document_decodes(self, user_schema, user_id):
        """Stored documents decode to the same values."""
        encoded = encode(user_schema, {"name": "Bo", "password": "secret"})
        decoded = decode(user_schema, {**encoded, "_id": user_id})

        assert decoded["name"] == "Bo"
        assert decoded["age"] == 0
        assert "password" not in decoded


class TestFieldUpdates:
    """Test on_update hook collection."""

    def test_hooked_fields(self, post_schema):
        assert field_updates(post_schema) == {"updated_at": datetime(2024, 1, 1)}

    def test_no_hooks(self, user_schema):
        assert field_updates(user_schema) == {}

    def test_hooks_called_per_update(self):
        """Each call produces fresh values."""
        calls = []

        class CounterSchema(Schema):
            revision = number().optional().on_update(
                lambda: calls.append(1) or len(calls)
            )

        assert field_updates(CounterSchema) == {"revision": 1}
        assert field_updates(CounterSchema) == {"revision": 2}
