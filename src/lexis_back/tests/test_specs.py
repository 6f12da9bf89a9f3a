"""
Tests for view descriptions, fetch specs, the fetch context and the schema.
"""

import pytest
from pydantic import ValidationError

from lexis_back.domain.views import NAMED_VIEWS, TEXT_LOGGED_IN_VIEW, TEXT_VIEW
from lexis_back.runtime.errors import UnauthenticatedContextError, UnknownEntityTypeError
from lexis_back.specs.context import AnonymousUser, CurrentUser, FetchContext
from lexis_back.specs.entity import (
    EntitySpec,
    FieldSpec,
    RelationKind,
    RelationSpec,
    ScalarType,
    scalar,
)
from lexis_back.specs.fetch_spec import (
    DB_COLUMN,
    FORMULA,
    AnnotatedFetchSpec,
    EntityFetchSpecs,
    FetchSpecRegistry,
    RelationFetchSpec,
)
from lexis_back.specs.view import ViewDescription

# =============================================================================
# View Descriptions
# =============================================================================


class TestViewDescription:
    """Parsing and merging views."""

    def test_coerce_list_shorthand(self):
        view = ViewDescription.coerce(["id", "title"])

        assert view.fields == ["id", "title"]
        assert view.relations == {}

    def test_coerce_dict(self):
        view = ViewDescription.coerce({"fields": ["id"], "relations": {"language": ["code"]}})

        assert dict(view.relation_views()) == {"language": ViewDescription(fields=["code"])}

    def test_coerce_passes_views_through(self):
        assert ViewDescription.coerce(TEXT_VIEW) is TEXT_VIEW

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError):
            ViewDescription.coerce("title")

    def test_null_relations(self):
        assert ViewDescription.coerce({"fields": ["id"], "relations": None}).relations == {}

    def test_views_are_frozen(self):
        with pytest.raises(ValidationError):
            TEXT_VIEW.fields = []

    def test_merge(self):
        base = ViewDescription(fields=["id", "title"], relations={"collection": ["title"]})

        merged = base.merge({"fields": ["title", "isBookmarked"], "relations": {"collection": ["isPublic"]}})

        assert merged.fields == ["id", "title", "isBookmarked"]
        assert dict(merged.relation_views())["collection"].fields == ["title", "isPublic"]
        assert base.fields == ["id", "title"]

    def test_logged_in_text_view_extends_text_view(self):
        assert TEXT_LOGGED_IN_VIEW.fields[-2:] == ["vocabsByLevel", "isBookmarked"]
        assert TEXT_LOGGED_IN_VIEW.fields[:-2] == TEXT_VIEW.fields

    def test_named_views_compile(self, registry, alice_context):
        from lexis_back.runtime.fetch_plan import compile_view

        for entity_name, view in NAMED_VIEWS.values():
            compile_view(view, registry.get(entity_name), alice_context)


# =============================================================================
# Fetch Specs
# =============================================================================


class TestEntityFetchSpecs:
    """The per-entity spec map."""

    def test_mapping_interface(self):
        specs = EntityFetchSpecs("Text", {"id": DB_COLUMN, "pastViewersCount": FORMULA})

        assert list(specs) == ["id", "pastViewersCount"]
        assert len(specs) == 2
        assert specs["pastViewersCount"].type == "formula"
        assert specs.spec("missing") is None

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate field fetch spec 'id'"):
            EntityFetchSpecs("Text", [("id", DB_COLUMN), ("id", FORMULA)])

    def test_relation_by_populate(self):
        relation = RelationFetchSpec(
            populate="collection", entity_fetch_specs=lambda: None, relation_type="to-one"
        )
        specs = EntityFetchSpecs("Text", {"id": DB_COLUMN, "parentCollection": relation})

        assert specs.relation_by_populate("collection") is relation
        assert specs.relation_by_populate("language") is None

    def test_relation_type_is_validated(self):
        with pytest.raises(ValidationError):
            RelationFetchSpec(populate="texts", entity_fetch_specs=lambda: None, relation_type="many")

    def test_annotated_spec_keeps_callable(self):
        def annotate(records, context):
            pass

        assert AnnotatedFetchSpec(annotate=annotate).annotate is annotate


class TestFetchSpecRegistry:
    """Lazy, cycle-tolerant registry."""

    def test_cyclic_references(self):
        registry = FetchSpecRegistry()
        registry.register(
            "Text",
            lambda: EntityFetchSpecs(
                "Text",
                {
                    "id": DB_COLUMN,
                    "collection": RelationFetchSpec(
                        populate="collection", entity_fetch_specs=registry.ref("Collection"), relation_type="to-one"
                    ),
                },
            ),
        )
        registry.register(
            "Collection",
            lambda: EntityFetchSpecs(
                "Collection",
                {
                    "id": DB_COLUMN,
                    "texts": RelationFetchSpec(
                        populate="texts", entity_fetch_specs=registry.ref("Text"), relation_type="to-many"
                    ),
                },
            ),
        )

        text = registry.get("Text")
        collection = text["collection"].nested_specs()

        assert collection.entity_name == "Collection"
        assert collection["texts"].nested_specs() is text

    def test_built_once(self):
        calls = []
        registry = FetchSpecRegistry()

        def factory():
            calls.append(1)
            return EntityFetchSpecs("Language", {"id": DB_COLUMN})

        registry.register("Language", factory)

        assert registry.get("Language") is registry.get("Language")
        assert len(calls) == 1

    def test_unknown_entity(self):
        registry = FetchSpecRegistry()
        registry.register("Text", lambda: EntityFetchSpecs("Text", {"id": DB_COLUMN}))

        with pytest.raises(UnknownEntityTypeError, match="'Lesson'") as exc_info:
            registry.get("Lesson")

        assert exc_info.value.entity_name == "Lesson"
        assert registry.has("Text")
        assert not registry.has("Lesson")

    def test_domain_registry(self, registry):
        assert registry.entity_names() == [
            "Language",
            "User",
            "Profile",
            "Collection",
            "Text",
            "TextHistoryEntry",
            "Vocab",
            "Meaning",
            "MapLearnerVocab",
            "MapLearnerLanguage",
            "Dictionary",
        ]
        assert registry.get("Collection")["texts"].default_context_filter is not None


# =============================================================================
# Fetch Context
# =============================================================================


class TestFetchContext:
    """Who is asking."""

    def test_authenticated(self):
        user = CurrentUser(id=1, username="alice", profile_id=11)
        context = FetchContext(user=user, extra={"language": "fr"})

        assert context.is_authenticated
        assert context.require_user() is user
        assert context.get("language") == "fr"
        assert context.get("missing", 0) == 0

    @pytest.mark.parametrize("user", [None, AnonymousUser()])
    def test_not_authenticated(self, user):
        context = FetchContext(user=user)

        assert not context.is_authenticated
        with pytest.raises(UnauthenticatedContextError, match="required by isBookmarked"):
            context.require_user("isBookmarked")


# =============================================================================
# Persistence Schema
# =============================================================================


class TestEntitySpec:
    """Schema model validation."""

    def test_invalid_entity_name(self):
        with pytest.raises(ValidationError):
            EntitySpec(name="Text Entry")

    def test_lookups(self):
        entity = EntitySpec(
            name="Note",
            fields=[FieldSpec(name="body", type=scalar(ScalarType.TEXT))],
            relations=[
                RelationSpec(name="text", to_entity="Text", kind=RelationKind.MANY_TO_ONE, foreign_key="textId")
            ],
        )

        assert entity.get_field("body") is not None
        assert entity.get_relation("text").is_to_one
        assert entity.get_relation("text").fk_on_source
        assert entity.get_formula("body") is None
        assert entity.column_names == ["id", "body"]

    def test_many_to_many_needs_join_table(self):
        with pytest.raises(ValidationError):
            RelationSpec(name="vocabs", to_entity="Vocab", kind=RelationKind.MANY_TO_MANY)

    def test_inverse_one_to_one(self):
        relation = RelationSpec(
            name="profile", to_entity="Profile", kind=RelationKind.ONE_TO_ONE, foreign_key="userId", fk_on_target=True
        )

        assert relation.is_to_one
        assert not relation.fk_on_source
