"""
Field fetch specifications.

Each entity type exposes a set of named fields. A field fetch spec says how
one of them is obtained:

- ``db-column``: stored directly on the entity row
- ``formula``: computed by the database at query time, requested like a column
- ``relation``: another entity (to-one) or a collection of them (to-many),
  reached through a populate property, optionally scoped by a filter derived
  from the fetch context
- ``annotated``: filled in after the fetch by an annotator that mutates the
  fetched records in place

Specs for related types are referenced through zero-argument thunks so that
cyclic graphs (Text -> Collection -> Text) can be declared without eager
construction. ``FetchSpecRegistry`` is the explicit table that wires them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from lexis_back.runtime.errors import UnknownEntityTypeError

if TYPE_CHECKING:
    from lexis_back.specs.context import FetchContext

Record = dict[str, Any]
FilterQuery = dict[str, Any]
RelationType = Literal["to-one", "to-many"]

Annotator = Callable[[list[Record], "FetchContext"], Union[Awaitable[None], None]]
ContextFilter = Callable[["FetchContext"], Union[FilterQuery, None]]
FetchSpecsThunk = Callable[[], "EntityFetchSpecs"]


# =============================================================================
# Field Fetch Spec Variants
# =============================================================================


class DbColumnFetchSpec(BaseModel):
    """Value stored directly on the entity row."""

    type: Literal["db-column"] = "db-column"

    model_config = ConfigDict(frozen=True)


class FormulaFetchSpec(BaseModel):
    """Value computed by the database at query time (e.g. an aggregate sub-query)."""

    type: Literal["formula"] = "formula"

    model_config = ConfigDict(frozen=True)


class RelationFetchSpec(BaseModel):
    """
    Related entity or collection of entities.

    Examples:
        - To-one: RelationFetchSpec(populate="language", entity_fetch_specs=registry.ref("Language"), relation_type="to-one")
        - Scoped to-many: RelationFetchSpec(populate="texts", ..., relation_type="to-many",
          default_context_filter=lambda ctx: text_visibility_filter(ctx.user))
    """

    type: Literal["relation"] = "relation"
    populate: str = Field(description="Property name of the relation in the fetched graph")
    entity_fetch_specs: Callable[[], Any] = Field(
        description="Thunk returning the related type's EntityFetchSpecs"
    )
    relation_type: RelationType = Field(description="Cardinality: to-one or to-many")
    default_context_filter: Callable[[Any], Any] | None = Field(
        default=None, description="Context -> filter on the related rows (None for no filter)"
    )

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def nested_specs(self) -> EntityFetchSpecs:
        """Resolve the related type's fetch specs."""
        return self.entity_fetch_specs()


class AnnotatedFetchSpec(BaseModel):
    """
    Value attached after the fetch.

    The annotator receives every record at the field's level and the fetch
    context, mutates the records in place, must accept an empty list and
    should issue at most one batched query. It may be sync or async.
    """

    type: Literal["annotated"] = "annotated"
    annotate: Callable[..., Any] = Field(description="Annotator(records, context)")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


FieldFetchSpec = Annotated[
    Union[DbColumnFetchSpec, FormulaFetchSpec, RelationFetchSpec, AnnotatedFetchSpec],
    Field(discriminator="type"),
]

# Shorthand instances for the two data-less variants
DB_COLUMN = DbColumnFetchSpec()
FORMULA = FormulaFetchSpec()


# =============================================================================
# Per-Entity Specs
# =============================================================================


class EntityFetchSpecs(Mapping[str, FieldFetchSpec]):
    """
    Read-only map of field name -> field fetch spec for one entity type.

    Example:
        EntityFetchSpecs("Text", {
            "id": DB_COLUMN,
            "pastViewersCount": FORMULA,
            "language": RelationFetchSpec(...),
            "isBookmarked": AnnotatedFetchSpec(annotate=annotate_texts_is_bookmarked),
        })
    """

    def __init__(self, entity_name: str, specs: Mapping[str, FieldFetchSpec] | Iterator[tuple[str, FieldFetchSpec]]):
        items = list(specs.items()) if isinstance(specs, Mapping) else list(specs)
        self.entity_name = entity_name
        self._specs: dict[str, FieldFetchSpec] = {}
        for name, spec in items:
            if name in self._specs:
                raise ValueError(f"Duplicate field fetch spec '{name}' on {entity_name}")
            self._specs[name] = spec

    def __getitem__(self, name: str) -> FieldFetchSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"EntityFetchSpecs({self.entity_name!r}, fields={list(self._specs)})"

    def spec(self, name: str) -> FieldFetchSpec | None:
        """Get the spec for a field, or None if the field is not exposed."""
        return self._specs.get(name)

    def relation_by_populate(self, populate: str) -> RelationFetchSpec | None:
        """Find the relation spec whose populate property is ``populate``."""
        for spec in self._specs.values():
            if isinstance(spec, RelationFetchSpec) and spec.populate == populate:
                return spec
        return None


# =============================================================================
# Registry
# =============================================================================


class FetchSpecRegistry:
    """
    Table of entity type -> fetch specs, built lazily.

    Declare then wire: factories are registered first and may reference other
    types through ``ref()`` thunks; nothing is constructed until ``get()``.
    """

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], EntityFetchSpecs]] = {}
        self._built: dict[str, EntityFetchSpecs] = {}

    def register(self, entity_name: str, factory: Callable[[], EntityFetchSpecs]) -> None:
        """Register a factory for an entity type."""
        self._factories[entity_name] = factory
        self._built.pop(entity_name, None)

    def get(self, entity_name: str) -> EntityFetchSpecs:
        """Get (building once) the fetch specs for an entity type."""
        built = self._built.get(entity_name)
        if built is not None:
            return built
        factory = self._factories.get(entity_name)
        if factory is None:
            raise UnknownEntityTypeError(entity_name, list(self._factories))
        built = factory()
        self._built[entity_name] = built
        return built

    def ref(self, entity_name: str) -> FetchSpecsThunk:
        """Lazy reference for use inside other factories."""

        def thunk() -> EntityFetchSpecs:
            return self.get(entity_name)

        thunk.__qualname__ = f"ref({entity_name})"
        return thunk

    def has(self, entity_name: str) -> bool:
        return entity_name in self._factories

    def entity_names(self) -> list[str]:
        return list(self._factories)
