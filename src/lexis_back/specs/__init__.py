"""
Specification types.

- Field fetch specs and their registry (what a view may ask for)
- View descriptions (what a caller asks for)
- Fetch context (who is asking)
- Entity specs (where data lives)
"""

from lexis_back.specs.context import AnonymousUser, CurrentUser, FetchContext
from lexis_back.specs.entity import (
    EntitySpec,
    FieldSpec,
    FieldType,
    FormulaSpec,
    RelationKind,
    RelationSpec,
    ScalarType,
)
from lexis_back.specs.fetch_spec import (
    DB_COLUMN,
    FORMULA,
    AnnotatedFetchSpec,
    DbColumnFetchSpec,
    EntityFetchSpecs,
    FetchSpecRegistry,
    FieldFetchSpec,
    FilterQuery,
    FormulaFetchSpec,
    Record,
    RelationFetchSpec,
)
from lexis_back.specs.view import ViewDescription

__all__ = [
    # Fetch specs
    "DB_COLUMN",
    "FORMULA",
    "AnnotatedFetchSpec",
    "DbColumnFetchSpec",
    "EntityFetchSpecs",
    "FetchSpecRegistry",
    "FieldFetchSpec",
    "FilterQuery",
    "FormulaFetchSpec",
    "Record",
    "RelationFetchSpec",
    # Views and context
    "ViewDescription",
    "FetchContext",
    "CurrentUser",
    "AnonymousUser",
    # Persistence schema
    "EntitySpec",
    "FieldSpec",
    "FieldType",
    "FormulaSpec",
    "RelationKind",
    "RelationSpec",
    "ScalarType",
]
