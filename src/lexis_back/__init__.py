"""
Lexis Back - declarative entity view resolution

Resolves per-request view descriptions against per-entity field fetch specs
into batched SQLite queries, scoped relation population and post-fetch
annotation.

This package provides:
- Specs: field fetch specs, view descriptions, fetch context, persistence schema
- Runtime: fetch plan compiler, path resolver, view executor, SQLite repository
- Domain: the language-learning entity types, their fetch specs and views
"""

__version__ = "0.3.0"

from lexis_back.runtime.errors import (
    InvalidFilterError,
    InvalidPathError,
    InvalidViewFieldError,
    UnauthenticatedContextError,
    UnknownEntityTypeError,
    ViewResolutionError,
)
from lexis_back.runtime.fetch_plan import FetchPlan, build_fetch_plan, compile_view
from lexis_back.runtime.path_resolver import resolve_at_path
from lexis_back.runtime.view_executor import ViewResolver, execute_view, execute_view_one
from lexis_back.specs import (
    AnonymousUser,
    CurrentUser,
    EntityFetchSpecs,
    FetchContext,
    FetchSpecRegistry,
    ViewDescription,
)

__all__ = [
    "AnonymousUser",
    "CurrentUser",
    "EntityFetchSpecs",
    "FetchContext",
    "FetchPlan",
    "FetchSpecRegistry",
    "InvalidFilterError",
    "InvalidPathError",
    "InvalidViewFieldError",
    "UnauthenticatedContextError",
    "UnknownEntityTypeError",
    "ViewDescription",
    "ViewResolutionError",
    "ViewResolver",
    "build_fetch_plan",
    "compile_view",
    "execute_view",
    "execute_view_one",
    "resolve_at_path",
]
