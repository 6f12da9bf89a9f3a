"""
Error types for view resolution.

Every error raised here is a programming defect in the pairing of a declared
view and an entity's fetch specs (or in the context an endpoint passes), not a
user-correctable condition. Callers translate them into a generic server error.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lexis_back.specs.view import ViewDescription


class ViewResolutionError(Exception):
    """Base exception for all view resolution errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidViewFieldError(ViewResolutionError):
    """
    Raised when a view names a field its entity's fetch specs do not define.

    Attributes:
        field: The offending field name
        view: The view (sub-view) in which it was found
    """

    def __init__(self, field: str, view: ViewDescription | None = None):
        self.field = field
        self.view = view
        rendered = json.dumps(view.model_dump(), default=str) if view is not None else "?"
        super().__init__(f"Invalid view field: {field}, current view={rendered}")


class InvalidPathError(ViewResolutionError):
    """
    Raised when a relation path cannot be walked over fetched records.

    Examples:
    - No fetch spec for a path segment
    - A non-relation field traversed as if it were a relation
    - Unknown relation cardinality
    - Relation not populated on a record
    """

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message)


class UnknownEntityTypeError(ViewResolutionError):
    """Raised when a fetch spec registry has no entry for an entity type."""

    def __init__(self, entity_name: str, known: list[str] | None = None):
        self.entity_name = entity_name
        suffix = f" (known: {', '.join(sorted(known))})" if known else ""
        super().__init__(f"No fetch specs registered for entity type '{entity_name}'{suffix}")


class UnauthenticatedContextError(ViewResolutionError):
    """Raised when a learner-scoped filter or annotator runs without a logged in user."""

    def __init__(self, what: str = "view"):
        super().__init__(f"Context doesn't have logged in user (required by {what})")


class InvalidFilterError(ViewResolutionError):
    """Raised when a filter query cannot be compiled against an entity."""

    def __init__(self, message: str, filter_query: Any = None):
        self.filter_query = filter_query
        super().__init__(message)
