"""
Fetch plan compiler.

Walks a view description against an entity's fetch specs and flattens it into
the instructions the view executor runs:

- ``local_fields`` / ``local_populate``: columns, formulas and unfiltered
  relations, all fetched by the single primary ``find``
- ``filtered_populates``: relations scoped by a context filter or a caller
  override, each loaded by its own ``populate`` call against the fetched roots
  so the filter never drops root records
- ``annotated_fields``: annotators to run afterwards, in declaration order,
  keyed by the path of the records they receive

Paths are dotted chains of populate names from the root entity
(``"texts.language"``); the root level is ``""``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, assert_never

from lexis_back.runtime.errors import InvalidViewFieldError
from lexis_back.runtime.query_builder import FilterQuery, and_filters, nest_filter
from lexis_back.specs.context import FetchContext
from lexis_back.specs.fetch_spec import (
    AnnotatedFetchSpec,
    Annotator,
    DbColumnFetchSpec,
    EntityFetchSpecs,
    FormulaFetchSpec,
    RelationFetchSpec,
)
from lexis_back.specs.view import ViewDescription, ViewLike

logger = logging.getLogger(__name__)

RelationFilters = dict[str, FilterQuery]


# =============================================================================
# Plan Types
# =============================================================================


@dataclass(frozen=True)
class FilteredPopulate:
    """
    One scoped populate call.

    Attributes:
        populate: The filtered relation path first, then unfiltered paths below it
        filter: Filter qualified from the root (``{"texts": {...}}``)
        fields: Qualified fields to select for the populated relations
    """

    populate: list[str]
    filter: FilterQuery
    fields: list[str]

    @property
    def path(self) -> str:
        return self.populate[0]


@dataclass(frozen=True)
class AnnotationStep:
    """Run ``annotate`` over the records found at ``path``."""

    path: str
    annotate: Annotator


@dataclass
class FetchPlan:
    """Compiled, per-request fetch instructions."""

    local_fields: list[str] = field(default_factory=list)
    local_populate: list[str] = field(default_factory=list)
    filtered_populates: list[FilteredPopulate] = field(default_factory=list)
    annotated_fields: list[AnnotationStep] = field(default_factory=list)

    def describe(self) -> dict[str, Any]:
        """JSON-safe rendering of the plan, annotators by qualified name."""
        return {
            "localFields": list(self.local_fields),
            "localPopulate": list(self.local_populate),
            "filteredPopulates": [
                {"populate": list(fp.populate), "filter": fp.filter, "fields": list(fp.fields)}
                for fp in self.filtered_populates
            ],
            "annotatedFields": [
                {"path": step.path, "annotate": _callable_name(step.annotate)}
                for step in self.annotated_fields
            ],
        }


def _callable_name(fn: Any) -> str:
    module = getattr(fn, "__module__", None)
    name = getattr(fn, "__qualname__", None) or repr(fn)
    return f"{module}.{name}" if module else name


def _qualify(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _append_unique(target: list[str], items: list[str]) -> None:
    for item in items:
        if item not in target:
            target.append(item)


# =============================================================================
# Compiler
# =============================================================================


def compile_view(
    view: ViewLike,
    fetch_specs: EntityFetchSpecs,
    context: FetchContext,
    relation_filters: RelationFilters | None = None,
    prefix: str = "",
) -> FetchPlan:
    """
    Compile a view description into a fetch plan.

    Args:
        view: View for the entity described by ``fetch_specs`` (list shorthand allowed)
        fetch_specs: Field fetch specs of that entity
        context: Fetch context, handed to relation context filters
        relation_filters: Extra filters keyed by absolute relation path
        prefix: Path of ``fetch_specs``'s entity from the root (used when recursing)

    Returns:
        The fetch plan

    Raises:
        InvalidViewFieldError: If a view field has no fetch spec
    """
    view = ViewDescription.coerce(view)
    relation_filters = relation_filters or {}
    plan = FetchPlan()

    for name in view.fields:
        spec = fetch_specs.spec(name)
        if spec is None:
            raise InvalidViewFieldError(name, view)

        match spec:
            case DbColumnFetchSpec() | FormulaFetchSpec():
                _append_unique(plan.local_fields, [_qualify(prefix, name)])
            case AnnotatedFetchSpec():
                _add_annotation(plan, AnnotationStep(path=prefix, annotate=spec.annotate))
            case RelationFetchSpec():
                # Relations are requested through view.relations only
                continue
            case _:
                assert_never(spec)

    for key, sub_view in view.relation_views():
        spec = fetch_specs.spec(key)
        if not isinstance(spec, RelationFetchSpec):
            logger.debug(
                "Skipping relation '%s' on %s: no relation fetch spec",
                _qualify(prefix, key),
                fetch_specs.entity_name,
            )
            continue

        path = _qualify(prefix, spec.populate)
        nested = compile_view(sub_view, spec.nested_specs(), context, relation_filters, path)

        context_filter = spec.default_context_filter(context) if spec.default_context_filter else None
        merged = and_filters(context_filter, relation_filters.get(path))

        if merged:
            plan.filtered_populates.append(
                FilteredPopulate(
                    populate=list(dict.fromkeys([path, *nested.local_populate])),
                    filter=nest_filter(path, merged),
                    fields=list(nested.local_fields),
                )
            )
        else:
            _append_unique(plan.local_populate, [path])
            _append_unique(plan.local_fields, nested.local_fields)
            _append_unique(plan.local_populate, nested.local_populate)

        plan.filtered_populates.extend(nested.filtered_populates)
        for step in nested.annotated_fields:
            _add_annotation(plan, step)

    return plan


def _add_annotation(plan: FetchPlan, step: AnnotationStep) -> None:
    """Record an annotation step unless the same annotator already runs at that path."""
    for existing in plan.annotated_fields:
        if existing.path == step.path and existing.annotate is step.annotate:
            return
    plan.annotated_fields.append(step)


def build_fetch_plan(
    view: ViewLike,
    fetch_specs: EntityFetchSpecs,
    context: FetchContext,
) -> dict[str, list[str]]:
    """
    Fields and populate paths for a single unfiltered ``find`` call.

    Filtered relations are folded into the plain populate set and annotated
    fields are ignored; use ``compile_view`` when either matters.
    """
    plan = compile_view(view, fetch_specs, context)
    fields = list(plan.local_fields)
    populate = list(plan.local_populate)
    for filtered in plan.filtered_populates:
        _append_unique(fields, filtered.fields)
        _append_unique(populate, filtered.populate)
    return {"fields": fields, "populate": populate}
