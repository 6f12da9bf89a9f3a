"""
View execution.

Runs a compiled fetch plan end to end:

1. compile the view
2. primary ``find`` with the unconditional fields and populate paths
3. one ``populate`` call per filtered relation, against the fetched roots
4. annotators, one at a time in plan order, over the records at their path

Nothing here catches errors: compile/path errors and repository errors reach
the caller unchanged and no partial graph is returned.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from lexis_back.runtime.fetch_plan import FetchPlan, RelationFilters, compile_view
from lexis_back.runtime.path_resolver import resolve_at_path
from lexis_back.runtime.query_builder import FilterQuery
from lexis_back.specs.context import FetchContext
from lexis_back.specs.fetch_spec import EntityFetchSpecs, FetchSpecRegistry, Record
from lexis_back.specs.view import ViewLike

logger = logging.getLogger(__name__)


class EntityRepository(Protocol):
    """The persistence surface view execution depends on."""

    async def find(
        self,
        where: FilterQuery | None = None,
        fields: list[str] | None = None,
        populate: list[str] | None = None,
        order_by: str | list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]: ...

    async def populate(
        self,
        entities: list[Record],
        paths: list[str],
        where: FilterQuery | None = None,
        fields: list[str] | None = None,
    ) -> None: ...


async def run_plan(
    plan: FetchPlan,
    repository: EntityRepository,
    where: FilterQuery | None,
    fetch_specs: EntityFetchSpecs,
    context: FetchContext,
    *,
    order_by: str | list[str] | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[Record]:
    """Execute an already-compiled plan."""
    started = time.perf_counter()
    results = await repository.find(
        where,
        fields=plan.local_fields,
        populate=plan.local_populate,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    logger.debug(
        "%s: primary find returned %d record(s) in %.1fms",
        fetch_specs.entity_name,
        len(results),
        (time.perf_counter() - started) * 1000,
    )

    for filtered in plan.filtered_populates:
        step_started = time.perf_counter()
        await repository.populate(results, filtered.populate, where=filtered.filter, fields=filtered.fields)
        logger.debug(
            "%s: populated %s in %.1fms",
            fetch_specs.entity_name,
            filtered.populate,
            (time.perf_counter() - step_started) * 1000,
        )

    for step in plan.annotated_fields:
        targets = resolve_at_path(fetch_specs, step.path, results)
        outcome = step.annotate(targets, context)
        if inspect.isawaitable(outcome):
            await outcome
        logger.debug(
            "%s: annotated %d record(s) at '%s'",
            fetch_specs.entity_name,
            len(targets),
            step.path,
        )

    return results


async def execute_view(
    repository: EntityRepository,
    where: FilterQuery | None,
    relation_filters: RelationFilters | None,
    view: ViewLike,
    fetch_specs: EntityFetchSpecs,
    context: FetchContext,
    *,
    order_by: str | list[str] | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[Record]:
    """
    Fetch the records matching ``where`` shaped by ``view``.

    Args:
        repository: Repository of the root entity
        where: Filter on the root records
        relation_filters: Extra filters keyed by relation path
        view: What to fetch
        fetch_specs: Fetch specs of the root entity
        context: Fetch context
        order_by: Sort of the root records
        limit: Maximum number of root records
        offset: Number of root records to skip

    Returns:
        Root records with every requested field populated or annotated
    """
    plan = compile_view(view, fetch_specs, context, relation_filters)
    logger.debug(
        "%s plan: %d field(s), %d populate path(s), %d filtered populate(s), %d annotator(s)",
        fetch_specs.entity_name,
        len(plan.local_fields),
        len(plan.local_populate),
        len(plan.filtered_populates),
        len(plan.annotated_fields),
    )
    return await run_plan(
        plan,
        repository,
        where,
        fetch_specs,
        context,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )


async def execute_view_one(
    repository: EntityRepository,
    where: FilterQuery | None,
    relation_filters: RelationFilters | None,
    view: ViewLike,
    fetch_specs: EntityFetchSpecs,
    context: FetchContext,
) -> Record | None:
    """Like ``execute_view`` but return the first record, or None."""
    results = await execute_view(
        repository, where, relation_filters, view, fetch_specs, context, limit=1
    )
    return results[0] if results else None


class ViewResolver:
    """
    Resolves views by entity name.

    Binds a fetch spec registry to a repository lookup so request handlers
    only name the entity.

    Example:
        resolver = ViewResolver(registry, factory.get_repository)
        texts = await resolver.resolve("Text", {"isPublic": True}, TEXT_VIEW, context)
    """

    def __init__(
        self,
        registry: FetchSpecRegistry,
        repositories: Callable[[str], EntityRepository],
        max_page_size: int | None = None,
    ):
        self.registry = registry
        self.repositories = repositories
        self.max_page_size = max_page_size

    def plan(
        self,
        entity_name: str,
        view: ViewLike,
        context: FetchContext,
        relation_filters: RelationFilters | None = None,
    ) -> FetchPlan:
        return compile_view(view, self.registry.get(entity_name), context, relation_filters)

    async def resolve(
        self,
        entity_name: str,
        where: FilterQuery | None,
        view: ViewLike,
        context: FetchContext,
        relation_filters: RelationFilters | None = None,
        **options: Any,
    ) -> list[Record]:
        """Resolve a view; ``options`` are order_by, limit and offset."""
        fetch_specs = self.registry.get(entity_name)
        limit = options.get("limit")
        if self.max_page_size is not None:
            limit = self.max_page_size if limit is None else min(limit, self.max_page_size)
        return await execute_view(
            self.repositories(entity_name),
            where,
            relation_filters,
            view,
            fetch_specs,
            context,
            order_by=options.get("order_by"),
            limit=limit,
            offset=options.get("offset"),
        )

    async def resolve_one(
        self,
        entity_name: str,
        where: FilterQuery | None,
        view: ViewLike,
        context: FetchContext,
        relation_filters: RelationFilters | None = None,
    ) -> Record | None:
        fetch_specs = self.registry.get(entity_name)
        return await execute_view_one(
            self.repositories(entity_name),
            where,
            relation_filters,
            view,
            fetch_specs,
            context,
        )
