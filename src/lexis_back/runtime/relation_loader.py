"""
Relation loader for populating fetched records.

Loads one relation for a whole batch of parent records with a single query
(never one query per parent) and attaches the related records in place:
a dict (or None) for to-one relations, a list for to-many relations.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from lexis_back.runtime.query_builder import (
    FilterCompiler,
    FilterQuery,
    QueryBuilder,
    quote_identifier,
)
from lexis_back.runtime.repository import row_to_record
from lexis_back.specs.entity import EntitySpec, RelationKind, RelationSpec

logger = logging.getLogger(__name__)

Record = dict[str, Any]

_SOURCE_KEY = "__source_id"


@dataclass
class RelationRegistry:
    """
    Registry of relations between entities.

    Tracks all relations and provides lookup methods.
    """

    _relations: dict[str, list[RelationSpec]] = field(default_factory=dict)
    _by_name: dict[tuple[str, str], RelationSpec] = field(default_factory=dict)

    def register(self, entity_name: str, relation: RelationSpec) -> None:
        """Register a relation for an entity."""
        self._relations.setdefault(entity_name, []).append(relation)
        self._by_name[(entity_name, relation.name)] = relation

    def get_relations(self, entity_name: str) -> list[RelationSpec]:
        """Get all relations for an entity."""
        return self._relations.get(entity_name, [])

    def get_relation(self, entity_name: str, relation_name: str) -> RelationSpec | None:
        """Get a specific relation by name."""
        return self._by_name.get((entity_name, relation_name))

    @classmethod
    def from_entities(cls, entities: Iterable[EntitySpec]) -> RelationRegistry:
        """Build a relation registry from entity specifications."""
        registry = cls()
        for entity in entities:
            for relation in entity.relations:
                registry.register(entity.name, relation)
        return registry


def selection_for(schema: EntitySpec, fields: list[str] | None) -> list[str]:
    """
    Column/formula names to select for ``schema``.

    ``None`` selects every column. A list selects those fields plus ``id``.
    Source-side foreign keys are always selected so relations can be
    populated later without re-reading the row.
    """
    names = list(schema.column_names) if fields is None else ["id", *fields]
    for relation in schema.relations:
        if relation.fk_on_source and relation.foreign_key not in names:
            names.append(relation.foreign_key)
    return list(dict.fromkeys(names))


class RelationLoader:
    """
    Loads related entities for batches of records.

    Example:
        loader = RelationLoader(registry, entities)
        with db.connection() as conn:
            texts = loader.load(conn, "Collection", collections, "texts",
                                fields=["title"], where={"isPublic": True})
    """

    def __init__(
        self,
        registry: RelationRegistry,
        entities: Iterable[EntitySpec],
        compiler: FilterCompiler | None = None,
    ):
        """
        Initialize the relation loader.

        Args:
            registry: Relation registry
            entities: Entity specs (the persistence schema)
            compiler: Filter compiler (built from the entities if omitted)
        """
        self.registry = registry
        self.entity_map = {e.name: e for e in entities}
        self.compiler = compiler or FilterCompiler(self.entity_map)

    def load(
        self,
        conn: sqlite3.Connection,
        entity_name: str,
        records: list[Record],
        relation_name: str,
        fields: list[str] | None = None,
        where: FilterQuery | None = None,
    ) -> list[Record]:
        """
        Populate one relation on ``records``.

        Args:
            conn: SQLite connection
            entity_name: Entity type of ``records``
            records: Parent records (mutated in place)
            relation_name: Relation to populate
            fields: Fields of the related entity to select (None for all columns)
            where: Filter restricting which related rows are attached

        Returns:
            The related records that were attached (each distinct row once)
        """
        relation = self.registry.get_relation(entity_name, relation_name)
        if relation is None:
            raise ValueError(f"Unknown relation '{relation_name}' on {entity_name}")

        target = self.entity_map[relation.to_entity]

        if relation.fk_on_source:
            return self._load_to_one(conn, relation, target, records, fields, where)
        if relation.kind == RelationKind.MANY_TO_MANY:
            return self._load_many_to_many(conn, relation, target, records, fields, where)
        return self._load_by_back_reference(conn, relation, target, records, fields, where)

    def _builder(self, target: EntitySpec, fields: list[str] | None, where: FilterQuery | None) -> QueryBuilder:
        builder = QueryBuilder(schema=target, compiler=self.compiler)
        builder.select(selection_for(target, fields))
        builder.add_filter(where)
        return builder

    def _fetch(self, conn: sqlite3.Connection, target: EntitySpec, builder: QueryBuilder) -> list[Record]:
        sql, params = builder.build_select()
        logger.debug("relation query: %s %s", sql, params)
        cursor = conn.execute(sql, params)
        columns = [d[0] for d in cursor.description]
        return [row_to_record(target, dict(zip(columns, row))) for row in cursor.fetchall()]

    def _load_to_one(
        self,
        conn: sqlite3.Connection,
        relation: RelationSpec,
        target: EntitySpec,
        records: list[Record],
        fields: list[str] | None,
        where: FilterQuery | None,
    ) -> list[Record]:
        """Load a to-one relation whose FK is on the parent row."""
        fk_field = relation.foreign_key
        fk_values = list(dict.fromkeys(r.get(fk_field) for r in records if r.get(fk_field) is not None))

        related_map: dict[Any, Record] = {}
        if fk_values:
            builder = self._builder(target, fields, where)
            placeholders = ", ".join("?" * len(fk_values))
            builder.add_condition(f"{builder.alias}.{quote_identifier('id')} IN ({placeholders})", fk_values)
            related_map = {row["id"]: row for row in self._fetch(conn, target, builder)}

        # Parents pointing at the same row share one record object
        for record in records:
            record[relation.name] = related_map.get(record.get(fk_field))
        return list(related_map.values())

    def _load_by_back_reference(
        self,
        conn: sqlite3.Connection,
        relation: RelationSpec,
        target: EntitySpec,
        records: list[Record],
        fields: list[str] | None,
        where: FilterQuery | None,
    ) -> list[Record]:
        """Load a one-to-many (or inverse one-to-one) relation whose FK is on the target."""
        fk_field = relation.foreign_key
        ids = list(dict.fromkeys(r["id"] for r in records if r.get("id") is not None))

        grouped: dict[Any, list[Record]] = {}
        related: list[Record] = []
        if ids:
            builder = self._builder(target, [*(fields or []), fk_field] if fields is not None else None, where)
            placeholders = ", ".join("?" * len(ids))
            builder.add_condition(f"{builder.alias}.{quote_identifier(fk_field)} IN ({placeholders})", ids)
            builder.add_sorts(relation.order_by or ["id"])
            related = self._fetch(conn, target, builder)
            for row in related:
                grouped.setdefault(row.get(fk_field), []).append(row)

        for record in records:
            items = grouped.get(record.get("id"), [])
            if relation.is_to_one:
                record[relation.name] = items[0] if items else None
            else:
                record[relation.name] = items
        return related

    def _load_many_to_many(
        self,
        conn: sqlite3.Connection,
        relation: RelationSpec,
        target: EntitySpec,
        records: list[Record],
        fields: list[str] | None,
        where: FilterQuery | None,
    ) -> list[Record]:
        """Load a many-to-many relation through its join table."""
        ids = list(dict.fromkeys(r["id"] for r in records if r.get("id") is not None))

        grouped: dict[Any, list[Record]] = {}
        by_id: dict[Any, Record] = {}
        if ids:
            builder = self._builder(target, fields, where)
            join_alias = "j0"
            placeholders = ", ".join("?" * len(ids))
            source_ref = f"{join_alias}.{quote_identifier(relation.through_source_key)}"
            builder.joins.append(
                f"JOIN {quote_identifier(relation.through)} AS {join_alias} "
                f"ON {join_alias}.{quote_identifier(relation.through_target_key)} = "
                f"{builder.alias}.{quote_identifier('id')}"
            )
            builder.extra_columns.append(f"{source_ref} AS {quote_identifier(_SOURCE_KEY)}")
            builder.add_condition(f"{source_ref} IN ({placeholders})", ids)
            builder.add_sorts(relation.order_by or ["id"])

            sql, params = builder.build_select()
            logger.debug("relation query: %s %s", sql, params)
            cursor = conn.execute(sql, params)
            columns = [d[0] for d in cursor.description]
            for raw in cursor.fetchall():
                row = dict(zip(columns, raw))
                source_id = row.pop(_SOURCE_KEY)
                record = by_id.get(row["id"])
                if record is None:
                    record = by_id[row["id"]] = row_to_record(target, row)
                grouped.setdefault(source_id, []).append(record)

        for record in records:
            record[relation.name] = grouped.get(record.get("id"), [])
        return list(by_id.values())
