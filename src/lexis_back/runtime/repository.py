"""
SQLite repository - persistence layer for view resolution.

Implements the two operations the view executor needs from storage:

- ``find(where, fields, populate)``: one query for the root rows plus one
  batched query per populated relation path
- ``populate(entities, paths, where, fields)``: load further relations onto
  records that were already fetched, with a filter scoped to the relation
  rows only

Records are plain dicts; relations are attached under their relation name.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lexis_back.runtime.query_builder import (
    FilterCompiler,
    FilterQuery,
    QueryBuilder,
    filter_at_path,
    quote_identifier,
)
from lexis_back.specs.entity import EntitySpec, FieldSpec, FieldType, ScalarType

if TYPE_CHECKING:
    from lexis_back.runtime.relation_loader import RelationLoader

logger = logging.getLogger(__name__)

Record = dict[str, Any]


# =============================================================================
# SQLite Type Mapping
# =============================================================================


def _scalar_type_to_sqlite(scalar_type: ScalarType) -> str:
    """Map scalar types to SQLite types."""
    mapping: dict[ScalarType, str] = {
        ScalarType.STR: "TEXT",
        ScalarType.TEXT: "TEXT",
        ScalarType.INT: "INTEGER",
        ScalarType.DECIMAL: "REAL",
        ScalarType.BOOL: "INTEGER",  # SQLite uses 0/1 for bool
        ScalarType.DATE: "TEXT",  # ISO format
        ScalarType.DATETIME: "TEXT",  # ISO format
        ScalarType.JSON: "TEXT",  # JSON as string
    }
    return mapping.get(scalar_type, "TEXT")


def _field_type_to_sqlite(field_type: FieldType) -> str:
    """Convert FieldType to SQLite column type."""
    if field_type.kind == "scalar" and field_type.scalar_type:
        return _scalar_type_to_sqlite(field_type.scalar_type)
    elif field_type.kind == "ref":
        return "INTEGER"
    return "TEXT"


def _python_to_sqlite(value: Any) -> Any:
    """Convert Python value to SQLite-compatible value."""
    if value is None:
        return None
    elif isinstance(value, bool):
        return 1 if value else 0
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _sqlite_to_python(value: Any, field_type: FieldType | None = None) -> Any:
    """Convert SQLite value to Python type based on field type."""
    if value is None or field_type is None:
        return value

    if field_type.kind == "scalar" and field_type.scalar_type:
        scalar = field_type.scalar_type
        if scalar == ScalarType.DATETIME:
            return datetime.fromisoformat(value)
        elif scalar == ScalarType.DATE:
            return date.fromisoformat(value)
        elif scalar == ScalarType.DECIMAL:
            return Decimal(str(value))
        elif scalar == ScalarType.BOOL:
            return bool(value)
        elif scalar == ScalarType.JSON:
            return json.loads(value) if value else None
    return value


def row_to_record(schema: EntitySpec, row: dict[str, Any]) -> Record:
    """Convert a raw row (column -> value) into a record with Python values."""
    record: Record = {}
    for key, value in row.items():
        spec = schema.get_field(key)
        if spec is not None:
            record[key] = _sqlite_to_python(value, spec.type)
            continue
        formula = schema.get_formula(key)
        record[key] = _sqlite_to_python(value, formula.type if formula else None)
    return record


# =============================================================================
# Database Manager
# =============================================================================


class DatabaseManager:
    """
    Manages the SQLite database file and schema.

    Handles table creation and gives annotators a place to run their own
    batched queries.
    """

    def __init__(self, db_path: str | Path = ".lexis/data.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection context manager.

        Commits on success, rolls back and re-raises on failure.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as dicts."""
        logger.debug("query: %s", sql)
        with self.connection() as conn:
            cursor = conn.execute(sql, list(params))
            columns = [d[0] for d in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def insert(self, table: str, data: dict[str, Any]) -> int:
        """Insert one row and return its id."""
        columns = ", ".join(quote_identifier(k) for k in data)
        placeholders = ", ".join("?" * len(data))
        values = [_python_to_sqlite(v) for v in data.values()]
        sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
        with self.connection() as conn:
            cursor = conn.execute(sql, values)
            return int(data["id"]) if "id" in data else int(cursor.lastrowid)

    def create_table(self, entity: EntitySpec) -> None:
        """Create a table for an entity if it doesn't exist."""
        sql = f"CREATE TABLE IF NOT EXISTS {quote_identifier(entity.name)} ({self._build_columns(entity)})"

        with self.connection() as conn:
            conn.execute(sql)
            for field in entity.fields:
                if field.indexed or field.type.kind == "ref":
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{entity.name}_{field.name} "
                        f"ON {quote_identifier(entity.name)}({quote_identifier(field.name)})"
                    )

    def _build_columns(self, entity: EntitySpec) -> str:
        """Build column definitions for CREATE TABLE."""
        columns = []
        if entity.get_field("id") is None:
            columns.append('"id" INTEGER PRIMARY KEY')
        for field in entity.fields:
            columns.append(self._build_column(field))
        return ", ".join(columns)

    def _build_column(self, field: FieldSpec) -> str:
        """Build a single column definition."""
        parts = [quote_identifier(field.name), _field_type_to_sqlite(field.type)]

        if field.name == "id":
            parts.append("PRIMARY KEY")
        elif field.required:
            parts.append("NOT NULL")

        if field.unique:
            parts.append("UNIQUE")

        if field.default is not None:
            default_val = _python_to_sqlite(field.default)
            if isinstance(default_val, str):
                escaped = default_val.replace("'", "''")
                parts.append(f"DEFAULT '{escaped}'")
            else:
                parts.append(f"DEFAULT {default_val}")

        if field.type.kind == "ref" and field.type.ref_entity:
            parts.append(f"REFERENCES {quote_identifier(field.type.ref_entity)}(\"id\") ON DELETE CASCADE")

        return " ".join(parts)

    def create_all_tables(self, entities: Iterable[EntitySpec]) -> list[str]:
        """Create tables for all entities; returns the names of tables that did not exist yet."""
        created = []
        for entity in entities:
            if not self.table_exists(entity.name):
                created.append(entity.name)
            self.create_table(entity)
        return created

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (table_name,),
            )
            return cursor.fetchone() is not None


# =============================================================================
# Repository
# =============================================================================


class SQLiteRepository:
    """
    SQLite repository for a single entity type.

    Fields and populate paths are dotted and qualified from this entity, e.g.
    ``fields=["title", "language.code"]`` with ``populate=["language"]``.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        entity_spec: EntitySpec,
        relation_loader: RelationLoader,
    ):
        """
        Initialize the repository.

        Args:
            db_manager: Database manager instance
            entity_spec: Entity specification
            relation_loader: Relation loader shared by all repositories
        """
        self.db = db_manager
        self.entity_spec = entity_spec
        self.table_name = entity_spec.name
        self._relation_loader = relation_loader

    @property
    def compiler(self) -> FilterCompiler:
        return self._relation_loader.compiler

    async def find(
        self,
        where: FilterQuery | None = None,
        fields: list[str] | None = None,
        populate: list[str] | None = None,
        order_by: str | list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        """
        Fetch root records and eagerly populate relations.

        Args:
            where: Filter on the root rows
            fields: Qualified fields to select (None for every column)
            populate: Relation paths to load unconditionally
            order_by: Sort field(s), prefix with - for descending (defaults to id)
            limit: Maximum number of root rows
            offset: Number of root rows to skip

        Returns:
            Root records with the requested relations attached
        """
        from lexis_back.runtime.relation_loader import selection_for

        root_fields = None if fields is None else [f for f in fields if "." not in f]
        builder = QueryBuilder(schema=self.entity_spec, compiler=self.compiler)
        builder.select(selection_for(self.entity_spec, root_fields))
        builder.add_filter(where)
        builder.add_sorts(order_by or ["id"])
        builder.set_pagination(limit, offset)
        sql, params = builder.build_select()

        with self.db.connection() as conn:
            logger.debug("find %s: %s %s", self.table_name, sql, params)
            cursor = conn.execute(sql, params)
            columns = [d[0] for d in cursor.description]
            records = [row_to_record(self.entity_spec, dict(zip(columns, row))) for row in cursor.fetchall()]

            if populate and records:
                self._populate_paths(conn, records, populate, fields)

        return records

    async def populate(
        self,
        entities: list[Record],
        paths: list[str],
        where: FilterQuery | None = None,
        fields: list[str] | None = None,
    ) -> None:
        """
        Load relations onto already-fetched records, in place.

        ``where`` is qualified from this entity (``{"texts": {...}}``) and
        restricts only the rows of the first path in ``paths``; the root
        records are never re-queried or dropped. Later paths load everything
        below the filtered relation.
        """
        if not entities or not paths:
            return
        with self.db.connection() as conn:
            self._populate_paths(conn, entities, paths, fields, where=where, filter_path=paths[0])

    async def count(self, where: FilterQuery | None = None) -> int:
        """Count root rows matching a filter."""
        builder = QueryBuilder(schema=self.entity_spec, compiler=self.compiler)
        builder.add_filter(where)
        sql, params = builder.build_count()
        with self.db.connection() as conn:
            return int(conn.execute(sql, params).fetchone()[0])

    async def create(self, data: dict[str, Any]) -> Record:
        """Insert a row and return it as a record."""
        new_id = self.db.insert(self.table_name, data)
        return {**data, "id": new_id}

    def _populate_paths(
        self,
        conn: sqlite3.Connection,
        roots: list[Record],
        paths: list[str],
        fields: list[str] | None,
        where: FilterQuery | None = None,
        filter_path: str | None = None,
    ) -> None:
        # Parents before children
        for path in sorted(dict.fromkeys(paths), key=lambda p: p.count(".")):
            parent_path, _, relation_name = path.rpartition(".")
            parent_entity = self._entity_at(parent_path)
            parents = _records_at(roots, parent_path)
            if not parents:
                continue
            sub_where = filter_at_path(where, path) if path == filter_path else None
            self._relation_loader.load(
                conn,
                parent_entity,
                parents,
                relation_name,
                fields=_fields_under(fields, path),
                where=sub_where,
            )

    def _entity_at(self, path: str) -> str:
        """Entity type reached by following relation names along ``path``."""
        entity_name = self.table_name
        if not path:
            return entity_name
        for segment in path.split("."):
            relation = self._relation_loader.registry.get_relation(entity_name, segment)
            if relation is None:
                raise ValueError(f"Unknown relation '{segment}' on {entity_name} (path '{path}')")
            entity_name = relation.to_entity
        return entity_name


def _records_at(roots: list[Record], path: str) -> list[Record]:
    """Distinct records reachable from ``roots`` along an already-populated path."""
    current = roots
    if path:
        for segment in path.split("."):
            found: list[Record] = []
            for record in current:
                value = record.get(segment)
                if isinstance(value, list):
                    found.extend(value)
                elif isinstance(value, dict):
                    found.append(value)
            current = found
    seen: set[int] = set()
    distinct = []
    for record in current:
        if id(record) not in seen:
            seen.add(id(record))
            distinct.append(record)
    return distinct


def _fields_under(fields: list[str] | None, path: str) -> list[str] | None:
    """Direct fields of the relation at ``path`` from a list of qualified fields."""
    if fields is None:
        return None
    prefix = f"{path}."
    return [f[len(prefix):] for f in fields if f.startswith(prefix) and "." not in f[len(prefix):]]


# =============================================================================
# Repository Factory
# =============================================================================


class RepositoryFactory:
    """
    Factory for creating repositories from entity specifications.
    """

    def __init__(self, db_manager: DatabaseManager, entities: Iterable[EntitySpec]):
        """
        Initialize the factory.

        Args:
            db_manager: Database manager
            entities: The persistence schema
        """
        from lexis_back.runtime.relation_loader import RelationLoader, RelationRegistry

        self.db = db_manager
        self.entities = {e.name: e for e in entities}
        self.relation_loader = RelationLoader(
            RelationRegistry.from_entities(self.entities.values()),
            self.entities.values(),
        )
        self._repositories: dict[str, SQLiteRepository] = {}

    def create_repository(self, entity: EntitySpec) -> SQLiteRepository:
        """Create a repository for an entity."""
        repo = SQLiteRepository(
            db_manager=self.db,
            entity_spec=entity,
            relation_loader=self.relation_loader,
        )
        self._repositories[entity.name] = repo
        return repo

    def create_all_repositories(self) -> dict[str, SQLiteRepository]:
        """Create repositories for all entities."""
        for entity in self.entities.values():
            self.create_repository(entity)
        return self._repositories

    def get_repository(self, entity_name: str) -> SQLiteRepository:
        """Get (creating on first use) the repository for an entity."""
        repo = self._repositories.get(entity_name)
        if repo is None:
            entity = self.entities.get(entity_name)
            if entity is None:
                raise ValueError(f"No schema found for entity: {entity_name}")
            repo = self.create_repository(entity)
        return repo
