"""
Query builder for filter queries, sorting and pagination.

Filters use the ORM filter dialect that fetch specs and callers speak:

    {"isPublic": True}                               column equality
    {"level": {"$gte": 2, "$lt": 5}}                 operator map
    {"code": ["en", "fr"]}                           IN
    {"collection": None}                             to-one FK IS NULL
    {"addedBy": 7}                                   to-one FK equality
    {"collection": {"isPublic": True}}               condition on the related row
    {"learners": 7}                                  many-to-many membership
    {"$and": [...]}, {"$or": [...]}, {"$not": {...}}  logical combinators

Everything is compiled to SQL with bound parameters; values are never
interpolated into the statement text.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from lexis_back.runtime.errors import InvalidFilterError
from lexis_back.specs.entity import EntitySpec, FormulaSpec, RelationKind, RelationSpec

FilterQuery = dict[str, Any]

# Valid SQL identifier pattern (alphanumeric and underscore, not starting with digit)
_VALID_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_sql_identifier(name: str, context: str = "identifier") -> str:
    """
    Validate that a string is a safe SQL identifier.

    Raises:
        ValueError: If the name contains invalid characters
    """
    if not name:
        raise ValueError(f"SQL {context} cannot be empty")
    if not _VALID_IDENTIFIER_PATTERN.match(name):
        raise ValueError(
            f"Invalid SQL {context} '{name}': must contain only letters, digits, "
            "and underscores, and cannot start with a digit"
        )
    return name


def quote_identifier(name: str, context: str = "identifier") -> str:
    """Validate and double-quote an identifier (column names are camelCase)."""
    return f'"{validate_sql_identifier(name, context)}"'


class FilterOperator(str, Enum):
    """Supported comparison operators."""

    EQ = "$eq"
    NE = "$ne"
    GT = "$gt"
    GTE = "$gte"
    LT = "$lt"
    LTE = "$lte"
    IN = "$in"
    NIN = "$nin"
    LIKE = "$like"
    ILIKE = "$ilike"


LOGICAL_OPERATORS = frozenset({"$and", "$or", "$not"})
COMPARISON_OPERATORS = frozenset(op.value for op in FilterOperator)

OPERATOR_SQL: dict[FilterOperator, str] = {
    FilterOperator.EQ: "{field} = ?",
    FilterOperator.NE: "{field} != ?",
    FilterOperator.GT: "{field} > ?",
    FilterOperator.GTE: "{field} >= ?",
    FilterOperator.LT: "{field} < ?",
    FilterOperator.LTE: "{field} <= ?",
    FilterOperator.IN: "{field} IN ({placeholders})",
    FilterOperator.NIN: "{field} NOT IN ({placeholders})",
    FilterOperator.LIKE: "{field} LIKE ?",
    FilterOperator.ILIKE: "LOWER({field}) LIKE LOWER(?)",
}


def convert_value(value: Any) -> Any:
    """Convert a Python value to a SQLite-compatible parameter."""
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
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, (list, tuple, set, frozenset)):
        return [convert_value(v) for v in value]
    else:
        return value


# =============================================================================
# Filter Combinators
# =============================================================================


def and_filters(*filters: FilterQuery | None) -> FilterQuery | None:
    """
    Logical AND of filters, skipping empty ones.

    One filter is returned unchanged; two or more become ``{"$and": [...]}``.
    """
    present = [f for f in filters if f]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return {"$and": present}


def nest_filter(path: str, filter_query: FilterQuery) -> FilterQuery:
    """
    Qualify a filter with a dotted relation path.

    ``nest_filter("texts.language", {"code": "en"})`` ->
    ``{"texts": {"language": {"code": "en"}}}``
    """
    result: FilterQuery = filter_query
    for key in reversed(path.split(".")):
        result = {key: result}
    return result


def filter_at_path(where: FilterQuery | None, path: str) -> FilterQuery | None:
    """
    Extract the filter qualified by ``path`` from a nested filter.

    Returns None if ``where`` has no condition at exactly that path.
    """
    current: Any = where
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current if isinstance(current, dict) else None


# =============================================================================
# Filter Compiler
# =============================================================================


@dataclass
class FilterCompiler:
    """
    Compiles filter queries against the persistence schema.

    Relation conditions are rewritten as ``IN (SELECT ...)`` sub-queries so a
    filter on related rows never multiplies or drops rows of the filtered
    entity.
    """

    schemas: dict[str, EntitySpec]
    _aliases: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    def entity(self, name: str) -> EntitySpec:
        schema = self.schemas.get(name)
        if schema is None:
            raise InvalidFilterError(f"Unknown entity '{name}' in filter")
        return schema

    def next_alias(self) -> str:
        return f"s{next(self._aliases)}"

    def compile(
        self, entity_name: str, filter_query: FilterQuery | None, alias: str
    ) -> tuple[str, list[Any]]:
        """
        Compile a filter into a SQL boolean expression.

        Args:
            entity_name: Entity the filter applies to
            filter_query: Filter in the ORM dialect (None/empty matches everything)
            alias: Table alias of the filtered rows

        Returns:
            Tuple of (sql_fragment, parameters)
        """
        if not filter_query:
            return "1 = 1", []
        if not isinstance(filter_query, dict):
            raise InvalidFilterError(
                f"Filter on {entity_name} must be a mapping, got {type(filter_query).__name__}",
                filter_query,
            )

        schema = self.entity(entity_name)
        fragments: list[str] = []
        params: list[Any] = []

        for key, value in filter_query.items():
            if key in LOGICAL_OPERATORS:
                sql, key_params = self._compile_logical(schema, key, value, alias)
            elif key.startswith("$"):
                raise InvalidFilterError(f"Unsupported operator '{key}' on {schema.name}", filter_query)
            elif (relation := schema.get_relation(key)) is not None:
                sql, key_params = self._compile_relation(schema, relation, value, alias)
            elif key == "id" or schema.get_field(key) is not None:
                sql, key_params = self._compile_comparison(f"{alias}.{quote_identifier(key)}", value)
            elif (formula := schema.get_formula(key)) is not None:
                sql, key_params = self._compile_comparison(formula.render(alias), value)
            else:
                raise InvalidFilterError(f"Unknown field '{key}' in filter on {schema.name}", filter_query)
            fragments.append(sql)
            params.extend(key_params)

        if len(fragments) == 1:
            return fragments[0], params
        return "(" + " AND ".join(fragments) + ")", params

    def _compile_logical(
        self, schema: EntitySpec, operator: str, value: Any, alias: str
    ) -> tuple[str, list[Any]]:
        if operator == "$not":
            sql, params = self.compile(schema.name, value, alias)
            return f"NOT ({sql})", params

        if not isinstance(value, (list, tuple)):
            raise InvalidFilterError(f"'{operator}' expects a list of filters", value)
        if not value:
            # Empty conjunction is true, empty disjunction is false
            return ("1 = 1" if operator == "$and" else "1 = 0"), []

        joiner = " AND " if operator == "$and" else " OR "
        fragments: list[str] = []
        params: list[Any] = []
        for sub in value:
            sql, sub_params = self.compile(schema.name, sub, alias)
            fragments.append(sql)
            params.extend(sub_params)
        return "(" + joiner.join(fragments) + ")", params

    def _compile_comparison(self, field_ref: str, value: Any) -> tuple[str, list[Any]]:
        """Compile ``field: value`` where value is a literal, list or operator map."""
        if isinstance(value, dict):
            if not value:
                return "1 = 1", []
            fragments: list[str] = []
            params: list[Any] = []
            for op_key, op_value in value.items():
                try:
                    operator = FilterOperator(op_key)
                except ValueError:
                    raise InvalidFilterError(f"Unsupported operator '{op_key}'", value) from None
                sql, op_params = self._operator_sql(field_ref, operator, op_value)
                fragments.append(sql)
                params.extend(op_params)
            if len(fragments) == 1:
                return fragments[0], params
            return "(" + " AND ".join(fragments) + ")", params

        if isinstance(value, (list, tuple, set, frozenset)):
            return self._operator_sql(field_ref, FilterOperator.IN, value)
        return self._operator_sql(field_ref, FilterOperator.EQ, value)

    def _operator_sql(
        self, field_ref: str, operator: FilterOperator, value: Any
    ) -> tuple[str, list[Any]]:
        converted = convert_value(value)

        if operator in (FilterOperator.EQ, FilterOperator.NE) and converted is None:
            return (f"{field_ref} IS NULL" if operator == FilterOperator.EQ else f"{field_ref} IS NOT NULL"), []

        if operator in (FilterOperator.IN, FilterOperator.NIN):
            if not isinstance(converted, list):
                converted = [converted]
            if not converted:
                return ("1 = 0" if operator == FilterOperator.IN else "1 = 1"), []
            placeholders = ", ".join("?" * len(converted))
            return OPERATOR_SQL[operator].format(field=field_ref, placeholders=placeholders), converted

        return OPERATOR_SQL[operator].format(field=field_ref), [converted]

    def _compile_relation(
        self, schema: EntitySpec, relation: RelationSpec, value: Any, alias: str
    ) -> tuple[str, list[Any]]:
        """Compile a condition on a relation into an FK comparison or sub-query."""
        target = self.entity(relation.to_entity)
        id_ref = f"{alias}.{quote_identifier('id')}"

        # Comparison on the related id: None, a literal, a list, or {"$eq": ...}
        is_id_comparison = not isinstance(value, dict) or (
            bool(value) and set(value) <= COMPARISON_OPERATORS
        )

        if relation.fk_on_source:
            fk_ref = f"{alias}.{quote_identifier(relation.foreign_key)}"
            if is_id_comparison:
                return self._compile_comparison(fk_ref, value)
            sub_alias = self.next_alias()
            sub_sql, sub_params = self.compile(target.name, value, sub_alias)
            return (
                f"{fk_ref} IN (SELECT {sub_alias}.{quote_identifier('id')} "
                f"FROM {quote_identifier(target.name)} AS {sub_alias} WHERE {sub_sql})",
                sub_params,
            )

        if relation.kind == RelationKind.MANY_TO_MANY:
            join_alias = self.next_alias()
            src = f"{join_alias}.{quote_identifier(relation.through_source_key)}"
            tgt = f"{join_alias}.{quote_identifier(relation.through_target_key)}"
            if is_id_comparison:
                cond_sql, cond_params = self._compile_comparison(tgt, value)
            else:
                sub_alias = self.next_alias()
                sub_sql, cond_params = self.compile(target.name, value, sub_alias)
                cond_sql = (
                    f"{tgt} IN (SELECT {sub_alias}.{quote_identifier('id')} "
                    f"FROM {quote_identifier(target.name)} AS {sub_alias} WHERE {sub_sql})"
                )
            return (
                f"{id_ref} IN (SELECT {src} FROM {quote_identifier(relation.through)} AS {join_alias} "
                f"WHERE {cond_sql})",
                cond_params,
            )

        # FK on the target (one_to_many, inverse one_to_one)
        sub_alias = self.next_alias()
        back_ref = f"{sub_alias}.{quote_identifier(relation.foreign_key)}"
        if value is None:
            return (
                f"{id_ref} NOT IN (SELECT {back_ref} FROM {quote_identifier(target.name)} AS {sub_alias} "
                f"WHERE {back_ref} IS NOT NULL)",
                [],
            )
        if is_id_comparison:
            cond_sql, cond_params = self._compile_comparison(
                f"{sub_alias}.{quote_identifier('id')}", value
            )
        else:
            cond_sql, cond_params = self.compile(target.name, value, sub_alias)
        return (
            f"{id_ref} IN (SELECT {back_ref} FROM {quote_identifier(target.name)} AS {sub_alias} "
            f"WHERE {cond_sql})",
            cond_params,
        )


# =============================================================================
# Sorting
# =============================================================================


@dataclass
class SortField:
    """A single sort field."""

    field: str
    descending: bool = False

    @classmethod
    def parse(cls, sort_str: str) -> SortField:
        """
        Parse a sort string into a SortField.

        Examples:
            - "addedOn" -> SortField(field="addedOn", descending=False)
            - "-addedOn" -> SortField(field="addedOn", descending=True)
        """
        descending = sort_str.startswith("-")
        return cls(field=sort_str[1:] if descending else sort_str, descending=descending)

    def to_sql(self, field_ref: str) -> str:
        """Convert to SQL ORDER BY fragment."""
        direction = "DESC" if self.descending else "ASC"
        return f"{field_ref} {direction}"


# =============================================================================
# Query Builder
# =============================================================================


@dataclass
class QueryBuilder:
    """
    Builds SELECT statements for one entity.

    Example:
        builder = QueryBuilder(schema=text_schema, compiler=compiler)
        builder.select(["id", "title", "pastViewersCount"])
        builder.add_filter({"isPublic": True})
        builder.add_sorts(["-addedOn"])
        builder.set_pagination(limit=20, offset=40)

        sql, params = builder.build_select()
    """

    schema: EntitySpec
    compiler: FilterCompiler
    alias: str = "t0"
    columns: list[str] = field(default_factory=list)
    formulas: list[FormulaSpec] = field(default_factory=list)
    extra_columns: list[str] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)
    conditions: list[tuple[str, list[Any]]] = field(default_factory=list)
    sorts: list[SortField] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None

    def __post_init__(self) -> None:
        validate_sql_identifier(self.schema.name, "table name")
        validate_sql_identifier(self.alias, "table alias")

    def select(self, names: list[str]) -> QueryBuilder:
        """Select columns and formulas by field name (``id`` is always selected)."""
        for name in ["id", *names]:
            if name in self.columns or any(f.name == name for f in self.formulas):
                continue
            formula = self.schema.get_formula(name)
            if formula is not None:
                self.formulas.append(formula)
            elif name == "id" or self.schema.get_field(name) is not None:
                self.columns.append(name)
            else:
                raise InvalidFilterError(f"Unknown column '{name}' on {self.schema.name}")
        return self

    def select_all(self) -> QueryBuilder:
        return self.select(self.schema.column_names)

    def add_filter(self, filter_query: FilterQuery | None) -> QueryBuilder:
        """AND a filter query onto the WHERE clause."""
        if filter_query:
            self.conditions.append(self.compiler.compile(self.schema.name, filter_query, self.alias))
        return self

    def add_condition(self, sql: str, params: list[Any]) -> QueryBuilder:
        """AND a raw, already-parameterised condition onto the WHERE clause."""
        self.conditions.append((sql, params))
        return self

    def add_sorts(self, sorts: str | list[str] | None) -> QueryBuilder:
        if not sorts:
            return self
        if isinstance(sorts, str):
            sorts = [sorts]
        for sort_str in sorts:
            self.sorts.append(SortField.parse(sort_str))
        return self

    def set_pagination(self, limit: int | None, offset: int | None = None) -> QueryBuilder:
        self.limit = limit
        self.offset = offset
        return self

    def column_ref(self, name: str) -> str:
        formula = self.schema.get_formula(name)
        if formula is not None:
            return formula.render(self.alias)
        return f"{self.alias}.{quote_identifier(name)}"

    def build_where_clause(self) -> tuple[str, list[Any]]:
        if not self.conditions:
            return "", []
        params: list[Any] = []
        for _, condition_params in self.conditions:
            params.extend(condition_params)
        return "WHERE " + " AND ".join(sql for sql, _ in self.conditions), params

    def build_order_clause(self) -> str:
        if not self.sorts:
            return ""
        return "ORDER BY " + ", ".join(s.to_sql(self.column_ref(s.field)) for s in self.sorts)

    def build_select(self, count_only: bool = False) -> tuple[str, list[Any]]:
        """
        Build the complete SELECT statement.

        Returns:
            Tuple of (sql, parameters)
        """
        table = " ".join([f"{quote_identifier(self.schema.name)} AS {self.alias}", *self.joins])
        if count_only:
            select = f"SELECT COUNT(*) FROM {table}"
        else:
            if not self.columns and not self.formulas:
                self.select_all()
            parts = [f"{self.alias}.{quote_identifier(c)}" for c in self.columns]
            parts += [f"{f.render(self.alias)} AS {quote_identifier(f.name)}" for f in self.formulas]
            parts += self.extra_columns
            select = f"SELECT {', '.join(parts)} FROM {table}"

        where_clause, params = self.build_where_clause()
        query_parts = [select]
        if where_clause:
            query_parts.append(where_clause)

        if not count_only:
            order_clause = self.build_order_clause()
            if order_clause:
                query_parts.append(order_clause)
            if self.limit is not None:
                query_parts.append("LIMIT ? OFFSET ?")
                params.extend([self.limit, self.offset or 0])
            elif self.offset:
                query_parts.append("LIMIT -1 OFFSET ?")
                params.append(self.offset)

        return " ".join(query_parts), params

    def build_count(self) -> tuple[str, list[Any]]:
        return self.build_select(count_only=True)
