"""Generic tabular store over PostgreSQL.

Every relation is reached through the same five operations (select, insert,
update, delete, upsert). Rows are plain dicts because the product relations do
not share a column set. Database errors are translated into ``StoreError`` and
classified into an ``ErrorKind`` here, so the message matching needed for
stores that do not report SQLSTATE codes stays in this module.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Protocol

import anyio
import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json

from src.db.postgres_client import db

logger = logging.getLogger(__name__)

# Columns holding the owner (vendor) reference in the product relations
OWNER_COLUMNS = ("vendor_id", "vendor")

_UNKNOWN_COLUMN_PATTERNS = (
    re.compile(r'column "([^"]+)"(?: of relation "[^"]+")? does not exist', re.IGNORECASE),
    re.compile(r"could not find the '([^']+)' column", re.IGNORECASE),
)
_NOT_NULL_PATTERN = re.compile(r'null value in column "([^"]+)"', re.IGNORECASE)
_UNKNOWN_RELATION_PATTERN = re.compile(
    r'relation "[^"]+" does not exist|could not find the table', re.IGNORECASE
)


class ErrorKind(str, Enum):
    OWNER_REFERENCE = "owner_reference"
    UNKNOWN_COLUMN = "unknown_column"
    UNKNOWN_RELATION = "unknown_relation"
    OTHER = "other"


class StoreError(Exception):
    """An error reported by the backing store for one relation."""

    def __init__(
        self,
        message: str,
        *,
        relation: str | None = None,
        code: str | None = None,
        detail: str | None = None,
        column: str | None = None,
        constraint: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.relation = relation
        self.code = code
        self.detail = detail
        self.column = column
        self.constraint = constraint

    @classmethod
    def from_psycopg2(cls, error: psycopg2.Error, relation: str | None = None) -> "StoreError":
        diag = getattr(error, "diag", None)
        message = (getattr(diag, "message_primary", None) or str(error)).strip()
        return cls(
            message,
            relation=relation,
            code=getattr(error, "pgcode", None),
            detail=getattr(diag, "message_detail", None),
            column=getattr(diag, "column_name", None),
            constraint=getattr(diag, "constraint_name", None),
        )

    @property
    def kind(self) -> ErrorKind:
        return classify_store_error(self)[0]

    @property
    def missing_column(self) -> str | None:
        kind, column = classify_store_error(self)
        return column if kind is ErrorKind.UNKNOWN_COLUMN else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "relation": self.relation,
            "message": self.message,
            "code": self.code,
            "detail": self.detail,
            "kind": self.kind.value,
        }

    def __repr__(self):
        return f"<StoreError(relation={self.relation}, code={self.code}, message={self.message})>"


def _classify_by_code(error: StoreError, owner_columns: Sequence[str]) -> tuple[ErrorKind, str | None]:
    if error.code == "23503":
        return ErrorKind.OWNER_REFERENCE, error.column
    if error.code == "23502" and error.column in owner_columns:
        return ErrorKind.OWNER_REFERENCE, error.column
    if error.code in ("42703", "PGRST204"):
        column = error.column
        if column is None:
            column = _match_unknown_column(f"{error.message} {error.detail or ''}")
        return ErrorKind.UNKNOWN_COLUMN, column
    if error.code in ("42P01", "PGRST205"):
        return ErrorKind.UNKNOWN_RELATION, None
    return ErrorKind.OTHER, None


def _match_unknown_column(text: str) -> str | None:
    for pattern in _UNKNOWN_COLUMN_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _classify_by_text(error: StoreError, owner_columns: Sequence[str]) -> tuple[ErrorKind, str | None]:
    text = f"{error.message} {error.detail or ''}"
    lowered = text.lower()

    if "foreign key" in lowered or "23503" in lowered:
        return ErrorKind.OWNER_REFERENCE, None

    not_null = _NOT_NULL_PATTERN.search(text)
    if not_null and not_null.group(1) in owner_columns:
        return ErrorKind.OWNER_REFERENCE, not_null.group(1)

    column = _match_unknown_column(text)
    if column:
        return ErrorKind.UNKNOWN_COLUMN, column

    if _UNKNOWN_RELATION_PATTERN.search(text):
        return ErrorKind.UNKNOWN_RELATION, None
    return ErrorKind.OTHER, None


def classify_store_error(
    error: StoreError, owner_columns: Sequence[str] = OWNER_COLUMNS
) -> tuple[ErrorKind, str | None]:
    """Classify a store error, returning its kind and the column it names (if any).

    SQLSTATE codes are used when the store reports one; otherwise the message
    and detail text are matched against the known PostgreSQL/PostgREST wording.
    """
    if error.code:
        kind, column = _classify_by_code(error, owner_columns)
        if kind is not ErrorKind.OTHER:
            return kind, column
    return _classify_by_text(error, owner_columns)


@dataclass(frozen=True)
class Condition:
    column: str
    value: Any
    operator: str = "eq"


def eq(column: str, value: Any) -> Condition:
    return Condition(column, value, "eq")


def ilike(column: str, value: str) -> Condition:
    """Case-insensitive substring match."""
    return Condition(column, value, "ilike")


def is_in(column: str, values: Iterable[Any]) -> Condition:
    return Condition(column, tuple(values), "in")


class TableStore(Protocol):
    async def select(
        self,
        relation: str,
        *conditions: Condition,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = True,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, relation: str, rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]: ...

    async def update(self, relation: str, patch: dict[str, Any], *conditions: Condition) -> list[dict[str, Any]]: ...

    async def delete(self, relation: str, *conditions: Condition) -> list[dict[str, Any]]: ...

    async def upsert(self, relation: str, row: dict[str, Any], conflict_column: str = "id") -> dict[str, Any]: ...


def _adapt(value: Any) -> Any:
    if isinstance(value, dict):
        return Json(value)
    if isinstance(value, (list, tuple)) and any(isinstance(item, dict) for item in value):
        return Json(list(value))
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return value


def _where(conditions: Sequence[Condition]) -> tuple[sql.Composable, list[Any]]:
    if not conditions:
        return sql.SQL(""), []

    clauses = []
    params: list[Any] = []
    for condition in conditions:
        column = sql.Identifier(condition.column)
        if condition.operator == "eq":
            clauses.append(sql.SQL("{} = %s").format(column))
            params.append(condition.value)
        elif condition.operator == "ilike":
            clauses.append(sql.SQL("{}::text ILIKE %s").format(column))
            params.append(f"%{condition.value}%")
        elif condition.operator == "in":
            clauses.append(sql.SQL("{} = ANY(%s)").format(column))
            params.append(list(condition.value))
        else:
            raise ValueError(f"Unsupported filter operator: {condition.operator}")

    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


class PostgresTableStore:
    """TableStore backed by PostgreSQL through psycopg2.

    psycopg2 is blocking, so each call runs in a worker thread and the calling
    task suspends until it returns.
    """

    def __init__(self, connection=db):
        self.db = connection

    def _execute(self, relation: str, statements: list[tuple[sql.Composable, list[Any]]]) -> list[dict[str, Any]]:
        try:
            with self.db.get_cursor() as cursor:
                rows: list[dict[str, Any]] = []
                for query, params in statements:
                    cursor.execute(query, params)
                    if cursor.description is not None:
                        rows.extend(dict(row) for row in cursor.fetchall())
                return rows
        except psycopg2.Error as e:
            raise StoreError.from_psycopg2(e, relation) from e

    async def _run(self, relation: str, statements: list[tuple[sql.Composable, list[Any]]]) -> list[dict[str, Any]]:
        return await anyio.to_thread.run_sync(partial(self._execute, relation, statements))

    async def select(
        self,
        relation: str,
        *conditions: Condition,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        where, params = _where(conditions)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(relation)) + where
        if order_by:
            direction = sql.SQL(" DESC") if descending else sql.SQL(" ASC")
            query += sql.SQL(" ORDER BY {}").format(sql.Identifier(order_by)) + direction
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        return await self._run(relation, [(query, params)])

    async def insert(self, relation: str, rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        statements = []
        for row in rows:
            columns = list(row.keys())
            query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
                sql.Identifier(relation),
                sql.SQL(", ").join(map(sql.Identifier, columns)),
                sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            )
            statements.append((query, [_adapt(row[column]) for column in columns]))
        return await self._run(relation, statements)

    async def update(self, relation: str, patch: dict[str, Any], *conditions: Condition) -> list[dict[str, Any]]:
        if not conditions:
            raise ValueError("Refusing to update without a filter")
        if not patch:
            return await self.select(relation, *conditions)

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in patch
        )
        where, where_params = _where(conditions)
        query = (
            sql.SQL("UPDATE {} SET ").format(sql.Identifier(relation))
            + assignments
            + where
            + sql.SQL(" RETURNING *")
        )
        params = [_adapt(value) for value in patch.values()] + where_params
        return await self._run(relation, [(query, params)])

    async def delete(self, relation: str, *conditions: Condition) -> list[dict[str, Any]]:
        if not conditions:
            raise ValueError("Refusing to delete without a filter")
        where, params = _where(conditions)
        query = sql.SQL("DELETE FROM {}").format(sql.Identifier(relation)) + where + sql.SQL(" RETURNING *")
        return await self._run(relation, [(query, params)])

    async def upsert(self, relation: str, row: dict[str, Any], conflict_column: str = "id") -> dict[str, Any]:
        columns = list(row.keys())
        updated = [column for column in columns if column != conflict_column] or [conflict_column]
        query = sql.SQL(
            "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {} RETURNING *"
        ).format(
            sql.Identifier(relation),
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            sql.Identifier(conflict_column),
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(column), sql.Identifier(column))
                for column in updated
            ),
        )
        rows = await self._run(relation, [(query, [_adapt(row[column]) for column in columns])])
        return rows[0] if rows else {}


# Singleton instance
table_store = PostgresTableStore()
