"""Locating product rows whose owning relation is not known up front."""

import hashlib
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.db.table_store import StoreError, TableStore, eq, table_store
from src.services.field_normalizer import is_strict_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnerColumn:
    """One encoding of the owner reference to probe."""

    column: str
    as_number: bool = False

    @property
    def label(self) -> str:
        return f"{self.column} (num?)" if self.as_number else self.column


# Probe order: numeric-typed column, string-typed column, alternate column name
DEFAULT_OWNER_COLUMNS = (
    OwnerColumn("vendor_id", as_number=True),
    OwnerColumn("vendor_id"),
    OwnerColumn("vendor"),
)


@dataclass
class RelationProbe:
    relation: str
    rows_found: int = 0
    tried_columns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.relation, "rowsFound": self.rows_found, "triedColumns": self.tried_columns}


@dataclass
class OwnerLookup:
    entities: list[dict[str, Any]]
    diagnostics: list[RelationProbe]
    relation: str | None = None  # the productive relation, if any


def _timestamp(value: Any) -> float:
    """Sort key for ``created_at``; missing or unparsable timestamps sort as epoch zero."""
    if isinstance(value, str) and value:
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return 0.0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0.0


def sort_by_recency(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda row: _timestamp(row.get("created_at")), reverse=True)


def identity_key(row: dict[str, Any], relation: str) -> str:
    """Key used to merge rows: the row id, or a relation-qualified digest of the row when it has none."""
    if row.get("id") is not None:
        return str(row["id"])
    digest = hashlib.md5(json.dumps(row, sort_keys=True, default=str).encode()).hexdigest()
    return f"{relation}:{digest}"


class EntityLocator:
    def __init__(self, store: TableStore, owner_columns: Sequence[OwnerColumn] = DEFAULT_OWNER_COLUMNS):
        self.store = store
        self.owner_columns = tuple(owner_columns)

    async def find_entity_across_relations(
        self, entity_id: str, candidate_relations: Sequence[str]
    ) -> tuple[dict[str, Any] | None, str | None]:
        """
        Find a product by id.

        Relations are probed in the given order and the first one holding a
        matching row wins. Probe errors (missing relation, id of the wrong type
        for the column) are logged and treated as no match.

        Returns:
            ``(row, relation)``, or ``(None, None)`` when no relation has the id
        """
        for relation in candidate_relations:
            try:
                rows = await self.store.select(relation, eq("id", entity_id))
            except StoreError as e:
                logger.warning(f"Error querying {relation} for id={entity_id}: {e.message}")
                continue
            if rows:
                return rows[0], relation
        return None, None

    async def _probe_owner_columns(
        self, relation: str, owner_key: str
    ) -> tuple[dict[str, dict[str, Any]], RelationProbe]:
        """Probe every owner column encoding in one relation, merging matches by identity."""
        merged: dict[str, dict[str, Any]] = {}
        probe = RelationProbe(relation)
        for owner_column in self.owner_columns:
            probe.tried_columns.append(owner_column.label)
            value: Any = owner_key
            if owner_column.as_number and is_strict_int(owner_key):
                value = int(str(owner_key).strip())
            try:
                rows = await self.store.select(relation, eq(owner_column.column, value))
            except StoreError as e:
                logger.warning(f"Query error for {relation}.{owner_column.column}={value}: {e.message}")
                continue
            probe.rows_found += len(rows)
            for row in rows:
                merged[identity_key(row, relation)] = row
        return merged, probe

    async def find_entities_by_owner(self, owner_key: str, candidate_relations: Sequence[str]) -> OwnerLookup:
        """
        Find the products belonging to an owner key.

        Within a relation every owner column encoding is probed and the results
        are merged by identity. Probing stops at the first relation that yields
        any row, so rows held only by a later relation are not returned once an
        earlier one is productive. The merged rows are ordered newest first.
        """
        diagnostics: list[RelationProbe] = []
        for relation in candidate_relations:
            merged, probe = await self._probe_owner_columns(relation, owner_key)
            diagnostics.append(probe)
            if probe.rows_found > 0:
                return OwnerLookup(sort_by_recency(list(merged.values())), diagnostics, relation)

        return OwnerLookup([], diagnostics)

    async def find_all_entities_by_owner(
        self, owner_key: str, candidate_relations: Sequence[str]
    ) -> tuple[dict[str, list[dict[str, Any]]], list[RelationProbe]]:
        """Like ``find_entities_by_owner`` but probes every relation, returning the rows grouped by relation."""
        by_relation: dict[str, list[dict[str, Any]]] = {}
        diagnostics: list[RelationProbe] = []
        for relation in candidate_relations:
            merged, probe = await self._probe_owner_columns(relation, owner_key)
            diagnostics.append(probe)
            if merged:
                by_relation[relation] = sort_by_recency(list(merged.values()))
        return by_relation, diagnostics


# Singleton instance
entity_locator = EntityLocator(table_store)
