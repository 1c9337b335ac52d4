"""Resolution of vendor (owner) keys across the vendor relations.

Vendor rows live in several independently evolved relations (a core table,
read-oriented views and a profile table). Lookups walk a configured, ordered
list of candidates and the first match wins; duplicates across relations are
never reconciled.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from src.config import RELATION_CONFIG
from src.db.table_store import StoreError, TableStore, eq, is_in, table_store
from src.services.errors import EntityNotFound
from src.services.field_normalizer import is_strict_int

logger = logging.getLogger(__name__)

DISPLAY_NAME_FIELDS = ("vendor_name", "display_name", "name", "company_name", "username")


class OwnerResolver:
    def __init__(
        self,
        store: TableStore,
        candidate_relations: Sequence[str],
        profiles_relation: str,
        user_candidate_relations: Sequence[str] | None = None,
        view_candidate_relations: Sequence[str] | None = None,
    ):
        self.store = store
        self.candidate_relations = list(candidate_relations)
        self.profiles_relation = profiles_relation
        self.user_candidate_relations = list(user_candidate_relations or candidate_relations)
        self.view_candidate_relations = list(view_candidate_relations or candidate_relations)

    async def _first_row(self, relation: str, column: str, value: Any) -> dict[str, Any] | None:
        """Return the first row of ``relation`` where ``column == value``; lookup errors count as no match."""
        try:
            rows = await self.store.select(relation, eq(column, value), limit=1)
        except StoreError as e:
            logger.warning(f"Vendor lookup on {relation}.{column}={value} failed: {e.message}")
            return None
        return rows[0] if rows else None

    async def resolve_owner_key_to_numeric_id(self, key: str | None) -> int | None:
        """
        Upgrade an owner key into a strict numeric vendor id.

        Each candidate relation is searched by ``id`` and then by ``user_id``.
        The first row found decides: its ``vendor_id`` if strictly numeric, else
        its ``id`` if strictly numeric. Returns None when no candidate yields a
        numeric reference, in which case callers keep the string form.
        """
        if not key:
            return None

        for relation in self.candidate_relations:
            row = await self._first_row(relation, "id", key)
            if row is None:
                row = await self._first_row(relation, "user_id", key)
            if row is None:
                continue

            if is_strict_int(row.get("vendor_id")):
                return int(str(row["vendor_id"]).strip())
            if is_strict_int(row.get("id")):
                return int(str(row["id"]).strip())
            logger.info(f"Vendor {key} found in {relation} without a numeric id")

        return None

    async def find_owner_by_identity(self, raw_id: str) -> tuple[str | None, dict[str, Any] | None]:
        """Return ``(relation, row)`` of the first candidate holding a row with ``id == raw_id``, else ``(None, None)``."""
        for relation in self.candidate_relations:
            row = await self._first_row(relation, "id", raw_id)
            if row is not None:
                return relation, row
        return None, None

    async def find_owner_row_for_user(self, user_id: str) -> tuple[str | None, dict[str, Any] | None]:
        """Find the vendor row linked to an auth user, trying ``user_id`` before ``id`` in each relation."""
        for relation in self.user_candidate_relations:
            row = await self._first_row(relation, "user_id", user_id)
            if row is None:
                row = await self._first_row(relation, "id", user_id)
            if row is not None:
                return relation, row
        return None, None

    async def ensure_owner_profile_exists(self, owner_id: str | int | None) -> bool:
        """
        Upsert a minimal profile row so a write referencing ``owner_id`` can satisfy its foreign key.

        Never raises: failures are logged and reported as False.
        """
        if owner_id is None or str(owner_id).strip() == "":
            return False

        payload = {"id": str(owner_id), "created_at": datetime.now(timezone.utc).isoformat()}
        try:
            row = await self.store.upsert(self.profiles_relation, payload)
        except StoreError as e:
            logger.warning(f"Failed to upsert {self.profiles_relation} row for {owner_id}: {e.message}")
            return False
        except Exception as e:
            logger.warning(f"Unexpected error upserting {self.profiles_relation} row for {owner_id}: {e}")
            return False
        return bool(row)

    async def get_vendor(self, vendor_id: str) -> dict[str, Any]:
        """Public vendor lookup, preferring the joined view. Raises EntityNotFound."""
        for relation in self.view_candidate_relations:
            row = await self._first_row(relation, "id", vendor_id)
            if row is None:
                continue
            vendor_name = next((row[field] for field in DISPLAY_NAME_FIELDS if row.get(field)), None)
            return {"id": row.get("id", vendor_id), "vendor_name": vendor_name, "raw": row}

        raise EntityNotFound("Vendor not found")

    async def validate_vendor_ids(self, ids: Sequence[Any]) -> list[str]:
        """Return the subset of ``ids`` that have a row in the profile relation."""
        wanted = [str(i) for i in ids]
        if not wanted:
            return []
        rows = await self.store.select(self.profiles_relation, is_in("id", wanted))
        return [str(row["id"]) for row in rows]


# Singleton instance
owner_resolver = OwnerResolver(
    table_store,
    candidate_relations=RELATION_CONFIG["vendor_candidates"],
    profiles_relation=RELATION_CONFIG["vendor_profiles"],
    user_candidate_relations=RELATION_CONFIG["vendor_user_candidates"],
    view_candidate_relations=RELATION_CONFIG["vendor_view_candidates"],
)
