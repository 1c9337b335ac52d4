"""Writes that repair their own payload when the target relation rejects it.

The product relations are not under one schema, so a payload built for one of
them routinely carries columns the other lacks, or an owner reference the
target cannot satisfy yet. Each write runs a bounded loop per relation:

* unknown column: drop the column (and its camelCase/snake_case siblings) and retry
* unsatisfied owner reference: make sure the owner profile exists and retry once;
  if it happens again, give up on this relation and carry on with the string
  owner handle instead of the numeric id
* anything else: give up on this relation

When no relation accepts the write a ``WriteFailure`` lists every relation tried
with the last error seen there.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from src.config import RELATION_CONFIG, WRITE_MAX_ATTEMPTS
from src.db.table_store import Condition, ErrorKind, StoreError, TableStore, classify_store_error, table_store
from src.services.errors import WriteFailure
from src.services.field_normalizer import is_strict_int, key_variants, normalize_payment_methods
from src.services.owner_resolver import OwnerResolver, owner_resolver

logger = logging.getLogger(__name__)

EXHAUSTED = "exhausted"


@dataclass
class RelationAttempt:
    """What happened while writing to one relation."""

    relation: str
    attempts: int = 0
    owner_retried: bool = False
    removed_columns: list[str] = field(default_factory=list)
    last_error: StoreError | None = None
    skipped: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "relation": self.relation,
            "attempts": self.attempts,
            "removedColumns": self.removed_columns,
            "skipped": self.skipped,
            "lastError": self.last_error.to_dict() if self.last_error else None,
        }


@dataclass
class WriteResult:
    row: dict[str, Any] | None
    relation: str
    attempts: list[RelationAttempt]


def strip_key_variants(payload: dict[str, Any], key: str) -> list[str]:
    """Remove ``key`` and its camelCase/snake_case siblings from ``payload``; return what was removed."""
    removed = [variant for variant in key_variants(key) if variant in payload]
    for variant in removed:
        del payload[variant]
    return removed


class AdaptiveWriter:
    def __init__(
        self,
        store: TableStore,
        resolver: OwnerResolver,
        max_attempts: int = WRITE_MAX_ATTEMPTS,
        numeric_owner_relations: Sequence[str] = (RELATION_CONFIG["primary_product_relation"],),
        owner_column: str = "vendor_id",
        owner_key_column: str = "vendor",
    ):
        self.store = store
        self.owner_resolver = resolver
        self.max_attempts = max_attempts
        self.numeric_owner_relations = set(numeric_owner_relations)
        self.owner_column = owner_column
        self.owner_key_column = owner_key_column

    def _has_numeric_owner(self, payload: dict[str, Any]) -> bool:
        return is_strict_int(payload.get(self.owner_column))

    def _with_string_owner(self, payload: dict[str, Any], owner_key: str | None) -> dict[str, Any]:
        result = dict(payload)
        numeric = result.pop(self.owner_column, None)
        if not result.get(self.owner_key_column):
            handle = owner_key if owner_key else numeric
            if handle is not None:
                result[self.owner_key_column] = str(handle)
        return result

    def _finish(self, row: dict[str, Any] | None) -> dict[str, Any] | None:
        if row is not None and "payment_methods" in row:
            row["payment_methods"] = normalize_payment_methods(row["payment_methods"])
        return row

    async def _write_with_repairs(
        self,
        relation: str,
        payload: dict[str, Any],
        operation: Callable[[dict[str, Any]], Awaitable[list[dict[str, Any]]]],
        owner_key: str | None,
        attempt: RelationAttempt,
    ) -> tuple[list[dict[str, Any]] | None, ErrorKind | str | None]:
        """
        Run the bounded retry loop against one relation.

        ``payload`` is repaired in place. Returns ``(rows, None)`` on success,
        otherwise ``(None, reason)`` where reason is the ErrorKind that ended the
        loop or ``EXHAUSTED``.
        """
        while attempt.attempts < self.max_attempts:
            attempt.attempts += 1
            try:
                rows = await operation(payload)
            except StoreError as e:
                attempt.last_error = e
                kind, column = classify_store_error(e)

                if kind is ErrorKind.OWNER_REFERENCE:
                    if attempt.owner_retried:
                        logger.warning(f"Owner reference still unsatisfied in {relation}: {e.message}")
                        return None, kind
                    attempt.owner_retried = True
                    logger.info(f"Owner reference rejected by {relation}, ensuring profile for {owner_key}")
                    await self.owner_resolver.ensure_owner_profile_exists(owner_key)
                    continue

                if kind is ErrorKind.UNKNOWN_COLUMN and column:
                    removed = strip_key_variants(payload, column)
                    if removed:
                        attempt.removed_columns.extend(removed)
                        logger.info(f"Dropping unknown column(s) {removed} for {relation}")
                        continue

                logger.warning(f"Write into {relation} returned error (not retriable): {e.message}")
                return None, kind
            return rows, None

        logger.warning(f"Giving up on {relation} after {attempt.attempts} attempts")
        return None, EXHAUSTED

    async def insert(
        self,
        payload: dict[str, Any],
        candidate_relations: Sequence[str],
        owner_key: str | None = None,
    ) -> WriteResult:
        """
        Insert ``payload`` into the first candidate relation that accepts it.

        Args:
            payload: Row to insert; it is copied, never mutated
            candidate_relations: Relations to try, in order (primary, then fallback)
            owner_key: Owner key used for profile self-healing and as the string
                owner handle when falling back from the numeric reference

        Returns:
            WriteResult with the inserted row and the relation it landed in

        Raises:
            WriteFailure: when every candidate relation rejected the write
        """
        if owner_key is None:
            owner_key = payload.get(self.owner_key_column) or payload.get(self.owner_column)
        owner_key = str(owner_key) if owner_key is not None else None

        attempts: list[RelationAttempt] = []
        string_owner_only = False

        for relation in candidate_relations:
            attempt = RelationAttempt(relation)
            attempts.append(attempt)
            working = self._with_string_owner(payload, owner_key) if string_owner_only else dict(payload)

            if relation in self.numeric_owner_relations and not self._has_numeric_owner(working):
                handle = working.get(self.owner_key_column) or owner_key
                resolved = await self.owner_resolver.resolve_owner_key_to_numeric_id(handle)
                if resolved is None:
                    attempt.skipped = "no numeric owner reference"
                    logger.info(f"Skipping {relation}: owner {handle} has no numeric vendor id")
                    continue
                working[self.owner_column] = resolved
                working.pop(self.owner_key_column, None)

            rows, failure = await self._write_with_repairs(
                relation,
                working,
                lambda p, relation=relation: self.store.insert(relation, [p]),
                owner_key,
                attempt,
            )
            if failure is None:
                row = rows[0] if rows else working
                return WriteResult(self._finish(row), relation, attempts)

            if failure is ErrorKind.OWNER_REFERENCE:
                string_owner_only = True

        last = next((a.last_error for a in reversed(attempts) if a.last_error), None)
        logger.error(f"Failed to insert into any of {list(candidate_relations)}. Last error: {last!r}")
        raise WriteFailure("Failed to insert product into any known product table", attempts)

    async def update(
        self,
        relation: str,
        patch: dict[str, Any],
        *conditions: Condition,
        owner_key: str | None = None,
    ) -> WriteResult:
        """
        Update rows of one relation, repairing ``patch`` the same way inserts are repaired.

        Updates never move a row to another relation, so a patch the relation
        keeps rejecting ends in ``WriteFailure``.
        """
        attempt = RelationAttempt(relation)
        working = dict(patch)
        rows, failure = await self._write_with_repairs(
            relation,
            working,
            lambda p: self.store.update(relation, p, *conditions),
            owner_key,
            attempt,
        )
        if failure is not None:
            raise WriteFailure(f"Failed to update {relation}", [attempt])
        return WriteResult(self._finish(rows[0] if rows else None), relation, [attempt])


# Singleton instance
adaptive_writer = AdaptiveWriter(table_store, owner_resolver)
