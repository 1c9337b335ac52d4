"""Shared fixtures: an in-memory tabular store and media store standing in for PostgreSQL and GridFS."""

import copy
import itertools
from typing import Any

import pytest

from src.config import RELATION_CONFIG
from src.db.table_store import Condition, StoreError
from src.services.adaptive_writer import AdaptiveWriter
from src.services.entity_locator import EntityLocator
from src.services.identity_service import Actor
from src.services.owner_resolver import OwnerResolver
from src.services.product_service import Catalog, ProductService
from src.services.vendor_service import VendorService

PRODUCT_COLUMNS = {
    "id", "name", "price", "original_price", "sale_percent", "sale", "rating", "stock", "vendor_id",
    "image", "thumbnails", "payment_methods", "category", "description", "specifications",
    "shippingInfo", "returnInfo", "faqs", "hot", "new", "lowstock", "admin", "created_at",
}
VENDOR_PRODUCT_COLUMNS = {
    "id", "name", "title", "highlight", "price", "original_price", "sale_percent", "sale", "rating", "stock",
    "vendor", "vendor_id", "image", "thumbnails", "payment_methods", "category", "description",
    "specifications", "shipping_info", "return_info", "faqs", "variants", "hot", "new", "lowstock", "created_at",
}
VENDOR_COLUMNS = {"id", "user_id", "vendor_name", "is_vendor", "vendor_active", "vendor_status", "demoted_at", "created_at"}
VENDOR_PROFILE_COLUMNS = {
    "id", "user_id", "vendor_name", "photo_url", "banner_url", "is_vendor", "demoted_at", "created_at", "updated_at",
}


def _matches(row: dict[str, Any], condition: Condition) -> bool:
    value = row.get(condition.column)
    if condition.operator == "eq":
        return value is not None and str(value) == str(condition.value)
    if condition.operator == "ilike":
        return value is not None and str(condition.value).lower() in str(value).lower()
    if condition.operator == "in":
        return value is not None and str(value) in {str(v) for v in condition.value}
    raise ValueError(condition.operator)


class FakeTableStore:
    """In-memory TableStore raising the same StoreErrors PostgreSQL would."""

    def __init__(self, schema: dict[str, set[str]], foreign_keys=None, not_null=None):
        self.columns = {relation: set(columns) for relation, columns in schema.items()}
        self.tables: dict[str, list[dict[str, Any]]] = {relation: [] for relation in schema}
        # (relation, column) -> (target relation, target column)
        self.foreign_keys: dict[tuple[str, str], tuple[str, str]] = foreign_keys or {}
        self.not_null: dict[str, set[str]] = not_null or {}
        self.write_errors: dict[str, StoreError] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self._ids = itertools.count(1000)

    def seed(self, relation: str, *rows: dict[str, Any]):
        for row in rows:
            self.tables[relation].append(dict(row))

    def calls_for(self, operation: str, relation: str | None = None) -> list[tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == operation and (relation is None or c[1] == relation)]

    def _check_relation(self, relation: str):
        if relation not in self.tables:
            raise StoreError(f'relation "public.{relation}" does not exist', relation=relation, code="42P01")

    def _check_columns(self, relation: str, columns):
        for column in columns:
            if column not in self.columns[relation]:
                raise StoreError(
                    f'column "{column}" of relation "{relation}" does not exist', relation=relation, code="42703"
                )

    def _check_constraints(self, relation: str, row: dict[str, Any], partial: bool = False):
        for column in self.not_null.get(relation, set()):
            if (not partial or column in row) and row.get(column) is None:
                raise StoreError(
                    f'null value in column "{column}" of relation "{relation}" violates not-null constraint',
                    relation=relation,
                    code="23502",
                    column=column,
                )
        for (fk_relation, column), (target, target_column) in self.foreign_keys.items():
            if fk_relation != relation or row.get(column) is None:
                continue
            if not any(str(r.get(target_column)) == str(row[column]) for r in self.tables.get(target, [])):
                raise StoreError(
                    f'insert or update on table "{relation}" violates foreign key constraint "{relation}_{column}_fkey"',
                    relation=relation,
                    code="23503",
                    detail=f'Key ({column})=({row[column]}) is not present in table "{target}".',
                    constraint=f"{relation}_{column}_fkey",
                )

    def _raise_injected(self, relation: str):
        if relation in self.write_errors:
            raise self.write_errors[relation]

    async def select(self, relation, *conditions, limit=None, order_by=None, descending=True):
        self.calls.append(("select", relation, conditions))
        self._check_relation(relation)
        self._check_columns(relation, [c.column for c in conditions])
        rows = [r for r in self.tables[relation] if all(_matches(r, c) for c in conditions)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, relation, rows):
        self.calls.append(("insert", relation, copy.deepcopy(list(rows))))
        self._check_relation(relation)
        self._raise_injected(relation)
        inserted = []
        for row in rows:
            self._check_columns(relation, row.keys())
            self._check_constraints(relation, row)
            stored = dict(row)
            stored.setdefault("id", next(self._ids))
            self.tables[relation].append(stored)
            inserted.append(copy.deepcopy(stored))
        return inserted

    async def update(self, relation, patch, *conditions):
        self.calls.append(("update", relation, dict(patch)))
        self._check_relation(relation)
        self._raise_injected(relation)
        self._check_columns(relation, [*patch.keys(), *(c.column for c in conditions)])
        self._check_constraints(relation, patch, partial=True)
        updated = []
        for row in self.tables[relation]:
            if all(_matches(row, c) for c in conditions):
                row.update(patch)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, relation, *conditions):
        self.calls.append(("delete", relation, conditions))
        self._check_relation(relation)
        self._check_columns(relation, [c.column for c in conditions])
        kept, removed = [], []
        for row in self.tables[relation]:
            (removed if all(_matches(row, c) for c in conditions) else kept).append(row)
        self.tables[relation] = kept
        return copy.deepcopy(removed)

    async def upsert(self, relation, row, conflict_column="id"):
        self.calls.append(("upsert", relation, dict(row)))
        self._check_relation(relation)
        self._check_columns(relation, row.keys())
        for existing in self.tables[relation]:
            if str(existing.get(conflict_column)) == str(row.get(conflict_column)):
                existing.update(row)
                return copy.deepcopy(existing)
        self.tables[relation].append(dict(row))
        return dict(row)


class FakeMediaStore:
    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.removed: list[tuple[str, list[str]]] = []
        self.fail_uploads = False
        self.fail_removals = False

    def public_url(self, bucket: str, path: str) -> str:
        return f"http://media.test/object/public/{bucket}/{path}"

    async def upload(self, bucket, path, data, content_type=None):
        if self.fail_uploads:
            raise ConnectionError("storage unavailable")
        self.objects[(bucket, path)] = data
        return self.public_url(bucket, path)

    async def remove(self, bucket, paths):
        if self.fail_removals:
            raise ConnectionError("storage unavailable")
        self.removed.append((bucket, list(paths)))
        return [p for p in paths if self.objects.pop((bucket, p), None) is not None]

    async def download(self, bucket, path):
        data = self.objects.get((bucket, path))
        return (data, "image/png") if data is not None else None


@pytest.fixture
def store():
    """Product and vendor relations as deployed: no ``vendor`` table and no joined view."""
    return FakeTableStore(
        {
            "products": PRODUCT_COLUMNS,
            "vendor_product": VENDOR_PRODUCT_COLUMNS,
            "vendors": VENDOR_COLUMNS,
            "vendor_profiles": VENDOR_PROFILE_COLUMNS,
        },
        foreign_keys={
            ("products", "vendor_id"): ("vendors", "id"),
            ("vendor_product", "vendor"): ("vendor_profiles", "id"),
        },
        not_null={"products": {"vendor_id"}},
    )


@pytest.fixture
def media():
    return FakeMediaStore()


@pytest.fixture
def resolver(store):
    return OwnerResolver(
        store,
        candidate_relations=RELATION_CONFIG["vendor_candidates"],
        profiles_relation=RELATION_CONFIG["vendor_profiles"],
        user_candidate_relations=RELATION_CONFIG["vendor_user_candidates"],
        view_candidate_relations=RELATION_CONFIG["vendor_view_candidates"],
    )


@pytest.fixture
def locator(store):
    return EntityLocator(store)


@pytest.fixture
def writer(store, resolver):
    return AdaptiveWriter(store, resolver)


@pytest.fixture
def vendor_products(store, locator, resolver, writer, media):
    return ProductService(
        Catalog("vendor", ("vendor_product", "products"), "vendor-product-bucket"),
        store=store,
        locator=locator,
        resolver=resolver,
        writer=writer,
        media=media,
    )


@pytest.fixture
def admin_products(store, locator, resolver, writer, media):
    return ProductService(
        Catalog("admin", ("products", "vendor_product"), "products", camel_case_info=True),
        store=store,
        locator=locator,
        resolver=resolver,
        writer=writer,
        media=media,
    )


@pytest.fixture
def vendors(store, resolver, locator, writer, media, vendor_products):
    return VendorService(
        store=store,
        resolver=resolver,
        locator=locator,
        writer=writer,
        media=media,
        products=vendor_products,
        product_relations=["products", "vendor_product"],
    )


@pytest.fixture
def vendor_actor():
    return Actor(id="abc-123")


@pytest.fixture
def other_actor():
    return Actor(id="zzz-999")


@pytest.fixture
def admin_actor():
    return Actor(id="admin-1", is_admin=True)
