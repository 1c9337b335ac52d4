"""Product catalog operations over the two product relations.

The canonical ``products`` relation references vendors by numeric id; the newer
``vendor_product`` relation keeps a free-text vendor handle. Reads locate rows
across both, writes go through the adaptive writer, and only the relation a
row was found in is ever updated or deleted.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from src.config import MEDIA_CONFIG, RELATION_CONFIG, SEARCH_PAGE_LIMIT
from src.db.media_store import MediaFile, MediaStore, extract_storage_path, media_store
from src.db.table_store import StoreError, TableStore, eq, table_store
from src.models.product_entity import ProductEntity
from src.services.adaptive_writer import AdaptiveWriter, adaptive_writer
from src.services.entity_locator import EntityLocator, entity_locator
from src.services.errors import AuthorizationFailure, EntityNotFound, MediaFailure, ServiceError, ValidationFailure
from src.services.field_normalizer import (
    is_strict_int,
    normalize_payment_methods,
    parse_discount_percent,
    parse_flag,
    parse_json_field,
    parse_number,
    strip_quotes,
)
from src.services.identity_service import Actor
from src.services.owner_resolver import OwnerResolver, owner_resolver
from src.services.pricing import compute_final_price

logger = logging.getLogger(__name__)

# Text fields matched by search, when the row has them
SEARCH_FIELDS = ("category", "name", "title", "description", "faqs", "highlight", "specifications", "tags")

PERCENT_KEYS = ("sale_percent", "sale", "discount")
ABSOLUTE_KEYS = ("discounted_price", "discountedPrice", "discount")
ORIGINAL_PRICE_KEYS = ("original_price", "originalPrice")

TEXT_FIELDS = ("name", "category", "description", "specifications", "title", "highlight")
JSON_FIELDS = ("faqs", "variants")
FLAG_FIELDS = {"hot": "hot", "new": "new", "lowstock": "lowstock", "lowStock": "lowstock"}
INFO_FIELDS = ("shipping_info", "return_info")


@dataclass(frozen=True)
class Catalog:
    """Which relations a set of routes reads from and where its media lives."""

    name: str
    relations: tuple[str, ...]
    bucket: str
    camel_case_info: bool = False  # the legacy products relation spells shippingInfo/returnInfo in camelCase


def _supplied(body: dict[str, Any], key: str) -> bool:
    value = body.get(key)
    return value is not None and not (isinstance(value, str) and value.strip() == "")


def _first_supplied(body: dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if _supplied(body, key):
            return body[key]
    return None


def _supplied_percent(body: dict[str, Any]) -> float | None:
    """The first percent-key value that parses as a discount. Text such as a sale label does not count."""
    for key in PERCENT_KEYS:
        if _supplied(body, key):
            percent = parse_discount_percent(body[key])
            if percent is not None:
                return percent
    return None


def _sale_label(body: dict[str, Any]) -> str | None:
    value = body.get("sale")
    if isinstance(value, str) and value.strip() and parse_discount_percent(value) is None:
        return value.strip()
    return None


def _non_negative(body: dict[str, Any], keys: Sequence[str]) -> float | None:
    """Parse the first supplied key as a number, rejecting negatives."""
    value = parse_number(_first_supplied(body, keys))
    if value is not None and value < 0:
        raise ValidationFailure(f"{keys[0]} must not be negative", field=keys[0])
    return value


def _stock(body: dict[str, Any]) -> int | None:
    stock = _non_negative(body, ("stock",))
    return int(stock) if stock is not None else None


def _info_key(field: str, camel_case: bool) -> str:
    if not camel_case:
        return field
    head, tail = field.split("_", 1)
    return head + tail.capitalize()


def _searchable_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def normalize_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is not None and "payment_methods" in row:
        row = {**row, "payment_methods": normalize_payment_methods(row["payment_methods"])}
    return row


def authorize_owner(actor: Actor, entity: ProductEntity):
    """Administrators may change anything; everyone else only products they own."""
    if actor.is_admin or entity.owner.matches(actor.id):
        return
    logger.warning(f"Actor {actor.id} denied access to product {entity.id} in {entity.relation}")
    raise AuthorizationFailure("Not authorized to modify this product")


class ProductService:
    def __init__(
        self,
        catalog: Catalog,
        store: TableStore = table_store,
        locator: EntityLocator = entity_locator,
        resolver: OwnerResolver = owner_resolver,
        writer: AdaptiveWriter = adaptive_writer,
        media: MediaStore = media_store,
        primary_relation: str = RELATION_CONFIG["primary_product_relation"],
        fallback_relation: str = RELATION_CONFIG["fallback_product_relation"],
        media_buckets: Sequence[str] = (MEDIA_CONFIG["vendor_product_bucket"], MEDIA_CONFIG["products_bucket"]),
        max_thumbnails: int = MEDIA_CONFIG["max_thumbnails"],
    ):
        self.catalog = catalog
        self.store = store
        self.locator = locator
        self.owner_resolver = resolver
        self.writer = writer
        self.media = media
        self.primary_relation = primary_relation
        self.fallback_relation = fallback_relation
        self.media_buckets = tuple(media_buckets)
        self.max_thumbnails = max_thumbnails

    # Media

    async def _upload_image(self, image: MediaFile) -> str:
        path = f"products/{uuid.uuid4()}.{image.extension}"
        try:
            return await self.media.upload(self.catalog.bucket, path, image.content, image.content_type)
        except Exception as e:
            logger.error(f"Image upload to {self.catalog.bucket} failed: {e}")
            raise MediaFailure("Failed to upload image") from e

    async def _upload_thumbnails(self, thumbnails: Sequence[MediaFile]) -> list[str]:
        urls = []
        for thumb in list(thumbnails)[: self.max_thumbnails]:
            path = f"thumbnails/{uuid.uuid4()}.{thumb.extension}"
            try:
                urls.append(await self.media.upload(self.catalog.bucket, path, thumb.content, thumb.content_type))
            except Exception as e:
                logger.warning(f"Thumbnail upload error (skipping): {e}")
        return urls

    async def remove_media(self, urls: Sequence[str]) -> list[str]:
        """Remove stored objects behind ``urls`` from every product bucket. Failures are logged, never raised."""
        by_bucket: dict[str, list[str]] = {bucket: [] for bucket in self.media_buckets}
        for url in urls:
            # a URL naming its bucket explicitly belongs to that bucket only
            owner = next((b for b in self.media_buckets if f"/object/public/{b}/" in url), None)
            for bucket in [owner] if owner else self.media_buckets:
                path = extract_storage_path(url, bucket)
                if path and path not in by_bucket[bucket]:
                    by_bucket[bucket].append(path)

        removed: list[str] = []
        for bucket, paths in by_bucket.items():
            if not paths:
                continue
            try:
                removed.extend(await self.media.remove(bucket, paths))
            except Exception as e:
                logger.warning(f"Failed to remove media from {bucket}: {e}")
        return removed

    # Owner reference

    async def _owner_for_create(self, actor: Actor, body: dict[str, Any]) -> tuple[str, int | None]:
        """Pick the owner key for a new product and upgrade it to a numeric vendor id when one exists."""
        explicit = _first_supplied(body, ("vendor_id", "vendor")) if actor.is_admin else None
        if explicit is not None:
            key = strip_quotes(explicit).strip()
            if is_strict_int(key):
                return key, int(key)
            return key, await self.owner_resolver.resolve_owner_key_to_numeric_id(key)

        key = strip_quotes(actor.id)
        if is_strict_int(key):
            return key, int(key)

        relation, row = await self.owner_resolver.find_owner_row_for_user(key)
        if row is not None:
            for column in ("vendor_id", "id"):
                if is_strict_int(row.get(column)):
                    return key, int(str(row[column]).strip())
            logger.info(f"Vendor row for {key} in {relation} has no numeric id")

        return key, await self.owner_resolver.resolve_owner_key_to_numeric_id(key)

    # Operations

    async def create_product(
        self,
        actor: Actor,
        body: dict[str, Any],
        image: MediaFile | None = None,
        thumbnails: Sequence[MediaFile] = (),
    ) -> dict[str, Any]:
        """
        Create a product owned by the actor (or, for administrators, by the vendor named in the body).

        Products whose owner resolves to a numeric vendor id go to the canonical
        relation first; otherwise they go straight to the vendor relation with
        the owner key as a string.

        Raises:
            ValidationFailure: when name or price is missing, or a price or the stock is negative
            MediaFailure: when the primary image cannot be stored
            WriteFailure: when no product relation accepts the row
        """
        name = body.get("name")
        if not _supplied(body, "name") or _first_supplied(body, ("price", *ORIGINAL_PRICE_KEYS)) is None:
            raise ValidationFailure("Missing required fields", required=["name", "price"])

        price = _non_negative(body, ("price",))
        original = _non_negative(body, ORIGINAL_PRICE_KEYS)
        if original is None:
            original = price or 0.0
        percent = _supplied_percent(body)
        fallback = _non_negative(body, ABSOLUTE_KEYS)

        payload: dict[str, Any] = {
            "name": str(name).strip(),
            "price": compute_final_price(original, percent, fallback),
            "original_price": original,
            "sale_percent": percent,
            "sale": _sale_label(body),
            "rating": parse_number(body.get("rating")) or 0,
            "stock": _stock(body) or 0,
        }

        for field in TEXT_FIELDS[1:]:
            if _supplied(body, field):
                payload[field] = body[field]
        for field in JSON_FIELDS:
            if _supplied(body, field):
                payload[field] = parse_json_field(body[field])
        for key, column in FLAG_FIELDS.items():
            if key in body:
                payload[column] = parse_flag(body[key])
        for field in INFO_FIELDS:
            value = _first_supplied(body, (field, _info_key(field, True)))
            if value is not None:
                payload[_info_key(field, self.catalog.camel_case_info)] = value
        if "payment_methods" in body:
            payload["payment_methods"] = normalize_payment_methods(body["payment_methods"]) or None
        if actor.is_admin and "admin" in body:
            payload["admin"] = parse_flag(body["admin"])

        if image is not None:
            payload["image"] = await self._upload_image(image)
        thumbnail_urls = await self._upload_thumbnails(thumbnails)
        if thumbnail_urls:
            payload["thumbnails"] = thumbnail_urls

        owner_key, numeric_owner = await self._owner_for_create(actor, body)
        if numeric_owner is not None:
            payload["vendor_id"] = numeric_owner
            relations = [self.primary_relation, self.fallback_relation]
        else:
            payload["vendor"] = owner_key
            relations = [self.fallback_relation]

        payload = {key: value for key, value in payload.items() if value is not None}
        result = await self.writer.insert(payload, relations, owner_key=owner_key)
        logger.info(f"Created product {result.row.get('id') if result.row else None} in {result.relation}")
        return {"product": result.row, "inserted_into": result.relation}

    async def list_products(self) -> dict[str, Any]:
        """All rows of the canonical relation, newest first."""
        rows = await self.store.select(self.primary_relation, order_by="created_at", descending=True)
        return {"products": [normalize_row(row) for row in rows]}

    async def get_product(self, product_id: str) -> dict[str, Any]:
        row, relation = await self.locator.find_entity_across_relations(product_id, self.catalog.relations)
        if row is None:
            raise EntityNotFound("Product not found", tried=list(self.catalog.relations))
        return {"product": normalize_row(row), "relation": relation}

    async def list_owner_products(self, owner_key: str) -> dict[str, Any]:
        """
        Products belonging to an owner key.

        An empty result is not an error. The diagnostics record which relations
        and owner columns were probed and whether the owner exists at all.
        """
        key = strip_quotes(owner_key or "").strip()
        if not key:
            raise ValidationFailure("Missing vendor ID")

        lookup = await self.locator.find_entities_by_owner(key, self.catalog.relations)
        owner_relation, _ = await self.owner_resolver.find_owner_by_identity(key)
        debug: dict[str, Any] = {
            "vendor_table_checked": owner_relation,
            "table_results": [probe.to_dict() for probe in lookup.diagnostics],
        }

        if lookup.entities:
            debug["relation"] = lookup.relation
            return {"products": [normalize_row(row) for row in lookup.entities], "debug": debug}

        if owner_relation is None:
            debug["message"] = f"No products found for vendor {key} and vendor not found in vendor tables."
        else:
            debug["message"] = f"Vendor found in table {owner_relation}, but no products returned."
        return {"products": [], "debug": debug}

    def _build_patch(self, body: dict[str, Any], current: dict[str, Any], entity: ProductEntity) -> dict[str, Any]:
        """Merge supplied fields over the current row. Fields that are not supplied never overwrite."""
        patch: dict[str, Any] = {}
        for field in TEXT_FIELDS:
            if _supplied(body, field):
                patch[field] = body[field]
        for field in JSON_FIELDS:
            if _supplied(body, field):
                patch[field] = parse_json_field(body[field])
        for key, column in FLAG_FIELDS.items():
            if key in body and body[key] is not None:
                patch[column] = parse_flag(body[key])
        for field in INFO_FIELDS:
            camel = _info_key(field, True)
            value = _first_supplied(body, (field, camel))
            if value is None:
                continue
            if field in current:
                patch[field] = value
            elif camel in current:
                patch[camel] = value
            else:
                patch[_info_key(field, self.catalog.camel_case_info)] = value
        stock = _stock(body)
        if stock is not None:
            patch["stock"] = stock
        if _supplied(body, "rating"):
            rating = parse_number(body["rating"])
            if rating is not None:
                patch["rating"] = rating
        if "payment_methods" in body and body["payment_methods"] is not None:
            patch["payment_methods"] = normalize_payment_methods(body["payment_methods"])

        sale_label = _sale_label(body)
        if sale_label is not None:
            patch["sale"] = sale_label

        # a sale label alone leaves price and discount as stored
        price = _non_negative(body, ("price",))
        base = _non_negative(body, ORIGINAL_PRICE_KEYS)
        supplied_percent = _supplied_percent(body)
        fallback = _non_negative(body, ABSOLUTE_KEYS)
        if any(value is not None for value in (price, base, supplied_percent, fallback)):
            if base is None:
                base = price
            if base is None:
                base = entity.original_price if entity.original_price is not None else entity.price
            percent = supplied_percent if supplied_percent is not None else entity.sale_percent

            patch["price"] = compute_final_price(base, percent, fallback)
            patch["original_price"] = base
            patch["sale_percent"] = percent
        return patch

    async def _locate(self, product_id: str) -> tuple[dict[str, Any], ProductEntity]:
        if not product_id or not str(product_id).strip():
            raise ValidationFailure("Missing product id")
        row, relation = await self.locator.find_entity_across_relations(product_id, self.catalog.relations)
        if row is None:
            raise EntityNotFound("Product not found")
        return row, ProductEntity.from_row(row, relation)

    async def update_product(
        self,
        actor: Actor,
        product_id: str,
        body: dict[str, Any],
        image: MediaFile | None = None,
        thumbnails: Sequence[MediaFile] = (),
    ) -> dict[str, Any]:
        """
        Update a product in the relation it was found in.

        The price is recomputed whenever a pricing field is supplied, using the
        supplied discount or else the stored one.
        """
        row, entity = await self._locate(product_id)
        authorize_owner(actor, entity)

        patch = self._build_patch(body, row, entity)

        replaced_image = None
        if image is not None:
            patch["image"] = await self._upload_image(image)
            if entity.image and entity.image != patch["image"]:
                replaced_image = entity.image
        thumbnail_urls = await self._upload_thumbnails(thumbnails)
        if thumbnail_urls:
            patch["thumbnails"] = thumbnail_urls

        owner_key = entity.owner.handle or entity.owner.text_id
        if owner_key is None and entity.owner.numeric_id is not None:
            owner_key = str(entity.owner.numeric_id)
        result = await self.writer.update(entity.relation, patch, eq("id", row["id"]), owner_key=owner_key)

        if replaced_image:
            await self.remove_media([replaced_image])

        return {"product": result.row, "updated_in": entity.relation}

    async def delete_product(self, actor: Actor, product_id: str) -> dict[str, Any]:
        """Delete a product and, best effort, the media attached to it."""
        row, entity = await self._locate(product_id)
        authorize_owner(actor, entity)

        removed = await self.remove_media(entity.media_urls())

        try:
            await self.store.delete(entity.relation, eq("id", row["id"]))
        except StoreError as e:
            logger.error(f"Failed to delete product {row['id']} from {entity.relation}: {e.message}")
            raise ServiceError("Failed to delete product", relation=entity.relation) from e

        logger.info(f"Deleted product {row['id']} from {entity.relation}")
        return {"deleted_id": row["id"], "deleted_from": entity.relation, "removed_files": removed}

    async def _search_page(self, relation: str) -> list[dict[str, Any]]:
        try:
            return await self.store.select(relation, limit=SEARCH_PAGE_LIMIT)
        except StoreError as e:
            logger.warning(f"Search query on {relation} failed: {e.message}")
            return []

    async def search_products(self, term: str | None) -> dict[str, Any]:
        """
        Case-insensitive substring search over both product relations.

        Only the search fields a row actually has are matched. Results are
        deduplicated by relation-qualified id and tagged with ``_source_key``.
        """
        needle = (term or "").strip().lower()
        if not needle:
            raise ValidationFailure("Missing search term")

        relations = [self.primary_relation, self.fallback_relation]
        pages = await asyncio.gather(*(self._search_page(relation) for relation in relations))

        results: dict[str, dict[str, Any]] = {}
        for relation, rows in zip(relations, pages):
            for row in rows:
                matched = any(
                    row.get(field) is not None and needle in _searchable_text(row[field]).lower()
                    for field in SEARCH_FIELDS
                    if field in row
                )
                if not matched:
                    continue
                source_key = f"{relation}:{row.get('id')}"
                if source_key not in results:
                    results[source_key] = {**normalize_row(row), "_source_key": source_key}

        return {"products": list(results.values())}


# Singleton instances
catalog_service = ProductService(
    Catalog(
        "admin",
        tuple(RELATION_CONFIG["product_relations_admin"]),
        MEDIA_CONFIG["products_bucket"],
        camel_case_info=True,
    )
)
vendor_catalog_service = ProductService(
    Catalog("vendor", tuple(RELATION_CONFIG["product_relations_vendor"]), MEDIA_CONFIG["vendor_product_bucket"])
)
