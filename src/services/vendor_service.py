"""Vendor lookups, profiles and vendor lifecycle (removal, demotion)."""

import logging
from datetime import datetime, timezone
from typing import Any

from src.config import MEDIA_CONFIG, RELATION_CONFIG
from src.db.media_store import MediaFile, MediaStore, media_store
from src.db.table_store import StoreError, TableStore, eq, is_in, table_store
from src.models.product_entity import ProductEntity
from src.services.adaptive_writer import AdaptiveWriter, adaptive_writer
from src.services.entity_locator import EntityLocator, entity_locator
from src.services.errors import AuthorizationFailure, MediaFailure, ServiceError, ValidationFailure, WriteFailure
from src.services.field_normalizer import strip_quotes
from src.services.identity_service import Actor
from src.services.owner_resolver import OwnerResolver, owner_resolver
from src.services.product_service import ProductService, vendor_catalog_service

logger = logging.getLogger(__name__)


def _demotion_fields() -> dict[str, Any]:
    return {
        "is_vendor": False,
        "vendor_active": False,
        "vendor_status": "demoted",
        "demoted_at": datetime.now(timezone.utc).isoformat(),
    }


class VendorService:
    def __init__(
        self,
        store: TableStore = table_store,
        resolver: OwnerResolver = owner_resolver,
        locator: EntityLocator = entity_locator,
        writer: AdaptiveWriter = adaptive_writer,
        media: MediaStore = media_store,
        products: ProductService = vendor_catalog_service,
        product_relations: list[str] | None = None,
        profiles_bucket: str = MEDIA_CONFIG["vendor_profiles_bucket"],
    ):
        self.store = store
        self.owner_resolver = resolver
        self.locator = locator
        self.writer = writer
        self.media = media
        self.products = products
        self.product_relations = product_relations or RELATION_CONFIG["product_relations_admin"]
        self.profiles_bucket = profiles_bucket

    def _vendor_relations(self) -> list[str]:
        relations = list(self.owner_resolver.candidate_relations)
        if self.owner_resolver.profiles_relation not in relations:
            relations.append(self.owner_resolver.profiles_relation)
        return relations

    async def get_vendor(self, vendor_id: str) -> dict[str, Any]:
        vendor_id = strip_quotes(vendor_id or "").strip()
        if not vendor_id:
            raise ValidationFailure("Missing id")
        return {"vendor": await self.owner_resolver.get_vendor(vendor_id)}

    async def validate_vendors(self, vendor_ids: Any) -> dict[str, Any]:
        """Report which of the given vendor ids have a profile."""
        if not isinstance(vendor_ids, list) or not vendor_ids:
            return {"existing": []}
        try:
            existing = await self.owner_resolver.validate_vendor_ids(vendor_ids)
        except StoreError as e:
            logger.warning(f"Error validating vendor ids: {e.message}")
            raise ServiceError("Validation failed") from e
        return {"existing": existing}

    async def _upload_profile_image(self, folder: str, actor: Actor, file: MediaFile) -> str:
        path = f"{folder}/{actor.id}.{file.extension}"
        try:
            return await self.media.upload(self.profiles_bucket, path, file.content, file.content_type)
        except Exception as e:
            logger.error(f"Upload of {path} failed: {e}")
            raise MediaFailure(f"Failed to upload {'profile photo' if folder == 'profiles' else 'banner'}") from e

    async def upsert_vendor_profile(
        self,
        actor: Actor,
        photo: MediaFile | None = None,
        banner: MediaFile | None = None,
        vendor_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Create or update the actor's vendor profile.

        Uploaded images are stored under a path derived from the actor id, so a
        new upload replaces the previous one.
        """
        row: dict[str, Any] = {"id": actor.id, "updated_at": datetime.now(timezone.utc).isoformat()}
        if photo is not None:
            row["photo_url"] = await self._upload_profile_image("profiles", actor, photo)
        if banner is not None:
            row["banner_url"] = await self._upload_profile_image("banners", actor, banner)
        if vendor_name:
            row["vendor_name"] = vendor_name

        relation = self.owner_resolver.profiles_relation
        try:
            profile = await self.store.upsert(relation, row)
        except StoreError as e:
            logger.error(f"Profile upsert into {relation} failed: {e.message}")
            raise ServiceError("Failed to create/update profile", relation=relation) from e
        if not profile:
            raise ServiceError("No profile data created")
        return {"profile": profile}

    async def delete_vendor(self, actor: Actor, vendor_id: str) -> dict[str, Any]:
        """
        Remove a vendor with all of their products and product media. Administrators only.

        Products are looked up in every product relation, not just the first
        productive one. Each step is best effort; what was removed is reported.
        """
        if not actor.is_admin:
            raise AuthorizationFailure("Only admins may delete vendors")
        vendor_key = strip_quotes(vendor_id or "").strip()
        if not vendor_key:
            raise ValidationFailure("Missing vendor id")

        owner_relation, _ = await self.owner_resolver.find_owner_by_identity(vendor_key)
        by_relation, diagnostics = await self.locator.find_all_entities_by_owner(vendor_key, self.product_relations)

        media_urls: list[str] = []
        for relation, rows in by_relation.items():
            for row in rows:
                media_urls.extend(ProductEntity.from_row(row, relation).media_urls())
        removed_files = await self.products.remove_media(media_urls)

        deleted_products: dict[str, int] = {}
        for relation, rows in by_relation.items():
            ids = [row["id"] for row in rows if row.get("id") is not None]
            if not ids:
                continue
            try:
                deleted = await self.store.delete(relation, is_in("id", ids))
            except StoreError as e:
                logger.warning(f"Deleting products of vendor {vendor_key} from {relation} failed: {e.message}")
                continue
            deleted_products[relation] = len(deleted)

        deleted_vendor_rows: list[str] = []
        for relation in self._vendor_relations():
            for column in ("id", "user_id"):
                try:
                    deleted = await self.store.delete(relation, eq(column, vendor_key))
                except StoreError as e:
                    logger.warning(f"Delete by {column} on {relation} failed (ignored): {e.message}")
                    continue
                if deleted:
                    deleted_vendor_rows.append(f"{relation}:{column}")

        logger.info(f"Removed vendor {vendor_key}: rows={deleted_vendor_rows} products={deleted_products}")
        return {
            "ok": True,
            "vendor_checked_in": owner_relation,
            "table_results": [probe.to_dict() for probe in diagnostics],
            "deleted_vendor_rows": deleted_vendor_rows,
            "deleted_products": deleted_products,
            "removed_files": removed_files,
            "product_count": sum(len(rows) for rows in by_relation.values()),
        }

    async def demote_vendor(self, actor: Actor, vendor_id: str) -> dict[str, Any]:
        """Clear a vendor's vendor status in every vendor relation. Allowed for admins and the vendor themselves."""
        vendor_key = strip_quotes(vendor_id or "").strip()
        if not vendor_key:
            raise ValidationFailure("Missing vendor id")
        if not actor.is_admin and actor.id != vendor_key:
            raise AuthorizationFailure("Only admins or the vendor themselves may demote the vendor")

        fields = _demotion_fields()
        updated: list[str] = []
        for relation in self._vendor_relations():
            for column in ("id", "user_id"):
                try:
                    result = await self.writer.update(relation, fields, eq(column, vendor_key))
                except WriteFailure:
                    logger.warning(f"Demote on {relation} by {column} failed (ignored)")
                    continue
                removed = set(result.attempts[0].removed_columns)
                if result.row is not None and set(fields) - removed:
                    updated.append(f"{relation}:{column}")

        return {"ok": True, "demoted": True, "updated_tables": updated}


# Singleton instance
vendor_service = VendorService()
