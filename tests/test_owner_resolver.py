"""Tests for OwnerResolver."""

import pytest

from src.db.table_store import StoreError
from src.services.errors import EntityNotFound
from src.services.owner_resolver import OwnerResolver


class TestResolveOwnerKeyToNumericId:
    @pytest.mark.asyncio
    async def test_numeric_id_by_identity(self, store, resolver):
        """Test numeric id by identity."""
        store.seed("vendors", {"id": 7, "user_id": "abc-123"})
        assert await resolver.resolve_owner_key_to_numeric_id("7") == 7

    @pytest.mark.asyncio
    async def test_linked_user_lookup(self, store, resolver):
        """Test linked user lookup."""
        store.seed("vendors", {"id": 7, "user_id": "abc-123"})
        assert await resolver.resolve_owner_key_to_numeric_id("abc-123") == 7

    @pytest.mark.asyncio
    async def test_profile_without_numeric_id(self, store, resolver):
        """Test profile without numeric id."""
        store.seed("vendor_profiles", {"id": "abc-123"})
        assert await resolver.resolve_owner_key_to_numeric_id("abc-123") is None

    @pytest.mark.asyncio
    async def test_vendor_id_column_preferred(self, store):
        """Test vendor id column preferred."""
        store.columns["vendor_profiles"].add("vendor_id")
        store.seed("vendor_profiles", {"id": "abc-123", "vendor_id": "12"})
        resolver = OwnerResolver(store, ["vendor_profiles"], "vendor_profiles")
        assert await resolver.resolve_owner_key_to_numeric_id("abc-123") == 12

    @pytest.mark.asyncio
    async def test_first_candidate_wins(self, store):
        """Test first candidate wins."""
        store.seed("vendors", {"id": 3, "user_id": "abc-123"})
        store.columns["vendor_profiles"].add("vendor_id")
        store.seed("vendor_profiles", {"id": "abc-123", "vendor_id": 99})
        resolver = OwnerResolver(store, ["vendors", "vendor_profiles"], "vendor_profiles")
        assert await resolver.resolve_owner_key_to_numeric_id("abc-123") == 3

    @pytest.mark.asyncio
    async def test_missing_relations_skipped(self, store, resolver):
        """Test missing relations skipped."""
        # "vendor" and "vendor_profiles_with_user" do not exist in the fake schema
        assert await resolver.resolve_owner_key_to_numeric_id("nobody") is None

    @pytest.mark.asyncio
    async def test_empty_key(self, resolver):
        """Test empty key."""
        assert await resolver.resolve_owner_key_to_numeric_id("") is None


class TestFindOwner:
    @pytest.mark.asyncio
    async def test_find_owner_by_identity(self, store, resolver):
        """Test find owner by identity."""
        store.seed("vendor_profiles", {"id": "abc-123"})
        relation, row = await resolver.find_owner_by_identity("abc-123")
        assert relation == "vendor_profiles"
        assert row["id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_find_owner_by_identity_missing(self, resolver):
        """Test find owner by identity missing."""
        assert await resolver.find_owner_by_identity("ghost") == (None, None)

    @pytest.mark.asyncio
    async def test_find_owner_row_for_user_prefers_user_id(self, store, resolver):
        """Test find owner row for user prefers user id."""
        store.seed("vendors", {"id": 5, "user_id": "abc-123"})
        relation, row = await resolver.find_owner_row_for_user("abc-123")
        assert relation == "vendors"
        assert row["id"] == 5


class TestEnsureOwnerProfileExists:
    @pytest.mark.asyncio
    async def test_upserts_minimal_row(self, store, resolver):
        """Test upserts minimal row."""
        assert await resolver.ensure_owner_profile_exists("abc-123") is True
        assert store.tables["vendor_profiles"][0]["id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_idempotent(self, store, resolver):
        """Test idempotent."""
        await resolver.ensure_owner_profile_exists("abc-123")
        await resolver.ensure_owner_profile_exists("abc-123")
        assert len(store.tables["vendor_profiles"]) == 1

    @pytest.mark.asyncio
    async def test_failures_swallowed(self, store):
        """Test failures swallowed."""
        resolver = OwnerResolver(store, ["vendors"], "missing_profiles")
        assert await resolver.ensure_owner_profile_exists("abc-123") is False

    @pytest.mark.asyncio
    async def test_blank_owner(self, store, resolver):
        """Test blank owner."""
        assert await resolver.ensure_owner_profile_exists(" ") is False
        assert store.calls_for("upsert") == []


class TestVendorLookups:
    @pytest.mark.asyncio
    async def test_get_vendor_display_name_fallback(self, store, resolver):
        """Test get vendor display name fallback."""
        store.columns["vendors"].add("company_name")
        store.seed("vendors", {"id": 9, "company_name": "Clay & Co"})
        vendor = await resolver.get_vendor("9")
        assert vendor["id"] == 9
        assert vendor["vendor_name"] == "Clay & Co"
        assert vendor["raw"]["company_name"] == "Clay & Co"

    @pytest.mark.asyncio
    async def test_get_vendor_prefers_profile(self, store, resolver):
        """Test get vendor prefers profile."""
        store.seed("vendor_profiles", {"id": "9", "vendor_name": "From profile"})
        store.seed("vendors", {"id": 9, "vendor_name": "From vendors"})
        assert (await resolver.get_vendor("9"))["vendor_name"] == "From profile"

    @pytest.mark.asyncio
    async def test_get_vendor_not_found(self, resolver):
        """Test get vendor not found."""
        with pytest.raises(EntityNotFound):
            await resolver.get_vendor("ghost")

    @pytest.mark.asyncio
    async def test_validate_vendor_ids(self, store, resolver):
        """Test validate vendor ids."""
        store.seed("vendor_profiles", {"id": "a"}, {"id": "b"})
        assert sorted(await resolver.validate_vendor_ids(["a", "b", "c"])) == ["a", "b"]
        assert await resolver.validate_vendor_ids([]) == []

    @pytest.mark.asyncio
    async def test_validate_vendor_ids_propagates_store_errors(self, store):
        """Test validate vendor ids propagates store errors."""
        resolver = OwnerResolver(store, ["vendors"], "missing_profiles")
        with pytest.raises(StoreError):
            await resolver.validate_vendor_ids(["a"])
