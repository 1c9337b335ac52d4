"""Tests for EntityLocator."""

import pytest

from src.services.entity_locator import EntityLocator, OwnerColumn, identity_key, sort_by_recency


class TestFindEntityAcrossRelations:
    @pytest.mark.asyncio
    async def test_first_relation_wins(self, store, locator):
        """Test first relation wins."""
        store.seed("products", {"id": 1, "name": "Canonical", "vendor_id": 7})
        store.seed("vendor_product", {"id": 1, "name": "Legacy", "vendor": "abc"})

        row, relation = await locator.find_entity_across_relations("1", ["products", "vendor_product"])
        assert relation == "products"
        assert row["name"] == "Canonical"

        row, relation = await locator.find_entity_across_relations("1", ["vendor_product", "products"])
        assert relation == "vendor_product"
        assert row["name"] == "Legacy"

    @pytest.mark.asyncio
    async def test_probe_errors_are_skipped(self, store, locator):
        """Test probe errors are skipped."""
        store.seed("vendor_product", {"id": "uuid-1", "name": "Mug"})
        row, relation = await locator.find_entity_across_relations("uuid-1", ["missing", "vendor_product"])
        assert relation == "vendor_product"

    @pytest.mark.asyncio
    async def test_not_found(self, locator):
        """Test not found."""
        assert await locator.find_entity_across_relations("nope", ["products", "vendor_product"]) == (None, None)


class TestFindEntitiesByOwner:
    @pytest.mark.asyncio
    async def test_short_circuits_on_first_productive_relation(self, store, locator):
        """Test short circuits on first productive relation."""
        store.seed("vendor_product", *({"id": f"vp-{i}", "vendor": "42"} for i in range(2)))
        store.seed("products", *({"id": i, "vendor_id": 42} for i in range(5)))

        lookup = await locator.find_entities_by_owner("42", ["vendor_product", "products"])

        assert sorted(row["id"] for row in lookup.entities) == ["vp-0", "vp-1"]
        assert lookup.relation == "vendor_product"
        assert [probe.relation for probe in lookup.diagnostics] == ["vendor_product"]

    @pytest.mark.asyncio
    async def test_merges_column_encodings_without_duplicates(self, store, locator):
        """Test merges column encodings without duplicates."""
        store.seed(
            "vendor_product",
            {"id": "a", "vendor_id": "42", "vendor": "42"},
            {"id": "b", "vendor": "42"},
        )
        lookup = await locator.find_entities_by_owner("42", ["vendor_product"])
        assert sorted(row["id"] for row in lookup.entities) == ["a", "b"]
        # numeric and string probes of vendor_id plus the vendor column
        assert lookup.diagnostics[0].rows_found == 4
        assert lookup.diagnostics[0].tried_columns == ["vendor_id (num?)", "vendor_id", "vendor"]

    @pytest.mark.asyncio
    async def test_sorted_newest_first_missing_timestamp_last(self, store, locator):
        """Test sorted newest first missing timestamp last."""
        store.seed(
            "vendor_product",
            {"id": "old", "vendor": "v", "created_at": "2024-01-01T00:00:00Z"},
            {"id": "none", "vendor": "v"},
            {"id": "new", "vendor": "v", "created_at": "2025-06-01T12:00:00+00:00"},
        )
        lookup = await locator.find_entities_by_owner("v", ["vendor_product"])
        assert [row["id"] for row in lookup.entities] == ["new", "old", "none"]

    @pytest.mark.asyncio
    async def test_missing_columns_do_not_abort_probing(self, store, locator):
        """Test missing columns do not abort probing."""
        # products has no "vendor" column; vendor_product is probed afterwards
        store.seed("vendor_product", {"id": "x", "vendor": "abc"})
        lookup = await locator.find_entities_by_owner("abc", ["products", "vendor_product"])
        assert [row["id"] for row in lookup.entities] == ["x"]
        assert lookup.diagnostics[0].to_dict() == {
            "table": "products",
            "rowsFound": 0,
            "triedColumns": ["vendor_id (num?)", "vendor_id", "vendor"],
        }

    @pytest.mark.asyncio
    async def test_empty_result_has_diagnostics(self, locator):
        """Test empty result has diagnostics."""
        lookup = await locator.find_entities_by_owner("ghost", ["vendor_product", "products"])
        assert lookup.entities == []
        assert lookup.relation is None
        assert [probe.relation for probe in lookup.diagnostics] == ["vendor_product", "products"]

    @pytest.mark.asyncio
    async def test_custom_owner_columns(self, store):
        """Test custom owner columns."""
        store.seed("vendor_product", {"id": "a", "vendor": "42"})
        locator = EntityLocator(store, owner_columns=[OwnerColumn("vendor")])
        lookup = await locator.find_entities_by_owner("42", ["vendor_product"])
        assert lookup.diagnostics[0].tried_columns == ["vendor"]


class TestFindAllEntitiesByOwner:
    @pytest.mark.asyncio
    async def test_probes_every_relation(self, store, locator):
        """Test probes every relation."""
        store.seed("vendor_product", {"id": "vp-1", "vendor": "42"})
        store.seed("products", {"id": 1, "vendor_id": 42}, {"id": 2, "vendor_id": 42})

        by_relation, diagnostics = await locator.find_all_entities_by_owner("42", ["vendor_product", "products"])

        assert [row["id"] for row in by_relation["vendor_product"]] == ["vp-1"]
        assert sorted(row["id"] for row in by_relation["products"]) == [1, 2]
        assert len(diagnostics) == 2


class TestHelpers:
    def test_identity_key_without_id_is_relation_qualified(self):
        """Test identity key without id is relation qualified."""
        row = {"name": "Mug", "vendor": "v"}
        key = identity_key(row, "vendor_product")
        assert key.startswith("vendor_product:")
        assert key == identity_key(dict(row), "vendor_product")
        assert identity_key({"id": 5}, "products") == "5"

    def test_sort_by_recency_handles_bad_timestamps(self):
        """Test sort by recency handles bad timestamps."""
        rows = [{"id": 1, "created_at": "not a date"}, {"id": 2, "created_at": "2024-02-02"}]
        assert [row["id"] for row in sort_by_recency(rows)] == [2, 1]
