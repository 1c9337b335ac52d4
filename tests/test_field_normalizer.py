"""Tests for field normalization helpers."""

import json

import pytest

from src.services.field_normalizer import (
    is_strict_int,
    key_variants,
    normalize_payment_methods,
    parse_discount_percent,
    parse_flag,
    parse_json_field,
    parse_number,
    parse_payment_methods,
    strip_quotes,
)


class TestParsePaymentMethods:
    @pytest.mark.parametrize(
        "raw",
        ["card,paypal", ["card", "paypal"], '["card","paypal"]', {"a": "card", "b": "paypal"}],
    )
    def test_accepted_shapes(self, raw):
        """Test accepted shapes."""
        assert parse_payment_methods(raw) == {"card", "paypal"}

    @pytest.mark.parametrize("raw", ["card,paypal", ["card", "paypal"], '["card","paypal"]', None])
    def test_idempotent_through_json_array(self, raw):
        """Test idempotent through json array."""
        first = parse_payment_methods(raw)
        again = parse_payment_methods(json.dumps(sorted(first)))
        assert again == first

    def test_blank_members_dropped(self):
        """Test blank members dropped."""
        assert parse_payment_methods(" card , ,paypal,  ") == {"card", "paypal"}
        assert parse_payment_methods(["", "  ", None, "cod"]) == {"cod"}

    def test_empty_inputs(self):
        """Test empty inputs."""
        assert parse_payment_methods(None) == set()
        assert parse_payment_methods("") == set()
        assert parse_payment_methods("[]") == set()

    def test_malformed_json_degrades_to_split(self):
        """Test malformed json degrades to split."""
        assert parse_payment_methods('["card", "paypal"') == {'["card"', '"paypal"'}

    def test_normalized_form_is_sorted_list(self):
        """Test normalized form is sorted list."""
        assert normalize_payment_methods("paypal,card,card") == ["card", "paypal"]


class TestParseDiscountPercent:
    @pytest.mark.parametrize(
        "raw, expected",
        [(30, 30.0), ("30", 30.0), ("12.5%", 12.5), (" 10 % ", 10.0), ("0", 0.0), ("100", 100.0), ("33.333", 33.33)],
    )
    def test_valid(self, raw, expected):
        """Test valid."""
        assert parse_discount_percent(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "150", "100.01", True])
    def test_rejected(self, raw):
        """Test rejected."""
        assert parse_discount_percent(raw) is None

    def test_first_numeric_substring_used(self):
        """Test first numeric substring used."""
        assert parse_discount_percent("save 20% now, was 50") == 20.0


class TestParseNumber:
    def test_absent_vs_zero(self):
        """Test absent vs zero."""
        assert parse_number(None) is None
        assert parse_number("") is None
        assert parse_number("0") == 0.0
        assert parse_number(0) == 0.0

    def test_unparsable(self):
        """Test unparsable."""
        assert parse_number("twenty") is None
        assert parse_number("nan") is None
        assert parse_number(float("inf")) is None

    def test_strings(self):
        """Test strings."""
        assert parse_number(" 19.99 ") == 19.99


class TestIdentifiers:
    def test_strip_quotes(self):
        """Test strip quotes."""
        assert strip_quotes('"abc-123"') == "abc-123"
        assert strip_quotes("'42'") == "42"
        assert strip_quotes(None) is None

    def test_is_strict_int(self):
        """Test is strict int."""
        assert is_strict_int(42)
        assert is_strict_int("42")
        assert not is_strict_int("42a")
        assert not is_strict_int("-1")
        assert not is_strict_int(True)
        assert not is_strict_int(None)

    def test_key_variants(self):
        """Test key variants."""
        assert key_variants("shippingInfo") == {"shippingInfo", "shipping_info"}
        assert key_variants("return_info") == {"return_info", "returnInfo"}
        assert key_variants("name") == {"name"}


class TestMiscFields:
    def test_parse_flag(self):
        """Test parse flag."""
        assert parse_flag(True)
        assert parse_flag("true")
        assert parse_flag("TRUE ")
        assert not parse_flag("false")
        assert not parse_flag(None)
        assert not parse_flag(1)

    def test_parse_json_field(self):
        """Test parse json field."""
        assert parse_json_field('[{"q": "a"}]') == [{"q": "a"}]
        assert parse_json_field("not json") == "not json"
        assert parse_json_field([1]) == [1]
