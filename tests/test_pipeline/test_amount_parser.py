"""
Tests for the continental quantity parser.
"""

import pytest

from app.pipeline.amount_parser import parse_count, parse_quantity_eu, parse_weight


class TestParseQuantityEU:
    """Test thousands-dot / decimal-comma parsing."""

    def test_weight_with_unit(self):
        result = parse_quantity_eu("24.500,75 KG")
        assert result.value == 24500.75
        assert result.unit == "KG"

    def test_thousands_only(self):
        assert parse_quantity_eu("10.000,00").value == 10000.0

    def test_dot_is_thousands_separator(self):
        assert parse_quantity_eu("1.250 KG").value == 1250.0

    def test_plain_integer(self):
        result = parse_quantity_eu("400")
        assert result.value == 400.0
        assert result.unit is None

    def test_decimal_comma_without_thousands(self):
        assert parse_quantity_eu("25,5").value == 25.5

    def test_kgs_unit(self):
        assert parse_quantity_eu("340,00 KGS").value == 340.0

    def test_zero_lower_confidence(self):
        result = parse_quantity_eu("0,00")
        assert result.value == 0.0
        assert result.confidence < 0.95

    @pytest.mark.parametrize("raw", ["", "-", "---", "N/A", "12,34,56", "abc KG"])
    def test_unparseable_is_none(self, raw):
        assert parse_quantity_eu(raw).value is None


class TestShortcuts:

    def test_parse_weight(self):
        assert parse_weight("10.340,00") == 10340.0
        assert parse_weight(None) is None
        assert parse_weight("") is None

    def test_parse_count(self):
        assert parse_count("400") == 400
        assert parse_count(" 20 Pallets") == 20
        assert parse_count("Pallets") is None
        assert parse_count(None) is None
