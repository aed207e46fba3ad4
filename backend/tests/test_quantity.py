# backend/tests/test_quantity.py

"""
Unit tests for the Quantity value type

Tests cover:
- Construction through of() / pieces()
- Count units (dozen, gross, ream)
- Parsing "<number><unit>"
- Arithmetic keeps the left operand's unit
- Division by zero
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from quantity import Quantity
from quantity_errors import QuantityDivisionByZeroError, QuantityParseError


class TestConstruction:
    """Test factory methods"""

    def test_of_product_unit_has_factor_one(self):
        quantity = Quantity.of(5, "box")
        assert quantity.raw_count_in_base_unit == 5
        assert quantity.value == 5
        assert quantity.unit_symbol == "box"

    def test_of_dozen_scales_raw_count(self):
        quantity = Quantity.of(2, "dz")
        assert quantity.raw_count_in_base_unit == 24
        assert quantity.value == 2

    def test_count_units(self):
        assert Quantity.of(1, "gross").raw_count_in_base_unit == 144
        assert Quantity.of(1, "ream").raw_count_in_base_unit == 500
        assert Quantity.of(1, "score").raw_count_in_base_unit == 20

    def test_pieces(self):
        quantity = Quantity.pieces(7)
        assert quantity.unit_symbol == "pcs"
        assert quantity.raw_count_in_base_unit == 7

    def test_immutable(self):
        quantity = Quantity.of(1, "box")
        with pytest.raises(Exception):
            quantity.unit_symbol = "case"

    def test_str(self):
        assert str(Quantity.of(12, "box")) == "12 box"
        assert str(Quantity.of(1.5, "case")) == "1.5 case"


class TestParse:
    """Test "<number><unit>" parsing"""

    def test_with_space(self):
        quantity = Quantity.parse("12 box")
        assert quantity.value == 12
        assert quantity.unit_symbol == "box"

    def test_without_space(self):
        quantity = Quantity.parse("2dz")
        assert quantity.raw_count_in_base_unit == 24

    def test_decimal_and_sign(self):
        assert Quantity.parse("-0.5 case").value == -0.5
        assert Quantity.parse(".25 pallet").value == 0.25

    def test_exponent(self):
        assert Quantity.parse("1e3 piece").value == 1000

    @pytest.mark.parametrize("text", ["", "box", "   ", "twelve box"])
    def test_invalid_text(self, text):
        """Test text without a number followed by a unit is rejected"""
        with pytest.raises(QuantityParseError) as exc_info:
            Quantity.parse(text)

        assert exc_info.value.error_code == "PARSE_ERROR"

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            Quantity.parse("abc")


class TestArithmetic:
    """Test arithmetic on raw counts"""

    def test_add_keeps_left_unit(self):
        total = Quantity.of(1, "dz") + Quantity.of(6, "pcs")
        assert total.unit_symbol == "dz"
        assert total.raw_count_in_base_unit == 18
        assert total.value == 1.5

    def test_subtract(self):
        difference = Quantity.of(10, "box") - Quantity.of(4, "box")
        assert difference.value == 6

    def test_multiply_both_sides(self):
        assert (Quantity.of(3, "box") * 4).value == 12
        assert (4 * Quantity.of(3, "box")).value == 12

    def test_divide(self):
        assert (Quantity.of(12, "box") / 4).value == 3

    def test_divide_by_zero(self):
        with pytest.raises(QuantityDivisionByZeroError) as exc_info:
            Quantity.of(12, "box") / 0

        assert exc_info.value.error_code == "DIVISION_BY_ZERO"
        assert isinstance(exc_info.value, ZeroDivisionError)
