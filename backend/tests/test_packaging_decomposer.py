# backend/tests/test_packaging_decomposer.py

"""
Unit tests for the Packaging Hierarchy Decomposer

Tests cover:
- 1500 pieces -> 10 case + 2 box + 12 piece
- Minimum viable count skips a level
- Implicit base level and floating point leftovers
- Conservation of units
- Hierarchy validation
- Single-level packaging options
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from packaging_decomposer import (
    STANDARD_RETAIL,
    STANDARD_WHOLESALE,
    PackagingHierarchy,
    PackagingLevel,
    decompose,
    suggest_packaging,
)
from quantity_errors import ConfigurationError, InvalidHierarchyError, QuantityRuleViolationError


@pytest.fixture
def widget_hierarchy():
    """piece / box of 24 / case of 144 / pallet of 2880 (half pallets allowed)"""
    return PackagingHierarchy(
        product_id="WIDGET-1",
        levels=[
            PackagingLevel("piece", "piece", 1),
            PackagingLevel("box", "box", 24),
            PackagingLevel("case", "case", 144),
            PackagingLevel("pallet", "pallet", 2880, 0.5),
        ]
    )


def summary(decomposition):
    return [(component.level.symbol, component.count, component.total_units) for component in decomposition.components]


class TestDecompose:
    """Test greedy decomposition"""

    def test_case_box_piece(self, widget_hierarchy):
        decomposition = decompose(1500, widget_hierarchy)

        assert summary(decomposition) == [("case", 10, 1440), ("box", 2, 48), ("piece", 12, 12)]
        assert decomposition.leftover == 0
        assert decomposition.efficiency == pytest.approx((1440 * 2 + 48) / (1500 * 4))
        assert decomposition.format() == "10 case + 2 box + 12 piece"

    def test_exact_pallet(self, widget_hierarchy):
        decomposition = decompose(2880, widget_hierarchy)
        assert summary(decomposition) == [("pallet", 1, 2880)]
        assert decomposition.efficiency == pytest.approx(3 / 4)

    def test_minimum_viable_count_skips_level(self):
        hierarchy = PackagingHierarchy(
            product_id="P-1",
            levels=[
                PackagingLevel("piece", "piece", 1),
                PackagingLevel("case", "case", 144),
                PackagingLevel("pallet", "pallet", 2880, 2),
            ]
        )
        decomposition = decompose(3000, hierarchy)
        assert summary(decomposition) == [("case", 20, 2880), ("piece", 120, 120)]

    def test_implicit_base_level(self):
        hierarchy = PackagingHierarchy(product_id="P-1", levels=[PackagingLevel("box", "box", 12)])
        decomposition = decompose(30, hierarchy)

        assert summary(decomposition) == [("box", 2, 24), ("piece", 6, 6)]
        assert hierarchy.base_level.symbol == "piece"

    def test_residue_reported_as_leftover(self):
        hierarchy = PackagingHierarchy(product_id="P-1", levels=[PackagingLevel("box", "box", 12)])
        decomposition = decompose(24.0005, hierarchy)

        assert summary(decomposition) == [("box", 2, 24)]
        assert decomposition.leftover == pytest.approx(0.0005)

    def test_zero_quantity(self, widget_hierarchy):
        decomposition = decompose(0, widget_hierarchy)
        assert decomposition.components == []
        assert decomposition.efficiency == 0
        assert decomposition.format() == ""

    def test_fractional_base_remainder(self, widget_hierarchy):
        decomposition = decompose(30.5, widget_hierarchy)
        assert summary(decomposition) == [("box", 1, 24), ("piece", 6.5, 6.5)]
        assert decomposition.format() == "1 box + 6.5 piece"

    def test_negative_quantity_error(self, widget_hierarchy):
        with pytest.raises(QuantityRuleViolationError):
            decompose(-1, widget_hierarchy)

    @pytest.mark.parametrize("total", [0, 1, 23, 24, 143.5, 1500, 2879, 4321, 100000.25])
    def test_units_are_conserved(self, widget_hierarchy, total):
        decomposition = decompose(total, widget_hierarchy)
        emitted = sum(component.count * component.level.units_per_package for component in decomposition.components)
        assert emitted + decomposition.leftover == pytest.approx(total, abs=1e-6)

    @pytest.mark.parametrize("hierarchy", [STANDARD_RETAIL, STANDARD_WHOLESALE])
    def test_presets(self, hierarchy):
        decomposition = decompose(3000, hierarchy)
        assert sum(component.total_units for component in decomposition.components) == pytest.approx(3000)


class TestHierarchyValidation:
    """Test hierarchy construction rules"""

    def test_empty_levels(self):
        with pytest.raises(InvalidHierarchyError) as exc_info:
            PackagingHierarchy(product_id="P-1", levels=[])

        assert exc_info.value.error_code == "INVALID_HIERARCHY"

    def test_unsorted_levels(self):
        with pytest.raises(ConfigurationError):
            PackagingHierarchy(
                product_id="P-1",
                levels=[PackagingLevel("case", "case", 144), PackagingLevel("box", "box", 12)]
            )

    def test_non_positive_units_per_package(self):
        with pytest.raises(ConfigurationError):
            PackagingLevel("box", "box", 0)

    def test_find_level(self, widget_hierarchy):
        assert widget_hierarchy.find_level("case").units_per_package == 144
        assert widget_hierarchy.find_level("crate") is None


class TestSuggestPackaging:
    """Test single-level options plus the greedy breakdown"""

    def test_options_respect_minimum_viable_count(self, widget_hierarchy):
        suggestion = suggest_packaging(1500, widget_hierarchy)

        symbols = [option.level.symbol for option in suggestion.options]
        assert symbols == ["piece", "box", "case", "pallet"]
        box = suggestion.options[1]
        assert box.quantity == pytest.approx(62.5)
        assert box.remainder == pytest.approx(12)

        small = suggest_packaging(1000, widget_hierarchy)
        assert "pallet" not in [option.level.symbol for option in small.options]

    def test_reason_reflects_efficiency(self, widget_hierarchy):
        assert suggest_packaging(1500, widget_hierarchy).reason == (
            "Consider ordering in larger units for better efficiency"
        )
        assert suggest_packaging(2880, widget_hierarchy).reason == "Good packaging combination"
