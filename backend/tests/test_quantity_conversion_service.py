# backend/tests/test_quantity_conversion_service.py

"""
Unit tests for Quantity Conversion Service

Tests cover:
- Product registration (last write wins)
- Conversion followed by target-unit rounding
- Packaging decomposition through the product graph
- Availability, chain conversion and suggestions via the service
- Concurrent registration
"""

import pytest
import sys
import threading
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from packaging_decomposer import PackagingHierarchy, PackagingLevel
from quantity import Quantity
from quantity_conversion_service import QuantityConversionService
from quantity_errors import (
    ConfigurationError,
    OrderExceedsMaximumError,
    ProductNotFoundError,
    UnitNotFoundError,
)
from rounding_policy import RoundingDiscipline, RoundingPolicy
from unit_chain_converter import UnitChainRegistry
from unit_conversion_graph import UnitConversionGraph


@pytest.fixture
def box_policy():
    """Whole boxes, at least 2, at most 50"""
    return RoundingPolicy(
        minimum_order_quantity=2,
        packaging_unit=1,
        discipline=RoundingDiscipline.UP,
        maximum_order_quantity=50
    )


@pytest.fixture
def widget_graph(box_policy):
    return (
        UnitConversionGraph.builder("WIDGET-1", "piece")
        .add_conversion("box", 1, 24, rounding_policy=box_policy)
        .add_conversion("case", 1, 144)
        .build()
    )


@pytest.fixture
def widget_hierarchy():
    return PackagingHierarchy(
        product_id="WIDGET-1",
        levels=[
            PackagingLevel("piece", "piece", 1),
            PackagingLevel("box", "box", 24),
            PackagingLevel("case", "case", 144),
        ]
    )


@pytest.fixture
def service(widget_graph, widget_hierarchy):
    service = QuantityConversionService(UnitChainRegistry.with_defaults())
    service.register_product(widget_graph)
    service.register_packaging_hierarchy("WIDGET-1", widget_hierarchy)
    return service


class TestRegistration:
    """Test product registry"""

    def test_get_product(self, service, widget_graph):
        assert service.get_product("WIDGET-1") is widget_graph
        assert service.product_ids == ["WIDGET-1"]

    def test_unknown_product_error(self, service):
        with pytest.raises(ProductNotFoundError) as exc_info:
            service.get_product("GADGET-9")

        assert exc_info.value.error_code == "PRODUCT_NOT_FOUND"
        assert isinstance(exc_info.value, ConfigurationError)

    def test_last_write_wins(self, service):
        replacement = UnitConversionGraph.from_pairs("WIDGET-1", "piece", [("box", (1, 10))])
        service.register_product(replacement)

        assert service.get_product("WIDGET-1") is replacement
        # no merge with the previous graph
        assert not service.get_product("WIDGET-1").has_unit("case")

    def test_overwrite_is_logged(self, service, widget_graph, caplog):
        with caplog.at_level("WARNING"):
            service.register_product(widget_graph)

        assert "re-registered" in caplog.text

    def test_hierarchy_for_other_product_rejected(self, service, widget_hierarchy):
        with pytest.raises(ConfigurationError):
            service.register_packaging_hierarchy("GADGET-9", widget_hierarchy)

    def test_hierarchy_without_product_rejected(self, widget_hierarchy):
        service = QuantityConversionService()
        with pytest.raises(ProductNotFoundError) as exc_info:
            service.register_packaging_hierarchy("WIDGET-1", widget_hierarchy)

        assert exc_info.value.error_code == "PRODUCT_NOT_FOUND"
        assert service.get_packaging_hierarchy("WIDGET-1") is None

    def test_concurrent_registration(self):
        service = QuantityConversionService()

        def register(index):
            service.register_product(UnitConversionGraph.from_pairs(f"P-{index}", "piece", [("box", (1, index + 1))]))

        threads = [threading.Thread(target=register, args=(index,)) for index in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(service.product_ids) == 20
        assert service.get_product("P-7").convert(1, "box", "piece") == 8


class TestConvert:
    """Test conversion with target-unit rounding"""

    def test_rounds_up_to_whole_boxes(self, service):
        result = service.convert("WIDGET-1", Quantity.of(100, "piece"), "box")
        assert result.unit_symbol == "box"
        assert result.value == 5

    def test_minimum_boxes(self, service):
        assert service.convert("WIDGET-1", Quantity.of(10, "piece"), "box").value == 2

    def test_unit_without_policy_is_not_rounded(self, service):
        assert service.convert("WIDGET-1", Quantity.of(3, "box"), "case").value == pytest.approx(0.5)

    def test_above_maximum_raises(self, service):
        with pytest.raises(OrderExceedsMaximumError):
            service.convert("WIDGET-1", Quantity.of(2000, "piece"), "box")

    def test_unknown_unit(self, service):
        with pytest.raises(UnitNotFoundError):
            service.convert("WIDGET-1", Quantity.of(1, "pallet"), "piece")

    def test_apply_rounding(self, service):
        assert service.apply_rounding("WIDGET-1", "box", 3.2) == 4
        assert service.apply_rounding("WIDGET-1", "case", 3.2) == 3.2

    def test_apply_rounding_unknown_unit(self, service):
        with pytest.raises(UnitNotFoundError):
            service.apply_rounding("WIDGET-1", "crate", 1)

    def test_validate_quantity(self, service):
        result = service.validate_quantity("WIDGET-1", "box", 1)
        assert not result.is_valid
        assert result.suggested_quantity == 2
        assert service.validate_quantity("WIDGET-1", "piece", 7).is_valid


class TestPackaging:
    """Test decomposition through the product graph"""

    def test_decompose_in_product_units(self, service):
        decomposition = service.decompose("WIDGET-1", Quantity.of(7, "box"))
        assert decomposition.total_units == 168
        assert decomposition.format() == "1 case + 1 box"

    def test_decompose_without_hierarchy(self, widget_graph):
        service = QuantityConversionService()
        service.register_product(widget_graph)

        with pytest.raises(ConfigurationError):
            service.decompose("WIDGET-1", Quantity.of(7, "box"))

    def test_suggestion_without_hierarchy(self, widget_graph):
        service = QuantityConversionService()
        service.register_product(widget_graph)

        suggestion = service.suggest_optimal_packaging("WIDGET-1", Quantity.of(2, "case"))
        assert suggestion.total_units == 288
        assert suggestion.optimal is None
        assert suggestion.reason == "No packaging hierarchy defined for product"

    def test_suggestion_with_hierarchy(self, service):
        suggestion = service.suggest_optimal_packaging("WIDGET-1", Quantity.of(2, "case"))
        assert suggestion.optimal.format() == "2 case"

    def test_check_availability_uses_hierarchy(self, service):
        result = service.check_availability("WIDGET-1", Quantity.of(2, "case"), Quantity.of(5, "box"))

        assert not result.can_fulfill
        assert result.alternatives[0].description == "Available: 120 piece"


class TestChains:
    """Test chain operations exposed by the service"""

    def test_convert_in_chain(self, service):
        result = service.convert_in_chain(Quantity.of(1, "pallet"), "piece", "Standard Packaging")
        assert result.value == pytest.approx(480)

    def test_suggest_optimal_unit(self, service):
        assert service.suggest_optimal_unit(480).recommended.format() == "1 pallet"

    def test_empty_chain_registry_by_default(self):
        service = QuantityConversionService()
        assert service.chain_registry.names == []
        assert service.suggest_optimal_unit(480).recommended is None
