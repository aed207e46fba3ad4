# backend/quantity_conversion_service.py

"""
Quantity Conversion Service

Single entry point over the quantity rules engine. Owns the per-product
registries (conversion graphs, packaging hierarchies) and a chain converter;
callers construct one instance and pass it where it is needed.

Registries are last-write-wins: registering a product id again replaces the
previous definition wholesale (no merge). All registry access goes through a
re-entrant lock so concurrent registration and lookup stay consistent.
"""

import threading
from typing import Dict, List, Optional, Union
import logging

from availability_checker import AvailabilityChecker, AvailabilityResult
from packaging_decomposer import (
    PackagingDecomposition,
    PackagingHierarchy,
    PackagingSuggestion,
    decompose,
    suggest_packaging,
)
from quantity import Quantity
from quantity_errors import ConfigurationError, ProductNotFoundError, UnitNotFoundError
from rounding_policy import QuantityValidationResult
from unit_chain_converter import (
    ChainConverter,
    FractionalQuantity,
    OptimalUnitSuggestion,
    UnitChain,
    UnitChainRegistry,
)
from unit_conversion_graph import UnitConversionGraph

logger = logging.getLogger(__name__)


class QuantityConversionService:
    """
    Usage:
        service = QuantityConversionService()
        service.register_product(graph)
        boxes = service.convert("WIDGET-1", Quantity.of(144, "piece"), "box")
    """

    def __init__(
        self,
        chain_registry: Optional[UnitChainRegistry] = None,
        availability_checker: Optional[AvailabilityChecker] = None
    ):
        self._graphs: Dict[str, UnitConversionGraph] = {}
        self._hierarchies: Dict[str, PackagingHierarchy] = {}
        self._lock = threading.RLock()
        self.chain_converter = ChainConverter(chain_registry if chain_registry is not None else UnitChainRegistry())
        self.availability_checker = availability_checker or AvailabilityChecker()

    @property
    def chain_registry(self) -> UnitChainRegistry:
        return self.chain_converter.registry

    # ==================== REGISTRATION ====================

    def register_product(self, graph: UnitConversionGraph) -> None:
        with self._lock:
            if graph.product_id in self._graphs:
                logger.warning(f"Product '{graph.product_id}' re-registered; previous unit configuration replaced")
            self._graphs[graph.product_id] = graph
        logger.info(f"Registered product '{graph.product_id}' (units: {', '.join(graph.units)})")

    def register_packaging_hierarchy(self, product_id: str, hierarchy: PackagingHierarchy) -> None:
        """
        Raises:
            ProductNotFoundError: If no conversion graph is registered for the product
        """
        if hierarchy.product_id != product_id:
            raise ConfigurationError(
                f"Packaging hierarchy belongs to '{hierarchy.product_id}', not '{product_id}'",
                field="product_id"
            )
        self.get_product(product_id)  # hierarchy needs a registered product
        with self._lock:
            if product_id in self._hierarchies:
                logger.warning(f"Packaging hierarchy for '{product_id}' re-registered; previous levels replaced")
            self._hierarchies[product_id] = hierarchy
        logger.info(
            f"Registered packaging hierarchy for '{product_id}' "
            f"({' < '.join(level.symbol for level in hierarchy.levels)})"
        )

    def register_chain(self, chain: UnitChain) -> None:
        self.chain_registry.register(chain)

    # ==================== LOOKUP ====================

    def get_product(self, product_id: str) -> UnitConversionGraph:
        """
        Raises:
            ProductNotFoundError: If the product was never registered
        """
        with self._lock:
            graph = self._graphs.get(product_id)
        if graph is None:
            raise ProductNotFoundError(product_id)
        return graph

    def get_packaging_hierarchy(self, product_id: str) -> Optional[PackagingHierarchy]:
        with self._lock:
            return self._hierarchies.get(product_id)

    @property
    def product_ids(self) -> List[str]:
        with self._lock:
            return list(self._graphs)

    def _require_unit(self, graph: UnitConversionGraph, unit: str) -> None:
        if not graph.has_unit(unit):
            raise UnitNotFoundError(unit, f"product '{graph.product_id}'", graph.units)

    # ==================== CONVERSION & ROUNDING ====================

    def convert(self, product_id: str, quantity: Quantity, target_unit: str) -> Quantity:
        """
        Convert a quantity into another unit of the product, then apply the
        target unit's rounding policy (if it has one).
        """
        graph = self.get_product(product_id)
        converted = graph.convert(quantity.value, quantity.unit_symbol, target_unit)

        policy = graph.get_rounding_policy(target_unit)
        if policy is not None:
            rounded = policy.apply(converted)
            if rounded != converted:
                logger.debug(f"[{product_id}] Rounded {converted} {target_unit} -> {rounded} {target_unit}")
            converted = rounded

        return Quantity.of(converted, target_unit)

    def apply_rounding(self, product_id: str, unit: str, value: float) -> float:
        """Apply the unit's rounding policy; units without a policy pass through"""
        graph = self.get_product(product_id)
        self._require_unit(graph, unit)
        policy = graph.get_rounding_policy(unit)
        if policy is None:
            return value
        return policy.apply(value)

    def validate_quantity(self, product_id: str, unit: str, value: float) -> QuantityValidationResult:
        graph = self.get_product(product_id)
        self._require_unit(graph, unit)
        policy = graph.get_rounding_policy(unit)
        if policy is None:
            return QuantityValidationResult(is_valid=True, suggested_quantity=value)
        return policy.is_valid_quantity(value)

    # ==================== PACKAGING ====================

    def _to_base(self, graph: UnitConversionGraph, quantity: Quantity) -> float:
        return graph.convert_to_base(quantity.value, quantity.unit_symbol)

    def decompose(self, product_id: str, quantity: Quantity) -> PackagingDecomposition:
        """
        Raises:
            ConfigurationError: If the product has no packaging hierarchy
        """
        graph = self.get_product(product_id)
        hierarchy = self.get_packaging_hierarchy(product_id)
        if hierarchy is None:
            raise ConfigurationError(
                f"No packaging hierarchy defined for product '{product_id}'",
                field="product_id"
            )
        return decompose(self._to_base(graph, quantity), hierarchy)

    def suggest_optimal_packaging(self, product_id: str, quantity: Quantity) -> PackagingSuggestion:
        graph = self.get_product(product_id)
        total_units = self._to_base(graph, quantity)
        hierarchy = self.get_packaging_hierarchy(product_id)
        if hierarchy is None:
            return PackagingSuggestion(
                total_units=total_units,
                options=[],
                optimal=None,
                reason="No packaging hierarchy defined for product"
            )
        return suggest_packaging(total_units, hierarchy)

    def check_availability(self, product_id: str, requested: Quantity, available: Quantity) -> AvailabilityResult:
        graph = self.get_product(product_id)
        return self.availability_checker.check(
            requested,
            available,
            graph,
            self.get_packaging_hierarchy(product_id)
        )

    # ==================== CHAINS ====================

    def convert_in_chain(self, quantity: Quantity, target_unit: str, chain_name: str) -> Quantity:
        return self.chain_converter.convert_quantity(quantity, target_unit, chain_name)

    def suggest_optimal_unit(self, quantity: Union[float, Quantity]) -> OptimalUnitSuggestion:
        return self.chain_converter.suggest_optimal_unit(quantity)

    def to_fractional_representation(
        self,
        quantity: Quantity,
        target_unit: str,
        chain_name: Optional[str] = None
    ) -> FractionalQuantity:
        return self.chain_converter.to_fractional_representation(quantity, target_unit, chain_name)
