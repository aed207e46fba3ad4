# backend/availability_checker.py

"""
Availability Checker

Compares a requested quantity with stock on hand. Both sides are normalized
to the product's base unit before comparison; on a shortfall the checker
proposes what CAN be shipped, one whole-package option per packaging level.
"""

import math
from typing import List, Optional
import logging

from pydantic import BaseModel

from packaging_decomposer import PackagingHierarchy
from quantity import Quantity
from unit_conversion_graph import UnitConversionGraph

logger = logging.getLogger(__name__)


class AlternativeOption(BaseModel):
    description: str
    quantity: Quantity
    coverage: float


class AvailabilityResult(BaseModel):
    can_fulfill: bool
    requested: Quantity
    available: Quantity
    requested_base: float
    available_base: float
    shortage: Optional[Quantity] = None
    alternatives: List[AlternativeOption] = []


class AvailabilityChecker:

    def check(
        self,
        requested: Quantity,
        available: Quantity,
        graph: UnitConversionGraph,
        hierarchy: Optional[PackagingHierarchy] = None
    ) -> AvailabilityResult:
        """
        Check whether stock covers a request.

        Args:
            requested: Requested quantity (any unit of the product)
            available: Stock on hand (any unit of the product)
            graph: The product's conversion graph
            hierarchy: Packaging levels used to propose alternatives

        Returns:
            AvailabilityResult (alternatives only on a shortfall)

        Raises:
            UnitNotFoundError: If either unit is unknown to the graph
        """
        requested_base = graph.convert_to_base(requested.value, requested.unit_symbol)
        available_base = graph.convert_to_base(available.value, available.unit_symbol)

        can_fulfill = available_base >= requested_base
        shortage = None
        alternatives: List[AlternativeOption] = []

        if not can_fulfill:
            shortage = Quantity.of(requested_base - available_base, graph.base_unit)
            if hierarchy is not None:
                alternatives = self._alternatives(available_base, requested_base, hierarchy)
            logger.info(
                f"[{graph.product_id}] Short by {shortage}: requested {requested}, available {available}"
            )

        return AvailabilityResult(
            can_fulfill=can_fulfill,
            requested=requested,
            available=available,
            requested_base=requested_base,
            available_base=available_base,
            shortage=shortage,
            alternatives=alternatives
        )

    def _alternatives(
        self,
        available_base: float,
        requested_base: float,
        hierarchy: PackagingHierarchy
    ) -> List[AlternativeOption]:
        options = []
        for level in hierarchy.levels:
            count = math.floor(available_base / level.units_per_package)
            if count < 1:
                continue
            options.append(AlternativeOption(
                description=f"Available: {count} {level.display_name}",
                quantity=Quantity.of(count, level.symbol),
                coverage=count * level.units_per_package / requested_base
            ))
        options.sort(key=lambda option: option.coverage, reverse=True)
        return options
