# backend/packaging_decomposer.py

"""
Packaging Hierarchy Decomposer

Expresses a raw count (in base units) as a packaging breakdown, largest
level first: 1500 pieces -> 10 case + 2 box + 12 piece.

The algorithm is greedy and never backtracks. It is fast and easy to
explain to a warehouse clerk; it does NOT guarantee the smallest number of
packages.

minimum_viable_count lets a level opt out when too few of it would be used
("don't break a pallet for fewer than N pallets"): the level is skipped
entirely and its units fall through to the smaller levels.
"""

import math
from typing import List, Optional, Sequence
import logging

from pydantic import BaseModel, ConfigDict, Field

from quantity_errors import InvalidHierarchyError, QuantityRuleViolationError, configuration_errors

logger = logging.getLogger(__name__)

# Base-unit remainders at or below this are floating point residue
LEFTOVER_TOLERANCE = 0.001


class PackagingLevel(BaseModel):
    """One packaging level (box, case, pallet, ...)"""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    display_name: str
    units_per_package: float = Field(gt=0)
    minimum_viable_count: float = Field(default=1.0, ge=0)

    def __init__(self, symbol: str, display_name: str, units_per_package: float, minimum_viable_count: float = 1.0, **data):
        with configuration_errors("packaging level"):
            super().__init__(
                symbol=symbol,
                display_name=display_name,
                units_per_package=units_per_package,
                minimum_viable_count=minimum_viable_count,
                **data
            )


class PackagingHierarchy(BaseModel):
    """
    Per-product packaging levels, sorted ascending by units_per_package.

    The base level is the first level when it holds exactly one base unit;
    otherwise an implicit level named after base_unit is used for the
    remainder of a decomposition.
    """
    model_config = ConfigDict(frozen=True)

    product_id: str
    levels: List[PackagingLevel]
    base_unit: str = "piece"

    def __init__(self, product_id: str, levels: List[PackagingLevel], base_unit: str = "piece", **data):
        with configuration_errors("packaging hierarchy"):
            super().__init__(product_id=product_id, levels=levels, base_unit=base_unit, **data)
        if not self.levels:
            raise InvalidHierarchyError(self.product_id, "at least one packaging level required")
        sizes = [level.units_per_package for level in self.levels]
        if sizes != sorted(sizes):
            raise InvalidHierarchyError(
                self.product_id,
                f"levels must be sorted ascending by units per package, got {sizes}"
            )

    @property
    def base_level(self) -> PackagingLevel:
        first = self.levels[0]
        if first.units_per_package == 1:
            return first
        return PackagingLevel(symbol=self.base_unit, display_name=self.base_unit, units_per_package=1.0)

    def level_index(self, level: PackagingLevel) -> int:
        """Position of the level in the hierarchy (implicit base level -> 0)"""
        try:
            return self.levels.index(level)
        except ValueError:
            return 0

    def find_level(self, symbol: str) -> Optional[PackagingLevel]:
        for level in self.levels:
            if level.symbol == symbol:
                return level
        return None


class PackagingComponent(BaseModel):
    """count x level = total_units base units"""
    level: PackagingLevel
    count: float
    total_units: float


class PackagingDecomposition(BaseModel):
    """Greedy breakdown of a base-unit count"""
    components: List[PackagingComponent]
    total_units: float
    efficiency: float
    leftover: float = 0.0

    def format(self) -> str:
        parts = []
        for component in self.components:
            count = component.count
            formatted = str(int(count)) if float(count).is_integer() else f"{count:g}"
            parts.append(f"{formatted} {component.level.display_name}")
        return " + ".join(parts)


class PackagingOption(BaseModel):
    """Whole quantity expressed in a single level"""
    level: PackagingLevel
    quantity: float
    remainder: float


class PackagingSuggestion(BaseModel):
    total_units: float
    options: List[PackagingOption]
    optimal: Optional[PackagingDecomposition] = None
    reason: str


# ==================== DECOMPOSITION ====================

def calculate_efficiency(components: Sequence[PackagingComponent], hierarchy: PackagingHierarchy) -> float:
    """
    Share of units carried by larger levels, weighted by level index.

    sum(units * level_index) / (sum(units) * level_count), in [0, 1).
    A display heuristic only: it ranks breakdowns, it does not price them.
    """
    total = sum(component.total_units for component in components)
    if total <= 0:
        return 0.0
    weighted = sum(component.total_units * hierarchy.level_index(component.level) for component in components)
    return weighted / (total * len(hierarchy.levels))


def decompose(total_units: float, hierarchy: PackagingHierarchy) -> PackagingDecomposition:
    """
    Greedily express total_units as packaging components.

    Args:
        total_units: Count in base units
        hierarchy: Packaging levels of the product

    Returns:
        PackagingDecomposition (components largest level first)

    Raises:
        QuantityRuleViolationError: If total_units is negative
    """
    if total_units < 0:
        raise QuantityRuleViolationError(f"Cannot decompose a negative quantity ({total_units})")

    base_level = hierarchy.base_level
    components: List[PackagingComponent] = []
    remaining = total_units

    for level in sorted(hierarchy.levels, key=lambda lvl: lvl.units_per_package, reverse=True):
        if level == base_level:
            continue  # base level takes whatever is left, below

        count = math.floor(remaining / level.units_per_package)
        if count <= 0 or count < level.minimum_viable_count:
            continue

        units = count * level.units_per_package
        components.append(PackagingComponent(level=level, count=count, total_units=units))
        remaining -= units

    leftover = 0.0
    if remaining > LEFTOVER_TOLERANCE:
        components.append(PackagingComponent(level=base_level, count=remaining, total_units=remaining))
    else:
        leftover = remaining

    decomposition = PackagingDecomposition(
        components=components,
        total_units=total_units,
        efficiency=calculate_efficiency(components, hierarchy),
        leftover=leftover
    )
    logger.debug(f"[{hierarchy.product_id}] {total_units} -> {decomposition.format() or 'nothing'}")
    return decomposition


def _suggestion_reason(decomposition: Optional[PackagingDecomposition]) -> str:
    if decomposition is None:
        return "No optimal packaging found"
    if decomposition.efficiency > 0.8:
        return "Highly efficient packaging combination"
    if decomposition.efficiency > 0.5:
        return "Good packaging combination"
    return "Consider ordering in larger units for better efficiency"


def suggest_packaging(total_units: float, hierarchy: PackagingHierarchy) -> PackagingSuggestion:
    """Single-level options plus the greedy mixed breakdown"""
    options = []
    for level in hierarchy.levels:
        quantity = total_units / level.units_per_package
        if quantity >= level.minimum_viable_count:
            options.append(PackagingOption(
                level=level,
                quantity=quantity,
                remainder=total_units % level.units_per_package
            ))

    optimal = decompose(total_units, hierarchy)
    return PackagingSuggestion(
        total_units=total_units,
        options=options,
        optimal=optimal,
        reason=_suggestion_reason(optimal)
    )


# ==================== PRESETS ====================

STANDARD_RETAIL = PackagingHierarchy(
    product_id="standard",
    levels=[
        PackagingLevel(symbol="ea", display_name="each", units_per_package=1.0),
        PackagingLevel(symbol="pack", display_name="pack", units_per_package=6.0),
        PackagingLevel(symbol="box", display_name="box", units_per_package=24.0),
        PackagingLevel(symbol="case", display_name="case", units_per_package=144.0),
        PackagingLevel(symbol="pallet", display_name="pallet", units_per_package=2880.0)
    ],
    base_unit="ea"
)

STANDARD_WHOLESALE = PackagingHierarchy(
    product_id="wholesale",
    levels=[
        PackagingLevel(symbol="box", display_name="box", units_per_package=12.0),
        PackagingLevel(symbol="case", display_name="case", units_per_package=144.0),
        PackagingLevel(symbol="pallet", display_name="pallet", units_per_package=1728.0),
        PackagingLevel(symbol="container", display_name="container", units_per_package=20736.0)
    ]
)
