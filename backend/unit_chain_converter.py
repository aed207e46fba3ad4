# backend/unit_chain_converter.py

"""
Unit Chain Converter - named packaging chains

A chain is an ordered list of packaging units where every unit is declared
relative to the one before it:

    piece -> box (12 pieces) -> carton (4 boxes) -> pallet (10 cartons)

The cumulative factor of unit i (its size in first-unit terms) is the
product of the factors at indexes 1..i; the first unit's own factor is
never used. Chains are independent of any product configuration.
"""

import threading
from typing import Dict, List, Optional, Union
import logging

from pydantic import BaseModel, ConfigDict, Field

from packaging_decomposer import PackagingHierarchy, PackagingLevel, decompose
from quantity import COUNT_UNIT_FACTORS, Quantity
from quantity_errors import (
    ChainNotFoundError,
    ConfigurationError,
    UnitNotFoundError,
    configuration_errors,
)

logger = logging.getLogger(__name__)


class ChainUnit(BaseModel):
    """Unit inside a chain; factor is relative to the previous unit"""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    display_name: str
    factor_relative_to_previous: float = Field(gt=0)
    abbreviation: Optional[str] = None

    def __init__(
        self,
        symbol: str,
        display_name: str,
        factor_relative_to_previous: float,
        abbreviation: Optional[str] = None,
        **data
    ):
        with configuration_errors("chain unit"):
            super().__init__(
                symbol=symbol,
                display_name=display_name,
                factor_relative_to_previous=factor_relative_to_previous,
                abbreviation=abbreviation,
                **data
            )

    def matches(self, unit: str) -> bool:
        return self.symbol == unit or (self.abbreviation is not None and self.abbreviation == unit)


class UnitChain(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    units: List[ChainUnit]

    def __init__(self, name: str, units: List[ChainUnit], **data):
        with configuration_errors("unit chain"):
            super().__init__(name=name, units=units, **data)
        if not self.units:
            raise ConfigurationError(f"Unit chain '{self.name}' needs at least one unit", field="units")
        seen = set()
        for unit in self.units:
            for label in (unit.symbol, unit.abbreviation):
                if label is None:
                    continue
                if label in seen:
                    raise ConfigurationError(
                        f"Unit chain '{self.name}' uses '{label}' more than once",
                        field="units"
                    )
                seen.add(label)

    @property
    def first_unit(self) -> ChainUnit:
        return self.units[0]

    @property
    def symbols(self) -> List[str]:
        return [unit.symbol for unit in self.units]

    def contains(self, unit: str) -> bool:
        return any(chain_unit.matches(unit) for chain_unit in self.units)

    def index_of(self, unit: str) -> int:
        """
        Raises:
            UnitNotFoundError: If neither a symbol nor an abbreviation matches
        """
        for index, chain_unit in enumerate(self.units):
            if chain_unit.matches(unit):
                return index
        raise UnitNotFoundError(unit, f"chain '{self.name}'", self.symbols)

    def find_unit(self, unit: str) -> ChainUnit:
        return self.units[self.index_of(unit)]

    def cumulative_factor(self, index: int) -> float:
        """Size of units[index] in first-unit terms"""
        factor = 1.0
        for chain_unit in self.units[1:index + 1]:
            factor *= chain_unit.factor_relative_to_previous
        return factor

    def to_first_unit(self, value: float, from_unit: str) -> float:
        return value * self.cumulative_factor(self.index_of(from_unit))

    def from_first_unit(self, value: float, to_unit: str) -> float:
        return value / self.cumulative_factor(self.index_of(to_unit))

    def convert(self, value: float, from_unit: str, to_unit: str) -> float:
        return self.from_first_unit(self.to_first_unit(value, from_unit), to_unit)

    def to_hierarchy(self) -> PackagingHierarchy:
        """Chain units as packaging levels ordered by cumulative factor"""
        levels = [
            PackagingLevel(
                symbol=chain_unit.symbol,
                display_name=chain_unit.display_name,
                units_per_package=self.cumulative_factor(index),
                minimum_viable_count=1.0
            )
            for index, chain_unit in enumerate(self.units)
        ]
        levels.sort(key=lambda level: level.units_per_package)
        return PackagingHierarchy(product_id=self.name, levels=levels, base_unit=self.first_unit.symbol)


# ==================== RESULTS ====================

class ChainComponent(BaseModel):
    value: float
    unit: str
    display_name: str


class ChainSuggestion(BaseModel):
    chain_name: str
    components: List[ChainComponent]
    total_in_base_unit: float

    def format(self) -> str:
        parts = []
        for component in self.components:
            value = component.value
            formatted = str(int(value)) if float(value).is_integer() else str(value)
            parts.append(f"{formatted} {component.display_name}")
        return " + ".join(parts)


class OptimalUnitSuggestion(BaseModel):
    quantity: float
    unit: Optional[str] = None  # None: quantity counts first units
    suggestions: List[ChainSuggestion]
    recommended: Optional[ChainSuggestion] = None


class FractionalQuantity(BaseModel):
    whole: int
    fractional: float
    unit: str
    display_value: str


# ==================== REGISTRY ====================

class UnitChainRegistry:
    """
    Named chains in registration order.

    Re-registering a name replaces the chain (last write wins, no merge)
    but keeps its original position.
    """

    def __init__(self):
        self._chains: Dict[str, UnitChain] = {}
        self._lock = threading.RLock()

    @classmethod
    def with_defaults(cls) -> "UnitChainRegistry":
        registry = cls()
        for chain in DEFAULT_CHAINS:
            registry.register(chain)
        return registry

    def register(self, chain: UnitChain) -> None:
        with self._lock:
            if chain.name in self._chains:
                logger.warning(f"Unit chain '{chain.name}' re-registered; previous definition replaced")
            self._chains[chain.name] = chain
        logger.info(f"Registered unit chain '{chain.name}' ({' -> '.join(chain.symbols)})")

    def get(self, name: str) -> UnitChain:
        with self._lock:
            chain = self._chains.get(name)
            if chain is None:
                raise ChainNotFoundError(name, list(self._chains))
            return chain

    def chains(self) -> List[UnitChain]:
        with self._lock:
            return list(self._chains.values())

    @property
    def names(self) -> List[str]:
        with self._lock:
            return list(self._chains)

    def find_chain_for_unit(self, unit: str) -> Optional[UnitChain]:
        for chain in self.chains():
            if chain.contains(unit):
                return chain
        return None

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._chains

    def __len__(self) -> int:
        with self._lock:
            return len(self._chains)


class ChainConverter:
    """Conversions and compact representations across registered chains"""

    def __init__(self, registry: Optional[UnitChainRegistry] = None):
        self.registry = registry if registry is not None else UnitChainRegistry.with_defaults()

    def convert(self, value: float, from_unit: str, to_unit: str, chain_name: str) -> float:
        """
        Raises:
            ChainNotFoundError: Unknown chain name
            UnitNotFoundError: Unit not in the chain
        """
        return self.registry.get(chain_name).convert(value, from_unit, to_unit)

    def convert_quantity(self, quantity: Quantity, target_unit: str, chain_name: str) -> Quantity:
        chain = self.registry.get(chain_name)
        converted = chain.convert(quantity.value, quantity.unit_symbol, target_unit)
        return Quantity.of(converted, target_unit)

    def _best_representation(self, quantity_in_base_units: float, chain: UnitChain) -> ChainSuggestion:
        decomposition = decompose(quantity_in_base_units, chain.to_hierarchy())
        return ChainSuggestion(
            chain_name=chain.name,
            components=[
                ChainComponent(
                    value=component.count,
                    unit=component.level.symbol,
                    display_name=component.level.display_name
                )
                for component in decomposition.components
            ],
            total_in_base_unit=quantity_in_base_units
        )

    def _first_unit_count(self, quantity: Union[float, Quantity], chain: UnitChain) -> Optional[float]:
        if not isinstance(quantity, Quantity):
            return float(quantity)
        if chain.contains(quantity.unit_symbol):
            return chain.to_first_unit(quantity.value, quantity.unit_symbol)
        if quantity.unit_symbol in COUNT_UNIT_FACTORS:
            # Generic count units (dz, gross, ...) count first units directly
            return quantity.raw_count_in_base_unit
        return None

    def suggest_optimal_unit(self, quantity: Union[float, Quantity]) -> OptimalUnitSuggestion:
        """
        Decompose the quantity along every chain and recommend the chain
        needing the fewest components (ties: first registered).

        Args:
            quantity: A count in each chain's first unit, or a Quantity. A
                Quantity is converted through each chain that knows its unit
                (generic count units are taken as first-unit counts); chains
                that do not know it are left out.

        Raises:
            UnitNotFoundError: If no registered chain understands the Quantity's unit
        """
        chains = self.registry.chains()
        suggestions = []
        for chain in chains:
            count = self._first_unit_count(quantity, chain)
            if count is not None:
                suggestions.append(self._best_representation(count, chain))

        if isinstance(quantity, Quantity):
            if chains and not suggestions:
                raise UnitNotFoundError(quantity.unit_symbol, "any registered unit chain")
            requested, unit = quantity.value, quantity.unit_symbol
        else:
            requested, unit = float(quantity), None

        candidates = [suggestion for suggestion in suggestions if suggestion.components]
        recommended = min(candidates, key=lambda suggestion: len(suggestion.components)) if candidates else None

        if recommended is not None:
            logger.debug(f"{requested} {unit or ''} -> {recommended.format()} ({recommended.chain_name})")
        return OptimalUnitSuggestion(quantity=requested, unit=unit, suggestions=suggestions, recommended=recommended)

    def to_fractional_representation(
        self,
        quantity: Quantity,
        target_unit: str,
        chain_name: Optional[str] = None
    ) -> FractionalQuantity:
        """
        Express a quantity in target_unit as whole + display fraction.

        Without a chain name the first chain containing target_unit is used.
        The quarter buckets are for display only.
        """
        if chain_name is not None:
            chain = self.registry.get(chain_name)
        else:
            chain = self.registry.find_chain_for_unit(target_unit)
            if chain is None:
                raise UnitNotFoundError(target_unit, "any registered unit chain")

        value = chain.convert(quantity.value, quantity.unit_symbol, target_unit)
        whole = int(value)
        fractional = value - whole
        return FractionalQuantity(
            whole=whole,
            fractional=fractional,
            unit=target_unit,
            display_value=format_fractional(whole, fractional, target_unit)
        )


def format_fractional(whole: int, fractional: float, unit: str) -> str:
    if fractional < 0.125:
        return f"{whole} {unit}"
    if fractional < 0.375:
        return f"{whole}¼ {unit}"
    if fractional < 0.625:
        return f"{whole}½ {unit}"
    if fractional < 0.875:
        return f"{whole}¾ {unit}"
    return f"{whole + 1} {unit}"


# ==================== PRESETS ====================

STANDARD_PACKAGING = UnitChain(
    name="Standard Packaging",
    units=[
        ChainUnit("piece", "piece", 1.0, "pcs"),
        ChainUnit("box", "box", 12.0, "bx"),
        ChainUnit("carton", "carton", 4.0, "ctn"),
        ChainUnit("pallet", "pallet", 10.0, "plt")
    ]
)

BEVERAGE_PACKAGING = UnitChain(
    name="Beverage Packaging",
    units=[
        ChainUnit("can", "can", 1.0),
        ChainUnit("6-pack", "6-pack", 6.0, "6pk"),
        ChainUnit("case", "case", 4.0, "cs"),
        ChainUnit("pallet", "pallet", 50.0, "plt")
    ]
)

PAPER_UNITS = UnitChain(
    name="Paper Units",
    units=[
        ChainUnit("sheet", "sheet", 1.0),
        ChainUnit("quire", "quire", 25.0),
        ChainUnit("ream", "ream", 20.0),
        ChainUnit("case", "case", 10.0, "cs")
    ]
)

EGG_PACKAGING = UnitChain(
    name="Egg Packaging",
    units=[
        ChainUnit("egg", "egg", 1.0),
        ChainUnit("half-dozen", "half-dozen", 6.0, "6"),
        ChainUnit("dozen", "dozen", 2.0, "dz"),
        ChainUnit("flat", "flat", 2.5, "flt"),
        ChainUnit("case", "case", 12.0, "cs")
    ]
)

DEFAULT_CHAINS = [STANDARD_PACKAGING, BEVERAGE_PACKAGING, PAPER_UNITS, EGG_PACKAGING]
