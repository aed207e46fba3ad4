# backend/unit_conversion_graph.py

"""
Unit Conversion Graph - per-product unit normalization

Each product declares one base unit and a ratio for every other unit it is
sold in. The graph is a star: every unit converts to and from the base unit
only, so any unit reaches any other unit in at most two hops.

INVARIANTS:
1) Product ID and base unit are never blank
2) Ratios are strictly positive on both sides
3) A graph is immutable once built (re-registering a product replaces it)
4) Unknown units -> HARD ERROR (no fallback to the base unit)
"""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from pydantic import BaseModel, ConfigDict, Field

from quantity_errors import ConfigurationError, UnitNotFoundError, configuration_errors
from rounding_policy import RoundingPolicy

logger = logging.getLogger(__name__)


class ConversionRatio(BaseModel):
    """
    Ratio between a unit and the base unit.

    from_value of the unit correspond to to_value base units, so
    factor = to_value / from_value is the number of base units in one unit.
    A box of 10 pieces on a "piece" base is ConversionRatio(1, 10); five
    dozen-sized trays per 60 pieces would be ConversionRatio(5, 60).
    """
    model_config = ConfigDict(frozen=True)

    from_value: float = Field(gt=0)
    to_value: float = Field(gt=0)

    def __init__(self, from_value: float, to_value: float, **data):
        with configuration_errors("conversion ratio"):
            super().__init__(from_value=from_value, to_value=to_value, **data)

    @property
    def factor(self) -> float:
        return self.to_value / self.from_value

    @property
    def inverse_factor(self) -> float:
        return self.from_value / self.to_value

    def convert(self, value: float) -> float:
        return value * self.factor

    def convert_inverse(self, value: float) -> float:
        return value * self.inverse_factor

    def inverse(self) -> "ConversionRatio":
        return ConversionRatio(from_value=self.to_value, to_value=self.from_value)

    def chain(self, other: "ConversionRatio") -> "ConversionRatio":
        """Compose A->B (self) with B->C (other) into A->C"""
        return ConversionRatio(from_value=self.from_value, to_value=self.to_value * other.factor)

    @classmethod
    def of(cls, ratio: float) -> "ConversionRatio":
        return cls(from_value=1.0, to_value=ratio)

    @classmethod
    def from_percentage(cls, percentage: float) -> "ConversionRatio":
        return cls(from_value=100.0, to_value=percentage)


def _make_ratio(from_value: float, to_value: float, unit: str) -> ConversionRatio:
    try:
        return ConversionRatio(from_value, to_value)
    except ConfigurationError as e:
        raise ConfigurationError(
            f"Conversion ratio for unit '{unit}' must be positive on both sides "
            f"(from_value={from_value}, to_value={to_value})",
            field="conversions"
        ) from e


class UnitConversionGraph:
    """
    Immutable star graph of a product's units around its base unit.

    convert() routes through the base unit:
        to_base = value * conversions[from_unit].factor
        result  = to_base / conversions[to_unit].factor
    """

    def __init__(
        self,
        product_id: str,
        base_unit: str,
        conversions: Mapping[str, ConversionRatio],
        rounding_policies: Optional[Mapping[str, RoundingPolicy]] = None
    ):
        if not product_id or not product_id.strip():
            raise ConfigurationError("Product ID must not be blank", field="product_id")
        if not base_unit or not base_unit.strip():
            raise ConfigurationError("Base unit must not be blank", field="base_unit")

        for unit in conversions:
            if not unit or not unit.strip():
                raise ConfigurationError(
                    f"Unit symbols must not be blank (product '{product_id}')",
                    field="conversions"
                )
            if unit == base_unit:
                raise ConfigurationError(
                    f"Base unit '{base_unit}' cannot carry its own conversion ratio (product '{product_id}')",
                    field="conversions"
                )

        for unit in rounding_policies or {}:
            if unit != base_unit and unit not in conversions:
                raise ConfigurationError(
                    f"Rounding policy given for unknown unit '{unit}' (product '{product_id}')",
                    field="rounding_policies"
                )

        self._product_id = product_id
        self._base_unit = base_unit
        # Snapshot copies: later mutation of the caller's dicts has no effect
        self._conversions = MappingProxyType(dict(conversions))
        self._rounding_policies = MappingProxyType(dict(rounding_policies or {}))

    # ==================== CONSTRUCTION ====================

    @classmethod
    def builder(cls, product_id: str, base_unit: str) -> "UnitConversionGraphBuilder":
        return UnitConversionGraphBuilder(product_id, base_unit)

    @classmethod
    def from_pairs(
        cls,
        product_id: str,
        base_unit: str,
        pairs: Iterable[Tuple[str, Union[ConversionRatio, Tuple[float, float]]]],
        rounding_policies: Optional[Mapping[str, RoundingPolicy]] = None
    ) -> "UnitConversionGraph":
        """
        Flat constructor.

        Args:
            pairs: (unit, ratio) pairs; a ratio may be a ConversionRatio or a
                (from_value, to_value) tuple

        Returns:
            UnitConversionGraph
        """
        conversions: Dict[str, ConversionRatio] = {}
        for unit, ratio in pairs:
            if not isinstance(ratio, ConversionRatio):
                from_value, to_value = ratio
                ratio = _make_ratio(from_value, to_value, unit)
            conversions[unit] = ratio
        return cls(product_id, base_unit, conversions, rounding_policies)

    # ==================== ACCESSORS ====================

    @property
    def product_id(self) -> str:
        return self._product_id

    @property
    def base_unit(self) -> str:
        return self._base_unit

    @property
    def conversions(self) -> Mapping[str, ConversionRatio]:
        return self._conversions

    @property
    def rounding_policies(self) -> Mapping[str, RoundingPolicy]:
        return self._rounding_policies

    @property
    def units(self) -> List[str]:
        """All units of the product, base unit first"""
        return [self._base_unit] + list(self._conversions)

    def has_unit(self, unit: str) -> bool:
        return unit == self._base_unit or unit in self._conversions

    def get_conversion_ratio(self, unit: str) -> Optional[ConversionRatio]:
        return self._conversions.get(unit)

    def get_rounding_policy(self, unit: str) -> Optional[RoundingPolicy]:
        return self._rounding_policies.get(unit)

    # ==================== CONVERSION ====================

    def _ratio_or_raise(self, unit: str) -> ConversionRatio:
        ratio = self._conversions.get(unit)
        if ratio is None:
            raise UnitNotFoundError(unit, f"product '{self._product_id}'", self.units)
        return ratio

    def convert_to_base(self, value: float, source_unit: str) -> float:
        if source_unit == self._base_unit:
            return value
        return self._ratio_or_raise(source_unit).convert(value)

    def convert_from_base(self, value: float, target_unit: str) -> float:
        if target_unit == self._base_unit:
            return value
        return self._ratio_or_raise(target_unit).convert_inverse(value)

    def convert(self, value: float, from_unit: str, to_unit: str) -> float:
        """
        Convert between any two units of the product.

        Raises:
            UnitNotFoundError: If a non-base unit has no conversion ratio
        """
        if from_unit == to_unit:
            return value

        to_base = self.convert_to_base(value, from_unit)
        result = self.convert_from_base(to_base, to_unit)
        logger.debug(
            f"[{self._product_id}] {value} {from_unit} -> {to_base} {self._base_unit} -> {result} {to_unit}"
        )
        return result

    def to_dict(self) -> dict:
        return {
            "product_id": self._product_id,
            "base_unit": self._base_unit,
            "conversions": [
                {"unit": unit, "from_value": ratio.from_value, "to_value": ratio.to_value, "factor": ratio.factor}
                for unit, ratio in self._conversions.items()
            ],
            "rounding_policies": {
                unit: policy.model_dump(mode="json") for unit, policy in self._rounding_policies.items()
            }
        }

    def __repr__(self) -> str:
        return (
            f"UnitConversionGraph(product_id={self._product_id!r}, base_unit={self._base_unit!r}, "
            f"units={list(self._conversions)!r})"
        )


class UnitConversionGraphBuilder:
    """Accumulates (unit, ratio, policy) entries; build() snapshots them"""

    def __init__(self, product_id: str, base_unit: str):
        self._product_id = product_id
        self._base_unit = base_unit
        self._conversions: Dict[str, ConversionRatio] = {}
        self._rounding_policies: Dict[str, RoundingPolicy] = {}

    def add_conversion(
        self,
        unit: str,
        ratio: Union[ConversionRatio, float],
        to_value: Optional[float] = None,
        rounding_policy: Optional[RoundingPolicy] = None
    ) -> "UnitConversionGraphBuilder":
        """
        add_conversion("box", ConversionRatio(...)) or add_conversion("box", 1, 10)
        """
        if not isinstance(ratio, ConversionRatio):
            if to_value is None:
                raise ConfigurationError(
                    f"Conversion for unit '{unit}' needs both from_value and to_value",
                    field="conversions"
                )
            ratio = _make_ratio(ratio, to_value, unit)
        self._conversions[unit] = ratio
        if rounding_policy is not None:
            self._rounding_policies[unit] = rounding_policy
        return self

    def add_rounding_policy(self, unit: str, policy: RoundingPolicy) -> "UnitConversionGraphBuilder":
        self._rounding_policies[unit] = policy
        return self

    def build(self) -> UnitConversionGraph:
        return UnitConversionGraph(
            self._product_id,
            self._base_unit,
            dict(self._conversions),
            dict(self._rounding_policies)
        )
